"""
Label scoring prompt template for the LLM classifier.

Kept separate from the classifier so the wording can be tuned without
touching the parsing code.
"""

SYSTEM_PROMPT = (
    "You triage GitHub issues and pull requests by assigning them to the team "
    "area that owns them. You answer with JSON only."
)

LABEL_PROMPT = """Score how well each candidate label fits the GitHub item below.

CANDIDATE LABELS:
{candidate_labels}

RULES:
- Only use labels from the candidate list, spelled exactly as given.
- Give every label you consider plausible a confidence score between 0 and 1.
- Scores are independent estimates; they do not need to sum to 1.
- Leave out labels that clearly do not apply.
- If nothing applies, return an empty list.

Respond with a JSON object of this shape and nothing else:
{{"predictions": [{{"label": "<label>", "score": <0..1>}}]}}

ITEM:
{item_context}
"""
