"""
Label classifiers.

The labeling workflow only depends on the Classifier protocol: given a
record, return ranked (label, score) candidates or None. Any scoring backend
can satisfy it; LLMClassifier is the remote-inference one shipped here.
"""

import json
import logging
import math
import time
from typing import Any, Optional, Protocol, Sequence

from classifier.context_builder import build_record_context
from classifier.llm_client import LLMClient
from classifier.prompt_template import LABEL_PROMPT, SYSTEM_PROMPT
from models.config_models import CredentialsConfig
from models.data_models import Issue, LabelScore

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    """Scores candidate labels for a record.

    Implementations must have no side effects on the record and must be safe
    to call from several threads at once.
    """

    def predict(self, record: Issue) -> Optional[list[LabelScore]]:
        ...


def rank_predictions(predictions: Sequence[LabelScore]) -> list[LabelScore]:
    """Order candidates by descending score; ties keep their original order."""
    return sorted(predictions, key=lambda p: p.score, reverse=True)


class LLMClassifier:
    """
    Classifier backed by an LLM that scores a fixed set of candidate labels.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        candidate_labels: Sequence[str],
        max_retries: int = 2,
        retry_delay: float = 2.0
    ):
        """
        Args:
            llm_client: Client used to send prompts
            candidate_labels: Labels the model may predict (e.g., all "area-" labels)
            max_retries: Retries when the response cannot be parsed (default 2)
            retry_delay: Delay between retries in seconds (default 2.0)
        """
        if not candidate_labels:
            raise ValueError("At least one candidate label is required")

        self.llm_client = llm_client
        self.candidate_labels = list(candidate_labels)
        self._canonical = {label.lower(): label for label in self.candidate_labels}
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_credentials(cls, credentials: CredentialsConfig, candidate_labels: Sequence[str]) -> "LLMClassifier":
        client = LLMClient(
            provider=credentials.llm_provider,
            model=credentials.llm_model,
            api_key=credentials.llm_api_key or "",
        )
        return cls(client, candidate_labels)

    def predict(self, record: Issue) -> Optional[list[LabelScore]]:
        """
        Score candidate labels for a record.

        Returns:
            Candidates ranked by descending score, or None when the model
            found no applicable label

        Raises:
            ValueError: If the response is still unusable after all retries
        """
        prompt = LABEL_PROMPT.format(
            candidate_labels="\n".join(f"- {label}" for label in self.candidate_labels),
            item_context=build_record_context(record),
        )

        for attempt in range(1, self.max_retries + 2):
            response_text = self.llm_client.send_prompt(prompt, system=SYSTEM_PROMPT, json_mode=True)

            try:
                predictions = self._parse_predictions(response_text)
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"#{record.number}: unusable LLM response (attempt {attempt}): {e}")
                if attempt <= self.max_retries:
                    time.sleep(self.retry_delay)
                    continue
                raise ValueError(
                    f"Unusable LLM response for #{record.number} after {attempt} attempts"
                ) from e

            logger.debug(f"#{record.number}: {len(predictions)} candidate labels scored")
            return rank_predictions(predictions) or None

    def _parse_predictions(self, response_text: str) -> list[LabelScore]:
        """Parse and validate the JSON predictions, dropping unknown labels."""
        payload = self._extract_json(response_text)
        if not isinstance(payload, dict):
            raise ValueError("Response must be a JSON object")

        entries = payload.get("predictions")
        if not isinstance(entries, list):
            raise ValueError("'predictions' must be a list")

        predictions = []
        for entry in entries:
            if not isinstance(entry, dict) or "label" not in entry or "score" not in entry:
                raise ValueError(f"Malformed prediction entry: {entry!r}")

            label = self._canonical.get(str(entry["label"]).lower())
            if label is None:
                logger.debug(f"Ignoring label outside the candidate set: {entry['label']!r}")
                continue

            try:
                score = float(entry["score"])
            except (TypeError, ValueError):
                raise ValueError(f"Malformed score for '{label}': {entry['score']!r}") from None
            if not math.isfinite(score):
                raise ValueError(f"Non-finite score for '{label}': {entry['score']!r}")

            predictions.append(LabelScore(label=label, score=min(max(score, 0.0), 1.0)))

        return predictions

    def _extract_json(self, response_text: str) -> dict[str, Any]:
        """
        Parse JSON from an LLM response.

        Handles responses that wrap the JSON in a markdown code block or in
        surrounding prose.
        """
        try:
            return json.loads(response_text)
        except json.JSONDecodeError:
            pass

        if "```json" in response_text:
            start = response_text.find("```json") + 7
            end = response_text.find("```", start)
            if end > start:
                return json.loads(response_text[start:end].strip())

        start = response_text.find("{")
        end = response_text.rfind("}")
        if start >= 0 and end > start:
            return json.loads(response_text[start:end + 1])

        raise json.JSONDecodeError("No valid JSON found in response", response_text, 0)
