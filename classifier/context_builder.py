"""
Context builder for label prediction.

Formats an issue or pull request record into the text a classifier sees.
The same fields make up the TSV training data: title, body and, for pull
requests, changed file names and folder names.
"""

from models.data_models import Issue, PullRequest

# Bodies beyond this are cut; the opening paragraphs carry most of the signal
MAX_BODY_CHARS = 4000


def build_record_context(record: Issue) -> str:
    """
    Build a formatted context string from an issue or pull request record.

    Pure function: no network or model dependencies.

    Returns:
        Text with sections for metadata, body and (pull requests only) changed files.
    """
    kind = "Pull Request" if isinstance(record, PullRequest) else "Issue"
    sections = [
        "=" * 80,
        f"{kind.upper()} METADATA",
        "=" * 80,
        f"Repository: {record.repo}",
        f"Number: #{record.number}",
        f"Title: {record.title or '(No title)'}",
        "",
        "=" * 80,
        "DESCRIPTION",
        "=" * 80,
    ]

    body = record.body or ""
    if not body.strip():
        sections.append("(No description provided)")
    elif len(body) > MAX_BODY_CHARS:
        sections.append(body[:MAX_BODY_CHARS])
        sections.append(f"... [TRUNCATED: {len(body) - MAX_BODY_CHARS} more characters]")
    else:
        sections.append(body)
    sections.append("")

    if isinstance(record, PullRequest):
        sections.append("=" * 80)
        sections.append("CHANGED FILES")
        sections.append("=" * 80)
        if record.file_names:
            sections.append(f"File names: {' '.join(record.file_names)}")
            sections.append(f"Folders: {' '.join(record.folder_names) or '(repository root)'}")
        else:
            sections.append("(No files information available)")
        sections.append("")

    return "\n".join(sections)
