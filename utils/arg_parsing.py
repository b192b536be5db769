"""Parsers for command-line and CI input values.

Every parser raises ValueError with a message that names the expected format,
so that invalid input is rejected before any network activity.
"""

import re
from typing import Callable, Optional

NUMBER_RANGES_HELP = (
    "must be a comma-separated list of numbers and/or dash-separated ranges. "
    "Example: 1-3,5,7-9"
)


def parse_number_ranges(value: str) -> list[int]:
    """
    Parse item number selections such as "1-3,5,7-9".

    Ranges are inclusive. The result is sorted and free of duplicates.

    Examples:
        "1-3,5,7-9" -> [1, 2, 3, 5, 7, 8, 9]
        "42" -> [42]
    """
    if not value or not value.strip():
        raise ValueError(f"Value {NUMBER_RANGES_HELP}")

    numbers = set()
    for part in value.split(","):
        bounds = [b.strip() for b in part.split("-")]

        if len(bounds) == 1:
            numbers.add(_parse_item_number(bounds[0]))
        elif len(bounds) == 2:
            begin = _parse_item_number(bounds[0])
            end = _parse_item_number(bounds[1])
            if begin > end:
                raise ValueError(f"Range '{part.strip()}' is reversed; value {NUMBER_RANGES_HELP}")
            numbers.update(range(begin, end + 1))
        else:
            raise ValueError(f"Value {NUMBER_RANGES_HELP}")

    return sorted(numbers)


def _parse_item_number(text: str) -> int:
    if not text.isdigit():
        raise ValueError(f"'{text}' is not a number; value {NUMBER_RANGES_HELP}")
    return int(text)


def parse_retries(value: str) -> tuple[int, ...]:
    """Parse comma-separated retry delays in seconds, e.g. "30,30,300"."""
    delays = []
    for part in value.split(","):
        part = part.strip()
        if not part.isdigit():
            raise ValueError(
                f"Retry delay '{part}' must be a non-negative integer number of seconds"
            )
        delays.append(int(part))
    return tuple(delays)


def parse_string_list(value: str) -> list[str]:
    """Split a comma-separated list, trimming entries and dropping empty ones."""
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_repo(value: Optional[str]) -> tuple[str, str]:
    """
    Parse "org/repo" into its parts.

    Raises:
        ValueError: If the value is empty or not in org/repo format
    """
    if not value or "/" not in value:
        raise ValueError(f"Repository '{value or ''}' is not in the format of 'org/repo'")

    org, repo = value.strip().split("/", 1)
    if not org or not repo or "/" in repo:
        raise ValueError(f"Repository '{value}' is not in the format of 'org/repo'")
    return org, repo


def parse_repo_list(value: str) -> tuple[str, list[str]]:
    """
    Parse a comma-separated list of repositories that share one org.

    Examples:
        "dotnet/runtime,dotnet/aspnetcore" -> ("dotnet", ["runtime", "aspnetcore"])
    """
    org = None
    repos = []
    for entry in parse_string_list(value):
        entry_org, repo = parse_repo(entry)
        if org is not None and entry_org != org:
            raise ValueError("All repositories must be from the same org")
        org = entry_org
        repos.append(repo)

    if org is None:
        raise ValueError("At least one repository in the format of 'org/repo' is required")
    return org, repos


def parse_label_prefix(value: str) -> str:
    """
    Validate a label prefix such as "area-".

    The prefix must end in something other than a letter or number, so that it
    cannot accidentally match the beginning of an unrelated word.
    """
    if not value or not value.strip():
        raise ValueError("Label prefix must not be empty")
    if re.match(r"[a-zA-Z0-9]", value[-1]):
        raise ValueError(
            f"Label prefix '{value}' must end in a non-alphanumeric character. "
            "The recommended prefix for area labels is 'area-'."
        )
    return value


def make_label_predicate(prefix: str) -> Callable[[str], bool]:
    """Build a case-insensitive 'label starts with prefix' predicate."""
    lowered = prefix.lower()
    return lambda label: label.lower().startswith(lowered)


def parse_threshold(value: str) -> float:
    """Parse a confidence threshold in the range (0, 1]."""
    try:
        threshold = float(value)
    except ValueError:
        raise ValueError(f"Threshold '{value}' must be a decimal value") from None
    if not 0.0 < threshold <= 1.0:
        raise ValueError(f"Threshold {threshold} must be in the range (0, 1]")
    return threshold
