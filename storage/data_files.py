"""
Tab-separated training data files.

Issue files have the columns Label, Title, Body. Pull request files add
FileNames and FolderNames (space-joined). The first row is always a header.
Text is sanitized on write so that every record stays on one line.
"""

import csv
import logging
import os
from typing import Iterator, Optional

from models.data_models import Issue, PullRequest

logger = logging.getLogger(__name__)

ISSUE_HEADER = ("Label", "Title", "Body")
PULL_HEADER = ("Label", "Title", "Body", "FileNames", "FolderNames")
FLUSH_EVERY = 100
MIN_TRAINING_RECORDS = 10


class DataFileError(Exception):
    """Missing, malformed or insufficient data file."""


def sanitize_text(text: Optional[str]) -> str:
    """Replace line breaks and tabs with spaces and double quotes with backticks."""
    if not text:
        return ""
    return (
        text.replace("\r", " ")
        .replace("\n", " ")
        .replace("\t", " ")
        .replace('"', "`")
    )


def issue_row(issue: Issue, label: str) -> tuple[str, ...]:
    return (sanitize_text(label), sanitize_text(issue.title), sanitize_text(issue.body))


def pull_row(pull: PullRequest, label: str) -> tuple[str, ...]:
    return issue_row(pull, label) + (
        " ".join(sanitize_text(name) for name in pull.file_names),
        " ".join(sanitize_text(name) for name in pull.folder_names),
    )


class DataFileWriter:
    """
    Write records to a TSV file, flushing every 100 rows.

    Use as a context manager:

        with DataFileWriter(path, ISSUE_HEADER) as writer:
            writer.write(issue_row(issue, label))
    """

    def __init__(self, path: str, header: tuple[str, ...]):
        self.path = path
        self.header = header
        self.rows_written = 0
        self._file = None

    def __enter__(self) -> "DataFileWriter":
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self._file = open(self.path, "w", encoding="utf-8", newline="")
        self._file.write("\t".join(self.header) + "\n")
        return self

    def write(self, row: tuple[str, ...]) -> None:
        if len(row) != len(self.header):
            raise DataFileError(
                f"Row has {len(row)} columns, expected {len(self.header)} for {self.path}"
            )

        self._file.write("\t".join(row) + "\n")
        self.rows_written += 1

        if self.rows_written % FLUSH_EVERY == 0:
            self._file.flush()
            logger.info(f"Wrote {self.rows_written} rows to {self.path}")

    def __exit__(self, exc_type, exc, tb) -> None:
        self._file.close()
        self._file = None
        logger.info(f"Saved {self.rows_written} rows to {self.path}")


def _read_rows(path: str, header: tuple[str, ...], limit: Optional[int]) -> Iterator[tuple[int, list[str]]]:
    """Yield (line number, columns) for each data row, skipping header and blank rows."""
    if not os.path.isfile(path):
        raise DataFileError(f"Data file not found: {path}")

    count = 0
    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.reader(f, delimiter="\t", quoting=csv.QUOTE_NONE)
        for line_number, columns in enumerate(reader, start=1):
            if line_number == 1 or not any(column.strip() for column in columns):
                continue

            if limit is not None and count >= limit:
                return

            if len(columns) != len(header):
                raise DataFileError(
                    f"{path}:{line_number}: expected {len(header)} columns "
                    f"({', '.join(header)}), found {len(columns)}"
                )

            yield line_number, columns
            count += 1


def read_issue_rows(path: str, limit: Optional[int] = None) -> Iterator[Issue]:
    """
    Read issues from a data file.

    Records are numbered by their line in the file and carry the file's
    label, if any, as their only label.
    """
    repo = os.path.basename(path)
    for line_number, (label, title, body) in _read_rows(path, ISSUE_HEADER, limit):
        yield Issue(
            repo=repo,
            number=line_number,
            title=title,
            body=body,
            labels=(label,) if label else (),
        )


def read_pull_rows(path: str, limit: Optional[int] = None) -> Iterator[PullRequest]:
    """Read pull requests from a data file."""
    repo = os.path.basename(path)
    for line_number, (label, title, body, file_names, folder_names) in _read_rows(path, PULL_HEADER, limit):
        yield PullRequest(
            repo=repo,
            number=line_number,
            title=title,
            body=body,
            labels=(label,) if label else (),
            file_names=tuple(file_names.split()),
            folder_names=tuple(folder_names.split()),
        )


def ensure_training_data(path: str, min_records: int = MIN_TRAINING_RECORDS) -> int:
    """
    Check that a data file has enough rows to train on.

    Returns:
        Number of data rows in the file

    Raises:
        DataFileError: If the file is missing, malformed or too small
    """
    if not os.path.isfile(path):
        raise DataFileError(f"Data file not found: {path}")

    with open(path, encoding="utf-8") as f:
        header = tuple(f.readline().rstrip("\r\n").split("\t"))

    if header not in (ISSUE_HEADER, PULL_HEADER):
        raise DataFileError(f"{path}: unrecognized header {header}")

    count = sum(1 for _ in _read_rows(path, header, None))
    if count < min_records:
        raise DataFileError(
            f"{path} has {count} records. A minimum of {min_records} records is required."
        )

    logger.info(f"{path}: {count} records")
    return count