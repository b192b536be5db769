"""Data models for GitHub issue and pull request records and prediction outcomes."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ItemKind(str, Enum):
    """Kind of item being labeled. The value is used in report lines."""

    ISSUE = "Issue"
    PULL_REQUEST = "Pull Request"


class Issue(BaseModel):
    """Issue record normalized for prediction.

    Records are built fresh from every fetch and never modified afterwards.
    `has_more_labels` is set when GitHub reported another page of labels that
    was not retrieved; in that case the absence of an applicable label cannot
    be proven.
    """

    model_config = ConfigDict(frozen=True)

    repo: str  # e.g., "dotnet/runtime"
    number: int
    title: str = ""
    body: str = ""
    author: Optional[str] = None  # None for deleted ("ghost") accounts
    labels: tuple[str, ...] = ()
    has_more_labels: bool = False

    def has_label(self, label: str) -> bool:
        """Case-insensitive check for a label on this record."""
        return any(existing.lower() == label.lower() for existing in self.labels)

    def first_label(self, label_predicate) -> Optional[str]:
        """Return the first label satisfying the predicate, if any."""
        return next((label for label in self.labels if label_predicate(label)), None)


class PullRequest(Issue):
    """Pull request record with changed file and folder names."""

    file_names: tuple[str, ...] = ()
    folder_names: tuple[str, ...] = ()


class LabelScore(BaseModel):
    """One candidate label produced by a classifier."""

    model_config = ConfigDict(frozen=True)

    label: str
    score: float = Field(allow_inf_nan=False)


class MutationOutcome(BaseModel):
    """Result of adding or removing a label."""

    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "MutationOutcome":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "MutationOutcome":
        return cls(success=False, error=error)


class Decision(str, Enum):
    """Terminal outcome of the prediction workflow for one record."""

    SKIPPED_TOO_MANY_LABELS = "SkippedTooManyLabels"
    SKIPPED_HAS_APPLICABLE_LABEL = "SkippedHasApplicableLabel"
    SKIPPED_AUTHOR_EXCLUDED = "SkippedAuthorExcluded"
    APPLIED_PREDICTION = "AppliedPrediction"
    APPLIED_DEFAULT = "AppliedDefault"
    NO_PREDICTION_MADE = "NoPredictionMade"
    MUTATION_FAILED = "MutationFailed"
    # Set by the batch runner, never by predict_item
    NOT_FOUND = "NotFound"
    FETCH_FAILED = "FetchFailed"
    PREDICTION_ERROR = "PredictionError"


class PredictionResult(BaseModel):
    """Per-item report entry produced by the prediction workflow.

    `removal` carries the outcome of removing the default label when that
    happened as a side step of another decision.
    """

    number: int
    kind: ItemKind
    decision: Decision
    status: str = ""
    success: bool = True
    label: Optional[str] = None
    score: Optional[float] = None
    error: Optional[str] = None
    removal: Optional[MutationOutcome] = None
    top_predictions: list[LabelScore] = Field(default_factory=list)
    output: list[str] = Field(default_factory=list)
