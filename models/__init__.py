"""Data models for the issue labeler."""

from models.config_models import (
    Config,
    CredentialsConfig,
    DownloadSettings,
    PredictionSettings,
    EvaluationSettings,
)
from models.data_models import (
    Decision,
    Issue,
    ItemKind,
    LabelScore,
    MutationOutcome,
    PredictionResult,
    PullRequest,
)

__all__ = [
    "Config",
    "CredentialsConfig",
    "DownloadSettings",
    "PredictionSettings",
    "EvaluationSettings",
    "Decision",
    "Issue",
    "ItemKind",
    "LabelScore",
    "MutationOutcome",
    "PredictionResult",
    "PullRequest",
]
