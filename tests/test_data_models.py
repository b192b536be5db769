"""Tests for data models."""

import pytest
from pydantic import ValidationError

from models.data_models import (
    Decision,
    Issue,
    ItemKind,
    LabelScore,
    MutationOutcome,
    PredictionResult,
    PullRequest,
)
from utils.arg_parsing import make_label_predicate


class TestIssue:
    """Tests for Issue model."""

    def test_minimal_valid_issue(self):
        issue = Issue(repo="owner/repo", number=123)

        assert issue.title == ""
        assert issue.body == ""
        assert issue.author is None
        assert issue.labels == ()
        assert issue.has_more_labels is False

    def test_is_immutable(self):
        issue = Issue(repo="owner/repo", number=1, labels=("bug",))

        with pytest.raises(ValidationError):
            issue.labels = ("area-A",)

    def test_has_label_is_case_insensitive(self):
        issue = Issue(repo="owner/repo", number=1, labels=("Untriaged",))

        assert issue.has_label("untriaged")
        assert not issue.has_label("area-A")

    def test_first_label(self):
        issue = Issue(repo="owner/repo", number=1, labels=("bug", "area-B", "area-A"))

        assert issue.first_label(make_label_predicate("area-")) == "area-B"
        assert issue.first_label(make_label_predicate("team-")) is None


class TestPullRequest:
    def test_is_an_issue_with_files(self):
        pull = PullRequest(repo="owner/repo", number=5, file_names=("a.py",), folder_names=("src",))

        assert isinstance(pull, Issue)
        assert pull.file_names == ("a.py",)


class TestOutcomes:
    def test_mutation_outcome_helpers(self):
        assert MutationOutcome.ok() == MutationOutcome(success=True)
        failed = MutationOutcome.failed("boom")
        assert failed.success is False
        assert failed.error == "boom"

    def test_prediction_result_defaults(self):
        result = PredictionResult(number=1, kind=ItemKind.ISSUE, decision=Decision.NO_PREDICTION_MADE)

        assert result.success is True
        assert result.removal is None
        assert result.top_predictions == []
        assert result.output == []

    def test_enum_values(self):
        assert ItemKind.PULL_REQUEST.value == "Pull Request"
        assert Decision.SKIPPED_TOO_MANY_LABELS.value == "SkippedTooManyLabels"

    @pytest.mark.parametrize("score", [float("nan"), float("inf")])
    def test_label_score_rejects_non_finite(self, score):
        """Non-finite scores would break confidence ordering."""
        with pytest.raises(ValidationError):
            LabelScore(label="area-A", score=score)
