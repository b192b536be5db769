"""Tests for the CLI commands in main.py."""

from unittest.mock import Mock, patch
import pytest

from conftest import FakeClassifier, FakeGateway
from classifier.classifier import LLMClassifier
from fetchers.retry import RetriesExhaustedError, TransientError
from labeler.summary import RunSummary
from main import build_parser, download_data, evaluate_classifier, main, predict_labels, verify_data
from models.config_models import DownloadSettings, EvaluationSettings, PredictionSettings
from models.data_models import Decision, Issue, ItemKind, PullRequest
from storage.data_files import read_issue_rows, read_pull_rows


def make_issue(number, labels=(), has_more_labels=False):
    return Issue(repo="org/repo", number=number, title=f"Issue {number}", labels=tuple(labels),
                 has_more_labels=has_more_labels)


class FakeFetcher(FakeGateway):
    """Gateway plus single-item fetches and downloads backed by dictionaries."""

    def __init__(self, issues=None, pulls=None, labels=None):
        super().__init__(labels)
        self.issues = issues or {}
        self.pulls = pulls or {}

    def fetch_issue(self, org, repo, number, retries=()):
        record = self.issues.get(number)
        if isinstance(record, Exception):
            raise record
        return record

    def fetch_pull_request(self, org, repo, number, retries=()):
        return self.pulls.get(number)

    def download_issues(self, org, repo, label_predicate, limit=None, retries=(), excluded_authors=(), **paging):
        for issue in self.issues.values():
            yield issue, issue.first_label(label_predicate)

    def download_pull_requests(self, org, repo, label_predicate, limit=None, retries=(), excluded_authors=(), **paging):
        for pull in self.pulls.values():
            yield pull, pull.first_label(label_predicate)


class TestPredictLabels:
    """Tests for predict_labels."""

    def test_batch_reports_every_item(self, tmp_path):
        """Found items are predicted, missing ones skipped, all reported in number order."""
        fetcher = FakeFetcher(
            issues={1: make_issue(1, ["area-Y"]), 2: make_issue(2), 3: make_issue(3)},
            labels={1: ["area-Y"], 2: [], 3: []},
        )
        classifier = FakeClassifier({2: [("area-X", 0.9)], 3: [("area-X", 0.1)]})
        settings = PredictionSettings(
            org="org", repo="repo", label_prefix="area-", issues=[1, 2, 3, 4], default_label="untriaged"
        )
        summary = RunSummary(summary_path=str(tmp_path / "summary.md"))

        success = predict_labels(settings, fetcher, classifier, summary)
        summary.write()

        assert success is True
        assert sorted(fetcher.calls) == [("add", 2, "area-X"), ("add", 3, "untriaged")]
        text = (tmp_path / "summary.md").read_text()
        assert text.index("org/repo#1]") < text.index("org/repo#2]") < text.index("org/repo#4]")
        assert "[Issue org/repo#4] Not found. No action taken." in text

    def test_fetch_failure_fails_batch(self):
        fetcher = FakeFetcher(issues={
            1: RetriesExhaustedError("Fetching", 3, TransientError("502")),
            2: make_issue(2),
        })
        settings = PredictionSettings(org="org", repo="repo", label_prefix="area-", issues=[1, 2])

        success = predict_labels(settings, fetcher, FakeClassifier(), RunSummary())

        assert success is False

    def test_classifier_exception_fails_only_that_item(self):
        classifier = Mock()
        classifier.predict.side_effect = ValueError("Unusable LLM response")
        fetcher = FakeFetcher(issues={1: make_issue(1, ["area-A"]), 2: make_issue(2)})
        settings = PredictionSettings(org="org", repo="repo", label_prefix="area-", issues=[1, 2])
        summary = RunSummary()

        success = predict_labels(settings, fetcher, classifier, summary)

        assert success is False
        assert any("Exception occurred: Unusable LLM response" in f for f in summary.fragments)

    def test_failures_have_their_own_decisions(self):
        """Fetch failures, missing items and trapped exceptions are told apart from no prediction."""
        classifier = Mock()
        classifier.predict.side_effect = ValueError("Unusable LLM response")
        fetcher = FakeFetcher(issues={
            1: RetriesExhaustedError("Fetching", 3, TransientError("502")),
            2: make_issue(2),
        })
        settings = PredictionSettings(org="org", repo="repo", label_prefix="area-", issues=[1, 2, 3])
        summary = RunSummary()
        summary.add_result = Mock()

        predict_labels(settings, fetcher, classifier, summary)

        decisions = {c.args[0].number: c.args[0].decision for c in summary.add_result.call_args_list}
        assert decisions == {
            1: Decision.FETCH_FAILED,
            2: Decision.PREDICTION_ERROR,
            3: Decision.NOT_FOUND,
        }

    def test_single_item_sets_step_outputs(self):
        fetcher = FakeFetcher(pulls={5: PullRequest(repo="org/repo", number=5, title="Fix")})
        settings = PredictionSettings(org="org", repo="repo", label_prefix="area-", pulls=[5], test=True)
        summary = RunSummary()

        predict_labels(settings, fetcher, FakeClassifier({5: [("area-Build", 0.75)]}), summary)

        assert summary.outputs == {"label": "area-Build", "score": "0.75"}
        assert fetcher.calls == []


class TestDownloadData:
    """Tests for download_data."""

    def test_writes_only_labeled_items(self, tmp_path):
        fetcher = FakeFetcher(
            issues={
                1: make_issue(1, ["bug", "area-A"]),
                2: make_issue(2, ["bug"]),
                3: make_issue(3, ["area-B"], has_more_labels=True),
            },
            pulls={4: PullRequest(repo="org/repo", number=4, title="P", labels=("area-C",), file_names=("a.py",))},
        )
        settings = DownloadSettings(
            org="org",
            repos=["repo"],
            label_prefix="area-",
            issues_data_path=str(tmp_path / "issues.tsv"),
            pulls_data_path=str(tmp_path / "pulls.tsv"),
        )

        assert download_data(settings, fetcher) is True

        issues = list(read_issue_rows(settings.issues_data_path))
        pulls = list(read_pull_rows(settings.pulls_data_path))
        assert [i.labels for i in issues] == [("area-A",)]
        assert pulls[0].file_names == ("a.py",)

    def test_download_failure(self, tmp_path):
        fetcher = Mock()
        fetcher.download_issues.side_effect = RetriesExhaustedError("page", 1, TransientError("500"))
        settings = DownloadSettings(
            org="org", repos=["repo"], label_prefix="area-", issues_data_path=str(tmp_path / "issues.tsv")
        )

        assert download_data(settings, fetcher) is False


class TestEvaluateClassifier:
    """Tests for evaluate_classifier."""

    def test_from_data_file(self, tmp_path):
        path = tmp_path / "issues.tsv"
        path.write_text("Label\tTitle\tBody\narea-A\tT1\tb\narea-B\tT2\tb\n\tT3\tb\n")
        classifier = FakeClassifier({2: [("area-A", 0.9)], 3: [("area-B", 0.3)], 4: [("area-B", 0.8)]})
        settings = EvaluationSettings(label_prefix="area-", issues_data_path=str(path))
        summary = RunSummary()

        assert evaluate_classifier(settings, ItemKind.ISSUE, classifier, summary) is True

        rendered = summary.render()
        # #2 match, #3 no prediction (below threshold), #4 no existing label
        assert "| Count | 1 | 0 | 1 | 1 |" in rendered

    def test_from_repository_skips_truncated_labels(self):
        fetcher = FakeFetcher(issues={
            1: make_issue(1, ["area-A"]),
            2: make_issue(2, ["area-B"], has_more_labels=True),
        })
        classifier = FakeClassifier({1: [("area-A", 0.9)], 2: [("area-A", 0.9)]})
        settings = EvaluationSettings(org="org", repos=["repo"], label_prefix="area-")
        summary = RunSummary()

        evaluate_classifier(settings, ItemKind.ISSUE, classifier, summary, fetcher)

        assert classifier.calls == [1]
        assert "| Count | 1 | 0 | 0 | 0 |" in summary.render()

    @patch("time.sleep")
    def test_malformed_llm_score_counts_as_no_prediction(self, mock_sleep, tmp_path):
        """A reply with a null score does not abort the run."""
        path = tmp_path / "issues.tsv"
        path.write_text("Label\tTitle\tBody\narea-A\tT1\tb\n")
        llm_client = Mock()
        llm_client.send_prompt.return_value = '{"predictions": [{"label": "area-A", "score": null}]}'
        classifier = LLMClassifier(llm_client, ["area-A"], retry_delay=0)
        settings = EvaluationSettings(label_prefix="area-", issues_data_path=str(path))
        summary = RunSummary()

        assert evaluate_classifier(settings, ItemKind.ISSUE, classifier, summary) is True

        assert "| Count | 0 | 0 | 1 | 0 |" in summary.render()

    def test_missing_data_file(self, tmp_path):
        settings = EvaluationSettings(label_prefix="area-", pulls_data_path=str(tmp_path / "missing.tsv"))

        assert evaluate_classifier(settings, ItemKind.PULL_REQUEST, FakeClassifier(), RunSummary()) is False


class TestVerifyData:
    def test_valid_and_invalid(self, tmp_path):
        path = tmp_path / "issues.tsv"
        path.write_text("Label\tTitle\tBody\n" + "area-A\tT\tB\n" * 10)

        assert verify_data(str(path)) is True
        assert verify_data(str(path), min_records=11) is False


class TestCli:
    """Tests for argument parsing and the main entrypoint."""

    def test_predict_arguments(self):
        args = build_parser().parse_args([
            "predict", "--repo", "org/repo", "--label-prefix", "area-", "--issues", "1-3,5",
            "--labels", "area-A,area-B", "--threshold", "0.5", "--retries", "1,2",
        ])

        assert args.issues == [1, 2, 3, 5]
        assert args.labels == ["area-A", "area-B"]
        assert args.threshold == 0.5
        assert args.retries == (1, 2)

    @pytest.mark.parametrize("argv", [
        ["predict", "--repo", "org/repo", "--label-prefix", "area", "--labels", "a"],
        ["predict", "--repo", "org/repo", "--label-prefix", "area-", "--issues", "3-", "--labels", "a"],
        ["predict", "--repo", "org/repo", "--label-prefix", "area-", "--threshold", "0", "--labels", "a"],
        ["download", "--repo", "a/x,b/y", "--label-prefix", "area-"],
    ])
    def test_invalid_arguments_exit(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(argv)
        assert exc_info.value.code == 2

    def test_predict_without_items_exits_before_network(self, test_env):
        with patch("sys.argv", ["main.py", "predict", "--repo", "org/repo", "--label-prefix", "area-",
                                "--labels", "area-A"]), \
                patch("requests.post") as mock_post:
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 2
        mock_post.assert_not_called()

    def test_verify_data_command(self, tmp_path):
        path = tmp_path / "issues.tsv"
        path.write_text("Label\tTitle\tBody\narea-A\tT\tB\n")

        with patch("sys.argv", ["main.py", "verify-data", str(path)]):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1

    def test_no_command_shows_help(self):
        with patch("sys.argv", ["main.py"]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1
