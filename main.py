#!/usr/bin/env python3
"""
Issue Labeler - Main CLI entrypoint

Predicts and applies topic labels (e.g. "area-" labels) to GitHub issues and
pull requests, downloads labeled items as training data, and tests a
classifier against items that are already labeled.

Usage:
    python main.py download --repo dotnet/runtime --label-prefix area- --issues-data data/issues.tsv
    python main.py predict --repo dotnet/runtime --label-prefix area- --issues 1-3,5 --labels area-System.IO,area-System.Net
    python main.py test --label-prefix area- --issues-data data/issues.tsv --labels area-System.IO,area-System.Net
    python main.py verify-data data/issues.tsv
"""

import argparse
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Iterator, Optional

import requests
from openai import OpenAIError
from pydantic import ValidationError

from classifier.classifier import Classifier, LLMClassifier
from fetchers.github import GitHubFetcher
from fetchers.retry import GitHubAPIError
from labeler.evaluation import EvaluationStats
from labeler.orchestrator import run_tasks
from labeler.summary import RunSummary, format_result
from labeler.workflow import predict_item, select_best_prediction
from models.config_models import (
    DEFAULT_RETRIES,
    DEFAULT_THRESHOLD,
    Config,
    DownloadSettings,
    EvaluationSettings,
    PredictionSettings,
)
from models.data_models import Decision, Issue, ItemKind, PredictionResult
from storage.data_files import (
    ISSUE_HEADER,
    MIN_TRAINING_RECORDS,
    PULL_HEADER,
    DataFileError,
    DataFileWriter,
    ensure_training_data,
    issue_row,
    pull_row,
    read_issue_rows,
    read_pull_rows,
)
from utils import arg_parsing
from utils.config_loader import load_config
from utils.logger import setup_logger

logger = logging.getLogger("issue_labeler")


# ----------------------------------------------------------------------
# download
# ----------------------------------------------------------------------

def download_data(settings: DownloadSettings, fetcher: GitHubFetcher) -> bool:
    """
    Download labeled issues and pull requests into TSV training data files.

    Only items with an applicable label are written; items whose labels were
    truncated are left out since their label cannot be trusted. Issue and
    pull request downloads run in parallel.

    Args:
        settings: Validated download settings
        fetcher: GitHub client

    Returns:
        bool: True if every requested download completed
    """
    jobs = {}
    if settings.issues_data_path:
        jobs["issues"] = partial(_download_kind, settings, fetcher, ItemKind.ISSUE)
    if settings.pulls_data_path:
        jobs["pull requests"] = partial(_download_kind, settings, fetcher, ItemKind.PULL_REQUEST)

    logger.info("=" * 80)
    logger.info(f"DOWNLOADING: {', '.join(jobs)} from {settings.org}/{{{','.join(settings.repos)}}}")
    logger.info("=" * 80)

    success = True
    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="download") as executor:
        futures = {name: executor.submit(job) for name, job in jobs.items()}

        for name, future in futures.items():
            try:
                rows = future.result()
                logger.info(f"✓ Downloaded {rows} labeled {name}")
            except (GitHubAPIError, DataFileError, requests.RequestException) as e:
                logger.error(f"✗ Failed to download {name}: {e}")
                success = False

    return success


def _download_kind(settings: DownloadSettings, fetcher: GitHubFetcher, kind: ItemKind) -> int:
    """Write one data file from every configured repository; returns rows written."""
    if kind == ItemKind.ISSUE:
        path, header, to_row = settings.issues_data_path, ISSUE_HEADER, issue_row
        download, limit = fetcher.download_issues, settings.issues_limit
    else:
        path, header, to_row = settings.pulls_data_path, PULL_HEADER, pull_row
        download, limit = fetcher.download_pull_requests, settings.pulls_limit

    paging = {}
    if settings.page_size:
        paging["page_size"] = settings.page_size
    if settings.page_limit:
        paging["page_limit"] = settings.page_limit

    with DataFileWriter(path, header) as writer:
        for repo in settings.repos:
            items = download(
                settings.org,
                repo,
                settings.label_predicate,
                limit=limit,
                retries=settings.retries,
                excluded_authors=settings.excluded_authors,
                **paging,
            )
            for record, label in items:
                if label is None or record.has_more_labels:
                    continue
                writer.write(to_row(record, label))

        return writer.rows_written


# ----------------------------------------------------------------------
# predict
# ----------------------------------------------------------------------

def predict_labels(
    settings: PredictionSettings,
    fetcher: GitHubFetcher,
    classifier: Classifier,
    summary: RunSummary,
) -> bool:
    """
    Predict and apply labels for the selected issues and pull requests.

    Items are fetched one at a time; each found item then becomes a task for
    the orchestrator. Items that do not exist are reported and skipped
    without failing the run.

    Returns:
        bool: True only if every item succeeded
    """
    repo_full_name = f"{settings.org}/{settings.repo}"
    tasks: dict[int, Callable[[], PredictionResult]] = {}
    kinds: dict[int, ItemKind] = {}
    results: list[PredictionResult] = []

    logger.info("=" * 80)
    logger.info(f"PREDICTING LABELS: {repo_full_name}" + (" (test mode)" if settings.test else ""))
    logger.info("=" * 80)

    selections = (
        (ItemKind.ISSUE, settings.issues, fetcher.fetch_issue),
        (ItemKind.PULL_REQUEST, settings.pulls, fetcher.fetch_pull_request),
    )

    for kind, numbers, fetch in selections:
        for number in numbers:
            try:
                record = fetch(settings.org, settings.repo, number, settings.retries)
            except (GitHubAPIError, requests.RequestException) as e:
                logger.error(f"✗ {kind.value} {repo_full_name}#{number}: failed to fetch - {e}")
                results.append(PredictionResult(
                    number=number,
                    kind=kind,
                    decision=Decision.FETCH_FAILED,
                    status="Error occurred fetching the item.",
                    success=False,
                    error=str(e),
                    output=[str(e)],
                ))
                continue

            if record is None:
                logger.info(f"{kind.value} {repo_full_name}#{number} not found; skipping")
                results.append(PredictionResult(
                    number=number,
                    kind=kind,
                    decision=Decision.NOT_FOUND,
                    status="Not found. No action taken.",
                ))
                continue

            kinds[number] = kind
            tasks[number] = partial(predict_item, record, kind, classifier, settings, fetcher)

    def on_error(number: int, error: Exception) -> PredictionResult:
        return PredictionResult(
            number=number,
            kind=kinds[number],
            decision=Decision.PREDICTION_ERROR,
            status="Error occurred during prediction.",
            success=False,
            error=str(error),
            output=[f"Exception occurred: {error}"],
        )

    completed, _ = run_tasks(tasks, on_error)
    results = sorted(results + completed, key=lambda r: r.number)

    for result in results:
        text = format_result(result, repo_full_name)
        if result.success:
            logger.info(text)
        else:
            logger.error(text)
        summary.add_result(result, repo_full_name)

    if len(results) == 1:
        summary.set_output("label", results[0].label)
        summary.set_output("score", results[0].score)

    success = all(result.success for result in results)
    logger.info("-" * 80)
    logger.info(
        f"Processed {len(results)} items: "
        f"{sum(1 for r in results if r.success)} succeeded, "
        f"{sum(1 for r in results if not r.success)} failed"
    )
    return success


# ----------------------------------------------------------------------
# test
# ----------------------------------------------------------------------

def evaluate_classifier(
    settings: EvaluationSettings,
    kind: ItemKind,
    classifier: Classifier,
    summary: RunSummary,
    fetcher: Optional[GitHubFetcher] = None,
) -> bool:
    """
    Compare classifier predictions against labels items already have.

    Items come from the data file for this kind when one is configured,
    otherwise from the configured repositories on GitHub. Only labels
    matching the label prefix count on either side.

    Returns:
        bool: True if the items could be read (the results themselves never
        fail the run)
    """
    item_type = "Issues" if kind == ItemKind.ISSUE else "Pull Requests"
    predicate = settings.label_predicate
    stats = EvaluationStats()

    logger.info("=" * 80)
    logger.info(f"TESTING CLASSIFIER: {item_type}")
    logger.info("=" * 80)

    try:
        for record, existing_label in _evaluation_items(settings, kind, fetcher):
            try:
                predictions = classifier.predict(record)
            except (ValueError, OpenAIError) as e:
                logger.error(f"#{record.number}: classifier failed - {e}")
                predictions = None

            _, best = select_best_prediction(predictions or [], predicate, settings.threshold)
            bucket = stats.observe(
                best.label if best else None,
                existing_label,
                best.score if best else None,
            )

            logger.info(
                f"{record.repo}#{record.number} - Predicted: {best.label if best else 'N/A'} - "
                f"Existing: {existing_label or 'N/A'} - {bucket.replace('_', ' ').title()}"
            )
            for line in stats.progress_lines():
                logger.info(f"  {line}")

    except (GitHubAPIError, DataFileError, requests.RequestException) as e:
        logger.error(f"✗ Failed to read {item_type.lower()}: {e}")
        summary.add_alert(f"Testing {item_type.lower()} failed: {e}", "CAUTION")
        return False

    summary.add_evaluation(stats.summary(), item_type)
    return True


def _evaluation_items(
    settings: EvaluationSettings,
    kind: ItemKind,
    fetcher: Optional[GitHubFetcher],
) -> Iterator[tuple[Issue, Optional[str]]]:
    """Yield (record, existing applicable label) pairs for one kind of item."""
    predicate = settings.label_predicate

    if kind == ItemKind.ISSUE:
        path, limit, read = settings.issues_data_path, settings.issues_limit, read_issue_rows
    else:
        path, limit, read = settings.pulls_data_path, settings.pulls_limit, read_pull_rows

    if path:
        for record in read(path, limit):
            yield record, record.first_label(predicate)
        return

    download = fetcher.download_issues if kind == ItemKind.ISSUE else fetcher.download_pull_requests
    for repo in settings.repos:
        items = download(
            settings.org,
            repo,
            predicate,
            limit=limit,
            retries=settings.retries,
            excluded_authors=settings.excluded_authors,
        )
        for record, label in items:
            if record.has_more_labels:
                logger.debug(f"{record.repo}#{record.number}: too many labels; skipping")
                continue
            yield record, label


# ----------------------------------------------------------------------
# verify-data
# ----------------------------------------------------------------------

def verify_data(path: str, min_records: int = MIN_TRAINING_RECORDS) -> bool:
    """Check that a training data file is well-formed and large enough."""
    try:
        count = ensure_training_data(path, min_records)
    except DataFileError as e:
        logger.error(f"✗ {e}")
        return False

    logger.info(f"✓ {path} is valid training data ({count} records)")
    return True


# ----------------------------------------------------------------------
# CLI
# ----------------------------------------------------------------------

def _arg_type(parse: Callable):
    """Wrap a ValueError-raising parser as an argparse type."""
    def convert(value: str):
        try:
            return parse(value)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e)) from None
    convert.__name__ = parse.__name__
    return convert


def _add_label_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--label-prefix",
        required=True,
        type=_arg_type(arg_parsing.parse_label_prefix),
        help="Prefix of applicable labels, e.g. 'area-' (must end in a non-alphanumeric character)"
    )
    parser.add_argument(
        "--excluded-authors",
        type=arg_parsing.parse_string_list,
        default=[],
        help="Comma-separated authors whose items are skipped"
    )
    parser.add_argument(
        "--retries",
        type=_arg_type(arg_parsing.parse_retries),
        default=DEFAULT_RETRIES,
        help="Comma-separated retry delays in seconds (default: 30,30,300,300,3000,3000)"
    )


def _add_classifier_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--labels",
        required=True,
        type=arg_parsing.parse_string_list,
        help="Comma-separated candidate labels the classifier may predict"
    )
    parser.add_argument(
        "--threshold",
        type=_arg_type(arg_parsing.parse_threshold),
        default=DEFAULT_THRESHOLD,
        help=f"Minimum confidence score for a prediction, in (0, 1] (default: {DEFAULT_THRESHOLD})"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Issue Labeler - Predict and apply topic labels to GitHub issues and pull requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Download labeled issues and pull requests from two repositories
  python main.py download --repo dotnet/runtime,dotnet/extensions --label-prefix area- \\
      --issues-data data/issues.tsv --pulls-data data/pulls.tsv

  # Predict labels without applying them
  python main.py predict --repo dotnet/runtime --label-prefix area- --issues 100-110 \\
      --labels area-System.IO,area-System.Net --test

  # Test the classifier against downloaded issues
  python main.py test --label-prefix area- --issues-data data/issues.tsv --issues-limit 200 \\
      --labels area-System.IO,area-System.Net
        """
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Download command
    download_parser = subparsers.add_parser(
        "download",
        help="Download labeled issues and pull requests as training data"
    )
    download_parser.add_argument(
        "--repo",
        required=True,
        type=_arg_type(arg_parsing.parse_repo_list),
        help="Comma-separated repositories in format 'org/repo', all from the same org"
    )
    _add_label_arguments(download_parser)
    download_parser.add_argument("--issues-data", help="Output TSV path for issues")
    download_parser.add_argument("--pulls-data", help="Output TSV path for pull requests")
    download_parser.add_argument("--issues-limit", type=int, help="Maximum issues per repository")
    download_parser.add_argument("--pulls-limit", type=int, help="Maximum pull requests per repository")
    download_parser.add_argument("--page-size", type=int, help="Items per GraphQL page (max 100)")
    download_parser.add_argument("--page-limit", type=int, help="Maximum pages per repository")

    # Predict command
    predict_parser = subparsers.add_parser(
        "predict",
        help="Predict and apply labels to issues and pull requests"
    )
    predict_parser.add_argument(
        "--repo",
        default=os.getenv("GITHUB_REPOSITORY"),
        help="Repository in format 'org/repo' (default: GITHUB_REPOSITORY)"
    )
    _add_label_arguments(predict_parser)
    _add_classifier_arguments(predict_parser)
    predict_parser.add_argument(
        "--issues",
        type=_arg_type(arg_parsing.parse_number_ranges),
        default=[],
        help="Issue numbers, e.g. 1-3,5,7-9"
    )
    predict_parser.add_argument(
        "--pulls",
        type=_arg_type(arg_parsing.parse_number_ranges),
        default=[],
        help="Pull request numbers, e.g. 1-3,5,7-9"
    )
    predict_parser.add_argument(
        "--default-label",
        help="Label to apply when no prediction meets the threshold"
    )
    predict_parser.add_argument(
        "--test",
        action="store_true",
        help="Run the full workflow without changing any labels"
    )

    # Test command
    test_parser = subparsers.add_parser(
        "test",
        help="Test the classifier against items that already have labels"
    )
    test_parser.add_argument(
        "--repo",
        type=_arg_type(arg_parsing.parse_repo_list),
        help="Comma-separated repositories to test against (when no data file is given)"
    )
    _add_label_arguments(test_parser)
    _add_classifier_arguments(test_parser)
    test_parser.add_argument("--issues-data", help="Test against issues in this TSV file")
    test_parser.add_argument("--pulls-data", help="Test against pull requests in this TSV file")
    test_parser.add_argument("--issues-limit", type=int, help="Maximum issues to test")
    test_parser.add_argument("--pulls-limit", type=int, help="Maximum pull requests to test")

    # Verify-data command
    verify_parser = subparsers.add_parser(
        "verify-data",
        help="Check that a training data file is valid and large enough"
    )
    verify_parser.add_argument("path", help="Path to a TSV data file")
    verify_parser.add_argument(
        "--min-records",
        type=int,
        default=MIN_TRAINING_RECORDS,
        help=f"Minimum number of records (default: {MIN_TRAINING_RECORDS})"
    )

    return parser


def _build_classifier(config: Config, labels: list[str]) -> LLMClassifier:
    """Create the LLM classifier, exiting if its API key is missing."""
    if not config.credentials.llm_api_key:
        key_name = "ANTHROPIC_API_KEY" if config.credentials.llm_provider == "anthropic" else "OPENAI_API_KEY"
        logger.error(f"{key_name} not set in .env file or environment")
        sys.exit(1)

    try:
        return LLMClassifier.from_credentials(config.credentials, labels)
    except ValueError as e:
        logger.error(f"Failed to initialize classifier: {e}")
        sys.exit(1)


def main():
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args()

    # Show help if no command provided
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "verify-data":
        setup_logger("DEBUG" if args.verbose else os.getenv("LOG_LEVEL", "INFO"))
        sys.exit(0 if verify_data(args.path, args.min_records) else 1)

    config = load_config()
    setup_logger("DEBUG" if args.verbose else config.log_level)
    summary = RunSummary(config.step_summary_path, config.step_output_path)
    fetcher = GitHubFetcher(config.credentials.github_token)

    common = {
        "label_prefix": args.label_prefix,
        "excluded_authors": args.excluded_authors,
        "retries": args.retries,
    }

    try:
        # Handle download command
        if args.command == "download":
            if not args.issues_data and not args.pulls_data:
                parser.error("download requires --issues-data and/or --pulls-data")

            org, repos = args.repo
            settings = DownloadSettings(
                **common,
                org=org,
                repos=repos,
                issues_data_path=args.issues_data,
                pulls_data_path=args.pulls_data,
                issues_limit=args.issues_limit,
                pulls_limit=args.pulls_limit,
                page_size=args.page_size,
                page_limit=args.page_limit,
            )
            success = download_data(settings, fetcher)

        # Handle predict command
        elif args.command == "predict":
            try:
                org, repo = arg_parsing.parse_repo(args.repo)
            except ValueError as e:
                parser.error(f"--repo: {e}")
            if not args.issues and not args.pulls:
                parser.error("predict requires --issues and/or --pulls")

            settings = PredictionSettings(
                **common,
                org=org,
                repo=repo,
                issues=args.issues,
                pulls=args.pulls,
                threshold=args.threshold,
                default_label=args.default_label,
                test=args.test,
            )
            classifier = _build_classifier(config, args.labels)
            success = predict_labels(settings, fetcher, classifier, summary)

        # Handle test command
        else:
            if not args.repo and not args.issues_data and not args.pulls_data:
                parser.error("test requires --repo or a data file (--issues-data / --pulls-data)")

            org, repos = args.repo if args.repo else (None, [])
            settings = EvaluationSettings(
                **common,
                org=org,
                repos=repos,
                issues_data_path=args.issues_data,
                pulls_data_path=args.pulls_data,
                issues_limit=args.issues_limit,
                pulls_limit=args.pulls_limit,
                threshold=args.threshold,
            )
            classifier = _build_classifier(config, args.labels)

            kinds = []
            if args.issues_data or not args.pulls_data:
                kinds.append(ItemKind.ISSUE)
            if args.pulls_data or not args.issues_data:
                kinds.append(ItemKind.PULL_REQUEST)

            success = True
            for kind in kinds:
                success = evaluate_classifier(settings, kind, classifier, summary, fetcher) and success

    except ValidationError as e:
        for error in e.errors():
            field_path = ".".join(str(x) for x in error["loc"])
            logger.error(f"Invalid setting {field_path}: {error['msg']}")
        sys.exit(1)

    summary.write()
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
