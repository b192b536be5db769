"""GitHub API client for downloading, fetching and labeling issues and pull requests.

Reads go through the GraphQL API, which gives cursor-based pagination and lets
a single request return an item's labels and changed files. Label mutations
go through the REST API. Every request runs under the retry protocol in
fetchers.retry.
"""

import logging
import posixpath
import time
from functools import partial
from typing import Any, Callable, Iterator, Optional, Sequence
from urllib.parse import quote

import requests

from fetchers.retry import (
    GitHubAPIError,
    NotFoundError,
    RateLimitError,
    TransientError,
    with_retries,
)
from models.config_models import DEFAULT_RETRIES
from models.data_models import Issue, ItemKind, MutationOutcome, PullRequest

logger = logging.getLogger(__name__)

# Labels beyond this count set has_more_labels on the record
LABELS_PER_ITEM = 25
FILES_PER_PULL = 100

ISSUE_FIELDS = """
    number
    title
    body: bodyText
    author { login }
    labels(first: %d) {
        pageInfo { hasNextPage }
        nodes { name }
    }
""" % LABELS_PER_ITEM

PULL_FIELDS = ISSUE_FIELDS + """
    files(first: %d) {
        nodes { path }
    }
""" % FILES_PER_PULL

PAGE_QUERY = """
query ($owner: String!, $repo: String!, $pageSize: Int!, $after: String) {
    repository(owner: $owner, name: $repo) {
        result: %s(after: $after, first: $pageSize, orderBy: {field: CREATED_AT, direction: DESC}) {
            pageInfo { hasNextPage endCursor }
            nodes { %s }
        }
    }
}
"""

ITEM_QUERY = """
query ($owner: String!, $repo: String!, $number: Int!) {
    repository(owner: $owner, name: $repo) {
        result: %s(number: $number) { %s }
    }
}
"""

ISSUES_PAGE_QUERY = PAGE_QUERY % ("issues", ISSUE_FIELDS)
PULLS_PAGE_QUERY = PAGE_QUERY % ("pullRequests", PULL_FIELDS)
ISSUE_QUERY = ITEM_QUERY % ("issue", ISSUE_FIELDS)
PULL_QUERY = ITEM_QUERY % ("pullRequest", PULL_FIELDS)


class GitHubFetcher:
    """Download, fetch and label GitHub issues and pull requests."""

    def __init__(self, token: str, timeout: float = 30.0):
        """Initialize GitHub API client.

        Args:
            token: GitHub token for authentication
            timeout: Per-request timeout in seconds; a timeout counts as a
                     transient failure
        """
        self.token = token
        self.timeout = timeout
        self.base_url = "https://api.github.com"
        self.graphql_url = f"{self.base_url}/graphql"
        self.headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28"
        }

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _check_response(self, response: requests.Response) -> None:
        """Classify a response into the retry protocol's failure kinds.

        Raises:
            RateLimitError: 429, or 403 with an exhausted rate limit
            TransientError: 5xx responses
            NotFoundError: 404 responses
            requests.HTTPError: Other non-success responses (401, 403, 422, ...)
        """
        remaining = response.headers.get("X-RateLimit-Remaining")
        limit = response.headers.get("X-RateLimit-Limit")
        if remaining and limit:
            logger.debug(f"Rate limit: {remaining}/{limit} remaining")

        status = response.status_code

        if status == 429 or (
            status == 403 and (remaining == "0" or "Retry-After" in response.headers)
        ):
            raise RateLimitError(
                f"Rate limited ({status})",
                resume_at=self._resume_at(response),
                status_code=status,
            )

        if status >= 500:
            raise TransientError(f"Server error {status}", status_code=status)

        if status == 404:
            raise NotFoundError("Not found (404)", status_code=status)

        if status in (401, 403):
            logger.error(f"Authentication error: {status} - {response.text[:200]}")

        response.raise_for_status()

    def _resume_at(self, response: requests.Response) -> Optional[float]:
        """Server-suggested resume time (epoch seconds), if any."""
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return time.time() + int(retry_after)

        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            return float(reset)

        return None

    def _post_graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Send one GraphQL request and return its `data` payload."""
        try:
            response = requests.post(
                self.graphql_url,
                headers=self.headers,
                json={"query": query, "variables": variables},
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"Transport error: {e}") from e

        self._check_response(response)
        payload = response.json()

        errors = payload.get("errors") or []
        if errors:
            error_types = {error.get("type") for error in errors}
            messages = "; ".join(error.get("message", "") for error in errors)

            if "RATE_LIMITED" in error_types:
                raise RateLimitError(
                    f"Rate limited: {messages}", resume_at=self._resume_at(response)
                )
            if "NOT_FOUND" in error_types:
                raise NotFoundError(messages)
            raise GitHubAPIError(f"GraphQL error: {messages}")

        return payload.get("data") or {}

    # ------------------------------------------------------------------
    # Paginated downloads
    # ------------------------------------------------------------------

    def download_issues(
        self,
        org: str,
        repo: str,
        label_predicate: Callable[[str], bool],
        limit: Optional[int] = None,
        page_size: int = 100,
        page_limit: int = 1000,
        retries: Sequence[int] = DEFAULT_RETRIES,
        excluded_authors: Sequence[str] = (),
    ) -> Iterator[tuple[Issue, Optional[str]]]:
        """Lazily download issues, newest first.

        Yields:
            (issue, matched_label) pairs, where matched_label is the first
            label satisfying label_predicate, or None
        """
        return self._download(
            ItemKind.ISSUE, ISSUES_PAGE_QUERY, self._parse_issue, org, repo,
            label_predicate, limit, page_size, page_limit, retries, excluded_authors,
        )

    def download_pull_requests(
        self,
        org: str,
        repo: str,
        label_predicate: Callable[[str], bool],
        limit: Optional[int] = None,
        page_size: int = 25,
        page_limit: int = 4000,
        retries: Sequence[int] = DEFAULT_RETRIES,
        excluded_authors: Sequence[str] = (),
    ) -> Iterator[tuple[PullRequest, Optional[str]]]:
        """Lazily download pull requests, newest first.

        Page size defaults lower than for issues because each pull request
        also carries up to 100 changed file paths.
        """
        return self._download(
            ItemKind.PULL_REQUEST, PULLS_PAGE_QUERY, self._parse_pull_request, org, repo,
            label_predicate, limit, page_size, page_limit, retries, excluded_authors,
        )

    def _download(
        self,
        kind: ItemKind,
        query: str,
        parse: Callable[[str, dict[str, Any]], Issue],
        org: str,
        repo: str,
        label_predicate: Callable[[str], bool],
        limit: Optional[int],
        page_size: int,
        page_limit: int,
        retries: Sequence[int],
        excluded_authors: Sequence[str],
    ) -> Iterator[tuple[Any, Optional[str]]]:
        """Walk the cursor forward one page at a time.

        Stops when page_limit pages were fetched, GitHub reports no next page,
        or limit items were yielded. Items by excluded authors are dropped and
        do not count toward limit.
        """
        excluded = {author.lower() for author in excluded_authors}
        repo_full_name = f"{org}/{repo}"
        after = None
        has_next_page = True
        pages = 0
        yielded = 0

        logger.info(
            f"Downloading {kind.value.lower()}s from {repo_full_name} "
            f"(page size {page_size}, page limit {page_limit}, item limit {limit or 'none'})"
        )

        while has_next_page and pages < page_limit:
            variables = {"owner": org, "repo": repo, "pageSize": page_size, "after": after}
            data = with_retries(
                partial(self._post_graphql, query, variables),
                retries,
                f"{kind.value} page {pages + 1} of {repo_full_name}",
            )
            pages += 1

            connection = (data.get("repository") or {}).get("result")
            if connection is None:
                raise NotFoundError(f"Repository {repo_full_name} not found")

            nodes = [node for node in connection.get("nodes") or [] if node]
            logger.debug(f"Page {pages}: {len(nodes)} {kind.value.lower()}s (yielded so far: {yielded})")

            for node in nodes:
                record = parse(repo_full_name, node)

                if record.author and record.author.lower() in excluded:
                    logger.debug(f"{kind.value} #{record.number}: author '{record.author}' excluded")
                    continue

                if limit is not None and yielded >= limit:
                    logger.info(f"Reached limit of {limit} {kind.value.lower()}s for {repo_full_name}")
                    return

                yield record, record.first_label(label_predicate)
                yielded += 1

            page_info = connection.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            after = page_info.get("endCursor")
            if has_next_page and not after:
                raise GitHubAPIError(
                    f"{kind.value} page {pages} of {repo_full_name} reported a next page without a cursor"
                )

        logger.info(f"Downloaded {yielded} {kind.value.lower()}s from {repo_full_name} in {pages} pages")

    # ------------------------------------------------------------------
    # Single items
    # ------------------------------------------------------------------

    def fetch_issue(
        self,
        org: str,
        repo: str,
        number: int,
        retries: Sequence[int] = DEFAULT_RETRIES,
    ) -> Optional[Issue]:
        """Fetch one issue.

        Returns:
            The issue, or None if it does not exist (deleted, transferred or
            actually a pull request number)

        Raises:
            RetriesExhaustedError: If transient failures outlast the schedule
            requests.HTTPError: On authentication and other non-transient errors
        """
        return self._fetch_item(ItemKind.ISSUE, ISSUE_QUERY, self._parse_issue, org, repo, number, retries)

    def fetch_pull_request(
        self,
        org: str,
        repo: str,
        number: int,
        retries: Sequence[int] = DEFAULT_RETRIES,
    ) -> Optional[PullRequest]:
        """Fetch one pull request, or None if it does not exist."""
        return self._fetch_item(
            ItemKind.PULL_REQUEST, PULL_QUERY, self._parse_pull_request, org, repo, number, retries
        )

    def _fetch_item(self, kind, query, parse, org, repo, number, retries):
        repo_full_name = f"{org}/{repo}"
        variables = {"owner": org, "repo": repo, "number": number}

        try:
            data = with_retries(
                partial(self._post_graphql, query, variables),
                retries,
                f"Fetching {kind.value} {repo_full_name}#{number}",
            )
        except NotFoundError:
            logger.debug(f"{kind.value} {repo_full_name}#{number} not found")
            return None

        node = (data.get("repository") or {}).get("result")
        if node is None:
            logger.debug(f"{kind.value} {repo_full_name}#{number} not found")
            return None

        record = parse(repo_full_name, node)
        logger.debug(f"Fetched {kind.value} {repo_full_name}#{number}: {record.title[:50]}")
        return record

    # ------------------------------------------------------------------
    # Label mutations
    # ------------------------------------------------------------------

    def add_label(
        self,
        org: str,
        repo: str,
        kind: ItemKind,
        number: int,
        label: str,
        retries: Sequence[int] = DEFAULT_RETRIES,
    ) -> MutationOutcome:
        """Add a label to an issue or pull request.

        Pull requests share the issues endpoint for labels.
        """
        url = f"{self.base_url}/repos/{org}/{repo}/issues/{number}/labels"

        def send():
            return self._send(requests.post, url, json={"labels": [label]})

        return self._mutate(send, retries, f"Adding label '{label}' to {kind.value} {org}/{repo}#{number}")

    def remove_label(
        self,
        org: str,
        repo: str,
        kind: ItemKind,
        number: int,
        label: str,
        retries: Sequence[int] = DEFAULT_RETRIES,
    ) -> MutationOutcome:
        """Remove a label from an issue or pull request."""
        url = f"{self.base_url}/repos/{org}/{repo}/issues/{number}/labels/{quote(label, safe='')}"

        def send():
            return self._send(requests.delete, url)

        return self._mutate(send, retries, f"Removing label '{label}' from {kind.value} {org}/{repo}#{number}")

    def _send(self, method, url: str, **kwargs) -> None:
        try:
            response = method(url, headers=self.headers, timeout=self.timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"Transport error: {e}") from e
        self._check_response(response)

    def _mutate(self, send: Callable[[], None], retries: Sequence[int], description: str) -> MutationOutcome:
        """Run a mutation and convert any failure into a failed outcome."""
        try:
            with_retries(send, retries, description)
        except (GitHubAPIError, requests.RequestException) as e:
            logger.error(f"✗ {description} failed: {e}")
            return MutationOutcome.failed(f"{description} failed: {e}")

        logger.debug(f"✓ {description}")
        return MutationOutcome.ok()

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def _parse_issue(self, repo_full_name: str, node: dict[str, Any]) -> Issue:
        return Issue(**self._issue_fields(repo_full_name, node))

    def _parse_pull_request(self, repo_full_name: str, node: dict[str, Any]) -> PullRequest:
        paths = [f["path"] for f in (node.get("files") or {}).get("nodes") or [] if f and f.get("path")]
        file_names, folder_names = split_file_paths(paths)
        return PullRequest(
            **self._issue_fields(repo_full_name, node),
            file_names=file_names,
            folder_names=folder_names,
        )

    def _issue_fields(self, repo_full_name: str, node: dict[str, Any]) -> dict[str, Any]:
        labels = node.get("labels") or {}
        return {
            "repo": repo_full_name,
            "number": node["number"],
            "title": node.get("title") or "",
            "body": node.get("body") or "",
            "author": (node.get("author") or {}).get("login"),
            "labels": tuple(label["name"] for label in labels.get("nodes") or [] if label),
            "has_more_labels": bool((labels.get("pageInfo") or {}).get("hasNextPage")),
        }


def split_file_paths(paths: Sequence[str]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Split changed file paths into file names and distinct folder names.

    Folder names keep first-seen order; files at the repository root have no
    folder.

    Examples:
        ["src/a.py", "src/b.py", "README.md"] -> (("a.py", "b.py", "README.md"), ("src",))
    """
    file_names = tuple(posixpath.basename(path) for path in paths)
    folders = []
    for path in paths:
        folder = posixpath.dirname(path)
        if folder and folder not in folders:
            folders.append(folder)
    return file_names, tuple(folders)
