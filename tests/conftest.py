"""Shared pytest fixtures and configuration."""

from typing import Optional
from unittest.mock import Mock

import pytest
import requests

from models.data_models import Issue, ItemKind, LabelScore, MutationOutcome


@pytest.fixture
def test_env(monkeypatch):
    """
    Set valid test environment variables.

    This fixture sets up valid test environment variables so config
    can be loaded during tests without requiring real credentials.
    """
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test_token_1234567890")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("GITHUB_STEP_SUMMARY", raising=False)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)

    return {
        "github_token": "ghp_test_token_1234567890",
        "openai_api_key": "sk-test-key",
        "log_level": "DEBUG",
    }


@pytest.fixture
def invalid_env(monkeypatch):
    """
    Set up invalid/missing environment variables for testing validation.
    """
    monkeypatch.setenv("GITHUB_TOKEN", "")
    monkeypatch.setenv("LOG_LEVEL", "INFO")


class FakeClassifier:
    """Returns canned predictions per item number and counts calls."""

    def __init__(self, predictions: Optional[dict[int, list[tuple[str, float]]]] = None):
        self.predictions = predictions or {}
        self.calls: list[int] = []

    def predict(self, record: Issue) -> Optional[list[LabelScore]]:
        self.calls.append(record.number)
        entries = self.predictions.get(record.number)
        if not entries:
            return None
        return [LabelScore(label=label, score=score) for label, score in entries]


class FakeGateway:
    """In-memory label store standing in for GitHubFetcher's mutations.

    `fail_add` / `fail_remove` hold labels whose mutation should fail.
    """

    def __init__(self, labels: Optional[dict[int, list[str]]] = None):
        self.labels = {number: list(names) for number, names in (labels or {}).items()}
        self.calls: list[tuple[str, int, str]] = []
        self.fail_add: set[str] = set()
        self.fail_remove: set[str] = set()

    def add_label(self, org, repo, kind: ItemKind, number, label, retries=()) -> MutationOutcome:
        self.calls.append(("add", number, label))
        if label in self.fail_add:
            return MutationOutcome.failed(f"Adding label '{label}' failed: 500")
        self.labels.setdefault(number, []).append(label)
        return MutationOutcome.ok()

    def remove_label(self, org, repo, kind: ItemKind, number, label, retries=()) -> MutationOutcome:
        self.calls.append(("remove", number, label))
        if label in self.fail_remove:
            return MutationOutcome.failed(f"Removing label '{label}' failed: 500")
        self.labels.get(number, []).remove(label)
        return MutationOutcome.ok()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


def graphql_node(number, labels=(), author="octocat", more_labels=False, files=None, title=None, body=""):
    """Build one GraphQL issue or pull request node."""
    node = {
        "number": number,
        "title": title or f"Item {number}",
        "body": body,
        "author": {"login": author} if author else None,
        "labels": {
            "pageInfo": {"hasNextPage": more_labels},
            "nodes": [{"name": name} for name in labels],
        },
    }
    if files is not None:
        node["files"] = {"nodes": [{"path": path} for path in files]}
    return node


def graphql_response(data=None, errors=None, status_code=200, headers=None):
    """Build a mock requests.Response carrying a GraphQL payload."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {"X-RateLimit-Remaining": "4999", "X-RateLimit-Limit": "5000"}
    response.text = ""
    payload = {}
    if data is not None:
        payload["data"] = data
    if errors is not None:
        payload["errors"] = errors
    response.json.return_value = payload
    response.raise_for_status = Mock()
    return response


def graphql_page(nodes, has_next_page, end_cursor=None):
    """Build a mock response for one page of a paginated connection."""
    return graphql_response({
        "repository": {
            "result": {
                "pageInfo": {"hasNextPage": has_next_page, "endCursor": end_cursor},
                "nodes": nodes,
            }
        }
    })


def graphql_item(node):
    """Build a mock response for a single issue or pull request lookup."""
    return graphql_response({"repository": {"result": node}})


def http_response(status_code, headers=None):
    """Build a mock REST response; raise_for_status behaves like requests'."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = ""
    if status_code >= 400:
        response.raise_for_status = Mock(side_effect=requests.HTTPError(f"{status_code} Error"))
    else:
        response.raise_for_status = Mock()
    return response
