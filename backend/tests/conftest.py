"""Shared fixtures for Jira Flow Analyzer tests."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def mock_jira_credentials():
    """Mock Jira credentials for testing."""
    return {
        "server": "https://test.atlassian.net",
        "email": "test@example.com",
        "token": "test-token-123"
    }


@pytest.fixture
def jira_headers():
    """Credential headers accepted by every endpoint."""
    return {
        "X-Jira-Server": "https://test.atlassian.net",
        "X-Jira-Email": "test@example.com",
        "X-Jira-Token": "token123"
    }


@pytest.fixture
def sample_issue_with_changelog():
    """Sample UNRESOLVED issue with status change history, newest group first."""
    return {
        "key": "PROJ-200",
        "fields": {
            "summary": "Feature with status changes",
            "status": {"name": "Code Review", "statusCategory": {"key": "indeterminate"}},
            "created": "2024-01-02T09:00:00.000+0000",
            "updated": "2024-01-05T14:00:00.000+0000",
            "resolutiondate": None
        },
        "changelog": {
            "total": 3,
            "histories": [
                {
                    "created": "2024-01-05T14:00:00.000+0000",
                    "items": [
                        {"field": "status", "fromString": "In Progress", "toString": "Code Review"}
                    ]
                },
                {
                    "created": "2024-01-03T09:00:00.000+0000",
                    "items": [
                        {"field": "assignee", "fromString": None, "toString": "Test User"},
                        {"field": "status", "fromString": "To Do", "toString": "In Progress"}
                    ]
                },
                {
                    "created": "2024-01-02T21:00:00.000+0000",
                    "items": [
                        {"field": "status", "fromString": "Open", "toString": "To Do"}
                    ]
                }
            ]
        }
    }


@pytest.fixture
def sample_issue_no_changelog():
    """Sample UNRESOLVED issue without changelog (stayed in one status)."""
    return {
        "key": "PROJ-201",
        "fields": {
            "summary": "Quick fix",
            "status": {"name": "Open", "statusCategory": {"key": "new"}},
            "created": "2024-01-05T09:00:00.000+0000",
            "updated": "2024-01-05T09:00:00.000+0000",
            "resolutiondate": None
        },
        "changelog": {"total": 0, "histories": []}
    }


@pytest.fixture
def sample_issue_multiple_transitions():
    """Sample RESOLVED issue that went back and forth between statuses."""
    return {
        "key": "PROJ-202",
        "fields": {
            "summary": "Issue with rework",
            "status": {"name": "Done", "statusCategory": {"key": "done"}},
            "created": "2024-01-02T08:00:00.000+0000",
            "updated": "2024-01-08T08:00:00.000+0000",
            "resolutiondate": "2024-01-08T08:00:00.000+0000"
        },
        "changelog": {
            "total": 4,
            "histories": [
                {
                    "created": "2024-01-03T08:00:00.000+0000",
                    "items": [{"field": "status", "fromString": "To Do", "toString": "In Progress"}]
                },
                {
                    "created": "2024-01-05T08:00:00.000+0000",
                    "items": [{"field": "status", "fromString": "In Progress", "toString": "Code Review"}]
                },
                {
                    "created": "2024-01-06T08:00:00.000+0000",
                    "items": [{"field": "status", "fromString": "Code Review", "toString": "In Progress"}]
                },
                {
                    "created": "2024-01-07T08:00:00.000+0000",
                    "items": [{"field": "status", "fromString": "In Progress", "toString": "Done"}]
                }
            ]
        }
    }


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Create Flask test app with default settings."""
    import app as app_module
    monkeypatch.setattr(app_module, "CONFIG_PATH", str(tmp_path / "missing.json"))

    app = app_module.create_app({"TESTING": True})
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
