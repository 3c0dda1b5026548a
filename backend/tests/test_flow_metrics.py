"""Tests for FlowMetricsService."""

import time
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from services.errors import FetchCancelledError, TraversalError, UpstreamTransportError
from services.flow_metrics import FlowMetricsService, build_jql
from services.pagination import OffsetPagination, TokenPagination

NOW = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)


def fake_jira(search_page, changelogs=None, failing=(), delay=0):
    """Build a client.get replacement serving one search page and changelogs."""
    changelogs = changelogs or {}

    def get(endpoint, params=None):
        if endpoint.startswith("/rest/api/3/search"):
            return search_page
        if endpoint.endswith("/changelog"):
            key = endpoint.split("/")[-2]
            if delay:
                time.sleep(delay)
            if key in failing:
                raise UpstreamTransportError("Jira API error: 404", status_code=404)
            return {"values": changelogs.get(key, []), "isLast": True}
        raise AssertionError(f"Unexpected endpoint {endpoint}")

    return get


class TestFlowMetricsServiceInit:
    """Test service initialization."""

    def test_init_strips_trailing_slash(self):
        service = FlowMetricsService("https://test.atlassian.net/", "a@b.c", "tok")
        assert service.server == "https://test.atlassian.net"

    def test_selects_pagination_strategy(self, mock_jira_credentials):
        offset_service = FlowMetricsService(**mock_jira_credentials)
        token_service = FlowMetricsService(**mock_jira_credentials, pagination_mode="token")

        assert isinstance(offset_service.pagination, OffsetPagination)
        assert isinstance(token_service.pagination, TokenPagination)

    def test_build_jql(self):
        assert build_jql("PROJ") == 'project = "PROJ"'
        assert build_jql(None) == ""


class TestSearchIssues:
    """Test issue search under both paging contracts."""

    def test_offset_mode_uses_search(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)

        with patch.object(service.client, "get", return_value={"issues": [], "total": 0}) as mock_get:
            service.get_data_understanding("PROJ")

        endpoint = mock_get.call_args.args[0]
        params = mock_get.call_args.kwargs["params"]
        assert endpoint == "/rest/api/3/search"
        assert params["jql"] == 'project = "PROJ"'
        assert params["fields"] == "issuetype,status,priority,assignee,project"
        assert params["startAt"] == 0

    def test_token_mode_passes_cursor(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials, pagination_mode="token")
        page = {"issues": [], "nextPageToken": "tok-3"}

        with patch.object(service.client, "get", return_value=page) as mock_get:
            result = service.get_data_understanding("PROJ", cursor="tok-2")

        assert mock_get.call_args.args[0] == "/rest/api/3/search/jql"
        assert mock_get.call_args.kwargs["params"]["nextPageToken"] == "tok-2"
        assert result["next_page_token"] == "tok-3"

    def test_search_failure_propagates(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)
        error = UpstreamTransportError("Jira API error: 400", status_code=400)

        with patch.object(service.client, "get", side_effect=error):
            with pytest.raises(TraversalError) as exc_info:
                service.get_time_analysis("PROJ", now=NOW)

        assert exc_info.value.status_code == 400
        assert exc_info.value.offset == 0


class TestDataUnderstanding:
    """Test the data-quality report."""

    def test_reports_groups_and_totals(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)
        page = {
            "issues": [
                {"key": "P-1", "fields": {"issuetype": {"name": "Bug"}, "status": {"name": "To Do"}}},
                {"key": "P-2", "fields": {"issuetype": {"name": "Bug"}, "status": {"name": "Done"},
                                          "assignee": {"displayName": "Ana"},
                                          "priority": {"name": "Low"}}},
            ],
            "total": 2
        }

        with patch.object(service.client, "get", return_value=page):
            result = service.get_data_understanding("PROJ")

        assert result["total_issues_in_batch"] == 2
        assert result["total_matches_in_jira"] == 2
        assert result["groups"]["by_type"] == {"Bug": 2}
        assert result["data_quality"] == {"missing_assignee": 1, "missing_priority": 1}
        assert result["truncated"] is False
        assert result["next_page_token"] is None


class TestTimeAnalysis:
    """Test the time analysis report."""

    def test_passes_threshold(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)
        page = {"issues": [{
            "key": "P-1",
            "fields": {
                "created": "2023-12-01T09:00:00.000+0000",
                "updated": "2024-01-03T09:00:00.000+0000",
                "resolutiondate": None,
                "status": {"name": "In Progress"}
            }
        }], "total": 1}

        with patch.object(service.client, "get", return_value=page):
            stalled = service.get_time_analysis("PROJ", stalled_days=5, now=NOW)
            fresh = service.get_time_analysis("PROJ", stalled_days=10, now=NOW)

        assert stalled["issues_stalled"][0]["days_since_update"] == 7
        assert fresh["issues_stalled"] == []
        assert stalled["total_issues_in_batch"] == 1


class TestWorkflowAnalysis:
    """Test the workflow report and changelog fan-out."""

    def test_uses_embedded_changelogs(self, mock_jira_credentials, sample_issue_with_changelog,
                                      sample_issue_no_changelog):
        service = FlowMetricsService(**mock_jira_credentials)
        page = {"issues": [sample_issue_with_changelog, sample_issue_no_changelog], "total": 2}

        with patch.object(service.client, "get", side_effect=fake_jira(page)) as mock_get:
            result = service.get_workflow_analysis("PROJ", now=NOW)

        assert mock_get.call_count == 1
        assert mock_get.call_args.kwargs["params"]["expand"] == "changelog"
        assert result["issues_analyzed"] == 2
        assert result["skipped_issues"] == []
        assert result["transitions"] == {
            "In Progress -> Code Review": 1,
            "Open -> To Do": 1,
            "To Do -> In Progress": 1,
        }
        assert result["status_time"]["Open"]["occurrences"] == 2
        assert result["bottlenecks"][0]["status"] == "Code Review"

    def test_fetches_truncated_changelogs(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)
        page = {"issues": [{
            "key": "P-1",
            "fields": {"created": "2024-01-01T09:00:00.000+0000", "status": {"name": "Done"}},
            "changelog": {"total": 40, "histories": []}
        }], "total": 1}
        changelogs = {"P-1": [{
            "created": "2024-01-02T09:00:00.000+0000",
            "items": [{"field": "status", "fromString": "To Do", "toString": "Done"}]
        }]}

        with patch.object(service.client, "get", side_effect=fake_jira(page, changelogs)) as mock_get:
            result = service.get_workflow_analysis("PROJ", now=NOW)

        endpoints = [c.args[0] for c in mock_get.call_args_list]
        assert "/rest/api/3/issue/P-1/changelog" in endpoints
        assert result["transitions"] == {"To Do -> Done": 1}
        assert result["status_time"]["To Do"]["total_hours"] == 24.0
        assert "Open" not in result["status_time"]

    def test_failed_changelog_drops_only_that_issue(self, mock_jira_credentials):
        """One missing history must not abort the batch."""
        service = FlowMetricsService(**mock_jira_credentials)
        issues = [
            {"key": key, "fields": {"created": "2024-01-01T09:00:00.000+0000"}}
            for key in ("P-1", "P-2", "P-3")
        ]
        changelogs = {
            "P-1": [{"created": "2024-01-02T09:00:00.000+0000",
                     "items": [{"field": "status", "fromString": "Open", "toString": "Done"}]}],
            "P-3": [],
        }
        get = fake_jira({"issues": issues, "total": 3}, changelogs, failing={"P-2"})

        with patch.object(service.client, "get", side_effect=get):
            result = service.get_workflow_analysis("PROJ", now=NOW)

        assert result["issues_analyzed"] == 2
        assert [s["key"] for s in result["skipped_issues"]] == ["P-2"]
        assert "404" in result["skipped_issues"][0]["error"]
        assert result["transitions"] == {"Open -> Done": 1}

    def test_truncated_changelog_is_flagged(self, mock_jira_credentials, caplog):
        """A changelog cut at the safety ceiling marks the report truncated."""
        service = FlowMetricsService(**mock_jira_credentials, max_items=3)
        page = {"issues": [
            {"key": "P-1", "fields": {"created": "2024-01-01T09:00:00.000+0000"}},
            {"key": "P-2", "fields": {"created": "2024-01-01T09:00:00.000+0000"},
             "changelog": {"total": 0, "histories": []}},
        ], "total": 2}
        history = {
            "created": "2024-01-02T09:00:00.000+0000",
            "items": [{"field": "status", "fromString": "Open", "toString": "To Do"}]
        }

        def get(endpoint, params=None):
            if endpoint.endswith("/changelog"):
                # never reports isLast, keeps claiming more records
                return {"values": [history, history], "total": 50}
            return page

        with patch.object(service.client, "get", side_effect=get):
            result = service.get_workflow_analysis("PROJ", now=NOW)

        assert result["truncated"] is True
        assert result["truncated_changelogs"] == ["P-1"]
        assert result["issues_analyzed"] == 2
        assert result["skipped_issues"] == []
        assert "Hit safety limit of 3 items" in caplog.text

    def test_complete_changelogs_not_flagged(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)
        page = {"issues": [{"key": "P-1", "fields": {"created": "2024-01-01T09:00:00.000+0000"}}],
                "total": 1}

        with patch.object(service.client, "get", side_effect=fake_jira(page)):
            result = service.get_workflow_analysis("PROJ", now=NOW)

        assert result["truncated"] is False
        assert result["truncated_changelogs"] == []

    def test_batch_deadline_cancels_pending_fetches(self, mock_jira_credentials):
        """The 504 is raised at the deadline, not after in-flight requests finish."""
        service = FlowMetricsService(
            **mock_jira_credentials, changelog_workers=1, batch_timeout=0.05
        )
        issues = [{"key": f"P-{i}", "fields": {"created": "2024-01-01T09:00:00.000+0000"}}
                  for i in range(3)]
        get = fake_jira({"issues": issues, "total": 3}, delay=1.0)

        started = time.monotonic()
        with patch.object(service.client, "get", side_effect=get):
            with pytest.raises(FetchCancelledError) as exc_info:
                service.get_workflow_analysis("PROJ", now=NOW)
        elapsed = time.monotonic() - started

        assert exc_info.value.status_code == 504
        assert exc_info.value.pending >= 1
        assert elapsed < 0.5

    def test_empty_project(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)

        with patch.object(service.client, "get", return_value={"issues": [], "total": 0}):
            result = service.get_workflow_analysis("PROJ", now=NOW)

        assert result["issues_analyzed"] == 0
        assert result["bottlenecks"] == []


class TestListProjects:
    """Test project listing."""

    def test_normalizes_projects(self, mock_jira_credentials):
        service = FlowMetricsService(**mock_jira_credentials)
        page = {
            "values": [
                {"key": "ALPHA", "name": "Project Alpha", "id": "1", "projectTypeKey": "software"},
                {"key": "BETA", "name": "Project Beta", "id": "2", "projectTypeKey": "business"},
            ],
            "isLast": True
        }

        with patch.object(service.client, "get", return_value=page) as mock_get:
            result = service.list_projects()

        assert mock_get.call_args.args[0] == "/rest/api/3/project/search"
        assert result["total"] == 2
        assert result["projects"][0] == {
            "key": "ALPHA", "name": "Project Alpha", "id": "1", "style": "software"
        }
        assert result["truncated"] is False
