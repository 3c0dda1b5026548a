"""Workflow analytics service.

Coordinates one report request: pages issues out of Jira, fetches missing
changelogs in parallel, reconstructs each issue's status timeline and folds
the results into the caller-facing reports.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import Optional

from services.errors import FetchCancelledError, UpstreamTransportError
from services.flow_report import (
    DEFAULT_STALLED_DAYS,
    calculate_data_quality,
    calculate_time_analysis,
    fold_timelines,
)
from services.jira_client import JiraClient
from services.jira_dates import utc_now
from services.pagination import (
    DEFAULT_MAX_ITEMS,
    DEFAULT_PAGE_SIZE,
    OFFSET_MODE,
    TOKEN_MODE,
    OffsetPagination,
    create_pagination,
)
from services.timeline import build_issue_timeline

logger = logging.getLogger(__name__)

SEARCH_ENDPOINTS = {
    OFFSET_MODE: "/rest/api/3/search",
    TOKEN_MODE: "/rest/api/3/search/jql",
}

DATA_QUALITY_FIELDS = ["issuetype", "status", "priority", "assignee", "project"]
TIME_ANALYSIS_FIELDS = ["created", "resolutiondate", "updated", "status"]
WORKFLOW_FIELDS = ["created", "resolutiondate", "status"]


def build_jql(project_key: Optional[str]) -> str:
    return f'project = "{project_key}"' if project_key else ""


class FlowMetricsService:
    """Service for workflow and data-quality reports over a Jira project."""

    def __init__(self, server: str, email: str, token: str,
                 pagination_mode: str = OFFSET_MODE,
                 page_size: int = DEFAULT_PAGE_SIZE,
                 max_items: int = DEFAULT_MAX_ITEMS,
                 request_timeout: float = 30,
                 changelog_workers: int = 8,
                 batch_timeout: float = 120):
        self.client = JiraClient(server, email, token, timeout=request_timeout)
        self.pagination = create_pagination(
            pagination_mode, self.client, page_size=page_size, max_items=max_items
        )
        # Changelog endpoints are always offset-paged
        self.changelog_pagination = OffsetPagination(
            self.client, page_size=100, max_items=max_items
        )
        self.changelog_workers = changelog_workers
        self.batch_timeout = batch_timeout

    @property
    def server(self) -> str:
        return self.client.server

    def _search_issues(self, project_key: str, fields: list,
                       expand: Optional[list] = None,
                       cursor: Optional[str] = None):
        """Search a project's issues with the configured paging contract."""
        params = {
            "jql": build_jql(project_key),
            "fields": ",".join(fields)
        }
        if expand:
            params["expand"] = ",".join(expand)

        endpoint = SEARCH_ENDPOINTS[self.pagination.mode]
        return self.pagination.collect(endpoint, params, cursor=cursor)

    def list_projects(self) -> dict:
        """All projects visible to the caller, normalized."""
        collection = OffsetPagination(
            self.client,
            page_size=self.pagination.page_size,
            max_items=self.pagination.max_items
        ).fetch_all("/rest/api/3/project/search")

        projects = [
            {
                "key": p.get("key"),
                "name": p.get("name"),
                "id": p.get("id"),
                "style": p.get("projectTypeKey")
            }
            for p in collection.records
        ]
        return {"total": len(projects), "projects": projects, "truncated": collection.truncated}

    def get_data_understanding(self, project_key: str, cursor: Optional[str] = None) -> dict:
        """Field groupings and missing-field counters for a project's issues."""
        collection = self._search_issues(project_key, DATA_QUALITY_FIELDS, cursor=cursor)
        issues = collection.records

        analysis = {
            "total_issues_in_batch": len(issues),
            "total_matches_in_jira": collection.total,
        }
        analysis.update(calculate_data_quality(issues))
        analysis.update(_paging_info(collection))
        return analysis

    def get_time_analysis(self, project_key: str,
                          stalled_days: int = DEFAULT_STALLED_DAYS,
                          cursor: Optional[str] = None,
                          now: Optional[datetime] = None) -> dict:
        """Ages, resolution times, weekly spikes and stalled issues."""
        collection = self._search_issues(project_key, TIME_ANALYSIS_FIELDS, cursor=cursor)

        stats = calculate_time_analysis(collection.records, now or utc_now(), stalled_days)
        stats["total_issues_in_batch"] = len(collection.records)
        stats.update(_paging_info(collection))
        return stats

    def get_workflow_analysis(self, project_key: str,
                              cursor: Optional[str] = None,
                              now: Optional[datetime] = None) -> dict:
        """Transition counts, time per status, bottlenecks and reopen patterns.

        ``truncated`` is set when the issue search or any issue's changelog
        hit the safety ceiling; the affected issue keys are listed in
        ``truncated_changelogs``.
        """
        now = now or utc_now()
        collection = self._search_issues(
            project_key, WORKFLOW_FIELDS, expand=["changelog"], cursor=cursor
        )
        issues = collection.records

        histories_by_key, skipped, truncated_keys = self._collect_histories(issues)

        timelines = []
        for issue in issues:
            key = issue.get("key")
            if key not in histories_by_key:
                continue
            timeline = build_issue_timeline(issue, histories_by_key[key], now)
            if timeline is not None:
                timelines.append(timeline)

        analysis = fold_timelines(timelines)
        analysis["issues_analyzed"] = len(timelines)
        analysis["skipped_issues"] = skipped
        analysis["truncated_changelogs"] = truncated_keys
        analysis.update(_paging_info(collection))
        if truncated_keys:
            analysis["truncated"] = True
        return analysis

    def _collect_histories(self, issues: list):
        """Map issue key to its changelog histories.

        Embedded changelogs are used when complete. The rest are fetched in
        parallel; an issue whose fetch fails is left out and reported in the
        returned ``skipped`` list, and an issue whose changelog was cut at
        the safety ceiling is reported in ``truncated_keys``.
        """
        histories_by_key = {}
        to_fetch = []

        for issue in issues:
            key = issue.get("key")
            if not key:
                continue
            changelog = issue.get("changelog")
            if _changelog_is_complete(changelog):
                histories_by_key[key] = changelog.get("histories") or []
            else:
                to_fetch.append(key)

        if not to_fetch:
            return histories_by_key, [], []

        fetched, skipped = self._batch_fetch_changelogs(to_fetch)
        truncated_keys = sorted(key for key, c in fetched.items() if c.truncated)
        for key, changelog in fetched.items():
            histories_by_key[key] = changelog.records
        return histories_by_key, skipped, truncated_keys

    def _batch_fetch_changelogs(self, issue_keys: list):
        """Fetch changelogs for ``issue_keys`` in parallel.

        Returns a PageCollection per issue key plus the skipped issues. All
        fetches are joined before returning. If they have not finished within
        ``batch_timeout`` seconds the remaining work is cancelled and
        FetchCancelledError is raised without waiting for requests already
        in flight.
        """
        results = {}
        skipped = []
        cancel_event = threading.Event()

        def fetch_changelog(issue_key):
            return self.changelog_pagination.fetch_all(
                f"/rest/api/3/issue/{issue_key}/changelog",
                cancel_event=cancel_event
            )

        executor = ThreadPoolExecutor(max_workers=self.changelog_workers)
        futures = {executor.submit(fetch_changelog, key): key for key in issue_keys}
        try:
            for future in as_completed(futures, timeout=self.batch_timeout):
                issue_key = futures[future]
                try:
                    results[issue_key] = future.result()
                except UpstreamTransportError as e:
                    logger.warning(f"Dropping {issue_key} from workflow analysis: {e}")
                    skipped.append({"key": issue_key, "error": e.message})
        except FuturesTimeoutError:
            # Workers still in a request stop before their next page
            cancel_event.set()
            pending = [f for f in futures if not f.done()]
            logger.warning(
                f"Changelog fetch timed out after {self.batch_timeout}s, "
                f"cancelled {len(pending)} pending fetches"
            )
            raise FetchCancelledError(pending=len(pending))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        skipped.sort(key=lambda s: s["key"])
        return results, skipped


def _changelog_is_complete(changelog) -> bool:
    if not isinstance(changelog, dict) or changelog.get("histories") is None:
        return False
    total = changelog.get("total")
    return total is None or total <= len(changelog["histories"])


def _paging_info(collection) -> dict:
    return {
        "truncated": collection.truncated,
        "next_page_token": collection.next_cursor
    }
