"""Sprint statistics calculation service."""

import logging
from datetime import datetime, timezone
from typing import Optional

from services.jira_client import JiraClient
from services.jira_dates import parse_jira_date
from services.pagination import DEFAULT_MAX_ITEMS, DEFAULT_PAGE_SIZE, OffsetPagination

logger = logging.getLogger(__name__)

DEFAULT_STORY_POINT_FIELD = "customfield_10002"
DEFAULT_SPRINT_COUNT = 3


class SprintStatsService:
    """Committed vs completed story points for a board's recent sprints."""

    def __init__(self, server: str, email: str, token: str,
                 page_size: int = DEFAULT_PAGE_SIZE,
                 max_items: int = DEFAULT_MAX_ITEMS,
                 request_timeout: float = 30):
        self.client = JiraClient(server, email, token, timeout=request_timeout)
        # Agile endpoints only speak offset paging
        self.pagination = OffsetPagination(self.client, page_size=page_size, max_items=max_items)

    def _get_closed_sprints(self, board_id: int):
        return self.pagination.fetch_all(
            f"/rest/agile/1.0/board/{board_id}/sprint",
            {"state": "closed"}
        )

    def _get_sprint_issues(self, sprint_id: int, story_point_field: str):
        return self.pagination.fetch_all(
            f"/rest/agile/1.0/sprint/{sprint_id}/issue",
            {"fields": f"status,{story_point_field},summary"}
        )

    def _get_story_points(self, issue: dict, story_point_field: str) -> float:
        """Extract story points from an issue, 0 when absent or not numeric."""
        points = (issue.get("fields") or {}).get(story_point_field)
        if points is None or isinstance(points, bool):
            return 0.0
        try:
            return float(points)
        except (TypeError, ValueError):
            return 0.0

    def _is_done(self, issue: dict) -> bool:
        """Check the status category: 'new', 'indeterminate' or 'done'."""
        status = (issue.get("fields") or {}).get("status") or {}
        return (status.get("statusCategory") or {}).get("key") == "done"

    def _calculate_sprint(self, sprint: dict, issues: list, story_point_field: str) -> dict:
        total_points = 0.0
        completed_points = 0.0
        completed_issues = 0

        for issue in issues:
            points = self._get_story_points(issue, story_point_field)
            total_points += points

            if self._is_done(issue):
                completed_points += points
                completed_issues += 1

        completion_rate = (completed_points / total_points * 100) if total_points > 0 else 0

        return {
            "sprintName": sprint.get("name"),
            "sprintId": sprint.get("id"),
            "endDate": sprint.get("endDate"),
            "stats": {
                "committedPoints": total_points,
                "completedPoints": completed_points,
                "completionRate": round(completion_rate, 1),
                "totalIssues": len(issues),
                "issuesDone": completed_issues
            }
        }

    def get_sprint_stats(self, board_id: int,
                         sprint_count: int = DEFAULT_SPRINT_COUNT,
                         story_point_field: Optional[str] = None) -> dict:
        """Stats for the last ``sprint_count`` closed sprints, oldest first."""
        story_point_field = story_point_field or DEFAULT_STORY_POINT_FIELD

        sprint_collection = self._get_closed_sprints(board_id)
        truncated = sprint_collection.truncated

        sprints = sorted(sprint_collection.records, key=_end_date)
        last_sprints = sprints[-sprint_count:] if sprint_count > 0 else []

        dashboard_data = []
        for sprint in last_sprints:
            issue_collection = self._get_sprint_issues(sprint["id"], story_point_field)
            if issue_collection.truncated:
                logger.warning(f"Sprint {sprint['id']} issues truncated at safety limit")
                truncated = True
            dashboard_data.append(
                self._calculate_sprint(sprint, issue_collection.records, story_point_field)
            )

        return {
            "meta": {
                "boardId": board_id,
                "scannedSprints": len(last_sprints),
                "truncated": truncated
            },
            "data": dashboard_data
        }


def _end_date(sprint: dict) -> datetime:
    """Sort key for sprints; sprints without a usable end date sort first."""
    return parse_jira_date(sprint.get("endDate")) or datetime.min.replace(tzinfo=timezone.utc)
