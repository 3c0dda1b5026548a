"""Status timeline reconstruction for a single issue.

Jira returns an issue's changelog as change groups that are not guaranteed
to be in chronological order. The functions here replay the status changes
in time order, starting from the issue's creation, and derive how long the
issue spent in each status, which transitions it made and whether it ever
came back to a status it had already been in.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from services.jira_dates import hours_between, parse_jira_date

logger = logging.getLogger(__name__)

# Status assumed between creation and the first recorded transition
INITIAL_STATUS = "Open"
UNKNOWN_STATUS = "Unknown"


@dataclass(frozen=True)
class ChangeEvent:
    timestamp: datetime
    field: str
    from_value: str
    to_value: str


@dataclass
class StateInterval:
    """Time accumulated in one status across every visit."""

    status: str
    duration_hours: float = 0.0
    occurrences: int = 0

    def add(self, hours: float):
        self.duration_hours += hours
        self.occurrences += 1


@dataclass
class TimelineResult:
    key: str
    intervals: dict = field(default_factory=dict)
    transitions: Counter = field(default_factory=Counter)
    reopen_patterns: list = field(default_factory=list)
    seen_statuses: set = field(default_factory=set)

    @property
    def total_hours(self) -> float:
        return sum(interval.duration_hours for interval in self.intervals.values())


def extract_status_events(histories: Optional[list]) -> list:
    """Flatten changelog histories into status ChangeEvents in time order.

    Change groups with the same timestamp keep their original order, as do
    several status items inside one group.
    """
    events = []
    for history in histories or []:
        timestamp = parse_jira_date(history.get("created"))
        if timestamp is None:
            logger.warning(f"Skipping change group with unparseable date: {history.get('created')!r}")
            continue

        for item in history.get("items") or []:
            if item.get("field") != "status":
                continue
            events.append(ChangeEvent(
                timestamp=timestamp,
                field="status",
                from_value=item.get("fromString") or UNKNOWN_STATUS,
                to_value=item.get("toString") or UNKNOWN_STATUS,
            ))

    return sorted(events, key=lambda e: e.timestamp)


def reconstruct_timeline(key: str, created: datetime, events: list,
                         end: datetime) -> TimelineResult:
    """Replay ``events`` from ``created`` until ``end``.

    Every status an issue passes through gets the time between entering and
    leaving it; the status the issue is in after the last event runs until
    ``end``. Durations therefore add up to ``end - created`` whenever the
    events fall inside that window.

    A reopen pattern is recorded whenever a transition targets a status the
    issue has already been in, either as source or target of an earlier
    transition.
    """
    result = TimelineResult(key=key)
    cursor_time = created
    current_status = INITIAL_STATUS

    for event in sorted(events, key=lambda e: e.timestamp):
        if event.field != "status":
            continue

        elapsed = hours_between(cursor_time, event.timestamp)
        if elapsed < 0:
            logger.debug(f"{key}: event at {event.timestamp} precedes {cursor_time}, counting 0h")
            elapsed = 0.0

        _interval(result, event.from_value).add(elapsed)
        result.transitions[(event.from_value, event.to_value)] += 1

        if event.to_value in result.seen_statuses:
            result.reopen_patterns.append({
                "key": key,
                "pattern": f"{event.from_value} -> {event.to_value} (Repeated)"
            })

        result.seen_statuses.add(event.from_value)
        result.seen_statuses.add(event.to_value)

        if event.timestamp > cursor_time:
            cursor_time = event.timestamp
        current_status = event.to_value

    _interval(result, current_status).add(max(hours_between(cursor_time, end), 0.0))
    return result


def build_issue_timeline(issue: dict, histories: Optional[list],
                         now: datetime) -> Optional[TimelineResult]:
    """Reconstruct the timeline of a raw Jira issue.

    The clock stops at ``resolutiondate`` for resolved issues and at ``now``
    otherwise. Returns None when the issue has no usable creation date.
    """
    fields = issue.get("fields") or {}
    key = issue.get("key") or str(issue.get("id", ""))

    created = parse_jira_date(fields.get("created"))
    if created is None:
        logger.warning(f"{key}: missing or invalid created date, skipping timeline")
        return None

    resolved = parse_jira_date(fields.get("resolutiondate"))
    end = resolved or now

    return reconstruct_timeline(key, created, extract_status_events(histories), end)


def _interval(result: TimelineResult, status: str) -> StateInterval:
    interval = result.intervals.get(status)
    if interval is None:
        interval = StateInterval(status=status)
        result.intervals[status] = interval
    return interval
