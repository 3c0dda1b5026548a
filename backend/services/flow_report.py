"""Aggregate reports built from a batch of issues.

Everything in here is a pure function over data that has already been
fetched, so the reports can be tested without a Jira instance.
"""

from collections import Counter
from datetime import datetime
from typing import Iterable

from services.jira_dates import parse_jira_date, week_key, whole_days_between

DEFAULT_STALLED_DAYS = 14


def fold_timelines(results: Iterable) -> dict:
    """Merge per-issue TimelineResults into one workflow summary.

    Results are folded in issue-key order, so the totals do not depend on
    the order in which per-issue work finished.
    """
    status_time = {}
    transitions = Counter()
    reopen_patterns = []

    for result in sorted(results, key=lambda r: r.key):
        for status, interval in result.intervals.items():
            entry = status_time.setdefault(status, {"total_hours": 0.0, "occurrences": 0})
            entry["total_hours"] += interval.duration_hours
            entry["occurrences"] += interval.occurrences

        transitions.update(result.transitions)
        reopen_patterns.extend(result.reopen_patterns)

    return {
        "transitions": {
            f"{from_status} -> {to_status}": count
            for (from_status, to_status), count in sorted(transitions.items())
        },
        "status_time": {
            status: {
                "total_hours": round(data["total_hours"], 2),
                "occurrences": data["occurrences"]
            }
            for status, data in sorted(status_time.items())
        },
        "bottlenecks": rank_bottlenecks(status_time),
        "reopen_patterns": reopen_patterns
    }


def rank_bottlenecks(status_time: dict) -> list:
    """Rank statuses by average hours per occurrence, longest first.

    Statuses with the same average are listed alphabetically.
    """
    averages = []
    for status, data in status_time.items():
        occurrences = data.get("occurrences", 0)
        if occurrences <= 0:
            continue
        averages.append({
            "status": status,
            "avg_hours": round(data["total_hours"] / occurrences, 1)
        })

    averages.sort(key=lambda entry: entry["status"])
    averages.sort(key=lambda entry: entry["avg_hours"], reverse=True)
    return averages


def calculate_time_analysis(issues: list, now: datetime,
                            stalled_days: int = DEFAULT_STALLED_DAYS) -> dict:
    """Age, resolution time, creation/resolution spikes and stalled issues.

    Unresolved issues contribute their age (``now - created``) and are
    checked for staleness against ``updated``; resolved issues contribute
    ``resolutiondate - created``. Day counts are whole days.
    """
    stats = {
        "config": {"stalled_threshold_days": stalled_days},
        "averages": {
            "avg_age_open_days": 0,
            "avg_time_to_resolve_days": 0
        },
        "issues_stalled": [],
        "creation_spikes": {"by_week": {}},
        "resolution_spikes": {"by_week": {}}
    }

    creation_weeks = Counter()
    resolution_weeks = Counter()
    total_open_age = 0
    open_count = 0
    total_resolution_time = 0
    resolved_count = 0

    for issue in issues:
        fields = issue.get("fields") or {}
        created = parse_jira_date(fields.get("created"))
        if created is None:
            continue

        updated = parse_jira_date(fields.get("updated")) or created
        resolved = parse_jira_date(fields.get("resolutiondate"))

        creation_weeks[week_key(created)] += 1

        if resolved:
            resolution_weeks[week_key(resolved)] += 1
            total_resolution_time += whole_days_between(created, resolved)
            resolved_count += 1
        else:
            total_open_age += whole_days_between(created, now)
            open_count += 1

            days_since_update = whole_days_between(updated, now)
            if days_since_update >= stalled_days:
                stats["issues_stalled"].append({
                    "key": issue.get("key"),
                    "status": (fields.get("status") or {}).get("name") or "Unknown",
                    "days_since_update": days_since_update
                })

    if open_count > 0:
        stats["averages"]["avg_age_open_days"] = round(total_open_age / open_count, 2)
    if resolved_count > 0:
        stats["averages"]["avg_time_to_resolve_days"] = round(total_resolution_time / resolved_count, 2)

    stats["issues_stalled"].sort(key=lambda s: s["days_since_update"], reverse=True)
    stats["creation_spikes"]["by_week"] = dict(sorted(creation_weeks.items()))
    stats["resolution_spikes"]["by_week"] = dict(sorted(resolution_weeks.items()))

    return stats


def calculate_data_quality(issues: list) -> dict:
    """Group counts by type, status, priority and assignee plus missing-field tallies."""
    by_type = Counter()
    by_status = Counter()
    by_priority = Counter()
    by_assignee = Counter()
    missing_assignee = 0
    missing_priority = 0

    for issue in issues:
        fields = issue.get("fields") or {}
        assignee = fields.get("assignee")
        priority = fields.get("priority")

        by_type[(fields.get("issuetype") or {}).get("name") or "Unknown"] += 1
        by_status[(fields.get("status") or {}).get("name") or "Unknown"] += 1
        by_priority[(priority or {}).get("name") or "None"] += 1
        by_assignee[(assignee or {}).get("displayName") or "Unassigned"] += 1

        if not assignee:
            missing_assignee += 1
        if not priority:
            missing_priority += 1

    return {
        "groups": {
            "by_type": dict(by_type),
            "by_status": dict(by_status),
            "by_priority": dict(by_priority),
            "by_assignee": dict(by_assignee)
        },
        "data_quality": {
            "missing_assignee": missing_assignee,
            "missing_priority": missing_priority
        }
    }
