"""Aggregates over a set of attendance records.

Every function here is pure: the result depends only on the multiset of
records passed in, never on their order, and an empty input is valid.
"""

import math
from collections import Counter
from datetime import date
from typing import Iterable

from database.db import ATTENDANCE_STATUSES, AttendanceRecord

WEEKLY_STATUSES: tuple[str, ...] = ("present", "late", "absent")


def status_counts(records: Iterable[AttendanceRecord]) -> dict[str, int]:
    counts = Counter(str(r["status"]) for r in records)
    return {status: counts.get(status, 0) for status in ATTENDANCE_STATUSES}


def attendance_rate(records: Iterable[AttendanceRecord]) -> float:
    """Share of records that are present or late, as a percentage."""
    records = list(records)
    if not records:
        return 0.0
    counts = status_counts(records)
    return (counts["present"] + counts["late"]) / len(records) * 100


def _week_of_month(day: str) -> int:
    return math.ceil(date.fromisoformat(day).day / 7)


def weekly_buckets(records: Iterable[AttendanceRecord]) -> list[dict]:
    """
    Present/late/absent counts per week of the month (days 1-7 are week 1).

    Other statuses still open a bucket for their week but are not counted.
    """
    weeks: dict[int, dict[str, int]] = {}
    for record in records:
        bucket = weeks.setdefault(
            _week_of_month(str(record["date"])),
            {status: 0 for status in WEEKLY_STATUSES},
        )
        if record["status"] in bucket:
            bucket[str(record["status"])] += 1

    return [{"name": f"Week {week}", **weeks[week]} for week in sorted(weeks)]


def period_report(records: Iterable[AttendanceRecord]) -> dict:
    records = list(records)
    return {
        "total": len(records),
        "status_counts": status_counts(records),
        "attendance_rate": attendance_rate(records),
        "weekly": weekly_buckets(records),
    }


def dashboard_summary(
    month_records: Iterable[AttendanceRecord],
    recent: list[AttendanceRecord],
    today: AttendanceRecord | None,
) -> dict:
    month_records = list(month_records)
    counts = status_counts(month_records)
    return {
        "stats": {
            "total_days": len(month_records),
            "present_days": counts["present"],
            "late_days": counts["late"],
            "absent_days": counts["absent"],
            "attendance_rate": attendance_rate(month_records),
        },
        "recent": recent,
        "today": today,
    }
