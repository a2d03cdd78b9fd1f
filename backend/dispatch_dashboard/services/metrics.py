"""Dashboard aggregations over fetched load and driver rows."""
from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Optional

from dispatch_dashboard.core.clock import parse_iso_utc
from dispatch_dashboard.models.dispatch import (
    TERMINAL_LOAD_STATUSES,
    DashboardMetrics,
    DeliveredSummary,
    DriverStatus,
    LoadStatus,
    WeeklyPoint,
)


UNKNOWN_STATUS = "UNKNOWN"
UNASSIGNED_DISPATCHER = "Unassigned"

_LOAD_STATUSES = {status.value for status in LoadStatus}


def _status(row: Dict[str, Any]) -> str:
    value = row.get("status")
    value = getattr(value, "value", value)
    return str(value or "").strip().upper()


def _rate(row: Dict[str, Any]) -> float:
    try:
        return float(row.get("rate") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _local(value: Any, tz: tzinfo) -> Optional[datetime]:
    stamp = parse_iso_utc(value)
    return stamp.astimezone(tz) if stamp else None


def total_revenue(loads: Iterable[Dict[str, Any]]) -> float:
    return round(sum(_rate(row) for row in loads), 2)


def count_by_status(loads: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """
    Count loads per status.

    Rows with a missing or unrecognized status are counted under UNKNOWN, so
    the counts always add up to the number of rows.
    """
    counts: Counter = Counter()
    for row in loads:
        status = _status(row)
        counts[status if status in _LOAD_STATUSES else UNKNOWN_STATUS] += 1
    return dict(counts)


def count_by_dispatcher(loads: Iterable[Dict[str, Any]]) -> Dict[str, float]:
    """Summed rate per dispatcher; blank dispatchers land under 'Unassigned'."""
    totals: Dict[str, float] = defaultdict(float)
    for row in loads:
        dispatcher = str(row.get("dispatcher") or "").strip() or UNASSIGNED_DISPATCHER
        totals[dispatcher] += _rate(row)
    return {name: round(value, 2) for name, value in totals.items()}


def start_of_week(reference: date | datetime, tz: tzinfo) -> datetime:
    """Local midnight on the Monday of the week containing `reference`."""
    if isinstance(reference, datetime):
        local_day = (reference if reference.tzinfo else reference.replace(tzinfo=tz)).astimezone(tz).date()
    else:
        local_day = reference
    monday = local_day - timedelta(days=local_day.weekday())
    return datetime.combine(monday, time.min, tzinfo=tz)


def weekly_series(
    loads: Iterable[Dict[str, Any]],
    reference: date | datetime,
    tz: tzinfo,
) -> List[WeeklyPoint]:
    """
    Seven daily buckets, Monday through Sunday, for the week holding `reference`.

    A load falls in a bucket by its `created_at` in local time; loads created
    outside `[monday, monday + 7 days)` are ignored.
    """
    start = start_of_week(reference, tz)
    days = [(start + timedelta(days=offset)).date() for offset in range(7)]
    buckets = {day: WeeklyPoint(day=day) for day in days}
    for row in loads:
        created = _local(row.get("created_at"), tz)
        if created is None:
            continue
        bucket = buckets.get(created.date())
        if bucket is None:
            continue
        bucket.load_count += 1
        bucket.revenue = round(bucket.revenue + _rate(row), 2)
    return [buckets[day] for day in days]


def delivered_summary(loads: Iterable[Dict[str, Any]]) -> DeliveredSummary:
    rows = list(loads)
    if not rows:
        return DeliveredSummary()
    gross = sum(_rate(row) for row in rows)
    miles = sum(float(row.get("miles") or 0.0) for row in rows)
    return DeliveredSummary(
        count=len(rows),
        gross=round(gross, 2),
        miles=round(miles, 2),
        rate_per_mile=round(gross / miles, 2) if miles > 0 else 0.0,
    )


def _is_problem(row: Dict[str, Any]) -> bool:
    return bool(row.get("problem_flag")) or _status(row) == LoadStatus.PROBLEM.value


def dashboard_snapshot(
    loads: List[Dict[str, Any]],
    drivers: List[Dict[str, Any]],
    now: datetime,
    tz: tzinfo,
    aging_hours: int = 48,
) -> DashboardMetrics:
    """Cards, status tiles and the weekly series for the dashboard landing page."""
    local_now = now.astimezone(tz)
    week_start = start_of_week(local_now, tz)
    week_end = week_start + timedelta(days=7)
    month_start = datetime.combine(local_now.date().replace(day=1), time.min, tzinfo=tz)
    seven_days_ago = datetime.combine(local_now.date() - timedelta(days=7), time.min, tzinfo=tz)
    aging_cutoff = now - timedelta(hours=aging_hours)

    loads_this_week = 0
    loads_mtd = 0
    recent_total = 0
    recent_problems = 0
    aging = 0
    for row in loads:
        created = _local(row.get("created_at"), tz)
        if created is None:
            continue
        if week_start <= created < week_end:
            loads_this_week += 1
        if created >= month_start:
            loads_mtd += 1
        if created >= seven_days_ago:
            recent_total += 1
            if _is_problem(row):
                recent_problems += 1
        if _status(row) != LoadStatus.DELIVERED.value and created < aging_cutoff:
            aging += 1

    driver_counts = {status.value: 0 for status in DriverStatus}
    for row in drivers:
        status = _status(row)
        if status in driver_counts:
            driver_counts[status] += 1

    return DashboardMetrics(
        reference_date=local_now.date(),
        total_revenue=total_revenue(loads),
        active_loads=sum(1 for row in loads if _status(row) not in TERMINAL_LOAD_STATUSES),
        loads_this_week=loads_this_week,
        loads_month_to_date=loads_mtd,
        problem_loads=sum(1 for row in loads if _is_problem(row)),
        problem_rate_7d=round(recent_problems / recent_total * 100) if recent_total else 0,
        aging_undelivered=aging,
        status_counts=count_by_status(loads),
        revenue_by_dispatcher=count_by_dispatcher(loads),
        driver_status_counts=driver_counts,
        weekly_series=weekly_series(loads, local_now, tz),
    )
