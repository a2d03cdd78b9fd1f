"""Unit tests for dashboard aggregations."""
from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dispatch_dashboard.models.dispatch import DriverStatus, LoadStatus  # noqa: E402
from dispatch_dashboard.services.metrics import (  # noqa: E402
    count_by_dispatcher,
    count_by_status,
    dashboard_snapshot,
    delivered_summary,
    start_of_week,
    total_revenue,
    weekly_series,
)


CHICAGO = ZoneInfo("America/Chicago")


def _row(created_at: str, status: str = "PLANNED", rate: float = 100.0, **extra):
    return {"created_at": created_at, "status": status, "rate": rate, **extra}


def test_total_revenue_sums_rates_and_handles_empty():
    assert total_revenue([]) == 0
    assert total_revenue([{"rate": 1200.5}, {"rate": 799.5}, {"rate": None}]) == 2000.0


def test_count_by_status_always_sums_to_row_count():
    rows = [
        {"status": "PLANNED"},
        {"status": "delivered"},
        {"status": "DELIVERED"},
        {"status": "ON_HOLD"},
        {},
    ]
    counts = count_by_status(rows)
    assert counts == {"PLANNED": 1, "DELIVERED": 2, "UNKNOWN": 2}
    assert sum(counts.values()) == len(rows)


def test_enum_statuses_count_like_their_values():
    now = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
    loads = [
        _row("2026-10-20T09:00:00Z", status=LoadStatus.PLANNED),
        _row("2026-10-20T10:00:00Z", status="PLANNED"),
        _row("2026-10-20T11:00:00Z", status=LoadStatus.DELIVERED),
        _row("2026-10-20T12:00:00Z", status=LoadStatus.PROBLEM),
    ]
    drivers = [{"status": DriverStatus.ON_LOAD}, {"status": "ON_LOAD"}]

    assert count_by_status(loads) == {"PLANNED": 2, "DELIVERED": 1, "PROBLEM": 1}

    snapshot = dashboard_snapshot(loads, drivers, now=now, tz=timezone.utc, aging_hours=48)
    assert snapshot.active_loads == 3
    assert snapshot.problem_loads == 1
    assert snapshot.driver_status_counts["ON_LOAD"] == 2


def test_count_by_dispatcher_buckets_blank_as_unassigned():
    rows = [
        {"dispatcher": "Sam", "rate": 1000},
        {"dispatcher": "Sam", "rate": 500},
        {"dispatcher": " ", "rate": 250},
        {"rate": 50},
    ]
    assert count_by_dispatcher(rows) == {"Sam": 1500.0, "Unassigned": 300.0}


def test_start_of_week_uses_local_midnight():
    # 2026-10-19 03:00 UTC is still Sunday evening in Chicago.
    reference = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
    start = start_of_week(reference, CHICAGO)
    assert start.date() == date(2026, 10, 12)
    assert (start.hour, start.minute) == (0, 0)
    assert start.utcoffset() == CHICAGO.utcoffset(datetime(2026, 10, 12))


def test_weekly_series_has_seven_days_monday_first():
    rows = [
        _row("2026-10-19T15:00:00Z", rate=300),
        _row("2026-10-19T18:30:00Z", rate=200),
        _row("2026-10-25T23:00:00Z", rate=50),
        _row("2026-10-18T12:00:00Z", rate=999),
        _row("2026-10-26T12:00:00Z", rate=999),
        _row("not-a-date", rate=999),
    ]
    series = weekly_series(rows, date(2026, 10, 21), timezone.utc)

    assert [point.day for point in series] == [date(2026, 10, 19 + offset) for offset in range(7)]
    assert [point.day.weekday() for point in series] == list(range(7))
    assert series[0].load_count == 2
    assert series[0].revenue == 500.0
    assert series[6].load_count == 1
    assert sum(point.load_count for point in series) == 3


def test_weekly_series_buckets_by_local_day():
    rows = [_row("2026-10-20T04:30:00Z")]
    series = weekly_series(rows, date(2026, 10, 20), CHICAGO)
    # 04:30 UTC on Tuesday is 23:30 Monday in Chicago.
    assert series[0].load_count == 1
    assert series[1].load_count == 0


def test_delivered_summary_rate_per_mile():
    assert delivered_summary([]).count == 0
    summary = delivered_summary([{"rate": 1000, "miles": 400}, {"rate": 500, "miles": 100}])
    assert summary.count == 2
    assert summary.gross == 1500.0
    assert summary.miles == 500.0
    assert summary.rate_per_mile == 3.0
    assert delivered_summary([{"rate": 100, "miles": 0}]).rate_per_mile == 0.0


def test_dashboard_snapshot_cards():
    now = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
    loads = [
        _row("2026-10-20T09:00:00Z", status="IN_TRANSIT", rate=1000, dispatcher="Sam"),
        _row("2026-10-19T09:00:00Z", status="DELIVERED", rate=500, dispatcher="Sam"),
        _row("2026-10-16T09:00:00Z", status="PLANNED", rate=250, problem_flag=True),
        _row("2026-10-02T09:00:00Z", status="CANCELLED", rate=100),
        _row("2026-09-20T09:00:00Z", status="PROBLEM", rate=50),
    ]
    drivers = [{"status": "AVAILABLE"}, {"status": "ON_LOAD"}, {"status": "ON_LOAD"}]

    snapshot = dashboard_snapshot(loads, drivers, now=now, tz=timezone.utc, aging_hours=48)

    assert snapshot.reference_date == date(2026, 10, 21)
    assert snapshot.total_revenue == 1900.0
    assert snapshot.loads_this_week == 2
    assert snapshot.loads_month_to_date == 4
    assert snapshot.active_loads == 3
    assert snapshot.problem_loads == 2
    assert snapshot.problem_rate_7d == 33
    assert snapshot.aging_undelivered == 3
    assert snapshot.status_counts == {
        "IN_TRANSIT": 1,
        "DELIVERED": 1,
        "PLANNED": 1,
        "CANCELLED": 1,
        "PROBLEM": 1,
    }
    assert snapshot.revenue_by_dispatcher == {"Sam": 1500.0, "Unassigned": 400.0}
    assert snapshot.driver_status_counts["ON_LOAD"] == 2
    assert snapshot.driver_status_counts["INACTIVE"] == 0
    assert len(snapshot.weekly_series) == 7
