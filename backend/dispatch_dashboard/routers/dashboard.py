"""API routes for dashboard cards, charts, delivered loads and CSV export."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from dispatch_dashboard.core.auth import TenantContext, get_tenant_context
from dispatch_dashboard.core.clock import utc_now
from dispatch_dashboard.core.config import get_settings
from dispatch_dashboard.core.logging import logger
from dispatch_dashboard.models.dispatch import DashboardMetrics, LoadOrder, LoadStatus, WeeklyPoint
from dispatch_dashboard.routers.errors import http_error
from dispatch_dashboard.services.export import loads_to_csv
from dispatch_dashboard.services.metrics import dashboard_snapshot, delivered_summary, start_of_week, weekly_series
from dispatch_dashboard.services.store import LoadFilter, dispatch_store

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _local_midnight(day: date | None, tz: tzinfo) -> datetime | None:
    if day is None:
        return None
    return datetime.combine(day, time.min, tzinfo=tz)


def _reference_now(reference_date: date | None, tz: tzinfo) -> datetime:
    """'Now' for metrics: the real clock, or the last instant of a pinned local day."""
    if reference_date is None:
        return utc_now()
    return datetime.combine(reference_date, time.max, tzinfo=tz)


@router.get("/metrics", response_model=DashboardMetrics)
def get_dashboard_metrics(
    reference_date: Optional[date] = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
):
    settings = get_settings()
    tz = settings.resolved_timezone()
    try:
        loads = dispatch_store.list_loads(context.tenant_id)
        drivers = dispatch_store.list_drivers(context.tenant_id)
    except Exception as exc:
        raise http_error(exc, "Failed to compute dashboard metrics") from exc
    return dashboard_snapshot(
        loads,
        drivers,
        now=_reference_now(reference_date, tz),
        tz=tz,
        aging_hours=settings.aging_hours,
    )


@router.get("/weekly", response_model=List[WeeklyPoint])
def get_weekly_series(
    reference_date: Optional[date] = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
):
    tz = get_settings().resolved_timezone()
    reference = _reference_now(reference_date, tz)
    week_start = start_of_week(reference, tz)
    try:
        loads = dispatch_store.list_loads(
            context.tenant_id,
            LoadFilter(created_from=week_start, created_to=week_start + timedelta(days=7)),
        )
    except Exception as exc:
        raise http_error(exc, "Failed to compute weekly series") from exc
    return weekly_series(loads, reference, tz)


@router.get("/delivered")
def get_delivered_loads(
    delivered_from: Optional[date] = Query(default=None),
    delivered_to: Optional[date] = Query(default=None),
    dispatcher: Optional[str] = Query(default=None),
    shipper: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
):
    """Delivered loads with totals. `delivered_to` is inclusive of that local day."""
    tz = get_settings().resolved_timezone()
    end = _local_midnight(delivered_to, tz)
    filters = LoadFilter(
        statuses=[LoadStatus.DELIVERED.value],
        search=q,
        delivered_from=_local_midnight(delivered_from, tz),
        delivered_to=end + timedelta(days=1) if end else None,
        dispatcher=dispatcher,
        shipper=shipper,
        order_by=LoadOrder.DELIVERED_AT,
    )
    try:
        loads = dispatch_store.list_loads(context.tenant_id, filters)
    except Exception as exc:
        raise http_error(exc, "Failed to list delivered loads") from exc
    return {"loads": loads, "summary": delivered_summary(loads)}


@router.get("/export.csv")
def export_loads_csv(
    status: Optional[List[LoadStatus]] = Query(default=None),
    q: Optional[str] = Query(default=None),
    created_from: Optional[datetime] = Query(default=None),
    created_to: Optional[datetime] = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
):
    filters = LoadFilter(
        statuses=[item.value for item in status or []],
        search=q,
        created_from=created_from,
        created_to=created_to,
        order_by=LoadOrder.CREATED_AT,
    )
    try:
        loads = dispatch_store.list_loads(context.tenant_id, filters)
    except Exception as exc:
        raise http_error(exc, "Failed to export loads") from exc
    logger.info("Loads exported", tenant_id=context.tenant_id, rows=len(loads))
    return Response(
        content=loads_to_csv(loads),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="loads.csv"'},
    )
