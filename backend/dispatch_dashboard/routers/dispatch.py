"""API routes for the load list, driver assignment and status workflows."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from dispatch_dashboard.core.auth import TenantContext, get_tenant_context, require_writer
from dispatch_dashboard.models.dispatch import (
    DriverAssignmentRequest,
    LoadCreateRequest,
    LoadOrder,
    LoadStatus,
    LoadStatusTransitionRequest,
    LoadUnassignRequest,
    LoadUpdateRequest,
    ProblemFlagRequest,
    WorkflowResult,
)
from dispatch_dashboard.routers.errors import http_error
from dispatch_dashboard.services.store import LoadFilter, dispatch_store
from dispatch_dashboard.services.workflows import dispatch_workflows

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.get("/loads")
def list_loads(
    status: Optional[List[LoadStatus]] = Query(default=None),
    q: Optional[str] = Query(default=None),
    created_from: Optional[datetime] = Query(default=None),
    created_to: Optional[datetime] = Query(default=None),
    problem_only: bool = Query(default=False),
    driver_id: Optional[int] = Query(default=None),
    order_by: LoadOrder = Query(default=LoadOrder.STATUS_CHANGED_AT),
    descending: bool = Query(default=True),
    limit: Optional[int] = Query(default=None, ge=1, le=5000),
    context: TenantContext = Depends(get_tenant_context),
):
    filters = LoadFilter(
        statuses=[item.value for item in status or []],
        search=q,
        created_from=created_from,
        created_to=created_to,
        problem_only=problem_only,
        driver_id=driver_id,
        order_by=order_by,
        descending=descending,
        limit=limit,
    )
    try:
        loads = dispatch_store.list_loads(context.tenant_id, filters)
    except Exception as exc:
        raise http_error(exc, "Failed to list loads") from exc
    return {"tenant_id": context.tenant_id, "count": len(loads), "loads": loads}


@router.post("/loads")
def create_load(
    request: LoadCreateRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_workflows.create_load(context.tenant_id, request, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to create load") from exc


@router.get("/loads/{load_id}")
def get_load(
    load_id: int,
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        return dispatch_store.get_load(context.tenant_id, load_id)
    except Exception as exc:
        raise http_error(exc, "Failed to read load", load_id=load_id) from exc


@router.patch("/loads/{load_id}")
def update_load(
    load_id: int,
    request: LoadUpdateRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_workflows.update_load(context.tenant_id, load_id, request, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to update load", load_id=load_id) from exc


@router.delete("/loads/{load_id}")
def delete_load(
    load_id: int,
    context: TenantContext = Depends(require_writer),
):
    try:
        load = dispatch_workflows.delete_load(context.tenant_id, load_id, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to delete load", load_id=load_id) from exc
    return {"deleted": True, "load": load}


@router.post("/loads/{load_id}/status", response_model=WorkflowResult)
def transition_load_status(
    load_id: int,
    request: LoadStatusTransitionRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_workflows.transition_status(
            context.tenant_id,
            load_id,
            request.status,
            actor=context.actor,
            expected_version=request.expected_version,
        )
    except Exception as exc:
        raise http_error(exc, "Failed to change load status", load_id=load_id, status=request.status.value) from exc


@router.post("/loads/{load_id}/assign", response_model=WorkflowResult)
def assign_driver(
    load_id: int,
    request: DriverAssignmentRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_workflows.assign_driver(
            context.tenant_id,
            load_id,
            request.driver_id,
            actor=context.actor,
            expected_version=request.expected_version,
        )
    except Exception as exc:
        raise http_error(exc, "Failed to assign driver", load_id=load_id, driver_id=request.driver_id) from exc


@router.post("/loads/{load_id}/unassign", response_model=WorkflowResult)
def unassign_driver(
    load_id: int,
    request: Optional[LoadUnassignRequest] = None,
    context: TenantContext = Depends(require_writer),
):
    expected_version = request.expected_version if request else None
    try:
        return dispatch_workflows.unassign_driver(
            context.tenant_id,
            load_id,
            actor=context.actor,
            expected_version=expected_version,
        )
    except Exception as exc:
        raise http_error(exc, "Failed to unassign driver", load_id=load_id) from exc


@router.get("/loads/{load_id}/assignable-drivers")
def assignable_drivers(
    load_id: int,
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        drivers = dispatch_workflows.assignable_drivers(context.tenant_id, load_id)
    except Exception as exc:
        raise http_error(exc, "Failed to list assignable drivers", load_id=load_id) from exc
    return {"load_id": load_id, "drivers": drivers}


@router.post("/loads/{load_id}/problem")
def set_problem_flag(
    load_id: int,
    request: ProblemFlagRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_workflows.set_problem_flag(
            context.tenant_id,
            load_id,
            request.problem_flag,
            actor=context.actor,
            issue_type=request.issue_type,
            notes=request.notes,
        )
    except Exception as exc:
        raise http_error(exc, "Failed to update problem flag", load_id=load_id) from exc


@router.get("/loads/{load_id}/timeline")
def load_timeline(
    load_id: int,
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        return dispatch_workflows.timeline(context.tenant_id, load_id)
    except Exception as exc:
        raise http_error(exc, "Failed to read load timeline", load_id=load_id) from exc


@router.get("/changes")
def table_revisions(context: TenantContext = Depends(get_tenant_context)):
    """Per-table revisions; a client re-fetches a table when its revision moves."""
    return {
        "tenant_id": context.tenant_id,
        "revisions": dispatch_store.change_feed.revisions(context.tenant_id),
    }
