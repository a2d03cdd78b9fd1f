"""API routes for the truck pool."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dispatch_dashboard.core.auth import TenantContext, get_tenant_context, require_writer
from dispatch_dashboard.models.dispatch import TruckCreateRequest, TruckStatus, TruckUpdateRequest
from dispatch_dashboard.routers.errors import http_error
from dispatch_dashboard.services.fleet import fleet_service
from dispatch_dashboard.services.store import dispatch_store

router = APIRouter(prefix="/trucks", tags=["trucks"])


@router.get("")
def list_trucks(
    status: Optional[TruckStatus] = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        trucks = dispatch_store.list_trucks(context.tenant_id, status=status.value if status else None)
    except Exception as exc:
        raise http_error(exc, "Failed to list trucks") from exc
    return {"tenant_id": context.tenant_id, "count": len(trucks), "trucks": trucks}


@router.get("/available")
def available_trucks(context: TenantContext = Depends(get_tenant_context)):
    try:
        trucks = fleet_service.available_trucks(context.tenant_id)
    except Exception as exc:
        raise http_error(exc, "Failed to list available trucks") from exc
    return {"tenant_id": context.tenant_id, "count": len(trucks), "trucks": trucks}


@router.post("")
def create_truck(
    request: TruckCreateRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_store.create_truck(context.tenant_id, request.model_dump(mode="json", exclude_none=True))
    except Exception as exc:
        raise http_error(exc, "Failed to create truck") from exc


@router.get("/{truck_id}")
def get_truck(
    truck_id: int,
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        return dispatch_store.get_truck(context.tenant_id, truck_id)
    except Exception as exc:
        raise http_error(exc, "Failed to read truck", truck_id=truck_id) from exc


@router.patch("/{truck_id}")
def update_truck(
    truck_id: int,
    request: TruckUpdateRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_store.update_truck(
            context.tenant_id,
            truck_id,
            request.model_dump(mode="json", exclude_none=True),
        )
    except Exception as exc:
        raise http_error(exc, "Failed to update truck", truck_id=truck_id) from exc
