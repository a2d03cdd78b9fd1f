"""API routes for the driver roster."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dispatch_dashboard.core.auth import TenantContext, get_tenant_context, require_writer
from dispatch_dashboard.models.dispatch import (
    DriverCreateRequest,
    DriverStatus,
    DriverStatusRequest,
    DriverUpdateRequest,
    TruckAssignmentRequest,
)
from dispatch_dashboard.routers.errors import http_error
from dispatch_dashboard.services.fleet import fleet_service
from dispatch_dashboard.services.store import dispatch_store

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get("")
def list_drivers(
    status: Optional[DriverStatus] = Query(default=None),
    q: Optional[str] = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        drivers = fleet_service.drivers_with_loads(
            context.tenant_id,
            status=status.value if status else None,
            search=q,
        )
    except Exception as exc:
        raise http_error(exc, "Failed to list drivers") from exc
    return {"tenant_id": context.tenant_id, "count": len(drivers), "drivers": drivers}


@router.post("")
def create_driver(
    request: DriverCreateRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return fleet_service.create_driver(context.tenant_id, request, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to create driver") from exc


@router.get("/{driver_id}")
def get_driver(
    driver_id: int,
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        return dispatch_store.get_driver(context.tenant_id, driver_id)
    except Exception as exc:
        raise http_error(exc, "Failed to read driver", driver_id=driver_id) from exc


@router.patch("/{driver_id}")
def update_driver(
    driver_id: int,
    request: DriverUpdateRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return fleet_service.update_driver(context.tenant_id, driver_id, request, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to update driver", driver_id=driver_id) from exc


@router.delete("/{driver_id}")
def delete_driver(
    driver_id: int,
    context: TenantContext = Depends(require_writer),
):
    try:
        driver = fleet_service.delete_driver(context.tenant_id, driver_id)
    except Exception as exc:
        raise http_error(exc, "Failed to delete driver", driver_id=driver_id) from exc
    return {"deleted": True, "driver": driver}


@router.post("/{driver_id}/status")
def set_driver_status(
    driver_id: int,
    request: DriverStatusRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return fleet_service.set_status(context.tenant_id, driver_id, request.status, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to set driver status", driver_id=driver_id) from exc


@router.post("/{driver_id}/truck")
def assign_truck(
    driver_id: int,
    request: TruckAssignmentRequest,
    context: TenantContext = Depends(require_writer),
):
    try:
        return fleet_service.assign_truck(context.tenant_id, driver_id, request.truck_id, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to assign truck", driver_id=driver_id, truck_id=request.truck_id) from exc


@router.delete("/{driver_id}/truck")
def unassign_truck(
    driver_id: int,
    context: TenantContext = Depends(require_writer),
):
    try:
        return fleet_service.unassign_truck(context.tenant_id, driver_id, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to unassign truck", driver_id=driver_id) from exc


@router.post("/{driver_id}/inactivate")
def inactivate_driver(
    driver_id: int,
    context: TenantContext = Depends(require_writer),
):
    try:
        return fleet_service.inactivate_driver(context.tenant_id, driver_id, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to inactivate driver", driver_id=driver_id) from exc


@router.get("/{driver_id}/activity")
def driver_activity(
    driver_id: int,
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        return fleet_service.driver_activity(context.tenant_id, driver_id)
    except Exception as exc:
        raise http_error(exc, "Failed to read driver activity", driver_id=driver_id) from exc
