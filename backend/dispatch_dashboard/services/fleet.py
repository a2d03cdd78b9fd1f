"""Driver and truck management outside the load workflows."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from dispatch_dashboard.core.errors import StoreUnavailableError, ValidationError
from dispatch_dashboard.core.logging import logger
from dispatch_dashboard.models.dispatch import (
    DriverCreateRequest,
    DriverStatus,
    DriverUpdateRequest,
    TruckStatus,
)
from dispatch_dashboard.services.store import DispatchStore, dispatch_store


class FleetService:
    """Driver roster and truck pool operations, each a single-record write."""

    def __init__(self, store: DispatchStore) -> None:
        self.store = store

    def _record(self, tenant_id: str, driver_id: int, event_type: str, actor: str, details: Dict[str, Any]) -> None:
        try:
            self.store.record_activity(tenant_id, "driver", driver_id, event_type, actor, details)
        except StoreUnavailableError as exc:
            logger.warning("Activity event not recorded", event_type=event_type, driver_id=driver_id, error=str(exc))

    def create_driver(self, tenant_id: str, request: DriverCreateRequest, actor: str = "system") -> Dict[str, Any]:
        driver = self.store.create_driver(tenant_id, request.model_dump(exclude_none=True))
        self._record(tenant_id, driver["id"], "driver_created", actor, {"status": driver["status"]})
        logger.info("Driver created", tenant_id=tenant_id, driver_id=driver["id"])
        return driver

    def update_driver(
        self,
        tenant_id: str,
        driver_id: int,
        request: DriverUpdateRequest,
        actor: str = "system",
    ) -> Dict[str, Any]:
        patch = request.model_dump(exclude_none=True)
        expected_version = patch.pop("expected_version", None)
        driver = self.store.update_driver(tenant_id, driver_id, patch, expected_version=expected_version)
        self._record(tenant_id, driver_id, "driver_updated", actor, {"fields": sorted(patch.keys())})
        return driver

    def set_status(self, tenant_id: str, driver_id: int, status: DriverStatus, actor: str = "system") -> Dict[str, Any]:
        """
        Write a driver's status directly.

        This is how an operator clears a driver left ON_LOAD after a failed
        workflow; no load is read or written.
        """
        previous = self.store.get_driver(tenant_id, driver_id)
        driver = self.store.update_driver(tenant_id, driver_id, {"status": DriverStatus(status).value})
        self._record(
            tenant_id,
            driver_id,
            "driver_status_changed",
            actor,
            {"from": previous["status"], "to": driver["status"]},
        )
        return driver

    def assign_truck(self, tenant_id: str, driver_id: int, truck_id: int, actor: str = "system") -> Dict[str, Any]:
        driver = self.store.get_driver(tenant_id, driver_id)
        truck = self.store.get_truck(tenant_id, truck_id)
        if truck["status"] != TruckStatus.ACTIVE.value:
            raise ValidationError(f"Truck {truck['unit_number']} is {truck['status']}, not ACTIVE")
        holder = next(
            (
                row for row in self.store.list_drivers(tenant_id)
                if row.get("truck_id") == truck_id and row["id"] != driver_id
                and row["status"] != DriverStatus.INACTIVE.value
            ),
            None,
        )
        if holder is not None:
            raise ValidationError(f"Truck {truck['unit_number']} is already held by {holder['display_name']}")

        patch: Dict[str, Any] = {"truck_id": truck_id}
        if driver["status"] == DriverStatus.INACTIVE.value:
            patch["status"] = DriverStatus.AVAILABLE.value
        updated = self.store.update_driver(tenant_id, driver_id, patch)
        self._record(tenant_id, driver_id, "truck_assigned", actor, {"truck_id": truck_id, "unit_number": truck["unit_number"]})
        return updated

    def unassign_truck(self, tenant_id: str, driver_id: int, actor: str = "system") -> Dict[str, Any]:
        driver = self.store.get_driver(tenant_id, driver_id)
        truck_id = driver.get("truck_id")
        if truck_id is None:
            return driver
        updated = self.store.update_driver(tenant_id, driver_id, {"truck_id": None})
        self._record(tenant_id, driver_id, "truck_unassigned", actor, {"truck_id": truck_id})
        return updated

    def inactivate_driver(self, tenant_id: str, driver_id: int, actor: str = "system") -> Dict[str, Any]:
        driver = self.store.get_driver(tenant_id, driver_id)
        if driver["status"] == DriverStatus.ON_LOAD.value:
            logger.warning("Inactivating a driver marked ON_LOAD", tenant_id=tenant_id, driver_id=driver_id)
        updated = self.store.update_driver(
            tenant_id,
            driver_id,
            {"status": DriverStatus.INACTIVE.value, "truck_id": None},
        )
        self._record(tenant_id, driver_id, "driver_inactivated", actor, {"truck_id": driver.get("truck_id")})
        return updated

    def delete_driver(self, tenant_id: str, driver_id: int) -> Dict[str, Any]:
        driver = self.store.delete_driver(tenant_id, driver_id)
        logger.info("Driver removed", tenant_id=tenant_id, driver_id=driver_id)
        return driver

    def driver_activity(self, tenant_id: str, driver_id: int) -> Dict[str, Any]:
        driver = self.store.get_driver(tenant_id, driver_id)
        return {"driver": driver, "events": self.store.list_activity(tenant_id, "driver", driver_id)}

    def available_trucks(self, tenant_id: str) -> List[Dict[str, Any]]:
        """ACTIVE trucks not held by any driver who is still active."""
        held = {
            row["truck_id"]
            for row in self.store.list_drivers(tenant_id)
            if row.get("truck_id") is not None and row["status"] != DriverStatus.INACTIVE.value
        }
        return [row for row in self.store.list_trucks(tenant_id, status=TruckStatus.ACTIVE.value) if row["id"] not in held]

    def drivers_with_loads(self, tenant_id: str, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Driver rows joined with the ids of the loads currently pointing at them."""
        drivers = self.store.list_drivers(tenant_id, status=status, search=search)
        by_driver: Dict[int, List[int]] = {}
        for load in self.store.list_loads(tenant_id):
            if load.get("driver_id") is not None:
                by_driver.setdefault(int(load["driver_id"]), []).append(int(load["id"]))
        return [{**row, "load_ids": sorted(by_driver.get(row["id"], []))} for row in drivers]


fleet_service = FleetService(dispatch_store)
