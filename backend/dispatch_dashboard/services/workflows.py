"""Driver assignment and load status workflows."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from dispatch_dashboard.core.errors import PartialWriteError, RecordNotFoundError, StoreUnavailableError
from dispatch_dashboard.core.logging import logger
from dispatch_dashboard.models.dispatch import (
    DriverStatus,
    IssueType,
    LoadCreateRequest,
    LoadStatus,
    LoadUpdateRequest,
    WorkflowResult,
)
from dispatch_dashboard.services.store import DispatchStore, dispatch_store


class DispatchWorkflows:
    """
    Orchestrates the two-record writes that bind drivers to loads.

    The store only offers single-row writes. Each workflow writes the load
    first and the driver second; when the driver write fails the load is put
    back to the snapshot taken before the workflow started. If that restore
    also fails, PartialWriteError reports what is left for an operator to fix.
    Concurrent workflows on the same load are last-write-wins unless the
    caller passes the load's expected_version.
    """

    def __init__(self, store: DispatchStore) -> None:
        self.store = store

    # ------------------------------------------------------------- helpers

    def _record(
        self,
        tenant_id: str,
        entity: str,
        entity_id: int,
        event_type: str,
        actor: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            self.store.record_activity(tenant_id, entity, entity_id, event_type, actor, details)
        except StoreUnavailableError as exc:
            logger.warning(
                "Activity event not recorded",
                event_type=event_type,
                entity=entity,
                entity_id=entity_id,
                error=str(exc),
            )

    def _second_write(
        self,
        tenant_id: str,
        snapshot: Dict[str, Any],
        driver_id: int,
        step: str,
        actor: str,
        write: Callable[[], Optional[Dict[str, Any]]],
    ) -> Optional[Dict[str, Any]]:
        load_id = int(snapshot["id"])
        try:
            return write()
        except (StoreUnavailableError, RecordNotFoundError) as exc:
            logger.warning(
                "Driver write failed, restoring load",
                tenant_id=tenant_id,
                load_id=load_id,
                driver_id=driver_id,
                step=step,
                error=str(exc),
            )
            try:
                self.store.restore_load(tenant_id, snapshot)
            except StoreUnavailableError as restore_exc:
                details = {
                    "load_id": load_id,
                    "driver_id": driver_id,
                    "completed_step": step,
                    "driver_error": str(exc),
                    "restore_error": str(restore_exc),
                }
                logger.error("Load restore failed, reconciliation required", tenant_id=tenant_id, **details)
                self._record(tenant_id, "load", load_id, "reconciliation_required", actor, details)
                raise PartialWriteError(
                    f"Load {load_id} was written but driver {driver_id} was not; manual reconciliation required",
                    details,
                ) from exc
            raise

    # ---------------------------------------------------------- load records

    def create_load(self, tenant_id: str, request: LoadCreateRequest, actor: str = "system") -> Dict[str, Any]:
        row = self.store.create_load(tenant_id, request.model_dump(exclude_none=True))
        self._record(
            tenant_id,
            "load",
            row["id"],
            "load_created",
            actor,
            {"status": row["status"], "dispatcher": row.get("dispatcher")},
        )
        logger.info("Load created", tenant_id=tenant_id, load_id=row["id"], status=row["status"])
        return row

    def update_load(
        self,
        tenant_id: str,
        load_id: int,
        request: LoadUpdateRequest,
        actor: str = "system",
    ) -> Dict[str, Any]:
        patch = request.model_dump(exclude_none=True)
        expected_version = patch.pop("expected_version", None)
        row = self.store.update_load(tenant_id, load_id, patch, expected_version=expected_version)
        self._record(tenant_id, "load", load_id, "load_updated", actor, {"fields": sorted(patch.keys())})
        return row

    def delete_load(self, tenant_id: str, load_id: int, actor: str = "system") -> Dict[str, Any]:
        """
        Delete a load. An attached driver keeps its status; the workflow does
        not release it.
        """
        row = self.store.delete_load(tenant_id, load_id)
        self._record(tenant_id, "load", load_id, "load_deleted", actor, {"driver_id": row.get("driver_id")})
        if row.get("driver_id") is not None:
            logger.warning(
                "Deleted load still had a driver",
                tenant_id=tenant_id,
                load_id=load_id,
                driver_id=row.get("driver_id"),
            )
        return row

    def timeline(self, tenant_id: str, load_id: int) -> Dict[str, Any]:
        load = self.store.get_load(tenant_id, load_id)
        return {
            "load": load,
            "events": self.store.list_activity(tenant_id, "load", load_id),
        }

    # ---------------------------------------------------------- assignment

    def assignable_drivers(self, tenant_id: str, load_id: int) -> List[Dict[str, Any]]:
        """Drivers offered for a load: every AVAILABLE driver plus the one already on it."""
        load = self.store.get_load(tenant_id, load_id)
        candidates = self.store.list_drivers(tenant_id, status=DriverStatus.AVAILABLE.value)
        current_id = load.get("driver_id")
        if current_id is not None and all(row["id"] != current_id for row in candidates):
            try:
                candidates.append(self.store.get_driver(tenant_id, current_id))
            except RecordNotFoundError:
                logger.warning("Load references a missing driver", load_id=load_id, driver_id=current_id)
        return candidates

    def assign_driver(
        self,
        tenant_id: str,
        load_id: int,
        driver_id: int,
        actor: str = "system",
        expected_version: Optional[int] = None,
    ) -> WorkflowResult:
        """
        Bind a driver to a load: set `loads.driver_id`, then mark the driver ON_LOAD.

        A driver already on another load is not cleared from it, and a driver
        being replaced on this load is not released.
        """
        snapshot = self.store.get_load(tenant_id, load_id)
        driver = self.store.get_driver(tenant_id, driver_id)
        if driver["status"] != DriverStatus.AVAILABLE.value and snapshot.get("driver_id") != driver_id:
            logger.warning(
                "Assigning driver who is not available",
                tenant_id=tenant_id,
                load_id=load_id,
                driver_id=driver_id,
                driver_status=driver["status"],
            )

        load = self.store.update_load(
            tenant_id,
            load_id,
            {"driver_id": driver_id},
            expected_version=expected_version,
        )
        driver = self._second_write(
            tenant_id,
            snapshot,
            driver_id,
            "load.driver_id set",
            actor,
            lambda: self.store.update_driver(tenant_id, driver_id, {"status": DriverStatus.ON_LOAD.value}),
        )

        details = {"driver_id": driver_id, "previous_driver_id": snapshot.get("driver_id")}
        self._record(tenant_id, "load", load_id, "driver_assigned", actor, details)
        self._record(tenant_id, "driver", driver_id, "driver_assigned", actor, {"load_id": load_id})
        logger.info("Driver assigned", tenant_id=tenant_id, load_id=load_id, driver_id=driver_id)
        return WorkflowResult(load=load, driver=driver, writes=2)

    def unassign_driver(
        self,
        tenant_id: str,
        load_id: int,
        actor: str = "system",
        expected_version: Optional[int] = None,
    ) -> WorkflowResult:
        """Release the load's driver. A load without a driver is left untouched."""
        snapshot = self.store.get_load(tenant_id, load_id)
        driver_id = snapshot.get("driver_id")
        if driver_id is None:
            return WorkflowResult(load=snapshot, writes=0, noop=True)

        load = self.store.update_load(
            tenant_id,
            load_id,
            {"driver_id": None},
            expected_version=expected_version,
        )
        driver = self._release_driver(tenant_id, snapshot, driver_id, actor, "load.driver_id cleared")
        details = {"driver_id": driver_id}
        if driver is None:
            details["driver_missing"] = True
        self._record(tenant_id, "load", load_id, "driver_released", actor, details)
        logger.info("Driver unassigned", tenant_id=tenant_id, load_id=load_id, driver_id=driver_id)
        return WorkflowResult(load=load, driver=driver, writes=2)

    def _release_driver(
        self,
        tenant_id: str,
        snapshot: Dict[str, Any],
        driver_id: int,
        actor: str,
        step: str,
    ) -> Optional[Dict[str, Any]]:
        def _write() -> Optional[Dict[str, Any]]:
            try:
                return self.store.update_driver(tenant_id, driver_id, {"status": DriverStatus.AVAILABLE.value})
            except RecordNotFoundError:
                # The reference is weak; a deleted driver leaves nothing to release.
                logger.warning("Released driver no longer exists", load_id=snapshot.get("id"), driver_id=driver_id)
                return None

        driver = self._second_write(tenant_id, snapshot, driver_id, step, actor, _write)
        if driver is None:
            return None
        self._record(tenant_id, "driver", driver_id, "driver_released", actor, {"load_id": snapshot.get("id")})
        return driver

    # ------------------------------------------------------ status changes

    def transition_status(
        self,
        tenant_id: str,
        load_id: int,
        status: LoadStatus | str,
        actor: str = "system",
        expected_version: Optional[int] = None,
    ) -> WorkflowResult:
        """
        Set a load's status. Every status is reachable from every other.

        Entering DELIVERED with a driver attached clears `driver_id` in the
        same load write and then returns the driver to AVAILABLE.
        """
        next_status = LoadStatus(status)
        snapshot = self.store.get_load(tenant_id, load_id)
        previous_status = snapshot.get("status")
        driver_id = snapshot.get("driver_id")
        releases_driver = next_status == LoadStatus.DELIVERED and driver_id is not None

        patch: Dict[str, Any] = {"status": next_status.value}
        if releases_driver:
            patch["driver_id"] = None
        load = self.store.update_load(tenant_id, load_id, patch, expected_version=expected_version)
        self._record(
            tenant_id,
            "load",
            load_id,
            "load_status_changed",
            actor,
            {"from_status": previous_status, "to_status": next_status.value, "version": load.get("version")},
        )

        driver = None
        writes = 1
        if releases_driver:
            driver = self._release_driver(tenant_id, snapshot, driver_id, actor, "load delivered")
            details = {"driver_id": driver_id, "reason": "delivered"}
            if driver is None:
                details["driver_missing"] = True
            self._record(tenant_id, "load", load_id, "driver_released", actor, details)
            writes = 2

        logger.info(
            "Load status changed",
            tenant_id=tenant_id,
            load_id=load_id,
            from_status=previous_status,
            to_status=next_status.value,
        )
        return WorkflowResult(load=load, driver=driver, writes=writes)

    def set_problem_flag(
        self,
        tenant_id: str,
        load_id: int,
        flagged: bool,
        actor: str = "system",
        issue_type: Optional[IssueType | str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Toggle the problem flag. The load's status is never touched."""
        patch: Dict[str, Any] = {"problem_flag": bool(flagged)}
        if flagged and issue_type is not None:
            patch["issue_type"] = IssueType(issue_type).value
        if notes:
            existing = self.store.get_load(tenant_id, load_id)
            previous = str(existing.get("ops_notes") or "")
            patch["ops_notes"] = f"{notes.strip()}\n{previous}".strip()
        load = self.store.update_load(tenant_id, load_id, patch)
        event_type = "problem_flagged" if flagged else "problem_resolved"
        self._record(tenant_id, "load", load_id, event_type, actor, {"issue_type": patch.get("issue_type")})
        return load


dispatch_workflows = DispatchWorkflows(dispatch_store)
