"""Problem board: flagged loads with inferred severity."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from dispatch_dashboard.core.clock import utc_now
from dispatch_dashboard.core.errors import StoreUnavailableError
from dispatch_dashboard.core.logging import logger
from dispatch_dashboard.models.dispatch import (
    IssueType,
    LoadOrder,
    ProblemBoardItem,
    ProblemBoardResponse,
    ProblemBoardStats,
    Severity,
)
from dispatch_dashboard.services.store import DispatchStore, LoadFilter, dispatch_store


SEVERITY_BY_ISSUE = {
    IssueType.LATE_DELIVERY.value: Severity.CRITICAL,
    IssueType.NO_DRIVER_RESPONSE.value: Severity.CRITICAL,
    IssueType.TRACKING_OFFLINE.value: Severity.MAJOR,
    IssueType.APPOINTMENT_AT_RISK.value: Severity.MAJOR,
}


def infer_severity(issue_type: Optional[str]) -> Severity:
    """Severity implied by an issue type when none has been stored."""
    return SEVERITY_BY_ISSUE.get(str(issue_type or "").upper(), Severity.MINOR)


def next_severity(current: Severity) -> Severity:
    return Severity.MAJOR if current == Severity.MINOR else Severity.CRITICAL


def _issue_type(value: Any) -> IssueType:
    try:
        return IssueType(str(value or "").upper())
    except ValueError:
        return IssueType.OTHER


def normalize_problem(row: Dict[str, Any], driver_names: Dict[int, str]) -> ProblemBoardItem:
    issue_type = _issue_type(row.get("issue_type"))
    stored = row.get("issue_severity")
    severity = Severity(stored) if stored in {item.value for item in Severity} else infer_severity(issue_type.value)
    driver_id = row.get("driver_id")
    return ProblemBoardItem(
        id=int(row["id"]),
        shipper=str(row.get("shipper") or ""),
        origin=str(row.get("origin") or ""),
        destination=str(row.get("destination") or ""),
        driver=driver_names.get(driver_id, "") if driver_id is not None else "",
        issue_type=issue_type,
        severity=severity,
        status=str(row.get("status") or "UNKNOWN").upper(),
        notes=str(row.get("ops_notes") or row.get("notes") or ""),
        updated_at=row.get("updated_at"),
    )


def board_stats(items: List[ProblemBoardItem]) -> ProblemBoardStats:
    by_type: Dict[str, int] = {}
    for issue_type in IssueType:
        count = sum(1 for item in items if item.issue_type == issue_type)
        if count:
            by_type[issue_type.value] = count
    return ProblemBoardStats(
        total=len(items),
        critical=sum(1 for item in items if item.severity == Severity.CRITICAL),
        major=sum(1 for item in items if item.severity == Severity.MAJOR),
        minor=sum(1 for item in items if item.severity == Severity.MINOR),
        by_type=by_type,
    )


class ProblemBoard:
    """Reads and actions behind the problem board screen."""

    def __init__(self, store: DispatchStore) -> None:
        self.store = store

    def board(
        self,
        tenant_id: str,
        search: Optional[str] = None,
        issue_type: Optional[IssueType] = None,
        severity: Optional[Severity] = None,
        only_critical: bool = False,
    ) -> ProblemBoardResponse:
        rows = self.store.list_loads(
            tenant_id,
            LoadFilter(problem_only=True, order_by=LoadOrder.UPDATED_AT),
        )
        names = {row["id"]: row["display_name"] for row in self.store.list_drivers(tenant_id)}
        items = [normalize_problem(row, names) for row in rows]
        stats = board_stats(items)

        needle = (search or "").strip().lower()
        if needle:
            items = [
                item for item in items
                if needle in str(item.id)
                or any(
                    needle in value.lower()
                    for value in (item.shipper, item.origin, item.destination, item.driver, item.status)
                )
            ]
        if issue_type is not None:
            items = [item for item in items if item.issue_type == issue_type]
        if severity is not None:
            items = [item for item in items if item.severity == severity]
        if only_critical:
            items = [item for item in items if item.severity == Severity.CRITICAL]
        return ProblemBoardResponse(items=items, stats=stats)

    def escalate(self, tenant_id: str, load_id: int, actor: str = "system") -> Dict[str, Any]:
        """Raise the load's severity one step and note it at the top of ops_notes."""
        row = self.store.get_load(tenant_id, load_id)
        current = normalize_problem(row, {}).severity
        target = next_severity(current)
        stamp = utc_now().strftime("%Y-%m-%d %H:%M UTC")
        previous = str(row.get("ops_notes") or "")
        load = self.store.update_load(
            tenant_id,
            load_id,
            {
                "issue_severity": target.value,
                "ops_notes": f"[Escalated to {target.value} at {stamp}]\n{previous}".rstrip("\n"),
            },
        )
        try:
            self.store.record_activity(
                tenant_id,
                "load",
                load_id,
                "problem_escalated",
                actor,
                {"from_severity": current.value, "to_severity": target.value},
            )
        except StoreUnavailableError as exc:
            logger.warning("Activity event not recorded", event_type="problem_escalated", error=str(exc))
        logger.info("Problem escalated", tenant_id=tenant_id, load_id=load_id, severity=target.value)
        return load


problem_board = ProblemBoard(dispatch_store)
