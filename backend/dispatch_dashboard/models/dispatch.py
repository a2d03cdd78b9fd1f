"""Domain models for loads, drivers and trucks on the dispatch dashboard."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoadStatus(str, Enum):
    """Lifecycle status for a load. Any status may follow any other."""

    PLANNED = "PLANNED"
    AVAILABLE = "AVAILABLE"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    PROBLEM = "PROBLEM"


TERMINAL_LOAD_STATUSES = frozenset({LoadStatus.DELIVERED.value, LoadStatus.CANCELLED.value})


class DriverStatus(str, Enum):
    """Availability of a driver."""

    AVAILABLE = "AVAILABLE"
    ON_LOAD = "ON_LOAD"
    INACTIVE = "INACTIVE"
    ON_LEAVE = "ON_LEAVE"


class TruckStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"


class IssueType(str, Enum):
    """Operational issue attached to a problem-flagged load."""

    POD_MISSING = "POD_MISSING"
    LATE_DELIVERY = "LATE_DELIVERY"
    TRACKING_OFFLINE = "TRACKING_OFFLINE"
    NO_DRIVER_RESPONSE = "NO_DRIVER_RESPONSE"
    APPOINTMENT_AT_RISK = "APPOINTMENT_AT_RISK"
    DOCUMENT_ERROR = "DOCUMENT_ERROR"
    OTHER = "OTHER"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"


class LoadOrder(str, Enum):
    STATUS_CHANGED_AT = "status_changed_at"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    DELIVERED_AT = "delivered_at"
    RATE = "rate"


# --------------------------------------------------------------------------- loads


class LoadCreateRequest(BaseModel):
    """Request payload to create a load."""

    shipper: str
    origin: str
    destination: str
    dispatcher: str = ""
    rate: float = Field(default=0.0, ge=0)
    miles: float = Field(default=0.0, ge=0)
    status: LoadStatus = LoadStatus.PLANNED
    notes: Optional[str] = None


class LoadUpdateRequest(BaseModel):
    """Patch fields for an existing load. Status and driver go through workflows."""

    shipper: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    dispatcher: Optional[str] = None
    rate: Optional[float] = Field(default=None, ge=0)
    miles: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    ops_notes: Optional[str] = None
    settlement_status: Optional[str] = None
    final_notes: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=1)


class LoadRecord(BaseModel):
    """Persisted load row."""

    id: int
    shipper: str
    origin: str
    destination: str
    dispatcher: str = ""
    rate: float = Field(default=0.0, ge=0)
    miles: float = 0.0
    status: LoadStatus = LoadStatus.PLANNED
    driver_id: Optional[int] = None
    problem_flag: bool = False
    issue_type: Optional[IssueType] = None
    issue_severity: Optional[Severity] = None
    notes: Optional[str] = None
    ops_notes: Optional[str] = None
    settlement_status: Optional[str] = None
    final_notes: Optional[str] = None
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    status_changed_at: datetime = Field(default_factory=_utcnow)
    delivered_at: Optional[datetime] = None


class LoadStatusTransitionRequest(BaseModel):
    """Move a load to any status."""

    status: LoadStatus
    expected_version: Optional[int] = Field(default=None, ge=1)


class DriverAssignmentRequest(BaseModel):
    driver_id: int
    expected_version: Optional[int] = Field(default=None, ge=1)


class LoadUnassignRequest(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)


class ProblemFlagRequest(BaseModel):
    """Set or clear the problem flag without touching status."""

    problem_flag: bool = True
    issue_type: Optional[IssueType] = None
    notes: Optional[str] = None


# ------------------------------------------------------------------------- drivers


class DriverCreateRequest(BaseModel):
    """Request payload to add a driver. Either `name` or first/last is required."""

    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: DriverStatus = DriverStatus.AVAILABLE
    cdl_number: Optional[str] = None
    cdl_expiration: Optional[date] = None
    notes: Optional[str] = None


class DriverUpdateRequest(BaseModel):
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    cdl_number: Optional[str] = None
    cdl_expiration: Optional[date] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=1)


class DriverStatusRequest(BaseModel):
    """Direct status write used by operators to reconcile stuck drivers."""

    status: DriverStatus


class TruckAssignmentRequest(BaseModel):
    truck_id: int


class DriverRecord(BaseModel):
    """Canonical driver shape produced at the store boundary."""

    id: int
    display_name: str
    name: Optional[str] = None
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: DriverStatus = DriverStatus.AVAILABLE
    phone: Optional[str] = None
    email: Optional[str] = None
    truck_id: Optional[int] = None
    cdl_number: Optional[str] = None
    cdl_expiration: Optional[date] = None
    notes: Optional[str] = None
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# -------------------------------------------------------------------------- trucks


class TruckCreateRequest(BaseModel):
    unit_number: str
    status: TruckStatus = TruckStatus.ACTIVE
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900)
    vin: Optional[str] = None
    notes: Optional[str] = None


class TruckUpdateRequest(BaseModel):
    unit_number: Optional[str] = None
    status: Optional[TruckStatus] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900)
    vin: Optional[str] = None
    notes: Optional[str] = None


class TruckRecord(BaseModel):
    id: int
    unit_number: str
    status: TruckStatus = TruckStatus.ACTIVE
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    vin: Optional[str] = None
    notes: Optional[str] = None
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ------------------------------------------------------------------------- results


class WorkflowResult(BaseModel):
    """Outcome of an assignment or status workflow."""

    load: Dict[str, Any]
    driver: Optional[Dict[str, Any]] = None
    writes: int = 0
    noop: bool = False


class WeeklyPoint(BaseModel):
    day: date
    load_count: int = 0
    revenue: float = 0.0


class DeliveredSummary(BaseModel):
    count: int = 0
    gross: float = 0.0
    miles: float = 0.0
    rate_per_mile: float = 0.0


class DashboardMetrics(BaseModel):
    """Dashboard cards and chart series, recomputed per request."""

    reference_date: date
    total_revenue: float
    active_loads: int
    loads_this_week: int
    loads_month_to_date: int
    problem_loads: int
    problem_rate_7d: int
    aging_undelivered: int
    status_counts: Dict[str, int]
    revenue_by_dispatcher: Dict[str, float]
    driver_status_counts: Dict[str, int]
    weekly_series: List[WeeklyPoint]


class ProblemBoardItem(BaseModel):
    id: int
    shipper: str = ""
    origin: str = ""
    destination: str = ""
    driver: str = ""
    issue_type: IssueType = IssueType.OTHER
    severity: Severity = Severity.MINOR
    status: str = "UNKNOWN"
    notes: str = ""
    updated_at: Optional[datetime] = None


class ProblemBoardStats(BaseModel):
    total: int = 0
    critical: int = 0
    major: int = 0
    minor: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class ProblemBoardResponse(BaseModel):
    items: List[ProblemBoardItem]
    stats: ProblemBoardStats
