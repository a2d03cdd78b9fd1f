"""SQLite-backed record store for loads, drivers and trucks."""
from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Dict, Iterator, List, Optional

from dispatch_dashboard.core.clock import parse_iso_utc, utc_now
from dispatch_dashboard.core.config import get_settings
from dispatch_dashboard.core.errors import (
    RecordNotFoundError,
    StoreUnavailableError,
    ValidationError,
    VersionConflictError,
)
from dispatch_dashboard.core.logging import logger
from dispatch_dashboard.models.dispatch import (
    TERMINAL_LOAD_STATUSES,
    DriverRecord,
    DriverStatus,
    LoadOrder,
    LoadRecord,
    LoadStatus,
    TruckRecord,
    TruckStatus,
)
from dispatch_dashboard.services.changes import ChangeFeed


LOAD_SEARCH_FIELDS = ("shipper", "origin", "destination", "dispatcher")
LOAD_REQUIRED_FIELDS = ("shipper", "origin", "destination")
LOAD_READONLY_FIELDS = {"id", "created_at", "updated_at", "version", "status_changed_at", "delivered_at"}
DRIVER_READONLY_FIELDS = {"id", "display_name", "created_at", "updated_at", "version"}
TRUCK_READONLY_FIELDS = {"id", "created_at", "updated_at", "version"}


def _json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, default=str)


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="microseconds")


def _blank(value: Any) -> bool:
    return not str(value or "").strip()


def normalize_driver(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map a stored driver row onto the canonical driver shape.

    Upstream rows carry their name as `full_name`, `name`, or split
    `first_name`/`last_name`. The display name is taken from the first of
    those that is present, falling back to ``Driver <id>``.
    """
    driver_id = row.get("id")
    display_name = ""
    for key in ("full_name", "name"):
        candidate = " ".join(str(row.get(key) or "").split())
        if candidate:
            display_name = candidate
            break
    if not display_name:
        parts = [str(row.get(key) or "").strip() for key in ("first_name", "last_name")]
        display_name = " ".join(part for part in parts if part)
    if not display_name:
        display_name = f"Driver {driver_id}"

    fields = {key: value for key, value in row.items() if key in DriverRecord.model_fields}
    fields["display_name"] = display_name
    return DriverRecord(**fields).model_dump(mode="json")


@dataclass
class LoadFilter:
    """Predicates for `DispatchStore.list_loads`."""

    statuses: List[str] = field(default_factory=list)
    search: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    delivered_from: Optional[datetime] = None
    delivered_to: Optional[datetime] = None
    dispatcher: Optional[str] = None
    shipper: Optional[str] = None
    problem_only: bool = False
    driver_id: Optional[int] = None
    order_by: LoadOrder = LoadOrder.STATUS_CHANGED_AT
    descending: bool = True
    limit: Optional[int] = None


class DispatchStore:
    """
    Durable per-record store for the `loads`, `drivers` and `trucks` tables.

    Every method is a single-row read or write. Nothing here spans more than
    one record, so multi-record workflows have to coordinate their own writes.
    Storage failures surface as StoreUnavailableError and missing rows as
    RecordNotFoundError.
    """

    _lock_registry: dict[str, RLock] = {}
    _lock_registry_guard = Lock()

    def __init__(self, db_path: str | None = None, change_feed: ChangeFeed | None = None) -> None:
        settings = get_settings()
        self._db_path = Path((db_path or settings.dispatch_db_path or "./data/dispatch.db").strip())
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._activity_retention = max(100, int(settings.activity_retention or 5000))
        self.change_feed = change_feed or ChangeFeed()
        self._lock = self._get_shared_lock(str(self._db_path.resolve()))
        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            timeout=30.0,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA synchronous = NORMAL")
        self._conn.execute("PRAGMA busy_timeout = 30000")
        self._initialize_schema()

    @classmethod
    def _get_shared_lock(cls, key: str) -> RLock:
        with cls._lock_registry_guard:
            lock = cls._lock_registry.get(key)
            if lock is None:
                lock = RLock()
                cls._lock_registry[key] = lock
            return lock

    def _initialize_schema(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sequences (
                    tenant_id TEXT NOT NULL,
                    key_name TEXT NOT NULL,
                    next_value INTEGER NOT NULL,
                    PRIMARY KEY (tenant_id, key_name)
                );

                CREATE TABLE IF NOT EXISTS loads (
                    tenant_id TEXT NOT NULL,
                    load_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    driver_id INTEGER,
                    problem_flag INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, load_id)
                );

                CREATE INDEX IF NOT EXISTS idx_loads_tenant_status ON loads (tenant_id, status);
                CREATE INDEX IF NOT EXISTS idx_loads_tenant_driver ON loads (tenant_id, driver_id);
                CREATE INDEX IF NOT EXISTS idx_loads_tenant_created ON loads (tenant_id, created_at);

                CREATE TABLE IF NOT EXISTS drivers (
                    tenant_id TEXT NOT NULL,
                    driver_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, driver_id)
                );

                CREATE INDEX IF NOT EXISTS idx_drivers_tenant_status ON drivers (tenant_id, status);

                CREATE TABLE IF NOT EXISTS trucks (
                    tenant_id TEXT NOT NULL,
                    truck_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, truck_id)
                );

                CREATE TABLE IF NOT EXISTS activity (
                    tenant_id TEXT NOT NULL,
                    event_id INTEGER NOT NULL,
                    entity TEXT NOT NULL,
                    entity_id INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    actor TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    details_json TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, event_id)
                );

                CREATE INDEX IF NOT EXISTS idx_activity_tenant_entity
                    ON activity (tenant_id, entity, entity_id, event_id DESC);
                """
            )
            self._conn.commit()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                logger.error("Store operation failed", operation=operation, error=str(exc))
                raise StoreUnavailableError(f"{operation} failed: {exc}") from exc
            except Exception:
                self._conn.rollback()
                raise

    def _next_sequence(self, conn: sqlite3.Connection, tenant_id: str, key: str) -> int:
        row = conn.execute(
            "SELECT next_value FROM sequences WHERE tenant_id = ? AND key_name = ?",
            (tenant_id, key),
        ).fetchone()
        if row is None:
            current = 1
            conn.execute(
                "INSERT INTO sequences (tenant_id, key_name, next_value) VALUES (?, ?, ?)",
                (tenant_id, key, current + 1),
            )
        else:
            current = int(row["next_value"])
            conn.execute(
                "UPDATE sequences SET next_value = ? WHERE tenant_id = ? AND key_name = ?",
                (current + 1, tenant_id, key),
            )
        return current

    def _notify(self, tenant_id: str, table: str) -> None:
        self.change_feed.publish(tenant_id, table)

    @staticmethod
    def _check_version(table: str, record_id: int, current: int, expected: Optional[int]) -> None:
        if expected is not None and int(expected) != current:
            raise VersionConflictError(table, record_id, int(expected), current)

    @staticmethod
    def _check_patch(table: str, patch: Dict[str, Any], readonly: set, allowed: Dict[str, Any]) -> None:
        blocked = sorted(key for key in patch if key in readonly)
        if blocked:
            raise ValidationError(f"Fields {blocked} cannot be written on {table}")
        unknown = sorted(key for key in patch if key not in allowed)
        if unknown:
            raise ValidationError(f"Unknown {table} fields: {unknown}")

    # ------------------------------------------------------------------ loads

    def _save_load(self, conn: sqlite3.Connection, tenant_id: str, record: LoadRecord) -> Dict[str, Any]:
        row = record.model_dump(mode="json")
        conn.execute(
            """
            INSERT INTO loads (
                tenant_id, load_id, status, driver_id, problem_flag, created_at, updated_at, data_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tenant_id, load_id)
            DO UPDATE SET
                status = excluded.status,
                driver_id = excluded.driver_id,
                problem_flag = excluded.problem_flag,
                updated_at = excluded.updated_at,
                data_json = excluded.data_json
            """,
            (
                tenant_id,
                record.id,
                record.status.value,
                record.driver_id,
                1 if record.problem_flag else 0,
                _iso(record.created_at),
                _iso(record.updated_at),
                _json_dumps(row),
            ),
        )
        return row

    def _read_load(self, conn: sqlite3.Connection, tenant_id: str, load_id: int) -> Dict[str, Any]:
        row = conn.execute(
            "SELECT data_json FROM loads WHERE tenant_id = ? AND load_id = ?",
            (tenant_id, int(load_id)),
        ).fetchone()
        if not row:
            raise RecordNotFoundError("loads", load_id)
        return json.loads(row["data_json"])

    def create_load(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        missing = [name for name in LOAD_REQUIRED_FIELDS if _blank(fields.get(name))]
        if missing:
            raise ValidationError(f"Missing required load fields: {', '.join(missing)}")
        self._check_patch("loads", fields, LOAD_READONLY_FIELDS, LoadRecord.model_fields)

        payload = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in fields.items()
            if value is not None
        }
        status = LoadStatus(payload.pop("status", LoadStatus.PLANNED))
        now = utc_now()
        with self._transaction("create_load") as conn:
            load_id = self._next_sequence(conn, tenant_id, "load")
            record = LoadRecord(
                id=load_id,
                status=status,
                created_at=now,
                updated_at=now,
                status_changed_at=now,
                delivered_at=now if status == LoadStatus.DELIVERED else None,
                **payload,
            )
            row = self._save_load(conn, tenant_id, record)
        self._notify(tenant_id, "loads")
        return row

    def get_load(self, tenant_id: str, load_id: int) -> Dict[str, Any]:
        with self._transaction("get_load") as conn:
            return self._read_load(conn, tenant_id, load_id)

    def list_loads(self, tenant_id: str, filters: Optional[LoadFilter] = None) -> List[Dict[str, Any]]:
        filters = filters or LoadFilter()
        clauses = ["tenant_id = ?"]
        params: List[Any] = [tenant_id]
        statuses = [LoadStatus(value).value for value in filters.statuses]
        if statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(statuses)
        if filters.driver_id is not None:
            clauses.append("driver_id = ?")
            params.append(int(filters.driver_id))
        if filters.problem_only:
            clauses.append("problem_flag = 1")
        created_from = parse_iso_utc(filters.created_from)
        if created_from:
            clauses.append("created_at >= ?")
            params.append(_iso(created_from))
        created_to = parse_iso_utc(filters.created_to)
        if created_to:
            clauses.append("created_at < ?")
            params.append(_iso(created_to))

        with self._transaction("list_loads") as conn:
            rows = conn.execute(
                f"SELECT data_json FROM loads WHERE {' AND '.join(clauses)}",
                params,
            ).fetchall()
        loads = [json.loads(row["data_json"]) for row in rows]

        needle = (filters.search or "").strip().lower()
        if needle:
            loads = [
                row for row in loads
                if any(needle in str(row.get(name) or "").lower() for name in LOAD_SEARCH_FIELDS)
            ]
        for name, wanted in (("dispatcher", filters.dispatcher), ("shipper", filters.shipper)):
            if wanted and wanted.strip():
                target = wanted.strip().lower()
                loads = [row for row in loads if str(row.get(name) or "").strip().lower() == target]
        delivered_from = parse_iso_utc(filters.delivered_from)
        delivered_to = parse_iso_utc(filters.delivered_to)
        if delivered_from or delivered_to:
            kept = []
            for row in loads:
                delivered_at = parse_iso_utc(row.get("delivered_at"))
                if delivered_at is None:
                    continue
                if delivered_from and delivered_at < delivered_from:
                    continue
                if delivered_to and delivered_at >= delivered_to:
                    continue
                kept.append(row)
            loads = kept

        loads.sort(key=lambda row: self._load_sort_key(row, filters.order_by), reverse=filters.descending)
        if filters.limit:
            loads = loads[: max(0, int(filters.limit))]
        return loads

    @staticmethod
    def _load_sort_key(row: Dict[str, Any], order_by: LoadOrder) -> tuple:
        if order_by == LoadOrder.RATE:
            return (float(row.get("rate") or 0.0), int(row.get("id") or 0))
        value = row.get(order_by.value)
        if order_by == LoadOrder.STATUS_CHANGED_AT and not value:
            value = row.get("created_at")
        stamp = parse_iso_utc(value)
        # Rows without the timestamp sort after every dated row when descending.
        return (stamp is not None, stamp.timestamp() if stamp else 0.0, int(row.get("id") or 0))

    def update_load(
        self,
        tenant_id: str,
        load_id: int,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Apply a partial update to one load.

        A patch carrying `status` also stamps `status_changed_at`, and
        `delivered_at` when the new status is DELIVERED.
        """
        self._check_patch("loads", patch, LOAD_READONLY_FIELDS, LoadRecord.model_fields)
        for name in LOAD_REQUIRED_FIELDS:
            if name in patch and _blank(patch[name]):
                raise ValidationError(f"Load field '{name}' cannot be blank")

        with self._transaction("update_load") as conn:
            existing = self._read_load(conn, tenant_id, load_id)
            current_version = int(existing.get("version") or 1)
            self._check_version("loads", load_id, current_version, expected_version)

            now = utc_now()
            merged = {**existing, **patch}
            if "status" in patch:
                status = LoadStatus(patch["status"])
                merged["status"] = status.value
                merged["status_changed_at"] = now
                if status == LoadStatus.DELIVERED:
                    merged["delivered_at"] = now
            merged["updated_at"] = now
            merged["version"] = current_version + 1
            row = self._save_load(conn, tenant_id, LoadRecord(**merged))
        self._notify(tenant_id, "loads")
        return row

    def restore_load(self, tenant_id: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """Write a previously read load row back, keeping the version monotonic."""
        load_id = int(snapshot["id"])
        with self._transaction("restore_load") as conn:
            existing = self._read_load(conn, tenant_id, load_id)
            restored = dict(snapshot)
            restored["version"] = int(existing.get("version") or 1) + 1
            restored["updated_at"] = utc_now()
            row = self._save_load(conn, tenant_id, LoadRecord(**restored))
        self._notify(tenant_id, "loads")
        return row

    def delete_load(self, tenant_id: str, load_id: int) -> Dict[str, Any]:
        with self._transaction("delete_load") as conn:
            existing = self._read_load(conn, tenant_id, load_id)
            conn.execute(
                "DELETE FROM loads WHERE tenant_id = ? AND load_id = ?",
                (tenant_id, int(load_id)),
            )
        self._notify(tenant_id, "loads")
        return existing

    # ---------------------------------------------------------------- drivers

    def _save_driver(self, conn: sqlite3.Connection, tenant_id: str, driver: Dict[str, Any]) -> None:
        conn.execute(
            """
            INSERT INTO drivers (tenant_id, driver_id, status, data_json)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(tenant_id, driver_id)
            DO UPDATE SET status = excluded.status, data_json = excluded.data_json
            """,
            (tenant_id, int(driver["id"]), driver["status"], _json_dumps(driver)),
        )

    def _read_driver(self, conn: sqlite3.Connection, tenant_id: str, driver_id: int) -> Dict[str, Any]:
        row = conn.execute(
            "SELECT data_json FROM drivers WHERE tenant_id = ? AND driver_id = ?",
            (tenant_id, int(driver_id)),
        ).fetchone()
        if not row:
            raise RecordNotFoundError("drivers", driver_id)
        return json.loads(row["data_json"])

    def create_driver(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        name_fields = ("name", "full_name", "first_name", "last_name")
        payload = {
            key: (
                (" ".join(value.split()) if key in name_fields else value.strip())
                if isinstance(value, str)
                else value
            )
            for key, value in fields.items()
        }
        payload = {key: value for key, value in payload.items() if value not in (None, "")}
        has_name = any(payload.get(key) for key in ("name", "full_name", "first_name", "last_name"))
        if not has_name:
            raise ValidationError("Driver name is required.")
        self._check_patch("drivers", payload, DRIVER_READONLY_FIELDS, DriverRecord.model_fields)

        now = utc_now()
        with self._transaction("create_driver") as conn:
            driver_id = self._next_sequence(conn, tenant_id, "driver")
            payload.setdefault("status", DriverStatus.AVAILABLE.value)
            driver = normalize_driver(
                {**payload, "id": driver_id, "created_at": now, "updated_at": now, "version": 1}
            )
            self._save_driver(conn, tenant_id, driver)
        self._notify(tenant_id, "drivers")
        return driver

    def get_driver(self, tenant_id: str, driver_id: int) -> Dict[str, Any]:
        with self._transaction("get_driver") as conn:
            return normalize_driver(self._read_driver(conn, tenant_id, driver_id))

    def list_drivers(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        with self._transaction("list_drivers") as conn:
            if status:
                rows = conn.execute(
                    "SELECT data_json FROM drivers WHERE tenant_id = ? AND status = ? ORDER BY driver_id",
                    (tenant_id, DriverStatus(status).value),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT data_json FROM drivers WHERE tenant_id = ? ORDER BY driver_id",
                    (tenant_id,),
                ).fetchall()
        drivers = [normalize_driver(json.loads(row["data_json"])) for row in rows]
        needle = (search or "").strip().lower()
        if needle:
            drivers = [
                row for row in drivers
                if any(needle in str(row.get(name) or "").lower() for name in ("display_name", "phone", "email"))
            ]
        return drivers

    def update_driver(
        self,
        tenant_id: str,
        driver_id: int,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        self._check_patch("drivers", patch, DRIVER_READONLY_FIELDS, DriverRecord.model_fields)
        if "status" in patch:
            patch = {**patch, "status": DriverStatus(patch["status"]).value}

        with self._transaction("update_driver") as conn:
            existing = self._read_driver(conn, tenant_id, driver_id)
            current_version = int(existing.get("version") or 1)
            self._check_version("drivers", driver_id, current_version, expected_version)
            merged = {**existing, **patch, "updated_at": utc_now(), "version": current_version + 1}
            driver = normalize_driver(merged)
            self._save_driver(conn, tenant_id, driver)
        self._notify(tenant_id, "drivers")
        return driver

    def delete_driver(self, tenant_id: str, driver_id: int) -> Dict[str, Any]:
        with self._transaction("delete_driver") as conn:
            existing = self._read_driver(conn, tenant_id, driver_id)
            rows = conn.execute(
                "SELECT load_id, status FROM loads WHERE tenant_id = ? AND driver_id = ?",
                (tenant_id, int(driver_id)),
            ).fetchall()
            active = [str(row["load_id"]) for row in rows if row["status"] not in TERMINAL_LOAD_STATUSES]
            if active:
                raise ValidationError(f"Driver has active loads: {', '.join(active[:5])}")
            conn.execute(
                "DELETE FROM drivers WHERE tenant_id = ? AND driver_id = ?",
                (tenant_id, int(driver_id)),
            )
        self._notify(tenant_id, "drivers")
        return normalize_driver(existing)

    # ----------------------------------------------------------------- trucks

    def _save_truck(self, conn: sqlite3.Connection, tenant_id: str, truck: Dict[str, Any]) -> None:
        conn.execute(
            """
            INSERT INTO trucks (tenant_id, truck_id, status, data_json)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(tenant_id, truck_id)
            DO UPDATE SET status = excluded.status, data_json = excluded.data_json
            """,
            (tenant_id, int(truck["id"]), truck["status"], _json_dumps(truck)),
        )

    def _read_truck(self, conn: sqlite3.Connection, tenant_id: str, truck_id: int) -> Dict[str, Any]:
        row = conn.execute(
            "SELECT data_json FROM trucks WHERE tenant_id = ? AND truck_id = ?",
            (tenant_id, int(truck_id)),
        ).fetchone()
        if not row:
            raise RecordNotFoundError("trucks", truck_id)
        return json.loads(row["data_json"])

    def _unit_number_taken(
        self,
        conn: sqlite3.Connection,
        tenant_id: str,
        unit_number: str,
        exclude_id: Optional[int] = None,
    ) -> bool:
        rows = conn.execute("SELECT truck_id, data_json FROM trucks WHERE tenant_id = ?", (tenant_id,)).fetchall()
        target = unit_number.strip().upper()
        for row in rows:
            if exclude_id is not None and int(row["truck_id"]) == int(exclude_id):
                continue
            if str(json.loads(row["data_json"]).get("unit_number") or "").strip().upper() == target:
                return True
        return False

    def create_truck(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        unit_number = str(fields.get("unit_number") or "").strip()
        if not unit_number:
            raise ValidationError("Truck unit number is required.")
        self._check_patch("trucks", fields, TRUCK_READONLY_FIELDS, TruckRecord.model_fields)

        now = utc_now()
        with self._transaction("create_truck") as conn:
            if self._unit_number_taken(conn, tenant_id, unit_number):
                raise ValidationError(f"Truck unit {unit_number} already exists.")
            truck_id = self._next_sequence(conn, tenant_id, "truck")
            payload = {key: value for key, value in fields.items() if value is not None}
            payload["unit_number"] = unit_number
            truck = TruckRecord(
                id=truck_id, created_at=now, updated_at=now, **payload
            ).model_dump(mode="json")
            self._save_truck(conn, tenant_id, truck)
        self._notify(tenant_id, "trucks")
        return truck

    def get_truck(self, tenant_id: str, truck_id: int) -> Dict[str, Any]:
        with self._transaction("get_truck") as conn:
            return self._read_truck(conn, tenant_id, truck_id)

    def list_trucks(self, tenant_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._transaction("list_trucks") as conn:
            if status:
                rows = conn.execute(
                    "SELECT data_json FROM trucks WHERE tenant_id = ? AND status = ? ORDER BY truck_id",
                    (tenant_id, TruckStatus(status).value),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT data_json FROM trucks WHERE tenant_id = ? ORDER BY truck_id",
                    (tenant_id,),
                ).fetchall()
        return [json.loads(row["data_json"]) for row in rows]

    def update_truck(self, tenant_id: str, truck_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
        self._check_patch("trucks", patch, TRUCK_READONLY_FIELDS, TruckRecord.model_fields)
        if "unit_number" in patch and _blank(patch["unit_number"]):
            raise ValidationError("Truck unit number is required.")

        with self._transaction("update_truck") as conn:
            existing = self._read_truck(conn, tenant_id, truck_id)
            if "unit_number" in patch and self._unit_number_taken(
                conn, tenant_id, str(patch["unit_number"]), exclude_id=truck_id
            ):
                raise ValidationError(f"Truck unit {patch['unit_number']} already exists.")
            merged = {
                **existing,
                **patch,
                "updated_at": utc_now(),
                "version": int(existing.get("version") or 1) + 1,
            }
            truck = TruckRecord(**merged).model_dump(mode="json")
            self._save_truck(conn, tenant_id, truck)
        self._notify(tenant_id, "trucks")
        return truck

    # --------------------------------------------------------------- activity

    def record_activity(
        self,
        tenant_id: str,
        entity: str,
        entity_id: int,
        event_type: str,
        actor: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        timestamp = _iso(utc_now())
        with self._transaction("record_activity") as conn:
            event_id = self._next_sequence(conn, tenant_id, "event")
            event = {
                "event_id": event_id,
                "entity": entity,
                "entity_id": int(entity_id),
                "event_type": event_type,
                "actor": actor,
                "timestamp": timestamp,
                "details": details or {},
            }
            conn.execute(
                """
                INSERT INTO activity (
                    tenant_id, event_id, entity, entity_id, event_type, actor, timestamp, details_json
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tenant_id,
                    event_id,
                    entity,
                    int(entity_id),
                    event_type,
                    actor,
                    timestamp,
                    _json_dumps(event["details"]),
                ),
            )
            conn.execute(
                "DELETE FROM activity WHERE tenant_id = ? AND event_id <= ?",
                (tenant_id, event_id - self._activity_retention),
            )
        return event

    def list_activity(
        self,
        tenant_id: str,
        entity: str,
        entity_id: int,
        limit: int = 300,
    ) -> List[Dict[str, Any]]:
        with self._transaction("list_activity") as conn:
            rows = conn.execute(
                """
                SELECT event_id, entity, entity_id, event_type, actor, timestamp, details_json
                FROM activity
                WHERE tenant_id = ? AND entity = ? AND entity_id = ?
                ORDER BY event_id DESC
                LIMIT ?
                """,
                (tenant_id, entity, int(entity_id), int(limit)),
            ).fetchall()

        return [
            {
                "event_id": row["event_id"],
                "entity": row["entity"],
                "entity_id": row["entity_id"],
                "event_type": row["event_type"],
                "actor": row["actor"],
                "timestamp": row["timestamp"],
                "details": json.loads(row["details_json"]),
            }
            for row in rows
        ]


dispatch_store = DispatchStore()
