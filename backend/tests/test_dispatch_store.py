"""Unit tests for the SQLite record store."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import os
import sys
from pathlib import Path

import pytest


TMP = Path(__file__).resolve().parent / ".tmp_dispatch"
TMP.mkdir(parents=True, exist_ok=True)
os.environ["DISPATCH_DB_PATH"] = str(TMP / "dispatch.db")

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dispatch_dashboard.core.errors import (  # noqa: E402
    RecordNotFoundError,
    StoreUnavailableError,
    ValidationError,
    VersionConflictError,
)
from dispatch_dashboard.models.dispatch import LoadOrder  # noqa: E402
from dispatch_dashboard.services.store import DispatchStore, LoadFilter, normalize_driver  # noqa: E402


TENANT = "store_test"


@pytest.fixture()
def store(tmp_path):
    return DispatchStore(db_path=str(tmp_path / "dispatch.db"))


def _load(store: DispatchStore, **overrides):
    fields = {"shipper": "Acme", "origin": "Dallas, TX", "destination": "Tulsa, OK", "rate": 1200.0}
    fields.update(overrides)
    return store.create_load(TENANT, fields)


def test_create_load_assigns_id_defaults_and_timestamps(store):
    row = _load(store, dispatcher="Sam")
    assert row["id"] == 1
    assert row["status"] == "PLANNED"
    assert row["driver_id"] is None
    assert row["problem_flag"] is False
    assert row["version"] == 1
    assert row["created_at"]
    assert row["status_changed_at"]
    assert row["delivered_at"] is None

    second = _load(store)
    assert second["id"] == 2


def test_create_load_requires_shipper_origin_destination(store):
    with pytest.raises(ValidationError) as excinfo:
        store.create_load(TENANT, {"shipper": "Acme", "origin": "  ", "destination": ""})
    assert "origin" in str(excinfo.value)
    assert "destination" in str(excinfo.value)
    assert store.list_loads(TENANT) == []


def test_get_missing_load_raises_not_found(store):
    with pytest.raises(RecordNotFoundError) as excinfo:
        store.get_load(TENANT, 404)
    assert isinstance(excinfo.value, KeyError)
    assert str(excinfo.value) == "Load 404 not found"


def test_update_load_stamps_status_and_delivered_at(store):
    row = _load(store)
    moved = store.update_load(TENANT, row["id"], {"status": "IN_TRANSIT"})
    assert moved["status"] == "IN_TRANSIT"
    assert moved["status_changed_at"] is not None
    assert moved["delivered_at"] is None
    assert moved["version"] == 2

    delivered = store.update_load(TENANT, row["id"], {"status": "DELIVERED"})
    assert delivered["delivered_at"] is not None

    renamed = store.update_load(TENANT, row["id"], {"shipper": "Acme Freight"})
    assert renamed["status_changed_at"] == delivered["status_changed_at"]


def test_update_load_rejects_readonly_and_blank_required_fields(store):
    row = _load(store)
    with pytest.raises(ValidationError):
        store.update_load(TENANT, row["id"], {"created_at": "2020-01-01T00:00:00Z"})
    with pytest.raises(ValidationError):
        store.update_load(TENANT, row["id"], {"shipper": " "})
    with pytest.raises(ValidationError):
        store.update_load(TENANT, row["id"], {"unknown_field": 1})
    assert store.get_load(TENANT, row["id"])["version"] == 1


def test_update_load_version_conflict(store):
    row = _load(store)
    store.update_load(TENANT, row["id"], {"rate": 900.0}, expected_version=1)
    with pytest.raises(VersionConflictError) as excinfo:
        store.update_load(TENANT, row["id"], {"rate": 800.0}, expected_version=1)
    assert excinfo.value.current == 2
    assert store.get_load(TENANT, row["id"])["rate"] == 900.0


def test_restore_load_writes_snapshot_with_monotonic_version(store):
    row = _load(store)
    store.update_load(TENANT, row["id"], {"driver_id": 7})
    restored = store.restore_load(TENANT, row)
    assert restored["driver_id"] is None
    assert restored["version"] == 3


def test_list_loads_filters_search_and_order(store):
    first = _load(store, shipper="Acme", dispatcher="Sam")
    second = _load(store, shipper="Globex", origin="Austin, TX", rate=500.0)
    third = _load(store, shipper="Initech", destination="Acme Yard", rate=2500.0)
    store.update_load(TENANT, second["id"], {"status": "IN_TRANSIT", "problem_flag": True})

    assert [row["id"] for row in store.list_loads(TENANT)][0] == second["id"]
    assert {row["id"] for row in store.list_loads(TENANT, LoadFilter(search="acme"))} == {first["id"], third["id"]}
    assert [row["id"] for row in store.list_loads(TENANT, LoadFilter(statuses=["IN_TRANSIT"]))] == [second["id"]]
    assert [row["id"] for row in store.list_loads(TENANT, LoadFilter(problem_only=True))] == [second["id"]]
    by_rate = store.list_loads(TENANT, LoadFilter(order_by=LoadOrder.RATE, descending=False))
    assert [row["id"] for row in by_rate] == [second["id"], first["id"], third["id"]]
    assert len(store.list_loads(TENANT, LoadFilter(limit=2))) == 2


def test_delete_load(store):
    row = _load(store)
    deleted = store.delete_load(TENANT, row["id"])
    assert deleted["id"] == row["id"]
    with pytest.raises(RecordNotFoundError):
        store.get_load(TENANT, row["id"])


def test_tenants_are_isolated(store):
    _load(store)
    assert store.list_loads("someone_else") == []
    assert store.create_load("someone_else", {"shipper": "A", "origin": "B", "destination": "C"})["id"] == 1


def test_driver_name_normalization():
    assert normalize_driver({"id": 1, "full_name": "Dana  Diaz"})["display_name"] == "Dana Diaz"
    assert normalize_driver({"id": 2, "name": "Pat", "first_name": "X"})["display_name"] == "Pat"
    assert normalize_driver({"id": 3, "first_name": "Lee", "last_name": "Ortiz"})["display_name"] == "Lee Ortiz"
    assert normalize_driver({"id": 4, "last_name": "Ortiz"})["display_name"] == "Ortiz"
    assert normalize_driver({"id": 5})["display_name"] == "Driver 5"


def test_create_driver_requires_a_name_and_collapses_whitespace(store):
    with pytest.raises(ValidationError):
        store.create_driver(TENANT, {"phone": "555-0100"})
    driver = store.create_driver(TENANT, {"first_name": "  Dana ", "last_name": "Diaz", "phone": " 555-0100 "})
    assert driver["display_name"] == "Dana Diaz"
    assert driver["status"] == "AVAILABLE"
    assert driver["phone"] == "555-0100"


def test_list_drivers_status_and_search(store):
    dana = store.create_driver(TENANT, {"name": "Dana Diaz", "email": "dana@example.com"})
    store.create_driver(TENANT, {"name": "Lee Ortiz", "status": "ON_LEAVE"})
    assert [row["id"] for row in store.list_drivers(TENANT, status="AVAILABLE")] == [dana["id"]]
    assert [row["id"] for row in store.list_drivers(TENANT, search="EXAMPLE")] == [dana["id"]]
    assert len(store.list_drivers(TENANT)) == 2


def test_delete_driver_refused_while_on_active_load(store):
    driver = store.create_driver(TENANT, {"name": "Dana Diaz"})
    load = _load(store)
    store.update_load(TENANT, load["id"], {"driver_id": driver["id"]})
    with pytest.raises(ValidationError):
        store.delete_driver(TENANT, driver["id"])

    store.update_load(TENANT, load["id"], {"status": "DELIVERED"})
    store.delete_driver(TENANT, driver["id"])
    with pytest.raises(RecordNotFoundError):
        store.get_driver(TENANT, driver["id"])


def test_trucks_require_unique_unit_numbers(store):
    truck = store.create_truck(TENANT, {"unit_number": " 101 ", "make": "Volvo"})
    assert truck["unit_number"] == "101"
    assert truck["status"] == "ACTIVE"
    with pytest.raises(ValidationError):
        store.create_truck(TENANT, {"unit_number": "101"})
    with pytest.raises(ValidationError):
        store.create_truck(TENANT, {"unit_number": ""})

    other = store.create_truck(TENANT, {"unit_number": "102"})
    with pytest.raises(ValidationError):
        store.update_truck(TENANT, other["id"], {"unit_number": "101"})
    updated = store.update_truck(TENANT, other["id"], {"status": "MAINTENANCE"})
    assert updated["version"] == 2
    assert [row["id"] for row in store.list_trucks(TENANT, status="ACTIVE")] == [truck["id"]]


def test_activity_newest_first_and_retention(tmp_path, monkeypatch):
    store = DispatchStore(db_path=str(tmp_path / "activity.db"))
    monkeypatch.setattr(store, "_activity_retention", 3)
    for index in range(5):
        store.record_activity(TENANT, "load", 1, f"event_{index}", "tester", {"index": index})
    events = store.list_activity(TENANT, "load", 1)
    assert [event["event_type"] for event in events] == ["event_4", "event_3", "event_2"]
    assert events[0]["details"] == {"index": 4}


def test_storage_failure_surfaces_as_store_unavailable(store):
    row = _load(store)
    store._conn.execute("DROP TABLE loads")
    with pytest.raises(StoreUnavailableError):
        store.get_load(TENANT, row["id"])


def test_concurrent_creates_get_unique_ids(store):
    def _create(index: int) -> int:
        return _load(store, shipper=f"Shipper {index}")["id"]

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(_create, range(60)))

    assert len(set(ids)) == 60


def test_writes_advance_change_feed_revisions(store):
    seen = []
    store.change_feed.subscribe("loads", lambda tenant, table, revision: seen.append((tenant, table, revision)))
    row = _load(store)
    store.update_load(TENANT, row["id"], {"rate": 10.0})
    assert seen == [(TENANT, "loads", 1), (TENANT, "loads", 2)]
    assert store.change_feed.revisions(TENANT) == {"loads": 2, "drivers": 0, "trucks": 0}
