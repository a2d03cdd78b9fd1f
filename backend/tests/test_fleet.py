"""Unit tests for driver roster and truck pool operations."""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


TMP = Path(__file__).resolve().parent / ".tmp_dispatch"
TMP.mkdir(parents=True, exist_ok=True)
os.environ["DISPATCH_DB_PATH"] = str(TMP / "dispatch.db")

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dispatch_dashboard.core.errors import ValidationError  # noqa: E402
from dispatch_dashboard.models.dispatch import DriverCreateRequest, DriverStatus  # noqa: E402
from dispatch_dashboard.services.fleet import FleetService  # noqa: E402
from dispatch_dashboard.services.store import DispatchStore  # noqa: E402


TENANT = "fleet_test"


@pytest.fixture()
def store(tmp_path):
    return DispatchStore(db_path=str(tmp_path / "dispatch.db"))


@pytest.fixture()
def fleet(store):
    return FleetService(store)


def _driver(fleet: FleetService, name: str = "Dana Diaz", **extra):
    return fleet.create_driver(TENANT, DriverCreateRequest(name=name, **extra), actor="sam")


def test_assign_truck_lifts_inactive_driver(fleet, store):
    truck = store.create_truck(TENANT, {"unit_number": "101"})
    driver = _driver(fleet, status=DriverStatus.INACTIVE)

    updated = fleet.assign_truck(TENANT, driver["id"], truck["id"], actor="sam")

    assert updated["truck_id"] == truck["id"]
    assert updated["status"] == "AVAILABLE"
    events = [event["event_type"] for event in store.list_activity(TENANT, "driver", driver["id"])]
    assert events == ["truck_assigned", "driver_created"]


def test_truck_held_by_active_driver_is_not_available(fleet, store):
    held = store.create_truck(TENANT, {"unit_number": "101"})
    free = store.create_truck(TENANT, {"unit_number": "102"})
    store.create_truck(TENANT, {"unit_number": "103", "status": "MAINTENANCE"})
    dana = _driver(fleet)
    lee = _driver(fleet, name="Lee Ortiz")
    fleet.assign_truck(TENANT, dana["id"], held["id"])

    assert [row["id"] for row in fleet.available_trucks(TENANT)] == [free["id"]]
    with pytest.raises(ValidationError):
        fleet.assign_truck(TENANT, lee["id"], held["id"])


def test_inactivate_driver_frees_truck(fleet, store):
    truck = store.create_truck(TENANT, {"unit_number": "101"})
    driver = _driver(fleet)
    fleet.assign_truck(TENANT, driver["id"], truck["id"])

    inactive = fleet.inactivate_driver(TENANT, driver["id"])

    assert inactive["status"] == "INACTIVE"
    assert inactive["truck_id"] is None
    assert [row["id"] for row in fleet.available_trucks(TENANT)] == [truck["id"]]


def test_unassign_truck_without_truck_is_noop(fleet):
    driver = _driver(fleet)
    assert fleet.unassign_truck(TENANT, driver["id"])["version"] == driver["version"]


def test_assign_truck_rejects_truck_in_maintenance(fleet, store):
    truck = store.create_truck(TENANT, {"unit_number": "101", "status": "MAINTENANCE"})
    driver = _driver(fleet)
    with pytest.raises(ValidationError):
        fleet.assign_truck(TENANT, driver["id"], truck["id"])


def test_set_status_records_transition(fleet, store):
    driver = _driver(fleet)
    store.update_driver(TENANT, driver["id"], {"status": "ON_LOAD"})

    released = fleet.set_status(TENANT, driver["id"], DriverStatus.AVAILABLE, actor="ops")

    assert released["status"] == "AVAILABLE"
    latest = store.list_activity(TENANT, "driver", driver["id"])[0]
    assert latest["event_type"] == "driver_status_changed"
    assert latest["details"] == {"from": "ON_LOAD", "to": "AVAILABLE"}


def test_drivers_with_loads_lists_referencing_loads(fleet, store):
    driver = _driver(fleet)
    first = store.create_load(TENANT, {"shipper": "Acme", "origin": "A", "destination": "B"})
    second = store.create_load(TENANT, {"shipper": "Globex", "origin": "A", "destination": "B"})
    store.update_load(TENANT, first["id"], {"driver_id": driver["id"]})
    store.update_load(TENANT, second["id"], {"driver_id": driver["id"]})

    rows = fleet.drivers_with_loads(TENANT)
    assert rows[0]["load_ids"] == [first["id"], second["id"]]
