"""Unit tests for CSV export and the change feed."""
from __future__ import annotations

import csv
import io
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dispatch_dashboard.services.changes import ChangeFeed  # noqa: E402
from dispatch_dashboard.services.export import loads_to_csv  # noqa: E402


def test_csv_quotes_awkward_fields_and_parses_back():
    rows = [
        {"id": 1, "shipper": 'Acme "Rush" Freight', "origin": "Dallas, TX", "final_notes": "line one\nline two"},
        {"id": 2, "shipper": "Globex", "origin": "Austin", "final_notes": None},
    ]
    columns = ("id", "shipper", "origin", "final_notes")

    text = loads_to_csv(rows, columns=columns)

    assert text.splitlines()[0] == "id,shipper,origin,final_notes"
    assert '"Acme ""Rush"" Freight"' in text
    assert '"Dallas, TX"' in text
    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[1] == ["1", 'Acme "Rush" Freight', "Dallas, TX", "line one\nline two"]
    assert parsed[2] == ["2", "Globex", "Austin", ""]


def test_csv_header_only_for_no_rows():
    assert loads_to_csv([], columns=("id", "status")) == "id,status\n"


def test_change_feed_revisions_are_per_tenant_and_table():
    feed = ChangeFeed()
    assert feed.publish("a", "loads") == 1
    assert feed.publish("a", "loads") == 2
    assert feed.publish("b", "drivers") == 1
    assert feed.revisions("a") == {"loads": 2, "drivers": 0, "trucks": 0}
    assert feed.revisions("b") == {"loads": 0, "drivers": 1, "trucks": 0}


def test_change_feed_failing_subscriber_does_not_break_publish():
    feed = ChangeFeed()
    received = []

    def _broken(tenant_id, table, revision):
        raise RuntimeError("subscriber crashed")

    feed.subscribe("loads", _broken)
    unsubscribe = feed.subscribe("loads", lambda tenant_id, table, revision: received.append(revision))

    assert feed.publish("a", "loads") == 1
    assert received == [1]

    unsubscribe()
    feed.publish("a", "loads")
    assert received == [1]


def test_change_feed_rejects_unknown_table():
    with pytest.raises(ValueError):
        ChangeFeed().subscribe("invoices", lambda *args: None)
