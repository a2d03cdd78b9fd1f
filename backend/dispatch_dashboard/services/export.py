"""CSV export of load rows."""
from __future__ import annotations

import csv
import io
from typing import Any, Dict, Iterable, Sequence


DEFAULT_LOAD_COLUMNS = (
    "id",
    "created_at",
    "shipper",
    "origin",
    "destination",
    "dispatcher",
    "rate",
    "miles",
    "status",
    "driver_id",
    "problem_flag",
    "delivered_at",
    "settlement_status",
    "final_notes",
)


def loads_to_csv(
    rows: Iterable[Dict[str, Any]],
    columns: Sequence[str] = DEFAULT_LOAD_COLUMNS,
    delimiter: str = ",",
) -> str:
    """
    Render rows as CSV text with a header line.

    Fields holding the delimiter, a quote or a line break are quoted with
    embedded quotes doubled; missing values are written as empty fields.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if row.get(column) is None else row.get(column) for column in columns])
    return buffer.getvalue()
