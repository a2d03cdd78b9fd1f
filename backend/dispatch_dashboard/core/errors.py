"""Error taxonomy shared by the store, workflows and routers."""
from __future__ import annotations

from typing import Any, Dict, Optional


class StoreUnavailableError(RuntimeError):
    """The backing store could not be reached or rejected the operation."""


class RecordNotFoundError(KeyError):
    """A read or write referenced a row that does not exist."""

    def __init__(self, table: str, record_id: Any) -> None:
        super().__init__(f"{table} {record_id}")
        self.table = table
        self.record_id = record_id

    def __str__(self) -> str:
        return f"{self.table.rstrip('s').capitalize()} {self.record_id} not found"


class ValidationError(ValueError):
    """Input rejected before reaching the store."""


class VersionConflictError(ValidationError):
    """A write carried an expected_version that no longer matches the row."""

    def __init__(self, table: str, record_id: Any, expected: int, current: int) -> None:
        super().__init__(
            f"Version conflict for {table} {record_id}. expected={expected} current={current}"
        )
        self.expected = expected
        self.current = current


class PartialWriteError(RuntimeError):
    """
    A two-record workflow completed its first write, failed its second, and
    could not restore the first.

    The stored data is inconsistent until an operator reconciles it; `details`
    names the records and the step that completed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}
