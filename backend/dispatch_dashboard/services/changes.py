"""Per-table change notifications for live dashboard refresh."""
from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Callable, Dict, List, Tuple

from dispatch_dashboard.core.logging import logger


ChangeCallback = Callable[[str, str, int], None]


class ChangeFeed:
    """
    Publishes "table X changed" after every successful store write.

    Notifications carry only the tenant, table name and the table's new
    revision. They are advisory: subscribers must re-fetch to learn what
    changed and must not rely on one notification per write.
    """

    TABLES = ("loads", "drivers", "trucks")

    def __init__(self) -> None:
        self._lock = Lock()
        self._revisions: Dict[Tuple[str, str], int] = defaultdict(int)
        self._subscribers: Dict[str, List[ChangeCallback]] = defaultdict(list)

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback for one table and return its unsubscribe function."""
        if table not in self.TABLES:
            raise ValueError(f"Unknown table '{table}'")
        with self._lock:
            self._subscribers[table].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return _unsubscribe

    def publish(self, tenant_id: str, table: str) -> int:
        with self._lock:
            self._revisions[(tenant_id, table)] += 1
            revision = self._revisions[(tenant_id, table)]
            callbacks = list(self._subscribers.get(table, ()))

        for callback in callbacks:
            try:
                callback(tenant_id, table, revision)
            except Exception as exc:
                logger.warning(
                    "Change subscriber failed",
                    table=table,
                    tenant_id=tenant_id,
                    error=str(exc),
                )
        return revision

    def revisions(self, tenant_id: str) -> Dict[str, int]:
        with self._lock:
            return {table: self._revisions.get((tenant_id, table), 0) for table in self.TABLES}
