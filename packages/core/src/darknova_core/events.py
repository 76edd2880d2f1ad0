"""In-process change feed.

Services publish one event per committed mutation; the API layer registers a
listener that forwards events to websocket clients, which then re-fetch the
affected collection. Listeners that raise are dropped.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Set

logger = logging.getLogger("darknova_core.events")


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: str  # insert | update | delete, or signed_in | signed_out for auth
    record_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {"type": "change", "table": self.table, "action": self.action, "id": self.record_id}


ChangeListener = Callable[[ChangeEvent], None]


class ChangeFeed:
    def __init__(self) -> None:
        self._listeners: Set[ChangeListener] = set()
        self._lock = threading.Lock()

    def subscribe(self, cb: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.add(cb)
        return lambda: self.unsubscribe(cb)

    def unsubscribe(self, cb: ChangeListener) -> None:
        with self._lock:
            self._listeners.discard(cb)

    def publish(self, table: str, action: str, record_id: Optional[str] = None) -> ChangeEvent:
        event = ChangeEvent(table=table, action=action, record_id=record_id)
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb(event)
            except Exception:
                logger.warning("events.listener dropped table=%s action=%s", table, action, exc_info=True)
                self.unsubscribe(cb)
        return event

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["ChangeEvent", "ChangeFeed", "ChangeListener"]
