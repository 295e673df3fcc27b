"""
Short-lived per-source snapshot cache.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from goldwatch.database.models import PriceSnapshot

Clock = Callable[[], datetime]


@dataclass
class _Entry:
    snapshot: PriceSnapshot
    stored_at: datetime


class PriceCache:
    """
    Per-source memo of the last good snapshot.

    Entries expire ``ttl`` after insertion, measured with the injected clock.
    Only the aggregator writes; reads are lock-free dict lookups.
    """

    def __init__(self, clock: Clock, ttl: timedelta = timedelta(minutes=15)):
        self.clock = clock
        self.ttl = ttl
        self._entries: dict[str, _Entry] = {}

    def get(self, source_id: str) -> Optional[PriceSnapshot]:
        """Fresh snapshot for a source, or None if missing or expired."""
        entry = self._entries.get(source_id)
        if entry is None:
            return None
        if self.clock() - entry.stored_at >= self.ttl:
            return None
        return entry.snapshot

    def put(self, source_id: str, snapshot: PriceSnapshot) -> None:
        self._entries[source_id] = _Entry(snapshot=snapshot, stored_at=self.clock())

    def peek(self, source_id: str) -> Optional[PriceSnapshot]:
        """Last stored snapshot regardless of age."""
        entry = self._entries.get(source_id)
        return entry.snapshot if entry else None

    def clear(self) -> None:
        self._entries.clear()
