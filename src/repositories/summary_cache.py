"""Summary cache interface and in-memory implementations.

All implementations share the SummaryCache contract: get returns the live
record or None, put fully replaces any record for the same item_id, and
delete is a no-op for unknown ids. Storage failures surface as CacheError.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.prep.schemas import SummaryRecord


class CacheError(Exception):
    """Raised when the summary store cannot be read or written."""


class SummaryCache(Protocol):
    """Per-item summary store keyed by item_id."""

    async def get(self, item_id: str) -> "SummaryRecord | None": ...

    async def put(self, item_id: str, record: "SummaryRecord") -> None: ...

    async def delete(self, item_id: str) -> None: ...


class InMemorySummaryCache:
    """Dict-backed cache for tests and deployments without a database."""

    def __init__(self):
        self._records: "dict[str, SummaryRecord]" = {}

    async def get(self, item_id: str) -> "SummaryRecord | None":
        return self._records.get(item_id)

    async def put(self, item_id: str, record: "SummaryRecord") -> None:
        self._records[item_id] = record

    async def delete(self, item_id: str) -> None:
        self._records.pop(item_id, None)

    def __len__(self) -> int:
        return len(self._records)


class TTLSummaryCache:
    """Bounded, expiring in-memory layer in front of another cache.

    The backing cache stays the source of truth. Reads that miss or hit
    an expired entry fall through and repopulate the layer; writes and
    deletes go to both.
    """

    def __init__(
        self,
        backing: SummaryCache,
        ttl_seconds: float = 900.0,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the layer.

        Args:
            backing: Cache holding the durable records
            ttl_seconds: Lifetime of a layered entry
            max_entries: Entries kept before the least recently used is evicted
            clock: Monotonic time source
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._backing = backing
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, SummaryRecord]]" = OrderedDict()

    def _remember(self, item_id: str, record: "SummaryRecord") -> None:
        self._entries[item_id] = (self._clock() + self._ttl, record)
        self._entries.move_to_end(item_id)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def get(self, item_id: str) -> "SummaryRecord | None":
        entry = self._entries.get(item_id)
        if entry is not None:
            expires_at, record = entry
            if expires_at > self._clock():
                self._entries.move_to_end(item_id)
                return record
            del self._entries[item_id]

        record = await self._backing.get(item_id)
        if record is not None:
            self._remember(item_id, record)
        return record

    async def put(self, item_id: str, record: "SummaryRecord") -> None:
        await self._backing.put(item_id, record)
        self._remember(item_id, record)

    async def delete(self, item_id: str) -> None:
        self._entries.pop(item_id, None)
        await self._backing.delete(item_id)

    def invalidate(self) -> None:
        """Drop every layered entry without touching the backing cache."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
