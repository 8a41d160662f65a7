"""Per-session record of which sequence numbers have been received."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import MutableMapping
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from .models import TestMessage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryHistory(MutableMapping):
    """Mapping of sequence number to the message first seen with it.

    Unbounded by default. With ``max_entries`` the oldest arrivals are
    evicted once the limit is exceeded; with ``retention`` entries first
    seen longer ago than the window are evicted on the next write. An
    evicted sequence that shows up again counts as first seen.
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        retention: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.retention = retention
        self.clock = clock
        self.evicted = 0
        # Arrival order is kept by the OrderedDict itself.
        self._entries: "OrderedDict[int, tuple[datetime, TestMessage]]" = OrderedDict()

    @classmethod
    def from_config(cls, max_entries: Optional[int], retention_seconds: Optional[float]) -> "DeliveryHistory":
        retention = timedelta(seconds=retention_seconds) if retention_seconds else None
        return cls(max_entries=max_entries, retention=retention)

    def __getitem__(self, sequence: int) -> TestMessage:
        self._expire(self.clock())
        return self._entries[sequence][1]

    def __setitem__(self, sequence: int, message: TestMessage) -> None:
        now = self.clock()
        if sequence in self._entries:
            arrived, _ = self._entries[sequence]
            self._entries[sequence] = (arrived, message)
        else:
            self._entries[sequence] = (now, message)
        self._evict(now)

    def __delitem__(self, sequence: int) -> None:
        del self._entries[sequence]

    def __iter__(self) -> Iterator[int]:
        self._expire(self.clock())
        return iter(list(self._entries))

    def __len__(self) -> int:
        self._expire(self.clock())
        return len(self._entries)

    def first_seen(self, sequence: int) -> datetime:
        return self._entries[sequence][0]

    def _expire(self, now: datetime) -> None:
        """Drop entries older than the retention window; reads see them as absent."""
        if self.retention is not None:
            cutoff = now - self.retention
            while self._entries:
                oldest = next(iter(self._entries))
                if self._entries[oldest][0] >= cutoff:
                    break
                self._entries.popitem(last=False)
                self.evicted += 1

    def _evict(self, now: datetime) -> None:
        self._expire(now)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evicted += 1
