"""Probing sessions: one history, one previous message, cumulative stats."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .evaluator import evaluate
from .history import DeliveryHistory
from .models import QoSReport, TestMessage


@dataclass
class SessionStats:
    received: int = 0
    unique: int = 0
    duplicates: int = 0
    out_of_order: int = 0
    lowest_sequence: Optional[int] = None
    highest_sequence: Optional[int] = None
    latency_min_ms: Optional[float] = None
    latency_max_ms: Optional[float] = None
    latency_total_ms: float = 0.0
    jitter_total_ms: float = 0.0
    last_latency_ms: Optional[float] = None

    @property
    def latency_avg_ms(self) -> Optional[float]:
        return self.latency_total_ms / self.received if self.received else None

    @property
    def jitter_ms(self) -> Optional[float]:
        """Mean absolute difference between consecutive latencies."""
        if self.received < 2:
            return None
        return self.jitter_total_ms / (self.received - 1)

    @property
    def missing(self) -> int:
        """Sequences inside the observed range that never arrived.

        Counted against the lowest and highest sequence seen rather than the
        previous message, so reordering does not inflate it. Messages lost
        after the highest sequence seen are invisible here. With a bounded
        history a sequence evicted and then delivered again counts as unique
        a second time, which lowers this figure.
        """
        if self.highest_sequence is None or self.lowest_sequence is None:
            return 0
        return max(0, self.highest_sequence - self.lowest_sequence + 1 - self.unique)

    def record(self, message: TestMessage, report: QoSReport) -> None:
        latency_ms = report.latency_ms
        self.received += 1
        if report.duplicate:
            self.duplicates += 1
        else:
            self.unique += 1

        if self.highest_sequence is not None and message.sequence < self.highest_sequence:
            self.out_of_order += 1
        if self.highest_sequence is None or message.sequence > self.highest_sequence:
            self.highest_sequence = message.sequence
        if self.lowest_sequence is None or message.sequence < self.lowest_sequence:
            self.lowest_sequence = message.sequence

        if self.latency_min_ms is None or latency_ms < self.latency_min_ms:
            self.latency_min_ms = latency_ms
        if self.latency_max_ms is None or latency_ms > self.latency_max_ms:
            self.latency_max_ms = latency_ms
        self.latency_total_ms += latency_ms
        if self.last_latency_ms is not None:
            self.jitter_total_ms += abs(latency_ms - self.last_latency_ms)
        self.last_latency_ms = latency_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "received": self.received,
            "unique": self.unique,
            "duplicates": self.duplicates,
            "out_of_order": self.out_of_order,
            "missing": self.missing,
            "lowest_sequence": self.lowest_sequence,
            "highest_sequence": self.highest_sequence,
            "latency_min_ms": self.latency_min_ms,
            "latency_avg_ms": self.latency_avg_ms,
            "latency_max_ms": self.latency_max_ms,
            "jitter_ms": self.jitter_ms,
        }


class ProbeSession:
    """Receiving end of one probing session.

    Every observation runs under the session lock, so several transport
    threads may feed the same session.
    """

    def __init__(
        self,
        name: str = "probe",
        expected_count: Optional[int] = None,
        history: Optional[DeliveryHistory] = None,
    ):
        self.name = name
        self.expected_count = expected_count
        self.history = history if history is not None else DeliveryHistory()
        self.previous: Optional[TestMessage] = None
        self.stats = SessionStats()
        self._lock = threading.Lock()

    def observe(self, message: TestMessage, now: Optional[datetime] = None) -> QoSReport:
        return self.observe_with_stats(message, now=now)[0]

    def observe_with_stats(self, message: TestMessage, now: Optional[datetime] = None) -> Tuple[QoSReport, Dict[str, Any]]:
        """Observe ``message`` and return the report with the stats as of that observation."""
        with self._lock:
            report = evaluate(message, self.previous, self.history, now=now)
            self.previous = message
            self.stats.record(message, report)
            return report, self.stats.to_dict()

    @property
    def complete(self) -> bool:
        """True once ``expected_count`` first-seen deliveries were observed.

        Counted from reports rather than the history size, so an evicting
        history still completes.
        """
        if self.expected_count is None:
            return False
        with self._lock:
            return self.stats.unique >= self.expected_count

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            data = self.stats.to_dict()
            data["history_size"] = len(self.history)
            data["evicted"] = getattr(self.history, "evicted", 0)
        data["name"] = self.name
        data["expected_count"] = self.expected_count
        return data
