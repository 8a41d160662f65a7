"""Shared dataclasses for probe messages and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict


@dataclass
class TestMessage:
    """A synthetic message injected into the channel under test.

    ``delivery_count`` belongs to the receiving side only and never travels
    on the wire.
    """

    __test__ = False  # keep pytest from collecting this as a test class

    sequence: int
    payload: str
    origin_time: datetime
    delivery_count: int = field(default=0, compare=False)

    @property
    def payload_bytes(self) -> int:
        return len(self.payload) // 2


@dataclass
class QoSReport:
    latency: timedelta
    sequence_delta: int
    duplicate: bool

    @property
    def latency_ms(self) -> float:
        return self.latency / timedelta(milliseconds=1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latency_ms": self.latency_ms,
            "sequence_delta": self.sequence_delta,
            "duplicate": self.duplicate,
        }
