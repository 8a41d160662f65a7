"""Test message generation."""

from __future__ import annotations

import os
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import TestMessage

RandomSource = Callable[[int], bytes]


class RandomSourceError(Exception):
    """The entropy source failed or returned fewer bytes than requested."""


def _read_random(random_source: RandomSource, size: int) -> bytes:
    try:
        buf = random_source(size)
    except Exception as exc:
        raise RandomSourceError(f"random source failed: {exc}") from exc
    if buf is None or len(buf) != size:
        got = 0 if buf is None else len(buf)
        raise RandomSourceError(f"bad random read: {size} != {got}")
    return bytes(buf)


def generate(sequence: int, payload_size: int, random_source: RandomSource = os.urandom) -> TestMessage:
    """Build a test message with ``payload_size`` random bytes, hex encoded.

    The origin time is taken after the payload exists so that the latency
    measured on receipt excludes generation cost.
    """

    if isinstance(payload_size, bool) or not isinstance(payload_size, int):
        raise TypeError(f"payload_size must be an integer, got {type(payload_size).__name__}")
    if payload_size < 0:
        raise ValueError("payload_size must be non-negative")

    payload = _read_random(random_source, payload_size).hex()
    return TestMessage(
        sequence=sequence,
        payload=payload,
        origin_time=datetime.now(timezone.utc),
    )


class MessageGenerator:
    """Hands out messages with strictly increasing sequence numbers.

    Safe to share between producer threads: the random source and the
    sequence counter are guarded by one lock.
    """

    def __init__(
        self,
        start_sequence: int = 0,
        payload_size: int = 64,
        random_source: Optional[RandomSource] = None,
    ):
        if isinstance(payload_size, bool) or not isinstance(payload_size, int):
            raise TypeError(f"payload_size must be an integer, got {type(payload_size).__name__}")
        if payload_size < 0:
            raise ValueError("payload_size must be non-negative")
        self.payload_size = payload_size
        self.random_source = random_source or os.urandom
        self._next_sequence = start_sequence
        self._lock = threading.Lock()

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    def next_message(self) -> TestMessage:
        with self._lock:
            message = generate(self._next_sequence, self.payload_size, self.random_source)
            # Only consume a sequence number once generation succeeded.
            self._next_sequence += 1
        return message
