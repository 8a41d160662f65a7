"""Transports that carry test messages across the channel under test."""

from __future__ import annotations

import logging
import random
from collections import deque
from typing import Deque, Optional, TextIO

import requests

from .config import TransportConfig
from .probe.codec import decode_message, encode_message
from .probe.models import TestMessage

LOGGER = logging.getLogger(__name__)


class Transport:
    """Minimal send/receive interface used by the probe manager."""

    name = "transport"
    receives = True

    def send(self, message: TestMessage) -> None:
        raise NotImplementedError

    def receive(self) -> Optional[TestMessage]:
        """Return the next delivered message, or None when nothing is pending."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class LoopbackTransport(Transport):
    """In-memory FIFO with optional simulated loss, duplication and reordering.

    Messages travel through the wire codec so the receiving side only ever
    sees what a real transport would have carried.
    """

    name = "loopback"

    def __init__(
        self,
        loss_rate: float = 0.0,
        duplicate_rate: float = 0.0,
        reorder_rate: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        for label, rate in (("loss_rate", loss_rate), ("duplicate_rate", duplicate_rate), ("reorder_rate", reorder_rate)):
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"{label} must be between 0 and 1")
        self.loss_rate = loss_rate
        self.duplicate_rate = duplicate_rate
        self.reorder_rate = reorder_rate
        self.rng = rng or random.Random()
        self._queue: Deque[str] = deque()
        self.sent = 0
        self.dropped = 0

    @classmethod
    def from_config(cls, config: TransportConfig) -> "LoopbackTransport":
        return cls(
            loss_rate=config.loss_rate,
            duplicate_rate=config.duplicate_rate,
            reorder_rate=config.reorder_rate,
            rng=random.Random(config.seed),
        )

    def send(self, message: TestMessage) -> None:
        self.sent += 1
        if self.loss_rate and self.rng.random() < self.loss_rate:
            self.dropped += 1
            LOGGER.debug("Loopback dropped test message %s", message.sequence)
            return
        wire = encode_message(message)
        if self.reorder_rate and self._queue and self.rng.random() < self.reorder_rate:
            # Jump ahead of the last queued message.
            self._queue.insert(len(self._queue) - 1, wire)
        else:
            self._queue.append(wire)
        if self.duplicate_rate and self.rng.random() < self.duplicate_rate:
            self._queue.append(wire)

    def receive(self) -> Optional[TestMessage]:
        if not self._queue:
            return None
        return decode_message(self._queue.popleft())

    def pending(self) -> int:
        return len(self._queue)


class StreamTransport(Transport):
    """Line-delimited JSON over text streams (pipes, sockets wrapped as files)."""

    name = "stream"

    def __init__(self, reader: Optional[TextIO] = None, writer: Optional[TextIO] = None):
        self.reader = reader
        self.writer = writer

    def send(self, message: TestMessage) -> None:
        if self.writer is None:
            raise RuntimeError("stream transport has no writer")
        self.writer.write(encode_message(message) + "\n")
        self.writer.flush()

    def receive_line(self) -> Optional[str]:
        """Next non-blank line, or None at end of stream."""
        if self.reader is None:
            raise RuntimeError("stream transport has no reader")
        for line in self.reader:
            line = line.strip()
            if line:
                return line
        return None

    def receive(self) -> Optional[TestMessage]:
        line = self.receive_line()
        return decode_message(line) if line is not None else None


class HttpTransport(Transport):
    """Publishes messages to a remote probe's ingest endpoint."""

    name = "http"
    receives = False

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: TransportConfig) -> "HttpTransport":
        if not config.url:
            raise ValueError("transport.url is required for the http transport")
        return cls(config.url, timeout=config.timeout_seconds)

    def send(self, message: TestMessage) -> None:
        response = self.session.post(
            self.url,
            data=encode_message(message),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()

    def receive(self) -> Optional[TestMessage]:
        raise NotImplementedError("HTTP transport delivers to the remote ingest endpoint")

    def close(self) -> None:
        self.session.close()


def build_transport(config: TransportConfig) -> Transport:
    if config.kind == "loopback":
        return LoopbackTransport.from_config(config)
    if config.kind == "http":
        return HttpTransport.from_config(config)
    raise ValueError(f"Unknown transport kind {config.kind!r}")
