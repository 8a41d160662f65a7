"""Probe orchestration and persistence layer."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import desc
from sqlalchemy.orm import sessionmaker

from .config import AppConfig
from .db import Delivery, ProbeRun, get_session
from .probe import DeliveryHistory, MessageGenerator, ProbeSession, QoSReport, TestMessage, decode_message
from .transport import Transport, build_transport

LOGGER = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def publish_messages(
    transport: Transport,
    count: int,
    start_sequence: int = 0,
    payload_size: int = 64,
    interval: float = 0.0,
) -> int:
    """Send ``count`` fresh test messages, returning how many went out."""
    generator = MessageGenerator(start_sequence=start_sequence, payload_size=payload_size)
    sent = 0
    for i in range(count):
        message = generator.next_message()
        LOGGER.debug("Publishing test message %s over %s", message.sequence, transport.name)
        transport.send(message)
        sent += 1
        if interval > 0 and i < count - 1:
            time.sleep(interval)
    return sent


class ProbeManager:
    def __init__(self, config: AppConfig, session_factory: sessionmaker):
        self.config = config
        self.Session = session_factory
        self._ingest_sessions: Dict[str, Tuple[ProbeSession, int]] = {}
        self._lock = threading.Lock()

    def new_session(self, name: str, expected_count: Optional[int] = None) -> ProbeSession:
        history = DeliveryHistory.from_config(
            self.config.history.max_entries,
            self.config.history.retention_seconds,
        )
        return ProbeSession(name=name, expected_count=expected_count, history=history)

    def _start_run(self, name: str, transport: str, payload_size: Optional[int], expected_count: Optional[int]) -> int:
        with get_session(self.Session) as session:
            run = ProbeRun(
                name=name,
                started_at=datetime.utcnow(),
                transport=transport,
                payload_size=payload_size,
                expected_count=expected_count,
            )
            session.add(run)
            session.flush()
            LOGGER.info("Started probe run %s (%s over %s)", run.id, name, transport)
            return run.id

    def _persist_delivery(
        self,
        run_id: int,
        message: TestMessage,
        report: QoSReport,
        received_at: datetime,
        stats: Dict[str, Any],
    ) -> None:
        with get_session(self.Session) as session:
            session.add(
                Delivery(
                    run_id=run_id,
                    sequence=message.sequence,
                    origin_time=_naive_utc(message.origin_time),
                    received_at=_naive_utc(received_at),
                    latency_ms=report.latency_ms,
                    sequence_delta=report.sequence_delta,
                    duplicate=report.duplicate,
                    payload_bytes=message.payload_bytes,
                )
            )
            run = session.get(ProbeRun, run_id)
            # A slower writer must not overwrite a newer snapshot.
            if run is not None and stats["received"] >= (run.received or 0):
                run.received = stats["received"]
                run.duplicates = stats["duplicates"]
                run.out_of_order = stats["out_of_order"]
                run.missing = stats["missing"]
                run.latency_avg_ms = stats["latency_avg_ms"]
                run.latency_max_ms = stats["latency_max_ms"]
                run.jitter_ms = stats["jitter_ms"]

    def _finish_run(self, run_id: int, sent: Optional[int] = None) -> None:
        with get_session(self.Session) as session:
            run = session.get(ProbeRun, run_id)
            if run is None:
                return
            run.finished_at = datetime.utcnow()
            if sent is not None:
                run.sent = sent
            LOGGER.info(
                "Finished probe run %s: received %s, duplicates %s, missing %s",
                run.id,
                run.received,
                run.duplicates,
                run.missing,
            )

    def publish(
        self,
        transport: Transport,
        count: int,
        start_sequence: int = 0,
        payload_size: int = 64,
        interval: float = 0.0,
    ) -> int:
        return publish_messages(transport, count, start_sequence, payload_size, interval)

    def observe(self, run_id: int, probe_session: ProbeSession, message: TestMessage) -> QoSReport:
        received_at = datetime.now(timezone.utc)
        report, stats = probe_session.observe_with_stats(message, now=received_at)
        LOGGER.debug(
            "Sequence %s: latency %.3f ms, order delta %s%s",
            message.sequence,
            report.latency_ms,
            report.sequence_delta,
            " (duplicate)" if report.duplicate else "",
        )
        self._persist_delivery(run_id, message, report, received_at, stats)
        return report

    def consume(self, transport: Transport, probe_session: ProbeSession, run_id: int) -> int:
        """Drain everything the transport has delivered into the session."""
        observed = 0
        while True:
            message = transport.receive()
            if message is None:
                break
            self.observe(run_id, probe_session, message)
            observed += 1
        return observed

    def run_probe(self) -> Dict[str, Any]:
        """Run one probe as configured and return the session summary."""
        probe = self.config.probe
        transport = build_transport(self.config.transport)
        run_id = self._start_run(probe.name, transport.name, probe.payload_size, probe.count)
        probe_session = self.new_session(probe.name, expected_count=probe.count)
        sent = 0
        try:
            with transport:
                sent = self.publish(
                    transport,
                    probe.count,
                    start_sequence=probe.start_sequence,
                    payload_size=probe.payload_size,
                    interval=probe.interval_seconds,
                )
                if transport.receives:
                    self.consume(transport, probe_session, run_id)
        finally:
            self._finish_run(run_id, sent)

        summary = probe_session.summary()
        summary["run_id"] = run_id
        summary["sent"] = sent
        return summary

    def _ingest_session(self, name: str) -> Tuple[ProbeSession, int]:
        with self._lock:
            entry = self._ingest_sessions.get(name)
            if entry is None:
                run_id = self._start_run(name, "ingest", None, None)
                entry = (self.new_session(name), run_id)
                self._ingest_sessions[name] = entry
            return entry

    def ingest(self, name: str, payload: Union[str, bytes, Dict[str, Any]]) -> Tuple[QoSReport, ProbeSession]:
        """Evaluate one message received from a remote publisher.

        Raises ``MessageDecodeError`` when the payload is not a test message.
        """
        message = decode_message(payload)
        probe_session, run_id = self._ingest_session(name)
        report = self.observe(run_id, probe_session, message)
        return report, probe_session

    def ingest_summary(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._ingest_sessions.get(name)
        if entry is None:
            return None
        summary = entry[0].summary()
        summary["run_id"] = entry[1]
        return summary

    def close_ingest(self, name: str) -> Optional[Dict[str, Any]]:
        """End an ingest session; the next message under ``name`` starts a new run."""
        with self._lock:
            entry = self._ingest_sessions.pop(name, None)
        if entry is None:
            return None
        probe_session, run_id = entry
        self._finish_run(run_id)
        summary = probe_session.summary()
        summary["run_id"] = run_id
        return summary

    def get_runs(self, limit: Optional[int] = None, name: Optional[str] = None) -> List[ProbeRun]:
        with get_session(self.Session) as session:
            query = session.query(ProbeRun).order_by(desc(ProbeRun.started_at), desc(ProbeRun.id))
            if name:
                query = query.filter(ProbeRun.name == name)
            if limit:
                query = query.limit(limit)
            return query.all()

    def get_run(self, run_id: int) -> Optional[ProbeRun]:
        with get_session(self.Session) as session:
            return session.get(ProbeRun, run_id)

    def get_deliveries(self, run_id: int, limit: Optional[int] = None) -> List[Delivery]:
        with get_session(self.Session) as session:
            query = session.query(Delivery).filter(Delivery.run_id == run_id).order_by(Delivery.id)
            if limit:
                query = query.limit(limit)
            return query.all()

    def latest_two(self) -> List[ProbeRun]:
        return self.get_runs(limit=2)

    def run_to_dict(self, run: ProbeRun) -> dict:
        return {
            "id": run.id,
            "name": run.name,
            "started_at": run.started_at.isoformat(),
            "finished_at": run.finished_at.isoformat() if run.finished_at else None,
            "transport": run.transport,
            "payload_size": run.payload_size,
            "expected_count": run.expected_count,
            "sent": run.sent,
            "received": run.received,
            "duplicates": run.duplicates,
            "out_of_order": run.out_of_order,
            "missing": run.missing,
            "latency_avg_ms": run.latency_avg_ms,
            "latency_max_ms": run.latency_max_ms,
            "jitter_ms": run.jitter_ms,
        }

    def delivery_to_dict(self, delivery: Delivery) -> dict:
        return {
            "id": delivery.id,
            "run_id": delivery.run_id,
            "sequence": delivery.sequence,
            "origin_time": delivery.origin_time.isoformat(),
            "received_at": delivery.received_at.isoformat(),
            "latency_ms": delivery.latency_ms,
            "sequence_delta": delivery.sequence_delta,
            "duplicate": delivery.duplicate,
            "payload_bytes": delivery.payload_bytes,
        }
