"""CSV export helpers for delivery records."""

from __future__ import annotations

import csv
import io
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import AppConfig
from .db import Delivery, ProbeRun, get_session


class CSVExporter:
    def __init__(self, config: AppConfig, session_factory):
        self.config = config
        self.Session = session_factory

    def build_csv(
        self,
        run_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> io.StringIO:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(self._header())

        for row in self._iter_rows(run_id, start, end):
            writer.writerow(row)

        buffer.seek(0)
        return buffer

    def _header(self) -> list:
        return [
            "run_id",
            "run_name",
            "sequence",
            "origin_time",
            "received_at",
            "latency_ms",
            "sequence_delta",
            "duplicate",
            "payload_bytes",
        ]

    def _iter_rows(self, run_id: Optional[int], start: Optional[datetime], end: Optional[datetime]):
        with get_session(self.Session) as session:
            query = (
                session.query(Delivery, ProbeRun.name)
                .join(ProbeRun, Delivery.run_id == ProbeRun.id)
                .order_by(Delivery.received_at, Delivery.id)
            )
            if run_id is not None:
                query = query.filter(Delivery.run_id == run_id)
            if start:
                query = query.filter(Delivery.received_at >= start)
            if end:
                query = query.filter(Delivery.received_at <= end)
            for delivery, run_name in query.all():
                yield self._row_for_delivery(delivery, run_name)

    @staticmethod
    def _row_for_delivery(delivery: Delivery, run_name: str) -> list:
        return [
            delivery.run_id,
            run_name,
            delivery.sequence,
            delivery.origin_time.isoformat(),
            delivery.received_at.isoformat(),
            f"{delivery.latency_ms:.3f}",
            delivery.sequence_delta,
            int(delivery.duplicate),
            delivery.payload_bytes,
        ]

    def write_snapshot(self) -> Path:
        buffer = self.build_csv()
        target = self.config.paths.data_dir / self.config.export.csv_name
        target.write_text(buffer.getvalue(), encoding="utf-8")
        return target
