"""Per-message QoS evaluation on the receiving side."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import MutableMapping, Optional

from .models import QoSReport, TestMessage


def evaluate(
    current: TestMessage,
    previous: Optional[TestMessage] = None,
    history: Optional[MutableMapping[int, TestMessage]] = None,
    now: Optional[datetime] = None,
) -> QoSReport:
    """Compute latency, sequence delta and the duplicate flag for ``current``.

    ``sequence_delta`` is measured against ``previous`` only, so it goes
    negative when messages arrive out of order. Without a ``history`` no
    duplicate detection happens. The only mutation is on ``history``: at
    most one insert or one counter increment per call. Callers sharing a
    history between threads must serialize calls.
    """

    now = now or datetime.now(timezone.utc)
    n = previous.sequence if previous is not None else -1

    report = QoSReport(
        latency=now - current.origin_time,
        sequence_delta=current.sequence - n - 1,
        duplicate=False,
    )

    if history is not None:
        seen = history.get(current.sequence)
        if seen is None:
            history[current.sequence] = replace(current, delivery_count=1)
        else:
            report.duplicate = seen.delivery_count > 0
            seen.delivery_count += 1

    return report
