"""Flask application factory and HTTP routes."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional

from flask import Flask, Response, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix

from ..config import AppConfig
from ..exporter import CSVExporter
from ..manager import ProbeManager
from ..probe import MessageDecodeError
from ..scheduler import SchedulerService

LOGGER = logging.getLogger(__name__)


def create_web_app(
    config: AppConfig,
    probe_manager: ProbeManager,
    exporter: CSVExporter,
    scheduler: SchedulerService,
    executor: Optional[ThreadPoolExecutor] = None,
) -> Flask:
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.web.secret_key

    if config.web.reverse_proxy_headers:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    executor = executor or ThreadPoolExecutor(max_workers=4)

    @app.route("/")
    def index():
        return jsonify({"service": "qosprobe", "probe": config.probe.name})

    @app.get("/api/status")
    def api_status():
        return jsonify(
            {
                "transport": config.transport.kind,
                "scheduler_enabled": config.scheduler.enabled,
                "scheduler_running": scheduler.started,
                "interval_minutes": config.scheduler.interval_minutes,
                "payload_size": config.probe.payload_size,
                "count": config.probe.count,
            }
        )

    @app.get("/api/runs")
    def api_runs():
        limit = request.args.get("limit", type=int)
        name = request.args.get("name")
        rows = probe_manager.get_runs(limit=limit, name=name)
        return jsonify([probe_manager.run_to_dict(row) for row in rows])

    @app.get("/api/runs/<int:run_id>")
    def api_run(run_id: int):
        run = probe_manager.get_run(run_id)
        if run is None:
            return jsonify({"error": "Unknown run"}), 404
        return jsonify(probe_manager.run_to_dict(run))

    @app.get("/api/runs/<int:run_id>/deliveries")
    def api_run_deliveries(run_id: int):
        if probe_manager.get_run(run_id) is None:
            return jsonify({"error": "Unknown run"}), 404
        limit = request.args.get("limit", type=int)
        rows = probe_manager.get_deliveries(run_id, limit=limit)
        return jsonify([probe_manager.delivery_to_dict(row) for row in rows])

    @app.get("/api/summary/latest")
    def api_latest_summary():
        rows = probe_manager.latest_two()
        if not rows:
            return jsonify({"latest": None, "previous": None, "delta": None})
        latest = probe_manager.run_to_dict(rows[0])
        previous = probe_manager.run_to_dict(rows[1]) if len(rows) > 1 else None
        delta = _calculate_delta(latest, previous) if previous else None
        return jsonify({"latest": latest, "previous": previous, "delta": delta})

    @app.get("/api/export/csv")
    def api_export_csv():
        run_id = request.args.get("run_id", type=int)
        start = _parse_datetime(request.args.get("start"))
        end = _parse_datetime(request.args.get("end"))
        buffer = exporter.build_csv(run_id=run_id, start=start, end=end)
        filename = f"deliveries-{datetime.utcnow().strftime('%Y%m%dT%H%M%S')}.csv"
        return Response(
            buffer.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.post("/api/manual/probe")
    def api_manual_probe():
        executor.submit(_run_probe_task, probe_manager, exporter)
        return jsonify({"status": "queued", "task": "probe"}), 202

    @app.post("/api/ingest/<name>")
    def api_ingest(name: str):
        try:
            report, probe_session = probe_manager.ingest(name, request.get_data())
        except MessageDecodeError as exc:
            LOGGER.warning("Rejected test message for %s: %s", name, exc)
            return jsonify({"error": str(exc)}), 400
        return jsonify({"report": report.to_dict(), "complete": probe_session.complete})

    @app.get("/api/ingest/<name>")
    def api_ingest_summary(name: str):
        summary = probe_manager.ingest_summary(name)
        if summary is None:
            return jsonify({"error": "Unknown session"}), 404
        return jsonify(summary)

    @app.delete("/api/ingest/<name>")
    def api_ingest_close(name: str):
        summary = probe_manager.close_ingest(name)
        if summary is None:
            return jsonify({"error": "Unknown session"}), 404
        return jsonify(summary)

    return app


def _run_probe_task(probe_manager: ProbeManager, exporter: CSVExporter) -> None:
    try:
        probe_manager.run_probe()
        exporter.write_snapshot()
    except Exception as exc:  # pylint: disable=broad-except
        LOGGER.exception("Manual probe failed: %s", exc)


def _parse_datetime(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    candidate = raw.replace("Z", "+00:00") if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        LOGGER.warning("Invalid datetime filter: %s", raw)
        return None
    # Stored timestamps are naive UTC.
    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


def _calculate_delta(latest: dict, previous: dict) -> dict:
    def diff(key):
        latest_value = latest.get(key)
        previous_value = previous.get(key)
        if latest_value is None or previous_value is None:
            return None
        return latest_value - previous_value

    fields = [
        "received",
        "duplicates",
        "out_of_order",
        "missing",
        "latency_avg_ms",
        "latency_max_ms",
        "jitter_ms",
    ]
    return {field: diff(field) for field in fields}
