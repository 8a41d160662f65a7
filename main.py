"""Entry point for running the probe service and the stdio probe commands."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional, TextIO

from qosprobe import bootstrap
from qosprobe.config import load_config
from qosprobe.logging_setup import configure_logging
from qosprobe.manager import publish_messages
from qosprobe.probe import DeliveryHistory, MessageDecodeError, ProbeSession, decode_message
from qosprobe.transport import StreamTransport

LOGGER = logging.getLogger("qosprobe.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Message delivery QoS probe")
    parser.add_argument("--config", help="Path to config.yaml", default=None)
    parser.add_argument("--log-level", default="INFO", help="Log level when no config file is given")
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the web API and scheduled probes")
    serve.add_argument("--host", default=None, help="Override web server host")
    serve.add_argument("--port", type=int, default=None, help="Override web server port")
    serve.add_argument("--debug", action="store_true", help="Enable Flask debug mode")

    pub = commands.add_parser("testpub", help="Write test messages to stdout as JSON lines")
    pub.add_argument("count", type=int, nargs="?", default=10)
    pub.add_argument("interval", type=float, nargs="?", default=1.0, help="Seconds between messages")
    pub.add_argument("--size", type=int, default=64, help="Random payload bytes per message")
    pub.add_argument("--start", type=int, default=0, help="First sequence number")

    sub = commands.add_parser("testsub", help="Read test messages from stdin and report QoS")
    sub.add_argument("count", type=int, nargs="?", default=10)
    sub.add_argument("--max-history", type=int, default=None, help="Bound the delivery history")
    return parser.parse_args(argv)


def _setup_logging(args: argparse.Namespace) -> None:
    if args.config:
        configure_logging(load_config(args.config))
    else:
        logging.basicConfig(
            level=getattr(logging, args.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        )


def run_testpub(args: argparse.Namespace, out: TextIO) -> int:
    transport = StreamTransport(writer=out)
    sent = publish_messages(transport, args.count, start_sequence=args.start, payload_size=args.size, interval=args.interval)
    LOGGER.info("Published %s test messages", sent)
    return 0


def run_testsub(args: argparse.Namespace, source: TextIO, out: TextIO) -> int:
    transport = StreamTransport(reader=source)
    session = ProbeSession(
        name="testsub",
        expected_count=args.count,
        history=DeliveryHistory(max_entries=args.max_history),
    )
    while not session.complete:
        line = transport.receive_line()
        if line is None:
            break
        try:
            message = decode_message(line)
        except MessageDecodeError as exc:
            LOGGER.warning("testsub message error: %s on %s", exc, line)
            continue
        report = session.observe(message)
        LOGGER.info(
            "latency: %f ms, order delta: %d%s",
            report.latency_ms,
            report.sequence_delta,
            ", duplicate" if report.duplicate else "",
        )
    if session.complete:
        LOGGER.info("testsub terminating")
    out.write(json.dumps(session.summary()) + "\n")
    out.flush()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    command = args.command or "serve"

    if command == "testpub":
        _setup_logging(args)
        return run_testpub(args, sys.stdout)
    if command == "testsub":
        _setup_logging(args)
        return run_testsub(args, sys.stdin, sys.stdout)

    context = bootstrap(args.config)
    context.start()

    host = getattr(args, "host", None) or context.config.web.host
    port = getattr(args, "port", None) or context.config.web.port
    context.web_app.run(host=host, port=port, debug=getattr(args, "debug", False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
