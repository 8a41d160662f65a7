"""JSON wire format for test messages."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Union

from .models import TestMessage


_FRACTION = re.compile(r"\.(\d+)")


class MessageDecodeError(ValueError):
    """Raised when a received payload is not a valid test message."""


def message_to_dict(message: TestMessage) -> Dict[str, Any]:
    return {
        "sequence": message.sequence,
        "payload": message.payload,
        "originTime": message.origin_time.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def encode_message(message: TestMessage) -> str:
    return json.dumps(message_to_dict(message), separators=(",", ":"))


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise MessageDecodeError(f"originTime must be a string, got {type(value).__name__}")
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    # fromisoformat on 3.9 and 3.10 only accepts 3 or 6 fraction digits.
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MessageDecodeError(f"bad originTime {value!r}") from exc
    if parsed.tzinfo is None:
        # Timestamps without an offset are taken as UTC.
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def decode_message(raw: Union[str, bytes, Dict[str, Any]]) -> TestMessage:
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MessageDecodeError(f"invalid JSON: {exc}") from exc
    else:
        data = raw

    if not isinstance(data, dict):
        raise MessageDecodeError("test message must be a JSON object")

    missing = [key for key in ("sequence", "payload", "originTime") if key not in data]
    if missing:
        raise MessageDecodeError(f"missing fields: {', '.join(missing)}")

    sequence = data["sequence"]
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise MessageDecodeError("sequence must be an integer")
    payload = data["payload"]
    if not isinstance(payload, str):
        raise MessageDecodeError("payload must be a string")

    return TestMessage(
        sequence=sequence,
        payload=payload,
        origin_time=_parse_time(data["originTime"]),
    )
