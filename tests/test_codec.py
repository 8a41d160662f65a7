import json
from datetime import datetime, timedelta, timezone

import pytest

from qosprobe.probe import MessageDecodeError, decode_message, encode_message, generate

from conftest import BASE_TIME, counting_source, make_message


def test_encode_uses_wire_field_names():
    message = make_message(3, payload="abcd")
    message.delivery_count = 5

    data = json.loads(encode_message(message))

    assert data == {"sequence": 3, "payload": "abcd", "originTime": "2024-01-01T12:00:00Z"}


def test_decode_restores_generated_message():
    message = generate(11, 16, random_source=counting_source)

    decoded = decode_message(encode_message(message).encode("utf-8"))

    assert decoded == message
    assert decoded.delivery_count == 0
    assert decoded.origin_time.tzinfo is not None


def test_decode_accepts_dict_and_offsets():
    decoded = decode_message({"sequence": 1, "payload": "", "originTime": "2024-01-01T14:00:00+02:00"})

    assert decoded.origin_time == BASE_TIME
    assert decoded.origin_time.utcoffset() == timedelta(0)


def test_naive_timestamp_is_utc():
    decoded = decode_message({"sequence": 1, "payload": "", "originTime": "2024-01-01T12:00:00"})

    assert decoded.origin_time == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"sequence": 1, "payload": "00"}',
        '{"sequence": true, "payload": "00", "originTime": "2024-01-01T12:00:00Z"}',
        '{"sequence": "1", "payload": "00", "originTime": "2024-01-01T12:00:00Z"}',
        '{"sequence": 1, "payload": 7, "originTime": "2024-01-01T12:00:00Z"}',
        '{"sequence": 1, "payload": "00", "originTime": "yesterday"}',
        '{"sequence": 1, "payload": "00", "originTime": 1700000000}',
    ],
)
def test_malformed_messages_rejected(raw):
    with pytest.raises(MessageDecodeError):
        decode_message(raw)


def test_decode_error_is_value_error():
    assert issubclass(MessageDecodeError, ValueError)


@pytest.mark.parametrize(
    "stamp, microsecond",
    [
        ("2024-01-01T12:00:00.123456789Z", 123456),
        ("2024-01-01T12:00:00.5Z", 500000),
        ("2024-01-01T12:00:00.1234+00:00", 123400),
    ],
)
def test_fraction_of_any_length_is_accepted(stamp, microsecond):
    decoded = decode_message({"sequence": 1, "payload": "", "originTime": stamp})

    assert decoded.origin_time == BASE_TIME.replace(microsecond=microsecond)
