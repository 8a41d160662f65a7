from datetime import datetime, timedelta, timezone

import pytest

from qosprobe.config import default_config
from qosprobe.db import init_db
from qosprobe.exporter import CSVExporter
from qosprobe.manager import ProbeManager
from qosprobe.probe import TestMessage

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def counting_source(n):
    """Deterministic stand-in for os.urandom."""
    return bytes(i % 256 for i in range(n))


def make_message(sequence, origin_time=BASE_TIME, payload="00"):
    return TestMessage(sequence=sequence, payload=payload, origin_time=origin_time)


def at_ms(ms):
    return BASE_TIME + timedelta(milliseconds=ms)


@pytest.fixture
def app_config(tmp_path):
    return default_config(tmp_path)


@pytest.fixture
def session_factory(app_config):
    return init_db(app_config.paths.data_dir)


@pytest.fixture
def manager(app_config, session_factory):
    return ProbeManager(app_config, session_factory)


@pytest.fixture
def exporter(app_config, session_factory):
    return CSVExporter(app_config, session_factory)
