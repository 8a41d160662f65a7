from datetime import timedelta

import pytest

from qosprobe.probe import DeliveryHistory, evaluate

from conftest import BASE_TIME, make_message


class FakeClock:
    def __init__(self):
        self.now = BASE_TIME

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)

    def __call__(self):
        return self.now


def test_unbounded_history_keeps_everything():
    history = DeliveryHistory()
    for sequence in range(1000):
        history[sequence] = make_message(sequence)

    assert len(history) == 1000
    assert history.evicted == 0


def test_max_entries_evicts_oldest_arrival():
    history = DeliveryHistory(max_entries=2)
    for sequence in (5, 1, 9):
        evaluate(make_message(sequence), history=history, now=BASE_TIME)

    assert list(history) == [1, 9]
    assert history.evicted == 1


def test_evicted_sequence_counts_as_first_seen_again():
    history = DeliveryHistory(max_entries=1)
    evaluate(make_message(1), history=history, now=BASE_TIME)
    evaluate(make_message(2), history=history, now=BASE_TIME)

    assert evaluate(make_message(1), history=history, now=BASE_TIME).duplicate is False


def test_retention_window_evicts_old_entries():
    clock = FakeClock()
    history = DeliveryHistory(retention=timedelta(seconds=10), clock=clock)

    history[1] = make_message(1)
    clock.advance(5)
    history[2] = make_message(2)
    clock.advance(6)
    history[3] = make_message(3)

    assert list(history) == [2, 3]
    assert history.first_seen(2) == BASE_TIME + timedelta(seconds=5)


def test_repeat_receipt_keeps_arrival_time():
    clock = FakeClock()
    history = DeliveryHistory(clock=clock)
    history[4] = make_message(4)
    clock.advance(30)
    history[4] = make_message(4)

    assert history.first_seen(4) == BASE_TIME


def test_invalid_max_entries():
    with pytest.raises(ValueError):
        DeliveryHistory(max_entries=0)


def test_from_config():
    history = DeliveryHistory.from_config(100, 60.0)

    assert history.max_entries == 100
    assert history.retention == timedelta(seconds=60)
    assert DeliveryHistory.from_config(None, None).retention is None


def test_expired_entry_is_absent_without_further_writes():
    clock = FakeClock()
    history = DeliveryHistory(retention=timedelta(seconds=10), clock=clock)
    evaluate(make_message(1), history=history, now=BASE_TIME)

    clock.advance(60)
    report = evaluate(make_message(1), history=history, now=clock.now)

    assert report.duplicate is False
    assert history.evicted == 1
    assert history[1].delivery_count == 1


def test_reads_drop_expired_entries():
    clock = FakeClock()
    history = DeliveryHistory(retention=timedelta(seconds=10), clock=clock)
    history[1] = make_message(1)
    history[2] = make_message(2)
    clock.advance(11)

    assert 1 not in history
    assert len(history) == 0
    assert list(history) == []
