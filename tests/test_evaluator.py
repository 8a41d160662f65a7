from datetime import timedelta

from qosprobe.probe import DeliveryHistory, evaluate, generate

from conftest import BASE_TIME, at_ms, counting_source, make_message


def test_latency_of_fresh_message_is_near_zero():
    message = generate(0, 8)
    report = evaluate(message)

    assert report.latency >= timedelta(0)
    assert report.latency < timedelta(seconds=1)


def test_latency_uses_evaluation_instant():
    report = evaluate(make_message(0), now=at_ms(250))

    assert report.latency == timedelta(milliseconds=250)
    assert report.latency_ms == 250.0


def test_latency_is_not_clamped():
    report = evaluate(make_message(0), now=BASE_TIME - timedelta(seconds=1))

    assert report.latency == timedelta(seconds=-1)


def test_first_message_without_previous():
    assert evaluate(make_message(0), now=BASE_TIME).sequence_delta == 0
    assert evaluate(make_message(5), now=BASE_TIME).sequence_delta == 5


def test_contiguous_delta_is_zero():
    report = evaluate(make_message(42), previous=make_message(41), now=BASE_TIME)

    assert report.sequence_delta == 0


def test_gap_counts_missing_messages():
    for gap in (0, 1, 7):
        report = evaluate(make_message(10 + 1 + gap), previous=make_message(10), now=BASE_TIME)
        assert report.sequence_delta == gap


def test_first_seen_is_never_duplicate():
    history = {}
    for sequence in (3, 1, 2):
        assert evaluate(make_message(sequence), history=history, now=BASE_TIME).duplicate is False


def test_second_seen_is_duplicate_regardless_of_interleaving():
    history = DeliveryHistory()
    first = evaluate(make_message(1), history=history, now=BASE_TIME)
    for sequence in (2, 3, 4):
        evaluate(make_message(sequence), history=history, now=BASE_TIME)
    second = evaluate(make_message(1), history=history, now=BASE_TIME)

    assert first.duplicate is False
    assert second.duplicate is True


def test_without_history_duplicates_are_not_detected():
    assert evaluate(make_message(1), now=BASE_TIME).duplicate is False
    assert evaluate(make_message(1), now=BASE_TIME).duplicate is False


def test_history_counts_deliveries_without_touching_inputs():
    history = {}
    current = make_message(9)
    previous = make_message(8)

    evaluate(current, previous, history, now=BASE_TIME)
    evaluate(current, previous, history, now=BASE_TIME)
    third = evaluate(current, previous, history, now=BASE_TIME)

    assert third.duplicate is True
    assert history[9].delivery_count == 3
    assert current.delivery_count == 0
    assert previous.delivery_count == 0
    assert len(history) == 1


def test_out_of_order_scenario():
    messages = {seq: generate(seq, 4, random_source=counting_source) for seq in range(4)}
    history = DeliveryHistory()
    previous = None
    deltas = []
    duplicates = []

    for seq in (0, 1, 3, 1):
        current = messages[seq]
        report = evaluate(current, previous, history)
        deltas.append(report.sequence_delta)
        duplicates.append(report.duplicate)
        previous = current

    assert deltas == [0, 0, 1, -3]
    assert duplicates == [False, False, False, True]
    assert sorted(history) == [0, 1, 3]
