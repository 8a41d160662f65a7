import threading

from qosprobe.probe import DeliveryHistory, ProbeSession

from conftest import at_ms, make_message


def test_session_tracks_previous_and_stats():
    session = ProbeSession(name="s", expected_count=3)
    reports = []
    for sequence, latency in ((0, 10), (1, 20), (3, 15), (1, 15)):
        reports.append(session.observe(make_message(sequence), now=at_ms(latency)))

    assert [r.sequence_delta for r in reports] == [0, 0, 1, -3]
    assert [r.duplicate for r in reports] == [False, False, False, True]
    assert session.previous.sequence == 1

    stats = session.stats
    assert stats.received == 4
    assert stats.unique == 3
    assert stats.duplicates == 1
    assert stats.out_of_order == 1
    assert stats.missing == 1
    assert stats.lowest_sequence == 0
    assert stats.highest_sequence == 3
    assert stats.latency_min_ms == 10.0
    assert stats.latency_max_ms == 20.0
    assert stats.latency_avg_ms == 15.0
    assert stats.jitter_ms == 5.0


def test_empty_stats():
    session = ProbeSession()
    summary = session.summary()

    assert summary["received"] == 0
    assert summary["missing"] == 0
    assert summary["latency_avg_ms"] is None
    assert summary["jitter_ms"] is None


def test_missing_counts_from_first_sequence_seen():
    session = ProbeSession()
    for sequence in (100, 101, 105):
        session.observe(make_message(sequence), now=at_ms(1))

    assert session.stats.missing == 3


def test_complete_once_expected_sequences_seen():
    session = ProbeSession(expected_count=3)
    for sequence in (0, 1, 1):
        session.observe(make_message(sequence), now=at_ms(1))
    assert not session.complete

    session.observe(make_message(2), now=at_ms(1))
    assert session.complete


def test_summary_reports_history_size_and_evictions():
    session = ProbeSession(name="bounded", history=DeliveryHistory(max_entries=2))
    for sequence in range(5):
        session.observe(make_message(sequence), now=at_ms(1))

    summary = session.summary()
    assert summary["name"] == "bounded"
    assert summary["history_size"] == 2
    assert summary["evicted"] == 3


def test_concurrent_observers_share_history_safely():
    session = ProbeSession()

    def feed():
        for sequence in range(100):
            session.observe(make_message(sequence), now=at_ms(1))

    threads = [threading.Thread(target=feed) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert session.stats.received == 800
    assert session.stats.unique == 100
    assert session.stats.duplicates == 700
    assert all(session.history[seq].delivery_count == 8 for seq in range(100))


def test_bounded_history_smaller_than_expected_count_still_completes():
    session = ProbeSession(expected_count=3, history=DeliveryHistory(max_entries=2))
    for sequence in (0, 1):
        session.observe(make_message(sequence), now=at_ms(1))
    assert not session.complete

    session.observe(make_message(2), now=at_ms(1))
    assert session.complete
    assert len(session.history) == 2


def test_evicted_sequence_delivered_again_counts_as_unique():
    session = ProbeSession(history=DeliveryHistory(max_entries=1))
    for sequence in (1, 2, 1):
        session.observe(make_message(sequence), now=at_ms(1))

    assert session.stats.received == 3
    assert session.stats.unique == 3
    assert session.stats.duplicates == 0
    assert session.stats.missing == 0


def test_observe_with_stats_returns_snapshot_of_that_observation():
    session = ProbeSession()
    report, stats = session.observe_with_stats(make_message(0), now=at_ms(10))
    session.observe(make_message(0), now=at_ms(20))

    assert report.duplicate is False
    assert stats["received"] == 1
    assert stats["duplicates"] == 0
    assert stats["latency_max_ms"] == 10.0
    assert session.stats.received == 2
