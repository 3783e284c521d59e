# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Tests for BatchScheduler."""

from __future__ import annotations

import threading
from unittest import mock

import pytest

from tracemux.errors import SinkError
from tracemux.ingest import scheduler as scheduler_module
from tracemux.ingest.batch import BatchTable
from tracemux.ingest.scheduler import BatchScheduler
from tracemux.models.request import Acknowledgement
from tracemux.receivers.memory import InMemorySpanReceiver


def _scheduler(receiver, clock, period_ms=1000, **kwargs):
    table = BatchTable(clock=clock)
    return table, BatchScheduler(table, receiver, buffer_period_millis=period_ms, clock=clock, **kwargs)


class TestValidation:
    def test_rejects_non_positive_period(self, receiver):
        with pytest.raises(ValueError):
            BatchScheduler(BatchTable(), receiver, buffer_period_millis=0)

    def test_rejects_non_positive_idle_eviction(self, receiver):
        with pytest.raises(ValueError):
            BatchScheduler(BatchTable(), receiver, idle_eviction_millis=-1)

    def test_buffer_period_in_seconds(self, receiver):
        assert BatchScheduler(BatchTable(), receiver, buffer_period_millis=250).buffer_period == 0.25


class TestTick:
    """Time-window flushing."""

    def test_young_window_is_not_flushed(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1"])
        clock.advance(0.75)
        assert scheduler.tick() == 0
        assert receiver.call_count == 0

    def test_aged_window_is_flushed(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1", "s2"])
        clock.advance(1.0)
        assert scheduler.tick() == 2
        assert receiver.get_spans(node_a) == ["s1", "s2"]
        assert table.get(node_a).is_empty()

    def test_only_due_nodes_are_flushed(self, receiver, clock, node_a, node_b):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["a"])
        clock.advance(0.5)
        table.append(node_b, ["b"])
        clock.advance(0.5)

        scheduler.tick()
        assert receiver.get_spans(node_a) == ["a"]
        assert receiver.get_spans(node_b) == []

        clock.advance(0.5)
        scheduler.tick()
        assert receiver.get_spans(node_b) == ["b"]

    def test_window_restarts_after_flush(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1"])
        clock.advance(1.0)
        scheduler.tick()

        table.append(node_a, ["s2"])
        clock.advance(0.5)
        assert scheduler.tick() == 0
        clock.advance(0.5)
        assert scheduler.tick() == 1
        assert receiver.get_spans(node_a) == ["s1", "s2"]

    def test_window_reopened_during_tick_stays_buffered(self, clock, node_a, node_b):
        received = InMemorySpanReceiver()

        def receive(node, spans):
            # While node_b is delivered, node_a is flushed and gets a new span.
            if node == node_b:
                scheduler.flush(node_a)
                table.append(node_a, ["young"])
            return received.receive_spans(node, spans)

        receiver = mock.Mock()
        receiver.receive_spans.side_effect = receive
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_b, ["b"])
        table.append(node_a, ["old"])
        clock.advance(1.0)

        scheduler.tick()

        assert received.get_spans(node_a) == ["old"]
        assert table.get(node_a).spans == ["young"]

        clock.advance(1.0)
        scheduler.tick()
        assert received.get_spans(node_a) == ["old", "young"]

    def test_explicit_now(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1"])
        assert scheduler.tick(now=clock.now + 1) == 1

    def test_idle_eviction_runs_on_tick(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock, idle_eviction_millis=2000)
        table.append(node_a, ["s1"])
        clock.advance(1.0)
        scheduler.tick()
        assert len(table) == 1

        clock.advance(1.0)
        scheduler.tick()
        assert len(table) == 0

    def test_no_eviction_by_default(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1"])
        clock.advance(3600)
        scheduler.tick()
        scheduler.tick(now=clock.now + 3600)
        assert len(table) == 1


class TestFlush:
    """Explicit flushes ignore window age."""

    def test_flush_all_delivers_everything(self, receiver, clock, node_a, node_b):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["a"])
        table.append(node_b, ["b1", "b2"])
        assert scheduler.flush_all() == 3
        assert receiver.call_count == 2
        assert table.pending_span_count() == 0

    def test_flush_all_with_nothing_pending(self, receiver, clock):
        _, scheduler = _scheduler(receiver, clock)
        assert scheduler.flush_all() == 0
        assert receiver.call_count == 0

    def test_flush_single_node(self, receiver, clock, node_a, node_b):
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["a"])
        table.append(node_b, ["b"])
        assert scheduler.flush(node_a) == 1
        assert receiver.get_spans(node_a) == ["a"]
        assert table.get(node_b).spans == ["b"]

    def test_flush_unknown_node(self, receiver, clock, node_a):
        _, scheduler = _scheduler(receiver, clock)
        assert scheduler.flush(node_a) == 0

    def test_one_receiver_call_per_node(self, receiver, clock, node_a):
        table, scheduler = _scheduler(receiver, clock)
        for i in range(5):
            table.append(node_a, [f"s{i}"])
        scheduler.flush_all()
        assert receiver.call_count == 1

    def test_spans_are_delivered_unmodified(self, receiver, clock, node_a, make_spans):
        table, scheduler = _scheduler(receiver, clock)
        spans = make_spans("first", "second")
        table.append(node_a, spans)
        scheduler.flush_all()
        delivered = receiver.get_spans(node_a)
        assert [s.name for s in delivered] == ["first", "second"]
        assert all(a is b for a, b in zip(delivered, spans))
        assert [s.to_json() for s in delivered] == [s.to_json() for s in spans]


class TestSinkErrors:
    """Receiver failures surface as SinkError and are not retried."""

    def test_receiver_exception_is_wrapped(self, clock, node_a):
        receiver = mock.Mock()
        receiver.receive_spans.side_effect = ConnectionError("downstream unavailable")
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1", "s2"])

        with pytest.raises(SinkError) as exc_info:
            scheduler.flush(node_a)

        assert exc_info.value.node == node_a
        assert exc_info.value.spans_lost == 2
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        # Not re-queued.
        assert table.get(node_a).is_empty()

    def test_partial_acknowledgement_is_an_error(self, clock, node_a):
        receiver = mock.Mock()
        receiver.receive_spans.return_value = Acknowledgement(saved_spans=1)
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1", "s2", "s3"])

        with pytest.raises(SinkError) as exc_info:
            scheduler.flush_all()
        assert exc_info.value.spans_lost == 2

    def test_missing_acknowledgement_is_a_sink_error(self, clock, node_a, node_b):
        receiver = mock.Mock()
        receiver.receive_spans.return_value = None
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["s1"])
        table.append(node_b, ["s2", "s3"])

        with pytest.raises(SinkError) as exc_info:
            scheduler.flush_all()

        assert receiver.receive_spans.call_count == 2
        assert len(exc_info.value.failures) == 2
        assert exc_info.value.spans_lost == 3
        assert isinstance(exc_info.value.failures[0].__cause__, AttributeError)

    def test_failure_does_not_stop_other_nodes(self, clock, node_a, node_b):
        good = InMemorySpanReceiver()

        def receive(node, spans):
            if node == node_a:
                raise RuntimeError("boom")
            return good.receive_spans(node, spans)

        receiver = mock.Mock()
        receiver.receive_spans.side_effect = receive
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["a"])
        table.append(node_b, ["b"])

        with pytest.raises(SinkError):
            scheduler.flush_all()
        assert good.get_spans(node_b) == ["b"]

    def test_multiple_failures_are_aggregated(self, clock, node_a, node_b):
        receiver = mock.Mock()
        receiver.receive_spans.side_effect = RuntimeError("boom")
        table, scheduler = _scheduler(receiver, clock)
        table.append(node_a, ["a1", "a2"])
        table.append(node_b, ["b"])

        with pytest.raises(SinkError) as exc_info:
            scheduler.flush_all()
        assert len(exc_info.value.failures) == 2
        assert exc_info.value.spans_lost == 3


class TestConcurrency:
    """Appends racing with flushes lose and duplicate nothing."""

    def test_appends_during_flushes_keep_order(self, node_a):
        receiver = InMemorySpanReceiver()
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=1)
        total = 2000
        done = threading.Event()

        def producer():
            for i in range(total):
                table.append(node_a, [i])
            done.set()

        def flusher():
            while not done.is_set():
                scheduler.flush(node_a)

        threads = [threading.Thread(target=producer)] + [threading.Thread(target=flusher) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        scheduler.flush_all()

        assert receiver.get_spans(node_a) == list(range(total))

    def test_append_is_not_blocked_by_slow_receiver(self, node_a, node_b):
        release = threading.Event()
        entered = threading.Event()
        received = InMemorySpanReceiver()

        def slow_receive(node, spans):
            entered.set()
            release.wait(2)
            return received.receive_spans(node, spans)

        receiver = mock.Mock()
        receiver.receive_spans.side_effect = slow_receive
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver)
        table.append(node_a, ["a1"])

        flusher = threading.Thread(target=scheduler.flush, args=(node_a,))
        flusher.start()
        assert entered.wait(2)

        # The receiver is busy; appends still go through and open a new window.
        table.append(node_a, ["a2"])
        table.append(node_b, ["b1"])
        assert table.get(node_a).spans == ["a2"]

        release.set()
        flusher.join()
        scheduler.flush_all()
        assert received.get_spans(node_a) == ["a1", "a2"]


class TestBackgroundSweep:
    """The sweep thread flushes aged windows on its own."""

    def test_start_is_idempotent(self, receiver):
        scheduler = BatchScheduler(BatchTable(), receiver, buffer_period_millis=50)
        try:
            assert scheduler.start() is True
            assert scheduler.start() is False
            assert scheduler.is_running()
        finally:
            scheduler.shutdown()
        assert not scheduler.is_running()

    def test_sweep_flushes_after_buffer_period(self, receiver, node_a, wait_for):
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=50)
        scheduler.start()
        try:
            table.append(node_a, ["s1"])
            assert wait_for(lambda: receiver.get_spans(node_a) == ["s1"], timeout=1.0)
        finally:
            scheduler.shutdown()

    def test_shutdown_flushes_pending_spans(self, receiver, node_a):
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=60_000)
        scheduler.start()
        table.append(node_a, ["s1"])
        scheduler.shutdown()
        assert receiver.get_spans(node_a) == ["s1"]

    def test_sweep_survives_sink_errors(self, node_a, node_b, wait_for):
        received = InMemorySpanReceiver()

        def receive(node, spans):
            if node == node_a:
                raise RuntimeError("boom")
            return received.receive_spans(node, spans)

        receiver = mock.Mock()
        receiver.receive_spans.side_effect = receive
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=30)
        scheduler.start()
        try:
            table.append(node_a, ["lost"])
            assert wait_for(lambda: table.get(node_a).is_empty(), timeout=1.0)
            table.append(node_b, ["kept"])
            assert wait_for(lambda: received.get_spans(node_b) == ["kept"], timeout=1.0)
        finally:
            scheduler.shutdown()

    def test_sweep_survives_missing_acknowledgement(self, node_a, node_b, wait_for):
        received = InMemorySpanReceiver()

        def receive(node, spans):
            if node == node_a:
                return None
            return received.receive_spans(node, spans)

        receiver = mock.Mock()
        receiver.receive_spans.side_effect = receive
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=30)
        scheduler.start()
        try:
            table.append(node_a, ["unacknowledged"])
            assert wait_for(lambda: receiver.receive_spans.call_count >= 1, timeout=1.0)
            table.append(node_b, ["kept"])
            assert wait_for(lambda: received.get_spans(node_b) == ["kept"], timeout=1.0)
            assert scheduler._thread.is_alive()
        finally:
            scheduler.shutdown()

    def test_sweep_survives_unexpected_errors(self, receiver, node_a, wait_for):
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=30, idle_eviction_millis=60_000)
        calls = []

        def flaky_evict(now, idle):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        with mock.patch.object(table, "evict_idle", side_effect=flaky_evict), mock.patch.object(
            scheduler_module.logger, "error"
        ) as log_error:
            scheduler.start()
            try:
                assert wait_for(lambda: len(calls) >= 2, timeout=1.0)
                table.append(node_a, ["s1"])
                assert wait_for(lambda: receiver.get_spans(node_a) == ["s1"], timeout=1.0)
            finally:
                scheduler.shutdown()

        log_error.assert_called()

    def test_shutdown_raises_final_flush_failure_and_still_stops(self, node_a):
        receiver = mock.Mock()
        receiver.receive_spans.side_effect = RuntimeError("boom")
        table = BatchTable()
        scheduler = BatchScheduler(table, receiver, buffer_period_millis=60_000)
        scheduler.start()
        table.append(node_a, ["s1"])
        with pytest.raises(SinkError):
            scheduler.shutdown()
        assert not scheduler.is_running()
