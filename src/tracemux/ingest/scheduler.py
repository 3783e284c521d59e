# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""BatchScheduler - time-window flush policy over a :class:`BatchTable`.

A single background thread sweeps the whole table.  It sleeps until the
earliest outstanding window reaches one buffer period of age (or one full
period when nothing is pending), then flushes every batch that is due.

Flushing a batch:

1. take the batch's ``delivery_lock``
2. swap its pending spans for an empty list under the table lock
3. hand the removed spans to the receiver in a single call
4. release the ``delivery_lock``

Appends never wait on the receiver, and because swaps for one node happen
under its delivery lock, deliveries reach the receiver in swap order.  A
span appended while a delivery is in flight starts the batch's next window.

Timing is best-effort: the buffer period is a lower bound on when a batch
is flushed, not a deadline.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from tracemux.errors import SinkError
from tracemux.ingest.batch import BatchTable, SpanBatch
from tracemux.models.node import NodeIdentity
from tracemux.receivers.base import SpanReceiver

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_PERIOD_MILLIS = 1000

_MIN_WAIT_SECONDS = 0.001


class BatchScheduler:
    """Flushes per-node batches to a :class:`SpanReceiver`.

    Args:
        table: Shared node -> batch table.
        receiver: Downstream sink.
        buffer_period_millis: Minimum age of a window before it is flushed.
        idle_eviction_millis: Forget empty batches idle for this long.
            ``None`` (default) keeps every node for the process lifetime.
        clock: Monotonic clock in seconds; must match the table's clock.
    """

    def __init__(
        self,
        table: BatchTable,
        receiver: SpanReceiver,
        buffer_period_millis: int = DEFAULT_BUFFER_PERIOD_MILLIS,
        idle_eviction_millis: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if buffer_period_millis <= 0:
            raise ValueError(f"buffer_period_millis must be positive, got {buffer_period_millis}")
        if idle_eviction_millis is not None and idle_eviction_millis <= 0:
            raise ValueError(f"idle_eviction_millis must be positive, got {idle_eviction_millis}")

        self._table = table
        self._receiver = receiver
        self._period = buffer_period_millis / 1000.0
        self._idle = idle_eviction_millis / 1000.0 if idle_eviction_millis is not None else None
        self._clock = clock

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def buffer_period(self) -> float:
        """Buffer period in seconds."""
        return self._period

    # ------------------------------------------------------------------
    # Flush operations
    # ------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> int:
        """Flush every batch whose window is at least one buffer period old.

        Returns the number of spans delivered.

        Raises:
            SinkError: One or more receiver calls failed.  Every due batch
                is still attempted first.
        """
        if now is None:
            now = self._clock()
        delivered = self._flush_batches(self._table.due(now, self._period), now=now)
        if self._idle is not None:
            self._table.evict_idle(now, self._idle)
        return delivered

    def flush(self, node: NodeIdentity) -> int:
        """Flush *node*'s batch immediately, regardless of window age."""
        batch = self._table.get(node)
        if batch is None:
            return 0
        return self._deliver(batch)

    def flush_all(self) -> int:
        """Flush every non-empty batch immediately, regardless of window age."""
        return self._flush_batches(self._table.pending())

    def _flush_batches(self, batches: List[SpanBatch], now: Optional[float] = None) -> int:
        delivered = 0
        failures: List[SinkError] = []
        for batch in batches:
            try:
                delivered += self._deliver(batch, now=now)
            except SinkError as exc:
                failures.append(exc)

        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise SinkError(f"span receiver failed for {len(failures)} nodes", failures=failures)
        return delivered

    def _deliver(self, batch: SpanBatch, now: Optional[float] = None) -> int:
        # With *now* set (the tick path) a window opened since the due()
        # snapshot stays buffered.
        with batch.delivery_lock:
            spans = self._table.take(batch, now=now, period=self._period)
            if not spans:
                return 0

            node = batch.node
            try:
                ack = self._receiver.receive_spans(node, spans)
                saved = ack.saved_spans
            except Exception as exc:
                raise SinkError(
                    f"span receiver failed for node pid={node.pid} host={node.host_name}: {exc}",
                    node=node,
                    spans_lost=len(spans),
                ) from exc

            if saved < len(spans):
                raise SinkError(
                    f"span receiver saved {saved} of {len(spans)} spans "
                    f"for node pid={node.pid} host={node.host_name}",
                    node=node,
                    spans_lost=len(spans) - saved,
                )

        logger.debug("Flushed %d span(s) for node pid=%s host=%s", len(spans), node.pid, node.host_name)
        return len(spans)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start the background sweep thread.

        Returns:
            ``True`` if started, ``False`` if already running.
        """
        with self._lock:
            if self._thread is not None:
                return False
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="tracemux-batch-scheduler", daemon=True)
            self._thread.start()
            logger.debug("Batch scheduler started: buffer_period=%.3fs", self._period)
            return True

    def is_running(self) -> bool:
        return self._thread is not None

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Flush everything still buffered, then stop the sweep thread.

        Raises:
            SinkError: The final flush failed.  The thread is stopped anyway.
        """
        try:
            self.flush_all()
        finally:
            with self._lock:
                thread, self._thread = self._thread, None
                self._stop.set()
            if thread is not None:
                thread.join(timeout)
                logger.debug("Batch scheduler stopped")

    def _next_wait(self) -> float:
        earliest = self._table.earliest_window_start()
        if earliest is None:
            return self._period
        return max(earliest + self._period - self._clock(), _MIN_WAIT_SECONDS)

    def _run(self) -> None:
        while not self._stop.wait(self._next_wait()):
            try:
                self.tick()
            except SinkError as exc:
                logger.error("Dropped %d span(s) on scheduled flush: %s", exc.spans_lost, exc)
            except Exception as exc:
                logger.error("Scheduled flush failed: %s", exc, exc_info=True)
