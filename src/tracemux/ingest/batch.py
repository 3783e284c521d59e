# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Per-node span accumulation.

:class:`BatchTable` is the node -> :class:`SpanBatch` table shared by every
stream.  All reads and writes of a batch's pending spans and window go
through the table lock, so an append and a swap for the same node never
interleave partially.  The receiver is never called with this lock held;
ordered delivery across flushes is the job of each batch's
``delivery_lock`` (see :mod:`tracemux.ingest.scheduler`).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from tracemux.ingest.registry import NodeRegistry
from tracemux.models.node import NodeIdentity

logger = logging.getLogger(__name__)


class SpanBatch:
    """Pending spans for one node plus the window they accumulate in."""

    __slots__ = ("node", "spans", "window_start", "last_activity", "delivery_lock")

    def __init__(self, node: NodeIdentity, now: float) -> None:
        self.node = node
        self.spans: List[Any] = []
        self.window_start: Optional[float] = None
        self.last_activity = now
        self.delivery_lock = threading.Lock()

    @property
    def key(self) -> bytes:
        return self.node.canonical_bytes()

    def is_empty(self) -> bool:
        return not self.spans

    def is_due(self, now: float, period: float) -> bool:
        return self.window_start is not None and now - self.window_start >= period

    def __repr__(self) -> str:
        return f"SpanBatch(node={self.node!r}, pending={len(self.spans)}, window_start={self.window_start!r})"


class BatchTable:
    """Thread-safe node -> batch table.

    Batches are created on the first append for a node and reused for the
    node's lifetime.  Only :meth:`evict_idle` ever removes one.
    """

    def __init__(
        self,
        registry: Optional[NodeRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry if registry is not None else NodeRegistry(clock=clock)
        self._clock = clock
        self._lock = threading.Lock()
        self._batches: Dict[bytes, SpanBatch] = {}

    def append(self, node: NodeIdentity, spans: Iterable[Any]) -> SpanBatch:
        """Append *spans* to *node*'s batch in arrival order.

        Stamps the window start when the batch goes from empty to non-empty.
        """
        key = node.canonical_bytes()
        with self._lock:
            now = self._clock()
            batch = self._batches.get(key)
            if batch is None:
                batch = SpanBatch(self.registry.canonicalize(node), now)
                self._batches[key] = batch
            was_empty = not batch.spans
            batch.spans.extend(spans)
            batch.last_activity = now
            if was_empty and batch.spans:
                batch.window_start = now
            return batch

    def take(self, batch: SpanBatch, now: Optional[float] = None, period: Optional[float] = None) -> List[Any]:
        """Swap *batch*'s pending spans for an empty list and return them.

        With *now* and *period* given, the swap only happens if the batch is
        still due at *now*; otherwise nothing is taken.
        """
        with self._lock:
            if now is not None and period is not None and not batch.is_due(now, period):
                return []
            spans = batch.spans
            batch.spans = []
            batch.window_start = None
            return spans

    def get(self, node: NodeIdentity) -> Optional[SpanBatch]:
        with self._lock:
            return self._batches.get(node.canonical_bytes())

    def pending(self) -> List[SpanBatch]:
        """Snapshot of every non-empty batch."""
        with self._lock:
            return [b for b in self._batches.values() if b.spans]

    def due(self, now: float, period: float) -> List[SpanBatch]:
        """Snapshot of batches whose window is at least *period* old."""
        with self._lock:
            return [b for b in self._batches.values() if b.is_due(now, period)]

    def earliest_window_start(self) -> Optional[float]:
        with self._lock:
            starts = [b.window_start for b in self._batches.values() if b.window_start is not None]
        return min(starts) if starts else None

    def evict_idle(self, now: float, idle: float) -> int:
        """Forget empty batches with no activity for *idle* seconds.

        A batch whose delivery is in flight is skipped; removing it then
        could let a replacement batch deliver ahead of it.  Registry entries
        without a batch (nodes declared but never sent spans for) are
        forgotten once idle too.
        """
        evicted = 0
        with self._lock:
            for key, batch in list(self._batches.items()):
                if batch.spans or now - batch.last_activity < idle:
                    continue
                if not batch.delivery_lock.acquire(blocking=False):
                    continue
                try:
                    del self._batches[key]
                    self.registry.forget(key)
                    evicted += 1
                finally:
                    batch.delivery_lock.release()
            evicted += self.registry.forget_idle(now, idle, keep=self._batches.keys())
        if evicted:
            logger.debug("Evicted %d idle node(s)", evicted)
        return evicted

    def pending_span_count(self) -> int:
        with self._lock:
            return sum(len(b.spans) for b in self._batches.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._batches)
