# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""IngestCoordinator - the entry point for inbound span streams.

Owns the state shared by every stream (node registry, batch table) and the
scheduler that drains it to the receiver.  Each stream gets its own
:class:`StreamSession`.

Usage::

    from tracemux import ExportRequest, InMemorySpanReceiver, IngestCoordinator

    receiver = InMemorySpanReceiver()
    with IngestCoordinator(receiver, buffer_period_millis=100) as coordinator:
        coordinator.export(request_iterator)  # one call per inbound stream

Nothing is sent back on the stream.  Leaving the ``with`` block flushes
every buffered span before the background sweep stops.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import TYPE_CHECKING, AsyncIterable, Callable, Iterable, Optional

from tracemux.errors import AttributionError
from tracemux.ingest.batch import BatchTable
from tracemux.ingest.registry import NodeRegistry
from tracemux.ingest.scheduler import BatchScheduler
from tracemux.ingest.session import StreamSession
from tracemux.models.request import ExportRequest
from tracemux.receivers.base import SpanReceiver

if TYPE_CHECKING:
    from tracemux.sdk.config import IngestConfig

logger = logging.getLogger(__name__)


class IngestCoordinator:
    """Accepts span streams and batches them per node for *receiver*.

    Args:
        receiver: Downstream sink for consolidated batches.
        config: Source of ``buffer_period_millis`` and
            ``idle_eviction_millis``.
        buffer_period_millis: Overrides the configured buffer period.
        clock: Monotonic clock in seconds, shared by the table and the
            scheduler.
    """

    def __init__(
        self,
        receiver: SpanReceiver,
        config: Optional[IngestConfig] = None,
        buffer_period_millis: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        from tracemux.sdk.config import IngestConfig as ConfigClass

        cfg = config if config is not None else ConfigClass()
        if buffer_period_millis is not None:
            cfg = dataclasses.replace(cfg, buffer_period_millis=buffer_period_millis)

        self.config = cfg
        self.receiver = receiver
        self.registry = NodeRegistry(clock=clock)
        self.table = BatchTable(self.registry, clock=clock)
        self.scheduler = BatchScheduler(
            self.table,
            receiver,
            buffer_period_millis=cfg.buffer_period_millis,
            idle_eviction_millis=cfg.idle_eviction_millis,
            clock=clock,
        )

    def open_session(self) -> StreamSession:
        """Create a session bound to the shared registry and table."""
        return StreamSession(self.registry, self.table)

    def export(self, requests: Iterable[ExportRequest]) -> StreamSession:
        """Consume one inbound stream until it ends.

        Runs on the calling thread; serve concurrent streams from separate
        threads.  Errors raised by *requests* (transport failures) propagate
        and end this stream only.

        Raises:
            AttributionError: The stream sent spans before declaring a node.
        """
        session = self.open_session()
        for request in requests:
            self._receive(session, request)
        logger.debug(
            "Stream closed: messages=%d spans=%d",
            session.received_messages,
            session.received_spans,
        )
        return session

    async def export_async(self, requests: AsyncIterable[ExportRequest]) -> StreamSession:
        """Like :meth:`export`, for an async stream (e.g. a grpc.aio servicer)."""
        session = self.open_session()
        async for request in requests:
            self._receive(session, request)
        logger.debug(
            "Stream closed: messages=%d spans=%d",
            session.received_messages,
            session.received_spans,
        )
        return session

    def _receive(self, session: StreamSession, request: ExportRequest) -> None:
        try:
            session.receive(request)
        except AttributionError:
            logger.warning("Rejected %d span(s) from a stream that never declared a node", len(request.spans))
            raise

    def flush(self) -> int:
        """Deliver every buffered span now.  Returns the number delivered.

        Raises:
            SinkError: The receiver failed for at least one node.
        """
        return self.scheduler.flush_all()

    def start(self) -> IngestCoordinator:
        self.scheduler.start()
        return self

    def shutdown(self) -> None:
        """Flush everything and stop the background sweep."""
        self.scheduler.shutdown()

    def __enter__(self) -> IngestCoordinator:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
