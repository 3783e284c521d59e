# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Exceptions raised by the ingest core.

Both are per-stream or per-flush signals. Neither stops the collector from
serving other streams or nodes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from tracemux.models.node import NodeIdentity


class TracemuxError(Exception):
    """Base class for all tracemux errors."""


class AttributionError(TracemuxError):
    """A message omitted its node on a stream that has never declared one."""

    def __init__(self, message: str = "protocol violation: the first message on a stream must carry a node") -> None:
        super().__init__(message)


class SinkError(TracemuxError):
    """The span receiver failed or only partially acknowledged a batch.

    The spans were already removed from their batch and are not re-queued.
    ``spans_lost`` counts the spans the receiver did not confirm.  An error
    raised by :meth:`BatchScheduler.flush_all` aggregates one ``SinkError``
    per failed node in ``failures``.
    """

    def __init__(
        self,
        message: str,
        node: Optional[NodeIdentity] = None,
        spans_lost: int = 0,
        failures: Optional[Sequence[SinkError]] = None,
    ) -> None:
        super().__init__(message)
        self.node = node
        self.failures: List[SinkError] = list(failures or [])
        if self.failures and not spans_lost:
            spans_lost = sum(f.spans_lost for f in self.failures)
        self.spans_lost = spans_lost


__all__ = ["AttributionError", "SinkError", "TracemuxError"]
