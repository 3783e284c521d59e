# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""The downstream sink interface."""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from tracemux.models.node import NodeIdentity
from tracemux.models.request import Acknowledgement


@runtime_checkable
class SpanReceiver(Protocol):
    """Receives one consolidated batch of spans for one node per call.

    Implementations may block and may raise; the scheduler wraps any
    exception in :class:`~tracemux.errors.SinkError` and does not retry.
    An acknowledgement with fewer ``saved_spans`` than were delivered is
    treated as a failure.
    """

    def receive_spans(self, node: NodeIdentity, spans: Sequence[Any]) -> Acknowledgement: ...
