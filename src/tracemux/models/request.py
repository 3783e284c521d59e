# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Inbound stream messages and receiver acknowledgements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from tracemux.models.node import NodeIdentity


@dataclass(frozen=True)
class ExportRequest:
    """One message on an inbound span stream.

    ``node`` may be omitted, in which case the spans belong to the last node
    declared on the same stream.  A request with a node and no spans only
    declares the node.
    """

    node: Optional[NodeIdentity] = None
    spans: Sequence[Any] = field(default_factory=tuple)


@dataclass(frozen=True)
class Acknowledgement:
    """Receiver reply to a delivered batch."""

    saved_spans: int = 0
