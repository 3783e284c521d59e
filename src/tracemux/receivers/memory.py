# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""In-memory receiver, for tests and local debugging."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Sequence

from tracemux.models.node import NodeIdentity
from tracemux.models.request import Acknowledgement


class InMemorySpanReceiver:
    """Accumulates every delivered span per node, in delivery order.

    Entries are keyed by the node's canonical bytes, so structurally-equal
    nodes always land in one entry.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: Dict[bytes, NodeIdentity] = {}
        self._spans: Dict[bytes, List[Any]] = {}
        self._calls = 0

    def receive_spans(self, node: NodeIdentity, spans: Sequence[Any]) -> Acknowledgement:
        key = node.canonical_bytes()
        with self._lock:
            self._nodes.setdefault(key, node)
            self._spans.setdefault(key, []).extend(spans)
            self._calls += 1
        return Acknowledgement(saved_spans=len(spans))

    def for_each_entry(self, fn: Callable[[NodeIdentity, List[Any]], None]) -> None:
        with self._lock:
            for key, node in self._nodes.items():
                fn(node, list(self._spans[key]))

    def get_spans(self, node: NodeIdentity) -> List[Any]:
        with self._lock:
            return list(self._spans.get(node.canonical_bytes(), []))

    def nodes(self) -> List[NodeIdentity]:
        with self._lock:
            return list(self._nodes.values())

    @property
    def call_count(self) -> int:
        """Number of ``receive_spans`` calls so far."""
        return self._calls

    def span_count(self) -> int:
        with self._lock:
            return sum(len(spans) for spans in self._spans.values())

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()
            self._spans.clear()
            self._calls = 0
