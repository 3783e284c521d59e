# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""NodeRegistry - one canonical NodeIdentity instance per logical node."""

from __future__ import annotations

import logging
import threading
import time
from typing import AbstractSet, Callable, Dict, Optional

from tracemux.models.node import NodeIdentity

logger = logging.getLogger(__name__)


class NodeRegistry:
    """Thread-safe lookup-or-insert table keyed by canonical node bytes.

    Structurally-equal nodes seen at different times, or on different
    streams, resolve to the instance registered first, so consumers can use
    ``is`` as a fast path once a node went through :meth:`canonicalize`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._nodes: Dict[bytes, NodeIdentity] = {}
        self._last_seen: Dict[bytes, float] = {}

    def canonicalize(self, candidate: NodeIdentity) -> NodeIdentity:
        key = candidate.canonical_bytes()
        with self._lock:
            self._last_seen[key] = self._clock()
            existing = self._nodes.get(key)
            if existing is not None:
                return existing
            self._nodes[key] = candidate
        logger.debug("Registered node pid=%s host=%s language=%s", candidate.pid, candidate.host_name, candidate.language)
        return candidate

    def get(self, key: bytes) -> Optional[NodeIdentity]:
        with self._lock:
            return self._nodes.get(key)

    def forget(self, key: bytes) -> None:
        with self._lock:
            self._nodes.pop(key, None)
            self._last_seen.pop(key, None)

    def forget_idle(self, now: float, idle: float, keep: AbstractSet[bytes] = frozenset()) -> int:
        """Forget nodes not canonicalized for *idle* seconds, except *keep*.

        Forgetting only drops the shared instance; a stream still holding
        the node re-registers it on its next message.
        """
        with self._lock:
            stale = [
                key for key, seen in self._last_seen.items() if key not in keep and now - seen >= idle
            ]
            for key in stale:
                del self._nodes[key]
                del self._last_seen[key]
        return len(stale)

    def __contains__(self, node: object) -> bool:
        if not isinstance(node, NodeIdentity):
            return False
        with self._lock:
            return node.canonical_bytes() in self._nodes

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)
