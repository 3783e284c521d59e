# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""StreamSession - node attribution for one inbound stream.

Agents may proxy spans for several processes over one stream.  A message
that carries a node switches the stream to that node; a message without one
belongs to the last node declared on the same stream.  This state is per
stream, while the batch table it writes into is shared, so one node's spans
arriving on different streams still merge into one batch.
"""

from __future__ import annotations

import logging
from typing import Optional

from tracemux.errors import AttributionError
from tracemux.ingest.batch import BatchTable
from tracemux.ingest.registry import NodeRegistry
from tracemux.models.node import NodeIdentity
from tracemux.models.request import ExportRequest

logger = logging.getLogger(__name__)


class StreamSession:
    """Attributes messages from one stream and appends them to the table.

    Messages must be passed to :meth:`receive` in the order they arrived on
    the stream.  A session is not meant to be shared between threads.
    """

    def __init__(self, registry: NodeRegistry, table: BatchTable) -> None:
        self._registry = registry
        self._table = table
        self.last_node: Optional[NodeIdentity] = None
        self.received_messages = 0
        self.received_spans = 0

    def attribute(self, request: ExportRequest) -> NodeIdentity:
        """Resolve the node *request* belongs to, updating the last node.

        Raises:
            AttributionError: *request* has no node and none was declared
                earlier on this stream.
        """
        if request.node is not None:
            node = self._registry.canonicalize(request.node)
            if node is not self.last_node:
                logger.debug("Stream switched to node pid=%s host=%s", node.pid, node.host_name)
            self.last_node = node
            return node

        if self.last_node is None:
            raise AttributionError()
        return self.last_node

    def receive(self, request: ExportRequest) -> NodeIdentity:
        """Attribute *request* and buffer its spans.

        An unattributable request buffers nothing.
        """
        node = self.attribute(request)
        self.received_messages += 1
        if request.spans:
            self._table.append(node, request.spans)
            self.received_spans += len(request.spans)
        return node
