# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Tracemux - per-node batching front-end for multiplexed span streams.

Quick Start::

    from tracemux import ExportRequest, NodeIdentity, start, stop

    coordinator = start(buffer_period_millis=100)

    node = NodeIdentity(pid=9489, host_name="nodejs-host", language="nodejs")
    coordinator.export([
        ExportRequest(node=node, spans=[span_a]),
        ExportRequest(spans=[span_b, span_c]),  # attributed to node
    ])

    stop()  # flushes everything still buffered
"""

from __future__ import annotations

from tracemux._version import __version__

# Errors
from tracemux.errors import AttributionError, SinkError, TracemuxError

# Ingest core
from tracemux.ingest import (
    BatchScheduler,
    BatchTable,
    IngestCoordinator,
    NodeRegistry,
    SpanBatch,
    StreamSession,
)

# Data models
from tracemux.models import Acknowledgement, ExportRequest, NodeIdentity

# Receivers
from tracemux.receivers import ExporterSpanReceiver, InMemorySpanReceiver, SpanReceiver

# Lifecycle and configuration
from tracemux.sdk import IngestConfig, get_coordinator, is_running, start, stop

__all__ = [
    "__version__",
    # Lifecycle
    "start",
    "stop",
    "is_running",
    "get_coordinator",
    # Configuration
    "IngestConfig",
    # Data models
    "NodeIdentity",
    "ExportRequest",
    "Acknowledgement",
    # Ingest core
    "IngestCoordinator",
    "StreamSession",
    "NodeRegistry",
    "BatchTable",
    "SpanBatch",
    "BatchScheduler",
    # Receivers
    "SpanReceiver",
    "InMemorySpanReceiver",
    "ExporterSpanReceiver",
    # Errors
    "TracemuxError",
    "AttributionError",
    "SinkError",
]
