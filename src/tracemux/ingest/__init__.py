# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Stream attribution and per-node batching."""

from tracemux.ingest.batch import BatchTable, SpanBatch
from tracemux.ingest.coordinator import IngestCoordinator
from tracemux.ingest.registry import NodeRegistry
from tracemux.ingest.scheduler import DEFAULT_BUFFER_PERIOD_MILLIS, BatchScheduler
from tracemux.ingest.session import StreamSession

__all__ = [
    "DEFAULT_BUFFER_PERIOD_MILLIS",
    "BatchScheduler",
    "BatchTable",
    "IngestCoordinator",
    "NodeRegistry",
    "SpanBatch",
    "StreamSession",
]
