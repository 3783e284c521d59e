# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Forward node batches to an OpenTelemetry ``SpanExporter``.

Any SDK exporter works (OTLP over HTTP or gRPC, console, in-memory).  Each
``opentelemetry.sdk.trace.ReadableSpan`` is exported as a copy whose
resource is the span's own resource merged with the node's, node values
winning, so the backend sees which process reported it.  The spans held
by the collector are never modified.  Other span objects are passed
through as they are.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from tracemux.models.node import NodeIdentity
from tracemux.models.request import Acknowledgement

logger = logging.getLogger(__name__)


class ExporterSpanReceiver:
    """Adapts a ``SpanExporter`` to the receiver interface.

    A non-``SUCCESS`` export result raises ``RuntimeError``, which the
    scheduler reports as a :class:`~tracemux.errors.SinkError`.
    """

    def __init__(self, exporter: SpanExporter) -> None:
        self._exporter = exporter

    @property
    def exporter(self) -> SpanExporter:
        return self._exporter

    def receive_spans(self, node: NodeIdentity, spans: Sequence[Any]) -> Acknowledgement:
        resource = node.to_resource()
        result = self._exporter.export([_with_resource(span, resource) for span in spans])
        if result is not SpanExportResult.SUCCESS:
            raise RuntimeError(f"{type(self._exporter).__name__} returned {result.name}")
        logger.debug("Exported %d span(s) for node pid=%s host=%s", len(spans), node.pid, node.host_name)
        return Acknowledgement(saved_spans=len(spans))

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)

    def shutdown(self) -> None:
        self._exporter.shutdown()

    @classmethod
    def otlp(cls, endpoint: str, headers: Optional[Dict[str, str]] = None) -> ExporterSpanReceiver:
        """Build a receiver backed by the OTLP/HTTP trace exporter."""
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        except ImportError as exc:
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required. Install with: pip install tracemux"
            ) from exc

        return cls(OTLPSpanExporter(endpoint=endpoint, headers=headers or {}))


def _with_resource(span: Any, resource: Resource) -> Any:
    if not isinstance(span, ReadableSpan):
        return span
    return ReadableSpan(
        name=span.name,
        context=span.context,
        parent=span.parent,
        resource=span.resource.merge(resource),
        attributes=span.attributes,
        events=span.events,
        links=span.links,
        kind=span.kind,
        status=span.status,
        start_time=span.start_time,
        end_time=span.end_time,
        instrumentation_scope=span.instrumentation_scope,
    )
