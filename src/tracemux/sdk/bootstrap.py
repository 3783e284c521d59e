# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Process-wide collector lifecycle.

Usage::

    from tracemux import start, stop

    coordinator = start()  # reads TRACEMUX_*, OTEL_EXPORTER_OTLP_ENDPOINT from env
    ...                    # hand inbound streams to coordinator.export()
    stop()                 # flushes buffered spans, stops the sweep

Embedding applications that manage their own lifecycle can construct an
:class:`~tracemux.ingest.coordinator.IngestCoordinator` directly instead.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from tracemux.ingest.coordinator import IngestCoordinator
    from tracemux.receivers.base import SpanReceiver
    from tracemux.sdk.config import IngestConfig

logger = logging.getLogger(__name__)

_lock = threading.RLock()
_coordinator: Optional[IngestCoordinator] = None


def start(
    receiver: Optional[SpanReceiver] = None,
    buffer_period_millis: Optional[int] = None,
    log_level: str = "INFO",
    config: Optional[IngestConfig] = None,
    config_file: Optional[str] = None,
) -> IngestCoordinator:
    """Start the process-wide collector.

    Args:
        receiver: Downstream sink (default: OTLP/HTTP exporter to
            ``config.otlp_endpoint``).
        buffer_period_millis: Overrides the configured buffer period.
        log_level: Logging level (default: ``"INFO"``).
        config: Full :class:`IngestConfig` (overrides *config_file*).
        config_file: Path to YAML config file.

    Returns:
        The running coordinator.  If one is already running it is returned
        unchanged.
    """
    global _coordinator

    with _lock:
        if _coordinator is not None:
            logger.warning("tracemux collector already started")
            return _coordinator

        logging.basicConfig(level=getattr(logging, log_level.upper()))

        from tracemux.ingest.coordinator import IngestCoordinator as CoordinatorClass
        from tracemux.sdk.config import IngestConfig as ConfigClass

        if config is not None:
            cfg = config
        elif config_file is not None:
            cfg = ConfigClass.from_yaml(config_file)
        else:
            cfg = ConfigClass.from_file_or_env()

        if receiver is None:
            from tracemux.receivers.exporter import ExporterSpanReceiver

            receiver = ExporterSpanReceiver.otlp(cfg.otlp_endpoint, headers=cfg.otlp_headers)
            logger.info("Exporting consolidated batches to %s", cfg.otlp_endpoint)

        coordinator = CoordinatorClass(receiver, config=cfg, buffer_period_millis=buffer_period_millis)
        coordinator.start()
        _coordinator = coordinator

        logger.info(
            "tracemux collector started: service=%s, buffer_period=%dms",
            cfg.service_name,
            coordinator.config.buffer_period_millis,
        )
        return coordinator


def get_coordinator() -> Optional[IngestCoordinator]:
    """Get the running collector, if any."""
    return _coordinator


def is_running() -> bool:
    """Check if the process-wide collector is running."""
    return _coordinator is not None


def stop() -> None:
    """Flush every buffered span and stop the collector.

    Call on application shutdown so no buffered spans are lost.  A failed
    final flush is logged; the collector is stopped regardless.
    """
    global _coordinator

    with _lock:
        if _coordinator is None:
            return

        coordinator, _coordinator = _coordinator, None

        from tracemux.errors import SinkError

        try:
            coordinator.shutdown()
            logger.info("tracemux collector shutdown complete")
        except SinkError as exc:
            logger.error("Dropped %d span(s) during shutdown: %s", exc.spans_lost, exc)

        shutdown_receiver = getattr(coordinator.receiver, "shutdown", None)
        if callable(shutdown_receiver):
            shutdown_receiver()
