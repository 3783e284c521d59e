# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Configuration for the tracemux collector.

The ingest core consumes a single option, the span buffer period.  The rest
describes where the default receiver exports to.

Configuration precedence (highest to lowest):
1. Code arguments (explicit values passed to IngestConfig)
2. Environment variables (TRACEMUX_*, OTEL_*)
3. YAML config file (tracemux.yaml or specified path)
4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from tracemux.ingest.scheduler import DEFAULT_BUFFER_PERIOD_MILLIS

logger = logging.getLogger(__name__)


@dataclass
class IngestConfig:
    """Configuration for the collector and its default receiver.

    Example::

        >>> config = IngestConfig(buffer_period_millis=100)

        >>> # Or load from YAML
        >>> config = IngestConfig.from_yaml("config/tracemux.yaml")
    """

    # Minimum age of a node's batch window before it is flushed
    buffer_period_millis: Optional[int] = None

    # Forget nodes whose batch stayed empty this long (None = never)
    idle_eviction_millis: Optional[int] = None

    # Service identification of the collector itself
    service_name: Optional[str] = None

    # OTLP exporter configuration (default receiver)
    otlp_endpoint: Optional[str] = None
    otlp_headers: Optional[Dict[str, str]] = None

    # Config file path (for tracking where config was loaded from)
    _config_file: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Apply environment variable defaults."""
        if self.buffer_period_millis is None:
            env_period = os.getenv("TRACEMUX_SPAN_BUFFER_PERIOD_MS")
            self.buffer_period_millis = int(env_period) if env_period else DEFAULT_BUFFER_PERIOD_MILLIS

        if self.idle_eviction_millis is None:
            env_idle = os.getenv("TRACEMUX_IDLE_EVICTION_MS")
            if env_idle:
                self.idle_eviction_millis = int(env_idle)

        if self.service_name is None:
            self.service_name = os.getenv("OTEL_SERVICE_NAME", "tracemux")

        if self.otlp_endpoint is None:
            env_endpoint = os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
            if env_endpoint:
                self.otlp_endpoint = env_endpoint
            else:
                base = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")
                self.otlp_endpoint = f"{base.rstrip('/')}/v1/traces"

        if self.buffer_period_millis <= 0:
            raise ValueError(f"buffer_period_millis must be positive, got {self.buffer_period_millis}")

    # ------------------------------------------------------------------
    # YAML loading
    # ------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> IngestConfig:
        """Load configuration from a YAML file.

        Supports environment variable interpolation using ``${VAR_NAME}`` syntax.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If YAML is malformed.
        """
        if path is None:
            raise FileNotFoundError("No config file path provided")

        resolved = Path(path)
        if not resolved.exists():
            raise FileNotFoundError(f"Config file not found: {resolved}")

        try:
            import yaml  # type: ignore[import-untyped]
        except ImportError as err:
            raise ImportError("PyYAML required for YAML config. Install with: pip install pyyaml") from err

        with open(resolved) as fh:
            raw_content = fh.read()

        content = _interpolate_env_vars(raw_content)

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {resolved}: {exc}") from exc

        if data is None:
            data = {}

        return cls._from_dict(data, config_file=str(resolved))

    @classmethod
    def from_file_or_env(cls, path: Optional[str] = None) -> IngestConfig:
        """Load config from file if exists, otherwise use environment variables.

        Search order:
        1. Explicit *path* argument
        2. ``TRACEMUX_CONFIG_FILE`` env var
        3. ``./tracemux.yaml``
        4. ``./config/tracemux.yaml``
        5. Falls back to env-only config
        """
        search_paths: List[Path] = []

        if path:
            search_paths.append(Path(path))

        env_path = os.getenv("TRACEMUX_CONFIG_FILE")
        if env_path:
            search_paths.append(Path(env_path))

        search_paths.extend(
            [
                Path("tracemux.yaml"),
                Path("tracemux.yml"),
                Path("config/tracemux.yaml"),
                Path("config/tracemux.yml"),
            ]
        )

        for candidate in search_paths:
            if candidate.exists():
                logger.info("Loading config from: %s", candidate)
                return cls.from_yaml(str(candidate))

        logger.debug("No config file found, using environment variables only")
        return cls()

    @classmethod
    def _from_dict(
        cls,
        data: Dict[str, Any],
        config_file: Optional[str] = None,
    ) -> IngestConfig:
        """Create config from dictionary (parsed YAML)."""
        ingest = data.get("ingest", {})
        service = data.get("service", {})
        otlp = data.get("otlp", {})

        return cls(
            buffer_period_millis=ingest.get("buffer_period_ms"),
            idle_eviction_millis=ingest.get("idle_eviction_ms"),
            service_name=service.get("name"),
            otlp_endpoint=otlp.get("endpoint"),
            otlp_headers=otlp.get("headers"),
            _config_file=config_file,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "ingest": {
                "buffer_period_ms": self.buffer_period_millis,
                "idle_eviction_ms": self.idle_eviction_millis,
            },
            "service": {
                "name": self.service_name,
            },
            "otlp": {
                "endpoint": self.otlp_endpoint,
                "headers": self.otlp_headers,
            },
        }


def _interpolate_env_vars(content: str) -> str:
    """Interpolate ``${VAR_NAME}`` and ``${VAR_NAME:-default}`` in *content*."""
    pattern = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

    def _replace(match: re.Match) -> str:  # type: ignore[type-arg]
        var_name = match.group(1)
        default = match.group(2)
        value = os.getenv(var_name)
        if value is not None:
            return value
        if default is not None:
            return default
        return match.group(0)

    return pattern.sub(_replace, content)
