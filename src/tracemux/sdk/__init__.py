# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Tracemux collector lifecycle and configuration."""

from __future__ import annotations

from tracemux.sdk.bootstrap import get_coordinator, is_running, start, stop
from tracemux.sdk.config import IngestConfig

__all__ = [
    "IngestConfig",
    "get_coordinator",
    "is_running",
    "start",
    "stop",
]
