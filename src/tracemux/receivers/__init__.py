# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Downstream span receivers."""

from tracemux.receivers.base import SpanReceiver
from tracemux.receivers.exporter import ExporterSpanReceiver
from tracemux.receivers.memory import InMemorySpanReceiver

__all__ = ["ExporterSpanReceiver", "InMemorySpanReceiver", "SpanReceiver"]
