# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Tracemux data models."""

from __future__ import annotations

from tracemux.models.node import NodeIdentity
from tracemux.models.request import Acknowledgement, ExportRequest

__all__ = ["Acknowledgement", "ExportRequest", "NodeIdentity"]
