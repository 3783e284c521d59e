# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Dynamic version from package metadata (falls back to a dev version when not installed)."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__: str = version("tracemux")
except Exception:
    __version__ = "0.0.0.dev0"
