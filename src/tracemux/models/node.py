# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""NodeIdentity - the reporting process a batch of spans belongs to.

A node is content-addressed: two identities describe the same logical node
iff their canonical serialized form is byte-equal.  The canonical form is
compact JSON with sorted keys, so attribute insertion order never matters.

Attribute values are limited to plain JSON scalars (str, int, float, bool,
None) and lists or tuples of them, so no two distinct values share a
serialized form.  Tuples and lists of the same items are the same value.

Nodes map onto OpenTelemetry resources using the semantic keys below; the
exporter-backed receiver stamps that resource on every span it exports.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping

if TYPE_CHECKING:
    from opentelemetry.sdk.resources import Resource

PID_KEY = "process.pid"
HOST_NAME_KEY = "host.name"
LANGUAGE_KEY = "telemetry.sdk.language"

_SCALAR_TYPES = (str, int, float, bool, type(None))


@dataclass(frozen=True, eq=False)
class NodeIdentity:
    """Immutable descriptor of a reporting process.

    Example::

        >>> node = NodeIdentity(pid=9489, host_name="nodejs-host", language="nodejs")
        >>> node == NodeIdentity(pid=9489, host_name="nodejs-host", language="nodejs")
        True
    """

    pid: int = 0
    host_name: str = ""
    language: str = ""
    attributes: Mapping[str, Any] = field(default_factory=dict)

    _key: bytes = field(default=b"", init=False, repr=False)

    def __post_init__(self) -> None:
        frozen = MappingProxyType(dict(self.attributes))
        for name, value in frozen.items():
            if not isinstance(name, str) or not _is_plain(value):
                raise TypeError(f"node attribute {name!r} has unsupported value {value!r}")
        object.__setattr__(self, "attributes", frozen)
        object.__setattr__(self, "_key", _serialize(self.pid, self.host_name, self.language, frozen))

    def canonical_bytes(self) -> bytes:
        """Return the canonical serialized form used as the grouping key."""
        return self._key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeIdentity):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    # ------------------------------------------------------------------
    # OpenTelemetry resource mapping
    # ------------------------------------------------------------------

    def to_resource(self) -> Resource:
        """Convert to an OTel ``Resource`` (no SDK defaults merged in)."""
        from opentelemetry.sdk.resources import Resource

        attrs: Dict[str, Any] = dict(self.attributes)
        attrs[PID_KEY] = self.pid
        if self.host_name:
            attrs[HOST_NAME_KEY] = self.host_name
        if self.language:
            attrs[LANGUAGE_KEY] = self.language
        return Resource(attrs)


def _serialize(pid: int, host_name: str, language: str, attributes: Mapping[str, Any]) -> bytes:
    payload = {
        "attributes": dict(attributes),
        "host_name": host_name,
        "language": language,
        "pid": pid,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _is_plain(value: Any) -> bool:
    # Exact type checks: str/int subclasses such as enums would serialize
    # like their base value and collide with it.
    if type(value) in _SCALAR_TYPES:
        return True
    if type(value) in (list, tuple):
        return all(type(item) in _SCALAR_TYPES for item in value)
    return False
