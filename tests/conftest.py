# SPDX-FileCopyrightText: 2026 The Tracemux Authors
# SPDX-License-Identifier: Apache-2.0

"""Shared test fixtures for tracemux tests."""

from __future__ import annotations

import time
from typing import Callable, List

import pytest
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from tracemux.models.node import NodeIdentity
from tracemux.receivers.memory import InMemorySpanReceiver


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(name="wait_for")
def wait_for_fixture():
    return wait_for


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def receiver():
    return InMemorySpanReceiver()


@pytest.fixture
def node_a():
    return NodeIdentity(pid=1, host_name="multiplexer", language="java")


@pytest.fixture
def node_b():
    return NodeIdentity(pid=9489, host_name="nodejs-host", language="nodejs")


@pytest.fixture
def memory_exporter():
    """In-memory span exporter used as a downstream OTel sink."""
    return InMemorySpanExporter()


@pytest.fixture
def make_spans():
    """Produce finished SDK spans with the given names."""
    provider = TracerProvider(sampler=ALWAYS_ON)
    source = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(source))
    tracer = provider.get_tracer("tracemux-tests")

    def _make(*names: str) -> List[ReadableSpan]:
        source.clear()
        for name in names:
            with tracer.start_as_current_span(name):
                pass
        return list(source.get_finished_spans())

    yield _make
    provider.shutdown()
