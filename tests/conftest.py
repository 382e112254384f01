import asyncio
from typing import List

import pytest

from observability.collector import AuditCollector
from observability.sink import MemoryAuditSink
from orchestration.executor import PlanExecutor
from tools.registry import ToolInvoker, ToolRegistry


class CallTrace:
    """Records tool start/end events in the order they happen."""

    def __init__(self):
        self.events: List[tuple] = []

    def start(self, name: str) -> None:
        self.events.append(("start", name))

    def end(self, name: str) -> None:
        self.events.append(("end", name))

    def index(self, kind: str, name: str) -> int:
        return self.events.index((kind, name))

    def started(self, name: str) -> bool:
        return ("start", name) in self.events


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def sleeps():
    """Backoff delays (seconds) requested by the executor."""
    return []


@pytest.fixture
def trace():
    return CallTrace()


@pytest.fixture
def make_executor(registry, audit_sink, sleeps):
    """
    Build an executor over the test registry.

    Backoff sleeps are recorded instead of waited on.
    """
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.sleep(0)

    def _make(**kwargs) -> PlanExecutor:
        kwargs.setdefault("sleep", fake_sleep)
        kwargs.setdefault("audit", AuditCollector(sinks=[audit_sink]))
        registry.freeze()
        return PlanExecutor(ToolInvoker(registry), **kwargs)

    return _make
