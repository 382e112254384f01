"""
Audit Sink Interface

Abstract sink for audit output.
Storage-agnostic - implementations can write to console, file, cloud, etc.

DESIGN RULES:
- Side-effect only
- Never throw exceptions
- Storage-agnostic interface
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import List, Union

from observability.audit import ExecutionAuditEvent, StepAuditEvent

logger = logging.getLogger(__name__)

AuditEvent = Union[StepAuditEvent, ExecutionAuditEvent]


class AuditSink(ABC):
    """
    Abstract base for audit output destinations.

    Implementations:
    - ConsoleAuditSink (default)
    - JsonAuditSink (log aggregation)
    - HttpAuditSink (observability platform, see publisher.py)
    - MemoryAuditSink (tests, debugging)
    """

    @abstractmethod
    def emit_step(self, event: StepAuditEvent) -> None:
        """
        Emit a step attempt event.

        Must not throw - failures should be logged and ignored.
        """
        pass

    @abstractmethod
    def emit_execution(self, event: ExecutionAuditEvent) -> None:
        """
        Emit a run completion event.

        Must not throw - failures should be logged and ignored.
        """
        pass


class ConsoleAuditSink(AuditSink):
    """
    Default sink that prints events to console.

    Format: structured but human-readable.
    """

    def __init__(self, verbose: bool = True):
        """
        Initialize console sink.

        Args:
            verbose: If True, print per-attempt events and the narrative.
                     If False, completion headline only.
        """
        self._verbose = verbose

    def emit_step(self, event: StepAuditEvent) -> None:
        if not self._verbose:
            return
        try:
            status = "✓" if event.success else "✗"
            line = (
                f"[AUDIT] {status} {event.execution_id} step={event.step_id} "
                f"tool={event.tool} attempt={event.attempt} {event.duration_ms}ms"
            )
            if event.error:
                line += f" error={event.error}"
            print(line)
        except Exception as e:
            logger.warning(f"Failed to emit step audit: {e}")

    def emit_execution(self, event: ExecutionAuditEvent) -> None:
        try:
            status = "✓" if event.success else "✗"

            print(f"\n{'='*60}")
            print(f"[AUDIT] {status} {event.execution_id}")
            print(f"{'='*60}")
            print(f"  Status:    {event.status}")
            print(f"  Steps:     {event.total_steps} "
                  f"(ok={event.succeeded}, failed={event.failed}, skipped={event.skipped})")
            print(f"  Retries:   {event.retries}")
            print(f"  Duration:  {event.duration_ms}ms")

            if self._verbose and event.summary:
                print("\n  Summary:")
                for line in event.summary.splitlines():
                    print(f"    {line}")

            print(f"{'='*60}\n")

        except Exception as e:
            logger.warning(f"Failed to emit execution audit: {e}")


class JsonAuditSink(AuditSink):
    """
    Sink that outputs events as JSON lines.

    Useful for log aggregation systems.
    """

    def emit_step(self, event: StepAuditEvent) -> None:
        self._emit("step", event)

    def emit_execution(self, event: ExecutionAuditEvent) -> None:
        self._emit("execution", event)

    def _emit(self, kind: str, event: AuditEvent) -> None:
        try:
            print(json.dumps({"audit": kind, **event.to_dict()}, ensure_ascii=False, default=str))
        except Exception as e:
            logger.warning(f"Failed to emit JSON audit: {e}")


class MemoryAuditSink(AuditSink):
    """
    Keeps events in memory, in emission order.
    """

    def __init__(self):
        self.events: List[AuditEvent] = []

    @property
    def step_events(self) -> List[StepAuditEvent]:
        return [e for e in self.events if isinstance(e, StepAuditEvent)]

    @property
    def execution_events(self) -> List[ExecutionAuditEvent]:
        return [e for e in self.events if isinstance(e, ExecutionAuditEvent)]

    def emit_step(self, event: StepAuditEvent) -> None:
        self.events.append(event)

    def emit_execution(self, event: ExecutionAuditEvent) -> None:
        self.events.append(event)
