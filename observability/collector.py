"""
Audit Collector

Builds audit events from execution state and fans them out to sinks.
Single point of audit management for the executor.

DESIGN RULES:
- Never throw exceptions
- Read-only access to execution state
- Configurable enable/disable
"""

import logging
from typing import List, Optional, Sequence

from observability.audit import ExecutionAuditEvent, StepAuditEvent
from observability.sink import AuditSink, ConsoleAuditSink
from schemas.result import StepResult, StepStatus

logger = logging.getLogger(__name__)


class AuditCollector:
    """
    Coordinates audit emission.

    Responsibilities:
    - Create events from step results and finished runs
    - Forward to every configured sink
    - Handle failures gracefully (never throw)
    """

    def __init__(
        self,
        sinks: Optional[Sequence[AuditSink]] = None,
        enabled: bool = True,
    ):
        """
        Initialize audit collector.

        Args:
            sinks: AuditSinks to emit to. Defaults to a ConsoleAuditSink.
            enabled: Whether auditing is enabled. Can be toggled at runtime.
        """
        self._sinks: List[AuditSink] = list(sinks) if sinks is not None else [ConsoleAuditSink()]
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        """Check if auditing is enabled."""
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        """Enable or disable auditing at runtime."""
        self._enabled = value

    @property
    def sinks(self) -> List[AuditSink]:
        return list(self._sinks)

    def step_attempt(self, execution_id: str, result: StepResult) -> None:
        """
        Emit one event for a step attempt.

        Note: This method NEVER throws. Failures are logged and ignored.
        """
        if not self._enabled:
            return

        try:
            event = StepAuditEvent(
                execution_id=execution_id,
                step_id=result.step_id,
                tool=result.tool,
                success=result.success,
                error=result.error,
                duration_ms=int(result.duration_ms),
                attempt=result.attempt,
                timestamp=result.timestamp,
            )
        except Exception as e:
            logger.warning(f"[{execution_id}] Failed to build step audit event: {e}")
            return

        for sink in self._sinks:
            try:
                sink.emit_step(event)
            except Exception as e:
                logger.warning(f"[{execution_id}] Audit sink {type(sink).__name__} failed: {e}")

    def execution_completed(
        self,
        execution_id: str,
        success: bool,
        status: str,
        step_status: Sequence[StepStatus],
        retries: int,
        duration_ms: int,
        summary: str,
    ) -> None:
        """
        Emit the completion event for a run.

        Args:
            step_status: Terminal status of every plan step
        """
        if not self._enabled:
            return

        try:
            event = ExecutionAuditEvent(
                execution_id=execution_id,
                success=success,
                status=status,
                total_steps=len(step_status),
                succeeded=sum(1 for s in step_status if s == StepStatus.SUCCEEDED),
                failed=sum(1 for s in step_status if s == StepStatus.FAILED),
                skipped=sum(1 for s in step_status if s == StepStatus.SKIPPED),
                retries=retries,
                duration_ms=duration_ms,
                summary=summary,
            )
        except Exception as e:
            logger.warning(f"[{execution_id}] Failed to build execution audit event: {e}")
            return

        for sink in self._sinks:
            try:
                sink.emit_execution(event)
            except Exception as e:
                logger.warning(f"[{execution_id}] Audit sink {type(sink).__name__} failed: {e}")
