"""
Execution State

Single source of truth for one plan run, plus an in-memory store that
keeps finished runs around for a bounded retention window.

DESIGN RULES:
- One ExecutionState per run, mutated only by the executor running it
- StepResult log is append-only
- Output-key bindings are write-once
- Retry bookkeeping is per run, never module-level
"""

import logging
import uuid
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from orchestration.errors import ExecutionIdConflictError
from schemas.plan import ExecutionPlan
from schemas.result import (
    ExecutionError,
    ExecutionStatus,
    SkipReason,
    StepOutput,
    StepResult,
    StepStatus,
)

logger = logging.getLogger(__name__)


class ExecutionState(BaseModel):
    """
    Mutable state tracking during execution (internal use).
    """
    execution_id: str
    plan_id: str
    status: ExecutionStatus = ExecutionStatus.INITIALIZED
    steps: List[StepResult] = Field(default_factory=list)
    outputs: Dict[str, StepOutput] = Field(default_factory=dict)
    raw_results: Dict[str, Any] = Field(default_factory=dict)
    step_status: Dict[str, StepStatus] = Field(default_factory=dict)
    skip_reasons: Dict[str, SkipReason] = Field(default_factory=dict)
    errors: List[ExecutionError] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    last_update_at: datetime = Field(default_factory=datetime.now)
    retry_count: int = 0
    last_retry_at: Dict[str, datetime] = Field(default_factory=dict)

    @classmethod
    def for_plan(cls, plan: ExecutionPlan, execution_id: Optional[str] = None) -> "ExecutionState":
        return cls(
            execution_id=execution_id or _new_execution_id(plan),
            plan_id=plan.plan_id,
            step_status={s.id: StepStatus.PENDING for s in plan.steps},
        )

    # --- step log ---

    def mark_running(self, step_id: str) -> None:
        self.step_status[step_id] = StepStatus.RUNNING
        if self.status == ExecutionStatus.INITIALIZED:
            self.status = ExecutionStatus.RUNNING
        self._touch()

    def record_attempt(self, result: StepResult) -> None:
        """
        Append one attempt. A failed attempt sets the transient ERROR
        marker; other branches keep running.
        """
        self.steps.append(result)
        if result.output is not None:
            self.raw_results[result.step_id] = result.output

        if result.success:
            if self.status == ExecutionStatus.INITIALIZED:
                self.status = ExecutionStatus.RUNNING
        else:
            self.status = ExecutionStatus.ERROR
            self.errors.append(
                ExecutionError(
                    step_id=result.step_id,
                    tool=result.tool,
                    error=result.error or "Unknown error",
                    attempt=result.attempt,
                    timestamp=result.timestamp,
                )
            )
        self._touch()

    def record_skip(self, result: StepResult) -> None:
        self.steps.append(result)
        self.step_status[result.step_id] = StepStatus.SKIPPED
        if result.skip_reason is not None:
            self.skip_reasons[result.step_id] = result.skip_reason
        self._touch()

    def finish_step(self, step_id: str, status: StepStatus) -> None:
        self.step_status[step_id] = status
        self._touch()

    def record_retry(self, step_id: str) -> None:
        self.retry_count += 1
        self.last_retry_at[step_id] = datetime.now()
        self._touch()

    def record_error(self, error: str) -> None:
        """Run-level error (timeout, cancellation, stalled schedule)."""
        self.errors.append(ExecutionError(error=error))
        self._touch()

    def bind_output(self, key: str, output: StepOutput) -> bool:
        """Bind an output key once. Returns False if it was already bound."""
        if key in self.outputs:
            logger.warning(f"[{self.execution_id}] Output key {key!r} already bound; keeping first value")
            return False
        self.outputs[key] = output
        self._touch()
        return True

    # --- queries ---

    def status_of(self, step_id: str) -> StepStatus:
        return self.step_status.get(step_id, StepStatus.PENDING)

    def is_terminal(self, step_id: str) -> bool:
        return self.status_of(step_id).is_terminal

    def blocks_dependents(self, step_id: str) -> bool:
        """Failed, or skipped because its own dependency failed."""
        status = self.status_of(step_id)
        if status == StepStatus.FAILED:
            return True
        return status == StepStatus.SKIPPED and self.skip_reasons.get(step_id) == SkipReason.DEPENDENCY_FAILED

    def last_attempt(self, step_id: str) -> Optional[StepResult]:
        for result in reversed(self.steps):
            if result.step_id == step_id and not result.skipped:
                return result
        return None

    def finalize(self, success: bool) -> None:
        self.status = ExecutionStatus.COMPLETED if success else ExecutionStatus.FAILED
        self.finished_at = datetime.now()
        self._touch()

    @property
    def duration_ms(self) -> int:
        end = self.finished_at or datetime.now()
        return int((end - self.started_at).total_seconds() * 1000)

    def _touch(self) -> None:
        self.last_update_at = datetime.now()


def _new_execution_id(plan: ExecutionPlan) -> str:
    return f"exec_{plan.plan_id[:8]}_{uuid.uuid4().hex[:8]}"


class ExecutionStateStore:
    """
    In-memory registry of execution states.

    Terminal states are evicted after the retention window.
    NOT persistent - data lives only in process memory.

    Thread-safe for concurrent access.
    """

    DEFAULT_RETENTION_SECONDS = 300

    def __init__(self, retention_seconds: float = DEFAULT_RETENTION_SECONDS):
        self._states: Dict[str, ExecutionState] = {}
        self._retention = timedelta(seconds=retention_seconds)
        self._lock = Lock()

    def create(self, plan: ExecutionPlan, execution_id: Optional[str] = None) -> ExecutionState:
        state = ExecutionState.for_plan(plan, execution_id=execution_id)
        with self._lock:
            self._cleanup_expired()
            if state.execution_id in self._states:
                raise ExecutionIdConflictError(f"Execution id already in use: {state.execution_id}")
            self._states[state.execution_id] = state
        return state

    def get(self, execution_id: str) -> Optional[ExecutionState]:
        with self._lock:
            self._cleanup_expired()
            return self._states.get(execution_id)

    def active(self) -> List[ExecutionState]:
        """Runs that have not reached a terminal status."""
        with self._lock:
            self._cleanup_expired()
            return [s for s in self._states.values() if not s.status.is_terminal]

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def _cleanup_expired(self) -> None:
        """Evict terminal states older than the retention window (lock held)."""
        cutoff = datetime.now() - self._retention
        expired = [
            execution_id
            for execution_id, state in self._states.items()
            if state.finished_at is not None and state.finished_at < cutoff
        ]
        for execution_id in expired:
            del self._states[execution_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired execution states")
