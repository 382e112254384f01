"""
Result Schemas

Records produced while a plan runs and the final outcome handed back
to the caller.

DESIGN RULES:
- StepResult is immutable (one record per attempt)
- WorkflowResult is the only output contract of the executor
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED)


class SkipReason(str, Enum):
    CONDITION_NOT_MET = "condition_not_met"
    DEPENDENCY_FAILED = "dependency_failed"


class ExecutionStatus(str, Enum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class StepResult(BaseModel):
    """
    Outcome of a single attempt of a step (or of a skip decision).

    attempt is 1-based; skip records carry attempt 0.
    """
    model_config = ConfigDict(frozen=True)

    step_id: str
    tool: str
    server: str = "unknown"
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    success: bool
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    attempt: int = 1
    status: StepStatus
    skip_reason: Optional[SkipReason] = None
    duration_ms: float = 0.0

    @property
    def skipped(self) -> bool:
        return self.status == StepStatus.SKIPPED


class StepOutput(BaseModel):
    """
    Value bound to an output key: display text plus structured fields.
    """
    model_config = ConfigDict(frozen=True)

    formatted: str = ""
    fields: Dict[str, Any] = Field(default_factory=dict)


class ExecutionError(BaseModel):
    """
    Error recorded against a run. step_id is None for run-level errors.
    """
    model_config = ConfigDict(frozen=True)

    step_id: Optional[str] = None
    tool: Optional[str] = None
    error: str
    attempt: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


class WorkflowResult(BaseModel):
    """
    Final output of a plan run.

    Partial success is a normal outcome: success=False with the
    completed steps still present in `steps`.
    """
    execution_id: str
    plan_id: str
    success: bool
    status: ExecutionStatus
    steps: List[StepResult] = Field(default_factory=list)
    final_output: Optional[str] = None
    human_readable_summary: str = ""
    errors: List[ExecutionError] = Field(default_factory=list)
    retries: int = 0
    duration_ms: int = 0
    plan_summary: Optional[str] = None

    def steps_for(self, step_id: str) -> List[StepResult]:
        """All recorded attempts of a step, in order."""
        return [s for s in self.steps if s.step_id == step_id]
