from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from schemas.result import ExecutionError, ExecutionStatus, StepOutput, StepResult, StepStatus


class ExecutionSnapshot(BaseModel):
    """
    API view of an ExecutionState (active or recently finished run).
    """
    execution_id: str
    plan_id: str
    status: ExecutionStatus
    step_status: Dict[str, StepStatus] = Field(default_factory=dict)
    steps: List[StepResult] = Field(default_factory=list)
    outputs: Dict[str, StepOutput] = Field(default_factory=dict)
    errors: List[ExecutionError] = Field(default_factory=list)
    retry_count: int = 0
    started_at: datetime
    finished_at: Optional[datetime] = None
    last_update_at: datetime

    @classmethod
    def from_state(cls, state: "ExecutionState") -> "ExecutionSnapshot":
        """Copy the public fields of a live state."""
        return cls(
            execution_id=state.execution_id,
            plan_id=state.plan_id,
            status=state.status,
            step_status=dict(state.step_status),
            steps=list(state.steps),
            outputs=dict(state.outputs),
            errors=list(state.errors),
            retry_count=state.retry_count,
            started_at=state.started_at,
            finished_at=state.finished_at,
            last_update_at=state.last_update_at,
        )


class ActiveExecution(BaseModel):
    """Entry of the active-execution listing."""
    execution_id: str
    plan_id: str
    status: ExecutionStatus
    started_at: datetime
    last_update_at: datetime


class CancelResponse(BaseModel):
    execution_id: str
    cancelled: bool


# Import hints for type checking (avoid circular imports at runtime)
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from orchestration.state import ExecutionState
