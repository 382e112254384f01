"""
Executions API Route

Thin delegation layer to the plan executor.
Contains NO scheduling, retry, or tool-specific code.

DESIGN RULE: All execution semantics live in the orchestration layer.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_executor
from orchestration.errors import ExecutionIdConflictError, PlanValidationError
from orchestration.executor import PlanExecutor
from schemas.request import ExecutePlanRequest
from schemas.response import ActiveExecution, CancelResponse, ExecutionSnapshot
from schemas.result import WorkflowResult

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/executions", response_model=WorkflowResult)
async def execute_plan(
    request: ExecutePlanRequest,
    executor: PlanExecutor = Depends(get_executor),
) -> WorkflowResult:
    """
    Run a plan to completion.

    Partial failures come back as 200 with success=false.
    A rejected plan is 422, a reused execution id 409.
    """
    try:
        return await executor.execute(request.plan, execution_id=request.execution_id)
    except PlanValidationError as e:
        logger.warning(f"Plan rejected: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except ExecutionIdConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/executions", response_model=List[ActiveExecution])
def list_active_executions(
    executor: PlanExecutor = Depends(get_executor),
) -> List[ActiveExecution]:
    """Runs that have not reached a terminal status."""
    return [
        ActiveExecution(
            execution_id=state.execution_id,
            plan_id=state.plan_id,
            status=state.status,
            started_at=state.started_at,
            last_update_at=state.last_update_at,
        )
        for state in executor.state_store.active()
    ]


@router.get("/executions/{execution_id}", response_model=ExecutionSnapshot)
def get_execution(
    execution_id: str,
    executor: PlanExecutor = Depends(get_executor),
) -> ExecutionSnapshot:
    state = executor.state_store.get(execution_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return ExecutionSnapshot.from_state(state)


@router.post("/executions/{execution_id}/cancel", response_model=CancelResponse)
async def cancel_execution(
    execution_id: str,
    executor: PlanExecutor = Depends(get_executor),
) -> CancelResponse:
    """Request cancellation of an in-flight run."""
    if executor.state_store.get(execution_id) is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return CancelResponse(execution_id=execution_id, cancelled=executor.cancel(execution_id))
