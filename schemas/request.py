from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ExecutePlanRequest(BaseModel):
    """
    API request model for POST /v1/executions.

    The plan is kept raw here; the plan validator owns its parsing so
    malformed steps are filtered instead of rejecting the whole request.
    """
    plan: Dict[str, Any] = Field(..., description="Execution plan: {steps: [...], summary?, plan_id?}")
    execution_id: Optional[str] = Field(default=None, description="Optional caller-chosen run id")
