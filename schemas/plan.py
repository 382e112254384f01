"""
Plan Schemas

Declarative description of a multi-step tool workflow.

DESIGN RULES:
- Immutable after construction
- No execution logic
- Accepts the planner's camelCase keys (dependsOn, outputKey)
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConditionCheck(str, Enum):
    """
    Closed set of checks a step condition may apply.
    """
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    TRUTHY = "truthy"
    FALSY = "falsy"


class StepCondition(BaseModel):
    """
    Gate on a prior step's result.
    """
    model_config = ConfigDict(frozen=True)

    step: str = Field(..., min_length=1, description="Step id whose result is checked")
    check: ConditionCheck
    value: Optional[str] = Field(default=None, description="Literal for contains/equals checks")
    field: Optional[str] = Field(default=None, description="Dotted path into the step's result")


class PlanStep(BaseModel):
    """
    A single tool invocation in the execution plan.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique step identifier")
    tool: str = Field(..., min_length=1, description="Registered tool name")
    params: Dict[str, Any] = Field(..., description="Tool parameters, may hold {key} templates")
    description: str = Field(default="", description="Human-readable description of the step")
    depends_on: List[str] = Field(
        default_factory=list,
        alias="dependsOn",
        description="Step ids that must be terminal first",
    )
    condition: Optional[StepCondition] = None
    output_key: Optional[str] = Field(
        default=None,
        alias="outputKey",
        description="Name under which the result is exposed to later steps",
    )

    @field_validator("depends_on", mode="before")
    @classmethod
    def _dedupe_dependencies(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple, set)):
            # keep planner order, drop repeats
            return list(dict.fromkeys(value))
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value: Any) -> Any:
        return "" if value is None else value

    def prerequisites(self) -> List[str]:
        """Step ids that must be terminal before this step is considered."""
        ids = list(self.depends_on)
        if self.condition and self.condition.step not in ids:
            ids.append(self.condition.step)
        return ids


class ExecutionPlan(BaseModel):
    """
    The complete, machine-readable plan of action.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique ID for this plan")
    steps: List[PlanStep] = Field(..., description="Ordered list of steps to execute")
    summary: Optional[str] = Field(default=None, description="Planner's summary of the plan")

    def get_step(self, step_id: str) -> Optional[PlanStep]:
        return next((s for s in self.steps if s.id == step_id), None)

    @property
    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps]
