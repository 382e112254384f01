"""
Plan Validator

Rejects malformed plans before any step runs.

Plans come from a non-deterministic planner, so malformed input is
expected: incomplete steps are dropped, structural problems
(duplicates, dangling dependencies, cycles) are fatal.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from orchestration.errors import DependencyCycleError, PlanValidationError
from orchestration.templates import TemplateResolver
from schemas.plan import ExecutionPlan, PlanStep

logger = logging.getLogger(__name__)

REQUIRED_STEP_FIELDS = ("id", "tool", "params")


def validate_plan(raw: Union[ExecutionPlan, Mapping]) -> ExecutionPlan:
    """
    Validate a raw plan and return an immutable ExecutionPlan.

    Args:
        raw: ExecutionPlan, a {"steps": [...]} mapping, or the planner
             envelope {"plan": {"steps": [...]}}

    Returns:
        ExecutionPlan containing only the well-formed steps

    Raises:
        PlanValidationError: structure invalid, no usable steps,
            duplicate ids or unknown dependencies
        DependencyCycleError: the dependency graph has a cycle
    """
    if isinstance(raw, ExecutionPlan):
        raw = raw.model_dump(by_alias=True)

    if not isinstance(raw, Mapping):
        raise PlanValidationError("Invalid plan structure: expected a mapping")

    body = raw.get("plan", raw) if "steps" not in raw else raw
    if not isinstance(body, Mapping) or not isinstance(body.get("steps"), list):
        raise PlanValidationError("Invalid plan structure: missing plan or steps")

    steps = _parse_steps(body["steps"])
    if not steps:
        raise PlanValidationError("No valid steps in plan")

    _check_unique_ids(steps)
    _check_dependencies_exist(steps)
    _check_acyclic(steps)
    _check_template_references(steps)

    plan_kwargs: Dict[str, Any] = {"steps": steps, "summary": body.get("summary")}
    plan_id = body.get("plan_id") or raw.get("plan_id")
    if plan_id:
        plan_kwargs["plan_id"] = str(plan_id)

    try:
        plan = ExecutionPlan(**plan_kwargs)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise PlanValidationError(f"Invalid plan field {location!r}: {error['msg']}") from e

    logger.info(
        f"Plan {plan.plan_id} validated: {len(steps)} steps "
        f"({len(body['steps']) - len(steps)} dropped)"
    )
    return plan


def _parse_steps(raw_steps: List[Any]) -> List[PlanStep]:
    valid: List[PlanStep] = []
    for index, raw_step in enumerate(raw_steps):
        if not isinstance(raw_step, Mapping):
            logger.warning(f"Dropping step #{index}: not an object")
            continue

        missing = [name for name in REQUIRED_STEP_FIELDS if not _present(raw_step, name)]
        if missing:
            logger.warning(f"Dropping step #{index} ({raw_step.get('id')!r}): missing {missing}")
            continue

        try:
            valid.append(PlanStep.model_validate(dict(raw_step)))
        except ValidationError as e:
            logger.warning(
                f"Dropping step {raw_step.get('id')!r}: "
                f"{e.error_count()} invalid field(s): {e.errors()[0]['msg']}"
            )
    return valid


def _present(raw_step: Mapping, name: str) -> bool:
    value = raw_step.get(name)
    if name == "params":
        return isinstance(value, Mapping)
    return isinstance(value, str) and bool(value.strip())


def _check_unique_ids(steps: List[PlanStep]) -> None:
    seen = set()
    duplicates = []
    for step in steps:
        if step.id in seen:
            duplicates.append(step.id)
        seen.add(step.id)
    if duplicates:
        raise PlanValidationError(f"Duplicate step ids: {sorted(set(duplicates))}")


def _check_dependencies_exist(steps: List[PlanStep]) -> None:
    ids = {s.id for s in steps}
    for step in steps:
        unknown = [d for d in step.depends_on if d not in ids]
        if unknown:
            raise PlanValidationError(f"Step {step.id!r} depends on unknown steps: {unknown}")
        if step.condition and step.condition.step not in ids:
            # Evaluates false at runtime; not a structural error.
            logger.warning(
                f"Step {step.id!r} has a condition on unknown step {step.condition.step!r}"
            )


def _check_template_references(steps: List[PlanStep]) -> None:
    """Warn about placeholders no step of the plan can satisfy (they render as "")."""
    keys = {s.output_key for s in steps if s.output_key}
    for step in steps:
        dangling = [k for k in TemplateResolver.references(step.params) if k not in keys]
        if dangling:
            logger.warning(f"Step {step.id!r} references unbound output keys: {dangling}")


def _check_acyclic(steps: List[PlanStep]) -> None:
    """Depth-first search over prerequisite edges; raises on the first back-edge."""
    ids = {s.id for s in steps}
    edges = {s.id: [d for d in s.prerequisites() if d in ids] for s in steps}

    WHITE, GREY, BLACK = 0, 1, 2
    color = {step_id: WHITE for step_id in edges}

    for root in (s.id for s in steps):
        if color[root] != WHITE:
            continue
        # explicit stack of (node, next edge index); path mirrors the GREY nodes
        color[root] = GREY
        path: List[str] = [root]
        stack = [(root, 0)]
        while stack:
            node, index = stack[-1]
            if index == len(edges[node]):
                stack.pop()
                path.pop()
                color[node] = BLACK
                continue
            stack[-1] = (node, index + 1)
            dep = edges[node][index]
            if color[dep] == GREY:
                start = path.index(dep)
                raise DependencyCycleError(path[start:] + [dep])
            if color[dep] == WHITE:
                color[dep] = GREY
                path.append(dep)
                stack.append((dep, 0))
