"""
Condition Evaluator

Decides whether a step runs, based on a prior step's result.

Only the closed set of ConditionCheck kinds is supported; there is no
expression language. Evaluation never raises: any problem is logged
and the condition is treated as false.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any

from orchestration.errors import ConditionEvaluationError
from orchestration.state import ExecutionState
from orchestration.templates import get_path
from schemas.plan import ConditionCheck, StepCondition

logger = logging.getLogger(__name__)

_MISSING = object()
_FALSE_STRINGS = {"", "false", "0", "no", "none", "null"}


class ConditionEvaluator:
    """
    Evaluates StepConditions against an ExecutionState.
    """

    def evaluate(self, condition: StepCondition, state: ExecutionState) -> bool:
        try:
            return self._evaluate(condition, state)
        except ConditionEvaluationError as e:
            logger.warning(f"[{state.execution_id}] Condition on {condition.step!r} treated as false: {e}")
            return False
        except Exception as e:
            logger.warning(
                f"[{state.execution_id}] Condition on {condition.step!r} failed to evaluate, "
                f"treated as false: {e}"
            )
            return False

    def _evaluate(self, condition: StepCondition, state: ExecutionState) -> bool:
        attempt = state.last_attempt(condition.step)
        if attempt is None:
            logger.info(
                f"[{state.execution_id}] Condition references step {condition.step!r} "
                f"which never ran; evaluating false"
            )
            return False

        result = state.raw_results.get(condition.step, attempt.output)
        check = condition.check

        if check in (ConditionCheck.TRUTHY, ConditionCheck.FALSY):
            if condition.field:
                value = get_path(result, condition.field, default=_MISSING)
                flag = _is_truthy(None if value is _MISSING else value)
            else:
                flag = attempt.success and not _reports_failure(result)
            return flag if check == ConditionCheck.TRUTHY else not flag

        text = self._value_text(result, condition.field)
        expected = condition.value or ""

        if check == ConditionCheck.CONTAINS:
            return expected.lower() in text.lower()
        if check == ConditionCheck.NOT_CONTAINS:
            return expected.lower() not in text.lower()
        if check == ConditionCheck.EQUALS:
            return text == expected
        if check == ConditionCheck.NOT_EQUALS:
            return text != expected

        raise ConditionEvaluationError(f"Unsupported check: {check}")

    def _value_text(self, result: Any, field: Any) -> str:
        if field:
            value = get_path(result, field, default=None)
            return "" if value is None else _as_text(value)
        return response_text(result)


def response_text(result: Any) -> str:
    """
    Canonical text of a tool result: `response`, then `message`,
    else the JSON form of the whole result.
    """
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, Mapping):
        for key in ("response", "message"):
            if result.get(key):
                return _as_text(result[key])
    try:
        return json.dumps(result, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        raise ConditionEvaluationError(f"Result is not serializable: {e}") from e


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _reports_failure(result: Any) -> bool:
    return isinstance(result, Mapping) and result.get("success") is False


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)
