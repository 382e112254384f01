"""
Summary Generator

Turns a run's step log into a human-readable narrative.

DESIGN RULES:
- Read-only view of the step log
- Presentational only, never influences control flow
- One line per step, via the formatter of the step's tool family
"""

import logging
from typing import Dict, List, Sequence

from schemas.result import SkipReason, StepResult
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

NO_ACTIONS = "No actions were performed."


class SummaryGenerator:
    """
    Builds the final narrative: completed actions first, then failed
    actions with their error text, then skipped actions.
    """

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    def describe(self, result: StepResult) -> str:
        """One-line description of a single step result."""
        formatter = self._registry.formatter_for(result.tool)
        try:
            line = formatter.summarize(result)
        except Exception as e:
            logger.warning(f"Formatter failed for step {result.step_id!r}: {e}")
            line = ""
        return line or f"{result.server}.{result.tool}"

    def generate(self, steps: Sequence[StepResult]) -> str:
        """
        Narrate the latest record of every step.

        Args:
            steps: Append-only step log (attempts and skip records)
        """
        latest = latest_per_step(steps)
        if not latest:
            return NO_ACTIONS

        succeeded = [r for r in latest if r.success and not r.skipped]
        failed = [r for r in latest if not r.success and not r.skipped]
        skipped = [r for r in latest if r.skipped]

        sections: List[str] = []
        if succeeded:
            lines = [f"{i}. {self.describe(r)}" for i, r in enumerate(succeeded, start=1)]
            sections.append("Completed actions:\n" + "\n".join(lines))
        if failed:
            lines = [
                f"{i}. {self.describe(r)} (Error: {r.error or 'unknown error'})"
                for i, r in enumerate(failed, start=1)
            ]
            sections.append("Failed actions:\n" + "\n".join(lines))
        if skipped:
            lines = [f"{i}. {self._skip_line(r)}" for i, r in enumerate(skipped, start=1)]
            sections.append("Skipped actions:\n" + "\n".join(lines))

        return "\n\n".join(sections).strip()

    def _skip_line(self, result: StepResult) -> str:
        label = f"{result.server}.{result.tool}"
        if result.skip_reason == SkipReason.DEPENDENCY_FAILED:
            return f"{label} ({result.error or 'dependency failed'})"
        return f"{label} (condition not met)"


def latest_per_step(steps: Sequence[StepResult]) -> List[StepResult]:
    """Last record of each step, in order of first appearance."""
    latest: Dict[str, StepResult] = {}
    for result in steps:
        latest[result.step_id] = result
    return list(latest.values())
