"""
Execution Engine Errors

Error taxonomy for plan validation and execution.
"""

from typing import List, Optional


class ExecutionEngineError(Exception):
    """Base class for all engine errors."""


class PlanValidationError(ExecutionEngineError):
    """Plan is malformed; it never starts."""


class DependencyCycleError(PlanValidationError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class ToolInvocationError(ExecutionEngineError):
    """
    A tool call failed.

    retryable=None leaves classification to the retry policy,
    which then inspects the message.
    """

    retryable: Optional[bool] = None

    def __init__(self, message: str, tool: Optional[str] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.tool = tool
        if retryable is not None:
            self.retryable = retryable


class RetryableToolError(ToolInvocationError):
    retryable = True


class NonRetryableToolError(ToolInvocationError):
    retryable = False


class ToolTimeoutError(RetryableToolError):
    """A single tool call exceeded its timeout."""


class UnknownToolError(NonRetryableToolError):
    """No handler is registered under the requested name."""


class ExecutionTimeoutError(ExecutionEngineError):
    """The run exceeded its overall wall-clock budget."""


class ConditionEvaluationError(ExecutionEngineError):
    """A condition could not be evaluated; treated as false."""


class SchedulerStalledError(ExecutionEngineError):
    """No step is ready or running while steps remain."""


class ExecutionIdConflictError(ExecutionEngineError):
    """A caller-chosen execution id is already held by another run."""
