"""
Tool Base Interface

Canonical Tool contract for handlers the executor can invoke.
Tools return structured output, never user-facing strings.

CAPABILITY BOUNDARY (NON-NEGOTIABLE):
    API ❌
    Executor ❌  (invokes tools, never implements them)
    Tool handlers ✅  ← business logic lives ONLY here
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    """
    Structured result from tool execution.
    """
    output: Dict[str, Any] = Field(
        default_factory=dict,
        description="Structured output from the tool",
    )
    success: bool = Field(
        default=True,
        description="Whether the tool executed successfully",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error message if execution failed",
    )

    @classmethod
    def ok(cls, output: Dict[str, Any]) -> "ToolResult":
        """Factory for successful results."""
        return cls(output=output, success=True)

    @classmethod
    def fail(cls, error: str, output: Optional[Dict[str, Any]] = None) -> "ToolResult":
        """Factory for failed results (output may carry partial data)."""
        return cls(output=output or {}, success=False, error=error)


class Tool(ABC):
    """
    Abstract base class for class-style tools.

    Plain callables and coroutine functions can be registered too;
    subclass Tool when the handler carries its own description and
    input schema.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool identifier."""
        pass

    @property
    def description(self) -> str:
        """Human-readable description for planner context."""
        return ""

    @property
    def input_schema(self) -> Dict[str, Any]:
        """
        JSON Schema for tool input.

        Override to define required parameters.
        Default: accepts any dict.
        """
        return {"type": "object", "properties": {}}

    @abstractmethod
    def run(self, input: Dict[str, Any]) -> Union[ToolResult, Awaitable[ToolResult]]:
        """
        Execute the tool with given input.

        May be a coroutine function.
        """
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Serialize tool definition for registration/display."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


ToolHandler = Callable[[Dict[str, Any]], Any]
