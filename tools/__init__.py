# Tools Package
from tools.base import Tool, ToolResult
from tools.formatters import StepFormatter
from tools.registry import ToolInvoker, ToolRegistration, ToolRegistry

__all__ = ["Tool", "ToolResult", "StepFormatter", "ToolInvoker", "ToolRegistration", "ToolRegistry"]
