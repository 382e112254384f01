"""
Tool Registry

Explicit tool registration and the invoker the executor calls through.

DESIGN RULES:
- Tools are registered explicitly, once, at process start
- The registry is frozen after boot (read-only thereafter)
- The registry is passed by reference; there is no global instance
- Each tool is registered together with its family formatter
"""

import asyncio
import importlib
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from orchestration.errors import (
    RetryableToolError,
    ToolInvocationError,
    ToolTimeoutError,
    UnknownToolError,
)
from tools.base import Tool, ToolHandler, ToolResult
from tools.formatters import StepFormatter, formatter_for_server

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolRegistration:
    """A registered handler with its family metadata."""
    name: str
    server: str
    handler: ToolHandler
    formatter: StepFormatter
    description: str = ""


class ToolRegistry:
    """
    Name -> handler registry.

    Features:
    - Explicit registration (no auto-discovery)
    - Formatter lookup per tool family
    - Freezing: registration is rejected once the registry is in use
    """

    def __init__(self):
        self._tools: Dict[str, ToolRegistration] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        server: Optional[str] = None,
        formatter: Optional[StepFormatter] = None,
        description: str = "",
    ) -> ToolRegistration:
        """
        Register a handler under a tool name.

        Args:
            name: Tool name as used in plan steps
            handler: Callable taking the params dict; may be async
            server: Tool family. Defaults to the name's prefix
                    (known family prefix, else text before the first "_")
            formatter: Family formatter. Defaults to the server's formatter
            description: Optional human-readable description
        """
        if self._frozen:
            raise RuntimeError(f"Tool registry is frozen; cannot register {name!r}")
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name!r}")

        server = server or _default_server(name)
        registration = ToolRegistration(
            name=name,
            server=server,
            handler=handler,
            formatter=formatter or formatter_for_server(server),
            description=description,
        )
        self._tools[name] = registration
        logger.debug(f"Registered tool {name!r} (server={server})")
        return registration

    def register_tool(
        self,
        tool: Tool,
        *,
        server: Optional[str] = None,
        formatter: Optional[StepFormatter] = None,
    ) -> ToolRegistration:
        """Register a class-style Tool under its own name."""
        return self.register(
            tool.name,
            tool.run,
            server=server,
            formatter=formatter,
            description=tool.description,
        )

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Optional[ToolRegistration]:
        return self._tools.get(name)

    def server_for(self, name: str) -> str:
        registration = self._tools.get(name)
        return registration.server if registration else _default_server(name)

    def formatter_for(self, name: str) -> StepFormatter:
        registration = self._tools.get(name)
        if registration:
            return registration.formatter
        return formatter_for_server(None)

    def names(self) -> List[str]:
        return sorted(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


_KNOWN_SERVERS = ("user_profile", "ai_chat", "email", "shopping", "payment")


def _default_server(name: str) -> str:
    for server in _KNOWN_SERVERS:
        if name == server or name.startswith(server + "_"):
            return server
    return name.split("_", 1)[0] if "_" in name else name


class ToolInvoker:
    """
    Dispatches named tool calls to registered handlers.

    invoke() never raises for tool failures: it returns (result, error)
    where error is a ToolInvocationError or None.
    """

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def invoke(
        self,
        tool_name: str,
        params: Dict[str, Any],
        timeout: Optional[float],
    ) -> Tuple[Any, Optional[ToolInvocationError]]:
        """
        Call a tool with a timeout.

        Args:
            tool_name: Registered tool name
            params: Fully resolved parameters
            timeout: Seconds before the call is abandoned (None: no limit)

        Returns:
            (result, error): error is None on success. On failure the
            result may still carry partial output.
        """
        registration = self._registry.get(tool_name)
        if registration is None:
            return None, UnknownToolError(f"Unknown tool: {tool_name}", tool=tool_name)

        try:
            raw = await asyncio.wait_for(self._call(registration.handler, params), timeout=timeout)
        except asyncio.TimeoutError:
            return None, ToolTimeoutError(
                f"Tool {tool_name} timeout after {timeout}s", tool=tool_name
            )
        except ToolInvocationError as e:
            if e.tool is None:
                e.tool = tool_name
            return None, e
        except ConnectionError as e:
            return None, RetryableToolError(f"Connection error: {e}", tool=tool_name)
        except Exception as e:
            logger.debug(f"Tool {tool_name} raised {type(e).__name__}: {e}")
            return None, ToolInvocationError(str(e) or type(e).__name__, tool=tool_name)

        return _unwrap(tool_name, raw)

    async def _call(self, handler: ToolHandler, params: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(dict(params))
        result = await asyncio.to_thread(handler, dict(params))
        if inspect.isawaitable(result):
            return await result
        return result


def _unwrap(tool_name: str, raw: Any) -> Tuple[Any, Optional[ToolInvocationError]]:
    """Normalize handler output; a reported failure becomes an error."""
    if isinstance(raw, ToolResult):
        if raw.success:
            return raw.output, None
        return raw.output or None, ToolInvocationError(raw.error or "Tool reported failure", tool=tool_name)

    if isinstance(raw, Mapping) and raw.get("success") is False:
        message = raw.get("error") or raw.get("message") or "Tool reported failure"
        return dict(raw), ToolInvocationError(str(message), tool=tool_name)

    return raw, None


def load_tool_modules(registry: ToolRegistry, modules: Iterable[str]) -> None:
    """
    Import each module path and call its register_tools(registry) hook.

    Paths are "package.module" or "package.module:function".
    """
    for path in modules:
        module_name, _, attr = path.partition(":")
        module = importlib.import_module(module_name)
        hook = getattr(module, attr or "register_tools")
        hook(registry)
        logger.info(f"Loaded tools from {path}")
