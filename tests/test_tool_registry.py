"""
ToolRegistry registration rules and ToolInvoker dispatch.
"""

import asyncio
import sys
import types

import pytest

from orchestration.errors import (
    NonRetryableToolError,
    RetryableToolError,
    ToolInvocationError,
    ToolTimeoutError,
    UnknownToolError,
)
from tools.base import Tool, ToolResult
from tools.formatters import DEFAULT_FORMATTER, EmailFormatter, UserProfileFormatter
from tools.registry import ToolInvoker, ToolRegistry, load_tool_modules


class EchoTool(Tool):
    @property
    def name(self):
        return "echo_say"

    @property
    def description(self):
        return "Echo params back"

    def run(self, input):
        return ToolResult.ok({"echo": input})


def test_register_assigns_family_server_and_formatter():
    registry = ToolRegistry()
    registry.register("email_send", lambda p: None)
    registry.register("user_profile_lookup_contact", lambda p: None)
    registry.register("crm_sync", lambda p: None, server="crm_v2")

    assert registry.server_for("email_send") == "email"
    assert isinstance(registry.formatter_for("email_send"), EmailFormatter)
    assert registry.server_for("user_profile_lookup_contact") == "user_profile"
    assert isinstance(registry.formatter_for("user_profile_lookup_contact"), UserProfileFormatter)
    assert registry.server_for("crm_sync") == "crm_v2"
    assert registry.formatter_for("crm_sync") is DEFAULT_FORMATTER
    assert registry.names() == ["crm_sync", "email_send", "user_profile_lookup_contact"]


def test_duplicates_and_frozen_registry_are_rejected():
    registry = ToolRegistry()
    registry.register("a_tool", lambda p: None)

    with pytest.raises(ValueError):
        registry.register("a_tool", lambda p: None)

    registry.freeze()
    assert registry.frozen is True
    with pytest.raises(RuntimeError, match="frozen"):
        registry.register("b_tool", lambda p: None)


def test_class_style_tool_registration():
    registry = ToolRegistry()
    registration = registry.register_tool(EchoTool())

    assert "echo_say" in registry
    assert registration.description == "Echo params back"
    assert EchoTool().to_dict()["input_schema"] == {"type": "object", "properties": {}}


@pytest.mark.asyncio
async def test_invoker_runs_sync_async_and_tool_handlers():
    async def async_handler(params):
        return {"value": params["x"] * 2}

    registry = ToolRegistry()
    registry.register("t_sync", lambda p: {"value": p["x"] + 1})
    registry.register("t_async", async_handler)
    registry.register_tool(EchoTool())
    invoker = ToolInvoker(registry.freeze())

    assert await invoker.invoke("t_sync", {"x": 1}, timeout=1) == ({"value": 2}, None)
    assert await invoker.invoke("t_async", {"x": 4}, timeout=1) == ({"value": 8}, None)
    assert await invoker.invoke("echo_say", {"x": 0}, timeout=1) == ({"echo": {"x": 0}}, None)


@pytest.mark.asyncio
async def test_invoker_does_not_let_handlers_mutate_params():
    def mutate(params):
        params["added"] = True
        return {}

    registry = ToolRegistry()
    registry.register("t_mut", mutate)
    params = {"x": 1}

    await ToolInvoker(registry).invoke("t_mut", params, timeout=1)

    assert params == {"x": 1}


@pytest.mark.asyncio
async def test_invoker_reports_failures_as_errors():
    async def slow(params):
        await asyncio.sleep(1)

    def raises_retryable(params):
        raise RetryableToolError("try again")

    def refuses(params):
        raise ConnectionRefusedError("refused")

    def crashes(params):
        raise KeyError("to")

    registry = ToolRegistry()
    registry.register("t_slow", slow)
    registry.register("t_retry", raises_retryable)
    registry.register("t_refuses", refuses)
    registry.register("t_crash", crashes)
    registry.register("t_dict_fail", lambda p: {"success": False, "error": "not found", "partial": 1})
    registry.register("t_result_fail", lambda p: ToolResult.fail("Validation failed"))
    invoker = ToolInvoker(registry.freeze())

    _, error = await invoker.invoke("missing_tool", {}, timeout=1)
    assert isinstance(error, UnknownToolError) and error.retryable is False

    _, error = await invoker.invoke("t_slow", {}, timeout=0.01)
    assert isinstance(error, ToolTimeoutError) and error.retryable is True

    _, error = await invoker.invoke("t_retry", {}, timeout=1)
    assert isinstance(error, RetryableToolError) and error.tool == "t_retry"

    _, error = await invoker.invoke("t_refuses", {}, timeout=1)
    assert isinstance(error, RetryableToolError)

    _, error = await invoker.invoke("t_crash", {}, timeout=1)
    assert type(error) is ToolInvocationError and error.retryable is None

    output, error = await invoker.invoke("t_dict_fail", {}, timeout=1)
    assert str(error) == "not found"
    assert output == {"success": False, "error": "not found", "partial": 1}

    output, error = await invoker.invoke("t_result_fail", {}, timeout=1)
    assert str(error) == "Validation failed" and output is None


def test_error_kinds_carry_retryability():
    assert NonRetryableToolError("x").retryable is False
    assert ToolInvocationError("x", retryable=True).retryable is True


def test_load_tool_modules(monkeypatch):
    module = types.ModuleType("acme_tools")

    def register_tools(registry):
        registry.register("acme_ping", lambda p: {"pong": True})

    def register_extra(registry):
        registry.register("acme_extra", lambda p: {})

    module.register_tools = register_tools
    module.register_extra = register_extra
    monkeypatch.setitem(sys.modules, "acme_tools", module)

    registry = ToolRegistry()
    load_tool_modules(registry, ["acme_tools", "acme_tools:register_extra"])

    assert registry.names() == ["acme_extra", "acme_ping"]
