"""
FastAPI Dependencies

All object creation happens here, not per request.
This module wires the tool registry, audit layer and plan executor.

RULE: FastAPI routes call exactly one entry point - PlanExecutor.execute()
"""

import logging
from functools import lru_cache
from typing import List

from app.core.config import settings
from observability.collector import AuditCollector
from observability.publisher import HttpAuditSink
from observability.sink import AuditSink, ConsoleAuditSink, JsonAuditSink
from orchestration.executor import PlanExecutor
from orchestration.retry import RetryPolicy
from orchestration.state import ExecutionStateStore
from tools.registry import ToolInvoker, ToolRegistry, load_tool_modules

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_tool_registry() -> ToolRegistry:
    """
    Build the process tool registry once and freeze it.

    Tool modules listed in settings.tool_modules register their
    handlers through a register_tools(registry) hook.
    """
    registry = ToolRegistry()
    load_tool_modules(registry, settings.tool_modules)
    registry.freeze()
    logger.info(f"Tool registry ready: {len(registry)} tools")
    return registry


def build_audit_sinks() -> List[AuditSink]:
    sinks: List[AuditSink] = []
    if settings.audit_sink == "console":
        sinks.append(ConsoleAuditSink(verbose=settings.audit_verbose))
    elif settings.audit_sink == "json":
        sinks.append(JsonAuditSink())
    elif settings.audit_sink != "none":
        logger.warning(f"Unknown audit_sink {settings.audit_sink!r}; audit console output disabled")

    if settings.audit_http_enabled and settings.audit_http_base_url:
        sinks.append(
            HttpAuditSink(settings.audit_http_base_url, timeout_ms=settings.audit_http_timeout_ms)
        )
    return sinks


@lru_cache(maxsize=1)
def get_executor() -> PlanExecutor:
    """
    Create and cache the PlanExecutor singleton.

    All components are wired here:
    - ToolInvoker: Calls handlers from the frozen registry
    - RetryPolicy: Backoff thresholds from settings
    - ExecutionStateStore: Active and recently finished runs
    - AuditCollector: Console/JSON/HTTP audit sinks

    Returns:
        PlanExecutor: The single entry point for plan execution.
    """
    return PlanExecutor(
        ToolInvoker(get_tool_registry()),
        retry_policy=RetryPolicy.from_settings(settings),
        state_store=ExecutionStateStore(retention_seconds=settings.state_retention_seconds),
        audit=AuditCollector(sinks=build_audit_sinks()),
        max_concurrency=settings.max_concurrency,
        step_timeout_seconds=settings.step_timeout_seconds,
        run_timeout_seconds=settings.run_timeout_seconds,
    )
