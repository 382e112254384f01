# Observability Package
from observability.audit import ExecutionAuditEvent, StepAuditEvent
from observability.sink import AuditSink, ConsoleAuditSink, JsonAuditSink, MemoryAuditSink
from observability.publisher import HttpAuditSink
from observability.collector import AuditCollector

__all__ = [
    "ExecutionAuditEvent",
    "StepAuditEvent",
    "AuditSink",
    "ConsoleAuditSink",
    "JsonAuditSink",
    "MemoryAuditSink",
    "HttpAuditSink",
    "AuditCollector",
]
