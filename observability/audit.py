"""
Audit Events

Facts emitted while a plan runs: one event per step attempt and one
when the run completes.

DESIGN RULES:
- Pure data containers
- Immutable after creation
- No dependencies on tools or the executor
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class StepAuditEvent:
    """
    Immutable record of a single step attempt.
    """

    execution_id: str
    step_id: str
    tool: str
    success: bool
    duration_ms: int
    attempt: int
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging/export."""
        return {
            "execution_id": self.execution_id,
            "step_id": self.step_id,
            "tool": self.tool,
            "success": self.success,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "attempt": self.attempt,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ExecutionAuditEvent:
    """
    Immutable record of a completed run.
    """

    execution_id: str
    success: bool
    total_steps: int
    succeeded: int
    failed: int
    skipped: int
    retries: int
    duration_ms: int
    summary: str
    status: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging/export."""
        return {
            "execution_id": self.execution_id,
            "success": self.success,
            "status": self.status,
            "total_steps": self.total_steps,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "retries": self.retries,
            "duration_ms": self.duration_ms,
            "summary": self.summary,
            "timestamp": self.timestamp.isoformat(),
        }
