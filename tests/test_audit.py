"""
Audit collector and sinks never influence execution.
"""

import json

from observability.audit import ExecutionAuditEvent, StepAuditEvent
from observability.collector import AuditCollector
from observability.publisher import HttpAuditSink
from observability.sink import AuditSink, ConsoleAuditSink, JsonAuditSink, MemoryAuditSink
from schemas.result import StepResult, StepStatus


class ExplodingSink(AuditSink):
    def emit_step(self, event):
        raise RuntimeError("sink down")

    def emit_execution(self, event):
        raise RuntimeError("sink down")


def step_result(success=True):
    return StepResult(
        step_id="s1",
        tool="email_send",
        success=success,
        error=None if success else "timeout",
        attempt=2,
        status=StepStatus.SUCCEEDED if success else StepStatus.FAILED,
        duration_ms=12.7,
    )


def complete(collector):
    collector.execution_completed(
        execution_id="exec-1",
        success=False,
        status="failed",
        step_status=[StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED, StepStatus.SKIPPED],
        retries=3,
        duration_ms=40,
        summary="Completed actions:\n1. x",
    )


def test_collector_builds_events():
    sink = MemoryAuditSink()
    collector = AuditCollector(sinks=[sink])

    collector.step_attempt("exec-1", step_result(success=False))
    complete(collector)

    (step,) = sink.step_events
    assert (step.execution_id, step.step_id, step.attempt, step.success) == ("exec-1", "s1", 2, False)
    assert step.duration_ms == 12
    assert step.error == "timeout"

    (run,) = sink.execution_events
    assert (run.total_steps, run.succeeded, run.failed, run.skipped) == (4, 1, 1, 2)
    assert run.to_dict()["retries"] == 3


def test_failing_sink_does_not_stop_others():
    sink = MemoryAuditSink()
    collector = AuditCollector(sinks=[ExplodingSink(), sink])

    collector.step_attempt("exec-1", step_result())
    complete(collector)

    assert len(sink.events) == 2


def test_disabled_collector_emits_nothing():
    sink = MemoryAuditSink()
    collector = AuditCollector(sinks=[sink], enabled=False)

    collector.step_attempt("exec-1", step_result())
    assert sink.events == []

    collector.enabled = True
    collector.step_attempt("exec-1", step_result())
    assert len(sink.events) == 1


def test_json_sink_prints_one_line_per_event(capsys):
    sink = JsonAuditSink()
    sink.emit_step(StepAuditEvent(
        execution_id="e", step_id="s", tool="t", success=True, duration_ms=1, attempt=1,
    ))

    line = capsys.readouterr().out.strip()
    payload = json.loads(line)
    assert payload["audit"] == "step"
    assert payload["step_id"] == "s"


def test_console_sink_prints_summary(capsys):
    ConsoleAuditSink(verbose=True).emit_execution(ExecutionAuditEvent(
        execution_id="e-9", success=True, total_steps=1, succeeded=1, failed=0, skipped=0,
        retries=0, duration_ms=5, summary="Completed actions:\n1. sent", status="completed",
    ))

    out = capsys.readouterr().out
    assert "e-9" in out
    assert "1. sent" in out


def test_quiet_console_sink_skips_step_events(capsys):
    ConsoleAuditSink(verbose=False).emit_step(StepAuditEvent(
        execution_id="e", step_id="s", tool="t", success=True, duration_ms=1, attempt=1,
    ))

    assert capsys.readouterr().out == ""


def test_http_sink_never_raises_on_unreachable_endpoint():
    sink = HttpAuditSink("http://127.0.0.1:9/", timeout_ms=100)

    # direct call: the synchronous POST path swallows connection errors
    sink._post("/ingest/audit/step", {"execution_id": "e"})
    sink.emit_step(StepAuditEvent(
        execution_id="e", step_id="s", tool="t", success=True, duration_ms=1, attempt=1,
    ))
