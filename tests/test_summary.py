"""
SummaryGenerator narrative and per-family step descriptions.
"""

from orchestration.summary import NO_ACTIONS, SummaryGenerator, latest_per_step
from schemas.result import SkipReason, StepResult, StepStatus
from tools.registry import ToolRegistry


def result(step_id, tool, success=True, output=None, params=None, error=None, server=None, **extra):
    registry_server = server or ToolRegistry().server_for(tool)
    return StepResult(
        step_id=step_id,
        tool=tool,
        server=registry_server,
        input=params or {},
        output=output,
        success=success,
        error=error,
        status=StepStatus.SUCCEEDED if success else StepStatus.FAILED,
        **extra,
    )


def generator():
    registry = ToolRegistry()
    for name in ("email_send", "shopping_search_products", "shopping_create_order",
                 "payment_process_payment", "ai_chat_question", "user_profile_get_contacts"):
        registry.register(name, lambda params: None)
    registry.register("crm_sync", lambda params: None)
    return SummaryGenerator(registry.freeze())


def test_empty_log():
    assert generator().generate([]) == NO_ACTIONS


def test_family_descriptions():
    gen = generator()

    assert gen.describe(result(
        "s1", "email_send", output={"messageId": "m"}, params={"to": "bob@x.io", "subject": "Lunch"},
    )) == 'Sent email to bob@x.io with subject "Lunch"'
    assert gen.describe(result(
        "s2", "shopping_search_products", output={"products": [{}, {}, {}]}, params={"query": "mug"},
    )) == 'Found 3 products for "mug"'
    assert gen.describe(result(
        "s3", "shopping_create_order", output={"orderId": "o-7"},
    )) == "Completed purchase - Order ID: o-7"
    assert gen.describe(result(
        "s4", "payment_process_payment", output={"transactionId": "tx-1"},
    )) == "Payment processed - Transaction ID: tx-1"
    assert gen.describe(result(
        "s5", "user_profile_get_contacts", output={"contacts": [{}, {}]},
    )) == "Retrieved 2 contacts"


def test_ai_chat_preview_is_truncated():
    text = "x" * 80

    line = generator().describe(result("s1", "ai_chat_question", output={"response": text}))

    assert line == f'AI responded to question: "{"x" * 50}..."'


def test_unknown_tool_falls_back_to_server_and_tool():
    gen = generator()

    assert gen.describe(result("s1", "crm_sync")) == "crm.crm_sync"
    assert gen.describe(result("s2", "unregistered_tool", server="unregistered")) == "unregistered.unregistered_tool"


def test_narrative_orders_completed_failed_skipped():
    steps = [
        result("a", "crm_sync", success=False, error="timeout", attempt=1),
        result("b", "email_send", success=False, error="Validation failed",
               params={"to": "x@y.z"}),
        result("a", "crm_sync", attempt=2),
        StepResult(step_id="c", tool="crm_sync", server="crm", success=False, attempt=0,
                   status=StepStatus.SKIPPED, skip_reason=SkipReason.CONDITION_NOT_MET),
        StepResult(step_id="d", tool="crm_sync", server="crm", success=False, attempt=0,
                   error="Dependency failed: b",
                   status=StepStatus.SKIPPED, skip_reason=SkipReason.DEPENDENCY_FAILED),
    ]

    summary = generator().generate(steps)

    assert summary == (
        "Completed actions:\n"
        "1. crm.crm_sync\n"
        "\n"
        "Failed actions:\n"
        "1. Attempted to send email to x@y.z (Error: Validation failed)\n"
        "\n"
        "Skipped actions:\n"
        "1. crm.crm_sync (condition not met)\n"
        "2. crm.crm_sync (Dependency failed: b)"
    )


def test_latest_per_step_keeps_first_appearance_order():
    steps = [result("a", "crm_sync", attempt=1), result("b", "crm_sync"), result("a", "crm_sync", attempt=2)]

    latest = latest_per_step(steps)

    assert [(r.step_id, r.attempt) for r in latest] == [("a", 2), ("b", 1)]
