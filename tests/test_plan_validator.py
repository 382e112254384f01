"""
Plan validation: malformed planner output is filtered or rejected
before execution starts.
"""

import pytest

from orchestration.errors import DependencyCycleError, PlanValidationError
from orchestration.validator import validate_plan
from schemas.plan import ConditionCheck, ExecutionPlan, PlanStep


def step(step_id, tool="t_tool", **extra):
    return {"id": step_id, "tool": tool, "params": {}, **extra}


def test_accepts_planner_envelope_and_camel_case_keys():
    plan = validate_plan({
        "plan": {
            "plan_id": "p-1",
            "summary": "Look up then mail",
            "steps": [
                step("s1", outputKey="c"),
                step("s2", dependsOn=["s1", "s1"],
                     condition={"step": "s1", "check": "truthy"}),
            ],
        }
    })

    assert plan.plan_id == "p-1"
    assert plan.summary == "Look up then mail"
    assert plan.step_ids == ["s1", "s2"]
    s2 = plan.get_step("s2")
    assert s2.depends_on == ["s1"]
    assert s2.condition.check == ConditionCheck.TRUTHY
    assert plan.get_step("s1").output_key == "c"


def test_accepts_an_execution_plan_instance():
    original = ExecutionPlan(steps=[PlanStep(id="a", tool="t_x", params={"q": 1})])

    plan = validate_plan(original)

    assert plan.plan_id == original.plan_id
    assert plan.get_step("a").params == {"q": 1}


def test_drops_incomplete_steps():
    plan = validate_plan({
        "steps": [
            step("ok"),
            {"id": "no-tool", "params": {}},
            {"id": "no-params", "tool": "t_x"},
            {"id": "", "tool": "t_x", "params": {}},
            {"id": "bad-params", "tool": "t_x", "params": "q=1"},
            "not a step",
            step("bad-check", condition={"step": "ok", "check": "regex"}),
        ]
    })

    assert plan.step_ids == ["ok"]


def test_rejects_plan_with_no_usable_steps():
    with pytest.raises(PlanValidationError, match="No valid steps in plan"):
        validate_plan({"steps": [{"id": "a"}]})

    with pytest.raises(PlanValidationError, match="No valid steps in plan"):
        validate_plan({"steps": []})


@pytest.mark.parametrize("raw", [None, [], "plan", {"plan": {"steps": "x"}}, {"summary": "no steps"}])
def test_rejects_non_plans(raw):
    with pytest.raises(PlanValidationError):
        validate_plan(raw)


def test_rejects_duplicate_ids():
    with pytest.raises(PlanValidationError, match="Duplicate step ids"):
        validate_plan({"steps": [step("a"), step("a")]})


def test_rejects_unknown_dependency():
    with pytest.raises(PlanValidationError, match="unknown steps"):
        validate_plan({"steps": [step("a", dependsOn=["ghost"])]})


def test_dependency_on_a_dropped_step_is_unknown():
    with pytest.raises(PlanValidationError):
        validate_plan({"steps": [{"id": "a", "tool": "t_x"}, step("b", dependsOn=["a"])]})


def test_condition_on_unknown_step_is_kept():
    plan = validate_plan({
        "steps": [step("a", condition={"step": "ghost", "check": "truthy"})]
    })

    assert plan.get_step("a").condition.step == "ghost"


def test_detects_cycles_with_path():
    with pytest.raises(DependencyCycleError) as exc:
        validate_plan({
            "steps": [
                step("a", dependsOn=["c"]),
                step("b", dependsOn=["a"]),
                step("c", dependsOn=["b"]),
            ]
        })

    cycle = exc.value.cycle
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}
    assert "Dependency cycle detected" in str(exc.value)


def test_condition_edges_count_towards_cycles():
    with pytest.raises(DependencyCycleError):
        validate_plan({
            "steps": [
                step("a", condition={"step": "b", "check": "truthy"}),
                step("b", dependsOn=["a"]),
            ]
        })


def test_self_dependency_is_a_cycle():
    with pytest.raises(DependencyCycleError):
        validate_plan({"steps": [step("a", dependsOn=["a"])]})


def test_bad_plan_level_field_is_a_validation_error():
    with pytest.raises(PlanValidationError, match="summary"):
        validate_plan({"steps": [step("a")], "summary": 5})


def test_long_chain_listed_leaf_first():
    count = 1500
    steps = [step("s0")] + [step(f"s{i}", dependsOn=[f"s{i - 1}"]) for i in range(1, count)]

    plan = validate_plan({"steps": list(reversed(steps))})

    assert len(plan.steps) == count

    steps[0] = step("s0", dependsOn=[f"s{count - 1}"])
    with pytest.raises(DependencyCycleError) as exc:
        validate_plan({"steps": list(reversed(steps))})
    assert len(exc.value.cycle) == count + 1
