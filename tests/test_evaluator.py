from __future__ import annotations

import json

import allure
import pytest
from factories import condition, feedback, resource, snapshot

from maestro_cli.status.evaluator import compare_equal, compare_numeric, evaluate

pytestmark = [
    allure.epic("Condition Wait"),
    allure.feature("Evaluator"),
]

APPLIED_AT = "2024-05-01T10:05:00Z"
BEFORE_APPLY = "2024-05-01T10:00:00Z"
AFTER_APPLY = "2024-05-01T10:06:00Z"


def test_top_level_condition_true_without_applied() -> None:
    work = snapshot(conditions=[condition("Available")])

    assert evaluate(work, "Available") is True
    assert evaluate(work, "available") is True
    assert evaluate(work, "Degraded") is False


def test_top_level_condition_false_status_is_not_met() -> None:
    work = snapshot(conditions=[condition("Available", "False"), condition("Applied")])

    assert evaluate(work, "Available") is False
    assert evaluate(work, "Applied") is True


def test_condition_older_than_applied_is_stale() -> None:
    stale = snapshot(
        conditions=[
            condition("Applied", at=APPLIED_AT),
            condition("Available", at=BEFORE_APPLY),
        ],
    )
    fresh = snapshot(
        conditions=[
            condition("Applied", at=APPLIED_AT),
            condition("Available", at=AFTER_APPLY),
        ],
    )

    assert evaluate(stale, "Available") is False
    assert evaluate(fresh, "Available") is True


def test_condition_at_same_instant_as_applied_is_fresh() -> None:
    work = snapshot(
        conditions=[
            condition("Applied", at=APPLIED_AT),
            condition("Available", at="2024-05-01T12:05:00+02:00"),
        ],
    )

    assert evaluate(work, "Available") is True


def test_applied_itself_is_never_stale() -> None:
    work = snapshot(conditions=[condition("Applied", at=APPLIED_AT)])

    assert evaluate(work, "Applied") is True


@pytest.mark.parametrize("timestamp", ["", "yesterday", "2024-05-01T10:00:00"])
def test_unparseable_transition_time_counts_as_fresh(timestamp: str) -> None:
    work = snapshot(
        conditions=[
            condition("Applied", at=APPLIED_AT),
            condition("Available", at=timestamp),
        ],
    )

    assert evaluate(work, "Available") is True


def test_applied_false_disables_freshness_gate() -> None:
    work = snapshot(
        conditions=[
            condition("Applied", "False", at=APPLIED_AT),
            condition("Available", at=BEFORE_APPLY),
        ],
    )

    assert evaluate(work, "Available") is True


def test_duplicate_conditions_use_the_last_true_entry() -> None:
    work = snapshot(
        conditions=[
            condition("Applied", at=APPLIED_AT),
            condition("Available", at=AFTER_APPLY),
            condition("Available", at=BEFORE_APPLY),
        ],
    )

    assert evaluate(work, "Available") is False


def test_resource_condition_with_selector() -> None:
    work = snapshot(
        resources=[
            resource("Job", "pi", namespace="batch", conditions=[condition("Complete")]),
        ],
    )

    assert evaluate(work, "Job:Complete") is True
    assert evaluate(work, "job/PI:complete") is True
    assert evaluate(work, "Job/batch/pi:Complete") is True
    assert evaluate(work, "Job/default/pi:Complete") is False
    assert evaluate(work, "Job/other:Complete") is False
    assert evaluate(work, "Deployment:Complete") is False
    assert evaluate(work, "Job:Failed") is False


def test_resource_check_continues_past_non_matching_resource() -> None:
    work = snapshot(
        resources=[
            resource("Job", "a", conditions=[condition("Complete", "False")]),
            resource("Job", "b", conditions=[condition("Complete")]),
        ],
    )

    assert evaluate(work, "Job:Complete") is True


def test_stale_resource_is_skipped() -> None:
    work = snapshot(
        conditions=[condition("Applied", at=APPLIED_AT)],
        resources=[
            resource(
                "Job",
                "old",
                conditions=[condition("Applied", at=BEFORE_APPLY), condition("Complete")],
            ),
        ],
    )

    assert evaluate(work, "Job:Complete") is False


def test_fresh_resource_satisfies_after_stale_one() -> None:
    work = snapshot(
        conditions=[condition("Applied", at=APPLIED_AT)],
        resources=[
            resource(
                "Job",
                "old",
                conditions=[condition("Applied", at=BEFORE_APPLY), condition("Complete")],
            ),
            resource(
                "Job",
                "new",
                conditions=[condition("Applied", at=AFTER_APPLY), condition("Complete")],
            ),
        ],
    )

    assert evaluate(work, "Job:Complete") is True


def test_resource_without_applied_condition_is_fresh() -> None:
    work = snapshot(
        conditions=[condition("Applied", at=APPLIED_AT)],
        resources=[resource("Job", "pi", conditions=[condition("Complete")])],
    )

    assert evaluate(work, "Job:Complete") is True


def test_feedback_conditions_list_satisfies_resource_check() -> None:
    conditions_json = json.dumps([{"type": "Complete", "status": "True"}])
    work = snapshot(
        resources=[
            resource("Job", "pi", values=[feedback("conditions", jsonRaw=conditions_json)]),
        ],
    )

    assert evaluate(work, "Job:Complete") is True
    assert evaluate(work, "Job:Failed") is False


def test_feedback_status_conditions_satisfy_resource_check() -> None:
    status_json = json.dumps({"conditions": [{"type": "Ready", "status": "True"}]})
    work = snapshot(
        resources=[resource("Pod", "p", values=[feedback("status", jsonRaw=status_json)])],
    )

    assert evaluate(work, "Pod:Ready") is True


def test_feedback_field_comparisons() -> None:
    work = snapshot(
        resources=[
            resource(
                "Deployment",
                "web",
                namespace="default",
                values=[
                    feedback("availableReplicas", integer=3),
                    feedback("phase", string="Running"),
                    feedback("paused", boolean=False),
                    feedback("status", jsonRaw=json.dumps({"readyReplicas": 2, "ratio": 0.5})),
                ],
            ),
        ],
    )

    assert evaluate(work, "Deployment:availableReplicas>=2") is True
    assert evaluate(work, "Deployment:availableReplicas>3") is False
    assert evaluate(work, "Deployment:availableReplicas = 3") is True
    assert evaluate(work, "Deployment:phase=running") is True
    assert evaluate(work, "Deployment:paused=false") is True
    assert evaluate(work, "Deployment:paused=False") is False
    assert evaluate(work, "Deployment/default/web:status.readyReplicas>=2") is True
    assert evaluate(work, "Deployment:status.ratio=0.50") is True
    assert evaluate(work, "Deployment:missing>=0") is False
    assert evaluate(work, "Deployment:phase>=1") is False
    assert evaluate(work, "Deployment:availableReplicas>=many") is False


def test_logical_operators_combine_terms() -> None:
    work = snapshot(
        conditions=[condition("Available")],
        resources=[resource("Job", "pi", conditions=[condition("Failed")])],
    )

    assert evaluate(work, "Available AND Job:Failed") is True
    assert evaluate(work, "Available && Job:Complete") is False
    assert evaluate(work, "Job:Complete OR Job:Failed") is True
    assert evaluate(work, "(Degraded || Job:Complete) && Available") is False
    assert evaluate(work, "Degraded OR Job:Complete AND Available") is False


@pytest.mark.parametrize("source", ["", "(", "Available AND", "Job:", "((Available)"])
def test_malformed_expressions_evaluate_false(source: str) -> None:
    work = snapshot(conditions=[condition("Available")])

    assert evaluate(work, source) is False


def test_evaluation_is_pure() -> None:
    work = snapshot(
        conditions=[condition("Applied", at=APPLIED_AT), condition("Available", at=AFTER_APPLY)],
    )

    results = {evaluate(work, "Available AND Applied") for _ in range(5)}

    assert results == {True}


def test_compare_equal_rules() -> None:
    assert compare_equal("Running", "RUNNING") is True
    assert compare_equal(True, "true") is True
    assert compare_equal(True, "True") is False
    assert compare_equal(3, "3") is True
    assert compare_equal(2.0, "2") is True
    assert compare_equal({"a": 1}, '{"a":1}') is True


def test_compare_numeric_rules() -> None:
    assert compare_numeric(3, "2.5", ">") is True
    assert compare_numeric("4", "4", ">=") is True
    assert compare_numeric(1, "2", "<") is True
    assert compare_numeric(2, "2", "<=") is True
    assert compare_numeric(True, "0", ">") is False
    assert compare_numeric("abc", "1", ">") is False
    assert compare_numeric([1], "1", ">") is False


def test_job_succeeded_count_threshold() -> None:
    work = snapshot(resources=[resource("Job", "x", values=[feedback("succeeded", integer=2)])])

    assert evaluate(work, "Job:succeeded>=1") is True
    assert evaluate(work, "Job/x:succeeded>=3") is False


def test_available_and_progressing_false() -> None:
    work = snapshot(conditions=[condition("Available"), condition("Progressing", "False")])

    assert evaluate(work, "Available AND Progressing") is False
    assert evaluate(work, "Available OR Progressing") is True


@pytest.mark.parametrize(
    ("first", "second"),
    [(True, True), (True, False), (False, True), (False, False)],
)
def test_and_or_follow_their_operands(first: bool, second: bool) -> None:
    work = snapshot(
        conditions=[
            condition("Available", "True" if first else "False"),
            condition("Ready", "True" if second else "False"),
        ],
    )

    assert evaluate(work, "Available") is first
    assert evaluate(work, "Ready") is second
    assert evaluate(work, "Available AND Ready") is (first and second)
    assert evaluate(work, "Available OR Ready") is (first or second)
    assert evaluate(work, "Ready && Available") is (first and second)


def test_long_and_chain_evaluates() -> None:
    work = snapshot(conditions=[condition("Available")])

    assert evaluate(work, " AND ".join(["Available"] * 1200)) is True
    assert evaluate(work, " AND ".join(["Available"] * 1199 + ["Degraded"])) is False


def test_long_or_chain_evaluates() -> None:
    work = snapshot(conditions=[condition("Available")])

    assert evaluate(work, " OR ".join(["Degraded"] * 1199 + ["Available"])) is True
    assert evaluate(work, " || ".join(["Degraded"] * 1200)) is False


def test_long_mixed_chain_evaluates() -> None:
    work = snapshot(conditions=[condition("Available")])

    assert evaluate(work, " OR ".join(["Degraded AND Available"] * 600)) is False
    assert evaluate(work, " OR ".join(["Degraded AND Available"] * 600 + ["Available"])) is True


def test_deeply_nested_parentheses_evaluate_false() -> None:
    work = snapshot(conditions=[condition("Available")])

    assert evaluate(work, "(" * 400 + "Available" + ")" * 400) is False


@pytest.mark.parametrize("timestamp", ["2024-05-01 10:00:00Z", "2024-05-01T10:00Z"])
def test_loose_timestamps_count_as_fresh(timestamp: str) -> None:
    work = snapshot(
        conditions=[condition("Applied", at=APPLIED_AT), condition("Available", at=timestamp)],
    )

    assert evaluate(work, "Available") is True
