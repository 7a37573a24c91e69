from __future__ import annotations

import allure
import pytest

from maestro_cli.status.expression import (
    MAX_NESTING_DEPTH,
    And,
    ConditionCheck,
    ExpressionSyntaxError,
    FieldComparison,
    Or,
    ResourceTerm,
    TokenKind,
    TopLevelTerm,
    parse_condition,
    parse_expression,
    tokenize,
)

pytestmark = [
    allure.epic("Condition Wait"),
    allure.feature("Expression Language"),
]


def test_tokenize_splits_keywords_parentheses_and_aliases() -> None:
    tokens = tokenize("(Available AND Job:Complete)||Degraded")

    assert [token.kind for token in tokens] == [
        TokenKind.LPAREN,
        TokenKind.CONDITION,
        TokenKind.AND,
        TokenKind.CONDITION,
        TokenKind.RPAREN,
        TokenKind.OR,
        TokenKind.CONDITION,
    ]
    assert tokens[3].text == "Job:Complete"
    assert tokens[5].text == "||"


def test_tokenize_merges_spaced_comparison_into_one_condition() -> None:
    tokens = tokenize("Deployment:availableReplicas >= 2 AND Available")

    assert [token.text for token in tokens] == [
        "Deployment:availableReplicas >= 2",
        "AND",
        "Available",
    ]
    assert tokens[2].position == len("Deployment:availableReplicas >= 2 AND ")


def test_lowercase_and_is_not_a_keyword() -> None:
    assert parse_expression("Available and Ready") == TopLevelTerm(type="Available and Ready")


def test_and_binds_tighter_than_or() -> None:
    tree = parse_expression("A OR B AND C")

    assert tree == Or(
        lhs=TopLevelTerm(type="A"),
        rhs=And(lhs=TopLevelTerm(type="B"), rhs=TopLevelTerm(type="C")),
    )


def test_parentheses_override_precedence() -> None:
    tree = parse_expression("(A || B) && C")

    assert tree == And(
        lhs=Or(lhs=TopLevelTerm(type="A"), rhs=TopLevelTerm(type="B")),
        rhs=TopLevelTerm(type="C"),
    )


def test_operators_are_left_associative() -> None:
    assert parse_expression("A AND B AND C") == And(
        lhs=And(lhs=TopLevelTerm(type="A"), rhs=TopLevelTerm(type="B")),
        rhs=TopLevelTerm(type="C"),
    )


@pytest.mark.parametrize(
    ("text", "kind", "namespace", "name"),
    [
        ("Job:Complete", "Job", None, None),
        ("Job/pi:Complete", "Job", None, "pi"),
        ("Job/batch/pi:Complete", "Job", "batch", "pi"),
        ("Job/batch/pi/extra:Complete", "Job", "batch", "pi"),
        ("Job//pi:Complete", "Job", None, "pi"),
    ],
)
def test_parse_condition_selector_segments(
    text: str,
    kind: str,
    namespace: str | None,
    name: str | None,
) -> None:
    term = parse_condition(text)

    assert term == ResourceTerm(
        kind=kind,
        namespace=namespace,
        name=name,
        check=ConditionCheck(name="Complete"),
    )


@pytest.mark.parametrize(
    ("check", "path", "operator", "literal"),
    [
        ("succeeded>=1", "succeeded", ">=", "1"),
        ("succeeded<=1", "succeeded", "<=", "1"),
        ("succeeded>1", "succeeded", ">", "1"),
        ("succeeded<1", "succeeded", "<", "1"),
        ("phase = Running", "phase", "=", "Running"),
        ("status.readyReplicas>=3", "status.readyReplicas", ">=", "3"),
    ],
)
def test_parse_condition_detects_comparison_operator(
    check: str,
    path: str,
    operator: str,
    literal: str,
) -> None:
    term = parse_condition(f"Job:{check}")

    assert isinstance(term, ResourceTerm)
    assert term.check == FieldComparison(path=path, operator=operator, literal=literal)


def test_parse_condition_without_colon_is_top_level() -> None:
    assert parse_condition("  Available ") == TopLevelTerm(type="Available")


@pytest.mark.parametrize(
    "source",
    ["", "   ", "(", "Available AND", "OR Available", "(Available", "Available)", "Job:", ":x"],
)
def test_malformed_expressions_raise(source: str) -> None:
    with pytest.raises(ExpressionSyntaxError):
        parse_expression(source)


def test_nesting_up_to_the_limit_parses() -> None:
    source = "(" * MAX_NESTING_DEPTH + "Available" + ")" * MAX_NESTING_DEPTH

    assert parse_expression(source) == TopLevelTerm(type="Available")


@pytest.mark.parametrize("depth", [MAX_NESTING_DEPTH + 1, 400])
def test_nesting_beyond_the_limit_is_rejected(depth: int) -> None:
    source = "(" * depth + "Available" + ")" * depth

    with pytest.raises(ExpressionSyntaxError, match="nested deeper"):
        parse_expression(source)


def test_long_flat_chain_parses_without_recursion() -> None:
    tree = parse_expression(" AND ".join(["Available"] * 1200))

    depth = 0
    while isinstance(tree, And):
        assert tree.rhs == TopLevelTerm(type="Available")
        tree = tree.lhs
        depth += 1
    assert depth == 1199


def test_missing_field_path_is_rejected() -> None:
    with pytest.raises(ExpressionSyntaxError, match="missing field path"):
        parse_expression("Job:>=1")
