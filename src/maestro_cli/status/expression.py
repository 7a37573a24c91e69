"""Condition expression language: tokenizer, AST, and recursive-descent parser.

Supported forms::

    Available
    Job:Complete
    Job/my-job:Complete
    Job/ns/my-job:succeeded>=1
    Available AND Job:Complete
    Job:Complete OR Job:Failed
    (A AND B) OR C

``AND`` binds tighter than ``OR``; ``&&`` and ``||`` are accepted as aliases.
Parentheses may nest at most ``MAX_NESTING_DEPTH`` levels.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

COMPARISON_OPERATORS: tuple[str, ...] = (">=", "<=", ">", "<", "=")
MAX_NESTING_DEPTH = 64


class ExpressionSyntaxError(ValueError):
    """Raised by the parser for malformed condition expressions."""


class TokenKind(str, Enum):
    LPAREN = "("
    RPAREN = ")"
    AND = "AND"
    OR = "OR"
    CONDITION = "condition"


@dataclass(slots=True, frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int


@dataclass(slots=True, frozen=True)
class ConditionCheck:
    """Bare condition-name check against a resource."""

    name: str


@dataclass(slots=True, frozen=True)
class FieldComparison:
    """Comparison of a status feedback field against a literal."""

    path: str
    operator: str
    literal: str


@dataclass(slots=True, frozen=True)
class TopLevelTerm:
    """Work-item level condition, e.g. ``Available``."""

    type: str


@dataclass(slots=True, frozen=True)
class ResourceTerm:
    """Resource-qualified check, e.g. ``Job/ns/name:succeeded>=1``."""

    kind: str
    namespace: str | None
    name: str | None
    check: ConditionCheck | FieldComparison


@dataclass(slots=True, frozen=True)
class And:
    lhs: Expression
    rhs: Expression


@dataclass(slots=True, frozen=True)
class Or:
    lhs: Expression
    rhs: Expression


Expression = TopLevelTerm | ResourceTerm | And | Or


def tokenize(source: str) -> list[Token]:
    """Split an expression into parentheses, logical operators, and condition texts.

    Consecutive plain words are merged into a single condition token joined by
    one space, so ``Job:succeeded >= 1`` stays one condition.
    """

    tokens: list[Token] = []
    words: list[str] = []
    words_start = 0
    word_chars: list[str] = []
    word_start = 0

    def flush_word() -> None:
        nonlocal word_chars, words_start
        if not word_chars:
            return
        word = "".join(word_chars)
        word_chars = []
        if word in {"AND", "OR"}:
            flush_condition()
            tokens.append(Token(kind=TokenKind(word), text=word, position=word_start))
            return
        if not words:
            words_start = word_start
        words.append(word)

    def flush_condition() -> None:
        if words:
            tokens.append(
                Token(kind=TokenKind.CONDITION, text=" ".join(words), position=words_start),
            )
            words.clear()

    index = 0
    length = len(source)
    while index < length:
        char = source[index]
        pair = source[index : index + 2]
        if pair in {"&&", "||"}:
            flush_word()
            flush_condition()
            kind = TokenKind.AND if pair == "&&" else TokenKind.OR
            tokens.append(Token(kind=kind, text=pair, position=index))
            index += 2
            continue
        if char in "()":
            flush_word()
            flush_condition()
            tokens.append(Token(kind=TokenKind(char), text=char, position=index))
        elif char.isspace():
            flush_word()
        else:
            if not word_chars:
                word_start = index
            word_chars.append(char)
        index += 1

    flush_word()
    flush_condition()
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    def parse(self) -> Expression:
        if not self._tokens:
            raise ExpressionSyntaxError("empty expression")
        expression = self._or_expr()
        token = self._peek()
        if token is not None:
            raise ExpressionSyntaxError(
                f"unexpected {token.text!r} at position {token.position}",
            )
        return expression

    def _or_expr(self) -> Expression:
        expression = self._and_expr()
        while self._accept(TokenKind.OR):
            expression = Or(lhs=expression, rhs=self._and_expr())
        return expression

    def _and_expr(self) -> Expression:
        expression = self._term()
        while self._accept(TokenKind.AND):
            expression = And(lhs=expression, rhs=self._term())
        return expression

    def _term(self) -> Expression:
        token = self._peek()
        if token is None:
            raise ExpressionSyntaxError("expression ends where a condition is expected")
        if token.kind is TokenKind.LPAREN:
            if self._depth >= MAX_NESTING_DEPTH:
                raise ExpressionSyntaxError(
                    f"parentheses nested deeper than {MAX_NESTING_DEPTH} levels "
                    f"at position {token.position}",
                )
            self._index += 1
            self._depth += 1
            expression = self._or_expr()
            self._depth -= 1
            if not self._accept(TokenKind.RPAREN):
                raise ExpressionSyntaxError(f"unbalanced '(' at position {token.position}")
            return expression
        if token.kind is TokenKind.CONDITION:
            self._index += 1
            return parse_condition(token.text)
        raise ExpressionSyntaxError(f"unexpected {token.text!r} at position {token.position}")

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _accept(self, kind: TokenKind) -> bool:
        token = self._peek()
        if token is not None and token.kind is kind:
            self._index += 1
            return True
        return False


def parse_expression(source: str) -> Expression:
    """Parse an expression string into an AST, raising ExpressionSyntaxError."""

    return _Parser(tokenize(source.strip())).parse()


def parse_condition(text: str) -> TopLevelTerm | ResourceTerm:
    """Parse a single condition: ``Type`` or ``Kind[/ns][/name]:check``."""

    text = text.strip()
    if not text:
        raise ExpressionSyntaxError("empty condition")
    if ":" not in text:
        return TopLevelTerm(type=text)

    selector, check_text = (part.strip() for part in text.split(":", 1))
    segments = selector.split("/")
    kind = segments[0].strip()
    if not kind:
        raise ExpressionSyntaxError(f"missing resource kind in {text!r}")
    namespace: str | None = None
    name: str | None = None
    if len(segments) == 2:
        name = segments[1].strip() or None
    elif len(segments) >= 3:
        namespace = segments[1].strip() or None
        name = segments[2].strip() or None
    return ResourceTerm(kind=kind, namespace=namespace, name=name, check=parse_check(check_text))


def parse_check(text: str) -> ConditionCheck | FieldComparison:
    if not text:
        raise ExpressionSyntaxError("empty resource check")
    for operator in COMPARISON_OPERATORS:
        if operator in text:
            path, literal = (part.strip() for part in text.split(operator, 1))
            if not path:
                raise ExpressionSyntaxError(f"missing field path in {text!r}")
            return FieldComparison(path=path, operator=operator, literal=literal)
    return ConditionCheck(name=text)
