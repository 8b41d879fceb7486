"""Helpers shared by the language backends for summarizing lowered bodies."""

from __future__ import annotations

from collections.abc import Iterator

from .models import (
    NULLISH_TYPES,
    BodySummary,
    Statement,
    StatementKind,
    UNKNOWN,
)


def iter_statements(statements: tuple[Statement, ...]) -> Iterator[Statement]:
    """Yield every statement in a block, depth first, in source order."""
    for stmt in statements:
        yield stmt
        yield from iter_statements(stmt.body)
        yield from iter_statements(stmt.orelse)
        yield from iter_statements(stmt.handler)
        yield from iter_statements(stmt.finalbody)


def block_terminates(statements: tuple[Statement, ...]) -> bool:
    """Whether control can never fall off the end of a block."""
    for stmt in statements:
        if stmt.kind in (StatementKind.RETURN, StatementKind.THROW):
            return True
        if stmt.kind == StatementKind.BRANCH and stmt.orelse:
            if block_terminates(stmt.body) and block_terminates(stmt.orelse):
                return True
    return False


def summarize_body(statements: tuple[Statement, ...]) -> BodySummary:
    calls = []
    branches = loops = returns = 0
    returns_value = False
    raises: list[str] = []

    for stmt in iter_statements(statements):
        calls.extend(stmt.calls)
        if stmt.kind == StatementKind.BRANCH:
            branches += 1
        elif stmt.kind == StatementKind.LOOP:
            loops += 1
        elif stmt.kind == StatementKind.RETURN:
            returns += 1
            if stmt.value.type not in NULLISH_TYPES:
                returns_value = True
        elif stmt.kind == StatementKind.THROW:
            raises.append(stmt.value.constructor or stmt.value.display() or "Error")

    trailing_return = bool(statements) and statements[-1].kind == StatementKind.RETURN
    early_returns = returns - 1 if trailing_return else returns

    return BodySummary(
        call_sites=tuple(calls),
        branch_count=branches,
        loop_count=loops,
        early_returns=max(early_returns, 0),
        returns_value=returns_value,
        raises=tuple(dict.fromkeys(raises)),
    )


def infer_return_type(statements: tuple[Statement, ...]) -> str | None:
    """First concrete type among the block's return statements."""
    for stmt in iter_statements(statements):
        if stmt.kind == StatementKind.RETURN and stmt.value.type != UNKNOWN:
            return stmt.value.type
    return None


def body_complexity(statements: tuple[Statement, ...]) -> int:
    """Cyclomatic complexity estimate from the lowered IR."""
    complexity = 1
    for stmt in iter_statements(statements):
        if stmt.kind in (StatementKind.BRANCH, StatementKind.LOOP):
            complexity += 1
        elif stmt.kind == StatementKind.TRY and stmt.has_handler:
            complexity += 1
        if stmt.condition:
            complexity += stmt.condition.count("&&") + stmt.condition.count("||")
            complexity += stmt.condition.count(" and ") + stmt.condition.count(" or ")
    return complexity
