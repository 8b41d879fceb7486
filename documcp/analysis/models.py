"""Structural model produced by the static analyzer.

The model is language-neutral: both the Python and the tree-sitter backends
lower their syntax trees into the same `Statement` IR so the simulator can
walk control flow without knowing which language it is looking at.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Neutral type vocabulary used for literals, annotations and inference
STRING = "string"
NUMBER = "number"
BOOLEAN = "boolean"
NULL = "null"
UNDEFINED = "undefined"
ARRAY = "array"
OBJECT = "object"
FUNCTION = "function"
UNKNOWN = "unknown"

NULLISH_TYPES = frozenset({NULL, UNDEFINED})


class StatementKind(str, Enum):
    DECLARE = "declare"
    ASSIGN = "assign"
    CALL = "call"
    EXPR = "expr"
    BRANCH = "branch"
    LOOP = "loop"
    RETURN = "return"
    THROW = "throw"
    TRY = "try"
    CONTEXT = "context"
    IMPORT = "import"
    BREAK = "break"
    CONTINUE = "continue"


TERMINATING_KINDS = frozenset({
    StatementKind.RETURN,
    StatementKind.THROW,
    StatementKind.BREAK,
    StatementKind.CONTINUE,
})


@dataclass(frozen=True)
class ValueSummary:
    """What is known about an expression without evaluating it."""
    type: str = UNKNOWN
    literal: str | None = None
    ref: str | None = None  # variable the value is copied from
    constructor: str | None = None  # class name for `new X()` / `X()`

    def display(self) -> str | None:
        if self.literal is not None:
            return self.literal
        if self.ref is not None:
            return self.ref
        if self.constructor is not None:
            return f"<{self.constructor} instance>"
        return None


UNKNOWN_VALUE = ValueSummary()


def is_assignable(actual: str | None, expected: str | None) -> bool:
    """Whether a value of type `actual` fits a slot typed `expected`.

    Types are neutral names; `expected` may be a union such as
    ``"string|null"``. Unknown on either side is always assignable.
    """
    if not actual or not expected or actual == UNKNOWN:
        return True
    allowed = set(expected.split("|"))
    if UNKNOWN in allowed:
        return True
    return actual in allowed


@dataclass(frozen=True)
class CallSite:
    """A call expression found in a statement."""
    name: str
    line: int
    receiver: str | None = None  # `obj` in `obj.name(...)`
    dynamic: bool = False  # callee computed from an arbitrary expression
    args: tuple[ValueSummary, ...] = ()
    keyword_args: tuple[str, ...] = ()
    awaited: bool = False
    text: str = ""

    @property
    def display_name(self) -> str:
        if self.receiver:
            return f"{self.receiver}.{self.name}"
        return self.name


@dataclass(frozen=True)
class MemberRead:
    """Property access `obj.attr` on a plain name."""
    obj: str
    attr: str
    line: int
    guarded: bool = False  # optional chaining, `a && a.b`, etc.


@dataclass(frozen=True)
class Statement:
    kind: StatementKind
    line: int
    text: str
    targets: tuple[str, ...] = ()
    reads: tuple[str, ...] = ()
    calls: tuple[CallSite, ...] = ()
    member_reads: tuple[MemberRead, ...] = ()
    value: ValueSummary = UNKNOWN_VALUE
    annotation: str | None = None  # declared type of the assigned target
    condition: str | None = None
    guards: tuple[str, ...] = ()  # names the condition proves non-null
    else_guards: tuple[str, ...] = ()  # non-null when the condition is false
    body: tuple[Statement, ...] = ()
    orelse: tuple[Statement, ...] = ()
    handler: tuple[Statement, ...] = ()
    handler_names: tuple[str, ...] = ()
    finalbody: tuple[Statement, ...] = ()
    has_handler: bool = False


@dataclass(frozen=True)
class ParameterInfo:
    name: str
    type_hint: str | None = None
    optional: bool = False
    default: str | None = None
    variadic: bool = False


@dataclass(frozen=True)
class BodySummary:
    call_sites: tuple[CallSite, ...] = ()
    branch_count: int = 0
    loop_count: int = 0
    early_returns: int = 0
    returns_value: bool = False
    raises: tuple[str, ...] = ()


@dataclass(frozen=True)
class FunctionInfo:
    name: str
    parameters: tuple[ParameterInfo, ...] = ()
    return_type: str | None = None
    is_async: bool = False
    is_exported: bool = False
    start_line: int = 0
    end_line: int = 0
    complexity: int = 1
    doc_comment: str | None = None
    class_name: str | None = None
    body: tuple[Statement, ...] = ()
    summary: BodySummary = field(default_factory=BodySummary)

    @property
    def qualified_name(self) -> str:
        if self.class_name:
            return f"{self.class_name}.{self.name}"
        return self.name

    @property
    def required_parameters(self) -> int:
        return sum(
            1 for p in self.parameters
            if not p.optional and p.default is None and not p.variadic
            and p.name not in ("self", "cls")
        )

    @property
    def accepts_varargs(self) -> bool:
        return any(p.variadic for p in self.parameters)


@dataclass(frozen=True)
class ClassInfo:
    name: str
    bases: tuple[str, ...] = ()
    methods: tuple[str, ...] = ()
    is_exported: bool = False
    start_line: int = 0
    end_line: int = 0


@dataclass(frozen=True)
class ImportInfo:
    source: str
    names: tuple[str, ...] = ()
    line: int = 0


@dataclass(frozen=True)
class StaticModel:
    """Structural summary of one analyzed source."""
    file_path: str
    language: str
    functions: tuple[FunctionInfo, ...] = ()
    classes: tuple[ClassInfo, ...] = ()
    imports: tuple[ImportInfo, ...] = ()
    exports: tuple[str, ...] = ()
    statements: tuple[Statement, ...] = ()
    content_hash: str = ""
    lines_of_code: int = 0
    complexity: int = 0
    parse_errors: tuple[str, ...] = ()
    partial: bool = False

    def find_function(self, name: str, class_name: str | None = None) -> FunctionInfo | None:
        """Resolve a call target by name, preferring module-level functions."""
        if class_name is not None:
            for func in self.functions:
                if func.name == name and func.class_name == class_name:
                    return func
        for func in self.functions:
            if func.name == name and func.class_name is None:
                return func
        for func in self.functions:
            if func.qualified_name == name:
                return func
        return None

    def find_method(self, name: str) -> FunctionInfo | None:
        for func in self.functions:
            if func.name == name and func.class_name is not None:
                return func
        return None

    def find_class(self, name: str) -> ClassInfo | None:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None

    @property
    def declared_names(self) -> frozenset[str]:
        """Names bound at module scope regardless of statement order."""
        names = {f.name for f in self.functions if f.class_name is None}
        names.update(c.name for c in self.classes)
        for imp in self.imports:
            names.update(imp.names)
        return frozenset(names)

    @property
    def module_variables(self) -> frozenset[str]:
        names: set[str] = set()
        for stmt in self.statements:
            if stmt.kind in (StatementKind.DECLARE, StatementKind.ASSIGN):
                names.update(stmt.targets)
        return frozenset(names)
