"""Trace strategies.

`StaticTraceStrategy` walks the analyzer's statement IR along the most likely
path; `LLMTraceStrategy` asks a language model for the trace and falls back
to the static walk when the model fails or replies with something unusable.
Both produce a `TraceDraft` that the simulator turns into an
`ExecutionTrace`.
"""

import asyncio
import builtins
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..analysis.models import (
    ARRAY,
    FUNCTION,
    NULLISH_TYPES,
    OBJECT,
    UNDEFINED,
    UNKNOWN,
    CallSite,
    FunctionInfo,
    Statement,
    StatementKind,
    StaticModel,
    TERMINATING_KINDS,
    ValueSummary,
)
from ..analysis.summary import block_terminates, iter_statements
from ..constants import (
    JAVASCRIPT_GLOBALS,
    PYTHON_EXTRA_GLOBALS,
    IssueType,
    Language,
    Severity,
    StepKind,
)
from ..core.errors import LLMError
from ..models import SimulationOptions
from .models import (
    AnnotationCheck,
    ArgumentCheck,
    ArityCheck,
    ExecutionStep,
    IssueLocation,
    NullableRead,
    PotentialIssue,
    StepFacts,
    VariableState,
)

logger = logging.getLogger(__name__)

PYTHON_GLOBALS = frozenset(dir(builtins)) | PYTHON_EXTRA_GLOBALS

CONSTRUCTOR_NAMES = ("__init__", "constructor")

_TRUE_LITERALS = ("true", "True", "1")
_FALSE_LITERALS = ("false", "False", "0", "None", "null", "undefined")

# Per-step confidence for steps that involve guessing
_AMBIGUOUS_STEP_CONFIDENCE = 0.6
_DYNAMIC_STEP_CONFIDENCE = 0.7
_UNRESOLVED_STEP_CONFIDENCE = 0.5
_OFF_PATH_STEP_CONFIDENCE = 0.5


class BudgetExceeded(Exception):
    """Raised inside the walk when the step or time budget runs out."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class TraceRequest:
    """Everything a strategy needs to trace one example."""
    example_code: str
    implementation_code: str
    example: StaticModel
    implementation: StaticModel
    entry_point: str
    options: SimulationOptions
    deadline: float  # time.monotonic() value
    self_simulation: bool = False


@dataclass
class TraceDraft:
    """Strategy output before scoring and issue detection."""
    steps: List[ExecutionStep] = field(default_factory=list)
    path: List[str] = field(default_factory=list)
    variables: Dict[str, VariableState] = field(default_factory=dict)
    reached_end: bool = False
    static: bool = True
    unresolved_calls: int = 0
    ambiguous_branches: int = 0
    dynamic_dispatches: int = 0
    budget: Optional[str] = None  # "steps" or "time"
    reported_issues: List[PotentialIssue] = field(default_factory=list)
    reported_confidence: Optional[float] = None


class TraceStrategy(ABC):
    """A way of producing an execution trace."""

    name: str = "abstract"

    @abstractmethod
    async def trace(self, request: TraceRequest) -> TraceDraft:
        ...


# ============================================================================
# Static walk
# ============================================================================

@dataclass
class _Binding:
    """What the walker knows about a variable's current value."""
    type: str = UNKNOWN
    value: Optional[str] = None
    constructor: Optional[str] = None
    nullable_source: Optional[str] = None
    non_null: bool = False
    is_parameter: bool = False

    def display(self) -> str:
        if self.value is not None:
            return self.value
        if self.constructor is not None:
            return f"<{self.constructor} instance>"
        return f"<{self.type}>"

    @property
    def may_be_null(self) -> bool:
        if self.non_null:
            return False
        if self.type in NULLISH_TYPES:
            return True
        if any(part in NULLISH_TYPES for part in self.type.split("|")):
            return True
        return self.nullable_source == "unbound parameter"

    @property
    def known_non_null(self) -> bool:
        if self.non_null:
            return True
        if self.type == UNKNOWN:
            return False
        return not any(part in NULLISH_TYPES for part in self.type.split("|"))


class _Signal(Enum):
    NORMAL = "normal"
    RETURN = "return"
    THROW = "throw"
    BREAK = "break"
    CONTINUE = "continue"
    HANG = "hang"


@dataclass
class _Outcome:
    signal: _Signal = _Signal.NORMAL
    value: Optional[_Binding] = None
    error: Optional[str] = None
    simulated: bool = False  # raised by the walker for an undefined name
    step: Optional[ExecutionStep] = None


_NORMAL = _Outcome()


@dataclass
class _Frame:
    function: Optional[FunctionInfo]
    model: StaticModel
    depth: int
    scope: Dict[str, _Binding] = field(default_factory=dict)

    @property
    def class_name(self) -> Optional[str]:
        return self.function.class_name if self.function else None

    @property
    def label(self) -> Optional[str]:
        return self.function.qualified_name if self.function else None

    def fork(self) -> "_Frame":
        return replace(self, scope=dict(self.scope))


@dataclass
class _Resolution:
    kind: str  # function, class, builtin, dynamic, external, unresolved, undefined
    function: Optional[FunctionInfo] = None
    model: Optional[StaticModel] = None
    class_name: Optional[str] = None


def _builtins_for(language: str) -> frozenset:
    if language == Language.PYTHON.value:
        return PYTHON_GLOBALS
    return JAVASCRIPT_GLOBALS


def _binding_from_type(type_hint: Optional[str], source: Optional[str]) -> _Binding:
    return _Binding(type=type_hint or UNKNOWN, nullable_source=source)


class _Walker:
    """One static walk. Not reusable."""

    def __init__(self, request: TraceRequest):
        self.request = request
        self.options = request.options
        self.example = request.example
        self.implementation = request.implementation
        self.language = request.example.language
        self.builtins = _builtins_for(self.language)
        self.error_name = "NameError" if self.language == Language.PYTHON.value else "ReferenceError"

        self.draft = TraceDraft()
        self.stack: List[str] = []
        self.invoked: set = set()
        self.handler_depth = 0
        self.unreachable_lines: set = set()
        self.top = _Frame(function=None, model=self.example, depth=0)

    # -- bookkeeping ------------------------------------------------------

    def check_budget(self) -> None:
        if len(self.draft.steps) >= self.options.max_steps:
            raise BudgetExceeded("steps")
        if time.monotonic() >= self.request.deadline:
            raise BudgetExceeded("time")

    def step(self, frame: _Frame, kind: StepKind, operation: str, *,
             line: int = 0, construct: Optional[str] = None, on_path: bool = True,
             facts: Optional[StepFacts] = None, **fields: Any) -> ExecutionStep:
        self.check_budget()
        facts = facts or StepFacts()
        facts.on_path = on_path
        facts.language = self.language
        if not on_path:
            fields["confidence"] = min(fields.get("confidence", 1.0), _OFF_PATH_STEP_CONFIDENCE)
        step = ExecutionStep(
            id=f"step-{len(self.draft.steps) + 1}",
            line_number=line,
            kind=kind,
            operation=operation,
            source_construct=construct,
            function=frame.label,
            depth=frame.depth,
            facts=facts,
            **fields,
        )
        self.draft.steps.append(step)
        if on_path:
            self.draft.path.append(step.id)
        return step

    def write(self, frame: _Frame, name: str, binding: _Binding, line: int,
              step: ExecutionStep, on_path: bool) -> None:
        frame.scope[name] = binding
        step.state_changes[name] = binding.display()
        if not on_path:
            return
        previous = self.draft.variables.get(name)
        self.draft.variables[name] = VariableState(
            name=name,
            type=binding.type,
            value=binding.value if binding.value is not None else binding.display(),
            defined_at=previous.defined_at if previous else line,
            last_modified_at=line,
            is_parameter=binding.is_parameter,
        )

    # -- name resolution --------------------------------------------------

    def lookup(self, name: str, frame: _Frame) -> Optional[_Binding]:
        if name in frame.scope:
            return frame.scope[name]
        if frame is not self.top and frame.model is self.example and name in self.top.scope:
            return self.top.scope[name]
        return None

    def is_defined(self, name: str, frame: _Frame) -> bool:
        if self.lookup(name, frame) is not None:
            return True
        if name in self.builtins:
            return True
        if name in frame.model.declared_names:
            return True
        if frame.model is self.implementation and name in self.implementation.module_variables:
            return True
        if frame is self.top or frame.model is self.example:
            if name in self.implementation.declared_names or name in self.implementation.exports:
                return True
        return name in self.example.declared_names

    def imported(self, name: str) -> bool:
        for model in (self.example, self.implementation):
            for imp in model.imports:
                if name in imp.names:
                    return True
        return False

    def find_function(self, name: str, class_name: Optional[str], frame: _Frame) -> Tuple[Optional[FunctionInfo], Optional[StaticModel]]:
        models = [frame.model, self.implementation, self.example]
        seen = []
        for model in models:
            if any(model is other for other in seen):
                continue
            seen.append(model)
            func = model.find_function(name, class_name)
            if func is not None and (class_name is None or func.class_name == class_name):
                return func, model
        return None, None

    def find_class(self, name: str, frame: _Frame):
        for model in (frame.model, self.implementation, self.example):
            cls = model.find_class(name)
            if cls is not None:
                return cls, model
        return None, None

    def constructor_for(self, class_name: str, model: StaticModel) -> Optional[FunctionInfo]:
        for method in CONSTRUCTOR_NAMES:
            func = model.find_function(method, class_name)
            if func is not None and func.class_name == class_name:
                return func
        return None

    def resolve(self, call: CallSite, frame: _Frame) -> _Resolution:
        if call.dynamic and call.receiver is None:
            return _Resolution("dynamic")

        if call.receiver is None:
            binding = frame.scope.get(call.name)
            if binding is not None and binding.is_parameter:
                return _Resolution("dynamic")
            func, model = self.find_function(call.name, None, frame)
            if func is not None:
                return _Resolution("function", func, model)
            cls, model = self.find_class(call.name, frame)
            if cls is not None:
                return _Resolution("class", self.constructor_for(cls.name, model), model, cls.name)
            if self.lookup(call.name, frame) is not None:
                return _Resolution("dynamic")
            if call.name in self.builtins:
                return _Resolution("builtin")
            if self.imported(call.name):
                return _Resolution("external")
            if self.is_defined(call.name, frame):
                return _Resolution("unresolved")
            return _Resolution("undefined")

        receiver = call.receiver
        if receiver in ("self", "this", "cls") and frame.class_name:
            func, model = self.find_function(call.name, frame.class_name, frame)
            if func is not None:
                return _Resolution("function", func, model)
            return _Resolution("unresolved")

        binding = self.lookup(receiver, frame)
        if binding is not None:
            if binding.constructor:
                func, model = self.find_function(call.name, binding.constructor, frame)
                if func is not None:
                    return _Resolution("function", func, model)
                if self.find_class(binding.constructor, frame)[0] is None:
                    return _Resolution("builtin")
                return _Resolution("unresolved")
            if binding.type not in (UNKNOWN, OBJECT) and "|" not in binding.type:
                return _Resolution("builtin")
            for model in (self.implementation, self.example):
                func = model.find_method(call.name)
                if func is not None:
                    return _Resolution("dynamic", func, model)
            return _Resolution("unresolved")

        cls, model = self.find_class(receiver, frame)
        if cls is not None:
            func = model.find_function(call.name, cls.name)
            if func is not None and func.class_name == cls.name:
                return _Resolution("function", func, model)
            return _Resolution("unresolved")
        if receiver in self.builtins:
            return _Resolution("builtin")
        if self.imported(receiver):
            return _Resolution("external")
        # Undefined receivers are reported through the statement's reads
        return _Resolution("unresolved")

    # -- values -----------------------------------------------------------

    def evaluate(self, value: ValueSummary, frame: _Frame) -> _Binding:
        if value.ref is not None:
            known = self.lookup(value.ref, frame)
            if known is not None:
                return replace(known, is_parameter=False)
            func, _ = self.find_function(value.ref, None, frame)
            if func is not None:
                return _Binding(type=FUNCTION, value=value.ref)
            return _Binding()
        source = "assignment" if value.type in NULLISH_TYPES else None
        return _Binding(
            type=value.type,
            value=value.literal,
            constructor=value.constructor,
            nullable_source=source,
        )

    def resolve_condition(self, stmt: Statement, frame: _Frame) -> Optional[bool]:
        condition = (stmt.condition or "").strip()
        if condition in _TRUE_LITERALS:
            return True
        if condition in _FALSE_LITERALS:
            return False
        if stmt.guards and len(stmt.guards) == 1 and not stmt.else_guards:
            binding = self.lookup(stmt.guards[0], frame)
            if binding is not None and binding.type in NULLISH_TYPES and not binding.non_null:
                return False
            if binding is not None and binding.known_non_null and binding.type != UNKNOWN:
                return True
        if stmt.else_guards and len(stmt.else_guards) == 1 and not stmt.guards:
            binding = self.lookup(stmt.else_guards[0], frame)
            if binding is not None and binding.type in NULLISH_TYPES and not binding.non_null:
                return True
            if binding is not None and binding.known_non_null and binding.type != UNKNOWN:
                return False
        return None

    def narrow(self, frame: _Frame, names: Tuple[str, ...]) -> Dict[str, Tuple[Optional[_Binding], _Binding]]:
        saved = {}
        for name in names:
            previous = frame.scope.get(name)
            base = previous if previous is not None else self.lookup(name, frame)
            if base is None:
                continue
            narrowed = replace(base, non_null=True)
            frame.scope[name] = narrowed
            saved[name] = (previous, narrowed)
        return saved

    @staticmethod
    def restore(frame: _Frame, saved: Dict[str, Tuple[Optional[_Binding], _Binding]]) -> None:
        for name, (previous, narrowed) in saved.items():
            if frame.scope.get(name) is not narrowed:
                continue
            if previous is None:
                del frame.scope[name]
            else:
                frame.scope[name] = previous

    # -- facts ------------------------------------------------------------

    def observe(self, stmt: Statement, frame: _Frame, facts: StepFacts) -> None:
        facts.undefined = tuple(name for name in stmt.reads if not self.is_defined(name, frame))
        nullable = []
        for read in stmt.member_reads:
            if read.guarded:
                continue
            binding = self.lookup(read.obj, frame)
            if binding is not None and binding.may_be_null:
                nullable.append(NullableRead(read, binding.type, binding.nullable_source or "declared type"))
        facts.nullable_reads = tuple(nullable)

    def check_call(self, call: CallSite, func: FunctionInfo, frame: _Frame, facts: StepFacts) -> None:
        params = [p for p in func.parameters if not (func.class_name and p.name in ("self", "cls"))]
        positional = [p for p in params if not p.variadic]
        given = len(call.args) + len(call.keyword_args)
        maximum = None if func.accepts_varargs else len(positional)
        if given < func.required_parameters or (maximum is not None and given > maximum):
            facts.arity_checks += (ArityCheck(
                callee=func.qualified_name,
                given=given,
                required=func.required_parameters,
                maximum=maximum,
                strict=self.language == Language.PYTHON.value,
            ),)
        checks = []
        for param, arg in zip(positional, call.args):
            if not param.type_hint:
                continue
            actual = self.evaluate(arg, frame).type
            if actual != UNKNOWN:
                checks.append(ArgumentCheck(func.qualified_name, param.name, param.type_hint, actual))
        facts.argument_checks += tuple(checks)

    # -- calls ------------------------------------------------------------

    def bind_arguments(self, func: FunctionInfo, call: Optional[CallSite], caller: _Frame,
                       frame: _Frame, entry: ExecutionStep) -> None:
        args = list(call.args) if call is not None else []
        index = 0
        for param in func.parameters:
            if func.class_name and param.name in ("self", "cls"):
                binding = _Binding(type=OBJECT, constructor=func.class_name, non_null=True)
            elif param.variadic:
                binding = _Binding(type=param.type_hint or ARRAY, non_null=True)
            elif index < len(args):
                binding = self.evaluate(args[index], caller)
                if binding.type == UNKNOWN and param.type_hint:
                    binding = replace(binding, type=param.type_hint)
                index += 1
            elif call is not None and param.name in call.keyword_args:
                binding = _binding_from_type(param.type_hint, None)
            elif param.default is not None:
                binding = _Binding(type=param.type_hint or UNKNOWN, value=param.default)
                if param.default in ("None", "null", "undefined"):
                    binding = replace(binding, type=binding.type if "|" in binding.type else UNDEFINED,
                                      nullable_source="default value")
            elif call is None:
                binding = _binding_from_type(param.type_hint, None if param.type_hint else "unbound parameter")
            else:
                binding = _Binding(type=UNDEFINED, nullable_source="missing argument")
            binding = replace(binding, is_parameter=True)
            self.write(frame, param.name, binding, func.start_line, entry, on_path=True)

    def invoke(self, func: FunctionInfo, model: StaticModel, call: Optional[CallSite],
               caller: _Frame) -> _Outcome:
        frame = _Frame(function=func, model=model, depth=caller.depth + 1)
        signature = ", ".join(p.name for p in func.parameters)
        entry = self.step(
            frame,
            StepKind.CALL,
            f"Enter {func.qualified_name}({signature})",
            line=func.start_line,
            construct=f"{func.qualified_name}({signature})",
        )
        self.bind_arguments(func, call, caller, frame, entry)
        self.invoked.add(func.qualified_name)
        self.stack.append(func.qualified_name)
        try:
            outcome = self.block(func.body, frame, on_path=True)
        finally:
            self.stack.pop()

        if outcome.signal in (_Signal.THROW, _Signal.HANG, _Signal.RETURN):
            return outcome
        implicit = _Binding(type=UNDEFINED, value="None" if self.language == Language.PYTHON.value else "undefined")
        return _Outcome(_Signal.RETURN, value=implicit)

    def calls(self, stmt: Statement, frame: _Frame, facts: StepFacts, step: ExecutionStep,
              on_path: bool) -> Tuple[Optional[_Binding], Optional[_Outcome]]:
        """Resolve and expand the statement's calls.

        Returns the binding produced by the outermost call, and an outcome
        when a call interrupts the statement (throw or hang).
        """
        result: Optional[_Binding] = None
        risky = []
        for index, call in enumerate(stmt.calls):
            resolution = self.resolve(call, frame)
            step.calls_made.append(call.display_name)
            binding: Optional[_Binding] = None

            if resolution.kind == "undefined":
                facts.undefined += (call.name,)
                if on_path:
                    step.error_thrown = self.error_name
                    return result, _Outcome(_Signal.THROW, error=self.error_name, simulated=True, step=step)
                continue
            if resolution.kind in ("external", "unresolved"):
                if on_path:
                    self.draft.unresolved_calls += 1
                step.confidence = min(step.confidence, _UNRESOLVED_STEP_CONFIDENCE)
            elif resolution.kind == "dynamic":
                if on_path:
                    self.draft.dynamic_dispatches += 1
                step.confidence = min(step.confidence, _DYNAMIC_STEP_CONFIDENCE)

            func = resolution.function
            if resolution.kind == "class":
                binding = _Binding(type=OBJECT, constructor=resolution.class_name, non_null=True)
            if func is not None:
                self.check_call(call, func, frame, facts)
                if func.summary.raises and self.handler_depth == 0 and frame.depth == 0:
                    risky.append((func.qualified_name, func.summary.raises))
                if on_path and self.can_expand(func, frame):
                    outcome = self.invoke(func, resolution.model, call, frame)
                    if outcome.signal in (_Signal.THROW, _Signal.HANG):
                        facts.risky_calls = tuple(risky)
                        return result, outcome
                    if resolution.kind != "class" and outcome.value is not None:
                        binding = outcome.value
                elif resolution.kind != "class":
                    binding = _binding_from_type(func.return_type, None)
                    if func.return_type and any(p in NULLISH_TYPES for p in func.return_type.split("|")):
                        binding = replace(binding, nullable_source="return value")

            if index == 0:
                result = binding
        facts.risky_calls = tuple(risky)
        return result, None

    def can_expand(self, func: FunctionInfo, frame: _Frame) -> bool:
        if frame.depth + 1 > self.options.max_depth:
            return False
        return func.qualified_name not in self.stack

    # -- statements -------------------------------------------------------

    def block(self, statements: Tuple[Statement, ...], frame: _Frame, on_path: bool) -> _Outcome:
        for index, stmt in enumerate(statements):
            outcome = self.statement(stmt, frame, on_path)
            if outcome.signal is _Signal.NORMAL:
                continue
            rest = statements[index + 1:]
            statically_terminal = stmt.kind in TERMINATING_KINDS or (
                stmt.kind == StatementKind.BRANCH and stmt.orelse
                and block_terminates(stmt.body) and block_terminates(stmt.orelse)
            )
            if rest and statically_terminal:
                self.unreachable(rest[0], frame)
            return outcome
        return _NORMAL

    def unreachable(self, stmt: Statement, frame: _Frame) -> None:
        key = (frame.model.file_path, stmt.line)
        if key in self.unreachable_lines:
            return
        self.unreachable_lines.add(key)
        self.step(
            frame,
            StepKind.UNREACHABLE,
            "Code after an unconditional exit is never executed",
            line=stmt.line,
            construct=stmt.text,
            on_path=False,
        )

    def statement(self, stmt: Statement, frame: _Frame, on_path: bool) -> _Outcome:
        kind = stmt.kind
        if kind == StatementKind.BRANCH:
            return self.branch(stmt, frame, on_path)
        if kind == StatementKind.LOOP:
            return self.loop(stmt, frame, on_path)
        if kind == StatementKind.TRY:
            return self.try_block(stmt, frame, on_path)

        facts = StepFacts()
        self.observe(stmt, frame, facts)
        step_kind, operation = self.describe(stmt)
        step = self.step(frame, step_kind, operation, line=stmt.line, construct=stmt.text,
                         on_path=on_path, facts=facts)

        if facts.undefined and on_path:
            step.error_thrown = self.error_name
            return _Outcome(_Signal.THROW, error=self.error_name, simulated=True, step=step)

        result, interrupted = self.calls(stmt, frame, facts, step, on_path)
        if interrupted is not None:
            return interrupted

        if kind in (StatementKind.DECLARE, StatementKind.ASSIGN):
            self.assign(stmt, frame, step, result, facts, on_path)
        elif kind == StatementKind.IMPORT:
            for name in stmt.targets:
                self.write(frame, name, _Binding(type=OBJECT, value=name, non_null=True), stmt.line, step, on_path)
        elif kind == StatementKind.CONTEXT:
            for name in stmt.targets:
                self.write(frame, name, result or _Binding(), stmt.line, step, on_path)
            return self.block(stmt.body, frame, on_path)
        elif kind == StatementKind.RETURN:
            value = self.value_of(stmt, frame, result)
            step.return_value = value.display()
            facts.extra["return_type"] = value.type
            return _Outcome(_Signal.RETURN, value=value, step=step)
        elif kind == StatementKind.THROW:
            error = stmt.value.constructor or stmt.value.display() or (result.constructor if result else None) or "Error"
            step.error_thrown = error
            return _Outcome(_Signal.THROW, error=error, step=step)
        elif kind == StatementKind.BREAK:
            return _Outcome(_Signal.BREAK, step=step)
        elif kind == StatementKind.CONTINUE:
            return _Outcome(_Signal.CONTINUE, step=step)
        return _NORMAL

    def describe(self, stmt: Statement) -> Tuple[StepKind, str]:
        kind = stmt.kind
        if kind in (StatementKind.DECLARE, StatementKind.ASSIGN):
            targets = ", ".join(stmt.targets) or "property"
            verb = "Declare" if kind == StatementKind.DECLARE else "Assign"
            return StepKind.ASSIGNMENT, f"{verb} {targets}"
        if kind == StatementKind.IMPORT:
            return StepKind.IMPORT, f"Import {', '.join(stmt.targets)}"
        if kind == StatementKind.RETURN:
            return StepKind.RETURN, "Return"
        if kind == StatementKind.THROW:
            return StepKind.THROW, "Throw"
        if kind == StatementKind.BREAK:
            return StepKind.BREAK, "Break out of loop"
        if kind == StatementKind.CONTINUE:
            return StepKind.CONTINUE, "Continue loop"
        if kind == StatementKind.CONTEXT:
            return StepKind.STATEMENT, "Enter context"
        if stmt.calls:
            names = ", ".join(dict.fromkeys(call.display_name for call in stmt.calls))
            prefix = "Await" if any(call.awaited for call in stmt.calls) else "Call"
            return StepKind.CALL, f"{prefix} {names}"
        return StepKind.STATEMENT, "Evaluate expression"

    def value_of(self, stmt: Statement, frame: _Frame, result: Optional[_Binding]) -> _Binding:
        value = stmt.value
        is_opaque = value.type == UNKNOWN and value.ref is None and value.literal is None and value.constructor is None
        if is_opaque and result is not None:
            return result
        return self.evaluate(value, frame)

    def assign(self, stmt: Statement, frame: _Frame, step: ExecutionStep, result: Optional[_Binding],
               facts: StepFacts, on_path: bool) -> None:
        binding = self.value_of(stmt, frame, result)
        if stmt.annotation:
            if binding.type != UNKNOWN:
                facts.annotation_checks += tuple(
                    AnnotationCheck(target, stmt.annotation, binding.type) for target in stmt.targets
                )
            else:
                binding = replace(binding, type=stmt.annotation)
        if len(stmt.targets) > 1:
            binding = _Binding()
        for name in stmt.targets:
            self.write(frame, name, replace(binding, is_parameter=False), stmt.line, step, on_path)

    def branch(self, stmt: Statement, frame: _Frame, on_path: bool) -> _Outcome:
        facts = StepFacts()
        self.observe(stmt, frame, facts)
        decided = self.resolve_condition(stmt, frame)
        if decided is None:
            take_body = not block_terminates(stmt.body) or block_terminates(stmt.orelse)
            if on_path:
                self.draft.ambiguous_branches += 1
        else:
            take_body = decided

        switch = (stmt.condition or "").startswith(("switch", "match"))
        label = "switch-case" if switch else ("if" if take_body else "else")
        step = self.step(
            frame,
            StepKind.BRANCH,
            f"Branch on {stmt.condition}" if stmt.condition else "Branch",
            line=stmt.line,
            construct=stmt.text,
            on_path=on_path,
            facts=facts,
            branch_taken=label,
            confidence=1.0 if decided is not None else _AMBIGUOUS_STEP_CONFIDENCE,
        )
        if facts.undefined and on_path:
            step.error_thrown = self.error_name
            return _Outcome(_Signal.THROW, error=self.error_name, simulated=True, step=step)
        _, interrupted = self.calls(stmt, frame, facts, step, on_path)
        if interrupted is not None:
            return interrupted

        taken, other = (stmt.body, stmt.orelse) if take_body else (stmt.orelse, stmt.body)
        guards = stmt.guards if take_body else stmt.else_guards

        if not take_body and stmt.body:
            self.block(stmt.body, frame.fork(), on_path=False)

        saved = self.narrow(frame, guards)
        outcome = self.block(taken, frame, on_path)
        self.restore(frame, saved)

        if take_body and stmt.orelse:
            self.block(stmt.orelse, frame.fork(), on_path=False)

        # `if (!x) return;` proves x for the rest of the block
        if outcome.signal is _Signal.NORMAL and other and block_terminates(other):
            self.narrow(frame, guards)
        return outcome

    def loop(self, stmt: Statement, frame: _Frame, on_path: bool) -> _Outcome:
        facts = StepFacts()
        self.observe(stmt, frame, facts)
        literal_true = (stmt.condition or "").strip() in ("true", "True", "1") or stmt.value.literal in ("true", "True")
        exits = any(
            inner.kind in (StatementKind.BREAK, StatementKind.RETURN, StatementKind.THROW)
            for inner in iter_statements(stmt.body)
        )
        facts.infinite_loop = literal_true and not exits
        if on_path and not literal_true:
            self.draft.ambiguous_branches += 1

        step = self.step(
            frame,
            StepKind.LOOP,
            f"Loop {stmt.condition}" if stmt.condition else "Loop",
            line=stmt.line,
            construct=stmt.text,
            on_path=on_path,
            facts=facts,
            branch_taken="loop-continue",
            confidence=1.0 if literal_true else _AMBIGUOUS_STEP_CONFIDENCE,
        )
        if facts.undefined and on_path:
            step.error_thrown = self.error_name
            return _Outcome(_Signal.THROW, error=self.error_name, simulated=True, step=step)
        _, interrupted = self.calls(stmt, frame, facts, step, on_path)
        if interrupted is not None:
            return interrupted

        for name in stmt.targets:
            self.write(frame, name, _Binding(), stmt.line, step, on_path)

        outcome = self.block(stmt.body, frame, on_path)
        if outcome.signal in (_Signal.RETURN, _Signal.THROW, _Signal.HANG):
            return outcome
        if facts.infinite_loop:
            return _Outcome(_Signal.HANG, step=step)
        if outcome.signal is _Signal.BREAK:
            step.branch_taken = "loop-break"
            return _NORMAL
        if stmt.orelse:
            return self.block(stmt.orelse, frame, on_path)
        return _NORMAL

    def try_block(self, stmt: Statement, frame: _Frame, on_path: bool) -> _Outcome:
        step = self.step(frame, StepKind.TRY, "Enter try block", line=stmt.line,
                         construct=stmt.text, on_path=on_path)
        if stmt.has_handler:
            self.handler_depth += 1
        try:
            outcome = self.block(stmt.body, frame, on_path)
        finally:
            if stmt.has_handler:
                self.handler_depth -= 1

        if stmt.has_handler:
            caught = outcome.signal is _Signal.THROW
            handler_frame = frame if caught else frame.fork()
            catch = self.step(
                handler_frame,
                StepKind.CATCH,
                f"Catch {outcome.error}" if caught else "Catch (not reached)",
                line=stmt.handler[0].line if stmt.handler else stmt.line,
                construct="catch",
                on_path=on_path and caught,
            )
            for name in stmt.handler_names:
                self.write(handler_frame, name, _Binding(type=OBJECT, constructor=outcome.error if caught else None,
                                                         non_null=True),
                           catch.line_number, catch, on_path and caught)
            handled = self.block(stmt.handler, handler_frame, on_path and caught)
            if caught:
                outcome = handled

        if stmt.finalbody:
            final = self.block(stmt.finalbody, frame, on_path)
            if final.signal is not _Signal.NORMAL:
                return final
        if not stmt.has_handler and outcome.signal is _Signal.THROW:
            step.error_thrown = outcome.error
        return outcome

    # -- entry ------------------------------------------------------------

    def run(self) -> TraceDraft:
        try:
            outcome = self.block(self.example.statements, self.top, on_path=True)
            if outcome.signal in (_Signal.NORMAL, _Signal.RETURN):
                outcome = self.run_entry_point()
            self.finish(outcome)
        except BudgetExceeded as e:
            self.draft.budget = e.reason
            self.draft.reached_end = False
        return self.draft

    def run_entry_point(self) -> _Outcome:
        """Invoke the entry point when the example never called it."""
        name = self.request.entry_point
        if name in self.invoked:
            return _NORMAL
        class_name, _, method = name.rpartition(".")
        func, model = self.find_function(method, class_name or None, self.top)
        if func is None or func.qualified_name in self.invoked:
            return _NORMAL
        return self.invoke(func, model, None, self.top)

    def finish(self, outcome: _Outcome) -> None:
        if outcome.signal is _Signal.THROW and not outcome.simulated and outcome.step is not None:
            outcome.step.facts.uncaught = outcome.error
        self.draft.reached_end = outcome.signal in (_Signal.NORMAL, _Signal.RETURN)


class StaticTraceStrategy(TraceStrategy):
    """Derives the trace purely from the analyzer's structural facts."""

    name = "static"

    async def trace(self, request: TraceRequest) -> TraceDraft:
        draft = _Walker(request).run()
        logger.debug(
            "Static trace of %s: %d steps, reached_end=%s, budget=%s",
            request.entry_point, len(draft.steps), draft.reached_end, draft.budget,
        )
        return draft


# ============================================================================
# LLM-assisted
# ============================================================================

def build_trace_prompt(example_code: str, implementation_code: str, entry_point: str) -> str:
    return f"""You are a code execution simulator. Trace the execution of the following code example without actually running it.

## Example Code (to validate):
```
{example_code}
```

## Implementation Code:
```
{implementation_code}
```

## Entry Point: {entry_point}

Analyze the code flow step by step and respond in JSON format:

{{
  "steps": [
    {{
      "lineNumber": <number>,
      "operation": "<description of what happens>",
      "stateChanges": {{ "<variable>": <new_value> }},
      "callsMade": ["<function_name>"],
      "branchTaken": "<if|else|switch-case|loop-continue|loop-break|null>",
      "returnValue": <value_if_returning>,
      "errorThrown": "<error_type_if_any|null>",
      "confidence": <0-1>
    }}
  ],
  "variables": {{
    "<name>": {{
      "name": "<name>",
      "type": "<type>",
      "value": <value>,
      "definedAt": <line>,
      "lastModifiedAt": <line>,
      "isParameter": <boolean>
    }}
  }},
  "issues": [
    {{
      "severity": "<error|warning|info>",
      "type": "<null-reference|type-mismatch|undefined-variable|unreachable-code|infinite-loop|missing-error-handling|deprecated-api|other>",
      "location": {{ "line": <number>, "function": "<name>" }},
      "description": "<what's wrong>",
      "suggestion": "<how to fix>"
    }}
  ],
  "confidence": <0-1 overall confidence>,
  "reachedEnd": <boolean - did execution complete normally?>
}}

Focus on:
1. Variable initialization and modifications
2. Function call order and arguments
3. Conditional branch decisions
4. Potential null/undefined access
5. Type mismatches between example and implementation
6. Error handling paths
7. Return values at each step"""


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def extract_json(response: str) -> Any:
    """Parse a JSON reply, tolerating markdown code fences.

    Raises:
        ValueError: if no JSON object can be decoded
    """
    text = _FENCE.sub("", response.strip())
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(text[start:end + 1])


def _step_kind(raw: Dict[str, Any]) -> StepKind:
    try:
        return StepKind(raw.get("kind"))
    except ValueError:
        pass
    if raw.get("errorThrown"):
        return StepKind.THROW
    if raw.get("returnValue") is not None:
        return StepKind.RETURN
    if raw.get("branchTaken"):
        return StepKind.LOOP if str(raw["branchTaken"]).startswith("loop") else StepKind.BRANCH
    if raw.get("callsMade"):
        return StepKind.CALL
    if raw.get("stateChanges"):
        return StepKind.ASSIGNMENT
    return StepKind.STATEMENT


def _clamp(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(max(float(value), 0.0), 1.0)


def _issue(raw: Dict[str, Any]) -> PotentialIssue:
    try:
        issue_type = IssueType(raw.get("type"))
    except ValueError:
        issue_type = IssueType.OTHER
    try:
        severity = Severity(raw.get("severity"))
    except ValueError:
        severity = Severity.WARNING
    location = raw.get("location") if isinstance(raw.get("location"), dict) else {}
    line = location.get("line")
    return PotentialIssue(
        type=issue_type,
        severity=severity,
        location=IssueLocation(
            line=line if isinstance(line, int) else 0,
            function=location.get("function") if isinstance(location.get("function"), str) else None,
        ),
        description=str(raw.get("description") or raw.get("message") or "Issue reported by LLM"),
        suggestion=str(raw.get("suggestion") or ""),
        code_snippet=raw.get("codeSnippet") if isinstance(raw.get("codeSnippet"), str) else None,
    )


def parse_trace_response(response: str) -> TraceDraft:
    """Convert an LLM trace reply into a draft.

    Raises:
        ValueError: if the reply is not a JSON object
    """
    data = extract_json(response)
    if not isinstance(data, dict):
        raise ValueError("LLM trace reply is not a JSON object")

    steps: List[ExecutionStep] = []
    for raw in data.get("steps") or []:
        if not isinstance(raw, dict):
            continue
        changes = raw.get("stateChanges") if isinstance(raw.get("stateChanges"), dict) else {}
        calls = [str(name) for name in raw.get("callsMade") or [] if name]
        line = raw.get("lineNumber")
        try:
            steps.append(ExecutionStep(
                id=f"step-{len(steps) + 1}",
                line_number=line if isinstance(line, int) else 0,
                kind=_step_kind(raw),
                operation=str(raw.get("operation") or ""),
                source_construct=raw.get("construct") if isinstance(raw.get("construct"), str) else None,
                function=raw.get("function") if isinstance(raw.get("function"), str) else None,
                state_changes=changes,
                calls_made=calls,
                branch_taken=raw.get("branchTaken") or None,
                return_value=raw.get("returnValue"),
                error_thrown=raw.get("errorThrown") or None,
                confidence=_clamp(raw.get("confidence"), 0.5),
            ))
        except ValidationError as e:
            logger.debug("Skipping malformed LLM step: %s", e)

    referenced = set()
    for step in steps:
        referenced.update(step.state_changes)
    variables: Dict[str, VariableState] = {}
    raw_variables = data.get("variables") if isinstance(data.get("variables"), dict) else {}
    for name, raw in raw_variables.items():
        if name not in referenced or not isinstance(raw, dict):
            continue
        try:
            variables[name] = VariableState.model_validate({**raw, "name": name})
        except ValidationError as e:
            logger.debug("Skipping malformed LLM variable %s: %s", name, e)

    issues = [_issue(raw) for raw in data.get("issues") or [] if isinstance(raw, dict)]

    return TraceDraft(
        steps=steps,
        path=[step.id for step in steps],
        variables=variables,
        reached_end=bool(data.get("reachedEnd")),
        static=False,
        reported_issues=issues,
        reported_confidence=_clamp(data.get("confidence"), 0.5),
    )


class LLMTraceStrategy(TraceStrategy):
    """Delegates step inference and issue detection to a language model."""

    name = "llm"

    def __init__(self, client, fallback: Optional[TraceStrategy] = None):
        self.client = client
        self.fallback = fallback or StaticTraceStrategy()

    async def trace(self, request: TraceRequest) -> TraceDraft:
        prompt = build_trace_prompt(request.example_code, request.implementation_code, request.entry_point)
        remaining = max(request.deadline - time.monotonic(), 0.001)
        try:
            response = await asyncio.wait_for(self.client.complete(prompt), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning("LLM trace of %s timed out", request.entry_point)
            return TraceDraft(static=False, budget="time")
        except LLMError as e:
            logger.warning("LLM trace failed, falling back to static analysis: %s", e)
            return await self.fallback.trace(request)

        try:
            draft = parse_trace_response(response)
        except ValueError as e:
            logger.warning("Unusable LLM trace reply, falling back to static analysis: %s", e)
            return await self.fallback.trace(request)

        if len(draft.steps) > request.options.max_steps:
            draft.steps = draft.steps[:request.options.max_steps]
            draft.path = [step.id for step in draft.steps]
            draft.budget = "steps"
            draft.reached_end = False
        return draft
