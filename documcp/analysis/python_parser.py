"""Python backend for the static analyzer, built on the stdlib `ast` module."""

from __future__ import annotations

import ast

from ..constants import Language
from .models import (
    ARRAY,
    BOOLEAN,
    FUNCTION,
    NULL,
    NUMBER,
    OBJECT,
    STRING,
    UNDEFINED,
    UNKNOWN,
    UNKNOWN_VALUE,
    CallSite,
    ClassInfo,
    FunctionInfo,
    ImportInfo,
    MemberRead,
    ParameterInfo,
    Statement,
    StatementKind,
    StaticModel,
    ValueSummary,
)
from .summary import body_complexity, infer_return_type, summarize_body

_ANNOTATION_TYPES = {
    "str": STRING,
    "bytes": STRING,
    "int": NUMBER,
    "float": NUMBER,
    "complex": NUMBER,
    "bool": BOOLEAN,
    "None": NULL,
    "NoneType": NULL,
    "list": ARRAY,
    "List": ARRAY,
    "tuple": ARRAY,
    "Tuple": ARRAY,
    "set": ARRAY,
    "Set": ARRAY,
    "frozenset": ARRAY,
    "Sequence": ARRAY,
    "Iterable": ARRAY,
    "dict": OBJECT,
    "Dict": OBJECT,
    "Mapping": OBJECT,
    "Callable": FUNCTION,
    "Any": UNKNOWN,
    "object": UNKNOWN,
}

_CONVERSION_TYPES = {
    "str": STRING,
    "repr": STRING,
    "format": STRING,
    "int": NUMBER,
    "float": NUMBER,
    "len": NUMBER,
    "sum": NUMBER,
    "abs": NUMBER,
    "round": NUMBER,
    "bool": BOOLEAN,
    "isinstance": BOOLEAN,
    "list": ARRAY,
    "tuple": ARRAY,
    "sorted": ARRAY,
    "set": ARRAY,
    "dict": OBJECT,
}

_MAX_LITERAL = 60


def annotation_type(node: ast.expr | None) -> str | None:
    """Map a Python annotation onto the neutral type vocabulary."""
    if node is None:
        return None
    if isinstance(node, ast.Constant):
        if node.value is None:
            return NULL
        if isinstance(node.value, str):
            try:
                return annotation_type(ast.parse(node.value, mode="eval").body)
            except SyntaxError:
                return UNKNOWN
        return UNKNOWN
    if isinstance(node, ast.Name):
        if node.id in _ANNOTATION_TYPES:
            return _ANNOTATION_TYPES[node.id]
        return UNKNOWN if len(node.id) == 1 else OBJECT
    if isinstance(node, ast.Attribute):
        return _ANNOTATION_TYPES.get(node.attr, OBJECT)
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _union(annotation_type(node.left), annotation_type(node.right))
    if isinstance(node, ast.Subscript):
        base = node.value.attr if isinstance(node.value, ast.Attribute) else getattr(node.value, "id", "")
        if base == "Optional":
            return _union(annotation_type(node.slice), NULL)
        if base == "Union":
            members = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
            result = None
            for member in members:
                result = _union(result, annotation_type(member))
            return result
        return _ANNOTATION_TYPES.get(base, OBJECT)
    return UNKNOWN


def _union(left: str | None, right: str | None) -> str:
    parts: list[str] = []
    for side in (left, right):
        for part in (side or UNKNOWN).split("|"):
            if part not in parts:
                parts.append(part)
    return "|".join(parts)


def _target_names(node: ast.AST) -> list[str]:
    if isinstance(node, ast.Name):
        return [node.id]
    if isinstance(node, (ast.Tuple, ast.List)):
        names: list[str] = []
        for elt in node.elts:
            names.extend(_target_names(elt))
        return names
    if isinstance(node, ast.Starred):
        return _target_names(node.value)
    return []


def _none_check(node: ast.expr) -> tuple[str | None, bool | None]:
    """Return (name, proves_not_none) for simple null checks on a name."""
    if isinstance(node, ast.Name):
        return node.id, True
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not) and isinstance(node.operand, ast.Name):
        return node.operand.id, False
    if (
        isinstance(node, ast.Compare)
        and isinstance(node.left, ast.Name)
        and len(node.ops) == 1
        and isinstance(node.comparators[0], ast.Constant)
        and node.comparators[0].value is None
    ):
        if isinstance(node.ops[0], (ast.IsNot, ast.NotEq)):
            return node.left.id, True
        if isinstance(node.ops[0], (ast.Is, ast.Eq)):
            return node.left.id, False
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in ("isinstance", "hasattr", "callable")
        and node.args
        and isinstance(node.args[0], ast.Name)
    ):
        return node.args[0].id, True
    return None, None


def _condition_guards(test: ast.expr) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Names known non-null when `test` is true, and when it is false."""
    if_true: list[str] = []
    if_false: list[str] = []
    if isinstance(test, ast.BoolOp):
        for value in test.values:
            name, proves = _none_check(value)
            if name is None:
                continue
            if isinstance(test.op, ast.And) and proves:
                if_true.append(name)
            elif isinstance(test.op, ast.Or) and not proves:
                if_false.append(name)
    else:
        name, proves = _none_check(test)
        if name is not None:
            (if_true if proves else if_false).append(name)
    return tuple(if_true), tuple(if_false)


class _Lowering:
    """Lowers Python statements into the neutral `Statement` IR."""

    def __init__(self, source: str):
        self.source = source
        self.lines = source.splitlines()

    def line_text(self, node: ast.AST) -> str:
        lineno = getattr(node, "lineno", 0)
        if 0 < lineno <= len(self.lines):
            return self.lines[lineno - 1].strip()
        return ""

    def segment(self, node: ast.AST) -> str:
        text = ast.get_source_segment(self.source, node) or ast.unparse(node)
        text = " ".join(text.split())
        if len(text) > _MAX_LITERAL:
            text = text[:_MAX_LITERAL - 3] + "..."
        return text

    def value(self, node: ast.expr | None) -> ValueSummary:
        if node is None:
            return UNKNOWN_VALUE
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool):
                return ValueSummary(BOOLEAN, repr(node.value))
            if node.value is None:
                return ValueSummary(NULL, "None")
            if isinstance(node.value, (str, bytes)):
                return ValueSummary(STRING, self.segment(node))
            if isinstance(node.value, (int, float, complex)):
                return ValueSummary(NUMBER, self.segment(node))
            return ValueSummary(UNKNOWN, self.segment(node))
        if isinstance(node, ast.JoinedStr):
            return ValueSummary(STRING, self.segment(node))
        if isinstance(node, (ast.List, ast.Tuple, ast.Set, ast.ListComp, ast.SetComp, ast.GeneratorExp)):
            return ValueSummary(ARRAY, self.segment(node))
        if isinstance(node, (ast.Dict, ast.DictComp)):
            return ValueSummary(OBJECT, self.segment(node))
        if isinstance(node, ast.Lambda):
            return ValueSummary(FUNCTION, self.segment(node))
        if isinstance(node, ast.Name):
            return ValueSummary(ref=node.id)
        if isinstance(node, ast.Compare) or (isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not)):
            return ValueSummary(BOOLEAN)
        if isinstance(node, ast.UnaryOp) and isinstance(node.operand, ast.Constant):
            inner = self.value(node.operand)
            return ValueSummary(inner.type, self.segment(node))
        if isinstance(node, ast.BinOp):
            left, right = self.value(node.left), self.value(node.right)
            if isinstance(node.op, ast.Add) and STRING in (left.type, right.type):
                return ValueSummary(STRING)
            if left.type == NUMBER and right.type == NUMBER:
                return ValueSummary(NUMBER)
            if isinstance(node.op, ast.Mod) and left.type == STRING:
                return ValueSummary(STRING)
            return UNKNOWN_VALUE
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            name = node.func.id
            if name in _CONVERSION_TYPES:
                return ValueSummary(_CONVERSION_TYPES[name])
            if name[:1].isupper():
                return ValueSummary(OBJECT, constructor=name)
        return UNKNOWN_VALUE

    def scan(self, nodes: list[ast.AST | None]):
        """Collect reads, calls and member reads from expression trees."""
        bound: set[str] = set()
        call_funcs: set[int] = set()
        awaited: set[int] = set()
        guarded: set[int] = set()
        found_reads: list[tuple[int, int, str]] = []
        found_calls: list[tuple[int, int, ast.Call]] = []
        found_members: list[tuple[int, int, ast.Attribute]] = []

        for root in nodes:
            if root is None:
                continue
            for node in ast.walk(root):
                if isinstance(node, ast.Lambda):
                    args = node.args
                    for arg in args.posonlyargs + args.args + args.kwonlyargs:
                        bound.add(arg.arg)
                    for arg in (args.vararg, args.kwarg):
                        if arg is not None:
                            bound.add(arg.arg)
                elif isinstance(node, ast.comprehension):
                    bound.update(_target_names(node.target))
                elif isinstance(node, ast.NamedExpr):
                    bound.update(_target_names(node.target))
                elif isinstance(node, ast.Call):
                    call_funcs.add(id(node.func))
                    found_calls.append((node.lineno, node.col_offset, node))
                elif isinstance(node, ast.Await) and isinstance(node.value, ast.Call):
                    awaited.add(id(node.value))
                elif isinstance(node, ast.BoolOp) and isinstance(node.op, ast.And):
                    names: set[str] = set()
                    for value in node.values:
                        for sub in ast.walk(value):
                            if isinstance(sub, ast.Attribute) and isinstance(sub.value, ast.Name) and sub.value.id in names:
                                guarded.add(id(sub))
                        name, proves = _none_check(value)
                        if name is not None and proves:
                            names.add(name)
                elif isinstance(node, ast.IfExp):
                    name, proves = _none_check(node.test)
                    if name is not None and proves:
                        for sub in ast.walk(node.body):
                            if isinstance(sub, ast.Attribute) and isinstance(sub.value, ast.Name) and sub.value.id == name:
                                guarded.add(id(sub))
                elif isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    found_members.append((node.lineno, node.col_offset, node))

            for node in ast.walk(root):
                if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load) and id(node) not in call_funcs:
                    found_reads.append((node.lineno, node.col_offset, node.id))

        reads = [name for _, _, name in sorted(found_reads) if name not in bound]
        calls = tuple(
            self.call_site(node, id(node) in awaited)
            for _, _, node in sorted(found_calls, key=lambda item: (item[0], item[1]))
        )
        members = tuple(
            MemberRead(node.value.id, node.attr, node.lineno, guarded=id(node) in guarded)
            for _, _, node in sorted(found_members, key=lambda item: (item[0], item[1]))
            if node.value.id not in bound
        )
        return tuple(dict.fromkeys(reads)), calls, members

    def call_site(self, node: ast.Call, awaited: bool) -> CallSite:
        func = node.func
        receiver = None
        dynamic = False
        if isinstance(func, ast.Name):
            name = func.id
        elif isinstance(func, ast.Attribute):
            name = func.attr
            if isinstance(func.value, ast.Name):
                receiver = func.value.id
            else:
                dynamic = True
        else:
            name = self.segment(func)
            dynamic = True
        return CallSite(
            name=name,
            line=node.lineno,
            receiver=receiver,
            dynamic=dynamic,
            args=tuple(self.value(arg) for arg in node.args if not isinstance(arg, ast.Starred)),
            keyword_args=tuple(kw.arg for kw in node.keywords if kw.arg),
            awaited=awaited,
            text=self.segment(node),
        )

    def block(self, statements: list[ast.stmt]) -> tuple[Statement, ...]:
        lowered = []
        for stmt in statements:
            result = self.statement(stmt)
            if result is not None:
                lowered.append(result)
        return tuple(lowered)

    def _simple(self, kind: StatementKind, node: ast.stmt, exprs: list[ast.AST | None], **fields) -> Statement:
        reads, calls, members = self.scan(exprs)
        return Statement(
            kind=kind,
            line=node.lineno,
            text=self.line_text(node),
            reads=reads,
            calls=calls,
            member_reads=members,
            **fields,
        )

    def statement(self, node: ast.stmt) -> Statement | None:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            return Statement(
                kind=StatementKind.DECLARE,
                line=node.lineno,
                text=self.line_text(node),
                targets=(node.name,),
                value=ValueSummary(FUNCTION, node.name),
            )
        if isinstance(node, ast.Assign):
            targets: list[str] = []
            exprs: list[ast.AST | None] = [node.value]
            for target in node.targets:
                targets.extend(_target_names(target))
                if isinstance(target, (ast.Attribute, ast.Subscript)):
                    exprs.append(target.value)
            return self._simple(StatementKind.ASSIGN, node, exprs, targets=tuple(targets), value=self.value(node.value))
        if isinstance(node, ast.AnnAssign):
            exprs = [node.value]
            if isinstance(node.target, (ast.Attribute, ast.Subscript)):
                exprs.append(node.target.value)
            if node.value is None:
                return self._simple(StatementKind.DECLARE, node, exprs, annotation=annotation_type(node.annotation))
            return self._simple(
                StatementKind.ASSIGN,
                node,
                exprs,
                targets=tuple(_target_names(node.target)),
                value=self.value(node.value),
                annotation=annotation_type(node.annotation),
            )
        if isinstance(node, ast.AugAssign):
            exprs = [node.value, node.target if isinstance(node.target, ast.Name) else node.target.value]
            value = self.value(ast.BinOp(left=node.target, op=node.op, right=node.value))
            return self._simple(StatementKind.ASSIGN, node, exprs, targets=tuple(_target_names(node.target)), value=value)
        if isinstance(node, ast.Expr):
            inner = node.value
            if isinstance(inner, ast.Constant) and isinstance(inner.value, str):
                return None  # docstring
            is_call = isinstance(inner, ast.Call) or (isinstance(inner, ast.Await) and isinstance(inner.value, ast.Call))
            kind = StatementKind.CALL if is_call else StatementKind.EXPR
            return self._simple(kind, node, [inner])
        if isinstance(node, ast.If):
            guards, else_guards = _condition_guards(node.test)
            return self._simple(
                StatementKind.BRANCH,
                node,
                [node.test],
                condition=self.segment(node.test),
                guards=guards,
                else_guards=else_guards,
                body=self.block(node.body),
                orelse=self.block(node.orelse),
            )
        if isinstance(node, (ast.For, ast.AsyncFor)):
            return self._simple(
                StatementKind.LOOP,
                node,
                [node.iter],
                targets=tuple(_target_names(node.target)),
                condition=f"{ast.unparse(node.target)} in {self.segment(node.iter)}",
                body=self.block(node.body),
            )
        if isinstance(node, ast.While):
            return self._simple(
                StatementKind.LOOP,
                node,
                [node.test],
                condition=self.segment(node.test),
                value=self.value(node.test),
                body=self.block(node.body),
            )
        if isinstance(node, ast.Return):
            value = self.value(node.value) if node.value is not None else ValueSummary(UNDEFINED)
            return self._simple(StatementKind.RETURN, node, [node.value], value=value)
        if isinstance(node, ast.Raise):
            exc = node.exc
            if isinstance(exc, ast.Call) and isinstance(exc.func, ast.Name):
                value = ValueSummary(OBJECT, self.segment(exc), constructor=exc.func.id)
            elif isinstance(exc, ast.Name):
                value = ValueSummary(OBJECT, constructor=exc.id)
            else:
                value = UNKNOWN_VALUE
            return self._simple(StatementKind.THROW, node, [exc], value=value)
        if isinstance(node, ast.Try) or type(node).__name__ == "TryStar":
            handler_body: tuple[Statement, ...] = ()
            handler_names: list[str] = []
            for handler in node.handlers:
                if handler.name:
                    handler_names.append(handler.name)
                if not handler_body:
                    handler_body = self.block(handler.body)
            return Statement(
                kind=StatementKind.TRY,
                line=node.lineno,
                text=self.line_text(node),
                body=self.block(node.body),
                orelse=self.block(node.orelse),
                handler=handler_body,
                handler_names=tuple(handler_names),
                finalbody=self.block(node.finalbody),
                has_handler=bool(node.handlers),
            )
        if isinstance(node, (ast.With, ast.AsyncWith)):
            targets = []
            for item in node.items:
                if item.optional_vars is not None:
                    targets.extend(_target_names(item.optional_vars))
            return self._simple(
                StatementKind.CONTEXT,
                node,
                [item.context_expr for item in node.items],
                targets=tuple(targets),
                body=self.block(node.body),
            )
        if isinstance(node, ast.Import):
            names = tuple((alias.asname or alias.name).split(".")[0] for alias in node.names)
            return Statement(kind=StatementKind.IMPORT, line=node.lineno, text=self.line_text(node), targets=names)
        if isinstance(node, ast.ImportFrom):
            names = tuple(alias.asname or alias.name for alias in node.names if alias.name != "*")
            return Statement(kind=StatementKind.IMPORT, line=node.lineno, text=self.line_text(node), targets=names)
        if isinstance(node, ast.Break):
            return Statement(kind=StatementKind.BREAK, line=node.lineno, text=self.line_text(node))
        if isinstance(node, ast.Continue):
            return Statement(kind=StatementKind.CONTINUE, line=node.lineno, text=self.line_text(node))
        if isinstance(node, (ast.Pass, ast.Global, ast.Nonlocal)):
            return None
        if isinstance(node, ast.Match):
            cases = [self.block(case.body) for case in node.cases]
            rest: list[Statement] = []
            for case_body in cases[1:]:
                rest.extend(case_body)
            return self._simple(
                StatementKind.BRANCH,
                node,
                [node.subject],
                condition=f"match {self.segment(node.subject)}",
                body=cases[0] if cases else (),
                orelse=tuple(rest),
            )
        if isinstance(node, ast.Delete):
            return self._simple(StatementKind.EXPR, node, list(node.targets))
        return self._simple(StatementKind.EXPR, node, [node])


def _parameters(args: ast.arguments) -> tuple[ParameterInfo, ...]:
    params: list[ParameterInfo] = []
    positional = args.posonlyargs + args.args
    defaults = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)
    for arg, default in zip(positional, defaults):
        params.append(ParameterInfo(
            name=arg.arg,
            type_hint=annotation_type(arg.annotation),
            optional=default is not None,
            default=ast.unparse(default) if default is not None else None,
        ))
    if args.vararg is not None:
        params.append(ParameterInfo(name=args.vararg.arg, type_hint=ARRAY, optional=True, variadic=True))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(ParameterInfo(
            name=arg.arg,
            type_hint=annotation_type(arg.annotation),
            optional=default is not None,
            default=ast.unparse(default) if default is not None else None,
        ))
    if args.kwarg is not None:
        params.append(ParameterInfo(name=args.kwarg.arg, type_hint=OBJECT, optional=True, variadic=True))
    return tuple(params)


def _function_info(lowering: _Lowering, node: ast.FunctionDef | ast.AsyncFunctionDef,
                   class_name: str | None) -> FunctionInfo:
    body = lowering.block(node.body)
    return_type = annotation_type(node.returns) or infer_return_type(body)
    return FunctionInfo(
        name=node.name,
        parameters=_parameters(node.args),
        return_type=return_type,
        is_async=isinstance(node, ast.AsyncFunctionDef),
        is_exported=not node.name.startswith("_"),
        start_line=node.lineno,
        end_line=node.end_lineno or node.lineno,
        complexity=body_complexity(body),
        doc_comment=ast.get_docstring(node),
        class_name=class_name,
        body=body,
        summary=summarize_body(body),
    )


def parse_python(source: str, file_path: str, *, partial: bool = False,
                 parse_errors: tuple[str, ...] = ()) -> StaticModel:
    """Build a `StaticModel` from Python source.

    Raises:
        SyntaxError: if the source does not parse
    """
    tree = ast.parse(source, filename=file_path)
    lowering = _Lowering(source)

    functions: list[FunctionInfo] = []
    classes: list[ClassInfo] = []
    imports: list[ImportInfo] = []
    exports: list[str] = []

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            functions.append(_function_info(lowering, node, None))
        elif isinstance(node, ast.ClassDef):
            methods = []
            for item in node.body:
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    functions.append(_function_info(lowering, item, node.name))
                    methods.append(item.name)
            classes.append(ClassInfo(
                name=node.name,
                bases=tuple(ast.unparse(base) for base in node.bases),
                methods=tuple(methods),
                is_exported=not node.name.startswith("_"),
                start_line=node.lineno,
                end_line=node.end_lineno or node.lineno,
            ))
        elif isinstance(node, ast.Import):
            for alias in node.names:
                imports.append(ImportInfo(
                    source=alias.name,
                    names=((alias.asname or alias.name).split(".")[0],),
                    line=node.lineno,
                ))
        elif isinstance(node, ast.ImportFrom):
            imports.append(ImportInfo(
                source="." * node.level + (node.module or ""),
                names=tuple(alias.asname or alias.name for alias in node.names if alias.name != "*"),
                line=node.lineno,
            ))
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name) and target.id == "__all__" and isinstance(node.value, (ast.List, ast.Tuple)):
                    exports.extend(
                        elt.value for elt in node.value.elts
                        if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                    )

    if not exports:
        exports = [f.name for f in functions if f.class_name is None and f.is_exported]
        exports.extend(c.name for c in classes if c.is_exported)

    statements = lowering.block(tree.body)
    code_lines = [line for line in source.splitlines() if line.strip() and not line.strip().startswith("#")]

    return StaticModel(
        file_path=file_path,
        language=Language.PYTHON.value,
        functions=tuple(functions),
        classes=tuple(classes),
        imports=tuple(imports),
        exports=tuple(exports),
        statements=statements,
        lines_of_code=len(code_lines),
        complexity=sum(f.complexity for f in functions),
        parse_errors=parse_errors,
        partial=partial,
    )
