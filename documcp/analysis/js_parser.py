"""JavaScript/TypeScript backend for the static analyzer, built on tree-sitter.

tree-sitter recovers from syntax errors, so malformed snippets still yield a
model; the ERROR/missing nodes are reported through `parse_errors`.
"""

from __future__ import annotations

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language as TSLanguage
from tree_sitter import Node, Parser

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

FUNCTION_NODES = frozenset({
    "arrow_function",
    "function",
    "function_expression",
    "generator_function",
    "generator_function_declaration",
    "function_declaration",
    "method_definition",
})

CLASS_NODES = frozenset({"class_declaration", "abstract_class_declaration", "class"})

_SKIPPED_NODES = frozenset({
    "comment",
    "empty_statement",
    "interface_declaration",
    "type_alias_declaration",
    "ambient_declaration",
    "module",
    "internal_module",
    "hash_bang_line",
})

_COMPARISON_OPERATORS = frozenset({
    "==", "===", "!=", "!==", "<", ">", "<=", ">=", "instanceof", "in",
})

_PRIMITIVE_TYPES = {
    "string": STRING,
    "number": NUMBER,
    "bigint": NUMBER,
    "boolean": BOOLEAN,
    "null": NULL,
    "undefined": UNDEFINED,
    "void": UNDEFINED,
    "any": UNKNOWN,
    "unknown": UNKNOWN,
    "never": UNKNOWN,
    "object": OBJECT,
}

_CONVERSION_TYPES = {
    "String": STRING,
    "Number": NUMBER,
    "parseInt": NUMBER,
    "parseFloat": NUMBER,
    "Boolean": BOOLEAN,
    "isNaN": BOOLEAN,
}

_MAX_LITERAL = 60


def create_parser(language: Language, tsx: bool = False) -> Parser:
    """Build a tree-sitter parser for JavaScript or TypeScript."""
    if language == Language.TYPESCRIPT:
        grammar = tree_sitter_typescript.language_tsx() if tsx else tree_sitter_typescript.language_typescript()
    else:
        grammar = tree_sitter_javascript.language()
    return Parser(TSLanguage(grammar))


def type_from_text(text: str | None) -> str | None:
    """Map a TypeScript type annotation onto the neutral type vocabulary."""
    if text is None:
        return None
    text = text.strip().lstrip(":").strip()
    if not text:
        return None
    if "=>" in text:
        return FUNCTION
    if "|" in text and "<" not in text and "{" not in text:
        parts: list[str] = []
        for member in text.split("|"):
            mapped = type_from_text(member) or UNKNOWN
            if mapped not in parts:
                parts.append(mapped)
        return "|".join(parts)
    if text in _PRIMITIVE_TYPES:
        return _PRIMITIVE_TYPES[text]
    if text.endswith("[]") or text.startswith(("Array<", "ReadonlyArray<", "[")):
        return ARRAY
    if text.startswith(("Record<", "{", "Map<")):
        return OBJECT
    if text.startswith("Promise<"):
        return UNKNOWN
    if text[:1] in ("'", '"', "`"):
        return STRING
    if text.isdigit():
        return NUMBER
    if len(text) == 1 or not text[:1].isalpha():
        return UNKNOWN
    return OBJECT


class _Lowering:
    """Lowers tree-sitter nodes into the neutral `Statement` IR."""

    def __init__(self, source: bytes):
        self.source = source

    # -- node helpers -----------------------------------------------------

    def text(self, node: Node | None) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", "replace")

    def short(self, node: Node) -> str:
        text = " ".join(self.text(node).split())
        if len(text) > _MAX_LITERAL:
            text = text[:_MAX_LITERAL - 3] + "..."
        return text

    def first_line(self, node: Node) -> str:
        return self.text(node).splitlines()[0].strip() if self.text(node) else ""

    @staticmethod
    def line(node: Node) -> int:
        return node.start_point[0] + 1

    @staticmethod
    def named(node: Node) -> list[Node]:
        return [child for child in node.named_children if child.type != "comment"]

    def unwrap(self, node: Node | None) -> Node | None:
        while node is not None and node.type in (
            "parenthesized_expression", "as_expression", "non_null_expression", "satisfies_expression",
        ):
            children = self.named(node)
            node = children[0] if children else None
        return node

    def is_async(self, node: Node) -> bool:
        return any(child.type == "async" for child in node.children)

    # -- values -----------------------------------------------------------

    def value(self, node: Node | None) -> ValueSummary:
        node = self.unwrap(node)
        if node is None:
            return UNKNOWN_VALUE
        kind = node.type
        if kind in ("string", "template_string"):
            return ValueSummary(STRING, self.short(node))
        if kind == "number":
            return ValueSummary(NUMBER, self.short(node))
        if kind in ("true", "false"):
            return ValueSummary(BOOLEAN, kind)
        if kind == "null":
            return ValueSummary(NULL, "null")
        if kind == "undefined":
            return ValueSummary(UNDEFINED, "undefined")
        if kind == "array":
            return ValueSummary(ARRAY, self.short(node))
        if kind == "object":
            return ValueSummary(OBJECT, self.short(node))
        if kind in FUNCTION_NODES or kind in CLASS_NODES:
            return ValueSummary(FUNCTION, self.short(node))
        if kind == "identifier":
            if self.text(node) == "undefined":
                return ValueSummary(UNDEFINED, "undefined")
            return ValueSummary(ref=self.text(node))
        if kind == "new_expression":
            constructor = node.child_by_field_name("constructor")
            return ValueSummary(OBJECT, constructor=self.text(constructor) if constructor is not None else None)
        if kind == "unary_expression":
            operator = self.text(node.child_by_field_name("operator"))
            argument = node.child_by_field_name("argument")
            if operator == "!":
                return ValueSummary(BOOLEAN)
            if operator == "typeof":
                return ValueSummary(STRING)
            if operator == "void":
                return ValueSummary(UNDEFINED, "undefined")
            if operator in ("-", "+") and argument is not None and argument.type == "number":
                return ValueSummary(NUMBER, self.short(node))
            return UNKNOWN_VALUE
        if kind == "binary_expression":
            operator = self.text(node.child_by_field_name("operator"))
            if operator in _COMPARISON_OPERATORS:
                return ValueSummary(BOOLEAN)
            left = self.value(node.child_by_field_name("left"))
            right = self.value(node.child_by_field_name("right"))
            if operator == "+" and STRING in (left.type, right.type):
                return ValueSummary(STRING)
            if operator in ("+", "-", "*", "/", "%", "**") and left.type == NUMBER and right.type == NUMBER:
                return ValueSummary(NUMBER)
            return UNKNOWN_VALUE
        if kind == "call_expression":
            function = node.child_by_field_name("function")
            if function is not None and function.type == "identifier":
                name = self.text(function)
                if name in _CONVERSION_TYPES:
                    return ValueSummary(_CONVERSION_TYPES[name])
        return UNKNOWN_VALUE

    # -- expression scanning ----------------------------------------------

    def call_site(self, node: Node, awaited: bool) -> CallSite:
        if node.type == "new_expression":
            function = node.child_by_field_name("constructor")
        else:
            function = node.child_by_field_name("function")
        function = self.unwrap(function)
        arguments = node.child_by_field_name("arguments")
        args = tuple(
            self.value(arg) for arg in (self.named(arguments) if arguments is not None else [])
            if arg.type != "spread_element"
        )

        receiver = None
        dynamic = False
        if function is None:
            name = "<anonymous>"
            dynamic = True
        elif function.type == "identifier":
            name = self.text(function)
        elif function.type == "member_expression":
            prop = function.child_by_field_name("property")
            obj = self.unwrap(function.child_by_field_name("object"))
            name = self.text(prop)
            if obj is not None and obj.type in ("identifier", "this", "super"):
                receiver = self.text(obj)
            else:
                dynamic = True
        else:
            name = self.short(function)
            dynamic = True

        return CallSite(
            name=name,
            line=self.line(node),
            receiver=receiver,
            dynamic=dynamic,
            args=args,
            awaited=awaited,
            text=self.short(node),
        )

    def none_check(self, node: Node | None) -> tuple[str | None, bool | None]:
        """Return (name, proves_not_null) for simple null checks on a name."""
        node = self.unwrap(node)
        if node is None:
            return None, None
        if node.type == "identifier":
            return self.text(node), True
        if node.type == "unary_expression" and self.text(node.child_by_field_name("operator")) == "!":
            argument = self.unwrap(node.child_by_field_name("argument"))
            if argument is not None and argument.type == "identifier":
                return self.text(argument), False
        if node.type == "binary_expression":
            operator = self.text(node.child_by_field_name("operator"))
            left = self.unwrap(node.child_by_field_name("left"))
            right = self.unwrap(node.child_by_field_name("right"))
            if left is None or right is None:
                return None, None
            if left.type == "unary_expression" and self.text(left.child_by_field_name("operator")) == "typeof":
                argument = self.unwrap(left.child_by_field_name("argument"))
                if argument is not None and argument.type == "identifier" and self.text(right).strip("'\"") == "undefined":
                    return self.text(argument), operator in ("!=", "!==")
                return None, None
            if left.type == "identifier" and right.type in ("null", "undefined"):
                if operator in ("!=", "!=="):
                    return self.text(left), True
                if operator in ("==", "==="):
                    return self.text(left), False
        return None, None

    def condition_guards(self, node: Node | None) -> tuple[tuple[str, ...], tuple[str, ...]]:
        node = self.unwrap(node)
        if node is None:
            return (), ()
        if node.type == "binary_expression":
            operator = self.text(node.child_by_field_name("operator"))
            if operator in ("&&", "||"):
                names: list[str] = []
                for side in (node.child_by_field_name("left"), node.child_by_field_name("right")):
                    name, proves = self.none_check(side)
                    if name is not None and proves == (operator == "&&"):
                        names.append(name)
                return (tuple(names), ()) if operator == "&&" else ((), tuple(names))
        name, proves = self.none_check(node)
        if name is None:
            return (), ()
        return ((name,), ()) if proves else ((), (name,))

    def scan(self, nodes: list[Node | None]):
        """Collect reads, calls and member reads from expression trees."""
        reads: list[str] = []
        calls: list[CallSite] = []
        members: list[MemberRead] = []

        def visit(node: Node, awaited: bool, guarded: frozenset[str]) -> None:
            kind = node.type
            if kind in FUNCTION_NODES or kind in CLASS_NODES:
                return
            if kind.endswith("type_annotation") or kind in ("type_arguments", "type_parameters"):
                return
            if kind == "identifier":
                reads.append(self.text(node))
                return
            if kind == "shorthand_property_identifier":
                reads.append(self.text(node))
                return
            if kind == "await_expression":
                for child in self.named(node):
                    visit(child, True, guarded)
                return
            if kind in ("call_expression", "new_expression"):
                calls.append(self.call_site(node, awaited))
                function = node.child_by_field_name("constructor" if kind == "new_expression" else "function")
                function = self.unwrap(function)
                if function is not None and function.type != "identifier":
                    visit(function, False, guarded)
                arguments = node.child_by_field_name("arguments")
                if arguments is not None:
                    for child in self.named(arguments):
                        visit(child, False, guarded)
                return
            if kind == "member_expression":
                obj = self.unwrap(node.child_by_field_name("object"))
                prop = node.child_by_field_name("property")
                optional = any(child.type == "optional_chain" or self.text(child) == "?." for child in node.children)
                if obj is not None and obj.type == "identifier" and prop is not None:
                    name = self.text(obj)
                    members.append(MemberRead(
                        obj=name,
                        attr=self.text(prop),
                        line=self.line(node),
                        guarded=optional or name in guarded,
                    ))
                if obj is not None:
                    visit(obj, False, guarded)
                return
            if kind == "binary_expression" and self.text(node.child_by_field_name("operator")) == "&&":
                left = node.child_by_field_name("left")
                right = node.child_by_field_name("right")
                name, proves = self.none_check(left)
                if left is not None:
                    visit(left, False, guarded)
                if right is not None:
                    extra = {name} if name is not None and proves else set()
                    visit(right, False, guarded | extra)
                return
            if kind == "ternary_expression":
                condition = node.child_by_field_name("condition")
                name, proves = self.none_check(condition)
                extra = {name} if name is not None and proves else set()
                for field, names in (("condition", guarded), ("consequence", guarded | extra), ("alternative", guarded)):
                    child = node.child_by_field_name(field)
                    if child is not None:
                        visit(child, False, names)
                return
            if kind == "pair":
                value = node.child_by_field_name("value")
                if value is not None:
                    visit(value, False, guarded)
                return
            for child in self.named(node):
                visit(child, awaited, guarded)

        for root in nodes:
            if root is not None:
                visit(root, False, frozenset())

        return tuple(dict.fromkeys(reads)), tuple(calls), tuple(members)

    # -- statements -------------------------------------------------------

    def simple(self, kind: StatementKind, node: Node, exprs: list[Node | None], **fields) -> Statement:
        reads, calls, members = self.scan(exprs)
        return Statement(
            kind=kind,
            line=self.line(node),
            text=fields.pop("text", None) or self.first_line(node),
            reads=reads,
            calls=calls,
            member_reads=members,
            **fields,
        )

    def pattern_names(self, node: Node | None) -> tuple[str, ...]:
        if node is None:
            return ()
        if node.type in ("identifier", "shorthand_property_identifier_pattern"):
            return (self.text(node),)
        names: list[str] = []
        for child in self.named(node):
            if child.type == "pair_pattern":
                names.extend(self.pattern_names(child.child_by_field_name("value")))
            elif child.type == "assignment_pattern":
                names.extend(self.pattern_names(child.child_by_field_name("left")))
            elif child.type not in ("property_identifier",):
                names.extend(self.pattern_names(child))
        return tuple(names)

    def block(self, node: Node | None) -> tuple[Statement, ...]:
        if node is None:
            return ()
        if node.type == "statement_block":
            statements: list[Statement] = []
            for child in self.named(node):
                statements.extend(self.statement(child))
            return tuple(statements)
        return tuple(self.statement(node))

    def header(self, node: Node, body: Node | None) -> str:
        text = self.text(node)
        if body is not None:
            text = text[: body.start_byte - node.start_byte]
        return " ".join(text.split()).rstrip("{ ").strip()

    def declarators(self, node: Node) -> list[Statement]:
        statements = []
        for declarator in self.named(node):
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            value_node = declarator.child_by_field_name("value")
            type_node = declarator.child_by_field_name("type")
            value = self.value(value_node) if value_node is not None else ValueSummary(UNDEFINED, "undefined")
            statements.append(self.simple(
                StatementKind.DECLARE,
                declarator,
                [value_node],
                text=self.first_line(node) if len(self.named(node)) == 1 else self.first_line(declarator),
                targets=self.pattern_names(name),
                value=value,
                annotation=type_from_text(self.text(type_node)) if type_node is not None else None,
            ))
        return statements

    def statement(self, node: Node) -> list[Statement]:
        kind = node.type
        if kind in _SKIPPED_NODES:
            return []
        if kind == "statement_block":
            return list(self.block(node))
        if kind == "expression_statement":
            children = self.named(node)
            if not children:
                return []
            inner = children[0]
            if inner.type in ("assignment_expression", "augmented_assignment_expression"):
                left = self.unwrap(inner.child_by_field_name("left"))
                right = inner.child_by_field_name("right")
                exprs: list[Node | None] = [right]
                targets: tuple[str, ...] = ()
                if left is not None and left.type in ("identifier", "object_pattern", "array_pattern"):
                    targets = self.pattern_names(left)
                    if inner.type == "augmented_assignment_expression":
                        exprs.append(left)
                elif left is not None:
                    exprs.append(left.child_by_field_name("object"))
                value = self.value(right) if inner.type == "assignment_expression" else UNKNOWN_VALUE
                return [self.simple(StatementKind.ASSIGN, node, exprs, targets=targets, value=value)]
            unwrapped = self.unwrap(inner)
            is_call = unwrapped is not None and (
                unwrapped.type in ("call_expression", "new_expression")
                or (unwrapped.type == "await_expression" and any(
                    c.type in ("call_expression", "new_expression") for c in self.named(unwrapped)
                ))
            )
            return [self.simple(StatementKind.CALL if is_call else StatementKind.EXPR, node, [inner])]
        if kind in ("lexical_declaration", "variable_declaration"):
            return self.declarators(node)
        if kind in ("function_declaration", "generator_function_declaration") or kind in CLASS_NODES:
            name = node.child_by_field_name("name")
            if name is None:
                return []
            return [Statement(
                kind=StatementKind.DECLARE,
                line=self.line(node),
                text=self.first_line(node),
                targets=(self.text(name),),
                value=ValueSummary(FUNCTION, self.text(name)),
            )]
        if kind == "enum_declaration":
            name = node.child_by_field_name("name")
            return [Statement(
                kind=StatementKind.DECLARE,
                line=self.line(node),
                text=self.first_line(node),
                targets=(self.text(name),) if name is not None else (),
                value=ValueSummary(OBJECT),
            )]
        if kind == "export_statement":
            declaration = node.child_by_field_name("declaration")
            if declaration is not None:
                return self.statement(declaration)
            value = node.child_by_field_name("value")
            if value is not None:
                return [self.simple(StatementKind.EXPR, node, [value])]
            return []
        if kind == "import_statement":
            return [Statement(
                kind=StatementKind.IMPORT,
                line=self.line(node),
                text=self.first_line(node),
                targets=self.import_names(node),
            )]
        if kind == "if_statement":
            condition = node.child_by_field_name("condition")
            guards, else_guards = self.condition_guards(condition)
            alternative = node.child_by_field_name("alternative")
            orelse: tuple[Statement, ...] = ()
            if alternative is not None:
                branch = self.named(alternative)
                orelse = self.block(branch[0]) if branch else ()
            return [self.simple(
                StatementKind.BRANCH,
                node,
                [condition],
                text=self.header(node, node.child_by_field_name("consequence")),
                condition=self.short(self.unwrap(condition) or condition) if condition is not None else None,
                guards=guards,
                else_guards=else_guards,
                body=self.block(node.child_by_field_name("consequence")),
                orelse=orelse,
            )]
        if kind == "switch_statement":
            value = node.child_by_field_name("value")
            cases: list[tuple[Statement, ...]] = []
            switch_body = node.child_by_field_name("body")
            for case in self.named(switch_body) if switch_body is not None else []:
                statements: list[Statement] = []
                for child in case.children_by_field_name("body"):
                    statements.extend(self.statement(child))
                cases.append(tuple(statements))
            rest: list[Statement] = []
            for case_body in cases[1:]:
                rest.extend(case_body)
            return [self.simple(
                StatementKind.BRANCH,
                node,
                [value],
                text=self.header(node, switch_body),
                condition=f"switch {self.short(value)}" if value is not None else "switch",
                body=cases[0] if cases else (),
                orelse=tuple(rest),
            )]
        if kind in ("for_statement", "for_in_statement"):
            body = node.child_by_field_name("body")
            targets: tuple[str, ...] = ()
            exprs = []
            if kind == "for_in_statement":
                targets = self.pattern_names(node.child_by_field_name("left"))
                exprs.append(node.child_by_field_name("right"))
            else:
                initializer = node.child_by_field_name("initializer")
                if initializer is not None:
                    for declarator in self.named(initializer):
                        if declarator.type == "variable_declarator":
                            targets += self.pattern_names(declarator.child_by_field_name("name"))
                            exprs.append(declarator.child_by_field_name("value"))
                exprs.extend([node.child_by_field_name("condition"), node.child_by_field_name("increment")])
            return [self.simple(
                StatementKind.LOOP,
                node,
                exprs,
                text=self.header(node, body),
                targets=targets,
                condition=self.header(node, body),
                body=self.block(body),
            )]
        if kind in ("while_statement", "do_statement"):
            condition = node.child_by_field_name("condition")
            body = node.child_by_field_name("body")
            return [self.simple(
                StatementKind.LOOP,
                node,
                [condition],
                text=self.header(node, body) if kind == "while_statement" else "do",
                condition=self.short(self.unwrap(condition) or condition) if condition is not None else None,
                value=self.value(condition),
                body=self.block(body),
            )]
        if kind == "return_statement":
            children = self.named(node)
            value = self.value(children[0]) if children else ValueSummary(UNDEFINED)
            return [self.simple(StatementKind.RETURN, node, children[:1], value=value)]
        if kind == "throw_statement":
            children = self.named(node)
            exc = self.unwrap(children[0]) if children else None
            if exc is not None and exc.type in ("new_expression", "call_expression"):
                callee = exc.child_by_field_name("constructor" if exc.type == "new_expression" else "function")
                value = ValueSummary(OBJECT, self.short(exc), constructor=self.text(callee))
            else:
                value = self.value(exc)
            return [self.simple(StatementKind.THROW, node, children[:1], value=value)]
        if kind == "try_statement":
            handler = node.child_by_field_name("handler")
            finalizer = node.child_by_field_name("finalizer")
            handler_names: tuple[str, ...] = ()
            handler_body: tuple[Statement, ...] = ()
            if handler is not None:
                handler_names = self.pattern_names(handler.child_by_field_name("parameter"))
                handler_body = self.block(handler.child_by_field_name("body"))
            return [Statement(
                kind=StatementKind.TRY,
                line=self.line(node),
                text="try",
                body=self.block(node.child_by_field_name("body")),
                handler=handler_body,
                handler_names=handler_names,
                finalbody=self.block(finalizer.child_by_field_name("body")) if finalizer is not None else (),
                has_handler=handler is not None,
            )]
        if kind == "break_statement":
            return [Statement(kind=StatementKind.BREAK, line=self.line(node), text=self.first_line(node))]
        if kind == "continue_statement":
            return [Statement(kind=StatementKind.CONTINUE, line=self.line(node), text=self.first_line(node))]
        if kind == "labeled_statement":
            body = node.child_by_field_name("body")
            return self.statement(body) if body is not None else []
        if kind == "ERROR":
            return []
        return [self.simple(StatementKind.EXPR, node, [node])]

    def import_names(self, node: Node) -> tuple[str, ...]:
        names: list[str] = []
        for child in self.named(node):
            if child.type != "import_clause":
                continue
            for part in self.named(child):
                if part.type == "identifier":
                    names.append(self.text(part))
                elif part.type == "namespace_import":
                    names.extend(self.text(c) for c in self.named(part) if c.type == "identifier")
                elif part.type == "named_imports":
                    for spec in self.named(part):
                        if spec.type != "import_specifier":
                            continue
                        alias = spec.child_by_field_name("alias")
                        name = spec.child_by_field_name("name")
                        target = alias if alias is not None else name
                        if target is not None:
                            names.append(self.text(target))
        return tuple(names)

    # -- declarations -----------------------------------------------------

    def parameters(self, node: Node) -> tuple[ParameterInfo, ...]:
        single = node.child_by_field_name("parameter")
        if single is not None:
            return (ParameterInfo(name=self.text(single)),)
        params_node = node.child_by_field_name("parameters")
        if params_node is None:
            return ()
        params: list[ParameterInfo] = []
        for param in self.named(params_node):
            kind = param.type
            if kind in ("required_parameter", "optional_parameter"):
                pattern = param.child_by_field_name("pattern")
                type_node = param.child_by_field_name("type")
                default = param.child_by_field_name("value")
                type_hint = type_from_text(self.text(type_node)) if type_node is not None else None
                variadic = pattern is not None and pattern.type == "rest_pattern"
                optional = kind == "optional_parameter" or default is not None or variadic
                if kind == "optional_parameter" and type_hint is not None:
                    type_hint = "|".join(dict.fromkeys(type_hint.split("|") + [UNDEFINED]))
                name = self.text(pattern).lstrip(".") if pattern is not None else self.text(param)
                if name == "this":
                    continue
                params.append(ParameterInfo(
                    name=name,
                    type_hint=type_hint,
                    optional=optional,
                    default=self.text(default) if default is not None else None,
                    variadic=variadic,
                ))
            elif kind == "assignment_pattern":
                left = param.child_by_field_name("left")
                right = param.child_by_field_name("right")
                params.append(ParameterInfo(
                    name=self.text(left),
                    optional=True,
                    default=self.text(right) if right is not None else None,
                ))
            elif kind == "rest_pattern":
                params.append(ParameterInfo(name=self.text(param).lstrip("."), optional=True, variadic=True))
            else:
                params.append(ParameterInfo(name=self.text(param)))
        return tuple(params)

    def function_body(self, node: Node) -> tuple[Statement, ...]:
        body = node.child_by_field_name("body")
        if body is None:
            return ()
        if body.type == "statement_block":
            return self.block(body)
        # Arrow function with an expression body
        return (self.simple(StatementKind.RETURN, body, [body], value=self.value(body)),)

    def doc_comment(self, node: Node) -> str | None:
        previous = node.prev_named_sibling
        if previous is not None and previous.type == "comment":
            text = self.text(previous)
            if text.startswith("/**"):
                return text
        return None

    def function_info(self, node: Node, name: str, *, exported: bool,
                      class_name: str | None = None, anchor: Node | None = None) -> FunctionInfo:
        body = self.function_body(node)
        return_node = node.child_by_field_name("return_type")
        return_type = type_from_text(self.text(return_node)) if return_node is not None else None
        if return_type == UNKNOWN and return_node is not None and self.text(return_node).strip(": ").startswith("Promise<"):
            return_type = None
        return FunctionInfo(
            name=name,
            parameters=self.parameters(node),
            return_type=return_type or infer_return_type(body),
            is_async=self.is_async(node),
            is_exported=exported,
            start_line=self.line(anchor or node),
            end_line=node.end_point[0] + 1,
            complexity=body_complexity(body),
            doc_comment=self.doc_comment(anchor or node),
            class_name=class_name,
            body=body,
            summary=summarize_body(body),
        )


def _collect_errors(root: Node, lowering: _Lowering) -> tuple[str, ...]:
    errors: list[str] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR":
            errors.append(f"line {node.start_point[0] + 1}: unexpected '{lowering.short(node)}'")
            continue
        if node.is_missing:
            errors.append(f"line {node.start_point[0] + 1}: missing '{node.type}'")
            continue
        if node.has_error:
            stack.extend(reversed(node.children))
    return tuple(errors)


def parse_javascript(source: str, file_path: str, parser: Parser, language: Language) -> StaticModel:
    """Build a `StaticModel` from JavaScript or TypeScript source."""
    data = source.encode("utf-8")
    tree = parser.parse(data)
    root = tree.root_node
    lowering = _Lowering(data)

    functions: list[FunctionInfo] = []
    classes: list[ClassInfo] = []
    imports: list[ImportInfo] = []
    exports: list[str] = []

    def declare(node: Node, exported: bool, anchor: Node) -> None:
        kind = node.type
        if kind in ("function_declaration", "generator_function_declaration", "function_expression", "function"):
            name = node.child_by_field_name("name")
            if name is not None:
                functions.append(lowering.function_info(node, lowering.text(name), exported=exported, anchor=anchor))
                if exported:
                    exports.append(lowering.text(name))
        elif kind in ("lexical_declaration", "variable_declaration"):
            for declarator in lowering.named(node):
                if declarator.type != "variable_declarator":
                    continue
                name = declarator.child_by_field_name("name")
                value = lowering.unwrap(declarator.child_by_field_name("value"))
                if name is None:
                    continue
                if value is not None and value.type in FUNCTION_NODES:
                    functions.append(lowering.function_info(value, lowering.text(name), exported=exported, anchor=anchor))
                if exported:
                    exports.extend(lowering.pattern_names(name))
        elif kind in CLASS_NODES:
            name_node = node.child_by_field_name("name")
            if name_node is None:
                return
            class_name = lowering.text(name_node)
            methods: list[str] = []
            body = node.child_by_field_name("body")
            for member in lowering.named(body) if body is not None else []:
                if member.type == "method_definition":
                    method_name = lowering.text(member.child_by_field_name("name"))
                    methods.append(method_name)
                    functions.append(lowering.function_info(
                        member, method_name, exported=exported, class_name=class_name,
                    ))
            bases: list[str] = []
            for child in lowering.named(node):
                if child.type == "class_heritage":
                    bases.extend(
                        lowering.text(c) for c in lowering.named(child)
                        if c.type not in ("extends_clause", "implements_clause")
                    )
                    for clause in lowering.named(child):
                        if clause.type in ("extends_clause", "implements_clause"):
                            bases.extend(lowering.text(c) for c in lowering.named(clause))
            classes.append(ClassInfo(
                name=class_name,
                bases=tuple(bases),
                methods=tuple(methods),
                is_exported=exported,
                start_line=lowering.line(anchor),
                end_line=node.end_point[0] + 1,
            ))
            if exported:
                exports.append(class_name)

    for node in lowering.named(root):
        if node.type == "export_statement":
            declaration = node.child_by_field_name("declaration")
            if declaration is None:
                declaration = node.child_by_field_name("value")
            if declaration is not None:
                declare(declaration, True, node)
            for clause in lowering.named(node):
                if clause.type == "export_clause":
                    for spec in lowering.named(clause):
                        name = spec.child_by_field_name("alias")
                        if name is None:
                            name = spec.child_by_field_name("name")
                        if name is not None:
                            exports.append(lowering.text(name))
        elif node.type == "import_statement":
            source_node = node.child_by_field_name("source")
            imports.append(ImportInfo(
                source=lowering.text(source_node).strip("'\"") if source_node is not None else "",
                names=lowering.import_names(node),
                line=lowering.line(node),
            ))
        elif node.type == "expression_statement":
            inner = lowering.named(node)
            if inner and inner[0].type == "assignment_expression":
                _commonjs_exports(lowering, inner[0], exports)
        else:
            declare(node, False, node)

    statements: list[Statement] = []
    for node in lowering.named(root):
        statements.extend(lowering.statement(node))

    code_lines = [
        line for line in source.splitlines()
        if line.strip() and not line.strip().startswith(("//", "/*", "*"))
    ]

    errors = _collect_errors(root, lowering) if root.has_error else ()
    return StaticModel(
        file_path=file_path,
        language=language.value,
        functions=tuple(functions),
        classes=tuple(classes),
        imports=tuple(imports),
        exports=tuple(dict.fromkeys(exports)),
        statements=tuple(statements),
        lines_of_code=len(code_lines),
        complexity=sum(f.complexity for f in functions),
        parse_errors=errors,
        partial=bool(errors),
    )


def _commonjs_exports(lowering: _Lowering, node: Node, exports: list[str]) -> None:
    left = node.child_by_field_name("left")
    right = lowering.unwrap(node.child_by_field_name("right"))
    if left is None or lowering.text(left) not in ("module.exports", "exports"):
        return
    if right is None:
        return
    if right.type == "identifier":
        exports.append(lowering.text(right))
    elif right.type == "object":
        for prop in lowering.named(right):
            if prop.type == "shorthand_property_identifier":
                exports.append(lowering.text(prop))
            elif prop.type == "pair":
                key = prop.child_by_field_name("key")
                if key is not None:
                    exports.append(lowering.text(key))
