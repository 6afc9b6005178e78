"""Lexical scope analysis over tree-sitter Python trees.

Answers the two questions call-site discovery has about a name used at a
given node:

- what does it resolve to? Only imports resolve to a qualified name; any
  other binding in the nearest scope that binds the name shadows it.
- what is its static type? Taken from an annotation on the binding, or
  from the literal or constructor assigned to it.

Scopes follow Python's rules closely enough for call-site recognition:
modules, functions, lambdas and comprehensions are scopes; class bodies
are scopes only for code directly inside them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlshape.config.constants import EXECUTE_OPERATION, QUERY_OPERATION, RUNTIME_MODULE

SCOPE_NODE_TYPES = frozenset(
    {
        "module",
        "function_definition",
        "class_definition",
        "lambda",
        "list_comprehension",
        "set_comprehension",
        "dictionary_comprehension",
        "generator_expression",
    }
)

_NESTED_SCOPES = SCOPE_NODE_TYPES - {"module"}

_TARGET_CONTAINERS = frozenset(
    {
        "pattern_list",
        "tuple_pattern",
        "list_pattern",
        "tuple",
        "list",
        "parenthesized_expression",
        "list_splat_pattern",
        "as_pattern_target",
    }
)

# Names a wildcard import of the runtime module brings in.
_RUNTIME_EXPORTS = {
    QUERY_OPERATION.rsplit(".", 1)[1]: QUERY_OPERATION,
    EXECUTE_OPERATION.rsplit(".", 1)[1]: EXECUTE_OPERATION,
}

_CONSTRUCTOR_TYPES = {
    "int": "int",
    "str": "str",
    "float": "float",
    "bool": "bool",
    "bytes": "bytes",
    "Decimal": "Decimal",
    "date": "date",
    "datetime": "datetime",
    "time": "time",
    "timedelta": "timedelta",
    "UUID": "UUID",
    "uuid1": "UUID",
    "uuid3": "UUID",
    "uuid4": "UUID",
    "uuid5": "UUID",
}

_UNWRAPPED_GENERICS = (
    "typing.Optional[",
    "Optional[",
    "typing.Final[",
    "Final[",
    "typing.Annotated[",
    "Annotated[",
)

_ALTERNATE_CONSTRUCTORS = frozenset(
    {"now", "utcnow", "today", "fromisoformat", "fromtimestamp", "combine", "strptime", "replace"}
)


@dataclass(frozen=True, slots=True)
class Binding:
    """One place a name is bound within a scope.

    kind is one of: import, parameter, assignment, definition, global, other.
    """

    name: str
    kind: str
    start_byte: int
    qualified: str | None = None
    annotation: str | None = None
    value: Any = field(default=None, compare=False)


class ScopeIndex:
    """Per-tree cache of scope bindings."""

    def __init__(self, source: bytes) -> None:
        self._source = source
        self._bindings: dict[tuple[int, int, str], dict[str, list[Binding]]] = {}

    def bindings(self, scope: Any) -> dict[str, list[Binding]]:
        key = (scope.start_byte, scope.end_byte, scope.type)
        cached = self._bindings.get(key)
        if cached is None:
            cached = _collect_bindings(scope)
            self._bindings[key] = cached
        return cached

    def resolve(self, name: str, at: Any) -> str | None:
        """Qualified name an identifier refers to at a node, or None."""
        bindings = self._lookup(name, at)
        if not bindings:
            return None
        kinds = {b.kind for b in bindings}
        qualified = {b.qualified for b in bindings}
        if kinds == {"import"} and len(qualified) == 1:
            return qualified.pop()
        return None

    def infer_type(self, name: str, at: Any) -> str | None:
        """Static type name of an identifier at a node, or None when unknown."""
        bindings = self._lookup(name, at)
        if not bindings:
            return None
        annotated = [b for b in bindings if b.annotation]
        if annotated:
            return normalize_annotation(annotated[-1].annotation or "")
        preceding = [b for b in bindings if b.start_byte < at.start_byte]
        candidate = preceding[-1] if preceding else bindings[-1]
        if candidate.kind in ("assignment", "parameter") and candidate.value is not None:
            return infer_expression_type(candidate.value)
        return None

    def _lookup(self, name: str, at: Any) -> list[Binding] | None:
        # Nearest scope binding the name, skipping scopes that declare it global.
        for scope in lookup_scopes(at):
            bindings = self.bindings(scope).get(name)
            if not bindings or any(b.kind == "global" for b in bindings):
                continue
            return bindings
        return None


def lookup_scopes(node: Any) -> list[Any]:
    """Scopes searched for a name used at node, innermost first."""
    scopes: list[Any] = []
    current = node.parent
    while current is not None:
        if current.type in SCOPE_NODE_TYPES:
            if current.type != "class_definition" or not scopes:
                scopes.append(current)
        current = current.parent
    return scopes


def normalize_annotation(text: str) -> str | None:
    """Reduce an annotation to its underlying type name.

    ``Optional[str]``, ``str | None`` and ``Final[str]`` all give ``str``.
    """
    value = text.strip().strip("'\"").strip()
    for wrapper in _UNWRAPPED_GENERICS:
        if value.startswith(wrapper) and value.endswith("]"):
            inner = _split_top_level(value[len(wrapper) : -1], ",")
            return normalize_annotation(inner[0]) if inner else None
    for wrapper in ("typing.Union[", "Union["):
        if value.startswith(wrapper) and value.endswith("]"):
            value = " | ".join(_split_top_level(value[len(wrapper) : -1], ","))
            break
    members = [m.strip() for m in _split_top_level(value, "|")]
    members = [m for m in members if m and m != "None"]
    if len(members) != 1:
        return None
    return members[0]


def infer_expression_type(node: Any) -> str | None:
    """Type name of a literal or well-known constructor call, else None."""
    node_type = node.type
    if node_type == "string":
        prefix = node.children[0].text.decode() if node.children and node.children[0].text else ""
        return "bytes" if "b" in prefix.lower().rstrip("'\"") else "str"
    if node_type == "concatenated_string":
        return infer_expression_type(node.named_children[0]) if node.named_children else None
    if node_type == "integer":
        return "int"
    if node_type == "float":
        return "float"
    if node_type in ("true", "false"):
        return "bool"
    if node_type in ("unary_operator", "parenthesized_expression"):
        inner = node.child_by_field_name("argument") or (
            node.named_children[0] if node.named_children else None
        )
        return infer_expression_type(inner) if inner is not None else None
    if node_type == "call":
        return _constructor_type(node.child_by_field_name("function"))
    return None


def _constructor_type(function: Any) -> str | None:
    if function is None:
        return None
    text = function.text.decode() if function.text else ""
    segments = text.split(".")
    last = segments[-1]
    if last in _CONSTRUCTOR_TYPES:
        return _CONSTRUCTOR_TYPES[last]
    if len(segments) >= 2 and last in _ALTERNATE_CONSTRUCTORS and segments[-2] in (
        "date",
        "datetime",
        "time",
    ):
        return segments[-2]
    return None


def _split_top_level(text: str, separator: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        if char == separator and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    parts.append("".join(current).strip())
    return [p for p in parts if p]


# =============================================================================
# Binding collection
# =============================================================================


def _collect_bindings(scope: Any) -> dict[str, list[Binding]]:
    out: dict[str, list[Binding]] = {}

    if scope.type in ("function_definition", "lambda"):
        parameters = scope.child_by_field_name("parameters")
        if parameters is not None:
            _collect_parameters(parameters, out)
        body = scope.child_by_field_name("body")
        if body is not None:
            if scope.type == "lambda":
                _walk_expression_targets(body, out)
            else:
                _walk(body, out)
    elif scope.type == "class_definition":
        body = scope.child_by_field_name("body")
        if body is not None:
            _walk(body, out)
    elif scope.type == "module":
        _walk(scope, out)
    else:
        # comprehensions: only the loop targets are local
        for child in scope.named_children:
            if child.type == "for_in_clause":
                left = child.child_by_field_name("left")
                if left is not None:
                    for name_node in _target_names(left):
                        _add(out, Binding(_text(name_node), "other", name_node.start_byte))
    return out


def _collect_parameters(parameters: Any, out: dict[str, list[Binding]]) -> None:
    for param in parameters.named_children:
        ptype = param.type
        if ptype == "identifier":
            _add(out, Binding(_text(param), "parameter", param.start_byte))
        elif ptype in ("typed_parameter", "typed_default_parameter", "default_parameter"):
            name_node = param.child_by_field_name("name")
            if name_node is None:
                name_node = next(
                    (c for c in param.named_children if c.type == "identifier"), None
                )
            if name_node is None:
                continue
            type_node = param.child_by_field_name("type")
            _add(
                out,
                Binding(
                    _text(name_node),
                    "parameter",
                    param.start_byte,
                    annotation=_text(type_node) if type_node is not None else None,
                    value=param.child_by_field_name("value"),
                ),
            )
        elif ptype in ("list_splat_pattern", "dictionary_splat_pattern"):
            for name_node in _identifiers(param):
                _add(out, Binding(_text(name_node), "parameter", param.start_byte))


def _walk(node: Any, out: dict[str, list[Binding]]) -> None:
    for child in node.children:
        ctype = child.type

        if ctype in ("function_definition", "class_definition"):
            name_node = child.child_by_field_name("name")
            if name_node is not None:
                _add(out, Binding(_text(name_node), "definition", child.start_byte))
            continue
        if ctype in _NESTED_SCOPES:
            continue

        if ctype == "import_statement":
            _collect_import(child, out)
            continue
        if ctype == "import_from_statement":
            _collect_import_from(child, out)
            continue
        if ctype in ("global_statement", "nonlocal_statement"):
            for name_node in child.named_children:
                if name_node.type == "identifier":
                    _add(out, Binding(_text(name_node), "global", child.start_byte))
            continue

        if ctype == "assignment":
            _collect_assignment(child, out)
        elif ctype == "augmented_assignment":
            left = child.child_by_field_name("left")
            if left is not None and left.type == "identifier":
                _add(out, Binding(_text(left), "other", child.start_byte))
        elif ctype in ("for_statement", "for_in_clause"):
            left = child.child_by_field_name("left")
            if left is not None:
                for name_node in _target_names(left):
                    _add(out, Binding(_text(name_node), "other", child.start_byte))
        elif ctype == "as_pattern":
            alias = child.child_by_field_name("alias")
            if alias is not None:
                for name_node in _target_names(alias):
                    _add(out, Binding(_text(name_node), "other", child.start_byte))
        elif ctype == "named_expression":
            name_node = child.child_by_field_name("name")
            if name_node is not None:
                _add(
                    out,
                    Binding(
                        _text(name_node),
                        "assignment",
                        child.start_byte,
                        value=child.child_by_field_name("value"),
                    ),
                )

        _walk(child, out)


def _walk_expression_targets(node: Any, out: dict[str, list[Binding]]) -> None:
    # A lambda body is one expression; only walrus targets bind in it.
    for child in node.children:
        if child.type in _NESTED_SCOPES:
            continue
        if child.type == "named_expression":
            name_node = child.child_by_field_name("name")
            if name_node is not None:
                _add(out, Binding(_text(name_node), "other", child.start_byte))
        _walk_expression_targets(child, out)


def _collect_assignment(node: Any, out: dict[str, list[Binding]]) -> None:
    left = node.child_by_field_name("left")
    if left is None:
        return
    value = node.child_by_field_name("right")
    while value is not None and value.type == "assignment":
        value = value.child_by_field_name("right")
    type_node = node.child_by_field_name("type")

    if left.type == "identifier":
        _add(
            out,
            Binding(
                _text(left),
                "assignment",
                node.start_byte,
                annotation=_text(type_node) if type_node is not None else None,
                value=value,
            ),
        )
        return
    for name_node in _target_names(left):
        _add(out, Binding(_text(name_node), "other", node.start_byte))


def _collect_import(node: Any, out: dict[str, list[Binding]]) -> None:
    for child in node.named_children:
        if child.type == "dotted_name":
            dotted = _text(child)
            root = dotted.split(".", 1)[0]
            _add(out, Binding(root, "import", node.start_byte, qualified=root))
        elif child.type == "aliased_import":
            name_node = child.child_by_field_name("name")
            alias_node = child.child_by_field_name("alias")
            if name_node is not None and alias_node is not None:
                _add(
                    out,
                    Binding(
                        _text(alias_node),
                        "import",
                        node.start_byte,
                        qualified=_text(name_node),
                    ),
                )


def _collect_import_from(node: Any, out: dict[str, list[Binding]]) -> None:
    module_node = node.child_by_field_name("module_name")
    if module_node is None:
        return
    module = _text(module_node)

    for child in node.named_children:
        if child == module_node:
            continue
        if child.type == "dotted_name":
            name = _text(child)
            _add(out, Binding(name, "import", node.start_byte, qualified=f"{module}.{name}"))
        elif child.type == "aliased_import":
            name_node = child.child_by_field_name("name")
            alias_node = child.child_by_field_name("alias")
            if name_node is not None and alias_node is not None:
                _add(
                    out,
                    Binding(
                        _text(alias_node),
                        "import",
                        node.start_byte,
                        qualified=f"{module}.{_text(name_node)}",
                    ),
                )
        elif child.type == "wildcard_import" and module == RUNTIME_MODULE:
            for name, qualified in _RUNTIME_EXPORTS.items():
                _add(out, Binding(name, "import", node.start_byte, qualified=qualified))


def _target_names(node: Any) -> list[Any]:
    if node.type == "identifier":
        return [node]
    if node.type in _TARGET_CONTAINERS:
        names: list[Any] = []
        for child in node.named_children:
            names.extend(_target_names(child))
        return names
    return []


def _identifiers(node: Any) -> list[Any]:
    if node.type == "identifier":
        return [node]
    found: list[Any] = []
    for child in node.named_children:
        found.extend(_identifiers(child))
    return found


def _add(out: dict[str, list[Binding]], binding: Binding) -> None:
    out.setdefault(binding.name, []).append(binding)


def _text(node: Any) -> str:
    return node.text.decode() if node.text else ""
