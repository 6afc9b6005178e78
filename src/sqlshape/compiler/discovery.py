"""Call-site discovery.

Finds every call to the runtime's query/execute operations in a Python
source file and turns it into a CallSiteDescriptor. Calls are recognised
by resolved name (through the file's imports), never by spelling alone,
so a local function that happens to be called ``query`` is ignored.

Per call-site problems (a hole that is not an identifier, a template that
is not a literal) become GenerationFailures for that call site only; the
rest of the file is still discovered.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Any

import structlog
import tree_sitter
import tree_sitter_python

from sqlshape.compiler.diagnostics import from_compile_error
from sqlshape.compiler.models import (
    CallSiteDescriptor,
    GenerationFailure,
    OperationKind,
    Placeholder,
    SourceLocation,
)
from sqlshape.compiler.scopes import ScopeIndex
from sqlshape.compiler.template import extract_template, is_template_literal, parts_from_node
from sqlshape.config.constants import (
    EXECUTE_OPERATION,
    PRUNABLE_DIRS,
    QUERY_OPERATION,
    RUNTIME_MODULE,
)
from sqlshape.core.errors import CompileError

log = structlog.get_logger(__name__)

PYTHON_LANGUAGE = tree_sitter.Language(tree_sitter_python.language())

_TEMPLATE_KEYWORD = "template"
_ROOT_PACKAGE = RUNTIME_MODULE.split(".", 1)[0].encode()


@dataclass(frozen=True, slots=True)
class SourceFile:
    """One Python source file; path is project-relative POSIX."""

    path: str
    text: bytes


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    descriptors: tuple[CallSiteDescriptor, ...] = ()
    failures: tuple[GenerationFailure, ...] = ()


def discover_call_sites(path: str, source: bytes, *, connection_id: str) -> DiscoveryResult:
    """Discover query/execute call sites in one file.

    Args:
        path: Project-relative POSIX path, used in every location.
        source: File contents.
        connection_id: Identity of the connection string, copied into
            each descriptor.
    """
    # Every recognised call needs an import that names the package.
    if _ROOT_PACKAGE not in source:
        return DiscoveryResult()

    parser = tree_sitter.Parser(PYTHON_LANGUAGE)
    tree = parser.parse(source)
    scopes = ScopeIndex(source)

    descriptors: list[CallSiteDescriptor] = []
    failures: list[GenerationFailure] = []

    for call in _iter_calls(tree.root_node):
        classified = _classify(call, scopes)
        if classified is None:
            continue
        kind, result_name, problem = classified
        location = SourceLocation(path, call.start_point[0] + 1, call.start_point[1] + 1)

        try:
            if problem is not None:
                raise problem
            descriptors.append(
                _describe(call, kind, result_name, location, source, scopes, connection_id)
            )
        except CompileError as e:
            log.debug("call_site_rejected", location=str(location), error=e.message)
            failures.append(
                GenerationFailure(
                    location=location,
                    kind=kind,
                    result_name=result_name,
                    diagnostics=(from_compile_error(location, e),),
                    reason=e.message,
                )
            )

    return DiscoveryResult(descriptors=tuple(descriptors), failures=tuple(failures))


def _iter_calls(node: Any) -> Iterator[Any]:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "call":
            yield current
        stack.extend(reversed(current.children))


def _classify(
    call: Any, scopes: ScopeIndex
) -> tuple[OperationKind, str | None, CompileError | None] | None:
    function = call.child_by_field_name("function")
    if function is None:
        return None

    if function.type == "subscript":
        if _qualified_name(function.child_by_field_name("value"), scopes) != QUERY_OPERATION:
            return None
        subscripts = function.children_by_field_name("subscript")
        if len(subscripts) != 1:
            return (
                OperationKind.QUERY,
                None,
                CompileError.invalid_call_site("query takes exactly one result type"),
            )
        name = _result_type_name(subscripts[0])
        if name is None:
            return (
                OperationKind.QUERY,
                None,
                CompileError.unsupported_expression(_text(subscripts[0])),
            )
        return OperationKind.QUERY, name, None

    qualified = _qualified_name(function, scopes)
    if qualified == EXECUTE_OPERATION:
        return OperationKind.EXECUTE, None, None
    if qualified == QUERY_OPERATION:
        return (
            OperationKind.QUERY,
            None,
            CompileError.invalid_call_site("query needs a result type, as in query[Row](...)"),
        )
    return None


def _qualified_name(node: Any, scopes: ScopeIndex) -> str | None:
    if node is None:
        return None
    if node.type == "identifier":
        return scopes.resolve(_text(node), node)
    if node.type == "attribute":
        base = _qualified_name(node.child_by_field_name("object"), scopes)
        attribute = node.child_by_field_name("attribute")
        if base is None or attribute is None:
            return None
        return f"{base}.{_text(attribute)}"
    return None


def _result_type_name(node: Any) -> str | None:
    if node.type == "identifier":
        return _text(node)
    if node.type == "attribute":
        attribute = node.child_by_field_name("attribute")
        return _text(attribute) if attribute is not None else None
    if node.type == "string" and not any(c.type == "interpolation" for c in node.children):
        name = _text(node).strip("'\"")
        return name if name.isidentifier() else None
    return None


def _describe(
    call: Any,
    kind: OperationKind,
    result_name: str | None,
    location: SourceLocation,
    source: bytes,
    scopes: ScopeIndex,
    connection_id: str,
) -> CallSiteDescriptor:
    template_node = _template_argument(call)
    if template_node is None:
        raise CompileError.invalid_call_site("expected (connection, template) arguments")
    if not is_template_literal(template_node):
        raise CompileError.invalid_call_site("the query template must be an f-string literal")

    extracted = extract_template(parts_from_node(template_node, source))
    parameters = tuple(
        Placeholder(name=name, type_name=scopes.infer_type(name, call))
        for name in extracted.parameters
    )
    return CallSiteDescriptor(
        kind=kind,
        result_name=result_name,
        sql=extracted.statement,
        parameters=parameters,
        connection_id=connection_id,
        location=location,
    )


def _template_argument(call: Any) -> Any | None:
    arguments = call.child_by_field_name("arguments")
    if arguments is None:
        return None
    positional: list[Any] = []
    for arg in arguments.named_children:
        if arg.type == "comment":
            continue
        if arg.type == "keyword_argument":
            name = arg.child_by_field_name("name")
            if name is not None and _text(name) == _TEMPLATE_KEYWORD:
                return arg.child_by_field_name("value")
            continue
        positional.append(arg)
    return positional[1] if len(positional) >= 2 else None


def _text(node: Any) -> str:
    return node.text.decode() if node.text else ""


# =============================================================================
# Source files
# =============================================================================


def iter_source_files(
    root: Path,
    *,
    include: list[str],
    exclude_dirs: list[str] | None = None,
) -> Iterator[SourceFile]:
    """Yield project files matching include globs, in sorted path order.

    Pruned directories (VCS internals, virtualenvs, caches) and
    exclude_dirs are never descended into.
    """
    pruned = PRUNABLE_DIRS | frozenset(exclude_dirs or ())
    matches: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in pruned]
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        for filename in filenames:
            rel_path = filename if rel_dir == "." else f"{rel_dir}/{filename}"
            if _matches_any(rel_path, include):
                matches.append(rel_path)

    for rel_path in sorted(matches):
        try:
            text = (root / rel_path).read_bytes()
        except OSError as e:
            log.warning("source_unreadable", path=rel_path, error=str(e))
            continue
        yield SourceFile(path=rel_path, text=text)


def _matches_any(rel_path: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        if fnmatch(rel_path, pattern):
            return True
        # "**/*.py" also matches files at the root
        if pattern.startswith("**/") and fnmatch(rel_path, pattern[3:]):
            return True
    return False
