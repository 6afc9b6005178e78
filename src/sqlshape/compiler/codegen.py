"""Source generation for result types, dispatchers and the package index.

Everything rendered here is a pure function of its inputs: no timestamps,
no random identifiers, and unit names derived only from result type names
and call-site locations. Running a pass twice over the same inputs gives
byte-identical files.

Generated package layout::

    <output_dir>/
        __init__.py                      imports every dispatcher, re-exports result types
        result_<Type>.py                 dataclass + row materializer (or a stub)
        dispatch_<stem>_<hash>_<l>_<c>.py  one dispatcher per call site
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlshape.compiler.diagnostics import Diagnostic, conflicting_result_type
from sqlshape.compiler.models import (
    CallSiteDescriptor,
    GenerationFailure,
    GenerationOutcome,
    GenerationSuccess,
    OperationKind,
    ResultTypeDescriptor,
    SourceLocation,
    SourceUnit,
)
from sqlshape.compiler.naming import dispatcher_module_name, result_module_name
from sqlshape.compiler.typemap import bind_type_class
from sqlshape.config.constants import GENERATED_MARKER

INDEX_UNIT = "__init__.py"


@dataclass(frozen=True, slots=True)
class CodegenOptions:
    """Settings shared by every unit of one generated package.

    package_depth is the number of path segments of the output directory
    below the project root; dispatchers use it to locate the root at
    import time.
    """

    package_depth: int = 1

    @property
    def key(self) -> str:
        return f"depth={self.package_depth}"


@dataclass(slots=True)
class GeneratedPackage:
    units: list[SourceUnit] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def materializer_name(type_name: str) -> str:
    return f"_read_{type_name}"


def render_result_type(result: ResultTypeDescriptor) -> SourceUnit:
    """Dataclass with one field per column plus its row materializer."""
    imports = sorted({module for p in result.properties for module in p.type.imports} | {"typing"})
    needs_require = any(not p.nullable for p in result.properties)

    lines = [
        GENERATED_MARKER,
        f'"""Result type {result.name}."""',
        "",
        "from __future__ import annotations",
        "",
    ]
    lines += [f"import {module}" for module in imports]
    lines += [
        "from collections.abc import Sequence",
        "from dataclasses import dataclass",
    ]
    if needs_require:
        lines += ["", "from sqlshape.runtime import require_value"]
    lines += ["", "", "@dataclass(frozen=True, slots=True)", f"class {result.name}:"]
    if result.properties:
        lines += [f"    {p.name}: {p.annotation}" for p in result.properties]
    else:
        lines.append("    pass")

    lines += [
        "",
        "",
        f"def {materializer_name(result.name)}(row: Sequence[typing.Any]) -> {result.name}:",
        f"    return {result.name}(",
    ]
    for prop in result.properties:
        value = f"row[{prop.ordinal}]"
        if not prop.nullable:
            value = f"require_value({value}, {result.name!r}, {prop.column!r})"
        lines.append(f"        {prop.name}={value},")
    lines.append("    )")

    return SourceUnit(name=f"{result_module_name(result.name)}.py", text=_join(lines))


def render_stub(name: str, failure: GenerationFailure) -> SourceUnit:
    """Field-less stand-in for a result type whose call site failed."""
    lines = [
        GENERATED_MARKER,
        f'"""Result type {name}: not generated, see the comments below."""',
        "",
        "from __future__ import annotations",
        "",
        "from dataclasses import dataclass",
        "",
        "",
        "@dataclass(frozen=True, slots=True)",
        f"class {name}:",
        f"    # Code omitted: the call at {failure.location} failed to compile.",
    ]
    for diagnostic in failure.diagnostics:
        for message_line in f"{diagnostic.code.value} {diagnostic.message}".splitlines():
            lines.append(f"    # {message_line}".rstrip())
    lines.append("    pass")
    return SourceUnit(name=f"{result_module_name(name)}.py", text=_join(lines))


def render_dispatcher(
    descriptor: CallSiteDescriptor,
    result: ResultTypeDescriptor | None,
    options: CodegenOptions,
) -> SourceUnit:
    """Dispatcher module bound to one call-site location.

    Raises:
        CompileError: UNSUPPORTED_PARAMETER_TYPE if a placeholder type has
            no bind type (normally caught earlier, when probing).
    """
    location = descriptor.location
    module = dispatcher_module_name(location.path, location.line, location.column)
    is_query = descriptor.kind is OperationKind.QUERY
    if is_query and result is None:
        raise ValueError("query dispatchers need a result type")

    bind_types = [
        (p.name, bind_type_class(p.type_name, parameter=p.name).__name__)
        for p in descriptor.parameters
    ]

    lines = [
        GENERATED_MARKER,
        f'"""Dispatcher for {descriptor.kind.value} at {location}."""',
        "",
        "from __future__ import annotations",
        "",
        "from pathlib import Path",
        "from typing import Any",
        "",
    ]
    if bind_types:
        lines += [
            "from sqlalchemy import bindparam, text",
            "from sqlalchemy import types as sqltypes",
        ]
    else:
        lines.append("from sqlalchemy import text")
    lines += ["", "from sqlshape.runtime import dispatcher"]
    if is_query and result is not None:
        lines += [
            "",
            f"from .{result_module_name(result.name)} import "
            f"{result.name}, {materializer_name(result.name)}",
        ]
    lines += [
        "",
        f"_ROOT = Path(__file__).resolve().parents[{options.package_depth}]",
        "",
        "STATEMENT = text(",
        f"    {descriptor.sql!r}",
    ]
    if bind_types:
        lines.append(").bindparams(")
        lines += [
            f"    bindparam({name!r}, type_=sqltypes.{type_name}()),"
            for name, type_name in bind_types
        ]
    lines.append(")")

    parameter_names = ", ".join(repr(name) for name, _ in bind_types)
    if len(bind_types) == 1:
        parameter_names += ","
    lines += [
        "",
        "",
        "@dispatcher(",
        f"    {descriptor.kind.value!r},",
        "    root=_ROOT,",
        f"    path={location.path!r},",
        f"    line={location.line},",
        f"    column={location.column},",
        f"    parameters=({parameter_names}),",
        ")",
    ]
    if is_query and result is not None:
        lines += [
            f"def dispatch(connection: Any, arguments: dict[str, Any]) -> list[{result.name}]:",
            "    result = connection.execute(STATEMENT, arguments)",
            f"    return [{materializer_name(result.name)}(row) for row in result]",
        ]
    else:
        lines += [
            "def dispatch(connection: Any, arguments: dict[str, Any]) -> int:",
            "    result = connection.execute(STATEMENT, arguments)",
            "    return result.rowcount",
        ]
    return SourceUnit(name=f"{module}.py", text=_join(lines))


def render_index(result_names: list[str], dispatcher_modules: list[str]) -> SourceUnit:
    """Package __init__: importing it registers every dispatcher."""
    lines = [
        GENERATED_MARKER,
        '"""Generated result types and call-site dispatchers.',
        "",
        "Importing this package registers every dispatcher with sqlshape.runtime.",
        '"""',
        "",
    ]
    for module in sorted(dispatcher_modules):
        lines.append(f"from . import {module}  # noqa: F401")
    for name in sorted(result_names):
        lines.append(f"from .{result_module_name(name)} import {name}")
    if dispatcher_modules or result_names:
        lines.append("")
    if result_names:
        lines.append("__all__ = [")
        lines += [f"    {name!r}," for name in sorted(result_names)]
        lines.append("]")
    else:
        lines.append("__all__: list[str] = []")
    return SourceUnit(name=INDEX_UNIT, text=_join(lines))


def assemble_package(outcomes: list[GenerationOutcome]) -> GeneratedPackage:
    """Combine per call-site outcomes into the units of the generated package.

    Outcomes are processed in location order so the result does not depend
    on discovery or probe order. A result type name used with two
    different shapes keeps the first (by location); every later call site
    gets a ConflictingResultType diagnostic and no dispatcher.
    """
    package = GeneratedPackage()
    results: dict[str, tuple[SourceUnit, SourceLocation]] = {}
    stubs: dict[str, GenerationFailure] = {}
    dispatchers: list[SourceUnit] = []

    for outcome in sorted(outcomes, key=outcome_location):
        if isinstance(outcome, GenerationFailure):
            package.diagnostics.extend(outcome.diagnostics)
            if outcome.kind is OperationKind.QUERY and outcome.result_name:
                stubs.setdefault(outcome.result_name, outcome)
            continue

        if outcome.result is not None:
            unit = render_result_type(outcome.result)
            existing = results.get(outcome.result.name)
            if existing is None:
                results[outcome.result.name] = (unit, outcome.location)
            elif existing[0].text != unit.text:
                package.diagnostics.append(
                    conflicting_result_type(outcome.location, outcome.result.name, existing[1])
                )
                continue
        dispatchers.append(outcome.dispatcher)

    units = [unit for unit, _ in results.values()]
    units += [render_stub(name, failure) for name, failure in stubs.items() if name not in results]
    units += dispatchers
    result_names = sorted(set(results) | set(stubs))
    units.append(render_index(result_names, [u.name.removesuffix(".py") for u in dispatchers]))

    package.units = sorted(units, key=lambda u: u.name)
    return package


def outcome_location(outcome: GenerationOutcome) -> SourceLocation:
    if isinstance(outcome, GenerationSuccess):
        return outcome.descriptor.location
    return outcome.location


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n"
