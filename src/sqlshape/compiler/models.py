"""Immutable value types flowing through the compilation pipeline.

Every type here is created fresh on each pass and compared by value.
None of them hold references to tree-sitter nodes, connections, or other
pass-specific state, so two passes over unchanged source produce equal
instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlshape.compiler.diagnostics import Diagnostic


class OperationKind(str, Enum):
    """The two runtime operations recognised as call sites."""

    QUERY = "query"
    EXECUTE = "execute"


@dataclass(frozen=True, slots=True, order=True)
class SourceLocation:
    """Call-site position: project-relative POSIX path, 1-based line and column."""

    path: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class Placeholder:
    """A named stand-in for a host expression; type_name is None when not inferable."""

    name: str
    type_name: str | None


@dataclass(frozen=True, slots=True)
class CallSiteDescriptor:
    """Everything about one call site that affects generated output."""

    kind: OperationKind
    result_name: str | None  # None for execute
    sql: str
    parameters: tuple[Placeholder, ...]
    connection_id: str  # hash of the connection string, never the secret itself
    location: SourceLocation

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.parameters)


@dataclass(frozen=True, slots=True)
class ColumnSchema:
    """One result column as reported by the schema probe.

    nullable is None when the driver cannot tell.
    """

    ordinal: int
    name: str
    native_type: str | None
    nullable: bool | None
    has_default: bool = False


@dataclass(frozen=True, slots=True)
class TargetType:
    """A Python type expression plus the modules it needs imported."""

    annotation: str
    imports: tuple[str, ...] = ()

    @property
    def is_any(self) -> bool:
        return self.annotation == "typing.Any"


@dataclass(frozen=True, slots=True)
class ResultProperty:
    """One generated field, derived 1:1 from a ColumnSchema."""

    name: str
    column: str
    ordinal: int
    type: TargetType
    nullable: bool
    native_type: str | None = None

    @property
    def annotation(self) -> str:
        if self.nullable and not self.type.is_any:
            return f"{self.type.annotation} | None"
        return self.type.annotation


@dataclass(frozen=True, slots=True)
class ResultTypeDescriptor:
    """Generated result shape; properties are in column ordinal order."""

    name: str
    properties: tuple[ResultProperty, ...]


@dataclass(frozen=True, slots=True)
class SourceUnit:
    """A named generated source file, relative to the generated package."""

    name: str
    text: str


@dataclass(frozen=True, slots=True)
class GenerationSuccess:
    """A probed call site with its result type (queries only) and dispatcher."""

    descriptor: CallSiteDescriptor
    result: ResultTypeDescriptor | None
    dispatcher: SourceUnit

    @property
    def location(self) -> SourceLocation:
        return self.descriptor.location


@dataclass(frozen=True, slots=True)
class GenerationFailure:
    """A call site that produced diagnostics instead of a dispatcher.

    Query call sites still get a stub result type named result_name so
    that unrelated code importing it keeps working.
    """

    location: SourceLocation
    kind: OperationKind
    result_name: str | None
    diagnostics: tuple[Diagnostic, ...]
    reason: str = field(default="")


GenerationOutcome = GenerationSuccess | GenerationFailure
