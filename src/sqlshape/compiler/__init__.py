"""Compile-time side of sqlshape: discovery, probing, type mapping, codegen."""

from sqlshape.compiler.cache import OutcomeCache, connection_identity, fingerprint
from sqlshape.compiler.codegen import (
    CodegenOptions,
    assemble_package,
    render_dispatcher,
    render_index,
    render_result_type,
    render_stub,
)
from sqlshape.compiler.diagnostics import Diagnostic, DiagnosticCode, Severity
from sqlshape.compiler.discovery import (
    DiscoveryResult,
    SourceFile,
    discover_call_sites,
    iter_source_files,
)
from sqlshape.compiler.examples import example_value
from sqlshape.compiler.models import (
    CallSiteDescriptor,
    ColumnSchema,
    GenerationFailure,
    GenerationOutcome,
    GenerationSuccess,
    OperationKind,
    Placeholder,
    ResultProperty,
    ResultTypeDescriptor,
    SourceLocation,
    SourceUnit,
    TargetType,
)
from sqlshape.compiler.pipeline import (
    CompilationPipeline,
    PassResult,
    PassStats,
    project_sources,
)
from sqlshape.compiler.prober import (
    ProbeFailure,
    ProbeResult,
    ProbeSuccess,
    SchemaProbe,
    SqlAlchemyProbe,
    check_connection,
)
from sqlshape.compiler.sinks import DirectorySink, MemorySink, SourceSink
from sqlshape.compiler.template import ExtractedTemplate, HolePart, TextPart, extract_template
from sqlshape.compiler.typemap import build_result_type, map_column, map_parameter

__all__ = [
    # Pipeline
    "CompilationPipeline",
    "PassResult",
    "PassStats",
    "project_sources",
    # Discovery
    "DiscoveryResult",
    "SourceFile",
    "discover_call_sites",
    "iter_source_files",
    # Template extraction
    "ExtractedTemplate",
    "HolePart",
    "TextPart",
    "extract_template",
    # Probing
    "ProbeFailure",
    "ProbeResult",
    "ProbeSuccess",
    "SchemaProbe",
    "SqlAlchemyProbe",
    "check_connection",
    "example_value",
    # Type mapping
    "build_result_type",
    "map_column",
    "map_parameter",
    # Codegen
    "CodegenOptions",
    "assemble_package",
    "render_dispatcher",
    "render_index",
    "render_result_type",
    "render_stub",
    "DirectorySink",
    "MemorySink",
    "SourceSink",
    # Cache
    "OutcomeCache",
    "connection_identity",
    "fingerprint",
    # Diagnostics
    "Diagnostic",
    "DiagnosticCode",
    "Severity",
    # Models
    "CallSiteDescriptor",
    "ColumnSchema",
    "GenerationFailure",
    "GenerationOutcome",
    "GenerationSuccess",
    "OperationKind",
    "Placeholder",
    "ResultProperty",
    "ResultTypeDescriptor",
    "SourceLocation",
    "SourceUnit",
    "TargetType",
]
