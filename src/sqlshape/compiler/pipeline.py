"""The generation pass: discover, reuse or probe, generate, emit.

One run() is one pass over a set of source files:

1. Discover call sites in every file.
2. Look each descriptor up in the OutcomeCache by fingerprint.
3. Probe the rest in parallel on a thread pool; each probe owns its
   connection and transaction.
4. Map columns to result types and render dispatchers.
5. Assemble the generated package and hand it to the sink.

Failures are per call site and become diagnostics. The only pass-level
outcomes are a missing connection string (reported once, nothing
generated) and cancellation (CompileError GENERATION_CANCELLED).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import structlog

from sqlshape.compiler.cache import OutcomeCache, connection_identity, fingerprint
from sqlshape.compiler.codegen import (
    CodegenOptions,
    assemble_package,
    outcome_location,
    render_dispatcher,
)
from sqlshape.compiler.diagnostics import (
    Diagnostic,
    from_compile_error,
    missing_connection_string,
    query_validation_failed,
    sort_diagnostics,
)
from sqlshape.compiler.discovery import SourceFile, discover_call_sites, iter_source_files
from sqlshape.compiler.examples import example_value
from sqlshape.compiler.models import (
    CallSiteDescriptor,
    GenerationFailure,
    GenerationOutcome,
    GenerationSuccess,
    OperationKind,
    SourceUnit,
)
from sqlshape.compiler.prober import ProbeFailure, SchemaProbe, SqlAlchemyProbe
from sqlshape.compiler.sinks import DirectorySink, SourceSink
from sqlshape.compiler.typemap import build_result_type, map_parameter
from sqlshape.config.models import PropertyCase, SqlShapeConfig
from sqlshape.core.errors import CompileError, InternalError
from sqlshape.core.logging import clear_pass_id, set_pass_id

log = structlog.get_logger(__name__)

_CANCEL_POLL_SEC = 0.05


@dataclass
class PassStats:
    files_scanned: int = 0
    call_sites: int = 0
    probed: int = 0
    reused: int = 0
    failed: int = 0
    units_changed: int = 0
    duration_ms: int = 0


@dataclass
class PassResult:
    outcomes: list[GenerationOutcome] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    units: list[SourceUnit] = field(default_factory=list)
    stats: PassStats = field(default_factory=PassStats)

    @property
    def has_errors(self) -> bool:
        return bool(self.diagnostics)


@dataclass
class CompilationPipeline:
    """Runs generation passes; keep one instance to reuse its cache across passes."""

    connection_string: str | None
    probe: SchemaProbe
    cache: OutcomeCache = field(default_factory=OutcomeCache)
    sink: SourceSink | None = None
    options: CodegenOptions = field(default_factory=CodegenOptions)
    property_case: PropertyCase = "pascal"
    max_workers: int = 4

    @classmethod
    def from_config(
        cls,
        config: SqlShapeConfig,
        root: Path,
        *,
        probe: SchemaProbe | None = None,
        cache: OutcomeCache | None = None,
        sink: SourceSink | None = None,
    ) -> CompilationPipeline:
        output_dir = config.generate.output_dir
        return cls(
            connection_string=config.database.resolved_connection_string(),
            probe=probe or SqlAlchemyProbe(config.database.statement_timeout_sec),
            cache=cache or OutcomeCache(),
            sink=sink if sink is not None else DirectorySink(root / output_dir),
            options=CodegenOptions(package_depth=len(PurePosixPath(output_dir).parts)),
            property_case=config.generate.property_case,
            max_workers=config.database.max_workers,
        )

    @property
    def generation_key(self) -> str:
        return f"{self.options.key};case={self.property_case}"

    def run(
        self,
        sources: Iterable[SourceFile],
        cancel: threading.Event | None = None,
    ) -> PassResult:
        """Run one pass over sources.

        Raises:
            CompileError: GENERATION_CANCELLED when cancel is set before the
                pass completes. Nothing is emitted in that case.
        """
        cancel = cancel or threading.Event()
        pass_id = set_pass_id()
        started = time.monotonic()
        try:
            result = self._run(sources, cancel)
        finally:
            clear_pass_id()
        result.stats.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "pass_completed",
            pass_id=pass_id,
            call_sites=result.stats.call_sites,
            probed=result.stats.probed,
            reused=result.stats.reused,
            failed=result.stats.failed,
            diagnostics=len(result.diagnostics),
            duration_ms=result.stats.duration_ms,
        )
        return result

    def _run(self, sources: Iterable[SourceFile], cancel: threading.Event) -> PassResult:
        result = PassResult()

        if self.connection_string is None:
            log.warning("connection_string_missing")
            result.diagnostics.append(missing_connection_string())
            return result
        if cancel.is_set():
            raise CompileError.cancelled(0)

        connection_id = connection_identity(self.connection_string)
        descriptors: list[CallSiteDescriptor] = []
        outcomes: list[GenerationOutcome] = []
        for source in sources:
            result.stats.files_scanned += 1
            discovered = discover_call_sites(source.path, source.text, connection_id=connection_id)
            descriptors.extend(discovered.descriptors)
            outcomes.extend(discovered.failures)
        result.stats.call_sites = len(descriptors) + len(outcomes)

        self.cache.begin_pass(self.generation_key)
        pending: list[tuple[str, CallSiteDescriptor]] = []
        for descriptor in descriptors:
            key = fingerprint(descriptor)
            cached = self.cache.lookup(key)
            if cached is not None:
                log.debug("cache_hit", location=str(descriptor.location))
                result.stats.reused += 1
                outcomes.append(cached)
            else:
                pending.append((key, descriptor))

        try:
            outcomes.extend(self._compile_pending(pending, cancel))
        except CompileError:
            self.cache.abort_pass()
            raise
        self.cache.end_pass()
        result.stats.probed = len(pending)

        package = assemble_package(outcomes)
        result.outcomes = sorted(outcomes, key=outcome_location)
        result.diagnostics = sort_diagnostics(package.diagnostics)
        result.units = package.units
        result.stats.failed = sum(1 for o in outcomes if isinstance(o, GenerationFailure))

        if self.sink is not None:
            for unit in package.units:
                self.sink.emit(unit.name, unit.text)
            result.stats.units_changed = self.sink.commit()
        return result

    def _compile_pending(
        self,
        pending: list[tuple[str, CallSiteDescriptor]],
        cancel: threading.Event,
    ) -> list[GenerationOutcome]:
        if not pending:
            return []

        outcomes: list[GenerationOutcome] = []
        workers = max(1, min(self.max_workers, len(pending)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sqlshape-probe")
        with executor:
            futures: dict[Future[GenerationOutcome | None], str] = {
                executor.submit(self.compile_call_site, descriptor, cancel): key
                for key, descriptor in pending
            }
            remaining: set[Future[Any]] = set(futures)
            while remaining:
                done, remaining = wait(
                    remaining, timeout=_CANCEL_POLL_SEC, return_when=FIRST_COMPLETED
                )
                for future in done:
                    outcome = future.result() if not future.cancelled() else None
                    if outcome is not None:
                        self.cache.store(futures[future], outcome)
                        outcomes.append(outcome)
                if cancel.is_set():
                    not_done = [f for f in remaining if not f.done()]
                    for future in not_done:
                        future.cancel()
                    self.probe.interrupt()
                    wait(remaining)
                    log.info("pass_cancelled", pending=len(not_done))
                    raise CompileError.cancelled(len(not_done))
        return outcomes

    def compile_call_site(
        self,
        descriptor: CallSiteDescriptor,
        cancel: threading.Event | None = None,
    ) -> GenerationOutcome | None:
        """Probe one descriptor and build its outcome; None if cancelled before starting."""
        if cancel is not None and cancel.is_set():
            return None
        location = descriptor.location

        arguments: dict[str, object] = {}
        bind_types: dict[str, Any] = {}
        errors: list[CompileError] = []
        for placeholder in descriptor.parameters:
            try:
                arguments[placeholder.name] = example_value(
                    placeholder.type_name, parameter=placeholder.name
                )
                bind_types[placeholder.name] = map_parameter(
                    placeholder.type_name, parameter=placeholder.name
                )
            except CompileError as e:
                errors.append(e)
        if errors:
            return _failure(descriptor, [from_compile_error(location, e) for e in errors])

        if self.connection_string is None:
            raise InternalError.unexpected("compile_call_site called without a connection string")
        log.debug("probe_started", location=str(location))
        probed = self.probe.probe(self.connection_string, descriptor.sql, arguments, bind_types)
        if isinstance(probed, ProbeFailure):
            return _failure(
                descriptor, [query_validation_failed(location, probed.backend, probed.message)]
            )

        result_type = None
        try:
            if descriptor.kind is OperationKind.QUERY and descriptor.result_name:
                result_type = build_result_type(
                    descriptor.result_name, probed.columns, self.property_case
                )
            dispatcher = render_dispatcher(descriptor, result_type, self.options)
        except CompileError as e:
            return _failure(descriptor, [from_compile_error(location, e)])
        return GenerationSuccess(descriptor=descriptor, result=result_type, dispatcher=dispatcher)


def project_sources(root: Path, config: SqlShapeConfig) -> list[SourceFile]:
    """Source files of a project, skipping the generated package itself."""
    exclude = [*config.generate.exclude_dirs, config.generate.package_name]
    return list(iter_source_files(root, include=config.generate.include, exclude_dirs=exclude))


def _failure(descriptor: CallSiteDescriptor, diagnostics: list[Diagnostic]) -> GenerationFailure:
    return GenerationFailure(
        location=descriptor.location,
        kind=descriptor.kind,
        result_name=descriptor.result_name,
        diagnostics=tuple(diagnostics),
        reason=diagnostics[0].message if diagnostics else "",
    )
