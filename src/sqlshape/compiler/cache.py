"""Incremental reuse of generation outcomes between passes.

A call site is re-probed only when something that affects its generated
output changed. fingerprint() hashes exactly those fields; OutcomeCache
keeps the outcomes of the previous pass keyed by fingerprint.
"""

from __future__ import annotations

import hashlib
import json
import threading

import structlog

from sqlshape.compiler.models import CallSiteDescriptor, GenerationOutcome

log = structlog.get_logger(__name__)


def connection_identity(connection_string: str) -> str:
    """Stable identity for a connection string that does not reveal it."""
    return hashlib.sha256(connection_string.encode("utf-8")).hexdigest()[:16]


def fingerprint(descriptor: CallSiteDescriptor) -> str:
    """SHA-256 over every descriptor field that affects generated output."""
    payload = {
        "kind": descriptor.kind.value,
        "result_name": descriptor.result_name,
        "sql": descriptor.sql,
        "parameters": [[p.name, p.type_name] for p in descriptor.parameters],
        "connection_id": descriptor.connection_id,
        "path": descriptor.location.path,
        "line": descriptor.location.line,
        "column": descriptor.location.column,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class OutcomeCache:
    """Fingerprint -> outcome store holding the previous pass.

    Usage per pass: begin_pass(), lookup()/store() for every descriptor,
    end_pass(). Entries not looked up or stored during the pass are
    dropped at end_pass(). A change of generation_key (settings that
    affect every unit, such as property casing) empties the cache.
    """

    def __init__(self) -> None:
        self._previous: dict[str, GenerationOutcome] = {}
        self._current: dict[str, GenerationOutcome] = {}
        self._generation_key: str | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._previous)

    def begin_pass(self, generation_key: str = "") -> None:
        with self._lock:
            if self._generation_key is not None and generation_key != self._generation_key:
                log.info("cache_invalidated", reason="generation_settings_changed")
                self._previous = {}
            self._generation_key = generation_key
            self._current = {}

    def lookup(self, key: str) -> GenerationOutcome | None:
        with self._lock:
            outcome = self._previous.get(key)
            if outcome is not None:
                self._current[key] = outcome
            return outcome

    def store(self, key: str, outcome: GenerationOutcome) -> None:
        with self._lock:
            self._current[key] = outcome

    def end_pass(self) -> None:
        with self._lock:
            dropped = len(self._previous.keys() - self._current.keys())
            self._previous = self._current
            self._current = {}
        if dropped:
            log.debug("cache_entries_dropped", count=dropped)

    def abort_pass(self) -> None:
        """Forget the current pass and keep the previous one intact."""
        with self._lock:
            self._current = {}

    def clear(self) -> None:
        with self._lock:
            self._previous = {}
            self._current = {}
