"""Runtime entry points used by application code.

    from sqlshape.runtime import execute, query

    users = query[User](connection, f"SELECT * FROM users WHERE email = {email}")
    deleted = execute(connection, f"DELETE FROM users WHERE email = {email}")

Neither operation runs the f-string it is given. Each call looks up the
dispatcher generated for its exact source location (file, line, column)
and hands it the connection plus the placeholder values, read from the
t-string interpolations when a Template is passed and otherwise from the
caller's locals and globals. A call that was never bound by
``sqlshape generate`` raises RuntimeDispatchError UNBOUND_CALL_SITE.
"""

from __future__ import annotations

import importlib
import itertools
import os
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import Any

import structlog

from sqlshape.config.constants import DEFAULT_GENERATED_PACKAGE, GENERATED_PACKAGE_ENV
from sqlshape.core.errors import RuntimeDispatchError

log = structlog.get_logger(__name__)

_MISSING = object()


@dataclass(frozen=True, slots=True)
class CallSiteKey:
    filename: str  # normalized absolute path
    line: int
    column: int


@dataclass(frozen=True, slots=True)
class Handler:
    kind: str
    function: Callable[[Any, dict[str, Any]], Any]
    parameters: tuple[str, ...]


class DispatchRegistry:
    """Location -> dispatcher table filled in by generated modules at import."""

    def __init__(self) -> None:
        self._handlers: dict[CallSiteKey, Handler] = {}
        self._lock = threading.Lock()
        self._autoload_attempted = False

    def __len__(self) -> int:
        return len(self._handlers)

    def register(self, key: CallSiteKey, handler: Handler) -> None:
        with self._lock:
            self._handlers[key] = handler

    def lookup(self, key: CallSiteKey) -> Handler | None:
        return self._handlers.get(key)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
            self._autoload_attempted = False

    def autoload(self) -> bool:
        """Import the generated package once; True if it was imported now."""
        with self._lock:
            if self._autoload_attempted:
                return False
            self._autoload_attempted = True

        package = os.environ.get(GENERATED_PACKAGE_ENV, DEFAULT_GENERATED_PACKAGE)
        try:
            importlib.import_module(package)
        except ModuleNotFoundError as e:
            if e.name != package:
                raise
            log.debug("generated_package_not_found", package=package)
            return False
        log.debug("generated_package_loaded", package=package, handlers=len(self))
        return True


registry = DispatchRegistry()


def normalize_filename(filename: str | os.PathLike[str]) -> str:
    return os.path.normcase(os.path.realpath(filename))


def dispatcher(
    kind: str,
    *,
    root: str | os.PathLike[str],
    path: str,
    line: int,
    column: int,
    parameters: tuple[str, ...] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Register the decorated function as the dispatcher of one call site.

    Used by generated code; path is relative to root, the project root
    the generator scanned.
    """

    def decorate(function: Callable[..., Any]) -> Callable[..., Any]:
        key = CallSiteKey(normalize_filename(Path(root) / path), line, column)
        registry.register(key, Handler(kind=kind, function=function, parameters=tuple(parameters)))
        return function

    return decorate


def require_value(value: Any, result_type: str, column: str) -> Any:
    """Return value, or raise if a column declared NOT NULL came back NULL."""
    if value is None:
        raise RuntimeDispatchError.null_column(result_type, column)
    return value


def caller_key(frame: FrameType) -> CallSiteKey:
    """Location of the call expression currently executing in frame."""
    code = frame.f_code
    positions = next(
        itertools.islice(code.co_positions(), frame.f_lasti // 2, None),
        (None, None, None, None),
    )
    line = positions[0] if positions[0] is not None else frame.f_lineno
    column = (positions[2] or 0) + 1
    return CallSiteKey(normalize_filename(code.co_filename), line, column)


def _arguments(parameters: tuple[str, ...], template: Any, frame: FrameType) -> dict[str, Any]:
    interpolations = getattr(template, "interpolations", None)
    if interpolations is not None:
        values = {i.expression.strip(): i.value for i in interpolations}
        missing = [name for name in parameters if name not in values]
        if missing:
            raise RuntimeDispatchError.missing_parameter(missing[0])
        return {name: values[name] for name in parameters}

    arguments: dict[str, Any] = {}
    for name in parameters:
        value = frame.f_locals.get(name, _MISSING)
        if value is _MISSING:
            value = frame.f_globals.get(name, _MISSING)
        if value is _MISSING:
            raise RuntimeDispatchError.missing_parameter(name)
        arguments[name] = value
    return arguments


def _dispatch(kind: str, frame: FrameType, connection: Any, template: Any) -> Any:
    key = caller_key(frame)
    handler = registry.lookup(key)
    if handler is None and registry.autoload():
        handler = registry.lookup(key)
    if handler is None or handler.kind != kind:
        raise RuntimeDispatchError.unbound_call_site(key.filename, key.line, key.column)
    return handler.function(connection, _arguments(handler.parameters, template, frame))


class _BoundQuery:
    __slots__ = ("result_type",)

    def __init__(self, result_type: Any) -> None:
        self.result_type = result_type

    def __call__(self, connection: Any, template: Any) -> list[Any]:
        frame = sys._getframe(1)
        try:
            return _dispatch("query", frame, connection, template)
        finally:
            del frame


class _Query:
    """``query[Row](connection, template)``: rows of the statement as Row instances."""

    def __getitem__(self, result_type: Any) -> _BoundQuery:
        return _BoundQuery(result_type)

    def __call__(self, connection: Any, template: Any) -> list[Any]:
        raise TypeError("query needs a result type: query[Row](connection, template)")


class _Execute:
    """``execute(connection, template)``: the number of affected rows."""

    def __call__(self, connection: Any, template: Any) -> int:
        frame = sys._getframe(1)
        try:
            return _dispatch("execute", frame, connection, template)
        finally:
            del frame


query = _Query()
execute = _Execute()
