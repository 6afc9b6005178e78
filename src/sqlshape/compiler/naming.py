"""Identifier naming for generated code."""

from __future__ import annotations

import hashlib
import keyword
import re
from pathlib import PurePosixPath

from sqlshape.config.models import PropertyCase

_WORD_SPLIT = re.compile(r"[\W_]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def pascalize(name: str) -> str:
    """``date_of_birth`` -> ``DateOfBirth``; ``dateOfBirth`` -> ``DateOfBirth``."""
    words = [w for w in _WORD_SPLIT.split(name) if w]
    return "".join(w[:1].upper() + w[1:] for w in words)


def snakify(name: str) -> str:
    """``DateOfBirth`` -> ``date_of_birth``; ``date of birth`` -> ``date_of_birth``."""
    words: list[str] = []
    for word in _WORD_SPLIT.split(name):
        if word:
            words.extend(w for w in _CAMEL_BOUNDARY.split(word) if w)
    return "_".join(w.lower() for w in words)


def safe_identifier(name: str, fallback: str) -> str:
    """Make name usable as a Python identifier (keywords get a trailing underscore)."""
    if not name:
        return fallback
    if name[0].isdigit():
        name = f"_{name}"
    if not name.isidentifier():
        return fallback
    if keyword.iskeyword(name):
        return f"{name}_"
    return name


def property_names(columns: list[str], case: PropertyCase) -> list[str]:
    """Field names for result columns, in ordinal order.

    Names are unique: a repeated name gets its 0-based ordinal appended.
    """
    transform = pascalize if case == "pascal" else snakify
    prefix = "Column" if case == "pascal" else "column"

    names: list[str] = []
    seen: set[str] = set()
    for ordinal, column in enumerate(columns):
        name = safe_identifier(transform(column), f"{prefix}{ordinal}")
        if name in seen:
            name = f"{name}{ordinal}"
        seen.add(name)
        names.append(name)
    return names


def result_module_name(type_name: str) -> str:
    return f"result_{type_name}"


def dispatcher_module_name(path: str, line: int, column: int) -> str:
    """Module name bound to one call site: stem, path hash, line and column."""
    stem = re.sub(r"\W", "_", PurePosixPath(path).stem) or "module"
    digest = hashlib.sha256(path.encode("utf-8")).hexdigest()[:8]
    return f"dispatch_{stem}_{digest}_{line}_{column}"
