"""Example values bound to placeholders while probing.

The database only needs a value of the right type to plan and describe a
statement, so every supported type maps to one fixed value. Values never
vary between runs: the same descriptor always probes with the same
arguments.
"""

from __future__ import annotations

import datetime
import decimal
import uuid

from sqlshape.core.errors import CompileError

_EXAMPLE_VALUES: dict[str, object] = {
    "int": -32,
    "str": "Hello World",
    "bool": True,
    "float": 3.2,
    "Decimal": decimal.Decimal("6.4"),
    "date": datetime.date(2000, 1, 1),
    "datetime": datetime.datetime(2000, 1, 1, 0, 0),
    "time": datetime.time(0, 0),
    "timedelta": datetime.timedelta(microseconds=10),
    "UUID": uuid.UUID("00000000-0000-4000-8000-000000000001"),
    "bytes": b"\x00",
}

_QUALIFIERS = ("builtins.", "datetime.", "decimal.", "uuid.")


def canonical_type_name(type_name: str | None) -> str | None:
    """Strip a well-known module qualifier: ``datetime.date`` -> ``date``."""
    if type_name is None:
        return None
    name = type_name.strip()
    for qualifier in _QUALIFIERS:
        if name.startswith(qualifier):
            return name[len(qualifier) :]
    return name


def supported_type_names() -> frozenset[str]:
    return frozenset(_EXAMPLE_VALUES)


def example_value(type_name: str | None, *, parameter: str = "") -> object:
    """Return the fixed example value for a placeholder's static type.

    Raises:
        CompileError: UNSUPPORTED_PARAMETER_TYPE when the type is unknown
            or could not be inferred.
    """
    name = canonical_type_name(type_name)
    if name is None or name not in _EXAMPLE_VALUES:
        raise CompileError.unsupported_parameter_type(parameter, type_name)
    return _EXAMPLE_VALUES[name]
