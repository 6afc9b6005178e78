"""Mapping between database types and Python types.

Two directions:

- map_column(): a probed result column (native type name plus
  nullability) to the Python annotation of the generated field.
- map_parameter(): a placeholder's static Python type to the SQLAlchemy
  type used when binding it, both in probes and in generated dispatchers.

Native type names come from the probe's describers: PostgreSQL type names
(``int4``, ``timestamptz``, ``_text`` for arrays), common SQL spellings
(``integer``, ``character varying``), or DB-API type-object categories
(``string``, ``number``) when nothing more specific is known.
"""

from __future__ import annotations

from sqlalchemy import types as sqltypes

from sqlshape.compiler.examples import canonical_type_name
from sqlshape.compiler.models import ColumnSchema, ResultProperty, ResultTypeDescriptor, TargetType
from sqlshape.compiler.naming import property_names
from sqlshape.config.models import PropertyCase
from sqlshape.core.errors import CompileError

ANY = TargetType("typing.Any", ("typing",))

_INT = TargetType("int")
_STR = TargetType("str")
_FLOAT = TargetType("float")
_BOOL = TargetType("bool")
_BYTES = TargetType("bytes")
_DECIMAL = TargetType("decimal.Decimal", ("decimal",))
_DATE = TargetType("datetime.date", ("datetime",))
_TIME = TargetType("datetime.time", ("datetime",))
_DATETIME = TargetType("datetime.datetime", ("datetime",))
_TIMEDELTA = TargetType("datetime.timedelta", ("datetime",))
_UUID = TargetType("uuid.UUID", ("uuid",))

_NATIVE_TYPES: dict[str, TargetType] = {
    # integers
    "int2": _INT,
    "int4": _INT,
    "int8": _INT,
    "smallint": _INT,
    "integer": _INT,
    "int": _INT,
    "bigint": _INT,
    "oid": _INT,
    "rowid": _INT,
    # floating point
    "float4": _FLOAT,
    "float8": _FLOAT,
    "real": _FLOAT,
    "double precision": _FLOAT,
    "double": _FLOAT,
    "float": _FLOAT,
    # exact numerics
    "numeric": _DECIMAL,
    "decimal": _DECIMAL,
    "money": _DECIMAL,
    # text
    "text": _STR,
    "varchar": _STR,
    "character varying": _STR,
    "bpchar": _STR,
    "char": _STR,
    "character": _STR,
    "name": _STR,
    "citext": _STR,
    "xml": _STR,
    "string": _STR,
    # boolean
    "bool": _BOOL,
    "boolean": _BOOL,
    # temporal
    "date": _DATE,
    "time": _TIME,
    "timetz": _TIME,
    "time without time zone": _TIME,
    "time with time zone": _TIME,
    "timestamp": _DATETIME,
    "timestamptz": _DATETIME,
    "timestamp without time zone": _DATETIME,
    "timestamp with time zone": _DATETIME,
    "datetime": _DATETIME,
    "interval": _TIMEDELTA,
    # other
    "uuid": _UUID,
    "bytea": _BYTES,
    "blob": _BYTES,
    "binary": _BYTES,
    "json": ANY,
    "jsonb": ANY,
    # DB-API category with no finer detail
    "number": TargetType("int | float | decimal.Decimal", ("decimal",)),
}

_BIND_TYPES: dict[str, type[sqltypes.TypeEngine]] = {
    "int": sqltypes.Integer,
    "str": sqltypes.String,
    "bool": sqltypes.Boolean,
    "float": sqltypes.Float,
    "Decimal": sqltypes.Numeric,
    "date": sqltypes.Date,
    "datetime": sqltypes.DateTime,
    "time": sqltypes.Time,
    "timedelta": sqltypes.Interval,
    "UUID": sqltypes.Uuid,
    "bytes": sqltypes.LargeBinary,
}


def map_native_type(native_type: str | None, *, column: str = "") -> TargetType:
    """Python type for a native database type name, ignoring nullability.

    Unreported types (None or empty) map to typing.Any.

    Raises:
        CompileError: UNSUPPORTED_COLUMN_TYPE for a reported type with no mapping.
    """
    if not native_type:
        return ANY

    name = " ".join(native_type.lower().split())
    if name.startswith("_") or name.endswith("[]"):
        element_name = name[1:] if name.startswith("_") else name[:-2]
        element = map_native_type(element_name, column=column)
        return TargetType(f"list[{element.annotation}]", element.imports)

    # varchar(255), numeric(10, 2), timestamp(3) with time zone
    if "(" in name:
        head, _, rest = name.partition("(")
        tail = rest.partition(")")[2]
        name = " ".join(f"{head.strip()} {tail.strip()}".split())

    target = _NATIVE_TYPES.get(name)
    if target is None:
        raise CompileError.unsupported_column_type(column, native_type)
    return target


def map_column(column: ColumnSchema, *, name: str | None = None) -> ResultProperty:
    """Map one probed column to a generated property.

    The property is nullable unless the driver positively reported the
    column as non-null.
    """
    target = map_native_type(column.native_type, column=column.name)
    return ResultProperty(
        name=name or column.name,
        column=column.name,
        ordinal=column.ordinal,
        type=target,
        nullable=column.nullable is not False,
        native_type=column.native_type,
    )


def build_result_type(
    name: str,
    columns: list[ColumnSchema] | tuple[ColumnSchema, ...],
    case: PropertyCase = "pascal",
) -> ResultTypeDescriptor:
    """Result type with one property per column, in ordinal order."""
    ordered = sorted(columns, key=lambda c: c.ordinal)
    names = property_names([c.name for c in ordered], case)
    properties = tuple(
        map_column(column, name=prop_name) for column, prop_name in zip(ordered, names, strict=True)
    )
    return ResultTypeDescriptor(name=name, properties=properties)


def map_parameter(type_name: str | None, *, parameter: str = "") -> sqltypes.TypeEngine:
    """SQLAlchemy bind type for a placeholder's static type.

    Raises:
        CompileError: UNSUPPORTED_PARAMETER_TYPE when the type has no mapping.
    """
    return bind_type_class(type_name, parameter=parameter)()


def bind_type_class(type_name: str | None, *, parameter: str = "") -> type[sqltypes.TypeEngine]:
    name = canonical_type_name(type_name)
    if name is None or name not in _BIND_TYPES:
        raise CompileError.unsupported_parameter_type(parameter, type_name)
    return _BIND_TYPES[name]
