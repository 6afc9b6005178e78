"""Interpolated-literal template extraction.

Turns the parts of an f-string (or t-string) into a parameterized SQL
statement plus the ordered list of placeholder names. Each hole becomes a
SQLAlchemy named bind (``:name``); literal text is copied verbatim after
Python's own un-escaping, except that colons text() would read as binds are
backslash-escaped and a space separates a hole from text that would fuse
with its bind name.

The core, extract_template(), is pure and works on plain TextPart/HolePart
values. parts_from_node() adapts a tree-sitter ``string`` (or
``concatenated_string``) node into those parts.
"""

from __future__ import annotations

import keyword
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlshape.core.errors import CompileError

# Mirrors SQLAlchemy's bind detection in text(): a colon not preceded by a
# word char, colon or backslash, followed by a word char.
_BIND_LIKE = re.compile(r"(?<![:\w\\]):(?=\w)")

# Text touching a hole must not extend or hide its bind: text() rejects a
# bind followed by a colon or preceded by [:\w\\].
_FUSES_BEFORE = re.compile(r"[:\w\\]\Z")
_WORD_START = re.compile(r"\A\w")
_LEADING_COLONS = re.compile(r"\A:+")

_HOLE_DELIMITERS = frozenset({"{", "}"})


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class HolePart:
    """One ``{...}`` hole.

    node_type is the tree-sitter type of the hole expression; decorated is
    set when the hole carries a conversion, format spec or ``=``.
    """

    expression: str
    node_type: str = "identifier"
    decorated: bool = False


TemplatePart = TextPart | HolePart


@dataclass(frozen=True, slots=True)
class ExtractedTemplate:
    statement: str
    parameters: tuple[str, ...]


def extract_template(parts: Sequence[TemplatePart]) -> ExtractedTemplate:
    """Build the parameterized statement and placeholder list.

    Raises:
        CompileError: UNSUPPORTED_EXPRESSION for any hole that is not a
            bare identifier.
    """
    chunks: list[str] = []
    parameters: list[str] = []
    seen: set[str] = set()

    after_hole = False
    for part in parts:
        if isinstance(part, TextPart):
            text = _BIND_LIKE.sub(r"\\:", part.text)
            if after_hole:
                # {id}::int must stay a bind followed by a cast
                text = _LEADING_COLONS.sub(lambda m: "\\:" * len(m.group()), text)
                if _WORD_START.match(text):
                    text = " " + text
            if text:
                chunks.append(text)
                after_hole = False
            continue

        if not _is_simple_identifier(part):
            raise CompileError.unsupported_expression(part.expression)

        name = part.expression
        if chunks and _FUSES_BEFORE.search(chunks[-1]):
            chunks.append(" ")
        chunks.append(f":{name}")
        after_hole = True
        if name not in seen:
            seen.add(name)
            parameters.append(name)

    return ExtractedTemplate(statement="".join(chunks), parameters=tuple(parameters))


def _is_simple_identifier(part: HolePart) -> bool:
    if part.decorated or part.node_type != "identifier":
        return False
    name = part.expression
    return name.isidentifier() and not keyword.iskeyword(name)


# =============================================================================
# tree-sitter adapter
# =============================================================================


def is_template_literal(node: Any) -> bool:
    """True for string nodes (or concatenations) usable as a query template."""
    if node.type == "concatenated_string":
        return all(child.type == "string" for child in node.named_children)
    return node.type == "string" and "b" not in _prefix(node)


def parts_from_node(node: Any, source: bytes) -> list[TemplatePart]:
    """Adapt a tree-sitter string node into template parts.

    Plain (non-interpolated) literals are accepted and yield a single text
    part; bytes literals are rejected.
    """
    if node.type == "concatenated_string":
        parts: list[TemplatePart] = []
        for child in node.named_children:
            parts.extend(parts_from_node(child, source))
        return _merge_text(parts)

    if node.type != "string":
        raise CompileError.unsupported_expression(_node_text(node, source))

    prefix = _prefix(node)
    if "b" in prefix:
        raise CompileError.unsupported_expression(_node_text(node, source))
    interpolated = "f" in prefix or "t" in prefix
    raw = "r" in prefix

    start = node.children[0]
    end = node.children[-1]
    cursor = start.end_byte
    parts = []

    for child in node.children[1:-1]:
        if child.type != "interpolation" or not interpolated:
            continue
        if child.start_byte > cursor:
            parts.append(TextPart(_decode(source[cursor : child.start_byte], raw, interpolated)))
        parts.append(_hole_from_node(child, source))
        cursor = child.end_byte

    if end.start_byte > cursor:
        parts.append(TextPart(_decode(source[cursor : end.start_byte], raw, interpolated)))
    return _merge_text(parts)


def _hole_from_node(node: Any, source: bytes) -> HolePart:
    expression = node.child_by_field_name("expression")
    if expression is None:
        expression = next((c for c in node.named_children), None)
    if expression is None:
        raise CompileError.unsupported_expression(_node_text(node, source))

    decorated = any(
        child != expression and child.type not in _HOLE_DELIMITERS
        for child in node.children
    )
    return HolePart(
        expression=_node_text(expression, source),
        node_type=expression.type,
        decorated=decorated,
    )


def _prefix(node: Any) -> str:
    start = node.children[0] if node.children else None
    if start is None or start.type != "string_start":
        return ""
    text = start.text.decode() if start.text else ""
    return text.rstrip("'\"").lower()


def _decode(raw_bytes: bytes, raw: bool, interpolated: bool) -> str:
    text = raw_bytes.decode("utf-8")
    if interpolated:
        text = text.replace("{{", "{").replace("}}", "}")
    if not raw:
        text = text.encode("latin-1", "backslashreplace").decode("unicode_escape")
    return text


def _merge_text(parts: list[TemplatePart]) -> list[TemplatePart]:
    merged: list[TemplatePart] = []
    for part in parts:
        if isinstance(part, TextPart) and merged and isinstance(merged[-1], TextPart):
            merged[-1] = TextPart(merged[-1].text + part.text)
        else:
            merged.append(part)
    return merged


def _node_text(node: Any, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8")
