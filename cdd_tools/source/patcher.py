"""
Structural patch engine for generated Rust sources.

Every mutation locates its target in a fresh parse of the input text and
splices new text at exact offsets. Text outside the splice is returned
unchanged, and a request whose target state already exists returns the input
as is, so applying a request twice equals applying it once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache, singledispatch
from typing import Union

from cdd_tools.shared.errors import DeclarationNotFound, FieldNotFound

from .syntax import DeclHandle, Node, NodeKind, Tree, parse

INDENT_UNIT = "    "


@dataclass(frozen=True, slots=True)
class AddAttribute:
    """Add an attribute to a struct or enum.

    With ``group`` set (e.g. ``"derive"``), ``attribute`` is one entry of that
    list attribute; otherwise it is a complete ``#[...]`` attribute.
    """

    declaration: str
    attribute: str
    group: str | None = None


@dataclass(frozen=True, slots=True)
class AddField:
    declaration: str
    name: str
    type: str
    visibility: str = "pub"
    attributes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RetypeField:
    declaration: str
    field: str
    new_type: str


@dataclass(frozen=True, slots=True)
class AddImport:
    text: str


@dataclass(frozen=True, slots=True)
class InsertRegistration:
    """Append ``statement`` to a function body unless ``dedupe_key`` is already there."""

    function: str
    statement: str
    dedupe_key: str


MutationRequest = Union[AddAttribute, AddField, RetypeField, AddImport, InsertRegistration]


@lru_cache(maxsize=256)
def attribute_pattern(name: str) -> re.Pattern[str]:
    """Word-bounded pattern for one list-attribute entry, path prefix optional."""
    last = name.rsplit("::", 1)[-1]
    return re.compile(rf"(?<![A-Za-z0-9_]){re.escape(last)}(?![A-Za-z0-9_])")


@lru_cache(maxsize=256)
def dedupe_pattern(key: str) -> re.Pattern[str]:
    """Match ``key`` as a whole identifier path, leading path segments allowed."""
    return re.compile(rf"(?<![A-Za-z0-9_]){re.escape(key)}(?![A-Za-z0-9_])")


def _compact(text: str) -> str:
    return re.sub(r"\s+", "", text)


def _line_start(text: str, offset: int) -> int:
    return text.rfind("\n", 0, offset) + 1


def _indent_at(text: str, offset: int) -> str:
    """Leading whitespace of the line containing ``offset``."""
    start = _line_start(text, offset)
    line = text[start:offset]
    return line[:len(line) - len(line.lstrip())]


def _splice(text: str, start: int, end: int, insert: str) -> str:
    return text[:start] + insert + text[end:]


def _declaration(
    tree: Tree,
    name: str,
    kinds: frozenset[NodeKind],
    source_path: str | None,
) -> tuple[DeclHandle, Node]:
    handle = tree.find_declaration(name, kinds)
    if handle is None:
        raise DeclarationNotFound(name, source_path)
    return handle, tree.node(handle)


def apply(text: str, request: MutationRequest, source_path: str | None = None) -> str:
    """Apply one mutation request and return the new text.

    Raises:
        ParseFailure: If ``text`` cannot be parsed.
        DeclarationNotFound: If the target struct, enum or function is absent.
        FieldNotFound: If a retyped field does not exist.
    """
    return _apply(request, text, source_path)


@singledispatch
def _apply(request: object, text: str, source_path: str | None) -> str:
    raise TypeError(f"Unsupported mutation request: {type(request).__name__}")


@_apply.register
def _add_attribute(request: AddAttribute, text: str, source_path: str | None) -> str:
    tree = parse(text, source_path)
    handle, node = _declaration(
        tree, request.declaration, frozenset({NodeKind.STRUCT, NodeKind.ENUM}), source_path
    )
    attributes = tree.attributes(handle)

    if request.group is not None:
        groups = [
            attr for attr in attributes
            if attr.attr_path == request.group and attr.attr_args is not None
        ]
        pattern = attribute_pattern(request.attribute)
        for attr in groups:
            open_paren, close_paren = attr.attr_args
            if pattern.search(text, open_paren + 1, close_paren):
                return text
        if groups:
            open_paren, close_paren = groups[-1].attr_args
            inner = text[open_paren + 1:close_paren]
            content_end = open_paren + 1 + len(inner.rstrip())
            if not inner.strip():
                return _splice(text, open_paren + 1, close_paren, request.attribute)
            separator = " " if inner.rstrip().endswith(",") else ", "
            return _splice(text, content_end, content_end, f"{separator}{request.attribute}")
        attribute = f"#[{request.group}({request.attribute})]"
    else:
        attribute = request.attribute.strip()
        if not attribute.startswith("#"):
            attribute = f"#[{attribute}]"
        region = _compact(text[node.start:node.item_start])
        if _compact(attribute) in region:
            return text

    line_start = _line_start(text, node.item_start)
    prefix = text[line_start:node.item_start]
    if prefix.strip():
        return _splice(text, node.item_start, node.item_start, f"{attribute} ")
    return _splice(text, line_start, line_start, f"{prefix}{attribute}\n")


@_apply.register
def _add_field(request: AddField, text: str, source_path: str | None) -> str:
    tree = parse(text, source_path)
    handle, node = _declaration(tree, request.declaration, frozenset({NodeKind.STRUCT}), source_path)
    if tree.find_field(handle, request.name) is not None:
        return text
    if node.body is None or text[node.body[0]] != "{":
        raise DeclarationNotFound(f"{request.declaration} (record struct)", source_path)

    open_brace, close_brace = node.body
    fields = tree.fields(handle)
    visibility = f"{request.visibility} " if request.visibility else ""
    declaration = f"{visibility}{request.name}: {request.type}"

    close_line = _line_start(text, close_brace)
    multiline = not text[close_line:close_brace].strip() and close_line > open_brace

    if not multiline:
        # Single-line body: `struct A {}` or `struct A { a: i32 }`
        outer = _indent_at(text, node.item_start)
        indent = outer + INDENT_UNIT
        lines = [f"{indent}{attr}" for attr in request.attributes]
        lines.append(f"{indent}{declaration},")
        if fields:
            last = fields[-1]
            tail = text[last.end:close_brace]
            separator = "" if tail.strip().startswith(",") else ","
            return (
                text[:last.end] + separator + tail.rstrip() + "\n"
                + "\n".join(lines) + "\n" + outer + text[close_brace:]
            )
        return text[:open_brace + 1] + "\n" + "\n".join(lines) + "\n" + outer + text[close_brace:]

    if fields:
        indent = _indent_at(text, fields[-1].start)
    else:
        indent = _indent_at(text, close_brace) + INDENT_UNIT
    lines = [f"{indent}{attr}" for attr in request.attributes]
    lines.append(f"{indent}{declaration},")
    result = _splice(text, close_line, close_line, "\n".join(lines) + "\n")

    if fields:
        last = fields[-1]
        if not text[last.end:close_brace].lstrip().startswith(","):
            result = _splice(result, last.end, last.end, ",")
    return result


@_apply.register
def _retype_field(request: RetypeField, text: str, source_path: str | None) -> str:
    tree = parse(text, source_path)
    handle, _ = _declaration(tree, request.declaration, frozenset({NodeKind.STRUCT}), source_path)
    field_node = tree.find_field(handle, request.field)
    if field_node is None or field_node.type_span is None:
        raise FieldNotFound(request.declaration, request.field, source_path)
    start, end = field_node.type_span
    if text[start:end] == request.new_type:
        return text
    return _splice(text, start, end, request.new_type)


def _import_exists(text: str, wanted: str) -> bool:
    if "\n" in wanted:
        return wanted in text
    for line in text.splitlines():
        if line.strip().rstrip(";").strip() == wanted:
            return True
    return False


@_apply.register
def _add_import(request: AddImport, text: str, source_path: str | None) -> str:
    import_text = request.text.strip()
    if _import_exists(text, import_text.rstrip(";").strip()):
        return text
    if not text:
        return f"{import_text}\n"
    newline = text.find("\n")
    if newline == -1:
        return f"{text}\n{import_text}\n"
    return _splice(text, newline + 1, newline + 1, f"{import_text}\n")


@_apply.register
def _insert_registration(request: InsertRegistration, text: str, source_path: str | None) -> str:
    tree = parse(text, source_path)
    handle, node = _declaration(tree, request.function, frozenset({NodeKind.FUNCTION}), source_path)
    body = tree.function_body(handle)
    if body is None:
        raise DeclarationNotFound(f"{request.function} (function body)", source_path)

    open_brace, close_brace = body
    if dedupe_pattern(request.dedupe_key).search(text, open_brace + 1, close_brace):
        return text

    statement_lines = request.statement.strip("\n").splitlines()
    close_line = _line_start(text, close_brace)
    closing_prefix = text[close_line:close_brace]

    if close_line > open_brace and not closing_prefix.strip():
        indent = closing_prefix + INDENT_UNIT
        for line in reversed(text[open_brace + 1:close_line].splitlines()):
            if line.strip():
                indent = line[:len(line) - len(line.lstrip())]
                break
        block = "".join(f"{indent}{line.strip()}\n" for line in statement_lines)
        return _splice(text, close_line, close_line, block)

    outer = _indent_at(text, node.item_start)
    indent = outer + INDENT_UNIT
    content_end = open_brace + 1 + len(text[open_brace + 1:close_brace].rstrip())
    block = "".join(f"\n{indent}{line.strip()}" for line in statement_lines)
    return text[:content_end] + block + f"\n{outer}" + text[close_brace:]
