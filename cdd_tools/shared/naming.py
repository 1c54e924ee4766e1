"""Naming utilities for code generation."""

from __future__ import annotations

import re
from functools import lru_cache

RUST_KEYWORDS: frozenset[str] = frozenset({
    "as",
    "async",
    "await",
    "break",
    "const",
    "continue",
    "crate",
    "dyn",
    "else",
    "enum",
    "extern",
    "false",
    "fn",
    "for",
    "if",
    "impl",
    "in",
    "let",
    "loop",
    "match",
    "mod",
    "move",
    "mut",
    "pub",
    "ref",
    "return",
    "self",
    "Self",
    "static",
    "struct",
    "super",
    "trait",
    "true",
    "type",
    "union",
    "unsafe",
    "use",
    "where",
    "while",
})

# Keywords that cannot be written as raw identifiers
_NON_RAW_KEYWORDS: frozenset[str] = frozenset({"crate", "self", "Self", "super"})


@lru_cache(maxsize=1024)
def to_pascal_case(value: str) -> str:
    """Convert a string to PascalCase.

    Examples:
        >>> to_pascal_case("hello_world")
        'HelloWorld'
        >>> to_pascal_case("hello-world")
        'HelloWorld'
        >>> to_pascal_case("helloWorld")
        'HelloWorld'
    """
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    parts = [part for part in re.split(r"[^a-zA-Z0-9]+", value) if part]
    return "".join(
        part[:1].upper() + (part[1:].lower() if part.isupper() else part[1:])
        for part in parts
    )


@lru_cache(maxsize=1024)
def to_snake_case(value: str) -> str:
    """Convert a string to snake_case.

    Examples:
        >>> to_snake_case("HelloWorld")
        'hello_world'
        >>> to_snake_case("hello-world")
        'hello_world'
    """
    # Insert underscore before uppercase letters
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    value = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", value)
    value = re.sub(r"[^a-zA-Z0-9]+", "_", value)
    value = re.sub(r"_+", "_", value)
    return value.lower().strip("_")


@lru_cache(maxsize=512)
def slugify(value: str, *, fallback: str = "operation") -> str:
    """Convert an operation identifier to a snake_case function name.

    Word boundaries are detected on case transitions and on any
    non-alphanumeric separator.

    Examples:
        >>> slugify("getUser")
        'get_user'
        >>> slugify("HTTPServerStatus")
        'http_server_status'
        >>> slugify("---")
        'operation'
    """
    cleaned = to_snake_case(value)
    return cleaned or fallback


@lru_cache(maxsize=1024)
def sanitize_module_name(value: str) -> str:
    """Sanitize a tag or group name for use as a Rust module name.

    Examples:
        >>> sanitize_module_name("User Accounts")
        'user_accounts'
        >>> sanitize_module_name("mod")
        'mod_'
    """
    name = to_snake_case(value) or "default"
    if name[0].isdigit():
        name = f"m_{name}"
    if name in RUST_KEYWORDS:
        name = f"{name}_"
    return name


@lru_cache(maxsize=1024)
def sanitize_field_name(value: str) -> str:
    """Sanitize a JSON property name for use as a Rust field name.

    Examples:
        >>> sanitize_field_name("createdAt")
        'created_at'
        >>> sanitize_field_name("type")
        'r#type'
    """
    sanitized = to_snake_case(value) or "field"
    if sanitized[0].isdigit():
        sanitized = f"field_{sanitized}"
    if sanitized in _NON_RAW_KEYWORDS:
        return f"{sanitized}_"
    if sanitized in RUST_KEYWORDS:
        return f"r#{sanitized}"
    return sanitized


@lru_cache(maxsize=1024)
def sanitize_identifier(value: str) -> str:
    """Make a snake_case value usable as a bare function identifier.

    Raw identifiers are avoided so the name can be embedded in other
    identifiers (``test_<name>``) and in paths.
    """
    if not value:
        return "handler"
    if value[0].isdigit():
        value = f"op_{value}"
    if value in RUST_KEYWORDS:
        value = f"{value}_"
    return value


def ensure_unique(base: str, used: dict[str, int]) -> str:
    """Ensure a name is unique by appending a numeric suffix if needed."""
    if base not in used:
        used[base] = 1
        return base
    used[base] += 1
    return f"{base}_{used[base]}"
