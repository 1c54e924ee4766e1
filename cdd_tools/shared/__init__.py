"""Shared utilities for contract sync."""

from .loader import (
    load_document,
    parse_document,
)
from .naming import (
    to_pascal_case,
    to_snake_case,
    slugify,
    sanitize_module_name,
    sanitize_field_name,
    sanitize_identifier,
    ensure_unique,
    RUST_KEYWORDS,
)
from .errors import (
    SyncError,
    DocumentError,
    DialectError,
    UnresolvedReference,
    ParseFailure,
    DeclarationNotFound,
    FieldNotFound,
    StaleHandleError,
    WriteFailure,
    ConfigError,
)
from .diagnostics import Diagnostics

__all__ = [
    # Document loading
    "load_document",
    "parse_document",
    # Naming utilities
    "to_pascal_case",
    "to_snake_case",
    "slugify",
    "sanitize_module_name",
    "sanitize_field_name",
    "sanitize_identifier",
    "ensure_unique",
    "RUST_KEYWORDS",
    # Errors
    "SyncError",
    "DocumentError",
    "DialectError",
    "UnresolvedReference",
    "ParseFailure",
    "DeclarationNotFound",
    "FieldNotFound",
    "StaleHandleError",
    "WriteFailure",
    "ConfigError",
    "Diagnostics",
]
