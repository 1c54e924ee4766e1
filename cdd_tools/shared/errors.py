"""Custom exceptions for contract sync."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for contract sync errors."""

    def __init__(self, message: str, source_path: str | None = None) -> None:
        self.source_path = source_path
        full_message = f"{message}" if not source_path else f"[{source_path}] {message}"
        super().__init__(full_message)


class DocumentError(SyncError):
    """Raised when the input document is malformed or unreadable.

    Fatal: the whole run is aborted.
    """


class DialectError(DocumentError):
    """Raised for dialect-specific issues."""

    def __init__(
        self,
        message: str,
        dialect: str,
        source_path: str | None = None,
    ) -> None:
        self.dialect = dialect
        super().__init__(f"Dialect '{dialect}': {message}", source_path)


class UnresolvedReference(SyncError):
    """A ``$ref`` that could not be resolved inside the current document.

    Never raised by the resolvers; instances are collected as diagnostics.
    """

    def __init__(
        self,
        ref: str,
        context: str | None = None,
        source_path: str | None = None,
    ) -> None:
        self.ref = ref
        self.context = context
        message = f"Unresolved reference '{ref}'"
        if context:
            message = f"{message} ({context})"
        super().__init__(message, source_path)


class ParseFailure(SyncError):
    """Raised when source text cannot be parsed into a syntax tree."""

    def __init__(
        self,
        message: str,
        offset: int,
        line: int,
        source_path: str | None = None,
    ) -> None:
        self.offset = offset
        self.line = line
        super().__init__(f"line {line}: {message}", source_path)


class DeclarationNotFound(SyncError):
    """Raised when a struct, enum or function cannot be located by name."""

    def __init__(self, name: str, source_path: str | None = None) -> None:
        self.name = name
        super().__init__(f"Declaration '{name}' not found", source_path)


class FieldNotFound(DeclarationNotFound):
    """Raised when a field is missing from an existing declaration."""

    def __init__(
        self,
        declaration: str,
        field: str,
        source_path: str | None = None,
    ) -> None:
        self.field = field
        super().__init__(declaration, source_path)
        # Replace the declaration message with the field-specific one
        message = f"Field '{field}' not found in '{declaration}'"
        self.args = (message if not source_path else f"[{source_path}] {message}",)


class StaleHandleError(SyncError):
    """Raised when a declaration handle is used against a different parse."""


class WriteFailure(SyncError):
    """Raised when a generated file cannot be read or written."""


class ConfigError(SyncError):
    """Raised when the sync configuration is invalid."""
