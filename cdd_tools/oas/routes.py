"""
Route resolution - walks paths and webhooks into ``ParsedRoute`` values.

Each operation gets its merged parameters, request body, success response,
security requirements and a handler identifier that is unique within the
document.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.naming import ensure_unique, sanitize_identifier, slugify, to_snake_case

from .bodies import (
    ParsedLink,
    RequestBody,
    ResponseHeader,
    SecurityRequirement,
    resolve_request_body,
    resolve_responses,
    resolve_security,
)
from .normalization import HTTP_METHODS, CanonicalDocument
from .params import ParamSource, RouteParam, resolve_parameters
from .schemas import TypeDescriptor


class RouteKind(Enum):
    STANDARD = "standard"
    WEBHOOK = "webhook"


@dataclass(frozen=True, slots=True)
class ParsedRoute:
    """One resolved operation."""

    path: str
    method: str
    handler_name: str
    params: tuple[RouteParam, ...] = ()
    request_body: RequestBody | None = None
    security: tuple[SecurityRequirement, ...] = ()
    response_type: TypeDescriptor | None = None
    response_headers: tuple[ResponseHeader, ...] = ()
    response_links: tuple[ParsedLink, ...] = ()
    kind: RouteKind = RouteKind.STANDARD
    tags: tuple[str, ...] = field(default=())
    operation_id: str | None = None
    summary: str | None = None
    description: str | None = None
    deprecated: bool = False

    def params_from(self, source: ParamSource) -> list[RouteParam]:
        return [param for param in self.params if param.source is source]

    @property
    def group(self) -> str | None:
        return self.tags[0] if self.tags else None


_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]+")
PATH_VARIABLE = re.compile(r"\{([^}]+)\}")


def path_variables(path: str) -> list[str]:
    """Template variable names of a path, in order of appearance.

    Examples:
        >>> path_variables("/users/{id}/posts/{postId}")
        ['id', 'postId']
    """
    return PATH_VARIABLE.findall(path)


def derive_handler_name(method: str, path: str) -> str:
    """Derive a handler name from the HTTP method and path.

    Examples:
        >>> derive_handler_name("GET", "/users")
        'get_users'
        >>> derive_handler_name("POST", "/users/{id}/activate")
        'post_users_id_activate'
    """
    clean = path.replace("{", "").replace("}", "").replace("/", "_")
    clean = _NON_IDENTIFIER.sub("_", clean).strip("_")
    if not clean:
        return method.lower()
    return to_snake_case(f"{method.lower()}_{clean}")


def handler_name_for(operation: dict[str, Any], method: str, path: str) -> str:
    """Handler identifier: the snake-cased operationId, else derived from method and path."""
    operation_id = operation.get("operationId")
    if isinstance(operation_id, str) and operation_id.strip():
        base = slugify(operation_id, fallback=derive_handler_name(method, path))
    else:
        base = derive_handler_name(method, path)
    return sanitize_identifier(base)


def _iter_operations(path_item: dict[str, Any]) -> Iterator[tuple[str, dict[str, Any]]]:
    for method in HTTP_METHODS:
        operation = path_item.get(method)
        if isinstance(operation, dict):
            yield method, operation
    additional = path_item.get("additionalOperations")
    if isinstance(additional, dict):
        for method, operation in additional.items():
            if isinstance(operation, dict):
                yield str(method).lower(), operation


def _path_item(
    raw: Any,
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    ref = raw.get("$ref")
    if not isinstance(ref, str):
        return raw
    name = document.component_name(ref, "pathItems")
    target = document.section("pathItems").get(name) if name else document.resolve_ref(ref)
    if not isinstance(target, dict):
        diagnostics.unresolved_ref(ref, "path item")
        return None
    # Sibling fields next to $ref override the referenced item
    return {**target, **{key: value for key, value in raw.items() if key != "$ref"}}


def _text(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None


def resolve_operation(
    path: str,
    method: str,
    operation: dict[str, Any],
    path_item: dict[str, Any],
    document: CanonicalDocument,
    *,
    kind: RouteKind = RouteKind.STANDARD,
    handler_name: str | None = None,
    diagnostics: Diagnostics | None = None,
) -> ParsedRoute:
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    params = resolve_parameters(
        path_item.get("parameters"), operation.get("parameters"), document, diagnostics
    )
    responses = resolve_responses(operation.get("responses"), document, diagnostics)
    tags = operation.get("tags")
    operation_id = operation.get("operationId")

    return ParsedRoute(
        path=path,
        method=method.lower(),
        handler_name=handler_name or handler_name_for(operation, method, path),
        params=tuple(params),
        request_body=resolve_request_body(operation.get("requestBody"), document, diagnostics),
        security=tuple(resolve_security(operation, document, diagnostics)),
        response_type=responses.body_type,
        response_headers=responses.headers,
        response_links=responses.links,
        kind=kind,
        tags=tuple(str(tag) for tag in tags) if isinstance(tags, list) else (),
        operation_id=operation_id if isinstance(operation_id, str) else None,
        summary=_text(operation.get("summary")) or _text(path_item.get("summary")),
        description=_text(operation.get("description")) or _text(path_item.get("description")),
        deprecated=operation.get("deprecated") is True,
    )


def resolve_routes(
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> list[ParsedRoute]:
    """Resolve every operation under ``paths`` and ``webhooks``, in document order."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    used: dict[str, int] = {}
    routes: list[ParsedRoute] = []

    for section, kind in (("paths", RouteKind.STANDARD), ("webhooks", RouteKind.WEBHOOK)):
        entries = document.data.get(section)
        if not isinstance(entries, dict):
            continue
        for path, raw_item in entries.items():
            path_item = _path_item(raw_item, document, diagnostics)
            if path_item is None:
                continue
            for method, operation in _iter_operations(path_item):
                name = ensure_unique(handler_name_for(operation, method, path), used)
                routes.append(resolve_operation(
                    str(path),
                    method,
                    operation,
                    path_item,
                    document,
                    kind=kind,
                    handler_name=name,
                    diagnostics=diagnostics,
                ))
    return routes
