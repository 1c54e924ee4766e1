"""Request body, response and security resolution for operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

from cdd_tools.shared.diagnostics import Diagnostics

from .normalization import CanonicalDocument
from .schemas import DEFAULT_DEPTH_BUDGET, ScalarKind, TypeDescriptor, resolve

# Checked in order when picking the response that carries headers and links
RESPONSE_PRIORITY: Final[tuple[str, ...]] = ("200", "201", "2XX", "2xx", "default", "3XX", "3xx")


class BodyFormat(Enum):
    JSON = "json"
    FORM = "form"
    MULTIPART = "multipart"
    TEXT = "text"
    BINARY = "binary"


@dataclass(frozen=True, slots=True)
class RequestBody:
    """The chosen representation of an operation's request body."""

    type: TypeDescriptor
    media_type: str
    format: BodyFormat
    required: bool = False
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ResponseHeader:
    name: str
    type: TypeDescriptor
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ParsedLink:
    """A response link. Parameter values are runtime expressions kept as text."""

    name: str
    operation_id: str | None = None
    operation_ref: str | None = None
    parameters: tuple[tuple[str, str], ...] = ()
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ResponseDetails:
    status: str | None = None
    body_type: TypeDescriptor | None = None
    headers: tuple[ResponseHeader, ...] = ()
    links: tuple[ParsedLink, ...] = ()


class SecuritySchemeKind(Enum):
    API_KEY = "apiKey"
    HTTP = "http"
    OAUTH2 = "oauth2"
    OPENID_CONNECT = "openIdConnect"
    MUTUAL_TLS = "mutualTLS"


@dataclass(frozen=True, slots=True)
class SecuritySchemeInfo:
    kind: SecuritySchemeKind
    parameter_name: str | None = None
    location: str | None = None
    scheme: str | None = None
    bearer_format: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class SecurityRequirement:
    """One scheme of a requirement group; entries on a route are AND-combined."""

    scheme_name: str
    scopes: tuple[str, ...] = field(default=())
    scheme: SecuritySchemeInfo | None = None


def is_json_media_type(media_type: str) -> bool:
    base = media_type.split(";", 1)[0].strip().lower()
    return base == "application/json" or base.endswith("+json")


def body_format(media_type: str) -> BodyFormat:
    base = media_type.split(";", 1)[0].strip().lower()
    if is_json_media_type(base):
        return BodyFormat.JSON
    if base == "application/x-www-form-urlencoded":
        return BodyFormat.FORM
    if base == "multipart/form-data" or base.startswith("multipart/"):
        return BodyFormat.MULTIPART
    if base.startswith("text/"):
        return BodyFormat.TEXT
    return BodyFormat.BINARY


_FORMAT_PREFERENCE: Final[tuple[BodyFormat, ...]] = (
    BodyFormat.JSON,
    BodyFormat.FORM,
    BodyFormat.MULTIPART,
    BodyFormat.TEXT,
    BodyFormat.BINARY,
)


def _follow(
    value: Any,
    section: str,
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> dict[str, Any] | None:
    """Follow one level of ``$ref`` into ``components.<section>``."""
    if not isinstance(value, dict):
        return None
    ref = value.get("$ref")
    if not isinstance(ref, str):
        return value
    name = document.component_name(ref, section)
    target = document.section(section).get(name) if name else document.resolve_ref(ref)
    if not isinstance(target, dict) or "$ref" in target:
        diagnostics.unresolved_ref(ref, section)
        return None
    return target


def resolve_request_body(
    raw: Any,
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> RequestBody | None:
    """Pick the request body representation by content-type preference."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    body = _follow(raw, "requestBodies", document, diagnostics)
    if body is None:
        return None
    content = body.get("content")
    if not isinstance(content, dict) or not content:
        return None

    candidates = [(body_format(media_type), media_type, media) for media_type, media in content.items()]
    chosen = min(
        candidates,
        key=lambda candidate: _FORMAT_PREFERENCE.index(candidate[0]),
    )
    fmt, media_type, media = chosen
    schema = media.get("schema") if isinstance(media, dict) else None

    if schema is not None:
        descriptor = resolve(schema, document, DEFAULT_DEPTH_BUDGET, diagnostics)
    elif fmt is BodyFormat.TEXT:
        descriptor = TypeDescriptor.of_scalar(ScalarKind.STRING)
    elif fmt is BodyFormat.BINARY:
        descriptor = TypeDescriptor.of_scalar(ScalarKind.STRING, "binary")
    else:
        descriptor = TypeDescriptor.dynamic()

    description = body.get("description")
    return RequestBody(
        type=descriptor,
        media_type=media_type,
        format=fmt,
        required=body.get("required") is True,
        description=description if isinstance(description, str) else None,
    )


def _success_keys(responses: dict[str, Any]) -> list[str]:
    numeric = sorted(
        key for key in responses
        if len(key) == 3 and key.isdigit() and key.startswith("2") and key not in ("200", "201")
    )
    keys = [key for key in ("200", "201") if key in responses] + numeric
    keys += [key for key in ("2XX", "2xx") if key in responses]
    return keys


def _json_body_type(
    response: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> TypeDescriptor | None:
    content = response.get("content")
    if not isinstance(content, dict):
        return None
    for media_type, media in content.items():
        if is_json_media_type(media_type) and isinstance(media, dict) and "schema" in media:
            return resolve(media["schema"], document, DEFAULT_DEPTH_BUDGET, diagnostics)
    return None


def _resolve_links(
    response: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> tuple[ParsedLink, ...]:
    links: list[ParsedLink] = []
    for name, raw in (response.get("links") or {}).items():
        link = _follow(raw, "links", document, diagnostics)
        if link is None:
            continue
        parameters = tuple(
            (str(key), value if isinstance(value, str) else str(value))
            for key, value in (link.get("parameters") or {}).items()
        )
        links.append(ParsedLink(
            name=name,
            operation_id=link.get("operationId"),
            operation_ref=link.get("operationRef"),
            parameters=parameters,
            description=link.get("description"),
        ))
    return tuple(links)


def _resolve_headers(
    response: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> tuple[ResponseHeader, ...]:
    headers: list[ResponseHeader] = []
    for name, raw in (response.get("headers") or {}).items():
        if name.lower() == "content-type":
            continue
        header = _follow(raw, "headers", document, diagnostics)
        if header is None:
            continue
        schema = header.get("schema")
        descriptor = (
            resolve(schema, document, DEFAULT_DEPTH_BUDGET, diagnostics)
            if isinstance(schema, dict)
            else TypeDescriptor.of_scalar(ScalarKind.STRING)
        )
        description = header.get("description")
        headers.append(ResponseHeader(
            name=name,
            type=descriptor,
            description=description if isinstance(description, str) else None,
        ))
    return tuple(headers)


def resolve_responses(
    raw: Any,
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> ResponseDetails:
    """Resolve the success body type plus headers and links of the primary response.

    The body type comes from the first 2xx response with a JSON body. Headers
    and links come from the first response present in ``RESPONSE_PRIORITY``
    order, falling back to the first numeric 2xx status.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    if not isinstance(raw, dict):
        return ResponseDetails()
    responses = {str(key): value for key, value in raw.items()}

    body_type = None
    for key in _success_keys(responses):
        response = _follow(responses[key], "responses", document, diagnostics)
        if response is not None:
            body_type = _json_body_type(response, document, diagnostics)
            if body_type is not None:
                break

    status = next((key for key in RESPONSE_PRIORITY if key in responses), None)
    if status is None:
        numeric = _success_keys(responses)
        status = numeric[0] if numeric else None
    if status is None:
        return ResponseDetails(body_type=body_type)

    primary = _follow(responses[status], "responses", document, diagnostics)
    if primary is None:
        return ResponseDetails(status=status, body_type=body_type)
    return ResponseDetails(
        status=status,
        body_type=body_type,
        headers=_resolve_headers(primary, document, diagnostics),
        links=_resolve_links(primary, document, diagnostics),
    )


def _scheme_info(scheme: Any) -> SecuritySchemeInfo | None:
    if not isinstance(scheme, dict):
        return None
    try:
        kind = SecuritySchemeKind(scheme.get("type"))
    except ValueError:
        return None
    return SecuritySchemeInfo(
        kind=kind,
        parameter_name=scheme.get("name"),
        location=scheme.get("in"),
        scheme=scheme.get("scheme"),
        bearer_format=scheme.get("bearerFormat"),
        description=scheme.get("description"),
    )


def resolve_security(
    operation: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> list[SecurityRequirement]:
    """Resolve the effective security requirements of an operation.

    An operation-level ``security`` key (even an empty list) replaces the
    document default. Requirement groups are flattened in order.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    requirements = operation["security"] if "security" in operation else document.data.get("security")
    if not isinstance(requirements, list):
        return []

    schemes = document.section("securitySchemes")
    resolved: list[SecurityRequirement] = []
    for group in requirements:
        if not isinstance(group, dict):
            continue
        for name, scopes in group.items():
            raw_scheme = schemes.get(name)
            scheme = _follow(raw_scheme, "securitySchemes", document, diagnostics) if raw_scheme else None
            resolved.append(SecurityRequirement(
                scheme_name=name,
                scopes=tuple(str(scope) for scope in scopes or ()),
                scheme=_scheme_info(scheme),
            ))
    return resolved
