"""
Parameter resolution for operations.

Handles the ``style``/``explode`` defaults of each parameter location and the
Swagger 2.0 ``collectionFormat`` flag.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

from cdd_tools.shared.diagnostics import Diagnostics

from .normalization import CanonicalDocument
from .schemas import DEFAULT_DEPTH_BUDGET, ScalarKind, TypeDescriptor, resolve


class ParamSource(Enum):
    PATH = "path"
    QUERY = "query"
    QUERY_STRING = "querystring"
    HEADER = "header"
    COOKIE = "cookie"


class ParamStyle(Enum):
    MATRIX = "matrix"
    LABEL = "label"
    FORM = "form"
    SIMPLE = "simple"
    SPACE_DELIMITED = "spaceDelimited"
    PIPE_DELIMITED = "pipeDelimited"
    DEEP_OBJECT = "deepObject"


DEFAULT_STYLES: Final[dict[ParamSource, ParamStyle]] = {
    ParamSource.PATH: ParamStyle.SIMPLE,
    ParamSource.HEADER: ParamStyle.SIMPLE,
    ParamSource.QUERY: ParamStyle.FORM,
    ParamSource.QUERY_STRING: ParamStyle.FORM,
    ParamSource.COOKIE: ParamStyle.FORM,
}

# collectionFormat -> (style, explode); None style means "location default"
COLLECTION_FORMATS: Final[dict[str, tuple[ParamStyle | None, bool]]] = {
    "csv": (None, False),
    "ssv": (ParamStyle.SPACE_DELIMITED, False),
    "tsv": (ParamStyle.SPACE_DELIMITED, False),
    "pipes": (ParamStyle.PIPE_DELIMITED, False),
    "multi": (ParamStyle.FORM, True),
}


@dataclass(frozen=True, slots=True)
class RouteParam:
    """A resolved operation parameter.

    ``(name, source)`` is unique within one route.
    """

    name: str
    source: ParamSource
    type: TypeDescriptor
    required: bool = False
    style: ParamStyle = ParamStyle.SIMPLE
    explode: bool = False
    allow_reserved: bool = False
    deprecated: bool = False
    description: str | None = None
    content_media_type: str | None = None

    @property
    def key(self) -> tuple[str, ParamSource]:
        return self.name, self.source


def resolve_style(
    source: ParamSource,
    style: Any = None,
    explode: Any = None,
    collection_format: Any = None,
) -> tuple[ParamStyle, bool]:
    """Resolve the effective style and explode flag of a parameter.

    Explicit values win. ``collectionFormat`` maps to the equivalent
    style/explode pair. Otherwise the location default applies and only
    ``form`` explodes by default.
    """
    resolved_style: ParamStyle | None = None
    default_explode: bool | None = None

    if isinstance(style, str):
        try:
            resolved_style = ParamStyle(style)
        except ValueError:
            resolved_style = None
    if resolved_style is None and isinstance(collection_format, str):
        mapped = COLLECTION_FORMATS.get(collection_format)
        if mapped is not None:
            resolved_style, default_explode = mapped
            if resolved_style is None:
                resolved_style = DEFAULT_STYLES[source]
    if resolved_style is None:
        resolved_style = DEFAULT_STYLES[source]

    if isinstance(explode, bool):
        return resolved_style, explode
    if default_explode is not None:
        return resolved_style, default_explode
    return resolved_style, resolved_style is ParamStyle.FORM


def _resolve_param_ref(
    param: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> dict[str, Any] | None:
    ref = param.get("$ref")
    if not isinstance(ref, str):
        return param
    name = document.component_name(ref, "parameters")
    target = document.section("parameters").get(name) if name else document.resolve_ref(ref)
    if not isinstance(target, dict) or "$ref" in target:
        diagnostics.unresolved_ref(ref, "parameter")
        return None
    return target


def _param_type(
    param: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics,
) -> tuple[TypeDescriptor, str | None]:
    schema = param.get("schema")
    if isinstance(schema, dict):
        return resolve(schema, document, DEFAULT_DEPTH_BUDGET, diagnostics), None

    content = param.get("content")
    if isinstance(content, dict) and content:
        media_type, media = next(iter(content.items()))
        media_schema = media.get("schema") if isinstance(media, dict) else None
        return resolve(media_schema, document, DEFAULT_DEPTH_BUDGET, diagnostics), media_type

    return TypeDescriptor.of_scalar(ScalarKind.STRING), None


def resolve_parameter(
    param: Any,
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> RouteParam | None:
    """Resolve one parameter object (or reference); None when unusable."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    if not isinstance(param, dict):
        return None
    resolved = _resolve_param_ref(param, document, diagnostics)
    if resolved is None:
        return None

    name = resolved.get("name")
    try:
        source = ParamSource(resolved.get("in"))
    except ValueError:
        return None
    if not isinstance(name, str) or not name:
        return None

    style, explode = resolve_style(
        source,
        resolved.get("style"),
        resolved.get("explode"),
        resolved.get("collectionFormat"),
    )
    descriptor, media_type = _param_type(resolved, document, diagnostics)
    required = source is ParamSource.PATH or resolved.get("required") is True
    if not required:
        descriptor = TypeDescriptor.optional(descriptor)

    description = resolved.get("description")
    return RouteParam(
        name=name,
        source=source,
        type=descriptor,
        required=required,
        style=style,
        explode=explode,
        allow_reserved=resolved.get("allowReserved") is True,
        deprecated=resolved.get("deprecated") is True,
        description=description if isinstance(description, str) else None,
        content_media_type=media_type,
    )


def resolve_parameters(
    path_level: Any,
    operation_level: Any,
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> list[RouteParam]:
    """Merge path-level and operation-level parameters.

    Operation-level entries override path-level ones with the same name and
    location; first-seen order is kept.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    merged: dict[tuple[str, ParamSource], RouteParam] = {}
    for group in (path_level, operation_level):
        if not isinstance(group, list):
            continue
        for raw in group:
            param = resolve_parameter(raw, document, diagnostics)
            if param is not None:
                merged[param.key] = param
    return list(merged.values())
