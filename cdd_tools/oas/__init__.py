"""OpenAPI contract resolution: normalization, schema types and routes."""

from .normalization import CanonicalDocument, normalize
from .models import AliasModel, EnumModel, Model, ModelField, StructModel, build_models
from .params import ParamSource, ParamStyle, RouteParam
from .bodies import BodyFormat, ParsedLink, RequestBody, ResponseHeader, SecurityRequirement
from .routes import ParsedRoute, RouteKind, derive_handler_name, resolve_routes
from .schemas import ParsedVariant, ScalarKind, TypeDescriptor, TypeKind, resolve

__all__ = [
    "CanonicalDocument",
    "normalize",
    "AliasModel",
    "EnumModel",
    "Model",
    "ModelField",
    "StructModel",
    "build_models",
    "ParamSource",
    "ParamStyle",
    "RouteParam",
    "BodyFormat",
    "ParsedLink",
    "RequestBody",
    "ResponseHeader",
    "SecurityRequirement",
    "ParsedRoute",
    "RouteKind",
    "derive_handler_name",
    "resolve_routes",
    "ParsedVariant",
    "ScalarKind",
    "TypeDescriptor",
    "TypeKind",
    "resolve",
]
