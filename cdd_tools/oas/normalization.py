"""
Document normalization - rewrites every supported dialect into one canonical shape.

Steps run in a fixed order because each one can create schema nodes the next
one has to see:

0. Swagger 2.0 documents are lifted into the OpenAPI 3 layout.
1. Boolean schemas become object schemas.
2. ``nullable`` / ``x-nullable`` flags are folded into the type.
3. ``const`` becomes a single-value ``enum``.

The input mapping is never mutated; ``normalize`` works on a deep copy.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Final, Iterator

from cdd_tools.shared.errors import DialectError

from .refs import extract_component_name, normalize_ref_to_local, resolve_pointer

logger = logging.getLogger(__name__)

HTTP_METHODS: Final[tuple[str, ...]] = (
    "get", "put", "post", "delete", "options", "head", "patch", "trace", "query",
)

# Keys whose values are literal instances, never schemas or references
LITERAL_KEYS: Final[frozenset[str]] = frozenset({"example", "examples"})

# Keys whose value is a schema wherever they appear outside a schema
SCHEMA_KEYS: Final[frozenset[str]] = frozenset({"schema", "itemSchema", "contentSchema"})

SCHEMA_CHILD_KEYS: Final[tuple[str, ...]] = (
    "items", "not", "contains", "propertyNames", "if", "then", "else",
)
SCHEMA_LIST_KEYS: Final[tuple[str, ...]] = ("prefixItems", "allOf", "anyOf", "oneOf")
SCHEMA_MAP_KEYS: Final[tuple[str, ...]] = (
    "properties", "patternProperties", "dependentSchemas", "$defs",
)
# Only walked when not a plain boolean flag
SCHEMA_OPTIONAL_KEYS: Final[tuple[str, ...]] = (
    "additionalProperties", "unevaluatedProperties", "unevaluatedItems",
)

FALSE_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["__never__"],
}

SWAGGER_SCHEMA_KEYS: Final[tuple[str, ...]] = (
    "type", "format", "items", "enum", "default", "maximum", "minimum",
    "exclusiveMaximum", "exclusiveMinimum", "maxLength", "minLength", "pattern",
    "maxItems", "minItems", "uniqueItems", "multipleOf", "x-nullable",
)

SWAGGER_REF_PREFIXES: Final[dict[str, str]] = {
    "#/definitions/": "#/components/schemas/",
    "#/parameters/": "#/components/parameters/",
    "#/responses/": "#/components/responses/",
}

OAUTH2_FLOWS: Final[dict[str, str]] = {
    "implicit": "implicit",
    "password": "password",
    "application": "clientCredentials",
    "accessCode": "authorizationCode",
}


@dataclass(frozen=True, slots=True)
class CanonicalDocument:
    """A normalized OpenAPI document.

    Built once per input document and treated as read-only afterwards.
    """

    data: dict[str, Any]
    dialect: str
    self_uri: str | None = None
    source_path: str | None = None

    @property
    def components(self) -> dict[str, Any]:
        components = self.data.get("components")
        return components if isinstance(components, dict) else {}

    @property
    def schemas(self) -> dict[str, Any]:
        return self.section("schemas")

    def section(self, name: str) -> dict[str, Any]:
        """Return ``components.<name>`` or an empty mapping."""
        section = self.components.get(name)
        return section if isinstance(section, dict) else {}

    def resolve_ref(self, ref: str) -> Any | None:
        """Resolve a reference inside this document, or None."""
        local = normalize_ref_to_local(ref, self.self_uri)
        if local is None:
            return None
        return resolve_pointer(self.data, local)

    def component_name(self, ref: str, section: str) -> str | None:
        return extract_component_name(ref, self.self_uri, section)


def normalize(document: dict[str, Any], source_path: str | None = None) -> CanonicalDocument:
    """Normalize a raw OpenAPI/Swagger mapping into a ``CanonicalDocument``.

    Raises:
        DialectError: If the version field is missing or unsupported.
    """
    dialect = detect_dialect(document, source_path)
    data = copy.deepcopy(document)

    if dialect == "swagger-2.0":
        data = lift_swagger2(data)

    for transform in (_eliminate_boolean_schema, _fold_nullable, _fold_const):
        _apply_to_schemas(data, transform)

    self_uri = data.get("$self")
    return CanonicalDocument(
        data=data,
        dialect=dialect,
        self_uri=self_uri if isinstance(self_uri, str) else None,
        source_path=source_path,
    )


def detect_dialect(document: dict[str, Any], source_path: str | None = None) -> str:
    """Return ``swagger-2.0`` or ``openapi-<version>``."""
    if "openapi" in document:
        version = str(document["openapi"])
        if not version.startswith("3."):
            raise DialectError(f"unsupported version '{version}'", "openapi", source_path)
        return f"openapi-{version}"
    if "swagger" in document:
        version = str(document["swagger"])
        if version != "2.0":
            raise DialectError(f"unsupported version '{version}'", "swagger", source_path)
        return "swagger-2.0"
    raise DialectError("missing 'openapi' or 'swagger' version field", "unknown", source_path)


# =============================================================================
# Schema traversal
# =============================================================================

SchemaTransform = Callable[[Any], Any]


def _apply_to_schemas(document: dict[str, Any], transform: SchemaTransform) -> None:
    """Apply ``transform`` to every schema node reachable from the document roots."""
    for key, value in document.items():
        if key == "components" and isinstance(value, dict):
            for section, content in value.items():
                if section == "schemas" and isinstance(content, dict):
                    for name in list(content):
                        content[name] = _walk_schema(content[name], transform)
                else:
                    _walk_document(content, transform)
        elif key == "definitions" and isinstance(value, dict):
            for name in list(value):
                value[name] = _walk_schema(value[name], transform)
        else:
            _walk_document(value, transform)


def _walk_document(node: Any, transform: SchemaTransform) -> None:
    if isinstance(node, dict):
        for key in list(node):
            if key in LITERAL_KEYS or key.startswith("$dynamic"):
                continue
            if key in SCHEMA_KEYS:
                node[key] = _walk_schema(node[key], transform)
            else:
                _walk_document(node[key], transform)
    elif isinstance(node, list):
        for item in node:
            _walk_document(item, transform)


def _walk_schema(schema: Any, transform: SchemaTransform) -> Any:
    """Transform a schema node, then recurse into its subschema positions."""
    schema = transform(schema)
    if not isinstance(schema, dict):
        return schema

    for key in SCHEMA_CHILD_KEYS:
        if key in schema:
            schema[key] = _walk_schema(schema[key], transform)
    for key in SCHEMA_LIST_KEYS:
        members = schema.get(key)
        if isinstance(members, list):
            schema[key] = [_walk_schema(member, transform) for member in members]
    for key in SCHEMA_MAP_KEYS:
        members = schema.get(key)
        if isinstance(members, dict):
            for name in list(members):
                members[name] = _walk_schema(members[name], transform)
    for key in SCHEMA_OPTIONAL_KEYS:
        if key in schema and not isinstance(schema[key], bool):
            schema[key] = _walk_schema(schema[key], transform)
    return schema


def _eliminate_boolean_schema(schema: Any) -> Any:
    if schema is True:
        return {}
    if schema is False:
        return copy.deepcopy(FALSE_SCHEMA)
    return schema


def _fold_nullable(schema: Any) -> Any:
    if not isinstance(schema, dict):
        return schema
    if "nullable" not in schema and "x-nullable" not in schema:
        return schema

    nullable = schema.pop("nullable", False) is True
    nullable = schema.pop("x-nullable", False) is True or nullable
    if not nullable:
        return schema

    declared = schema.get("type")
    if isinstance(declared, str):
        if declared != "null":
            schema["type"] = [declared, "null"]
        return schema
    if isinstance(declared, list):
        if "null" not in declared:
            declared.append("null")
        return schema
    # No declared type: the null branch becomes an explicit alternation
    return {"anyOf": [schema, {"type": "null"}]}


def infer_literal_type(value: Any) -> str:
    """Infer a JSON Schema type name from a literal value."""
    # bool is checked first since it subclasses int
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "null"


def _fold_const(schema: Any) -> Any:
    if not isinstance(schema, dict) or "const" not in schema:
        return schema
    value = schema.pop("const")
    existing = schema.get("enum")
    if not isinstance(existing, list):
        schema["enum"] = [value]
    elif any(type(item) is type(value) and item == value for item in existing):
        # const narrows an enum that already allows it
        schema["enum"] = [value]
    schema.setdefault("type", infer_literal_type(value))
    return schema


# =============================================================================
# Swagger 2.0 lifting
# =============================================================================

def lift_swagger2(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a Swagger 2.0 mapping into the OpenAPI 3 layout (in place)."""
    _rewrite_refs(data)

    consumes = data.pop("consumes", None) or ["application/json"]
    produces = data.pop("produces", None) or ["application/json"]

    components: dict[str, Any] = data.setdefault("components", {})
    if "definitions" in data:
        components["schemas"] = data.pop("definitions")

    body_components: set[str] = set()
    if isinstance(data.get("parameters"), dict):
        parameters: dict[str, Any] = {}
        request_bodies: dict[str, Any] = {}
        for name, param in data.pop("parameters").items():
            if isinstance(param, dict) and param.get("in") == "body":
                request_bodies[name] = _lift_body_param(param, consumes)
                body_components.add(name)
            else:
                parameters[name] = _lift_param(param)
        if parameters:
            components["parameters"] = parameters
        if request_bodies:
            components["requestBodies"] = request_bodies

    if isinstance(data.get("responses"), dict):
        components["responses"] = {
            name: _lift_response(response, produces)
            for name, response in data.pop("responses").items()
        }

    if isinstance(data.get("securityDefinitions"), dict):
        components["securitySchemes"] = {
            name: _lift_security_scheme(scheme)
            for name, scheme in data.pop("securityDefinitions").items()
        }

    host = data.pop("host", None)
    base_path = data.pop("basePath", None)
    schemes = data.pop("schemes", None) or ["https"]
    if host:
        data["servers"] = [{"url": f"{scheme}://{host}{base_path or ''}"} for scheme in schemes]
    elif base_path:
        data["servers"] = [{"url": base_path}]

    for path_item in _iter_mappings(data.get("paths")):
        _lift_path_item(path_item, consumes, produces, body_components)

    del data["swagger"]
    data = {"openapi": "3.0.3", **data}
    logger.debug("Lifted Swagger 2.0 document into OpenAPI 3 layout")
    return data


def _iter_mappings(section: Any) -> Iterator[dict[str, Any]]:
    if isinstance(section, dict):
        for value in section.values():
            if isinstance(value, dict):
                yield value


def _rewrite_refs(node: Any) -> None:
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str):
            for old, new in SWAGGER_REF_PREFIXES.items():
                if ref.startswith(old):
                    node["$ref"] = new + ref[len(old):]
                    break
        for key, value in node.items():
            if key not in LITERAL_KEYS:
                _rewrite_refs(value)
    elif isinstance(node, list):
        for item in node:
            _rewrite_refs(item)


def _lift_schema_fields(source: dict[str, Any]) -> dict[str, Any]:
    schema: dict[str, Any] = {}
    for key in SWAGGER_SCHEMA_KEYS:
        if key in source:
            schema[key] = source.pop(key)
    if schema.get("type") == "file":
        schema["type"] = "string"
        schema["format"] = "binary"
    items = schema.get("items")
    if isinstance(items, dict) and items.get("type") == "file":
        schema["items"] = {"type": "string", "format": "binary"}
    return schema


def _lift_param(param: Any) -> Any:
    if not isinstance(param, dict) or "$ref" in param or "schema" in param:
        return param
    lifted = dict(param)
    lifted["schema"] = _lift_schema_fields(lifted)
    return lifted


def _lift_body_param(param: dict[str, Any], consumes: list[str]) -> dict[str, Any]:
    schema = param.get("schema", {})
    body: dict[str, Any] = {
        "content": {media_type: {"schema": copy.deepcopy(schema)} for media_type in consumes},
    }
    if param.get("description"):
        body["description"] = param["description"]
    if param.get("required"):
        body["required"] = True
    return body


def _lift_form_params(params: list[dict[str, Any]], consumes: list[str]) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    has_file = False
    for param in params:
        schema = _lift_schema_fields(dict(param))
        if schema.get("format") == "binary":
            has_file = True
        if param.get("description"):
            schema["description"] = param["description"]
        properties[param["name"]] = schema
        if param.get("required"):
            required.append(param["name"])

    if has_file or "multipart/form-data" in consumes:
        media_type = "multipart/form-data"
    else:
        media_type = "application/x-www-form-urlencoded"

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    body: dict[str, Any] = {"content": {media_type: {"schema": schema}}}
    if required:
        body["required"] = True
    return body


def _lift_response(response: Any, produces: list[str]) -> Any:
    if not isinstance(response, dict) or "$ref" in response:
        return response
    lifted = dict(response)
    if "schema" in lifted:
        schema = lifted.pop("schema")
        lifted["content"] = {
            media_type: {"schema": copy.deepcopy(schema)} for media_type in produces
        }
    lifted.pop("examples", None)
    headers = lifted.get("headers")
    if isinstance(headers, dict):
        lifted["headers"] = {name: _lift_param(header) for name, header in headers.items()}
    return lifted


def _lift_security_scheme(scheme: Any) -> Any:
    if not isinstance(scheme, dict):
        return scheme
    kind = scheme.get("type")
    if kind == "basic":
        lifted = {"type": "http", "scheme": "basic"}
    elif kind == "oauth2":
        flow: dict[str, Any] = {"scopes": scheme.get("scopes", {})}
        for key in ("authorizationUrl", "tokenUrl"):
            if key in scheme:
                flow[key] = scheme[key]
        flow_name = OAUTH2_FLOWS.get(scheme.get("flow", ""), "implicit")
        lifted = {"type": "oauth2", "flows": {flow_name: flow}}
    else:
        lifted = {key: value for key, value in scheme.items() if key != "description"}
    if scheme.get("description"):
        lifted["description"] = scheme["description"]
    return lifted


def _lift_param_list(
    params: list[Any],
    consumes: list[str],
    body_components: set[str],
) -> tuple[list[Any], dict[str, Any] | None]:
    kept: list[Any] = []
    request_body: dict[str, Any] | None = None
    form_params: list[dict[str, Any]] = []

    for param in params:
        if not isinstance(param, dict):
            continue
        ref = param.get("$ref")
        if isinstance(ref, str):
            name = extract_component_name(ref, None, "parameters")
            if name in body_components:
                request_body = {"$ref": f"#/components/requestBodies/{name}"}
            else:
                kept.append(param)
            continue
        location = param.get("in")
        if location == "body":
            request_body = _lift_body_param(param, consumes)
        elif location == "formData":
            form_params.append(param)
        else:
            kept.append(_lift_param(param))

    if form_params and request_body is None:
        request_body = _lift_form_params(form_params, consumes)
    return kept, request_body


def _lift_path_item(
    path_item: dict[str, Any],
    consumes: list[str],
    produces: list[str],
    body_components: set[str],
) -> None:
    shared_body: dict[str, Any] | None = None
    if isinstance(path_item.get("parameters"), list):
        kept, shared_body = _lift_param_list(path_item["parameters"], consumes, body_components)
        path_item["parameters"] = kept

    for method in HTTP_METHODS:
        operation = path_item.get(method)
        if not isinstance(operation, dict):
            continue
        op_consumes = operation.pop("consumes", None) or consumes
        op_produces = operation.pop("produces", None) or produces

        if isinstance(operation.get("parameters"), list):
            kept, request_body = _lift_param_list(
                operation["parameters"], op_consumes, body_components
            )
            operation["parameters"] = kept
            if request_body is not None:
                operation["requestBody"] = request_body
        if shared_body is not None and "requestBody" not in operation:
            operation["requestBody"] = copy.deepcopy(shared_body)

        responses = operation.get("responses")
        if isinstance(responses, dict):
            operation["responses"] = {
                status: _lift_response(response, op_produces)
                for status, response in responses.items()
            }
