"""
Code emission for actix-web.

Handler stubs, query structs, model declarations and test functions are
rendered from the Jinja2 templates under ``templates/actix``. Short fragments
(extractor types, registration statements) are built inline.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Final, Sequence

from jinja2 import Environment, FileSystemLoader

from cdd_tools.oas.bodies import BodyFormat, ParsedLink, RequestBody, SecurityRequirement
from cdd_tools.oas.models import AliasModel, EnumModel, Model, ModelField, StructModel
from cdd_tools.oas.params import ParamSource
from cdd_tools.oas.refs import pointer_segments
from cdd_tools.oas.routes import PATH_VARIABLE, ParsedRoute
from cdd_tools.oas.schemas import ScalarKind, TypeDescriptor, TypeKind
from cdd_tools.shared.naming import (
    ensure_unique,
    sanitize_field_name,
    sanitize_module_name,
    to_pascal_case,
    to_snake_case,
)

TEMPLATES_DIR: Final[Path] = Path(__file__).parent / "templates" / "actix"

DYNAMIC_TYPE: Final[str] = "serde_json::Value"

# Methods with a dedicated route builder in `actix_web::web`
ROUTE_METHODS: Final[frozenset[str]] = frozenset({
    "get", "post", "put", "delete", "patch", "head", "trace", "options",
})

# Methods with a dedicated `test::TestRequest` constructor
TEST_REQUEST_METHODS: Final[frozenset[str]] = frozenset({
    "get", "post", "put", "delete", "patch",
})

STRING_FORMATS: Final[dict[str, str]] = {
    "uuid": "Uuid",
    "date-time": "DateTime<Utc>",
    "date": "NaiveDate",
    "binary": "Vec<u8>",
}

SAMPLE_PATH_VALUES: Final[dict[str, str]] = {
    "Uuid": "00000000-0000-0000-0000-000000000000",
    "i32": "1",
    "i64": "1",
    "f32": "1.0",
    "f64": "1.0",
    "bool": "true",
    "NaiveDate": "2024-01-01",
}


def rust_str(value: Any) -> str:
    """Escape a value for use inside a Rust string literal."""
    return str(value).replace("\\", "\\\\").replace("\"", "\\\"")


def _doc_lines(*parts: str | None) -> list[str]:
    """Split doc texts into comment lines, separating parts with a blank line."""
    lines: list[str] = []
    for part in parts:
        if not part or not part.strip():
            continue
        if lines:
            lines.append("")
        lines.extend(line.rstrip() for line in part.strip().splitlines())
    return lines


@lru_cache(maxsize=512)
def method_call(method: str) -> str:
    """Route builder call for an HTTP method.

    Examples:
        >>> method_call("GET")
        'get()'
        >>> method_call("query")
        'method(actix_web::http::Method::from_bytes(b"QUERY").unwrap())'
    """
    lower = method.lower()
    if lower in ROUTE_METHODS:
        return f"{lower}()"
    return f"method(actix_web::http::Method::from_bytes(b\"{method.upper()}\").unwrap())"


# =============================================================================
# Templates
# =============================================================================


@dataclass
class GeneratorContext:
    """Context for code generation with cached templates."""
    template_env: Environment = field(init=False)
    _handler_template: Any = field(init=False)
    _query_struct_template: Any = field(init=False)
    _struct_template: Any = field(init=False)
    _enum_template: Any = field(init=False)
    _alias_template: Any = field(init=False)
    _config_template: Any = field(init=False)
    _test_header_template: Any = field(init=False)
    _test_fn_template: Any = field(init=False)

    def __post_init__(self) -> None:
        self.template_env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            auto_reload=False,
        )
        self.template_env.filters["rust_str"] = rust_str
        # Pre-compile templates
        self._handler_template = self.template_env.get_template("handler.rs.jinja")
        self._query_struct_template = self.template_env.get_template("query_struct.rs.jinja")
        self._struct_template = self.template_env.get_template("struct.rs.jinja")
        self._enum_template = self.template_env.get_template("enum.rs.jinja")
        self._alias_template = self.template_env.get_template("alias.rs.jinja")
        self._config_template = self.template_env.get_template("config.rs.jinja")
        self._test_header_template = self.template_env.get_template("test_header.rs.jinja")
        self._test_fn_template = self.template_env.get_template("test_fn.rs.jinja")

    @property
    def handler_template(self):
        return self._handler_template

    @property
    def query_struct_template(self):
        return self._query_struct_template

    @property
    def struct_template(self):
        return self._struct_template

    @property
    def enum_template(self):
        return self._enum_template

    @property
    def alias_template(self):
        return self._alias_template

    @property
    def config_template(self):
        return self._config_template

    @property
    def test_header_template(self):
        return self._test_header_template

    @property
    def test_fn_template(self):
        return self._test_fn_template


# =============================================================================
# Strategy
# =============================================================================


@dataclass
class ActixStrategy:
    """Emits actix-web handlers, registrations, serde models and tests."""

    handlers_module: str = "crate::handlers"
    context: GeneratorContext = field(default_factory=GeneratorContext, repr=False)

    name: ClassVar[str] = "actix"
    registration_function: ClassVar[str] = "config"
    file_extension: ClassVar[str] = "rs"

    # -------------------------------------------------------------------------
    # Types
    # -------------------------------------------------------------------------

    def render_type(self, descriptor: TypeDescriptor | None) -> str:
        """Rust type text for a resolved schema type.

        Unions that are not named components, dynamic schemas and unresolved
        references all become ``serde_json::Value``.
        """
        if descriptor is None:
            return DYNAMIC_TYPE
        kind = descriptor.kind
        if kind is TypeKind.SCALAR:
            return self._scalar_type(descriptor.scalar, descriptor.format)
        if kind is TypeKind.ARRAY:
            return f"Vec<{self.render_type(descriptor.inner)}>"
        if kind is TypeKind.MAP:
            return f"HashMap<String, {self.render_type(descriptor.inner)}>"
        if kind is TypeKind.OPTIONAL:
            return f"Option<{self.render_type(descriptor.inner)}>"
        if kind is TypeKind.REFERENCE and descriptor.name:
            return descriptor.name
        return DYNAMIC_TYPE

    @staticmethod
    def _scalar_type(scalar: ScalarKind | None, fmt: str | None) -> str:
        if scalar is ScalarKind.INTEGER:
            return "i64" if fmt == "int64" else "i32"
        if scalar is ScalarKind.NUMBER:
            return "f32" if fmt == "float" else "f64"
        if scalar is ScalarKind.BOOLEAN:
            return "bool"
        if scalar is ScalarKind.STRING:
            return STRING_FORMATS.get(fmt or "", "String")
        return DYNAMIC_TYPE

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def handler_imports(self) -> list[str]:
        return [
            "use actix_web::{web, HttpResponse, Responder};",
            "use actix_multipart::Multipart;",
            "use serde::Deserialize;",
            "use serde_json::Value;",
            "use uuid::Uuid;",
            "use chrono::{DateTime, NaiveDate, NaiveDateTime, Utc};",
        ]

    def path_extractor(self, inner_types: Sequence[str]) -> str:
        if len(inner_types) == 1:
            return f"web::Path<{inner_types[0]}>"
        return f"web::Path<({', '.join(inner_types)})>"

    def query_extractor(self) -> str:
        return "web::Query<Value>"

    def typed_query_extractor(self, inner_type: str) -> str:
        return f"web::Query<{inner_type}>"

    def query_string_extractor(self, inner_type: str) -> str:
        return f"web::Query<{inner_type}>"

    def header_extractor(self, inner_type: str) -> str:
        return "web::Header<String>"

    def cookie_extractor(self) -> str:
        return "web::Cookie"

    def body_extractor(self, body: RequestBody) -> str:
        body_type = self.render_type(body.type)
        if body.format is BodyFormat.JSON:
            extractor = f"web::Json<{body_type}>"
        elif body.format is BodyFormat.FORM:
            extractor = f"web::Form<{body_type}>"
        elif body.format is BodyFormat.MULTIPART:
            extractor = "Multipart"
        elif body.format is BodyFormat.TEXT:
            extractor = "String"
        else:
            extractor = "web::Bytes"
        return extractor if body.required else f"Option<{extractor}>"

    def security_extractor(self, requirements: Sequence[SecurityRequirement]) -> str | None:
        """Argument guarding the handler with the first security requirement."""
        if not requirements:
            return None
        requirement = requirements[0]
        scheme = to_pascal_case(requirement.scheme_name) or "Auth"
        if not requirement.scopes:
            return f"_auth: web::ReqData<security::{scheme}>"
        scopes = [f"security::scopes::{to_pascal_case(scope)}" for scope in requirement.scopes]
        scope_type = scopes[0] if len(scopes) == 1 else f"({', '.join(scopes)})"
        return f"_auth: web::ReqData<security::Authenticated<security::{scheme}, {scope_type}>>"

    def query_struct_name(self, route: ParsedRoute) -> str:
        return f"{to_pascal_case(route.handler_name)}Query"

    def query_struct(self, route: ParsedRoute) -> tuple[str, str] | None:
        """Return ``(name, declaration)`` for a route's query parameters."""
        params = sorted(route.params_from(ParamSource.QUERY), key=lambda p: p.name)
        if not params:
            return None
        used: dict[str, int] = {}
        fields = []
        for param in params:
            field_name = ensure_unique(sanitize_field_name(param.name), used)
            fields.append({
                "name": field_name,
                "type": self.render_type(param.type),
                "rename": param.name if field_name.removeprefix("r#") != param.name else None,
                "doc_lines": _doc_lines(param.description) or [f"Query parameter `{param.name}`."],
            })
        name = self.query_struct_name(route)
        code = self.context.query_struct_template.render(
            name=name,
            handler_name=route.handler_name,
            fields=fields,
        )
        return name, code + "\n"

    def return_type(self, route: ParsedRoute) -> str:
        if route.response_headers or route.response_links:
            return "actix_web::Result<HttpResponse>"
        if route.response_type is not None:
            return f"actix_web::Result<web::Json<{self.render_type(route.response_type)}>>"
        return "impl Responder"

    def handler_stub(self, route: ParsedRoute, args: Sequence[str]) -> str:
        """Render one ``pub async fn`` stub whose body is ``todo!()``."""
        links = [self._link_construction(link) for link in route.response_links]
        headers = [
            {
                "name": header.name,
                "type": self.render_type(header.type),
                "description": header.description or "No description",
            }
            for header in route.response_headers
        ]
        code = self.context.handler_template.render(
            name=route.handler_name,
            args=list(args),
            return_type=self.return_type(route),
            doc_lines=_doc_lines(route.summary, route.description),
            deprecated=route.deprecated,
            links=links,
            headers=headers,
            has_body=route.response_type is not None,
        )
        return code + "\n"

    def _link_construction(self, link: ParsedLink) -> dict[str, str]:
        var = f"link_{to_snake_case(link.name) or 'target'}"
        template = _link_target(link)
        args = [
            f"{name} = {_runtime_expression(expression)}"
            for name, expression in link.parameters
            if f"{{{name}}}" in template
        ]
        if args:
            statement = f"let {var} = format!(\"{rust_str(template)}\", {', '.join(args)});"
        else:
            statement = f"let {var} = \"{rust_str(template)}\";"
        return {"name": rust_str(link.name), "var": var, "statement": statement}

    # -------------------------------------------------------------------------
    # Modules and registration
    # -------------------------------------------------------------------------

    def module_file_name(self, group: str) -> str:
        return f"{sanitize_module_name(group)}.rs"

    def module_index(self) -> tuple[str, str]:
        """File name and initial content of the handler module index."""
        return "mod.rs", "// Handler modules.\n"

    def module_declaration(self, group: str) -> str:
        return f"pub mod {sanitize_module_name(group)};"

    def handler_reference(self, group: str, handler_name: str) -> str:
        return f"handlers::{sanitize_module_name(group)}::{handler_name}"

    def registration_scaffold(self) -> str:
        code = self.context.config_template.render(
            handlers_module=self.handlers_module,
            function=self.registration_function,
        )
        return code + "\n"

    def registration_statement(self, route: ParsedRoute, handler_ref: str) -> str:
        return (
            f"cfg.service(web::resource(\"{rust_str(route.path)}\")"
            f".route(web::{method_call(route.method)}.to({handler_ref})));"
        )

    # -------------------------------------------------------------------------
    # Models
    # -------------------------------------------------------------------------

    def model_derives(self) -> tuple[str, ...]:
        return ("Debug", "Clone", "Serialize", "Deserialize", "ToSchema")

    def model_imports(self, models: Sequence[Model]) -> list[str]:
        """Import lines needed by a set of model declarations."""
        imports = {"use serde::{Deserialize, Serialize};", "use utoipa::ToSchema;"}
        for model in models:
            for type_text in self._model_types(model):
                if "HashMap<" in type_text:
                    imports.add("use std::collections::HashMap;")
                if "Uuid" in type_text:
                    imports.add("use uuid::Uuid;")
                if "DateTime<" in type_text:
                    imports.add("use chrono::{DateTime, Utc};")
                if "NaiveDate" in type_text:
                    imports.add("use chrono::NaiveDate;")
        return sorted(imports)

    def _model_types(self, model: Model) -> list[str]:
        if isinstance(model, StructModel):
            return [self.render_type(f.type) for f in model.fields]
        if isinstance(model, EnumModel):
            return [self.render_type(v.type) for v in model.variants if v.type is not None]
        return [self.render_type(model.target)]

    def model_field(self, model_field: ModelField) -> tuple[str, str, tuple[str, ...]]:
        """Return ``(name, type, attributes)`` for one struct field."""
        attributes: list[str] = []
        if model_field.needs_rename:
            attributes.append(f"#[serde(rename = \"{rust_str(model_field.json_name)}\")]")
        if model_field.deprecated:
            attributes.append("#[deprecated]")
        return model_field.name, self.render_type(model_field.type), tuple(attributes)

    def model_declaration(self, model: Model) -> str:
        if isinstance(model, StructModel):
            fields = []
            for model_field in model.fields:
                name, type_text, attributes = self.model_field(model_field)
                fields.append({
                    "name": name,
                    "type": type_text,
                    "attributes": attributes,
                    "doc_lines": _doc_lines(model_field.description),
                })
            code = self.context.struct_template.render(
                name=model.name,
                derives=self.model_derives(),
                doc_lines=_doc_lines(model.description),
                fields=fields,
            )
        elif isinstance(model, EnumModel):
            serde_args = []
            if model.discriminator is not None:
                serde_args.append(f"tag = \"{rust_str(model.discriminator)}\"")
            elif model.untagged:
                serde_args.append("untagged")
            variants = [
                {
                    "name": variant.name,
                    "type": self.render_type(variant.type) if variant.type is not None else None,
                    "rename": variant.rename,
                    "aliases": variant.aliases,
                    "deprecated": variant.deprecated,
                    "doc_lines": _doc_lines(variant.description),
                }
                for variant in model.variants
            ]
            code = self.context.enum_template.render(
                name=model.name,
                derives=self.model_derives(),
                doc_lines=_doc_lines(model.description),
                serde_args=serde_args,
                variants=variants,
            )
        else:
            code = self.context.alias_template.render(
                name=model.name,
                target=self.render_type(model.target),
                doc_lines=_doc_lines(model.description),
            )
        return code + "\n"

    # -------------------------------------------------------------------------
    # Tests
    # -------------------------------------------------------------------------

    def test_imports(self) -> str:
        return self.context.test_header_template.render(imports=[
            "use actix_web::{test, web, App};",
            "use serde_json::Value;",
        ])

    def test_function_name(self, route: ParsedRoute) -> str:
        return f"test_{route.handler_name}"

    def test_fn_signature(self, fn_name: str) -> str:
        return f"#[actix_web::test]\nasync fn {fn_name}() {{"

    def test_app_init(self, app_factory: str) -> str:
        return f"let app = test::init_service(App::new().configure({app_factory})).await;"

    def test_body_setup(self, body: RequestBody | None) -> str:
        if body is None:
            return ""
        if body.format is BodyFormat.JSON:
            return "        .set_json(serde_json::json!({}))\n"
        if body.format is BodyFormat.TEXT:
            return "        .set_payload(\"\")\n"
        if body.format is BodyFormat.BINARY:
            return "        .set_payload(Vec::<u8>::new())\n"
        return ""

    def test_request_builder(self, method: str, uri: str, body_setup: str) -> str:
        lower = method.lower()
        if lower in TEST_REQUEST_METHODS:
            builder = f"{lower}()"
        else:
            builder = (
                "default().method(actix_web::http::Method::from_bytes"
                f"(b\"{method.upper()}\").unwrap())"
            )
        return (
            f"let req = test::TestRequest::{builder}.uri(\"{rust_str(uri)}\")\n"
            f"{body_setup}        .to_request();"
        )

    def test_api_call(self) -> str:
        return "let resp = test::call_service(&app, req).await;"

    def test_assertion(self) -> str:
        return (
            "assert_ne!(resp.status(), actix_web::http::StatusCode::NOT_FOUND, "
            "\"Route should exist\");"
        )

    def sample_uri(self, route: ParsedRoute) -> str:
        """Concrete request path with every template variable filled in."""
        types = {p.name: self.render_type(p.type.required()) for p in route.params_from(ParamSource.PATH)}

        def fill(match: re.Match[str]) -> str:
            return SAMPLE_PATH_VALUES.get(types.get(match.group(1), "String"), "test")

        return PATH_VARIABLE.sub(fill, route.path)

    def test_function(self, route: ParsedRoute, app_factory: str) -> str:
        code = self.context.test_fn_template.render(
            signature=self.test_fn_signature(self.test_function_name(route)),
            app_init=self.test_app_init(app_factory),
            request=self.test_request_builder(
                route.method, self.sample_uri(route), self.test_body_setup(route.request_body)
            ),
            call=self.test_api_call(),
            assertion=self.test_assertion(),
        )
        return code + "\n"


def _link_target(link: ParsedLink) -> str:
    """URI template for a link: the path named by ``operationRef`` if local."""
    if link.operation_ref:
        segments = pointer_segments(link.operation_ref) if link.operation_ref.startswith("#") else []
        if len(segments) >= 2 and segments[0] == "paths":
            return segments[1]
        return link.operation_ref
    return link.operation_id or ""


def _runtime_expression(expression: str) -> str:
    """Rust expression reading a link parameter's runtime value."""
    if expression.startswith("$request.path."):
        return to_snake_case(expression.removeprefix("$request.path."))
    if expression.startswith("$request.query."):
        return f"query.{sanitize_field_name(expression.removeprefix('$request.query.'))}"
    if expression.startswith("$request.body#/"):
        return f"body.{to_snake_case(expression.removeprefix('$request.body#/'))}"
    return f"\"{rust_str(expression)}\""
