import pytest

from cdd_tools.oas.bodies import (
    BodyFormat,
    ParsedLink,
    RequestBody,
    ResponseHeader,
    SecurityRequirement,
)
from cdd_tools.oas.models import AliasModel, EnumModel, ModelField, StructModel
from cdd_tools.oas.params import ParamSource, RouteParam
from cdd_tools.oas.routes import ParsedRoute
from cdd_tools.oas.schemas import ParsedVariant, ScalarKind, TypeDescriptor
from cdd_tools.shared.errors import ConfigError
from cdd_tools.strategies import (
    ActixStrategy,
    CodeEmissionStrategy,
    GeneratorContext,
    get_strategy,
)
from cdd_tools.strategies.actix import method_call, rust_str

STRING = TypeDescriptor.of_scalar(ScalarKind.STRING)
INTEGER = TypeDescriptor.of_scalar(ScalarKind.INTEGER)
DERIVE = "#[derive(Debug, Clone, Serialize, Deserialize, ToSchema)]"


@pytest.fixture(scope="module")
def strategy():
    return ActixStrategy()


def _route(**kwargs):
    defaults = {"path": "/users/{id}", "method": "get", "handler_name": "get_user"}
    return ParsedRoute(**{**defaults, **kwargs})


def _path_param(name, descriptor=STRING):
    return RouteParam(name=name, source=ParamSource.PATH, type=descriptor, required=True)


class TestGeneratorContext:
    def test_templates_loaded(self):
        context = GeneratorContext()
        for name in (
            "handler_template",
            "query_struct_template",
            "struct_template",
            "enum_template",
            "alias_template",
            "config_template",
            "test_header_template",
            "test_fn_template",
        ):
            assert getattr(context, name) is not None

    def test_environment_settings(self):
        env = GeneratorContext().template_env
        assert env.trim_blocks
        assert env.lstrip_blocks
        assert "rust_str" in env.filters


class TestRegistry:
    def test_get_strategy(self):
        strategy = get_strategy("actix")
        assert isinstance(strategy, ActixStrategy)
        assert isinstance(strategy, CodeEmissionStrategy)

    def test_unknown_strategy(self):
        with pytest.raises(ConfigError, match=r"Unknown strategy 'axum' \(available: actix\)"):
            get_strategy("axum")


class TestHelpers:
    def test_rust_str(self):
        assert rust_str('say "hi" \\ bye') == 'say \\"hi\\" \\\\ bye'

    @pytest.mark.parametrize(
        "method,expected",
        [
            ("get", "get()"),
            ("DELETE", "delete()"),
            ("options", "options()"),
            ("query", 'method(actix_web::http::Method::from_bytes(b"QUERY").unwrap())'),
            ("copy", 'method(actix_web::http::Method::from_bytes(b"COPY").unwrap())'),
        ],
    )
    def test_method_call(self, method, expected):
        assert method_call(method) == expected


class TestRenderType:
    @pytest.mark.parametrize(
        "descriptor,expected",
        [
            (TypeDescriptor.of_scalar(ScalarKind.INTEGER), "i32"),
            (TypeDescriptor.of_scalar(ScalarKind.INTEGER, "int64"), "i64"),
            (TypeDescriptor.of_scalar(ScalarKind.NUMBER), "f64"),
            (TypeDescriptor.of_scalar(ScalarKind.NUMBER, "float"), "f32"),
            (TypeDescriptor.of_scalar(ScalarKind.BOOLEAN), "bool"),
            (STRING, "String"),
            (TypeDescriptor.of_scalar(ScalarKind.STRING, "uuid"), "Uuid"),
            (TypeDescriptor.of_scalar(ScalarKind.STRING, "date-time"), "DateTime<Utc>"),
            (TypeDescriptor.of_scalar(ScalarKind.STRING, "date"), "NaiveDate"),
            (TypeDescriptor.of_scalar(ScalarKind.STRING, "binary"), "Vec<u8>"),
            (TypeDescriptor.array(STRING), "Vec<String>"),
            (TypeDescriptor.mapping(INTEGER), "HashMap<String, i32>"),
            (TypeDescriptor.optional(TypeDescriptor.reference("User")), "Option<User>"),
            (TypeDescriptor.dynamic(), "serde_json::Value"),
            (TypeDescriptor.unknown("#/missing"), "serde_json::Value"),
            (TypeDescriptor.union(()), "serde_json::Value"),
            (None, "serde_json::Value"),
        ],
    )
    def test_render_type(self, strategy, descriptor, expected):
        assert strategy.render_type(descriptor) == expected


class TestExtractors:
    def test_path(self, strategy):
        assert strategy.path_extractor(["i64"]) == "web::Path<i64>"
        assert strategy.path_extractor(["i64", "String"]) == "web::Path<(i64, String)>"

    def test_query(self, strategy):
        assert strategy.query_extractor() == "web::Query<Value>"
        assert strategy.typed_query_extractor("ListQuery") == "web::Query<ListQuery>"

    def test_header_and_cookie(self, strategy):
        assert strategy.header_extractor("i32") == "web::Header<String>"
        assert strategy.cookie_extractor() == "web::Cookie"

    @pytest.mark.parametrize(
        "fmt,required,expected",
        [
            (BodyFormat.JSON, True, "web::Json<User>"),
            (BodyFormat.JSON, False, "Option<web::Json<User>>"),
            (BodyFormat.FORM, True, "web::Form<User>"),
            (BodyFormat.MULTIPART, True, "Multipart"),
            (BodyFormat.TEXT, True, "String"),
            (BodyFormat.BINARY, True, "web::Bytes"),
        ],
    )
    def test_body(self, strategy, fmt, required, expected):
        body = RequestBody(TypeDescriptor.reference("User"), "application/json", fmt, required)
        assert strategy.body_extractor(body) == expected

    def test_security_none(self, strategy):
        assert strategy.security_extractor([]) is None

    def test_security_without_scopes(self, strategy):
        requirement = SecurityRequirement("bearerAuth")
        assert strategy.security_extractor([requirement]) == "_auth: web::ReqData<security::BearerAuth>"

    def test_security_with_scopes(self, strategy):
        one = SecurityRequirement("oauth", ("read:users",))
        assert strategy.security_extractor([one]) == (
            "_auth: web::ReqData<security::Authenticated<security::Oauth, security::scopes::ReadUsers>>"
        )
        two = SecurityRequirement("oauth", ("read", "write"))
        assert strategy.security_extractor([two]) == (
            "_auth: web::ReqData<security::Authenticated<security::Oauth, "
            "(security::scopes::Read, security::scopes::Write)>>"
        )


class TestHandlerStub:
    def test_plain_stub(self, strategy):
        route = _route(params=(_path_param("id"),))
        assert strategy.handler_stub(route, ["id: web::Path<String>"]) == (
            "pub async fn get_user(id: web::Path<String>) -> impl Responder {\n"
            "    todo!()\n"
            "}\n"
        )

    def test_json_response(self, strategy):
        route = _route(response_type=TypeDescriptor.reference("User"))
        stub = strategy.handler_stub(route, [])
        assert stub.startswith("pub async fn get_user() -> actix_web::Result<web::Json<User>> {\n")

    def test_docs_and_deprecation(self, strategy):
        route = _route(summary="Get a user", description="Returns one user.\nSecond line", deprecated=True)
        stub = strategy.handler_stub(route, [])
        assert stub.startswith(
            "/// Get a user\n"
            "///\n"
            "/// Returns one user.\n"
            "/// Second line\n"
            "#[deprecated]\n"
            "pub async fn get_user() -> impl Responder {\n"
        )

    def test_response_headers(self, strategy):
        route = _route(response_headers=(ResponseHeader("X-Rate-Limit", INTEGER, "Calls left"),))
        assert strategy.handler_stub(route, []) == (
            "pub async fn get_user() -> actix_web::Result<HttpResponse> {\n"
            "    // Required Response Headers:\n"
            "    // - X-Rate-Limit: i32 (Calls left)\n"
            "    // Example:\n"
            "    // HttpResponse::[Status]()\n"
            "    //     .finish()\n"
            "    todo!()\n"
            "}\n"
        )

    def test_links(self, strategy):
        link = ParsedLink(
            name="GetUser",
            operation_ref="#/paths/~1users~1{id}/get",
            parameters=(("id", "$request.path.userId"),),
        )
        route = _route(path="/users", method="post", handler_name="create_user", response_links=(link,))
        stub = strategy.handler_stub(route, [])
        assert "    // -- Generated Links --\n" in stub
        assert '    let link_get_user = format!("/users/{id}", id = user_id);\n' in stub
        assert '    // .append_header(("Link", format!("<{}>; rel=\\"GetUser\\"", link_get_user)))\n' in stub
        assert "    //     .append_header((\"Link\", ...))\n" in stub

    def test_link_without_template_variables(self, strategy):
        link = ParsedLink(name="self", operation_id="getUser", parameters=(("id", "$response.body#/id"),))
        stub = strategy.handler_stub(_route(response_links=(link,)), [])
        assert '    let link_self = "getUser";\n' in stub

    def test_link_runtime_expressions(self, strategy):
        link = ParsedLink(
            name="Next",
            operation_ref="#/paths/~1items~1{a}~1{b}~1{c}~1{d}/get",
            parameters=(
                ("a", "$request.query.pageToken"),
                ("b", "$request.body#/owner/id"),
                ("c", "$response.header.X-Next"),
                ("d", "$request.path.itemId"),
            ),
        )
        stub = strategy.handler_stub(_route(response_links=(link,)), [])
        assert (
            'format!("/items/{a}/{b}/{c}/{d}", a = query.page_token, b = body.owner_id, '
            'c = "$response.header.X-Next", d = item_id)'
        ) in stub


class TestQueryStruct:
    def test_no_query_params(self, strategy):
        assert strategy.query_struct(_route()) is None

    def test_sorted_fields(self, strategy):
        params = (
            RouteParam("pageSize", ParamSource.QUERY, TypeDescriptor.optional(INTEGER)),
            RouteParam("filter", ParamSource.QUERY, STRING, required=True, description="Filter text"),
        )
        route = _route(path="/users", handler_name="list_users", params=params)
        name, code = strategy.query_struct(route)
        assert name == "ListUsersQuery"
        assert code == (
            "/// Query parameters for `list_users`.\n"
            "#[derive(Debug, Clone, Deserialize)]\n"
            "pub struct ListUsersQuery {\n"
            "    /// Filter text\n"
            "    pub filter: String,\n"
            "    /// Query parameter `pageSize`.\n"
            '    #[serde(rename = "pageSize")]\n'
            "    pub page_size: Option<i32>,\n"
            "}\n"
        )


class TestRegistration:
    def test_module_naming(self, strategy):
        assert strategy.module_file_name("User Accounts") == "user_accounts.rs"
        assert strategy.module_declaration("users") == "pub mod users;"
        assert strategy.handler_reference("users", "get_user") == "handlers::users::get_user"
        assert strategy.module_index() == ("mod.rs", "// Handler modules.\n")

    def test_registration_statement(self, strategy):
        route = _route()
        assert strategy.registration_statement(route, "handlers::users::get_user") == (
            'cfg.service(web::resource("/users/{id}").route(web::get().to(handlers::users::get_user)));'
        )

    def test_registration_scaffold(self, strategy):
        assert strategy.registration_scaffold() == (
            "use actix_web::web;\n"
            "use crate::handlers;\n"
            "\n"
            "pub fn config(cfg: &mut web::ServiceConfig) {\n"
            "}\n"
        )

    def test_custom_handlers_module(self):
        scaffold = ActixStrategy(handlers_module="crate::api::handlers").registration_scaffold()
        assert "use crate::api::handlers;\n" in scaffold


class TestModels:
    def test_struct(self, strategy):
        model = StructModel(
            "User",
            (
                ModelField("id", "id", TypeDescriptor.of_scalar(ScalarKind.INTEGER, "int64")),
                ModelField(
                    "createdAt",
                    "created_at",
                    TypeDescriptor.optional(TypeDescriptor.of_scalar(ScalarKind.STRING, "date-time")),
                    description="Creation time",
                ),
            ),
            description="A user.",
        )
        assert strategy.model_declaration(model) == (
            "/// A user.\n"
            f"{DERIVE}\n"
            "pub struct User {\n"
            "    pub id: i64,\n"
            "    /// Creation time\n"
            '    #[serde(rename = "createdAt")]\n'
            "    pub created_at: Option<DateTime<Utc>>,\n"
            "}\n"
        )

    def test_model_field(self, strategy):
        model_field = ModelField("type", "r#type", STRING, deprecated=True)
        assert strategy.model_field(model_field) == ("r#type", "String", ("#[deprecated]",))

    def test_unit_enum(self, strategy):
        model = EnumModel(
            "Status",
            (ParsedVariant("Active", rename="active"), ParsedVariant("OnHold", rename="on-hold")),
            unit=True,
        )
        assert strategy.model_declaration(model) == (
            f"{DERIVE}\n"
            "pub enum Status {\n"
            '    #[serde(rename = "active")]\n'
            "    Active,\n"
            '    #[serde(rename = "on-hold")]\n'
            "    OnHold,\n"
            "}\n"
        )

    def test_tagged_enum(self, strategy):
        model = EnumModel(
            "Pet",
            (
                ParsedVariant("Cat", TypeDescriptor.reference("Cat"), rename="cat", aliases=("kitten",)),
                ParsedVariant("Dog", TypeDescriptor.reference("Dog")),
            ),
            discriminator="petType",
        )
        assert strategy.model_declaration(model) == (
            f"{DERIVE}\n"
            '#[serde(tag = "petType")]\n'
            "pub enum Pet {\n"
            '    #[serde(rename = "cat")]\n'
            '    #[serde(alias = "kitten")]\n'
            "    Cat(Cat),\n"
            "    Dog(Dog),\n"
            "}\n"
        )

    def test_untagged_enum(self, strategy):
        model = EnumModel(
            "Anything",
            (ParsedVariant("String", STRING), ParsedVariant("Integer", INTEGER, deprecated=True)),
        )
        code = strategy.model_declaration(model)
        assert "#[serde(untagged)]\n" in code
        assert "    #[deprecated]\n    Integer(i32),\n" in code

    def test_alias(self, strategy):
        model = AliasModel("Ids", TypeDescriptor.array(TypeDescriptor.of_scalar(ScalarKind.STRING, "uuid")))
        assert strategy.model_declaration(model) == "pub type Ids = Vec<Uuid>;\n"

    def test_model_imports(self, strategy):
        models = [
            AliasModel("Ids", TypeDescriptor.array(TypeDescriptor.of_scalar(ScalarKind.STRING, "uuid"))),
            AliasModel("When", TypeDescriptor.of_scalar(ScalarKind.STRING, "date-time")),
            AliasModel("Labels", TypeDescriptor.mapping(STRING)),
        ]
        assert strategy.model_imports(models) == [
            "use chrono::{DateTime, Utc};",
            "use serde::{Deserialize, Serialize};",
            "use std::collections::HashMap;",
            "use utoipa::ToSchema;",
            "use uuid::Uuid;",
        ]

    def test_minimal_imports(self, strategy):
        assert strategy.model_imports([]) == [
            "use serde::{Deserialize, Serialize};",
            "use utoipa::ToSchema;",
        ]


class TestTests:
    def test_imports(self, strategy):
        assert strategy.test_imports() == (
            "#![allow(unused_imports, unused_variables, dead_code)]\n"
            "\n"
            "use actix_web::{test, web, App};\n"
            "use serde_json::Value;\n"
        )

    def test_function(self, strategy):
        route = _route(params=(_path_param("id", INTEGER),))
        assert strategy.test_function(route, "crate::routes::config") == (
            "#[actix_web::test]\n"
            "async fn test_get_user() {\n"
            "    let app = test::init_service(App::new().configure(crate::routes::config)).await;\n"
            '    let req = test::TestRequest::get().uri("/users/1")\n'
            "        .to_request();\n"
            "    let resp = test::call_service(&app, req).await;\n"
            '    assert_ne!(resp.status(), actix_web::http::StatusCode::NOT_FOUND, "Route should exist");\n'
            "}\n"
        )

    def test_json_body(self, strategy):
        body = RequestBody(TypeDescriptor.reference("User"), "application/json", BodyFormat.JSON, True)
        route = _route(path="/users", method="post", handler_name="create_user", request_body=body)
        code = strategy.test_function(route, "crate::routes::config")
        assert (
            '    let req = test::TestRequest::post().uri("/users")\n'
            "        .set_json(serde_json::json!({}))\n"
            "        .to_request();\n"
        ) in code

    def test_custom_method(self, strategy):
        code = strategy.test_function(_route(method="query"), "config")
        assert 'test::TestRequest::default().method(actix_web::http::Method::from_bytes(b"QUERY").unwrap())' in code

    @pytest.mark.parametrize(
        "descriptor,expected",
        [
            (STRING, "/users/test"),
            (TypeDescriptor.of_scalar(ScalarKind.STRING, "uuid"), "/users/00000000-0000-0000-0000-000000000000"),
            (TypeDescriptor.of_scalar(ScalarKind.BOOLEAN), "/users/true"),
        ],
    )
    def test_sample_uri(self, strategy, descriptor, expected):
        assert strategy.sample_uri(_route(params=(_path_param("id", descriptor),))) == expected

    def test_sample_uri_undeclared_variable(self, strategy):
        assert strategy.sample_uri(_route(path="/orgs/{org}/users")) == "/orgs/test/users"
