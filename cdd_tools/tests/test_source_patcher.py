import pytest

from cdd_tools.shared.errors import DeclarationNotFound, FieldNotFound, ParseFailure
from cdd_tools.source.patcher import (
    AddAttribute,
    AddField,
    AddImport,
    InsertRegistration,
    RetypeField,
    apply,
)

USER = "pub struct User {\n    pub id: i64,\n}\n"

CONFIG = (
    "use actix_web::web;\n"
    "\n"
    "pub fn config(cfg: &mut web::ServiceConfig) {\n"
    "}\n"
)


class TestAddField:
    def test_multiline_struct(self):
        result = apply(USER, AddField("User", "email", "String"))
        assert result == "pub struct User {\n    pub id: i64,\n    pub email: String,\n}\n"

    def test_missing_trailing_comma(self):
        source = "pub struct User {\n    pub id: i64\n}\n"
        result = apply(source, AddField("User", "email", "String"))
        assert result == "pub struct User {\n    pub id: i64,\n    pub email: String,\n}\n"

    def test_with_attributes(self):
        request = AddField("User", "created_at", "String", attributes=('#[serde(rename = "createdAt")]',))
        result = apply(USER, request)
        assert result == (
            "pub struct User {\n"
            "    pub id: i64,\n"
            '    #[serde(rename = "createdAt")]\n'
            "    pub created_at: String,\n"
            "}\n"
        )

    def test_empty_single_line_struct(self):
        result = apply("pub struct Empty {}\n", AddField("Empty", "a", "i32"))
        assert result == "pub struct Empty {\n    pub a: i32,\n}\n"

    def test_single_line_struct_with_field(self):
        result = apply("struct P { x: i32 }\n", AddField("P", "y", "i32", visibility=""))
        assert result == "struct P { x: i32,\n    y: i32,\n}\n"

    def test_existing_field_unchanged(self):
        assert apply(USER, AddField("User", "id", "u64")) == USER

    def test_raw_identifier_matches(self):
        source = "pub struct T {\n    pub r#type: String,\n}\n"
        assert apply(source, AddField("T", "type", "String")) == source

    def test_tuple_struct_rejected(self):
        with pytest.raises(DeclarationNotFound):
            apply("pub struct Id(pub i64);\n", AddField("Id", "x", "i32"))

    def test_idempotent(self):
        request = AddField("User", "email", "String")
        once = apply(USER, request)
        assert apply(once, request) == once

    def test_surrounding_text_preserved(self):
        source = "// header\n\n" + USER + "\nfn other() { let x = 1; }\n"
        result = apply(source, AddField("User", "email", "String"))
        assert result.startswith("// header\n\npub struct User {")
        assert result.endswith("}\n\nfn other() { let x = 1; }\n")


class TestRetypeField:
    def test_retype(self):
        source = "pub struct User {\n    pub created_at: String,\n}\n"
        result = apply(source, RetypeField("User", "created_at", "DateTime<Utc>"))
        assert result == "pub struct User {\n    pub created_at: DateTime<Utc>,\n}\n"

    def test_same_type_unchanged(self):
        assert apply(USER, RetypeField("User", "id", "i64")) == USER

    def test_missing_field(self):
        with pytest.raises(FieldNotFound) as exc_info:
            apply(USER, RetypeField("User", "created_at", "String"), "models.rs")
        assert str(exc_info.value) == "[models.rs] Field 'created_at' not found in 'User'"

    def test_missing_declaration(self):
        with pytest.raises(DeclarationNotFound, match="Declaration 'Account' not found"):
            apply(USER, RetypeField("Account", "id", "String"))

    def test_unparseable(self):
        with pytest.raises(ParseFailure):
            apply("pub struct User {", RetypeField("User", "id", "String"))


class TestAddAttribute:
    def test_extend_derive(self):
        source = "#[derive(Debug)]\npub struct User {}\n"
        result = apply(source, AddAttribute("User", "Clone", group="derive"))
        assert result == "#[derive(Debug, Clone)]\npub struct User {}\n"

    def test_derive_present_with_path(self):
        source = "#[derive(Debug, serde::Serialize)]\npub struct User {}\n"
        assert apply(source, AddAttribute("User", "Serialize", group="derive")) == source

    def test_derive_prefix_is_not_a_match(self):
        source = "#[derive(DebugExt)]\npub struct User {}\n"
        result = apply(source, AddAttribute("User", "Debug", group="derive"))
        assert result == "#[derive(DebugExt, Debug)]\npub struct User {}\n"

    def test_new_derive(self):
        source = "pub enum Status {\n    A,\n}\n"
        result = apply(source, AddAttribute("Status", "ToSchema", group="derive"))
        assert result == "#[derive(ToSchema)]\npub enum Status {\n    A,\n}\n"

    def test_indented_declaration(self):
        source = "mod m {\n    pub struct A {}\n}\n"
        result = apply(source, AddAttribute("A", "Debug", group="derive"))
        assert result == "mod m {\n    #[derive(Debug)]\n    pub struct A {}\n}\n"

    def test_complete_attribute(self):
        result = apply(USER, AddAttribute("User", "#[deprecated]"))
        assert result == "#[deprecated]\n" + USER

    def test_complete_attribute_present(self):
        source = "#[deprecated]\n" + USER
        assert apply(source, AddAttribute("User", "deprecated")) == source

    def test_functions_not_targeted(self):
        with pytest.raises(DeclarationNotFound):
            apply("fn user() {}\n", AddAttribute("user", "inline"))

    def test_idempotent(self):
        source = "#[derive(Debug)]\npub struct User {}\n"
        request = AddAttribute("User", "Clone", group="derive")
        once = apply(source, request)
        assert apply(once, request) == once


class TestAddImport:
    def test_after_first_line(self):
        result = apply(CONFIG, AddImport("use crate::handlers;"))
        assert result.startswith("use actix_web::web;\nuse crate::handlers;\n\npub fn config")

    def test_existing_import(self):
        assert apply(CONFIG, AddImport("use actix_web::web")) == CONFIG

    def test_empty_text(self):
        assert apply("", AddImport("use a::b;")) == "use a::b;\n"

    def test_single_line_without_newline(self):
        assert apply("use a::b;", AddImport("use c::d;")) == "use a::b;\nuse c::d;\n"

    def test_idempotent(self):
        request = AddImport("use std::collections::HashMap;")
        once = apply(CONFIG, request)
        assert apply(once, request) == once


class TestInsertRegistration:
    STATEMENT = 'cfg.service(web::resource("/users/{id}").route(web::get().to(handlers::users::get_user)));'

    def _request(self, statement=STATEMENT, key="handlers::users::get_user"):
        return InsertRegistration("config", statement, key)

    def test_empty_body(self):
        result = apply(CONFIG, self._request())
        assert result == (
            "use actix_web::web;\n"
            "\n"
            "pub fn config(cfg: &mut web::ServiceConfig) {\n"
            f"    {self.STATEMENT}\n"
            "}\n"
        )

    def test_appends_after_existing(self):
        first = apply(CONFIG, self._request())
        second_statement = self.STATEMENT.replace("get_user", "list_users").replace("/users/{id}", "/users")
        result = apply(first, self._request(second_statement, "handlers::users::list_users"))
        body = result.split("{\n", 1)[1]
        assert body == f"    {self.STATEMENT}\n    {second_statement}\n}}\n"

    def test_follows_existing_indentation(self):
        source = "fn config(cfg: &mut X) {\n  cfg.a();\n}\n"
        result = apply(source, InsertRegistration("config", "cfg.b();", "cfg.b"))
        assert result == "fn config(cfg: &mut X) {\n  cfg.a();\n  cfg.b();\n}\n"

    def test_single_line_body(self):
        result = apply("fn config(cfg: &mut X) {}\n", InsertRegistration("config", "cfg.b();", "cfg.b"))
        assert result == "fn config(cfg: &mut X) {\n    cfg.b();\n}\n"

    def test_dedupe(self):
        once = apply(CONFIG, self._request())
        assert apply(once, self._request()) == once

    def test_dedupe_is_identifier_bounded(self):
        longer = self.STATEMENT.replace("get_user", "get_user_posts")
        source = apply(CONFIG, self._request(longer, "handlers::users::get_user_posts"))
        result = apply(source, self._request())
        assert result.count("handlers::users::get_user)") == 1
        assert result.count("handlers::users::get_user_posts") == 1

    def test_dedupe_matches_crate_qualified_path(self):
        qualified = self.STATEMENT.replace("handlers::users", "crate::handlers::users")
        source = apply(CONFIG, self._request(qualified, "crate::handlers::users::get_user"))
        assert apply(source, self._request()) == source

    def test_nested_function_with_same_name_untouched(self):
        source = (
            "mod inner {\n"
            "    pub fn config() {}\n"
            "}\n"
            "\n"
            "pub fn config(cfg: &mut X) {}\n"
        )
        result = apply(source, InsertRegistration("config", "cfg.b();", "cfg.b"))
        assert result == (
            "mod inner {\n"
            "    pub fn config() {}\n"
            "}\n"
            "\n"
            "pub fn config(cfg: &mut X) {\n"
            "    cfg.b();\n"
            "}\n"
        )

    def test_key_outside_body_ignored(self):
        source = "// handlers::users::get_user\n" + CONFIG
        result = apply(source, self._request())
        assert result.count("handlers::users::get_user") == 2

    def test_missing_function(self):
        with pytest.raises(DeclarationNotFound):
            apply(CONFIG, InsertRegistration("routes", "x();", "x"))

    def test_function_without_body(self):
        with pytest.raises(DeclarationNotFound):
            apply("trait T {\n    fn config(&self);\n}\n", InsertRegistration("config", "x();", "x"))


class TestApply:
    def test_unsupported_request(self):
        with pytest.raises(TypeError, match="Unsupported mutation request"):
            apply("", object())
