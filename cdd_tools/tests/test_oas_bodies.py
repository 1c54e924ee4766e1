import pytest

from cdd_tools.oas.bodies import (
    BodyFormat,
    SecuritySchemeKind,
    body_format,
    is_json_media_type,
    resolve_request_body,
    resolve_responses,
    resolve_security,
)
from cdd_tools.oas.normalization import normalize
from cdd_tools.oas.schemas import ScalarKind, TypeDescriptor, TypeKind


@pytest.fixture
def document():
    return normalize({
        "openapi": "3.0.3",
        "paths": {},
        "security": [{"bearerAuth": []}],
        "components": {
            "schemas": {"User": {"type": "object"}},
            "requestBodies": {
                "UserBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/User"}}},
                },
            },
            "responses": {
                "Created": {
                    "description": "created",
                    "headers": {"Location": {"schema": {"type": "string"}, "description": "New URL"}},
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/User"}}},
                },
            },
            "securitySchemes": {
                "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
                "oauth": {"type": "oauth2", "flows": {}},
                "apiKey": {"type": "apiKey", "name": "X-Key", "in": "header"},
            },
        },
    })


class TestMediaTypes:
    @pytest.mark.parametrize(
        "media_type,expected",
        [
            ("application/json", BodyFormat.JSON),
            ("application/problem+json; charset=utf-8", BodyFormat.JSON),
            ("application/x-www-form-urlencoded", BodyFormat.FORM),
            ("multipart/form-data", BodyFormat.MULTIPART),
            ("multipart/mixed", BodyFormat.MULTIPART),
            ("text/plain", BodyFormat.TEXT),
            ("application/octet-stream", BodyFormat.BINARY),
        ],
    )
    def test_body_format(self, media_type, expected):
        assert body_format(media_type) == expected

    def test_is_json(self):
        assert is_json_media_type("Application/JSON")
        assert not is_json_media_type("text/json-ish")


class TestResolveRequestBody:
    def test_json_preferred(self, document):
        raw = {
            "content": {
                "text/plain": {},
                "application/json": {"schema": {"type": "string"}},
            },
        }
        body = resolve_request_body(raw, document)
        assert body.format is BodyFormat.JSON
        assert body.media_type == "application/json"
        assert body.type == TypeDescriptor.of_scalar(ScalarKind.STRING)
        assert not body.required

    def test_component_reference(self, document):
        body = resolve_request_body({"$ref": "#/components/requestBodies/UserBody"}, document)
        assert body.required
        assert body.type == TypeDescriptor.reference("User")

    def test_text_without_schema(self, document):
        body = resolve_request_body({"content": {"text/plain": {}}}, document)
        assert body.type == TypeDescriptor.of_scalar(ScalarKind.STRING)

    def test_binary_without_schema(self, document):
        body = resolve_request_body({"content": {"application/octet-stream": {}}}, document)
        assert body.format is BodyFormat.BINARY
        assert body.type == TypeDescriptor.of_scalar(ScalarKind.STRING, "binary")

    def test_multipart_without_schema(self, document):
        body = resolve_request_body({"content": {"multipart/form-data": {}}}, document)
        assert body.type.kind is TypeKind.DYNAMIC

    def test_no_content(self, document):
        assert resolve_request_body({"description": "nothing"}, document) is None
        assert resolve_request_body(None, document) is None


class TestResolveResponses:
    def test_json_body_from_first_success(self, document):
        raw = {
            "204": {"description": "empty"},
            "202": {"description": "accepted", "content": {"application/json": {"schema": {"type": "integer"}}}},
        }
        details = resolve_responses(raw, document)
        assert details.body_type == TypeDescriptor.of_scalar(ScalarKind.INTEGER)
        assert details.status == "202"

    def test_headers_and_links_from_priority_response(self, document):
        raw = {
            "default": {"description": "error", "headers": {"X-Error": {"schema": {"type": "string"}}}},
            "201": {"$ref": "#/components/responses/Created"},
        }
        details = resolve_responses(raw, document)
        assert details.status == "201"
        assert details.body_type == TypeDescriptor.reference("User")
        assert [(h.name, h.description) for h in details.headers] == [("Location", "New URL")]

    def test_content_type_header_skipped(self, document):
        raw = {"200": {"description": "ok", "headers": {"Content-Type": {}, "ETag": {}}}}
        details = resolve_responses(raw, document)
        assert [h.name for h in details.headers] == ["ETag"]
        assert details.headers[0].type == TypeDescriptor.of_scalar(ScalarKind.STRING)

    def test_links(self, document):
        raw = {
            "200": {
                "description": "ok",
                "links": {
                    "GetUser": {
                        "operationId": "getUser",
                        "parameters": {"id": "$response.body#/id", "limit": 10},
                    },
                },
            },
        }
        link = resolve_responses(raw, document).links[0]
        assert link.name == "GetUser"
        assert link.operation_id == "getUser"
        assert link.parameters == (("id", "$response.body#/id"), ("limit", "10"))

    def test_integer_status_keys(self, document):
        details = resolve_responses({200: {"description": "ok"}}, document)
        assert details.status == "200"

    def test_no_responses(self, document):
        details = resolve_responses(None, document)
        assert details.status is None
        assert details.body_type is None

    def test_error_only(self, document):
        details = resolve_responses({"404": {"description": "missing"}}, document)
        assert details.status is None


class TestResolveSecurity:
    def test_document_default(self, document):
        requirements = resolve_security({}, document)
        assert [r.scheme_name for r in requirements] == ["bearerAuth"]
        assert requirements[0].scheme.kind is SecuritySchemeKind.HTTP
        assert requirements[0].scheme.bearer_format == "JWT"

    def test_empty_override_disables(self, document):
        assert resolve_security({"security": []}, document) == []

    def test_override_with_scopes(self, document):
        requirements = resolve_security({"security": [{"oauth": ["read", "write"], "apiKey": []}]}, document)
        assert [(r.scheme_name, r.scopes) for r in requirements] == [
            ("oauth", ("read", "write")),
            ("apiKey", ()),
        ]
        assert requirements[1].scheme.parameter_name == "X-Key"
        assert requirements[1].scheme.location == "header"

    def test_unknown_scheme(self, document):
        requirements = resolve_security({"security": [{"mystery": []}]}, document)
        assert requirements[0].scheme is None
