import pytest

from cdd_tools.shared.naming import (
    ensure_unique,
    sanitize_field_name,
    sanitize_identifier,
    sanitize_module_name,
    slugify,
    to_pascal_case,
    to_snake_case,
)


class TestToPascalCase:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("hello_world", "HelloWorld"),
            ("hello-world", "HelloWorld"),
            ("helloWorld", "HelloWorld"),
            ("HELLO", "Hello"),
            ("user id", "UserId"),
            ("", ""),
        ],
    )
    def test_to_pascal_case(self, value, expected):
        assert to_pascal_case(value) == expected


class TestToSnakeCase:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("HelloWorld", "hello_world"),
            ("hello-world", "hello_world"),
            ("postId", "post_id"),
            ("HTTPServerStatus", "http_server_status"),
            ("__a__b__", "a_b"),
        ],
    )
    def test_to_snake_case(self, value, expected):
        assert to_snake_case(value) == expected


class TestSlugify:
    def test_camel_case(self):
        assert slugify("getUser") == "get_user"

    def test_only_separators_falls_back(self):
        assert slugify("---") == "operation"

    def test_custom_fallback(self):
        assert slugify("", fallback="handler") == "handler"


class TestSanitizeModuleName:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("User Accounts", "user_accounts"),
            ("Users", "users"),
            ("mod", "mod_"),
            ("2fa", "m_2fa"),
            ("", "default"),
        ],
    )
    def test_sanitize_module_name(self, value, expected):
        assert sanitize_module_name(value) == expected


class TestSanitizeFieldName:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("createdAt", "created_at"),
            ("type", "r#type"),
            ("self", "self_"),
            ("1st", "field_1st"),
            ("$$", "field"),
        ],
    )
    def test_sanitize_field_name(self, value, expected):
        assert sanitize_field_name(value) == expected


class TestSanitizeIdentifier:
    def test_keyword_gets_suffix(self):
        assert sanitize_identifier("match") == "match_"

    def test_leading_digit(self):
        assert sanitize_identifier("1_get") == "op_1_get"

    def test_empty(self):
        assert sanitize_identifier("") == "handler"

    def test_plain_name_unchanged(self):
        assert sanitize_identifier("get_user") == "get_user"


class TestEnsureUnique:
    def test_first_use_unchanged(self):
        used = {}
        assert ensure_unique("name", used) == "name"

    def test_repeated_names_get_suffixes(self):
        used = {}
        names = [ensure_unique("name", used) for _ in range(3)]
        assert names == ["name", "name_2", "name_3"]
