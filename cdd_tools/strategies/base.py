"""
Code emission strategy protocol.

The orchestrators never build target-language text themselves. Everything
that ends up inside a generated file (imports, handler stubs, extractor type
strings, registration statements, model declarations, test functions) comes
from an object satisfying ``CodeEmissionStrategy``. The returned text is
treated as opaque and only ever inserted.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from cdd_tools.oas.bodies import RequestBody, SecurityRequirement
from cdd_tools.oas.models import Model, ModelField
from cdd_tools.oas.routes import ParsedRoute
from cdd_tools.oas.schemas import TypeDescriptor


@runtime_checkable
class CodeEmissionStrategy(Protocol):
    """Capabilities a target framework provides to the orchestrators."""

    name: str
    # Function whose body receives route registrations
    registration_function: str
    file_extension: str

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def render_type(self, descriptor: TypeDescriptor | None) -> str: ...

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def handler_imports(self) -> list[str]: ...

    def path_extractor(self, inner_types: Sequence[str]) -> str: ...

    def query_extractor(self) -> str: ...

    def typed_query_extractor(self, inner_type: str) -> str: ...

    def query_string_extractor(self, inner_type: str) -> str: ...

    def header_extractor(self, inner_type: str) -> str: ...

    def cookie_extractor(self) -> str: ...

    def body_extractor(self, body: RequestBody) -> str: ...

    def security_extractor(self, requirements: Sequence[SecurityRequirement]) -> str | None: ...

    def query_struct(self, route: ParsedRoute) -> tuple[str, str] | None: ...

    def handler_stub(self, route: ParsedRoute, args: Sequence[str]) -> str: ...

    # ------------------------------------------------------------------
    # Modules and registration
    # ------------------------------------------------------------------

    def module_file_name(self, group: str) -> str: ...

    def module_index(self) -> tuple[str, str]: ...

    def module_declaration(self, group: str) -> str: ...

    def handler_reference(self, group: str, handler_name: str) -> str: ...

    def registration_scaffold(self) -> str: ...

    def registration_statement(self, route: ParsedRoute, handler_ref: str) -> str: ...

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def model_imports(self, models: Sequence[Model]) -> list[str]: ...

    def model_derives(self) -> tuple[str, ...]: ...

    def model_declaration(self, model: Model) -> str: ...

    def model_field(self, field: ModelField) -> tuple[str, str, tuple[str, ...]]: ...

    # ------------------------------------------------------------------
    # Tests
    # ------------------------------------------------------------------

    def test_imports(self) -> str: ...

    def test_function_name(self, route: ParsedRoute) -> str: ...

    def test_function(self, route: ParsedRoute, app_factory: str) -> str: ...
