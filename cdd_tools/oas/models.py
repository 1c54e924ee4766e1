"""Data-model declarations built from ``components.schemas``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.naming import ensure_unique, sanitize_field_name, to_pascal_case

from .normalization import CanonicalDocument
from .schemas import (
    DEFAULT_DEPTH_BUDGET,
    ParsedVariant,
    TypeDescriptor,
    TypeKind,
    model_type_name,
    resolve,
)


@dataclass(frozen=True, slots=True)
class ModelField:
    """A struct field: JSON property name plus target identifier."""

    json_name: str
    name: str
    type: TypeDescriptor
    description: str | None = None
    deprecated: bool = False

    @property
    def needs_rename(self) -> bool:
        return self.name.removeprefix("r#") != self.json_name


@dataclass(frozen=True, slots=True)
class StructModel:
    name: str
    fields: tuple[ModelField, ...]
    description: str | None = None


@dataclass(frozen=True, slots=True)
class EnumModel:
    """A union or string-enumeration schema.

    Unit enums carry one variant per literal with ``rename`` set to it.
    """

    name: str
    variants: tuple[ParsedVariant, ...]
    discriminator: str | None = None
    unit: bool = False
    description: str | None = None

    @property
    def untagged(self) -> bool:
        return not self.unit and self.discriminator is None


@dataclass(frozen=True, slots=True)
class AliasModel:
    name: str
    target: TypeDescriptor
    description: str | None = None


Model = Union[StructModel, EnumModel, AliasModel]


def _description(schema: dict[str, Any]) -> str | None:
    value = schema.get("description")
    return value.strip() if isinstance(value, str) and value.strip() else None


def _is_object_schema(schema: dict[str, Any]) -> bool:
    declared = schema.get("type")
    if declared == "object" or (isinstance(declared, list) and "object" in declared):
        return True
    return "properties" in schema or "allOf" in schema


def _collect_properties(
    schema: dict[str, Any],
    document: CanonicalDocument,
    seen: set[str],
    properties: dict[str, Any],
    required: set[str],
) -> None:
    """Merge properties and ``required`` from a schema and its allOf members."""
    for member in schema.get("allOf") or ():
        if not isinstance(member, dict):
            continue
        ref = member.get("$ref")
        if isinstance(ref, str):
            name = document.component_name(ref, "schemas")
            if name is None or name in seen:
                continue
            target = document.schemas.get(name)
            if isinstance(target, dict):
                _collect_properties(target, document, seen | {name}, properties, required)
        else:
            _collect_properties(member, document, seen, properties, required)

    for name, prop in (schema.get("properties") or {}).items():
        properties[name] = prop
    required.update(r for r in schema.get("required") or () if isinstance(r, str))


def build_struct(
    name: str,
    schema: dict[str, Any],
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> StructModel:
    properties: dict[str, Any] = {}
    required: set[str] = set()
    _collect_properties(schema, document, {name}, properties, required)

    used: dict[str, int] = {}
    fields: list[ModelField] = []
    for json_name, prop in properties.items():
        descriptor = resolve(prop, document, DEFAULT_DEPTH_BUDGET, diagnostics)
        if json_name not in required:
            descriptor = TypeDescriptor.optional(descriptor)
        prop = prop if isinstance(prop, dict) else {}
        fields.append(ModelField(
            json_name=json_name,
            name=ensure_unique(sanitize_field_name(json_name), used),
            type=descriptor,
            description=_description(prop),
            deprecated=prop.get("deprecated") is True,
        ))
    return StructModel(model_type_name(name), tuple(fields), _description(schema))


def _variant_name(value: str) -> str:
    name = to_pascal_case(value)
    if not name:
        return "Empty"
    return name if name[0].isalpha() else f"Value{name}"


def _unit_enum(name: str, schema: dict[str, Any]) -> EnumModel:
    used: dict[str, int] = {}
    variants = tuple(
        ParsedVariant(
            name=ensure_unique(_variant_name(value), used),
            rename=value,
        )
        for value in schema["enum"]
    )
    return EnumModel(model_type_name(name), variants, unit=True, description=_description(schema))


def build_model(
    name: str,
    schema: Any,
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> Model:
    """Build the declaration for one named schema."""
    type_name = model_type_name(name)
    if not isinstance(schema, dict):
        return AliasModel(type_name, TypeDescriptor.dynamic())

    literals = schema.get("enum")
    if (
        isinstance(literals, list)
        and literals
        and all(isinstance(value, str) for value in literals)
        and schema.get("type") in (None, "string")
    ):
        return _unit_enum(name, schema)

    descriptor = resolve(schema, document, DEFAULT_DEPTH_BUDGET, diagnostics)
    if descriptor.kind is TypeKind.UNION:
        return EnumModel(
            type_name,
            descriptor.variants,
            discriminator=descriptor.discriminator,
            description=_description(schema),
        )

    if _is_object_schema(schema) and not (
        descriptor.kind is TypeKind.MAP and not schema.get("allOf")
    ):
        return build_struct(name, schema, document, diagnostics)

    return AliasModel(type_name, descriptor, _description(schema))


def build_models(
    document: CanonicalDocument,
    diagnostics: Diagnostics | None = None,
) -> list[Model]:
    """Build one declaration per schema component, in document order."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    return [
        build_model(name, schema, document, diagnostics)
        for name, schema in document.schemas.items()
    ]
