"""
Schema resolution - maps canonical schema nodes to target type descriptors.

References are followed one level at a time. A reference to a named component
resolves to a REFERENCE descriptor and is never expanded, so mutually recursive
schemas cannot loop. Pointer references into other positions are resolved once
inline; chains deeper than that are reported as unknown references.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Final

from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.naming import ensure_unique, to_pascal_case

from .normalization import CanonicalDocument
from .refs import extract_ref_name

DEFAULT_DEPTH_BUDGET: Final[int] = 8

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class TypeKind(Enum):
    SCALAR = "scalar"
    ARRAY = "array"
    MAP = "map"
    OPTIONAL = "optional"
    REFERENCE = "reference"
    UNION = "union"
    DYNAMIC = "dynamic"
    UNKNOWN_REFERENCE = "unknown_reference"


class ScalarKind(Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True, slots=True)
class ParsedVariant:
    """One member of a union schema.

    ``rename`` is the primary discriminator value routed to this variant;
    ``aliases`` holds any further values mapped to the same variant.
    """

    name: str
    type: TypeDescriptor | None = None
    rename: str | None = None
    aliases: tuple[str, ...] = ()
    deprecated: bool = False
    description: str | None = None


@dataclass(frozen=True, slots=True)
class TypeDescriptor:
    """Language-neutral description of a resolved schema type."""

    kind: TypeKind
    scalar: ScalarKind | None = None
    format: str | None = None
    name: str | None = None
    inner: TypeDescriptor | None = None
    variants: tuple[ParsedVariant, ...] = field(default=())
    discriminator: str | None = None

    @classmethod
    def of_scalar(cls, scalar: ScalarKind, fmt: str | None = None) -> TypeDescriptor:
        return cls(TypeKind.SCALAR, scalar=scalar, format=fmt)

    @classmethod
    def array(cls, inner: TypeDescriptor) -> TypeDescriptor:
        return cls(TypeKind.ARRAY, inner=inner)

    @classmethod
    def mapping(cls, inner: TypeDescriptor) -> TypeDescriptor:
        return cls(TypeKind.MAP, inner=inner)

    @classmethod
    def optional(cls, inner: TypeDescriptor) -> TypeDescriptor:
        if inner.kind is TypeKind.OPTIONAL:
            return inner
        return cls(TypeKind.OPTIONAL, inner=inner)

    @classmethod
    def reference(cls, name: str) -> TypeDescriptor:
        return cls(TypeKind.REFERENCE, name=name)

    @classmethod
    def dynamic(cls) -> TypeDescriptor:
        return cls(TypeKind.DYNAMIC)

    @classmethod
    def unknown(cls, ref: str) -> TypeDescriptor:
        return cls(TypeKind.UNKNOWN_REFERENCE, name=ref)

    @classmethod
    def union(
        cls,
        variants: tuple[ParsedVariant, ...],
        discriminator: str | None = None,
    ) -> TypeDescriptor:
        return cls(TypeKind.UNION, variants=variants, discriminator=discriminator)

    @property
    def is_optional(self) -> bool:
        return self.kind is TypeKind.OPTIONAL

    def required(self) -> TypeDescriptor:
        """Strip one optional layer."""
        if self.kind is TypeKind.OPTIONAL and self.inner is not None:
            return self.inner
        return self


@lru_cache(maxsize=1024)
def model_type_name(component_name: str) -> str:
    """Type name used for a schema component.

    Valid PascalCase identifiers are kept as written.

    Examples:
        >>> model_type_name("UserDTO")
        'UserDTO'
        >>> model_type_name("user-profile")
        'UserProfile'
    """
    if _IDENTIFIER.fullmatch(component_name) and component_name[0].isupper():
        return component_name
    return to_pascal_case(component_name) or "Unknown"


_SCALAR_TYPES: Final[dict[str, ScalarKind]] = {
    "string": ScalarKind.STRING,
    "integer": ScalarKind.INTEGER,
    "number": ScalarKind.NUMBER,
    "boolean": ScalarKind.BOOLEAN,
}


def _is_null_schema(schema: Any) -> bool:
    return isinstance(schema, dict) and schema.get("type") == "null" and len(schema) == 1


def resolve(
    schema: Any,
    document: CanonicalDocument,
    depth_budget: int = DEFAULT_DEPTH_BUDGET,
    diagnostics: Diagnostics | None = None,
) -> TypeDescriptor:
    """Resolve a canonical schema node to a ``TypeDescriptor``.

    Never raises: anything that cannot be typed becomes DYNAMIC, and
    references that do not resolve become UNKNOWN_REFERENCE.
    """
    if depth_budget <= 0 or not isinstance(schema, dict):
        return TypeDescriptor.dynamic()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    budget = depth_budget - 1

    ref = schema.get("$ref")
    if isinstance(ref, str):
        return resolve_reference(ref, document, depth_budget, diagnostics)

    dynamic_ref = schema.get("$dynamicRef")
    if isinstance(dynamic_ref, str):
        name = extract_ref_name(dynamic_ref).lstrip("#")
        if name in document.schemas:
            return TypeDescriptor.reference(model_type_name(name))
        return TypeDescriptor.dynamic()

    declared = schema.get("type")
    if isinstance(declared, list):
        concrete = [t for t in declared if t != "null"]
        if len(concrete) == 1:
            inner = resolve({**schema, "type": concrete[0]}, document, depth_budget, diagnostics)
        else:
            inner = TypeDescriptor.dynamic()
        return TypeDescriptor.optional(inner) if "null" in declared else inner

    for keyword in ("oneOf", "anyOf"):
        members = schema.get(keyword)
        if not isinstance(members, list) or not members:
            continue
        concrete = [member for member in members if not _is_null_schema(member)]
        nullable = len(concrete) < len(members)
        if len(concrete) == 1 and nullable:
            return TypeDescriptor.optional(resolve(concrete[0], document, budget, diagnostics))
        if not concrete:
            return TypeDescriptor.dynamic()
        discriminator = schema.get("discriminator")
        mapping = None
        property_name = None
        if isinstance(discriminator, dict):
            property_name = discriminator.get("propertyName")
            mapping = discriminator.get("mapping")
        union = TypeDescriptor.union(
            resolve_variants(concrete, document, mapping, budget, diagnostics),
            property_name if isinstance(property_name, str) else None,
        )
        return TypeDescriptor.optional(union) if nullable else union

    all_of = schema.get("allOf")
    if isinstance(all_of, list) and all_of:
        if len(all_of) == 1:
            return resolve(all_of[0], document, budget, diagnostics)
        return TypeDescriptor.dynamic()

    if declared is None and "enum" in schema:
        literals = schema["enum"]
        if isinstance(literals, list) and literals and all(isinstance(v, str) for v in literals):
            declared = "string"

    if declared == "array":
        items = schema.get("items")
        inner = resolve(items, document, budget, diagnostics) if isinstance(items, dict) else TypeDescriptor.dynamic()
        return TypeDescriptor.array(inner)

    if declared == "object" or (declared is None and "additionalProperties" in schema):
        additional = schema.get("additionalProperties")
        if not schema.get("properties"):
            if isinstance(additional, dict):
                return TypeDescriptor.mapping(resolve(additional, document, budget, diagnostics))
            if additional is True:
                return TypeDescriptor.mapping(TypeDescriptor.dynamic())
        return TypeDescriptor.dynamic()

    if isinstance(declared, str) and declared in _SCALAR_TYPES:
        fmt = schema.get("format")
        return TypeDescriptor.of_scalar(_SCALAR_TYPES[declared], fmt if isinstance(fmt, str) else None)

    return TypeDescriptor.dynamic()


def resolve_reference(
    ref: str,
    document: CanonicalDocument,
    depth_budget: int = DEFAULT_DEPTH_BUDGET,
    diagnostics: Diagnostics | None = None,
) -> TypeDescriptor:
    """Resolve a single ``$ref`` without expanding named components."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    component = document.component_name(ref, "schemas")
    if component is not None:
        if component in document.schemas:
            return TypeDescriptor.reference(model_type_name(component))
        diagnostics.unresolved_ref(ref, "schema component")
        return TypeDescriptor.unknown(ref)

    target = document.resolve_ref(ref)
    if not isinstance(target, dict):
        diagnostics.unresolved_ref(ref, "schema")
        return TypeDescriptor.unknown(ref)
    if "$ref" in target:
        # Only one level of indirection is followed
        return TypeDescriptor.unknown(ref)
    return resolve(target, document, depth_budget - 1, diagnostics)


def _placeholder_name(descriptor: TypeDescriptor) -> str | None:
    if descriptor.kind is TypeKind.ARRAY:
        return "Array"
    if descriptor.kind is not TypeKind.SCALAR:
        return None
    if descriptor.scalar is ScalarKind.STRING:
        return {"uuid": "Uuid", "date": "Date", "date-time": "DateTime"}.get(descriptor.format or "", "String")
    return descriptor.scalar.value.capitalize() if descriptor.scalar else None


def _mapping_target_name(target: str) -> str:
    # Mapping values may be references or bare schema names
    if "#" in target or "/" in target:
        return extract_ref_name(target)
    return target


def resolve_variants(
    members: list[Any],
    document: CanonicalDocument,
    mapping: Any = None,
    depth_budget: int = DEFAULT_DEPTH_BUDGET,
    diagnostics: Diagnostics | None = None,
) -> tuple[ParsedVariant, ...]:
    """Extract ordered variants from ``oneOf``/``anyOf`` members.

    Discriminator mapping entries are matched against referenced members in
    document order: the first value routed to a variant becomes its primary
    alias, later values for the same variant become secondary aliases.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    entries = mapping.items() if isinstance(mapping, dict) else ()
    used: dict[str, int] = {}
    variants: list[ParsedVariant] = []

    for index, member in enumerate(members):
        ref = member.get("$ref") if isinstance(member, dict) else None
        rename: str | None = None
        aliases: list[str] = []
        deprecated = False
        description = None

        if isinstance(ref, str):
            target_name = extract_ref_name(ref)
            descriptor = resolve_reference(ref, document, depth_budget, diagnostics)
            base_name = model_type_name(target_name)
            for value, target in entries:
                if not isinstance(target, str) or _mapping_target_name(target) != target_name:
                    continue
                if rename is None:
                    rename = str(value)
                else:
                    aliases.append(str(value))
        else:
            descriptor = resolve(member, document, depth_budget, diagnostics)
            base_name = _placeholder_name(descriptor) or f"Variant{index}"
            if isinstance(member, dict):
                deprecated = member.get("deprecated") is True
                description = member.get("description")

        variants.append(ParsedVariant(
            name=ensure_unique(base_name, used),
            type=descriptor,
            rename=rename,
            aliases=tuple(aliases),
            deprecated=deprecated,
            description=description if isinstance(description, str) else None,
        ))

    return tuple(variants)
