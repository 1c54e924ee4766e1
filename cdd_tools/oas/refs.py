"""Reference classification and resolution for ``$ref`` strings.

References are never fetched. An absolute or relative reference is treated
as local only when its document part names the current document, as
identified by the top-level ``$self`` field.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import unquote, urlsplit


class ReferenceKind(Enum):
    LOCAL = "local"
    RELATIVE = "relative"
    REMOTE = "remote"


@dataclass(frozen=True, slots=True)
class ParsedReference:
    """A ``$ref`` split into its document and fragment parts."""

    exact: str
    kind: ReferenceKind
    document: str
    fragment: str | None


def _is_remote(uri: str) -> bool:
    """Check whether a string starts with a URI scheme."""
    scheme, sep, _ = uri.partition(":")
    if not sep or not scheme:
        return False
    return scheme[0].isascii() and scheme[0].isalpha()


@lru_cache(maxsize=1024)
def parse_reference(ref: str) -> ParsedReference:
    """Classify a reference string.

    Examples:
        >>> parse_reference("#/components/schemas/User").kind
        <ReferenceKind.LOCAL: 'local'>
        >>> parse_reference("models.yaml#/User").kind
        <ReferenceKind.RELATIVE: 'relative'>
        >>> parse_reference("https://example.com/api.yaml").fragment is None
        True
    """
    document, sep, fragment = ref.partition("#")
    if sep and not document:
        return ParsedReference(ref, ReferenceKind.LOCAL, "", fragment)
    kind = ReferenceKind.REMOTE if _is_remote(document) else ReferenceKind.RELATIVE
    return ParsedReference(ref, kind, document, fragment if sep else None)


def _url_parts(value: str) -> tuple[str, str | None, int | None, str] | None:
    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme:
        return None
    return parts.scheme.lower(), parts.hostname, port, parts.path or "/"


def ref_doc_matches_self(ref_doc: str, self_uri: str) -> bool:
    """Decide whether the document part of a reference names this document."""
    if ref_doc == self_uri:
        return True

    ref_url = _url_parts(ref_doc)
    self_url = _url_parts(self_uri)
    if ref_url is not None and self_url is not None:
        return ref_url == self_url

    # An absolute-path self identifier is compared against the URL path
    if self_uri.startswith("/") and ref_url is not None:
        return ref_url[3] == self_uri

    if "://" not in self_uri and "://" not in ref_doc:
        return PurePosixPath(ref_doc) == PurePosixPath(self_uri)

    return False


def normalize_ref_to_local(ref: str, self_uri: str | None) -> str | None:
    """Rewrite a reference to a local ``#/...`` pointer if it targets this document.

    Returns None for references into other documents and for references
    without a fragment.
    """
    if ref == "#" or ref.startswith("#/"):
        return ref

    parsed = parse_reference(ref)
    if parsed.kind is ReferenceKind.LOCAL:
        return ref
    if parsed.fragment is None or self_uri is None:
        return None
    if ref_doc_matches_self(parsed.document, self_uri):
        return f"#{parsed.fragment}"
    return None


def decode_pointer_segment(segment: str) -> str:
    """Decode one JSON Pointer segment.

    Examples:
        >>> decode_pointer_segment("User%20Profile~1details")
        'User Profile/details'
        >>> decode_pointer_segment("a~01")
        'a~1'
    """
    return unquote(segment.replace("~1", "/").replace("~0", "~"))


def pointer_segments(local_ref: str) -> list[str]:
    """Split a local ``#/...`` pointer into decoded segments."""
    pointer = local_ref.lstrip("#")
    if not pointer:
        return []
    return [decode_pointer_segment(part) for part in pointer.lstrip("/").split("/")]


def extract_component_name(ref: str, self_uri: str | None, section: str) -> str | None:
    """Return ``<name>`` if ``ref`` points at ``#/components/<section>/<name>``."""
    local = normalize_ref_to_local(ref, self_uri)
    if local is None:
        return None

    segments = local.lstrip("#").lstrip("/").split("/")
    if len(segments) != 3:
        return None
    if segments[0] != "components" or segments[1] != section:
        return None

    name = decode_pointer_segment(segments[2])
    return name or None


def extract_ref_name(ref: str) -> str:
    """Derive a type name from a reference string.

    The last pointer segment wins; without a fragment the file stem is used.

    Examples:
        >>> extract_ref_name("#/components/schemas/User")
        'User'
        >>> extract_ref_name("schemas/user.yaml")
        'user'
        >>> extract_ref_name("#")
        'Unknown'
    """
    parsed = parse_reference(ref)
    if parsed.fragment is not None:
        name = parsed.fragment.rsplit("/", 1)[-1]
        if name:
            return decode_pointer_segment(name)

    if parsed.document:
        stem = PurePosixPath(urlsplit(parsed.document).path or parsed.document).stem
        if stem:
            return stem

    return "Unknown"


def resolve_pointer(data: Any, local_ref: str) -> Any | None:
    """Follow a local JSON Pointer through nested mappings and lists."""
    node = data
    for segment in pointer_segments(local_ref):
        if isinstance(node, dict):
            if segment not in node:
                return None
            node = node[segment]
        elif isinstance(node, list):
            if not segment.isdigit() or int(segment) >= len(node):
                return None
            node = node[int(segment)]
        else:
            return None
    return node
