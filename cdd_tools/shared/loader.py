"""Document loading for OpenAPI and Swagger files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .errors import DocumentError

YAML_SUFFIXES = frozenset({".yml", ".yaml"})


def parse_document(text: str, source_path: str | None = None, *, is_json: bool = False) -> dict[str, Any]:
    """Parse document text into a mapping.

    JSON is a subset of YAML, so the YAML parser is used unless the caller
    knows the text is JSON.

    Raises:
        DocumentError: If the text cannot be parsed or is not a mapping.
    """
    try:
        data = json.loads(text) if is_json else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise DocumentError(f"Parse error: {e}", source_path) from e

    if not isinstance(data, dict):
        raise DocumentError("Document root must be a mapping", source_path)
    return data


def load_document(path: Path) -> dict[str, Any]:
    """Load an OpenAPI document from a file.

    Supports both YAML and JSON formats.

    Raises:
        DocumentError: If the file cannot be read or parsed.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DocumentError(f"Cannot read document: {e}", str(path)) from e

    return parse_document(raw, str(path), is_json=path.suffix.lower() == ".json")
