"""
Data-model synchronization.

Keeps one models file in step with ``components.schemas``: missing
declarations are appended, missing struct fields and derives are added in
place, and configured field type overrides are applied last.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Final, Mapping

from cdd_tools.oas.models import Model, StructModel, build_models
from cdd_tools.oas.normalization import CanonicalDocument
from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.errors import DeclarationNotFound, ParseFailure, SyncError
from cdd_tools.source.patcher import AddAttribute, AddField, AddImport, RetypeField, apply
from cdd_tools.source.syntax import NodeKind, parse
from cdd_tools.strategies.base import CodeEmissionStrategy
from cdd_tools.workspace import SyncReport, append_block, read_source, write_source

logger = logging.getLogger(__name__)

MODEL_KINDS: Final[frozenset[NodeKind]] = frozenset({
    NodeKind.STRUCT,
    NodeKind.ENUM,
    NodeKind.TYPE_ALIAS,
})

TypeOverrides = Mapping[str, Mapping[str, str]]


def render_models_file(models: list[Model], strategy: CodeEmissionStrategy) -> str:
    """Full text of a fresh models file."""
    text = "\n".join(strategy.model_imports(models)) + "\n"
    for model in models:
        text = append_block(text, strategy.model_declaration(model))
    return text


def update_models_file(
    source: str,
    models: list[Model],
    strategy: CodeEmissionStrategy,
    source_path: str | None = None,
) -> str:
    """Bring an existing models file up to date without touching other content.

    Raises:
        ParseFailure: If the file cannot be parsed.
    """
    if not source.strip():
        return render_models_file(models, strategy)

    text = source
    # Imports land after the first line; reverse keeps them in order
    for line in reversed(strategy.model_imports(models)):
        text = apply(text, AddImport(line), source_path)

    tree = parse(text, source_path)
    existing: dict[str, NodeKind] = {}
    for model in models:
        handle = tree.find_declaration(model.name, MODEL_KINDS)
        if handle is not None:
            existing[model.name] = handle.kind

    for model in models:
        kind = existing.get(model.name)
        if kind is None:
            continue
        if isinstance(model, StructModel) and kind is NodeKind.STRUCT:
            for model_field in model.fields:
                name, type_text, attributes = strategy.model_field(model_field)
                text = apply(text, AddField(model.name, name, type_text, attributes=attributes), source_path)
        if kind in (NodeKind.STRUCT, NodeKind.ENUM):
            for derive in strategy.model_derives():
                text = apply(text, AddAttribute(model.name, derive, group="derive"), source_path)

    for model in models:
        if model.name not in existing:
            logger.debug("Adding declaration %s", model.name)
            text = append_block(text, strategy.model_declaration(model))
    return text


def _warn(report: SyncReport | None, message: str) -> None:
    if report is not None:
        report.warn(message)
    else:
        logger.warning("%s", message)


def retype_fields(
    text: str,
    overrides: TypeOverrides,
    source_path: str | None = None,
    report: SyncReport | None = None,
) -> str:
    """Apply ``{declaration: {field: new_type}}`` overrides one field at a time.

    Each override re-parses the current text, since every splice shifts the
    offsets of everything after it. Missing declarations or fields are logged
    and skipped; an unparseable file stops the pass and returns the text as
    patched so far.
    """
    for declaration, fields in overrides.items():
        for field_name, new_type in fields.items():
            try:
                text = apply(text, RetypeField(declaration, field_name, new_type), source_path)
            except DeclarationNotFound as e:
                _warn(report, f"Skipping retype of {declaration}.{field_name}: {e}")
            except ParseFailure as e:
                _warn(report, f"Stopping field retype: {e}")
                return text
    return text


def sync_models(
    document: CanonicalDocument,
    models_path: Path,
    strategy: CodeEmissionStrategy,
    type_overrides: TypeOverrides | None = None,
    diagnostics: Diagnostics | None = None,
) -> SyncReport:
    """Create or patch the models file, then apply type overrides."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    report = SyncReport()
    models = build_models(document, diagnostics)
    report.warnings.extend(diagnostics.messages())
    print(f"  -> Syncing {len(models)} models into {models_path}")

    try:
        old = read_source(models_path)
        new = update_models_file(old, models, strategy, str(models_path))
        if type_overrides:
            new = retype_fields(new, type_overrides, str(models_path), report)
        write_source(models_path, old, new, report)
    except SyncError as e:
        report.fail(models_path, e)
    return report
