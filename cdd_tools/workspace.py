"""File access and run reporting shared by the sync commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from cdd_tools.shared.errors import SyncError, WriteFailure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncReport:
    """Outcome of one sync command over a batch of files."""

    written: list[Path] = field(default_factory=list)
    unchanged: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def fail(self, path: Path, error: SyncError) -> None:
        logger.warning("Skipping %s: %s", path, error)
        self.failed.append((path, str(error)))

    def warn(self, message: str) -> None:
        logger.warning("%s", message)
        self.warnings.append(message)

    def merge(self, other: SyncReport) -> SyncReport:
        self.written.extend(other.written)
        self.unchanged.extend(other.unchanged)
        self.failed.extend(other.failed)
        self.warnings.extend(other.warnings)
        return self

    def summary(self) -> str:
        return (
            f"{len(self.written)} written, {len(self.unchanged)} unchanged, "
            f"{len(self.failed)} failed, {len(self.warnings)} warnings"
        )


def read_source(path: Path) -> str:
    """Read a generated file, returning an empty string if it does not exist.

    Raises:
        WriteFailure: If the file exists but cannot be read.
    """
    if not path.exists():
        return ""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise WriteFailure(f"Failed to read file: {e}", str(path)) from e


def write_source(path: Path, old: str, new: str, report: SyncReport) -> None:
    """Write ``new`` when it differs from ``old`` and record the outcome.

    Raises:
        WriteFailure: If the file or its parent directory cannot be written.
    """
    if path.exists() and old == new:
        report.unchanged.append(path)
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(new, encoding="utf-8")
    except OSError as e:
        raise WriteFailure(f"Failed to write file: {e}", str(path)) from e
    logger.debug("Wrote %s", path)
    report.written.append(path)


def append_block(source: str, block: str) -> str:
    """Append a declaration to ``source``, separated by one blank line."""
    if not source.strip():
        return source + block
    if not source.endswith("\n"):
        source += "\n"
    if not source.endswith("\n\n"):
        source += "\n"
    return source + block
