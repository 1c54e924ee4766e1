"""Collector for non-fatal resolution problems."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .errors import UnresolvedReference

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Diagnostics:
    """Accumulates unresolved references seen while resolving a document.

    Each reference is logged once as a warning; resolution carries on with a
    placeholder type.
    """

    unresolved: list[UnresolvedReference] = field(default_factory=list)
    _seen: set[tuple[str, str | None]] = field(default_factory=set)

    def unresolved_ref(self, ref: str, context: str | None = None) -> None:
        key = (ref, context)
        if key in self._seen:
            return
        self._seen.add(key)
        problem = UnresolvedReference(ref, context)
        self.unresolved.append(problem)
        logger.warning("%s", problem)

    def __len__(self) -> int:
        return len(self.unresolved)

    def messages(self) -> list[str]:
        return [str(problem) for problem in self.unresolved]
