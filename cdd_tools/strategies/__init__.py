"""Code emission strategies, looked up by name."""

from __future__ import annotations

from typing import Callable

from cdd_tools.shared.errors import ConfigError

from .actix import ActixStrategy, GeneratorContext
from .base import CodeEmissionStrategy

STRATEGIES: dict[str, Callable[[], CodeEmissionStrategy]] = {
    ActixStrategy.name: ActixStrategy,
}


def get_strategy(name: str) -> CodeEmissionStrategy:
    """Instantiate the strategy registered under ``name``.

    Raises:
        ConfigError: If no strategy has that name.
    """
    try:
        factory = STRATEGIES[name]
    except KeyError:
        known = ", ".join(sorted(STRATEGIES))
        raise ConfigError(f"Unknown strategy '{name}' (available: {known})") from None
    return factory()


__all__ = [
    "ActixStrategy",
    "CodeEmissionStrategy",
    "GeneratorContext",
    "STRATEGIES",
    "get_strategy",
]
