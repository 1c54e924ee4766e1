#!/usr/bin/env python3
"""
Contract sync CLI: keeps generated Rust sources in step with an OpenAPI document.

Usage:
    python -m cdd_tools <command> [options]

Commands:
    scaffold    Create or patch handler modules and route registrations
    models      Sync data-model declarations and apply field type overrides
    tests       Create or patch integration-test stubs
    routes      Print resolved routes as JSON
    normalize   Print the canonical document as YAML

Examples:
    python -m cdd_tools scaffold --openapi docs/openapi.yaml --handlers-dir src/handlers
    python -m cdd_tools models --models-path src/models.rs -v
    python -m cdd_tools routes --openapi docs/openapi.yaml
"""

from __future__ import annotations

import argparse
import dataclasses
import enum
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

import yaml

from cdd_tools.config import SyncConfig, load_config
from cdd_tools.models_sync import sync_models
from cdd_tools.oas.normalization import CanonicalDocument, normalize
from cdd_tools.oas.routes import resolve_routes
from cdd_tools.scaffold import scaffold
from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.errors import ConfigError, SyncError
from cdd_tools.shared.loader import load_document
from cdd_tools.strategies import get_strategy
from cdd_tools.testgen import generate_tests
from cdd_tools.workspace import SyncReport

logger = logging.getLogger("cdd_tools")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"cdd_tools {prog}",
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file (default: cdd.yaml if present)",
    )
    parser.add_argument(
        "--openapi",
        type=Path,
        help="OpenAPI or Swagger document (YAML or JSON)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _load(parsed: argparse.Namespace, **overrides: Any) -> tuple[SyncConfig, CanonicalDocument]:
    setup_logging(parsed.verbose)
    config = load_config(parsed.config).with_overrides(openapi_path=parsed.openapi, **overrides)
    logger.debug("Loading %s", config.openapi_path)
    document = normalize(load_document(config.openapi_path), str(config.openapi_path))
    return config, document


def _finish(report: SyncReport) -> int:
    print(f"Done: {report.summary()}")
    for path, message in report.failed:
        print(f"  failed: {path}: {message}", file=sys.stderr)
    return 0 if report.ok else 1


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


# =============================================================================
# Commands
# =============================================================================


def cmd_scaffold(args: list[str]) -> int:
    """Create or patch handler modules and route registrations."""
    parser = _parser("scaffold", "Scaffold handler stubs grouped by tag")
    parser.add_argument("--handlers-dir", type=Path, help="Directory of handler modules")
    parser.add_argument("--route-config-path", type=Path, help="File holding the route config function")
    parsed = parser.parse_args(args)

    config, document = _load(
        parsed,
        handlers_dir=parsed.handlers_dir,
        route_config_path=parsed.route_config_path,
    )
    print(f"Scaffolding handlers from {config.openapi_path}...")
    report = scaffold(
        document,
        config.handlers_dir,
        get_strategy(config.strategy),
        config.route_config_path,
    )
    return _finish(report)


def cmd_models(args: list[str]) -> int:
    """Sync data-model declarations."""
    parser = _parser("models", "Sync model declarations from components.schemas")
    parser.add_argument("--models-path", type=Path, help="Models source file")
    parsed = parser.parse_args(args)

    config, document = _load(parsed, models_path=parsed.models_path)
    if config.models_path is None:
        raise ConfigError("No models path configured (use --models-path or 'models_path')")
    report = sync_models(
        document,
        config.models_path,
        get_strategy(config.strategy),
        config.type_overrides,
    )
    return _finish(report)


def cmd_tests(args: list[str]) -> int:
    """Create or patch integration-test stubs."""
    parser = _parser("tests", "Generate one integration test per route")
    parser.add_argument("--tests-path", type=Path, help="Integration test file")
    parser.add_argument("--app-factory", help="Path of the route config function used by tests")
    parsed = parser.parse_args(args)

    config, document = _load(parsed, tests_path=parsed.tests_path, app_factory=parsed.app_factory)
    if config.tests_path is None:
        raise ConfigError("No tests path configured (use --tests-path or 'tests_path')")
    report = generate_tests(
        document,
        config.tests_path,
        get_strategy(config.strategy),
        config.app_factory,
    )
    return _finish(report)


def cmd_routes(args: list[str]) -> int:
    """Print resolved routes as JSON."""
    parser = _parser("routes", "Print resolved routes as JSON")
    parsed = parser.parse_args(args)

    _, document = _load(parsed)
    routes = resolve_routes(document, Diagnostics())
    print(json.dumps(_jsonable(routes), indent=2))
    return 0


def cmd_normalize(args: list[str]) -> int:
    """Print the canonical document as YAML."""
    parser = _parser("normalize", "Print the normalized document as YAML")
    parsed = parser.parse_args(args)

    _, document = _load(parsed)
    print(yaml.safe_dump(document.data, sort_keys=False, allow_unicode=True), end="")
    return 0


COMMANDS: dict[str, tuple[Callable[[list[str]], int], str]] = {
    "scaffold": (cmd_scaffold, "Create or patch handler modules and route registrations"),
    "models": (cmd_models, "Sync data-model declarations and apply field type overrides"),
    "tests": (cmd_tests, "Create or patch integration-test stubs"),
    "routes": (cmd_routes, "Print resolved routes as JSON"),
    "normalize": (cmd_normalize, "Print the canonical document as YAML"),
}


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] in ("-h", "--help"):
        print(__doc__)
        print("Available commands:")
        for name, (_, desc) in COMMANDS.items():
            print(f"  {name:12} {desc}")
        print("\nUse '<command> --help' for command-specific options.")
        return 0

    command, args = argv[0], argv[1:]
    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        print(f"Available commands: {', '.join(COMMANDS.keys())}")
        return 1

    handler, _ = COMMANDS[command]
    try:
        return handler(args)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
