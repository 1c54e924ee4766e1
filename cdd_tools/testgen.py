"""Integration-test stub generation: one request test per route."""

from __future__ import annotations

import logging
from pathlib import Path

from cdd_tools.oas.normalization import CanonicalDocument
from cdd_tools.oas.routes import ParsedRoute, RouteKind, resolve_routes
from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.errors import SyncError
from cdd_tools.source.syntax import parse
from cdd_tools.strategies.base import CodeEmissionStrategy
from cdd_tools.workspace import SyncReport, append_block, read_source, write_source

logger = logging.getLogger(__name__)

DEFAULT_APP_FACTORY = "crate::http::routes::config"


def update_test_file(
    source: str,
    routes: list[ParsedRoute],
    strategy: CodeEmissionStrategy,
    app_factory: str = DEFAULT_APP_FACTORY,
    source_path: str | None = None,
) -> str:
    """Append a test function for every standard route that has none.

    Raises:
        ParseFailure: If an existing test file cannot be parsed.
    """
    if source.strip():
        text = source
        existing = parse(source, source_path).function_names()
    else:
        text = strategy.test_imports()
        existing = set()

    for route in routes:
        if route.kind is not RouteKind.STANDARD:
            continue
        name = strategy.test_function_name(route)
        if name in existing:
            continue
        text = append_block(text, strategy.test_function(route, app_factory))
        existing.add(name)
        logger.debug("Added test %s", name)
    return text


def generate_tests(
    document: CanonicalDocument,
    tests_path: Path,
    strategy: CodeEmissionStrategy,
    app_factory: str = DEFAULT_APP_FACTORY,
    diagnostics: Diagnostics | None = None,
) -> SyncReport:
    """Create or patch the integration-test file for ``document``."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    report = SyncReport()
    routes = resolve_routes(document, diagnostics)
    report.warnings.extend(diagnostics.messages())

    try:
        old = read_source(tests_path)
        new = update_test_file(old, routes, strategy, app_factory, str(tests_path))
        write_source(tests_path, old, new, report)
    except SyncError as e:
        report.fail(tests_path, e)
    else:
        print(f"Generated integration tests at {tests_path}")
    return report
