"""
Handler scaffolding and route registration.

Routes are grouped by their first tag. Each group owns one handler module that
is created on first run and only ever appended to afterwards: handlers that
already exist are left untouched. Registrations are injected into the
strategy's configuration function, deduplicated by handler reference.
"""

from __future__ import annotations

import logging
from pathlib import Path

from cdd_tools.oas.normalization import CanonicalDocument
from cdd_tools.oas.params import ParamSource
from cdd_tools.oas.routes import ParsedRoute, RouteKind, path_variables, resolve_routes
from cdd_tools.shared.diagnostics import Diagnostics
from cdd_tools.shared.errors import SyncError
from cdd_tools.shared.naming import sanitize_field_name, sanitize_module_name
from cdd_tools.source.patcher import AddImport, InsertRegistration, apply
from cdd_tools.source.syntax import NodeKind, parse
from cdd_tools.strategies.base import CodeEmissionStrategy
from cdd_tools.workspace import SyncReport, append_block, read_source, write_source

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "default"


def group_routes_by_tag(routes: list[ParsedRoute]) -> dict[str, list[ParsedRoute]]:
    """Group routes by module name derived from their first tag.

    Examples:
        Routes tagged ``["User Accounts"]`` land under ``user_accounts``;
        untagged routes under ``default``.
    """
    grouped: dict[str, list[ParsedRoute]] = {}
    for route in routes:
        group = sanitize_module_name(route.group or DEFAULT_GROUP)
        grouped.setdefault(group, []).append(route)
    return grouped


def handler_args(
    route: ParsedRoute,
    strategy: CodeEmissionStrategy,
    query_struct: str | None = None,
) -> list[str]:
    """Handler arguments in extraction order: path, query, headers, cookies, body, security."""
    args: list[str] = []
    path_params = {param.name: param for param in route.params_from(ParamSource.PATH)}

    names = path_variables(route.path)
    if names:
        types = [
            strategy.render_type(path_params[name].type.required()) if name in path_params else "String"
            for name in names
        ]
        extractor = strategy.path_extractor(types)
        arg_name = sanitize_field_name(names[0]) if len(names) == 1 else "path"
        args.append(f"{arg_name}: {extractor}")

    query_string = route.params_from(ParamSource.QUERY_STRING)
    if query_string:
        param = query_string[0]
        args.append(
            f"{sanitize_field_name(param.name)}: "
            f"{strategy.query_string_extractor(strategy.render_type(param.type.required()))}"
        )
    elif route.params_from(ParamSource.QUERY):
        extractor = (
            strategy.typed_query_extractor(query_struct)
            if query_struct
            else strategy.query_extractor()
        )
        args.append(f"query: {extractor}")

    for param in route.params_from(ParamSource.HEADER):
        extractor = strategy.header_extractor(strategy.render_type(param.type.required()))
        args.append(f"{sanitize_field_name(param.name)}: {extractor}")

    for param in route.params_from(ParamSource.COOKIE):
        args.append(f"{sanitize_field_name(param.name)}: {strategy.cookie_extractor()}")

    if route.request_body is not None:
        args.append(f"body: {strategy.body_extractor(route.request_body)}")

    security = strategy.security_extractor(route.security)
    if security:
        args.append(security)
    return args


def update_handler_module(
    source: str,
    routes: list[ParsedRoute],
    strategy: CodeEmissionStrategy,
    source_path: str | None = None,
) -> str:
    """Append stubs for routes whose handler is not yet declared.

    Raises:
        ParseFailure: If an existing module cannot be parsed.
    """
    if not source.strip():
        result = "\n".join(strategy.handler_imports()) + "\n"
        existing_functions: set[str] = set()
        existing_structs: set[str] = set()
    else:
        result = source
        tree = parse(source, source_path)
        existing_functions = tree.function_names()
        existing_structs = {node.name for node in tree.declarations(NodeKind.STRUCT) if node.name}

    for route in routes:
        if route.handler_name in existing_functions:
            continue
        query = strategy.query_struct(route)
        query_name = None
        if query is not None:
            query_name, query_code = query
            if query_name not in existing_structs:
                result = append_block(result, query_code)
                existing_structs.add(query_name)
        stub = strategy.handler_stub(route, handler_args(route, strategy, query_name))
        result = append_block(result, stub)
        existing_functions.add(route.handler_name)
        logger.debug("Added handler %s", route.handler_name)
    return result


def update_module_index(source: str, groups: list[str], strategy: CodeEmissionStrategy) -> str:
    """Declare every group module in the handler index file."""
    result = source or strategy.module_index()[1]
    # Each import lands right after the first line, so insert in reverse
    for group in sorted(groups, reverse=True):
        result = apply(result, AddImport(strategy.module_declaration(group)))
    return result


def register_routes(
    source: str,
    group: str,
    routes: list[ParsedRoute],
    strategy: CodeEmissionStrategy,
    source_path: str | None = None,
) -> str:
    """Insert one registration statement per standard route of a group.

    Raises:
        ParseFailure: If the configuration file cannot be parsed.
        DeclarationNotFound: If it has no configuration function.
    """
    result = source if source.strip() else strategy.registration_scaffold()
    for route in routes:
        if route.kind is not RouteKind.STANDARD:
            continue
        reference = strategy.handler_reference(group, route.handler_name)
        request = InsertRegistration(
            function=strategy.registration_function,
            statement=strategy.registration_statement(route, reference),
            dedupe_key=reference,
        )
        result = apply(result, request, source_path)
    return result


def scaffold(
    document: CanonicalDocument,
    handlers_dir: Path,
    strategy: CodeEmissionStrategy,
    route_config_path: Path | None = None,
    diagnostics: Diagnostics | None = None,
) -> SyncReport:
    """Create or patch handler modules, the module index and registrations.

    A module that cannot be parsed or written is recorded as failed and
    skipped; the remaining modules are still processed.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    report = SyncReport()
    routes = resolve_routes(document, diagnostics)
    report.warnings.extend(diagnostics.messages())
    if not routes:
        report.warn("No routes found in document")
        return report

    grouped = group_routes_by_tag(routes)
    for group in sorted(grouped):
        path = handlers_dir / strategy.module_file_name(group)
        print(f"  -> Processing module: {path.name} ({len(grouped[group])} routes)")
        try:
            old = read_source(path)
            new = update_handler_module(old, grouped[group], strategy, str(path))
            write_source(path, old, new, report)
        except SyncError as e:
            report.fail(path, e)

    index_name = strategy.module_index()[0]
    index_path = handlers_dir / index_name
    try:
        old = read_source(index_path)
        write_source(index_path, old, update_module_index(old, list(grouped), strategy), report)
    except SyncError as e:
        report.fail(index_path, e)

    if route_config_path is not None:
        print(f"  -> Injecting route registrations into {route_config_path}")
        try:
            old = read_source(route_config_path)
            new = old
            for group in sorted(grouped):
                new = register_routes(new, group, grouped[group], strategy, str(route_config_path))
            write_source(route_config_path, old, new, report)
        except SyncError as e:
            report.fail(route_config_path, e)

    return report
