"""Command-line interface for spanguard-core."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from artifacts.plan import build_plan, write_plan
from artifacts.utils import dumps_json
from continuation.codec import TokenCodec
from continuation.replay import issue_importer_tokens, issue_search_tokens, resume
from errors import InvalidSelector, SpanguardError
from extract.listing import extract_by_hashes, list_functions, list_variables
from extract.walker import extract_entities
from mutate.engine import MutationEngine, MutationRequest
from parse.spans import Span, normalize_span
from parse.treesitter_js import parse_source
from relations.analyzer import RelationshipAnalyzer
from relations.callgraph import build_callee_graph, call_cycles, dead_code, hot_paths, traverse
from relations.session import AnalysisSession
from rules.config import ConfigError, load_config, resolve_plan_dir
from scan.search import SearchOptions, search_workspace
from selection.resolve import resolve_matches
from slicing.context import build_context
from slicing.dependency import build_dependency_slice
from utils import path_to_module_id, relative_posix
from verify.verify import verify_plan

logger = logging.getLogger("spanguard")


class UsageError(Exception):
    """Bad command-line input; exits with status 2."""


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=".",
        help="Workspace root (default: .)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )


def _add_selection(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", help="Source file")
    parser.add_argument("selector", help="Selector, e.g. 'exports.run' or 'hash:abc12345'")
    parser.add_argument(
        "--variable",
        action="store_true",
        help="Select variables instead of functions",
    )
    parser.add_argument(
        "--select",
        default=None,
        help="Pick one match by 1-based index or by hash:<h>",
    )
    parser.add_argument("--select-path", default=None, help="Pick the match at this path signature")
    parser.add_argument("--select-hash", default=None, help="Pick the match with this hash")


def _add_guards(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--expect-hash", default=None, help="Hash the target must still have")
    parser.add_argument("--expect-span", default=None, help="Span the target must still have (start:end)")
    parser.add_argument("--force", action="store_true", help="Bypass span/hash/path guards")
    parser.add_argument("--apply", action="store_true", help="Write the result (default: dry run)")
    parser.add_argument(
        "--variable-target",
        choices=("binding", "declarator", "declaration"),
        default="declarator",
        help="Which variable span a mutation replaces (default: declarator)",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print the guard table instead of JSON",
    )
    parser.add_argument(
        "--emit-plan",
        nargs="?",
        const="",
        default=None,
        help="Write a plan artifact (default path: <plan_dir>/<operation>-<file>.json)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spanguard")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List functions or variables in a file")
    _add_common(list_parser)
    list_parser.add_argument("file", help="Source file")
    list_parser.add_argument("--variables", action="store_true", help="List variables")
    list_parser.add_argument("--exported-only", action="store_true")
    list_parser.add_argument("--kind", action="append", default=[], help="Keep only this kind")

    locate_parser = subparsers.add_parser("locate", help="Resolve a selector to records")
    _add_common(locate_parser)
    _add_selection(locate_parser)
    locate_parser.add_argument("--allow-multiple", action="store_true")
    locate_parser.add_argument("--emit-plan", nargs="?", const="", default=None)

    context_parser = subparsers.add_parser("context", help="Show padded source around a match")
    _add_common(context_parser)
    _add_selection(context_parser)
    context_parser.add_argument("--allow-multiple", action="store_true")
    context_parser.add_argument("--before", type=int, default=None, help="Characters before")
    context_parser.add_argument("--after", type=int, default=None, help="Characters after")
    context_parser.add_argument(
        "--enclosing",
        choices=("exact", "class", "function"),
        default="exact",
    )

    slice_parser = subparsers.add_parser("slice", help="Minimal dependency slice of a function")
    _add_common(slice_parser)
    _add_selection(slice_parser)

    extract_parser = subparsers.add_parser("extract", help="Extract code by function hash")
    _add_common(extract_parser)
    extract_parser.add_argument("file", help="Source file")
    extract_parser.add_argument("hashes", nargs="+", help="One or more hashes")

    replace_parser = subparsers.add_parser("replace", help="Guarded replacement")
    _add_common(replace_parser)
    _add_selection(replace_parser)
    _add_guards(replace_parser)
    source_group = replace_parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--with", dest="replacement", default=None, help="Replacement text")
    source_group.add_argument(
        "--with-file",
        default=None,
        help="Read replacement text from a file ('-' for stdin)",
    )
    replace_parser.add_argument(
        "--range",
        default=None,
        help="Replace only start:end bytes relative to the target span",
    )

    rename_parser = subparsers.add_parser("rename", help="Guarded identifier rename")
    _add_common(rename_parser)
    _add_selection(rename_parser)
    _add_guards(rename_parser)
    rename_parser.add_argument("new_name", help="New identifier")

    search_parser = subparsers.add_parser("search", help="Search the workspace by name")
    _add_common(search_parser)
    search_parser.add_argument("terms", nargs="+")
    search_parser.add_argument("--variables", action="store_true")
    search_parser.add_argument("--exported-only", action="store_true")
    search_parser.add_argument("--kind", action="append", default=[])
    search_parser.add_argument("--limit", type=int, default=20)
    search_parser.add_argument("--tokens", action="store_true", help="Attach continuation tokens")

    imports_parser = subparsers.add_parser("imports", help="What imports this file")
    _add_common(imports_parser)
    imports_parser.add_argument("target")
    imports_parser.add_argument("--tokens", action="store_true", help="Attach continuation tokens")

    calls_parser = subparsers.add_parser("calls", help="What this function calls")
    _add_common(calls_parser)
    calls_parser.add_argument("selector")
    calls_parser.add_argument("--file", default=None, help="Look only in this file")

    usage_parser = subparsers.add_parser("usage", help="Who uses this file's exports")
    _add_common(usage_parser)
    usage_parser.add_argument("target")
    usage_parser.add_argument("--export", default=None, help="Only this export")

    deps_parser = subparsers.add_parser("deps", help="Transitive relative-import dependencies")
    _add_common(deps_parser)
    deps_parser.add_argument("target")
    deps_parser.add_argument("--depth", type=int, default=2, help="0 for unbounded")

    impact_parser = subparsers.add_parser("impact", help="Per-export usage risk for a file")
    _add_common(impact_parser)
    impact_parser.add_argument("target")

    graph_parser = subparsers.add_parser("call-graph", help="Call graph, or a traversal from --start")
    _add_common(graph_parser)
    graph_parser.add_argument("--start", default=None, help="Node id or function name")
    graph_parser.add_argument("--file", default=None, help="Restrict --start lookup to a file")
    graph_parser.add_argument("--depth", type=int, default=0, help="0 for unbounded")
    graph_parser.add_argument("--callers", action="store_true", help="Walk inbound edges")

    hot_parser = subparsers.add_parser("hot-paths", help="Most-called functions")
    _add_common(hot_parser)
    hot_parser.add_argument("--limit", type=int, default=None)

    dead_parser = subparsers.add_parser("dead-code", help="Functions nothing calls")
    _add_common(dead_parser)
    dead_parser.add_argument("--include-exported", action="store_true", default=None)

    cycles_parser = subparsers.add_parser("cycles", help="Recursion groups in the call graph")
    _add_common(cycles_parser)

    resume_parser = subparsers.add_parser("resume", help="Resume a continuation token")
    _add_common(resume_parser)
    resume_parser.add_argument("token", nargs="?", default="-", help="Token, or '-' for stdin")

    verify_parser = subparsers.add_parser("verify-plan", help="Re-check a plan artifact")
    _add_common(verify_parser)
    verify_parser.add_argument("plan", help="Plan file")

    return parser


# --- helpers ----------------------------------------------------------------


def _emit(obj: object) -> None:
    sys.stdout.write(dumps_json(obj).decode("utf-8") + "\n")


def _parse_span(value: str | None, label: str) -> Span | None:
    if value is None:
        return None
    try:
        return normalize_span(value)
    except ValueError as exc:
        msg = f"{label} must be start:end with start <= end, got {value!r}"
        raise UsageError(msg) from exc


def _parse_select(value: str | None) -> int | str | None:
    if value is None or value.startswith("hash:"):
        return value
    try:
        return int(value)
    except ValueError as exc:
        msg = f"--select must be a 1-based index or hash:<h>, got {value!r}"
        raise UsageError(msg) from exc


def _source_file(root: Path, file: str) -> Path:
    path = Path(file).expanduser()
    if not path.is_absolute():
        path = root / path
    if not path.is_file():
        msg = f"file not found: {file}"
        raise FileNotFoundError(msg)
    return path.resolve()


def _entity(args: argparse.Namespace) -> str:
    return "variable" if getattr(args, "variable", False) else "function"


def _resolve(args: argparse.Namespace, root: Path, *, allow_multiple: bool = False):
    path = _source_file(root, args.file)
    source = path.read_bytes()
    rel = relative_posix(path, root)
    extraction = extract_entities(parse_source(source, path=rel))
    records = resolve_matches(
        extraction,
        args.selector,
        entity=_entity(args),
        allow_multiple=allow_multiple,
        select=_parse_select(args.select),
        select_path=args.select_path,
        select_hash=args.select_hash,
    )
    return path, rel, source, extraction, records


def _plan_path(root: Path, config_plan_dir: str, requested: str, operation: str, rel: str) -> Path:
    if requested:
        return Path(requested).expanduser().resolve()
    stem = path_to_module_id(rel).replace("/", "_") or "buffer"
    return resolve_plan_dir(root, config_plan_dir) / f"{operation}-{stem}.json"


def _read_replacement(args: argparse.Namespace) -> str:
    if args.replacement is not None:
        return args.replacement
    if args.with_file == "-":
        return sys.stdin.read()
    path = Path(args.with_file).expanduser()
    if not path.is_file():
        msg = f"replacement file not found: {args.with_file}"
        raise FileNotFoundError(msg)
    return path.read_text(encoding="utf-8")


# --- handlers ---------------------------------------------------------------


def _handle_list(args: argparse.Namespace, root: Path) -> int:
    path = _source_file(root, args.file)
    rel = relative_posix(path, root)
    extraction = extract_entities(parse_source(path.read_bytes(), path=rel))
    lister = list_variables if args.variables else list_functions
    entries = lister(extraction, exported_only=args.exported_only, kinds=args.kind)
    _emit({"file": rel, "entity": "variable" if args.variables else "function", "records": entries})
    return 0


def _handle_locate(args: argparse.Namespace, root: Path) -> int:
    _, rel, _, _, records = _resolve(args, root, allow_multiple=args.allow_multiple)
    plan = build_plan(
        records,
        operation="locate",
        file=rel,
        selector=args.selector,
        allow_multiple=args.allow_multiple,
    )
    if args.emit_plan is not None:
        config = load_config(root)
        write_plan(_plan_path(root, config.plan_dir, args.emit_plan, "locate", rel), plan)
    _emit(plan)
    return 0


def _handle_context(args: argparse.Namespace, root: Path) -> int:
    _, rel, source, _, records = _resolve(args, root, allow_multiple=args.allow_multiple)
    padding = load_config(root).context.padding
    result = build_context(
        records,
        source,
        before=padding if args.before is None else args.before,
        after=padding if args.after is None else args.after,
        enclosing=args.enclosing,
        file=rel,
        selector=args.selector,
    )
    _emit(result)
    return 0


def _handle_slice(args: argparse.Namespace, root: Path) -> int:
    path = _source_file(root, args.file)
    rel = relative_posix(path, root)
    parsed = parse_source(path.read_bytes(), path=rel)
    extraction = extract_entities(parsed)
    records = resolve_matches(
        extraction,
        args.selector,
        entity="function",
        select=_parse_select(args.select),
        select_path=args.select_path,
        select_hash=args.select_hash,
    )
    _emit(build_dependency_slice(parsed, extraction, records[0]))
    return 0


def _handle_extract(args: argparse.Namespace, root: Path) -> int:
    path = _source_file(root, args.file)
    source = path.read_bytes()
    rel = relative_posix(path, root)
    extraction = extract_entities(parse_source(source, path=rel))
    _emit({"file": rel, "results": extract_by_hashes(extraction, source, args.hashes)})
    return 0


def _handle_mutation(args: argparse.Namespace, root: Path) -> int:
    path = _source_file(root, args.file)
    rel = relative_posix(path, root)
    if args.command == "rename":
        request = MutationRequest(
            selector=args.selector,
            kind="rename",
            new_name=args.new_name,
            **_guard_fields(args),
        )
    else:
        relative_range = _parse_span(args.range, "--range")
        request = MutationRequest(
            selector=args.selector,
            kind="replace_range" if relative_range is not None else "replace",
            replacement=_read_replacement(args),
            range=relative_range,
            **_guard_fields(args),
        )

    if args.emit_plan is not None:
        _, _, _, _, records = _resolve(args, root)
        config = load_config(root)
        plan = build_plan(records, operation=args.command, file=rel, selector=args.selector)
        write_plan(_plan_path(root, config.plan_dir, args.emit_plan, args.command, rel), plan)

    engine = MutationEngine.from_file(path, display_path=rel)
    result = engine.run(request)
    if args.summary:
        for row in result.guard.summary_rows():
            sys.stdout.write(f"{row['check']:<12} {row['status']:<10} {row['details']}\n")
        if result.failure is not None:
            sys.stdout.write(f"{result.failure.stage}: {result.failure.message}\n")
        elif result.diff:
            sys.stdout.write(result.diff)
    else:
        _emit(result)
    if result.failure is not None:
        sys.stderr.write(f"error: {result.failure.message}\n")
        return 1
    return 0


def _guard_fields(args: argparse.Namespace) -> dict[str, object]:
    return {
        "entity": _entity(args),
        "variable_target": args.variable_target,
        "expect_hash": args.expect_hash,
        "expect_span": _parse_span(args.expect_span, "--expect-span"),
        "select": _parse_select(args.select),
        "select_path": args.select_path,
        "select_hash": args.select_hash,
        "force": args.force,
        "apply": args.apply,
    }


def _session(root: Path) -> AnalysisSession:
    return AnalysisSession(root, config=load_config(root))


def _handle_search(args: argparse.Namespace, root: Path) -> int:
    session = _session(root)
    options = SearchOptions(
        entity="variable" if args.variables else "function",
        exported_only=args.exported_only,
        kinds=tuple(args.kind),
        limit=args.limit,
    )
    result = search_workspace(session, args.terms, options)
    payload: dict[str, object] = {"result": result}
    if args.tokens:
        codec = TokenCodec.for_workspace(session.root, session.config)
        payload["continuation"] = issue_search_tokens(codec, session, result)
    _emit(payload)
    return 0


def _handle_imports(args: argparse.Namespace, root: Path) -> int:
    session = _session(root)
    result = RelationshipAnalyzer(session).what_imports(args.target)
    payload: dict[str, object] = {"result": result}
    if args.tokens:
        codec = TokenCodec.for_workspace(session.root, session.config)
        payload["continuation"] = issue_importer_tokens(codec, session, result)
    _emit(payload)
    return 0 if result.warning is None else 1


def _handle_calls(args: argparse.Namespace, root: Path) -> int:
    result = RelationshipAnalyzer(_session(root)).what_calls(args.selector, file=args.file)
    _emit(result)
    return 0 if result.warning is None else 1


def _handle_usage(args: argparse.Namespace, root: Path) -> int:
    result = RelationshipAnalyzer(_session(root)).export_usage(args.target, name=args.export)
    _emit(result)
    return 0 if result.warning is None else 1


def _handle_deps(args: argparse.Namespace, root: Path) -> int:
    result = RelationshipAnalyzer(_session(root)).transitive_dependencies(
        args.target, max_depth=args.depth
    )
    _emit(result)
    return 0 if result.warning is None else 1


def _handle_impact(args: argparse.Namespace, root: Path) -> int:
    result = RelationshipAnalyzer(_session(root)).impact_preview(args.target)
    _emit(result)
    return 0 if result.warning is None else 1


def _handle_call_graph(args: argparse.Namespace, root: Path) -> int:
    session = _session(root)
    if args.start is None:
        _emit(session.call_graph())
        return 0
    if args.callers:
        graph = session.call_graph()
    else:
        graph = build_callee_graph(session, args.start, file=args.file)
    _emit(
        traverse(
            graph,
            args.start,
            max_depth=args.depth,
            direction="callers" if args.callers else "callees",
            file=args.file,
        )
    )
    return 0


def _handle_hot_paths(args: argparse.Namespace, root: Path) -> int:
    session = _session(root)
    limit = args.limit if args.limit is not None else session.config.graph.hot_paths_limit
    _emit({"hot_paths": hot_paths(session.call_graph(), limit)})
    return 0


def _handle_dead_code(args: argparse.Namespace, root: Path) -> int:
    session = _session(root)
    include = args.include_exported
    if include is None:
        include = session.config.graph.dead_code_include_exported
    _emit({"dead_code": dead_code(session.call_graph(), include_exported=include)})
    return 0


def _handle_cycles(args: argparse.Namespace, root: Path) -> int:
    _emit({"cycles": call_cycles(_session(root).call_graph())})
    return 0


def _handle_resume(args: argparse.Namespace, root: Path) -> int:
    token = sys.stdin.read().strip() if args.token == "-" else args.token.strip()
    if not token:
        msg = "no continuation token given"
        raise UsageError(msg)
    config = load_config(root)
    codec = TokenCodec.for_workspace(root, config)
    _emit(resume(token, codec, config=config))
    return 0


def _handle_verify_plan(args: argparse.Namespace, root: Path) -> int:
    try:
        result = verify_plan(root=root, plan_path=Path(args.plan).expanduser().resolve())
    except (FileNotFoundError, ValueError) as exc:
        sys.stderr.write(f"plan: {args.plan}\n")
        sys.stderr.write(f"error: {exc}\n")
        return 2
    _emit(result)
    if not result.ok:
        for label, names in (("missing", result.missing), ("mismatches", result.mismatches)):
            for name in names:
                sys.stderr.write(f"{label}: {name}\n")
        return 1
    return 0


_HANDLERS = {
    "list": _handle_list,
    "locate": _handle_locate,
    "context": _handle_context,
    "slice": _handle_slice,
    "extract": _handle_extract,
    "replace": _handle_mutation,
    "rename": _handle_mutation,
    "search": _handle_search,
    "imports": _handle_imports,
    "calls": _handle_calls,
    "usage": _handle_usage,
    "deps": _handle_deps,
    "impact": _handle_impact,
    "call-graph": _handle_call_graph,
    "hot-paths": _handle_hot_paths,
    "dead-code": _handle_dead_code,
    "cycles": _handle_cycles,
    "resume": _handle_resume,
    "verify-plan": _handle_verify_plan,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    root = Path(args.root).expanduser().resolve()
    handler = _HANDLERS[args.command]

    try:
        return handler(args, root)
    except (UsageError, InvalidSelector, ConfigError, FileNotFoundError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2
    except SpanguardError as exc:
        logger.debug("%s failed: %s", args.command, exc.code)
        sys.stderr.write(f"error: {exc}\n")
        return 1
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
