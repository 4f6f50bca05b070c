"""CLI entry point for codemanifest."""

import argparse
import logging
import sys

from .config import Config, ConfigError, ProviderConfig, load_config
from .git import GitError
from .graph import impacted_modules, import_cycles
from .language import display_name
from .manifest import ManifestError, load_manifest, save_manifest
from .models import AnalysisManifest, SyncResult
from .parsers.registry import build_registry
from .providers import create_provider
from .store import DEFAULT_DB_FILE, ManifestStore
from .summarizer import summarize_manifest
from .sync import load_sync_state, run_analyze, run_sync

log = logging.getLogger(__name__)


def _config(args: argparse.Namespace) -> Config:
    return load_config(args.config, root=args.root)


def _manifest(config: Config) -> AnalysisManifest | None:
    manifest = load_manifest(config.manifest_path)
    if manifest is None:
        print(f"No manifest at {config.manifest_path}", file=sys.stderr)
        print("Run 'codemanifest analyze' first.", file=sys.stderr)
    return manifest


def _print_result(result: SyncResult) -> None:
    mode = "full" if result.full_run else "incremental"
    print(f"  mode:        {mode}")
    print(f"  commits:     {result.previous_commit[:8]} → {result.current_commit[:8] or '(none)'}")
    if result.diffs:
        print(f"  changes:     {len(result.diffs)}")
    print(f"  reanalyzed:  {result.modules_reanalyzed}")
    print(f"  rebuilt:     {result.pages_rebuilt}")
    print(f"  created:     {result.pages_created}")
    print(f"  deleted:     {result.pages_deleted}")
    if result.impacted_modules:
        print(f"  impacted:    {len(result.impacted_modules)}")
    if result.skipped_files:
        print(f"  skipped:     {result.skipped_files}")
    print(f"  duration:    {result.duration} ms")


def cmd_analyze(args: argparse.Namespace) -> int:
    config = _config(args)
    if args.ai:
        config.analysis.ai_summaries = True
    print(f"Analyzing {config.root} → {config.manifest_path}", file=sys.stderr)
    result = run_analyze(config, build_registry())
    _print_result(result)
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    config = _config(args)
    if args.ai:
        config.analysis.ai_summaries = True
    result = run_sync(
        config,
        build_registry(),
        dry_run=args.dry_run,
        full=args.full,
        impact_depth=args.impact_depth,
    )
    if args.dry_run:
        if result.full_run:
            print("No usable sync state: the next sync will be a full analysis")
        elif not result.diffs:
            print("No changes")
        for d in result.diffs:
            suffix = f" (from {d.old_path})" if d.old_path else ""
            print(f"  {d.status:<9} {d.path}{suffix}")
        return 0
    _print_result(result)
    for path in result.impacted_modules:
        print(f"    ~ {path}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    config = _config(args)
    state = load_sync_state(config.state_path)
    print(f"Project:   {config.root}")
    print(f"Manifest:  {config.manifest_path}")
    if state is None:
        print("Synced:    (never)")
    else:
        print(f"Commit:    {state.last_commit_sha}")
        print(f"Synced at: {state.last_synced_at}")

    manifest = load_manifest(config.manifest_path)
    if manifest is None:
        return 0
    stats = manifest.stats
    print(f"Files:     {stats.total_files}")
    print(f"Symbols:   {stats.total_symbols}")
    print(f"Edges:     {len(manifest.dependency_graph.edges)}")
    for share in manifest.project_meta.languages if manifest.project_meta else []:
        print(f"  {display_name(share.name)}: {share.file_count} files ({share.percentage}%)")
    if manifest.summary_cache:
        print(f"Summaries: {len(manifest.summary_cache)} cached")
    return 0


def cmd_summarize(args: argparse.Namespace) -> int:
    config = _config(args)
    manifest = _manifest(config)
    if manifest is None:
        return 1
    settings = config.analysis.ai_provider or ProviderConfig()
    provider = create_provider(settings)
    if provider is None:
        print(f"No AI provider available for {settings.name!r}: "
              f"set {settings.api_key_env} or the provider's API key variable", file=sys.stderr)
        return 1
    result = summarize_manifest(manifest, config, provider)
    save_manifest(manifest, config.manifest_path)
    print(f"  generated: {result.generated}")
    print(f"  cached:    {result.cached}")
    print(f"  failed:    {result.failed}")
    if result.first_error:
        print(f"  first error: {result.first_error}", file=sys.stderr)
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    config = _config(args)
    manifest = _manifest(config)
    if manifest is None:
        return 1
    db_path = args.db or str(config.root / DEFAULT_DB_FILE)
    with ManifestStore(db_path) as store:
        store.refresh(manifest)
        symbols = store.find_symbols(args.symbol, exact=args.exact)
        if not symbols:
            print(f"Symbol not found: {args.symbol}")
            return 1
        for sym in symbols:
            flag = "exported" if sym.exported else sym.visibility
            print(f"\n{sym.kind.upper()}  {sym.name}  ({flag})")
            end = f"-{sym.end_line}" if sym.end_line else ""
            print(f"  file:      {sym.file_path}:{sym.line}{end}")
            if sym.signature:
                print(f"  signature: {sym.signature}")
            if sym.ai_summary or sym.summary:
                print(f"  summary:   {sym.ai_summary or sym.summary}")
            importers = store.importers_of(sym.file_path)
            if importers:
                print(f"  imported by: {', '.join(importers[:8])}")
    return 0


def cmd_impact(args: argparse.Namespace) -> int:
    config = _config(args)
    manifest = _manifest(config)
    if manifest is None:
        return 1
    graph = manifest.dependency_graph
    known = set(graph.nodes)
    unknown = [p for p in args.paths if p not in known]
    for p in unknown:
        print(f"Not in manifest: {p}", file=sys.stderr)

    depth = args.depth if args.depth is not None else config.sync.impact_depth
    impacted = impacted_modules(graph, args.paths, depth)
    print(f"{len(impacted)} module(s) depend on {', '.join(args.paths)}:")
    for path in impacted:
        print(f"  {path}")

    if args.cycles:
        cycles = import_cycles(graph)
        print(f"\nImport cycles ({len(cycles)}):")
        for cycle in cycles:
            print(f"  {' ↔ '.join(cycle)}")
    return 1 if unknown and len(unknown) == len(args.paths) else 0


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        prog="codemanifest",
        description="Multi-language code manifest with incremental sync",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("-C", "--root", default=".", help="Repository root (default: .)")
    parser.add_argument("-c", "--config", help="YAML config file")
    sub = parser.add_subparsers(dest="command", required=True)

    # analyze
    p = sub.add_parser("analyze", help="Analyze the whole repository")
    p.add_argument("--ai", action="store_true", help="Generate AI summaries")

    # sync
    p = sub.add_parser("sync", help="Re-analyze files changed since the last sync")
    p.add_argument("--dry-run", action="store_true", help="Only show what changed")
    p.add_argument("--full", action="store_true", help="Ignore sync state and analyze everything")
    p.add_argument("--impact-depth", type=int, help="Importer levels to flag (default: all)")
    p.add_argument("--ai", action="store_true", help="Generate AI summaries")

    # status
    sub.add_parser("status", help="Show sync state and manifest statistics")

    # summarize
    sub.add_parser("summarize", help="Generate AI summaries for the current manifest")

    # query
    p = sub.add_parser("query", help="Look up a symbol")
    p.add_argument("symbol", help="Symbol name (substring match)")
    p.add_argument("--exact", action="store_true", help="Exact name match")
    p.add_argument("--db", help=f"Database path (default: <root>/{DEFAULT_DB_FILE})")

    # impact
    p = sub.add_parser("impact", help="List modules that depend on the given files")
    p.add_argument("paths", nargs="+", help="Repository-relative file paths")
    p.add_argument("--depth", type=int, help="Importer levels to follow (default: all)")
    p.add_argument("--cycles", action="store_true", help="Also list import cycles")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("codemanifest").setLevel(logging.DEBUG)

    handlers = {
        "analyze": cmd_analyze,
        "sync": cmd_sync,
        "status": cmd_status,
        "summarize": cmd_summarize,
        "query": cmd_query,
        "impact": cmd_impact,
    }

    try:
        code = handlers[args.command](args)
    except (ConfigError, ManifestError, GitError) as e:
        print(f"error: {e}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
