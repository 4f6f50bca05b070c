"""
Analysis pipeline: discover → detect → parse → merge → graph → manifest.

Files are parsed in a thread pool. Each worker touches only its own file and
returns a finished ModuleInfo; nothing is shared between workers except the
read-only parser registry and the previous-run module cache.
"""

import logging
import time
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

from .cache import ModuleCache, content_hash, now_iso
from .config import Config
from .discover import discover_files
from .graph import build_dependency_graph
from .language import detect_language
from .manifest import compute_project_meta, compute_stats, merge_modules
from .models import TOOL_VERSION, AnalysisManifest, ModuleInfo
from .parsers.registry import ParserRegistry
from .workspace import WorkspaceInfo, detect_workspaces

log = logging.getLogger(__name__)


@dataclass
class AnalysisRun:
    manifest: AnalysisManifest | None = None
    parsed: list[str] = field(default_factory=list)     # freshly parsed this run
    reused: list[str] = field(default_factory=list)     # content hash unchanged
    skipped: list[str] = field(default_factory=list)


def analyze_file(
    root: Path,
    rel_path: str,
    registry: ParserRegistry,
    max_file_size: int,
    cache: ModuleCache | None = None,
) -> tuple[ModuleInfo, bool] | None:
    """
    Analyze one file. Returns (module, reused) or None when the file is not
    analyzable (unknown language, no parser, too large).

    Parser exceptions propagate; the caller counts them as skipped files.
    """
    language = detect_language(rel_path)
    if language is None:
        log.debug("Skip %s: unknown language", rel_path)
        return None
    parser = registry.get(language)
    if parser is None:
        log.debug("Skip %s: no parser for %s", rel_path, language)
        return None

    path = root / rel_path
    size = path.stat().st_size
    if size > max_file_size:
        log.debug("Skip %s: %d bytes exceeds limit", rel_path, size)
        return None

    raw = path.read_bytes()
    digest = content_hash(raw)
    if cache is not None:
        previous = cache.lookup(rel_path, digest)
        if previous is not None:
            return previous, True

    content = raw.decode("utf-8", errors="replace")
    result = parser.parse(content, rel_path)
    dropped = result.dedupe()
    if dropped:
        log.debug("%s: dropped %d duplicate symbol ids", rel_path, dropped)

    return ModuleInfo(
        file_path=rel_path,
        language=language,
        symbols=result.symbols,
        imports=result.imports,
        exports=result.exports,
        module_doc=result.module_doc,
        file_size=size,
        line_count=len(content.split("\n")),
        content_hash=digest,
        analyzed_at=now_iso(),
    ), False


_POLL_INTERVAL = 0.05
_FAILED = object()


def _parse_round(config: Config, registry: ParserRegistry, files: list[str],
                 cache: ModuleCache | None, outcomes: dict) -> list[str]:
    """
    Parse ``files`` on a fresh pool, filling ``outcomes`` per file.

    Each file's timeout runs from the moment a worker picks it up, so time spent
    queued behind a slow file does not count against it. Once a parse hangs,
    files that have not started yet are cancelled and returned so the caller can
    retry them on a new pool, away from the stuck worker.
    """
    analysis = config.analysis
    started: dict[str, float] = {}

    def work(rel: str):
        started[rel] = time.monotonic()
        return analyze_file(config.root, rel, registry, analysis.max_file_size, cache)

    requeue: list[str] = []
    pool = ThreadPoolExecutor(max_workers=max(1, analysis.concurrency),
                              thread_name_prefix="parse")
    try:
        pending = {pool.submit(work, rel): rel for rel in files}
        while pending:
            done, _ = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            for fut in done:
                rel = pending.pop(fut)
                try:
                    outcomes[rel] = fut.result()
                except Exception:
                    log.warning("Failed to analyze %s", rel, exc_info=True)
                    outcomes[rel] = _FAILED

            now = time.monotonic()
            hung = False
            for fut, rel in list(pending.items()):
                began = started.get(rel)
                if began is not None and now - began > analysis.parse_timeout:
                    log.warning("Parse of %s exceeded %.1fs, skipping", rel, analysis.parse_timeout)
                    outcomes[rel] = _FAILED
                    del pending[fut]
                    hung = True
            if hung:
                for fut, rel in list(pending.items()):
                    if fut.cancel():
                        requeue.append(rel)
                        del pending[fut]
    finally:
        # a stuck parse must not hold up the run
        pool.shutdown(wait=False, cancel_futures=True)
    return requeue


def _parse_all(config: Config, registry: ParserRegistry, files: list[str],
               cache: ModuleCache | None, run: AnalysisRun) -> list[ModuleInfo]:
    outcomes: dict = {}
    queue = list(files)
    while queue:
        queue = _parse_round(config, registry, queue, cache, outcomes)

    modules: list[ModuleInfo] = []
    for rel in files:
        outcome = outcomes.get(rel)
        if outcome is None or outcome is _FAILED:
            run.skipped.append(rel)
            continue
        module, reused = outcome
        (run.reused if reused else run.parsed).append(rel)
        modules.append(module)
    return modules


def analyze(
    config: Config,
    registry: ParserRegistry,
    *,
    files: Iterable[str] | None = None,
    previous: AnalysisManifest | None = None,
    removed: Iterable[str] = (),
    commit_sha: str = "",
    branch: str | None = None,
    workspace: WorkspaceInfo | None = None,
) -> AnalysisRun:
    """
    Build a manifest.

    With ``files=None`` every discovered file is analyzed and the result holds
    exactly those files.  With an explicit ``files`` list only those targets
    are analyzed and merged into ``previous``; ``removed`` paths are dropped.
    In both cases modules whose content hash matches ``previous`` are reused
    unchanged.
    """
    start = time.monotonic()
    full = files is None
    targets = discover_files(config.root, config.source) if full else sorted(set(files))
    cache = ModuleCache(previous)
    run = AnalysisRun()

    fresh = _parse_all(config, registry, targets, cache, run)
    if full or previous is None:
        modules = merge_modules([], fresh)
    else:
        modules = merge_modules(previous.modules, fresh, replaced=[*targets, *removed])

    if workspace is None and config.analysis.monorepo:
        workspace = detect_workspaces(config.root)
    graph = build_dependency_graph(modules, workspace)

    elapsed_ms = int((time.monotonic() - start) * 1000)
    run.manifest = AnalysisManifest(
        tool_version=TOOL_VERSION,
        repo=config.source.repo,
        branch=branch or config.source.branch,
        commit_sha=commit_sha,
        analyzed_at=now_iso(),
        modules=modules,
        dependency_graph=graph,
        project_meta=compute_project_meta(modules, config.root, config.source.repo),
        stats=compute_stats(modules, skipped_files=len(run.skipped), analysis_time=elapsed_ms),
        summary_cache=previous.summary_cache if previous else None,
    )
    log.info(
        "Analyzed %d files: %d parsed, %d reused, %d skipped (%d ms)",
        len(targets), len(run.parsed), len(run.reused), len(run.skipped), elapsed_ms,
    )
    return run
