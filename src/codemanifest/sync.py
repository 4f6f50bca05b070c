"""
Incremental sync: diff the last synced commit against HEAD, re-analyze only
what changed, flag importers of changed files as impacted, and persist the
new manifest and sync state.

State is written last.  A run that raises leaves the previous state in place,
so the next run diffs from the same commit again.
"""

import json
import logging
import time
from pathlib import Path

from .cache import now_iso
from .config import Config
from .discover import discover_files
from .engine import analyze
from .git import GitError, diff_commits, get_branch, get_head_sha, is_repository
from .graph import impacted_modules
from .manifest import ManifestError, load_manifest, save_manifest, write_json_atomic
from .models import AnalysisManifest, FileDiff, SyncResult, SyncState
from .parsers.registry import ParserRegistry
from .summarizer import summarize_manifest

log = logging.getLogger(__name__)

NO_PREVIOUS_COMMIT = "none"


# ── state persistence ────────────────────────────────────────────────────────

def load_sync_state(path: str | Path) -> SyncState | None:
    path = Path(path)
    if not path.exists():
        return None
    try:
        return SyncState.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, TypeError) as e:
        log.warning("Ignoring unreadable sync state %s: %s", path, e)
        return None


def save_sync_state(path: str | Path, state: SyncState) -> None:
    write_json_atomic(path, state.to_dict())


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _current_branch(config: Config) -> str:
    """Checked-out branch, or the configured one outside git or on a detached HEAD."""
    if is_repository(config.root):
        try:
            name = get_branch(config.root)
        except GitError as e:
            log.debug("Cannot read branch: %s", e)
        else:
            if name:
                return name
    return config.source.branch


def _persist(config: Config, manifest: AnalysisManifest, commit: str | None) -> None:
    if config.analysis.ai_summaries:
        summarize_manifest(manifest, config)
    save_manifest(manifest, config.manifest_path)
    if not commit:
        log.warning("No commit SHA available; sync state not advanced")
        return
    save_sync_state(config.state_path, SyncState(
        last_commit_sha=commit,
        last_synced_at=now_iso(),
        manifest_path=config.sync.manifest_file,
        total_pages=len(manifest.modules),
    ))


# ── modes ────────────────────────────────────────────────────────────────────

def _full(config: Config, registry: ParserRegistry, commit: str | None,
          previous: AnalysisManifest | None, start: float) -> SyncResult:
    log.info("Full analysis of %s", config.root)
    run = analyze(config, registry, previous=previous, commit_sha=commit or "",
                  branch=_current_branch(config))
    _persist(config, run.manifest, commit)
    n = len(run.manifest.modules)
    return SyncResult(
        modules_reanalyzed=len(run.parsed),
        pages_rebuilt=n,
        pages_created=n,
        duration=_elapsed_ms(start),
        previous_commit=NO_PREVIOUS_COMMIT,
        current_commit=commit or "",
        full_run=True,
        skipped_files=len(run.skipped),
    )


def run_analyze(config: Config, registry: ParserRegistry) -> SyncResult:
    """
    Full analysis of the working tree.  Unchanged files are reused from the
    existing manifest; the sync state moves to HEAD when git knows it.
    """
    start = time.monotonic()
    try:
        commit = get_head_sha(config.root)
    except GitError as e:
        log.warning("Not tracking a commit: %s", e)
        commit = None
    try:
        previous = load_manifest(config.manifest_path)
    except ManifestError as e:
        log.warning("Ignoring previous manifest: %s", e)
        previous = None
    return _full(config, registry, commit, previous, start)


def _split_diffs(diffs: list[FileDiff], analyzable: set[str]) -> tuple[list[str], list[str]]:
    """(paths to re-parse, paths to drop). A rename is a drop plus an add."""
    targets: list[str] = []
    removed: list[str] = []
    for d in diffs:
        if d.status == "deleted":
            removed.append(d.path)
            continue
        if d.status == "renamed" and d.old_path:
            removed.append(d.old_path)
        if d.path in analyzable:
            targets.append(d.path)
        else:
            # modified into an excluded or unknown file: it leaves the manifest
            removed.append(d.path)
    return targets, removed


def run_sync(
    config: Config,
    registry: ParserRegistry,
    *,
    dry_run: bool = False,
    full: bool = False,
    impact_depth: int | None = None,
) -> SyncResult:
    """
    Bring the manifest up to date with HEAD.

    ``full`` discards the previous manifest. ``impact_depth`` overrides
    ``config.sync.impact_depth`` when given.
    """
    start = time.monotonic()
    depth = impact_depth if impact_depth is not None else config.sync.impact_depth

    try:
        current = get_head_sha(config.root)
    except GitError as e:
        if not config.sync.fallback_to_full:
            raise
        log.warning("Git unavailable (%s); falling back to full analysis", e)
        if dry_run:
            return SyncResult(duration=_elapsed_ms(start), full_run=True)
        return _full(config, registry, None, None, start)

    state = None if full else load_sync_state(config.state_path)
    if state is None:
        if dry_run:
            return SyncResult(duration=_elapsed_ms(start), current_commit=current, full_run=True)
        if not full:
            log.info("No previous sync state, performing full analysis")
        return _full(config, registry, current, None, start)

    try:
        diffs = diff_commits(config.root, state.last_commit_sha, current)
    except GitError as e:
        if not config.sync.fallback_to_full:
            raise
        log.warning("Cannot diff from %s (%s); falling back to full analysis",
                    state.last_commit_sha[:8], e)
        if dry_run:
            return SyncResult(duration=_elapsed_ms(start), previous_commit=state.last_commit_sha,
                              current_commit=current, full_run=True)
        previous = load_manifest(config.root / state.manifest_path)
        return _full(config, registry, current, previous, start)

    if not diffs:
        log.info("No changes since %s", state.last_commit_sha[:8])
        return SyncResult(
            duration=_elapsed_ms(start),
            previous_commit=state.last_commit_sha,
            current_commit=current,
        )

    if dry_run:
        return SyncResult(
            diffs=diffs,
            duration=_elapsed_ms(start),
            previous_commit=state.last_commit_sha,
            current_commit=current,
        )

    previous = load_manifest(config.root / state.manifest_path)
    if previous is None:
        log.warning("Manifest %s missing, performing full analysis", state.manifest_path)
        result = _full(config, registry, current, None, start)
        result.diffs = diffs
        result.previous_commit = state.last_commit_sha
        return result

    analyzable = set(discover_files(config.root, config.source))
    targets, removed = _split_diffs(diffs, analyzable)
    log.info(
        "Incremental: %d changed, %d added, %d deleted",
        sum(1 for d in diffs if d.status in ("modified", "renamed")),
        sum(1 for d in diffs if d.status == "added"),
        sum(1 for d in diffs if d.status == "deleted"),
    )

    impacted: list[str] = []
    if config.sync.impact_analysis:
        changed = set(targets) | set(removed)
        impacted = impacted_modules(previous.dependency_graph, changed, depth)
        log.info("Impact analysis: %d downstream modules affected", len(impacted))

    run = analyze(config, registry, files=targets, previous=previous,
                  removed=removed, commit_sha=current, branch=_current_branch(config))
    _persist(config, run.manifest, current)

    # a rename drops the old page and creates the new one
    created = sum(1 for d in diffs if d.status in ("added", "renamed"))
    deleted = sum(1 for d in diffs if d.status in ("deleted", "renamed"))
    return SyncResult(
        diffs=diffs,
        modules_reanalyzed=len(run.parsed),
        pages_rebuilt=len(targets) + len(impacted),
        pages_created=created,
        pages_deleted=deleted,
        impacted_modules=impacted,
        duration=_elapsed_ms(start),
        previous_commit=state.last_commit_sha,
        current_commit=current,
        skipped_files=len(run.skipped),
    )
