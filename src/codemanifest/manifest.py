"""Manifest-level operations: project metadata, statistics, merging, persistence."""

import json
import logging
import math
import os
import tomllib
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from .models import (
    AnalysisManifest, AnalysisStats, LanguageShare, LanguageStats, ModuleInfo, ProjectMeta,
)

log = logging.getLogger(__name__)

_ENTRY_MARKERS = ("index.", "main.", "app.")

# first match wins
_LOCKFILES = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("package-lock.json", "npm"),
    ("poetry.lock", "poetry"),
    ("uv.lock", "uv"),
    ("Cargo.lock", "cargo"),
    ("go.sum", "go"),
)


class ManifestError(ValueError):
    """A manifest file exists but cannot be read back."""


# ── project metadata ─────────────────────────────────────────────────────────

def _percentage(count: int, total: int) -> int:
    # half-up, not banker's rounding
    return math.floor(count * 100 / total + 0.5) if total else 0


def _package_fields(root: Path) -> dict:
    """name / version / description / license from the first project file found."""
    pkg = root / "package.json"
    if pkg.is_file():
        try:
            data = json.loads(pkg.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Cannot read %s: %s", pkg, e)
        else:
            if isinstance(data, dict):
                return data

    for name, section in (("pyproject.toml", "project"), ("Cargo.toml", "package")):
        path = root / name
        if not path.is_file():
            continue
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        fields = data.get(section) or (data.get("tool", {}).get("poetry") if name == "pyproject.toml" else None)
        if isinstance(fields, dict):
            return fields
    return {}


def _license(value) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("text") or value.get("type") or value.get("file")
    return None


def detect_package_manager(root: Path) -> str | None:
    for lockfile, manager in _LOCKFILES:
        if (root / lockfile).exists():
            return manager
    return None


def compute_project_meta(modules: list[ModuleInfo], root: str | Path, repo: str) -> ProjectMeta:
    root = Path(root)
    counts = Counter(m.language for m in modules)
    total = len(modules)
    languages = [
        LanguageShare(name=lang, file_count=n, percentage=_percentage(n, total))
        for lang, n in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    entry_points = [m.file_path for m in modules
                    if any(marker in m.file_path for marker in _ENTRY_MARKERS)]

    fields = _package_fields(root)
    name = fields.get("name") if isinstance(fields.get("name"), str) else None
    return ProjectMeta(
        name=name or repo.rstrip("/").rsplit("/", 1)[-1] or repo,
        version=fields.get("version") if isinstance(fields.get("version"), str) else None,
        description=fields.get("description") if isinstance(fields.get("description"), str) else None,
        languages=languages,
        entry_points=entry_points,
        package_manager=detect_package_manager(root),
        license=_license(fields.get("license")),
        repository=repo,
    )


def compute_stats(modules: list[ModuleInfo], skipped_files: int = 0,
                  analysis_time: int = 0) -> AnalysisStats:
    stats = AnalysisStats(analysis_time=analysis_time, skipped_files=skipped_files)
    for mod in modules:
        lang = stats.by_language.setdefault(mod.language, LanguageStats())
        lang.files += 1
        lang.symbols += len(mod.symbols)
        lang.lines += mod.line_count
        for sym in mod.symbols:
            stats.by_kind[sym.kind] = stats.by_kind.get(sym.kind, 0) + 1
        stats.total_symbols += len(mod.symbols)
        stats.total_lines += mod.line_count
    stats.total_files = len(modules)
    return stats


# ── merge ────────────────────────────────────────────────────────────────────

def merge_modules(previous: Iterable[ModuleInfo], fresh: Iterable[ModuleInfo],
                  replaced: Iterable[str] = ()) -> list[ModuleInfo]:
    """
    Previous modules not in ``replaced`` plus the freshly parsed ones.

    ``replaced`` names every path that was a target of this run (re-parsed,
    deleted, or renamed away); a target that failed to parse simply drops out.
    Result is ordered by file path.
    """
    drop = set(replaced)
    merged = {m.file_path: m for m in previous if m.file_path not in drop}
    for m in fresh:
        merged[m.file_path] = m
    return [merged[p] for p in sorted(merged)]


# ── persistence ──────────────────────────────────────────────────────────────

def write_json_atomic(path: str | Path, data) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp, path)


def save_manifest(manifest: AnalysisManifest, path: str | Path) -> None:
    write_json_atomic(path, manifest.to_dict())
    log.info("Manifest written: %s (%d modules)", path, len(manifest.modules))


def load_manifest(path: str | Path) -> AnalysisManifest | None:
    """Read a manifest back; ``None`` when the file does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return AnalysisManifest.from_dict(data)
    except (OSError, ValueError, TypeError, KeyError) as e:
        raise ManifestError(f"cannot load manifest {path}: {e}") from e
