"""Monorepo workspace detection: package name → package directory.

Conventions are probed in a fixed order and the first one that resolves at
least one package wins:

1. ``package.json`` ``workspaces`` (npm / yarn), a list or ``{"packages": [...]}``
2. ``pnpm-workspace.yaml`` ``packages``
3. ``lerna.json`` ``packages`` (default ``["packages/*"]``)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import pathspec
import yaml

log = logging.getLogger(__name__)

_PRUNE_DIRS = {"node_modules", ".git"}
_ENTRY_FIELDS = ("source", "module", "main")


@dataclass
class WorkspaceInfo:
    packages: dict[str, str] = field(default_factory=dict)   # name → repo-relative dir
    type: str = "none"                                       # npm | pnpm | lerna | none
    entries: dict[str, str] = field(default_factory=dict)    # name → repo-relative entry file

    def __bool__(self) -> bool:
        return bool(self.packages)


def _read_json(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.debug("Skipping %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def _package_json_files(root: Path) -> list[str]:
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _PRUNE_DIRS)
        if "package.json" in filenames and Path(dirpath) != root:
            found.append((Path(dirpath) / "package.json").relative_to(root).as_posix())
    return found


def _resolve_globs(root: Path, globs: list[str]) -> tuple[dict[str, str], dict[str, str]]:
    patterns = []
    for g in globs:
        if not isinstance(g, str) or not g.strip():
            continue
        g = g.strip().rstrip("/")
        negate = g.startswith("!")
        g = g.lstrip("!").removeprefix("./")
        patterns.append(("!" if negate else "") + f"/{g}/package.json")
    if not patterns:
        return {}, {}
    spec = pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    packages: dict[str, str] = {}
    entries: dict[str, str] = {}
    for rel in _package_json_files(root):
        if not spec.match_file(rel):
            continue
        pkg = _read_json(root / rel)
        name = pkg.get("name") if pkg else None
        if not isinstance(name, str) or not name:
            continue
        pkg_dir = rel.rsplit("/", 1)[0]
        packages[name] = pkg_dir
        for key in _ENTRY_FIELDS:
            value = pkg.get(key)
            if isinstance(value, str) and value:
                entries[name] = f"{pkg_dir}/{value.removeprefix('./')}"
                break
    return packages, entries


def _npm_globs(root: Path) -> list[str]:
    pkg = _read_json(root / "package.json")
    if not pkg:
        return []
    workspaces = pkg.get("workspaces")
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages")
    return workspaces if isinstance(workspaces, list) else []


def _pnpm_globs(root: Path) -> list[str]:
    path = root / "pnpm-workspace.yaml"
    if not path.is_file():
        return []
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("Cannot read %s: %s", path, e)
        return []
    packages = data.get("packages") if isinstance(data, dict) else None
    return packages if isinstance(packages, list) else []


def _lerna_globs(root: Path) -> list[str]:
    if not (root / "lerna.json").is_file():
        return []
    lerna = _read_json(root / "lerna.json") or {}
    packages = lerna.get("packages")
    return packages if isinstance(packages, list) else ["packages/*"]


def detect_workspaces(root: str | Path) -> WorkspaceInfo:
    root = Path(root).resolve()
    for kind, probe in (("npm", _npm_globs), ("pnpm", _pnpm_globs), ("lerna", _lerna_globs)):
        globs = probe(root)
        if not globs:
            continue
        packages, entries = _resolve_globs(root, globs)
        if packages:
            log.info("Workspace (%s): %d packages", kind, len(packages))
            return WorkspaceInfo(packages=packages, type=kind, entries=entries)
        log.debug("Workspace convention %s matched no packages", kind)
    return WorkspaceInfo()
