"""File discovery: walk the repository, apply include/exclude globs and .gitignore."""

import logging
import os
from pathlib import Path

import pathspec

from .config import SourceConfig

log = logging.getLogger(__name__)

# Never descended into, whatever the configured globs say.
_ALWAYS_SKIP = {".git", "node_modules"}


def _load_gitignore_spec(root: Path) -> pathspec.PathSpec | None:
    gitignore = root / ".gitignore"
    if gitignore.exists():
        patterns = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)
    return None


def discover_files(root: str | Path, source: SourceConfig) -> list[str]:
    """
    Return the sorted repo-relative paths (forward slashes) of all files under
    ``root`` that match ``source.include`` and none of ``source.exclude``.
    """
    root = Path(root).resolve()
    include = pathspec.PathSpec.from_lines("gitwildmatch", source.include)
    exclude = pathspec.PathSpec.from_lines("gitwildmatch", source.exclude)
    gitignore_spec = _load_gitignore_spec(root) if source.respect_gitignore else None

    results: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in _ALWAYS_SKIP]
        base = Path(dirpath)
        for name in filenames:
            rel_str = (base / name).relative_to(root).as_posix()
            if not include.match_file(rel_str):
                continue
            if exclude.match_file(rel_str):
                continue
            if gitignore_spec and gitignore_spec.match_file(rel_str):
                continue
            results.append(rel_str)

    results.sort()
    log.info("Discovered %d files under %s", len(results), root)
    return results
