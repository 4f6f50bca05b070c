"""
Git plumbing: HEAD SHA, branch, and the file-level diff between two commits.
"""

import logging
import subprocess
from pathlib import Path

from .models import FileDiff

log = logging.getLogger(__name__)

_STATUS = {"A": "added", "M": "modified", "D": "deleted", "R": "renamed", "T": "modified"}


class GitError(RuntimeError):
    """git is missing, the root is not a repository, or a commit is unknown."""


def _git(root: str | Path, *args: str, timeout: int = 30) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        raise GitError(f"git {args[0]} failed: {e}") from e
    if result.returncode != 0:
        raise GitError(f"git {' '.join(args)}: {result.stderr.strip() or 'exit ' + str(result.returncode)}")
    return result.stdout


def get_head_sha(root: str | Path) -> str:
    return _git(root, "rev-parse", "HEAD", timeout=10).strip()


def get_branch(root: str | Path) -> str | None:
    """Current branch name, or None on a detached HEAD."""
    name = _git(root, "rev-parse", "--abbrev-ref", "HEAD", timeout=10).strip()
    return None if name == "HEAD" else name


def is_repository(root: str | Path) -> bool:
    try:
        return _git(root, "rev-parse", "--is-inside-work-tree", timeout=10).strip() == "true"
    except GitError:
        return False


def parse_name_status(output: str) -> list[FileDiff]:
    """
    Parse ``git diff --name-status -M`` output.

    Copies (``C``) are reported as additions of the new path.
    """
    diffs: list[FileDiff] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split("\t")
        if len(parts) < 2:
            continue
        code = parts[0][:1]
        if code in ("R", "C") and len(parts) == 3:
            # "R100\told_name\tnew_name"
            if code == "R":
                diffs.append(FileDiff(path=parts[2], status="renamed", old_path=parts[1]))
            else:
                diffs.append(FileDiff(path=parts[2], status="added"))
            continue
        status = _STATUS.get(code)
        if status is None:
            log.debug("Ignoring diff line %r", line)
            continue
        diffs.append(FileDiff(path=parts[1], status=status))
    return diffs


def diff_commits(root: str | Path, from_sha: str, to_sha: str = "HEAD") -> list[FileDiff]:
    """File-level changes between two commits. Raises GitError for unknown commits."""
    output = _git(root, "diff", "--name-status", "-M", from_sha, to_sha)
    diffs = parse_name_status(output)
    log.debug("git diff %s..%s: %d entries", from_sha[:8], to_sha[:8], len(diffs))
    return diffs
