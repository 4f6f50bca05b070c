import subprocess
from pathlib import Path

import pytest

from codemanifest.config import Config
from codemanifest.parsers.registry import build_registry


@pytest.fixture(scope="session")
def registry():
    return build_registry()


class GitRepo:
    """A throwaway repository driven through the git CLI."""

    def __init__(self, root: Path):
        self.root = root
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com",
             "-c", "commit.gpgsign=false", *args],
            cwd=self.root, capture_output=True, text=True, check=True,
        )
        return result.stdout

    def write(self, rel_path: str, content: str) -> None:
        path = self.root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def remove(self, rel_path: str) -> None:
        self.git("rm", "-q", rel_path)

    def move(self, old: str, new: str) -> None:
        (self.root / new).parent.mkdir(parents=True, exist_ok=True)
        self.git("mv", old, new)

    def commit(self, message: str = "change") -> str:
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD").strip()


@pytest.fixture
def git_repo(tmp_path):
    return GitRepo(tmp_path)


@pytest.fixture
def config_for():
    def make(root: Path, **analysis) -> Config:
        config = Config(root=root)
        for key, value in analysis.items():
            setattr(config.analysis, key, value)
        config.analysis.concurrency = 2
        return config
    return make
