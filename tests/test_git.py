import pytest

from codemanifest.git import (
    GitError, diff_commits, get_branch, get_head_sha, is_repository, parse_name_status,
)
from codemanifest.models import FileDiff


def test_parse_name_status():
    output = (
        "M\tsrc/a.ts\n"
        "A\tsrc/new.ts\n"
        "D\tsrc/old.ts\n"
        "R087\tsrc/from.ts\tsrc/to.ts\n"
        "C100\tsrc/base.ts\tsrc/copy.ts\n"
        "T\tbin/link\n"
        "X\tweird\n"
        "\n"
    )
    assert parse_name_status(output) == [
        FileDiff(path="src/a.ts", status="modified"),
        FileDiff(path="src/new.ts", status="added"),
        FileDiff(path="src/old.ts", status="deleted"),
        FileDiff(path="src/to.ts", status="renamed", old_path="src/from.ts"),
        FileDiff(path="src/copy.ts", status="added"),
        FileDiff(path="bin/link", status="modified"),
    ]


def test_real_repository(git_repo):
    git_repo.write("a.ts", "export const a = 1;\n")
    git_repo.write("b.ts", "export const b = 1;\n")
    first = git_repo.commit("init")

    git_repo.write("a.ts", "export const a = 2;\n")
    git_repo.remove("b.ts")
    git_repo.write("c.ts", "// unrelated helper module\nfunction other(): void {}\n")
    second = git_repo.commit("change")

    assert is_repository(git_repo.root)
    assert get_head_sha(git_repo.root) == second
    assert get_branch(git_repo.root) == "main"
    diffs = {d.path: d.status for d in diff_commits(git_repo.root, first, second)}
    assert diffs == {"a.ts": "modified", "b.ts": "deleted", "c.ts": "added"}


def test_unknown_commit_raises(git_repo):
    git_repo.write("a.ts", "x\n")
    git_repo.commit()
    with pytest.raises(GitError):
        diff_commits(git_repo.root, "0" * 40)


def test_not_a_repository(tmp_path):
    assert is_repository(tmp_path) is False
    with pytest.raises(GitError):
        get_head_sha(tmp_path)
