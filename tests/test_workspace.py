import json

from codemanifest.workspace import detect_workspaces


def _package(root, rel_dir, **fields):
    path = root / rel_dir / "package.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(fields), encoding="utf-8")


def test_npm_workspaces_list(tmp_path):
    (tmp_path / "package.json").write_text(json.dumps({"workspaces": ["packages/*"]}))
    _package(tmp_path, "packages/utils", name="@acme/utils", main="./lib/index.js")
    _package(tmp_path, "packages/ui", name="@acme/ui")
    _package(tmp_path, "packages/ui/node_modules/left-pad", name="left-pad")
    _package(tmp_path, "tools/nameless")

    info = detect_workspaces(tmp_path)
    assert info.type == "npm"
    assert info.packages == {"@acme/utils": "packages/utils", "@acme/ui": "packages/ui"}
    assert info.entries == {"@acme/utils": "packages/utils/lib/index.js"}
    assert info


def test_yarn_workspaces_object(tmp_path):
    (tmp_path / "package.json").write_text(json.dumps({"workspaces": {"packages": ["libs/*"]}}))
    _package(tmp_path, "libs/core", name="core", source="src/index.ts")
    info = detect_workspaces(tmp_path)
    assert info.packages == {"core": "libs/core"}
    assert info.entries == {"core": "libs/core/src/index.ts"}


def test_pnpm_workspace_with_negation(tmp_path):
    (tmp_path / "pnpm-workspace.yaml").write_text("packages:\n  - 'apps/*'\n  - '!apps/legacy'\n")
    _package(tmp_path, "apps/web", name="web")
    _package(tmp_path, "apps/legacy", name="legacy")
    info = detect_workspaces(tmp_path)
    assert info.type == "pnpm"
    assert info.packages == {"web": "apps/web"}


def test_lerna_default_packages(tmp_path):
    (tmp_path / "lerna.json").write_text("{}")
    _package(tmp_path, "packages/api", name="api")
    info = detect_workspaces(tmp_path)
    assert info.type == "lerna"
    assert info.packages == {"api": "packages/api"}


def test_first_convention_that_resolves_wins(tmp_path):
    # npm declares a glob that matches nothing, so pnpm is consulted next
    (tmp_path / "package.json").write_text(json.dumps({"workspaces": ["missing/*"]}))
    (tmp_path / "pnpm-workspace.yaml").write_text("packages:\n  - 'apps/*'\n")
    _package(tmp_path, "apps/web", name="web")
    assert detect_workspaces(tmp_path).type == "pnpm"


def test_no_workspace(tmp_path):
    (tmp_path / "package.json").write_text(json.dumps({"name": "single"}))
    info = detect_workspaces(tmp_path)
    assert info.type == "none"
    assert not info
