import json

import pytest

from codemanifest.git import GitError
from codemanifest.manifest import load_manifest
from codemanifest.models import SyncState
from codemanifest.sync import load_sync_state, run_analyze, run_sync, save_sync_state

X_TS = "export function x(): number {\n  return 1;\n}\n"
Y_TS = "import { x } from './x';\n\nexport const y = x();\n"
Z_TS = "// standalone module\nexport const zed = 'zzz';\nexport function zz() {}\n"


@pytest.fixture
def repo(git_repo):
    git_repo.write(".gitignore", ".codemanifest/\n")
    git_repo.write("x.ts", X_TS)
    git_repo.write("y.ts", Y_TS)
    git_repo.write("z.ts", Z_TS)
    git_repo.first = git_repo.commit("init")
    return git_repo


def _modules(config):
    return load_manifest(config.manifest_path).module_map()


def test_first_sync_is_full(repo, registry, config_for):
    config = config_for(repo.root)
    result = run_sync(config, registry)

    assert result.full_run is True
    assert result.previous_commit == "none"
    assert result.current_commit == repo.first
    assert result.modules_reanalyzed == 3
    assert sorted(_modules(config)) == ["x.ts", "y.ts", "z.ts"]
    state = load_sync_state(config.state_path)
    assert state.last_commit_sha == repo.first
    assert state.total_pages == 3
    assert state.manifest_path == ".codemanifest/manifest.json"


def test_incremental_sync_flags_importers(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)
    before = _modules(config)

    repo.write("x.ts", X_TS.replace("return 1", "return 2"))
    second = repo.commit("bump x")
    result = run_sync(config, registry)

    assert result.full_run is False
    assert [(d.path, d.status) for d in result.diffs] == [("x.ts", "modified")]
    assert result.impacted_modules == ["y.ts"]
    assert result.modules_reanalyzed == 1
    assert result.pages_rebuilt == 2
    assert result.previous_commit == repo.first
    assert result.current_commit == second

    after = _modules(config)
    assert after["x.ts"].content_hash != before["x.ts"].content_hash
    # impacted modules are flagged, not re-parsed
    assert after["y.ts"].content_hash == before["y.ts"].content_hash
    assert after["y.ts"].analyzed_at == before["y.ts"].analyzed_at
    assert load_sync_state(config.state_path).last_commit_sha == second


def test_impact_depth_override(repo, registry, config_for):
    repo.write("w.ts", "import { y } from './y';\nexport const w = y;\n")
    repo.commit("add w")
    config = config_for(repo.root)
    run_sync(config, registry)

    repo.write("x.ts", X_TS.replace("return 1", "return 3"))
    repo.commit("bump x")
    result = run_sync(config, registry, dry_run=False, impact_depth=1)
    assert result.impacted_modules == ["y.ts"]


def test_transitive_impact_by_default(repo, registry, config_for):
    repo.write("w.ts", "import { y } from './y';\nexport const w = y;\n")
    repo.commit("add w")
    config = config_for(repo.root)
    run_sync(config, registry)

    repo.write("x.ts", X_TS.replace("return 1", "return 3"))
    repo.commit("bump x")
    assert run_sync(config, registry).impacted_modules == ["w.ts", "y.ts"]


def test_no_changes(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)
    manifest_before = config.manifest_path.read_text()

    result = run_sync(config, registry)
    assert result.diffs == []
    assert result.modules_reanalyzed == 0
    assert result.previous_commit == result.current_commit == repo.first
    assert config.manifest_path.read_text() == manifest_before


def test_dry_run_reports_without_writing(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)
    manifest_before = config.manifest_path.read_text()

    repo.write("z.ts", Z_TS + "export const more = 1;\n")
    repo.commit("edit z")
    result = run_sync(config, registry, dry_run=True)

    assert [(d.path, d.status) for d in result.diffs] == [("z.ts", "modified")]
    assert result.modules_reanalyzed == 0
    assert config.manifest_path.read_text() == manifest_before
    assert load_sync_state(config.state_path).last_commit_sha == repo.first


def test_dry_run_without_state_writes_nothing(repo, registry, config_for):
    config = config_for(repo.root)
    result = run_sync(config, registry, dry_run=True)
    assert result.full_run is True
    assert not config.manifest_path.exists()
    assert not config.state_path.exists()


def test_rename_and_delete(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)

    repo.move("z.ts", "lib/w.ts")
    repo.remove("x.ts")
    repo.commit("reshuffle")
    result = run_sync(config, registry)

    statuses = {d.path: d for d in result.diffs}
    assert statuses["x.ts"].status == "deleted"
    assert statuses["lib/w.ts"].status == "renamed"
    assert statuses["lib/w.ts"].old_path == "z.ts"
    # the rename drops z.ts and creates lib/w.ts
    assert result.pages_deleted == 2
    assert result.pages_created == 1
    assert result.impacted_modules == ["y.ts"]
    assert sorted(_modules(config)) == ["lib/w.ts", "y.ts"]


def test_change_to_excluded_file_drops_it(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)

    repo.move("z.ts", "z.test.ts")
    repo.commit("turn z into a test")
    run_sync(config, registry)
    assert sorted(_modules(config)) == ["x.ts", "y.ts"]


def test_full_flag_discards_state(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)
    result = run_sync(config, registry, full=True)
    assert result.full_run is True
    assert result.modules_reanalyzed == 3


def test_unknown_previous_commit_falls_back_to_full(repo, registry, config_for):
    config = config_for(repo.root)
    run_sync(config, registry)
    save_sync_state(config.state_path, SyncState(
        last_commit_sha="0" * 40, last_synced_at="t",
        manifest_path=".codemanifest/manifest.json", total_pages=3,
    ))

    result = run_sync(config, registry)
    assert result.full_run is True
    # the previous manifest still supplies unchanged modules
    assert result.modules_reanalyzed == 0
    assert load_sync_state(config.state_path).last_commit_sha == repo.first


def test_without_git_falls_back_to_full(tmp_path, registry, config_for):
    (tmp_path / "a.ts").write_text("export const a = 1;\n")
    config = config_for(tmp_path)

    result = run_sync(config, registry)
    assert result.full_run is True
    assert result.current_commit == ""
    assert sorted(_modules(config)) == ["a.ts"]
    assert not config.state_path.exists()
    assert load_manifest(config.manifest_path).branch == config.source.branch

    config.sync.fallback_to_full = False
    with pytest.raises(GitError):
        run_sync(config, registry)


def test_unreadable_state_is_ignored(repo, registry, config_for):
    config = config_for(repo.root)
    config.state_path.parent.mkdir(parents=True)
    config.state_path.write_text(json.dumps({"lastCommitSha": "abc"}))
    assert load_sync_state(config.state_path) is None
    assert run_sync(config, registry).full_run is True


def test_run_analyze_reuses_existing_manifest(repo, registry, config_for):
    config = config_for(repo.root)
    first = run_analyze(config, registry)
    assert first.modules_reanalyzed == 3
    assert load_sync_state(config.state_path).last_commit_sha == repo.first

    second = run_analyze(config, registry)
    assert second.full_run is True
    assert second.modules_reanalyzed == 0


def test_run_analyze_ignores_corrupt_manifest(repo, registry, config_for):
    config = config_for(repo.root)
    config.manifest_path.parent.mkdir(parents=True)
    config.manifest_path.write_text("{broken")
    assert run_analyze(config, registry).modules_reanalyzed == 3


def test_failed_save_keeps_previous_state(repo, registry, config_for, monkeypatch):
    config = config_for(repo.root)
    run_sync(config, registry)
    manifest_before = config.manifest_path.read_text()

    repo.write("x.ts", X_TS.replace("return 1", "return 5"))
    repo.commit("bump x")

    def disk_full(manifest, path):
        raise OSError("No space left on device")

    monkeypatch.setattr("codemanifest.sync.save_manifest", disk_full)
    with pytest.raises(OSError):
        run_sync(config, registry)

    assert load_sync_state(config.state_path).last_commit_sha == repo.first
    assert config.manifest_path.read_text() == manifest_before


def test_manifest_records_checked_out_branch(repo, registry, config_for):
    repo.git("checkout", "-q", "-b", "feature/sync")
    config = config_for(repo.root)
    run_sync(config, registry)
    assert load_manifest(config.manifest_path).branch == "feature/sync"

    run_analyze(config, registry)
    assert load_manifest(config.manifest_path).branch == "feature/sync"
