import json

import pytest

from codemanifest.cache import ModuleCache, SummaryCache, content_hash, symbol_key
from codemanifest.manifest import (
    ManifestError, compute_project_meta, compute_stats, load_manifest, merge_modules, save_manifest,
)
from codemanifest.models import AnalysisManifest, Location, ModuleInfo, Symbol


def _mod(path, language="typescript", kinds=(), lines=10, digest=""):
    symbols = [
        Symbol(id=f"{path}:s{i}", name=f"s{i}", kind=kind, visibility="public",
               location=Location(file=path, line=i + 1, column=0), exported=True)
        for i, kind in enumerate(kinds)
    ]
    return ModuleInfo(file_path=path, language=language, symbols=symbols,
                      line_count=lines, content_hash=digest)


def test_content_hash_is_stable_and_short():
    assert content_hash("abc") == content_hash(b"abc")
    assert len(content_hash("abc")) == 16
    assert content_hash("abc") != content_hash("abd")


def test_module_cache_requires_matching_hash():
    previous = AnalysisManifest(tool_version="0.1.0", repo="r", branch="main", commit_sha="",
                                analyzed_at="", modules=[_mod("a.ts", digest="h1")])
    cache = ModuleCache(previous)
    assert cache.lookup("a.ts", "h1").file_path == "a.ts"
    assert cache.lookup("a.ts", "h2") is None
    assert cache.lookup("b.ts", "h1") is None
    assert ModuleCache(None).lookup("a.ts", "h1") is None


def test_summary_cache():
    cache = SummaryCache()
    key = symbol_key("h1", "a.ts:run")
    assert key == "h1:a.ts:run"
    assert cache.get(key) is None
    cache.put(key, "Runs things.")
    cache.put("h0", "A module.")
    assert key in cache and len(cache) == 2
    assert cache.get(key) == "Runs things."
    assert [e.content_hash for e in cache.entries()] == ["h0", "h1:a.ts:run"]
    assert SummaryCache(cache.entries()).get("h0") == "A module."


def test_project_meta_from_package_json(tmp_path):
    (tmp_path / "package.json").write_text(json.dumps({
        "name": "shop", "version": "1.2.0", "description": "A shop", "license": "MIT",
    }))
    (tmp_path / "pnpm-lock.yaml").write_text("")
    modules = [_mod("src/index.ts"), _mod("src/cart.ts"), _mod("tools/gen.py", "python")]
    meta = compute_project_meta(modules, tmp_path, "acme/shop")
    assert (meta.name, meta.version, meta.description, meta.license) == ("shop", "1.2.0", "A shop", "MIT")
    assert meta.package_manager == "pnpm"
    assert meta.entry_points == ["src/index.ts"]
    assert [(s.name, s.file_count, s.percentage) for s in meta.languages] == [
        ("typescript", 2, 67), ("python", 1, 33),
    ]
    assert meta.repository == "acme/shop"


def test_project_meta_from_pyproject(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "tool"\nversion = "0.3"\nlicense = {text = "BSD"}\n'
    )
    meta = compute_project_meta([], tmp_path, "tool-repo")
    assert meta.name == "tool"
    assert meta.license == "BSD"
    assert meta.languages == []


def test_project_meta_falls_back_to_repo_name(tmp_path):
    meta = compute_project_meta([], tmp_path, "org/widgets")
    assert meta.name == "widgets"
    assert meta.package_manager is None


def test_stats():
    modules = [
        _mod("a.ts", kinds=("function", "class"), lines=20),
        _mod("b.py", "python", kinds=("function",), lines=5),
    ]
    stats = compute_stats(modules, skipped_files=3, analysis_time=12)
    assert stats.total_files == 2
    assert stats.total_symbols == 3
    assert stats.total_lines == 25
    assert stats.by_kind == {"function": 2, "class": 1}
    assert stats.by_language["typescript"].symbols == 2
    assert stats.by_language["python"].lines == 5
    assert stats.skipped_files == 3


def test_merge_modules():
    previous = [_mod("a.ts", digest="old"), _mod("b.ts"), _mod("c.ts")]
    fresh = [_mod("a.ts", digest="new"), _mod("d.ts")]
    merged = merge_modules(previous, fresh, replaced=["a.ts", "c.ts", "e.ts"])
    assert [m.file_path for m in merged] == ["a.ts", "b.ts", "d.ts"]
    assert merged[0].content_hash == "new"


def test_save_and_load(tmp_path):
    path = tmp_path / ".codemanifest" / "manifest.json"
    manifest = AnalysisManifest(tool_version="0.1.0", repo="r", branch="main", commit_sha="abc",
                                analyzed_at="t", modules=[_mod("a.ts", kinds=("function",))])
    save_manifest(manifest, path)
    assert not path.with_name("manifest.json.tmp").exists()
    assert load_manifest(path) == manifest


def test_load_missing_and_corrupt(tmp_path):
    assert load_manifest(tmp_path / "absent.json") is None
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ManifestError):
        load_manifest(bad)
    wrong = tmp_path / "wrong.json"
    wrong.write_text(json.dumps({"repo": "r"}))
    with pytest.raises(ManifestError):
        load_manifest(wrong)
