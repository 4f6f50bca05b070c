import time

from codemanifest.engine import analyze, analyze_file
from codemanifest.models import SummaryCacheEntry
from codemanifest.parsers.base import LanguageParser
from codemanifest.parsers.registry import ParserRegistry
from codemanifest.parsers.typescript import TypeScriptParser


def _project(root):
    (root / "src").mkdir()
    (root / "src" / "a.ts").write_text("import { b } from './b';\nexport const a = b;\n")
    (root / "src" / "b.ts").write_text("export const b = 1;\n")
    (root / "README.md").write_text("# Demo\n\nA small demo project for the tests.\n")
    (root / "big.py").write_text("x = 1\n" * 50)
    (root / "LICENSE").write_text("MIT\n")


def test_full_analysis(tmp_path, registry, config_for):
    _project(tmp_path)
    run = analyze(config_for(tmp_path, max_file_size=200), registry, commit_sha="abc")
    manifest = run.manifest

    assert [m.file_path for m in manifest.modules] == ["README.md", "src/a.ts", "src/b.ts"]
    assert run.skipped == ["big.py"]
    assert sorted(run.parsed) == ["README.md", "src/a.ts", "src/b.ts"]
    assert manifest.commit_sha == "abc"
    assert manifest.repo == tmp_path.name
    assert [(e.source, e.target) for e in manifest.dependency_graph.edges] == [("src/a.ts", "src/b.ts")]
    assert manifest.stats.total_files == 3
    assert manifest.stats.skipped_files == 1

    b = manifest.module_map()["src/b.ts"]
    assert b.language == "typescript"
    assert b.line_count == 2
    assert len(b.content_hash) == 16
    assert b.analyzed_at.endswith("Z")
    assert [s.name for s in b.symbols] == ["b"]


def test_unchanged_files_are_reused(tmp_path, registry, config_for):
    _project(tmp_path)
    config = config_for(tmp_path, max_file_size=200)
    first = analyze(config, registry).manifest
    first.summary_cache = [SummaryCacheEntry(content_hash="h", summary="s", generated_at="t")]

    (tmp_path / "src" / "b.ts").write_text("export const b = 2;\n")
    run = analyze(config, registry, previous=first)
    assert run.parsed == ["src/b.ts"]
    assert sorted(run.reused) == ["README.md", "src/a.ts"]
    before, after = first.module_map(), run.manifest.module_map()
    assert after["src/a.ts"].to_dict() == before["src/a.ts"].to_dict()
    assert after["src/b.ts"].content_hash != before["src/b.ts"].content_hash
    assert run.manifest.summary_cache == first.summary_cache


def test_explicit_targets_merge_into_previous(tmp_path, registry, config_for):
    _project(tmp_path)
    config = config_for(tmp_path, max_file_size=200)
    first = analyze(config, registry).manifest
    (tmp_path / "src" / "c.ts").write_text("export const c = 3;\n")

    run = analyze(config, registry, files=["src/c.ts"], previous=first, removed=["README.md"])
    assert [m.file_path for m in run.manifest.modules] == ["src/a.ts", "src/b.ts", "src/c.ts"]
    assert run.parsed == ["src/c.ts"]


class _Boom(LanguageParser):
    language = "typescript"

    def parse(self, content, file_path):
        raise RuntimeError("grammar exploded")


class _Slow(LanguageParser):
    language = "typescript"

    def parse(self, content, file_path):
        time.sleep(0.5)
        raise RuntimeError("too late")


def test_parser_failure_skips_file(tmp_path, config_for):
    _project(tmp_path)
    run = analyze(config_for(tmp_path), ParserRegistry([_Boom()]))
    assert run.manifest.modules == []
    assert set(run.skipped) == {"README.md", "big.py", "src/a.ts", "src/b.ts"}


def test_parse_timeout_skips_file(tmp_path, config_for):
    (tmp_path / "a.ts").write_text("export const a = 1;\n")
    run = analyze(config_for(tmp_path, parse_timeout=0.05), ParserRegistry([_Slow()]))
    assert run.skipped == ["a.ts"]
    assert run.manifest.stats.skipped_files == 1


class _HangOnA(TypeScriptParser):
    def parse(self, content, file_path):
        if file_path.endswith("a.ts"):
            time.sleep(1.0)
        return super().parse(content, file_path)


def test_hung_parse_does_not_skip_queued_files(tmp_path, config_for):
    for name in ("a", "b", "c", "d"):
        (tmp_path / f"{name}.ts").write_text(f"export const {name} = 1;\n")
    config = config_for(tmp_path, parse_timeout=0.3)
    config.analysis.concurrency = 1

    run = analyze(config, ParserRegistry([_HangOnA()]))
    assert run.skipped == ["a.ts"]
    assert run.parsed == ["b.ts", "c.ts", "d.ts"]
    assert [m.file_path for m in run.manifest.modules] == ["b.ts", "c.ts", "d.ts"]


def test_analyze_file_unknown_language(tmp_path, registry):
    (tmp_path / "LICENSE").write_text("MIT\n")
    assert analyze_file(tmp_path, "LICENSE", registry, max_file_size=1000) is None
