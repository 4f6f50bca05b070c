"""DuckDB mirror of the manifest, for the query commands.

The manifest JSON stays the source of truth; the database is rebuilt from it
whenever the manifest's analysis timestamp changes.

DuckDB connections are NOT thread-safe, so every public method on
ManifestStore holds a threading.Lock for the full execute-through-fetch.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import duckdb

from .models import AnalysisManifest

log = logging.getLogger(__name__)

DEFAULT_DB_FILE = ".codemanifest/manifest.duckdb"

_DDL = """
CREATE TABLE IF NOT EXISTS meta (
    key     VARCHAR PRIMARY KEY,
    value   VARCHAR
);

CREATE TABLE IF NOT EXISTS modules (
    path            VARCHAR PRIMARY KEY,
    language        VARCHAR NOT NULL,
    content_hash    VARCHAR NOT NULL,
    file_size       INTEGER,
    line_count      INTEGER,
    analyzed_at     VARCHAR,
    summary         VARCHAR,
    ai_summary      VARCHAR
);

CREATE TABLE IF NOT EXISTS symbols (
    id              VARCHAR PRIMARY KEY,
    file_path       VARCHAR NOT NULL,
    name            VARCHAR NOT NULL,
    kind            VARCHAR NOT NULL,
    visibility      VARCHAR NOT NULL,
    exported        BOOLEAN NOT NULL,
    line            INTEGER NOT NULL,
    end_line        INTEGER,
    parent_id       VARCHAR,
    signature       VARCHAR,
    summary         VARCHAR,
    ai_summary      VARCHAR
);

CREATE TABLE IF NOT EXISTS edges (
    source          VARCHAR NOT NULL,
    target          VARCHAR NOT NULL,
    imports         VARCHAR,
    is_type_only    BOOLEAN DEFAULT false,
    PRIMARY KEY (source, target)
);

CREATE TABLE IF NOT EXISTS summaries (
    content_hash    VARCHAR PRIMARY KEY,
    summary         VARCHAR,
    generated_at    VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_symbols_file ON symbols(file_path);
CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols(name);
CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target)
"""

_TABLES = ("meta", "modules", "symbols", "edges", "summaries")


@dataclass
class SymbolRow:
    id: str
    file_path: str
    name: str
    kind: str
    visibility: str
    exported: bool
    line: int
    end_line: int | None
    parent_id: str | None
    signature: str | None
    summary: str | None
    ai_summary: str | None


_SYMBOL_COLUMNS = ("id, file_path, name, kind, visibility, exported, line, end_line, "
                   "parent_id, signature, summary, ai_summary")


class ManifestStore:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._con = duckdb.connect(self.db_path)
        for stmt in _DDL.strip().split(";"):
            stmt = stmt.strip()
            if stmt:
                self._con.execute(stmt)
        log.debug("ManifestStore opened: %s", self.db_path)

    def close(self) -> None:
        self._con.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── meta ────────────────────────────────────────────────────────────────

    def get_meta(self, key: str) -> str | None:
        with self._lock:
            row = self._con.execute(
                "SELECT value FROM meta WHERE key = ?", [key]
            ).fetchone()
        return row[0] if row else None

    # ── loading ──────────────────────────────────────────────────────────────

    def load_manifest(self, manifest: AnalysisManifest) -> None:
        """Replace every table with the contents of ``manifest``."""
        meta = [
            ("repo", manifest.repo),
            ("branch", manifest.branch),
            ("commit_sha", manifest.commit_sha),
            ("analyzed_at", manifest.analyzed_at),
            ("tool_version", manifest.tool_version),
        ]
        modules = [
            (m.file_path, m.language, m.content_hash, m.file_size, m.line_count,
             m.analyzed_at, m.module_doc.summary if m.module_doc else None, m.ai_summary)
            for m in manifest.modules
        ]
        symbols = [
            (s.id, m.file_path, s.name, s.kind, s.visibility, s.exported,
             s.location.line, s.location.end_line, s.parent_id, s.signature,
             s.docs.summary if s.docs else None, s.ai_summary)
            for m in manifest.modules for s in m.symbols
        ]
        edges = [
            (e.source, e.target, ",".join(e.imports), e.is_type_only)
            for e in manifest.dependency_graph.edges
        ]
        summaries = [
            (c.content_hash, c.summary, c.generated_at)
            for c in manifest.summary_cache or []
        ]

        with self._lock:
            for table in _TABLES:
                self._con.execute(f"DELETE FROM {table}")
            self._con.executemany("INSERT INTO meta VALUES (?, ?)", meta)
            if modules:
                self._con.executemany(
                    "INSERT INTO modules VALUES (?, ?, ?, ?, ?, ?, ?, ?)", modules)
            if symbols:
                self._con.executemany(
                    f"INSERT INTO symbols ({_SYMBOL_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", symbols)
            if edges:
                self._con.executemany("INSERT INTO edges VALUES (?, ?, ?, ?)", edges)
            if summaries:
                self._con.executemany("INSERT INTO summaries VALUES (?, ?, ?)", summaries)
        log.info("Loaded manifest into %s: %d modules, %d symbols, %d edges",
                 self.db_path, len(modules), len(symbols), len(edges))

    def refresh(self, manifest: AnalysisManifest) -> bool:
        """Reload when ``manifest`` is newer than what the store holds."""
        if self.get_meta("analyzed_at") == manifest.analyzed_at:
            return False
        self.load_manifest(manifest)
        return True

    # ── queries ──────────────────────────────────────────────────────────────

    def find_symbols(self, name: str, exact: bool = False, limit: int = 50) -> list[SymbolRow]:
        """Symbols by name; substring and case-insensitive unless ``exact``."""
        if exact:
            where, arg = "name = ?", name
        else:
            where, arg = "name ILIKE ?", f"%{name}%"
        with self._lock:
            rows = self._con.execute(
                f"SELECT {_SYMBOL_COLUMNS} FROM symbols WHERE {where} "
                f"ORDER BY file_path, line LIMIT {int(limit)}",
                [arg],
            ).fetchall()
        return [SymbolRow(*r) for r in rows]

    def symbols_in_file(self, file_path: str) -> list[SymbolRow]:
        with self._lock:
            rows = self._con.execute(
                f"SELECT {_SYMBOL_COLUMNS} FROM symbols WHERE file_path = ? ORDER BY line",
                [file_path],
            ).fetchall()
        return [SymbolRow(*r) for r in rows]

    def importers_of(self, path: str) -> list[str]:
        with self._lock:
            return [r[0] for r in self._con.execute(
                "SELECT source FROM edges WHERE target = ? ORDER BY source", [path]
            ).fetchall()]

    def imports_of(self, path: str) -> list[str]:
        with self._lock:
            return [r[0] for r in self._con.execute(
                "SELECT target FROM edges WHERE source = ? ORDER BY target", [path]
            ).fetchall()]

    # ── stats ────────────────────────────────────────────────────────────────

    def stats(self) -> dict:
        with self._lock:
            counts = {}
            for table in ("modules", "symbols", "edges", "summaries"):
                row = self._con.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
                counts[table] = row[0] if row else 0

            lang_rows = self._con.execute(
                "SELECT language, COUNT(*) FROM modules GROUP BY language"
            ).fetchall()
            counts["by_language"] = {r[0]: r[1] for r in lang_rows}

            kind_rows = self._con.execute(
                "SELECT kind, COUNT(*) FROM symbols GROUP BY kind"
            ).fetchall()
            counts["by_kind"] = {r[0]: r[1] for r in kind_rows}

        return counts
