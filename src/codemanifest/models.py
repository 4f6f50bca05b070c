"""Core data structures for codemanifest.

Everything persisted (manifest, sync state, summary cache) is a dataclass
from this module.  ``to_dict`` / ``from_dict`` translate to the on-disk JSON
shape, which uses camelCase keys and omits fields that are ``None``.
"""

import functools
import types
import typing
from dataclasses import dataclass, field, fields, is_dataclass

TOOL_VERSION = "0.1.0"

SYMBOL_KINDS = (
    "function", "class", "interface", "type", "enum", "constant",
    "variable", "method", "property", "module", "namespace",
)
VISIBILITIES = ("public", "private", "protected", "internal")
DIFF_STATUSES = ("added", "modified", "deleted", "renamed")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _key(f) -> str:
    return f.metadata.get("key") or _camel(f.name)


@functools.cache
def _hints(cls) -> dict:
    return typing.get_type_hints(cls)


def _dump(value):
    if is_dataclass(value) and not isinstance(value, type):
        out = {}
        for f in fields(value):
            v = getattr(value, f.name)
            if v is None:
                continue
            out[_key(f)] = _dump(v)
        return out
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


def _coerce(tp, value):
    if value is None:
        return None
    origin = typing.get_origin(tp)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        return _coerce(args[0], value) if len(args) == 1 else value
    if origin is list:
        (item,) = typing.get_args(tp)
        return [_coerce(item, v) for v in value]
    if origin is dict:
        _, item = typing.get_args(tp)
        return {k: _coerce(item, v) for k, v in value.items()}
    if is_dataclass(tp):
        return tp.from_dict(value)
    return value


class Serializable:
    """Mixin giving dataclasses a camelCase JSON round trip."""

    def to_dict(self) -> dict:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: dict):
        if not isinstance(data, dict):
            raise TypeError(f"{cls.__name__} expects an object, got {type(data).__name__}")
        hints = _hints(cls)
        kwargs = {}
        for f in fields(cls):
            key = _key(f)
            if key in data:
                kwargs[f.name] = _coerce(hints[f.name], data[key])
        return cls(**kwargs)


# ── symbols ──────────────────────────────────────────────────────────────────

@dataclass
class Location(Serializable):
    file: str                       # relative path, forward slashes
    line: int                       # 1-based
    column: int                     # 0-based
    end_line: int | None = None
    end_column: int | None = None


@dataclass
class Parameter(Serializable):
    name: str
    type: str | None = None
    description: str | None = None
    default_value: str | None = None
    optional: bool = False
    rest: bool = False              # *args / ...rest / variadic


@dataclass
class ReturnInfo(Serializable):
    type: str | None = None
    description: str | None = None


@dataclass
class DocComment(Serializable):
    summary: str = ""
    description: str | None = None
    params: dict[str, str] | None = None
    returns: str | None = None
    throws: list[str] | None = None
    examples: list[str] | None = None
    tags: dict[str, str] | None = None
    deprecated: str | None = None   # "" when deprecated without a reason
    since: str | None = None
    see: list[str] | None = None


@dataclass
class Symbol(Serializable):
    id: str                         # "{file}:{name}" or "{file}:{Parent}.{name}"
    name: str
    kind: str                       # one of SYMBOL_KINDS
    visibility: str                 # one of VISIBILITIES
    location: Location
    exported: bool
    parameters: list[Parameter] | None = None
    returns: ReturnInfo | None = None
    type_annotation: str | None = None
    docs: DocComment | None = None
    ai_summary: str | None = None
    parent_id: str | None = None
    children: list[str] | None = None
    extends: str | None = None
    implements: list[str] | None = None
    decorators: list[str] | None = None
    is_async: bool | None = field(default=None, metadata={"key": "async"})
    signature: str | None = None


# ── modules ──────────────────────────────────────────────────────────────────

@dataclass
class ImportSpecifier(Serializable):
    name: str
    alias: str | None = None
    is_default: bool = False
    is_namespace: bool = False


@dataclass
class ImportInfo(Serializable):
    source: str                     # raw import path or package name
    specifiers: list[ImportSpecifier] = field(default_factory=list)
    is_type_only: bool = False


@dataclass
class ExportInfo(Serializable):
    name: str
    alias: str | None = None
    is_default: bool = False
    is_re_export: bool = False
    source: str | None = None       # re-export origin
    symbol_id: str | None = None


@dataclass
class ModuleInfo(Serializable):
    file_path: str                  # relative to repo root, primary key
    language: str
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[ImportInfo] = field(default_factory=list)
    exports: list[ExportInfo] = field(default_factory=list)
    module_doc: DocComment | None = None
    ai_summary: str | None = None
    file_size: int = 0
    line_count: int = 0
    content_hash: str = ""
    analyzed_at: str = ""           # ISO 8601


# ── graph ────────────────────────────────────────────────────────────────────

@dataclass
class DependencyEdge(Serializable):
    source: str = field(metadata={"key": "from"})
    target: str = field(metadata={"key": "to"})
    imports: list[str] = field(default_factory=list)
    is_type_only: bool = False


@dataclass
class DependencyGraph(Serializable):
    nodes: list[str] = field(default_factory=list)
    edges: list[DependencyEdge] = field(default_factory=list)


# ── manifest ─────────────────────────────────────────────────────────────────

@dataclass
class LanguageShare(Serializable):
    name: str
    file_count: int
    percentage: int


@dataclass
class ProjectMeta(Serializable):
    name: str
    version: str | None = None
    description: str | None = None
    languages: list[LanguageShare] = field(default_factory=list)
    entry_points: list[str] = field(default_factory=list)
    package_manager: str | None = None
    license: str | None = None
    repository: str | None = None


@dataclass
class LanguageStats(Serializable):
    files: int = 0
    symbols: int = 0
    lines: int = 0


@dataclass
class AnalysisStats(Serializable):
    total_files: int = 0
    total_symbols: int = 0
    total_lines: int = 0
    by_language: dict[str, LanguageStats] = field(default_factory=dict)
    by_kind: dict[str, int] = field(default_factory=dict)
    analysis_time: int = 0          # milliseconds
    skipped_files: int = 0


@dataclass
class SummaryCacheEntry(Serializable):
    content_hash: str               # module hash, or "{hash}:{symbol_id}"
    summary: str
    generated_at: str


@dataclass
class AnalysisManifest(Serializable):
    tool_version: str
    repo: str
    branch: str
    commit_sha: str
    analyzed_at: str
    modules: list[ModuleInfo] = field(default_factory=list)
    dependency_graph: DependencyGraph = field(default_factory=DependencyGraph)
    project_meta: ProjectMeta | None = None
    stats: AnalysisStats = field(default_factory=AnalysisStats)
    summary_cache: list[SummaryCacheEntry] | None = None

    def module_map(self) -> dict[str, ModuleInfo]:
        return {m.file_path: m for m in self.modules}


# ── sync ─────────────────────────────────────────────────────────────────────

@dataclass
class FileDiff(Serializable):
    path: str
    status: str                     # one of DIFF_STATUSES
    old_path: str | None = None     # set for renames


@dataclass
class SyncState(Serializable):
    last_commit_sha: str
    last_synced_at: str
    manifest_path: str
    total_pages: int


@dataclass
class SyncResult(Serializable):
    diffs: list[FileDiff] = field(default_factory=list)
    modules_reanalyzed: int = 0
    pages_rebuilt: int = 0
    pages_created: int = 0
    pages_deleted: int = 0
    impacted_modules: list[str] = field(default_factory=list)
    duration: int = 0               # milliseconds
    previous_commit: str = "none"
    current_commit: str = ""
    full_run: bool = False
    skipped_files: int = 0
