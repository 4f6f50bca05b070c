"""
File-level dependency graph: import resolution, edge merging, and
networkx-backed impact and cycle analysis.
"""

import logging
import posixpath
import re
from collections.abc import Iterable

import networkx as nx

from .models import DependencyEdge, DependencyGraph, ImportInfo, ModuleInfo
from .workspace import WorkspaceInfo

log = logging.getLogger(__name__)

_SCRIPT_EXTS = (".ts", ".tsx", ".js", ".jsx")
_ESM_SUFFIX = re.compile(r"\.(m|c)?js$")


# ── resolution ───────────────────────────────────────────────────────────────

def _candidates(base: str) -> list[str]:
    """Conventional files an extensionless (or ESM-suffixed) path may name."""
    stripped = _ESM_SUFFIX.sub("", base)
    stems = [base] if stripped == base else [base, stripped]
    out = list(stems)
    for stem in stems:
        out.extend(stem + ext for ext in _SCRIPT_EXTS)
        out.append(stem + ".py")
    for stem in stems:
        out.extend(f"{stem}/index{ext}" for ext in _SCRIPT_EXTS)
        out.append(f"{stem}/__init__.py")
    return [posixpath.normpath(c) for c in out]


def _first_known(candidates: Iterable[str], files: set[str]) -> str | None:
    for c in candidates:
        if c in files:
            return c
    return None


def _python_relative(source: str, importer: str, names: list[str],
                     files: set[str]) -> list[str]:
    """``from ..pkg.mod import x`` → ``<dir>/../pkg/mod.py`` (or a package)."""
    dots = len(source) - len(source.lstrip("."))
    rest = source[dots:]
    base = posixpath.dirname(importer)
    for _ in range(dots - 1):
        base = posixpath.dirname(base)
    if rest:
        target = _first_known(_candidates(posixpath.join(base, rest.replace(".", "/"))), files)
        return [target] if target else []
    # `from . import a, b` names sibling modules, or attributes of the package
    out: list[str] = []
    for name in names:
        target = _first_known(_candidates(posixpath.join(base, name)), files)
        if target:
            out.append(target)
    if not out:
        init = _first_known([posixpath.normpath(posixpath.join(base, "__init__.py"))], files)
        if init:
            out.append(init)
    return out


def _workspace_target(source: str, files: set[str], workspace: WorkspaceInfo) -> str | None:
    # longest package name first: "@org/utils-extra" must beat "@org/utils"
    for name in sorted(workspace.packages, key=len, reverse=True):
        if source != name and not source.startswith(name + "/"):
            continue
        pkg_dir = workspace.packages[name]
        sub = source[len(name):].lstrip("/")
        if sub:
            return (_first_known(_candidates(posixpath.join(pkg_dir, sub)), files)
                    or _first_known(_candidates(posixpath.join(pkg_dir, "src", sub)), files))
        entry = workspace.entries.get(name)
        candidates = _candidates(entry) if entry else []
        candidates += _candidates(posixpath.join(pkg_dir, "src", "index"))
        candidates += _candidates(posixpath.join(pkg_dir, "index"))
        return _first_known(candidates, files)
    return None


def resolve_import(imp: ImportInfo, importer: ModuleInfo, files: set[str],
                   workspace: WorkspaceInfo | None = None) -> list[str]:
    """Repo files an import refers to; empty for external or unresolvable imports."""
    source = imp.source
    if importer.language == "python" and source.startswith("."):
        return _python_relative(source, importer.file_path,
                                [s.name for s in imp.specifiers], files)
    if source.startswith("./") or source.startswith("../") or source in (".", ".."):
        base = posixpath.join(posixpath.dirname(importer.file_path), source)
        target = _first_known(_candidates(base), files)
        return [target] if target else []
    if source.startswith("@/"):
        target = _first_known(_candidates("src/" + source[2:]), files)
        return [target] if target else []
    if workspace:
        target = _workspace_target(source, files, workspace)
        return [target] if target else []
    return []


# ── graph construction ───────────────────────────────────────────────────────

def build_dependency_graph(modules: list[ModuleInfo],
                           workspace: WorkspaceInfo | None = None) -> DependencyGraph:
    """Resolve every import record to a file edge; one merged edge per (from, to)."""
    files = {m.file_path for m in modules}
    merged: dict[tuple[str, str], DependencyEdge] = {}
    dropped = 0

    for mod in modules:
        for imp in mod.imports:
            targets = resolve_import(imp, mod, files, workspace)
            if not targets and (imp.source.startswith(".") or imp.source.startswith("@/")):
                dropped += 1
            for target in targets:
                if target == mod.file_path:
                    continue
                names = [s.name for s in imp.specifiers]
                edge = merged.get((mod.file_path, target))
                if edge is None:
                    merged[(mod.file_path, target)] = DependencyEdge(
                        source=mod.file_path,
                        target=target,
                        imports=list(dict.fromkeys(names)),
                        is_type_only=imp.is_type_only,
                    )
                    continue
                edge.imports.extend(n for n in names if n not in edge.imports)
                # a value import anywhere makes the whole edge a value edge
                edge.is_type_only = edge.is_type_only and imp.is_type_only

    if dropped:
        log.debug("Dropped %d unresolvable relative imports", dropped)
    graph = DependencyGraph(nodes=sorted(files), edges=list(merged.values()))
    log.info("Graph: %d nodes, %d edges", len(graph.nodes), len(graph.edges))
    return graph


def to_networkx(graph: DependencyGraph) -> nx.DiGraph:
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(graph.nodes)
    for e in graph.edges:
        g.add_edge(e.source, e.target, imports=e.imports, type_only=e.is_type_only)
    return g


# ── analytics ────────────────────────────────────────────────────────────────

def impacted_modules(graph: DependencyGraph | nx.DiGraph, changed: Iterable[str],
                     depth: int | None = None) -> list[str]:
    """
    Modules that import a changed module, following reverse edges.

    ``depth=None`` follows importers transitively; ``depth=1`` returns only
    direct importers. Changed modules themselves are never reported.
    """
    g = graph if isinstance(graph, nx.DiGraph) else to_networkx(graph)
    changed = {c for c in changed if c in g}
    if depth is not None and depth < 1:
        return []

    seen: set[str] = set()
    frontier = set(changed)
    hops = 0
    while frontier and (depth is None or hops < depth):
        next_frontier: set[str] = set()
        for node in frontier:
            for pred in g.predecessors(node):
                if pred not in seen and pred not in changed:
                    seen.add(pred)
                    next_frontier.add(pred)
        frontier = next_frontier
        hops += 1
    return sorted(seen)


def import_cycles(graph: DependencyGraph | nx.DiGraph) -> list[list[str]]:
    """Strongly connected components with more than one file, largest first."""
    g = graph if isinstance(graph, nx.DiGraph) else to_networkx(graph)
    cycles = [sorted(scc) for scc in nx.strongly_connected_components(g) if len(scc) > 1]
    cycles.sort(key=lambda c: (-len(c), c))
    return cycles
