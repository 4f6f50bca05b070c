from codemanifest.graph import (
    build_dependency_graph, import_cycles, impacted_modules, resolve_import,
)
from codemanifest.models import DependencyEdge, DependencyGraph, ImportInfo, ImportSpecifier, ModuleInfo
from codemanifest.workspace import WorkspaceInfo


def _imp(source, *names, type_only=False):
    return ImportInfo(source=source, specifiers=[ImportSpecifier(name=n) for n in names],
                      is_type_only=type_only)


def _mod(path, *imports, language="typescript"):
    return ModuleInfo(file_path=path, language=language, imports=list(imports))


FILES = {
    "src/app.ts", "src/util.ts", "src/lib/index.ts", "src/types.ts",
    "packages/ui/src/index.ts", "packages/ui/src/button.tsx",
    "pkg/__init__.py", "pkg/core.py", "pkg/sub/mod.py",
}


def test_relative_imports_try_extensions_and_index():
    app = _mod("src/app.ts")
    assert resolve_import(_imp("./util"), app, FILES) == ["src/util.ts"]
    assert resolve_import(_imp("./lib"), app, FILES) == ["src/lib/index.ts"]
    assert resolve_import(_imp("./util.js"), app, FILES) == ["src/util.ts"]
    assert resolve_import(_imp("./missing"), app, FILES) == []


def test_alias_and_external_imports():
    app = _mod("packages/ui/src/button.tsx")
    assert resolve_import(_imp("@/util"), app, FILES) == ["src/util.ts"]
    assert resolve_import(_imp("react"), app, FILES) == []


def test_workspace_package_imports():
    workspace = WorkspaceInfo(packages={"@acme/ui": "packages/ui"}, type="npm")
    app = _mod("src/app.ts")
    assert resolve_import(_imp("@acme/ui"), app, FILES, workspace) == ["packages/ui/src/index.ts"]
    assert resolve_import(_imp("@acme/ui/button"), app, FILES, workspace) == [
        "packages/ui/src/button.tsx"
    ]
    assert resolve_import(_imp("@acme/other"), app, FILES, workspace) == []


def test_python_relative_imports():
    mod = _mod("pkg/sub/mod.py", language="python")
    assert resolve_import(_imp("..core", "run"), mod, FILES) == ["pkg/core.py"]
    core = _mod("pkg/core.py", language="python")
    assert resolve_import(_imp(".", "core"), core, FILES) == ["pkg/core.py"]
    assert resolve_import(_imp(".", "not_a_module"), core, FILES) == ["pkg/__init__.py"]


def test_edges_merge_per_file_pair():
    modules = [
        _mod("src/app.ts",
             _imp("./types", "Id", type_only=True),
             _imp("./util", "clamp"),
             _imp("./util", "clamp", "wrap"),
             _imp("./missing", "gone"),
             _imp("lodash", "map")),
        _mod("src/util.ts", _imp("./types", "Id", type_only=True)),
        _mod("src/types.ts"),
    ]
    graph = build_dependency_graph(modules)
    assert graph.nodes == ["src/app.ts", "src/types.ts", "src/util.ts"]
    edges = {(e.source, e.target): e for e in graph.edges}
    assert set(edges) == {
        ("src/app.ts", "src/types.ts"), ("src/app.ts", "src/util.ts"), ("src/util.ts", "src/types.ts"),
    }
    util = edges[("src/app.ts", "src/util.ts")]
    assert util.imports == ["clamp", "wrap"]
    assert util.is_type_only is False
    assert edges[("src/app.ts", "src/types.ts")].is_type_only is True


def test_value_import_clears_type_only_flag():
    modules = [
        _mod("a.ts", _imp("./b", "T", type_only=True), _imp("./b", "make")),
        _mod("b.ts"),
    ]
    edge = build_dependency_graph(modules).edges[0]
    assert edge.imports == ["T", "make"]
    assert edge.is_type_only is False


def test_self_import_is_ignored():
    graph = build_dependency_graph([_mod("a.ts", _imp("./a"))])
    assert graph.edges == []


def _chain():
    # d -> c -> b -> a, e -> a
    return DependencyGraph(
        nodes=["a", "b", "c", "d", "e"],
        edges=[
            DependencyEdge(source="b", target="a"),
            DependencyEdge(source="c", target="b"),
            DependencyEdge(source="d", target="c"),
            DependencyEdge(source="e", target="a"),
        ],
    )


def test_impacted_modules_depth():
    graph = _chain()
    assert impacted_modules(graph, ["a"]) == ["b", "c", "d", "e"]
    assert impacted_modules(graph, ["a"], depth=1) == ["b", "e"]
    assert impacted_modules(graph, ["a"], depth=2) == ["b", "c", "e"]
    assert impacted_modules(graph, ["a"], depth=0) == []


def test_changed_modules_are_not_reported_as_impacted():
    assert impacted_modules(_chain(), ["a", "b"]) == ["c", "d", "e"]
    assert impacted_modules(_chain(), ["unknown.ts"]) == []


def test_import_cycles():
    graph = DependencyGraph(
        nodes=["a", "b", "c", "x", "y"],
        edges=[
            DependencyEdge(source="a", target="b"),
            DependencyEdge(source="b", target="c"),
            DependencyEdge(source="c", target="a"),
            DependencyEdge(source="x", target="y"),
            DependencyEdge(source="y", target="x"),
        ],
    )
    assert import_cycles(graph) == [["a", "b", "c"], ["x", "y"]]
    assert import_cycles(_chain()) == []
