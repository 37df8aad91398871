import pytest

from codemate.graph_builder import IndexBuilder
from codemate.import_resolver import ImportResolver
from codemate.meta_analyzer import (
    MetaAnalyzer, classify_file_type, complexity_score, count_lines_of_code, is_entry_point, reachable_count,
)
from codemate.models import (
    ClassInfo, DepsGraph, ExportInfo, FileAST, FunctionInfo, ImportInfo, MethodInfo,
)


def _imports(*sources: str) -> FileAST:
    return FileAST(imports=[ImportInfo(name="x", source=s, line=i, type="external") for i, s in enumerate(sources, 1)])


@pytest.fixture
def builder():
    return IndexBuilder()


class TestImportResolver:
    def test_python_absolute_and_relative(self):
        resolver = ImportResolver(["pkg/__init__.py", "pkg/util.py", "pkg/sub/mod.py", "main.py"])

        absolute = ImportInfo(name="helper", source="pkg.util", line=1, type="external")
        assert resolver.resolve("main.py", absolute) == "pkg/util.py"

        submodule = ImportInfo(name="util", source="pkg", line=1, type="external")
        assert resolver.resolve("main.py", submodule) == "pkg/util.py"

        parent = ImportInfo(name="util", source="..", line=1, type="internal", level=2)
        assert resolver.resolve("pkg/sub/mod.py", parent) == "pkg/util.py"

        whole = ImportInfo(name="pkg", source="pkg", line=1, type="external", whole_module=True)
        assert resolver.resolve("main.py", whole) == "pkg/__init__.py"

    def test_src_layout(self):
        resolver = ImportResolver(["src/app/core.py"])
        imp = ImportInfo(name="run", source="app.core", line=1, type="external")
        assert resolver.resolve("src/app/cli.py", imp) == "src/app/core.py"

    def test_script_specifiers(self):
        resolver = ImportResolver(["src/a.ts", "src/lib/index.ts", "src/b.tsx"])
        assert resolver.resolve("src/main.ts", ImportInfo("a", "./a", 1, "internal")) == "src/a.ts"
        assert resolver.resolve("src/main.ts", ImportInfo("a", "./a.js", 1, "internal")) == "src/a.ts"
        assert resolver.resolve("src/main.ts", ImportInfo("lib", "./lib", 1, "internal")) == "src/lib/index.ts"
        assert resolver.resolve("src/main.ts", ImportInfo("B", "./b", 1, "internal")) == "src/b.tsx"
        assert resolver.resolve("src/main.ts", ImportInfo("react", "react", 1, "external")) is None
        assert resolver.resolve("main.ts", ImportInfo("x", "../outside", 1, "internal")) is None

    def test_builtins_and_self_imports_dropped(self):
        resolver = ImportResolver(["a.py", "os.py"])
        ast = FileAST(imports=[
            ImportInfo(name="path", source="os", line=1, type="builtin"),
            ImportInfo(name="a", source="a", line=2, type="external", whole_module=True),
        ])
        assert resolver.resolve_all("a.py", ast) == []


class TestDepsGraph:
    def test_inverse_is_exact(self, builder):
        asts = {"a.py": _imports("b"), "b.py": FileAST(), "c.py": _imports("b", "a")}
        graph = builder.build_deps_graph(asts)

        assert graph.imports == {"a.py": ["b.py"], "b.py": [], "c.py": ["a.py", "b.py"]}
        assert graph.imported_by == {"a.py": ["c.py"], "b.py": ["a.py", "c.py"], "c.py": []}
        for path, deps in graph.imports.items():
            for dep in deps:
                assert path in graph.imported_by[dep]

    def test_cycles_are_normalized(self, builder):
        graph = builder.build_deps_graph({"a.py": _imports("b"), "b.py": _imports("c"), "c.py": _imports("a")})
        assert builder.find_cycles(graph) == [["a.py", "b.py", "c.py"]]

    def test_overlapping_cycles_report_a_representative(self, builder):
        # a -> b -> c -> a and a -> c -> a share the edge c -> a
        graph = builder.build_deps_graph({"a.py": _imports("b", "c"), "b.py": _imports("c"), "c.py": _imports("a")})
        cycles = builder.find_cycles(graph)

        assert cycles
        for cycle in cycles:
            assert cycle[0] == min(cycle)
            for src, dst in zip(cycle, cycle[1:] + cycle[:1]):
                assert dst in graph.imports[src]

    def test_no_cycles(self, builder):
        graph = builder.build_deps_graph({"a.py": _imports("b"), "b.py": FileAST()})
        assert builder.find_cycles(graph) == []

    def test_stats(self, builder):
        asts = {"lonely.py": FileAST(), "a.py": _imports("b"), "b.py": FileAST()}
        graph = builder.build_deps_graph(asts)
        stats = builder.get_stats(builder.build_symbol_index(asts), graph)
        assert stats["orphans"] == ["lonely.py"]
        assert stats["total_files"] == 3
        assert stats["hubs"] == []
        assert stats["avg_dependencies"] == 0.33


class TestSymbolIndex:
    def test_functions_classes_methods_and_constants(self, builder):
        ast = FileAST(
            functions=[FunctionInfo(name="helper", line_start=1, line_end=3)],
            classes=[ClassInfo(name="Engine", line_start=5, line_end=9,
                               methods=[MethodInfo(name="start", line_start=6, line_end=7)])],
            exports=[ExportInfo(name="LIMIT", line=11, is_default=False, kind="variable")],
        )
        index = builder.build_symbol_index({"core.py": ast, "broken.py": FileAST.failed("Syntax error at line 1")})

        assert [(loc.path, loc.line, loc.type) for loc in index["helper"]] == [("core.py", 1, "function")]
        assert index["Engine"][0].type == "class"
        assert index["Engine.start"][0].line == 6
        assert index["LIMIT"][0].type == "variable"

    def test_search(self, builder):
        index = {"getUser": [], "get_user": [], "setUser": []}
        assert sorted(builder.search_symbols(index, "^get")) == ["getUser", "get_user"]
        assert builder.search_symbols(index, "[") == {}


class TestMeta:
    def test_complexity_score_bounds(self):
        assert complexity_score(0, 0, 1) == 1
        assert complexity_score(250, 3, 15) == 50
        assert complexity_score(5000, 20, 90) == 100

    def test_loc_ignores_comments_and_docstrings(self):
        lines = ['"""Module doc.', 'more doc', '"""', "", "# comment", "x = 1", "def f():", "    return x"]
        assert count_lines_of_code(lines, "python") == 3
        assert count_lines_of_code(["// c", "/* a", " b */", "const a = 1;"], "typescript") == 1

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("tests/test_core.py", "test"),
            ("src/app.spec.ts", "test"),
            ("src/types.ts", "types"),
            ("tsconfig.json", "config"),
            ("src/service.py", "source"),
            ("README.md", "unknown"),
        ],
    )
    def test_file_type(self, path, expected):
        assert classify_file_type(path) == expected

    def test_entry_points(self):
        assert is_entry_point("lib/util.py", 0)
        assert is_entry_point("src/main.py", 4)
        assert is_entry_point("pkg/__main__.py", 1)
        assert not is_entry_point("lib/util.py", 2)

    def test_reachable_count_survives_cycles(self):
        assert reachable_count({"a": ["b"], "b": ["c"], "c": ["a"]}, "a") == 2

    def test_analyze_with_graph(self):
        asts = {f"m{n}.py": _imports("hub") for n in range(6)}
        asts["hub.py"] = FileAST(functions=[FunctionInfo(name="f", line_start=1, line_end=2, nesting=2, decisions=3)])
        graph = IndexBuilder().build_deps_graph(asts)
        meta = MetaAnalyzer().analyze_with_graph("hub.py", asts["hub.py"], ["def f():", "    pass"], graph)

        assert len(meta.dependents) == 6
        assert meta.is_hub
        assert not meta.is_entry_point
        assert meta.impact_score == 100
        assert meta.transitive_dep_by_count == 6
        assert meta.complexity.cyclomatic_complexity == 4
        assert meta.complexity.nesting == 2

    def test_parse_error_file_gets_baseline_complexity(self):
        meta = MetaAnalyzer().analyze_with_graph(
            "bad.py", FileAST.failed("Syntax error at line 2"), ["x = (", ""], DepsGraph(imports={"bad.py": []})
        )
        assert meta.complexity.cyclomatic_complexity == 1
        assert meta.complexity.nesting == 0
