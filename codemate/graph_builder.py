# codemate/graph_builder.py
"""
Project-wide indexes: symbol index + dependency graph.
"""
import re
from collections import defaultdict

from .import_resolver import ImportResolver
from .models import DepsGraph, FileAST, SymbolIndex, SymbolLocation


class IndexBuilder:
    def build_symbol_index(self, asts: dict[str, FileAST]) -> SymbolIndex:
        """name -> declaration sites. Methods are indexed as ``Class.method``."""
        index: dict[str, list[SymbolLocation]] = defaultdict(list)

        for path, ast in asts.items():
            if ast.parse_error:
                continue
            for func in ast.functions:
                self._add_symbol(index, func.name, SymbolLocation(path, func.line_start, "function"))
            for cls in ast.classes:
                self._add_symbol(index, cls.name, SymbolLocation(path, cls.line_start, "class"))
                for method in cls.methods:
                    self._add_symbol(
                        index, f"{cls.name}.{method.name}", SymbolLocation(path, method.line_start, "function")
                    )
            for iface in ast.interfaces:
                self._add_symbol(index, iface.name, SymbolLocation(path, iface.line_start, "interface"))
            for alias in ast.type_aliases:
                self._add_symbol(index, alias.name, SymbolLocation(path, alias.line, "type"))

            function_names = {f.name for f in ast.functions}
            for exp in ast.exports:
                if exp.kind == "variable" and exp.name not in function_names:
                    self._add_symbol(index, exp.name, SymbolLocation(path, exp.line, "variable"))

        return dict(index)

    @staticmethod
    def _add_symbol(index: dict[str, list[SymbolLocation]], name: str, location: SymbolLocation):
        if not name:
            return
        existing = index[name]
        if any(loc.path == location.path and loc.line == location.line for loc in existing):
            return
        existing.append(location)

    def build_deps_graph(self, asts: dict[str, FileAST]) -> DepsGraph:
        """imports and its exact inverse, both with sorted value lists."""
        resolver = ImportResolver(asts.keys())
        imports: dict[str, list[str]] = {}
        imported_by: dict[str, set[str]] = {path: set() for path in asts}

        for path, ast in asts.items():
            deps = resolver.resolve_all(path, ast)
            imports[path] = deps
            for dep in deps:
                imported_by[dep].add(path)

        return DepsGraph(
            imports=imports,
            imported_by={path: sorted(users) for path, users in imported_by.items()},
        )

    # ==========================================
    # queries over built indexes
    # ==========================================

    @staticmethod
    def search_symbols(index: SymbolIndex, pattern: str) -> dict[str, list[SymbolLocation]]:
        """Symbols whose name matches ``pattern`` (regex, case-insensitive); bad regex matches literally."""
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error:
            regex = re.compile(re.escape(pattern), re.IGNORECASE)
        return {name: list(locs) for name, locs in index.items() if regex.search(name)}

    @staticmethod
    def find_cycles(graph: DepsGraph) -> list[list[str]]:
        """
        Import cycles found by one DFS over the graph, each rotated to start at its
        smallest path. Nodes are visited once, so every strongly connected tangle
        yields at least one representative cycle rather than all elementary cycles.
        Explicit-stack DFS so deep graphs never hit the recursion limit.
        """
        seen: set[tuple[str, ...]] = set()
        cycles: list[list[str]] = []
        visited: set[str] = set()

        for start in sorted(graph.imports):
            if start in visited:
                continue
            on_path: dict[str, int] = {}
            path: list[str] = []
            stack = [(start, iter(graph.imports.get(start, [])))]
            on_path[start] = 0
            path.append(start)

            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    path.pop()
                    del on_path[node]
                    visited.add(node)
                    continue
                if child in on_path:
                    cycle = path[on_path[child]:]
                    pivot = cycle.index(min(cycle))
                    normalized = tuple(cycle[pivot:] + cycle[:pivot])
                    if normalized not in seen:
                        seen.add(normalized)
                        cycles.append(list(normalized))
                elif child not in visited:
                    on_path[child] = len(path)
                    path.append(child)
                    stack.append((child, iter(graph.imports.get(child, []))))

        return sorted(cycles)

    @staticmethod
    def get_stats(index: SymbolIndex, graph: DepsGraph, hub_threshold: int = 5) -> dict:
        by_type: dict[str, int] = defaultdict(int)
        for locations in index.values():
            for loc in locations:
                by_type[loc.type] += 1

        dep_counts = [len(deps) for deps in graph.imports.values()]
        return {
            "total_symbols": sum(by_type.values()),
            "symbols_by_type": dict(by_type),
            "total_files": len(graph.imports),
            "hubs": sorted(p for p, users in graph.imported_by.items() if len(users) > hub_threshold),
            "orphans": sorted(
                p for p in graph.imports
                if not graph.imports.get(p) and not graph.imported_by.get(p)
            ),
            "avg_dependencies": round(sum(dep_counts) / len(dep_counts), 2) if dep_counts else 0,
        }
