# codemate/meta_analyzer.py
"""
Per-file metadata: complexity, direct and transitive dependencies, hub /
entry-point classification and impact score.

Dependents are a project-wide relation, so every entry point here takes the
whole AST set (or a DepsGraph already built from it).
"""
from collections import deque
from pathlib import PurePosixPath

from .graph_builder import IndexBuilder
from .language_specs import language_for_path
from .models import (
    ComplexityMetrics, DepsGraph, FileAST, FileMeta, calculate_impact_score, is_hub_file,
)

LOC_CAP = 500
NESTING_CAP = 6
CYCLOMATIC_CAP = 30
WEIGHTS = (0.30, 0.35, 0.35)  # loc, nesting, cyclomatic

TEST_DIR_SEGMENTS = ("tests", "test", "__tests__")
CONFIG_PATTERNS = (
    "config", "tsconfig", "eslint", "prettier", "vitest", "jest", "babel", "webpack",
    "vite", "rollup", "setup.cfg", "pyproject", "conftest", "settings",
)
ENTRY_STEMS = ("index", "main", "app", "cli", "server")
ENTRY_BASENAMES = ("__main__.py", "manage.py", "wsgi.py", "asgi.py")


def count_lines_of_code(lines: list[str], kind: str | None) -> int:
    """Non-blank, non-comment lines."""
    loc = 0
    block_end: str | None = None

    for raw in lines:
        line = raw.strip()

        if block_end is not None:
            if block_end in line:
                block_end = None
            continue

        if not line:
            continue

        if kind == "python":
            if line.startswith("#"):
                continue
            for delim in ('"""', "'''"):
                if line.startswith(delim):
                    if line.count(delim) < 2:
                        block_end = delim
                    break
            else:
                loc += 1
            continue

        if kind in ("typescript", "tsx", "javascript"):
            if line.startswith("//"):
                continue
            if line.startswith("/*"):
                if "*/" not in line:
                    block_end = "*/"
                    continue
                after = line[line.index("*/") + 2:].strip()
                if after and not after.startswith("//"):
                    loc += 1
                continue
            loc += 1
            continue

        if kind == "yaml" and line.startswith("#"):
            continue
        loc += 1

    return loc


def complexity_score(loc: int, nesting: int, cyclomatic: int) -> int:
    """Weighted 0..100 blend; each input is normalised against its cap first."""
    loc_score = min(100.0, loc / LOC_CAP * 100)
    nesting_score = min(100.0, nesting / NESTING_CAP * 100)
    cyclomatic_score = min(100.0, cyclomatic / CYCLOMATIC_CAP * 100)
    w_loc, w_nesting, w_cyclomatic = WEIGHTS
    score = loc_score * w_loc + nesting_score * w_nesting + cyclomatic_score * w_cyclomatic
    return int(min(100.0, score) + 0.5)


def classify_file_type(path: str) -> str:
    p = PurePosixPath(path.lower())
    basename = p.name
    dirs = p.parts[:-1]

    if (
        ".test." in basename or ".spec." in basename
        or basename.startswith("test_") or basename.endswith("_test.py")
        or any(d in TEST_DIR_SEGMENTS for d in dirs)
    ):
        return "test"

    if (
        basename.endswith(".d.ts") or basename.endswith(".pyi")
        or "types" in dirs or basename in ("types.ts", "types.py")
    ):
        return "types"

    if any(pattern in basename for pattern in CONFIG_PATTERNS):
        return "config"

    if language_for_path(path) is not None:
        return "source"
    return "unknown"


def is_entry_point(path: str, dependent_count: int) -> bool:
    if dependent_count == 0:
        return True
    p = PurePosixPath(path)
    if p.name in ENTRY_BASENAMES:
        return True
    if p.name == "__init__.py" and len(p.parts) == 1:
        return True
    return p.stem in ENTRY_STEMS


def reachable_count(graph: dict[str, list[str]], start: str) -> int:
    """Nodes reachable from ``start`` (excluding itself). BFS with a visited set; safe on cycles."""
    visited = {start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        for nxt in graph.get(node, []):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return len(visited) - 1


class MetaAnalyzer:
    def __init__(self, index_builder: IndexBuilder | None = None):
        self.index_builder = index_builder or IndexBuilder()

    def compute_complexity(self, path: str, ast: FileAST, lines: list[str]) -> ComplexityMetrics:
        loc = count_lines_of_code(lines, language_for_path(path))
        if ast.parse_error:
            return ComplexityMetrics(loc=loc, nesting=0, cyclomatic_complexity=1,
                                     score=complexity_score(loc, 0, 1))

        nesting = 0
        decisions = 0
        for func in ast.functions:
            nesting = max(nesting, func.nesting)
            decisions += func.decisions
        for cls in ast.classes:
            nesting = max(nesting, 1)
            for method in cls.methods:
                nesting = max(nesting, method.nesting)
                decisions += method.decisions

        cyclomatic = 1 + decisions
        return ComplexityMetrics(
            loc=loc,
            nesting=nesting,
            cyclomatic_complexity=cyclomatic,
            score=complexity_score(loc, nesting, cyclomatic),
        )

    def analyze_with_graph(self, path: str, ast: FileAST, lines: list[str], graph: DepsGraph) -> FileMeta:
        dependencies = list(graph.imports.get(path, []))
        dependents = list(graph.imported_by.get(path, []))
        total_files = len(graph.imports)

        return FileMeta(
            complexity=self.compute_complexity(path, ast, lines),
            dependencies=dependencies,
            dependents=dependents,
            is_hub=is_hub_file(len(dependents)),
            is_entry_point=is_entry_point(path, len(dependents)),
            file_type=classify_file_type(path),
            impact_score=calculate_impact_score(len(dependents), total_files),
            transitive_dep_count=reachable_count(graph.imports, path),
            transitive_dep_by_count=reachable_count(graph.imported_by, path),
        )

    def analyze_file(self, path: str, ast: FileAST, lines: list[str], all_asts: dict[str, FileAST]) -> FileMeta:
        """Metadata for one file; ``all_asts`` must include ``path`` itself."""
        graph = self.index_builder.build_deps_graph({**all_asts, path: ast})
        return self.analyze_with_graph(path, ast, lines, graph)

    def analyze_all(
        self, asts: dict[str, FileAST], lines_by_path: dict[str, list[str]], graph: DepsGraph | None = None
    ) -> dict[str, FileMeta]:
        graph = graph or self.index_builder.build_deps_graph(asts)
        return {
            path: self.analyze_with_graph(path, ast, lines_by_path.get(path, []), graph)
            for path, ast in asts.items()
        }
