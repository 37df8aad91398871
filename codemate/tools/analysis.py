# codemate/tools/analysis.py
import re
from collections import Counter

from ..errors import FileOperationError
from ..models import FileMeta
from .base import BaseTool, ToolContext, ToolParameter, under_path

HIGH_COMPLEXITY = 60
MEDIUM_COMPLEXITY = 30
DEFAULT_COMPLEXITY_LIMIT = 20

TODO_MARKERS = ["TODO", "FIXME", "HACK", "XXX", "BUG", "NOTE"]
TODO_RE = re.compile(
    rf"(?://|/\*|\*|#)\s*({'|'.join(TODO_MARKERS)})(?:\([^)]*\))?:?\s*(.*)",
    re.IGNORECASE,
)


def _meta_summary(path: str, meta: FileMeta | None) -> dict:
    if meta is None:
        return {"path": path, "indexed": False}
    return {
        "path": path,
        "indexed": True,
        "file_type": meta.file_type,
        "is_hub": meta.is_hub,
        "is_entry_point": meta.is_entry_point,
        "complexity": meta.complexity.score,
        "impact_score": meta.impact_score,
    }


async def _require_meta(ctx: ToolContext, path: str) -> tuple[str, FileMeta, dict[str, FileMeta]]:
    _, rel_path = ctx.paths.resolve(path)
    metas = await ctx.storage.get_all_metas()
    if rel_path not in metas:
        raise FileOperationError(f"File is not indexed: {rel_path}")
    return rel_path, metas[rel_path], metas


class GetDependenciesTool(BaseTool):
    name = "get_dependencies"
    description = "List the project files a file imports, with their metadata."
    parameters = [ToolParameter("path", "string", "File path relative to project root", required=True)]
    category = "analysis"

    async def run(self, params, ctx: ToolContext):
        rel_path, meta, metas = await _require_meta(ctx, params["path"])
        return {
            "file": rel_path,
            "total_dependencies": len(meta.dependencies),
            "dependencies": [_meta_summary(p, metas.get(p)) for p in meta.dependencies],
        }


class GetDependentsTool(BaseTool):
    name = "get_dependents"
    description = "List the project files that import a file, with their metadata. Shows whether the file is a hub."
    parameters = [ToolParameter("path", "string", "File path relative to project root", required=True)]
    category = "analysis"

    async def run(self, params, ctx: ToolContext):
        rel_path, meta, metas = await _require_meta(ctx, params["path"])
        return {
            "file": rel_path,
            "is_hub": meta.is_hub,
            "impact_score": meta.impact_score,
            "total_dependents": len(meta.dependents),
            "dependents": [_meta_summary(p, metas.get(p)) for p in meta.dependents],
        }


def complexity_level(score: int) -> str:
    if score >= HIGH_COMPLEXITY:
        return "high"
    if score >= MEDIUM_COMPLEXITY:
        return "medium"
    return "low"


class GetComplexityTool(BaseTool):
    name = "get_complexity"
    description = (
        "Complexity metrics (LOC, nesting, cyclomatic complexity, score) for files, "
        "most complex first. Without path the whole project is ranked."
    )
    parameters = [
        ToolParameter("path", "string", "File or directory to analyze (default: whole project)"),
        ToolParameter("limit", "integer", "Maximum number of files to return",
                      default=DEFAULT_COMPLEXITY_LIMIT, minimum=1),
    ]
    category = "analysis"

    async def run(self, params, ctx: ToolContext):
        prefix = ctx.paths.resolve(params["path"])[1] if params.get("path") else ""
        metas = await ctx.storage.get_all_metas()
        selected = under_path(list(metas), prefix)
        if prefix and not selected:
            raise FileOperationError(f"No files found at path: {prefix}")

        entries = sorted(
            ({"path": p, **vars(metas[p].complexity), "file_type": metas[p].file_type, "is_hub": metas[p].is_hub}
             for p in selected),
            key=lambda e: (-e["score"], e["path"]),
        )
        levels = Counter(complexity_level(e["score"]) for e in entries)
        average = round(sum(e["score"] for e in entries) / len(entries), 2) if entries else 0

        return {
            "analyzed_path": prefix or None,
            "total_files": len(entries),
            "average_score": average,
            "files": entries[:params.get("limit") or DEFAULT_COMPLEXITY_LIMIT],
            "summary": {
                "high_complexity": levels["high"],
                "medium_complexity": levels["medium"],
                "low_complexity": levels["low"],
            },
        }


def find_todos(path: str, lines: list[str], marker: str | None = None) -> list[dict]:
    todos = []
    for number, line in enumerate(lines, start=1):
        match = TODO_RE.search(line)
        if not match:
            continue
        kind = match.group(1).upper()
        if marker and kind != marker:
            continue
        todos.append({
            "path": path,
            "line": number,
            "type": kind,
            "text": match.group(2).strip().rstrip("*/").strip() or "(no description)",
            "context": line.strip(),
        })
    return todos


class GetTodosTool(BaseTool):
    name = "get_todos"
    description = "Find TODO, FIXME, HACK, XXX, BUG and NOTE comments in the indexed files."
    parameters = [
        ToolParameter("path", "string", "File or directory to search (default: whole project)"),
        ToolParameter("type", "string", "Only this marker", enum=TODO_MARKERS),
    ]
    category = "analysis"

    def normalize_params(self, params):
        normalized = super().normalize_params(params)
        if isinstance(normalized.get("type"), str):
            normalized["type"] = normalized["type"].upper()
        return normalized

    async def run(self, params, ctx: ToolContext):
        prefix = ctx.paths.resolve(params["path"])[1] if params.get("path") else ""
        files = await ctx.storage.get_all_files()
        selected = sorted(under_path(list(files), prefix))
        if prefix and not selected:
            raise FileOperationError(f"No files found at path: {prefix}")

        todos = []
        for path in selected:
            todos += find_todos(path, files[path].lines, params.get("type"))

        return {
            "searched_path": prefix or None,
            "total_todos": len(todos),
            "files_with_todos": len({t["path"] for t in todos}),
            "by_type": dict(Counter(t["type"] for t in todos)),
            "todos": todos,
        }
