# codemate/tools/read.py
import os
from pathlib import Path

from ..errors import FileOperationError
from ..models import ClassInfo, FileAST, FunctionInfo, MethodInfo
from ..path_utils import IGNORE_DIRS, IGNORE_FILES
from ..source_extraction import clamp_range, number_lines
from .base import BaseTool, ToolContext, ToolParameter, load_ast, load_lines

PATH_PARAM = ToolParameter("path", "string", "File path relative to project root", required=True)

STRUCTURE_IGNORE = IGNORE_DIRS | IGNORE_FILES | {".git", ".nyc_output"}


def _numbered_slice(lines: list[str], start: int, end: int) -> str:
    return number_lines(lines[start - 1:end], first_line=start, total=end)


class GetLinesTool(BaseTool):
    name = "get_lines"
    description = (
        "Read lines of a file with line numbers. Without start/end the whole file is returned; "
        "out-of-range values are clamped to the file."
    )
    parameters = [
        PATH_PARAM,
        ToolParameter("start", "integer", "First line (1-based, inclusive)", minimum=1),
        ToolParameter("end", "integer", "Last line (1-based, inclusive)", minimum=1),
    ]
    category = "read"

    def check_params(self, params):
        start, end = params.get("start"), params.get("end")
        if start is not None and end is not None and start > end:
            return "Parameter 'start' must be <= 'end'"
        return None

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params["path"])
        lines = await load_lines(ctx, absolute, rel_path)
        total = len(lines)
        start, end = clamp_range(total, params.get("start"), params.get("end"))
        if total and start > total:
            raise FileOperationError(f"Start line {start} exceeds file length ({total} lines)")

        content = _numbered_slice(lines, start, end) if total else ""
        ctx.file_loaded(rel_path, content)
        return {
            "path": rel_path,
            "start_line": start,
            "end_line": end,
            "total_lines": total,
            "content": content,
        }


def _find_function(ast: FileAST, name: str) -> tuple[FunctionInfo | MethodInfo, str | None] | None:
    for fn in ast.functions:
        if fn.name == name:
            return fn, None
    class_name, _, method_name = name.rpartition(".")
    candidates = [c for c in ast.classes if not class_name or c.name == class_name]
    for cls in candidates:
        for method in cls.methods:
            if method.name == method_name:
                return method, cls.name
    return None


def _available_functions(ast: FileAST) -> str:
    names = [f.name for f in ast.functions]
    names += [f"{c.name}.{m.name}" for c in ast.classes for m in c.methods]
    return ", ".join(names) or "none"


class GetFunctionTool(BaseTool):
    name = "get_function"
    description = (
        "Get the source of a function by name, with line numbers. "
        "Methods can be addressed as ClassName.method."
    )
    parameters = [
        PATH_PARAM,
        ToolParameter("name", "string", "Function name, or ClassName.method", required=True),
    ]
    category = "read"

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params["path"])
        ast = await load_ast(ctx, rel_path)
        found = _find_function(ast, params["name"])
        if found is None:
            raise FileOperationError(
                f"Function '{params['name']}' not found in {rel_path}. Available: {_available_functions(ast)}"
            )
        fn, owner = found
        lines = await load_lines(ctx, absolute, rel_path)
        start, end = clamp_range(len(lines), fn.line_start, fn.line_end)
        content = _numbered_slice(lines, start, end)
        ctx.file_loaded(rel_path, content)

        return {
            "path": rel_path,
            "name": fn.name,
            "class": owner,
            "start_line": start,
            "end_line": end,
            "is_async": fn.is_async,
            "params": [p.name for p in fn.params],
            "content": content,
        }


def _class_summary(cls: ClassInfo) -> dict:
    return {
        "extends": cls.extends,
        "implements": list(cls.implements),
        "is_abstract": cls.is_abstract,
        "methods": [
            {"name": m.name, "lines": [m.line_start, m.line_end], "visibility": m.visibility,
             "is_static": m.is_static, "is_async": m.is_async}
            for m in cls.methods
        ],
        "properties": [
            {"name": p.name, "line": p.line, "type": p.type, "visibility": p.visibility,
             "is_static": p.is_static, "is_readonly": p.is_readonly}
            for p in cls.properties
        ],
    }


class GetClassTool(BaseTool):
    name = "get_class"
    description = "Get the source of a class with a summary of its methods and properties."
    parameters = [PATH_PARAM, ToolParameter("name", "string", "Class name", required=True)]
    category = "read"

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params["path"])
        ast = await load_ast(ctx, rel_path)
        cls = next((c for c in ast.classes if c.name == params["name"]), None)
        if cls is None:
            available = ", ".join(c.name for c in ast.classes) or "none"
            raise FileOperationError(f"Class '{params['name']}' not found in {rel_path}. Available: {available}")

        lines = await load_lines(ctx, absolute, rel_path)
        start, end = clamp_range(len(lines), cls.line_start, cls.line_end)
        content = _numbered_slice(lines, start, end)
        ctx.file_loaded(rel_path, content)
        return {
            "path": rel_path,
            "name": cls.name,
            "start_line": start,
            "end_line": end,
            **_class_summary(cls),
            "content": content,
        }


# ==========================================
# project tree
# ==========================================

def _build_tree(directory: Path, max_depth: int | None, depth: int, stats: dict) -> dict:
    node = {"name": directory.name or str(directory), "type": "directory", "children": []}
    stats["directories"] += 1
    if max_depth is not None and depth >= max_depth:
        return node

    with os.scandir(directory) as it:
        entries = [e for e in it if e.name not in STRUCTURE_IGNORE]
    # directories first, then by name
    entries.sort(key=lambda e: (not e.is_dir(follow_symlinks=False), e.name.lower()))

    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            node["children"].append(_build_tree(Path(entry.path), max_depth, depth + 1, stats))
        elif entry.is_file(follow_symlinks=False):
            node["children"].append({"name": entry.name, "type": "file"})
            stats["files"] += 1
    return node


def format_tree(node: dict, prefix: str = "", is_last: bool = True) -> str:
    connector = "└── " if is_last else "├── "
    icon = "📁 " if node["type"] == "directory" else "📄 "
    lines = [f"{prefix}{connector}{icon}{node['name']}"]
    children = node.get("children") or []
    child_prefix = prefix + ("    " if is_last else "│   ")
    for i, child in enumerate(children):
        lines.append(format_tree(child, child_prefix, i == len(children) - 1))
    return "\n".join(lines)


class GetStructureTool(BaseTool):
    name = "get_structure"
    description = "Show the directory tree of the project or a sub-directory. Build output and VCS folders are hidden."
    parameters = [
        ToolParameter("path", "string", "Directory relative to project root (default: project root)"),
        ToolParameter("depth", "integer", "Maximum depth to descend", minimum=1),
    ]
    category = "read"

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params.get("path") or ".")
        if not absolute.is_dir():
            raise FileOperationError(f'Path "{rel_path}" is not a directory')

        stats = {"directories": 0, "files": 0}
        tree = _build_tree(absolute, params.get("depth"), 0, stats)
        return {"path": rel_path or ".", "content": format_tree(tree), "stats": stats}
