# codemate/tools/search.py
import difflib
import re

from ..source_extraction import number_lines
from .base import BaseTool, ToolContext, ToolParameter, under_path

CONTEXT_LINES = 2
MAX_SUGGESTIONS = 5


def symbol_pattern(symbol: str) -> re.Pattern:
    # identifiers may contain $ in JS/TS
    return re.compile(rf"(?<![\w$]){re.escape(symbol)}(?![\w$])")


def _context(lines: list[str], line: int) -> str:
    first = max(1, line - CONTEXT_LINES)
    last = min(len(lines), line + CONTEXT_LINES)
    return number_lines(lines[first - 1:last], first_line=first, total=last)


class FindReferencesTool(BaseTool):
    name = "find_references"
    description = (
        "Find every usage of a symbol across the indexed files (whole-word match). "
        "Definition sites are marked."
    )
    parameters = [
        ToolParameter("symbol", "string", "Symbol name to search for", required=True),
        ToolParameter("path", "string", "Limit the search to this file or directory"),
    ]
    category = "search"

    async def run(self, params, ctx: ToolContext):
        symbol = params["symbol"].strip()
        # "Class.method" is referenced as ".method" in code
        bare = symbol.rsplit(".", 1)[-1]
        prefix = ""
        if params.get("path"):
            _, prefix = ctx.paths.resolve(params["path"])

        files = await ctx.storage.get_all_files()
        index = await ctx.storage.get_symbol_index()
        definitions = {(loc.path, loc.line) for loc in index.get(symbol, [])}
        pattern = symbol_pattern(bare)

        references = []
        for path in sorted(under_path(list(files), prefix)):
            lines = files[path].lines
            for number, text in enumerate(lines, start=1):
                for match in pattern.finditer(text):
                    references.append({
                        "path": path,
                        "line": number,
                        "column": match.start() + 1,
                        "context": text.strip(),
                        "is_definition": (path, number) in definitions,
                    })

        return {
            "symbol": symbol,
            "total_references": len(references),
            "total_files": len({r["path"] for r in references}),
            "references": references,
        }


class FindDefinitionTool(BaseTool):
    name = "find_definition"
    description = "Find where a symbol is declared, with surrounding lines. Suggests close names when nothing matches."
    parameters = [ToolParameter("symbol", "string", "Symbol name (ClassName.method for methods)", required=True)]
    category = "search"

    async def run(self, params, ctx: ToolContext):
        symbol = params["symbol"].strip()
        index = await ctx.storage.get_symbol_index()
        locations = index.get(symbol, [])
        if not locations:
            return {
                "symbol": symbol,
                "found": False,
                "definitions": [],
                "suggestions": difflib.get_close_matches(symbol, list(index), n=MAX_SUGGESTIONS, cutoff=0.6),
            }

        files = await ctx.storage.get_files(sorted({loc.path for loc in locations}))
        definitions = []
        for loc in locations:
            data = files.get(loc.path)
            definitions.append({
                "path": loc.path,
                "line": loc.line,
                "type": loc.type,
                "context": _context(data.lines, loc.line) if data else "",
            })
        return {"symbol": symbol, "found": True, "definitions": definitions, "suggestions": []}
