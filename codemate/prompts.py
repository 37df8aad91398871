# codemate/prompts.py
from pathlib import PurePosixPath

from .models import FileAST, FileMeta
from .source_extraction import CHARS_PER_TOKEN

# ===================================================================
# 🏭 System prompt
# ===================================================================

SYSTEM_PROMPT = """You are codemate, a local coding assistant working inside one project directory.
You do not see the whole codebase; fetch exactly what you need with tools.

### 🔧 TOOL CALL FORMAT
Call a tool with a tag carrying its name and one <param> per argument:

<tool_call name="get_lines">
  <param name="path">src/app.py</param>
  <param name="start">1</param>
  <param name="end">40</param>
</tool_call>

You may issue several calls in one response. Results come back in the next
message; wait for them before drawing conclusions.

### 🧠 WORKING RULES
1. **Read before editing**: use get_lines / get_function before edit_lines.
2. **Exact line numbers**: edits replace an inclusive 1-based line range.
3. **Small edits**: split large changes into several edit_lines calls.
4. **Stay inside the project**: never touch paths outside the root.
5. **Safety**: destructive actions are confirmed by the user; if one is declined, do not retry it.

### 🚫 STRICT RULES
- **No Hallucination**: if code is not in a tool result, say you have not seen it.
- **Citations**: cite file paths and line numbers (e.g. `app.py:10`).
"""

TOOL_REMINDER = (
    "Reminder: answer directly if you already have what you need; otherwise call tools "
    'with <tool_call name="..."> tags. Do not invent file contents.'
)

CONTINUE_PROMPT = (
    "Your previous response was cut off in the middle of a tool call. "
    "Continue and re-send the complete tool call."
)

COMPRESSION_PROMPT = """Summarize the following conversation history concisely, keeping:
- which files were discussed or modified
- what changes were made
- important decisions and open tasks
Keep the summary under 500 tokens."""

COMPLEX_SCORE_FLAG = 70


# ===================================================================
# 🧱 Context builders
# ===================================================================

def _file_summary(path: str, ast: FileAST, meta: FileMeta | None) -> str:
    parts = []
    if ast.functions:
        parts.append("fn: " + ", ".join(f.name for f in ast.functions))
    if ast.classes:
        parts.append("class: " + ", ".join(c.name for c in ast.classes))
    if ast.interfaces:
        parts.append("interface: " + ", ".join(i.name for i in ast.interfaces))
    if ast.type_aliases:
        parts.append("type: " + ", ".join(t.name for t in ast.type_aliases))
    summary = f" [{' | '.join(parts)}]" if parts else ""

    flags = []
    if ast.parse_error:
        flags.append("parse error")
    if meta is not None:
        if meta.is_hub:
            flags.append("hub")
        if meta.is_entry_point:
            flags.append("entry")
        if meta.complexity.score > COMPLEX_SCORE_FLAG:
            flags.append("complex")
    flag_text = f" ({', '.join(flags)})" if flags else ""
    return f"- {path}{summary}{flag_text}"


def build_project_context(
    name: str, root: str, asts: dict[str, FileAST], metas: dict[str, FileMeta] | None = None
) -> str:
    """Compact, code-free overview of the indexed project: header, directory tree, per-file symbols."""
    metas = metas or {}
    directories = sorted({str(PurePosixPath(p).parent) for p in asts} - {"."})

    lines = [f"# Project: {name}", f"Root: {root}", f"Files: {len(asts)} | Directories: {len(directories)}", ""]
    lines += ["## Structure", ""]
    for d in directories:
        depth = d.count("/")
        lines.append(f"{'  ' * depth}{PurePosixPath(d).name}/")
    lines += ["", "## Files", ""]
    for path in sorted(asts):
        lines.append(_file_summary(path, asts[path], metas.get(path)))
    return "\n".join(lines)


def build_file_context(path: str, ast: FileAST, meta: FileMeta | None = None) -> str:
    lines = [f"## {path}", ""]
    if ast.imports:
        lines.append("### Imports")
        lines += [f'- {i.name} from "{i.source}" ({i.type})' for i in ast.imports]
        lines.append("")
    if ast.exports:
        lines.append("### Exports")
        lines += [f"- {e.kind} {e.name}{' (default)' if e.is_default else ''}" for e in ast.exports]
        lines.append("")
    if ast.functions:
        lines.append("### Functions")
        for fn in ast.functions:
            params = ", ".join(p.name for p in fn.params)
            lines.append(f"- {'async ' if fn.is_async else ''}{fn.name}({params}) [{fn.line_start}-{fn.line_end}]")
        lines.append("")
    if ast.classes:
        lines.append("### Classes")
        for cls in ast.classes:
            ext = f" extends {cls.extends}" if cls.extends else ""
            impl = f" implements {', '.join(cls.implements)}" if cls.implements else ""
            lines.append(f"- {cls.name}{ext}{impl} [{cls.line_start}-{cls.line_end}]")
            for m in cls.methods:
                vis = "" if m.visibility == "public" else f"{m.visibility} "
                lines.append(f"  - {vis}{m.name}() [{m.line_start}-{m.line_end}]")
        lines.append("")
    if meta is not None:
        lines += [
            "### Metadata",
            f"- LOC: {meta.complexity.loc}",
            f"- Complexity: {meta.complexity.score}/100",
            f"- Dependencies: {len(meta.dependencies)}",
            f"- Dependents: {len(meta.dependents)}",
        ]
    return "\n".join(lines)


def build_tools_section(schemas: list[dict]) -> str:
    """Tool list for the system prompt, grouped by category."""
    by_category: dict[str, list[dict]] = {}
    for schema in schemas:
        by_category.setdefault(schema["category"], []).append(schema)

    lines = ["### 🧰 AVAILABLE TOOLS"]
    for category in sorted(by_category):
        lines.append(f"\n#### {category}")
        for schema in by_category[category]:
            params = ", ".join(
                p["name"] + ("" if p.get("required") else "?") for p in schema["parameters"]
            )
            confirm = " (requires confirmation)" if schema.get("requires_confirmation") else ""
            lines.append(f"- `{schema['name']}({params})`: {schema['description']}{confirm}")
    return "\n".join(lines)


def truncate_context(context: str, max_tokens: int) -> str:
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(context) <= max_chars:
        return context
    truncated = context[:max(0, max_chars - 100)]
    cut = truncated.rfind("\n")
    cut = cut if cut > 0 else len(truncated)
    return f"{truncated[:cut]}\n\n... (truncated, {len(context) - cut} chars remaining)"
