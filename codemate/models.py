# codemate/models.py
"""
Value objects shared by the indexer, the storage layer and the agent loop.

Everything here is a plain dataclass so it can be dumped with ``asdict`` and
stored as JSON; the ``from_dict`` constructors rebuild nested records.
"""
import json
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Literal

ImportType = Literal["internal", "external", "builtin"]
ExportKind = Literal["function", "class", "variable", "type", "interface"]
Visibility = Literal["public", "private", "protected"]
FileType = Literal["source", "test", "config", "types", "unknown"]
SymbolType = Literal["function", "class", "interface", "type", "variable"]
EntryType = Literal["file", "directory", "symlink"]
IndexPhase = Literal["scanning", "parsing", "analyzing", "indexing"]
MessageRole = Literal["user", "assistant", "tool", "system"]

HUB_THRESHOLD = 5
MAX_UNDO_STACK_SIZE = 10


def now_ms() -> int:
    return int(time.time() * 1000)


# ==========================================
# 1. Scanning / raw content
# ==========================================

@dataclass
class ScanResult:
    path: str  # relative to the project root, POSIX separators
    type: EntryType
    size: int
    last_modified: float
    symlink_target: str | None = None


@dataclass(eq=False)
class FileData:
    lines: list[str]
    hash: str
    size: int
    last_modified: float

    # identity is the content hash, nothing else
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileData):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FileData":
        return cls(
            lines=list(data.get("lines", [])),
            hash=data["hash"],
            size=data.get("size", 0),
            last_modified=data.get("last_modified", 0),
        )


# ==========================================
# 2. Parsed structure (FileAST)
# ==========================================

@dataclass
class ImportInfo:
    name: str
    source: str  # module specifier as written
    line: int
    type: ImportType
    is_default: bool = False
    level: int = 0  # python relative-import depth (from .. import x -> 2)
    whole_module: bool = False  # python `import a.b` (no name taken from the module)


@dataclass
class ExportInfo:
    name: str
    line: int
    is_default: bool
    kind: ExportKind


@dataclass
class ParameterInfo:
    name: str
    type: str | None = None
    optional: bool = False
    has_default: bool = False


@dataclass
class FunctionInfo:
    name: str
    line_start: int
    line_end: int
    params: list[ParameterInfo] = field(default_factory=list)
    is_async: bool = False
    is_exported: bool = False
    return_type: str | None = None
    nesting: int = 1
    decisions: int = 0


@dataclass
class MethodInfo:
    name: str
    line_start: int
    line_end: int
    params: list[ParameterInfo] = field(default_factory=list)
    is_async: bool = False
    visibility: Visibility = "public"
    is_static: bool = False
    nesting: int = 1
    decisions: int = 0


@dataclass
class PropertyInfo:
    name: str
    line: int
    type: str | None = None
    visibility: Visibility = "public"
    is_static: bool = False
    is_readonly: bool = False


@dataclass
class ClassInfo:
    name: str
    line_start: int
    line_end: int
    methods: list[MethodInfo] = field(default_factory=list)
    properties: list[PropertyInfo] = field(default_factory=list)
    extends: str | None = None
    implements: list[str] = field(default_factory=list)
    is_exported: bool = False
    is_abstract: bool = False


@dataclass
class InterfaceInfo:
    name: str
    line_start: int
    line_end: int
    properties: list[PropertyInfo] = field(default_factory=list)
    extends: list[str] = field(default_factory=list)
    is_exported: bool = False


@dataclass
class TypeAliasInfo:
    name: str
    line: int
    is_exported: bool = False


@dataclass
class FileAST:
    imports: list[ImportInfo] = field(default_factory=list)
    exports: list[ExportInfo] = field(default_factory=list)
    functions: list[FunctionInfo] = field(default_factory=list)
    classes: list[ClassInfo] = field(default_factory=list)
    interfaces: list[InterfaceInfo] = field(default_factory=list)
    type_aliases: list[TypeAliasInfo] = field(default_factory=list)
    parse_error: bool = False
    parse_error_message: str | None = None

    @classmethod
    def failed(cls, message: str) -> "FileAST":
        """An AST with an empty body that only records the failure."""
        return cls(parse_error=True, parse_error_message=message)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FileAST":
        def params(items):
            return [ParameterInfo(**p) for p in items or []]

        def props(items):
            return [PropertyInfo(**p) for p in items or []]

        return cls(
            imports=[ImportInfo(**i) for i in data.get("imports", [])],
            exports=[ExportInfo(**e) for e in data.get("exports", [])],
            functions=[
                FunctionInfo(**{**f, "params": params(f.get("params"))})
                for f in data.get("functions", [])
            ],
            classes=[
                ClassInfo(**{
                    **c,
                    "methods": [
                        MethodInfo(**{**m, "params": params(m.get("params"))})
                        for m in c.get("methods", [])
                    ],
                    "properties": props(c.get("properties")),
                })
                for c in data.get("classes", [])
            ],
            interfaces=[
                InterfaceInfo(**{**i, "properties": props(i.get("properties"))})
                for i in data.get("interfaces", [])
            ],
            type_aliases=[TypeAliasInfo(**t) for t in data.get("type_aliases", [])],
            parse_error=data.get("parse_error", False),
            parse_error_message=data.get("parse_error_message"),
        )


# ==========================================
# 3. Derived metadata (FileMeta)
# ==========================================

@dataclass
class ComplexityMetrics:
    loc: int = 0
    nesting: int = 0
    cyclomatic_complexity: int = 1
    score: int = 0


@dataclass
class FileMeta:
    complexity: ComplexityMetrics = field(default_factory=ComplexityMetrics)
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)
    is_hub: bool = False
    is_entry_point: bool = False
    file_type: FileType = "unknown"
    impact_score: int = 0
    transitive_dep_count: int = 0
    transitive_dep_by_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FileMeta":
        return cls(**{**data, "complexity": ComplexityMetrics(**data.get("complexity", {}))})


def is_hub_file(dependent_count: int) -> bool:
    return dependent_count > HUB_THRESHOLD


def calculate_impact_score(dependent_count: int, total_files: int) -> int:
    """Percentage of the rest of the codebase (total_files - 1) that depends on a file."""
    if total_files <= 1:
        return 0
    score = dependent_count / (total_files - 1) * 100
    # round half up; Python's round() is banker's rounding
    return int(min(100.0, score) + 0.5)


# ==========================================
# 4. Project-wide indexes
# ==========================================

@dataclass
class SymbolLocation:
    path: str
    line: int
    type: SymbolType


SymbolIndex = dict[str, list[SymbolLocation]]


def symbol_index_to_dict(index: SymbolIndex) -> dict:
    return {name: [asdict(loc) for loc in locations] for name, locations in index.items()}


def symbol_index_from_dict(data: dict) -> SymbolIndex:
    return {name: [SymbolLocation(**loc) for loc in locations] for name, locations in data.items()}


@dataclass
class DepsGraph:
    imports: dict[str, list[str]] = field(default_factory=dict)
    imported_by: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"imports": self.imports, "imported_by": self.imported_by}

    @classmethod
    def from_dict(cls, data: dict) -> "DepsGraph":
        return cls(
            imports={k: list(v) for k, v in data.get("imports", {}).items()},
            imported_by={k: list(v) for k, v in data.get("imported_by", {}).items()},
        )


# ==========================================
# 5. Tool calls, results, undo
# ==========================================

@dataclass
class ToolCall:
    id: str
    name: str
    params: dict[str, Any]
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    success: bool
    data: Any = None
    error: str | None = None
    execution_time_ms: int = 0

    @classmethod
    def ok(cls, call_id: str, data: Any, execution_time_ms: int) -> "ToolResult":
        return cls(call_id=call_id, success=True, data=data, execution_time_ms=execution_time_ms)

    @classmethod
    def fail(cls, call_id: str, error: str, execution_time_ms: int) -> "ToolResult":
        return cls(call_id=call_id, success=False, error=error, execution_time_ms=execution_time_ms)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ToolResult":
        return cls(**data)


@dataclass
class DiffInfo:
    file_path: str
    old_lines: list[str]
    new_lines: list[str]
    start_line: int


@dataclass
class ConfirmationResult:
    """A confirmation answer; ``edited_content`` replaces the proposed new lines when set."""
    confirmed: bool
    edited_content: list[str] | None = None

    @classmethod
    def of(cls, answer: "bool | ConfirmationResult") -> "ConfirmationResult":
        if isinstance(answer, ConfirmationResult):
            return answer
        return cls(confirmed=bool(answer))


@dataclass
class UndoEntry:
    id: str
    file_path: str
    previous_content: list[str]
    new_content: list[str]
    description: str
    tool_call_id: str | None = None
    timestamp: int = field(default_factory=now_ms)
    start_line: int = 1

    @classmethod
    def from_diff(cls, diff: DiffInfo, description: str, tool_call_id: str | None = None) -> "UndoEntry":
        return cls(
            id=str(uuid.uuid4()),
            file_path=diff.file_path,
            previous_content=list(diff.old_lines),
            new_content=list(diff.new_lines),
            description=description,
            tool_call_id=tool_call_id,
            start_line=diff.start_line,
        )

    @property
    def is_creation(self) -> bool:
        return not self.previous_content

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UndoEntry":
        return cls(**data)


def can_undo(entry: UndoEntry, current_content: list[str]) -> bool:
    """The edited range must still hold exactly what the edit produced."""
    if entry.is_creation:
        return list(entry.new_content) == list(current_content)
    start = entry.start_line - 1
    return list(current_content[start:start + len(entry.new_content)]) == list(entry.new_content)


def revert_lines(entry: UndoEntry, current_content: list[str]) -> list[str]:
    start = entry.start_line - 1
    end = start + len(entry.new_content)
    return [*current_content[:start], *entry.previous_content, *current_content[end:]]


# ==========================================
# 6. Chat history
# ==========================================

@dataclass
class MessageStats:
    tokens: int = 0
    time_ms: int = 0
    tool_calls: int = 0


@dataclass
class ChatMessage:
    role: MessageRole
    content: str
    timestamp: int = field(default_factory=now_ms)
    tool_calls: list[ToolCall] | None = None
    tool_results: list[ToolResult] | None = None
    stats: MessageStats | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            timestamp=data.get("timestamp", 0),
            tool_calls=[ToolCall(**c) for c in data["tool_calls"]] if data.get("tool_calls") else None,
            tool_results=(
                [ToolResult.from_dict(r) for r in data["tool_results"]]
                if data.get("tool_results") else None
            ),
            stats=MessageStats(**data["stats"]) if data.get("stats") else None,
        )


def user_message(content: str) -> ChatMessage:
    return ChatMessage(role="user", content=content)


def system_message(content: str) -> ChatMessage:
    return ChatMessage(role="system", content=content)


def assistant_message(
    content: str, tool_calls: list[ToolCall] | None = None, stats: MessageStats | None = None
) -> ChatMessage:
    return ChatMessage(role="assistant", content=content, tool_calls=tool_calls, stats=stats)


def tool_message(results: list[ToolResult]) -> ChatMessage:
    return ChatMessage(
        role="tool",
        content="\n\n".join(format_tool_result(r) for r in results),
        tool_results=list(results),
    )


def format_tool_result(result: ToolResult) -> str:
    if result.success:
        return f"[{result.call_id}] Success: {json.dumps(result.data, ensure_ascii=False, default=str)}"
    return f"[{result.call_id}] Error: {result.error or 'Unknown error'}"


# ==========================================
# 7. Indexing progress / stats
# ==========================================

@dataclass
class IndexProgress:
    current: int
    total: int
    current_file: str
    phase: IndexPhase


@dataclass
class IndexStats:
    files_scanned: int = 0
    files_parsed: int = 0
    parse_errors: int = 0
    time_ms: int = 0
