# codemate/tools/base.py
"""
Common shape of every tool the model can call.

A tool declares its parameter schema; ``validate_params`` checks a call
against it before anything runs, and ``execute`` turns whatever ``run``
raises into a failed ToolResult so the chat loop never sees an exception.
"""
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

from loguru import logger

from ..database import RedisStorage
from ..errors import ConfirmationDeclined, FileOperationError, ParamValidationError, ParseError
from ..models import ConfirmationResult, DiffInfo, FileAST, ToolResult, now_ms
from ..path_utils import PathValidator
from ..source_extraction import estimate_tokens, read_file_lines

if TYPE_CHECKING:
    from ..indexer import Indexer

ToolCategory = Literal["read", "edit", "search", "analysis", "git", "run"]
ParamType = Literal["string", "integer", "number", "boolean", "array", "object"]

ConfirmCallback = Callable[[str, DiffInfo | None], Awaitable[bool | ConfirmationResult]]
ProgressCallback = Callable[[str], None]
FileLoadedCallback = Callable[[str, int], None]


@dataclass
class ToolParameter:
    name: str
    type: ParamType
    description: str
    required: bool = False
    default: Any = None
    enum: list[str] | None = None
    minimum: int | None = None
    allow_empty: bool = False

    def to_dict(self) -> dict:
        data = {"name": self.name, "type": self.type, "description": self.description, "required": self.required}
        if self.default is not None:
            data["default"] = self.default
        if self.enum:
            data["enum"] = list(self.enum)
        return data


async def _deny(message: str, diff: DiffInfo | None = None) -> bool:
    return False


@dataclass
class ToolContext:
    project_root: Path
    storage: RedisStorage
    confirm: ConfirmCallback = _deny
    indexer: "Indexer | None" = None
    on_progress: ProgressCallback | None = None
    on_file_loaded: FileLoadedCallback | None = None
    paths: PathValidator = field(init=False)

    def __post_init__(self):
        self.project_root = Path(self.project_root).resolve()
        self.paths = PathValidator(self.project_root)

    def progress(self, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(message)

    def file_loaded(self, rel_path: str, content: str) -> None:
        """Report file content handed to the model, for context accounting."""
        if self.on_file_loaded is not None:
            self.on_file_loaded(rel_path, estimate_tokens(content))

    async def require_confirmation(self, message: str, diff: DiffInfo | None = None,
                                   declined: str = "Cancelled by user") -> list[str] | None:
        """
        Ask before mutating. Returns the lines the user edited in place of
        ``diff.new_lines``, or None when the change was approved as shown.
        """
        answer = ConfirmationResult.of(await self.confirm(message, diff))
        if not answer.confirmed:
            raise ConfirmationDeclined(declined)
        return answer.edited_content


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}

_TYPE_NAMES = {
    "string": "a string", "integer": "an integer", "number": "a number",
    "boolean": "a boolean", "array": "an array", "object": "an object",
}


class BaseTool:
    name: str = ""
    description: str = ""
    parameters: list[ToolParameter] = []
    requires_confirmation: bool = False
    category: ToolCategory = "read"

    # ==========================================
    # parameters
    # ==========================================

    def normalize_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Undo over-eager coercion by the response parser for string parameters
        (``<param name="filter">42</param>`` arrives as an int) and fill defaults.
        """
        normalized = dict(params)
        for p in self.parameters:
            value = normalized.get(p.name)
            if value is None:
                if p.default is not None:
                    normalized[p.name] = p.default
                continue
            if p.type != "string" or isinstance(value, str):
                continue
            if isinstance(value, bool):
                normalized[p.name] = "true" if value else "false"
            elif isinstance(value, (int, float)):
                normalized[p.name] = str(value)
            elif isinstance(value, (list, dict)):
                normalized[p.name] = json.dumps(value, ensure_ascii=False)
        return normalized

    def validate_params(self, params: dict[str, Any]) -> str | None:
        """None when the call is valid, otherwise a message for the model."""
        for p in self.parameters:
            value = params.get(p.name)
            if value is None:
                if p.required:
                    return f"Parameter '{p.name}' is required"
                continue
            if not _TYPE_CHECKS[p.type](value):
                return f"Parameter '{p.name}' must be {_TYPE_NAMES[p.type]}"
            if p.type == "string" and p.required and not p.allow_empty and not value.strip():
                return f"Parameter '{p.name}' cannot be empty"
            if p.enum and value not in p.enum:
                return f"Parameter '{p.name}' must be one of: {', '.join(p.enum)}"
            if p.minimum is not None and value < p.minimum:
                return f"Parameter '{p.name}' must be >= {p.minimum}"
        return self.check_params(params)

    def check_params(self, params: dict[str, Any]) -> str | None:
        """Cross-parameter checks a schema cannot express."""
        return None

    def ensure_valid(self, params: dict[str, Any]) -> None:
        error = self.validate_params(params)
        if error:
            raise ParamValidationError(error)

    # ==========================================
    # execution
    # ==========================================

    async def run(self, params: dict[str, Any], ctx: ToolContext) -> Any:
        raise NotImplementedError

    async def execute(self, params: dict[str, Any], ctx: ToolContext, call_id: str | None = None) -> ToolResult:
        call_id = call_id or f"{self.name}-{now_ms()}"
        started = time.perf_counter()
        try:
            data = await self.run(params, ctx)
        except ConfirmationDeclined as e:
            logger.info(f"🙅 {self.name} declined: {e}")
            return ToolResult.fail(call_id, str(e), _elapsed_ms(started))
        except Exception as e:
            logger.warning(f"⚠️ Tool {self.name} failed: {e}")
            return ToolResult.fail(call_id, str(e) or type(e).__name__, _elapsed_ms(started))
        return ToolResult.ok(call_id, data, _elapsed_ms(started))

    def schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "requires_confirmation": self.requires_confirmation,
            "parameters": [p.to_dict() for p in self.parameters],
        }


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def load_lines(ctx: ToolContext, absolute: Path, rel_path: str) -> list[str]:
    """Indexed lines when the file is indexed, otherwise read from disk."""
    stored = await ctx.storage.get_file(rel_path)
    if stored is not None:
        return stored.lines
    if not absolute.is_file():
        raise FileOperationError(f"File not found: {rel_path}")
    return read_file_lines(absolute)


async def load_ast(ctx: ToolContext, rel_path: str) -> FileAST:
    ast = await ctx.storage.get_ast(rel_path)
    if ast is None:
        raise FileOperationError(f"File is not indexed: {rel_path}")
    if ast.parse_error:
        raise ParseError(ast.parse_error_message or "Syntax error", file_path=rel_path)
    return ast


def under_path(paths: list[str], prefix: str) -> list[str]:
    """Indexed paths equal to ``prefix`` or inside it; everything when the prefix is the root."""
    if not prefix:
        return list(paths)
    return [p for p in paths if p == prefix or p.startswith(f"{prefix}/")]
