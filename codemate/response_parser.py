# codemate/response_parser.py
"""
Tool-call extraction from model output.

    <tool_call name="get_lines">
      <param name="path">src/app.py</param>
      <param name="start">10</param>
    </tool_call>

Element-style parameters (``<path>src/app.py</path>``) are accepted when a
call carries no ``<param>`` tags. A call that is opened but never closed is
reported through ``incomplete_tool_call`` and is not extracted.
"""
import itertools
import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any

from .models import ToolCall

TOOL_CALL_RE = re.compile(r'<tool_call\s+name\s*=\s*"([^"]+)"\s*>(.*?)</tool_call\s*>', re.DOTALL | re.IGNORECASE)
OPEN_TAG_RE = re.compile(r"<tool_call\b", re.IGNORECASE)
CLOSE_TAG_RE = re.compile(r"</tool_call\s*>", re.IGNORECASE)
PARAM_NAMED_RE = re.compile(r'<param\s+name\s*=\s*"([^"]+)"\s*>(.*?)</param\s*>', re.DOTALL | re.IGNORECASE)
PARAM_ELEMENT_RE = re.compile(r"<([a-z_][a-z0-9_]*)>(.*?)</\1>", re.DOTALL | re.IGNORECASE)
CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
THINKING_RE = re.compile(r"<thinking>(.*?)</thinking>", re.DOTALL | re.IGNORECASE)
INT_RE = re.compile(r"^[-+]?\d+$")
FLOAT_RE = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?$|^[-+]?\d+[eE][-+]?\d+$")
EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


class _Absent:
    """Marker for a parameter the model wrote as ``undefined``; such parameters are left out."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass
class ParsedResponse:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    incomplete_tool_call: bool = False
    parse_errors: list[str] = field(default_factory=list)

    @property
    def has_parse_errors(self) -> bool:
        return bool(self.parse_errors)


def coerce_value(raw: str) -> Any:
    cdata = CDATA_RE.search(raw)
    if cdata:
        return cdata.group(1)

    trimmed = raw.strip()
    if trimmed == "true":
        return True
    if trimmed == "false":
        return False
    if trimmed == "null":
        return None
    if trimmed == "undefined":
        return ABSENT
    if INT_RE.match(trimmed):
        return int(trimmed)
    if FLOAT_RE.match(trimmed):
        return float(trimmed)
    if (trimmed.startswith("[") and trimmed.endswith("]")) or (trimmed.startswith("{") and trimmed.endswith("}")):
        try:
            return json.loads(trimmed)
        except json.JSONDecodeError:
            return trimmed
    # surrounding newlines go, indentation of the first line stays
    return raw.strip("\r\n")


def parse_parameters(body: str) -> dict[str, Any]:
    matches = PARAM_NAMED_RE.findall(body) or PARAM_ELEMENT_RE.findall(body)
    params: dict[str, Any] = {}
    for name, value in matches:
        coerced = coerce_value(value)
        if coerced is ABSENT:
            params.pop(name, None)
            continue
        params[name] = coerced
    return params


def is_truncated(text: str) -> bool:
    """True when the last ``<tool_call`` opens after the last ``</tool_call>``."""
    last_open = max((m.start() for m in OPEN_TAG_RE.finditer(text)), default=-1)
    last_close = max((m.start() for m in CLOSE_TAG_RE.finditer(text)), default=-1)
    return last_open > last_close


class ResponseParser:
    def __init__(self, known_tools: set[str] | None = None, id_prefix: str | None = None):
        """
        Args:
            known_tools: when given, calls to other names are dropped and reported in ``parse_errors``.
            id_prefix: prefix of the generated call ids; a random one per parser by default
                so ids from different sessions never collide.
        """
        self.known_tools = known_tools
        self.id_prefix = id_prefix or f"call_{uuid.uuid4().hex[:8]}"
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"{self.id_prefix}_{next(self._counter)}"

    def parse(self, text: str) -> ParsedResponse:
        text = text or ""
        incomplete = is_truncated(text)
        calls: list[ToolCall] = []
        errors: list[str] = []

        for match in TOOL_CALL_RE.finditer(text):
            name, body = match.group(1).strip(), match.group(2)
            if self.known_tools is not None and name not in self.known_tools:
                errors.append(f'Unknown tool "{name}". Valid tools: {", ".join(sorted(self.known_tools))}')
                continue
            calls.append(ToolCall(id=self._next_id(), name=name, params=parse_parameters(body)))

        content = TOOL_CALL_RE.sub("", text)
        if incomplete:
            dangling = list(OPEN_TAG_RE.finditer(content))
            if dangling:
                content = content[:dangling[-1].start()]
        content = EXCESS_NEWLINES_RE.sub("\n\n", content).strip()

        return ParsedResponse(content=content, tool_calls=calls, incomplete_tool_call=incomplete, parse_errors=errors)


def has_tool_calls(text: str) -> bool:
    return TOOL_CALL_RE.search(text or "") is not None


def extract_thinking(text: str) -> tuple[str, str]:
    """(thinking, remaining content) for ``<thinking>...</thinking>`` blocks."""
    thoughts = [m.strip() for m in THINKING_RE.findall(text)]
    if not thoughts:
        return "", text
    return "\n\n".join(thoughts), THINKING_RE.sub("", text).strip()


def _format_value(value: Any) -> str:
    if value is None or value is ABSENT:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def format_tool_calls(calls: list[ToolCall]) -> str:
    """Render calls back into the tag format (used for prompt examples)."""
    blocks = []
    for call in calls:
        params = "\n".join(
            f'  <param name="{key}">{_format_value(value)}</param>' for key, value in call.params.items()
        )
        blocks.append(f'<tool_call name="{call.name}">\n{params}\n</tool_call>')
    return "\n\n".join(blocks)
