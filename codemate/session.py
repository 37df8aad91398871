# codemate/session.py
"""Session and Project entities."""
import uuid
from dataclasses import dataclass, field, asdict

from .models import MAX_UNDO_STACK_SIZE, ChatMessage, UndoEntry, now_ms
from .schema import generate_project_name

COMPRESSION_THRESHOLD = 0.8


@dataclass
class ContextState:
    files_in_context: list[str] = field(default_factory=list)
    token_usage: float = 0.0  # 0..1 share of the context window
    needs_compression: bool = False


@dataclass
class SessionStats:
    total_tokens: int = 0
    total_time_ms: int = 0
    tool_calls: int = 0
    edits_applied: int = 0
    edits_rejected: int = 0


@dataclass
class Session:
    id: str
    project_name: str
    created_at: int = field(default_factory=now_ms)
    last_activity_at: int = 0
    history: list[ChatMessage] = field(default_factory=list)
    context: ContextState = field(default_factory=ContextState)
    undo_stack: list[UndoEntry] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
    input_history: list[str] = field(default_factory=list)
    max_undo: int = MAX_UNDO_STACK_SIZE

    def __post_init__(self):
        if not self.last_activity_at:
            self.last_activity_at = self.created_at

    @classmethod
    def create(cls, project_name: str, max_undo: int = MAX_UNDO_STACK_SIZE) -> "Session":
        return cls(id=str(uuid.uuid4()), project_name=project_name, max_undo=max_undo)

    def add_message(self, message: ChatMessage) -> None:
        self.history.append(message)
        self.last_activity_at = now_ms()
        if message.stats:
            self.stats.total_tokens += message.stats.tokens
            self.stats.total_time_ms += message.stats.time_ms
            self.stats.tool_calls += message.stats.tool_calls

    def add_undo_entry(self, entry: UndoEntry) -> None:
        self.undo_stack.append(entry)
        # oldest entries fall off the bottom
        while len(self.undo_stack) > self.max_undo:
            self.undo_stack.pop(0)

    def pop_undo_entry(self) -> UndoEntry | None:
        return self.undo_stack.pop() if self.undo_stack else None

    def add_input_to_history(self, text: str) -> None:
        if text.strip() and (not self.input_history or self.input_history[-1] != text):
            self.input_history.append(text)

    def update_context(self, token_usage: float, files_in_context: list[str] | None = None,
                       threshold: float = COMPRESSION_THRESHOLD) -> None:
        self.context.token_usage = max(0.0, min(1.0, token_usage))
        self.context.needs_compression = self.context.token_usage > threshold
        if files_in_context is not None:
            self.context.files_in_context = list(files_in_context)

    def clear_history(self) -> None:
        self.history = []
        self.context = ContextState()

    def duration_ms(self) -> int:
        return now_ms() - self.created_at

    def duration_formatted(self) -> str:
        total_minutes = self.duration_ms() // 60_000
        hours, minutes = divmod(total_minutes, 60)
        return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"

    def to_record(self) -> dict:
        """Field map for the ``session:{id}:data`` hash (undo stack lives in its own list)."""
        return {
            "history": [m.to_dict() for m in self.history],
            "context": asdict(self.context),
            "stats": asdict(self.stats),
            "input_history": list(self.input_history),
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
            "project_name": self.project_name,
        }

    @classmethod
    def from_record(cls, session_id: str, record: dict, undo_stack: list[UndoEntry] | None = None) -> "Session":
        return cls(
            id=session_id,
            project_name=record["project_name"],
            created_at=record.get("created_at", 0),
            last_activity_at=record.get("last_activity_at", 0),
            history=[ChatMessage.from_dict(m) for m in record.get("history", [])],
            context=ContextState(**record.get("context", {})),
            stats=SessionStats(**record.get("stats", {})),
            input_history=list(record.get("input_history", [])),
            undo_stack=list(undo_stack or []),
        )


@dataclass
class Project:
    root_path: str
    name: str = ""
    created_at: int = field(default_factory=now_ms)
    last_indexed_at: int | None = None
    file_count: int = 0
    indexing_in_progress: bool = False

    def __post_init__(self):
        if not self.name:
            self.name = generate_project_name(self.root_path)

    def mark_indexing_started(self) -> None:
        self.indexing_in_progress = True

    def mark_indexing_completed(self, file_count: int) -> None:
        self.indexing_in_progress = False
        self.last_indexed_at = now_ms()
        self.file_count = file_count

    def mark_indexing_failed(self) -> None:
        self.indexing_in_progress = False

    def is_indexed(self) -> bool:
        return self.last_indexed_at is not None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(**data)
