# codemate/schema.py
"""Redis key schema. Keys are relative; RedisStorage adds the configured prefix."""
import re
from dataclasses import dataclass

ROOT_PROJECT_NAME = "root"
SESSIONS_LIST_KEY = "sessions:list"

INDEX_FIELD_SYMBOLS = "symbols"
INDEX_FIELD_DEPS_GRAPH = "deps_graph"

SESSION_FIELDS = (
    "history", "context", "stats", "input_history", "created_at", "last_activity_at", "project_name",
)

_SLUG_JUNK = re.compile(r"[^a-z0-9-]+")


def _slug(segment: str) -> str:
    return _SLUG_JUNK.sub("-", segment.lower()).strip("-")


def generate_project_name(project_path: str) -> str:
    """
    Deterministic slug of the last two path segments.

    /home/user/projects/myapp -> projects-myapp, /myapp -> myapp, / -> root
    """
    segments = [s for s in (project_path or "").replace("\\", "/").split("/") if s]
    parts = [p for p in (_slug(s) for s in segments[-2:]) if p]
    return "-".join(parts) or ROOT_PROJECT_NAME


@dataclass(frozen=True)
class ProjectKeys:
    files: str
    ast: str
    meta: str
    indexes: str
    config: str

    @classmethod
    def for_project(cls, name: str) -> "ProjectKeys":
        base = f"project:{name}"
        return cls(
            files=f"{base}:files",
            ast=f"{base}:ast",
            meta=f"{base}:meta",
            indexes=f"{base}:indexes",
            config=f"{base}:config",
        )

    def all(self) -> tuple[str, ...]:
        return (self.files, self.ast, self.meta, self.indexes, self.config)


def session_data_key(session_id: str) -> str:
    return f"session:{session_id}:data"


def session_undo_key(session_id: str) -> str:
    return f"session:{session_id}:undo"
