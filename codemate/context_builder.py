# codemate/context_builder.py
"""
Context-window budget for a session (token usage, files in context, compression).
"""
from dataclasses import dataclass

from loguru import logger

from .models import ChatMessage, system_message, now_ms
from .prompts import COMPRESSION_PROMPT
from .session import COMPRESSION_THRESHOLD, Session

CONTEXT_WINDOW_SIZE = 128_000
MESSAGES_TO_KEEP = 5
MIN_MESSAGES_FOR_COMPRESSION = 10
SUMMARY_SNIPPET_CHARS = 500


@dataclass
class FileContext:
    path: str
    tokens: int
    added_at: int


@dataclass
class CompressionResult:
    compressed: bool
    removed_messages: int = 0
    tokens_saved: int = 0
    summary: str | None = None


class ContextManager:
    def __init__(self, context_window: int = CONTEXT_WINDOW_SIZE, threshold: float = COMPRESSION_THRESHOLD):
        self.context_window = context_window
        self.threshold = threshold
        self.files: dict[str, FileContext] = {}
        self.current_tokens = 0

    def add_to_context(self, path: str, tokens: int) -> None:
        existing = self.files.get(path)
        if existing:
            self.current_tokens -= existing.tokens
        self.files[path] = FileContext(path=path, tokens=tokens, added_at=now_ms())
        self.current_tokens += tokens

    def track_exchange(self, tokens: int) -> None:
        """Prompt + completion of the last request is what currently occupies the window."""
        self.current_tokens = max(0, tokens)

    @property
    def usage(self) -> float:
        return self.current_tokens / self.context_window if self.context_window else 1.0

    @property
    def available_tokens(self) -> int:
        return self.context_window - self.current_tokens

    def needs_compression(self) -> bool:
        return self.usage > self.threshold

    def files_in_context(self) -> list[str]:
        return list(self.files)

    def sync_from_session(self, session: Session) -> None:
        self.files = {p: FileContext(path=p, tokens=0, added_at=now_ms()) for p in session.context.files_in_context}
        self.current_tokens = int(session.context.token_usage * self.context_window)

    def update_session(self, session: Session) -> None:
        session.update_context(self.usage, self.files_in_context(), threshold=self.threshold)

    @staticmethod
    def _format_for_summary(messages: list[ChatMessage]) -> str:
        parts = []
        for m in messages:
            if m.role == "tool":
                continue
            role = "User" if m.role == "user" else "Assistant"
            content = m.content if len(m.content) <= SUMMARY_SNIPPET_CHARS else m.content[:SUMMARY_SNIPPET_CHARS] + "..."
            parts.append(f"{role}: {content}")
        return "\n\n".join(parts)

    async def compress(self, session: Session, llm) -> CompressionResult:
        """Summarise everything except the last few messages into one system message."""
        history = session.history
        if len(history) < MIN_MESSAGES_FOR_COMPRESSION:
            return CompressionResult(compressed=False)

        to_compress = history[:-MESSAGES_TO_KEEP]
        to_keep = history[-MESSAGES_TO_KEEP:]
        tokens_before = sum(llm.count_tokens(m.content) for m in to_compress)

        response = await llm.chat([
            system_message(COMPRESSION_PROMPT),
            system_message(self._format_for_summary(to_compress)),
        ])
        summary = response.content
        session.history = [system_message(f"[Previous conversation summary]\n{summary}"), *to_keep]

        tokens_saved = tokens_before - llm.count_tokens(summary)
        self.current_tokens = max(0, self.current_tokens - tokens_saved)
        self.update_session(session)
        logger.info(f"🗜️ Compressed {len(to_compress)} messages, saved ~{tokens_saved} tokens")
        return CompressionResult(
            compressed=True, removed_messages=len(to_compress), tokens_saved=tokens_saved, summary=summary,
        )
