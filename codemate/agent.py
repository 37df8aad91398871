# codemate/agent.py
"""
The chat loop: prompt the model, run the tool calls it makes, feed the
results back, until it answers without calling anything.
"""
import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Literal

from loguru import logger

from .config import Settings
from .context_builder import ContextManager
from .database import RedisStorage
from .errors import CodemateError, ConflictError, ParamValidationError
from .indexer import Indexer
from .llm import LLMClient
from .models import (
    ChatMessage, ConfirmationResult, DiffInfo, MessageStats, ToolCall, ToolResult, UndoEntry,
    assistant_message, can_undo, revert_lines, system_message, tool_message, user_message,
)
from .path_utils import PathValidator
from .prompts import CONTINUE_PROMPT, SYSTEM_PROMPT, TOOL_REMINDER, build_project_context, truncate_context
from .response_parser import ResponseParser
from .session import Session
from .session_store import SessionStorage
from .source_extraction import read_file_lines, write_file_lines
from .tools.base import ToolContext
from .tools.registry import ToolRegistry

AgentStatus = Literal["ready", "thinking", "tool_call", "awaiting_confirmation", "error"]
ConfirmationHandler = Callable[[str, DiffInfo | None], Awaitable[bool | ConfirmationResult]]

MAX_CONTINUES = 2
PROJECT_CONTEXT_SHARE = 0.1


class ToolExecutor:
    """Runs one ToolCall behind validation and the confirmation gate; records undo entries."""

    def __init__(self, registry: ToolRegistry, storage: RedisStorage, session_storage: SessionStorage,
                 project_root: str | Path, indexer: Indexer | None = None):
        self.registry = registry
        self.storage = storage
        self.session_storage = session_storage
        self.project_root = Path(project_root).resolve()
        self.indexer = indexer

    @staticmethod
    async def _ask(message: str, diff: DiffInfo | None, auto_apply: bool,
                   handler: ConfirmationHandler | None) -> ConfirmationResult:
        if auto_apply:
            return ConfirmationResult(confirmed=True)
        if handler is None:
            return ConfirmationResult(confirmed=False)
        try:
            return ConfirmationResult.of(await handler(message, diff))
        except asyncio.CancelledError:
            # a cancelled prompt is a "no"; a cancelled task is still a cancellation
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.info("🙅 Confirmation prompt cancelled")
            return ConfirmationResult(confirmed=False)

    async def execute(
        self,
        call: ToolCall,
        session: Session,
        auto_apply: bool = False,
        on_confirmation: ConfirmationHandler | None = None,
        on_progress: Callable[[str], None] | None = None,
        on_file_loaded: Callable[[str, int], None] | None = None,
    ) -> ToolResult:
        tool = self.registry.get(call.name)
        if tool is None:
            return ToolResult.fail(call.id, f"Unknown tool: {call.name}", 0)

        params = tool.normalize_params(call.params)
        try:
            tool.ensure_valid(params)
        except ParamValidationError as e:
            return ToolResult.fail(call.id, str(e), 0)

        # undo entries only count once the tool has actually applied the change
        pending: list[UndoEntry] = []

        async def confirm(message: str, diff: DiffInfo | None = None) -> ConfirmationResult:
            answer = await self._ask(message, diff, auto_apply, on_confirmation)
            if not answer.confirmed:
                session.stats.edits_rejected += 1
            elif diff is not None:
                new_lines = diff.new_lines if answer.edited_content is None else answer.edited_content
                applied = DiffInfo(diff.file_path, diff.old_lines, list(new_lines), diff.start_line)
                pending.append(UndoEntry.from_diff(applied, f"{call.name}: {diff.file_path}", tool_call_id=call.id))
            return answer

        ctx = ToolContext(
            project_root=self.project_root,
            storage=self.storage,
            confirm=confirm,
            indexer=self.indexer,
            on_progress=on_progress,
            on_file_loaded=on_file_loaded,
        )
        logger.debug(f"🔧 {call.name}({call.params})")
        result = await tool.execute(params, ctx, call_id=call.id)

        if not result.success:
            if pending:
                logger.debug(f"↪️ {call.name} failed after confirmation, no undo entry recorded")
            return result
        for entry in pending:
            session.add_undo_entry(entry)
            await self.session_storage.push_undo_entry(session.id, entry)
            session.stats.edits_applied += 1
        return result


class Agent:
    def __init__(
        self,
        llm: LLMClient,
        storage: RedisStorage,
        session_storage: SessionStorage,
        registry: ToolRegistry,
        project_root: str | Path,
        indexer: Indexer | None = None,
        settings: Settings | None = None,
        on_status: Callable[[AgentStatus], None] | None = None,
        on_message: Callable[[ChatMessage], None] | None = None,
        on_confirmation: ConfirmationHandler | None = None,
    ):
        self.settings = settings or Settings()
        self.llm = llm
        self.storage = storage
        self.session_storage = session_storage
        self.registry = registry
        self.project_root = Path(project_root).resolve()
        self.indexer = indexer
        self.executor = ToolExecutor(registry, storage, session_storage, self.project_root, indexer)
        self.parser = ResponseParser()
        self.context = ContextManager(llm.context_window, self.settings.context.compress_at)
        self.on_status = on_status
        self.on_message = on_message
        self.on_confirmation = on_confirmation
        self.status: AgentStatus = "ready"
        self._aborted = False

    # ==========================================
    # plumbing
    # ==========================================

    def _set_status(self, status: AgentStatus) -> None:
        self.status = status
        if self.on_status is not None:
            self.on_status(status)

    def _emit(self, session: Session, message: ChatMessage) -> None:
        session.add_message(message)
        if self.on_message is not None:
            self.on_message(message)

    async def _confirm(self, message: str, diff: DiffInfo | None = None) -> bool | ConfirmationResult:
        if self.on_confirmation is None:
            return False
        self._set_status("awaiting_confirmation")
        try:
            return await self.on_confirmation(message, diff)
        finally:
            self._set_status("tool_call")

    @property
    def system_prompt(self) -> str:
        return f"{SYSTEM_PROMPT}\n{self.registry.to_prompt()}"

    async def _project_context(self) -> str:
        asts = await self.storage.get_all_asts()
        if not asts:
            return ""
        context = build_project_context(
            self.storage.project_name, str(self.project_root), asts, await self.storage.get_all_metas()
        )
        return truncate_context(context, int(self.llm.context_window * PROJECT_CONTEXT_SHARE))

    def _build_messages(self, session: Session, project_context: str) -> list[ChatMessage]:
        messages = [system_message(self.system_prompt)]
        if project_context:
            messages.append(system_message(project_context))
        messages += session.history
        if session.history and session.history[-1].role == "user":
            messages.append(system_message(TOOL_REMINDER))
        return messages

    async def _maybe_compress(self, session: Session) -> None:
        if not self.context.needs_compression():
            return
        try:
            await self.context.compress(session, self.llm)
        except CodemateError as e:
            logger.warning(f"⚠️ History compression failed: {e}")

    # ==========================================
    # main loop
    # ==========================================

    async def handle_message(self, session: Session, text: str) -> None:
        self._aborted = False
        self.context.sync_from_session(session)
        self._emit(session, user_message(text))
        session.add_input_to_history(text)
        await self.session_storage.save_session(session)

        try:
            project_context = await self._project_context()
            await self._loop(session, project_context)
        except CodemateError as e:
            logger.error(f"❌ {e}")
            self._set_status("error")
            self._emit(session, system_message(f"Error: {e}"))
        except Exception as e:
            logger.exception(f"❌ Unexpected failure while handling a message: {e}")
            self._set_status("error")
            self._emit(session, system_message(f"Error: {str(e) or type(e).__name__}"))
        else:
            self._set_status("ready")
        await self.session_storage.save_session(session)

    async def _loop(self, session: Session, project_context: str) -> None:
        max_calls = self.settings.context.max_tool_calls
        calls_made = 0
        continues = 0

        while not self._aborted:
            self._set_status("thinking")
            response = await self.llm.chat(self._build_messages(session, project_context))
            parsed = self.parser.parse(response.content)

            if parsed.incomplete_tool_call and continues < MAX_CONTINUES:
                continues += 1
                logger.info(f"✂️ Response cut off inside a tool call, asking to continue ({continues}/{MAX_CONTINUES})")
                self._emit(session, assistant_message(response.content))
                self._emit(session, system_message(CONTINUE_PROMPT))
                continue

            if not parsed.tool_calls:
                self._emit(session, assistant_message(
                    parsed.content, stats=MessageStats(response.tokens, response.time_ms, 0)
                ))
                self.context.track_exchange(response.tokens)
                self.context.update_session(session)
                return

            if calls_made + len(parsed.tool_calls) > max_calls:
                logger.warning(f"⚠️ Tool call limit ({max_calls}) reached")
                self._emit(session, system_message(
                    f"Tool call limit reached ({max_calls} per message). Stopping here."
                ))
                return

            self._emit(session, assistant_message(
                response.content,
                tool_calls=parsed.tool_calls,
                stats=MessageStats(response.tokens, response.time_ms, len(parsed.tool_calls)),
            ))
            results = []
            for call in parsed.tool_calls:
                if self._aborted:
                    break
                self._set_status("tool_call")
                results.append(await self.executor.execute(
                    call, session,
                    auto_apply=self.settings.edit.auto_apply,
                    on_confirmation=self._confirm,
                    on_file_loaded=self.context.add_to_context,
                ))
            calls_made += len(results)
            continues = 0

            self._emit(session, tool_message(results))
            self.context.track_exchange(response.tokens)
            self.context.update_session(session)
            await self._maybe_compress(session)
            await self.session_storage.save_session(session)

        logger.info("🛑 Agent loop aborted")

    def abort(self) -> None:
        self._aborted = True
        self.llm.abort()

    # ==========================================
    # session commands
    # ==========================================

    async def undo_last(self, session: Session) -> UndoEntry | None:
        """Revert the most recent applied edit. None when there is nothing to undo."""
        if not session.undo_stack:
            return None
        entry = session.undo_stack[-1]
        absolute, rel_path = PathValidator(self.project_root).resolve(entry.file_path)
        current = read_file_lines(absolute) if absolute.is_file() else []
        if not can_undo(entry, current):
            raise ConflictError(f"{rel_path} has changed since '{entry.description}', cannot undo")

        if entry.is_creation:
            absolute.unlink(missing_ok=True)
        else:
            write_file_lines(absolute, revert_lines(entry, current))

        session.pop_undo_entry()
        await self.session_storage.pop_undo_entry(session.id)
        if self.indexer is not None:
            await self.indexer.reindex_path(rel_path)
        await self.session_storage.save_session(session)
        logger.info(f"↩️ Undone: {entry.description}")
        return entry

    async def clear_history(self, session: Session) -> None:
        session.clear_history()
        self.context = ContextManager(self.llm.context_window, self.settings.context.compress_at)
        await self.session_storage.save_session(session)
