import pytest

from codemate.agent import Agent, ToolExecutor
from codemate.config import ContextSettings, EditSettings, Settings
from codemate.errors import ConflictError, LLMError
from codemate.models import ConfirmationResult, ToolCall
from codemate.prompts import CONTINUE_PROMPT, TOOL_REMINDER
from codemate.tools.registry import create_default_registry

READ_CORE = '<tool_call name="get_lines"><param name="path">core.py</param><param name="end">2</param></tool_call>'
EDIT_CORE = (
    '<tool_call name="edit_lines"><param name="path">core.py</param><param name="start">1</param>'
    '<param name="end">1</param><param name="content">def helper(value, factor=2):</param></tool_call>'
)
CREATE_EXTRA = (
    '<tool_call name="create_file"><param name="path">extra.py</param>'
    '<param name="content">LIMIT = 1</param></tool_call>'
)


async def approve(message, diff=None):
    return True


async def deny(message, diff=None):
    return False


@pytest.fixture
def make_agent(project, storage, session_storage, indexed, scripted_llm):
    def factory(replies, settings=None, on_confirmation=approve, llm=None):
        statuses = []
        agent = Agent(
            llm or scripted_llm(replies),
            storage,
            session_storage,
            create_default_registry(),
            project,
            indexer=indexed,
            settings=settings,
            on_status=statuses.append,
            on_confirmation=on_confirmation,
        )
        agent.statuses = statuses
        return agent

    return factory


class TestLoop:
    async def test_tool_round_trip(self, make_agent, session, session_storage):
        agent = make_agent([READ_CORE, "helper doubles its input."])
        await agent.handle_message(session, "What does helper do?")

        assert [m.role for m in session.history] == ["user", "assistant", "tool", "assistant"]
        assert session.history[1].tool_calls[0].name == "get_lines"
        assert session.history[2].tool_results[0].success
        assert "1│def helper(value):" in session.history[2].content
        assert session.history[-1].content == "helper doubles its input."
        assert session.stats.tool_calls == 1
        assert agent.status == "ready"
        assert "thinking" in agent.statuses and "tool_call" in agent.statuses
        assert session.context.files_in_context == ["core.py"]

        stored = await session_storage.load_session(session.id)
        assert len(stored.history) == 4
        assert stored.input_history == ["What does helper do?"]

    async def test_prompt_layout(self, make_agent, session):
        agent = make_agent(["Hello."])
        await agent.handle_message(session, "hi")

        (prompt,) = agent.llm.prompts
        assert prompt[0].role == "system" and "edit_lines" in prompt[0].content
        assert prompt[1].role == "system" and "core.py" in prompt[1].content
        assert prompt[-2].content == "hi"
        assert prompt[-1].content == TOOL_REMINDER

    async def test_unknown_tool_becomes_error_result(self, make_agent, session):
        agent = make_agent(['<tool_call name="format_disk"></tool_call>', "Sorry."])
        await agent.handle_message(session, "go")

        result = session.history[2].tool_results[0]
        assert not result.success
        assert result.error == "Unknown tool: format_disk"

    async def test_invalid_params_become_error_result(self, make_agent, session):
        agent = make_agent(['<tool_call name="get_lines"><param name="start">1</param></tool_call>', "Ok."])
        await agent.handle_message(session, "go")
        assert session.history[2].tool_results[0].error == "Parameter 'path' is required"

    async def test_truncated_reply_asks_to_continue(self, make_agent, session):
        agent = make_agent(['Checking <tool_call name="get_lines"><param name="path">co', READ_CORE, "Done."])
        await agent.handle_message(session, "go")

        roles = [m.role for m in session.history]
        assert roles == ["user", "assistant", "system", "assistant", "tool", "assistant"]
        assert session.history[2].content == CONTINUE_PROMPT

    async def test_continue_is_bounded(self, make_agent, session):
        cut = 'Checking <tool_call name="get_lines"><param name="path">co'
        agent = make_agent([cut, cut, cut, "never reached"])
        await agent.handle_message(session, "go")

        assert sum(m.content == CONTINUE_PROMPT for m in session.history) == 2
        assert session.history[-1].role == "assistant"
        assert session.history[-1].content == "Checking"
        assert agent.llm.replies == ["never reached"]

    async def test_tool_call_limit(self, make_agent, session):
        settings = Settings(context=ContextSettings(max_tool_calls=1))
        agent = make_agent([READ_CORE + READ_CORE], settings=settings)
        await agent.handle_message(session, "go")

        assert session.history[-1].role == "system"
        assert session.history[-1].content.startswith("Tool call limit reached (1 per message)")
        assert all(m.role != "tool" for m in session.history)

    async def test_llm_failure_sets_error_status(self, make_agent, session, scripted_llm):
        class Down(scripted_llm):
            async def chat(self, messages):
                raise LLMError("Ollama is not reachable")

        agent = make_agent([], llm=Down([]))
        await agent.handle_message(session, "hi")

        assert agent.status == "error"
        assert session.history[-1].content == "Error: Ollama is not reachable"

    async def test_unexpected_failure_is_reported(self, make_agent, session, session_storage, scripted_llm):
        class Broken(scripted_llm):
            async def chat(self, messages):
                raise RuntimeError("connection reset mid-stream")

        agent = make_agent([], llm=Broken([]))
        await agent.handle_message(session, "hi")

        assert agent.status == "error"
        assert session.history[-1].content == "Error: connection reset mid-stream"
        stored = await session_storage.load_session(session.id)
        assert stored.history[-1].content == "Error: connection reset mid-stream"

    async def test_abort(self, make_agent):
        agent = make_agent([])
        agent.abort()
        assert agent.llm.aborted


class TestEditsAndUndo:
    async def test_edit_then_undo(self, make_agent, session, session_storage, storage, project):
        agent = make_agent([EDIT_CORE, "Edited."])
        await agent.handle_message(session, "add a factor")

        assert (project / "core.py").read_text(encoding="utf-8").startswith("def helper(value, factor=2):")
        assert session.stats.edits_applied == 1
        assert len(session.undo_stack) == 1
        assert session.undo_stack[0].description == "edit_lines: core.py"
        assert len(await session_storage.get_undo_stack(session.id)) == 1

        entry = await agent.undo_last(session)
        assert entry.file_path == "core.py"
        assert (project / "core.py").read_text(encoding="utf-8").startswith("def helper(value):\n")
        assert session.undo_stack == []
        assert await session_storage.get_undo_stack(session.id) == []
        assert (await storage.get_file("core.py")).lines[0] == "def helper(value):"

    async def test_undo_refuses_after_external_change(self, make_agent, session, project):
        agent = make_agent([EDIT_CORE, "Edited."])
        await agent.handle_message(session, "add a factor")
        (project / "core.py").write_text("rewritten\n", encoding="utf-8")

        with pytest.raises(ConflictError):
            await agent.undo_last(session)
        assert len(session.undo_stack) == 1

    async def test_undo_creation_removes_file(self, make_agent, session, project, storage):
        agent = make_agent([CREATE_EXTRA, "Created."])
        await agent.handle_message(session, "make a file")
        assert (project / "extra.py").is_file()

        await agent.undo_last(session)
        assert not (project / "extra.py").exists()
        assert await storage.get_file("extra.py") is None

    async def test_failed_write_records_no_undo(self, make_agent, session, session_storage, project):
        blocked = (
            '<tool_call name="create_file"><param name="path">core.py/inner.py</param>'
            '<param name="content">x = 1</param></tool_call>'
        )
        agent = make_agent([EDIT_CORE, blocked, "Done."])
        await agent.handle_message(session, "edit, then create")

        assert not session.history[4].tool_results[0].success
        assert session.stats.edits_applied == 1
        assert [e.description for e in session.undo_stack] == ["edit_lines: core.py"]
        assert len(await session_storage.get_undo_stack(session.id)) == 1

        await agent.undo_last(session)
        assert (project / "core.py").read_text(encoding="utf-8").startswith("def helper(value):\n")

    async def test_user_edited_content_is_applied(self, make_agent, session, project):
        async def edit_then_approve(message, diff=None):
            return ConfirmationResult(confirmed=True, edited_content=["def helper(value, factor=3):"])

        agent = make_agent([EDIT_CORE, "Edited."], on_confirmation=edit_then_approve)
        await agent.handle_message(session, "add a factor")

        assert (project / "core.py").read_text(encoding="utf-8").startswith("def helper(value, factor=3):\n")
        assert session.undo_stack[0].new_content == ["def helper(value, factor=3):"]
        await agent.undo_last(session)
        assert (project / "core.py").read_text(encoding="utf-8").startswith("def helper(value):\n")

    async def test_nothing_to_undo(self, make_agent, session):
        assert await make_agent([]).undo_last(session) is None

    async def test_declined_edit(self, make_agent, session, project):
        agent = make_agent([EDIT_CORE, "Fine."], on_confirmation=deny)
        await agent.handle_message(session, "add a factor")

        assert session.stats.edits_rejected == 1
        assert session.undo_stack == []
        assert "Edit cancelled by user" in session.history[2].content
        assert (project / "core.py").read_text(encoding="utf-8").startswith("def helper(value):")

    async def test_auto_apply_skips_the_prompt(self, make_agent, session, project):
        settings = Settings(edit=EditSettings(auto_apply=True))
        agent = make_agent([EDIT_CORE, "Edited."], settings=settings, on_confirmation=deny)
        await agent.handle_message(session, "add a factor")
        assert session.stats.edits_applied == 1

    async def test_no_confirmation_handler_means_no(self, make_agent, session):
        agent = make_agent([EDIT_CORE, "Fine."], on_confirmation=None)
        await agent.handle_message(session, "add a factor")
        assert session.stats.edits_rejected == 1

    async def test_clear_history(self, make_agent, session, session_storage):
        agent = make_agent(["Hi."])
        await agent.handle_message(session, "hello")
        await agent.clear_history(session)

        assert session.history == []
        assert (await session_storage.load_session(session.id)).history == []


async def test_executor_direct(storage, session_storage, project, session):
    executor = ToolExecutor(create_default_registry(), storage, session_storage, project)
    call = ToolCall(id="call_9", name="get_lines", params={"path": "alpha.py", "start": 1, "end": 1})
    result = await executor.execute(call, session)

    assert result.call_id == "call_9"
    assert result.data["content"] == "1│from core import helper"
