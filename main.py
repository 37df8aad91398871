import asyncio
import difflib
import sys
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.syntax import Syntax
from rich.table import Table

from codemate.agent import Agent
from codemate.config import Settings, load_settings
from codemate.database import RedisClient, RedisStorage
from codemate.errors import CodemateError
from codemate.indexer import Indexer
from codemate.llm import OllamaClient
from codemate.logging_setup import configure_logging
from codemate.models import ChatMessage, ConfirmationResult, DiffInfo
from codemate.schema import generate_project_name
from codemate.session import Session
from codemate.session_store import SessionStorage
from codemate.tools.registry import create_default_registry

console = Console()

STATUS_LABELS = {
    "thinking": "[bold blue]🤔 Thinking...[/bold blue]",
    "tool_call": "[bold cyan]🔧 Running tools...[/bold cyan]",
}

HELP_TEXT = "/undo  revert the last edit   /clear  forget the conversation   /status  session info   /exit  quit"


# ===================================================================
# 🖥️ Rendering
# ===================================================================

def render_diff(diff: DiffInfo) -> Syntax:
    lines = difflib.unified_diff(
        diff.old_lines, diff.new_lines,
        fromfile=f"a/{diff.file_path}", tofile=f"b/{diff.file_path}",
        lineterm="", n=2,
    )
    text = "\n".join(lines) or "(no textual change)"
    return Syntax(text, "diff", theme="ansi_dark")


def print_message(message: ChatMessage):
    if message.role == "assistant" and not message.tool_calls and message.content:
        console.print(Panel(Markdown(message.content), title="🤖 codemate", border_style="green"))
    elif message.role == "assistant" and message.tool_calls:
        for call in message.tool_calls:
            args = ", ".join(f"{k}={v!r}" for k, v in call.params.items() if k != "content")
            console.print(f"[dim cyan]🔧 {call.name}({args})[/dim cyan]")
    elif message.role == "tool":
        for result in message.tool_results or []:
            mark = "[green]✓[/green]" if result.success else f"[red]✗ {result.error}[/red]"
            console.print(f"[dim]   └─ {result.call_id} {result.execution_time_ms} ms[/dim] {mark}")
    elif message.role == "system" and message.content.startswith(("Error", "Tool call limit")):
        console.print(f"[red]❌ {message.content}[/red]")


def print_status(session: Session, agent: Agent):
    table = Table(title="📊 Session", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Session", session.id)
    table.add_row("Project", session.project_name)
    table.add_row("Duration", session.duration_formatted())
    table.add_row("Messages", str(len(session.history)))
    table.add_row("Context", f"{session.context.token_usage:.0%} of {agent.llm.context_window} tokens")
    table.add_row("Tokens", str(session.stats.total_tokens))
    table.add_row("Tool calls", str(session.stats.tool_calls))
    table.add_row("Edits", f"{session.stats.edits_applied} applied / {session.stats.edits_rejected} rejected")
    table.add_row("Undo stack", str(len(session.undo_stack)))
    console.print(table)


def read_edited_lines() -> list[str]:
    console.print("[dim]Enter the replacement lines, finish with a single '.' line[/dim]")
    lines = []
    while (line := input()) != ".":
        lines.append(line)
    return lines


async def ask_confirmation(message: str, diff: DiffInfo | None = None) -> ConfirmationResult:
    console.print(Panel(message, title="⚠️ Confirmation required", border_style="yellow"))
    if diff is None:
        return ConfirmationResult(await asyncio.to_thread(Confirm.ask, "[bold yellow]Apply?[/bold yellow]", default=False))

    console.print(render_diff(diff))
    # deletions have nothing to edit
    choices = ["y", "n", "e"] if diff.new_lines else ["y", "n"]
    choice = await asyncio.to_thread(
        Prompt.ask, "[bold yellow]Apply? (e edits the new lines)[/bold yellow]", choices=choices, default="n"
    )
    if choice == "e":
        return ConfirmationResult(True, edited_content=await asyncio.to_thread(read_edited_lines))
    return ConfirmationResult(choice == "y")


# ===================================================================
# 🚀 Main loop
# ===================================================================

async def open_session(session_storage: SessionStorage, project_name: str, settings: Settings) -> Session:
    existing = await session_storage.list_sessions(project_name)
    if existing:
        session = await session_storage.load_session(existing[0]["id"])
        if session is not None:
            await session_storage.touch_session(session.id)
            console.print(f"[dim]↪️ Resuming session {session.id} ({len(session.history)} messages)[/dim]")
            return session
    session = Session.create(project_name, max_undo=settings.undo.stack_size)
    await session_storage.save_session(session)
    return session


async def run(root: Path, settings: Settings):
    client = RedisClient(settings.redis)
    await client.connect()
    llm = OllamaClient(settings.llm)
    if not await asyncio.to_thread(llm.is_available):
        console.print(f"[yellow]⚠️ Model {settings.llm.model} not available at {settings.llm.url}[/yellow]")

    project_name = generate_project_name(str(root))
    storage = RedisStorage(client, project_name)
    session_storage = SessionStorage(client, max_undo=settings.undo.stack_size)
    indexer = Indexer(root, storage, settings.project)
    if await storage.get_file_count() == 0:
        with console.status("[bold yellow]📂 Project not indexed yet, indexing...[/bold yellow]"):
            stats = await indexer.index_project()
        console.print(f"[green]✅ Indexed {stats.files_parsed} files[/green]")

    status = console.status("")
    agent = Agent(
        llm, storage, session_storage, create_default_registry(settings.commands), root,
        indexer=indexer, settings=settings,
        on_message=print_message,
        on_confirmation=lambda message, diff: _paused(status, ask_confirmation(message, diff)),
        on_status=lambda s: _show_status(status, s),
    )
    session = await open_session(session_storage, project_name, settings)

    console.print(Panel.fit(
        f"[bold]codemate[/bold] · {project_name}\n[dim]{root}[/dim]\n[dim]{HELP_TEXT}[/dim]",
        border_style="blue",
    ))

    try:
        while True:
            text = (await asyncio.to_thread(console.input, "\n[bold green]› [/bold green]")).strip()
            if not text:
                continue
            if text in ("/exit", "exit", "quit"):
                break
            if text == "/status":
                print_status(session, agent)
            elif text == "/clear":
                await agent.clear_history(session)
                console.print("[dim]🧹 Conversation cleared[/dim]")
            elif text == "/undo":
                await undo(agent, session)
            elif text == "/help":
                console.print(f"[dim]{HELP_TEXT}[/dim]")
            else:
                await agent.handle_message(session, text)
                status.stop()
    finally:
        await session_storage.save_session(session)
        await client.disconnect()


async def undo(agent: Agent, session: Session):
    try:
        entry = await agent.undo_last(session)
    except CodemateError as e:
        console.print(f"[red]❌ {e}[/red]")
        return
    if entry is None:
        console.print("[dim]Nothing to undo[/dim]")
    else:
        console.print(f"[green]↩️ Undone: {entry.description}[/green]")


def _show_status(status, state: str):
    label = STATUS_LABELS.get(state)
    if label:
        status.update(label)
        status.start()
    else:
        status.stop()


async def _paused(status, prompt):
    status.stop()
    try:
        return await prompt
    finally:
        status.start()


def main():
    configure_logging("WARNING")
    try:
        settings = load_settings()
    except CodemateError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    root = Path(settings.project.root).resolve()
    if not root.is_dir():
        console.print(f"[red]❌ Path not found: {root}[/red]")
        sys.exit(1)

    try:
        asyncio.run(run(root, settings))
    except CodemateError as e:
        console.print(f"[red]❌ {e}[/red]")
        if e.suggestion:
            console.print(f"[dim]💡 {e.suggestion}[/dim]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    finally:
        console.print("\n[dim]👋 Goodbye![/dim]")


if __name__ == "__main__":
    main()
