import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from codemate.config import load_settings
from codemate.database import RedisClient, RedisStorage
from codemate.errors import CodemateError
from codemate.indexer import Indexer
from codemate.logging_setup import configure_logging
from codemate.models import IndexProgress
from codemate.schema import generate_project_name

console = Console()

PHASE_LABELS = {
    "scanning": "📂 Scanning",
    "parsing": "🔍 Parsing",
    "analyzing": "🧮 Analyzing",
    "indexing": "🏗️ Indexing",
}


def print_stats(stats, summary: dict, cycles: list[list[str]]):
    table = Table(title="📊 Index Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Files scanned", str(stats.files_scanned))
    table.add_row("Files parsed", str(stats.files_parsed))
    table.add_row("Parse errors", str(stats.parse_errors))
    table.add_row("Symbols", str(summary["total_symbols"]))
    table.add_row("Avg. dependencies", str(summary["avg_dependencies"]))
    table.add_row("Hub files", str(len(summary["hubs"])))
    table.add_row("Time", f"{stats.time_ms} ms")
    console.print(table)

    if cycles:
        console.print(f"\n[bold yellow]♻️ {len(cycles)} circular import chain(s):[/bold yellow]")
        for cycle in cycles:
            console.print(f"  [yellow]{' → '.join(cycle + cycle[:1])}[/yellow]")


async def run(target: Path, settings):
    client = RedisClient(settings.redis)
    await client.connect()

    project_name = generate_project_name(str(target))
    storage = RedisStorage(client, project_name)
    indexer = Indexer(target, storage, settings.project)
    console.print(f"\n[bold yellow]🚀 Indexing {target} as '{project_name}'[/bold yellow]")

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[dim]{task.fields[file]}"),
            console=console,
        ) as progress:
            task = progress.add_task("Starting", total=None, file="")

            def on_progress(p: IndexProgress):
                progress.update(
                    task,
                    description=PHASE_LABELS.get(p.phase, p.phase),
                    completed=p.current,
                    total=p.total or None,
                    file=p.current_file,
                )

            stats = await indexer.index_project(on_progress)

        print_stats(stats, await indexer.get_stats(), await indexer.find_cycles())
        console.print("\n[bold blue]✨ Ingest Complete![/bold blue]")
    finally:
        await client.disconnect()


def main():
    configure_logging("WARNING")
    try:
        settings = load_settings()
    except CodemateError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    target = Path(settings.project.root).resolve()
    if not target.is_dir():
        console.print(f"[red]❌ Path not found: {target}[/red]")
        sys.exit(1)

    try:
        asyncio.run(run(target, settings))
    except CodemateError as e:
        console.print(f"[red]❌ {e}[/red]")
        if e.suggestion:
            console.print(f"[dim]💡 {e.suggestion}[/dim]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")


if __name__ == "__main__":
    main()
