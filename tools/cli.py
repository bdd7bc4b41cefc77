"""SupportBot command line: crawl sites, manage Q&A and try the matcher."""

import asyncio
import json
import pathlib
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from config.settings import AppSettings, get_settings
from observability.logging import setup_logging
from pipelines.crawler import CrawlMode, commit_selected
from pipelines.errors import InvalidInput, SupportBotError
from pipelines.models import QAEntry
from runtime.matcher import match
from server.crawl_service import CrawlService
from services.generation import build_text_generator
from services.shared.store import KnowledgeStore

console = Console()
app = typer.Typer(help="SupportBot CLI - turn a website into a support chatbot")


def _settings(verbose: bool) -> AppSettings:
    settings = get_settings()
    setup_logging(level="DEBUG" if verbose else settings.logging.level,
                  use_json=settings.logging.use_json)
    return settings


def _store(settings: AppSettings) -> KnowledgeStore:
    store = KnowledgeStore(settings.storage.database_url, echo=settings.storage.echo)
    store.create_tables()
    return store


def _parse_indices(value: str) -> List[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise typer.BadParameter("Use comma separated candidate numbers, e.g. 0,2,3")


def load_entries(path: pathlib.Path) -> List[QAEntry]:
    """Read Q&A entries from a JSON list of {question, answer, keywords} objects.

    Raises:
        InvalidInput: If the file is unreadable, not JSON, or an entry is malformed
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise InvalidInput(f"Cannot read entries from {path}: {e}") from e
    if not isinstance(data, list):
        raise InvalidInput(f"{path} must contain a JSON list of entries")

    entries = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or "question" not in item or "answer" not in item:
            raise InvalidInput(f"Entry {i} in {path} needs a question and an answer")
        entries.append(QAEntry(question=item["question"], answer=item["answer"],
                               keywords=item.get("keywords", [])))
    return entries


@app.command()
def crawl(
    url: str = typer.Argument(..., help="Seed URL"),
    mode: CrawlMode = typer.Option(CrawlMode.SINGLE_PAGE, "--mode", help="single or site"),
    budget: Optional[int] = typer.Option(None, "--budget", help="Page budget for site mode"),
    chatbot: Optional[str] = typer.Option(None, "--chatbot", help="Chatbot that receives crawled pages"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Candidate numbers to commit, e.g. 0,2"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Crawl a page or site and print candidate Q&As."""
    settings = _settings(verbose)
    if budget is not None:
        settings = settings.model_copy(update={
            "crawl": settings.crawl.model_copy(update={"page_budget": budget})
        })
    store = _store(settings) if chatbot else None
    service = CrawlService(settings, store=store, generator=build_text_generator(settings.generation))

    try:
        with console.status(f"[bold blue]Crawling {url} ({mode.value})..."):
            report = asyncio.run(service.crawl(url, mode, chatbot_id=chatbot))
    except SupportBotError as e:
        console.print(f"❌ Crawl failed: {e}", style="bold red")
        raise typer.Exit(1)

    console.print(
        f"📊 {report.pages_visited} pages visited, {report.pages_collected} collected, "
        f"{len(report.candidates)} candidates in {report.duration_seconds:.1f}s"
    )
    for warning in report.warnings:
        console.print(f"  ⚠ {warning.kind}: {warning.url} ({warning.reason})", style="yellow")

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("#", style="dim", width=3)
    table.add_column("Question", style="bold")
    table.add_column("Answer")
    table.add_column("Keywords")
    for i, entry in enumerate(report.candidates):
        answer = entry.answer[:100] + "..." if len(entry.answer) > 100 else entry.answer
        table.add_row(str(i), entry.question, answer, ", ".join(entry.keywords))
    console.print(table)

    if commit is not None:
        if not chatbot:
            console.print("❌ --commit requires --chatbot", style="bold red")
            raise typer.Exit(1)
        try:
            created = commit_selected(store, chatbot, report, _parse_indices(commit))
        except SupportBotError as e:
            console.print(f"❌ Commit failed: {e}", style="bold red")
            raise typer.Exit(1)
        console.print(f"✅ Committed {len(created)} questions to {chatbot}", style="bold green")


@app.command("create-chatbot")
def create_chatbot(
    name: str = typer.Argument(..., help="Display name"),
    chatbot_id: Optional[str] = typer.Option(None, "--id", help="Explicit chatbot id"),
):
    """Create a chatbot and print its id."""
    store = _store(_settings(False))
    try:
        chatbot = store.create_chatbot(name, chatbot_id=chatbot_id)
    except SupportBotError as e:
        console.print(f"❌ {e}", style="bold red")
        raise typer.Exit(1)
    console.print(f"✅ Created chatbot {chatbot.id}", style="bold green")


@app.command()
def chatbots(show_all: bool = typer.Option(False, "--all", help="Include retired chatbots")):
    """List chatbots."""
    store = _store(_settings(False))
    table = Table(title="Chatbots")
    table.add_column("ID")
    table.add_column("Name", style="bold")
    table.add_column("Active")
    for chatbot in store.list_chatbots(include_inactive=show_all):
        table.add_row(chatbot.id, chatbot.name, "yes" if chatbot.is_active else "no")
    console.print(table)


@app.command()
def questions(chatbot: str = typer.Argument(..., help="Chatbot id")):
    """List a chatbot's active questions."""
    store = _store(_settings(False))
    entries = store.list_active_entries(chatbot)
    table = Table(title=f"Questions for {chatbot}")
    table.add_column("ID", justify="right")
    table.add_column("Question", style="bold")
    table.add_column("Keywords")
    for entry in entries:
        table.add_row(str(entry.id), entry.question, ", ".join(entry.keywords))
    console.print(table)


@app.command()
def ask(
    message: str = typer.Argument(..., help="Visitor message"),
    chatbot: Optional[str] = typer.Option(None, "--chatbot", help="Match against a stored chatbot"),
    entries_file: Optional[pathlib.Path] = typer.Option(None, "--entries", help="JSON file of Q&A entries"),
):
    """Run the keyword matcher against a message."""
    if entries_file is not None:
        try:
            entries = load_entries(entries_file)
        except SupportBotError as e:
            console.print(f"❌ {e}", style="bold red")
            raise typer.Exit(1)
    elif chatbot:
        entries = _store(_settings(False)).list_active_entries(chatbot)
    else:
        console.print("❌ Pass --chatbot or --entries", style="bold red")
        raise typer.Exit(1)

    result = match(message, entries)
    if result is None:
        console.print("No match", style="yellow")
        raise typer.Exit(2)
    console.print(f"[bold]{result.entry.question}[/bold] (score {result.score})")
    console.print(result.entry.answer)


@app.command()
def stats(chatbot: str = typer.Argument(..., help="Chatbot id")):
    """Show session totals and the most matched questions."""
    store = _store(_settings(False))
    summary = store.session_stats(chatbot)

    table = Table(title=f"📊 Stats for {chatbot}")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Sessions", str(summary["total_sessions"]))
    table.add_row("Messages", str(summary["total_messages"]))
    avg = summary["avg_duration_seconds"]
    table.add_row("Avg duration (s)", f"{avg:.1f}" if avg is not None else "-")
    console.print(table)

    for row in store.top_matched_entries(chatbot, limit=5):
        console.print(f"  • {row['question']} ({row['count']})")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("server.api:build_default_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    app()
