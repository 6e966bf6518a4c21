"""
adapters.cli.main - CLI adapter for the Bluesky stream pipeline.

Every pipeline stage runs as its own long-lived command, so stages can be
scaled and restarted independently. Uses the same ServiceFactory as the
REST API.

Commands
--------
  ingest     Stream the Jetstream firehose into the 'jetstream' stream
  filter     Keep on-topic posts (→ 'filtered-events' + stored events)
  enrich     Embed filtered posts
  topics     Extract and count AI topics of filtered posts
  bot        Answer Bluesky mentions (every BOT_INTERVAL_S, or --once)
  ask        Answer one question locally, without posting
  trending   Show this hour's trending topics
  init       Create indexes, consumer groups, Bloom filters and routes
  serve      Start the REST API

Usage
-----
  python src/adapters/cli/main.py init
  python src/adapters/cli/main.py ingest
  python src/adapters/cli/main.py ask "What's trending right now?"
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

# ── Ensure src/ is on the path when run as a script ──
_SRC = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(_SRC))

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from domain.exceptions import DomainError
from factory import ServiceFactory
from infrastructure.config import Settings

__version__ = "1.0.0"

console = Console()
app = typer.Typer(
    help="Bluesky stream pipeline CLI",
    add_completion=False,
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def setup_logging(level: str) -> None:
    """Configure root logging once, rendered through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Third-party chatter
    for noisy in ("httpx", "httpcore", "urllib3", "websockets", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def _make_factory(*, load_routes: bool = False) -> ServiceFactory:
    """Create and initialise a ServiceFactory from the environment."""
    factory = ServiceFactory(Settings.from_env())
    status = "[bold cyan]Loading routes…" if load_routes else "[bold cyan]Connecting to Redis…"
    with console.status(status, spinner="dots"):
        await factory.initialize(load_routes=load_routes)
    return factory


def _stop_on_signals(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: Ctrl-C surfaces as KeyboardInterrupt instead
            pass


def _run_stage(
    name: str,
    body: Callable[[ServiceFactory, asyncio.Event], Awaitable[None]],
    *,
    load_routes: bool = False,
) -> None:
    """Run a long-lived stage until Ctrl-C / SIGTERM."""
    async def _run() -> None:
        factory = await _make_factory(load_routes=load_routes)
        stop = asyncio.Event()
        _stop_on_signals(stop)
        console.print(Panel(
            f"[bold]{name}[/bold] running. Press [bold]Ctrl-C[/bold] to stop.",
            border_style="cyan",
        ))
        try:
            await body(factory, stop)
        finally:
            await factory.close()
        console.print(f"[dim]{name} stopped.[/dim]")

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print(f"\n[dim]{name} interrupted.[/dim]")
    except DomainError as e:
        console.print(f"[bold red]{name} failed:[/bold red] {e}")
        raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"bsky-pipeline v{__version__}")
        raise typer.Exit()


# ---------------------------------------------------------------------------
# Commands: Pipeline stages
# ---------------------------------------------------------------------------

@app.command()
def ingest() -> None:
    """Stream the Jetstream firehose into Redis."""
    async def _body(factory: ServiceFactory, stop: asyncio.Event) -> None:
        service = factory.create_ingest_service()
        task = asyncio.create_task(service.run())
        stopped = asyncio.create_task(stop.wait())
        # Return on Ctrl-C, or as soon as the reader itself ends
        await asyncio.wait({task, stopped}, return_when=asyncio.FIRST_COMPLETED)
        stopped.cancel()
        await service.stop()
        await task

    _run_stage("Ingest", _body)


@app.command("filter")
def filter_() -> None:
    """Classify firehose posts and keep the on-topic ones."""
    async def _body(factory: ServiceFactory, stop: asyncio.Event) -> None:
        with console.status("[bold cyan]Loading content filter…", spinner="dots"):
            service = factory.create_filter_service()
        await service.run(stop)

    _run_stage("Filter", _body)


@app.command()
def enrich() -> None:
    """Embed filtered posts (NUM_CONSUMERS consumers)."""
    async def _body(factory: ServiceFactory, stop: asyncio.Event) -> None:
        await factory.create_enrichment_service().run(stop)

    _run_stage("Enrichment", _body)


@app.command()
def topics() -> None:
    """Extract AI topics of filtered posts and count them per hour."""
    async def _body(factory: ServiceFactory, stop: asyncio.Event) -> None:
        await factory.create_topic_service().run(stop)

    _run_stage("Topic extraction", _body)


@app.command()
def bot(
    once: bool = typer.Option(False, "--once", help="Run a single polling round and exit."),
) -> None:
    """Answer mentions of the bot account on Bluesky."""
    if once:
        async def _run() -> None:
            factory = await _make_factory(load_routes=True)
            try:
                service = factory.bot_service()
                await service.setup()
                with console.status("[bold cyan]Checking mentions…", spinner="dots"):
                    stats = await service.run_once()
            finally:
                await factory.close()
            t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
            t.add_row("Mentions found", str(stats.found))
            t.add_row("Answered", str(stats.answered))
            t.add_row("Skipped", str(stats.skipped))
            t.add_row("Failed", str(len(stats.failed)))
            console.print(Panel(t, title="Bot round", border_style="blue"))

        try:
            asyncio.run(_run())
        except DomainError as e:
            console.print(f"[bold red]Bot round failed:[/bold red] {e}")
            raise typer.Exit(code=1)
        return

    async def _body(factory: ServiceFactory, stop: asyncio.Event) -> None:
        service = factory.bot_service()
        await service.run_forever(factory.config.bot_interval_s, stop)

    _run_stage("Bot", _body, load_routes=True)


# ---------------------------------------------------------------------------
# Commands: Analysis
# ---------------------------------------------------------------------------

@app.command()
def ask(
    question: str = typer.Argument(..., help="A question, as you would ask the bot."),
) -> None:
    """Answer a question the way the bot would, without posting."""
    async def _run() -> None:
        factory = await _make_factory(load_routes=True)
        try:
            service = factory.bot_service()
            with console.status("[bold cyan]Thinking…", spinner="dots"):
                reply = await service.process_user_request(question)
        finally:
            await factory.close()

        routes = ", ".join(sorted(reply.routes)) or "none"
        subtitle = f"routes: {routes}" + (" · cached" if reply.cached else "")
        console.print(Panel(reply.answer, title="Answer", subtitle=subtitle, border_style="green"))

    try:
        asyncio.run(_run())
    except DomainError as e:
        console.print(f"[bold red]Could not answer:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def trending() -> None:
    """Show this hour's trending topics."""
    async def _run() -> None:
        factory = await _make_factory()
        try:
            found = await factory.create_trending_analyzer().trending()
        finally:
            await factory.close()

        if not found:
            console.print(Panel("[bold yellow]No trending topics yet this hour.[/bold yellow]",
                                border_style="yellow"))
            return
        t = Table(box=box.SIMPLE, show_header=True, padding=(0, 2))
        t.add_column("#", justify="right")
        t.add_column("Topic")
        for i, topic in enumerate(found, start=1):
            t.add_row(str(i), topic)
        console.print(Panel(t, title="Trending now", border_style="blue"))

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Commands: Setup and API
# ---------------------------------------------------------------------------

@app.command()
def init(
    reload_routes: bool = typer.Option(
        False, "--reload-routes", "-r",
        help="Delete and re-embed the routing references.",
    ),
    check: bool = typer.Option(
        False, "--check",
        help="Load both embedding models and compare their dimensions with the indexes.",
    ),
) -> None:
    """Create indexes, consumer groups and Bloom filters (first-time setup)."""
    async def _run() -> None:
        factory = ServiceFactory(Settings.from_env())
        try:
            with console.status("[bold cyan]Initialising Redis…", spinner="dots"):
                await factory.initialize()
                added = await factory.ensure_routes(reload=reload_routes)
            if check:
                with console.status("[bold cyan]Loading embedding models…", spinner="dots"):
                    dims = await factory.check_dimensions()
                for index, (configured, actual) in dims.items():
                    colour = "green" if configured == actual else "red"
                    console.print(f"  {index}: [{colour}]{configured} configured / {actual} actual[/{colour}]")
        finally:
            await factory.close()
        console.print(Panel(
            "[bold green]Pipeline initialised![/bold green]\n"
            f"Routing references added: {added}.\n"
            "Start the stages with [bold]ingest[/bold], [bold]filter[/bold], "
            "[bold]enrich[/bold], [bold]topics[/bold] and [bold]bot[/bold].",
            border_style="green",
        ))

    asyncio.run(_run())


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default API_HOST)."),
    port: Optional[int] = typer.Option(None, help="Port (default API_PORT)."),
) -> None:
    """Start the REST API with uvicorn."""
    import uvicorn

    config = Settings.from_env()
    uvicorn.run(
        "adapters.rest.app:app",
        host=host or config.api_host,
        port=port or config.api_port,
        log_config=None,
    )


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------

@app.callback()
def _callback(
    version: bool = typer.Option(
        False, "--version", "-v",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        os.getenv("LOG_LEVEL", "INFO"), "--log-level", "-l",
        help="DEBUG, INFO, WARNING or ERROR.",
    ),
) -> None:
    """Bluesky stream pipeline CLI"""
    setup_logging(log_level)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
