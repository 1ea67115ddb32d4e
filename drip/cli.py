"""drip CLI: Typer + Rich terminal interface.

Commands: chat, translate, metrics, models, rag, config.
Streams are rendered live with paced word reveal; management calls print
Rich tables.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from drip import __version__
from drip.client import DripClient
from drip.cli_streaming_display import StreamingSessionDisplay, format_bytes
from drip.exceptions import BackendError
from drip.schemas.backend import InferRawResult
from drip.schemas.events import MetricsSnapshot
from drip.settings import ClientConfig, load_client_config, load_env
from drip.stream.events import SessionEvent, SessionEventEmitter, SessionEventType
from drip.stream.session import SessionKind, SessionState, StreamSession, TextAccumulator

# Load DRIP_* settings from ~/.drip/drip.env and .env on startup
load_env()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="drip",
    help="Streaming client for an edge assistant backend.",
    no_args_is_help=False,
    rich_markup_mode="rich",
)

models_app = typer.Typer(
    name="models",
    help="Manage backend models.",
    no_args_is_help=True,
)
app.add_typer(models_app, name="models")

rag_app = typer.Typer(
    name="rag",
    help="Manage the retrieval document store.",
    no_args_is_help=True,
)
app.add_typer(rag_app, name="rag")

config_app = typer.Typer(
    name="config",
    help="Show client configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"drip {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log stream activity at debug level.",
    ),
    base_url: str = typer.Option(
        None, "--base-url",
        help="Backend base URL (overrides DRIP_BASE_URL and the config file).",
    ),
) -> None:
    """drip: paced streaming chat, translation and live system metrics."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    ctx.obj = {"base_url": base_url}
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


# ── Helpers ──────────────────────────────────────────────────────


def _load_config(ctx: typer.Context) -> ClientConfig:
    """Load client config, exit on error."""
    try:
        config = load_client_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None

    base_url = (ctx.obj or {}).get("base_url")
    if base_url:
        config = config.model_copy(update={"base_url": base_url})
    return config


def _call_backend(
    ctx: typer.Context, call: Callable[[DripClient], Awaitable[Any]], status: str
) -> Any:
    """Run one request/response call, exit on error."""
    config = _load_config(ctx)

    async def _go():
        async with DripClient(config) as client:
            return await call(client)

    try:
        with console.status(f"[bold blue]{status}", spinner="dots"):
            return asyncio.run(_go())
    except BackendError as e:
        console.print(f"[red]Backend error:[/red] {e}")
        raise typer.Exit(1) from None
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _plain_listener(event: SessionEvent) -> None:
    """Print revealed words inline and log lines dimmed."""
    if event.type == SessionEventType.WORD_REVEALED:
        console.print(event.data.get("word", ""), end=" ", markup=False, highlight=False)
    elif event.type == SessionEventType.LOG:
        console.print(f"[dim]{escape(str(event.data.get('line', '')))}[/dim]", highlight=False)


def _run_text_stream(
    ctx: typer.Context, kind: SessionKind, text: str, lang: str | None, plain: bool
) -> None:
    config = _load_config(ctx)
    emitter = SessionEventEmitter()
    sink = TextAccumulator()

    async def _go() -> StreamSession:
        async with DripClient(config, emitter=emitter) as client:
            if kind == SessionKind.TRANSLATE:
                supervisor = client.translate_supervisor(text, lang=lang, sink=sink)
            else:
                supervisor = client.chat_supervisor(text, lang=lang, sink=sink)
            return await supervisor.run()

    try:
        if plain:
            emitter.add_listener(_plain_listener)
            session = asyncio.run(_go())
            console.print()
        else:
            with StreamingSessionDisplay(console, kind) as display:
                emitter.add_listener(display.create_listener())
                session = asyncio.run(_go())
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130) from None
    except ValueError as e:
        console.print(f"[red]Invalid request:[/red] {e}")
        raise typer.Exit(1) from None

    if not plain and sink.text:
        console.print(Panel(sink.text, title=f"[bold]{kind.value.title()}[/bold]", border_style="green"))

    if session.state == SessionState.FAILED:
        console.print(f"[red]Stream failed:[/red] {escape(session.error or '')}")
        raise typer.Exit(1)


def _metrics_line(snap: MetricsSnapshot) -> str:
    vram = (
        f"{snap.vram.percent:.1f}%" if snap.vram.available else "n/a"
    )
    return (
        f"cpu {snap.cpu_percent:5.1f}%  ram {snap.ram.percent:5.1f}% "
        f"({format_bytes(snap.ram.used_bytes)})  swap {snap.swap.percent:5.1f}%  "
        f"vram {vram}  rss {format_bytes(snap.process.rss_bytes)}"
    )


# ── Streaming commands ───────────────────────────────────────────


@app.command()
def chat(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Message to send"),
    lang: str = typer.Option(
        None, "--lang", "-l",
        help="Response language: 'auto' or a two-letter code (en, hi, es, zh).",
    ),
    plain: bool = typer.Option(
        False, "--plain",
        help="Print words as they are revealed instead of the live display.",
    ),
) -> None:
    """Send a message and watch the reply stream in."""
    _run_text_stream(ctx, SessionKind.CHAT, text, lang, plain)


@app.command()
def translate(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Text to translate"),
    lang: str = typer.Option(
        None, "--lang", "-l",
        help="Source language hint: 'auto' or a two-letter code.",
    ),
    plain: bool = typer.Option(
        False, "--plain",
        help="Print words as they are revealed instead of the live display.",
    ),
) -> None:
    """Translate text with streamed, paced output."""
    _run_text_stream(ctx, SessionKind.TRANSLATE, text, lang, plain)


@app.command()
def metrics(
    ctx: typer.Context,
    plain: bool = typer.Option(
        False, "--plain",
        help="Print one line per snapshot instead of the live display.",
    ),
) -> None:
    """Follow the backend's live system metrics until Ctrl+C."""
    config = _load_config(ctx)
    emitter = SessionEventEmitter()

    async def _go() -> None:
        async with DripClient(config, emitter=emitter) as client:
            await client.metrics_supervisor().run()

    def _print_snapshot(event: SessionEvent) -> None:
        if event.type == SessionEventType.METRICS_UPDATED:
            snap = MetricsSnapshot.model_validate(event.data.get("metrics", {}))
            console.print(_metrics_line(snap), highlight=False)
        elif event.type == SessionEventType.LOG:
            console.print(f"[yellow]{escape(str(event.data.get('line', '')))}[/yellow]", highlight=False)

    try:
        if plain:
            emitter.add_listener(_print_snapshot)
            asyncio.run(_go())
        else:
            with StreamingSessionDisplay(console, SessionKind.METRICS) as display:
                emitter.add_listener(display.create_listener())
                asyncio.run(_go())
    except KeyboardInterrupt:
        console.print("[dim]Metrics feed stopped.[/dim]")


# ── Models ───────────────────────────────────────────────────────


@models_app.command("current")
def models_current(ctx: typer.Context) -> None:
    """Show the model currently loaded on the backend."""
    current = _call_backend(ctx, lambda c: c.current_model(), "Querying backend...")
    if current.loaded_llm:
        console.print(f"Loaded model: [bold cyan]{current.loaded_llm}[/bold cyan]")
    else:
        console.print("[dim]No model loaded[/dim]")
    if current.server_url:
        console.print(f"[dim]Server: {current.server_url}[/dim]")


@models_app.command("list")
def models_list(ctx: typer.Context) -> None:
    """List models downloaded on the backend."""
    names = _call_backend(ctx, lambda c: c.list_models(), "Listing models...")

    table = Table(title="Downloaded Models")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold cyan")
    for i, name in enumerate(names, 1):
        table.add_row(str(i), name)

    console.print(table)
    console.print(f"\n[dim]{len(names)} models downloaded[/dim]")


@models_app.command("load")
def models_load(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Model name as listed by 'drip models list'"),
) -> None:
    """Load a downloaded model."""
    _call_backend(ctx, lambda c: c.load_model(name), f"Loading {name}...")
    console.print(f"[green]Loaded[/green] {name}")


@models_app.command("unload")
def models_unload(ctx: typer.Context) -> None:
    """Unload the current model."""
    _call_backend(ctx, lambda c: c.unload_model(), "Unloading model...")
    console.print("[green]Model unloaded[/green]")


@models_app.command("download")
def models_download(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Model download URL"),
    name: str = typer.Option(
        None, "--name", "-n",
        help="Model name (defaults to the file name in the URL).",
    ),
) -> None:
    """Ask the backend to download a model file."""
    saved = _call_backend(
        ctx, lambda c: c.download_model(url, name), "Downloading (this can take minutes)..."
    )
    console.print(f"[green]Downloaded[/green] {saved}")


@models_app.command("measure")
def models_measure(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Model to measure"),
) -> None:
    """Measure load time, latency, throughput and memory for a model."""
    report = _call_backend(ctx, lambda c: c.measure_model(name), f"Measuring {name}...")

    table = Table(title=f"Model: {name}", show_header=False, show_lines=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Size", f"{report.model_size_gb:.2f} GB")
    table.add_row("Load time", f"{report.load_time_s:.2f} s")
    table.add_row("First token", f"{report.first_token_latency_ms:.0f} ms")
    table.add_row("Inference time", f"{report.total_inference_time_s:.2f} s")
    table.add_row("Throughput", f"{report.tokens_per_second:.1f} tok/s")
    table.add_row("Output tokens", str(report.output_length_tokens))
    table.add_row("Peak RSS", f"{report.memory.peak_rss_mb:.0f} MB")
    table.add_row("Load increase", f"{report.memory.load_increase_mb:.0f} MB")
    if report.vram.total_mb:
        table.add_row(
            "Peak VRAM", f"{report.vram.peak_used_mb:.0f} / {report.vram.total_mb:.0f} MB"
        )
    console.print(table)
    if report.output_text:
        console.print(Panel(report.output_text, title="[bold]Sample output[/bold]", border_style="dim"))


async def _infer_if_loaded(client: DripClient, prompt: str) -> InferRawResult | None:
    current = await client.current_model()
    if not current.loaded_llm:
        return None
    return await client.infer_raw(prompt)


@models_app.command("infer")
def models_infer(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt sent to the loaded model"),
) -> None:
    """Run one non-streaming completion on the loaded model."""
    result = _call_backend(ctx, lambda c: _infer_if_loaded(c, prompt), "Running inference...")
    if result is None:
        console.print("[yellow]Cannot infer: no LLM loaded[/yellow]")
        raise typer.Exit(1)

    console.print(Panel(Text(result.output), title="[bold]Output[/bold]", border_style="green"))
    console.print(Panel(Text(result.final_prompt), title="[bold]Final prompt[/bold]", border_style="dim"))
    if result.rag_used:
        console.print(f"[bold]RAG used ({len(result.rag_used)})[/bold]")
        for passage in result.rag_used:
            console.print(f"  - {escape(passage)}")
    console.print("[dim]Inference completed[/dim]")


# ── RAG ──────────────────────────────────────────────────────────


@rag_app.command("list")
def rag_list(ctx: typer.Context) -> None:
    """List documents in the retrieval store."""
    docs = _call_backend(ctx, lambda c: c.list_documents(), "Listing documents...")

    table = Table(title="Documents")
    table.add_column("ID", style="bold cyan", no_wrap=True)
    table.add_column("Text")
    for doc in docs:
        preview = doc.text if len(doc.text) <= 80 else doc.text[:77] + "..."
        table.add_row(doc.id, preview)

    console.print(table)
    console.print(f"\n[dim]{len(docs)} documents[/dim]")


@rag_app.command("add")
def rag_add(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Document text"),
) -> None:
    """Add a document to the retrieval store."""
    _call_backend(ctx, lambda c: c.add_document(text), "Adding document...")
    console.print("[green]Document added[/green]")


@rag_app.command("clear")
def rag_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Remove every document from the retrieval store."""
    if not yes and not typer.confirm("Delete all documents?"):
        raise typer.Exit()
    _call_backend(ctx, lambda c: c.clear_documents(), "Clearing documents...")
    console.print("[green]Document store cleared[/green]")


@rag_app.command("search")
def rag_search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search query"),
    top_k: int = typer.Option(3, "--top-k", "-k", help="Maximum results (1-20)."),
    threshold: float = typer.Option(
        0.35, "--threshold", "-t", help="Minimum similarity (0-1)."
    ),
) -> None:
    """Search the retrieval store."""
    results = _call_backend(
        ctx,
        lambda c: c.search_documents(query, top_k=top_k, similarity_threshold=threshold),
        "Searching...",
    )
    if not results:
        console.print("[dim]No matching documents[/dim]")
        return
    for i, text in enumerate(results, 1):
        console.print(f"[bold]{i}.[/bold] {text}")


# ── Config ───────────────────────────────────────────────────────


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the resolved client configuration."""
    config = _load_config(ctx)

    table = Table(title="Client Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Base URL", config.base_url)
    table.add_row("Default language", config.default_lang)
    table.add_row("Reveal interval", f"{config.reveal_interval * 1000:.0f} ms")
    table.add_row("Request timeout", f"{config.request_timeout:.0f} s")
    table.add_row("Reconnect delay", f"{config.reconnect_delay:.1f} s")
    table.add_row("Chat endpoint", config.endpoints.chat)
    table.add_row("Translate endpoint", config.endpoints.translate)
    table.add_row("Metrics endpoint", config.endpoints.metrics)
    table.add_row("Backend timeout", f"{config.backend_timeout:.0f} s")
    table.add_row("Download timeout", f"{config.download_timeout:.0f} s")
    table.add_row("Measure timeout", f"{config.measure_timeout:.0f} s")
    console.print(table)
