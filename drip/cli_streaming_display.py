"""Live terminal display for stream sessions.

Provides a multi-panel Rich Live display that shows revealed text as it
appears, a timestamped activity log, and, for the metrics feed, resource
gauges that refresh on every snapshot.
"""

from __future__ import annotations

import time
from collections import deque

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from drip.schemas.events import MetricsSnapshot
from drip.stream.events import SessionEvent, SessionEventType, SessionListener
from drip.stream.session import SessionKind

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(value: float) -> str:
    """Render a byte count with base-1024 units and two decimals."""
    if value <= 0:
        return "0 B"
    unit = 0
    while value >= 1024 and unit < len(_BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.2f} {_BYTE_UNITS[unit]}"


def _gauge_color(percent: float) -> str:
    if percent >= 90:
        return "red"
    if percent >= 70:
        return "yellow"
    return "green"


_STATUS_MARKUP: dict[str, str] = {
    "idle": "[dim]○ idle[/dim]",
    "running": "[bold cyan]◉ streaming[/bold cyan]",
    "completed": "[bold green]● done[/bold green]",
    "failed": "[bold red]✗ failed[/bold red]",
    "cancelled": "[bold yellow]⚠ cancelled[/bold yellow]",
}


class StreamingSessionDisplay:
    """Multi-panel display for one stream session.

    Rich Layout structure:
    - header (size=3): session kind, status, elapsed time, word count
    - main (ratio=1):
      - output (ratio=3): revealed text, or metrics gauges for the feed
      - activity (ratio=1, min=30): timestamped log lines
    """

    def __init__(self, console: Console, kind: SessionKind) -> None:
        self._console = console
        self._kind = kind

        self._start_time = time.monotonic()
        self._status = "idle"
        self._text = ""
        self._words = 0
        self._queued = 0
        self._connected = False
        self._metrics: MetricsSnapshot | None = None
        self._activity_log: deque[tuple[float, str]] = deque(maxlen=50)

        self._live: Live | None = None

    @property
    def text(self) -> str:
        return self._text

    @property
    def status(self) -> str:
        return self._status

    @property
    def metrics(self) -> MetricsSnapshot | None:
        return self._metrics

    def __enter__(self) -> StreamingSessionDisplay:
        """Start the Rich Live display."""
        self._start_time = time.monotonic()
        self._live = Live(
            self._build_layout(),
            console=self._console,
            refresh_per_second=12,
            transient=True,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *args: object) -> None:
        """Stop the Rich Live display."""
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def create_listener(self) -> SessionListener:
        """Create a listener for the session event emitter."""

        def _handle(event: SessionEvent) -> None:
            self._handle_event(event)
            self._refresh()

        return _handle

    # ── Event handling ────────────────────────────────────────────

    def _handle_event(self, event: SessionEvent) -> None:
        """Apply one session event to the display state."""
        etype = event.type
        data = event.data

        if etype == SessionEventType.SESSION_STARTED:
            self._status = "running"
            self._log(f"Session [bold]{event.session_id}[/bold] started")

        elif etype == SessionEventType.LOG:
            self._log(escape(str(data.get("line", ""))))

        elif etype == SessionEventType.WORDS_QUEUED:
            self._queued = int(data.get("queued", 0))

        elif etype == SessionEventType.WORD_REVEALED:
            self._text = str(data.get("text", self._text))
            self._words += 1
            self._queued = max(0, self._queued - 1)

        elif etype == SessionEventType.METRICS_UPDATED:
            self._metrics = MetricsSnapshot.model_validate(data.get("metrics", {}))

        elif etype == SessionEventType.CONNECTION_CHANGED:
            self._connected = bool(data.get("connected"))
            state = "[green]connected[/green]" if self._connected else "[red]disconnected[/red]"
            self._log(f"Metrics feed {state}")

        elif etype == SessionEventType.RECONNECT_SCHEDULED:
            self._log(
                f"[yellow]Reconnecting in {data.get('delay', 0):.1f}s "
                f"(attempt {data.get('attempt', '?')})[/yellow]"
            )

        elif etype == SessionEventType.SESSION_COMPLETED:
            self._status = "completed"
            self._queued = 0
            self._log("[green]Session complete[/green]")

        elif etype == SessionEventType.SESSION_FAILED:
            self._status = "failed"
            self._queued = 0
            self._log(f"[red]Failed:[/red] {escape(str(data.get('error', '')))}")

        elif etype == SessionEventType.SESSION_CANCELLED:
            self._status = "cancelled"
            self._queued = 0
            self._log("[yellow]Cancelled[/yellow]")

    def _log(self, message: str) -> None:
        """Add a timestamped entry to the activity log."""
        elapsed = time.monotonic() - self._start_time
        self._activity_log.append((elapsed, message))

    def _refresh(self) -> None:
        """Update the Live display."""
        if self._live:
            try:
                self._live.update(self._build_layout())
            except Exception:
                pass  # Swallow rendering errors during rapid updates

    # ── Layout builders ───────────────────────────────────────────

    def _build_layout(self) -> Layout:
        """Build the full Rich Layout."""
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main", ratio=1),
        )
        layout["main"].split_row(
            Layout(name="output", ratio=3),
            Layout(name="activity", ratio=1, minimum_size=30),
        )
        layout["header"].update(self._build_header_panel())
        if self._kind == SessionKind.METRICS:
            layout["main"]["output"].update(self._build_metrics_panel())
        else:
            layout["main"]["output"].update(self._build_output_panel())
        layout["main"]["activity"].update(self._build_activity_panel())
        return layout

    def _build_header_panel(self) -> Panel:
        elapsed = time.monotonic() - self._start_time
        minutes = int(elapsed // 60)
        seconds = int(elapsed % 60)
        status = _STATUS_MARKUP.get(self._status, self._status)
        if self._kind == SessionKind.METRICS:
            detail = "[green]live[/green]" if self._connected else "[red]offline[/red]"
        else:
            detail = f"[dim]Words:[/dim] {self._words}  [dim]Queued:[/dim] {self._queued}"
        return Panel(
            Text.from_markup(
                f"{status}  [dim]Elapsed:[/dim] {minutes}:{seconds:02d}  {detail}"
            ),
            title=f"[bold blue]drip[/bold blue] {self._kind.value}",
            border_style="blue",
        )

    def _build_output_panel(self) -> Panel:
        if self._text:
            return Panel(Text(self._text), title="[bold]Output[/bold]", border_style="green")
        return Panel(
            Text("Waiting for output...", style="dim", justify="center"),
            title="[bold]Output[/bold]",
            border_style="dim",
        )

    def _build_metrics_panel(self) -> Panel:
        snap = self._metrics
        if snap is None:
            return Panel(
                Text("Waiting for metrics...", style="dim", justify="center"),
                title="[bold]System[/bold]",
                border_style="dim",
            )
        return Panel(
            build_metrics_table(snap), title="[bold]System[/bold]", border_style="green"
        )

    def _build_activity_panel(self) -> Panel:
        text = Text()
        entries = list(self._activity_log)[-20:]
        for elapsed, message in entries:
            minutes = int(elapsed // 60)
            seconds = int(elapsed % 60)
            text.append(f"  {minutes:02d}:{seconds:02d}  ", style="dim")
            text.append_text(Text.from_markup(message))
            text.append("\n")

        if not entries:
            text.append("  Waiting for events...", style="dim")

        return Panel(text, title="[bold]Activity[/bold]", border_style="dim")


def build_metrics_table(snap: MetricsSnapshot) -> Table:
    """Render one metrics snapshot as a gauge table."""
    table = Table.grid(padding=(0, 2))
    table.add_column("Resource", style="bold", width=8)
    table.add_column("Gauge", width=30)
    table.add_column("Detail")

    def _row(label: str, percent: float, detail: str) -> None:
        bar = ProgressBar(
            total=100, completed=min(percent, 100), width=30,
            complete_style=_gauge_color(percent),
        )
        table.add_row(label, bar, f"{percent:5.1f}%  {detail}")

    _row("CPU", snap.cpu_percent, "")
    _row(
        "RAM", snap.ram.percent,
        f"{format_bytes(snap.ram.used_bytes)} / {format_bytes(snap.ram.total_bytes)}",
    )
    _row(
        "Swap", snap.swap.percent,
        f"{format_bytes(snap.swap.used_bytes)} / {format_bytes(snap.swap.total_bytes)}",
    )
    if snap.vram.available:
        _row(
            "VRAM", snap.vram.percent,
            f"{format_bytes(snap.vram.used_bytes)} / {format_bytes(snap.vram.total_bytes)}"
            f" (reserved {format_bytes(snap.vram.reserved_bytes)})",
        )
    else:
        table.add_row("VRAM", Text("not available", style="dim"), "")
    table.add_row(
        "Process",
        Text(f"pid {snap.process.pid}"),
        f"cpu {snap.process.cpu_percent:.1f}%  rss {format_bytes(snap.process.rss_bytes)}"
        f"  vms {format_bytes(snap.process.vms_bytes)}",
    )
    return table
