"""
Manages a Rich Live display for a batch run: overall progress, one bar per
active conversion, and running totals. The display polls the queue snapshot,
so it never slows down the conversions it is watching.
"""

import asyncio
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.table import Table
from rich.text import Text

from m3u8_cli.core.queue_manager import QueueManager
from m3u8_cli.models.job import JobStatus, QueueSnapshot
from m3u8_cli.utils.formatting import format_timestamp


class ProgressManager:
    """Live view of a `QueueManager`, refreshed from its snapshots."""

    def __init__(
        self,
        console: Console,
        manager: QueueManager,
        refresh_interval: float = 0.25,
    ):
        self.console = console
        self.manager = manager
        self.refresh_interval = refresh_interval

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TextColumn("{task.fields[position]}"),
            console=console,
            transient=False,
        )
        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=console,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._refresher: asyncio.Task | None = None
        self._start_time: datetime | None = None
        self._overall_task_id: TaskID | None = None
        self._active_tasks: dict[str, TaskID] = {}
        self._peak_concurrent = 0

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=7),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self, snapshot: QueueSnapshot) -> Panel:
        elapsed = (
            (datetime.now() - self._start_time).total_seconds()
            if self._start_time
            else 0
        )
        header_text = Text()
        header_text.append("🎬 M3U8 Converter ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(
            f"Session: {int(elapsed // 3600):02d}:"
            f"{int((elapsed % 3600) // 60):02d}:{int(elapsed % 60):02d}",
            style="yellow",
        )
        header_text.append(" │ ", style="dim")
        header_text.append(
            "running" if snapshot.running else "idle",
            style="green" if snapshot.running else "dim",
        )
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self, snapshot: QueueSnapshot) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_row(
            "Completed:",
            f"[green]{snapshot.count(JobStatus.COMPLETED)}[/green]",
            "Failed:",
            f"[red]{snapshot.count(JobStatus.FAILED)}[/red]",
        )
        stats_table.add_row(
            "Pending:",
            f"[yellow]{len(snapshot.pending)}[/yellow]",
            "Cancelled:",
            f"[magenta]{snapshot.count(JobStatus.CANCELLED)}[/magenta]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{len(snapshot.in_progress)}[/cyan]",
            "Peak:",
            f"[magenta]{self._peak_concurrent}[/magenta]",
        )
        combined = Table.grid()
        combined.add_row(stats_table)
        if self._overall_task_id is not None:
            combined.add_row(self.overall_progress)
        return Panel(
            combined, title="[bold]📊 Session Statistics[/bold]", border_style="blue"
        )

    def _generate_progress_panel(self) -> Panel:
        if not self._active_tasks:
            return Panel(
                Text(
                    "Waiting for conversions to start...",
                    style="dim italic",
                    justify="center",
                ),
                title="[bold]📥 Active Conversions[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]📥 Active Conversions ({len(self._active_tasks)})[/bold]",
            border_style="green",
        )

    def _sync_tasks(self, snapshot: QueueSnapshot) -> None:
        """Adds, advances and retires one progress bar per in-flight job."""
        active = {view.destination_name: view for view in snapshot.in_progress}
        for name in list(self._active_tasks):
            if name not in active:
                self.progress.remove_task(self._active_tasks.pop(name))

        for name, view in active.items():
            position = format_timestamp(view.progress.elapsed)
            if view.progress.total_length:
                position += f" / {format_timestamp(view.progress.total_length)}"
            if name not in self._active_tasks:
                self._active_tasks[name] = self.progress.add_task(
                    name, total=100, position=position
                )
            self.progress.update(
                self._active_tasks[name],
                completed=view.progress.percent,
                position=position,
            )

        self._peak_concurrent = max(self._peak_concurrent, len(active))
        if self._overall_task_id is not None:
            self.overall_progress.update(
                self._overall_task_id,
                total=max(snapshot.total, 1),
                completed=len(snapshot.history),
            )

    def refresh(self) -> QueueSnapshot:
        """Pulls a fresh snapshot and redraws every panel."""
        snapshot = self.manager.snapshot()
        self._sync_tasks(snapshot)
        if self._layout is not None:
            self._layout["header"].update(self._generate_header(snapshot))
            self._layout["stats"].update(self._generate_stats_panel(snapshot))
            self._layout["progress"].update(self._generate_progress_panel())
        return snapshot

    def get_statistics(self) -> dict:
        return {"peak_concurrent": self._peak_concurrent}

    async def _refresh_forever(self) -> None:
        while True:
            self.refresh()
            await asyncio.sleep(self.refresh_interval)

    async def __aenter__(self):
        self._start_time = datetime.now()
        self._overall_task_id = self.overall_progress.add_task(
            "Overall Progress", total=1
        )
        self._layout = self._create_layout()
        self.refresh()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._refresher = asyncio.create_task(self._refresh_forever())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._refresher:
            self._refresher.cancel()
            try:
                await self._refresher
            except asyncio.CancelledError:
                pass
        self.refresh()
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()
