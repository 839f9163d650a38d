"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from m3u8_cli.media.playlist import PlaylistInfo
from m3u8_cli.models.config import AppConfig
from m3u8_cli.models.job import JobStatus, JobView, QueueSnapshot
from m3u8_cli.utils.formatting import (
    format_duration,
    format_timestamp,
    shorten,
)

STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.IN_PROGRESS: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.CANCELLED: "magenta",
    JobStatus.FAILED: "red",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `m3u8-cli init --force` to write a fresh one.",
        ],
        "IOFailureError": [
            "• Check that the output directory is writable.",
            "• Make sure the disk is not full.",
        ],
        "PlaylistError": [
            "• Make sure the URL points at an .m3u8 playlist.",
            "• Some servers need the page's cookies or headers; try the URL in a browser.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def _percent_style(percent: int) -> str:
    if percent < 25:
        return "red"
    if percent < 80:
        return "yellow"
    return "blue"


def format_job_state(view: JobView) -> Text:
    """Renders the status column: a colour-coded state, or live progress."""
    if view.status is JobStatus.IN_PROGRESS:
        progress = view.progress
        text = Text()
        if progress.total_length:
            text.append(
                f"{format_timestamp(progress.elapsed)} of "
                f"{format_timestamp(progress.total_length)} "
            )
        else:
            text.append(f"{format_timestamp(progress.elapsed)} ")
        text.append(f"({progress.percent}%)", style=_percent_style(progress.percent))
        return text

    text = Text(view.status.value, style=STATUS_STYLES[view.status])
    if view.status is JobStatus.FAILED and view.error_message:
        text.append(". Error: ", style="red")
        text.append(view.error_message, style="dark_red")
    return text


def build_queue_table(snapshot: QueueSnapshot, width: int = 60) -> Table:
    """Builds one table holding the pending, running and finished jobs."""
    table = Table(box=box.SIMPLE_HEAD, expand=True, show_edge=False)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Source", style="dim", no_wrap=True, max_width=width)
    table.add_column("Status")
    table.add_column("Time", justify="right", style="dim")

    for view in (*snapshot.in_progress, *snapshot.pending, *snapshot.history):
        time_taken = (
            format_duration(view.time_taken.total_seconds())
            if view.time_taken is not None
            else ""
        )
        table.add_row(
            view.destination_name,
            shorten(view.source_uri, width),
            format_job_state(view),
            time_taken,
        )
    return table


def build_counts_line(snapshot: QueueSnapshot) -> Text:
    text = Text()
    text.append("Running" if snapshot.running else "Idle", style="bold")
    text.append(" │ ", style="dim")
    for status in JobStatus:
        text.append(f"{status.value}: ", style="dim")
        text.append(str(snapshot.count(status)), style=STATUS_STYLES[status])
        text.append("  ")
    return text


def print_status(console: Console, snapshot: QueueSnapshot) -> None:
    """Prints the queue status the way the `status` shell command shows it."""
    if not snapshot.total:
        console.print("[dim]The queue is empty.[/dim]")
        return
    console.print(
        Panel(
            Group(build_counts_line(snapshot), build_queue_table(snapshot)),
            title="[bold]📥 Download Queue[/bold]",
            border_style="cyan",
        )
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: AppConfig, ffmpeg_location: str | None):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Max Concurrency:", str(config.max_concurrency))
    table.add_row("Video Codec:", config.effective_video_codec)
    table.add_row("Container:", f".{config.container}")
    table.add_row(
        "ffmpeg:",
        f"[green]{ffmpeg_location}[/green]"
        if ffmpeg_location
        else f"[red]✗ '{config.ffmpeg_path}' not found[/red]",
    )
    table.add_row(
        "Output Directory:", f"[dim]{config.output_directory or '(not set)'}[/dim]"
    )
    table.add_row("Naming Pattern:", f"[dim]{config.naming_pattern or '(not set)'}[/dim]")

    ok = ffmpeg_location is not None
    console.print(
        Panel(
            table,
            title=(
                "[bold green]✓ Validated Settings[/bold green]"
                if ok
                else "[bold yellow]⚠ Settings[/bold yellow]"
            ),
            border_style="green" if ok else "yellow",
        )
    )


def print_playlist_info(info: PlaylistInfo):
    """Displays what a playlist probe found."""
    console = Console()
    if info.is_master:
        table = Table(title=f"Variants ({len(info.variants)})", box=box.SIMPLE_HEAD)
        table.add_column("Bandwidth", justify="right", style="green")
        table.add_column("Resolution", style="cyan")
        table.add_column("Codecs", style="dim")
        table.add_column("URI", style="dim", overflow="fold")
        for variant in info.variants:
            table.add_row(
                f"{variant.bandwidth / 1000:.0f} kb/s" if variant.bandwidth else "?",
                variant.resolution or "?",
                variant.codecs,
                variant.uri,
            )
        console.print(
            Panel(table, title="[bold]Master Playlist[/bold]", border_style="cyan")
        )
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Segments:", str(info.segment_count))
    table.add_row(
        "Duration:",
        format_timestamp(info.duration) if not info.is_live else "[yellow]live[/yellow]",
    )
    if info.target_duration is not None:
        table.add_row("Target Duration:", f"{info.target_duration}s")
    console.print(
        Panel(table, title="[bold]Media Playlist[/bold]", border_style="cyan")
    )


def print_summary_panel(
    snapshot: QueueSnapshot, duration_s: float, peak_concurrent: int = 0
):
    """Displays a final summary of a batch run."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Completed:",
        f"[bold green]{snapshot.count(JobStatus.COMPLETED)}[/bold green]",
    )
    if cancelled := snapshot.count(JobStatus.CANCELLED):
        stats_table.add_row("○ Cancelled:", f"[magenta]{cancelled}[/magenta]")
    if failed := snapshot.count(JobStatus.FAILED):
        stats_table.add_row("✗ Failed:", f"[bold red]{failed}[/bold red]")
    stats_table.add_row("", "")
    stats_table.add_row("⏱ Duration:", format_duration(duration_s))
    if peak_concurrent:
        stats_table.add_row("⇉ Peak Parallel:", str(peak_concurrent))

    failures = [v for v in snapshot.history if v.status is JobStatus.FAILED]
    content: list[Any] = [stats_table]
    if failures:
        failure_table = Table(box=box.SIMPLE_HEAD, title="Failures", expand=True)
        failure_table.add_column("Name", style="cyan", no_wrap=True)
        failure_table.add_column("Error", style="red")
        for view in failures:
            failure_table.add_row(view.destination_name, view.error_message or "")
        content.append(failure_table)

    console.print(
        Panel(
            Group(*content),
            title="[bold]Session Summary[/bold]",
            border_style="green" if not failures else "yellow",
            expand=False,
        )
    )
