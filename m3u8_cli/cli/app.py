"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from m3u8_cli import __version__
from m3u8_cli.core.queue_manager import QueueManager
from m3u8_cli.exceptions import M3u8CliError
from m3u8_cli.media.converter import FFmpegConverter
from m3u8_cli.media.playlist import fetch_playlist
from m3u8_cli.models.config import AppConfig
from m3u8_cli.models.job import JobStatus
from m3u8_cli.storage.config_manager import ConfigManager

from .formatters import (
    print_config,
    print_playlist_info,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager
from .shell import CommandShell

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("m3u8_cli")

app = typer.Typer(
    name="m3u8-cli",
    help=(
        "Queue M3U8 streams and convert them to local video files with ffmpeg."
        " Run without a command for the interactive shell."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "m3u8-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def build_manager(config: AppConfig) -> QueueManager:
    """Wires a queue manager to the ffmpeg engine using the loaded settings."""
    return QueueManager(
        FFmpegConverter.from_config(config),
        max_concurrency=config.max_concurrency,
        container=config.container,
    )


def apply_presets(manager: QueueManager, config: AppConfig) -> None:
    """Applies the output directory and naming pattern stored in the config."""
    if config.output_directory:
        try:
            manager.set_output_directory(config.output_directory)
        except M3u8CliError as e:
            log.warning(f"[yellow]Ignoring configured output directory:[/] {e}")
    if config.naming_pattern:
        try:
            manager.set_naming_pattern(config.naming_pattern)
        except M3u8CliError as e:
            log.warning(f"[yellow]Ignoring configured naming pattern:[/] {e}")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """M3U8 Queue Converter CLI"""
    if version:
        console.print(f"[bold]m3u8-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("m3u8_cli").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]m3u8-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config = ConfigManager(CONFIG_FILE).load_config()
        print_config(CONFIG_FILE, config.model_dump(include=AppConfig.get_ini_keys()))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        shell_command()


@app.command()
def init(
    workers: int = typer.Option(
        4, "-w", "--workers", help="Number of simultaneous conversions."
    ),
    use_gpu: bool = typer.Option(
        False, "--gpu/--no-gpu", help="Encode with NVENC (h264_nvenc)."
    ),
    ffmpeg_path: str = typer.Option(
        "ffmpeg", "--ffmpeg", help="Path to the ffmpeg executable."
    ),
    output_directory: str = typer.Option(
        "", "-o", "--output", help="Default output directory for the shell."
    ),
    naming_pattern: str = typer.Option(
        "", "-n", "--name", help="Default naming pattern for the shell."
    ),
    container: str = typer.Option(
        "mp4", "--container", help="Output container (mp4, mkv, mov, ts)."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "max_concurrency": workers,
        "use_gpu": use_gpu,
        "ffmpeg_path": ffmpeg_path,
        "output_directory": output_directory,
        "naming_pattern": naming_pattern,
        "container": container,
    }
    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except M3u8CliError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    if shutil.which(ffmpeg_path) is None:
        console.print(
            f"[yellow]⚠️  '{ffmpeg_path}' was not found on PATH; "
            "conversions will fail until it is installed.[/yellow]"
        )


@app.command(name="shell")
def shell_command():
    """Start the interactive shell (the default when no command is given)."""
    config = ConfigManager(CONFIG_FILE).load_config()

    async def _shell_async():
        manager = build_manager(config)
        apply_presets(manager, config)
        try:
            await CommandShell(manager, console).run()
        finally:
            if manager.is_running or manager.snapshot().in_progress:
                console.print(
                    "[dim]Waiting for active conversions to cancel...[/dim]"
                )
            await manager.wait_idle()

    asyncio.run(_shell_async())


@app.command(name="run")
def run_command(
    sources: list[str] = typer.Argument(  # noqa: B008
        ..., help="Stream URLs or local media files to convert."
    ),
    output_directory: str | None = typer.Option(
        None, "-o", "--output", help="Directory to write the converted files to."
    ),
    naming_pattern: str | None = typer.Option(
        None, "-n", "--name", help="Naming pattern; files become <name>_<n>."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous conversions."
    ),
    use_gpu: bool | None = typer.Option(
        None, "--gpu/--no-gpu", help="Encode with NVENC (h264_nvenc)."
    ),
):
    """Convert the given sources in one go, with a live progress display."""
    cli_options = {
        key: value
        for key, value in {
            "output_directory": output_directory,
            "naming_pattern": naming_pattern,
            "max_concurrency": workers,
            "use_gpu": use_gpu,
        }.items()
        if value is not None
    }

    async def _run_async() -> bool:
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        if not config.output_directory or not config.naming_pattern:
            console.print(
                "[red]✗ An output directory (-o) and naming pattern (-n) are "
                "required.[/red]"
            )
            raise typer.Exit(code=1)

        manager = build_manager(config)
        manager.set_output_directory(config.output_directory)
        manager.set_naming_pattern(config.naming_pattern)
        for source in sources:
            try:
                name = manager.enqueue(source)
                log.info(f"Queued [cyan]{name}[/cyan]")
            except M3u8CliError as e:
                log.error(f"[red]✗ {e}[/red]")

        if not manager.snapshot().pending:
            console.print("[yellow]Nothing to convert.[/yellow]")
            raise typer.Exit(code=1)

        start_time = time.monotonic()
        async with ProgressManager(console, manager) as progress:
            manager.start()
            try:
                await manager.wait_idle()
            except asyncio.CancelledError:
                if manager.is_running:
                    manager.stop()
                await manager.wait_idle()
                raise

        snapshot = manager.snapshot()
        print_summary_panel(
            snapshot,
            time.monotonic() - start_time,
            progress.get_statistics()["peak_concurrent"],
        )
        return snapshot.count(JobStatus.FAILED) == 0

    try:
        all_ok = asyncio.run(_run_async())
    except M3u8CliError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    if not all_ok:
        raise typer.Exit(code=1)


@app.command()
def probe(
    source: str = typer.Argument(..., help="Playlist URL or local .m3u8 file."),
):
    """Inspect an M3U8 playlist: variants, segment count and duration."""
    try:
        info = asyncio.run(fetch_playlist(source))
    except M3u8CliError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    print_playlist_info(info)


@app.command()
def validate():
    """Validate the configuration and check that ffmpeg can be found."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
    except M3u8CliError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
    ffmpeg_location = shutil.which(config.ffmpeg_path)
    print_validation_table(config, ffmpeg_location)
    if ffmpeg_location is None:
        raise typer.Exit(code=1)
