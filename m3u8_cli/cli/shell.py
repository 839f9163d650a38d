"""
The interactive shell: reads a command per line, routes it to the queue
manager and prints the result.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from m3u8_cli.cli.formatters import print_status
from m3u8_cli.core.queue_manager import QueueManager
from m3u8_cli.exceptions import InvalidStateError, M3u8CliError

log = logging.getLogger(__name__)

PROMPT = "md> "
INPUT_THREAD_NAME = "m3u8-cli-input"


@dataclass(frozen=True)
class CommandResult:
    """What a shell command reports back to the read loop."""

    success: bool = True
    message: str | None = None
    should_exit: bool = False

    @classmethod
    def ok(cls, message: str | None = None) -> "CommandResult":
        return cls(True, message)

    @classmethod
    def fail(cls, message: str) -> "CommandResult":
        return cls(False, message)


@dataclass(frozen=True)
class Command:
    name: str
    handler: Callable[[str | None], CommandResult]
    description: str
    usage: str = ""
    needs_argument: bool = False


class CommandShell:
    """Routes parsed shell input to a `QueueManager`."""

    def __init__(self, manager: QueueManager, console: Console | None = None):
        self.manager = manager
        self.console = console or Console()
        self._commands: dict[str, Command] = {}
        for command in (
            Command("help", self._help, "Show available commands."),
            Command("exit", self._exit, "Stop any active run and leave."),
            Command("clear", self._clear, "Clear the screen."),
            Command(
                "add",
                self._add,
                "Queue a stream URL or local file.",
                "add <url|path>",
                needs_argument=True,
            ),
            Command("remove", self._remove, "Remove the last added pending job."),
            Command(
                "output",
                self._output,
                "Set the output directory.",
                "output <directory>",
                needs_argument=True,
            ),
            Command(
                "name",
                self._name,
                "Set the naming pattern for new jobs.",
                "name <pattern>",
                needs_argument=True,
            ),
            Command("status", self._status, "Show pending, active and finished jobs."),
            Command("start", self._start, "Start converting the queue."),
            Command("stop", self._stop, "Cancel the active run."),
            Command(
                "history-clear", self._history_clear, "Forget finished jobs."
            ),
        ):
            self._commands[command.name] = command

    @property
    def commands(self) -> dict[str, Command]:
        return dict(self._commands)

    @staticmethod
    def parse(line: str) -> tuple[str, str | None]:
        """Splits a line into a lower-cased command name and the rest."""
        name, _, rest = line.strip().partition(" ")
        return name.lower(), rest.strip() or None

    def execute(self, line: str) -> CommandResult:
        """Runs one line of input. Manager errors become failed results."""
        if not line.strip():
            return CommandResult.ok()
        name, argument = self.parse(line)
        log.debug(f"Shell command: {name!r} argument: {argument!r}")
        command = self._commands.get(name)
        if command is None:
            return CommandResult.fail(f"Unknown command: '{name}'")
        if command.needs_argument and not argument:
            return CommandResult.fail(f"Usage: {command.usage}")
        try:
            return command.handler(argument)
        except M3u8CliError as e:
            return CommandResult.fail(str(e))

    async def run(
        self, read_line: Callable[[str], Awaitable[str]] | None = None
    ) -> None:
        """
        Reads and executes commands until `exit`, EOF or Ctrl+C.

        Input is read in a worker thread so conversions keep running on the
        event loop while the prompt waits. If this coroutine is cancelled
        (Ctrl+C under `asyncio.run`), the active run is stopped first.
        """
        read_line = read_line or self._read_line
        self.console.print(
            "Welcome to [bold]m3u8-cli[/bold]! Type [green]help[/green] to see "
            "available commands.\nYou can press Ctrl + C anytime to exit.\n"
        )
        while True:
            try:
                line = await read_line(PROMPT)
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                self._exit(None)
                break
            except asyncio.CancelledError:
                self.console.print()
                self._exit(None)
                raise

            result = self.execute(line)
            if result.message:
                style = "green" if result.success else "red"
                self.console.print(f"[{style}]{escape(result.message)}[/{style}]")
            if result.should_exit:
                break
        self.console.print("Exiting...")

    async def _read_line(self, prompt: str) -> str:
        """
        Reads one line on a daemon thread. Unlike the default executor, a
        thread blocked in `input()` here does not hold up interpreter exit.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()

        def deliver(result: str | None, error: BaseException | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def read() -> None:
            try:
                line = self.console.input(prompt)
            except (EOFError, KeyboardInterrupt, OSError) as e:
                result, error = None, e
            else:
                result, error = line, None
            try:
                loop.call_soon_threadsafe(deliver, result, error)
            except RuntimeError:
                # Event loop already closed
                pass

        threading.Thread(target=read, name=INPUT_THREAD_NAME, daemon=True).start()
        return await future

    # -- Handlers ---------------------------------------------------------

    def _help(self, _argument: str | None) -> CommandResult:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="bold green")
        table.add_column()
        for command in self._commands.values():
            table.add_row(command.usage or command.name, command.description)
        self.console.print(table)
        return CommandResult.ok()

    def _exit(self, _argument: str | None) -> CommandResult:
        if self.manager.is_running:
            try:
                self.manager.stop()
            except InvalidStateError:
                # The queue drained on its own in the meantime
                pass
        return CommandResult(True, None, should_exit=True)

    def _clear(self, _argument: str | None) -> CommandResult:
        self.console.clear()
        return CommandResult.ok()

    def _add(self, argument: str | None) -> CommandResult:
        name = self.manager.enqueue(argument or "")
        return CommandResult.ok(f"Added as '{name}'.")

    def _remove(self, _argument: str | None) -> CommandResult:
        name = self.manager.dequeue_last()
        return CommandResult.ok(f"Removed '{name}'.")

    def _output(self, argument: str | None) -> CommandResult:
        directory = self.manager.set_output_directory(argument or "")
        return CommandResult.ok(f"Output directory set to '{directory}'.")

    def _name(self, argument: str | None) -> CommandResult:
        pattern = self.manager.set_naming_pattern(argument or "")
        return CommandResult.ok(f"Naming pattern set to '{pattern}'.")

    def _status(self, _argument: str | None) -> CommandResult:
        print_status(self.console, self.manager.snapshot())
        return CommandResult.ok()

    def _start(self, _argument: str | None) -> CommandResult:
        self.manager.start()
        return CommandResult.ok("Started.")

    def _stop(self, _argument: str | None) -> CommandResult:
        discarded = self.manager.stop()
        message = "Stopped."
        if discarded:
            message += f" Discarded {len(discarded)} pending job(s)."
        return CommandResult.ok(message)

    def _history_clear(self, _argument: str | None) -> CommandResult:
        count = self.manager.clear_history()
        return CommandResult.ok(f"Cleared {count} finished job(s).")
