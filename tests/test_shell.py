import asyncio
import io
import threading

import pytest
from conftest import url, wait_until
from rich.console import Console

from m3u8_cli.cli.shell import INPUT_THREAD_NAME, PROMPT, CommandShell
from m3u8_cli.models.job import JobStatus


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def shell(manager, output):
    return CommandShell(manager, Console(file=output, width=120, color_system=None))


def scripted(lines):
    """An async line reader that replays `lines`, then signals EOF."""
    remaining = list(lines)

    async def read_line(_prompt):
        await asyncio.sleep(0)
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return read_line


@pytest.mark.parametrize(
    "line,expected",
    [
        ("add https://x.com/a.m3u8", ("add", "https://x.com/a.m3u8")),
        ("  OUTPUT   /tmp/my videos ", ("output", "/tmp/my videos")),
        ("status", ("status", None)),
    ],
)
def test_parse(line, expected):
    assert CommandShell.parse(line) == expected


def test_unknown_command(shell):
    result = shell.execute("frobnicate now")
    assert not result.success
    assert result.message == "Unknown command: 'frobnicate'"


def test_blank_line_is_ignored(shell):
    result = shell.execute("   ")
    assert result.success and result.message is None


@pytest.mark.parametrize("command", ["add", "output", "name"])
def test_missing_argument_shows_usage(shell, command):
    result = shell.execute(command)
    assert not result.success
    assert result.message.startswith(f"Usage: {command} <")


def test_add_and_remove(shell, manager):
    assert shell.execute(f"add {url(1)}").message == "Added as 'clip_1'."
    assert shell.execute(f"add {url(2)}").message == "Added as 'clip_2'."
    assert shell.execute("remove").message == "Removed 'clip_2'."
    assert [v.destination_name for v in manager.snapshot().pending] == ["clip_1"]


def test_manager_errors_become_failed_results(shell):
    result = shell.execute("add not-a-url")
    assert not result.success
    assert "neither an absolute URI nor an existing path" in result.message

    result = shell.execute("remove")
    assert not result.success
    assert "no pending jobs" in result.message


def test_output_and_name(shell, manager, tmp_path):
    target = tmp_path / "elsewhere"
    result = shell.execute(f"output {target}")
    assert result.success
    assert manager.output_directory == target.resolve()

    assert shell.execute("name episode").message == "Naming pattern set to 'episode'."
    assert shell.execute(f"add {url(1)}").message == "Added as 'episode_1'."


def test_status_lists_jobs(shell, output):
    shell.execute(f"add {url(1)}")
    assert shell.execute("status").success
    text = output.getvalue()
    assert "clip_1" in text
    assert "Pending" in text


def test_status_on_empty_queue(shell, output):
    shell.execute("status")
    assert "The queue is empty." in output.getvalue()


def test_help_lists_commands(shell, output):
    shell.execute("help")
    text = output.getvalue()
    for name in shell.commands:
        assert name in text


def test_start_and_stop(shell, manager, engine):
    for n in range(3):
        shell.execute(f"add {url(n)}")

    async def scenario():
        assert shell.execute("start").message == "Started."
        assert not shell.execute("start").success
        await wait_until(lambda: len(engine.started) == 2)
        assert shell.execute("stop").message == (
            "Stopped. Discarded 1 pending job(s)."
        )
        await manager.wait_idle()

    asyncio.run(scenario())
    statuses = {v.status for v in manager.snapshot().history}
    assert statuses == {JobStatus.CANCELLED}
    assert shell.execute("history-clear").message == "Cleared 2 finished job(s)."


def test_start_with_empty_queue_fails(shell):
    async def scenario():
        return shell.execute("start")

    result = asyncio.run(scenario())
    assert not result.success
    assert "no pending jobs" in result.message


def test_run_until_exit(shell, manager, output):
    asyncio.run(shell.run(scripted([f"add {url(1)}", "bogus", "exit", "status"])))
    text = output.getvalue()
    assert "Added as 'clip_1'." in text
    assert "Unknown command: 'bogus'" in text
    assert "Exiting..." in text
    # Lines after `exit` are never read
    assert len(manager.snapshot().pending) == 1
    assert "Download Queue" not in text


def test_eof_stops_active_run(shell, manager, engine):
    shell.execute(f"add {url(1)}")

    async def scenario():
        manager.start()
        await wait_until(lambda: engine.started)
        await shell.run(scripted([]))
        assert not manager.is_running
        await manager.wait_idle()

    asyncio.run(scenario())
    assert manager.snapshot().history[0].status is JobStatus.CANCELLED


def test_cancelled_prompt_stops_active_run(shell, manager, engine):
    shell.execute(f"add {url(1)}")

    async def never_returns(_prompt):
        await asyncio.Event().wait()

    async def scenario():
        manager.start()
        await wait_until(lambda: engine.started)
        task = asyncio.create_task(shell.run(never_returns))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not manager.is_running
        await manager.wait_idle()

    asyncio.run(scenario())
    assert manager.snapshot().history[0].status is JobStatus.CANCELLED


class TestReadLine:
    def test_returns_typed_line(self, shell, monkeypatch):
        monkeypatch.setattr(shell.console, "input", lambda prompt: "status")
        assert asyncio.run(shell._read_line(PROMPT)) == "status"

    def test_end_of_input_raises_eof(self, shell, monkeypatch):
        def closed(prompt):
            raise EOFError

        monkeypatch.setattr(shell.console, "input", closed)
        with pytest.raises(EOFError):
            asyncio.run(shell._read_line(PROMPT))

    def test_blocked_reader_does_not_hold_up_shutdown(self, shell, monkeypatch):
        typed = threading.Event()

        def wait_for_enter(prompt):
            typed.wait(5)
            return "late"

        monkeypatch.setattr(shell.console, "input", wait_for_enter)

        def reader_thread():
            return next(
                (t for t in threading.enumerate() if t.name == INPUT_THREAD_NAME),
                None,
            )

        async def scenario():
            task = asyncio.create_task(shell._read_line(PROMPT))
            await wait_until(lambda: reader_thread() is not None)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        # Returns even though the reader is still waiting for Enter
        asyncio.run(scenario())
        thread = reader_thread()
        assert thread is not None and thread.daemon

        typed.set()
        thread.join(timeout=2)
        assert not thread.is_alive()
