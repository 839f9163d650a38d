"""Shared fixtures: a scriptable conversion engine and polling helpers."""

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from m3u8_cli.core.queue_manager import QueueManager
from m3u8_cli.exceptions import ConversionCancelledError, ConversionError


class FakeEngine:
    """
    Conversion engine whose jobs stay running until the test releases them.

    Sources listed in `failing` raise `ConversionError` when released.
    With `honour_cancel=False` the engine ignores the cancellation signal and
    only stops when released.
    """

    def __init__(self, failing: tuple[str, ...] = (), honour_cancel: bool = True):
        self.failing = set(failing)
        self.honour_cancel = honour_cancel
        self.started: list[str] = []
        self.active = 0
        self.peak = 0
        self._gates: dict[str, asyncio.Event] = {}

    def _gate(self, name: str) -> asyncio.Event:
        return self._gates.setdefault(name, asyncio.Event())

    def release(self, name: str) -> None:
        self._gate(name).set()

    def release_all(self) -> None:
        for name in self.started:
            self.release(name)

    async def convert(self, source_uri, destination: Path, cancel_event, on_progress):
        name = destination.stem
        self.started.append(name)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            on_progress(10, timedelta(seconds=1), timedelta(seconds=10))
            gate = self._gate(name)
            waiters = [asyncio.create_task(gate.wait())]
            if self.honour_cancel:
                waiters.append(asyncio.create_task(cancel_event.wait()))
            done, pending = await asyncio.wait(
                waiters, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            if not gate.is_set():
                raise ConversionCancelledError(f"{name} cancelled")
            if source_uri in self.failing:
                raise ConversionError(f"could not open {source_uri}")
            on_progress(100, timedelta(seconds=10), timedelta(seconds=10))
        finally:
            self.active -= 1


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Polls `predicate` on the event loop until it is true or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def manager(engine: FakeEngine, tmp_path: Path) -> QueueManager:
    """A manager with an output directory and naming pattern already set."""
    qm = QueueManager(engine, max_concurrency=2)
    qm.set_output_directory(tmp_path / "out")
    qm.set_naming_pattern("clip")
    return qm


def url(n: int) -> str:
    return f"https://cdn.example.com/stream{n}/index.m3u8"
