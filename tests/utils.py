from __future__ import annotations

from typing import Callable, Optional, Sequence
import asyncio

from repowatch.config import AppConfig
from repowatch.models import CommandResult
from repowatch.module import GIT_FLAGS, RepoModule
from repowatch.runner import LineFilter


class FakeGit:
    """Async runner returning canned output keyed by git arguments.

    Arguments are matched without the fixed ``-c core.quotepath=false
    --no-optional-locks`` prefix. ``hold`` makes matching calls wait until
    ``release`` is called, to keep computations in flight.
    """

    def __init__(self) -> None:
        self._outputs: dict[tuple[str, ...], CommandResult] = {}
        self._gates: dict[tuple[str, ...], asyncio.Event] = {}
        self.calls: list[tuple[str, ...]] = []

    def set(self, args: list[str], output: str, exit_code: int = 0) -> None:
        self._outputs[tuple(args)] = CommandResult(exit_code, output)

    def hold(self, args: list[str]) -> None:
        self._gates[tuple(args)] = asyncio.Event()

    def release(self, args: list[str]) -> None:
        self._gates.pop(tuple(args)).set()

    def count(self, args: list[str]) -> int:
        return self.calls.count(tuple(args))

    async def __call__(
        self,
        cwd: Optional[str],
        command: str,
        args: Sequence[str],
        line_filter: Optional[LineFilter] = None,
    ) -> CommandResult:
        key = tuple(args[len(GIT_FLAGS) :])
        self.calls.append(key)
        result = self._outputs.get(key, CommandResult(0, ""))
        gate = self._gates.get(key)
        if gate is not None:
            await gate.wait()
        if line_filter is not None:
            for line in result.output.splitlines():
                line_filter(False, line)
        return result


def make_module(fake: FakeGit, path: str = "/repo", **config: object) -> RepoModule:
    return RepoModule(path, config=AppConfig(watch=False, **config), runner=fake)


async def wait_for(
    predicate: Callable[[], bool], *, timeout: float = 5.0, interval: float = 0.01
) -> None:
    loop = asyncio.get_running_loop()
    start = loop.time()
    while True:
        if predicate():
            return
        if loop.time() - start > timeout:
            raise AssertionError("timed out waiting for condition")
        await asyncio.sleep(interval)
