from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from .models import CommandResult

LineFilter = Callable[[bool, str], bool]
RunnerFn = Callable[..., Awaitable[CommandResult]]

COMMAND_NOT_FOUND = 127
STREAM_LIMIT = 1024 * 1024

logger = logging.getLogger(__name__)


async def _pump(
    stream: Optional[asyncio.StreamReader],
    is_stderr: bool,
    line_filter: Optional[LineFilter],
    sink: Optional[list[str]],
) -> None:
    if stream is None:
        return
    while True:
        try:
            raw = await stream.readline()
        except ValueError as exc:
            logger.warning("Dropping oversized output line: %s", exc)
            continue
        if not raw:
            break
        line = raw.decode(errors="replace").rstrip("\r\n")
        keep = line_filter(is_stderr, line) if line_filter is not None else True
        if keep and sink is not None:
            sink.append(line)


async def run_command(
    cwd: Optional[str],
    command: str,
    args: Sequence[str],
    line_filter: Optional[LineFilter] = None,
) -> CommandResult:
    """Run ``command`` with ``args`` in ``cwd`` and capture its stdout.

    Lines of both streams are passed to ``line_filter(is_stderr, line)`` as
    they arrive; returning False drops a stdout line from the captured output.
    The result is only produced once the process exited and both pipes are
    drained. A non-zero exit code is returned, not raised.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
    except FileNotFoundError:
        logger.error("Command not found: %s", command)
        return CommandResult(COMMAND_NOT_FOUND, "")
    except OSError as exc:
        logger.error("Failed to run command: %s %s: %s", command, " ".join(args), exc)
        return CommandResult(COMMAND_NOT_FOUND, "")

    stdout_lines: list[str] = []
    try:
        await asyncio.gather(
            _pump(proc.stdout, False, line_filter, stdout_lines),
            _pump(proc.stderr, True, line_filter, None),
        )
    finally:
        returncode = await proc.wait()
    if returncode != 0:
        logger.debug("Command exited with %s: %s %s", returncode, command, " ".join(args))
    return CommandResult(returncode, "".join(f"{line}\n" for line in stdout_lines))
