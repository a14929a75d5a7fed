from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections import deque
from typing import Any, Awaitable, Callable, Optional, Sequence

from .config import AppConfig
from .models import (
    Branch,
    CommandResult,
    FileStatus,
    LogLine,
    Remote,
    RemoteBranch,
    RemoteTrackingStatus,
    RepositoryStatus,
)
from .parsers import (
    normalize_path,
    parse_branches,
    parse_count,
    parse_name_status,
    parse_numstat,
    parse_remotes,
    parse_status,
)
from .runner import LineFilter, RunnerFn, run_command
from .watcher import ChangeWatcher

GIT_FLAGS = ("-c", "core.quotepath=false", "--no-optional-locks")
SHORT_NAME_LENGTH = 20

logger = logging.getLogger(__name__)


class RepoModule:
    """Cached view of one git working tree.

    Accessors are coroutines whose results are memoized until the working
    tree changes: a watcher event or a mutating ``run_git`` call discards
    every cached value at once.
    """

    def __init__(
        self,
        path: str,
        identifier: Optional[str] = None,
        config: Optional[AppConfig] = None,
        runner: Optional[RunnerFn] = None,
    ) -> None:
        self.path = normalize_path(os.path.abspath(path))
        self.identifier = identifier or self.path
        self.config = config or AppConfig()
        self._runner: RunnerFn = runner or run_command
        self._lock = threading.Lock()
        self._slots: dict[str, asyncio.Task] = {}
        self._diff_cache: dict[tuple[str, str], asyncio.Task] = {}
        self._process_log: deque[LogLine] = deque(
            maxlen=self.config.max_log_lines or None
        )
        self._watcher: Optional[ChangeWatcher] = None

    @property
    def name(self) -> str:
        return os.path.basename(self.path) or self.path

    @property
    def short_name(self) -> str:
        name = self.name
        if len(name) > SHORT_NAME_LENGTH:
            return name[0] + ".." + name[-(SHORT_NAME_LENGTH - 3) :]
        return name

    @property
    def process_log(self) -> tuple[LogLine, ...]:
        return tuple(self._process_log)

    def __repr__(self) -> str:
        return f"RepoModule({self.path!r})"

    # Lifecycle

    def start_watching(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        if self._watcher is None:
            self._watcher = ChangeWatcher(
                self.path,
                self.invalidate,
                loop=loop,
                ignore=self.config.watch_ignore,
            )
        return self._watcher.start()

    @property
    def watching(self) -> bool:
        return self._watcher is not None and self._watcher.running

    def close(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    async def __aenter__(self) -> "RepoModule":
        if self.config.watch:
            self.start_watching()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def invalidate(self) -> None:
        with self._lock:
            self._slots = {}
            self._diff_cache = {}
        logger.debug("Invalidated cache for %s", self.path)

    # Running git

    def _log_line(self, is_stderr: bool, line: str) -> bool:
        self._process_log.append(LogLine(line, is_stderr))
        return True

    async def run_git_readonly(
        self, args: Sequence[str], line_filter: Optional[LineFilter] = None
    ) -> CommandResult:
        merged = [*GIT_FLAGS, *args]
        self._process_log.append(
            LogLine(f">> {self.config.git_command} {' '.join(merged)}")
        )

        def handle_line(is_stderr: bool, line: str) -> bool:
            keep = self._log_line(is_stderr, line)
            if line_filter is not None:
                keep = line_filter(is_stderr, line)
            return keep

        return await self._runner(self.path, self.config.git_command, merged, handle_line)

    async def run_git(
        self, args: Sequence[str], line_filter: Optional[LineFilter] = None
    ) -> CommandResult:
        result = await self.run_git_readonly(args, line_filter)
        self.invalidate()
        return result

    # Memoization

    def _evict_failed(
        self, store: dict[Any, asyncio.Task], key: Any, task: asyncio.Task
    ) -> None:
        if task.cancelled() or task.exception() is None:
            return
        with self._lock:
            if store.get(key) is task:
                del store[key]

    def _memo_task(
        self,
        store_name: str,
        key: Any,
        factory: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task:
        with self._lock:
            store: dict[Any, asyncio.Task] = getattr(self, store_name)
            task = store.get(key)
            if task is None:
                task = asyncio.ensure_future(factory())
                store[key] = task
                task.add_done_callback(
                    lambda done: self._evict_failed(store, key, done)
                )
        return task

    async def _memo(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        return await asyncio.shield(self._memo_task("_slots", key, factory))

    # Accessors

    async def is_git_repo(self) -> bool:
        return await self._memo("is_git_repo", self._get_is_git_repo)

    async def git_repo_path(self) -> str:
        return await self._memo("git_repo_path", self._get_repo_path)

    async def branches(self) -> list[Branch]:
        return await self._memo("branches", self._get_branches)

    async def current_branch(self) -> str:
        return await self._memo("current_branch", self._get_current_branch)

    async def current_commit(self) -> str:
        return await self._memo("current_commit", self._get_commit)

    async def remotes(self) -> list[Remote]:
        return await self._memo("remotes", self._get_remotes)

    async def default_remote(self) -> Optional[Remote]:
        return await self._memo("default_remote", self._get_default_remote)

    async def remote_status(self) -> Optional[RemoteTrackingStatus]:
        return await self._memo("remote_status", self._get_remote_status)

    async def git_status(self) -> RepositoryStatus:
        return await self._memo("git_status", self._get_git_status)

    async def diff_files(self, first_commit: str, last_commit: str) -> list[FileStatus]:
        task = self._memo_task(
            "_diff_cache",
            (first_commit, last_commit),
            lambda: self._get_diff_files(first_commit, last_commit),
        )
        return await asyncio.shield(task)

    # Computations

    async def _get_is_git_repo(self) -> bool:
        result = await self.run_git_readonly(["rev-parse", "--show-toplevel"])
        return result.exit_code == 0

    async def _get_repo_path(self) -> str:
        result = await self.run_git_readonly(["rev-parse", "--show-toplevel"])
        if result.exit_code != 0:
            return ""
        return normalize_path(result.output.strip())

    async def _get_branches(self) -> list[Branch]:
        result = await self.run_git_readonly(
            ["branch", "-a", "--format=%(refname)\t%(upstream)"]
        )
        return parse_branches(result.output)

    async def _get_current_branch(self) -> str:
        result = await self.run_git_readonly(["branch", "--show-current"])
        return result.output.strip()

    async def _get_commit(self) -> str:
        result = await self.run_git_readonly(["rev-parse", "--short", "--verify", "HEAD"])
        if result.exit_code != 0:
            return ""
        return result.output.strip()

    async def _get_remotes(self) -> list[Remote]:
        result = await self.run_git_readonly(["remote", "-v"])
        return parse_remotes(result.output)

    async def _get_default_remote(self) -> Optional[Remote]:
        remotes = await self.remotes()
        return remotes[0] if remotes else None

    async def _get_remote_status(self) -> Optional[RemoteTrackingStatus]:
        remotes = await self.remotes()
        if not remotes:
            return None
        current_branch = await self.current_branch()
        if self.config.fetch_on_remote_status:
            await self.run_git_readonly(["fetch"])
        alias = remotes[0].alias
        branches = await self.branches()
        if not any(
            isinstance(branch, RemoteBranch)
            and branch.remote_alias == alias
            and branch.name == current_branch
            for branch in branches
        ):
            return None
        upstream = f"{alias}/{current_branch}"
        try:
            ahead_result, behind_result = await asyncio.gather(
                self.run_git_readonly(
                    ["rev-list", "--count", f"{upstream}..{current_branch}"]
                ),
                self.run_git_readonly(
                    ["rev-list", "--count", f"{current_branch}..{upstream}"]
                ),
            )
            ahead = parse_count(ahead_result.output)
            behind = parse_count(behind_result.output)
        except Exception:
            logger.exception("Failed to compute ahead/behind for %s in %s", upstream, self.path)
            return None
        return RemoteTrackingStatus(alias, ahead, behind)

    async def _get_git_status(self) -> RepositoryStatus:
        repo_path, status, unstaged, staged = await asyncio.gather(
            self.git_repo_path(),
            self.run_git_readonly(["status", "--porcelain"]),
            self.run_git_readonly(["diff", "--numstat"]),
            self.run_git_readonly(["diff", "--numstat", "--staged"]),
        )
        return parse_status(
            status.output,
            repo_path,
            parse_numstat(unstaged.output),
            parse_numstat(staged.output),
        )

    async def _get_diff_files(self, first_commit: str, last_commit: str) -> list[FileStatus]:
        repo_path, name_status, numstat = await asyncio.gather(
            self.git_repo_path(),
            self.run_git_readonly(["diff", "--name-status", first_commit, last_commit]),
            self.run_git_readonly(["diff", "--numstat", first_commit, last_commit]),
        )
        return parse_name_status(
            name_status.output, repo_path, parse_numstat(numstat.output)
        )
