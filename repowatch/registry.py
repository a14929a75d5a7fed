from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Iterator, Optional

from .config import AppConfig
from .models import FileGitInfo
from .module import RepoModule
from .parsers import normalize_path
from .runner import RunnerFn

PathResolver = Callable[[str], Optional[str]]

logger = logging.getLogger(__name__)


def resolve_directory(identifier: str) -> Optional[str]:
    path = os.path.abspath(os.path.expanduser(identifier))
    if not os.path.isdir(path):
        return None
    return path


class ModuleRegistry:
    """Identifier to ``RepoModule`` mapping owned by the application.

    Modules are created on first lookup and live until ``forget`` or
    ``close``; every caller resolving the same identifier shares one module.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        resolver: PathResolver = resolve_directory,
        runner: Optional[RunnerFn] = None,
    ) -> None:
        self.config = config or AppConfig()
        self._resolver = resolver
        self._runner = runner
        self._modules: dict[str, RepoModule] = {}

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._modules

    def __iter__(self) -> Iterator[RepoModule]:
        return iter(list(self._modules.values()))

    def __len__(self) -> int:
        return len(self._modules)

    def get(self, identifier: str) -> Optional[RepoModule]:
        module = self._modules.get(identifier)
        if module is not None:
            return module
        path = self._resolver(identifier)
        if not path:
            logger.debug("Could not resolve %s to a directory", identifier)
            return None
        module = RepoModule(
            path, identifier=identifier, config=self.config, runner=self._runner
        )
        if self.config.watch:
            module.start_watching()
        self._modules[identifier] = module
        return module

    def forget(self, identifier: str) -> None:
        module = self._modules.pop(identifier, None)
        if module is not None:
            module.close()

    def close(self) -> None:
        for identifier in list(self._modules):
            self.forget(identifier)

    async def git_modules(self) -> list[RepoModule]:
        modules = list(self._modules.values())
        flags = await asyncio.gather(*(module.is_git_repo() for module in modules))
        return [module for module, is_repo in zip(modules, flags) if is_repo]

    async def file_git_info(self, path: str) -> Optional[FileGitInfo]:
        """Find the module and status entry that describe ``path``.

        Directories containing modified files report the first nested entry
        with ``nested_file_modified`` set.
        """
        full_path = normalize_path(os.path.abspath(path))
        modules = await self.git_modules()
        statuses = await asyncio.gather(*(module.git_status() for module in modules))
        pairs = [
            (module, file_status)
            for module, status in zip(modules, statuses)
            for file_status in status.files
        ]
        for module, file_status in pairs:
            if file_status.full_path == full_path:
                return FileGitInfo(module, full_path, file_status, False)
        prefix = full_path.rstrip("/") + "/"
        for module, file_status in pairs:
            if file_status.full_path.startswith(prefix):
                return FileGitInfo(module, full_path, file_status, True)
        repo_paths = await asyncio.gather(*(module.git_repo_path() for module in modules))
        for module, repo_path in zip(modules, repo_paths):
            if repo_path and (full_path == repo_path or full_path.startswith(repo_path + "/")):
                return FileGitInfo(module, full_path, None, False)
        return None
