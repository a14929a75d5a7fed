from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .module import RepoModule


@dataclass(frozen=True)
class Branch:
    name: str

    @property
    def qualified_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class LocalBranch(Branch):
    tracking_branch: Optional[str] = None


@dataclass(frozen=True)
class RemoteBranch(Branch):
    remote_alias: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.remote_alias}/{self.name}"


@dataclass(frozen=True)
class Remote:
    alias: str
    url: str


@dataclass(frozen=True)
class RemoteTrackingStatus:
    remote: str
    ahead: int
    behind: int


@dataclass(frozen=True)
class NumStat:
    added: int = 0
    removed: int = 0


@dataclass(frozen=True)
class FileStatus:
    """State of one file as reported by ``git status`` or a range diff.

    ``x`` is the index (staged) code and ``y`` the worktree (unstaged) code.
    For range diffs both hold the change kind, see ``change_kind``.
    """

    full_path: str
    old_name: Optional[str]
    x: str
    y: str
    unstaged_numstat: NumStat = NumStat()
    staged_numstat: NumStat = NumStat()

    @property
    def is_in_index(self) -> bool:
        return self.y != "?"

    @property
    def is_unstaged(self) -> bool:
        return self.y != " "

    @property
    def is_staged(self) -> bool:
        return self.x not in (" ", "?")

    @property
    def change_kind(self) -> str:
        return self.x


@dataclass(frozen=True)
class RepositoryStatus:
    files: tuple[FileStatus, ...] = ()

    @property
    def staged(self) -> list[FileStatus]:
        return [f for f in self.files if f.is_staged]

    @property
    def unstaged(self) -> list[FileStatus]:
        return [f for f in self.files if f.is_unstaged]

    @property
    def unindexed(self) -> list[FileStatus]:
        return [f for f in self.files if not f.is_in_index]

    @property
    def indexed_unstaged(self) -> list[FileStatus]:
        return [f for f in self.files if f.is_unstaged and f.is_in_index]

    def find(self, full_path: str) -> Optional[FileStatus]:
        for file_status in self.files:
            if file_status.full_path == full_path:
                return file_status
        return None


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    output: str


@dataclass(frozen=True)
class LogLine:
    data: str
    error: bool = False


@dataclass
class FileGitInfo:
    module: "RepoModule"
    full_path: str
    file_status: Optional[FileStatus] = None
    nested_file_modified: bool = False
