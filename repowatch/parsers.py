"""Parsers for the textual output of git commands.

Every parser works line by line and drops lines that do not have the expected
shape instead of failing the whole block.
"""

from __future__ import annotations

import os
import re
from typing import Mapping, Optional

from .models import (
    Branch,
    FileStatus,
    LocalBranch,
    NumStat,
    Remote,
    RemoteBranch,
    RepositoryStatus,
)

REMOTES_MARKER = "remotes"
RENAME_ARROW = " -> "
_BRACE_RENAME = re.compile(r"\{[^{}]*? => ([^{}]*?)\}")
_REMOTE_DIRECTION = re.compile(r"\s*\((fetch|push)\)$")
_EMPTY_NUMSTAT = NumStat()


def normalize_path(path: str) -> str:
    return os.path.normpath(path).replace("\\", "/")


def unquote_path(path: str) -> str:
    path = path.strip()
    if len(path) >= 2 and path[0] == '"' and path[-1] == '"':
        return path[1:-1]
    return path


def parse_branches(raw: str) -> list[Branch]:
    branches: list[Branch] = []
    for line in raw.splitlines():
        parts = [part for part in line.split("\t") if part]
        if not parts:
            continue
        segments = parts[0].strip().split("/")
        if len(segments) < 3 or segments[0] != "refs":
            continue
        if segments[1] == REMOTES_MARKER:
            if len(segments) < 4:
                continue
            branches.append(
                RemoteBranch("/".join(segments[3:]), remote_alias=segments[2])
            )
        else:
            tracking = parts[1].strip() if len(parts) > 1 else ""
            branches.append(
                LocalBranch("/".join(segments[2:]), tracking_branch=tracking or None)
            )
    return branches


def parse_remotes(raw: str) -> list[Remote]:
    remotes: list[Remote] = []
    for line in raw.splitlines():
        parts = [part.strip() for part in line.split("\t") if part.strip()]
        if len(parts) < 2:
            continue
        url = _REMOTE_DIRECTION.sub("", parts[1])
        if not url:
            continue
        remote = Remote(parts[0], url)
        if remote not in remotes:
            remotes.append(remote)
    return remotes


def _numstat_path(path: str) -> str:
    path = _BRACE_RENAME.sub(r"\1", path)
    if " => " in path:
        path = path.split(" => ", 1)[1]
    path = unquote_path(path)
    while "//" in path:
        path = path.replace("//", "/")
    return path


def parse_numstat(raw: str) -> dict[str, NumStat]:
    stats: dict[str, NumStat] = {}
    for line in raw.splitlines():
        parts = line.strip().split("\t", 2)
        if len(parts) != 3:
            continue
        added, removed, path = parts
        if not (added.isdigit() and removed.isdigit()):
            continue
        path = _numstat_path(path)
        if not path:
            continue
        stats[path] = NumStat(added=int(added), removed=int(removed))
    return stats


def numstat_for(stats: Mapping[str, NumStat], path: str) -> NumStat:
    return stats.get(path, _EMPTY_NUMSTAT)


def _split_rename(rest: str) -> tuple[str, Optional[str]]:
    if RENAME_ARROW in rest:
        old, new = rest.split(RENAME_ARROW, 1)
        return unquote_path(new), unquote_path(old)
    return unquote_path(rest), None


def parse_status(
    raw: str,
    repo_path: str,
    unstaged: Mapping[str, NumStat],
    staged: Mapping[str, NumStat],
) -> RepositoryStatus:
    """Parse ``git status --porcelain`` joined with the two numstat blocks."""
    files: list[FileStatus] = []
    for line in raw.splitlines():
        if len(line) < 4:
            continue
        path, old_name = _split_rename(line[2:].strip())
        if not path:
            continue
        files.append(
            FileStatus(
                full_path=normalize_path(os.path.join(repo_path, path)),
                old_name=old_name,
                x=line[0],
                y=line[1],
                unstaged_numstat=numstat_for(unstaged, path),
                staged_numstat=numstat_for(staged, path),
            )
        )
    return RepositoryStatus(tuple(files))


def parse_name_status(
    raw: str, repo_path: str, numstat: Mapping[str, NumStat]
) -> list[FileStatus]:
    """Parse ``git diff --name-status`` for a revision range.

    Range diffs have no index, so both status codes carry the change kind.
    """
    files: list[FileStatus] = []
    for line in raw.splitlines():
        parts = [part for part in line.split("\t") if part]
        if len(parts) < 2 or not parts[0]:
            continue
        kind = parts[0][0]
        if len(parts) > 2:
            old_name: Optional[str] = unquote_path(parts[1])
            path = unquote_path(parts[2])
        else:
            old_name = None
            path = unquote_path(parts[1])
        stat = numstat_for(numstat, path)
        files.append(
            FileStatus(
                full_path=normalize_path(os.path.join(repo_path, path)),
                old_name=old_name,
                x=kind,
                y=kind,
                unstaged_numstat=stat,
                staged_numstat=stat,
            )
        )
    return files


def parse_count(raw: str) -> int:
    return int(raw.strip())
