from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml


DEFAULT_CONFIG_PATHS = (
    Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
    / "repowatch"
    / "config.yaml",
    Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
    / "repowatch"
    / "config.yml",
)

DEFAULT_WATCH_IGNORE = (".git/FETCH_HEAD", ".git/*.lock")
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def normalize_pattern_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    if isinstance(value, (list, tuple)):
        patterns: list[str] = []
        for item in value:
            if item is None:
                continue
            text = str(item).strip()
            if text:
                patterns.append(text)
        return patterns
    return []


def _coerce_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"1", "true", "yes", "y", "on"}:
            return True
        if text in {"0", "false", "no", "n", "off"}:
            return False
    return default


def _coerce_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(text)
        except ValueError:
            return default
    return default


@dataclass(frozen=True)
class AppConfig:
    git_command: str = "git"
    max_log_lines: int = 2000
    watch: bool = True
    watch_ignore: tuple[str, ...] = DEFAULT_WATCH_IGNORE
    fetch_on_remote_status: bool = True
    log_level: str = "WARNING"


def _parse_config(data: object) -> AppConfig:
    if not isinstance(data, dict):
        return AppConfig()
    git_command = data.get("git_command")
    if isinstance(git_command, str) and git_command.strip():
        git_command = git_command.strip()
    else:
        git_command = "git"
    max_log_lines = _coerce_int(data.get("max_log_lines"), 2000)
    if max_log_lines < 0:
        max_log_lines = 0
    watch = _coerce_bool(data.get("watch"), True)
    if "watch_ignore" in data:
        watch_ignore = tuple(normalize_pattern_list(data.get("watch_ignore")))
    else:
        watch_ignore = DEFAULT_WATCH_IGNORE
    fetch_on_remote_status = _coerce_bool(data.get("fetch_on_remote_status"), True)
    log_level = str(data.get("log_level") or "WARNING").strip().upper()
    if log_level not in LOG_LEVELS:
        log_level = "WARNING"
    return AppConfig(
        git_command=git_command,
        max_log_lines=max_log_lines,
        watch=watch,
        watch_ignore=watch_ignore,
        fetch_on_remote_status=fetch_on_remote_status,
        log_level=log_level,
    )


def load_config(config_path: str | None = None) -> AppConfig:
    paths = [Path(config_path).expanduser()] if config_path else DEFAULT_CONFIG_PATHS
    for path in paths:
        if not path.exists():
            continue
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError):
            return AppConfig()
        return _parse_config(data)
    return AppConfig()
