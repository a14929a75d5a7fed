#!/usr/bin/env -S uv --quiet run --script
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "click",
#     "rich",
#     "PyYAML",
#     "watchdog",
# ]
# ///

import asyncio
from dataclasses import replace
from typing import Optional

import click
from rich.table import Table
from rich.text import Text

from repowatch.config import AppConfig, load_config
from repowatch.console import console, setup_logging
from repowatch.models import FileStatus, RemoteBranch
from repowatch.module import RepoModule
from repowatch.registry import ModuleRegistry

STATUS_STYLES = {
    "M": "yellow",
    "A": "green",
    "D": "red",
    "R": "cyan",
    "C": "cyan",
    "U": "magenta",
    "?": "dim",
}


def _code(char: str) -> Text:
    return Text(char if char != " " else ".", style=STATUS_STYLES.get(char, ""))


def _relative(module_root: str, file_status: FileStatus) -> str:
    if module_root and file_status.full_path.startswith(module_root + "/"):
        return file_status.full_path[len(module_root) + 1 :]
    return file_status.full_path


def _files_table(title: str, repo_path: str, files: list[FileStatus], staged_column: bool) -> Table:
    table = Table(title=title, expand=True)
    table.add_column("XY" if staged_column else "K", no_wrap=True)
    table.add_column("Path", overflow="fold")
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")
    for file_status in files:
        code = Text()
        code.append_text(_code(file_status.x))
        if staged_column:
            code.append_text(_code(file_status.y))
        path = _relative(repo_path, file_status)
        if file_status.old_name:
            path = f"{file_status.old_name} -> {path}"
        stat = file_status.staged_numstat if file_status.is_staged else file_status.unstaged_numstat
        table.add_row(code, path, str(stat.added), str(stat.removed))
    return table


async def render_module(
    module: RepoModule,
    show_branches: bool,
    diff_range: Optional[tuple[str, str]],
    show_log: bool,
) -> None:
    if not await module.is_git_repo():
        console.print(f"[red]{module.path}[/red]: not a git repository")
        return
    repo_path, branch, commit, remote, tracking, status = await asyncio.gather(
        module.git_repo_path(),
        module.current_branch(),
        module.current_commit(),
        module.default_remote(),
        module.remote_status(),
        module.git_status(),
    )
    header = Text()
    header.append(module.short_name, style="bold")
    header.append(f"  {branch or '(detached)'}", style="bold blue")
    header.append(f" @ {commit}", style="dim")
    if remote is not None:
        header.append(f"  {remote.alias} {remote.url}", style="dim")
    if tracking is not None:
        header.append(f"  ↑{tracking.ahead} ↓{tracking.behind}", style="cyan")
    console.print(header)
    if status.files:
        console.print(_files_table("Status", repo_path, list(status.files), True))
    else:
        console.print("[green]Working tree clean[/green]")

    if show_branches:
        table = Table(title="Branches", expand=True)
        table.add_column("Branch")
        table.add_column("Tracking")
        for item in await module.branches():
            tracking_ref = "" if isinstance(item, RemoteBranch) else (item.tracking_branch or "")
            style = "bold" if item.qualified_name == branch else ""
            table.add_row(Text(item.qualified_name, style=style), tracking_ref)
        console.print(table)

    if diff_range is not None:
        files = await module.diff_files(*diff_range)
        title = f"Diff {diff_range[0]}..{diff_range[1]}"
        console.print(_files_table(title, repo_path, files, False))

    if show_log:
        for line in module.process_log:
            console.print(Text(line.data, style="red" if line.error else "dim"))


async def run(
    paths: tuple[str, ...],
    config: AppConfig,
    watch: bool,
    show_branches: bool,
    diff_range: Optional[tuple[str, str]],
    show_log: bool,
) -> None:
    registry = ModuleRegistry(config=config)
    try:
        modules = [module for module in (registry.get(p) for p in paths) if module]
        if not modules:
            console.print("[red]No usable directories given[/red]")
            return
        for module in modules:
            await render_module(module, show_branches, diff_range, show_log)
        if not watch:
            return
        console.print("[dim]Watching for changes, press Ctrl+C to stop[/dim]")
        previous = {module.path: await module.git_status() for module in modules}
        while True:
            await asyncio.sleep(1.0)
            for module in modules:
                current = await module.git_status()
                if current != previous[module.path]:
                    previous[module.path] = current
                    console.rule(module.short_name)
                    await render_module(module, show_branches, diff_range, False)
    finally:
        registry.close()


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Read configuration from this YAML file.",
)
@click.option(
    "--watch/--no-watch",
    default=None,
    help="Keep running and re-render on changes (default: the config file's watch key).",
)
@click.option("--branches", "show_branches", is_flag=True, help="List local and remote branches.")
@click.option(
    "--diff",
    "diff_range",
    nargs=2,
    type=str,
    default=None,
    metavar="REV1 REV2",
    help="List files changed between two revisions.",
)
@click.option("--log", "show_log", is_flag=True, help="Print the git invocation log.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.argument("paths", nargs=-1, type=click.Path(file_okay=False))
def main(
    config_path: Optional[str],
    watch: Optional[bool],
    show_branches: bool,
    diff_range: Optional[tuple[str, str]],
    show_log: bool,
    verbose: bool,
    paths: tuple[str, ...],
) -> None:
    config = load_config(config_path)
    setup_logging(config.log_level, verbose=verbose)
    if watch is None:
        watch = config.watch
    config = replace(config, watch=watch)
    try:
        asyncio.run(
            run(paths or (".",), config, watch, show_branches, diff_range, show_log)
        )
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
