import asyncio

import pytest

from repowatch.models import NumStat, Remote, RemoteTrackingStatus

from tests.utils import FakeGit, make_module, wait_for

TOPLEVEL = ["rev-parse", "--show-toplevel"]
STATUS = ["status", "--porcelain"]
NUMSTAT = ["diff", "--numstat"]
NUMSTAT_STAGED = ["diff", "--numstat", "--staged"]
REMOTES = ["remote", "-v"]
BRANCHES = ["branch", "-a", "--format=%(refname)\t%(upstream)"]
CURRENT = ["branch", "--show-current"]


def _tracking_repo(fake: FakeGit) -> None:
    fake.set(REMOTES, "origin\tgit@example.com:repo.git (fetch)\norigin\tgit@example.com:repo.git (push)\n")
    fake.set(CURRENT, "main\n")
    fake.set(
        BRANCHES,
        "refs/heads/main\trefs/remotes/origin/main\nrefs/remotes/origin/main\t\n",
    )
    fake.set(["rev-list", "--count", "origin/main..main"], "2\n")
    fake.set(["rev-list", "--count", "main..origin/main"], "5\n")


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_invocation() -> None:
    fake = FakeGit()
    fake.set(CURRENT, "main\n")
    fake.hold(CURRENT)
    module = make_module(fake)

    first = asyncio.ensure_future(module.current_branch())
    second = asyncio.ensure_future(module.current_branch())
    await asyncio.sleep(0)
    fake.release(CURRENT)

    assert await asyncio.gather(first, second) == ["main", "main"]
    assert await module.current_branch() == "main"
    assert fake.count(CURRENT) == 1


@pytest.mark.asyncio
async def test_git_status_runs_four_queries_and_joins_by_path() -> None:
    fake = FakeGit()
    fake.set(TOPLEVEL, "/repo\n")
    fake.set(STATUS, "M  staged.txt\n M changed.txt\n?? new.txt\n")
    fake.set(NUMSTAT, "3\t1\tchanged.txt\n")
    fake.set(NUMSTAT_STAGED, "8\t0\tstaged.txt\n")
    module = make_module(fake)

    status = await module.git_status()
    await module.git_status()

    staged, changed, new = status.files
    assert staged.full_path == "/repo/staged.txt"
    assert staged.staged_numstat == NumStat(8, 0)
    assert changed.unstaged_numstat == NumStat(3, 1)
    assert new.unstaged_numstat == NumStat(0, 0)
    assert new.staged_numstat == NumStat(0, 0)
    for args in (TOPLEVEL, STATUS, NUMSTAT, NUMSTAT_STAGED):
        assert fake.count(args) == 1


@pytest.mark.asyncio
async def test_invalidate_clears_every_accessor_and_diff_cache() -> None:
    fake = FakeGit()
    fake.set(CURRENT, "main\n")
    fake.set(["diff", "--name-status", "a", "b"], "M\tfile.txt\n")
    module = make_module(fake)

    assert await module.current_branch() == "main"
    await module.diff_files("a", "b")

    fake.set(CURRENT, "feature\n")
    assert await module.current_branch() == "main"

    module.invalidate()

    assert await module.current_branch() == "feature"
    await module.diff_files("a", "b")
    assert fake.count(CURRENT) == 2
    assert fake.count(["diff", "--name-status", "a", "b"]) == 2


@pytest.mark.asyncio
async def test_mutating_command_invalidates_before_returning() -> None:
    fake = FakeGit()
    fake.set(CURRENT, "main\n")
    module = make_module(fake)
    assert await module.current_branch() == "main"

    fake.set(CURRENT, "feature\n")
    result = await module.run_git(["checkout", "feature"])

    assert result.exit_code == 0
    assert await module.current_branch() == "feature"


@pytest.mark.asyncio
async def test_readonly_command_keeps_cache() -> None:
    fake = FakeGit()
    fake.set(CURRENT, "main\n")
    module = make_module(fake)
    await module.current_branch()

    await module.run_git_readonly(["log", "-1"])
    await module.current_branch()

    assert fake.count(CURRENT) == 1


@pytest.mark.asyncio
async def test_superseded_computation_is_not_written_back() -> None:
    fake = FakeGit()
    fake.set(CURRENT, "main\n")
    fake.hold(CURRENT)
    module = make_module(fake)

    stale = asyncio.ensure_future(module.current_branch())
    await wait_for(lambda: fake.count(CURRENT) == 1)
    module.invalidate()
    fake.set(CURRENT, "feature\n")
    fake.release(CURRENT)

    assert await stale == "main"
    assert await module.current_branch() == "feature"
    assert fake.count(CURRENT) == 2


@pytest.mark.asyncio
async def test_diff_files_memoized_per_range() -> None:
    fake = FakeGit()
    fake.set(TOPLEVEL, "/repo\n")
    fake.set(["diff", "--name-status", "abc~1", "abc"], "A\tnew.txt\n")
    fake.set(["diff", "--numstat", "abc~1", "abc"], "4\t0\tnew.txt\n")
    module = make_module(fake)

    first = await module.diff_files("abc~1", "abc")
    second = await module.diff_files("abc~1", "abc")
    await module.diff_files("abc", "abc~1")

    assert first == second
    assert first[0].full_path == "/repo/new.txt"
    assert first[0].change_kind == "A"
    assert first[0].staged_numstat == NumStat(4, 0)
    assert fake.count(["diff", "--name-status", "abc~1", "abc"]) == 1
    assert fake.count(["diff", "--name-status", "abc", "abc~1"]) == 1


@pytest.mark.asyncio
async def test_remote_status_without_remotes_stops_early() -> None:
    fake = FakeGit()
    module = make_module(fake)

    assert await module.remote_status() is None
    assert fake.calls == [tuple(REMOTES)]


@pytest.mark.asyncio
async def test_remote_status_counts_ahead_and_behind() -> None:
    fake = FakeGit()
    _tracking_repo(fake)
    module = make_module(fake)

    status = await module.remote_status()

    assert status == RemoteTrackingStatus("origin", ahead=2, behind=5)
    assert fake.count(["fetch"]) == 1
    assert await module.default_remote() == Remote("origin", "git@example.com:repo.git")


@pytest.mark.asyncio
async def test_remote_status_without_upstream_branch() -> None:
    fake = FakeGit()
    _tracking_repo(fake)
    fake.set(CURRENT, "local-only\n")
    module = make_module(fake)

    assert await module.remote_status() is None
    assert not any(call[0] == "rev-list" for call in fake.calls)


@pytest.mark.asyncio
async def test_remote_status_parse_failure_degrades_to_none() -> None:
    fake = FakeGit()
    _tracking_repo(fake)
    fake.set(["rev-list", "--count", "origin/main..main"], "", exit_code=128)
    module = make_module(fake)

    assert await module.remote_status() is None


@pytest.mark.asyncio
async def test_remote_status_can_skip_fetch() -> None:
    fake = FakeGit()
    _tracking_repo(fake)
    module = make_module(fake, fetch_on_remote_status=False)

    assert await module.remote_status() is not None
    assert fake.count(["fetch"]) == 0


@pytest.mark.asyncio
async def test_not_a_repository() -> None:
    fake = FakeGit()
    fake.set(TOPLEVEL, "", exit_code=128)
    fake.set(["rev-parse", "--short", "--verify", "HEAD"], "", exit_code=128)
    module = make_module(fake)

    assert await module.is_git_repo() is False
    assert await module.git_repo_path() == ""
    assert await module.current_commit() == ""


@pytest.mark.asyncio
async def test_failed_computation_is_retried() -> None:
    fake = FakeGit()
    module = make_module(fake)
    calls = 0

    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return "ok"

    with pytest.raises(RuntimeError):
        await module._memo("flaky", flaky)
    await asyncio.sleep(0)

    assert await module._memo("flaky", flaky) == "ok"
    assert calls == 2


@pytest.mark.asyncio
async def test_process_log_records_commands_and_output() -> None:
    fake = FakeGit()
    fake.set(CURRENT, "main\n")
    module = make_module(fake, max_log_lines=3)

    await module.current_branch()

    log = module.process_log
    assert log[0].data == ">> git -c core.quotepath=false --no-optional-locks branch --show-current"
    assert log[1].data == "main"
    assert log[1].error is False

    await module.run_git_readonly(["status"])
    await module.run_git_readonly(["log"])
    assert len(module.process_log) == 3


def test_short_name() -> None:
    fake = FakeGit()

    assert make_module(fake, "/work/short").short_name == "short"
    long_module = make_module(fake, "/work/a-rather-long-package-name")
    assert long_module.name == "a-rather-long-package-name"
    assert long_module.short_name == "a..long-package-name"
    assert len(long_module.short_name) == 20
