"""API tests for per-repository serialization and deadlines.

Work on one repository must never hold up another, and a request answered
with 408 must not change anything afterwards.
"""

import asyncio
import threading
import time
from pathlib import Path

import pytest

from conftest import init_repo
from services import repo_index
from utils.settings import Settings

REMOTE_URL = "https://github.com/example/remote.git"


@pytest.fixture
def settings(tmp_path):
    workdir = tmp_path / "work"
    workdir.mkdir()
    return Settings(
        repos_root=tmp_path / "repos",
        default_working_directory=workdir,
        git_timeout=1.0,
        clone_timeout=5.0,
        worker_threads=2,
    )


@pytest.fixture
def repos(settings):
    init_repo(settings.repos_root / "busy")
    init_repo(settings.repos_root / "other")
    return settings.repos_root


def _hold(app, path):
    return asyncio.run(app.state.locks.acquire(path))


def _in_threads(count, call):
    results = [None] * count

    def _run(index):
        results[index] = call()

    threads = [threading.Thread(target=_run, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    return threads, results


def test_write_timed_out_on_busy_repository_never_lands(app, client, repos):
    release = _hold(app, repos / "busy")
    try:
        response = client.put("/git/repos/busy/files/late.txt", json={"content": "late"})
        assert response.status_code == 408
        assert response.json()["error"] == "Repository is busy."
    finally:
        release()

    time.sleep(0.2)
    assert not (repos / "busy" / "late.txt").exists()
    assert app.state.locks.active_count() == 0

    retry = client.put("/git/repos/busy/files/late.txt", json={"content": "late"})
    assert retry.status_code == 200
    assert (repos / "busy" / "late.txt").read_text(encoding="utf-8") == "late"


def test_waiters_on_busy_repository_do_not_stall_other_reads(app, client, repos):
    release = _hold(app, repos / "busy")
    try:
        threads, results = _in_threads(
            8, lambda: client.put("/git/repos/busy/files/x.txt", json={"content": "x"})
        )
        time.sleep(0.2)

        started = time.monotonic()
        read = client.get("/git/repos/other/files/README.md")
        elapsed = time.monotonic() - started

        for thread in threads:
            thread.join()
    finally:
        release()

    assert read.status_code == 200
    assert read.json()["content"] == "# Test\n"
    assert elapsed < 1.0
    assert [r.status_code for r in results] == [408] * 8
    assert not (repos / "busy" / "x.txt").exists()


def test_mutations_on_one_repository_leave_others_free(app, client, repos):
    release = _hold(app, repos / "busy")
    try:
        busy = client.post("/git/reset", json={"repo": "busy", "mode": "hard"})
        free = client.post("/git/reset", json={"repo": "other", "mode": "hard"})
    finally:
        release()

    assert busy.status_code == 408
    assert free.status_code == 200


def test_slow_clone_does_not_block_reads_elsewhere(client, repos, monkeypatch):
    clone_started = threading.Event()
    finish_clone = threading.Event()

    def _slow_clone(url, target, timeout=None):
        clone_started.set()
        finish_clone.wait(5)
        init_repo(Path(target))
        return target

    monkeypatch.setattr("services.path_resolver.clone_repository", _slow_clone)

    threads, results = _in_threads(1, lambda: client.post("/git/init", json={"url": REMOTE_URL}))
    try:
        assert clone_started.wait(5)
        read = client.get("/git/repos/other/files/README.md")
    finally:
        finish_clone.set()
        threads[0].join()

    assert read.status_code == 200
    assert results[0].status_code == 200


def test_concurrent_inits_clone_once(client, repos, monkeypatch):
    calls = []

    def _clone(url, target, timeout=None):
        calls.append(url)
        time.sleep(0.2)
        init_repo(Path(target))
        return target

    monkeypatch.setattr("services.path_resolver.clone_repository", _clone)

    threads, results = _in_threads(3, lambda: client.post("/git/init", json={"url": REMOTE_URL}))
    for thread in threads:
        thread.join()

    assert calls == [REMOTE_URL]
    assert sorted(r.status_code for r in results) == [200, 409, 409]


def test_listing_reports_stalled_repository_inline(client, repos, monkeypatch):
    unblock = threading.Event()
    real_read_status = repo_index.read_status

    def _read_status(repo, timeout=None):
        if repo.working_tree_dir.endswith("busy"):
            unblock.wait(5)
        return real_read_status(repo, timeout=timeout)

    monkeypatch.setattr(repo_index, "read_status", _read_status)
    try:
        response = client.get("/git/repos")
    finally:
        unblock.set()

    assert response.status_code == 200
    by_name = {repo["name"]: repo for repo in response.json()["repositories"]}
    assert by_name["other"]["isGitRepo"] is True
    assert by_name["busy"]["isGitRepo"] is False
    assert "Timed out" in by_name["busy"]["error"]
    assert response.json()["validGitRepos"] == 1


def test_lock_is_released_when_work_cannot_be_scheduled(app, client, repos):
    app.state.executor.shutdown(wait=True)

    response = client.put("/git/repos/busy/files/never.txt", json={"content": "x"})

    assert response.status_code == 500
    assert app.state.locks.active_count() == 0
    assert not (repos / "busy" / "never.txt").exists()
