"""Shared fixtures: local Git repositories, a scripted engine and an API client."""

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from git import Repo

from main import create_app
from services.engine import ConversationEngine
from utils.settings import Settings


def configure_identity(repo: Repo) -> Repo:
    with repo.config_writer() as config:
        config.set_value("user", "name", "Tester")
        config.set_value("user", "email", "tester@example.com")
    return repo


def init_repo(path: Path, files: dict[str, str] | None = None) -> Repo:
    """Create a repository on branch ``main`` with one commit of ``files``."""
    path.mkdir(parents=True, exist_ok=True)
    repo = configure_identity(Repo.init(path))
    repo.git.symbolic_ref("HEAD", "refs/heads/main")
    for name, content in (files or {"README.md": "# Test\n"}).items():
        file_path = path / name
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
    repo.git.add("--all")
    repo.index.commit("Initial commit")
    return repo


class ScriptedEngine(ConversationEngine):
    """Engine that replays canned messages and records every invocation."""

    def __init__(self, messages=None, error: Exception | None = None, hang: bool = False):
        self.messages = list(messages if messages is not None else [{"type": "assistant", "content": "done"}])
        self.error = error
        self.hang = hang
        self.calls: list[dict] = []

    async def invoke(self, prompt, cwd, turn_budget, tools, abort, continue_conversation=False):
        self.calls.append(
            {
                "prompt": prompt,
                "cwd": cwd,
                "turn_budget": turn_budget,
                "tools": tuple(tools),
                "continue_conversation": continue_conversation,
            }
        )
        for message in self.messages:
            await asyncio.sleep(0)
            yield message
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.sleep(3600)


@pytest.fixture
def remote_repo(tmp_path):
    """Bare repository seeded with one commit on ``main``, usable as ``origin``."""
    bare_path = tmp_path / "remote.git"
    bare = Repo.init(bare_path, bare=True)

    seed = init_repo(tmp_path / "seed", {"README.md": "# Remote\n", "src/app.py": "print('hi')\n"})
    seed.create_remote("origin", str(bare_path))
    seed.git.push("origin", "main")
    bare.git.symbolic_ref("HEAD", "refs/heads/main")
    return bare_path


@pytest.fixture
def settings(tmp_path):
    workdir = tmp_path / "work"
    workdir.mkdir()
    return Settings(repos_root=tmp_path / "repos", default_working_directory=workdir)


@pytest.fixture
def engine():
    return ScriptedEngine()


@pytest.fixture
def app(settings, engine):
    settings.repos_root.mkdir(parents=True, exist_ok=True)
    return create_app(settings, engine=engine)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def local_clone(monkeypatch, remote_repo):
    """Make every clone copy the local bare repository instead of the network."""
    cloned_urls = []

    def _clone(url, target, timeout=None):
        cloned_urls.append(url)
        configure_identity(Repo.clone_from(str(remote_repo), target))
        return target

    monkeypatch.setattr("services.path_resolver.clone_repository", _clone)
    return cloned_urls
