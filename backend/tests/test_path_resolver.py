"""Tests for PathResolver: pure name resolution and idempotent cloning."""

from pathlib import Path

import pytest

from services.path_resolver import PathResolver, validate_repo_name
from utils.errors import CloneFailure, InvalidReference, NotFound, OperationTimeout

URL = "https://github.com/example/widgets.git"


@pytest.fixture
def resolver(tmp_path):
    return PathResolver(tmp_path / "repos", clone_timeout=30)


def test_short_name_resolves_without_touching_disk(resolver, tmp_path):
    resolved = resolver.resolve("widgets")

    assert resolved.path == str(tmp_path / "repos" / "widgets")
    assert resolved.repo_name == "widgets"
    assert resolved.cloned is False
    assert not (tmp_path / "repos").exists()


@pytest.mark.parametrize("name", ["", " padded", "..", ".", "a/b", "..\\x", "a\x00b", "../etc"])
def test_invalid_short_names_are_rejected(name):
    with pytest.raises(InvalidReference):
        validate_repo_name(name)


def test_malformed_url_is_rejected_before_cloning(resolver, monkeypatch):
    monkeypatch.setattr("services.path_resolver.clone_repository", lambda *args, **kwargs: pytest.fail("cloned"))
    with pytest.raises(InvalidReference):
        resolver.resolve("https://")


def test_url_is_cloned_once(resolver, monkeypatch, tmp_path):
    calls = []

    def _clone(url, target, timeout=None):
        calls.append(url)
        Path(target).mkdir(parents=True)
        return target

    monkeypatch.setattr("services.path_resolver.clone_repository", _clone)

    first = resolver.resolve(URL)
    second = resolver.resolve(URL)

    assert calls == [URL]
    assert first.cloned is True
    assert second.cloned is False
    assert first.path == second.path == str(tmp_path / "repos" / "widgets")
    assert second.url == URL


def test_clone_receives_configured_deadline(resolver, monkeypatch):
    deadlines = []

    def _clone(url, target, timeout=None):
        deadlines.append(timeout)
        Path(target).mkdir(parents=True)
        return target

    monkeypatch.setattr("services.path_resolver.clone_repository", _clone)

    resolver.resolve(URL)

    assert deadlines == [30]


def test_timed_out_clone_leaves_nothing_behind(resolver, monkeypatch, tmp_path):
    def _killed_clone(url, target, timeout=None):
        (Path(target) / ".git").mkdir(parents=True)
        raise OperationTimeout("Repository clone timed out.", details="killed")

    monkeypatch.setattr("services.path_resolver.clone_repository", _killed_clone)

    with pytest.raises(OperationTimeout):
        resolver.resolve(URL)
    assert not (tmp_path / "repos" / "widgets").exists()


def test_failed_clone_leaves_nothing_behind(resolver, monkeypatch, tmp_path):
    def _broken_clone(url, target, timeout=None):
        (Path(target) / "partial").mkdir(parents=True)
        raise CloneFailure("Failed to clone repository", details="network down")

    monkeypatch.setattr("services.path_resolver.clone_repository", _broken_clone)

    with pytest.raises(CloneFailure):
        resolver.resolve(URL)
    assert not (tmp_path / "repos" / "widgets").exists()


def test_locate_never_clones(resolver, monkeypatch, tmp_path):
    monkeypatch.setattr("services.path_resolver.clone_repository", lambda *args, **kwargs: pytest.fail("cloned"))

    located = resolver.locate(URL)

    assert located.repo_name == "widgets"
    assert located.path == str(tmp_path / "repos" / "widgets")


def test_require_existing(resolver, tmp_path):
    with pytest.raises(NotFound):
        resolver.resolve_existing("missing")

    (tmp_path / "repos" / "present").mkdir(parents=True)
    assert resolver.resolve_existing("present").path == str(tmp_path / "repos" / "present")
