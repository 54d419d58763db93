"""Git repository helpers for the Claude Remote backend.

This module wraps GitPython: URL validation and repository naming, cloning,
running git commands with a deadline, and parsing porcelain status and
commit metadata.
"""

import logging
import re
import time
from itertools import islice
from pathlib import Path
from typing import Optional

from git import Git, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from utils.errors import CloneFailure, InvalidReference, OperationTimeout

logger = logging.getLogger(__name__)

UNKNOWN_REPO_NAME = "unknown-repo"

# (https?://|git@)host[:port]/path[.git], plus scp-style git@host:path
_GIT_URL_PATTERN = re.compile(
    r"^(?:https?://[\w\-.]+(?::\d+)?/|git@[\w\-.]+(?::\d+/|[:/]))[\w\-./~]+$"
)

_BRANCH_LINE = re.compile(
    r"^(?P<branch>\S+?)(?:\.\.\.(?P<tracking>\S+))?(?: \[(?P<counts>[^\]]+)\])?$"
)


def is_remote_reference(reference: str) -> bool:
    """Return True when a repository reference should be treated as a URL."""
    return "://" in reference or reference.startswith("git@")


def is_valid_git_url(url: str) -> bool:
    return bool(_GIT_URL_PATTERN.match(url or ""))


def derive_repo_name(repo_url: str) -> str:
    """Derive the local folder name from a Git URL.

    The final path segment (``/`` or scp-style ``:``) with a trailing
    ``.git`` removed; an empty
    segment falls back to ``unknown-repo``.
    """
    repo_name = re.split(r"[/:]", repo_url)[-1]
    if repo_name.endswith(".git"):
        repo_name = repo_name[: -len(".git")]
    repo_name = repo_name.strip()
    if not repo_name:
        return UNKNOWN_REPO_NAME
    if repo_name in (".", ".."):
        raise InvalidReference("Invalid git URL format", details=f"Cannot derive a repository name from {repo_url}")
    return repo_name


def _execute(git: Git, argv: list[str], timeout: float | None, action: str) -> str:
    """Run a git command line, killing it after ``timeout`` seconds.

    Raises:
        OperationTimeout: If the command was killed at its deadline.
        GitCommandError: For any other non-zero exit.
    """
    started = time.monotonic()
    try:
        return git.execute([git.GIT_PYTHON_GIT_EXECUTABLE, *argv], kill_after_timeout=timeout)
    except GitCommandError as e:
        if timeout is not None and time.monotonic() - started >= timeout:
            logger.error("git %s killed after %s seconds", argv[0], timeout)
            raise OperationTimeout(
                f"{action} timed out.", details=f"git {argv[0]} did not finish within {timeout} seconds"
            ) from e
        raise


def clone_repository(repo_url: str, target_path: str, timeout: float | None = None) -> str:
    """Clone ``repo_url`` into ``target_path`` and return the path.

    Raises:
        CloneFailure: On any git error (network, auth, unknown remote).
        OperationTimeout: If the clone outlived ``timeout`` seconds and was killed.
    """
    logger.info("Cloning repository: %s to %s", repo_url, target_path)
    try:
        _execute(Git(), ["clone", "--", repo_url, target_path], timeout, "Repository clone")
    except GitCommandError as e:
        raise CloneFailure(f"Failed to clone repository {repo_url}", details=str(e)) from e
    logger.info("Successfully cloned repository: %s", Path(target_path).name)
    return target_path


def open_repo(repo_path: str) -> Repo:
    """Open an existing repository.

    Raises:
        InvalidGitRepositoryError: If the path is not a Git working tree.
    """
    try:
        return Repo(repo_path)
    except NoSuchPathError as e:
        raise InvalidGitRepositoryError(f"Path does not exist: {repo_path}") from e


def run_git(repo: Repo, *args: str, timeout: float | None = None) -> str:
    """Run ``git <args>`` inside ``repo`` and return stdout.

    Uses the executable GitPython was configured with. The subprocess is
    killed when it outlives ``timeout`` seconds.
    """
    return _execute(repo.git, list(args), timeout, f"git {args[0]}")


def _unquote(path: str) -> str:
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return path[1:-1]
    return path


def _parse_branch_line(line: str, status: dict) -> None:
    header = line[3:].strip()
    for prefix in ("No commits yet on ", "Initial commit on "):
        if header.startswith(prefix):
            status["current"] = header[len(prefix):]
            return
    if header.startswith("HEAD (no branch)"):
        status["detached"] = True
        return

    match = _BRANCH_LINE.match(header)
    if not match:
        status["current"] = header
        return
    status["current"] = match.group("branch")
    status["tracking"] = match.group("tracking")
    for part in (match.group("counts") or "").split(","):
        part = part.strip()
        if part.startswith("ahead "):
            status["ahead"] = int(part[len("ahead "):])
        elif part.startswith("behind "):
            status["behind"] = int(part[len("behind "):])


def parse_porcelain_status(output: str) -> dict:
    """Parse ``git status --porcelain=v1 -b`` output.

    Returns a dict with current/tracking branch, ahead/behind counts and the
    file lists staged, modified, untracked, deleted, conflicted and files
    (every changed path once).
    """
    status = {
        "current": None,
        "tracking": None,
        "detached": False,
        "ahead": 0,
        "behind": 0,
        "staged": [],
        "modified": [],
        "untracked": [],
        "deleted": [],
        "conflicted": [],
        "files": [],
    }

    for line in output.splitlines():
        if not line:
            continue
        if line.startswith("## "):
            _parse_branch_line(line, status)
            continue
        if len(line) < 4:
            continue

        x, y = line[0], line[1]
        path = line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = _unquote(path)

        if x == "!" and y == "!":
            continue
        status["files"].append(path)

        if x == "?" and y == "?":
            status["untracked"].append(path)
            continue
        if "U" in (x, y) or (x, y) in (("A", "A"), ("D", "D")):
            status["conflicted"].append(path)
            continue
        if x not in (" ", "?"):
            status["staged"].append(path)
        if y in ("M", "T"):
            status["modified"].append(path)
        if x == "D" or y == "D":
            status["deleted"].append(path)

    return status


def read_status(repo: Repo, timeout: float | None = None) -> dict:
    return parse_porcelain_status(run_git(repo, "status", "--porcelain=v1", "-b", timeout=timeout))


def describe_commit(commit) -> dict:
    return {
        "hash": commit.hexsha,
        "author": commit.author.name,
        "email": commit.author.email,
        "date": commit.committed_datetime.isoformat(),
        "message": commit.message.strip(),
    }


def last_commit(repo: Repo) -> dict | None:
    """Return metadata for HEAD, or None for a repository without commits."""
    if not repo.head.is_valid():
        return None
    return describe_commit(repo.head.commit)


def list_remotes(repo: Repo) -> list[dict]:
    remotes = []
    for remote in repo.remotes:
        try:
            urls = list(remote.urls)
        except GitCommandError:
            urls = []
        remotes.append({"name": remote.name, "urls": urls})
    return remotes


def list_commits(repo: Repo, max_commits: Optional[int] = None) -> list[dict]:
    """
    List commit metadata from HEAD backwards.

    Returns a list of commit dictionaries with keys:
    - hash
    - author
    - email
    - date
    - message
    - files_changed (list of file paths)
    """
    if not repo.head.is_valid():
        return []

    limit = max_commits if max_commits is not None and max_commits > 0 else 1000
    result: list[dict] = []
    for commit in islice(repo.iter_commits(), limit):
        files_changed = []
        try:
            if commit.parents:
                for item in commit.parents[0].diff(commit):
                    path = item.b_path if item.b_path else item.a_path
                    if path:
                        files_changed.append(path)
            else:
                for item in commit.tree.traverse():
                    if item.type == "blob":
                        files_changed.append(item.path)
        except (GitCommandError, ValueError) as exc:
            logger.warning("Could not list files for commit %s: %s", commit.hexsha, exc)
            files_changed = []

        entry = describe_commit(commit)
        entry["files_changed"] = files_changed
        result.append(entry)

    return result
