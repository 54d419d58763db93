"""Git operations behind the /git endpoints.

Everything here is blocking and is meant to run on the API's worker pool.
Callers hold the per-repository lock around mutating operations (see
``api.deps.run_blocking``); reads run unlocked.
"""

import logging
import shutil
from contextlib import contextmanager

from git import GitCommandError, InvalidGitRepositoryError, RemoteReference

from services.path_resolver import PathResolver
from utils.errors import AlreadyExists, InvalidReference, InvalidRequest, NotFound, VcsFailure
from utils.git_parser import (
    is_remote_reference,
    list_commits,
    list_remotes,
    open_repo,
    read_status,
    run_git,
)

logger = logging.getLogger(__name__)

RESET_MODES = ("soft", "mixed", "hard")


@contextmanager
def _vcs_errors(action: str):
    """Translate GitPython command failures into VcsFailure."""
    try:
        yield
    except GitCommandError as e:
        logger.error("Git %s failed: %s", action, e)
        raise VcsFailure(f"Failed to {action}", details=str(e)) from e


def _reject_option(value: str | None, field: str) -> None:
    # Values are passed to git as positional arguments.
    if value and value.startswith("-"):
        raise InvalidRequest(f"Invalid {field}", details=f"'{value}' must not start with '-'")


def _remote_branches(repo) -> list[RemoteReference]:
    return [ref for ref in repo.refs if isinstance(ref, RemoteReference) and not ref.name.endswith("/HEAD")]


class GitService:
    """Repository-level Git operations for one repos root."""

    def __init__(self, resolver: PathResolver, timeout: float | None = None):
        self.resolver = resolver
        self.timeout = timeout

    def _git(self, repo, *args: str) -> str:
        return run_git(repo, *args, timeout=self.timeout)

    @contextmanager
    def _open(self, reference: str):
        resolved = self.resolver.resolve_existing(reference)
        try:
            repo = open_repo(resolved.path)
        except InvalidGitRepositoryError as e:
            raise InvalidRequest("Not a git repository", details=resolved.path) from e
        try:
            yield resolved, repo
        finally:
            repo.close()

    def init(self, url: str) -> dict:
        """
        Clone a repository for the first time.

        Raises:
            InvalidReference: If ``url`` is not a remote Git URL.
            AlreadyExists: If the clone target is already present.
            CloneFailure: If cloning fails.
        """
        url = (url or "").strip()
        if not url:
            raise InvalidRequest("Git URL is required")
        if not is_remote_reference(url):
            raise InvalidReference("Invalid git URL format", details=url)

        resolved = self.resolver.clone_or_get(url)
        if not resolved.cloned:
            raise AlreadyExists(
                "Repository already exists",
                extra={
                    "alreadyExists": True,
                    "repoName": resolved.repo_name,
                    "path": resolved.path,
                    "url": url,
                },
            )
        return {
            "message": "Repository cloned successfully",
            "repoName": resolved.repo_name,
            "path": resolved.path,
            "url": url,
        }

    def status(self, reference: str) -> dict:
        with self._open(reference) as (resolved, repo), _vcs_errors("read repository status"):
            status = read_status(repo, timeout=self.timeout)
            branches = [head.name for head in repo.heads]
            remotes = list_remotes(repo)

        return {
            "repo": resolved.repo_name,
            "path": resolved.path,
            "currentBranch": status["current"],
            "trackingBranch": status["tracking"],
            "detached": status["detached"],
            "ahead": status["ahead"],
            "behind": status["behind"],
            "staged": status["staged"],
            "modified": status["modified"],
            "untracked": status["untracked"],
            "deleted": status["deleted"],
            "conflicted": status["conflicted"],
            "isClean": not status["files"],
            "branches": branches,
            "remotes": remotes,
        }

    def save(self, reference: str, message: str) -> dict:
        """
        Stage everything, commit and push.

        Returns "No changes to commit" without committing when nothing is
        staged after ``git add --all``.
        """
        if not message or not message.strip():
            raise InvalidRequest("Commit message is required")

        with self._open(reference) as (resolved, repo):
            logger.info("Saving changes to repository: %s", resolved.path)
            with _vcs_errors("save changes"):
                self._git(repo, "add", "--all")
                status = read_status(repo, timeout=self.timeout)
                if not status["staged"]:
                    return {"message": "No changes to commit", "repoPath": resolved.path}
                if not repo.remotes:
                    raise InvalidRequest("No remote configured for push", details=resolved.path)

                self._git(repo, "commit", "-m", message)
                commit = repo.head.commit
                totals = commit.stats.total
                logger.info("Committed changes: %s", commit.hexsha)

                if status["tracking"]:
                    self._git(repo, "push")
                else:
                    remote_names = [remote.name for remote in repo.remotes]
                    remote = "origin" if "origin" in remote_names else remote_names[0]
                    self._git(repo, "push", "--set-upstream", remote, status["current"] or repo.active_branch.name)
                logger.info("Pushed changes to remote")

        return {
            "message": "Changes saved successfully",
            "repoPath": resolved.path,
            "commit": commit.hexsha,
            "summary": {
                "files": totals.get("files", 0),
                "insertions": totals.get("insertions", 0),
                "deletions": totals.get("deletions", 0),
            },
            "changedFiles": len(status["staged"]),
        }

    def pull(self, reference: str, remote: str | None = None, branch: str | None = None) -> dict:
        _reject_option(remote, "remote")
        _reject_option(branch, "branch")

        args = ["pull"]
        if remote or branch:
            args.append(remote or "origin")
        if branch:
            args.append(branch)

        with self._open(reference) as (resolved, repo):
            with _vcs_errors("pull changes"):
                previous = repo.head.commit.hexsha if repo.head.is_valid() else None
                output = self._git(repo, *args)
                current = repo.head.commit.hexsha if repo.head.is_valid() else None
                changed_files = []
                if previous and current and previous != current:
                    changed_files = self._git(repo, "diff", "--name-only", previous, current).splitlines()

        updated = previous != current
        return {
            "message": "Pulled changes successfully" if updated else "Already up to date",
            "remote": remote,
            "branch": branch,
            "previousCommit": previous,
            "currentCommit": current,
            "updated": updated,
            "changedFiles": changed_files,
            "output": output,
        }

    def branch(self, reference: str, branch: str | None = None) -> dict:
        """Create and check out ``branch``, or list branches when it is None."""
        with self._open(reference) as (resolved, repo):
            if not branch:
                with _vcs_errors("list branches"):
                    status = read_status(repo, timeout=self.timeout)
                    return {
                        "current": status["current"],
                        "branches": [head.name for head in repo.heads],
                        "remoteBranches": [ref.name for ref in _remote_branches(repo)],
                    }

            _reject_option(branch, "branch")
            try:
                self._git(repo, "check-ref-format", "--branch", branch)
            except GitCommandError as e:
                raise InvalidRequest("Invalid branch name", details=branch) from e
            if branch in [head.name for head in repo.heads]:
                raise AlreadyExists("Branch already exists", extra={"branch": branch})

            with _vcs_errors("create branch"):
                self._git(repo, "checkout", "-b", branch)
            logger.info("Created branch %s in %s", branch, resolved.path)
            return {"message": f"Created and switched to branch {branch}", "branch": branch, "created": True}

    def checkout(self, reference: str, branch: str) -> dict:
        if not branch:
            raise InvalidRequest("Branch name is required")
        _reject_option(branch, "branch")

        with self._open(reference) as (resolved, repo):
            local = [head.name for head in repo.heads]
            remote = [ref.remote_head for ref in _remote_branches(repo)]
            if branch not in local and branch not in remote:
                raise NotFound("Branch not found", details=branch)
            with _vcs_errors("checkout branch"):
                self._git(repo, "checkout", branch)
        return {"message": f"Switched to branch {branch}", "branch": branch}

    def log(self, reference: str, limit: int = 10) -> dict:
        with self._open(reference) as (resolved, repo), _vcs_errors("read commit log"):
            commits = list_commits(repo, max_commits=limit)
        return {"repo": resolved.repo_name, "commits": commits, "count": len(commits)}

    def reset(self, reference: str, mode: str | None = "mixed", target: str | None = "HEAD") -> dict:
        mode = mode or "mixed"
        target = target or "HEAD"
        if mode not in RESET_MODES:
            raise InvalidRequest(
                f"Invalid reset mode: {mode}. Must be one of {', '.join(RESET_MODES)}."
            )
        _reject_option(target, "target")

        with self._open(reference) as (resolved, repo):
            with _vcs_errors("reset repository"):
                self._git(repo, "reset", f"--{mode}", target)
                head = repo.head.commit.hexsha if repo.head.is_valid() else None
        logger.info("Reset %s (%s) to %s", resolved.path, mode, target)
        return {"message": f"Reset ({mode}) to {target}", "mode": mode, "target": target, "head": head}

    def diff(self, reference: str, staged: bool = False) -> dict:
        args = ["diff", "--cached"] if staged else ["diff"]
        with self._open(reference) as (resolved, repo), _vcs_errors("compute diff"):
            diff_text = self._git(repo, *args)
            files = self._git(repo, *args, "--name-only").splitlines()
        return {"repo": resolved.repo_name, "staged": staged, "files": files, "diff": diff_text}

    def delete(self, reference: str) -> dict:
        """Remove a repository directory. Sessions bound to it are kept."""
        resolved = self.resolver.locate(reference)
        self.resolver.require_existing(resolved.path)
        try:
            shutil.rmtree(resolved.path)
        except OSError as e:
            raise VcsFailure("Failed to delete repository", details=str(e)) from e
        logger.info("Deleted repository %s", resolved.path)
        return {
            "message": "Repository deleted successfully",
            "repoName": resolved.repo_name,
            "path": resolved.path,
        }
