"""Read-only index of the repositories present under the repos root.

Directories are probed concurrently, each on its own. A directory that is
not a Git repository, or whose status cannot be read in time, is reported
inline with ``isGitRepo=False`` instead of failing the whole listing.
"""

import asyncio
import logging
from concurrent.futures import Executor
from pathlib import Path

from models.repository import ChangeCounts, CommitInfo, Remote, RepositorySummary
from utils.git_parser import last_commit, list_remotes, open_repo, read_status

logger = logging.getLogger(__name__)


def summarize_repository(path: Path, timeout: float | None = None) -> RepositorySummary:
    """Gather branch, tracking, change counts, remotes and last commit."""
    try:
        with open_repo(str(path)) as repo:
            status = read_status(repo, timeout=timeout)
            remotes = list_remotes(repo)
            commit = last_commit(repo)
    except Exception as exc:
        logger.warning("Repository index: could not read %s: %s", path, exc)
        return RepositorySummary(
            name=path.name,
            path=str(path),
            isGitRepo=False,
            error=str(exc) or type(exc).__name__,
        )

    return RepositorySummary(
        name=path.name,
        path=str(path),
        isGitRepo=True,
        currentBranch=status["current"],
        trackingBranch=status["tracking"],
        ahead=status["ahead"],
        behind=status["behind"],
        changes=ChangeCounts(
            staged=len(status["staged"]),
            modified=len(status["modified"]),
            untracked=len(status["untracked"]),
            deleted=len(status["deleted"]),
        ),
        remotes=[Remote(**remote) for remote in remotes],
        lastCommit=CommitInfo(**commit) if commit else None,
    )


def list_repository_directories(repos_root: Path) -> list[Path]:
    """Immediate, non-hidden subdirectories of ``repos_root`` sorted by name."""
    root = Path(repos_root)
    if not root.is_dir():
        return []
    return sorted(
        (entry for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith(".")),
        key=lambda entry: entry.name,
    )


async def index_repositories(
    repos_root: Path, executor: Executor, timeout: float | None = None
) -> list[RepositorySummary]:
    """
    Summarize every immediate subdirectory of ``repos_root``.

    Repositories are probed concurrently on ``executor``. One that has not
    answered within ``timeout`` seconds is reported inline as unreadable;
    the others are unaffected.

    Returns:
        list[RepositorySummary]: Sorted by name; empty if the root is missing.
    """
    loop = asyncio.get_running_loop()
    directories = await loop.run_in_executor(executor, list_repository_directories, Path(repos_root))
    if not directories:
        return []

    futures = [loop.run_in_executor(executor, summarize_repository, directory, timeout) for directory in directories]
    done, _ = await asyncio.wait(futures, timeout=timeout)

    summaries = []
    for directory, future in zip(directories, futures):
        if future in done:
            summaries.append(future.result())
            continue
        logger.warning("Repository index: %s did not answer within %s seconds", directory, timeout)
        summaries.append(
            RepositorySummary(
                name=directory.name,
                path=str(directory),
                isGitRepo=False,
                error=f"Timed out after {timeout} seconds reading repository status",
            )
        )
    return summaries
