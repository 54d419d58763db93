"""Map repository references (short names or remote URLs) to local paths.

Short names resolve purely to ``<repos_root>/<name>`` without touching the
disk. URLs are cloned on first use and reused afterwards. Callers that need
a short name to exist call :meth:`PathResolver.require_existing` as a
separate step.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from utils.errors import CloneFailure, InvalidReference, NotFound, OperationTimeout
from utils.git_parser import clone_repository, derive_repo_name, is_remote_reference, is_valid_git_url

logger = logging.getLogger(__name__)


@dataclass
class ResolvedRepository:
    """Outcome of resolving a repository reference."""

    path: str
    repo_name: str
    url: str | None = None
    cloned: bool = False


def validate_repo_name(name: str) -> str:
    """Reject names that could address anything but a direct child of the root."""
    if not name or name.strip() != name:
        raise InvalidReference("Invalid repository name", details=f"'{name}' is empty or padded")
    if name in (".", "..") or ".." in name or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidReference(
            "Invalid repository name",
            details=f"'{name}' must not contain path separators or parent-directory sequences",
        )
    return name


class PathResolver:
    """Resolves references against a single repos root."""

    def __init__(self, repos_root: Path, clone_timeout: float | None = None):
        self.repos_root = Path(repos_root)
        self.clone_timeout = clone_timeout

    def path_for_name(self, name: str) -> Path:
        return self.repos_root / validate_repo_name(name)

    def resolve(self, reference: str) -> ResolvedRepository:
        """
        Resolve a reference to a local path.

        Args:
            reference: Short repository name or remote Git URL.

        Returns:
            ResolvedRepository: ``cloned`` is True only when this call cloned.

        Raises:
            InvalidReference: If the reference is neither a valid name nor URL.
            CloneFailure: If cloning a not-yet-present URL fails.
        """
        reference = (reference or "").strip()
        if not reference:
            raise InvalidReference("Repository reference is required")
        if is_remote_reference(reference):
            return self.clone_or_get(reference)
        return ResolvedRepository(path=str(self.path_for_name(reference)), repo_name=reference)

    def locate(self, reference: str) -> ResolvedRepository:
        """Compute the local path for either reference form without any I/O."""
        reference = (reference or "").strip()
        if not reference:
            raise InvalidReference("Repository reference is required")
        if is_remote_reference(reference):
            if not is_valid_git_url(reference):
                raise InvalidReference("Invalid git URL format", details=reference)
            repo_name = derive_repo_name(reference)
            return ResolvedRepository(path=str(self.repos_root / repo_name), repo_name=repo_name, url=reference)
        return ResolvedRepository(path=str(self.path_for_name(reference)), repo_name=reference)

    def clone_or_get(self, url: str) -> ResolvedRepository:
        """
        Reuse the clone of ``url`` or create it.

        The existence check and the clone are one step for a given target;
        callers hold the repository lock for ``locate(url).path`` around it.
        """
        if not is_valid_git_url(url):
            raise InvalidReference("Invalid git URL format", details=url)

        repo_name = derive_repo_name(url)
        target = self.repos_root / repo_name

        if target.exists():
            return ResolvedRepository(path=str(target), repo_name=repo_name, url=url, cloned=False)

        self.repos_root.mkdir(parents=True, exist_ok=True)
        try:
            clone_repository(url, str(target), timeout=self.clone_timeout)
        except (CloneFailure, OperationTimeout):
            logger.error("Git clone error for %s", url)
            # Never leave a partial clone behind; the next request starts over.
            if target.exists():
                shutil.rmtree(target, ignore_errors=True)
            raise

        return ResolvedRepository(path=str(target), repo_name=repo_name, url=url, cloned=True)

    @staticmethod
    def require_existing(path: str) -> str:
        if not Path(path).is_dir():
            raise NotFound("Repository not found", details=f"No repository directory at {path}")
        return path

    def resolve_existing(self, reference: str) -> ResolvedRepository:
        """Resolve a reference and require the directory to be present."""
        resolved = self.resolve(reference)
        self.require_existing(resolved.path)
        return resolved
