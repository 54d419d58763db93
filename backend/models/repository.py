"""Data models for repository endpoints."""

from pydantic import BaseModel, Field


class ChangeCounts(BaseModel):
    staged: int = 0
    modified: int = 0
    untracked: int = 0
    deleted: int = 0


class Remote(BaseModel):
    name: str
    urls: list[str] = Field(default_factory=list)


class CommitInfo(BaseModel):
    hash: str
    author: str | None = None
    email: str | None = None
    date: str
    message: str


class RepositorySummary(BaseModel):
    """One entry of GET /git/repos.

    Directories that are not Git repositories (or whose status could not be
    read) carry ``isGitRepo=False`` and an ``error`` instead of status fields.
    """

    name: str
    path: str
    isGitRepo: bool
    currentBranch: str | None = None
    trackingBranch: str | None = None
    ahead: int = 0
    behind: int = 0
    changes: ChangeCounts = Field(default_factory=ChangeCounts)
    remotes: list[Remote] = Field(default_factory=list)
    lastCommit: CommitInfo | None = None
    error: str | None = None


class RepositoryListResponse(BaseModel):
    repositories: list[RepositorySummary]
    totalCount: int
    validGitRepos: int


class InitRequest(BaseModel):
    url: str


class SaveRequest(BaseModel):
    repo: str
    message: str


class PullRequest(BaseModel):
    repo: str
    remote: str | None = None
    branch: str | None = None


class BranchRequest(BaseModel):
    repo: str
    branch: str | None = None


class CheckoutRequest(BaseModel):
    repo: str
    branch: str


class ResetRequest(BaseModel):
    repo: str
    mode: str | None = "mixed"  # "soft" | "mixed" | "hard"
    target: str | None = "HEAD"


class WriteFileRequest(BaseModel):
    content: str
