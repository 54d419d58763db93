"""API routes for repository management under /git."""

from fastapi import APIRouter, Query, Request

from api.deps import git_service_of, lock_target, resolver_of, run_blocking, settings_of
from models.repository import (
    BranchRequest,
    CheckoutRequest,
    InitRequest,
    PullRequest,
    RepositoryListResponse,
    ResetRequest,
    SaveRequest,
    WriteFileRequest,
)
from services.file_service import read_path, write_file
from services.repo_index import index_repositories

router = APIRouter(prefix="/git", tags=["git"])


# ============================================================================
# REPOSITORY ENDPOINTS
# ============================================================================


@router.post("/init")
async def init_repository(payload: InitRequest, request: Request) -> dict:
    """
    Clone a repository into the repos root.

    Request body:
        {
            "url": "https://github.com/user/repo.git"
        }

    Returns:
        dict: Contains "message", "repoName", "path" and "url".

    Raises:
        400 if the URL is malformed, 409 if the repository is already
        cloned, 500 if cloning fails, 408 on timeout.
    """
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.init(payload.url),
        settings_of(request).clone_timeout,
        "Repository clone",
        # Anything but a URL is rejected by the service before any I/O.
        lock=lock_target(request, payload.url, mutating=False),
    )


@router.get("/repos", response_model=RepositoryListResponse)
async def get_repositories(request: Request) -> RepositoryListResponse:
    """
    List every repository under the repos root with its VCS status.

    Directories that are not valid repositories, or that do not answer
    within the Git timeout, are reported with isGitRepo=false and an error
    message rather than failing the listing.
    """
    settings = settings_of(request)
    repositories = await index_repositories(
        settings.repos_root, request.app.state.executor, timeout=settings.git_timeout
    )
    return RepositoryListResponse(
        repositories=repositories,
        totalCount=len(repositories),
        validGitRepos=sum(1 for repo in repositories if repo.isGitRepo),
    )


@router.get("/status/{repo}")
async def get_status(repo: str, request: Request) -> dict:
    """Current branch, ahead/behind, changed file lists, branches and remotes."""
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.status(repo),
        settings_of(request).git_timeout,
        "Status",
        lock=lock_target(request, repo, mutating=False),
    )


@router.post("/save")
async def save_changes(payload: SaveRequest, request: Request) -> dict:
    """
    Stage all changes, commit them and push.

    Request body:
        {
            "repo": "repo-name or https://github.com/user/repo.git",
            "message": "Commit message"
        }

    Returns:
        dict: "No changes to commit" when the working tree is clean,
              otherwise the commit id, a diff summary and changedFiles.
    """
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.save(payload.repo, payload.message),
        settings_of(request).git_timeout,
        "Save",
        lock=lock_target(request, payload.repo),
    )


@router.post("/pull")
async def pull_changes(payload: PullRequest, request: Request) -> dict:
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.pull(payload.repo, remote=payload.remote, branch=payload.branch),
        settings_of(request).git_timeout,
        "Pull",
        lock=lock_target(request, payload.repo),
    )


@router.post("/branch")
async def branch(payload: BranchRequest, request: Request) -> dict:
    """Create and check out a branch when one is given; list branches otherwise."""
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.branch(payload.repo, payload.branch),
        settings_of(request).git_timeout,
        "Branch",
        lock=lock_target(request, payload.repo, mutating=bool(payload.branch)),
    )


@router.post("/checkout")
async def checkout(payload: CheckoutRequest, request: Request) -> dict:
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.checkout(payload.repo, payload.branch),
        settings_of(request).git_timeout,
        "Checkout",
        lock=lock_target(request, payload.repo),
    )


@router.get("/log/{repo}")
async def get_log(repo: str, request: Request, limit: int = Query(10, ge=1, le=1000)) -> dict:
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.log(repo, limit=limit),
        settings_of(request).git_timeout,
        "Log",
        lock=lock_target(request, repo, mutating=False),
    )


@router.post("/reset")
async def reset(payload: ResetRequest, request: Request) -> dict:
    """
    Reset the current branch.

    Request body:
        {
            "repo": "repo-name",
            "mode": "soft" | "mixed" | "hard",  // optional, defaults to "mixed"
            "target": "HEAD~1"                  // optional, defaults to "HEAD"
        }
    """
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.reset(payload.repo, mode=payload.mode, target=payload.target),
        settings_of(request).git_timeout,
        "Reset",
        lock=lock_target(request, payload.repo),
    )


@router.get("/diff/{repo}")
async def get_diff(repo: str, request: Request, staged: bool = False) -> dict:
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.diff(repo, staged=staged),
        settings_of(request).git_timeout,
        "Diff",
        lock=lock_target(request, repo, mutating=False),
    )


@router.delete("/repo/{repo}")
async def delete_repository(repo: str, request: Request) -> dict:
    """Delete a cloned repository from disk (404 if it is not present)."""
    service = git_service_of(request)
    return await run_blocking(
        request,
        lambda: service.delete(repo),
        settings_of(request).git_timeout,
        "Delete",
        lock=lock_target(request, repo),
    )


# ============================================================================
# FILE ENDPOINTS
# ============================================================================


def _existing_repo_path(request: Request, name: str) -> str:
    # Two phases: pure name resolution, then the existence check.
    resolver = resolver_of(request)
    return resolver.require_existing(str(resolver.path_for_name(name)))


@router.get("/repos/{name}/files")
async def get_repository_tree(name: str, request: Request) -> dict:
    """Recursive tree of the repository, hidden entries excluded."""
    repo_path = _existing_repo_path(request, name)
    result = await run_blocking(request, lambda: read_path(repo_path, ""), settings_of(request).git_timeout, "Listing")
    return {"repo": name, **result}


@router.get("/repos/{name}/files/{file_path:path}")
async def get_repository_file(name: str, file_path: str, request: Request) -> dict:
    """
    Read a file, or list a directory, inside a repository.

    Returns:
        dict: File metadata with "content" for text files, or a directory tree.

    Raises:
        400 for paths outside the repository and for binary files (the
        response still carries the file's metadata), 404 if nothing exists.
    """
    repo_path = _existing_repo_path(request, name)
    result = await run_blocking(
        request,
        lambda: read_path(repo_path, file_path),
        settings_of(request).git_timeout,
        "File read",
    )
    return {"repo": name, **result}


@router.put("/repos/{name}/files/{file_path:path}")
async def put_repository_file(name: str, file_path: str, payload: WriteFileRequest, request: Request) -> dict:
    """
    Create or update a text file.

    Request body:
        {
            "content": "file contents"
        }
    """
    repo_path = _existing_repo_path(request, name)
    result = await run_blocking(
        request,
        lambda: write_file(repo_path, file_path, payload.content),
        settings_of(request).git_timeout,
        "File write",
        lock=repo_path,
    )
    return {"repo": name, **result}
