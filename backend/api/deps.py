"""Helpers shared by the route modules.

Services are built once per application in ``main.create_app`` and read
from ``request.app.state``; nothing here holds module-level state.
"""

import asyncio
from typing import Callable, TypeVar

from fastapi import Request

from services.dispatcher import PromptDispatcher
from services.git_service import GitService
from services.path_resolver import PathResolver
from services.repo_locks import RepositoryLocks
from services.session_store import SessionStore
from utils.errors import OperationTimeout
from utils.git_parser import is_remote_reference
from utils.settings import Settings

T = TypeVar("T")


def settings_of(request: Request) -> Settings:
    return request.app.state.settings


def resolver_of(request: Request) -> PathResolver:
    return request.app.state.resolver


def locks_of(request: Request) -> RepositoryLocks:
    return request.app.state.locks


def git_service_of(request: Request) -> GitService:
    return request.app.state.git_service


def sessions_of(request: Request) -> SessionStore:
    return request.app.state.session_store


def dispatcher_of(request: Request) -> PromptDispatcher:
    return request.app.state.dispatcher


async def run_blocking(
    request: Request,
    func: Callable[[], T],
    timeout: float | None,
    action: str,
    lock: str | None = None,
) -> T:
    """
    Run blocking filesystem/Git work on the shared worker pool.

    Without ``lock`` the caller stops waiting after ``timeout`` seconds; the
    work is a read and its late result is discarded.

    With ``lock`` the repository lock is awaited on the event loop first and
    ``timeout`` bounds that wait. Once the lock is held the work runs to the
    end and releases the lock itself, so a mutation either reports its own
    outcome or never starts. Git commands inside it carry their own kill
    deadlines.

    Raises:
        OperationTimeout: If ``func`` does not finish, or the lock is not
            free, within ``timeout`` seconds.
    """
    executor = request.app.state.executor
    if lock is None:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(executor, func), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(f"{action} timed out.", details=f"No result within {timeout} seconds") from e

    release = await locks_of(request).acquire(lock, timeout=timeout)

    def _locked() -> T:
        try:
            return func()
        finally:
            release()

    def _release_if_never_ran(future) -> None:
        if future.cancelled():
            release()

    try:
        work = executor.submit(_locked)
    except BaseException:
        release()
        raise
    work.add_done_callback(_release_if_never_ran)
    return await asyncio.wrap_future(work)


def lock_target(request: Request, reference: str, mutating: bool = True) -> str | None:
    """
    Path whose lock guards work on ``reference``, or None when no lock is needed.

    Reads by short name run unlocked; a URL may clone, so it always locks.
    """
    if not mutating and not is_remote_reference((reference or "").strip()):
        return None
    return resolver_of(request).locate(reference).path
