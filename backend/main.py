"""Entry point for the Claude Remote FastAPI application."""

import hmac
import logging
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

# Configure GitPython to find git executable
# Try to find git in PATH first
git_path = os.getenv("GIT_PYTHON_GIT_EXECUTABLE") or shutil.which("git")
if not git_path:
    # Try common Git installation paths
    common_paths = [
        "/usr/bin/git",
        "/usr/local/bin/git",
        r"C:\Program Files\Git\cmd\git.exe",
        r"C:\Program Files (x86)\Git\cmd\git.exe",
    ]
    for path in common_paths:
        if os.path.exists(path):
            git_path = path
            break

if git_path:
    os.environ["GIT_PYTHON_GIT_EXECUTABLE"] = git_path
    import git
    git.refresh(path=git_path)
else:
    raise RuntimeError(
        "Git executable not found. Please install Git from https://git-scm.com/downloads "
        "or set GIT_PYTHON_GIT_EXECUTABLE environment variable to the path of the git binary"
    )

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.claude_routes import router as claude_router
from api.git_routes import router as git_router
from api.routes import router as api_router
from services.dispatcher import PromptDispatcher
from services.engine import ClaudeAgentEngine, ConversationEngine
from services.git_service import GitService
from services.path_resolver import PathResolver
from services.repo_locks import RepositoryLocks
from services.session_store import SessionStore
from utils.errors import RepoServiceError
from utils.settings import Settings

logger = logging.getLogger(__name__)

# Reachable without a bearer token even when API_KEY is set.
PUBLIC_PATHS = {"/health", "/api-docs", "/docs", "/docs/oauth2-redirect", "/openapi.json"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    settings.repos_root.mkdir(parents=True, exist_ok=True)
    logger.info("Repos will be cloned to: %s", settings.repos_root)
    yield
    app.state.dispatcher.abort_all("server shutting down")
    app.state.executor.shutdown(wait=False, cancel_futures=True)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RepoServiceError)
    async def service_error_handler(request: Request, exc: RepoServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and message == "Not Found":
            message = "Route not found"
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": _format_validation_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _install_auth(app: FastAPI, settings: Settings) -> None:
    expected = (settings.api_key or "").encode("utf-8")

    @app.middleware("http")
    async def require_api_key(request: Request, call_next):
        """Bearer-token check against the single configured API key."""
        if settings.auth_enabled and request.method != "OPTIONS" and request.url.path not in PUBLIC_PATHS:
            scheme, _, token = request.headers.get("authorization", "").partition(" ")
            if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip().encode("utf-8"), expected):
                return JSONResponse(
                    status_code=401,
                    content={"error": "Unauthorized", "details": "Missing or invalid API key"},
                )
        return await call_next(request)


def create_app(settings: Settings | None = None, engine: ConversationEngine | None = None) -> FastAPI:
    """
    Build the application and its per-process services.

    Args:
        settings: Configuration; read from the environment when omitted.
        engine: Conversation engine; the Claude Agent SDK engine when omitted.

    Returns:
        FastAPI: App with settings, locks, resolver, session store, Git
        service, dispatcher and worker pool on ``app.state``.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Claude Remote Backend", version="0.1.0", lifespan=lifespan)

    locks = RepositoryLocks()
    resolver = PathResolver(settings.repos_root, clone_timeout=settings.clone_timeout)
    session_store = SessionStore()
    engine = engine or ClaudeAgentEngine(permission_mode=settings.permission_mode, model=settings.model)

    app.state.settings = settings
    app.state.locks = locks
    app.state.resolver = resolver
    app.state.session_store = session_store
    app.state.git_service = GitService(resolver, timeout=settings.git_timeout)
    app.state.dispatcher = PromptDispatcher(
        engine,
        session_store,
        max_turns=settings.max_turns,
        tools=settings.allowed_tools,
        timeout=settings.dispatch_timeout,
    )
    app.state.executor = ThreadPoolExecutor(max_workers=settings.worker_threads, thread_name_prefix="repo-io")

    _install_error_handlers(app)
    _install_auth(app, settings)

    # Allow all origins: the API is called from browser tools on other hosts.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(git_router)
    app.include_router(claude_router)

    @app.get("/")
    async def root() -> dict:
        """
        Simple heartbeat endpoint to confirm the API is online.

        Returns:
            dict: App metadata payload.
        """
        return {"status": "ok", "app": "Claude Remote Backend"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
