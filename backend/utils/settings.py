"""Runtime configuration loaded from environment variables."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Tools the AI engine may use inside a working directory.
ALLOWED_TOOLS = (
    "Read",
    "Write",
    "Edit",
    "MultiEdit",
    "Bash",
    "Glob",
    "Grep",
    "LS",
    "Git",
)

DEFAULT_MAX_TURNS = 20
DEFAULT_PERMISSION_MODE = "acceptEdits"


def _env_number(name: str, default, cast=int):
    """Read a numeric environment variable, falling back on bad input."""
    raw = os.getenv(name, "").strip()
    if raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s'. Falling back to %s.", name, raw, default)
        return default


@dataclass
class Settings:
    """Server configuration.

    Tests build this directly (``Settings(repos_root=tmp_path)``); the
    server uses :meth:`from_env`.
    """

    repos_root: Path = field(default_factory=lambda: Path.cwd() / "repos")
    default_working_directory: Path = field(default_factory=Path.cwd)
    api_key: str | None = None
    max_turns: int = DEFAULT_MAX_TURNS
    permission_mode: str = DEFAULT_PERMISSION_MODE
    allowed_tools: tuple[str, ...] = ALLOWED_TOOLS
    model: str | None = None
    git_timeout: float = 120.0
    clone_timeout: float = 300.0
    dispatch_timeout: float | None = 900.0
    worker_threads: int = 8
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3950

    def __post_init__(self) -> None:
        self.repos_root = Path(self.repos_root).resolve()
        self.default_working_directory = Path(self.default_working_directory).resolve()

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        repos_root = os.getenv("REPOS_PATH") or str(Path.cwd() / "repos")
        working_dir = os.getenv("DEFAULT_WORKING_DIRECTORY") or str(Path.cwd())

        dispatch_timeout = _env_number("DISPATCH_TIMEOUT_SECONDS", 900.0, float)
        if dispatch_timeout is not None and dispatch_timeout <= 0:
            dispatch_timeout = None

        max_turns = _env_number("CLAUDE_MAX_TURNS", DEFAULT_MAX_TURNS)
        if max_turns < 1:
            logger.warning("CLAUDE_MAX_TURNS must be positive. Falling back to %s.", DEFAULT_MAX_TURNS)
            max_turns = DEFAULT_MAX_TURNS

        return cls(
            repos_root=Path(repos_root),
            default_working_directory=Path(working_dir),
            api_key=os.getenv("API_KEY") or None,
            max_turns=max_turns,
            permission_mode=os.getenv("CLAUDE_PERMISSION_MODE", DEFAULT_PERMISSION_MODE).strip()
            or DEFAULT_PERMISSION_MODE,
            model=os.getenv("CLAUDE_MODEL") or None,
            git_timeout=_env_number("GIT_TIMEOUT_SECONDS", 120.0, float),
            clone_timeout=_env_number("CLONE_TIMEOUT_SECONDS", 300.0, float),
            dispatch_timeout=dispatch_timeout,
            worker_threads=max(1, _env_number("WORKER_THREADS", 8)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_number("PORT", 3950),
        )
