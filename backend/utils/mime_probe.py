"""Text/binary classification for repository files.

Two strategies behind :func:`classify_file`: the external ``file`` tool when
it is installed, otherwise an allow-list of text extensions and file names.
"""

import logging
import mimetypes
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 5.0

TEXT_EXTENSIONS = {
    ".txt", ".md", ".rst", ".adoc", ".csv", ".tsv", ".log",
    ".json", ".jsonc", ".yaml", ".yml", ".toml", ".ini", ".cfg", ".conf", ".env", ".properties",
    ".xml", ".html", ".htm", ".css", ".scss", ".sass", ".less", ".svg",
    ".py", ".pyi", ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".vue", ".svelte",
    ".java", ".kt", ".kts", ".scala", ".groovy", ".gradle",
    ".c", ".h", ".cc", ".cpp", ".hpp", ".cs", ".go", ".rs", ".rb", ".php", ".swift", ".m",
    ".sh", ".bash", ".zsh", ".fish", ".ps1", ".bat", ".cmd",
    ".sql", ".graphql", ".proto", ".tf", ".hcl", ".lock", ".gitignore", ".dockerignore",
}

TEXT_FILE_NAMES = {
    "Dockerfile", "Makefile", "LICENSE", "README", "CHANGELOG", "Procfile", "Gemfile", "Rakefile",
}


def _probe_with_file_tool(path: Path) -> tuple[str, bool] | None:
    """Ask ``file --brief --mime`` for the MIME type and charset.

    Returns ``(mime_type, is_binary)`` or None when the tool is unavailable
    or fails.
    """
    tool = shutil.which("file")
    if not tool:
        return None
    try:
        completed = subprocess.run(
            [tool, "--brief", "--mime", str(path)],
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT_SECONDS,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("MIME probe failed for %s: %s", path, exc)
        return None

    output = completed.stdout.strip()
    mime_type, _, params = output.partition(";")
    mime_type = mime_type.strip()
    charset = params.strip().removeprefix("charset=")
    if not mime_type:
        return None
    is_binary = charset == "binary" and mime_type != "inode/x-empty"
    return mime_type, is_binary


def _classify_by_extension(path: Path) -> tuple[str, bool]:
    guessed, _ = mimetypes.guess_type(path.name)
    is_text = (
        path.suffix.lower() in TEXT_EXTENSIONS
        or path.name in TEXT_FILE_NAMES
        or (guessed or "").startswith("text/")
    )
    if is_text:
        return guessed or "text/plain", False
    return guessed or "application/octet-stream", True


def classify_file(path: Path) -> tuple[str, bool]:
    """Return ``(mime_type, is_binary)`` for a file on disk."""
    path = Path(path)
    if path.stat().st_size == 0:
        guessed, _ = mimetypes.guess_type(path.name)
        return guessed or "text/plain", False

    probed = _probe_with_file_tool(path)
    if probed is not None:
        return probed
    return _classify_by_extension(path)


def guess_mime_type(path: Path) -> str:
    """Cheap MIME guess for directory listings (no subprocess)."""
    guessed, _ = mimetypes.guess_type(Path(path).name)
    if guessed:
        return guessed
    return _classify_by_extension(Path(path))[0]
