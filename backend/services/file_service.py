"""Safe file access inside a repository working tree.

Every requested path is resolved against the repository root and rejected
when its canonical form falls outside that root. Reads withhold binary
content; listings skip hidden entries (which covers ``.git``) and symlinks
that lead outside the root, and never descend into symlinked directories.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from utils.errors import BinaryContentRejected, InvalidRequest, NotFound, PathTraversal
from utils.mime_probe import classify_file, guess_mime_type

logger = logging.getLogger(__name__)

HIDDEN_MARKER = "."


def _canonical(path) -> str:
    return os.path.normcase(os.path.realpath(str(path)))


def _mtime_iso(stat_result) -> str:
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc).isoformat()


def _relative(root: str, path: str) -> str:
    rel = os.path.relpath(path, root)
    return rel.replace(os.sep, "/")


def resolve_file(repo_root, requested_path: str) -> str:
    """
    Resolve ``requested_path`` inside ``repo_root``.

    A leading separator is ignored, so ``/a/b`` and ``a/b`` address the same
    file. Symlinks are followed before the containment check.

    Returns:
        str: Canonical absolute path equal to the root or below it.

    Raises:
        PathTraversal: If the canonical path escapes the root.
    """
    requested_path = requested_path or ""
    if "\x00" in requested_path:
        raise PathTraversal("Invalid file path", details="Path contains a NUL byte")

    root = _canonical(repo_root)
    relative = requested_path.lstrip("/\\")
    candidate = _canonical(os.path.join(root, relative))

    if candidate != root and not candidate.startswith(root + os.sep):
        raise PathTraversal(
            "Access denied: path outside repository",
            details=f"'{requested_path}' resolves outside the repository root",
        )
    return candidate


def _file_metadata(root: str, path: Path, stat_result, mime_type: str) -> dict:
    return {
        "name": path.name,
        "path": _relative(root, str(path)),
        "type": "file",
        "size": stat_result.st_size,
        "modifiedTime": _mtime_iso(stat_result),
        "mimeType": mime_type,
    }


def _walk(root: str, directory: Path) -> list[dict]:
    """List one directory level and recurse; raises OSError if unreadable."""
    nodes = []
    children = sorted(directory.iterdir(), key=lambda c: c.name.lower())
    for child in children:
        if child.name.startswith(HIDDEN_MARKER):
            continue
        if child.is_symlink():
            target = _canonical(child)
            if target != root and not target.startswith(root + os.sep):
                logger.info("Skipping symlink leaving the repository: %s", child)
                continue
            if child.is_dir():
                # Listed, never followed.
                nodes.append(
                    {
                        "name": child.name,
                        "path": _relative(root, str(child)),
                        "type": "directory",
                        "symlink": True,
                        "children": [],
                    }
                )
                continue
        elif child.is_dir():
            try:
                sub_nodes = _walk(root, child)
            except OSError as exc:
                logger.warning("Skipping unreadable directory %s: %s", child, exc)
                continue
            nodes.append(
                {
                    "name": child.name,
                    "path": _relative(root, str(child)),
                    "type": "directory",
                    "children": sub_nodes,
                }
            )
            continue
        try:
            stat_result = child.stat()
        except OSError as exc:
            logger.warning("Skipping unreadable entry %s: %s", child, exc)
            continue
        nodes.append(_file_metadata(root, child, stat_result, guess_mime_type(child)))

    # Directories first, then files; each group stays sorted by name.
    nodes.sort(key=lambda n: n["type"] != "directory")
    return nodes


def list_tree(repo_root, requested_path: str = "") -> list[dict]:
    """Recursive listing of a directory inside the repository."""
    target = Path(resolve_file(repo_root, requested_path))
    if not target.is_dir():
        raise NotFound("Directory not found", details=requested_path or ".")
    return _walk(_canonical(repo_root), target)


def read_path(repo_root, requested_path: str = "") -> dict:
    """
    Read a file or list a directory.

    Returns:
        dict: For a directory ``{"type": "directory", "path", "children"}``;
        for a text file its metadata plus ``content``.

    Raises:
        NotFound: If nothing exists at the path.
        PathTraversal: If the path escapes the repository.
        BinaryContentRejected: For binary files; ``extra["file"]`` holds metadata.
    """
    root = _canonical(repo_root)
    target = Path(resolve_file(repo_root, requested_path))

    if not target.exists():
        raise NotFound("File not found", details=requested_path)
    if target.is_dir():
        return {
            "type": "directory",
            "path": _relative(root, str(target)),
            "children": _walk(root, target),
        }

    stat_result = target.stat()
    mime_type, is_binary = classify_file(target)
    metadata = _file_metadata(root, target, stat_result, mime_type)

    content = None
    if not is_binary:
        try:
            content = target.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            is_binary = True

    if is_binary:
        raise BinaryContentRejected(
            "Binary file content cannot be displayed",
            details=f"{metadata['path']} is {mime_type}",
            extra={"file": {**metadata, "isBinary": True}},
        )

    return {**metadata, "isBinary": False, "encoding": "utf-8", "content": content}


def write_file(repo_root, requested_path: str, content: str) -> dict:
    """
    Create or update a text file, creating parent directories as needed.

    The created/updated distinction comes from an existence check right
    before the write; a concurrent writer can make it stale.
    """
    if not isinstance(content, str):
        raise InvalidRequest("File content must be a string")

    root = _canonical(repo_root)
    target = Path(resolve_file(repo_root, requested_path))
    if str(target) == root:
        raise InvalidRequest("A file path is required")
    if target.is_dir():
        raise InvalidRequest("Cannot write file content to a directory", details=requested_path)

    existed = target.exists()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8"))
    except (FileExistsError, NotADirectoryError) as exc:
        raise InvalidRequest("Parent path is not a directory", details=str(exc)) from exc

    stat_result = target.stat()
    logger.info("%s file %s", "Updated" if existed else "Created", target)
    return {
        "message": "File updated successfully" if existed else "File created successfully",
        "path": _relative(root, str(target)),
        "size": stat_result.st_size,
        "modifiedTime": _mtime_iso(stat_result),
        "created": not existed,
    }
