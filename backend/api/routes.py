"""Service-level API routes: health check and route documentation."""

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()

# Declared by hand so the documentation does not depend on router internals.
ROUTE_REGISTRY: list[dict] = [
    {"method": "GET", "path": "/health", "description": "Health check", "auth": False},
    {"method": "GET", "path": "/api-docs", "description": "This route list", "auth": False},
    {"method": "POST", "path": "/git/init", "description": "Clone a repository by URL", "body": {"url": "string"}},
    {"method": "GET", "path": "/git/repos", "description": "List local repositories with VCS status"},
    {"method": "GET", "path": "/git/status/{repo}", "description": "Branch, ahead/behind and changed files"},
    {
        "method": "POST",
        "path": "/git/save",
        "description": "Stage all, commit and push",
        "body": {"repo": "string", "message": "string"},
    },
    {
        "method": "POST",
        "path": "/git/pull",
        "description": "Pull from a remote",
        "body": {"repo": "string", "remote": "string?", "branch": "string?"},
    },
    {
        "method": "POST",
        "path": "/git/branch",
        "description": "Create and check out a branch, or list branches",
        "body": {"repo": "string", "branch": "string?"},
    },
    {
        "method": "POST",
        "path": "/git/checkout",
        "description": "Switch branches",
        "body": {"repo": "string", "branch": "string"},
    },
    {"method": "GET", "path": "/git/log/{repo}", "description": "Commit history", "query": {"limit": "int"}},
    {
        "method": "POST",
        "path": "/git/reset",
        "description": "Reset the current branch",
        "body": {"repo": "string", "mode": "soft|mixed|hard", "target": "string?"},
    },
    {"method": "GET", "path": "/git/diff/{repo}", "description": "Working tree or staged diff", "query": {"staged": "bool"}},
    {"method": "DELETE", "path": "/git/repo/{repo}", "description": "Delete a local repository"},
    {"method": "GET", "path": "/git/repos/{name}/files", "description": "Repository file tree"},
    {"method": "GET", "path": "/git/repos/{name}/files/{path}", "description": "Read a file or list a directory"},
    {
        "method": "PUT",
        "path": "/git/repos/{name}/files/{path}",
        "description": "Create or update a file",
        "body": {"content": "string"},
    },
    {
        "method": "POST",
        "path": "/claude/sessions",
        "description": "Create a conversation session",
        "body": {"repo": "string?"},
    },
    {"method": "GET", "path": "/claude/sessions", "description": "List sessions"},
    {"method": "GET", "path": "/claude/sessions/{id}", "description": "Get a session with its messages"},
    {"method": "DELETE", "path": "/claude/sessions/{id}", "description": "Delete a session"},
    {
        "method": "POST",
        "path": "/claude/prompt",
        "description": "Send a prompt to the AI engine",
        "body": {"prompt": "string", "repo": "string?", "sessionId": "string?", "continue": "bool?", "maxTurns": "int?"},
    },
]


@router.get("/health")
async def health_check() -> dict:
    """
    Lightweight endpoint for uptime checks.

    Returns:
        dict: Health status payload.
    """
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/api-docs")
async def api_docs() -> dict:
    """List every endpoint this server exposes."""
    return {
        "endpoints": [dict(route, auth=route.get("auth", True)) for route in ROUTE_REGISTRY],
        "count": len(ROUTE_REGISTRY),
    }
