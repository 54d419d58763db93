"""Error taxonomy for the Claude Remote backend.

Every component raises one of these; ``main.py`` renders them as
``{"error": ..., "details": ...}`` with the class-level HTTP status.
"""


class RepoServiceError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None, extra: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = extra or {}

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class InvalidReference(RepoServiceError):
    """Malformed repository name or URL."""

    status_code = 400


class InvalidRequest(RepoServiceError):
    """Request content that fails validation (mode, content type, ...)."""

    status_code = 400


class PathTraversal(RepoServiceError):
    """Requested file path escapes the repository root."""

    status_code = 400


class BinaryContentRejected(RepoServiceError):
    """File content is binary; metadata travels in ``extra["file"]``."""

    status_code = 400


class NotFound(RepoServiceError):
    status_code = 404


class OperationTimeout(RepoServiceError):
    status_code = 408


class AlreadyExists(RepoServiceError):
    status_code = 409


class CloneFailure(RepoServiceError):
    status_code = 500


class VcsFailure(RepoServiceError):
    status_code = 500


class DispatchFailure(RepoServiceError):
    status_code = 500
