"""Exception types raised by the analysis pipeline."""

from __future__ import annotations

from typing import Any


class RepoAnalyzerError(Exception):
    """Base exception for all repo-analyzer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidReference(RepoAnalyzerError):
    """Raised when a repository reference has no owner/name pair."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(
            f"Cannot extract owner/name from {reference!r}",
            details={"reference": reference},
        )


class UpstreamError(RepoAnalyzerError):
    """Raised when a GitHub API call fails or returns a non-success status.

    ``status`` is ``None`` for transport failures (DNS, connect, timeout).
    """

    def __init__(self, message: str, status: int | None = None, path: str = ""):
        self.status = status
        self.path = path
        super().__init__(message, details={"status": status, "path": path})

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_auth_failure(self) -> bool:
        return self.status in (401, 403)


class AnalysisError(RepoAnalyzerError):
    """Raised when an analysis cannot produce a report.

    Wraps the first unrecoverable failure, available as ``cause``.
    """

    def __init__(self, message: str, cause: RepoAnalyzerError):
        self.cause = cause
        super().__init__(message, details=dict(cause.details))
