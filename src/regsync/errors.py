"""Exception taxonomy for the RegSync engine."""

from __future__ import annotations

from regsync.models import SummaryFailure


class RegSyncError(RuntimeError):
    """Base class for engine errors."""


class InvalidInputError(RegSyncError, ValueError):
    """Raised when signals, library entries or texts are malformed."""


class VersionNotFoundError(RegSyncError, LookupError):
    """Raised when the text-retrieval collaborator has no such version."""

    def __init__(self, version_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Version not found: {version_id}")
        self.version_id = version_id


class SummarizerError(RegSyncError):
    """Raised when the change summary could not be generated."""

    failure = SummaryFailure.UNKNOWN


class SummarizerUnavailableError(SummarizerError):
    """The summary generator could not be reached or did not answer in time."""

    failure = SummaryFailure.UNAVAILABLE


class SummarizerApiError(SummarizerError):
    """The summary generator was reachable but returned an error."""

    failure = SummaryFailure.API_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "InvalidInputError",
    "RegSyncError",
    "SummarizerApiError",
    "SummarizerError",
    "SummarizerUnavailableError",
    "VersionNotFoundError",
]
