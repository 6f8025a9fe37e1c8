# leadsync/exceptions.py
"""
Shared exception classes used across the codebase.

Stage runners isolate SourceError (one source) and RemoteError raised while
publishing a single record; everything else propagates to the CLI, which
logs it and exits non-zero.
"""

from __future__ import annotations


class LeadSyncError(Exception):
    """Base class for all errors raised by leadsync."""


class ConfigurationError(LeadSyncError):
    """
    Raised for bad deployment configuration.

    Examples:
        - malformed or reserved field names, unknown field types
        - bad order field / order direction
        - missing credentials for the selected stage
    """


class SourceError(LeadSyncError):
    """Raised when an upstream source cannot be read or returns unusable rows."""


class RemoteError(LeadSyncError):
    """Base class for failures talking to a remote HTTP provider."""

    def __init__(self, message: str, *, provider: str, code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.code = code


class PermanentRemoteError(RemoteError):
    """
    Raised when a remote call fails in a way retrying cannot fix.

    Examples:
        - 4xx other than rate limiting
        - a 2xx response whose payload reports an error
    """


class RetriesExhaustedError(RemoteError):
    """Raised when every attempt of a retryable call hit a transient failure."""

    def __init__(self, message: str, *, provider: str, code: int | None, attempts: int) -> None:
        super().__init__(message, provider=provider, code=code)
        self.attempts = attempts


class VerificationJobError(LeadSyncError):
    """Raised when the remote bulk verification job cannot be completed."""

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class VerificationTimeoutError(VerificationJobError):
    """Raised when a job does not complete within the polling deadline."""


class StageAlreadyRunningError(LeadSyncError):
    """Raised when another invocation of the same stage holds its lock."""

    def __init__(self, stage: str, lock_path: str) -> None:
        super().__init__(
            f"Another '{stage}' run is already in progress (lock held on {lock_path})."
        )
        self.stage = stage
        self.lock_path = lock_path


__all__ = [
    "LeadSyncError",
    "ConfigurationError",
    "SourceError",
    "RemoteError",
    "PermanentRemoteError",
    "RetriesExhaustedError",
    "VerificationJobError",
    "VerificationTimeoutError",
    "StageAlreadyRunningError",
]
