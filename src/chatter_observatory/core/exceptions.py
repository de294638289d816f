"""Application-wide exception hierarchy for Chatter Observatory.

All custom exceptions subclass ``ChatterObservatoryError`` so that the worker
loop and the route handlers can catch the whole family with one clause.

Hierarchy::

    ChatterObservatoryError
    ├── JobError
    │   ├── UnknownJobTypeError
    │   ├── InvalidJobPayloadError
    │   └── MissingAccessTokenError
    ├── ProxyError
    │   ├── ProxyRequestError        (status_code, body)
    │   └── ProxyRateLimitError      (retry_after: float)
    ├── TwitchAuthError
    ├── AnalysisServiceError         (status_code)
    └── SessionNotFoundError
"""

from __future__ import annotations


class ChatterObservatoryError(Exception):
    """Base class for all Chatter Observatory exceptions."""


# ---------------------------------------------------------------------------
# Job exceptions
# ---------------------------------------------------------------------------


class JobError(ChatterObservatoryError):
    """Raised by a job handler; the worker records it on the failed job row.

    Args:
        message: Human-readable description of the failure.
        job_id: Primary key of the job being processed, when known.
    """

    def __init__(self, message: str, job_id: int | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class UnknownJobTypeError(JobError):
    """Raised when a claimed job carries a ``type`` no handler is registered for."""

    def __init__(self, job_type: str, job_id: int | None = None) -> None:
        super().__init__(f"unknown job type: {job_type}", job_id=job_id)
        self.job_type = job_type


class InvalidJobPayloadError(JobError):
    """Raised when a job payload does not validate against its schema."""


class MissingAccessTokenError(JobError):
    """Raised when no unexpired web session exists for the owner of an analysis session.

    Args:
        session_id: Primary key of the analysis session in the job payload.
    """

    def __init__(self, session_id: int, job_id: int | None = None) -> None:
        super().__init__(
            f"no valid access token for analysis session {session_id}",
            job_id=job_id,
        )
        self.session_id = session_id


# ---------------------------------------------------------------------------
# Proxy exceptions
# ---------------------------------------------------------------------------


class ProxyError(ChatterObservatoryError):
    """Base class for failures talking to the Twitch API proxy."""


class ProxyRequestError(ProxyError):
    """Raised when the proxy answers with a non-2xx, non-429 status.

    Args:
        status_code: HTTP status returned by the proxy.
        body: Response body (truncated) for the error message.
        endpoint: Proxy path that was called (e.g. ``"/chatters"``).
    """

    def __init__(self, status_code: int, body: str = "", endpoint: str | None = None) -> None:
        where = f" on {endpoint}" if endpoint else ""
        super().__init__(f"proxy returned {status_code}{where}: {body[:200]}")
        self.status_code = status_code
        self.body = body
        self.endpoint = endpoint


class ProxyRateLimitError(ProxyError):
    """Raised when the proxy keeps answering 429 past the retry allowance.

    Args:
        message: Human-readable description of the rate limit.
        retry_after: Seconds the last attempt waited before giving up.
    """

    def __init__(self, message: str, retry_after: float = 5.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Gateway exceptions
# ---------------------------------------------------------------------------


class TwitchAuthError(ChatterObservatoryError):
    """Raised when the Twitch OAuth exchange or identity lookup fails."""


class AnalysisServiceError(ChatterObservatoryError):
    """Raised when the analysis service cannot produce a summary.

    Args:
        message: Description of the failure.
        status_code: HTTP status returned by the analysis service, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionNotFoundError(ChatterObservatoryError):
    """Raised when an analysis session UUID does not exist (or is not visible).

    Args:
        session_uuid: The UUID string that was looked up.
    """

    def __init__(self, session_uuid: str) -> None:
        super().__init__(f"analysis session not found: {session_uuid}")
        self.session_uuid = session_uuid
