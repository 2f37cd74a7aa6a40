"""Error taxonomy for the X API client."""

import time


class XAPIError(Exception):
    """Base X API error. Also used for non-retryable 4xx responses."""

    def __init__(self, message: str, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AuthError(XAPIError):
    """Credentials missing or rejected. Fatal; never retried."""


class RateLimitError(XAPIError):
    """Endpoint budget exhausted until `reset_at` (epoch seconds)."""

    def __init__(self, message: str, reset_at: float, endpoint: str | None = None):
        super().__init__(message, status_code=429, endpoint=endpoint)
        self.reset_at = reset_at

    @property
    def seconds_until_reset(self) -> float:
        return max(0.0, self.reset_at - time.time())


class NotFoundError(XAPIError):
    """The requested tweet or user does not exist (or is not visible)."""


class TransientError(XAPIError):
    """Network failure, timeout or 5xx. Safe to retry."""


class PartialThreadError(XAPIError):
    """A thread post failed after some parts were already published.

    `posted` holds the posts created before the failure, in order; `cause` is
    the typed error that stopped the thread.
    """

    def __init__(self, posted: list, cause: XAPIError):
        super().__init__(
            f"Thread aborted after {len(posted)} post(s): {cause}",
            status_code=cause.status_code,
            endpoint=cause.endpoint,
        )
        self.posted = posted
        self.cause = cause

    @property
    def posted_ids(self) -> list[str]:
        return [p.id for p in self.posted]
