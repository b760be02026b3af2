"""Error hierarchy for SBHS upstream calls.

Transient failures (timeouts, 5xx, rate limiting) are retried by the tenacity
decorators in ``client`` and ``auth``; permanent failures are raised straight
to the caller.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    def get_json(self, path: str) -> dict:
        ...
"""


class SbhsError(Exception):
    """Base exception for all SBHS client errors."""

    pass


class TransientError(SbhsError):
    """Temporary failure that may succeed on retry.

    Examples: connection reset, read timeout, 502/503 from the portal.
    """

    pass


class RateLimitError(TransientError):
    """HTTP 429 from the portal or token endpoint."""

    pass


class PermanentError(SbhsError):
    """Failure that won't succeed on retry.

    Examples: 404 on every host, body that is not JSON, empty timetable.
    """

    pass


class AuthenticationError(PermanentError):
    """Missing, expired or rejected credentials.

    Raised for 401/403 responses, an HTML login page where JSON was expected,
    a mismatched OAuth state, or when no tokens are stored. Needs a new login
    or a token refresh, never a plain retry.
    """

    pass
