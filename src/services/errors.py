"""Error taxonomy for generative backend calls.

Transient errors are retried by the retry policy; fatal errors
propagate to the caller on the first failure.
"""


class LLMClientError(Exception):
    """Raised when a generative backend call fails."""

    pass


class TransientProviderError(LLMClientError):
    """Rate limit, server-side or network failure worth retrying.

    Attributes:
        status_code: HTTP status when the backend answered, None for network errors
        retry_after: Seconds the backend asked us to wait, if it said so
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class FatalProviderError(LLMClientError):
    """Authentication, permission or malformed-request failure."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
