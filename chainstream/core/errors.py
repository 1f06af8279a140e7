"""Error taxonomy shared by the clients and the enrichment pipeline."""


class ChainstreamError(Exception):
    """Base class for pipeline errors."""


class TransientNetworkError(ChainstreamError):
    """Timeout or connection failure; retried with a short fixed delay."""


class UpstreamApiError(ChainstreamError):
    """Upstream answered with a non-success status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(UpstreamApiError):
    """Upstream does not (yet) know the requested entity."""


class DataError(ChainstreamError):
    """Malformed or missing payload. Never retried."""


class EmbeddingError(ChainstreamError):
    """Embedding provider call failed."""


class VectorIndexError(ChainstreamError):
    """Vector index request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryExhaustedError(ChainstreamError):
    """A task used up its retry budget."""

    def __init__(self, message: str, attempts: int, last_error: BaseException | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
