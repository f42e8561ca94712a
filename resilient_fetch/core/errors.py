"""Error hierarchy for the resilient fetcher.

Attempt-level failures are raised as ``FetcherError`` subclasses and caught
at the ``ResilientDataFetcher.fetch()`` boundary, where they become a
``FetchResult``.  ``error_code()`` maps each of them to a machine-readable
code carried on that result.
"""


class FetcherError(Exception):
    """Base exception for all fetcher errors."""


class TransportError(FetcherError):
    """Raised when the request never produced a response (DNS, refused, reset)."""

    def __init__(self, target: str, detail: str = "") -> None:
        self.target = target
        self.detail = detail
        msg = f"Network error for {target}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class RequestTimeoutError(FetcherError):
    """Raised when a single attempt exceeds its timeout."""

    def __init__(self, url: str, timeout_seconds: float) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timeout after {timeout_seconds}s for {url}")


class HTTPStatusError(FetcherError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, url: str, status_code: int, reason: str = "") -> None:
        self.url = url
        self.status_code = status_code
        self.reason = reason
        msg = f"HTTP {status_code}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ResponseParseError(FetcherError):
    """Raised when an otherwise successful response body is not valid JSON."""

    def __init__(self, url: str, detail: str = "") -> None:
        self.url = url
        self.detail = detail
        msg = f"Invalid JSON response from {url}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class CircuitOpenError(FetcherError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        target: Breaker key of the failing target.
        retry_after: Seconds until the circuit transitions to HALF_OPEN.
    """

    def __init__(self, target: str, retry_after: float) -> None:
        self.target = target
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"Circuit breaker is open for '{target}', retry after {self.retry_after:.1f}s"
        )


def error_code(exc: BaseException) -> str:
    """Map *exc* to a machine-readable code.

    Never leaks internal details for unknown exceptions.
    """
    if isinstance(exc, CircuitOpenError):
        return "CIRCUIT_OPEN"
    if isinstance(exc, RequestTimeoutError):
        return "REQUEST_TIMEOUT"
    if isinstance(exc, TransportError):
        return "TRANSPORT_ERROR"
    if isinstance(exc, HTTPStatusError):
        return "HTTP_ERROR"
    if isinstance(exc, ResponseParseError):
        return "PARSE_ERROR"
    if isinstance(exc, FetcherError):
        return "FETCHER_ERROR"
    return "INTERNAL_ERROR"
