"""
Error taxonomy for page fetching.
Every per-page failure is reduced to one ErrorClass; only CrawlAbortedError
is allowed to escape a crawl run.
"""

from enum import Enum
from typing import Optional


class ErrorClass(Enum):
    # Terminal
    INVALID_URL = "INVALID_URL"
    DNS_ERROR = "DNS_ERROR"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    HTTP_4XX = "HTTP_4XX"
    EXTRACTION_ERROR = "EXTRACTION_ERROR"

    # TLS / certificate (terminal, reported distinctly)
    TLS_CERT_EXPIRED = "TLS_CERT_EXPIRED"
    TLS_UNVERIFIABLE = "TLS_UNVERIFIABLE"
    TLS_SELF_SIGNED = "TLS_SELF_SIGNED"
    TLS_ERROR = "TLS_ERROR"

    # Transient
    HTTP_5XX = "HTTP_5XX"
    HTTP_429 = "HTTP_429"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    RENDER_ERROR = "RENDER_ERROR"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset({
    ErrorClass.HTTP_5XX,
    ErrorClass.HTTP_429,
    ErrorClass.CONNECTION_REFUSED,
    ErrorClass.TIMEOUT,
    ErrorClass.NETWORK_ERROR,
    ErrorClass.RENDER_ERROR,
})


class ClassifiedError(Exception):
    """A fetch failure tagged with its ErrorClass (and HTTP status, when there was one)."""

    def __init__(self, error_class: ErrorClass, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.error_class = error_class
        self.status_code = status_code
        self.attempts = 1

    @property
    def retryable(self) -> bool:
        return self.error_class.retryable

    def __str__(self):
        base = super().__str__()
        if self.status_code is not None:
            return f"{self.error_class.value} ({self.status_code}): {base}"
        return f"{self.error_class.value}: {base}"


class CrawlAbortedError(ValueError):
    """Raised before any dispatch when the seed URL cannot be crawled at all."""
