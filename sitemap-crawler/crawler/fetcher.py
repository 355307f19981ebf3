"""
HTTP fetching module for the crawler (lightweight strategy).
Single GET with browser-like headers, strict TLS and bounded redirects.
Statuses below 500 come back as data; 5xx, 429 and network failures raise
ClassifiedError after the internal retry/backoff budget is spent.
"""

import logging
import time
from dataclasses import replace

import requests

from crawler import core
from crawler.errors import ClassifiedError, ErrorClass
from crawler.models import FetchMethod, FetchResult

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": core.USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
}

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "name resolution",
    "no address associated",
    "failed to resolve",
)


def classify_tls_message(message: str) -> ErrorClass:
    m = (message or "").lower()
    if "expired" in m:
        return ErrorClass.TLS_CERT_EXPIRED
    if "self signed" in m or "self-signed" in m:
        return ErrorClass.TLS_SELF_SIGNED
    if "unable to get local issuer" in m or "unable to verify" in m or "verify failed" in m:
        return ErrorClass.TLS_UNVERIFIABLE
    return ErrorClass.TLS_ERROR


def classify_exception(exc: Exception) -> ErrorClass:
    """Map a requests exception onto the crawl error taxonomy."""
    # SSLError subclasses ConnectionError, so it has to be checked first
    if isinstance(exc, requests.exceptions.SSLError):
        return classify_tls_message(str(exc))
    if isinstance(exc, requests.exceptions.Timeout):
        return ErrorClass.TIMEOUT
    if isinstance(exc, requests.exceptions.TooManyRedirects):
        return ErrorClass.TOO_MANY_REDIRECTS
    if isinstance(exc, (requests.exceptions.MissingSchema,
                        requests.exceptions.InvalidSchema,
                        requests.exceptions.InvalidURL)):
        return ErrorClass.INVALID_URL
    if isinstance(exc, requests.exceptions.ConnectionError):
        message = str(exc).lower()
        if any(marker in message for marker in _DNS_MARKERS):
            return ErrorClass.DNS_ERROR
        if "connection refused" in message or "errno 111" in message:
            return ErrorClass.CONNECTION_REFUSED
        return ErrorClass.NETWORK_ERROR
    return ErrorClass.NETWORK_ERROR


def classify_status(status_code: int):
    """ErrorClass for an HTTP status, or None when the status is a usable page."""
    if status_code == 429:
        return ErrorClass.HTTP_429
    if status_code >= 500:
        return ErrorClass.HTTP_5XX
    if status_code >= 400:
        return ErrorClass.HTTP_4XX
    return None


class LightweightFetcher:
    """
    FLOW: Executes HTTP request with browser-like headers -> Converts 5xx/429/network errors
    into ClassifiedError -> Retries transient classes with exponential backoff -> Returns FetchResult.
    """

    def __init__(self, session=None, timeout=None, max_retries=None, base_delay=None,
                 max_redirects=None, sleep=time.sleep):
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.session.max_redirects = core.MAX_REDIRECTS if max_redirects is None else max_redirects
        self.timeout = core.REQUEST_TIMEOUT if timeout is None else timeout
        self.max_retries = core.FETCH_RETRIES if max_retries is None else max_retries
        self.base_delay = core.RETRY_BASE_DELAY if base_delay is None else base_delay
        self._sleep = sleep

    def close(self):
        self.session.close()

    def fetch(self, url: str, timeout=None) -> FetchResult:
        """
        Fetch with retry. Non-retryable classes (DNS, malformed URL, TLS, redirects)
        are raised on first occurrence.
        """
        timeout = self.timeout if timeout is None else timeout
        attempt = 1
        while True:
            try:
                result = self._fetch_once(url, timeout)
                if attempt > 1:
                    result = replace(result, attempts=attempt)
                return result
            except ClassifiedError as err:
                if not err.retryable or attempt > self.max_retries:
                    if attempt > 1:
                        logger.error(f"[FETCH] {url} failed after {attempt} attempts: {err}")
                    err.attempts = attempt
                    raise
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"[RETRY {attempt}/{self.max_retries}] {err} for {url}. Waiting {delay:.1f}s..."
                )
                self._sleep(delay)
                attempt += 1

    def _fetch_once(self, url: str, timeout) -> FetchResult:
        start_time = time.time()
        try:
            r = self.session.get(url, timeout=timeout, verify=True, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise ClassifiedError(classify_exception(e), str(e)) from e

        duration_ms = int((time.time() - start_time) * 1000)
        error_class = classify_status(r.status_code)
        if error_class is not None and error_class.retryable:
            raise ClassifiedError(error_class, f"http error: {r.status_code}", status_code=r.status_code)

        content_type = r.headers.get("Content-Type", "").lower()
        is_html = "text/html" in content_type or "application/xhtml" in content_type
        return FetchResult(
            url=url,
            method=FetchMethod.LIGHTWEIGHT,
            success=error_class is None,
            final_url=r.url,
            status_code=r.status_code,
            html=r.text if is_html else None,
            content_type=content_type,
            headers=dict(r.headers),
            duration_ms=duration_ms,
            error=error_class,
            error_message=f"http error: {r.status_code}" if error_class else None,
        )

