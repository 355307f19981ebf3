"""
Pre-flight URL safety check.
The engine is only started for URLs where validate() reports can_proceed.
robots.txt is intentionally not consulted.
"""

import logging
from dataclasses import dataclass, field
from typing import List
from urllib.parse import urlsplit

import requests
import tldextract

from crawler.errors import ErrorClass
from crawler.fetcher import DEFAULT_HEADERS, classify_exception

logger = logging.getLogger(__name__)

VALIDATION_TIMEOUT = 10

# Bundled public suffix snapshot only; never fetched over the network
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

_ISSUE_MESSAGES = {
    ErrorClass.TLS_CERT_EXPIRED: "SSL certificate has expired",
    ErrorClass.TLS_UNVERIFIABLE: "SSL certificate cannot be verified",
    ErrorClass.TLS_SELF_SIGNED: "Site uses self-signed SSL certificate",
    ErrorClass.TLS_ERROR: "SSL/TLS connection error - outdated security",
    ErrorClass.CONNECTION_REFUSED: "Connection refused - site may be down",
    ErrorClass.DNS_ERROR: "Domain not found - check the URL",
    ErrorClass.INVALID_URL: "Invalid URL format",
}


@dataclass
class ValidationResult:
    url: str
    is_safe: bool = True
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return self.is_safe and not self.issues

    def add_issue(self, message: str):
        self.issues.append(message)
        self.is_safe = False

    def to_dict(self):
        return {
            "url": self.url,
            "isSafe": self.is_safe,
            "canProceed": self.can_proceed,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


def validate(url: str, session: requests.Session = None, timeout: float = VALIDATION_TIMEOUT) -> ValidationResult:
    """
    FLOW: Protocol check -> Public suffix check -> HEAD request with strict TLS ->
    Certificate / DNS / refused connection become issues; slowness and other network trouble become warnings.
    """
    result = ValidationResult(url=url)
    try:
        parts = urlsplit(url or "")
        host = parts.hostname
    except ValueError:
        result.add_issue("Invalid URL format")
        return result

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        result.add_issue("Invalid protocol. Only HTTP and HTTPS are supported")
        return result
    if not host:
        result.add_issue("Invalid URL format")
        return result
    if scheme == "http":
        result.warnings.append("Site uses HTTP (not HTTPS) - data is not encrypted")

    if not _EXTRACT(host).suffix:
        result.warnings.append(f"Host '{host}' has no public domain suffix")

    http = session or requests
    try:
        http.head(url, headers=DEFAULT_HEADERS, timeout=timeout, verify=True, allow_redirects=True)
    except requests.exceptions.RequestException as e:
        error_class = classify_exception(e)
        if error_class in _ISSUE_MESSAGES:
            result.add_issue(_ISSUE_MESSAGES[error_class])
        elif error_class is ErrorClass.TIMEOUT:
            result.warnings.append("Site is slow to respond")
        else:
            result.warnings.append(f"Connection issue: {e}")

    if result.can_proceed:
        logger.info(f"[VALIDATE] {url} is safe to crawl")
    else:
        logger.warning(f"[VALIDATE] {url} rejected: {'; '.join(result.issues)}")
    return result
