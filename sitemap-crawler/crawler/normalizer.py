"""
URL canonicalization for dedup.
A normalized key is origin + path without trailing slash; query and fragment
never take part in identity. The original URL is still what gets fetched.
"""

import re
from typing import Optional
from urllib.parse import urlsplit, urljoin, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}
_SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "file:", "vbscript:")
# scheme prefix; "host:8080" is a port, not a scheme
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:(?!\d)")


def _origin(parts) -> Optional[str]:
    scheme = (parts.scheme or "").lower()
    if scheme not in _DEFAULT_PORTS:
        return None
    host = (parts.hostname or "").lower()
    if not host:
        return None
    try:
        port = parts.port
    except ValueError:
        return None
    if ":" in host:
        host = f"[{host}]"  # IPv6 literal
    if port and port != _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def origin_of(url: str) -> Optional[str]:
    """scheme://host[:port] of an http(s) URL, or None if it has none."""
    if not url:
        return None
    try:
        return _origin(urlsplit(url.strip()))
    except ValueError:
        return None


def normalize(url: str) -> Optional[str]:
    """
    Dedup key for a URL, or None when it cannot be parsed.
    https://a.com/x/, https://a.com/x?ref=1 and https://a.com/x#s all map to https://a.com/x
    """
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    origin = _origin(parts)
    if origin is None:
        return None
    return origin + parts.path.rstrip("/")


def is_same_origin(url: str, origin: str) -> bool:
    candidate = origin_of(url)
    return candidate is not None and candidate == origin


def resolve_link(href: str, base_url: str) -> Optional[str]:
    """
    Resolve an anchor href against the page URL.
    Returns None for fragment-only links and non-navigational schemes.
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
        return None
    try:
        absolute = urljoin(base_url, href)
    except ValueError:
        return None
    if origin_of(absolute) is None:
        return None
    return absolute


def canonicalize_seed(url: str) -> str:
    """
    Canonical form for seed URLs:
    - scheme lower-cased, https assumed only when there is no scheme at all
      (other schemes are kept so the caller rejects them)
    - whitespace stripped, fragment removed
    """
    url = (url or "").strip()
    if url and not _SCHEME_RE.match(url):
        url = "https://" + url
    parts = urlsplit(url)
    return urlunsplit((parts.scheme.lower(), parts.netloc, parts.path or "/", parts.query, ""))
