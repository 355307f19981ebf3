"""
Static HTML extraction for the lightweight path.
Pulls outbound anchor links and SEO metadata from fetched HTML with BeautifulSoup.
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup

from crawler.models import PageMetadata
from crawler.normalizer import resolve_link

_WS = re.compile(r"\s+")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _clean(text) -> Optional[str]:
    if text is None:
        return None
    text = _WS.sub(" ", str(text)).strip()
    return text or None


def _meta(soup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    return _clean(tag.get("content"))


def body_text(soup: BeautifulSoup) -> str:
    """Visible body text, whitespace-collapsed. Scripts, styles and noscript are ignored."""
    body = soup.body or soup
    for tag in body(["script", "style", "noscript", "template"]):
        tag.decompose()
    return _WS.sub(" ", body.get_text(" ")).strip()


def extract_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    """
    Absolute hrefs of every <a href>, in document order, deduplicated.
    A <base href> in the document takes precedence over the page URL.
    """
    base_tag = soup.find("base", href=True)
    if base_tag is not None:
        base_url = resolve_link(base_tag["href"], base_url) or base_url

    seen = set()
    links = []
    for a in soup.find_all("a", href=True):
        url = resolve_link(a["href"], base_url)
        if url and url not in seen:
            seen.add(url)
            links.append(url)
    return links


def extract_metadata(soup: BeautifulSoup, base_url: str, text: Optional[str] = None) -> PageMetadata:
    title = _clean(soup.title.get_text()) if soup.title else None
    h1_tag = soup.find("h1")
    canonical = None
    canonical_tag = soup.find("link", rel="canonical", href=True)
    if canonical_tag is not None:
        canonical = resolve_link(canonical_tag["href"], base_url)
    if text is None:
        text = body_text(soup)
    return PageMetadata(
        title=title,
        description=_meta(soup, name="description"),
        keywords=_meta(soup, name="keywords"),
        h1=_clean(h1_tag.get_text()) if h1_tag else None,
        canonical=canonical,
        og_image=_meta(soup, property="og:image"),
        word_count=len(text.split()) if text else 0,
    )

