"""
Smart fetch selection.
Lightweight fetch first; pay for a browser render only when the page is demonstrably
client-rendered or the lightweight path failed outright.
"""

import logging
from dataclasses import replace
from typing import Optional

from crawler import core
from crawler.errors import ClassifiedError, ErrorClass
from crawler.fetcher import LightweightFetcher
from crawler.js_detect import render_reason
from crawler.models import FetchMethod, FetchResult
from crawler.parser import parse_html, body_text, extract_links, extract_metadata

logger = logging.getLogger(__name__)


class FetchDispatcher:
    """
    FLOW: Lightweight fetch -> (throw) render fallback -> (HTML with framework markers or
    thin body text) render re-fetch -> otherwise static extraction of links + metadata.
    """

    def __init__(self, lightweight: LightweightFetcher = None, renderer=None,
                 render_enabled: bool = None, min_content_length: int = None):
        self.lightweight = lightweight or LightweightFetcher()
        self.renderer = renderer
        self.render_enabled = core.RENDER_ENABLED if render_enabled is None else render_enabled
        self.min_content_length = core.MIN_CONTENT_LENGTH if min_content_length is None else min_content_length

    @property
    def can_render(self) -> bool:
        return self.render_enabled and self.renderer is not None

    def resolve(self, url: str, browser=None, timeout=None) -> FetchResult:
        try:
            result = self.lightweight.fetch(url, timeout)
        except ClassifiedError as err:
            return self._fallback(url, err, browser)

        if not result.success:
            # 4xx: the browser would get the same answer
            logger.info(f"[DISPATCH] {url} returned {result.status_code}, not rendering")
            return result

        if result.html is None:
            # Non-HTML content: nothing to follow, nothing to render
            return replace(result, links=(), metadata=None)

        try:
            base_url = result.final_url or url
            soup = parse_html(result.html)
            links = extract_links(soup, base_url)
            text = body_text(soup)
            reason = render_reason(result.html, text, self.min_content_length)
            if reason and self.can_render:
                logger.info(f"[DISPATCH] {url}: {reason}, escalating to render fetch")
                return self.renderer.fetch(url, browser)
            metadata = extract_metadata(soup, base_url, text=text)
        except Exception as e:
            logger.error(f"[DISPATCH] extraction failed for {url}: {e}")
            return replace(
                result,
                success=False,
                error=ErrorClass.EXTRACTION_ERROR,
                error_message=f"extraction failed: {e}",
            )

        return replace(result, links=tuple(links), metadata=metadata)

    def _fallback(self, url: str, err: ClassifiedError, browser) -> FetchResult:
        failed = FetchResult(
            url=url,
            method=FetchMethod.LIGHTWEIGHT,
            success=False,
            status_code=err.status_code,
            attempts=err.attempts,
            error=err.error_class,
            error_message=str(err),
        )
        if not self.can_render:
            return failed

        logger.info(f"[DISPATCH] lightweight fetch failed for {url} ({err.error_class.value}), falling back to render")
        rendered = self.renderer.fetch(url, browser)
        if rendered.success:
            return replace(rendered, attempts=err.attempts)
        # Keep the lightweight classification; it is the more precise one
        return replace(
            failed,
            error_message=f"{err}; render fallback: {rendered.error_message}",
        )


def build_dispatcher(budget, renderer: Optional[object] = None, session=None) -> FetchDispatcher:
    """Dispatcher wired from a CrawlBudget."""
    lightweight = LightweightFetcher(
        session=session,
        timeout=budget.timeout,
        max_retries=budget.fetch_retries,
        base_delay=budget.retry_base_delay,
    )
    if renderer is None and budget.render_enabled:
        from rendering.engine import RenderFetcher
        renderer = RenderFetcher()
    return FetchDispatcher(lightweight, renderer, render_enabled=budget.render_enabled)
