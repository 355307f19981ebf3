"""
FILE DESCRIPTION: Headless browser operations for the render fetch strategy.
KEY FUNCTIONS/CLASSES: BrowserSession, RenderFetcher, classify_render_error

Playwright's sync API is bound to the thread that started it, so every browser
operation runs on one dedicated thread owned by a BrowserSession. Callers on any
thread submit RenderRequests and block on the reply.
"""

import queue
import threading
import time
from typing import Optional

from playwright.sync_api import sync_playwright, TimeoutError as PlaywrightTimeoutError

from crawler import core
from crawler.core import logger
from crawler.errors import ErrorClass
from crawler.fetcher import classify_status
from crawler.models import FetchMethod, FetchResult, PageMetadata
from crawler.normalizer import resolve_link
from rendering.models import RenderedPage, RenderRequest, RenderResult, RenderStage

# Runs inside the page; everything is read from the live DOM
EXTRACT_DOM_JS = """
() => {
    const clean = (s) => (s || '').replace(/\\s+/g, ' ').trim() || null;
    const meta = (sel) => {
        const el = document.querySelector(sel);
        return el ? clean(el.getAttribute('content')) : null;
    };
    const h1 = document.querySelector('h1');
    const canonical = document.querySelector('link[rel="canonical"]');
    const text = document.body ? (document.body.innerText || '').trim() : '';
    return {
        links: Array.from(document.querySelectorAll('a[href]')).map(a => a.href),
        title: clean(document.title),
        description: meta('meta[name="description"]'),
        keywords: meta('meta[name="keywords"]'),
        h1: h1 ? clean(h1.textContent) : null,
        canonical: canonical ? canonical.href : null,
        og_image: meta('meta[property="og:image"]'),
        word_count: text ? text.split(/\\s+/).length : 0,
    };
}
"""

_RENDER_ERROR_MARKERS = (
    ("err_name_not_resolved", ErrorClass.DNS_ERROR),
    ("err_cert_date_invalid", ErrorClass.TLS_CERT_EXPIRED),
    ("err_cert_authority_invalid", ErrorClass.TLS_UNVERIFIABLE),
    ("err_cert", ErrorClass.TLS_ERROR),
    ("err_ssl", ErrorClass.TLS_ERROR),
    ("err_connection_refused", ErrorClass.CONNECTION_REFUSED),
    ("err_too_many_redirects", ErrorClass.TOO_MANY_REDIRECTS),
    ("err_invalid_url", ErrorClass.INVALID_URL),
    ("invalid url", ErrorClass.INVALID_URL),
    ("err_timed_out", ErrorClass.TIMEOUT),
    ("timeout", ErrorClass.TIMEOUT),
)


class RenderError(Exception):
    """Base rendering exception."""


class RenderTimeoutError(RenderError):
    """Raised when a render request gets no reply from the browser thread in time."""


def classify_render_error(exc: Exception, stage: RenderStage = RenderStage.NAVIGATION) -> ErrorClass:
    if stage is RenderStage.EXTRACTION:
        return ErrorClass.EXTRACTION_ERROR
    if isinstance(exc, (PlaywrightTimeoutError, RenderTimeoutError)):
        return ErrorClass.TIMEOUT
    message = str(exc).lower()
    for marker, error_class in _RENDER_ERROR_MARKERS:
        if marker in message:
            return error_class
    return ErrorClass.RENDER_ERROR


# === BROWSER SESSION ===

class BrowserSession:
    """
    FLOW: Spawns a dedicated Playwright thread on first use -> Thread owns one Chromium
    instance and one context -> Serves RenderRequests from a queue, one page per request ->
    close() stops the thread and the browser exactly once.
    """

    def __init__(self, user_agent=None, headless=True, name="RenderWorker"):
        self.user_agent = user_agent or core.USER_AGENT
        self.headless = headless
        self.name = name
        self._requests = queue.Queue()
        self._init_lock = threading.Lock()
        self._ready = threading.Event()
        self._thread = None
        self._startup_error = None
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self):
        with self._init_lock:
            if self._closed:
                raise RenderError("browser session already closed")
            if self._thread is None:
                self._thread = threading.Thread(target=self._render_loop, daemon=True, name=self.name)
                self._thread.start()
        self._ready.wait()
        if self._startup_error is not None:
            raise RenderError(f"browser failed to start: {self._startup_error}")

    def render(self, url, goto_timeout=None, idle_timeout=None, settle_time=None) -> RenderedPage:
        """Blocking render of one URL. Raises the browser-side exception on failure."""
        self.start()
        req = RenderRequest(
            url,
            core.JS_GOTO_TIMEOUT if goto_timeout is None else goto_timeout,
            core.JS_IDLE_TIMEOUT if idle_timeout is None else idle_timeout,
            core.JS_SETTLE_TIME if settle_time is None else settle_time,
        )
        self._requests.put(req)
        budget = req.goto_timeout + req.idle_timeout + req.settle_time + 15
        try:
            result = req.result_queue.get(timeout=budget)
        except queue.Empty:
            raise RenderTimeoutError(f"JS rendering timed out after {budget:.0f}s for {url}")
        if result.error is not None:
            result.error.render_stage = result.stage
            raise result.error
        return result.page

    def close(self):
        with self._init_lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
        if thread is not None:
            self._requests.put(None)  # Poison pill
            thread.join(timeout=30)
            logger.info("[JS-RENDER] Browser session closed.")

    def _render_loop(self):
        """Runs in the dedicated thread. Owns the Playwright instance."""
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=self.headless,
                    args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
                )
                try:
                    context = browser.new_context(user_agent=self.user_agent)
                    logger.info("[JS-RENDER] Dedicated render thread started.")
                    self._ready.set()
                    while True:
                        req = self._requests.get()
                        if req is None:
                            break
                        req.result_queue.put(self._render_one(context, req))
                    context.close()
                finally:
                    browser.close()
        except Exception as e:
            logger.critical(f"[JS-RENDER] Fatal thread error: {e}")
            self._startup_error = e
            self._ready.set()
            self._fail_pending(e)

    def _render_one(self, context, req) -> RenderResult:
        start = time.time()
        page = context.new_page()
        try:
            try:
                response = page.goto(req.url, wait_until="domcontentloaded", timeout=req.goto_timeout * 1000)
                try:
                    page.wait_for_load_state("networkidle", timeout=req.idle_timeout * 1000)
                except PlaywrightTimeoutError:
                    logger.debug(f"[JS-RENDER] networkidle not reached for {req.url}, continuing")
                if req.settle_time > 0:
                    page.wait_for_timeout(req.settle_time * 1000)
            except Exception as e:
                return RenderResult(error=e, stage=RenderStage.NAVIGATION)

            try:
                html = page.content()
                dom = page.evaluate(EXTRACT_DOM_JS)
            except Exception as e:
                return RenderResult(error=e, stage=RenderStage.EXTRACTION)

            return RenderResult(RenderedPage(
                url=req.url,
                final_url=page.url,
                html=html,
                status_code=response.status if response else None,
                links=list(dom.get("links") or []),
                dom=dom,
                render_duration_ms=int((time.time() - start) * 1000),
            ))
        finally:
            page.close()

    def _fail_pending(self, error):
        while True:
            try:
                req = self._requests.get_nowait()
            except queue.Empty:
                return
            if req is not None:
                req.result_queue.put(RenderResult(error=error))


# === RENDER FETCHER ===

class RenderFetcher:
    """
    FLOW: Uses the caller's shared BrowserSession, or opens a private one -> Renders the URL ->
    Converts DOM data into a FetchResult -> Closes only a browser it created itself.
    Page failures come back as success=False results, never as exceptions.
    """

    def __init__(self, goto_timeout=None, idle_timeout=None, settle_time=None, session_factory=BrowserSession):
        self.goto_timeout = goto_timeout
        self.idle_timeout = idle_timeout
        self.settle_time = settle_time
        self.session_factory = session_factory

    def fetch(self, url: str, browser: Optional[BrowserSession] = None) -> FetchResult:
        start = time.time()
        owns_browser = browser is None
        if owns_browser:
            browser = self.session_factory()
        try:
            page = browser.render(url, self.goto_timeout, self.idle_timeout, self.settle_time)
        except Exception as e:
            stage = getattr(e, "render_stage", RenderStage.NAVIGATION)
            error_class = classify_render_error(e, stage)
            logger.error(f"[JS-RENDER] {url} failed ({error_class.value}): {e}")
            return FetchResult(
                url=url,
                method=FetchMethod.RENDER,
                success=False,
                duration_ms=int((time.time() - start) * 1000),
                error=error_class,
                error_message=str(e),
            )
        finally:
            if owns_browser:
                browser.close()

        return self._to_result(url, page, int((time.time() - start) * 1000))

    @staticmethod
    def _to_result(url: str, page: RenderedPage, duration_ms: int) -> FetchResult:
        error_class = classify_status(page.status_code) if page.status_code else None
        base = page.final_url or url
        links = []
        for href in page.links:
            absolute = resolve_link(href, base)
            if absolute and absolute not in links:
                links.append(absolute)
        dom = page.dom
        metadata = PageMetadata(
            title=dom.get("title"),
            description=dom.get("description"),
            keywords=dom.get("keywords"),
            h1=dom.get("h1"),
            canonical=dom.get("canonical"),
            og_image=dom.get("og_image"),
            word_count=dom.get("word_count"),
        )
        return FetchResult(
            url=url,
            method=FetchMethod.RENDER,
            success=error_class is None,
            final_url=page.final_url,
            status_code=page.status_code,
            html=page.html,
            content_type="text/html",
            duration_ms=duration_ms,
            links=tuple(links) if error_class is None else None,
            metadata=metadata if error_class is None else None,
            error=error_class,
            error_message=f"http error: {page.status_code}" if error_class else None,
        )
