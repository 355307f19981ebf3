"""
FILE DESCRIPTION: Crawl orchestration. Drives the Frontier and the Fetch Dispatcher through one run.
KEY FUNCTIONS/CLASSES: CrawlEngine, CrawlSession, CrawlWorker, PolitenessGate

concurrency == 1 runs the reference depth-first traversal on the calling thread.
concurrency > 1 runs a breadth-first pool of CrawlWorker threads over the same Frontier.
"""

import threading
import time
from typing import Callable, Optional

from crawler.core import logger
from crawler.aggregator import ResultAggregator
from crawler.dispatcher import FetchDispatcher, build_dispatcher
from crawler.errors import CrawlAbortedError, ErrorClass, ClassifiedError
from crawler.models import CrawlBudget, CrawlReport, FetchMethod, FetchResult, PageMetadata, PageOutcome
from crawler.normalizer import canonicalize_seed, normalize, origin_of
from frontier.models import CrawlTarget, TargetState
from frontier.orchestrator import Frontier


# === POLITENESS ===

class PolitenessGate:
    """
    Minimum spacing between two consecutive dispatches of one worker.
    wait() measures from the start of the previous dispatch, or from its end once
    finished() has been called. The first dispatch goes through immediately.
    """

    def __init__(self, delay: float, sleep: Callable[[float], None] = time.sleep, clock=time.monotonic):
        self.delay = delay
        self._sleep = sleep
        self._clock = clock
        self._last_mark = None

    def wait(self):
        if self._last_mark is not None and self.delay > 0:
            remaining = self.delay - (self._clock() - self._last_mark)
            if remaining > 0:
                self._sleep(remaining)
        self._last_mark = self._clock()

    def finished(self):
        self._last_mark = self._clock()


# === SESSION ===

class CrawlSession:
    """
    All mutable state of one crawl run. Never shared between runs.
    """

    def __init__(self, start_url: str, origin: str, budget: CrawlBudget,
                 dispatcher: FetchDispatcher, browser=None):
        self.start_url = start_url
        self.origin = origin
        self.budget = budget
        self.dispatcher = dispatcher
        self.browser = browser
        self.frontier = Frontier(
            origin,
            max_depth=budget.max_depth,
            max_pages=budget.max_pages,
            max_retries=budget.max_retries,
            depth_first=budget.concurrency == 1,
        )
        self.aggregator = ResultAggregator(start_url, origin, budget)


# === ENGINE ===

class CrawlEngine:
    """
    FLOW: Validates + canonicalizes the seed (CrawlAbortedError if unusable) -> Opens one shared
    browser session when rendering is possible -> Seeds the Frontier at depth 0 ->
    Dispatch loop (sequential or worker pool) with politeness spacing ->
    Per target: resolve -> complete (admit children) | retry (head of queue) | fail ->
    Closes the browser exactly once -> Returns the CrawlReport.
    """

    def __init__(self, budget: Optional[CrawlBudget] = None, dispatcher: Optional[FetchDispatcher] = None,
                 browser_factory=None, sleep: Callable[[float], None] = time.sleep):
        self.budget = budget or CrawlBudget.from_env()
        self.dispatcher = dispatcher
        self.browser_factory = browser_factory
        self.sleep = sleep

    def crawl(self, start_url: str, budget: Optional[CrawlBudget] = None) -> CrawlReport:
        budget = budget or self.budget
        seed, origin = self._prepare_seed(start_url)

        dispatcher = self.dispatcher or build_dispatcher(budget)
        browser = self._open_browser(dispatcher)
        session = CrawlSession(seed, origin, budget, dispatcher, browser)
        session.frontier.offer(seed, depth=0)

        logger.info(
            f"[CRAWL] Starting {seed} (depth<={budget.max_depth}, pages<={budget.max_pages}, "
            f"concurrency={budget.concurrency}, render={'on' if dispatcher.can_render else 'off'})"
        )
        try:
            if budget.concurrency > 1:
                self._run_pool(session)
            else:
                self._run_sequential(session)
        finally:
            if browser is not None:
                browser.close()

        report = session.aggregator.finalize(skipped_count=session.frontier.skipped)
        logger.info(
            f"[CRAWL] Finished {seed}: {report.success_count} ok, {report.fail_count} failed, "
            f"{report.skipped_count} skipped in {report.duration_ms}ms"
        )
        return report

    @staticmethod
    def _prepare_seed(start_url: str):
        try:
            seed = canonicalize_seed(start_url)
        except ValueError as e:
            raise CrawlAbortedError(f"Unparseable seed URL {start_url!r}: {e}")
        origin = origin_of(seed)
        if not seed or origin is None or normalize(seed) is None:
            raise CrawlAbortedError(f"Cannot determine origin of seed URL {start_url!r}")
        return seed, origin

    def _open_browser(self, dispatcher: FetchDispatcher):
        if not dispatcher.can_render:
            return None
        factory = self.browser_factory
        if factory is None:
            from rendering.engine import BrowserSession
            factory = BrowserSession
        # Started lazily on the first render
        return factory()

    # ------------------------------------------------------------
    # Dispatch loops
    # ------------------------------------------------------------
    def _run_sequential(self, session: CrawlSession):
        gate = PolitenessGate(session.budget.request_delay, self.sleep)
        while True:
            target = session.frontier.next_target()
            if target is None:
                break
            gate.wait()
            self.process(session, target)
            # full delay between the end of one fetch and the next request
            gate.finished()

    def _run_pool(self, session: CrawlSession):
        workers = [
            CrawlWorker(self, session, name=f"Worker-{i + 1}")
            for i in range(session.budget.concurrency)
        ]
        for w in workers:
            w.start()
        for w in workers:
            w.join()

    # ------------------------------------------------------------
    # One target
    # ------------------------------------------------------------
    def process(self, session: CrawlSession, target: CrawlTarget, context: str = "root") -> TargetState:
        """Resolves one active target and moves it to its next state."""
        log_extra = {"context": context}
        result = self._resolve(session, target)
        target.attempts += max(result.attempts, 1)

        if result.success:
            page_url = target.url
            if target.depth == 0:
                page_url = self._follow_seed_redirect(session, target, result)
            links = result.links or ()
            admitted = session.frontier.admit_children(target, links, session.budget.max_children_per_page)
            session.frontier.report_success(target)
            session.aggregator.append(self._outcome(target, result, page_url))
            logger.info(
                f"[FETCH] {page_url} OK ({result.method.value}, depth={target.depth}, "
                f"{len(links)} links, {len(admitted)} queued)",
                extra=log_extra,
            )
            return TargetState.COMPLETED

        retryable = result.error is not None and result.error.retryable
        state = session.frontier.report_failure(target, retryable)
        if state is TargetState.RETRY_PENDING:
            logger.warning(
                f"[RETRY] {target.url} ({result.error.value}), retry {target.retry_count}/{session.budget.max_retries}",
                extra=log_extra,
            )
        else:
            session.aggregator.append(self._outcome(target, result))
            logger.error(f"[FAILED] {target.url}: {result.error_message}", extra=log_extra)
        return state

    @staticmethod
    def _follow_seed_redirect(session: CrawlSession, target: CrawlTarget, result: FetchResult) -> str:
        """
        A seed that redirects to another origin (apex -> www) moves the whole crawl there.
        Returns the URL the seed page is recorded under.
        """
        final_origin = origin_of(result.final_url) if result.final_url else None
        if final_origin is None or final_origin == session.origin:
            return target.url
        logger.info(f"[CRAWL] Seed {target.url} redirected to {result.final_url}, crawling {final_origin}")
        session.origin = final_origin
        session.frontier.rebase(final_origin, result.final_url)
        session.aggregator.base_origin = final_origin
        return result.final_url

    @staticmethod
    def _resolve(session: CrawlSession, target: CrawlTarget) -> FetchResult:
        try:
            return session.dispatcher.resolve(target.url, session.browser, session.budget.timeout)
        except ClassifiedError as e:
            return FetchResult(
                url=target.url,
                method=FetchMethod.LIGHTWEIGHT,
                success=False,
                status_code=e.status_code,
                attempts=e.attempts,
                error=e.error_class,
                error_message=str(e),
            )
        except Exception as e:
            # Degrades to one failed outcome
            logger.exception(f"[CRAWL] Unexpected error processing {target.url}")
            return FetchResult(
                url=target.url,
                method=FetchMethod.LIGHTWEIGHT,
                success=False,
                error=ErrorClass.EXTRACTION_ERROR,
                error_message=f"unexpected error: {e}",
            )

    @staticmethod
    def _outcome(target: CrawlTarget, result: FetchResult, url: Optional[str] = None) -> PageOutcome:
        return PageOutcome(
            url=url or target.url,
            normalized_url=target.normalized_url,
            depth=target.depth,
            success=result.success,
            method=result.method,
            parent_url=target.parent_url,
            status_code=result.status_code,
            duration_ms=result.duration_ms,
            links=tuple(result.links or ()) if result.success else (),
            metadata=(result.metadata or PageMetadata()) if result.success else PageMetadata(),
            error=result.error,
            error_message=result.error_message,
            retry_count=max(target.attempts - 1, 0),
            page_size=len(result.html.encode("utf-8")) if result.html else None,
        )


# === CRAWLER WORKER ===

class CrawlWorker(threading.Thread):
    """
    FLOW: Pulls the next dispatchable target from the shared Frontier -> Waits on its own
    politeness gate -> Processes the target through the engine -> Exits once the Frontier
    is empty and no other worker holds an active target.
    """

    IDLE_WAIT = 0.05

    def __init__(self, engine: CrawlEngine, session: CrawlSession, name: str):
        super().__init__(name=name, daemon=True)
        self.engine = engine
        self.session = session
        self.gate = PolitenessGate(session.budget.request_delay, engine.sleep)
        self.processed = 0

    def log(self, level, msg):
        getattr(logger, level)(msg, extra={"context": self.name})

    def run(self):
        self.log("info", "started")
        frontier = self.session.frontier
        while True:
            target = frontier.next_target()
            if target is None:
                if frontier.is_exhausted():
                    break
                time.sleep(self.IDLE_WAIT)
                continue
            self.gate.wait()
            self.engine.process(self.session, target, context=self.name)
            self.processed += 1
        self.log("info", f"finished ({self.processed} dispatches)")
