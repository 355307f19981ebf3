"""
Frontier & orchestration for one crawl run.
Owns the pending work-list, the in-progress reservations and the visited set.
All state changes happen under one lock so that concurrent workers can never
dispatch the same normalized key twice or overrun the page budget.
"""

import threading
from collections import deque
from typing import Iterable, List, Optional

from crawler.core import logger
from crawler.normalizer import normalize, is_same_origin
from frontier.models import CrawlTarget, TargetState

# offer() outcomes
ENQUEUED = "enqueued"
INVALID = "invalid"
CROSS_ORIGIN = "cross_origin"
TOO_DEEP = "too_deep"
BUDGET_EXHAUSTED = "budget_exhausted"
DUPLICATE = "duplicate"


class Frontier:
    """
    FLOW: offer() filters + dedups discovered URLs into the pending list ->
    next_target() enforces dispatch preconditions (visited, page budget, depth) ->
    report_success()/report_failure() move targets to their next state.

    depth_first=True puts a page's admitted children at the head of the pending list
    (they are processed before siblings); otherwise they are appended (breadth first).
    Retries always go to the head.
    """

    def __init__(self, origin: str, max_depth: int, max_pages: int, max_retries: int, depth_first: bool = True):
        self.origin = origin
        self.max_depth = max_depth
        self.max_pages = max_pages
        self.max_retries = max_retries
        self.depth_first = depth_first

        self.lock = threading.Lock()
        self._pending = deque()
        self._queued = set()        # keys waiting in _pending
        self._in_progress = set()   # keys active or retry-pending
        self._dispatched = set()    # keys dispatched at least once
        self.visited = set()        # keys in a terminal state
        self._aliases = set()       # keys already covered by a redirect
        self._active = 0
        self.skipped = 0

    # ------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------
    def _check(self, url: str, depth: int):
        """Returns (reason, key). Caller holds the lock."""
        key = normalize(url)
        if key is None:
            return INVALID, None
        if not is_same_origin(url, self.origin):
            return CROSS_ORIGIN, key
        if depth > self.max_depth:
            return TOO_DEEP, key
        if len(self._dispatched) >= self.max_pages:
            return BUDGET_EXHAUSTED, key
        if key in self.visited or key in self._queued or key in self._in_progress or key in self._aliases:
            return DUPLICATE, key
        return ENQUEUED, key

    def offer(self, url: str, depth: int = 0, parent_url: Optional[str] = None) -> str:
        """Enqueue a single URL at the tail. Returns one of the offer() outcome constants."""
        with self.lock:
            reason, key = self._check(url, depth)
            if reason == ENQUEUED:
                self._pending.append(CrawlTarget(url, key, depth, parent_url))
                self._queued.add(key)
        logger.debug(f"offer: {url} (depth={depth}) -> {reason}")
        return reason

    def admit_children(self, parent: CrawlTarget, links: Iterable[str], limit: int) -> List[CrawlTarget]:
        """
        Admit up to `limit` of a page's links (document order) at depth parent.depth + 1.
        Only links that pass every filter count towards the limit.
        """
        admitted = []
        depth = parent.depth + 1
        with self.lock:
            for url in links:
                if len(admitted) >= limit:
                    break
                reason, key = self._check(url, depth)
                if reason == BUDGET_EXHAUSTED or reason == TOO_DEEP:
                    break
                if reason != ENQUEUED:
                    continue
                target = CrawlTarget(url, key, depth, parent.url)
                self._queued.add(key)
                admitted.append(target)

            if self.depth_first:
                self._pending.extendleft(reversed(admitted))
            else:
                self._pending.extend(admitted)
        if admitted:
            logger.debug(f"admit_children: {len(admitted)} children of {parent.url} at depth {depth}")
        return admitted

    def rebase(self, origin: str, alias_url: str) -> None:
        """
        Move the crawl onto a new origin (the seed redirected there).
        alias_url is the redirect target; it is treated as already seen.
        """
        with self.lock:
            self.origin = origin
            key = normalize(alias_url)
            if key is not None:
                self._aliases.add(key)
        logger.info(f"rebased frontier onto {origin}")

    # ------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------
    def next_target(self) -> Optional[CrawlTarget]:
        """
        pending -> active. Targets that fail a precondition are dropped here.
        Returns None when nothing is dispatchable right now.
        """
        with self.lock:
            while self._pending:
                target = self._pending.popleft()
                self._queued.discard(target.normalized_url)
                key = target.normalized_url

                if key in self.visited:
                    continue
                if target.depth > self.max_depth:
                    self._drop(target, "depth limit")
                    continue
                if key not in self._dispatched and len(self._dispatched) >= self.max_pages:
                    self._drop(target, "page budget reached")
                    continue

                target.state = TargetState.ACTIVE
                self._in_progress.add(key)
                self._dispatched.add(key)
                self._active += 1
                return target
            return None

    def _drop(self, target: CrawlTarget, reason: str):
        self._in_progress.discard(target.normalized_url)
        self.skipped += 1
        logger.info(f"dropped {target.url}: {reason}")

    # ------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------
    def report_success(self, target: CrawlTarget) -> None:
        """active -> completed"""
        with self.lock:
            self._finish(target, TargetState.COMPLETED)

    def report_failure(self, target: CrawlTarget, retryable: bool) -> TargetState:
        """
        active -> retry-pending (re-enqueued at the head) while the retry ceiling allows,
        otherwise active -> failed.
        """
        with self.lock:
            if retryable and target.retry_count < self.max_retries:
                target.retry_count += 1
                target.state = TargetState.RETRY_PENDING
                self._active -= 1
                self._pending.appendleft(target)
                return TargetState.RETRY_PENDING
            self._finish(target, TargetState.FAILED)
            return TargetState.FAILED

    def _finish(self, target: CrawlTarget, state: TargetState):
        target.state = state
        self._in_progress.discard(target.normalized_url)
        self.visited.add(target.normalized_url)
        self._active -= 1

    # ------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------
    def is_exhausted(self) -> bool:
        with self.lock:
            return not self._pending and self._active == 0

    def get_stats(self):
        with self.lock:
            return {
                "queued": len(self._pending),
                "active": self._active,
                "visited_count": len(self.visited),
                "dispatched": len(self._dispatched),
                "skipped": self.skipped,
            }
