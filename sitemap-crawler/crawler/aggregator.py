"""
Result aggregation for one crawl run.
Outcomes are only ever appended; finalize() freezes them into a CrawlReport.
"""

import threading
import time
from datetime import datetime
from typing import Dict, List

from crawler.models import CrawlReport, PageOutcome


class ResultAggregator:
    """
    FLOW: Engine appends one PageOutcome per terminal target (workers may append concurrently) ->
    finalize() computes counts + duration -> Returns the immutable CrawlReport.
    """

    def __init__(self, start_url: str, base_origin: str, budget=None, clock=time.time):
        self.start_url = start_url
        self.base_origin = base_origin
        self.budget = budget
        self._clock = clock
        self._started = clock()
        self._outcomes: List[PageOutcome] = []
        self._lock = threading.Lock()

    def append(self, outcome: PageOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    @property
    def outcomes(self):
        with self._lock:
            return tuple(self._outcomes)

    def __len__(self):
        with self._lock:
            return len(self._outcomes)

    def finalize(self, skipped_count: int = 0) -> CrawlReport:
        finished = self._clock()
        outcomes = self.outcomes
        success = sum(1 for o in outcomes if o.success)
        return CrawlReport(
            start_url=self.start_url,
            base_origin=self.base_origin,
            outcomes=outcomes,
            total=len(outcomes),
            success_count=success,
            fail_count=len(outcomes) - success,
            duration_ms=int((finished - self._started) * 1000),
            started_at=datetime.fromtimestamp(self._started),
            finished_at=datetime.fromtimestamp(finished),
            budget=self.budget,
            skipped_count=skipped_count,
        )


def seo_issues(report: CrawlReport) -> List[Dict]:
    """Missing title / meta description / h1 on successfully crawled pages."""
    issues = []
    for outcome in report.outcomes:
        if not outcome.success:
            continue
        meta = outcome.metadata
        missing = []
        if not meta.title:
            missing.append("missing_title")
        if not meta.description:
            missing.append("missing_description")
        if not meta.h1:
            missing.append("missing_h1")
        if missing:
            issues.append({"url": outcome.url, "issues": missing})
    return issues
