from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple, List

from crawler import core
from crawler.errors import ErrorClass


class FetchMethod(Enum):
    LIGHTWEIGHT = "lightweight"
    RENDER = "render"


@dataclass(frozen=True)
class PageMetadata:
    """SEO metadata pulled from a page. Every field is optional."""
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    h1: Optional[str] = None
    canonical: Optional[str] = None
    og_image: Optional[str] = None
    word_count: Optional[int] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class FetchResult:
    """
    Output of a fetch strategy (and of the dispatcher).
    Tagged by `method`; `links`/`metadata` are None until extraction ran,
    and stay None on failure.
    """
    url: str
    method: FetchMethod
    success: bool
    final_url: Optional[str] = None
    status_code: Optional[int] = None
    html: Optional[str] = None
    content_type: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0
    attempts: int = 1
    links: Optional[Tuple[str, ...]] = None
    metadata: Optional[PageMetadata] = None
    error: Optional[ErrorClass] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class PageOutcome:
    """
    Result of attempting one crawl target. Created once, at the target's terminal state.
    """
    url: str
    normalized_url: str
    depth: int
    success: bool
    method: Optional[FetchMethod] = None
    parent_url: Optional[str] = None
    status_code: Optional[int] = None
    duration_ms: int = 0
    links: Tuple[str, ...] = ()
    metadata: PageMetadata = field(default_factory=PageMetadata)
    error: Optional[ErrorClass] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    page_size: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "url": self.url,
            "normalized_url": self.normalized_url,
            "depth": self.depth,
            "parent_url": self.parent_url,
            "success": self.success,
            "method": self.method.value if self.method else None,
            "status_code": self.status_code,
            "duration_ms": self.duration_ms,
            "links": list(self.links),
            "metadata": self.metadata.to_dict(),
            "error": self.error.value if self.error else None,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "page_size": self.page_size,
        }


@dataclass(frozen=True)
class CrawlBudget:
    """
    Run-scoped limits. Depth and page checks happen before dispatch, never after.
    """
    max_depth: int = core.MAX_DEPTH
    max_pages: int = core.MAX_PAGES
    timeout: float = core.REQUEST_TIMEOUT
    max_retries: int = core.MAX_RETRIES
    request_delay: float = core.CRAWL_DELAY
    max_children_per_page: int = core.MAX_CHILDREN_PER_PAGE
    fetch_retries: int = core.FETCH_RETRIES
    retry_base_delay: float = core.RETRY_BASE_DELAY
    render_enabled: bool = core.RENDER_ENABLED
    concurrency: int = core.CRAWL_CONCURRENCY

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        if self.max_retries < 0 or self.fetch_retries < 0:
            raise ValueError("retry ceilings must be >= 0")
        if self.request_delay < 0:
            raise ValueError("request_delay must be >= 0")
        if self.max_children_per_page < 0:
            raise ValueError("max_children_per_page must be >= 0")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")

    @classmethod
    def from_env(cls, **overrides) -> "CrawlBudget":
        """Budget from crawler.core defaults, with explicit overrides (None values ignored)."""
        return cls(**{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class CrawlReport:
    """
    Terminal artifact of one crawl run. Failed outcomes are kept for error reporting;
    serializers only consume `successful_urls`.
    """
    start_url: str
    base_origin: str
    outcomes: Tuple[PageOutcome, ...]
    total: int
    success_count: int
    fail_count: int
    duration_ms: int
    started_at: datetime
    finished_at: datetime
    budget: Optional[CrawlBudget] = None
    skipped_count: int = 0

    @property
    def successful_urls(self) -> List[str]:
        return [o.url for o in self.outcomes if o.success]

    @property
    def failed_outcomes(self) -> List[PageOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def average_load_time_ms(self) -> int:
        times = [o.duration_ms for o in self.outcomes if o.duration_ms > 0]
        return round(sum(times) / len(times)) if times else 0

    @property
    def max_depth_reached(self) -> int:
        return max((o.depth for o in self.outcomes), default=0)

    @property
    def pages_by_depth(self) -> Dict[int, int]:
        counts: Dict[int, int] = {}
        for o in self.outcomes:
            counts[o.depth] = counts.get(o.depth, 0) + 1
        return counts

    @property
    def method_counts(self) -> Dict[str, int]:
        counts = {m.value: 0 for m in FetchMethod}
        for o in self.outcomes:
            if o.method:
                counts[o.method.value] += 1
        return counts

    @property
    def status(self) -> str:
        if self.total and self.success_count == self.total:
            return "completed"
        if self.success_count:
            return "partial"
        return "failed"

    def to_dict(self) -> Dict:
        return {
            "start_url": self.start_url,
            "base_origin": self.base_origin,
            "status": self.status,
            "total": self.total,
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "skipped_count": self.skipped_count,
            "duration_ms": self.duration_ms,
            "average_load_time_ms": self.average_load_time_ms,
            "max_depth_reached": self.max_depth_reached,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "pages": [o.to_dict() for o in self.outcomes],
        }
