import queue
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RenderStage(Enum):
    NAVIGATION = "NAVIGATION"
    EXTRACTION = "EXTRACTION"


@dataclass(frozen=True)
class RenderedPage:
    """
    Post-JS snapshot of one page, read from the live DOM.
    `dom` holds the raw values returned by the in-page extraction script.
    """
    url: str
    final_url: str
    html: str
    status_code: Optional[int] = None
    links: List[str] = field(default_factory=list)
    dom: Dict[str, Any] = field(default_factory=dict)
    render_duration_ms: int = 0


class RenderRequest:
    def __init__(self, url, goto_timeout, idle_timeout, settle_time):
        self.url = url
        self.goto_timeout = goto_timeout
        self.idle_timeout = idle_timeout
        self.settle_time = settle_time
        self.result_queue = queue.Queue()


class RenderResult:
    def __init__(self, page=None, error=None, stage=RenderStage.NAVIGATION):
        self.page = page
        self.error = error
        self.stage = stage
