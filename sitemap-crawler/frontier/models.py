from enum import Enum
from dataclasses import dataclass
from typing import Optional


class TargetState(Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    RETRY_PENDING = "RETRY_PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class CrawlTarget:
    """
    A URL queued for fetching.
    Invariants: normalized_url is the dedup key; url keeps query/fragment for fetching;
    only retry_count, attempts and state change after creation.
    attempts counts every fetch attempt, including retries inside a fetch strategy.
    """
    url: str
    normalized_url: str
    depth: int = 0
    parent_url: Optional[str] = None
    retry_count: int = 0
    attempts: int = 0
    state: TargetState = TargetState.PENDING
