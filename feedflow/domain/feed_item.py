"""
FeedItem entity and the deduplication key.
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..exceptions import InvalidTransitionError
from .events import utcnow


class FeedItemStatus(str, Enum):
    PENDING = "pending"
    DRAFT = "draft"
    PROCESSED = "processed"


# Status only moves forward
_STATUS_ORDER = {
    FeedItemStatus.PENDING: 0,
    FeedItemStatus.DRAFT: 1,
    FeedItemStatus.PROCESSED: 2,
}


def can_advance(current: FeedItemStatus, target: FeedItemStatus) -> bool:
    return _STATUS_ORDER[target] > _STATUS_ORDER[current]


def derive_guid(
    guid: str | None,
    url: str | None,
    title: str,
    content: str,
    published_at: datetime | None,
) -> str:
    """
    Key used to deduplicate an item within its source.

    Explicit provider GUID first, then the item URL, then a SHA-256 of
    title, content and publish date.
    """
    if guid and guid.strip():
        return guid.strip()
    if url and url.strip():
        return url.strip()
    published = published_at.isoformat() if published_at else ""
    digest = hashlib.sha256(f"{title}|{content}|{published}".encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


@dataclass
class FeedItem:
    source_id: str
    guid: str
    title: str
    content: str
    url: str | None = None
    published_at: datetime | None = None
    fetched_at: datetime = field(default_factory=utcnow)
    status: FeedItemStatus = FeedItemStatus.PENDING
    article_id: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def advance(self, status: FeedItemStatus, article_id: str | None = None):
        """Move the item forward in the pending -> draft -> processed pipeline."""
        if not can_advance(self.status, status):
            raise InvalidTransitionError("feed item", self.status.value, status.value)
        self.status = status
        if article_id is not None:
            self.article_id = article_id
