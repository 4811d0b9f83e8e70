"""
Domain events returned by entity mutators and carried by the event channel.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Event type names
SOURCE_CREATED = "sources.source.created"
SOURCE_UPDATED = "sources.source.updated"
SOURCE_STATUS_CHANGED = "sources.source.status_changed"
SOURCE_FETCHED = "sources.source.fetched"
SOURCE_ERROR_OCCURRED = "sources.source.error_occurred"
NEW_FEED_ITEMS_DETECTED = "sources.feed_items.new_items_detected"
ARTICLE_GENERATED = "content.article.generated"
ARTICLE_STATUS_CHANGED = "content.article.status_changed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent:
    """Something that happened to an aggregate."""
    event_type: str
    aggregate_id: str
    payload: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
            "metadata": self.metadata,
        }


def new_feed_items_detected(
    source_id: str,
    source_name: str,
    source_type: str,
    source_configuration: dict,
    feed_item_ids: list[str],
    auto_generate: bool,
) -> DomainEvent:
    """Build the single per-run notification for a batch of new items."""
    detected_at = utcnow()
    return DomainEvent(
        event_type=NEW_FEED_ITEMS_DETECTED,
        aggregate_id=source_id,
        payload={
            "source_id": source_id,
            "source_name": source_name,
            "source_type": source_type,
            "source_configuration": source_configuration,
            "feed_item_ids": list(feed_item_ids),
            "total_new_items": len(feed_item_ids),
            "detected_at": detected_at.isoformat(),
        },
        metadata={"has_auto_generation": auto_generate},
        occurred_at=detected_at,
    )
