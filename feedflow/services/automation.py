"""
Automation handler - generates articles when auto-generating sources get new items.
"""

import logging

from ..database import FeedItemRepository
from ..domain.events import NEW_FEED_ITEMS_DETECTED, DomainEvent
from ..domain.feed_item import FeedItemStatus
from ..events import EventChannel
from .generation_service import GenerationOutcome, GenerationWorkflow

logger = logging.getLogger(__name__)


class NewItemsAutomationHandler:
    """Subscribes to NewFeedItemsDetected and runs the generation workflow."""

    def __init__(self, feed_items: FeedItemRepository, workflow: GenerationWorkflow):
        self.feed_items = feed_items
        self.workflow = workflow
        self.last_outcomes: list[GenerationOutcome] = []

    def register(self, channel: EventChannel):
        channel.subscribe(NEW_FEED_ITEMS_DETECTED, self.handle)

    def unregister(self, channel: EventChannel):
        channel.unsubscribe(NEW_FEED_ITEMS_DETECTED, self.handle)

    async def handle(self, event: DomainEvent):
        if not event.metadata.get("has_auto_generation"):
            return

        item_ids = event.payload.get("feed_item_ids", [])
        source_id = event.payload.get("source_id")
        logger.info(f"Auto-generating {len(item_ids)} articles for source {source_id}")

        for item_id in item_ids:
            item = await self.feed_items.get(item_id)
            if item is not None and item.status == FeedItemStatus.PENDING:
                await self.feed_items.update_status(item_id, FeedItemStatus.DRAFT)

        self.last_outcomes = await self.workflow.generate_batch(item_ids)
        failed = [o for o in self.last_outcomes if not o.success]
        for outcome in failed:
            logger.warning(
                f"Auto-generation failed for feed item {outcome.feed_item_id}: "
                f"{outcome.error_code.value} {outcome.error_message}"
            )
