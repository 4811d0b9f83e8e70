"""
Source service - business logic for managing feed sources.
"""

import logging

from ..database import SourceRepository
from ..domain.source import Source, SourceStatus, SourceType
from ..events import EventChannel
from ..exceptions import ValidationError
from ..fetchers import FetchStrategyRegistry, SourceTestResult

logger = logging.getLogger(__name__)


class SourceService:
    """Creates, updates and inspects sources."""

    def __init__(
        self,
        sources: SourceRepository,
        events: EventChannel,
        strategies: FetchStrategyRegistry,
    ):
        self.sources = sources
        self.events = events
        self.strategies = strategies

    async def create(
        self,
        source_type: SourceType | str,
        name: str,
        url: str | None = None,
        configuration: dict | None = None,
        default_category: str | None = None,
    ) -> Source:
        """
        Create and persist a new active source.

        Raises:
            ValidationError: invalid fields, or a source of the same type and URL exists
        """
        source, event = Source.create(source_type, name, url, configuration, default_category)
        if source.url and await self.sources.exists_by_type_and_url(source.type, source.url):
            raise ValidationError(f"A {source.type.value} source for {source.url} already exists")

        await self.sources.save(source)
        logger.info(f"Created {source.type.value} source '{source.name}' ({source.id})")
        await self.events.publish(event)
        return source

    async def get(self, source_id: str) -> Source | None:
        return await self.sources.find_by_id(source_id)

    async def list_sources(
        self,
        status: SourceStatus | None = None,
        source_type: SourceType | None = None,
    ) -> list[Source]:
        return await self.sources.find_all(status=status, source_type=source_type)

    async def update(
        self,
        source_id: str,
        name: str | None = None,
        url: str | None = None,
        default_category: str | None = None,
        configuration: dict | None = None,
    ) -> Source | None:
        source = await self.sources.find_by_id(source_id)
        if source is None:
            return None

        changes = []
        if name is not None:
            changes.append(source.update_name(name))
        if url is not None and url != source.url:
            changes.append(source.update_url(url))
        if default_category is not None:
            changes.append(source.update_default_category(default_category or None))
        if configuration:
            changes.append(source.update_configuration(configuration))

        if changes:
            await self.sources.save(source)
            await self.events.publish_all(changes)
        return source

    async def change_status(self, source_id: str, status: SourceStatus | str) -> Source | None:
        """
        Activate, pause or archive a source.

        Raises:
            InvalidTransitionError: the status table forbids the change
        """
        source = await self.sources.find_by_id(source_id)
        if source is None:
            return None
        event = source.change_status(status)
        await self.sources.save(source)
        logger.info(f"Source {source.id} is now {source.status.value}")
        await self.events.publish(event)
        return source

    async def delete(self, source_id: str) -> bool:
        deleted = await self.sources.delete(source_id)
        if deleted:
            logger.info(f"Deleted source {source_id}")
        return deleted

    async def needing_attention(self) -> list[Source]:
        return await self.sources.find_needing_attention()

    async def test(self, source_id: str) -> SourceTestResult | None:
        """Try fetching a source without recording anything."""
        source = await self.sources.find_by_id(source_id)
        if source is None:
            return None
        return await self.strategies.get(source.type).test(source)
