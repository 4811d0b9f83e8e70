"""
Fetch orchestrator - pulls items from sources into the deduplication store.

One run for one source:
1. pick the fetch strategy for the source type and fetch raw items
2. apply the source's filters in feed order
3. skip items whose (source, guid) key is already stored
4. persist new items as ``pending`` or ``draft``
5. record the outcome on the source (success or classified error)
6. publish one NewFeedItemsDetected event for the batch

A run never raises; failures come back as a FetchOutcome with an error type.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from ..database import FeedItemRepository, SourceRepository
from ..domain.events import DomainEvent, new_feed_items_detected
from ..domain.feed_item import FeedItem, FeedItemStatus, derive_guid
from ..domain.source import Source, SourceStatus
from ..events import EventChannel
from ..exceptions import DuplicateItemError, FetchError, FetchErrorType
from ..fetchers import FetchStrategyRegistry, apply_filters, classify_exception

logger = logging.getLogger(__name__)


@dataclass
class FetchOutcome:
    source_id: str
    success: bool
    skipped: bool = False
    skip_reason: str | None = None
    fetched_count: int = 0
    duplicate_count: int = 0
    new_items: list[FeedItem] = field(default_factory=list)
    error_type: FetchErrorType | None = None
    error_message: str | None = None
    duration: float = 0.0

    @property
    def new_count(self) -> int:
        return len(self.new_items)


@dataclass
class _RunProgress:
    """Mutable run state, readable after the run is cancelled by a timeout."""
    fetched_count: int = 0
    duplicate_count: int = 0
    persisted: list[FeedItem] = field(default_factory=list)
    in_flight: tuple[FeedItem, asyncio.Future] | None = None


class FetchOrchestrator:
    """Fetches sources and stores their new items."""

    def __init__(
        self,
        sources: SourceRepository,
        feed_items: FeedItemRepository,
        strategies: FetchStrategyRegistry,
        events: EventChannel,
        fetch_timeout: float = 60,
        concurrency: int = 5,
    ):
        self.sources = sources
        self.feed_items = feed_items
        self.strategies = strategies
        self.events = events
        self.fetch_timeout = fetch_timeout
        self.concurrency = concurrency
        self._locks: dict[str, asyncio.Lock] = {}

    # ─────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────

    async def fetch_source(
        self,
        source: Source,
        force: bool = False,
        mark_for_processing: bool | None = None,
    ) -> FetchOutcome:
        """
        Fetch one source.

        Args:
            source: The source to fetch
            force: Ignore the polling interval
            mark_for_processing: Store new items as ``draft`` (True) or
                ``pending`` (False). Defaults to the source's auto_generate flag.
        """
        if not source.is_ready_for_fetch():
            return self._skipped(source, f"source is {source.status.value}")
        if not force and not source.is_due_for_fetch():
            return self._skipped(source, "not due")

        lock = self._locks.setdefault(source.id, asyncio.Lock())
        if lock.locked():
            return self._skipped(source, "fetch already in progress")

        async with lock:
            outcome, pending_events = await self._run(source, mark_for_processing)

        # Published outside the lock so slow subscribers don't block the next run
        await self.events.publish_all(pending_events)
        return outcome

    async def fetch_by_id(
        self,
        source_id: str,
        force: bool = True,
        mark_for_processing: bool | None = None,
    ) -> FetchOutcome | None:
        source = await self.sources.find_by_id(source_id)
        if source is None:
            return None
        return await self.fetch_source(source, force=force, mark_for_processing=mark_for_processing)

    async def fetch_all(
        self,
        sources: list[Source] | None = None,
        force: bool = False,
    ) -> list[FetchOutcome]:
        """Fetch many sources concurrently. One failure never affects the others."""
        if sources is None:
            sources = await self.sources.find_active()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch_one(source: Source) -> FetchOutcome:
            async with semaphore:
                return await self.fetch_source(source, force=force)

        outcomes = await asyncio.gather(*(fetch_one(s) for s in sources))

        fetched = [o for o in outcomes if not o.skipped]
        failed = [o for o in fetched if not o.success]
        new_total = sum(o.new_count for o in fetched)
        if fetched:
            logger.info(
                f"Fetched {len(fetched)} sources: {new_total} new items, {len(failed)} failed"
            )
        return list(outcomes)

    # ─────────────────────────────────────────────────────────────
    # Run
    # ─────────────────────────────────────────────────────────────

    def _skipped(self, source: Source, reason: str) -> FetchOutcome:
        logger.debug(f"Skipping source {source.id}: {reason}")
        return FetchOutcome(source_id=source.id, success=True, skipped=True, skip_reason=reason)

    @staticmethod
    def initial_status(source: Source, mark_for_processing: bool | None) -> FeedItemStatus:
        if mark_for_processing is None:
            mark_for_processing = source.should_auto_generate()
        return FeedItemStatus.DRAFT if mark_for_processing else FeedItemStatus.PENDING

    async def _run(
        self,
        source: Source,
        mark_for_processing: bool | None,
    ) -> tuple[FetchOutcome, list[DomainEvent]]:
        status = self.initial_status(source, mark_for_processing)
        status_at_start = source.status
        progress = _RunProgress()
        started = time.monotonic()
        error: FetchError | None = None

        try:
            await asyncio.wait_for(
                self._fetch_and_store(source, status, progress),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            error = FetchError(
                FetchErrorType.TIMEOUT,
                f"Fetch exceeded {self.fetch_timeout} seconds",
            )
            await self._settle_in_flight(source, progress)
        except FetchError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error fetching source {source.id}: {e}")
            error = classify_exception(e)

        duration = time.monotonic() - started
        pending_events: list[DomainEvent] = []

        if error is None:
            pending_events.append(source.record_successful_fetch(
                progress.fetched_count,
                len(progress.persisted),
                duration,
                {"duplicates": progress.duplicate_count},
            ))
            logger.info(
                f"Source '{source.name}': {progress.fetched_count} fetched, "
                f"{len(progress.persisted)} new, {progress.duplicate_count} duplicates"
            )
        else:
            pending_events.append(source.record_error(
                error.type.value,
                error.message,
                error.code,
                {"persisted_items": len(progress.persisted)},
            ))
            logger.warning(f"Source '{source.name}' fetch failed ({error.type.value}): {error.message}")

        await self._save_fetch_result(source, status_at_start)

        if progress.persisted:
            pending_events.append(new_feed_items_detected(
                source_id=source.id,
                source_name=source.name,
                source_type=source.type.value,
                source_configuration=source.configuration.to_dict(),
                feed_item_ids=[item.id for item in progress.persisted],
                auto_generate=source.should_auto_generate(),
            ))

        outcome = FetchOutcome(
            source_id=source.id,
            success=error is None,
            fetched_count=progress.fetched_count,
            duplicate_count=progress.duplicate_count,
            new_items=list(progress.persisted),
            error_type=error.type if error else None,
            error_message=error.message if error else None,
            duration=duration,
        )
        return outcome, pending_events

    async def _fetch_and_store(
        self,
        source: Source,
        status: FeedItemStatus,
        progress: _RunProgress,
    ):
        strategy = self.strategies.get(source.type)
        result = await strategy.fetch(source)
        items = apply_filters(result.items, source.configuration)
        progress.fetched_count = len(items)

        # Feed order is preserved: items are written one at a time
        for fetched in items:
            guid = derive_guid(
                fetched.guid, fetched.url, fetched.title, fetched.content, fetched.published_at
            )
            if await self.feed_items.find_by_key(source.id, guid) is not None:
                progress.duplicate_count += 1
                continue

            item = FeedItem(
                source_id=source.id,
                guid=guid,
                title=fetched.title,
                content=fetched.content,
                url=fetched.url,
                published_at=fetched.published_at,
                status=status,
            )
            # Shielded so a timeout never leaves a committed row unreported
            save = asyncio.ensure_future(self.feed_items.save(item))
            progress.in_flight = (item, save)
            try:
                await asyncio.shield(save)
            except DuplicateItemError:
                # Another run stored it between the check and the insert
                progress.duplicate_count += 1
                continue
            finally:
                if save.done():
                    progress.in_flight = None
            progress.persisted.append(item)

    async def _settle_in_flight(self, source: Source, progress: _RunProgress):
        """Wait for a save interrupted by the timeout and count it if it landed."""
        if progress.in_flight is None:
            return
        item, save = progress.in_flight
        progress.in_flight = None
        try:
            await save
        except DuplicateItemError:
            progress.duplicate_count += 1
        except Exception as e:
            logger.error(f"Interrupted save of feed item {item.guid} for source {source.id} failed: {e}")
        else:
            progress.persisted.append(item)

    async def _save_fetch_result(self, source: Source, status_at_start: SourceStatus):
        # Bookkeeping only: admin edits made during the run must survive
        try:
            if not await self.sources.record_fetch_result(source, status_at_start):
                logger.warning(f"Source {source.id} was deleted during its fetch")
        except Exception as e:
            logger.exception(f"Could not save fetch result for source {source.id}: {e}")
