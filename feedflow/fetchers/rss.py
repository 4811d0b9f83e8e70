"""
RSS/Atom fetch strategy.

Handles:
- RSS 2.0 and Atom 1.0 formats
- Rate limiting per domain
- Mapping transport errors to fetch error types
"""

import asyncio
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

import aiohttp
import feedparser
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..domain.source import Source, SourceType
from ..exceptions import FetchError, FetchErrorType
from .base import FetchedItem, FetchResult, FetchStrategy, classify_exception


class RssFetchStrategy(FetchStrategy):
    """Fetches and parses RSS/Atom feeds with per-domain rate limiting."""

    def __init__(self, timeout: int = 30, user_agent: str | None = None):
        self.timeout = timeout
        self.user_agent = user_agent or "feedflow/1.0 (+https://github.com/feedflow)"
        self._domain_last_fetch: dict[str, float] = {}
        self._min_interval = 1.0  # Minimum seconds between requests to same domain

    @property
    def source_type(self) -> SourceType:
        return SourceType.RSS

    async def fetch(self, source: Source) -> FetchResult:
        if not source.url:
            raise FetchError(FetchErrorType.VALIDATION, "RSS source has no URL")

        config = source.configuration
        started = time.monotonic()
        try:
            content = await self._download(
                source.url,
                timeout=config.timeout or self.timeout,
                user_agent=config.user_agent or self.user_agent,
            )
        except Exception as e:
            raise classify_exception(e) from e

        result = self._parse(content)
        result.metadata["duration"] = time.monotonic() - started
        return result

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(aiohttp.ClientConnectionError),
        reraise=True,
    )
    async def _download(self, url: str, timeout: int, user_agent: str) -> str:
        domain = urlparse(url).netloc
        await self._rate_limit(domain)

        headers = {"User-Agent": user_agent}

        async with aiohttp.ClientSession() as session:
            async with session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as resp:
                resp.raise_for_status()
                return await resp.text()

    def _parse(self, content: str) -> FetchResult:
        """Parse feed content using feedparser."""
        parsed = feedparser.parse(content)

        # Check for parse errors
        if parsed.bozo and not parsed.entries:
            raise FetchError(
                FetchErrorType.PARSE,
                f"Failed to parse feed: {parsed.bozo_exception}",
            )

        items = []
        for entry in parsed.entries:
            # Extract content (prefer content over summary)
            content_text = ""
            if entry.get("content"):
                content_text = entry.content[0].value
            elif entry.get("summary"):
                content_text = entry.summary
            elif entry.get("description"):
                content_text = entry.description

            published = None
            for key in ("published_parsed", "updated_parsed"):
                value = entry.get(key)
                if value:
                    try:
                        published = datetime(*value[:6], tzinfo=timezone.utc)
                        break
                    except (TypeError, ValueError):
                        pass

            # Get URL
            item_url = entry.get("link", "")
            if not item_url and entry.get("links"):
                for link in entry.links:
                    if link.get("rel") == "alternate" or link.get("type") == "text/html":
                        item_url = link.get("href", "")
                        break

            items.append(FetchedItem(
                title=entry.get("title", "Untitled"),
                content=content_text,
                url=item_url or None,
                guid=entry.get("id") or None,
                published_at=published,
                author=entry.get("author"),
                categories=[t.get("term") for t in entry.get("tags", []) if t.get("term")],
            ))

        return FetchResult(
            items=items,
            metadata={
                "feed_title": parsed.feed.get("title"),
                "feed_description": parsed.feed.get("description") or parsed.feed.get("subtitle"),
            },
        )

    async def _rate_limit(self, domain: str):
        """Ensure minimum interval between requests to same domain."""
        now = time.time()
        if domain in self._domain_last_fetch:
            elapsed = now - self._domain_last_fetch[domain]
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
        self._domain_last_fetch[domain] = time.time()
