"""
Telegram channel fetch strategy.

Reads the public web preview of a channel (``https://t.me/s/<channel>``) and
extracts its messages with BeautifulSoup.
"""

from datetime import datetime
from urllib.parse import urlparse

import aiohttp
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..domain.source import Source, SourceType
from ..exceptions import FetchError, FetchErrorType
from .base import FetchedItem, FetchResult, FetchStrategy, classify_exception

PREVIEW_URL = "https://t.me/s/{channel}"
TITLE_LENGTH = 100


def channel_from_source(source: Source) -> str:
    """Channel name from the configuration, else from the source URL."""
    if source.configuration.channel_id:
        return source.configuration.channel_id.lstrip("@")
    path = urlparse(source.url or "").path.strip("/")
    parts = [p for p in path.split("/") if p]
    if parts and parts[0] == "s":
        parts = parts[1:]
    if not parts:
        raise FetchError(FetchErrorType.VALIDATION, f"Cannot determine channel from URL: {source.url}")
    return parts[0].lstrip("@")


class TelegramFetchStrategy(FetchStrategy):

    def __init__(self, timeout: int = 30, user_agent: str | None = None):
        self.timeout = timeout
        self.user_agent = user_agent or "feedflow/1.0 (+https://github.com/feedflow)"

    @property
    def source_type(self) -> SourceType:
        return SourceType.TELEGRAM

    async def fetch(self, source: Source) -> FetchResult:
        channel = channel_from_source(source)
        url = PREVIEW_URL.format(channel=channel)
        try:
            html = await self._download(
                url,
                timeout=source.configuration.timeout or self.timeout,
                user_agent=source.configuration.user_agent or self.user_agent,
            )
        except Exception as e:
            raise classify_exception(e) from e

        items = self._parse(html)
        return FetchResult(items=items, metadata={"channel": channel})

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(aiohttp.ClientConnectionError),
        reraise=True,
    )
    async def _download(self, url: str, timeout: int, user_agent: str) -> str:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                url,
                headers={"User-Agent": user_agent},
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                resp.raise_for_status()
                return await resp.text()

    def _parse(self, html: str) -> list[FetchedItem]:
        soup = BeautifulSoup(html, "html.parser")
        messages = soup.select("div.tgme_widget_message[data-post]")
        if not messages and not soup.select_one(".tgme_channel_info"):
            raise FetchError(FetchErrorType.PARSE, "Page is not a Telegram channel preview")

        items = []
        for message in messages:
            text_el = message.select_one(".tgme_widget_message_text")
            if text_el is None:
                continue  # media-only post
            text = text_el.get_text("\n", strip=True)
            if not text:
                continue

            link_el = message.select_one("a.tgme_widget_message_date")
            time_el = message.select_one("time[datetime]")
            published = None
            if time_el is not None:
                try:
                    published = datetime.fromisoformat(time_el["datetime"])
                except ValueError:
                    pass

            first_line = text.split("\n", 1)[0]
            title = first_line if len(first_line) <= TITLE_LENGTH else first_line[:TITLE_LENGTH - 3] + "..."

            items.append(FetchedItem(
                title=title,
                content=text,
                url=link_el.get("href") if link_el is not None else None,
                guid=message["data-post"],
                published_at=published,
            ))
        return items
