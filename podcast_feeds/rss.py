"""播客订阅源的抓取与解析。

FeedIngestor 只负责 抓取 -> 解析 -> 规范化 -> 过滤，不写数据库；
入库由 crud 模块完成。
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from xml.etree import ElementTree as ET

import feedparser
import html2text
import httpx

from podcast_feeds import fallback
from podcast_feeds.cache import FeedCache
from podcast_feeds.config import Settings, get_settings
from podcast_feeds.schemas import (
    DEFAULT_DURATION,
    DEFAULT_EPISODE_TITLE,
    DEFAULT_PODCAST_NAME,
    EpisodeRecord,
    FeedMetadata,
    ParsedFeed,
)

logger = logging.getLogger(__name__)

ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"
)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"

# 仅编码声明与实际不符等提示，文档本身仍是完整的 XML
_BENIGN_BOZO = (
    feedparser.CharacterEncodingOverride,
    feedparser.NonXMLContentType,
)


class FeedError(RuntimeError):
    """抓取或解析订阅源失败。"""


class FetchError(FeedError):
    """网络错误或非 2xx 响应，不在此处重试。"""

    def __init__(
        self,
        url: str,
        status_code: Optional[int] = None,
        body: str = "",
        message: Optional[str] = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        if message is None:
            message = f"抓取失败：HTTP {status_code}"
        super().__init__(message)


class ParseError(FeedError):
    """响应内容不是可用的 RSS/Atom 文档。"""


_markdown_converter = html2text.HTML2Text()
_markdown_converter.body_width = 0
_markdown_converter.ignore_links = False
_markdown_converter.ignore_images = True
_markdown_converter.ignore_emphasis = False
_markdown_converter.single_line_break = True


def _html_to_markdown(value: str | None) -> str | None:
    if not value:
        return None
    markdown = _markdown_converter.handle(value)
    cleaned = markdown.strip()
    return cleaned or None


def _to_datetime(struct_time: Any | None) -> datetime | None:
    if struct_time is None:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _categories(feed_meta: Any) -> list[str]:
    terms: list[str] = []
    for tag in feed_meta.get("tags") or []:
        term = (tag.get("term") or "").strip()
        if term and term not in terms:
            terms.append(term)
    return terms


def _channel_text(content: bytes | str) -> dict[str, str]:
    """直接读取 RSS 频道的 <description> 与 <itunes:summary>。

    feedparser 把 <description> 和 <itunes:subtitle> 都存到 subtitle，后出现者覆盖前者，
    所以这两个字段单独从原始 XML 取值。Atom 文档没有 channel，返回空字典。
    """

    try:
        root = ET.fromstring(content)
    except ET.ParseError:
        return {}
    channel = root.find("channel")
    if channel is None:
        return {}
    values = {
        "channel_description": channel.findtext("description"),
        "itunes_summary": channel.findtext(f"{{{ITUNES_NS}}}summary"),
    }
    return {key: value for key, value in values.items() if value is not None}


class FeedIngestor:
    """把一个订阅源地址转换为 (FeedMetadata, EpisodeRecord 列表)。

    除一次 HTTP 请求外没有副作用；相同 guid 的去重交给存储层的 upsert。
    cache 为 None 时不做任何缓存。
    """

    def __init__(
        self,
        *,
        user_agent: str,
        timeout: float = 15.0,
        max_episodes: Optional[int] = 20,
        cache: Optional[FeedCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_episodes = max_episodes
        self.cache = cache
        self._transport = transport
        self._now = now

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> "FeedIngestor":
        settings = settings or get_settings()
        options: dict[str, Any] = {
            "user_agent": settings.user_agent,
            "timeout": settings.feed_http_timeout,
            "max_episodes": settings.feed_max_episodes,
        }
        if settings.feed_cache_enabled:
            options["cache"] = FeedCache(ttl_seconds=settings.feed_cache_ttl)
        options.update(overrides)
        return cls(**options)

    async def parse_feed(self, feed_url: str) -> ParsedFeed:
        """抓取并解析订阅源。

        抛出 FetchError（网络/HTTP）或 ParseError（文档无效），不返回部分结果。
        没有可用单集时返回空列表，不视为错误。
        """

        if self.cache is not None:
            cached = self.cache.get(feed_url)
            if cached is not None:
                logger.debug("使用缓存的订阅源 %s", feed_url)
                return cached

        content = await self.fetch(feed_url)
        result = self.parse_document(feed_url, content)

        if self.cache is not None:
            self.cache.set(feed_url, result)
        return result

    async def fetch(self, feed_url: str) -> bytes:
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
        logger.info("抓取订阅源 %s", feed_url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport, follow_redirects=True
            ) as client:
                response = await client.get(feed_url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(feed_url, message=f"抓取失败：{exc}") from exc

        if not response.is_success:
            raise FetchError(feed_url, status_code=response.status_code, body=response.text)
        return response.content

    def parse_document(self, feed_url: str, content: bytes | str) -> ParsedFeed:
        parsed = feedparser.parse(content)
        bozo_exception = parsed.get("bozo_exception")
        if parsed.bozo and not isinstance(bozo_exception, _BENIGN_BOZO):
            raise ParseError(f"解析出错：{bozo_exception!s}")

        feed_meta = dict(parsed.get("feed") or {})
        feed_meta.update(_channel_text(content))
        metadata = self._map_metadata(feed_url, feed_meta)

        entries = parsed.entries
        if self.max_episodes is not None:
            entries = entries[: self.max_episodes]

        episodes = []
        for entry in entries:
            episode = self._map_episode(entry, metadata)
            if episode is not None:
                episodes.append(episode)

        logger.info(
            "解析完成 %s：%d 个条目，%d 个有效单集",
            metadata.name,
            len(entries),
            len(episodes),
        )
        return ParsedFeed(metadata=metadata, episodes=episodes)

    def _map_metadata(self, feed_url: str, feed_meta: Any) -> FeedMetadata:
        return FeedMetadata(
            name=fallback.first_present(feed_meta, fallback.FEED_TITLE, DEFAULT_PODCAST_NAME),
            feed_url=feed_url,
            description=_html_to_markdown(
                fallback.first_present(feed_meta, fallback.FEED_DESCRIPTION)
            ),
            image_url=fallback.first_present(feed_meta, fallback.FEED_IMAGE),
            author=fallback.first_present(feed_meta, fallback.FEED_AUTHOR),
            categories=_categories(feed_meta),
        )

    def _map_episode(self, entry: Any, metadata: FeedMetadata) -> EpisodeRecord | None:
        audio_url = fallback.first_present(entry, fallback.EPISODE_AUDIO)
        if not audio_url:
            return None

        published = _to_datetime(fallback.first_present(entry, fallback.EPISODE_PUBLISHED))
        guid = fallback.first_present(entry, fallback.EPISODE_GUID) or self._synthetic_guid()

        return EpisodeRecord(
            title=fallback.first_present(entry, fallback.EPISODE_TITLE, DEFAULT_EPISODE_TITLE),
            description=_html_to_markdown(
                fallback.first_present(entry, fallback.EPISODE_DESCRIPTION)
            ),
            pub_date=published or self._now(),
            audio_url=audio_url,
            duration=str(
                fallback.first_present(entry, fallback.EPISODE_DURATION, DEFAULT_DURATION)
            ).strip(),
            guid=guid,
            image_url=fallback.first_present(entry, fallback.EPISODE_IMAGE, metadata.image_url),
        )

    def _synthetic_guid(self) -> str:
        # 每次运行都不同，同一个坏订阅源重复抓取会产生重复单集
        millis = int(self._now().timestamp() * 1000)
        return f"unknown_guid_{millis}_{random.random()}"


async def parse_feed(feed_url: str) -> ParsedFeed:
    """使用默认配置解析单个订阅源。"""

    return await FeedIngestor.from_settings().parse_feed(feed_url)
