"""测试夹具：内存 SQLite、模拟 HTTP 订阅源与 XML 构造工具。"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone  # noqa: E402
from typing import AsyncGenerator, Callable, Generator  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from podcast_feeds.database import init_db, make_engine  # noqa: E402
from podcast_feeds.rss import FeedIngestor  # noqa: E402

FEED_URL = "https://example.com/feed.xml"
FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def rss_item(
    title: str | None = "Episode",
    guid: str | None = None,
    audio_url: str | None = None,
    link: str | None = None,
    pub_date: str | None = "Mon, 06 Jan 2025 10:00:00 +0000",
    duration: str | None = None,
    description: str | None = None,
    image: str | None = None,
    enclosure_type: str = "audio/mpeg",
) -> str:
    parts = ["<item>"]
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if guid is not None:
        parts.append(f'<guid isPermaLink="false">{guid}</guid>')
    if link is not None:
        parts.append(f"<link>{link}</link>")
    if audio_url is not None:
        parts.append(f'<enclosure url="{audio_url}" type="{enclosure_type}" length="1024"/>')
    if pub_date is not None:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if duration is not None:
        parts.append(f"<itunes:duration>{duration}</itunes:duration>")
    if description is not None:
        parts.append(f"<description>{description}</description>")
    if image is not None:
        parts.append(f'<itunes:image href="{image}"/>')
    parts.append("</item>")
    return "".join(parts)


def rss_feed(items: list[str], title: str | None = "Test Cast", channel_extra: str = "") -> str:
    title_xml = f"<title>{title}</title>" if title is not None else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">'
        f"<channel>{title_xml}<link>https://example.com</link>{channel_extra}"
        f"{''.join(items)}</channel></rss>"
    )


class FeedServer:
    """按 URL 返回预设响应的 httpx 模拟传输层。"""

    def __init__(self) -> None:
        self.routes: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, body: str, status_code: int = 200) -> None:
        self.routes[url] = httpx.Response(
            status_code,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/rss+xml; charset=utf-8"},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get(str(request.url))
        if response is None:
            return httpx.Response(404, text="not found")
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


@pytest.fixture
def make_ingestor(feed_server: FeedServer) -> Callable[..., FeedIngestor]:
    def _make(**overrides) -> FeedIngestor:
        options = {
            "user_agent": "PodcastFeedsTest/1.0",
            "timeout": 5.0,
            "max_episodes": 20,
            "transport": feed_server.transport,
            "now": lambda: FIXED_NOW,
        }
        options.update(overrides)
        return FeedIngestor(**options)

    return _make


@pytest.fixture
def ingestor(make_ingestor) -> FeedIngestor:
    return make_ingestor()


@pytest.fixture
def session_factory() -> sessionmaker:
    engine = make_engine("sqlite://")
    init_db(engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest_asyncio.fixture
async def app_client(
    session_factory: sessionmaker, ingestor: FeedIngestor
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """挂载测试数据库与模拟订阅源的 API 客户端。"""

    from podcast_feeds.database import get_db
    from podcast_feeds.main import app, get_ingestor

    def _get_db_override():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_ingestor] = lambda: ingestor
    try:
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_ingestor, None)
