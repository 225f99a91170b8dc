"""Pydantic Schema 定义。"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

DEFAULT_PODCAST_NAME = "Untitled Podcast"
DEFAULT_EPISODE_TITLE = "Untitled Episode"
DEFAULT_DURATION = "0"


class FeedMetadata(BaseModel):
    """从订阅源解析出的频道信息，每次抓取重新生成。"""

    name: str = DEFAULT_PODCAST_NAME
    feed_url: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    categories: list[str] = Field(default_factory=list)


class EpisodeRecord(BaseModel):
    """待写入存储的单集。

    pub_date 在源中缺失时取抓取时刻，不代表真实发布时间。
    """

    title: str = DEFAULT_EPISODE_TITLE
    description: Optional[str] = None
    pub_date: datetime
    audio_url: str = Field(min_length=1)
    duration: str = DEFAULT_DURATION
    guid: str = Field(min_length=1)
    image_url: Optional[str] = None


class ParsedFeed(BaseModel):
    metadata: FeedMetadata
    episodes: list[EpisodeRecord] = Field(default_factory=list)


class PodcastCreate(BaseModel):
    feed_url: HttpUrl
    category: Optional[str] = None


class Episode(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    podcast_id: int
    guid: str
    title: str
    description: Optional[str]
    pub_date: datetime
    audio_url: str
    duration: str
    image_url: Optional[str]


class Podcast(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    feed_url: str
    name: str
    description: Optional[str]
    image_url: Optional[str]
    author: Optional[str]
    category: Optional[str]
    status: str
    last_fetched_at: Optional[datetime]


class PodcastDetail(Podcast):
    episodes: list[Episode] = Field(default_factory=list)


class PodcastCreated(PodcastDetail):
    episode_count: int


class RefreshResult(BaseModel):
    podcast_id: int
    episodes_parsed: int
    new_episodes: int
    updated_episodes: int
    last_fetched_at: datetime


class BatchRefreshResult(BaseModel):
    podcasts_processed: int
    results: list[RefreshResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class CacheStats(BaseModel):
    """解析缓存的当前状态；未启用缓存时 enabled 为 False。"""

    enabled: bool
    size: int = 0
    keys: list[str] = Field(default_factory=list)
    ttl_seconds: Optional[float] = None
