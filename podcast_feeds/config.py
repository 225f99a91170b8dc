"""应用配置与环境变量管理。"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """集中管理抓取、缓存与数据库配置。"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default=f"sqlite:///{Path(__file__).resolve().parent.parent / 'podcasts.sqlite3'}"
    )
    feed_http_timeout: float = Field(default=15.0, ge=1.0, le=120.0)
    user_agent: str = Field(
        default="PodcastFeeds/1.0 (compatible; FetchBot/1.0; +https://example.com/bot.html)"
    )
    feed_max_episodes: Optional[int] = Field(
        default=20,
        ge=1,
        description="每次抓取最多处理的条目数，None 表示不限制。",
    )
    feed_cache_enabled: bool = False
    feed_cache_ttl: float = Field(default=600.0, gt=0)
    allow_origin: Optional[str] = Field(
        default="*",
        description="如需限制前端来源，可在部署时设置该值。",
    )
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """提供带缓存的配置实例。"""

    return Settings()
