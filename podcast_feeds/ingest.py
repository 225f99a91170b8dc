"""订阅源刷新任务：单个播客刷新与批量刷新。

命令行用法：
    podcast-feeds-refresh
    python -m podcast_feeds.ingest

退出码：0 全部成功，1 有播客刷新失败。
"""

from __future__ import annotations

import asyncio
import logging
import sys

from sqlalchemy.orm import Session

from podcast_feeds import crud, models, schemas
from podcast_feeds.config import get_settings
from podcast_feeds.database import db_session, init_db
from podcast_feeds.logging_config import setup_logging
from podcast_feeds.rss import FeedError, FeedIngestor

logger = logging.getLogger(__name__)


async def ingest_new_podcast(
    db: Session, ingestor: FeedIngestor, feed_url: str, category: str | None = None
) -> tuple[models.Podcast, int]:
    """解析并登记一个新订阅源，播客与单集在同一事务内写入。

    feed_url 已存在时抛出 ValueError；抓取/解析失败时不写入任何数据。
    """

    if crud.get_podcast_by_feed_url(db, feed_url) is not None:
        raise ValueError("该订阅源已存在")

    parsed = await ingestor.parse_feed(feed_url)
    podcast = crud.create_podcast(db, parsed.metadata, category=category)
    crud.upsert_episodes(db, podcast, parsed.episodes)
    db.commit()
    db.refresh(podcast)
    logger.info("已添加播客 %s（%d 个单集）", podcast.name, len(parsed.episodes))
    return podcast, len(parsed.episodes)


async def refresh_podcast(
    db: Session, podcast: models.Podcast, ingestor: FeedIngestor
) -> schemas.RefreshResult:
    parsed = await ingestor.parse_feed(podcast.feed_url)
    crud.update_podcast_metadata(db, podcast, parsed.metadata)
    inserted, updated = crud.upsert_episodes(db, podcast, parsed.episodes)
    db.commit()
    db.refresh(podcast)
    logger.info("%s：新增 %d，更新 %d", podcast.name, inserted, updated)
    return schemas.RefreshResult(
        podcast_id=podcast.id,
        episodes_parsed=len(parsed.episodes),
        new_episodes=inserted,
        updated_episodes=updated,
        last_fetched_at=podcast.last_fetched_at,
    )


async def refresh_approved_podcasts(
    db: Session, ingestor: FeedIngestor
) -> schemas.BatchRefreshResult:
    """依次刷新所有已审核的播客，单个失败不影响其余播客。"""

    podcasts = crud.list_approved_podcasts(db)
    logger.info("开始刷新 %d 个播客", len(podcasts))

    results: list[schemas.RefreshResult] = []
    errors: list[str] = []
    for podcast in podcasts:
        if not podcast.feed_url:
            logger.warning("跳过没有订阅地址的播客 %s", podcast.id)
            continue
        try:
            results.append(await refresh_podcast(db, podcast, ingestor))
        except FeedError as exc:
            db.rollback()
            message = f"{podcast.name}（{podcast.feed_url}）：{exc}"
            logger.error("刷新失败 %s", message)
            errors.append(message)

    logger.info("刷新完成：成功 %d，失败 %d", len(results), len(errors))
    return schemas.BatchRefreshResult(
        podcasts_processed=len(podcasts), results=results, errors=errors
    )


async def _run() -> int:
    init_db()
    ingestor = FeedIngestor.from_settings()
    with db_session() as db:
        result = await refresh_approved_podcasts(db, ingestor)
    return 1 if result.errors else 0


def main() -> int:
    setup_logging(get_settings().log_level)
    return asyncio.run(_run())


if __name__ == "__main__":
    sys.exit(main())
