"""存储操作：播客登记、元数据覆盖、单集 upsert 与查询。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from podcast_feeds import models
from podcast_feeds.schemas import EpisodeRecord, FeedMetadata


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _first_category(metadata: FeedMetadata) -> str | None:
    return metadata.categories[0] if metadata.categories else None


def create_podcast(
    db: Session,
    metadata: FeedMetadata,
    category: str | None = None,
    status: str = models.PodcastStatus.APPROVED.value,
) -> models.Podcast:
    podcast = models.Podcast(
        feed_url=metadata.feed_url,
        name=metadata.name,
        description=metadata.description,
        image_url=metadata.image_url,
        author=metadata.author,
        category=category or _first_category(metadata),
        status=status,
        last_fetched_at=_now(),
    )
    db.add(podcast)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("该订阅源已存在") from exc
    return podcast


def list_podcasts(db: Session) -> list[models.Podcast]:
    statement: Select[tuple[models.Podcast]] = select(models.Podcast).order_by(
        models.Podcast.id.desc()
    )
    return list(db.scalars(statement))


def list_approved_podcasts(db: Session) -> list[models.Podcast]:
    statement = (
        select(models.Podcast)
        .where(models.Podcast.status == models.PodcastStatus.APPROVED.value)
        .order_by(models.Podcast.id)
    )
    return list(db.scalars(statement))


def get_podcast(db: Session, podcast_id: int) -> models.Podcast | None:
    return db.get(models.Podcast, podcast_id)


def get_podcast_by_feed_url(db: Session, feed_url: str) -> models.Podcast | None:
    return db.scalar(select(models.Podcast).where(models.Podcast.feed_url == feed_url))


def get_podcast_with_episodes(db: Session, podcast_id: int) -> models.Podcast | None:
    statement: Select[tuple[models.Podcast]] = (
        select(models.Podcast)
        .options(selectinload(models.Podcast.episodes))
        .where(models.Podcast.id == podcast_id)
    )
    return db.scalar(statement)


def delete_podcast(db: Session, podcast: models.Podcast) -> None:
    db.delete(podcast)
    db.commit()


def update_podcast_metadata(
    db: Session, podcast: models.Podcast, metadata: FeedMetadata
) -> models.Podcast:
    """用最新抓取结果覆盖元数据（后写入者生效）。

    feed_url 不变；分类只在尚未设置时取订阅源的第一个分类，不覆盖人工指定的值。
    """

    podcast.name = metadata.name
    podcast.description = metadata.description
    podcast.image_url = metadata.image_url
    podcast.author = metadata.author
    if podcast.category is None:
        podcast.category = _first_category(metadata)
    podcast.last_fetched_at = _now()
    db.add(podcast)
    return podcast


def upsert_episodes(
    db: Session, podcast: models.Podcast, episodes: Iterable[EpisodeRecord]
) -> tuple[int, int]:
    """按 guid 插入或更新单集，返回 (新增数, 更新数)。调用方负责提交。"""

    records: dict[str, EpisodeRecord] = {}
    for record in episodes:
        records[record.guid] = record
    if not records:
        return 0, 0

    existing = {
        episode.guid: episode
        for episode in db.scalars(
            select(models.Episode).where(models.Episode.guid.in_(list(records)))
        )
    }

    inserted = 0
    updated = 0
    for guid, record in records.items():
        values = record.model_dump()
        episode = existing.get(guid)
        if episode is None:
            db.add(models.Episode(podcast_id=podcast.id, **values))
            inserted += 1
            continue
        episode.podcast_id = podcast.id
        for field, value in values.items():
            setattr(episode, field, value)
        updated += 1

    db.flush()
    return inserted, updated


def list_episodes(db: Session, podcast_id: int | None, limit: int) -> list[models.Episode]:
    statement = select(models.Episode).order_by(models.Episode.pub_date.desc())
    if podcast_id:
        statement = statement.where(models.Episode.podcast_id == podcast_id)
    statement = statement.limit(limit)
    return list(db.scalars(statement))
