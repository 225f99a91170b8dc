"""FastAPI 入口：播客订阅源登记与刷新服务。"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware

from podcast_feeds import crud, ingest, schemas
from podcast_feeds.config import get_settings
from podcast_feeds.database import get_db, init_db
from podcast_feeds.logging_config import setup_logging
from podcast_feeds.rss import FeedIngestor, FetchError, ParseError

settings = get_settings()
setup_logging(settings.log_level)
app = FastAPI(title="Podcast Feed Ingestion API", version="1.0.0")

if settings.allow_origin:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allow_origin] if settings.allow_origin != "*" else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@lru_cache
def get_ingestor() -> FeedIngestor:
    """FastAPI 依赖：进程内共用一个解析器（以及可选的缓存）。"""

    return FeedIngestor.from_settings(settings)


def _feed_http_error(exc: FetchError | ParseError) -> HTTPException:
    if isinstance(exc, FetchError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


@app.on_event("startup")
def on_startup() -> None:
    init_db()


@app.get("/health", tags=["system"])
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/podcasts", response_model=list[schemas.Podcast], tags=["podcasts"])
def list_podcasts(db=Depends(get_db)):
    return crud.list_podcasts(db)


@app.post(
    "/podcasts",
    response_model=schemas.PodcastCreated,
    status_code=status.HTTP_201_CREATED,
    tags=["podcasts"],
)
async def add_podcast_feed(
    payload: schemas.PodcastCreate,
    db=Depends(get_db),
    ingestor: FeedIngestor = Depends(get_ingestor),
):
    try:
        podcast, episode_count = await ingest.ingest_new_podcast(
            db, ingestor, str(payload.feed_url), payload.category
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except (FetchError, ParseError) as exc:
        raise _feed_http_error(exc) from exc

    detail = schemas.PodcastDetail.model_validate(podcast)
    return schemas.PodcastCreated(**detail.model_dump(), episode_count=episode_count)


@app.post(
    "/podcasts/refresh",
    response_model=schemas.BatchRefreshResult,
    tags=["podcasts"],
)
async def refresh_all_podcasts(
    db=Depends(get_db), ingestor: FeedIngestor = Depends(get_ingestor)
):
    return await ingest.refresh_approved_podcasts(db, ingestor)


@app.get("/podcasts/{podcast_id}", response_model=schemas.PodcastDetail, tags=["podcasts"])
def get_podcast(podcast_id: int, db=Depends(get_db)):
    podcast = crud.get_podcast_with_episodes(db, podcast_id)
    if not podcast:
        raise HTTPException(status_code=404, detail="播客不存在")
    return podcast


@app.delete(
    "/podcasts/{podcast_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["podcasts"]
)
def remove_podcast(podcast_id: int, db=Depends(get_db)):
    podcast = crud.get_podcast(db, podcast_id)
    if not podcast:
        raise HTTPException(status_code=404, detail="播客不存在")
    crud.delete_podcast(db, podcast)


@app.post(
    "/podcasts/{podcast_id}/refresh",
    response_model=schemas.RefreshResult,
    tags=["podcasts"],
)
async def refresh_podcast(
    podcast_id: int,
    db=Depends(get_db),
    ingestor: FeedIngestor = Depends(get_ingestor),
):
    podcast = crud.get_podcast(db, podcast_id)
    if not podcast:
        raise HTTPException(status_code=404, detail="播客不存在")

    try:
        return await ingest.refresh_podcast(db, podcast, ingestor)
    except (FetchError, ParseError) as exc:
        db.rollback()
        raise _feed_http_error(exc) from exc


@app.get("/episodes", response_model=list[schemas.Episode], tags=["episodes"])
def list_episodes(
    podcast_id: int | None = Query(default=None, description="按播客筛选"),
    limit: int = Query(default=50, ge=1, le=200),
    db=Depends(get_db),
):
    return crud.list_episodes(db, podcast_id, limit)


def _cache_stats(ingestor: FeedIngestor) -> schemas.CacheStats:
    if ingestor.cache is None:
        return schemas.CacheStats(enabled=False)
    return schemas.CacheStats(
        enabled=True, ttl_seconds=ingestor.cache.ttl_seconds, **ingestor.cache.stats()
    )


@app.get("/cache", response_model=schemas.CacheStats, tags=["system"])
def get_cache_stats(ingestor: FeedIngestor = Depends(get_ingestor)):
    return _cache_stats(ingestor)


@app.delete("/cache", response_model=schemas.CacheStats, tags=["system"])
def clear_cache(
    feed_url: str | None = Query(default=None, description="只清除该订阅源，缺省清空全部"),
    ingestor: FeedIngestor = Depends(get_ingestor),
):
    if ingestor.cache is not None:
        ingestor.cache.clear(feed_url)
    return _cache_stats(ingestor)
