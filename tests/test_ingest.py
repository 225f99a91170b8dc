"""Tests for single-podcast and batch refresh jobs."""

import pytest
from sqlalchemy import select

from podcast_feeds import crud, ingest, models
from podcast_feeds.rss import FetchError
from podcast_feeds.schemas import FeedMetadata
from tests.conftest import FEED_URL, rss_feed, rss_item

OTHER_URL = "https://example.com/other.xml"


class TestIngestNewPodcast:
    @pytest.mark.asyncio
    async def test_creates_podcast_and_episodes(self, db, feed_server, ingestor) -> None:
        feed_server.add(
            FEED_URL,
            rss_feed([rss_item(guid="a", audio_url="https://x/a.mp3"), rss_item(guid="b")]),
        )

        podcast, count = await ingest.ingest_new_podcast(db, ingestor, FEED_URL, "astrology")

        assert count == 1
        assert podcast.name == "Test Cast"
        assert podcast.category == "astrology"
        assert [e.guid for e in podcast.episodes] == ["a"]

    @pytest.mark.asyncio
    async def test_duplicate_is_rejected_before_fetching(
        self, db, feed_server, ingestor
    ) -> None:
        crud.create_podcast(db, FeedMetadata(feed_url=FEED_URL))
        db.commit()

        with pytest.raises(ValueError):
            await ingest.ingest_new_podcast(db, ingestor, FEED_URL)

        assert feed_server.requests == []

    @pytest.mark.asyncio
    async def test_fetch_failure_writes_nothing(self, db, feed_server, ingestor) -> None:
        feed_server.add(FEED_URL, "down", status_code=500)

        with pytest.raises(FetchError):
            await ingest.ingest_new_podcast(db, ingestor, FEED_URL)

        assert crud.list_podcasts(db) == []


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_podcast_updates_and_upserts(self, db, feed_server, ingestor) -> None:
        podcast = crud.create_podcast(db, FeedMetadata(name="Old name", feed_url=FEED_URL))
        db.commit()
        feed_server.add(
            FEED_URL,
            rss_feed(
                [
                    rss_item(guid="a", audio_url="https://x/a.mp3"),
                    rss_item(guid="b", audio_url="https://x/b.mp3"),
                ]
            ),
        )

        first = await ingest.refresh_podcast(db, podcast, ingestor)
        second = await ingest.refresh_podcast(db, podcast, ingestor)

        assert podcast.name == "Test Cast"
        assert (first.new_episodes, first.updated_episodes) == (2, 0)
        assert (second.new_episodes, second.updated_episodes) == (0, 2)
        assert second.episodes_parsed == 2
        assert len(db.scalars(select(models.Episode)).all()) == 2

    @pytest.mark.asyncio
    async def test_batch_continues_after_failure(self, db, feed_server, ingestor) -> None:
        crud.create_podcast(db, FeedMetadata(name="Broken", feed_url=OTHER_URL))
        crud.create_podcast(db, FeedMetadata(name="Working", feed_url=FEED_URL))
        crud.create_podcast(
            db,
            FeedMetadata(name="Pending", feed_url="https://example.com/pending.xml"),
            status=models.PodcastStatus.PENDING.value,
        )
        db.commit()
        feed_server.add(OTHER_URL, "gone", status_code=500)
        feed_server.add(FEED_URL, rss_feed([rss_item(guid="a", audio_url="https://x/a.mp3")]))

        result = await ingest.refresh_approved_podcasts(db, ingestor)

        assert result.podcasts_processed == 2
        assert len(result.results) == 1
        assert result.results[0].new_episodes == 1
        assert len(result.errors) == 1
        assert OTHER_URL in result.errors[0]
        assert [str(r.url) for r in feed_server.requests] == [OTHER_URL, FEED_URL]
