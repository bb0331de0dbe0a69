"""
Tests for NewsIngestor

feedparser and the article HTTP fetches are mocked.
"""

from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests

from newsrag.ingestion.feed_ingestor import NewsIngestor, point_id_for
from newsrag.storage.vector_store import VectorStore


ARTICLE_HTML = """
<html><body>
  <nav><p>Navigation text</p></nav>
  <article>
    <h1>Headline</h1>
    <p>First paragraph.</p>
    <p>Second paragraph.</p>
  </article>
</body></html>
"""


def _feed(*entries, bozo=False):
    return SimpleNamespace(entries=list(entries), bozo=bozo, get=lambda key, default=None: default)


def _entry(title, link, summary="Summary", published="Mon, 01 Jan 2024 10:00:00 GMT"):
    return {'title': title, 'link': link, 'summary': summary, 'published': published}


@pytest.fixture
def embedder():
    embedder = Mock()
    embedder.embed.side_effect = lambda texts: [[1.0, 0.0, 0.0, 0.0] for _ in texts]
    return embedder


@pytest.fixture
def store():
    store = VectorStore()
    store.ensure_collection("news_articles", dimension=4)
    return store


class TestPointIds:

    def test_point_id_is_stable_uuid(self):
        link = "https://news.example/a"
        assert point_id_for(link) == point_id_for(link)
        assert point_id_for(link) != point_id_for("https://news.example/b")
        assert len(point_id_for(link)) == 36


class TestFetchFeeds:

    @patch('newsrag.ingestion.feed_ingestor.feedparser.parse')
    def test_dedupes_by_link_across_feeds(self, mock_parse, embedder, store):
        mock_parse.side_effect = [
            _feed(_entry("A", "https://x/a"), _entry("B", "https://x/b")),
            _feed(_entry("A again", "https://x/a"), _entry("C", "https://x/c")),
        ]
        ingestor = NewsIngestor(embedder, store, feed_urls=["https://feed/1", "https://feed/2"])

        articles = ingestor.fetch_feed_articles()

        assert [a.link for a in articles] == ["https://x/a", "https://x/b", "https://x/c"]
        assert articles[0].title == "A"
        assert articles[0].full_content == "Summary"

    @patch('newsrag.ingestion.feed_ingestor.feedparser.parse')
    def test_entries_without_link_are_skipped(self, mock_parse, embedder, store):
        mock_parse.return_value = _feed({'title': 'No link'}, _entry("Ok", "https://x/ok"))

        articles = NewsIngestor(embedder, store, feed_urls=["https://feed/1"]).fetch_feed_articles()

        assert [a.title for a in articles] == ["Ok"]

    @patch('newsrag.ingestion.feed_ingestor.feedparser.parse')
    def test_broken_feed_is_skipped(self, mock_parse, embedder, store):
        mock_parse.side_effect = [_feed(bozo=True), _feed(_entry("B", "https://x/b"))]

        articles = NewsIngestor(embedder, store, feed_urls=["https://bad", "https://good"]).fetch_feed_articles()

        assert len(articles) == 1


class TestScraping:

    def test_joins_article_paragraphs(self, embedder, store):
        ingestor = NewsIngestor(embedder, store)
        response = Mock(text=ARTICLE_HTML)
        response.raise_for_status.return_value = None

        with patch.object(requests.Session, 'get', return_value=response):
            text = ingestor.scrape_full_content("https://x/a")

        assert text == "First paragraph. Second paragraph."

    def test_request_failure_returns_empty(self, embedder, store):
        ingestor = NewsIngestor(embedder, store)

        with patch.object(requests.Session, 'get', side_effect=requests.exceptions.ConnectionError()):
            assert ingestor.scrape_full_content("https://x/a") == ""

    def test_invalid_worker_count(self, embedder, store):
        with pytest.raises(ValueError):
            NewsIngestor(embedder, store, max_workers=0)


class TestIngest:

    @patch('newsrag.ingestion.feed_ingestor.feedparser.parse')
    def test_ingest_embeds_and_upserts(self, mock_parse, embedder, store):
        mock_parse.return_value = _feed(_entry("Title A", "https://x/a"), _entry("Title B", "https://x/b"))
        ingestor = NewsIngestor(embedder, store, feed_urls=["https://feed/1"], max_workers=1)

        with patch.object(NewsIngestor, 'scrape_full_content', side_effect=["Full text A", ""]):
            articles = ingestor.ingest()

        embedder.embed.assert_called_once_with(["Title A. Full text A", "Title B. Summary"])
        assert store.count("news_articles") == 2
        assert all(len(a.embedding) == 4 for a in articles)

        payload = store.scroll("news_articles", limit=2)[-1].payload
        assert payload == {'title': 'Title A', 'link': 'https://x/a',
                           'fullContent': 'Full text A', 'pubDate': 'Mon, 01 Jan 2024 10:00:00 GMT'}

    @patch('newsrag.ingestion.feed_ingestor.feedparser.parse')
    def test_reingest_replaces_points(self, mock_parse, embedder, store):
        mock_parse.return_value = _feed(_entry("Title A", "https://x/a"))
        ingestor = NewsIngestor(embedder, store, feed_urls=["https://feed/1"])

        with patch.object(NewsIngestor, 'scrape_full_content', return_value=""):
            ingestor.ingest()
            ingestor.ingest()

        assert store.count("news_articles") == 1

    @patch('newsrag.ingestion.feed_ingestor.feedparser.parse')
    def test_empty_feeds_do_not_embed(self, mock_parse, embedder, store):
        mock_parse.return_value = _feed()

        assert NewsIngestor(embedder, store, feed_urls=["https://feed/1"]).ingest() == []
        embedder.embed.assert_not_called()
