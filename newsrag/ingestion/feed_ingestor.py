"""
News Feed Ingestor

Fetches RSS feeds, deduplicates entries by link, scrapes each article's
full text in parallel, embeds "{title}. {content}" and upserts the result
into the vector index.
"""

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

import feedparser
import requests
from bs4 import BeautifulSoup
from tqdm import tqdm

from ..models import Article
from ..storage.vector_store import IndexPoint

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; NewsRAG/1.0)'


def point_id_for(link: str) -> str:
    """Stable point id per article link, so re-ingesting replaces the point."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, link))


class NewsIngestor:
    """
    RSS-to-vector-index ingestion.

    Features:
    - Multiple feeds, deduplicated by article link
    - Parallel full-text scraping with a thread pool
    - Falls back to the feed summary when scraping yields nothing
    - Batched embedding and upsert
    """

    def __init__(
        self,
        embedder,
        vector_index,
        collection_name: str = "news_articles",
        feed_urls: Optional[Sequence[str]] = None,
        max_workers: int = 4,
        timeout: int = 30
    ):
        """
        Args:
            embedder: Object with `embed(texts)`
            vector_index: Object with `upsert(name, points)`
            collection_name: Target collection
            feed_urls: RSS feed URLs
            max_workers: Parallel scraping workers
            timeout: HTTP timeout per article page
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.embedder = embedder
        self.vector_index = vector_index
        self.collection_name = collection_name
        self.feed_urls = list(feed_urls or [])
        self.max_workers = max_workers
        self.timeout = timeout
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Per-thread session for connection pooling."""
        if not hasattr(self._thread_local, 'session'):
            session = requests.Session()
            session.headers.update({'User-Agent': USER_AGENT})
            self._thread_local.session = session
        return self._thread_local.session

    def fetch_feed_articles(self) -> List[Article]:
        """
        Parse every feed and return unique articles (first link occurrence wins).
        """
        unique: Dict[str, Article] = {}
        for feed_url in self.feed_urls:
            parsed = feedparser.parse(feed_url)
            if getattr(parsed, 'bozo', False) and not parsed.entries:
                logger.warning(f"Could not parse feed {feed_url}: {parsed.get('bozo_exception')}")
                continue

            for entry in parsed.entries:
                link = entry.get('link')
                title = entry.get('title')
                if not link or not title or link in unique:
                    continue
                unique[link] = Article(
                    title=title.strip(),
                    link=link.strip(),
                    full_content=(entry.get('summary') or '').strip(),
                    pub_date=entry.get('published') or entry.get('updated'),
                )

        logger.info(f"Fetched {len(unique)} unique articles from {len(self.feed_urls)} feeds")
        return list(unique.values())

    def scrape_full_content(self, url: str) -> str:
        """
        Join the text of every `<article> <p>` on the page.

        Returns:
            Scraped text, or an empty string on failure
        """
        try:
            response = self._get_session().get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error scraping {url}: {e}")
            return ''

        soup = BeautifulSoup(response.text, 'html.parser')
        paragraphs = [p.get_text() for p in soup.select('article p')]
        return ' '.join(paragraphs).strip()

    def _with_full_content(self, article: Article) -> Article:
        full_text = self.scrape_full_content(article.link)
        if full_text:
            article.full_content = full_text
        return article

    def enrich_articles(self, articles: List[Article], show_progress: bool = False) -> List[Article]:
        """Scrape full content for every article, preserving order."""
        if not articles:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = executor.map(self._with_full_content, articles)
            if show_progress:
                results = tqdm(results, total=len(articles), desc="Scraping articles")
            return list(results)

    def ingest(self, show_progress: bool = False) -> List[Article]:
        """
        Run one ingestion pass.

        Returns:
            The embedded articles, each carrying its vector

        Raises:
            EmbeddingError: If embeddings cannot be generated
            VectorIndexError: If the upsert fails
        """
        start_time = time.time()

        articles = self.enrich_articles(self.fetch_feed_articles(), show_progress=show_progress)
        if not articles:
            return []

        embeddings = self.embedder.embed([f"{a.title}. {a.full_content}" for a in articles])
        for article, embedding in zip(articles, embeddings):
            article.embedding = list(embedding)

        points = [
            IndexPoint(id=point_id_for(a.link), vector=a.embedding, payload=a.to_payload())
            for a in articles
        ]
        self.vector_index.upsert(self.collection_name, points)

        logger.info(
            f"Ingested {len(articles)} articles into {self.collection_name} "
            f"in {time.time() - start_time:.2f}s"
        )
        return articles
