"""RSS/Atom feed collector."""
from datetime import datetime
from typing import Any, List, Optional

import feedparser

from innofeed.db.models import Source
from innofeed.errors import FetchError
from innofeed.logging_setup import get_logger
from innofeed.pipeline.normalize import Candidate
from innofeed.sources.base import BaseCollector

logger = get_logger("sources.rss")

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


def entry_to_candidate(entry: Any) -> Optional[Candidate]:
    """Map a feedparser entry to a candidate. Entries without title or link are dropped."""
    title = (entry.get("title") or "").strip()
    link = (entry.get("link") or "").strip()
    if not title or not link:
        return None

    content = ""
    if entry.get("content"):
        content = entry.content[0].get("value", "")
    if not content:
        content = entry.get("summary") or entry.get("description") or ""

    return Candidate(title=title, url=link, content=content, is_html=True)


class RSSCollector(BaseCollector):
    """Fetches a feed URL and turns its entries into candidates."""

    source_type = "rss"

    @property
    def source_delay(self) -> float:
        return self.collect.rss_delay_seconds

    async def fetch_candidates(self, source: Source) -> List[Candidate]:
        start_time = datetime.now()

        async with self.http_client() as client:
            response = await client.get(source.url, headers={"Accept": FEED_ACCEPT})

        if response.status_code != 200:
            raise FetchError(
                f"Feed returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            raise FetchError(f"Unparseable feed: {feed.get('bozo_exception')}")

        candidates = []
        for entry in feed.entries:
            candidate = entry_to_candidate(entry)
            if candidate:
                candidates.append(candidate)

        duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
        logger.info(
            "fetch_rss_ok",
            source=source.name,
            entries=len(feed.entries),
            candidates=len(candidates),
            duration_ms=duration_ms,
        )
        return candidates
