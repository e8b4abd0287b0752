"""Source collectors."""
from innofeed.sources.ai_search import AISearchCollector, DEFAULT_QUERIES
from innofeed.sources.base import BaseCollector, CollectionResult
from innofeed.sources.rss import RSSCollector
from innofeed.sources.service import CollectionService
from innofeed.sources.website import SITE_PRESETS, WebScrapeCollector, parse_listing

__all__ = [
    "AISearchCollector",
    "BaseCollector",
    "CollectionResult",
    "CollectionService",
    "DEFAULT_QUERIES",
    "RSSCollector",
    "SITE_PRESETS",
    "WebScrapeCollector",
    "parse_listing",
]
