"""Collection stage: run every collector over its due sources."""
from typing import Any, Dict, List, Optional

import httpx

from innofeed.config_loader import AppConfig
from innofeed.db.engine import DatabaseEngine
from innofeed.db.repo import SourceRepository
from innofeed.errors import ConfigurationError, is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.dedup import Deduplicator
from innofeed.pipeline.llm import StructuredGenerator
from innofeed.pipeline.tracker import RunTracker
from innofeed.sources.ai_search import AISearchCollector
from innofeed.sources.base import BaseCollector, CollectionResult
from innofeed.sources.rss import RSSCollector
from innofeed.sources.website import WebScrapeCollector

logger = get_logger("sources.service")


class CollectionService:
    """Syncs configured sources, then runs RSS, website and AI search collection."""

    def __init__(
        self,
        db: DatabaseEngine,
        config: AppConfig,
        generator: StructuredGenerator,
        tracker: RunTracker,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.config = config
        self.generator = generator
        self.tracker = tracker

        dedup = Deduplicator(db)
        common = dict(
            http=config.http,
            retry=config.retry,
            collect=config.collect,
            transport=transport,
        )
        self.collectors: List[BaseCollector] = [
            RSSCollector(db, dedup, **common),
            WebScrapeCollector(db, dedup, **common),
            AISearchCollector(db, dedup, generator=generator, **common),
        ]

    async def run(self) -> Dict[str, Any]:
        async with self.tracker.track("collect") as run:
            async with self.db.get_session() as session:
                created = await SourceRepository.sync_from_config(session, self.config.sources)
                await session.commit()
            if created:
                logger.info("sources_synced", created=created)

            total = CollectionResult()
            per_collector: Dict[str, Dict[str, int]] = {}

            for collector in self.collectors:
                name = collector.source_type
                try:
                    result = await self._run_collector(collector)
                except Exception as e:
                    if is_fatal(e):
                        raise
                    run.log_error(f"{name} collection failed: {e}")
                    logger.error("collector_failed", collector=name, error=str(e))
                    continue

                per_collector[name] = result.as_dict()
                total.merge(result)
                for entry in result.error_log:
                    run.log_error(entry["message"])

            run.processed = total.collected + total.skipped
            run.succeeded = total.collected
            run.failed = total.errors
            run.metadata.update({"total": total.as_dict(), "collectors": per_collector})
            logger.info("collect_complete", **total.as_dict())
            return run.summary()

    async def _run_collector(self, collector: BaseCollector) -> CollectionResult:
        if isinstance(collector, AISearchCollector):
            try:
                self.generator.ensure_configured()
            except ConfigurationError as e:
                logger.warning("ai_search_skipped", reason=str(e))
                return CollectionResult()

        async with self.db.get_session() as session:
            sources = await SourceRepository.get_due(session, collector.source_type)

        logger.info("collector_start", collector=collector.source_type, due_sources=len(sources))
        return await collector.collect_all(sources)
