"""Collector base: fetch with retry, normalize, dedup, persist, record source health."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
from sqlalchemy.exc import IntegrityError

from innofeed.config_loader import CollectConfig, HttpConfig, RetryConfig
from innofeed.db.engine import DatabaseEngine
from innofeed.db.models import Source
from innofeed.db.repo import RawItemRepository, SourceRepository
from innofeed.errors import is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.dedup import Deduplicator
from innofeed.pipeline.normalize import Candidate, NormalizedItem, normalize_candidate
from innofeed.utils.retry import retry_async

logger = get_logger("sources.base")


@dataclass
class CollectionResult:
    """Counters for one or more source passes."""
    collected: int = 0
    skipped: int = 0
    errors: int = 0
    sources: int = 0
    source_failures: int = 0
    error_log: List[Dict[str, Any]] = field(default_factory=list)

    def merge(self, other: "CollectionResult") -> "CollectionResult":
        self.collected += other.collected
        self.skipped += other.skipped
        self.errors += other.errors
        self.sources += other.sources
        self.source_failures += other.source_failures
        self.error_log.extend(other.error_log)
        return self

    def as_dict(self) -> Dict[str, int]:
        return {
            "collected": self.collected,
            "skipped": self.skipped,
            "errors": self.errors,
            "sources": self.sources,
            "source_failures": self.source_failures,
        }


class BaseCollector:
    """Produces pending raw items from one kind of source.

    Subclasses implement ``fetch_candidates``; raising from it is a
    source-level failure, retried with backoff before being recorded.
    """

    source_type = ""
    # Whole-fetch retry; collectors that isolate their own sub-requests turn it off
    retry_fetch = True

    def __init__(
        self,
        db: DatabaseEngine,
        dedup: Deduplicator,
        http: Optional[HttpConfig] = None,
        retry: Optional[RetryConfig] = None,
        collect: Optional[CollectConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.dedup = dedup
        self.http = http or HttpConfig()
        self.retry = retry or RetryConfig()
        self.collect = collect or CollectConfig()
        self.transport = transport

    @property
    def source_delay(self) -> float:
        """Politeness delay between sequential sources."""
        return 0.0

    def http_client(self, **kwargs) -> httpx.AsyncClient:
        headers = {"User-Agent": self.http.user_agent}
        headers.update(kwargs.pop("headers", {}))
        return httpx.AsyncClient(
            timeout=self.http.timeout,
            follow_redirects=True,
            transport=self.transport,
            headers=headers,
            **kwargs,
        )

    async def fetch_candidates(self, source: Source) -> List[Candidate]:
        raise NotImplementedError

    def accept(self, item: NormalizedItem) -> bool:
        """Collector-specific validation hook."""
        return True

    async def collect_source(self, source: Source) -> CollectionResult:
        """One full pass over a source. Never raises except for fatal store errors."""
        result = CollectionResult(sources=1)

        def on_error(exc: BaseException, attempt: int) -> None:
            logger.warning("fetch_retry", source=source.name, attempt=attempt, error=str(exc))

        try:
            candidates = await retry_async(
                lambda: self.fetch_candidates(source),
                attempts=self.retry.attempts if self.retry_fetch else 1,
                base_delay=self.retry.base_delay,
                max_delay=self.retry.max_delay,
                on_error=on_error,
            )
        except Exception as e:
            if is_fatal(e):
                raise
            await self._record_source_failure(source, result, e)
            return result

        try:
            await self._process_candidates(source, candidates, result)
        except Exception as e:
            if is_fatal(e):
                raise
            await self._record_source_failure(source, result, e)
            return result

        logger.info(
            "collect_source_ok",
            source=source.name,
            candidates=len(candidates),
            collected=result.collected,
            skipped=result.skipped,
            errors=result.errors,
        )
        return result

    async def _process_candidates(
        self,
        source: Source,
        candidates: Sequence[Candidate],
        result: CollectionResult,
    ) -> None:
        """Normalize, store and mark the source checked."""
        normalized: List[NormalizedItem] = []
        for candidate in candidates:
            try:
                item = normalize_candidate(candidate)
            except Exception as e:
                result.errors += 1
                logger.warning("normalize_error", source=source.name, url=candidate.url, error=str(e))
                continue
            if item is None or not self.accept(item):
                result.skipped += 1
                continue
            normalized.append(item)

        await self.store_items(source, normalized, result)

        async with self.db.get_session() as session:
            await SourceRepository.record_success(session, source.id)
            await session.commit()

    async def store_items(
        self,
        source: Source,
        items: Sequence[NormalizedItem],
        result: CollectionResult,
    ) -> None:
        """Dedup-check ``items`` in one batch query and insert the new ones as pending."""
        seen = await self.dedup.exists_batch(item.content_hash for item in items)

        for item in items:
            if item.content_hash in seen:
                result.skipped += 1
                continue
            seen.add(item.content_hash)

            try:
                async with self.db.get_session() as session:
                    await RawItemRepository.create(session, item.to_record(source.id))
                    await session.commit()
                result.collected += 1
            except IntegrityError:
                # Inserted concurrently by another run
                result.skipped += 1
            except Exception as e:
                if is_fatal(e):
                    raise
                result.errors += 1
                result.error_log.append({"message": f"Insert failed: {e}", "source": source.name})
                logger.error("insert_error", source=source.name, url=item.source_url, error=str(e))

    async def collect_all(self, sources: Sequence[Source]) -> CollectionResult:
        """Sequential passes with a politeness delay between sources."""
        total = CollectionResult()
        for index, source in enumerate(sources):
            if index and self.source_delay > 0:
                await asyncio.sleep(self.source_delay)
            total.merge(await self.collect_source(source))
        return total

    async def _record_source_failure(
        self,
        source: Source,
        result: CollectionResult,
        error: Exception,
    ) -> None:
        result.source_failures += 1
        result.errors += 1
        message = f"Source {source.name} failed: {error}"
        result.error_log.append({"message": message, "source": source.name})

        async with self.db.get_session() as session:
            disabled = await SourceRepository.record_failure(
                session,
                source.id,
                str(error),
                disable_threshold=self.collect.source_failure_threshold,
            )
            await session.commit()

        logger.error("collect_source_failed", source=source.name, error=str(error), disabled=disabled)
