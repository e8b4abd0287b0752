"""Gap-driven search collector: generated queries, generated hits, verified by fetching."""
import asyncio
from datetime import timedelta
from typing import List, Optional, Tuple

import httpx
import trafilatura
from bs4 import BeautifulSoup

from innofeed.db.models import Source
from innofeed.db.repo import CaseRepository
from innofeed.errors import is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.llm import GenerationMode, StructuredGenerator
from innofeed.pipeline.normalize import Candidate
from innofeed.pipeline.schemas import (
    MATRIX_CELLS,
    MatrixCell,
    SearchHit,
    SearchQueriesOutput,
    SearchQuery,
    SearchResultsOutput,
)
from innofeed.prompts.search import (
    SYSTEM_PROMPT,
    build_search_queries_prompt,
    build_web_search_prompt,
    format_coverage_gaps,
)
from innofeed.sources.base import BaseCollector
from innofeed.utils.batching import run_in_batches
from innofeed.utils.text import clean_html
from innofeed.utils.time_utils import utcnow
from innofeed.utils.urlnorm import extract_domain, is_valid_url

logger = get_logger("sources.ai_search")

PLACEHOLDER_DOMAINS = ("example.com", "test.com", "fake.com")

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _query(text: str, language: str, innovation_type: str, line: str,
           region: Optional[str], priority: str) -> SearchQuery:
    return SearchQuery(
        query=text,
        language=language,
        target_matrix_cell=MatrixCell(innovation_type=innovation_type, insurance_line=line),
        region=region,
        priority=priority,
    )


DEFAULT_QUERIES: List[SearchQuery] = [
    _query("parametric insurance smart contract 2026", "en", "product", "property", None, "high"),
    _query("health insurance prevention service bundle wearable", "en", "product", "health", None, "high"),
    _query("dynamic pricing IoT insurance real-time", "en", "product", "property", None, "medium"),
    _query("life insurance instant underwriting AI", "en", "product", "life", None, "medium"),
    _query("embedded insurance platform partnership 2026", "en", "marketing", "property", None, "high"),
    _query("Tesla Amazon insurance non-traditional insurer", "en", "marketing", "property", None, "medium"),
    _query("参数保险 智能合约 2026", "zh", "product", "property", "china", "high"),
    _query("嵌入式保险 场景化 平台合作", "zh", "marketing", "property", "china", "medium"),
    _query("健康险 预防服务 可穿戴设备", "zh", "product", "health", "china", "medium"),
]


def is_plausible_hit(hit: SearchHit) -> bool:
    """Reject invalid URLs and placeholder domains a model tends to invent."""
    if not is_valid_url(hit.url):
        return False
    domain = extract_domain(hit.url)
    return not any(domain == d or domain.endswith("." + d) for d in PLACEHOLDER_DOMAINS)


def prioritize(queries: List[SearchQuery], limit: int) -> List[SearchQuery]:
    """Stable sort by priority, truncated to ``limit``."""
    return sorted(queries, key=lambda q: PRIORITY_ORDER.get(q.priority, 1))[:limit]


def extract_page(html: str) -> Tuple[str, str]:
    """Return ``(title, text)`` of a fetched page."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    text = trafilatura.extract(html, include_comments=False, include_tables=False)
    if not text:
        text = clean_html(html)
    return title, text


class AISearchCollector(BaseCollector):
    """Fills under-covered matrix cells with generated, then verified, search hits."""

    source_type = "ai_search"
    retry_fetch = False

    def __init__(self, *args, generator: StructuredGenerator, **kwargs):
        super().__init__(*args, **kwargs)
        self.generator = generator

    async def coverage_gaps(self) -> List[Tuple[str, str, int]]:
        """Cells with fewer than the minimum number of recent cases."""
        since = utcnow() - timedelta(days=self.collect.coverage_window_days)
        async with self.db.get_session() as session:
            counts = await CaseRepository.count_by_cell_since(session, since)
        return [
            (innovation_type, line, counts.get((innovation_type, line), 0))
            for innovation_type, line in MATRIX_CELLS
            if counts.get((innovation_type, line), 0) < self.collect.coverage_min_cases
        ]

    async def generate_queries(self) -> List[SearchQuery]:
        gaps = await self.coverage_gaps()
        result = await self.generator.generate(
            build_search_queries_prompt(
                format_coverage_gaps(gaps), self.collect.coverage_window_days
            ),
            SearchQueriesOutput,
            system_prompt=SYSTEM_PROMPT,
            mode=GenerationMode.FAST,
        )
        if not result.success or not result.data.queries:
            logger.warning("search_queries_fallback", error=result.error)
            return list(DEFAULT_QUERIES)
        logger.info("search_queries_generated", count=len(result.data.queries), gaps=len(gaps))
        return result.data.queries

    async def search(self, query: SearchQuery) -> List[SearchHit]:
        result = await self.generator.generate(
            build_web_search_prompt(query.query),
            SearchResultsOutput,
            mode=GenerationMode.FAST,
        )
        if not result.success:
            logger.warning("search_failed", query=query.query, error=result.error)
            return []
        hits = [hit for hit in result.data.results if is_plausible_hit(hit)]
        logger.info("search_ok", query=query.query, hits=len(hits))
        return hits

    async def verify(self, client: httpx.AsyncClient, url: str) -> Optional[Candidate]:
        """Fetch a hit; keep it only when the page has a title and enough text."""
        response = await client.get(url)
        if response.status_code != 200:
            logger.debug("verify_http_error", url=url[:100], status_code=response.status_code)
            return None

        title, text = await asyncio.to_thread(extract_page, response.text)
        text = (text or "")[:self.collect.search_content_chars]
        if not title or len(text) <= self.collect.min_search_text_length:
            logger.debug("verify_rejected", url=url[:100], text_length=len(text))
            return None
        return Candidate(title=title, url=url, content=text)

    async def fetch_candidates(self, source: Source) -> List[Candidate]:
        queries = prioritize(await self.generate_queries(), self.collect.max_search_queries)

        outcomes = await run_in_batches(
            queries,
            self.collect.search_batch_size,
            self.search,
            is_fatal=is_fatal,
        )

        candidates: List[Candidate] = []
        seen_urls = set()
        unverified = 0
        async with self.http_client() as client:
            for index, (query, hits) in enumerate(outcomes):
                if index and self.collect.query_delay_seconds > 0:
                    await asyncio.sleep(self.collect.query_delay_seconds)
                if isinstance(hits, BaseException):
                    logger.error("search_error", query=query.query, error=str(hits))
                    continue

                for position, hit in enumerate(hits):
                    if hit.url in seen_urls:
                        continue
                    seen_urls.add(hit.url)
                    if position and self.collect.fetch_delay_seconds > 0:
                        await asyncio.sleep(self.collect.fetch_delay_seconds)
                    try:
                        candidate = await self.verify(client, hit.url)
                    except httpx.HTTPError as e:
                        logger.debug("verify_fetch_error", url=hit.url[:100], error=str(e))
                        candidate = None
                    if candidate is None:
                        unverified += 1
                        continue
                    candidates.append(candidate)

        logger.info(
            "ai_search_ok",
            source=source.name,
            queries=len(queries),
            verified=len(candidates),
            unverified=unverified,
        )
        return candidates
