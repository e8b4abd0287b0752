"""Test doubles and row builders shared across the suite."""
import itertools
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Type, Union

from innofeed.db.engine import DatabaseEngine
from innofeed.db.models import Case, RawItem, Source
from innofeed.errors import ConfigurationError
from innofeed.pipeline.llm import GenerationMode, GenerationResult
from innofeed.utils.text import content_hash
from innofeed.utils.time_utils import utcnow

Scripted = Union[Dict[str, Any], Callable[[str], Optional[Dict[str, Any]]], None]

_url_counter = itertools.count(1)


class FakeGenerator:
    """Scripted stand-in for StructuredGenerator.

    ``responses`` maps an output schema to a payload dict, to a callable
    ``prompt -> payload`` or to None. None (or a missing schema) produces a
    failed GenerationResult, as when every backend is exhausted.
    """

    def __init__(self, responses: Optional[Dict[type, Scripted]] = None, configured: bool = True):
        self.responses = dict(responses or {})
        self.configured = configured
        self.calls: List[Dict[str, Any]] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("No structured generation backend configured")

    async def generate(
        self,
        prompt: str,
        schema: Type,
        system_prompt: Optional[str] = None,
        mode: GenerationMode = GenerationMode.DEFAULT,
    ) -> GenerationResult:
        self.calls.append({"prompt": prompt, "schema": schema, "mode": mode})
        scripted = self.responses.get(schema)
        payload = scripted(prompt) if callable(scripted) else scripted
        if payload is None:
            return GenerationResult.fail("scripted failure")
        return GenerationResult.ok(schema.model_validate(payload), provider="fake")

    def calls_for(self, schema: Type) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["schema"] is schema]


def layers(prefix: str = "Layer") -> Dict[str, str]:
    return {f"layer{i}": f"{prefix} {i} text" for i in range(1, 6)}


def classification(innovation_type="product", insurance_line="property", sentiment="positive"):
    return {
        "innovation_type": innovation_type,
        "insurance_line": insurance_line,
        "sentiment": sentiment,
    }


def screening_payload(
    relevant: bool = True,
    novel: bool = True,
    gate3: Optional[Dict[str, str]] = None,
    rejection_reason: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "gate1_relevance": relevant,
        "gate1_score": 0.9 if relevant else 0.1,
        "gate1_reason": "insurance relevant" if relevant else "not about insurance",
        "gate2_novelty": novel,
        "gate2_score": 0.8 if novel else 0.2,
        "gate2_reason": "structural shift" if novel else "routine product update",
        "gate3_classification": gate3,
        "priority_score": 0.7,
        "rejection_reason": rejection_reason,
    }


def passed_screening_result(**cls) -> Dict[str, Any]:
    """Stored screening_result of an item that passed all gates."""
    return screening_payload(gate3=classification(**cls))


def analysis_payload(headline: str = "Insurer launches parametric cover", companies=None) -> Dict[str, Any]:
    return {
        "headline_en": headline,
        "headline_zh": "保险公司推出参数保险",
        "analysis_en": layers("English"),
        "analysis_zh": layers("Chinese"),
        "company_names": companies or [],
    }


def quality_payload(score: float = 0.8, ready: bool = True, suggestions=None) -> Dict[str, Any]:
    return {
        "overall_pass": ready,
        "quality_score": score,
        "issues": [],
        "improvement_suggestions": suggestions or [],
        "ready_for_publication": ready,
    }


async def add_source(db: DatabaseEngine, name: str = "Test Feed", **fields) -> Source:
    values = dict(
        name=name,
        url="https://feeds.test-insurer.org/rss",
        type="rss",
        check_frequency="4 hours",
        config={},
    )
    values.update(fields)
    async with db.get_session() as session:
        src = Source(**values)
        session.add(src)
        await session.commit()
        return src


async def add_raw_item(
    db: DatabaseEngine,
    source_id: int,
    title: str = "Insurer launches parametric flood cover",
    content: str = "A parametric flood product that pays automatically.",
    url: Optional[str] = None,
    status: str = "pending",
    screening_result: Optional[Dict[str, Any]] = None,
    minutes_ago: int = 0,
) -> RawItem:
    url = url or f"https://news.test-insurer.org/story-{next(_url_counter)}"
    async with db.get_session() as session:
        item = RawItem(
            source_id=source_id,
            source_url=url,
            title=title,
            content=content,
            language="en",
            content_hash=content_hash(content + url),
            screening_status=status,
            screening_result=screening_result,
            collected_at=utcnow() - timedelta(minutes=minutes_ago),
        )
        session.add(item)
        await session.commit()
        return item


async def add_case(
    db: DatabaseEngine,
    raw_item_id: int,
    innovation_type: str = "product",
    insurance_line: str = "property",
    sentiment: str = "positive",
    status: str = "ready",
    quality_score: Optional[float] = 0.8,
    minutes_ago: int = 0,
    published_at: Optional[datetime] = None,
) -> Case:
    async with db.get_session() as session:
        case = Case(
            raw_item_id=raw_item_id,
            innovation_type=innovation_type,
            insurance_line=insurance_line,
            sentiment=sentiment,
            headline_en="Headline",
            headline_zh="标题",
            analysis_en=layers("English"),
            analysis_zh=layers("Chinese"),
            source_urls=[],
            company_names=[],
            status=status,
            quality_score=quality_score,
            created_at=utcnow() - timedelta(minutes=minutes_ago),
            published_at=published_at,
        )
        session.add(case)
        await session.commit()
        return case


async def add_cases(db: DatabaseEngine, source_id: int, rows: List[Dict[str, Any]]) -> List[Case]:
    """One raw item plus one case per dict (``add_case`` keyword arguments)."""
    cases = []
    for fields in rows:
        item = await add_raw_item(db, source_id, status="passed")
        cases.append(await add_case(db, item.id, **fields))
    return cases
