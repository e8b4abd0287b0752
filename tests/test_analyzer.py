"""Tests for the analysis engine and case creation."""
from sqlalchemy import select

from innofeed.db.models import Case
from innofeed.db.repo import CaseRepository, RawItemRepository
from innofeed.pipeline.analyzer import Analyzer
from innofeed.pipeline.llm import GenerationMode
from innofeed.pipeline.schemas import AnalysisOutput, QualityCheckOutput

from factories import (
    FakeGenerator,
    add_raw_item,
    analysis_payload,
    passed_screening_result,
    quality_payload,
)


async def all_cases(db):
    async with db.get_session() as session:
        result = await session.execute(select(Case).order_by(Case.id))
        return list(result.scalars().all())


async def passed_item(db, source, **kwargs):
    cls = kwargs.pop("cls", {})
    return await add_raw_item(
        db,
        source.id,
        status="passed",
        screening_result=passed_screening_result(**cls),
        **kwargs,
    )


class TestAnalyzeItem:
    """Single item: analysis, quality gate, case status."""

    async def test_ready_case_created(self, db, source, tracker, analyze_config):
        item = await passed_item(
            db, source,
            url="https://www.pingan.com.cn/news/1",
            cls={"innovation_type": "marketing", "insurance_line": "health", "sentiment": "negative"},
        )
        generator = FakeGenerator({
            AnalysisOutput: analysis_payload(),
            QualityCheckOutput: quality_payload(score=0.82),
        })
        outcome = await Analyzer(db, generator, tracker, analyze_config).analyze_item(item)

        assert outcome.success
        assert outcome.status == "ready"
        case = (await all_cases(db))[0]
        assert case.raw_item_id == item.id
        assert (case.innovation_type, case.insurance_line, case.sentiment) == ("marketing", "health", "negative")
        assert case.region == "china"
        assert case.source_urls == [item.source_url]
        assert case.quality_score == 0.82
        assert case.analysis_en["layer3"] == "English 3 text"
        assert generator.calls_for(AnalysisOutput)[0]["mode"] == GenerationMode.CREATIVE
        assert generator.calls_for(QualityCheckOutput)[0]["mode"] == GenerationMode.FAST

    async def test_quality_failure_fails_open(self, db, source, tracker, analyze_config):
        """A failed quality call never blocks the case: default score 0.7, ready."""
        item = await passed_item(db, source)
        generator = FakeGenerator({AnalysisOutput: analysis_payload(), QualityCheckOutput: None})
        outcome = await Analyzer(db, generator, tracker, analyze_config).analyze_item(item)

        assert outcome.success
        assert outcome.status == "ready"
        assert outcome.quality_score == 0.7

    async def test_low_quality_rejected(self, db, source, tracker, analyze_config):
        item = await passed_item(db, source)
        generator = FakeGenerator({
            AnalysisOutput: analysis_payload(),
            QualityCheckOutput: quality_payload(score=0.3, ready=False, suggestions=["cite sources", "add data"]),
        })
        outcome = await Analyzer(db, generator, tracker, analyze_config).analyze_item(item)

        assert not outcome.success
        assert outcome.error == "Quality check failed: cite sources, add data"
        assert await all_cases(db) == []

    async def test_low_score_but_ready_flag_waits_for_supplement(self, db, source, tracker, analyze_config):
        item = await passed_item(db, source)
        generator = FakeGenerator({
            AnalysisOutput: analysis_payload(),
            QualityCheckOutput: quality_payload(score=0.4, ready=True),
        })
        outcome = await Analyzer(db, generator, tracker, analyze_config).analyze_item(item)

        assert outcome.success
        assert outcome.status == "pending_supplement"

    async def test_analysis_failure_creates_nothing(self, db, source, tracker, analyze_config):
        item = await passed_item(db, source)
        generator = FakeGenerator({QualityCheckOutput: quality_payload()})
        outcome = await Analyzer(db, generator, tracker, analyze_config).analyze_item(item)

        assert not outcome.success
        assert outcome.error.startswith("Analysis failed: ")
        assert generator.calls_for(QualityCheckOutput) == []
        assert await all_cases(db) == []

    async def test_company_names_fall_back_to_extraction(self, db, source, tracker, analyze_config):
        item = await passed_item(
            db, source, title="Lemonade adds pet wellness plans",
            content="Lemonade now bundles vet visits with its pet cover.",
        )
        generator = FakeGenerator({
            AnalysisOutput: analysis_payload(companies=[]),
            QualityCheckOutput: quality_payload(),
        })
        await Analyzer(db, generator, tracker, analyze_config).analyze_item(item)
        assert (await all_cases(db))[0].company_names == ["Lemonade"]

    async def test_second_case_for_same_item_refused(self, db, source, tracker, analyze_config):
        """At most one case per raw item."""
        item = await passed_item(db, source)
        generator = FakeGenerator({
            AnalysisOutput: analysis_payload(),
            QualityCheckOutput: quality_payload(),
        })
        analyzer = Analyzer(db, generator, tracker, analyze_config)

        first = await analyzer.analyze_item(item)
        second = await analyzer.analyze_item(item)

        assert first.success
        assert second.duplicate
        async with db.get_session() as session:
            assert await CaseRepository.count_for_raw_item(session, item.id) == 1


class TestAnalyzerRun:
    """Stage run over passed items without a case."""

    async def test_run_creates_cases_and_is_idempotent(self, db, source, tracker, analyze_config):
        for n in range(3):
            await passed_item(db, source, title=f"Passed story number {n}")
        await add_raw_item(db, source.id, status="rejected")

        generator = FakeGenerator({
            AnalysisOutput: analysis_payload(),
            QualityCheckOutput: quality_payload(),
        })
        analyzer = Analyzer(db, generator, tracker, analyze_config)

        summary = await analyzer.run()
        assert summary["created"] == 3
        assert summary["ready"] == 3

        again = await analyzer.run()
        assert again["processed"] == 0
        assert len(await all_cases(db)) == 3

    async def test_failures_counted_not_raised(self, db, source, tracker, analyze_config):
        await passed_item(db, source)
        summary = await Analyzer(db, FakeGenerator(), tracker, analyze_config).run()

        assert summary["failed"] == 1
        assert summary["errors"] == 1
        async with db.get_session() as session:
            remaining = await RawItemRepository.get_passed_without_case(session)
        assert len(remaining) == 1
