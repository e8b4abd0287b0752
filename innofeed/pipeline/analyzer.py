"""Analysis engine: deep analysis + quality check, then case creation."""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from innofeed.config_loader import AnalyzeConfig
from innofeed.db.engine import DatabaseEngine
from innofeed.db.models import RawItem
from innofeed.db.repo import CaseRepository, RawItemRepository
from innofeed.errors import is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.llm import GenerationMode, StructuredGenerator
from innofeed.pipeline.normalize import extract_company_names
from innofeed.pipeline.region import infer_region
from innofeed.pipeline.schemas import (
    AnalysisOutput,
    Classification,
    QualityCheckOutput,
)
from innofeed.pipeline.tracker import RunTracker
from innofeed.prompts.analyze import (
    QUALITY_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_analysis_prompt,
    build_quality_check_prompt,
)
from innofeed.utils.batching import run_in_batches

logger = get_logger("pipeline.analyzer")


def default_quality_check(score: float = 0.7) -> QualityCheckOutput:
    """Substitute used when the quality-check call fails: pass with a moderate score."""
    return QualityCheckOutput(
        overall_pass=True,
        quality_score=score,
        issues=[],
        improvement_suggestions=[],
        ready_for_publication=True,
    )


@dataclass
class AnalysisOutcome:
    success: bool
    case_id: Optional[int] = None
    status: Optional[str] = None
    quality_score: Optional[float] = None
    error: Optional[str] = None
    # Raw item already had a case (lost a race with a concurrent run)
    duplicate: bool = False


class Analyzer:
    """Turns passed raw items into cases."""

    def __init__(
        self,
        db: DatabaseEngine,
        generator: StructuredGenerator,
        tracker: RunTracker,
        config: Optional[AnalyzeConfig] = None,
    ):
        self.db = db
        self.generator = generator
        self.tracker = tracker
        self.config = config or AnalyzeConfig()

    async def run(self) -> Dict[str, Any]:
        async with self.tracker.track("analyze") as run:
            self.generator.ensure_configured()

            async with self.db.get_session() as session:
                items = await RawItemRepository.get_passed_without_case(
                    session, limit=self.config.limit
                )

            logger.info("analyze_start", items=len(items), batch_size=self.config.batch_size)

            stats = {"created": 0, "ready": 0, "pending_supplement": 0, "failed": 0, "duplicates": 0}
            outcomes = await run_in_batches(
                items,
                self.config.batch_size,
                self.analyze_item,
                pause_seconds=self.config.batch_pause_seconds,
                is_fatal=is_fatal,
            )

            for item, outcome in outcomes:
                run.processed += 1
                if isinstance(outcome, BaseException):
                    stats["failed"] += 1
                    run.log_error(f"Analysis error: {outcome}", item_id=item.id)
                elif outcome.duplicate:
                    stats["duplicates"] += 1
                elif outcome.success:
                    stats["created"] += 1
                    stats[outcome.status] += 1
                else:
                    stats["failed"] += 1
                    run.log_error(outcome.error, item_id=item.id)

            run.succeeded = stats["created"]
            run.failed = stats["failed"]
            run.metadata.update(stats)
            logger.info("analyze_complete", **stats)
            return run.summary()

    async def analyze_item(self, item: RawItem) -> AnalysisOutcome:
        """Analyze one passed item and create its case when the quality gate allows."""
        classification = self._classification(item)
        if classification is None:
            return AnalysisOutcome(success=False, error="Item has no gate 3 classification")

        content = (item.content or "")[:self.config.content_chars]
        source_urls = [item.source_url]
        region = infer_region(item.source_url, f"{item.title} {item.content}")
        companies = extract_company_names(f"{item.title} {item.content}")

        # 1. Deep analysis: failure here is final for this item
        analysis_result = await self.generator.generate(
            build_analysis_prompt(
                title=item.title,
                content=content,
                source_urls=source_urls,
                company_names=companies,
                region=region,
                innovation_type=classification.innovation_type,
                insurance_line=classification.insurance_line,
                sentiment=classification.sentiment,
            ),
            AnalysisOutput,
            system_prompt=SYSTEM_PROMPT,
            mode=GenerationMode.CREATIVE,
        )
        if not analysis_result.success:
            logger.warning("analysis_failed", item_id=item.id, error=analysis_result.error)
            return AnalysisOutcome(success=False, error=f"Analysis failed: {analysis_result.error}")
        analysis = analysis_result.data

        # 2. Quality check: fails open
        quality_result = await self.generator.generate(
            build_quality_check_prompt(
                headline_en=analysis.headline_en,
                headline_zh=analysis.headline_zh,
                analysis_en=analysis.analysis_en.model_dump(),
                analysis_zh=analysis.analysis_zh.model_dump(),
                source_urls=source_urls,
            ),
            QualityCheckOutput,
            system_prompt=QUALITY_SYSTEM_PROMPT,
            mode=GenerationMode.FAST,
        )
        if quality_result.success:
            quality = quality_result.data
        else:
            logger.warning("quality_check_failed_open", item_id=item.id, error=quality_result.error)
            quality = default_quality_check(self.config.fallback_quality_score)

        # 3. Gate
        threshold = self.config.quality_threshold
        if not quality.ready_for_publication and quality.quality_score < threshold:
            reason = "Quality check failed: " + ", ".join(quality.improvement_suggestions)
            logger.info("analysis_rejected", item_id=item.id, score=quality.quality_score)
            return AnalysisOutcome(success=False, quality_score=quality.quality_score, error=reason)

        status = "ready" if quality.quality_score >= threshold else "pending_supplement"
        case_data = {
            "raw_item_id": item.id,
            "innovation_type": classification.innovation_type,
            "insurance_line": classification.insurance_line,
            "sentiment": classification.sentiment,
            "headline_en": analysis.headline_en,
            "headline_zh": analysis.headline_zh,
            "analysis_en": analysis.analysis_en.model_dump(),
            "analysis_zh": analysis.analysis_zh.model_dump(),
            "source_urls": source_urls,
            "company_names": analysis.company_names or companies,
            "region": region,
            "status": status,
            "supplement_rounds": 0,
            "quality_score": quality.quality_score,
        }

        async with self.db.get_session() as session:
            case = await CaseRepository.try_create(session, case_data)
            if case is None:
                logger.info("case_already_exists", item_id=item.id)
                return AnalysisOutcome(success=False, duplicate=True, error="Case already exists")
            await session.commit()
            case_id = case.id

        logger.info(
            "case_created",
            case_id=case_id,
            item_id=item.id,
            status=status,
            quality_score=quality.quality_score,
            provider=analysis_result.provider,
        )
        return AnalysisOutcome(
            success=True,
            case_id=case_id,
            status=status,
            quality_score=quality.quality_score,
        )

    @staticmethod
    def _classification(item: RawItem) -> Optional[Classification]:
        result = item.screening_result or {}
        raw = result.get("gate3_classification")
        if not raw:
            return None
        return Classification.model_validate(raw)
