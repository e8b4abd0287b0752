"""Review engine: retract cases that no longer hold up as structural shifts."""
import asyncio
from typing import Any, Dict, Optional

from innofeed.config_loader import ReviewConfig
from innofeed.db.engine import DatabaseEngine
from innofeed.db.models import Case
from innofeed.db.repo import CaseRepository
from innofeed.errors import is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.llm import GenerationMode, GenerationResult, StructuredGenerator
from innofeed.pipeline.schemas import ReviewOutput
from innofeed.pipeline.tracker import RunTracker
from innofeed.prompts.review import SYSTEM_PROMPT, build_review_prompt

logger = get_logger("pipeline.reviewer")


class Reviewer:
    """Re-validates every non-rejected case, one call per case."""

    def __init__(
        self,
        db: DatabaseEngine,
        generator: StructuredGenerator,
        tracker: RunTracker,
        config: Optional[ReviewConfig] = None,
    ):
        self.db = db
        self.generator = generator
        self.tracker = tracker
        self.config = config or ReviewConfig()

    async def review_case(self, case: Case) -> GenerationResult[ReviewOutput]:
        layer1 = (case.analysis_en or {}).get("layer1") or ""
        prompt = build_review_prompt(
            headline_en=case.headline_en or "",
            headline_zh=case.headline_zh or "",
            innovation_type=case.innovation_type or "",
            insurance_line=case.insurance_line or "",
            layer1=layer1[:self.config.layer_chars],
        )
        return await self.generator.generate(
            prompt,
            ReviewOutput,
            system_prompt=SYSTEM_PROMPT,
            mode=GenerationMode.FAST,
        )

    async def run(self) -> Dict[str, Any]:
        async with self.tracker.track("review") as run:
            self.generator.ensure_configured()

            async with self.db.get_session() as session:
                cases = await CaseRepository.get_non_rejected(session)

            logger.info("review_start", cases=len(cases))
            stats = {"kept": 0, "rejected": 0, "skipped": 0, "errors": 0}

            for index, case in enumerate(cases):
                if index and self.config.pause_seconds > 0:
                    await asyncio.sleep(self.config.pause_seconds)

                run.processed += 1
                try:
                    result = await self.review_case(case)
                    if not result.success:
                        # No clear signal never retracts a case
                        stats["skipped"] += 1
                        logger.warning("review_skip", case_id=case.id, error=result.error)
                        continue

                    if result.data.keep:
                        stats["kept"] += 1
                        logger.info("review_keep", case_id=case.id, reason=result.data.reason)
                        continue

                    async with self.db.get_session() as session:
                        retracted = await CaseRepository.reject(session, case.id)
                        await session.commit()
                    if retracted:
                        stats["rejected"] += 1
                    logger.info("review_reject", case_id=case.id, reason=result.data.reason)
                except Exception as e:
                    if is_fatal(e):
                        raise
                    stats["errors"] += 1
                    run.log_error(f"Review error: {e}", item_id=case.id)
                    logger.error("review_error", case_id=case.id, error=str(e))

            run.succeeded = stats["kept"] + stats["rejected"]
            run.failed = stats["errors"]
            run.metadata.update(stats)
            logger.info("review_complete", **stats)
            return run.summary()
