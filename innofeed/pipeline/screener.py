"""Three-gate screening engine: pending -> passed | rejected, exactly once per item."""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from innofeed.config_loader import ScreenConfig
from innofeed.db.engine import DatabaseEngine
from innofeed.db.models import RawItem
from innofeed.db.repo import RawItemRepository
from innofeed.errors import is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.llm import GenerationMode, StructuredGenerator
from innofeed.pipeline.schemas import Classification, ScreeningOutput
from innofeed.pipeline.tracker import RunTracker
from innofeed.prompts.screen import SYSTEM_PROMPT, build_screening_prompt
from innofeed.utils.batching import run_in_batches

logger = get_logger("pipeline.screener")

AI_FAILURE_PREFIX = "AI screening failed: "
DEFAULT_REJECTION = "Did not pass screening gates"


@dataclass
class ScreeningDecision:
    """Outcome of screening one item, ready to be written to the store."""
    status: str  # passed, rejected
    result: Dict[str, Any]
    classification: Optional[Classification] = None
    rejection_reason: Optional[str] = None
    ai_failed: bool = False

    @property
    def passed(self) -> bool:
        return self.status == "passed"


def decide(output: ScreeningOutput) -> ScreeningDecision:
    """
    Apply the gate rule to a screening response.

    Passed iff gate 1 and gate 2 hold and a classification is present. The
    stored classification is kept only when both gates pass.
    """
    gates_pass = output.gate1_relevance and output.gate2_novelty
    classification = output.gate3_classification if gates_pass else None
    passed = gates_pass and classification is not None

    rejection_reason = None
    if not passed:
        rejection_reason = (
            output.rejection_reason
            or output.gate1_reason
            or output.gate2_reason
            or DEFAULT_REJECTION
        )

    result = output.model_dump(mode="json")
    result["gate3_classification"] = classification.model_dump(mode="json") if classification else None
    result["rejection_reason"] = rejection_reason

    return ScreeningDecision(
        status="passed" if passed else "rejected",
        result=result,
        classification=classification,
        rejection_reason=rejection_reason,
    )


def failed_decision(error: str) -> ScreeningDecision:
    """Rejection recorded when the generation call produced nothing usable."""
    reason = f"{AI_FAILURE_PREFIX}{error}"
    return ScreeningDecision(
        status="rejected",
        result={
            "gate1_relevance": False,
            "gate1_score": 0.0,
            "gate1_reason": "",
            "gate2_novelty": False,
            "gate2_score": 0.0,
            "gate2_reason": "",
            "gate3_classification": None,
            "priority_score": 0.0,
            "rejection_reason": reason,
        },
        rejection_reason=reason,
        ai_failed=True,
    )


async def screen_item(
    item: RawItem,
    generator: StructuredGenerator,
    content_chars: int = 5000,
) -> ScreeningDecision:
    """Screen one raw item. Never raises for generation failures."""
    prompt = build_screening_prompt(
        title=item.title,
        content=(item.content or "")[:content_chars],
        source_url=item.source_url,
        language=item.language,
    )
    result = await generator.generate(
        prompt,
        ScreeningOutput,
        system_prompt=SYSTEM_PROMPT,
        mode=GenerationMode.FAST,
    )
    if not result.success:
        return failed_decision(result.error or "unknown error")
    return decide(result.data)


class Screener:
    """Screens pending raw items in bounded concurrent batches."""

    def __init__(
        self,
        db: DatabaseEngine,
        generator: StructuredGenerator,
        tracker: RunTracker,
        config: Optional[ScreenConfig] = None,
    ):
        self.db = db
        self.generator = generator
        self.tracker = tracker
        self.config = config or ScreenConfig()

    async def run(self) -> Dict[str, Any]:
        async with self.tracker.track("screen") as run:
            self.generator.ensure_configured()

            async with self.db.get_session() as session:
                items = await RawItemRepository.get_pending(session, limit=self.config.limit)

            logger.info("screen_start", pending=len(items), batch_size=self.config.batch_size)

            stats = {"passed": 0, "rejected": 0, "ai_failures": 0, "errors": 0, "skipped": 0}
            outcomes = await run_in_batches(
                items,
                self.config.batch_size,
                self._screen_one,
                pause_seconds=self.config.batch_pause_seconds,
                is_fatal=is_fatal,
            )

            for item, outcome in outcomes:
                run.processed += 1
                if isinstance(outcome, BaseException):
                    stats["errors"] += 1
                    run.log_error(f"Screening error: {outcome}", item_id=item.id)
                elif outcome is None:
                    stats["skipped"] += 1
                elif outcome.passed:
                    stats["passed"] += 1
                else:
                    stats["rejected"] += 1
                    if outcome.ai_failed:
                        stats["ai_failures"] += 1
                        run.log_error(outcome.rejection_reason, item_id=item.id)

            run.succeeded = stats["passed"]
            run.failed = stats["rejected"] + stats["errors"]
            run.metadata.update(stats)
            logger.info("screen_complete", **stats)
            return run.summary()

    async def _screen_one(self, item: RawItem) -> Optional[ScreeningDecision]:
        """Screen and persist. Returns None if another run screened the item first."""
        decision = await screen_item(item, self.generator, self.config.content_chars)

        async with self.db.get_session() as session:
            updated = await RawItemRepository.apply_screening(
                session, item.id, decision.status, decision.result
            )
            await session.commit()

        if not updated:
            logger.info("screen_already_done", item_id=item.id)
            return None

        logger.info(
            "screen_item_done",
            item_id=item.id,
            status=decision.status,
            reason=decision.rejection_reason,
        )
        return decision
