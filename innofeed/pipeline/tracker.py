"""Pipeline run tracker: one record per stage invocation, exactly one terminal update."""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from innofeed.db.engine import DatabaseEngine
from innofeed.db.repo import PipelineRunRepository
from innofeed.logging_setup import bind_run_id, get_logger, unbind_run_id
from innofeed.utils.time_utils import utcnow

logger = get_logger("pipeline.tracker")


class RunContext:
    """Counters and error log accumulated while a stage runs."""

    def __init__(self, run_id: int, pipeline_name: str):
        self.run_id = run_id
        self.pipeline_name = pipeline_name
        self.processed = 0
        self.succeeded = 0
        self.failed = 0
        self.error_log: List[Dict[str, Any]] = []
        self.metadata: Dict[str, Any] = {}

    def log_error(self, message: str, item_id: Optional[int] = None) -> None:
        entry: Dict[str, Any] = {"message": message, "timestamp": utcnow().isoformat()}
        if item_id is not None:
            entry["item_id"] = item_id
        self.error_log.append(entry)

    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline_name,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": len(self.error_log),
            **self.metadata,
        }


class RunTracker:
    """Records start, end, stats and errors of pipeline runs."""

    def __init__(self, db: DatabaseEngine):
        self.db = db

    async def start(self, pipeline_name: str, run_metadata: Optional[Dict[str, Any]] = None) -> int:
        async with self.db.get_session() as session:
            run = await PipelineRunRepository.create(session, pipeline_name, run_metadata)
            await session.commit()
            return run.id

    async def complete(
        self,
        run_id: int,
        status: str,
        processed: int = 0,
        succeeded: int = 0,
        failed: int = 0,
        error_log: Optional[List[Dict[str, Any]]] = None,
        run_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Write the terminal state. Returns False if the run was already finished."""
        async with self.db.get_session() as session:
            updated = await PipelineRunRepository.complete(
                session, run_id, status, processed, succeeded, failed,
                error_log or [], run_metadata,
            )
            await session.commit()

        if not updated:
            logger.warning("run_already_finished", run_id=run_id, status=status)
        return updated

    @asynccontextmanager
    async def track(self, pipeline_name: str) -> AsyncIterator[RunContext]:
        """Run a stage inside a tracked run.

        Normal exit records ``completed``; an escaping exception records
        ``failed`` with its message and is re-raised.
        """
        run_id = await self.start(pipeline_name)
        ctx = RunContext(run_id, pipeline_name)
        bind_run_id(run_id, pipeline_name)
        logger.info("run_start")

        try:
            yield ctx
        except BaseException as e:
            ctx.log_error(f"{type(e).__name__}: {e}")
            logger.error("run_failed", error=str(e), processed=ctx.processed)
            try:
                await self._finish(ctx, "failed")
            except Exception as finish_error:
                logger.error("run_complete_write_failed", error=str(finish_error))
            raise
        else:
            await self._finish(ctx, "completed")
            logger.info("run_complete", **ctx.summary())
        finally:
            unbind_run_id()

    async def _finish(self, ctx: RunContext, status: str) -> None:
        await self.complete(
            ctx.run_id,
            status,
            processed=ctx.processed,
            succeeded=ctx.succeeded,
            failed=ctx.failed,
            error_log=ctx.error_log,
            run_metadata=ctx.metadata,
        )
