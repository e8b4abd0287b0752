"""Tests for pipeline run tracking."""
import pytest

from innofeed.db.repo import PipelineRunRepository


async def load_run(db, run_id):
    async with db.get_session() as session:
        return await PipelineRunRepository.get_by_id(session, run_id)


class TestRunTracker:
    async def test_start_creates_running_record(self, db, tracker):
        run_id = await tracker.start("collect", {"trigger": "manual"})
        run = await load_run(db, run_id)

        assert run.status == "running"
        assert run.pipeline_name == "collect"
        assert run.run_metadata == {"trigger": "manual"}
        assert run.completed_at is None

    async def test_complete_is_single_terminal_update(self, db, tracker):
        run_id = await tracker.start("screen")

        assert await tracker.complete(run_id, "completed", processed=4, succeeded=3, failed=1)
        assert not await tracker.complete(run_id, "failed")

        run = await load_run(db, run_id)
        assert run.status == "completed"
        assert (run.items_processed, run.items_succeeded, run.items_failed) == (4, 3, 1)
        assert run.completed_at is not None

    async def test_track_records_completed_run(self, db, tracker):
        async with tracker.track("analyze") as run:
            run.processed = 2
            run.succeeded = 2
            run.metadata["created"] = 2

        stored = await load_run(db, run.run_id)
        assert stored.status == "completed"
        assert stored.items_processed == 2
        assert stored.run_metadata == {"created": 2}
        assert run.summary()["created"] == 2

    async def test_track_records_failure_and_reraises(self, db, tracker):
        with pytest.raises(RuntimeError, match="store unavailable"):
            async with tracker.track("publish") as run:
                run.processed = 1
                raise RuntimeError("store unavailable")

        stored = await load_run(db, run.run_id)
        assert stored.status == "failed"
        assert stored.items_processed == 1
        assert stored.error_log[-1]["message"] == "RuntimeError: store unavailable"

    async def test_logged_errors_persisted(self, db, tracker):
        async with tracker.track("screen") as run:
            run.log_error("AI screening failed: timeout", item_id=7)

        stored = await load_run(db, run.run_id)
        assert stored.status == "completed"
        assert stored.error_log[0]["item_id"] == 7
        assert run.summary()["errors"] == 1

    async def test_recent_runs_newest_first(self, db, tracker):
        first = await tracker.start("collect")
        second = await tracker.start("screen")
        async with db.get_session() as session:
            recent = await PipelineRunRepository.get_recent(session, limit=2)
        assert [r.id for r in recent] == [second, first]
