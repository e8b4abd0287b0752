"""Database repositories with all store operations used by the pipeline."""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from innofeed.db.models import Case, PipelineRun, RawItem, Source
from innofeed.utils.time_utils import is_due, utcnow

# Bound on bind parameters per IN (...) query
HASH_CHUNK_SIZE = 500


class SourceRepository:
    """Repository for source operations."""

    @staticmethod
    async def get_by_name(session: AsyncSession, name: str) -> Optional[Source]:
        result = await session.execute(select(Source).where(Source.name == name))
        return result.scalar_one_or_none()

    @staticmethod
    async def sync_from_config(session: AsyncSession, sources: Iterable[Any]) -> int:
        """Insert configured sources missing from the table. Returns number created.

        Existing rows keep their status and health counters; only the fetch
        definition (url, type, frequency, config) is refreshed.
        """
        created = 0
        for cfg in sources:
            source = await SourceRepository.get_by_name(session, cfg.name)
            if source is None:
                session.add(Source(
                    name=cfg.name,
                    url=cfg.url,
                    type=cfg.type,
                    language=cfg.language,
                    region=cfg.region,
                    quality_score=cfg.quality_score,
                    check_frequency=cfg.check_frequency,
                    status=cfg.status,
                    config=dict(cfg.config),
                ))
                created += 1
            else:
                source.url = cfg.url
                source.type = cfg.type
                source.check_frequency = cfg.check_frequency
                source.config = dict(cfg.config)
        await session.flush()
        return created

    @staticmethod
    async def get_due(
        session: AsyncSession,
        source_type: str,
        now: Optional[datetime] = None,
    ) -> List[Source]:
        """Active sources of ``source_type`` whose check interval has elapsed."""
        result = await session.execute(
            select(Source)
            .where(Source.status == "active", Source.type == source_type)
            .order_by(Source.id)
        )
        now = now or utcnow()
        return [
            s for s in result.scalars().all()
            if is_due(s.last_checked_at, s.check_frequency, now)
        ]

    @staticmethod
    async def get_all(session: AsyncSession) -> List[Source]:
        result = await session.execute(select(Source).order_by(Source.id))
        return list(result.scalars().all())

    @staticmethod
    async def record_success(session: AsyncSession, source_id: int) -> None:
        """Source pass finished: reset failure streak and stamp last check."""
        await session.execute(
            update(Source)
            .where(Source.id == source_id)
            .values(consecutive_failures=0, last_checked_at=utcnow())
        )

    @staticmethod
    async def record_failure(
        session: AsyncSession,
        source_id: int,
        error_message: str,
        disable_threshold: int = 10,
    ) -> bool:
        """Record a source-level failure. Returns True if the source got disabled.

        ``last_checked_at`` is left alone so the source stays due for the next pass.
        """
        result = await session.execute(select(Source).where(Source.id == source_id))
        source = result.scalar_one_or_none()
        if source is None:
            return False

        source.consecutive_failures = (source.consecutive_failures or 0) + 1
        source.last_error = (error_message or "")[:500]

        if source.consecutive_failures >= disable_threshold and source.status != "disabled":
            source.status = "disabled"
            return True
        return False


class RawItemRepository:
    """Repository for raw item operations."""

    @staticmethod
    async def hash_exists(session: AsyncSession, content_hash: str) -> bool:
        """Check if a content hash is already stored."""
        result = await session.execute(
            select(RawItem.id).where(RawItem.content_hash == content_hash).limit(1)
        )
        return result.scalar() is not None

    @staticmethod
    async def existing_hashes(session: AsyncSession, hashes: Iterable[str]) -> Set[str]:
        """Return the subset of ``hashes`` already stored."""
        unique = list(dict.fromkeys(h for h in hashes if h))
        found: Set[str] = set()
        for start in range(0, len(unique), HASH_CHUNK_SIZE):
            chunk = unique[start:start + HASH_CHUNK_SIZE]
            result = await session.execute(
                select(RawItem.content_hash).where(RawItem.content_hash.in_(chunk))
            )
            found.update(result.scalars().all())
        return found

    @staticmethod
    async def create(session: AsyncSession, item_data: Dict[str, Any]) -> RawItem:
        """Create a new raw item with status pending."""
        item = RawItem(screening_status="pending", **item_data)
        session.add(item)
        await session.flush()
        return item

    @staticmethod
    async def get_by_id(session: AsyncSession, item_id: int) -> Optional[RawItem]:
        result = await session.execute(select(RawItem).where(RawItem.id == item_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_pending(session: AsyncSession, limit: int = 100) -> List[RawItem]:
        """Oldest pending items first."""
        result = await session.execute(
            select(RawItem)
            .where(RawItem.screening_status == "pending")
            .order_by(RawItem.collected_at.asc(), RawItem.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def apply_screening(
        session: AsyncSession,
        item_id: int,
        status: str,
        screening_result: Dict[str, Any],
    ) -> bool:
        """Write status and result together, only if the item is still pending."""
        result = await session.execute(
            update(RawItem)
            .where(RawItem.id == item_id, RawItem.screening_status == "pending")
            .values(screening_status=status, screening_result=screening_result)
        )
        return result.rowcount == 1

    @staticmethod
    async def get_passed_without_case(session: AsyncSession, limit: int = 300) -> List[RawItem]:
        """Passed items that have no case yet, newest first."""
        result = await session.execute(
            select(RawItem)
            .outerjoin(Case, Case.raw_item_id == RawItem.id)
            .where(RawItem.screening_status == "passed", Case.id.is_(None))
            .order_by(RawItem.collected_at.desc(), RawItem.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count_by_status(session: AsyncSession) -> Dict[str, int]:
        result = await session.execute(
            select(RawItem.screening_status, func.count(RawItem.id))
            .group_by(RawItem.screening_status)
        )
        return {status: count for status, count in result.all()}


class CaseRepository:
    """Repository for case operations."""

    @staticmethod
    async def try_create(session: AsyncSession, case_data: Dict[str, Any]) -> Optional[Case]:
        """Create a case. Returns None if the raw item already has one."""
        try:
            case = Case(**case_data)
            session.add(case)
            await session.flush()
            return case
        except IntegrityError:
            await session.rollback()
            return None

    @staticmethod
    async def get_by_id(session: AsyncSession, case_id: int) -> Optional[Case]:
        result = await session.execute(select(Case).where(Case.id == case_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def count_for_raw_item(session: AsyncSession, raw_item_id: int) -> int:
        result = await session.execute(
            select(func.count(Case.id)).where(Case.raw_item_id == raw_item_id)
        )
        return result.scalar() or 0

    @staticmethod
    async def get_ready(session: AsyncSession) -> List[Case]:
        """Ready (unpublished) cases, newest first."""
        result = await session.execute(
            select(Case)
            .where(Case.status == "ready")
            .order_by(Case.created_at.desc(), Case.id.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_published_since(session: AsyncSession, since: datetime) -> List[Case]:
        """Cases published at or after ``since`` (naive UTC)."""
        result = await session.execute(
            select(Case)
            .where(Case.status == "published", Case.published_at >= since)
            .order_by(Case.published_at.asc(), Case.id.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_non_rejected(session: AsyncSession) -> List[Case]:
        result = await session.execute(
            select(Case).where(Case.status != "rejected").order_by(Case.id.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def publish(session: AsyncSession, case_id: int, published_at: datetime) -> bool:
        """ready -> published. Returns False if the case was not ready anymore."""
        result = await session.execute(
            update(Case)
            .where(Case.id == case_id, Case.status == "ready")
            .values(status="published", published_at=published_at)
        )
        return result.rowcount == 1

    @staticmethod
    async def reject(session: AsyncSession, case_id: int) -> bool:
        """Retract a case. Published cases lose their published_at."""
        result = await session.execute(
            update(Case)
            .where(Case.id == case_id, Case.status != "rejected")
            .values(status="rejected", published_at=None)
        )
        return result.rowcount == 1

    @staticmethod
    async def count_by_cell_since(
        session: AsyncSession,
        since: datetime,
    ) -> Dict[Tuple[str, str], int]:
        """Non-rejected cases created since ``since``, grouped by matrix cell."""
        result = await session.execute(
            select(Case.innovation_type, Case.insurance_line, func.count(Case.id))
            .where(Case.created_at >= since, Case.status != "rejected")
            .group_by(Case.innovation_type, Case.insurance_line)
        )
        return {(t, line): count for t, line, count in result.all()}

    @staticmethod
    async def count_by_status(session: AsyncSession) -> Dict[str, int]:
        result = await session.execute(
            select(Case.status, func.count(Case.id)).group_by(Case.status)
        )
        return {status: count for status, count in result.all()}

    @staticmethod
    async def apply_vote(session: AsyncSession, case_id: int, direction: int) -> bool:
        """Front-end vote: +1 upvote, -1 downvote."""
        if direction not in (1, -1):
            raise ValueError("direction must be 1 or -1")
        column = Case.upvotes if direction == 1 else Case.downvotes
        result = await session.execute(
            update(Case)
            .where(Case.id == case_id)
            .values({column: column + 1})
        )
        return result.rowcount == 1

    @staticmethod
    async def increment_views(session: AsyncSession, case_id: int) -> bool:
        result = await session.execute(
            update(Case)
            .where(Case.id == case_id)
            .values(view_count=Case.view_count + 1)
        )
        return result.rowcount == 1


class PipelineRunRepository:
    """Repository for pipeline run records."""

    @staticmethod
    async def create(
        session: AsyncSession,
        pipeline_name: str,
        run_metadata: Optional[Dict[str, Any]] = None,
    ) -> PipelineRun:
        run = PipelineRun(
            pipeline_name=pipeline_name,
            status="running",
            started_at=utcnow(),
            error_log=[],
            run_metadata=run_metadata or {},
        )
        session.add(run)
        await session.flush()
        return run

    @staticmethod
    async def complete(
        session: AsyncSession,
        run_id: int,
        status: str,
        processed: int,
        succeeded: int,
        failed: int,
        error_log: List[Dict[str, Any]],
        run_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Single terminal update. Returns False if the run was already finished."""
        values = {
            "status": status,
            "completed_at": utcnow(),
            "items_processed": processed,
            "items_succeeded": succeeded,
            "items_failed": failed,
            "error_log": error_log,
        }
        if run_metadata is not None:
            values["run_metadata"] = run_metadata

        result = await session.execute(
            update(PipelineRun)
            .where(PipelineRun.id == run_id, PipelineRun.status == "running")
            .values(**values)
        )
        return result.rowcount == 1

    @staticmethod
    async def get_by_id(session: AsyncSession, run_id: int) -> Optional[PipelineRun]:
        result = await session.execute(select(PipelineRun).where(PipelineRun.id == run_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_recent(session: AsyncSession, limit: int = 10) -> List[PipelineRun]:
        result = await session.execute(
            select(PipelineRun).order_by(PipelineRun.started_at.desc(), PipelineRun.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
