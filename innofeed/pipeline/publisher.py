"""Publication selector: daily quota, matrix coverage first, then sentiment-balanced fill."""
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import httpx

from innofeed.config_loader import PublishConfig
from innofeed.db.engine import DatabaseEngine
from innofeed.db.repo import CaseRepository
from innofeed.errors import is_fatal
from innofeed.logging_setup import get_logger
from innofeed.pipeline.schemas import MATRIX_CELLS, cell_key
from innofeed.pipeline.tracker import RunTracker
from innofeed.utils.time_utils import local_day_start_utc, utcnow

logger = get_logger("pipeline.publisher")

# Quality differences up to this value count as a tie inside a matrix cell.
# Differences are rounded first so 0.8 vs 0.7 falls inside the band.
QUALITY_TIE_BAND = 0.1

_EPOCH = datetime(1970, 1, 1)


def _quality(case) -> float:
    return case.quality_score if case.quality_score is not None else 0.0


def _created(case) -> float:
    if case.created_at is None:
        return 0.0
    return (case.created_at.replace(tzinfo=None) - _EPOCH).total_seconds()


def _compare_cell_candidates(a, b) -> int:
    """Quality desc (with tie band), then newest first, then lowest id."""
    qa, qb = _quality(a), _quality(b)
    if round(abs(qa - qb), 6) > QUALITY_TIE_BAND:
        return -1 if qa > qb else 1
    ca, cb = _created(a), _created(b)
    if ca != cb:
        return -1 if ca > cb else 1
    return (a.id > b.id) - (a.id < b.id)


def best_in_cell(candidates: Sequence[Any]):
    """Best candidate of one matrix cell, or None."""
    if not candidates:
        return None
    # Pre-sorting by id makes the result independent of input order
    ordered = sorted(candidates, key=lambda c: c.id)
    return sorted(ordered, key=cmp_to_key(_compare_cell_candidates))[0]


def _fill_rank(case) -> Tuple[float, float, int]:
    return (-_quality(case), -_created(case), case.id)


def select_daily_cases(
    ready: Sequence[Any],
    published_today: Sequence[Any],
    daily_target: int = 200,
    cells: Sequence[Tuple[str, str]] = MATRIX_CELLS,
) -> List[Any]:
    """
    Pick the cases to publish in this run.

    1. ``remaining = daily_target - len(published_today)``; nothing when <= 0.
    2. One best case for every cell not yet covered by today's publications,
       in ``cells`` order.
    3. Fill the rest, at each pick preferring the sentiment that is
       under-represented among this run's picks; then by quality.

    Works on any objects exposing ``id``, ``innovation_type``,
    ``insurance_line``, ``sentiment``, ``quality_score`` and ``created_at``.
    """
    remaining = daily_target - len(published_today)
    if remaining <= 0:
        return []

    published_ids = {c.id for c in published_today}
    available = [c for c in ready if c.id not in published_ids]
    covered: Set[Tuple[str, str]] = {(c.innovation_type, c.insurance_line) for c in published_today}

    selected: List[Any] = []
    selected_ids: Set[int] = set()

    # Coverage: one case per uncovered cell
    for cell in cells:
        if len(selected) >= remaining:
            break
        if cell in covered:
            continue
        best = best_in_cell([
            c for c in available
            if (c.innovation_type, c.insurance_line) == cell and c.id not in selected_ids
        ])
        if best is not None:
            selected.append(best)
            selected_ids.add(best.id)

    # Fill: sentiment balance over this run's picks
    pool = [c for c in available if c.id not in selected_ids]
    queues = {
        "positive": sorted((c for c in pool if c.sentiment == "positive"), key=_fill_rank),
        "negative": sorted((c for c in pool if c.sentiment == "negative"), key=_fill_rank),
    }
    counts = {
        "positive": sum(1 for c in selected if c.sentiment == "positive"),
        "negative": sum(1 for c in selected if c.sentiment == "negative"),
    }

    while len(selected) < remaining and (queues["positive"] or queues["negative"]):
        if not queues["positive"]:
            pick_from = "negative"
        elif not queues["negative"]:
            pick_from = "positive"
        elif counts["positive"] < counts["negative"]:
            pick_from = "positive"
        elif counts["negative"] < counts["positive"]:
            pick_from = "negative"
        else:
            pick_from = min(("positive", "negative"), key=lambda s: _fill_rank(queues[s][0]))

        case = queues[pick_from].pop(0)
        selected.append(case)
        selected_ids.add(case.id)
        counts[pick_from] += 1

    return selected


class CacheRevalidator:
    """Best-effort downstream cache invalidation after a publish commit."""

    def __init__(
        self,
        site_url: Optional[str],
        token: Optional[str],
        paths: Sequence[str] = ("/cases", "/matrix", "/"),
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.site_url = site_url
        self.token = token
        self.paths = list(paths)
        self.timeout = timeout
        self.transport = transport

    @property
    def endpoint(self) -> str:
        base = self.site_url.rstrip("/")
        if not base.startswith(("http://", "https://")):
            base = f"https://{base}"
        return f"{base}/api/revalidate"

    async def notify(self) -> int:
        """Revalidate every path. Returns the number of paths accepted; never raises."""
        if not self.token or not self.site_url:
            logger.warning("revalidate_skipped", reason="token or site url not set")
            return 0

        accepted = 0
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                for path in self.paths:
                    response = await client.post(
                        self.endpoint,
                        params={"path": path, "token": self.token},
                    )
                    if response.status_code == 200:
                        accepted += 1
                        logger.info("revalidate_ok", path=path)
                    else:
                        logger.warning("revalidate_failed", path=path, status_code=response.status_code)
        except httpx.HTTPError as e:
            logger.error("revalidate_error", error=str(e))
        return accepted


class Publisher:
    """Publishes the daily selection and reports coverage."""

    def __init__(
        self,
        db: DatabaseEngine,
        tracker: RunTracker,
        revalidator: CacheRevalidator,
        config: Optional[PublishConfig] = None,
        timezone_str: str = "UTC",
    ):
        self.db = db
        self.tracker = tracker
        self.revalidator = revalidator
        self.config = config or PublishConfig()
        self.timezone_str = timezone_str

    async def run(self) -> Dict[str, Any]:
        async with self.tracker.track("publish") as run:
            day_start = local_day_start_utc(self.timezone_str)

            async with self.db.get_session() as session:
                published_today = await CaseRepository.get_published_since(session, day_start)
                ready = await CaseRepository.get_ready(session)

            selected = select_daily_cases(
                ready, published_today, self.config.daily_target, MATRIX_CELLS
            )
            logger.info(
                "publish_start",
                published_today=len(published_today),
                ready=len(ready),
                selected=len(selected),
            )

            published_at = utcnow()
            published = 0
            skipped = 0
            for case in selected:
                run.processed += 1
                try:
                    async with self.db.get_session() as session:
                        ok = await CaseRepository.publish(session, case.id, published_at)
                        await session.commit()
                except Exception as e:
                    if is_fatal(e):
                        raise
                    run.failed += 1
                    run.log_error(f"Publish error: {e}", item_id=case.id)
                    continue

                if ok:
                    published += 1
                    logger.info(
                        "case_published",
                        case_id=case.id,
                        cell=cell_key(case.innovation_type, case.insurance_line),
                    )
                else:
                    skipped += 1

            run.succeeded = published
            revalidated = 0
            if published:
                # Publication is committed; notification may fail on its own
                revalidated = await self.revalidator.notify()

            run.metadata.update({
                "published": published,
                "skipped": skipped,
                "total_today": len(published_today) + published,
                "revalidated_paths": revalidated,
            })
            logger.info("publish_complete", **run.metadata)
            return run.summary()

    async def status(self) -> Dict[str, Any]:
        """Published today, target and per-cell coverage."""
        day_start = local_day_start_utc(self.timezone_str)
        async with self.db.get_session() as session:
            published_today = await CaseRepository.get_published_since(session, day_start)
            ready = await CaseRepository.get_ready(session)

        coverage = {cell_key(t, line): 0 for t, line in MATRIX_CELLS}
        for case in published_today:
            key = cell_key(case.innovation_type, case.insurance_line)
            if key in coverage:
                coverage[key] += 1

        return {
            "published_today": len(published_today),
            "target": self.config.daily_target,
            "ready": len(ready),
            "coverage_by_cell": coverage,
        }
