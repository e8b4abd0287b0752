"""Tests for daily selection, publication and cache revalidation."""
import random
from datetime import datetime, timedelta
from types import SimpleNamespace

import httpx
import pytest

from innofeed.config_loader import PublishConfig
from innofeed.db.repo import CaseRepository
from innofeed.pipeline.publisher import CacheRevalidator, Publisher, best_in_cell, select_daily_cases
from innofeed.pipeline.schemas import MATRIX_CELLS
from innofeed.utils.time_utils import utcnow

from factories import add_cases

BASE_TIME = datetime(2026, 5, 1, 12, 0)


def case(id, type="product", line="property", sentiment="positive", quality=0.8, minutes_ago=0):
    return SimpleNamespace(
        id=id,
        innovation_type=type,
        insurance_line=line,
        sentiment=sentiment,
        quality_score=quality,
        created_at=BASE_TIME - timedelta(minutes=minutes_ago),
    )


class TestBestInCell:
    """Quality with a tie band, then recency, then id."""

    def test_close_quality_prefers_newer(self):
        older_better = case(1, quality=0.85, minutes_ago=60)
        newer = case(2, quality=0.81, minutes_ago=5)
        assert best_in_cell([older_better, newer]).id == 2

    def test_clear_quality_gap_wins(self):
        strong = case(1, quality=0.95, minutes_ago=60)
        newer = case(2, quality=0.81, minutes_ago=5)
        assert best_in_cell([strong, newer]).id == 1

    def test_one_tenth_gap_is_a_tie(self):
        """Every 0.1 step counts as a tie, whatever the float error."""
        for high, low in ((0.8, 0.7), (0.9, 0.8), (0.6, 0.5), (0.3, 0.2)):
            older = case(1, quality=high, minutes_ago=60)
            newer = case(2, quality=low, minutes_ago=5)
            assert best_in_cell([older, newer]).id == 2, (high, low)

    def test_gap_just_over_band_wins(self):
        older = case(1, quality=0.81, minutes_ago=60)
        newer = case(2, quality=0.7, minutes_ago=5)
        assert best_in_cell([older, newer]).id == 1

    def test_full_tie_lowest_id(self):
        assert best_in_cell([case(9), case(4), case(7)]).id == 4

    def test_missing_quality_counts_as_zero(self):
        assert best_in_cell([case(1, quality=None), case(2, quality=0.5)]).id == 2

    def test_empty(self):
        assert best_in_cell([]) is None

    def test_independent_of_input_order(self):
        pool = [case(i, quality=0.5 + (i % 5) * 0.04, minutes_ago=i * 7 % 30) for i in range(1, 15)]
        expected = best_in_cell(pool).id
        rng = random.Random(7)
        for _ in range(10):
            shuffled = pool[:]
            rng.shuffle(shuffled)
            assert best_in_cell(shuffled).id == expected


class TestSelectDailyCases:
    """Coverage first, then sentiment-balanced fill."""

    def test_one_per_cell_before_any_second(self):
        ready = []
        next_id = 1
        for type, line in MATRIX_CELLS:
            for quality in (0.9, 0.6):
                ready.append(case(next_id, type, line, quality=quality))
                next_id += 1
        selected = select_daily_cases(ready, [], daily_target=200)

        assert len(selected) == 12
        first_round = selected[:6]
        assert [(c.innovation_type, c.insurance_line) for c in first_round] == MATRIX_CELLS
        assert all(c.quality_score == 0.9 for c in first_round)
        assert all(c.quality_score == 0.6 for c in selected[6:])

    def test_coverage_follows_cell_order(self):
        ready = [case(1, "marketing", "life"), case(2, "product", "health")]
        selected = select_daily_cases(ready, [], daily_target=10)
        assert [c.id for c in selected] == [2, 1]

    def test_quota_reached_selects_nothing(self):
        published = [case(100 + i) for i in range(3)]
        assert select_daily_cases([case(1)], published, daily_target=3) == []

    def test_remaining_quota_respected(self):
        published = [case(100)]
        ready = [case(i, minutes_ago=i) for i in range(1, 6)]
        assert len(select_daily_cases(ready, published, daily_target=3)) == 2

    def test_cells_covered_today_not_prioritized(self):
        published = [case(100, "product", "property")]
        ready = [
            case(1, "product", "property", quality=0.99),
            case(2, "marketing", "health", quality=0.2),
        ]
        selected = select_daily_cases(ready, published, daily_target=2)
        assert [c.id for c in selected] == [2]

    def test_sentiment_balance_in_fill(self):
        newest_positive = case(1, quality=0.9, minutes_ago=0)
        older_positive = case(2, quality=0.85, minutes_ago=30)
        negative = case(3, sentiment="negative", quality=0.5, minutes_ago=10)
        selected = select_daily_cases([older_positive, negative, newest_positive], [], daily_target=3)
        assert [c.id for c in selected] == [1, 3, 2]

    def test_already_published_ids_excluded(self):
        published = [case(1, "marketing", "life")]
        selected = select_daily_cases([case(1), case(2)], published, daily_target=10)
        assert [c.id for c in selected] == [2]


def revalidation_transport(requests):
    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"revalidated": True})
    return httpx.MockTransport(handler)


class TestCacheRevalidator:
    async def test_notifies_every_path(self):
        requests = []
        revalidator = CacheRevalidator(
            "innofeed.test", "secret", transport=revalidation_transport(requests)
        )
        assert await revalidator.notify() == 3
        assert [r.url.params["path"] for r in requests] == ["/cases", "/matrix", "/"]
        assert all(r.url.params["token"] == "secret" for r in requests)
        assert str(requests[0].url).startswith("https://innofeed.test/api/revalidate")

    async def test_missing_token_skips(self):
        requests = []
        revalidator = CacheRevalidator("innofeed.test", None, transport=revalidation_transport(requests))
        assert await revalidator.notify() == 0
        assert requests == []

    async def test_transport_error_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        revalidator = CacheRevalidator("https://innofeed.test", "t", transport=httpx.MockTransport(handler))
        assert await revalidator.notify() == 0


class TestPublisher:
    """Stage run against the store."""

    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def make(self, db, tracker, requests):
        def factory(daily_target=200):
            revalidator = CacheRevalidator(
                "https://innofeed.test", "secret", transport=revalidation_transport(requests)
            )
            return Publisher(db, tracker, revalidator, PublishConfig(daily_target=daily_target), "UTC")
        return factory

    async def test_publishes_ready_cases_and_revalidates(self, db, source, make, requests):
        cases = await add_cases(db, source.id, [
            {"innovation_type": t, "insurance_line": line} for t, line in MATRIX_CELLS
        ])
        summary = await make().run()

        assert summary["published"] == 6
        assert len(requests) == 3
        async with db.get_session() as session:
            for c in cases:
                stored = await CaseRepository.get_by_id(session, c.id)
                assert stored.status == "published"
                assert stored.published_at is not None

    async def test_daily_quota_across_runs(self, db, source, make):
        await add_cases(db, source.id, [{"minutes_ago": i} for i in range(4)])
        publisher = make(daily_target=2)

        first = await publisher.run()
        second = await publisher.run()

        assert first["published"] == 2
        assert second["published"] == 0
        assert second["total_today"] == 2

    async def test_no_revalidation_when_nothing_published(self, db, source, make, requests):
        summary = await make().run()
        assert summary["published"] == 0
        assert requests == []

    async def test_only_ready_cases_published(self, db, source, make):
        await add_cases(db, source.id, [
            {"status": "pending_supplement"},
            {"status": "rejected"},
            {"status": "ready"},
        ])
        summary = await make().run()
        assert summary["published"] == 1

    async def test_guarded_publish(self, db, source):
        (rejected,) = await add_cases(db, source.id, [{"status": "rejected"}])
        async with db.get_session() as session:
            assert not await CaseRepository.publish(session, rejected.id, utcnow())

    async def test_status_reports_coverage(self, db, source, make):
        await add_cases(db, source.id, [
            {"innovation_type": "product", "insurance_line": "health"},
            {"innovation_type": "product", "insurance_line": "health", "minutes_ago": 5},
            {"innovation_type": "marketing", "insurance_line": "life"},
            {"status": "pending_supplement"},
        ])
        publisher = make()
        await publisher.run()
        status = await publisher.status()

        assert status["published_today"] == 3
        assert status["target"] == 200
        assert status["ready"] == 0
        assert status["coverage_by_cell"]["product-health"] == 2
        assert status["coverage_by_cell"]["marketing-life"] == 1
        assert status["coverage_by_cell"]["product-property"] == 0
