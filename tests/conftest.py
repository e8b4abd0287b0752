"""Shared fixtures: temporary SQLite store and zero-delay configs."""
import pytest

from innofeed.config_loader import (
    AnalyzeConfig,
    CollectConfig,
    HttpConfig,
    PublishConfig,
    RetryConfig,
    ReviewConfig,
    ScreenConfig,
)
from innofeed.db.engine import DatabaseEngine
from innofeed.pipeline.dedup import Deduplicator
from innofeed.pipeline.tracker import RunTracker

from factories import add_source


@pytest.fixture
async def db(tmp_path):
    engine = DatabaseEngine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await engine.init()
    yield engine
    await engine.close()


@pytest.fixture
def tracker(db):
    return RunTracker(db)


@pytest.fixture
def dedup(db):
    return Deduplicator(db)


@pytest.fixture
async def source(db):
    return await add_source(db)


@pytest.fixture
def http_config():
    return HttpConfig(timeout=5)


@pytest.fixture
def fast_retry():
    return RetryConfig(attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def collect_config():
    return CollectConfig(
        rss_delay_seconds=0,
        web_delay_seconds=0,
        fetch_delay_seconds=0,
        query_delay_seconds=0,
    )


@pytest.fixture
def screen_config():
    return ScreenConfig(batch_size=5, batch_pause_seconds=0)


@pytest.fixture
def analyze_config():
    return AnalyzeConfig(batch_size=8, batch_pause_seconds=0)


@pytest.fixture
def review_config():
    return ReviewConfig(pause_seconds=0)


@pytest.fixture
def publish_config():
    return PublishConfig(daily_target=200)
