"""Command line entry point: run pipeline stages once or on a schedule."""
import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from innofeed import __version__
from innofeed.config_loader import AppConfig, ConfigLoader
from innofeed.db.engine import DatabaseEngine
from innofeed.db.repo import CaseRepository, PipelineRunRepository, RawItemRepository
from innofeed.errors import ConfigurationError
from innofeed.logging_setup import get_logger, setup_logging
from innofeed.pipeline.analyzer import Analyzer
from innofeed.pipeline.llm import RequestThrottle, StructuredGenerator, build_backends
from innofeed.pipeline.publisher import CacheRevalidator, Publisher
from innofeed.pipeline.reviewer import Reviewer
from innofeed.pipeline.screener import Screener
from innofeed.pipeline.tracker import RunTracker
from innofeed.settings import Settings
from innofeed.sources.service import CollectionService

logger = get_logger("main")

STAGES = ("collect", "screen", "analyze", "review", "publish")

# Stages run by ``innofeed all``; review re-checks every case and runs on its own schedule
ALL_STAGES = ("collect", "screen", "analyze", "publish")

# Runs listed by ``innofeed status``
RECENT_RUNS = 10


class App:
    """Wires settings, config and the store into the pipeline stages."""

    def __init__(
        self,
        settings: Settings,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.config = config
        self.db = DatabaseEngine(settings.database_url)
        self.tracker = RunTracker(self.db)
        self.generator = StructuredGenerator(
            build_backends(settings, config.llm, transport=transport),
            retry=config.retry,
            throttle=RequestThrottle(config.llm.min_interval_seconds),
        )
        revalidator = CacheRevalidator(
            settings.site_url,
            settings.revalidate_token,
            paths=config.publish.revalidate_paths,
            timeout=config.publish.revalidate_timeout,
            transport=transport,
        )

        self.collection = CollectionService(
            self.db, config, self.generator, self.tracker, transport=transport
        )
        self.screener = Screener(self.db, self.generator, self.tracker, config.screen)
        self.analyzer = Analyzer(self.db, self.generator, self.tracker, config.analyze)
        self.reviewer = Reviewer(self.db, self.generator, self.tracker, config.review)
        self.publisher = Publisher(
            self.db, self.tracker, revalidator, config.publish, settings.app_timezone
        )

    async def start(self) -> None:
        await self.db.init()
        logger.info("database_initialized", url=self.settings.database_url.split("///")[0])

    async def close(self) -> None:
        await self.db.close()

    async def status(self) -> Dict[str, Any]:
        """Publication coverage plus store counters and the latest runs."""
        summary = await self.publisher.status()
        async with self.db.get_session() as session:
            summary["raw_items_by_status"] = await RawItemRepository.count_by_status(session)
            summary["cases_by_status"] = await CaseRepository.count_by_status(session)
            runs = await PipelineRunRepository.get_recent(session, limit=RECENT_RUNS)
        summary["recent_runs"] = [
            {
                "id": run.id,
                "pipeline": run.pipeline_name,
                "status": run.status,
                "started_at": run.started_at.isoformat() if run.started_at else None,
                "processed": run.items_processed,
                "failed": run.items_failed,
            }
            for run in runs
        ]
        return summary

    def stage(self, name: str) -> Callable[[], Awaitable[Dict[str, Any]]]:
        return {
            "collect": self.collection.run,
            "screen": self.screener.run,
            "analyze": self.analyzer.run,
            "review": self.reviewer.run,
            "publish": self.publisher.run,
            "status": self.status,
        }[name]

    async def run_stages(self, names: List[str]) -> Dict[str, Any]:
        """Run stages in order; the first uncaught failure stops the sequence."""
        results = {}
        for name in names:
            results[name] = await self.stage(name)()
        return results


def parse_overrides(pairs: Optional[List[str]]) -> Dict[str, str]:
    """``["screen.batch_size=3"]`` -> ``{"screen.batch_size": "3"}``."""
    overrides = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid override (expected key=value): {pair}")
        overrides[key.strip()] = value.strip()
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="innofeed",
        description="Insurance innovation news pipeline",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="YAML config path (overrides CONFIG_PATH)")
    parser.add_argument(
        "--set",
        action="append",
        dest="overrides",
        metavar="KEY=VALUE",
        help="Override a config value, e.g. --set screen.batch_size=3",
    )
    parser.add_argument("--log-level", help="Log level (overrides LOG_LEVEL)")
    parser.add_argument(
        "command",
        choices=STAGES + ("status", "all", "schedule"),
        help="Stage to run",
    )
    return parser


def print_summary(summary: Dict[str, Any]) -> None:
    print(json.dumps(summary, ensure_ascii=False, indent=2, default=str))


async def run_scheduler(app: App) -> None:
    """Run stages on interval/cron triggers until cancelled."""
    schedule = app.config.schedule
    timezone = pytz.timezone(app.settings.app_timezone)

    def job(name: str):
        async def run_job() -> None:
            try:
                summary = await app.stage(name)()
                logger.info("scheduled_stage_done", stage=name, status=summary.get("status"))
            except Exception as e:
                # Run is already recorded as failed; keep the scheduler alive
                logger.error("scheduled_stage_failed", stage=name, error=str(e))
        return run_job

    scheduler = AsyncIOScheduler(timezone=timezone)
    jobs = [
        ("collect", IntervalTrigger(hours=schedule.collect_interval_hours)),
        ("screen", IntervalTrigger(hours=schedule.screen_interval_hours)),
        ("analyze", IntervalTrigger(hours=schedule.analyze_interval_hours)),
        ("review", CronTrigger(hour=schedule.review_hour, minute=0, timezone=timezone)),
        ("publish", CronTrigger(hour=schedule.publish_hour, minute=0, timezone=timezone)),
    ]
    for name, trigger in jobs:
        scheduler.add_job(
            job(name),
            trigger=trigger,
            id=name,
            name=f"{name.capitalize()} stage",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    scheduler.start()
    logger.info("scheduler_started", jobs=[name for name, _ in jobs], timezone=str(timezone))
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        overrides = parse_overrides(args.overrides)
    except ValueError as e:
        parser.error(str(e))

    settings = Settings()
    setup_logging(args.log_level or settings.log_level, settings.log_format)

    loader = ConfigLoader(args.config or settings.config_path)
    loader.set_overrides(overrides)
    config = loader.load()
    logger.info("config_loaded", sources=len(config.sources), command=args.command)

    try:
        app = App(settings, config)
    except ConfigurationError as e:
        logger.error("startup_failed", error=str(e))
        return 1

    await app.start()
    try:
        if args.command == "schedule":
            await run_scheduler(app)
            return 0
        if args.command == "all":
            print_summary(await app.run_stages(list(ALL_STAGES)))
        else:
            print_summary(await app.stage(args.command)())
        return 0
    except Exception as e:
        logger.error("command_failed", command=args.command, error=str(e), exc_info=True)
        return 1
    finally:
        await app.close()


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
