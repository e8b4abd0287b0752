"""Pipeline package."""
from innofeed.pipeline.analyzer import Analyzer, AnalysisOutcome, default_quality_check
from innofeed.pipeline.dedup import Deduplicator
from innofeed.pipeline.llm import (
    ChatBackend, GenerationMode, GenerationResult, RequestThrottle, StructuredGenerator,
    build_backends, parse_structured,
)
from innofeed.pipeline.normalize import (
    Candidate, NormalizedItem, dedup_key, extract_company_names, normalize_candidate,
)
from innofeed.pipeline.publisher import CacheRevalidator, Publisher, select_daily_cases
from innofeed.pipeline.region import RegionDetector, infer_region
from innofeed.pipeline.reviewer import Reviewer
from innofeed.pipeline.schemas import MATRIX_CELLS
from innofeed.pipeline.screener import ScreeningDecision, Screener, decide, screen_item
from innofeed.pipeline.tracker import RunContext, RunTracker

__all__ = [
    "Analyzer", "AnalysisOutcome", "default_quality_check",
    "Deduplicator",
    "ChatBackend", "GenerationMode", "GenerationResult", "RequestThrottle", "StructuredGenerator",
    "build_backends", "parse_structured",
    "Candidate", "NormalizedItem", "dedup_key", "extract_company_names", "normalize_candidate",
    "CacheRevalidator", "Publisher", "select_daily_cases",
    "RegionDetector", "infer_region",
    "Reviewer",
    "MATRIX_CELLS",
    "ScreeningDecision", "Screener", "decide", "screen_item",
    "RunContext", "RunTracker",
]
