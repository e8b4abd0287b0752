"""Database package."""
from innofeed.db.engine import DatabaseEngine
from innofeed.db.models import Base, Case, PipelineRun, RawItem, Source
from innofeed.db.repo import (
    CaseRepository, PipelineRunRepository, RawItemRepository, SourceRepository,
)

__all__ = [
    "Base", "Case", "PipelineRun", "RawItem", "Source",
    "DatabaseEngine",
    "CaseRepository", "PipelineRunRepository", "RawItemRepository", "SourceRepository",
]
