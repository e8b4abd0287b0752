"""SQLAlchemy 2.0 async database models."""
from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text,
)
from sqlalchemy.orm import declarative_base, relationship

from innofeed.utils.time_utils import utcnow

Base = declarative_base()


class Source(Base):
    """Configured origin: RSS feed, website or AI search channel."""
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    url = Column(String(2000), nullable=False)
    type = Column(String(20), nullable=False, default="rss")  # rss, website, ai_search
    language = Column(String(10), nullable=False, default="en")
    region = Column(String(50), nullable=False, default="global")
    quality_score = Column(Float, default=0.5)
    check_frequency = Column(String(50), nullable=True)  # "4 hours", "30 minutes"
    last_checked_at = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    # Status values: active, probation, disabled
    config = Column(JSON, nullable=False, default=dict)
    consecutive_failures = Column(Integer, default=0)
    last_error = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    raw_items = relationship("RawItem", back_populates="source")


class RawItem(Base):
    """Collected candidate document awaiting or past screening."""
    __tablename__ = "raw_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False, index=True)
    source_url = Column(String(2000), nullable=False)
    title = Column(String(1000), nullable=False)
    content = Column(Text, nullable=False)
    language = Column(String(10), nullable=False, default="en")
    collected_at = Column(DateTime, nullable=False, default=utcnow)
    # Dedup key, see utils.text.content_hash
    content_hash = Column(String(64), nullable=False, unique=True, index=True)
    screening_status = Column(String(20), nullable=False, default="pending")
    # Status values: pending, passed, rejected
    screening_result = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    source = relationship("Source", back_populates="raw_items")
    case = relationship("Case", back_populates="raw_item", uselist=False)

    __table_args__ = (
        Index("ix_raw_items_status_collected", "screening_status", "collected_at"),
    )


class Case(Base):
    """Analyzed, publishable case derived from exactly one raw item."""
    __tablename__ = "cases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raw_item_id = Column(Integer, ForeignKey("raw_items.id"), unique=True, nullable=False)
    innovation_type = Column(String(20), nullable=False)
    insurance_line = Column(String(20), nullable=False)
    sentiment = Column(String(20), nullable=False)
    headline_en = Column(String(500), nullable=False)
    headline_zh = Column(String(500), nullable=False)
    analysis_en = Column(JSON, nullable=False)
    analysis_zh = Column(JSON, nullable=False)
    source_urls = Column(JSON, nullable=False, default=list)
    company_names = Column(JSON, nullable=False, default=list)
    region = Column(String(50), nullable=False, default="global")
    status = Column(String(30), nullable=False, default="ready", index=True)
    # Status values: pending_supplement, ready, published, rejected
    supplement_rounds = Column(Integer, default=0)
    quality_score = Column(Float, nullable=True)
    published_at = Column(DateTime, nullable=True, index=True)
    upvotes = Column(Integer, default=0)
    downvotes = Column(Integer, default=0)
    view_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    raw_item = relationship("RawItem", back_populates="case")

    __table_args__ = (
        Index("ix_cases_cell", "innovation_type", "insurance_line"),
    )


class PipelineRun(Base):
    """Observability record for one stage invocation."""
    __tablename__ = "pipeline_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pipeline_name = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="running")
    # Status values: running, completed, failed
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    items_processed = Column(Integer, default=0)
    items_succeeded = Column(Integer, default=0)
    items_failed = Column(Integer, default=0)
    # [{"message": ..., "timestamp": ..., "item_id": ...}]
    error_log = Column(JSON, nullable=False, default=list)
    run_metadata = Column("metadata", JSON, nullable=False, default=dict)
