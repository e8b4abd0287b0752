"""Taxonomy and strict output schemas for structured generation.

Classification values are closed enumerations: anything outside them fails
validation and is treated as malformed output.
"""
from typing import List, Literal, Optional, Tuple, get_args

from pydantic import BaseModel, Field

InnovationType = Literal["product", "marketing"]
InsuranceLine = Literal["property", "health", "life"]
Sentiment = Literal["positive", "negative"]
CaseStatus = Literal["pending_supplement", "ready", "published", "rejected"]

INNOVATION_TYPES: Tuple[str, ...] = get_args(InnovationType)
INSURANCE_LINES: Tuple[str, ...] = get_args(InsuranceLine)
SENTIMENTS: Tuple[str, ...] = get_args(Sentiment)

# Fixed enumeration order of the 2x3 publication matrix
MATRIX_CELLS: List[Tuple[str, str]] = [
    (innovation_type, line)
    for innovation_type in INNOVATION_TYPES
    for line in INSURANCE_LINES
]


def cell_key(innovation_type: str, insurance_line: str) -> str:
    return f"{innovation_type}-{insurance_line}"


class Classification(BaseModel):
    """Gate 3 output."""
    innovation_type: InnovationType
    insurance_line: InsuranceLine
    sentiment: Sentiment


class ScreeningOutput(BaseModel):
    """Three-gate screening response."""
    gate1_relevance: bool
    gate1_score: float = Field(ge=0.0, le=1.0)
    gate1_reason: str = ""
    gate2_novelty: bool
    gate2_score: float = Field(ge=0.0, le=1.0)
    gate2_reason: str = ""
    gate3_classification: Optional[Classification] = None
    priority_score: float = Field(default=0.0, ge=0.0, le=1.0)
    rejection_reason: Optional[str] = None


class AnalysisLayers(BaseModel):
    layer1: str = Field(min_length=1)
    layer2: str = Field(min_length=1)
    layer3: str = Field(min_length=1)
    layer4: str = Field(min_length=1)
    layer5: str = Field(min_length=1)


class AnalysisOutput(BaseModel):
    """Bilingual five-layer deep analysis."""
    headline_en: str = Field(min_length=1)
    headline_zh: str = Field(min_length=1)
    analysis_en: AnalysisLayers
    analysis_zh: AnalysisLayers
    company_names: List[str] = Field(default_factory=list)
    quality_notes: Optional[str] = None


class QualityIssue(BaseModel):
    check_item: str
    passed: bool
    issue_description: Optional[str] = None


class QualityCheckOutput(BaseModel):
    overall_pass: bool
    quality_score: float = Field(ge=0.0, le=1.0)
    issues: List[QualityIssue] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)
    ready_for_publication: bool


class ReviewOutput(BaseModel):
    keep: bool
    reason: str = ""


class MatrixCell(BaseModel):
    innovation_type: InnovationType
    insurance_line: InsuranceLine


class SearchQuery(BaseModel):
    query: str = Field(min_length=1)
    language: str = "en"
    target_matrix_cell: Optional[MatrixCell] = None
    region: Optional[str] = None
    priority: Literal["high", "medium", "low"] = "medium"


class SearchQueriesOutput(BaseModel):
    queries: List[SearchQuery] = Field(default_factory=list)


class SearchHit(BaseModel):
    title: str = ""
    url: str
    snippet: str = ""


class SearchResultsOutput(BaseModel):
    results: List[SearchHit] = Field(default_factory=list)
