"""Compliance analysis schemas.

Pydantic models shared by the catalog, the analysis orchestrator, the
scoring aggregator and versioned persistence. Statuses, modes and scoring
regimes are closed enumerations; the API serializes them by value.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

TEMP_RESULT_PREFIX = "temp-"


class ResultStatus(str, Enum):
    """Classification of one requirement against a document."""

    FOUND = "FOUND"
    NEEDS_CLARIFICATION = "NEEDS_CLARIFICATION"
    MISSING = "MISSING"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class AnalysisMode(str, Enum):
    """How requirements are batched into LLM calls."""

    FAST = "fast"
    NORMAL = "normal"


class ScoringRegime(str, Enum):
    """How per-item results are reduced to a summary."""

    PASS_RATE = "pass_rate"
    RISK_POINTS = "risk_points"


class WhitepaperSection(str, Enum):
    """Mutually exclusive parts of a MiCA whitepaper template."""

    A = "A"
    B = "B"
    C = "C"


class ScoringRule(BaseModel):
    """Structured form of a free-text scoring-logic string.

    ``outcomes`` maps an answer label (e.g. "Yes") to its point value.
    A rule is either "Not scored" or carries at least one numeric outcome.
    """

    model_config = ConfigDict(frozen=True)

    raw: str = ""
    outcomes: Dict[str, int] = Field(default_factory=dict)
    not_scored: bool = False

    @property
    def is_scored(self) -> bool:
        return not self.not_scored and bool(self.outcomes)

    @property
    def max_points(self) -> int:
        """Largest point value any answer can earn; 0 for unscored rules."""
        if not self.is_scored:
            return 0
        return max(self.outcomes.values())

    @property
    def min_points(self) -> int:
        if not self.is_scored:
            return 0
        return min(self.outcomes.values())

    def points_for(self, answer: Optional[str]) -> Optional[int]:
        """Return the points for an answer label, or None when it is not an outcome."""
        if not answer or not self.outcomes:
            return None
        normalized = answer.strip().strip("\"'").rstrip(".,;:!?").strip().lower()
        for label, points in self.outcomes.items():
            if label.lower() == normalized:
                return points

        # "Yes - the token is pegged" style answers; "Not sure" must beat "No"
        best: Optional[str] = None
        for label in self.outcomes:
            prefix = label.lower()
            if not normalized.startswith(prefix):
                continue
            rest = normalized[len(prefix):]
            if rest and rest[0].isalnum():
                continue
            if best is None or len(label) > len(best):
                best = label
        return self.outcomes[best] if best is not None else None


class RequirementItem(BaseModel):
    """One compliance requirement with its parsed scoring rule."""

    id: UUID
    category: str
    item_name: str
    description: str = ""
    weight: int = 1
    scoring_logic: Optional[str] = None
    field_type: Optional[str] = None
    sort_order: int = 0
    rule: ScoringRule = Field(default_factory=ScoringRule)

    @property
    def is_scored(self) -> bool:
        """Whether the item contributes to a risk-point aggregate."""
        return self.weight != 0 and self.rule.is_scored


class RequirementTemplate(BaseModel):
    """A requirement catalog ready for analysis."""

    id: UUID
    name: str
    type: str
    scoring_regime: ScoringRegime
    items: List[RequirementItem] = Field(default_factory=list)


class TemplateSummary(BaseModel):
    """Listing entry for an active template."""

    id: UUID
    name: str
    type: str
    description: Optional[str] = None
    scoring_regime: ScoringRegime
    item_count: int = 0
    categories: List[str] = Field(default_factory=list)


class OrderedChunk(BaseModel):
    """A stored chunk as returned to callers, ordered by ``chunk_index``."""

    chunk_index: int
    content: str
    word_count: int = 0
    page_number: Optional[int] = None
    start_offset: Optional[int] = None
    end_offset: Optional[int] = None


class AnalysisResult(BaseModel):
    """Outcome for one requirement in one analysis run.

    ``result_id`` starts with ``temp-`` until the run has been saved.
    """

    result_id: str
    item_id: UUID
    category: str = ""
    item_name: str = ""
    status: ResultStatus
    coverage_score: int = 0
    reasoning: str = ""
    evidence_snippets: List[str] = Field(default_factory=list)
    selected_answer: Optional[str] = None
    manually_overridden: bool = False
    check_id: Optional[UUID] = None

    @property
    def is_temporary(self) -> bool:
        return self.result_id.startswith(TEMP_RESULT_PREFIX)


class AnalysisSummary(BaseModel):
    """Aggregate of one run. Status counts are always filled."""

    scoring_regime: ScoringRegime
    total_items: int = 0
    found_items: int = 0
    clarification_items: int = 0
    missing_items: int = 0
    not_applicable_items: int = 0
    applicable_items: int = 0
    overall_score: int = 0
    # Risk-point regime only
    total_risk_score: Optional[int] = None
    max_risk_score: Optional[int] = None
    risk_percentage: Optional[int] = None
    scored_items: Optional[int] = None
    high_risk_items: Optional[int] = None
    medium_risk_items: Optional[int] = None
    low_risk_items: Optional[int] = None
    no_risk_items: Optional[int] = None


class AnalysisOutcome(BaseModel):
    """Unsaved result of ``analyze``."""

    document_id: UUID
    template_id: UUID
    template_name: str
    mode: AnalysisMode
    results: List[AnalysisResult]
    summary: AnalysisSummary
    timed_out: bool = False
    failed_units: List[str] = Field(default_factory=list)


class CheckSummary(BaseModel):
    """One saved version of a (document, template) analysis."""

    check_id: UUID
    document_id: UUID
    template_id: UUID
    version: int
    status: str = "completed"
    summary: AnalysisSummary
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StoredAnalysis(BaseModel):
    """A saved analysis loaded back with its results."""

    check: CheckSummary
    template_name: str
    version: int
    results: List[AnalysisResult]
    summary: AnalysisSummary


class SaveOutcome(BaseModel):
    """Result of ``save_analysis``.

    ``results_saved`` is False when the check record was written but its
    results were not; ``results_error`` then holds the cause.
    """

    check_id: UUID
    version: int
    overwritten: bool = False
    results_saved: bool = True
    results_error: Optional[str] = None
    hash_saved: Optional[bool] = None

    @property
    def is_partial(self) -> bool:
        return not self.results_saved


class StatusUpdateOutcome(BaseModel):
    """Result of a manual status override."""

    result_id: str
    status: ResultStatus
    temporary: bool = False
    coverage_score: Optional[int] = None
    manually_overridden: bool = True


class AnalyzeRequest(BaseModel):
    """Request body for running an analysis."""

    document_id: UUID
    template_id: UUID
    mode: AnalysisMode = AnalysisMode.NORMAL
    categories: Optional[List[str]] = Field(None, description="Restrict to these categories")
    whitepaper_section: Optional[WhitepaperSection] = Field(
        None, description="Restrict a whitepaper template to Part A, B or C"
    )


class SaveAnalysisRequest(BaseModel):
    """Request body for saving an analysis run."""

    document_id: UUID
    template_id: UUID
    results: List[AnalysisResult]
    summary: Optional[AnalysisSummary] = Field(None, description="Recomputed from the results when omitted")
    overwrite: bool = False
    target_version: Optional[int] = Field(None, ge=1)
    doc_hash: Optional[str] = Field(None, min_length=64, max_length=64)


class StatusUpdateRequest(BaseModel):
    """Request body for a manual status override."""

    status: ResultStatus
