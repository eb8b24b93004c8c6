"""Analysis orchestrator.

Runs a requirement template against a document's stored chunks through the
LLM and returns one result per requirement. Requirements are submitted
either all at once ("fast") or one category per call ("normal"). Failures
are confined to the unit of work that failed: its requirements come back as
NEEDS_CLARIFICATION with the cause in the reasoning, and the remaining units
still run. A wall-clock budget, checked between units, stops a slow run and
marks whatever was not reached.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
from uuid import UUID, uuid4

from mica_checker.core.config import AnalysisSettings, settings
from mica_checker.core.exceptions import (
    AcquisitionError,
    CheckNotFoundError,
    ContentUnavailableError,
    DocumentNotFoundError,
)
from mica_checker.core.llm_client import LLMClient
from mica_checker.core.rate_limiter import RequestThrottle
from mica_checker.schemas.compliance import (
    TEMP_RESULT_PREFIX,
    AnalysisMode,
    AnalysisOutcome,
    AnalysisResult,
    OrderedChunk,
    RequirementItem,
    ResultStatus,
    ScoringRegime,
    WhitepaperSection,
)
from mica_checker.services.analysis.prompts import SYSTEM_PROMPT, build_analysis_prompt, build_context
from mica_checker.services.analysis.response_parser import ItemAssessment, parse_assessments
from mica_checker.services.catalog.catalog_service import RequirementCatalog, filter_items
from mica_checker.services.compliance_store import ComplianceStore
from mica_checker.services.scoring.aggregator import (
    HIGH_RISK_THRESHOLD,
    ScoringAggregator,
    round_half_up,
)
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

TIMEOUT_REASONING = "Analysis stopped due to timeout protection before this requirement was assessed"
FAST_FAILURE_PREFIX = "Analysis failed"
CATEGORY_FAILURE_PREFIX = "Category analysis failed"

ReingestFn = Callable[[UUID], Awaitable[object]]


def temp_result_id(item_id: UUID) -> str:
    """Identifier for a result that has not been saved yet."""
    return f"{TEMP_RESULT_PREFIX}{item_id}-{uuid4().hex[:8]}"


def group_by_category(items: Iterable[RequirementItem]) -> "OrderedDict[str, List[RequirementItem]]":
    """Group items by category in order of first appearance."""
    groups: "OrderedDict[str, List[RequirementItem]]" = OrderedDict()
    for item in items:
        groups.setdefault(item.category, []).append(item)
    return groups


def status_for_coverage(score: int) -> ResultStatus:
    if score >= 80:
        return ResultStatus.FOUND
    if score >= 40:
        return ResultStatus.NEEDS_CLARIFICATION
    return ResultStatus.MISSING


def status_for_risk(points: int) -> ResultStatus:
    if points >= HIGH_RISK_THRESHOLD:
        return ResultStatus.FOUND
    if points > 0:
        return ResultStatus.NEEDS_CLARIFICATION
    return ResultStatus.MISSING


def degraded_result(item: RequirementItem, reasoning: str) -> AnalysisResult:
    return AnalysisResult(
        result_id=temp_result_id(item.id),
        item_id=item.id,
        category=item.category,
        item_name=item.item_name,
        status=ResultStatus.NEEDS_CLARIFICATION,
        coverage_score=0,
        reasoning=reasoning,
    )


def risk_points_for(item: RequirementItem, assessment: ItemAssessment) -> Optional[int]:
    """Points earned by an assessment under the item's scoring rule.

    The selected answer is authoritative; a bare numeric score is accepted
    when it is one of the rule's outcomes and clamped into range otherwise.
    """
    rule = item.rule
    points = rule.points_for(assessment.selected_answer)
    if points is not None:
        return points

    numeric = assessment.numeric_score
    if numeric is None:
        return None
    candidate = round_half_up(numeric)
    if candidate in rule.outcomes.values():
        return candidate
    return min(max(candidate, rule.min_points), rule.max_points)


def build_result(item: RequirementItem, assessment: ItemAssessment, regime: ScoringRegime) -> AnalysisResult:
    """Turn one validated assessment into a result for ``item``."""
    selected_answer = assessment.selected_answer
    reasoning = assessment.reasoning or "No reasoning provided"

    if regime == ScoringRegime.RISK_POINTS:
        if not item.is_scored:
            score = 0
            status = assessment.status or ResultStatus.MISSING
        else:
            points = risk_points_for(item, assessment)
            if points is None:
                score = 0
                status = ResultStatus.NEEDS_CLARIFICATION
                reasoning = f"No scorable answer returned. {reasoning}"
            else:
                score = points
                status = assessment.status or status_for_risk(points)
    else:
        numeric = assessment.numeric_score
        if numeric is None:
            score = 0
            status = assessment.status or ResultStatus.NEEDS_CLARIFICATION
        else:
            score = min(max(round_half_up(max(numeric, 0.0)), 0), 100)
            status = assessment.status or status_for_coverage(score)

    return AnalysisResult(
        result_id=temp_result_id(item.id),
        item_id=item.id,
        category=item.category,
        item_name=item.item_name,
        status=status,
        coverage_score=score,
        reasoning=reasoning,
        evidence_snippets=assessment.evidence_snippets,
        selected_answer=selected_answer,
    )


def align_assessments(
    items: Sequence[RequirementItem], assessments: List[ItemAssessment]
) -> List[ItemAssessment]:
    """Match assessments to items.

    Mapping is positional. When every assessment echoes a distinct
    requirement id and together they cover exactly the submitted items, the
    echoed ids win over the positions.
    """
    echoed = [assessment.requirement_id for assessment in assessments]
    expected = [str(item.id) for item in items]
    if None in echoed or len(set(echoed)) != len(echoed) or set(echoed) != set(expected):
        return assessments
    by_id = dict(zip(echoed, assessments))
    return [by_id[item_id] for item_id in expected]


@dataclass
class UnitRunReport:
    """Outcome of running a sequence of units."""
    results: Dict[UUID, AnalysisResult] = field(default_factory=dict)
    degraded: Set[UUID] = field(default_factory=set)
    failed_units: List[str] = field(default_factory=list)
    timed_out: bool = False


class AnalysisOrchestrator:
    """Produces one analysis result per applicable requirement."""

    def __init__(
        self,
        store: ComplianceStore,
        llm_client: LLMClient,
        catalog: Optional[RequirementCatalog] = None,
        aggregator: Optional[ScoringAggregator] = None,
        reingest: Optional[ReingestFn] = None,
        analysis_settings: Optional[AnalysisSettings] = None,
        throttle: Optional[RequestThrottle] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            store: Chunk, template and check storage
            llm_client: Client used for every model call
            catalog: Template loader; built over ``store`` when omitted
            aggregator: Summary builder
            reingest: Coroutine that re-acquires a document's content from
                its original source; called once when no chunks exist
            analysis_settings: Context and time budgets
            throttle: Spacing between model calls
            clock: Monotonic clock used for the time budget
        """
        self.store = store
        self.llm_client = llm_client
        self.catalog = catalog or RequirementCatalog(store)
        self.aggregator = aggregator or ScoringAggregator()
        self.reingest = reingest
        self.settings = analysis_settings or settings.analysis
        self.throttle = throttle or RequestThrottle(self.settings.min_request_interval)
        self.clock = clock

    async def analyze(
        self,
        document_id: UUID,
        template_id: UUID,
        mode: AnalysisMode = AnalysisMode.NORMAL,
        categories: Optional[Sequence[str]] = None,
        whitepaper_section: Optional[WhitepaperSection] = None,
    ) -> AnalysisOutcome:
        """Analyze a document against a template.

        Args:
            document_id: Document whose chunks form the context
            template_id: Requirement template
            mode: "fast" for one call, "normal" for one call per category
            categories: Optional category subset
            whitepaper_section: Optional whitepaper part (A, B or C)

        Returns:
            Unsaved results in requirement order plus their summary

        Raises:
            DocumentNotFoundError: If the document does not exist
            TemplateNotFoundError: If the template does not exist
            ContentUnavailableError: If no chunks exist even after re-ingestion
        """
        template = await self.catalog.get_template(template_id)
        items = filter_items(template.items, categories, whitepaper_section)

        LOGGER.info(
            f"Starting {mode.value} analysis of document {document_id} with template '{template.name}'",
            extra={
                "document_id": str(document_id),
                "template_id": str(template_id),
                "item_count": len(items),
                "regime": template.scoring_regime.value,
            },
        )

        if not items:
            LOGGER.warning(f"No requirements selected for template {template_id}")
            return AnalysisOutcome(
                document_id=document_id,
                template_id=template_id,
                template_name=template.name,
                mode=mode,
                results=[],
                summary=self.aggregator.summarize(template, []),
            )

        chunks = await self._load_chunks(document_id, self.settings.max_context_chunks)
        context = build_context(chunks)

        if mode == AnalysisMode.FAST:
            units = [("all requirements", items)]
            failure_prefix = FAST_FAILURE_PREFIX
        else:
            units = list(group_by_category(items).items())
            failure_prefix = CATEGORY_FAILURE_PREFIX

        report = await self._run_units(units, template.scoring_regime, context, failure_prefix)
        results = [report.results[item.id] for item in items]

        outcome = AnalysisOutcome(
            document_id=document_id,
            template_id=template_id,
            template_name=template.name,
            mode=mode,
            results=results,
            summary=self.aggregator.summarize(template, results),
            timed_out=report.timed_out,
            failed_units=report.failed_units,
        )

        LOGGER.info(
            f"Analysis finished: {len(results)} results, overall score {outcome.summary.overall_score}",
            extra={
                "document_id": str(document_id),
                "failed_units": len(report.failed_units),
                "timed_out": report.timed_out,
            },
        )
        return outcome

    async def regenerate(self, check_id: UUID) -> AnalysisOutcome:
        """Re-assess the unresolved requirements of a saved check.

        Items that are MISSING or NEEDS_CLARIFICATION and were not manually
        overridden are re-run with a larger context and their previous
        assessment. Everything else is carried over unchanged. A unit that
        fails again keeps its previous results.

        Raises:
            CheckNotFoundError: If the check does not exist
        """
        check = await self.store.get_check(check_id)
        if check is None:
            raise CheckNotFoundError(f"Analysis {check_id} not found")

        template = await self.catalog.get_template(check.template_id)
        stored = await self.store.get_results(check_id)

        previous: Dict[UUID, AnalysisResult] = {
            result.item_id: result
            for result in stored
            if result.status in (ResultStatus.MISSING, ResultStatus.NEEDS_CLARIFICATION)
            and not result.manually_overridden
        }
        items = [item for item in template.items if item.id in previous]

        LOGGER.info(
            f"Regenerating {len(items)} of {len(stored)} results for check {check_id}",
            extra={"check_id": str(check_id)},
        )

        report = UnitRunReport()
        if items:
            chunks = await self._load_chunks(check.document_id, self.settings.regenerate_context_chunks)
            context = build_context(chunks)
            units = list(group_by_category(items).items())
            report = await self._run_units(
                units, template.scoring_regime, context, CATEGORY_FAILURE_PREFIX, previous
            )

        merged = []
        for result in stored:
            fresh = report.results.get(result.item_id)
            if fresh is not None and result.item_id in previous and result.item_id not in report.degraded:
                merged.append(fresh)
            else:
                merged.append(result)

        return AnalysisOutcome(
            document_id=check.document_id,
            template_id=check.template_id,
            template_name=template.name,
            mode=AnalysisMode.NORMAL,
            results=merged,
            summary=self.aggregator.summarize(template, merged),
            timed_out=report.timed_out,
            failed_units=report.failed_units,
        )

    async def _load_chunks(self, document_id: UUID, limit: int) -> List[OrderedChunk]:
        document = await self.store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        chunks = await self.store.get_chunks(document_id, limit=limit)
        if chunks:
            return chunks

        if self.reingest is None:
            raise ContentUnavailableError(f"No content available for document {document_id}")

        LOGGER.warning(
            f"No chunks for document {document_id}, re-ingesting from {document.file_path}",
            extra={"document_id": str(document_id)},
        )
        try:
            await self.reingest(document_id)
        except AcquisitionError as e:
            raise ContentUnavailableError(
                f"No content available for document {document_id}: {e.message}", original_error=e
            ) from e

        chunks = await self.store.get_chunks(document_id, limit=limit)
        if not chunks:
            raise ContentUnavailableError(
                f"No content available for document {document_id} after re-ingestion"
            )
        return chunks

    async def _run_units(
        self,
        units: Sequence[Tuple[str, List[RequirementItem]]],
        regime: ScoringRegime,
        context: str,
        failure_prefix: str,
        previous: Optional[Mapping[UUID, AnalysisResult]] = None,
    ) -> UnitRunReport:
        """Run units sequentially under the time budget."""
        report = UnitRunReport()
        deadline = self.clock() + self.settings.time_budget_seconds

        for position, (unit_name, unit_items) in enumerate(units):
            if self.clock() >= deadline:
                skipped = units[position:]
                LOGGER.warning(
                    f"Time budget of {self.settings.time_budget_seconds}s exceeded, "
                    f"skipping {len(skipped)} remaining units",
                    extra={"skipped_units": [name for name, _ in skipped]},
                )
                report.timed_out = True
                for _, pending_items in skipped:
                    for item in pending_items:
                        report.results[item.id] = degraded_result(item, TIMEOUT_REASONING)
                        report.degraded.add(item.id)
                break

            await self.throttle.wait()
            prompt = build_analysis_prompt(unit_items, regime, context, previous)

            try:
                response_text = await self.llm_client.generate_content(
                    contents=prompt,
                    system_instruction=SYSTEM_PROMPT,
                )
                assessments = align_assessments(unit_items, parse_assessments(response_text, len(unit_items)))
            except Exception as e:
                LOGGER.error(
                    f"Analysis unit '{unit_name}' failed: {e}",
                    exc_info=True,
                    extra={"unit": unit_name, "item_count": len(unit_items)},
                )
                report.failed_units.append(unit_name)
                reasoning = f"{failure_prefix}: {e}"
                for item in unit_items:
                    report.results[item.id] = degraded_result(item, reasoning)
                    report.degraded.add(item.id)
                continue

            for item, assessment in zip(unit_items, assessments):
                report.results[item.id] = build_result(item, assessment, regime)

            LOGGER.info(
                f"Analyzed unit '{unit_name}' ({len(unit_items)} requirements)",
                extra={"unit": unit_name},
            )

        return report

