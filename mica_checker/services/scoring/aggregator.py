"""Reduces per-item analysis results to a summary.

Two regimes:

- pass rate: ``overall_score`` is the share of applicable items found, 0-100.
- risk points: each scored item contributes its coverage score as risk
  points against the largest outcome of its scoring rule. ``overall_score``
  is the aggregate risk; ``risk_percentage`` relates it to the maximum.

Per-status counts are reported in both regimes.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, assert_never
from uuid import UUID

from mica_checker.schemas.compliance import (
    AnalysisResult,
    AnalysisSummary,
    RequirementItem,
    RequirementTemplate,
    ResultStatus,
    ScoringRegime,
)
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

HIGH_RISK_THRESHOLD = 1000
MEDIUM_RISK_THRESHOLD = 5


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (matches Math.round)."""
    return int(math.floor(value + 0.5))


@dataclass
class StatusCounts:
    found: int = 0
    clarification: int = 0
    missing: int = 0
    not_applicable: int = 0

    @property
    def total(self) -> int:
        return self.found + self.clarification + self.missing + self.not_applicable

    @property
    def applicable(self) -> int:
        return self.total - self.not_applicable

    def add(self, status: ResultStatus) -> None:
        match status:
            case ResultStatus.FOUND:
                self.found += 1
            case ResultStatus.NEEDS_CLARIFICATION:
                self.clarification += 1
            case ResultStatus.MISSING:
                self.missing += 1
            case ResultStatus.NOT_APPLICABLE:
                self.not_applicable += 1
            case _:
                assert_never(status)


def count_statuses(results: Iterable[AnalysisResult]) -> StatusCounts:
    counts = StatusCounts()
    for result in results:
        counts.add(result.status)
    return counts


class ScoringAggregator:
    """Builds :class:`AnalysisSummary` objects for either regime."""

    def summarize(
        self,
        template: RequirementTemplate,
        results: Sequence[AnalysisResult],
    ) -> AnalysisSummary:
        """Summarize results of one run of ``template``.

        Args:
            template: Template the results belong to; selects the regime
            results: Per-item results, in any order

        Returns:
            Summary with status counts and the regime's score
        """
        regime = template.scoring_regime
        if regime == ScoringRegime.PASS_RATE:
            return self.pass_rate_summary(results)
        if regime == ScoringRegime.RISK_POINTS:
            return self.risk_points_summary(results, {item.id: item for item in template.items})
        assert_never(regime)

    def pass_rate_summary(self, results: Sequence[AnalysisResult]) -> AnalysisSummary:
        counts = count_statuses(results)
        overall = 0
        if counts.applicable > 0:
            overall = round_half_up(counts.found / counts.applicable * 100)

        return AnalysisSummary(
            scoring_regime=ScoringRegime.PASS_RATE,
            total_items=counts.total,
            found_items=counts.found,
            clarification_items=counts.clarification,
            missing_items=counts.missing,
            not_applicable_items=counts.not_applicable,
            applicable_items=counts.applicable,
            overall_score=overall,
        )

    def risk_points_summary(
        self,
        results: Sequence[AnalysisResult],
        items: Dict[UUID, RequirementItem],
    ) -> AnalysisSummary:
        counts = count_statuses(results)

        total_risk = 0
        max_risk = 0
        scored = 0
        high = medium = low = none = 0

        for result in results:
            item: Optional[RequirementItem] = items.get(result.item_id)
            if item is None or not item.is_scored:
                continue
            if result.status == ResultStatus.NOT_APPLICABLE:
                continue

            item_max = max(item.rule.max_points, 0)
            points = min(max(result.coverage_score, 0), item_max)

            scored += 1
            total_risk += points
            max_risk += item_max

            if points >= HIGH_RISK_THRESHOLD:
                high += 1
            elif points >= MEDIUM_RISK_THRESHOLD:
                medium += 1
            elif points > 0:
                low += 1
            else:
                none += 1

        percentage = round_half_up(total_risk / max_risk * 100) if max_risk > 0 else 0

        LOGGER.debug(
            f"Risk summary: {total_risk}/{max_risk} over {scored} scored items",
            extra={"risk_percentage": percentage},
        )

        return AnalysisSummary(
            scoring_regime=ScoringRegime.RISK_POINTS,
            total_items=counts.total,
            found_items=counts.found,
            clarification_items=counts.clarification,
            missing_items=counts.missing,
            not_applicable_items=counts.not_applicable,
            applicable_items=counts.applicable,
            overall_score=total_risk,
            total_risk_score=total_risk,
            max_risk_score=max_risk,
            risk_percentage=percentage,
            scored_items=scored,
            high_risk_items=high,
            medium_risk_items=medium,
            low_risk_items=low,
            no_risk_items=none,
        )
