"""Export of saved analyses as JSON or Markdown reports."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import List
from uuid import UUID

from mica_checker.schemas.compliance import ResultStatus, ScoringRegime, StoredAnalysis
from mica_checker.services.persistence.analysis_persistence import AnalysisPersistenceService
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

STATUS_LABELS = {
    ResultStatus.FOUND: "Found",
    ResultStatus.NEEDS_CLARIFICATION: "Needs clarification",
    ResultStatus.MISSING: "Missing",
    ResultStatus.NOT_APPLICABLE: "Not applicable",
}


class ExportFormat(str, Enum):
    JSON = "json"
    MARKDOWN = "md"


@dataclass
class ExportedReport:
    content: str
    media_type: str
    file_name: str


def render_json(analysis: StoredAnalysis) -> str:
    payload = {
        "check_id": str(analysis.check.check_id),
        "document_id": str(analysis.check.document_id),
        "template_id": str(analysis.check.template_id),
        "template_name": analysis.template_name,
        "version": analysis.version,
        "created_at": analysis.check.created_at.isoformat() if analysis.check.created_at else None,
        "summary": analysis.summary.model_dump(mode="json", exclude_none=True),
        "results": [result.model_dump(mode="json") for result in analysis.results],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _summary_lines(analysis: StoredAnalysis) -> List[str]:
    summary = analysis.summary
    lines = [
        "## Summary",
        "",
        "| Metric | Value |",
        "|---|---|",
    ]
    if summary.scoring_regime == ScoringRegime.RISK_POINTS:
        lines += [
            f"| Total risk score | {summary.total_risk_score or 0} |",
            f"| Maximum risk score | {summary.max_risk_score or 0} |",
            f"| Risk percentage | {summary.risk_percentage or 0}% |",
        ]
        if summary.high_risk_items is not None:
            lines += [
                f"| High risk items | {summary.high_risk_items} |",
                f"| Medium risk items | {summary.medium_risk_items} |",
                f"| Low risk items | {summary.low_risk_items} |",
                f"| No risk items | {summary.no_risk_items} |",
            ]
    else:
        lines.append(f"| Overall score | {summary.overall_score}% |")

    lines += [
        f"| Found | {summary.found_items} |",
        f"| Needs clarification | {summary.clarification_items} |",
        f"| Missing | {summary.missing_items} |",
        f"| Not applicable | {summary.not_applicable_items} |",
        f"| Total requirements | {summary.total_items} |",
    ]
    return lines


def render_markdown(analysis: StoredAnalysis) -> str:
    score_label = (
        "Risk points" if analysis.summary.scoring_regime == ScoringRegime.RISK_POINTS else "Coverage"
    )
    lines = [
        f"# MiCA Compliance Report: {analysis.template_name}",
        "",
        f"- Analysis: `{analysis.check.check_id}`",
        f"- Document: `{analysis.check.document_id}`",
        f"- Version: {analysis.version}",
    ]
    if analysis.check.created_at:
        lines.append(f"- Created: {analysis.check.created_at.isoformat()}")
    lines.append("")
    lines += _summary_lines(analysis)

    current_category = None
    for result in analysis.results:
        if result.category != current_category:
            current_category = result.category
            lines += ["", f"## {current_category or 'Uncategorized'}"]

        lines += [
            "",
            f"### {result.item_name}",
            "",
            f"- Status: **{STATUS_LABELS[result.status]}**"
            + (" (manually set)" if result.manually_overridden else ""),
            f"- {score_label}: {result.coverage_score}",
        ]
        if result.selected_answer:
            lines.append(f"- Answer: {result.selected_answer}")
        if result.reasoning:
            lines += ["", result.reasoning]
        if result.evidence_snippets:
            lines.append("")
            lines += [f"> {snippet}" for snippet in result.evidence_snippets]

    return "\n".join(lines) + "\n"


class ReportService:
    """Builds downloadable reports from saved analyses."""

    def __init__(self, persistence: AnalysisPersistenceService):
        self.persistence = persistence

    async def export(self, check_id: UUID, export_format: ExportFormat = ExportFormat.JSON) -> ExportedReport:
        """Render a saved analysis.

        Raises:
            CheckNotFoundError: If the analysis does not exist
        """
        analysis = await self.persistence.get_analysis(check_id)
        base_name = f"mica-analysis-{check_id}-v{analysis.version}"

        if export_format == ExportFormat.MARKDOWN:
            report = ExportedReport(render_markdown(analysis), "text/markdown", f"{base_name}.md")
        else:
            report = ExportedReport(render_json(analysis), "application/json", f"{base_name}.json")

        LOGGER.info(f"Exported analysis {check_id} as {export_format.value}")
        return report
