"""Tests for report export."""

import json
from uuid import uuid4

import pytest

from mica_checker.core.exceptions import CheckNotFoundError
from mica_checker.schemas.compliance import AnalysisResult, ResultStatus
from mica_checker.services.analysis.orchestrator import temp_result_id
from mica_checker.services.persistence.analysis_persistence import AnalysisPersistenceService
from mica_checker.services.report_service import ExportFormat, ReportService


def results_for(template, statuses, scores, answers=None):
    answers = answers or [None] * len(statuses)
    return [
        AnalysisResult(
            result_id=temp_result_id(item.id),
            item_id=item.id,
            category=item.category,
            item_name=item.item_name,
            status=status,
            coverage_score=score,
            reasoning=f"Reasoning for {item.item_name}",
            evidence_snippets=["Quoted evidence"] if status == ResultStatus.FOUND else [],
            selected_answer=answer,
        )
        for item, status, score, answer in zip(template.items, statuses, scores, answers)
    ]


@pytest.fixture
def persistence(store) -> AnalysisPersistenceService:
    return AnalysisPersistenceService(store)


@pytest.fixture
def reports(persistence) -> ReportService:
    return ReportService(persistence)


class TestReportService:
    """Test suite for ReportService."""

    @pytest.mark.asyncio
    async def test_json_export(self, reports, persistence, document, whitepaper_template):
        statuses = [ResultStatus.FOUND, ResultStatus.MISSING, ResultStatus.FOUND, ResultStatus.FOUND, ResultStatus.FOUND]
        saved = await persistence.save_analysis(
            document.id, whitepaper_template.id, results_for(whitepaper_template, statuses, [90, 10, 85, 80, 95])
        )

        report = await reports.export(saved.check_id, ExportFormat.JSON)

        assert report.media_type == "application/json"
        assert report.file_name == f"mica-analysis-{saved.check_id}-v1.json"
        payload = json.loads(report.content)
        assert payload["template_name"] == "MiCA Whitepaper Checklist"
        assert payload["version"] == 1
        assert payload["summary"]["overall_score"] == 80
        assert "total_risk_score" not in payload["summary"]
        assert payload["results"][1]["status"] == "MISSING"

    @pytest.mark.asyncio
    async def test_markdown_export_pass_rate(self, reports, persistence, document, whitepaper_template):
        statuses = [ResultStatus.FOUND] * 4 + [ResultStatus.NEEDS_CLARIFICATION]
        saved = await persistence.save_analysis(
            document.id, whitepaper_template.id, results_for(whitepaper_template, statuses, [90, 90, 90, 90, 50])
        )

        report = await reports.export(saved.check_id, ExportFormat.MARKDOWN)

        assert report.media_type == "text/markdown"
        assert report.file_name.endswith("-v1.md")
        content = report.content
        assert content.startswith("# MiCA Compliance Report: MiCA Whitepaper Checklist")
        assert "| Overall score | 80% |" in content
        assert content.count("## Part A: Offeror Information") == 1
        assert "### Roadmap" in content
        assert "- Status: **Needs clarification**" in content
        assert "- Coverage: 50" in content
        assert "> Quoted evidence" in content

    @pytest.mark.asyncio
    async def test_markdown_export_risk_points(self, reports, persistence, document, legal_template):
        saved = await persistence.save_analysis(
            document.id,
            legal_template.id,
            results_for(
                legal_template,
                [ResultStatus.FOUND, ResultStatus.MISSING, ResultStatus.NEEDS_CLARIFICATION, ResultStatus.FOUND],
                [1000, 0, 5, 0],
                ["Yes", "No", "Yes", "Germany"],
            ),
        )

        content = (await reports.export(saved.check_id, ExportFormat.MARKDOWN)).content

        assert "| Total risk score | 1005 |" in content
        assert "| Maximum risk score | 2005 |" in content
        assert "| High risk items | 1 |" in content
        assert "- Risk points: 1000" in content
        assert "- Answer: Germany" in content

    @pytest.mark.asyncio
    async def test_manual_override_is_marked(self, reports, persistence, store, document, whitepaper_template):
        saved = await persistence.save_analysis(
            document.id,
            whitepaper_template.id,
            results_for(whitepaper_template, [ResultStatus.MISSING] * 5, [10] * 5),
        )
        first = (await store.get_results(saved.check_id))[0]
        await persistence.update_result_status(first.result_id, ResultStatus.FOUND)

        content = (await reports.export(saved.check_id, ExportFormat.MARKDOWN)).content

        assert "- Status: **Found** (manually set)" in content

    @pytest.mark.asyncio
    async def test_unknown_check(self, reports):
        with pytest.raises(CheckNotFoundError):
            await reports.export(uuid4())
