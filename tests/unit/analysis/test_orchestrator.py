"""Tests for AnalysisOrchestrator."""

from typing import Iterator
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from mica_checker.core.config import AnalysisSettings
from mica_checker.core.exceptions import (
    AcquisitionError,
    APIClientError,
    CheckNotFoundError,
    ContentUnavailableError,
    DocumentNotFoundError,
    TemplateNotFoundError,
)
from mica_checker.core.rate_limiter import RequestThrottle
from mica_checker.schemas.compliance import (
    AnalysisMode,
    AnalysisResult,
    AnalysisSummary,
    OrderedChunk,
    ResultStatus,
    ScoringRegime,
    WhitepaperSection,
)
from mica_checker.services.analysis.orchestrator import (
    TIMEOUT_REASONING,
    AnalysisOrchestrator,
    status_for_coverage,
    status_for_risk,
)
from mica_checker.services.analysis.prompts import REGENERATE_PREAMBLE, SYSTEM_PROMPT
from tests.fakes import assessments_json, found, missing


def make_orchestrator(store, llm, clock=None, reingest=None, **settings) -> AnalysisOrchestrator:
    analysis_settings = AnalysisSettings(**{"max_context_chunks": 43, "time_budget_seconds": 270.0, **settings})
    kwargs = {"clock": clock} if clock is not None else {}
    return AnalysisOrchestrator(
        store,
        llm,
        reingest=reingest,
        analysis_settings=analysis_settings,
        throttle=RequestThrottle(0),
        **kwargs,
    )


def stepping_clock(step: float) -> Iterator[float]:
    now = 0.0
    while True:
        yield now
        now += step


def test_status_bands():
    assert status_for_coverage(80) == ResultStatus.FOUND
    assert status_for_coverage(79) == ResultStatus.NEEDS_CLARIFICATION
    assert status_for_coverage(40) == ResultStatus.NEEDS_CLARIFICATION
    assert status_for_coverage(39) == ResultStatus.MISSING
    assert status_for_risk(1000) == ResultStatus.FOUND
    assert status_for_risk(5) == ResultStatus.NEEDS_CLARIFICATION
    assert status_for_risk(0) == ResultStatus.MISSING


class TestAnalyzeNormalMode:
    """Test suite for per-category analysis."""

    @pytest.mark.asyncio
    async def test_one_call_per_category(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue(
            assessments_json(found(), found(85)),
            assessments_json(missing()),
            assessments_json(found(80), {"coverage_score": 50, "reasoning": "Partial"}),
        )
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id)

        assert len(fake_llm.prompts) == 3
        assert all(instruction == SYSTEM_PROMPT for instruction in fake_llm.system_instructions)
        assert "Offeror name" in fake_llm.prompts[0] and "Issuer name" not in fake_llm.prompts[0]
        assert [r.item_id for r in outcome.results] == [item.id for item in whitepaper_template.items]
        assert [r.status for r in outcome.results] == [
            ResultStatus.FOUND,
            ResultStatus.FOUND,
            ResultStatus.MISSING,
            ResultStatus.FOUND,
            ResultStatus.NEEDS_CLARIFICATION,
        ]
        assert outcome.results[4].coverage_score == 50
        assert all(r.is_temporary for r in outcome.results)
        assert outcome.summary.overall_score == 60
        assert outcome.failed_units == []
        assert not outcome.timed_out

    @pytest.mark.asyncio
    async def test_category_failure_is_confined(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue(
            assessments_json(found(), found()),
            APIClientError("API HTTP Error 503 after retries"),
            assessments_json(found(), found()),
        )
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id)

        issuer = outcome.results[2]
        assert issuer.status == ResultStatus.NEEDS_CLARIFICATION
        assert issuer.coverage_score == 0
        assert issuer.reasoning == "Category analysis failed: API HTTP Error 503 after retries"
        assert outcome.failed_units == ["Part B: Issuer Information"]
        assert [r.status for r in outcome.results if r is not issuer] == [ResultStatus.FOUND] * 4

    @pytest.mark.asyncio
    async def test_echoed_ids_override_positions(self, store, whitepaper_template, document, fake_llm):
        first, second = whitepaper_template.items[:2]
        fake_llm.queue(
            assessments_json(
                missing(requirement_id=str(second.id)),
                found(requirement_id=str(first.id)),
            ),
        )
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(
            document.id, whitepaper_template.id, categories=["Part A: Offeror Information"]
        )

        assert outcome.results[0].item_id == first.id
        assert outcome.results[0].status == ResultStatus.FOUND
        assert outcome.results[1].status == ResultStatus.MISSING

    @pytest.mark.asyncio
    async def test_partial_echoed_ids_fall_back_to_positions(self, store, whitepaper_template, document, fake_llm):
        first, second = whitepaper_template.items[:2]
        fake_llm.queue(assessments_json(missing(requirement_id=str(second.id)), found()))
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(
            document.id, whitepaper_template.id, categories=["Part A: Offeror Information"]
        )

        assert outcome.results[0].status == ResultStatus.MISSING
        assert outcome.results[1].status == ResultStatus.FOUND

    @pytest.mark.asyncio
    async def test_whitepaper_section_filter(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue(assessments_json(found()), assessments_json(found(), found()))
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(
            document.id, whitepaper_template.id, whitepaper_section=WhitepaperSection.B
        )

        assert [r.item_name for r in outcome.results] == ["Issuer name", "Project description", "Roadmap"]
        assert outcome.summary.total_items == 3

    @pytest.mark.asyncio
    async def test_no_selected_items_skips_model(self, store, whitepaper_template, document, fake_llm):
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id, categories=["Unknown"])

        assert outcome.results == []
        assert outcome.summary.total_items == 0
        assert fake_llm.prompts == []

    @pytest.mark.asyncio
    async def test_context_is_capped(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue(assessments_json(*[found()] * 5))
        orchestrator = make_orchestrator(store, fake_llm, max_context_chunks=2)

        await orchestrator.analyze(document.id, whitepaper_template.id, mode=AnalysisMode.FAST)

        prompt = fake_llm.prompts[0]
        assert "[Excerpt 1 - Page 1]\nThe offeror is Example Labs GmbH, Berlin." in prompt
        assert "[Excerpt 2 - Page 1]" in prompt
        assert "mainnet in 2026" not in prompt


class TestAnalyzeFastMode:
    """Test suite for single-call analysis."""

    @pytest.mark.asyncio
    async def test_single_call(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue(assessments_json(*[found()] * 5))
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id, mode=AnalysisMode.FAST)

        assert len(fake_llm.prompts) == 1
        assert outcome.mode == AnalysisMode.FAST
        assert outcome.summary.overall_score == 100

    @pytest.mark.asyncio
    async def test_short_array_degrades_every_item(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue(assessments_json(found(), found()))
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id, mode=AnalysisMode.FAST)

        assert len(outcome.results) == 5
        for result in outcome.results:
            assert result.status == ResultStatus.NEEDS_CLARIFICATION
            assert result.reasoning.startswith("Analysis failed: Model returned 2 of 5 expected assessments")
        assert outcome.summary.clarification_items == 5
        assert outcome.summary.overall_score == 0

    @pytest.mark.asyncio
    async def test_unparseable_response(self, store, whitepaper_template, document, fake_llm):
        fake_llm.queue("I am unable to help with that.")
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id, mode=AnalysisMode.FAST)

        assert outcome.failed_units == ["all requirements"]
        assert all("No JSON array found" in r.reasoning for r in outcome.results)


class TestRiskPointAnalysis:
    """Test suite for legal templates."""

    @pytest.mark.asyncio
    async def test_answers_map_to_points(self, store, legal_template, document, fake_llm):
        fake_llm.queue(assessments_json(
            {"selected_answer": "Yes", "coverage_score": 1000, "reasoning": "Profit rights"},
            {"selected_answer": "No", "coverage_score": 0, "reasoning": "No peg"},
            {"coverage_score": 5, "reasoning": "Entity registered"},
            {"selected_answer": "Germany", "coverage_score": "Not scored", "status": "FOUND", "reasoning": "Berlin"},
        ))
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, legal_template.id, mode=AnalysisMode.FAST)

        rights, peg, entity, jurisdiction = outcome.results
        assert (rights.coverage_score, rights.status, rights.selected_answer) == (1000, ResultStatus.FOUND, "Yes")
        assert (peg.coverage_score, peg.status) == (0, ResultStatus.MISSING)
        assert (entity.coverage_score, entity.status) == (5, ResultStatus.NEEDS_CLARIFICATION)
        assert (jurisdiction.coverage_score, jurisdiction.status) == (0, ResultStatus.FOUND)

        summary = outcome.summary
        assert summary.scoring_regime == ScoringRegime.RISK_POINTS
        assert summary.overall_score == 1005
        assert summary.max_risk_score == 2005
        assert summary.high_risk_items == 1

    @pytest.mark.asyncio
    async def test_answer_wins_over_inconsistent_score(self, store, legal_template, document, fake_llm):
        fake_llm.queue(assessments_json(
            {"selected_answer": "No", "coverage_score": 1000},
            {"coverage_score": 4000},
            {"selected_answer": "Maybe", "coverage_score": "unknown"},
            {"status": "MISSING"},
        ))
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.analyze(document.id, legal_template.id, mode=AnalysisMode.FAST)

        rights, peg, entity, _ = outcome.results
        assert rights.coverage_score == 0
        assert peg.coverage_score == 1000
        assert entity.status == ResultStatus.NEEDS_CLARIFICATION
        assert entity.coverage_score == 0
        assert entity.reasoning.startswith("No scorable answer returned.")

    @pytest.mark.asyncio
    async def test_risk_prompt_carries_scoring_logic(self, store, legal_template, document, fake_llm):
        fake_llm.queue(assessments_json({}, {}), assessments_json({}, {}))
        orchestrator = make_orchestrator(store, fake_llm)

        await orchestrator.analyze(document.id, legal_template.id)

        assert "Scoring logic: Yes = 1000, No = 0" in fake_llm.prompts[0]
        assert "Scoring logic: Not scored" in fake_llm.prompts[1]


class TestTimeBudget:
    """Test suite for the wall-clock budget."""

    @pytest.mark.asyncio
    async def test_units_after_deadline_are_marked(self, store, whitepaper_template, document, fake_llm):
        ticks = stepping_clock(200.0)
        fake_llm.queue(assessments_json(found(), found()))
        orchestrator = make_orchestrator(store, fake_llm, clock=lambda: next(ticks))

        outcome = await orchestrator.analyze(document.id, whitepaper_template.id)

        assert len(fake_llm.prompts) == 1
        assert outcome.timed_out
        assert [r.status for r in outcome.results[:2]] == [ResultStatus.FOUND, ResultStatus.FOUND]
        for result in outcome.results[2:]:
            assert result.status == ResultStatus.NEEDS_CLARIFICATION
            assert result.reasoning == TIMEOUT_REASONING
        assert len(outcome.results) == 5


class TestContentLoading:
    """Test suite for chunk loading and re-ingestion."""

    @pytest.mark.asyncio
    async def test_unknown_document(self, store, whitepaper_template, fake_llm):
        orchestrator = make_orchestrator(store, fake_llm)

        with pytest.raises(DocumentNotFoundError):
            await orchestrator.analyze(uuid4(), whitepaper_template.id)

    @pytest.mark.asyncio
    async def test_unknown_template(self, store, document, fake_llm):
        orchestrator = make_orchestrator(store, fake_llm)

        with pytest.raises(TemplateNotFoundError):
            await orchestrator.analyze(document.id, uuid4())

    @pytest.mark.asyncio
    async def test_reingests_once_when_no_chunks(self, store, whitepaper_template, fake_llm):
        empty = store.add_document(chunks=[])

        async def reingest(document_id):
            store.chunks[document_id] = [OrderedChunk(chunk_index=0, content="Recovered text", page_number=1)]

        reingest_mock = AsyncMock(side_effect=reingest)
        fake_llm.queue(assessments_json(*[found()] * 5))
        orchestrator = make_orchestrator(store, fake_llm, reingest=reingest_mock)

        outcome = await orchestrator.analyze(empty.id, whitepaper_template.id, mode=AnalysisMode.FAST)

        reingest_mock.assert_awaited_once_with(empty.id)
        assert "Recovered text" in fake_llm.prompts[0]
        assert outcome.summary.overall_score == 100

    @pytest.mark.asyncio
    async def test_failed_reingest_is_content_unavailable(self, store, whitepaper_template, fake_llm):
        empty = store.add_document(chunks=[])
        reingest = AsyncMock(side_effect=AcquisitionError("Download failed for a/b.pdf: HTTP 404"))
        orchestrator = make_orchestrator(store, fake_llm, reingest=reingest)

        with pytest.raises(ContentUnavailableError, match="HTTP 404"):
            await orchestrator.analyze(empty.id, whitepaper_template.id)
        assert fake_llm.prompts == []

    @pytest.mark.asyncio
    async def test_still_empty_after_reingest(self, store, whitepaper_template, fake_llm):
        empty = store.add_document(chunks=[])
        orchestrator = make_orchestrator(store, fake_llm, reingest=AsyncMock(return_value=None))

        with pytest.raises(ContentUnavailableError, match="after re-ingestion"):
            await orchestrator.analyze(empty.id, whitepaper_template.id)

    @pytest.mark.asyncio
    async def test_no_reingest_configured(self, store, whitepaper_template, fake_llm):
        empty = store.add_document(chunks=[])
        orchestrator = make_orchestrator(store, fake_llm)

        with pytest.raises(ContentUnavailableError):
            await orchestrator.analyze(empty.id, whitepaper_template.id)


async def save_check(store, template, document, statuses, overridden=()):
    check = await store.create_check(
        document.id, template.id, 1, AnalysisSummary(scoring_regime=ScoringRegime.PASS_RATE)
    )
    results = [
        AnalysisResult(
            result_id="temp-x",
            item_id=item.id,
            category=item.category,
            item_name=item.item_name,
            status=status,
            coverage_score=90 if status == ResultStatus.FOUND else 10,
            reasoning="first pass",
            manually_overridden=position in overridden,
        )
        for position, (item, status) in enumerate(zip(template.items, statuses))
    ]
    await store.replace_results(check.check_id, results)
    return check


class TestRegenerate:
    """Test suite for regenerating unresolved results of a saved check."""

    STATUSES = [
        ResultStatus.FOUND,
        ResultStatus.MISSING,
        ResultStatus.NEEDS_CLARIFICATION,
        ResultStatus.MISSING,
        ResultStatus.FOUND,
    ]

    @pytest.mark.asyncio
    async def test_reruns_only_unresolved_items(self, store, whitepaper_template, document, fake_llm):
        check = await save_check(store, whitepaper_template, document, self.STATUSES, overridden={2})
        fake_llm.queue(
            assessments_json(found(88, "Address now located")),
            assessments_json(found(81, "Project described on page 3")),
        )
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.regenerate(check.check_id)

        assert len(fake_llm.prompts) == 2
        assert fake_llm.prompts[0].startswith(REGENERATE_PREAMBLE)
        assert "Offeror address" in fake_llm.prompts[0]
        assert "Offeror name" not in fake_llm.prompts[0]
        assert "Previous assessment: MISSING - first pass" in fake_llm.prompts[0]
        assert all("Issuer name" not in prompt for prompt in fake_llm.prompts)

        assert [r.status for r in outcome.results] == [
            ResultStatus.FOUND,
            ResultStatus.FOUND,
            ResultStatus.NEEDS_CLARIFICATION,
            ResultStatus.FOUND,
            ResultStatus.FOUND,
        ]
        assert outcome.results[1].reasoning == "Address now located"
        assert outcome.results[2].manually_overridden
        assert outcome.summary.found_items == 4

    @pytest.mark.asyncio
    async def test_failed_unit_keeps_previous_results(self, store, whitepaper_template, document, fake_llm):
        check = await save_check(store, whitepaper_template, document, self.STATUSES)
        stored = await store.get_results(check.check_id)
        fake_llm.queue(
            assessments_json(found()),
            assessments_json(found()),
            RuntimeError("connection reset"),
        )
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.regenerate(check.check_id)

        assert outcome.failed_units == ["Part D: Project Information"]
        assert outcome.results[3] == stored[3]
        assert outcome.results[1].status == ResultStatus.FOUND

    @pytest.mark.asyncio
    async def test_uses_larger_context(self, store, whitepaper_template, fake_llm):
        document = store.add_document(chunks=[f"Chunk {n}" for n in range(100)])
        check = await save_check(store, whitepaper_template, document, [ResultStatus.MISSING] + [ResultStatus.FOUND] * 4)
        fake_llm.queue(assessments_json(found()))
        orchestrator = make_orchestrator(store, fake_llm, max_context_chunks=10, regenerate_context_chunks=80)

        await orchestrator.regenerate(check.check_id)

        assert "[Excerpt 80 - Page 1]" in fake_llm.prompts[0]
        assert "[Excerpt 81" not in fake_llm.prompts[0]

    @pytest.mark.asyncio
    async def test_nothing_to_regenerate(self, store, whitepaper_template, document, fake_llm):
        check = await save_check(store, whitepaper_template, document, [ResultStatus.FOUND] * 5)
        orchestrator = make_orchestrator(store, fake_llm)

        outcome = await orchestrator.regenerate(check.check_id)

        assert fake_llm.prompts == []
        assert outcome.summary.overall_score == 100

    @pytest.mark.asyncio
    async def test_unknown_check(self, store, fake_llm):
        with pytest.raises(CheckNotFoundError):
            await make_orchestrator(store, fake_llm).regenerate(uuid4())
