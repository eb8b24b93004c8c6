"""Tests for the requirement catalog."""

from uuid import uuid4

import pytest

from mica_checker.core.exceptions import TemplateNotFoundError, ValidationError
from mica_checker.schemas.compliance import ScoringRegime, WhitepaperSection
from mica_checker.services.catalog.catalog_service import (
    RequirementCatalog,
    filter_items,
    resolve_regime,
)


class TestResolveRegime:
    """Test suite for resolve_regime."""

    @pytest.mark.parametrize(
        "template_type,name,declared,expected",
        [
            ("legal", "Opinion", None, ScoringRegime.RISK_POINTS),
            ("LEGAL", "", None, ScoringRegime.RISK_POINTS),
            ("checklist", "MiCA Legal Opinion", None, ScoringRegime.RISK_POINTS),
            ("whitepaper", "MiCA Whitepaper", None, ScoringRegime.PASS_RATE),
            ("legal", "Opinion", "pass_rate", ScoringRegime.PASS_RATE),
            ("whitepaper", "", "risk_points", ScoringRegime.RISK_POINTS),
        ],
    )
    def test_resolution(self, template_type, name, declared, expected):
        assert resolve_regime(template_type, name, declared) == expected

    def test_unknown_declared_regime(self):
        with pytest.raises(ValidationError, match="Unknown scoring regime"):
            resolve_regime("legal", "", "weighted")


class TestRequirementCatalog:
    """Test suite for RequirementCatalog."""

    @pytest.mark.asyncio
    async def test_loads_template_with_parsed_rules(self, store, legal_template):
        catalog = RequirementCatalog(store)

        template = await catalog.get_template(legal_template.id)

        assert template.scoring_regime == ScoringRegime.RISK_POINTS
        assert [item.item_name for item in template.items] == [
            "Rights similar to shares or bonds",
            "Single currency peg",
            "Registered legal entity",
            "Jurisdiction",
        ]
        assert template.items[0].rule.outcomes == {"Yes": 1000, "No": 0}
        assert template.items[3].rule.not_scored
        assert not template.items[3].is_scored

    @pytest.mark.asyncio
    async def test_caches_templates(self, store, whitepaper_template):
        catalog = RequirementCatalog(store)

        first = await catalog.get_template(whitepaper_template.id)
        del store.templates[whitepaper_template.id]
        second = await catalog.get_template(whitepaper_template.id)

        assert first is second
        assert first.scoring_regime == ScoringRegime.PASS_RATE

    @pytest.mark.asyncio
    async def test_missing_template(self, store):
        with pytest.raises(TemplateNotFoundError):
            await RequirementCatalog(store).get_template(uuid4())

    @pytest.mark.asyncio
    async def test_zero_weight_item_is_unscored(self, store):
        record = store.add_template(
            name="Legal",
            type="legal",
            items=[{"category": "Issuer", "item_name": "Informational", "scoring_logic": "Yes = 5, No = 0", "weight": 0}],
        )

        template = await RequirementCatalog(store).get_template(record.id)

        assert template.items[0].rule.is_scored
        assert not template.items[0].is_scored

    @pytest.mark.asyncio
    async def test_lists_active_templates_by_name(self, store, whitepaper_template, legal_template):
        store.add_template(name="Archived Checklist", type="whitepaper", items=[], is_active=False)

        summaries = await RequirementCatalog(store).list_templates()

        assert [summary.name for summary in summaries] == ["MiCA Legal Opinion", "MiCA Whitepaper Checklist"]
        assert summaries[0].scoring_regime == ScoringRegime.RISK_POINTS
        assert summaries[0].categories == ["Classification", "Issuer"]
        assert summaries[1].item_count == 5


class TestFilterItems:
    """Test suite for filter_items."""

    @pytest.fixture
    def items(self, whitepaper_template):
        return RequirementCatalog._build(whitepaper_template).items

    def test_no_filters_keeps_everything(self, items):
        assert filter_items(items) == items

    def test_category_subset(self, items):
        selected = filter_items(items, categories=["Part D: Project Information"])

        assert [item.item_name for item in selected] == ["Project description", "Roadmap"]

    def test_whitepaper_section_excludes_other_parts(self, items):
        selected = filter_items(items, whitepaper_section=WhitepaperSection.B)

        assert [item.item_name for item in selected] == ["Issuer name", "Project description", "Roadmap"]

    def test_filters_combine(self, items):
        selected = filter_items(
            items,
            categories=["Part A: Offeror Information", "Part D: Project Information"],
            whitepaper_section=WhitepaperSection.C,
        )

        assert [item.item_name for item in selected] == ["Project description", "Roadmap"]
