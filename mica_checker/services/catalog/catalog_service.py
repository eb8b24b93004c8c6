"""Requirement catalog: read-only access to checker templates."""

from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from mica_checker.core.exceptions import TemplateNotFoundError, ValidationError
from mica_checker.schemas.compliance import (
    RequirementItem,
    RequirementTemplate,
    ScoringRegime,
    TemplateSummary,
    WhitepaperSection,
)
from mica_checker.services.catalog.scoring_logic import parse_scoring_logic
from mica_checker.services.compliance_store import ComplianceStore, TemplateRecord
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

WHITEPAPER_SECTION_CATEGORIES: Dict[WhitepaperSection, str] = {
    WhitepaperSection.A: "Part A: Offeror Information",
    WhitepaperSection.B: "Part B: Issuer Information",
    WhitepaperSection.C: "Part C: Trading Platform Operator",
}


def resolve_regime(template_type: str, template_name: str = "", declared: Optional[str] = None) -> ScoringRegime:
    """Scoring regime of a template.

    An explicitly declared regime wins. Otherwise legal templates, by type or
    by name, use risk points and everything else uses the pass rate.
    """
    if declared:
        try:
            return ScoringRegime(declared)
        except ValueError as e:
            raise ValidationError(f"Unknown scoring regime: {declared}") from e

    if (template_type or "").lower() == "legal" or "legal" in (template_name or "").lower():
        return ScoringRegime.RISK_POINTS
    return ScoringRegime.PASS_RATE


def filter_items(
    items: Sequence[RequirementItem],
    categories: Optional[Iterable[str]] = None,
    whitepaper_section: Optional[WhitepaperSection] = None,
) -> List[RequirementItem]:
    """Restrict items to a category subset and/or one whitepaper part.

    The section filter drops the other two parts and keeps every category
    that belongs to no part. Declaration order is preserved.
    """
    selected = list(items)

    if categories:
        wanted = set(categories)
        selected = [item for item in selected if item.category in wanted]

    if whitepaper_section is not None:
        excluded = {
            category
            for section, category in WHITEPAPER_SECTION_CATEGORIES.items()
            if section != whitepaper_section
        }
        selected = [item for item in selected if item.category not in excluded]

    return selected


class RequirementCatalog:
    """Loads templates through the store and parses scoring logic once per template."""

    def __init__(self, store: ComplianceStore):
        self.store = store
        self._cache: Dict[UUID, RequirementTemplate] = {}

    async def get_template(self, template_id: UUID) -> RequirementTemplate:
        """Load a template with parsed scoring rules.

        Raises:
            TemplateNotFoundError: If no template has this id
        """
        cached = self._cache.get(template_id)
        if cached is not None:
            return cached

        record = await self.store.get_template(template_id)
        if record is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")

        template = self._build(record)
        self._cache[template_id] = template

        LOGGER.info(
            f"Loaded template '{template.name}' with {len(template.items)} items",
            extra={"template_id": str(template_id), "regime": template.scoring_regime.value},
        )
        return template

    async def list_templates(self) -> List[TemplateSummary]:
        """Active templates ordered by name, without parsing their items."""
        records = await self.store.list_templates()
        return [
            TemplateSummary(
                id=record.id,
                name=record.name,
                type=record.type,
                description=record.description,
                scoring_regime=resolve_regime(record.type, record.name, record.scoring_regime),
                item_count=len(record.items),
                categories=list(dict.fromkeys(item.category for item in record.items)),
            )
            for record in records
        ]

    @staticmethod
    def _build(record: TemplateRecord) -> RequirementTemplate:
        items = [
            RequirementItem(
                id=item.id,
                category=item.category,
                item_name=item.item_name,
                description=item.description or "",
                weight=item.weight if item.weight is not None else 1,
                scoring_logic=item.scoring_logic,
                field_type=item.field_type,
                sort_order=item.sort_order,
                rule=parse_scoring_logic(item.scoring_logic),
            )
            for item in record.items
        ]
        return RequirementTemplate(
            id=record.id,
            name=record.name,
            type=record.type,
            scoring_regime=resolve_regime(record.type, record.name, record.scoring_regime),
            items=items,
        )
