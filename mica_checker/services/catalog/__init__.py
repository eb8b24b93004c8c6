"""Requirement catalog and scoring-logic parsing."""

from mica_checker.services.catalog.catalog_service import RequirementCatalog, filter_items, resolve_regime
from mica_checker.services.catalog.scoring_logic import parse_scoring_logic

__all__ = ["RequirementCatalog", "filter_items", "resolve_regime", "parse_scoring_logic"]
