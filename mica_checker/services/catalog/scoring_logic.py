"""Parser for the free-text scoring logic attached to catalog items.

Catalog rows carry strings such as ``"Yes = 1000, No = 0"``,
``"Yes (5) / No (0)"`` or ``"Not scored"``. They are parsed once, when a
template is loaded, into a :class:`ScoringRule`.
"""

import re
from typing import Dict, Optional

from mica_checker.schemas.compliance import ScoringRule
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

NOT_SCORED_PATTERN = re.compile(r"\bnot\s+scored\b", re.IGNORECASE)

# "Yes = 1000", "No: 0", "High -> 5"
LABEL_ASSIGNMENT_PATTERN = re.compile(
    r"([A-Za-z][^=,;:/()\n]*?)\s*(?:=|:|->|→)\s*(-?\d+)"
)

# "Yes (1000)", "No (0 points)"
LABEL_PAREN_PATTERN = re.compile(
    r"([A-Za-z][^=,;:/()\n]*?)\s*\(\s*(-?\d+)\s*(?:points?|pts)?\s*\)",
    re.IGNORECASE,
)

NUMBER_PATTERN = re.compile(r"-?\d+")


def _clean_label(label: str) -> str:
    return label.strip().strip("\"'").strip()


def _collect(pattern: re.Pattern, text: str) -> Dict[str, int]:
    outcomes: Dict[str, int] = {}
    for match in pattern.finditer(text):
        label = _clean_label(match.group(1))
        if label and label not in outcomes:
            outcomes[label] = int(match.group(2))
    return outcomes


def parse_scoring_logic(text: Optional[str]) -> ScoringRule:
    """Parse a scoring-logic string.

    Labelled outcomes are preferred. When the string holds only bare numbers,
    each number becomes an outcome keyed by its own text. Empty strings and
    strings containing "Not scored" yield a not-scored rule.

    Args:
        text: Raw scoring logic from the catalog

    Returns:
        Structured rule
    """
    raw = (text or "").strip()
    if not raw:
        return ScoringRule(raw=raw, not_scored=True)

    if NOT_SCORED_PATTERN.search(raw):
        return ScoringRule(raw=raw, not_scored=True)

    outcomes = _collect(LABEL_ASSIGNMENT_PATTERN, raw)
    if not outcomes:
        outcomes = _collect(LABEL_PAREN_PATTERN, raw)

    if not outcomes:
        for number in NUMBER_PATTERN.findall(raw):
            outcomes.setdefault(number, int(number))

    if not outcomes:
        LOGGER.warning(f"Scoring logic has no numeric outcomes, treating as not scored: {raw!r}")
        return ScoringRule(raw=raw, not_scored=True)

    return ScoringRule(raw=raw, outcomes=outcomes)
