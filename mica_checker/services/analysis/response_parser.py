"""Validation of LLM assessment arrays."""

from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from mica_checker.core.exceptions import ResponseParseError
from mica_checker.schemas.compliance import ResultStatus
from mica_checker.utils.json_parser import extract_first_json_array
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ItemAssessment(BaseModel):
    """One element of the array the model returns."""

    status: Optional[ResultStatus] = None
    coverage_score: Union[float, str, None] = None
    reasoning: str = ""
    evidence_snippets: List[str] = Field(default_factory=list)
    selected_answer: Optional[str] = None
    requirement_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return value.strip().upper().replace(" ", "_").replace("-", "_")
        return value

    @field_validator("reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("evidence_snippets", mode="before")
    @classmethod
    def coerce_snippets(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        snippets = []
        for snippet in value:
            # {"snippet": "...", "page": 1}
            if isinstance(snippet, dict):
                snippet = snippet.get("snippet") or snippet.get("text") or ""
            if snippet:
                snippets.append(str(snippet))
        return snippets

    @field_validator("selected_answer", "requirement_id", mode="before")
    @classmethod
    def coerce_optional_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def numeric_score(self) -> Optional[float]:
        """The coverage score as a number, or None for "Not scored" and junk."""
        if isinstance(self.coverage_score, (int, float)):
            return float(self.coverage_score)
        if isinstance(self.coverage_score, str):
            try:
                return float(self.coverage_score.strip())
            except ValueError:
                return None
        return None


def parse_assessments(text: str, expected: int) -> List[ItemAssessment]:
    """Parse the first JSON array in a model response.

    Args:
        text: Raw model output, possibly wrapped in prose or code fences
        expected: Number of requirements submitted

    Returns:
        The first ``expected`` assessments; extra elements are ignored

    Raises:
        ResponseParseError: If there is no array, it is too short, or an
            element is not a valid assessment
    """
    array = extract_first_json_array(text or "")
    if array is None:
        raise ResponseParseError("No JSON array found in model response")

    if len(array) < expected:
        raise ResponseParseError(
            f"Model returned {len(array)} of {expected} expected assessments"
        )
    if len(array) > expected:
        LOGGER.warning(f"Model returned {len(array)} assessments for {expected} requirements, ignoring extras")

    assessments = []
    for position, element in enumerate(array[:expected], start=1):
        if not isinstance(element, dict):
            raise ResponseParseError(f"Assessment {position} is not an object")
        try:
            assessments.append(ItemAssessment.model_validate(element))
        except PydanticValidationError as e:
            raise ResponseParseError(f"Assessment {position} is malformed: {e.errors()[0]['msg']}") from e

    return assessments
