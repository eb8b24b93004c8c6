import json
from typing import Any, List, Optional

from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```), if any."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    return cleaned.strip()


def extract_first_json_array(text: str) -> Optional[List[Any]]:
    """Return the first well-formed JSON array embedded in text.

    Tolerates prose before and after the array, code fences, and stray
    brackets that do not open valid JSON. A top-level object wrapping a
    single array (``{"results": [...]}``) is unwrapped.

    Args:
        text: Raw model output

    Returns:
        The decoded list, or None when no array can be decoded
    """
    if not text:
        return None

    cleaned = strip_code_fences(text)
    decoder = json.JSONDecoder()

    try:
        whole = json.loads(cleaned)
    except json.JSONDecodeError:
        whole = None
    if isinstance(whole, list):
        return whole
    if isinstance(whole, dict):
        arrays = [value for value in whole.values() if isinstance(value, list)]
        if len(arrays) == 1:
            return arrays[0]

    # Citation markers like "[1]" decode as arrays too; prefer an array of objects
    first_array: Optional[List[Any]] = None
    idx = cleaned.find("[")
    while idx != -1:
        try:
            candidate, end = decoder.raw_decode(cleaned, idx)
        except json.JSONDecodeError:
            idx = cleaned.find("[", idx + 1)
            continue
        if candidate and all(isinstance(element, dict) for element in candidate):
            return candidate
        if first_array is None:
            first_array = candidate
        idx = cleaned.find("[", end)

    if first_array is None:
        LOGGER.warning("No JSON array found in model output", extra={"preview": cleaned[:200]})
    return first_array
