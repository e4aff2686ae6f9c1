import json
import re
from typing import Any, Dict, List, Optional, Union

from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_json_safely(text: Optional[str]) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from a model reply, tolerating common formatting noise.

    Handles markdown code fences and prose around a single JSON object.
    Nothing is repaired beyond that: a reply that still fails to parse is
    reported as ``None`` so the caller can treat it as a schema failure.

    Args:
        text: Raw reply text

    Returns:
        Parsed JSON value or None if parsing fails
    """
    if not text:
        return None

    cleaned = strip_code_fences(text)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, looking for an embedded object")

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            LOGGER.error(f"Failed to parse embedded JSON object: {e}")
            return None

    LOGGER.error("No JSON object found in reply", extra={"preview": cleaned[:200]})
    return None
