import json
import re
from typing import Any, Dict, Optional

from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_safely(text: str) -> Optional[Dict[str, Any]]:
    """Extract the first JSON object from a model answer.

    Reviewers are asked for bare JSON but often wrap it in a markdown fence
    or add a sentence around it. Returns None when no object can be decoded;
    top-level arrays and scalars are not reviewer answers and also yield None.
    """
    if not text:
        return None

    cleaned = _FENCE.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Reviewer answer is not plain JSON ({e}); scanning for an object")

    decoder = json.JSONDecoder()
    start = cleaned.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(cleaned, start)
        except json.JSONDecodeError:
            start = cleaned.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = cleaned.find("{", start + 1)

    LOGGER.error("No JSON object found in reviewer answer")
    return None
