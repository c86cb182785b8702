"""Tolerant extraction of one JSON object from free-form model output.

The content service is expected to answer with a single JSON object but
sometimes wraps it in prose or a markdown fence.
"""

import json
import logging

from synth.errors import ContentFormatError

logger = logging.getLogger(__name__)


def _strip_code_fence(text: str) -> str:
    """Return the body of a ```json ... ``` block, or the text unchanged."""
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    json_lines = []
    in_json = False
    for line in lines:
        if line.strip().startswith("```") and not in_json:
            in_json = True
            continue
        elif line.strip() == "```":
            break
        elif in_json:
            json_lines.append(line)
    return "\n".join(json_lines)


def _loads_object(text: str):
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def extract_json_object(text: str) -> dict:
    """Parse `text` as a JSON object, falling back to fence stripping and
    then to the substring between the first '{' and the last '}'.

    Raises:
        ContentFormatError: when none of the strategies yields an object.
    """
    if not isinstance(text, str) or not text.strip():
        raise ContentFormatError("content service returned empty output", raw=text or "")
    s = text.strip()

    parsed = _loads_object(s)
    if parsed is not None:
        return parsed

    unfenced = _strip_code_fence(s)
    if unfenced is not s:
        parsed = _loads_object(unfenced)
        if parsed is not None:
            logger.debug("Extracted JSON from markdown fence")
            return parsed

    start = s.find("{")
    end = s.rfind("}")
    if start >= 0 and end > start:
        parsed = _loads_object(s[start:end + 1])
        if parsed is not None:
            logger.debug("Extracted JSON object from surrounding prose")
            return parsed

    raise ContentFormatError("content service returned non-json content", raw=s[:500])
