"""Helpers for handling JSON embedded in model output."""
import re

_JSON_FENCE = re.compile(r"```json\s*", re.IGNORECASE)
_PLAIN_FENCE = re.compile(r"```\s*")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```json / ```) and surrounding whitespace."""
    if not text:
        return ""
    text = _JSON_FENCE.sub("", text)
    text = _PLAIN_FENCE.sub("", text)
    return text.strip()
