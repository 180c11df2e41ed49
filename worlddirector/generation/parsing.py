"""
Response parsing - pulls the JSON object out of free-form backend text.
"""

import json
import re
from typing import Any, Dict

_REASONING_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_FENCE = re.compile(r"```(?:json|JSON)?")


class ParseError(ValueError):
    """Backend text did not contain a decodable JSON object."""
    pass


def parse_json(text: str) -> Dict[str, Any]:
    """Strip reasoning blocks and code fences, then decode the outermost ``{...}``.

    Raises ParseError when there is no brace pair or the span is not a JSON object.
    """
    if not text:
        raise ParseError("Empty response")

    cleaned = _REASONING_BLOCK.sub("", text)
    cleaned = _FENCE.sub("", cleaned)

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ParseError(f"No JSON object found in response: {text[:80]!r}")

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed JSON in response: {e}")

    if not isinstance(data, dict):
        raise ParseError("Response JSON is not an object")
    return data
