"""Parse JSON objects out of free-text language-model replies."""

import json
import re

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```\s*$")


class UpstreamParseError(ValueError):
    """Raised when a model reply is not the expected JSON shape."""


def strip_code_fences(text: str) -> str:
    text = text.strip()
    text = _FENCE_OPEN_RE.sub("", text)
    text = _FENCE_CLOSE_RE.sub("", text)
    return text.strip()


def parse_json_object(text: str) -> dict:
    """Strip optional ``` fencing and parse a JSON object.

    Raises:
        UpstreamParseError: If the text is not a JSON object.
    """
    body = strip_code_fences(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise UpstreamParseError(f"Reply is not valid JSON: {exc.msg} (got {body[:80]!r})") from exc
    if not isinstance(data, dict):
        raise UpstreamParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data
