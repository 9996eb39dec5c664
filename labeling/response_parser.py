"""
Decoding of JSON objects embedded in free-form LLM output.

Models wrap JSON in code fences or prose and occasionally add comments;
decode_json_object() never raises and returns either ParseOk or
ParseFallback.
"""
import json
import re
from dataclasses import dataclass
from typing import Union

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT = re.compile(r"\{[\s\S]*\}")
_LINE_COMMENT = re.compile(r"(?<!:)//[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")


@dataclass
class ParseOk:
    """Successfully decoded JSON object."""
    data: dict


@dataclass
class ParseFallback:
    """Decoding failed; the caller applies its documented fallback."""
    reason: str
    raw: str = ""


ParseResult = Union[ParseOk, ParseFallback]


def _candidates(text: str):
    """Candidate JSON texts, most specific first."""
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        yield fenced.group(1).strip()
    obj = _OBJECT.search(text)
    if obj:
        yield obj.group(0)


def _strip_comments(text: str) -> str:
    return _BLOCK_COMMENT.sub("", _LINE_COMMENT.sub("", text))


def decode_json_object(text: str) -> ParseResult:
    """
    Extract and decode the JSON object in an LLM response.

    Tries a fenced ```json block first, then the span from the first
    opening brace to the last closing brace. Each candidate is decoded as-is
    and again with // and /* */ comments removed.

    Args:
        text: Raw model output

    Returns:
        ParseOk with the decoded dict, or ParseFallback with a reason
    """
    if not text or not text.strip():
        return ParseFallback("empty response", raw=text or "")

    last_error = "no JSON object found"
    for candidate in _candidates(text):
        for attempt in (candidate, _strip_comments(candidate)):
            try:
                data = json.loads(attempt)
            except json.JSONDecodeError as e:
                last_error = f"invalid JSON: {e.msg}"
                continue
            if isinstance(data, dict):
                return ParseOk(data)
            last_error = f"expected a JSON object, got {type(data).__name__}"

    return ParseFallback(last_error, raw=text[:500])
