"""Best-effort recovery of JSON objects from LLM responses.

Models wrap JSON in prose, code fences or reasoning tags, use typographic
quotes, leave trailing commas and sometimes stop mid-object when they run
out of tokens. ``parse_json_response`` strips and repairs those before
giving up.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_THINK_TAGS = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")

_QUOTE_MAP = str.maketrans({
    "“": '"',
    "”": '"',
    "„": '"',
    "‘": "'",
    "’": "'",
})


class JsonRepairError(ValueError):
    """Raised when no JSON object can be recovered from a response."""

    pass


def strip_wrappers(text: str) -> str:
    """Remove reasoning tags and unwrap the first fenced code block."""
    text = _THINK_TAGS.sub("", text)
    # An unclosed <think> means the answer follows the last closing tag
    if "</think>" in text:
        text = text.rsplit("</think>", 1)[1]
    fenced = _CODE_FENCE.search(text)
    if fenced:
        text = fenced.group(1)
    return text.strip()


def normalize_quotes(text: str) -> str:
    return text.translate(_QUOTE_MAP)


def extract_object(text: str) -> str:
    """Slice from the first ``{`` to the last ``}``, or to the end if unclosed."""
    start = text.find("{")
    if start == -1:
        return text
    end = text.rfind("}")
    if end > start:
        return text[start:end + 1]
    return text[start:]


def balance_brackets(text: str) -> str:
    """Close an unterminated string and any brackets left open."""
    stack: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack and stack[-1] == char:
            stack.pop()

    repaired = text
    if in_string:
        repaired += '"'
    repaired = repaired.rstrip()
    while repaired.endswith((",", ":")):
        repaired = repaired[:-1].rstrip()
    return repaired + "".join(reversed(stack))


def repair_json(text: str) -> str:
    repaired = balance_brackets(text)
    return _TRAILING_COMMA.sub(r"\1", repaired)


def parse_json_response(text: str) -> Any:
    """Parse the JSON object in an LLM response, repairing it if needed.

    Raises:
        JsonRepairError: If the response holds nothing parseable.
    """
    if not text or not text.strip():
        raise JsonRepairError("Empty response")

    candidate = extract_object(normalize_quotes(strip_wrappers(text)))

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(candidate)
    try:
        result = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise JsonRepairError(f"Unrecoverable JSON: {e}") from e

    logger.debug(f"Repaired malformed JSON response ({len(text)} chars)")
    return result
