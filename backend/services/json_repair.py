"""
Shared JSON Repair Utility

Extracts, cleans, repairs, and parses JSON from model responses.
Models wrap JSON in prose or code fences, leave trailing commas and `//`
comments, and get cut off mid-object by token limits. This module turns
that text into a structured value in a deterministic pipeline:

1. Extract the JSON candidate (fenced block, outermost braces, or whole text)
2. Parse as-is
3. Clean (trailing commas, line comments, stray control characters) and retry
4. Repair truncation (close open strings, brackets and braces) and retry
5. Raise NormalizationError carrying the raw text

Used by: every reasoning agent in routers/assistant_orchestration/agents
"""

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from errors import NormalizationError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_CLOSERS = {"{": "}", "[": "]"}
# number or literal running up to the end of the text, outside any string
_BARE_TAIL_RE = re.compile(r"(?:[-+0-9.eE]+|[A-Za-z]+)\Z")
_LITERALS = ("true", "false", "null")


def extract_json_from_response(text: str) -> Optional[str]:
    """
    Extract a JSON candidate string from a model response.

    Tries (in order):
    1. ```json fenced code blocks (or bare ``` fences)
    2. Raw JSON object (first { to last }, or to end of text when truncated)
    3. The whole trimmed text

    Args:
        text: Raw model response text

    Returns:
        Extracted JSON string, or None for empty input
    """
    if not text or not text.strip():
        return None

    # Try fenced blocks first (most reliable)
    fence_match = _FENCE_RE.search(text)
    if fence_match and fence_match.group(1).strip():
        return fence_match.group(1).strip()

    # Unterminated fence (truncated output): take everything after the opener
    if "```" in text and not fence_match:
        tail = re.split(r"```(?:json|JSON)?", text, maxsplit=1)[1]
        if "{" in tail:
            text = tail

    start = text.find("{")
    if start != -1:
        end = text.rfind("}")
        if end > start:
            return text[start : end + 1].strip()
        return text[start:].strip()

    return text.strip()


def clean_json(json_str: str) -> str:
    """
    Remove the common non-JSON noise models add.

    - Trailing commas before } or ]
    - `//` line comments outside string literals
    - Control characters other than newline, tab and carriage return

    Args:
        json_str: JSON candidate string

    Returns:
        Cleaned string (may still be invalid)
    """
    json_str = _CONTROL_RE.sub("", json_str)

    out: List[str] = []
    in_string = False
    escaped = False
    i = 0
    n = len(json_str)
    while i < n:
        c = json_str[i]
        if in_string:
            out.append(c)
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            i += 1
            continue

        if c == '"':
            in_string = True
            out.append(c)
        elif c == "/" and i + 1 < n and json_str[i + 1] == "/":
            newline = json_str.find("\n", i)
            i = n if newline == -1 else newline
            continue
        elif c == ",":
            j = i + 1
            while j < n and json_str[j] in " \t\r\n":
                j += 1
            if j < n and json_str[j] in "}]":
                i += 1
                continue
            out.append(c)
        else:
            out.append(c)
        i += 1

    return "".join(out)


def _scan(json_str: str) -> Tuple[List[str], bool, List[Tuple[int, Tuple[str, ...]]], int]:
    """Walk the text tracking open containers, string state and safe cut points.

    A safe cut point is a position where everything before it is a sequence
    of complete elements inside the currently open containers: right after
    an opening bracket, or right before a separating comma. Also returns the
    end of the first complete top-level container (0 if none closed).
    """
    stack: List[str] = []
    cuts: List[Tuple[int, Tuple[str, ...]]] = []
    in_string = False
    escaped = False
    first_end = 0
    for i, c in enumerate(json_str):
        if first_end:
            break
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c in _CLOSERS:
            stack.append(c)
            cuts.append((i + 1, tuple(stack)))
        elif c in "}]":
            if stack and _CLOSERS[stack[-1]] == c:
                stack.pop()
                if not stack:
                    first_end = i + 1
        elif c == "," and stack:
            cuts.append((i, tuple(stack)))
    return stack, in_string, cuts, first_end


def _close(stack) -> str:
    return "".join(_CLOSERS[opener] for opener in reversed(stack))


def _ends_in_partial_scalar(json_str: str) -> bool:
    match = _BARE_TAIL_RE.search(json_str.rstrip())
    return match is not None and match.group(0) not in _LITERALS


def repair_json(json_str: str) -> List[str]:
    """
    Build repair candidates for truncated JSON, most complete first.

    The first candidate keeps all text: it closes a dangling string literal,
    drops a trailing separator and appends the missing closers in LIFO order.
    It is skipped when the text ends inside a bare number or literal, since
    `0.` or `1` may be the start of `0.75` or `12`.
    Further candidates cut back to each earlier element boundary so a
    half-written key or value is dropped rather than guessed. Only closers
    are ever added, so a value never changes type. When a complete
    top-level value is followed by trailing text, that value alone is the
    only candidate.

    Args:
        json_str: Cleaned JSON candidate string

    Returns:
        Candidate strings to try in order
    """
    stack, in_string, cuts, first_end = _scan(json_str)
    if first_end:
        logger.debug(f"Truncated trailing content after position {first_end}")
        return [json_str[:first_end]]

    candidates = []

    if in_string or not _ends_in_partial_scalar(json_str):
        head = json_str + '"' if in_string else json_str
        head = head.rstrip()
        while head.endswith((",", ":")):
            head = head[:-1].rstrip()
        candidates.append(head + _close(stack))

    for pos, open_stack in reversed(cuts):
        candidate = json_str[:pos].rstrip() + _close(open_stack)
        if candidate not in candidates:
            candidates.append(candidate)

    return candidates


def _loads(json_str: str) -> Any:
    return json.loads(json_str, strict=False)


def parse_json_response(text: str) -> Any:
    """
    Full pipeline: extract JSON from a model response, clean, repair, and parse.

    The input is never mutated and the same input always yields the same result.

    Args:
        text: Raw model response text

    Returns:
        Parsed Python object (dict/list/scalar)

    Raises:
        NormalizationError: when no stage yields valid JSON (carries the raw text)
    """
    json_str = extract_json_from_response(text)
    if json_str is None:
        raise NormalizationError("Empty model response", raw_text=text or "")

    # Try parsing as-is first (fast path)
    try:
        return _loads(json_str)
    except json.JSONDecodeError:
        pass

    cleaned = clean_json(json_str)
    try:
        value = _loads(cleaned)
        logger.debug("Parsed JSON after cleaning")
        return value
    except json.JSONDecodeError:
        pass

    for candidate in repair_json(cleaned):
        try:
            value = _loads(candidate)
        except json.JSONDecodeError:
            continue
        logger.info("Applied JSON truncation repair")
        return value

    logger.warning(f"JSON parse failed after all repairs ({len(text)} chars)")
    raise NormalizationError("Could not parse model response as JSON", raw_text=text)


def parse_json_object(text: str) -> dict:
    """Like parse_json_response, but the result must be a JSON object."""
    value = parse_json_response(text)
    if not isinstance(value, dict):
        raise NormalizationError(
            "Model response is not a JSON object",
            raw_text=text,
            details=f"got {type(value).__name__}",
        )
    return value
