"""Turn raw model text into a JSON object, repairing truncated replies."""

from __future__ import annotations

import json
import logging
import re
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

_CLOSERS = {"{": "}", "[": "]"}
# an opening fence with an optional language tag; the closing fence may be cut off
_FENCE = re.compile(r"```(?:json)?[ \t]*\n?(.*?)(?:```|\Z)", re.S | re.I)
_decoder = json.JSONDecoder()


def strip_markdown_fence(raw: str) -> str:
    if not raw:
        return raw
    m = _FENCE.search(raw)
    return (m.group(1) if m else raw).strip()


def _open_delimiters(text: str) -> tuple[List[str], bool]:
    """Return the stack of unclosed `{`/`[` and whether text ends inside a string."""
    stack: List[str] = []
    in_string = False
    escape = False
    for ch in text:
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]") and stack:
            stack.pop()
    return stack, in_string


def _close(text: str) -> Optional[str]:
    stack, in_string = _open_delimiters(text)
    if in_string:
        return None
    body = text.rstrip()
    # a dangling separator or key cannot be closed into valid JSON
    body = re.sub(r",\s*$", "", body)
    if body.endswith(":"):
        return None
    return body + "".join(_CLOSERS[ch] for ch in reversed(stack))


def repair_truncated(text: str) -> List[str]:
    """Candidate repairs for a reply that does not end with a closing brace.

    First try closing every open delimiter in place; failing that, cut back to
    the last complete object/array boundary and close what remains open.
    """
    candidates: List[str] = []
    closed = _close(text)
    if closed:
        candidates.append(closed)
    last_complete = max(text.rfind("}"), text.rfind("]"))
    if last_complete > 0:
        cut = _close(text[: last_complete + 1])
        if cut and cut not in candidates:
            candidates.append(cut)
    return candidates


def extract_json_fragment(raw: str) -> str | None:
    """Longest well-formed JSON object embedded anywhere in `raw`."""
    best: str | None = None
    start = raw.find("{")
    while start != -1:
        try:
            obj, end = _decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            start = raw.find("{", start + 1)
            continue
        if isinstance(obj, dict) and (best is None or end - start > len(best)):
            best = raw[start:end]
        start = raw.find("{", end)
    return best


def parse_model_json(raw: str | None) -> Dict | None:
    """Best-effort parse of a model reply into a dict; None when nothing parses."""
    if not raw:
        return None
    candidates: list[str] = []

    def _add(value: str | None) -> None:
        if not value:
            return
        if value not in candidates:
            candidates.append(value)

    cleaned = strip_markdown_fence(raw)
    _add(cleaned)
    if not cleaned.endswith("}"):
        logger.warning("Model reply appears truncated (%d chars); attempting repair", len(cleaned))
        for repaired in repair_truncated(cleaned):
            _add(repaired)
    _add(extract_json_fragment(raw))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None




def extract_response_text(resp) -> str | None:
    try:
        text = getattr(resp, "text", None)
    except ValueError:
        # the SDK raises when a candidate has no text part
        text = None
    if text:
        return text
    for cand in getattr(resp, "candidates", None) or []:
        parts = getattr(getattr(cand, "content", None), "parts", None) or []
        texts = [p.text for p in parts if getattr(p, "text", None)]
        if texts:
            return "".join(texts)
    return None
