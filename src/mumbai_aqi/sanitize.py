"""
Repair and validate generated recommendation text.

Model output is untrusted: it may be wrapped in code fences or prose, cut
off mid-array, or carry trailing commas. The steps below run in order and
either return validated candidates or raise a GenerationError subclass.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Iterable, Optional

from .errors import MalformedOutput, NoValidRecommendations
from .models import RecommendationCandidate

logger = logging.getLogger(__name__)

MIN_REDUCTION = 1
MAX_REDUCTION = 50

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)
_INTRO_PATTERNS = tuple(
    re.compile(rf"^[^\[]*{phrase}[^\[]*", re.IGNORECASE)
    for phrase in (
        "Here are",
        "Here is",
        "The recommendations",
        "Below are",
        "Following are",
        "These are",
    )
)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_wrapping(raw: str) -> str:
    """Drop code fences and a leading introductory phrase."""
    cleaned = _FENCE_RE.sub("", raw).strip()
    for pattern in _INTRO_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            cleaned = cleaned[match.end():].strip().lstrip(":- \t\r\n")
    return cleaned


def find_array_end(text: str) -> Optional[int]:
    """
    Index of the bracket closing text[0] == "[", or None if input ends first.

    Brackets inside double-quoted strings do not count.
    """
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return None


def extract_json_array(raw: str) -> str:
    """Return the repaired text of the first top-level JSON array in raw."""
    cleaned = strip_wrapping(raw or "")

    start = cleaned.find("[")
    if start == -1:
        raise MalformedOutput("No JSON array found in response")
    cleaned = cleaned[start:]

    end = find_array_end(cleaned)
    if end is None:
        logger.debug("[sanitize] array not closed, appending ']'")
        cleaned = cleaned + "]"
    else:
        cleaned = cleaned[:end + 1]

    return _TRAILING_COMMA_RE.sub(r"\1", cleaned)


def parse_entries(raw: str) -> list[Any]:
    text = extract_json_array(raw)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedOutput(f"Failed to parse recommendations: {exc}") from exc
    if not isinstance(parsed, list):
        raise MalformedOutput(f"Expected a JSON array, got {type(parsed).__name__}")
    return parsed


def _coerce_reduction(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or not MIN_REDUCTION <= number <= MAX_REDUCTION:
        return None
    return int(round(number))


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        value = ", ".join(str(v) for v in value if v is not None)
    text = str(value).strip()
    return text or None


def validate_entry(entry: Any, block_list: Iterable[str]) -> tuple[Optional[RecommendationCandidate], str]:
    """Return (candidate, "") or (None, rejection reason)."""
    if not isinstance(entry, dict):
        return None, "not an object"

    title = entry.get("title")
    description = entry.get("description")
    if not isinstance(title, str) or not title.strip():
        return None, "missing title"
    if not isinstance(description, str) or not description.strip():
        return None, "missing description"

    reduction = _coerce_reduction(entry.get("aqi_reduction"))
    if reduction is None:
        return None, f"aqi_reduction out of range: {entry.get('aqi_reduction')!r}"

    title_lower = title.lower()
    description_lower = description.lower()
    for blocked in block_list:
        needle = blocked.lower()
        if needle in title_lower or needle in description_lower:
            return None, f"mentions blocked location {blocked!r}"

    candidate = RecommendationCandidate(
        title=title.strip(),
        description=description.strip(),
        aqi_reduction=reduction,
    )
    for field_name in ("impact_level", "timeframe", "cost", "stakeholders"):
        value = _text(entry.get(field_name))
        if value is not None:
            setattr(candidate, field_name, value)
    return candidate, ""


def sanitize_and_validate(raw: str, block_list: Iterable[str]) -> list[RecommendationCandidate]:
    """
    Parse raw model output and keep only entries that pass validation.

    Raises MalformedOutput when no array can be parsed, and
    NoValidRecommendations when every entry is rejected.
    """
    block_list = tuple(block_list)
    entries = parse_entries(raw)

    candidates: list[RecommendationCandidate] = []
    for position, entry in enumerate(entries, start=1):
        candidate, reason = validate_entry(entry, block_list)
        if candidate is None:
            logger.debug("[sanitize] dropped entry %d: %s", position, reason)
            continue
        candidates.append(candidate)

    if not candidates:
        raise NoValidRecommendations(
            f"No valid recommendations after validation ({len(entries)} parsed)"
        )

    logger.info("[sanitize] kept %d/%d candidates", len(candidates), len(entries))
    return candidates
