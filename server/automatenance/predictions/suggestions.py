"""
Suggestion model and decoder for language-model output.

The provider is asked for a JSON array of suggestion objects. Decoding never
raises: each field is coerced or dropped individually and the outcome is
returned as a ParseResult.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional

from automatenance.models.prediction import Urgency
from automatenance.predictions.features import parse_event_date, round_half_up
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 1
MAX_CONFIDENCE = 99

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class Suggestion(BaseModel):
    """A forecast item before persistence (baseline or AI)."""

    title: str
    description: str
    predicted_date: Optional[date] = None
    predicted_mileage: Optional[int] = None
    confidence: Optional[int] = None
    urgency: Optional[Urgency] = None
    refs: List[str] = Field(default_factory=list)


@dataclass
class ParseResult:
    """Outcome of decoding provider text."""

    suggestions: List[Suggestion] = field(default_factory=list)
    error: Optional[str] = None
    dropped: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def clamp_int(value: float, lo: int, hi: int) -> int:
    """Round to nearest integer (half up) and clamp into [lo, hi]."""
    return min(max(round_half_up(value), lo), hi)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _coerce_item(raw: Any) -> Optional[Suggestion]:
    if not isinstance(raw, dict):
        return None

    title = str(raw.get("title") or "").strip()
    description = str(raw.get("description") or "").strip()
    if not title or not description:
        return None

    predicted_date = None
    if isinstance(raw.get("predicted_date"), str):
        predicted_date = parse_event_date(raw["predicted_date"])

    predicted_mileage = None
    mileage = raw.get("predicted_mileage")
    if _is_number(mileage) and mileage >= 0:
        predicted_mileage = round_half_up(mileage)

    confidence = None
    if _is_number(raw.get("confidence")):
        confidence = clamp_int(raw["confidence"], MIN_CONFIDENCE, MAX_CONFIDENCE)

    urgency = None
    if raw.get("urgency") in {u.value for u in Urgency}:
        urgency = Urgency(raw["urgency"])

    refs = raw.get("refs")
    refs = [r for r in refs if isinstance(r, str)] if isinstance(refs, list) else []

    return Suggestion(
        title=title,
        description=description,
        predicted_date=predicted_date,
        predicted_mileage=predicted_mileage,
        confidence=confidence,
        urgency=urgency,
        refs=refs,
    )


def parse_suggestions(text: Optional[str]) -> ParseResult:
    """
    Decode a provider reply into suggestions.

    The reply must be a JSON array, optionally wrapped in a single Markdown
    code fence. Items without both a title and a description are dropped.

    Args:
        text: Raw message content from the provider

    Returns:
        ParseResult; ``error`` is set when the reply is not a JSON array
    """
    if not text or not text.strip():
        return ParseResult(error="empty response")

    body = text.strip()
    fenced = _FENCE_RE.match(body)
    if fenced:
        body = fenced.group(1)

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        return ParseResult(error=f"invalid JSON: {e}")

    if not isinstance(data, list):
        return ParseResult(error=f"expected JSON array, got {type(data).__name__}")

    result = ParseResult()
    for raw in data:
        suggestion = _coerce_item(raw)
        if suggestion is None:
            result.dropped += 1
            continue
        result.suggestions.append(suggestion)

    if result.dropped:
        logger.debug(f"Dropped {result.dropped} malformed suggestion(s) from provider output")

    return result


def dump_suggestions(suggestions: List[Suggestion]) -> List[dict]:
    """JSON-ready list for caching and prompts."""
    return [s.model_dump(mode="json") for s in suggestions]


def load_suggestions(raw: Any) -> List[Suggestion]:
    """Rebuild suggestions from a cached value; invalid items are skipped."""
    if not isinstance(raw, list):
        return []
    out = []
    for item in raw:
        suggestion = _coerce_item(item)
        if suggestion is not None:
            out.append(suggestion)
    return out
