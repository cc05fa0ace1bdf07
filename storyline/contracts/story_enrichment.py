"""Story enrichment contract.

The enrichment is the structured JSON object the AI service returns for one
story. This module defines:
- A JSON Schema (for validation of the raw reply)
- The normalized StoryEnrichment record persisted with a story
- Helpers turning a validated payload into a StoryEnrichment with clamped scores

Every enrichment field is always populated; a missing score becomes 0 so a
story never carries half an enrichment.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


SENTIMENTS = ("positive", "neutral", "negative")

CATEGORIES = ("Politics", "Economy", "Sports", "Technology", "Health", "Science", "Culture", "World")
DEFAULT_CATEGORY = "World"

_SCORE = {"type": "number"}

STORY_ENRICHMENT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["translated_title", "summary", "is_clickbait", "is_ad"],
    "properties": {
        "translated_title": {"type": "string"},
        "summary": {"type": "string"},
        "detail_content": {"type": "string"},
        "is_clickbait": {"type": "boolean"},
        "is_ad": {"type": "boolean"},
        "category": {"type": "string"},
        "topics": {"type": "array", "items": {"type": "string"}},
        "sentiment": {"type": "string", "enum": list(SENTIMENTS)},
        "political_tone": {"type": "number"},
        "political_confidence": _SCORE,
        "government_mentioned": {"type": "boolean"},
        "emotional_tone": {
            "type": "object",
            "properties": {
                "anger": _SCORE,
                "fear": _SCORE,
                "joy": _SCORE,
                "sadness": _SCORE,
                "surprise": _SCORE,
            },
            "additionalProperties": True,
        },
        "emotional_intensity": _SCORE,
        "loaded_language_score": _SCORE,
        "sensationalism_score": _SCORE,
    },
    "additionalProperties": True,
}


def clamp_score(value: Any, default: float = 0.0) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    if v != v:  # NaN
        return default
    return max(0.0, min(1.0, v))


def clamp_tone(value: Any) -> int:
    try:
        v = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(-5, min(5, v))


@dataclass(frozen=True)
class EmotionalTone:
    anger: float = 0.0
    fear: float = 0.0
    joy: float = 0.0
    sadness: float = 0.0
    surprise: float = 0.0

    @classmethod
    def from_payload(cls, raw: Optional[Dict[str, Any]]) -> "EmotionalTone":
        raw = raw if isinstance(raw, dict) else {}
        return cls(
            anger=clamp_score(raw.get("anger")),
            fear=clamp_score(raw.get("fear")),
            joy=clamp_score(raw.get("joy")),
            sadness=clamp_score(raw.get("sadness")),
            surprise=clamp_score(raw.get("surprise")),
        )

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class StoryEnrichment:
    translated_title: str
    summary: str
    detail_content: str
    is_clickbait: bool = False
    is_ad: bool = False
    category: str = DEFAULT_CATEGORY
    topics: List[str] = field(default_factory=list)
    sentiment: str = "neutral"
    political_tone: int = 0
    political_confidence: float = 0.0
    government_mentioned: bool = False
    emotional_tone: EmotionalTone = field(default_factory=EmotionalTone)
    emotional_intensity: float = 0.0
    loaded_language_score: float = 0.0
    sensationalism_score: float = 0.0
    is_fallback: bool = False

    @property
    def should_filter(self) -> bool:
        return self.is_clickbait or self.is_ad


def enrichment_from_payload(payload: Dict[str, Any], *, title: str, content: str = "") -> StoryEnrichment:
    """Normalize a validated AI payload; out-of-range scores are clamped."""
    sentiment = str(payload.get("sentiment") or "neutral").lower()
    if sentiment not in SENTIMENTS:
        sentiment = "neutral"
    topics = payload.get("topics") or []
    summary = str(payload.get("summary") or "").strip()
    return StoryEnrichment(
        translated_title=str(payload.get("translated_title") or "").strip() or title,
        summary=summary,
        detail_content=str(payload.get("detail_content") or "").strip() or content or summary,
        is_clickbait=bool(payload.get("is_clickbait", False)),
        is_ad=bool(payload.get("is_ad", False)),
        category=str(payload.get("category") or DEFAULT_CATEGORY).strip() or DEFAULT_CATEGORY,
        topics=[str(t) for t in topics if t],
        sentiment=sentiment,
        political_tone=clamp_tone(payload.get("political_tone")),
        political_confidence=clamp_score(payload.get("political_confidence")),
        government_mentioned=bool(payload.get("government_mentioned", False)),
        emotional_tone=EmotionalTone.from_payload(payload.get("emotional_tone")),
        emotional_intensity=clamp_score(payload.get("emotional_intensity")),
        loaded_language_score=clamp_score(payload.get("loaded_language_score")),
        sensationalism_score=clamp_score(payload.get("sensationalism_score")),
    )
