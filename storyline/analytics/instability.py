"""Country instability index and news-volume anomaly detection.

Instability score (0-100):
    0.30 * negative sentiment ratio
  + 0.25 * mean emotional intensity
  + 0.20 * news velocity (24h count vs 7-day daily mean, 3x saturates)
  + 0.15 * mean loaded-language score
  + 0.10 * mean sensationalism score

Anomaly: z-score of the last 24h count against the 30-day daily counts, whose
mean and sample variance are computed in one pass with Welford's algorithm.

Both are recomputed from the story store on every call.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Tuple

from storyline.countries import CountryCode
from storyline.storage.records import utcnow
from storyline.storage.story_store import StoryStore


logger = logging.getLogger(__name__)

W_NEGATIVE = 0.30
W_INTENSITY = 0.25
W_VELOCITY = 0.20
W_LOADED = 0.15
W_SENSATIONALISM = 0.10
WEIGHTS: Tuple[float, ...] = (W_NEGATIVE, W_INTENSITY, W_VELOCITY, W_LOADED, W_SENSATIONALISM)

VELOCITY_CAP = 3.0
MIN_ANOMALY_DAYS = 3
ANOMALY_WINDOW_DAYS = 30


@dataclass(frozen=True)
class Breakdown:
    negative_sentiment_ratio: float = 0.0
    avg_emotional_intensity: float = 0.0
    news_velocity_score: float = 0.0
    avg_loaded_language: float = 0.0
    avg_sensationalism: float = 0.0

    def components(self) -> Tuple[float, ...]:
        return (
            self.negative_sentiment_ratio,
            self.avg_emotional_intensity,
            self.news_velocity_score,
            self.avg_loaded_language,
            self.avg_sensationalism,
        )

    def rounded(self) -> "Breakdown":
        return Breakdown(*(round(c, 2) for c in self.components()))


@dataclass(frozen=True)
class AnomalyReport:
    z_score: float = 0.0
    level: str = "NORMAL"
    article_count_today: int = 0
    avg_daily_count: int = 0


@dataclass(frozen=True)
class InstabilityReport:
    country: str
    score: int = 0
    level: str = "low"
    breakdown: Breakdown = field(default_factory=Breakdown)
    article_count_24h: int = 0
    anomaly: AnomalyReport = field(default_factory=AnomalyReport)

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


def welford(values: Iterable[float]) -> Tuple[int, float, float]:
    """Return (n, mean, sample variance) in a single pass."""
    n = 0
    mean = 0.0
    m2 = 0.0
    for x in values:
        n += 1
        delta = x - mean
        mean += delta / n
        m2 += delta * (x - mean)
    variance = m2 / (n - 1) if n > 1 else 0.0
    return n, mean, variance


def anomaly_level(z_score: float) -> str:
    if z_score >= 3.0:
        return "CRITICAL"
    if z_score >= 2.0:
        return "HIGH"
    if z_score >= 1.5:
        return "ELEVATED"
    return "NORMAL"


def detect_anomaly(daily_counts: Iterable[int], today_count: int) -> AnomalyReport:
    counts = list(daily_counts)
    if len(counts) < MIN_ANOMALY_DAYS:
        return AnomalyReport(z_score=0.0, level="NORMAL", article_count_today=today_count, avg_daily_count=today_count)

    _, mean, variance = welford(counts)
    stddev = math.sqrt(variance)
    z = (today_count - mean) / stddev if stddev > 0 else 0.0
    return AnomalyReport(
        z_score=round(z, 2),
        level=anomaly_level(z),
        article_count_today=today_count,
        avg_daily_count=int(round(mean)),
    )


def velocity_score(today_count: int, week_count: int) -> float:
    avg_daily = week_count / 7
    if avg_daily <= 0:
        return 0.0
    return min(today_count / avg_daily, VELOCITY_CAP) / VELOCITY_CAP


def _unit(value: float) -> float:
    if value != value:
        return 0.0
    return max(0.0, min(1.0, float(value)))


def instability_score(breakdown: Breakdown) -> int:
    raw = sum(w * _unit(c) for w, c in zip(WEIGHTS, breakdown.components()))
    return max(0, min(100, int(round(raw * 100))))


def instability_level(score: int) -> str:
    if score < 30:
        return "low"
    if score < 60:
        return "medium"
    return "high"


class InstabilityEngine:
    def __init__(self, store: StoryStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    def calculate(self, country: CountryCode) -> InstabilityReport:
        country = CountryCode.parse(country)
        now = self._clock()

        stats = self.store.window_stats(country, now - timedelta(hours=24))
        week_count = self.store.count_stories(country, now - timedelta(days=7))
        daily = self.store.daily_counts(country, now - timedelta(days=ANOMALY_WINDOW_DAYS))

        total = stats.total_count
        breakdown = Breakdown(
            negative_sentiment_ratio=stats.negative_count / total if total > 0 else 0.0,
            avg_emotional_intensity=_unit(stats.avg_emotional_intensity),
            news_velocity_score=velocity_score(total, week_count),
            avg_loaded_language=_unit(stats.avg_loaded_language),
            avg_sensationalism=_unit(stats.avg_sensationalism),
        )
        score = instability_score(breakdown)
        return InstabilityReport(
            country=country.value,
            score=score,
            level=instability_level(score),
            breakdown=breakdown.rounded(),
            article_count_24h=total,
            anomaly=detect_anomaly((d.count for d in daily), total),
        )

    def calculate_all(self) -> Dict[str, InstabilityReport]:
        results: Dict[str, InstabilityReport] = {}
        for country in CountryCode:
            try:
                results[country.value] = self.calculate(country)
            except Exception as e:
                logger.error(f"Instability calculation failed for {country.value}: {e}")
                results[country.value] = InstabilityReport(country=country.value)
        return results
