import math
import unittest
from datetime import timedelta

from fakes import InMemoryStoryStore, fixed_utc

from storyline.analytics.instability import (
    WEIGHTS,
    Breakdown,
    InstabilityEngine,
    anomaly_level,
    detect_anomaly,
    instability_level,
    instability_score,
    velocity_score,
    welford,
)
from storyline.contracts.story_enrichment import StoryEnrichment
from storyline.countries import CountryCode
from storyline.ingestion.story_types import CandidateItem
from storyline.storage.records import Story


NOW = fixed_utc(2025, 3, 10, 18, 0)


def _story(published_at, *, sentiment="neutral", intensity=0.0, loaded=0.0, sensational=0.0, filtered=False):
    enrichment = StoryEnrichment(
        translated_title="t",
        summary="s",
        detail_content="d",
        is_ad=filtered,
        sentiment=sentiment,
        emotional_intensity=intensity,
        loaded_language_score=loaded,
        sensationalism_score=sensational,
    )
    item = CandidateItem(title="title", link="https://example.com", published_at=published_at)
    return Story.from_candidate(item, enrichment, language="en", category_id=None, scraped_at=published_at)


class TestWelford(unittest.TestCase):
    def test_mean_and_sample_stddev(self):
        n, mean, variance = welford([10, 12, 11, 13, 14])
        self.assertEqual(n, 5)
        self.assertAlmostEqual(mean, 12.0)
        self.assertAlmostEqual(math.sqrt(variance), math.sqrt(2.5))
        self.assertAlmostEqual(math.sqrt(variance), 1.5811, places=4)

    def test_single_sample_has_zero_variance(self):
        self.assertEqual(welford([7]), (1, 7.0, 0.0))
        self.assertEqual(welford([]), (0, 0.0, 0.0))


class TestAnomaly(unittest.TestCase):
    def test_too_little_history_is_normal(self):
        report = detect_anomaly([100, 5], today_count=40)
        self.assertEqual(report.z_score, 0.0)
        self.assertEqual(report.level, "NORMAL")
        self.assertEqual(report.avg_daily_count, 40)

    def test_z_score_rounded(self):
        report = detect_anomaly([10, 12, 11, 13, 14], today_count=17)
        self.assertEqual(report.z_score, round(5 / math.sqrt(2.5), 2))
        self.assertEqual(report.level, "CRITICAL")
        self.assertEqual(report.avg_daily_count, 12)

    def test_zero_stddev(self):
        self.assertEqual(detect_anomaly([5, 5, 5], today_count=50).z_score, 0.0)

    def test_levels(self):
        self.assertEqual(anomaly_level(1.49), "NORMAL")
        self.assertEqual(anomaly_level(1.5), "ELEVATED")
        self.assertEqual(anomaly_level(2.0), "HIGH")
        self.assertEqual(anomaly_level(3.0), "CRITICAL")


class TestInstabilityScore(unittest.TestCase):
    def test_weights_sum_to_one(self):
        self.assertAlmostEqual(sum(WEIGHTS), 1.0)

    def test_bounds(self):
        for components in [(0, 0, 0, 0, 0), (1, 1, 1, 1, 1), (5, -2, 9, float("nan"), 1), (0.5,) * 5]:
            score = instability_score(Breakdown(*components))
            self.assertIsInstance(score, int)
            self.assertGreaterEqual(score, 0)
            self.assertLessEqual(score, 100)
        self.assertEqual(instability_score(Breakdown(1, 1, 1, 1, 1)), 100)

    def test_levels(self):
        self.assertEqual(instability_level(29), "low")
        self.assertEqual(instability_level(30), "medium")
        self.assertEqual(instability_level(60), "high")

    def test_velocity_saturates(self):
        self.assertEqual(velocity_score(10, 0), 0.0)
        self.assertEqual(velocity_score(30, 70), 1.0)
        self.assertAlmostEqual(velocity_score(10, 70), 1 / 3)


class TestInstabilityEngine(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStoryStore()
        self.engine = InstabilityEngine(self.store, clock=lambda: NOW)

    def _add(self, story):
        self.store.insert_story(CountryCode.US, story)

    def test_empty_country(self):
        report = self.engine.calculate(CountryCode.US)
        self.assertEqual(report.score, 0)
        self.assertEqual(report.level, "low")
        self.assertEqual(report.anomaly.level, "NORMAL")

    def test_components_from_last_day(self):
        recent = NOW - timedelta(hours=2)
        self._add(_story(recent, sentiment="negative", intensity=0.8, loaded=0.4, sensational=0.6))
        self._add(_story(recent, sentiment="neutral", intensity=0.4, loaded=0.0, sensational=0.2))
        self._add(_story(recent, sentiment="negative", intensity=1.0, filtered=True))
        self._add(_story(NOW - timedelta(days=3)))

        report = self.engine.calculate("us")
        self.assertEqual(report.article_count_24h, 2)
        self.assertEqual(report.breakdown.negative_sentiment_ratio, 0.5)
        self.assertAlmostEqual(report.breakdown.avg_emotional_intensity, 0.6)
        self.assertAlmostEqual(report.breakdown.avg_loaded_language, 0.2)
        self.assertAlmostEqual(report.breakdown.avg_sensationalism, 0.4)
        # 2 today vs 3/7 per day: saturated
        self.assertEqual(report.breakdown.news_velocity_score, 1.0)
        # 0.30*0.5 + 0.25*0.6 + 0.20*1.0 + 0.15*0.2 + 0.10*0.4
        self.assertEqual(report.score, 57)
        self.assertEqual(report.level, "medium")

    def test_recomputation_is_idempotent(self):
        self._add(_story(NOW - timedelta(hours=1), sentiment="negative", intensity=0.5))
        self.assertEqual(self.engine.calculate(CountryCode.US), self.engine.calculate(CountryCode.US))

    def test_anomaly_over_daily_counts(self):
        for day, count in enumerate([10, 12, 11, 13, 14]):
            for _ in range(count):
                self._add(_story(NOW - timedelta(days=5 - day, hours=1)))
        report = self.engine.calculate(CountryCode.US)
        self.assertEqual(report.anomaly.article_count_today, 0)
        self.assertLess(report.anomaly.z_score, 0)

    def test_calculate_all_zeroes_failing_country(self):
        original = self.store.window_stats

        def window_stats(country, since):
            if country is CountryCode.RU:
                raise RuntimeError("table missing")
            return original(country, since)

        self.store.window_stats = window_stats
        reports = self.engine.calculate_all()
        self.assertEqual(set(reports), {c.value for c in CountryCode})
        self.assertEqual(reports["ru"].score, 0)
        self.assertEqual(reports["ru"].anomaly.z_score, 0.0)

    def test_report_as_dict(self):
        data = self.engine.calculate(CountryCode.US).as_dict()
        self.assertEqual(data["country"], "us")
        self.assertIn("negative_sentiment_ratio", data["breakdown"])
        self.assertIn("z_score", data["anomaly"])


if __name__ == "__main__":
    unittest.main()
