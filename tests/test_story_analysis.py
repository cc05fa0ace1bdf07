import unittest
from unittest import mock

from fakes import FakeClock

from storyline.contracts.story_enrichment import EmotionalTone, StoryEnrichment, enrichment_from_payload
from storyline.enrichment.fallbacks import detect_category_fallback, fallback_enrichment
from storyline.enrichment.story_analysis import EnrichmentCache, StoryAnalyzer


LONG_CONTENT = "<p>The central bank raised its policy rate by fifty basis points on Thursday.</p>"

AI_PAYLOAD = {
    "translated_title": "Merkez bankası faizi artırdı",
    "summary": "Merkez bankası faizi 50 baz puan artırdı.",
    "detail_content": "Merkez bankası perşembe günü politika faizini artırdı.",
    "is_clickbait": False,
    "is_ad": False,
    "category": "Economy",
    "topics": ["#Economy"],
    "sentiment": "negative",
    "political_tone": 9,
    "political_confidence": 1.7,
    "government_mentioned": True,
    "emotional_tone": {"anger": 0.2, "fear": -1, "joy": 0, "sadness": 0.1, "surprise": 0.4},
    "emotional_intensity": 0.6,
    "loaded_language_score": 0.3,
    "sensationalism_score": 0.2,
}


class TestEnrichmentContract(unittest.TestCase):
    def test_scores_are_clamped(self):
        e = enrichment_from_payload(AI_PAYLOAD, title="t")
        self.assertEqual(e.political_tone, 5)
        self.assertEqual(e.political_confidence, 1.0)
        self.assertEqual(e.emotional_tone.fear, 0.0)
        self.assertEqual(e.emotional_tone.surprise, 0.4)
        self.assertFalse(e.is_fallback)

    def test_missing_scores_default_to_zero(self):
        e = enrichment_from_payload(
            {"translated_title": "", "summary": "s", "is_clickbait": True, "is_ad": False}, title="Original"
        )
        self.assertEqual(e.translated_title, "Original")
        self.assertEqual(e.sentiment, "neutral")
        self.assertEqual(e.emotional_tone, EmotionalTone())
        self.assertEqual(e.sensationalism_score, 0.0)
        self.assertTrue(e.should_filter)


class TestFallbacks(unittest.TestCase):
    def test_fallback_is_complete_and_neutral(self):
        e = fallback_enrichment("Başlık", "x" * 300)
        self.assertTrue(e.is_fallback)
        self.assertEqual(e.translated_title, "Başlık")
        self.assertEqual(e.summary, "x" * 200 + "...")
        self.assertEqual(e.detail_content, "x" * 300)
        self.assertEqual(e.sentiment, "neutral")
        self.assertFalse(e.is_clickbait or e.is_ad)
        self.assertEqual(e.political_tone, 0)
        self.assertEqual(e.emotional_tone, EmotionalTone())

    def test_fallback_summary_uses_title_when_no_content(self):
        self.assertEqual(fallback_enrichment("Only a title", "").summary, "Only a title")

    def test_category_keywords(self):
        self.assertEqual(detect_category_fallback("Enflasyon rakamları açıklandı", ""), "Economy")
        self.assertEqual(detect_category_fallback("Local bakery opens", ""), "World")


class TestEnrichmentCache(unittest.TestCase):
    def test_ttl_expiry(self):
        clock = FakeClock()
        cache = EnrichmentCache(ttl_seconds=10, clock=clock)
        value = fallback_enrichment("t", "")
        cache.put("k", value)
        self.assertIs(cache.get("k"), value)
        clock.advance(10)
        self.assertIsNone(cache.get("k"))

    def test_evicts_oldest_when_full(self):
        clock = FakeClock()
        cache = EnrichmentCache(ttl_seconds=100, max_entries=2, clock=clock)
        for key in ("a", "b", "c"):
            cache.put(key, fallback_enrichment(key, ""))
            clock.advance(1)
        self.assertEqual(len(cache), 2)
        self.assertIsNone(cache.get("a"))

    def test_key_uses_title_and_leading_content(self):
        self.assertEqual(EnrichmentCache.key("t", "x" * 500 + "tail-a"), EnrichmentCache.key("t", "x" * 500 + "tail-b"))
        self.assertNotEqual(EnrichmentCache.key("t1", "body"), EnrichmentCache.key("t2", "body"))


class TestStoryAnalyzer(unittest.TestCase):
    def setUp(self):
        self.client = mock.Mock()

    def test_short_content_skips_ai(self):
        analyzer = StoryAnalyzer(self.client)
        e = analyzer.analyze("Title", "too short", "tr")
        self.assertTrue(e.is_fallback)
        self.client.chat_completion.assert_not_called()

    def test_payload_becomes_enrichment_and_is_cached(self):
        self.client.chat_completion.return_value = dict(AI_PAYLOAD)
        analyzer = StoryAnalyzer(self.client, target_language="Turkish")
        first = analyzer.analyze("Central bank hikes", LONG_CONTENT, "en")
        second = analyzer.analyze("Central bank hikes", LONG_CONTENT, "en")
        self.assertEqual(first.summary, AI_PAYLOAD["summary"])
        self.assertEqual(first.category, "Economy")
        self.assertIs(first, second)
        self.assertEqual(self.client.chat_completion.call_count, 1)

        request, options = self.client.chat_completion.call_args[0]
        self.assertTrue(request.structured)
        self.assertIn("Turkish", request.messages[1].content)
        self.assertNotIn("<p>", request.messages[1].content)
        self.assertEqual(options.circuit_name, "openai:story-analysis")

    def test_breaker_fallback_is_not_cached(self):
        def run_fallback(request, options):
            return options.fallback()

        self.client.chat_completion.side_effect = run_fallback
        analyzer = StoryAnalyzer(self.client)
        e = analyzer.analyze("Central bank hikes", LONG_CONTENT, "en")
        self.assertIsInstance(e, StoryEnrichment)
        self.assertTrue(e.is_fallback)
        self.assertEqual(e.translated_title, "Central bank hikes")
        self.assertEqual(len(analyzer.cache), 0)


if __name__ == "__main__":
    unittest.main()
