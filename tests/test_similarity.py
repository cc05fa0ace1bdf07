import unittest

from storyline.matching.similarity import is_duplicate, similarity


class TestSimilarity(unittest.TestCase):
    def test_identical_after_normalization(self):
        self.assertEqual(similarity("  Merkez Bankası ", "merkez bankası"), 1.0)

    def test_empty_scores_zero(self):
        self.assertEqual(similarity("Election results", ""), 0.0)
        self.assertEqual(similarity("   ", "Election results"), 0.0)

    def test_two_empty_titles_are_identical(self):
        self.assertEqual(similarity("", "   "), 1.0)

    def test_range(self):
        s = similarity("Oil prices rise", "Football final tonight")
        self.assertGreaterEqual(s, 0.0)
        self.assertLess(s, 0.5)

    def test_near_duplicate_headline(self):
        a = "Merkez Bankası faiz kararını açıkladı"
        b = "Merkez Bankası faiz kararı açıklandı"
        self.assertGreaterEqual(similarity(a, b), 0.85)
        self.assertTrue(is_duplicate(a, b))

    def test_threshold_is_tunable(self):
        a = "Storm hits the coast"
        b = "Storm hits the east coast"
        score = similarity(a, b)
        self.assertTrue(is_duplicate(a, b, threshold=score))
        self.assertFalse(is_duplicate(a, b, threshold=min(1.0, score + 0.01)))


if __name__ == "__main__":
    unittest.main()
