"""
Reaction statistics tests (PVT-style lapses, false starts, interpretation).
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


class TestReactionStatistics(unittest.TestCase):
    """Test compute() and the interpretation cascade."""

    def test_empty_is_no_data_sentinel(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        metrics = compute([])
        self.assertFalse(metrics.has_data)
        self.assertEqual(metrics.interpretation, FatigueInterpretation.NO_DATA)
        self.assertEqual(metrics.average_reaction_time, 0)
        self.assertEqual(metrics.standard_deviation, 0)
        self.assertEqual(metrics.reaction_time_variability, 0)
        self.assertEqual(metrics.lapses, 0)
        self.assertEqual(metrics.false_starts, 0)
        self.assertEqual(metrics.error_rate, 0)

    def test_lapse_and_false_start_example(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        metrics = compute([600, 150, 300])
        self.assertEqual(metrics.lapses, 1)
        self.assertEqual(metrics.false_starts, 1)
        self.assertEqual(metrics.average_reaction_time, 350.0)
        self.assertAlmostEqual(metrics.standard_deviation, 187.1)
        self.assertEqual(metrics.reaction_time_variability, metrics.standard_deviation)
        self.assertAlmostEqual(metrics.error_rate, 33.3)
        self.assertEqual(metrics.interpretation, FatigueInterpretation.STRONG_FATIGUE)

    def test_high_alertness(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        metrics = compute([250, 260, 270, 255])
        self.assertEqual(metrics.interpretation, FatigueInterpretation.HIGH_ALERTNESS)

    def test_moderate_fatigue(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        # One lapse, stdev below 100, mean below 400
        metrics = compute([300, 320, 340, 360, 520])
        self.assertEqual(metrics.lapses, 1)
        self.assertLess(metrics.standard_deviation, 100)
        self.assertEqual(metrics.interpretation, FatigueInterpretation.MODERATE_FATIGUE)

    def test_many_lapses_strong(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        metrics = compute([510, 520, 530])
        self.assertEqual(metrics.interpretation, FatigueInterpretation.STRONG_FATIGUE)

    def test_false_start_attention_issues(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        metrics = compute([190, 250, 260, 270])
        self.assertEqual(metrics.false_starts, 1)
        self.assertEqual(metrics.interpretation, FatigueInterpretation.ATTENTION_ISSUES)

    def test_normal_minor_variation(self):
        from utils.reaction_statistics import FatigueInterpretation, compute
        metrics = compute([220, 300, 380])
        self.assertEqual(metrics.interpretation, FatigueInterpretation.NORMAL)

    def test_error_rate_denominator(self):
        from utils.reaction_statistics import compute
        # misses count against max(totalAttempts, samples + misses)
        self.assertAlmostEqual(compute([300, 300], misses=2, total_attempts=10).error_rate, 20.0)
        self.assertAlmostEqual(compute([300, 300], misses=2, total_attempts=0).error_rate, 50.0)

    def test_tagged_samples(self):
        from utils.reaction_statistics import ReactionSample, SampleKind, compute_from_samples
        samples = [
            ReactionSample(300),
            ReactionSample(320),
            ReactionSample(0, SampleKind.MISS),
            ReactionSample(0, SampleKind.ERROR),
        ]
        metrics = compute_from_samples(samples)
        self.assertEqual(metrics.average_reaction_time, 310.0)
        self.assertAlmostEqual(metrics.error_rate, 50.0)

    def test_to_dict_shape(self):
        from utils.reaction_statistics import compute
        out = compute([600, 150, 300]).to_dict()
        self.assertEqual(out["interpretation"], "strong fatigue signal")
        self.assertEqual(set(out), {
            "averageReactionTime", "reactionTimeVariability", "standardDeviation",
            "lapses", "falseStarts", "errorRate", "interpretation",
        })

    def test_metrics_immutable(self):
        from dataclasses import FrozenInstanceError
        from utils.reaction_statistics import compute
        metrics = compute([300])
        with self.assertRaises(FrozenInstanceError):
            metrics.lapses = 5


if __name__ == "__main__":
    unittest.main()
