"""
Test result builders, Session lifecycle, and insight generation.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from unittest.mock import MagicMock


def make_video(**overrides):
    from utils.video_session_analyzer import VideoAnalysisResult
    values = dict(
        total_frames=150, average_movement=4.0, peak_movement=12, movement_variability=10.0,
        blink_count=2, eye_closure_duration_ms=400, head_movement=10.0, attention_score=90,
        micro_expression_count=1, face_detected=True, blink_onsets_ms=[2500.0, 8300.0],
    )
    values.update(overrides)
    return VideoAnalysisResult(**values)


class TestResultBuilders(unittest.TestCase):

    def test_simple_result(self):
        from utils.score_aggregator import AlertLevel
        from utils.session_results import build_simple_result
        result = build_simple_result([250], video=make_video(average_movement=60.0))
        self.assertEqual(result.reaction_time, 250)
        self.assertEqual(result.movement_index, 60.0)
        self.assertEqual(result.neuro_score, 85)
        self.assertEqual(result.alert_level, AlertLevel.HIGH_ALERTNESS)
        out = result.to_dict()
        self.assertEqual(out["neuroScore"], 85)
        self.assertEqual(out["alertLevel"], "High Alertness")
        self.assertIn("videoAnalysis", out)

    def test_simple_result_without_face_skips_penalty(self):
        from utils.session_results import build_simple_result
        result = build_simple_result([250], video=make_video(average_movement=60.0, face_detected=False))
        self.assertEqual(result.neuro_score, 100)

    def test_simple_result_without_video(self):
        from utils.session_results import build_simple_result
        result = build_simple_result([400])
        self.assertEqual(result.neuro_score, 80)
        self.assertIsNone(result.video_analysis)
        self.assertNotIn("videoAnalysis", result.to_dict())

    def test_simple_result_no_response(self):
        from utils.session_results import build_simple_result
        result = build_simple_result([], misses=1)
        self.assertEqual(result.neuro_score, 0)
        self.assertFalse(result.fatigue_metrics.has_data)

    def test_dot_grid_result(self):
        from utils.session_results import build_dot_grid_result
        result = build_dot_grid_result([400] * 8, misses=2, errors=1, rounds=10)
        self.assertEqual(result.hits, 8)
        self.assertEqual(result.dot_score, 69)
        self.assertEqual(result.average_reaction_time, 400)
        self.assertAlmostEqual(result.fatigue_metrics.error_rate, 20.0)
        self.assertEqual(result.to_dict()["dotScore"], 69)

    def test_flash_result(self):
        from utils.score_aggregator import FatigueLevel
        from utils.session_results import build_flash_result
        result = build_flash_result(make_video(), [300, 320], flash_onset_ms=7500.0)
        self.assertEqual(result.fatigue_score, 86)
        self.assertEqual(result.fatigue_level, FatigueLevel.FRESH)
        self.assertEqual(result.stability_score, 80)
        self.assertEqual(result.blink_count, 2)
        self.assertEqual(result.blink_latency_ms, 800)
        self.assertEqual(result.reaction_time_ms, 310)
        self.assertEqual(result.to_dict()["fatigueLevel"], "Fresh")

    def test_flash_without_face_raises(self):
        from utils.session_results import NoFaceDetectedError, build_flash_result
        with self.assertRaises(NoFaceDetectedError):
            build_flash_result(make_video(face_detected=False))

    def test_blink_latency_without_later_blink(self):
        from utils.session_results import blink_latency_ms
        self.assertEqual(blink_latency_ms(make_video(), 9000.0), 0)
        self.assertEqual(blink_latency_ms(make_video(), None), 0)
        self.assertEqual(blink_latency_ms(None, 100.0), 0)


class TestSession(unittest.TestCase):

    def _results(self):
        from utils.session_results import build_dot_grid_result, build_flash_result, build_simple_result
        return (
            build_simple_result([250]),
            build_dot_grid_result([400] * 8, misses=2, errors=1, rounds=10),
            build_flash_result(make_video(), []),
        )

    def test_partial_session_reports_zero(self):
        from utils.session_results import Session
        session = Session(required=["simple", "dotgrid", "flash"])
        simple, dotgrid, _ = self._results()
        self.assertIsNone(session.attach(simple))
        self.assertIsNone(session.attach(dotgrid))
        self.assertFalse(session.is_complete())
        self.assertEqual(session.combined_score(), 0)
        self.assertIsNone(session.alert_level())

    def test_complete_session_hands_off_and_resets(self):
        from utils.session_results import Session
        callback = MagicMock()
        session = Session(required=["simple", "dotgrid", "flash"], on_complete=callback)
        simple, dotgrid, flash = self._results()
        session.attach(simple)
        session.attach(dotgrid)
        record = session.attach(flash)

        self.assertIsNotNone(record)
        callback.assert_called_once_with(record)
        self.assertEqual(record["combinedScore"], round((100 + 69 + 86) / 3))
        self.assertEqual(set(record["results"]), {"simple", "dotgrid", "flash"})
        self.assertIn("id", record)
        self.assertIn("timestamp", record)
        self.assertEqual(session.results, {})
        self.assertIs(session.last_record, record)

    def test_last_session_pairs_record_with_results(self):
        from utils.session_results import Session
        from utils.video_session_analyzer import TestType
        session = Session(required=["simple", "dotgrid", "flash"])
        self.assertEqual(session.last_session(), (None, {}))
        simple, dotgrid, flash = self._results()
        for result in (simple, dotgrid, flash):
            record = session.attach(result)

        last_record, last_results = session.last_session()
        self.assertIs(last_record, record)
        self.assertIs(last_results[TestType.FLASH], flash)
        self.assertEqual({t.value for t in last_results}, set(record["results"]))

        # A new partial session does not disturb the completed pair
        session.attach(simple)
        self.assertIs(session.last_session()[0], record)
        self.assertEqual(len(session.last_session()[1]), 3)

        session.reset(forget_last=True)
        self.assertEqual(session.last_session(), (None, {}))

    def test_replacing_a_slot(self):
        from utils.session_results import Session, build_simple_result
        from utils.video_session_analyzer import TestType
        session = Session(required=["simple", "dotgrid"])
        session.attach(build_simple_result([250]))
        session.attach(build_simple_result([800]))
        self.assertEqual(session.get(TestType.SIMPLE).neuro_score, 30)
        self.assertEqual(session.scores()["simple"], 30)

    def test_keep_results_when_not_resetting(self):
        from utils.session_results import Session, build_simple_result
        session = Session(required=["simple"], reset_on_complete=False)
        record = session.attach(build_simple_result([250]))
        self.assertEqual(record["combinedScore"], 100)
        self.assertTrue(session.is_complete())
        session.reset()
        self.assertFalse(session.is_complete())


class TestInsightGenerator(unittest.TestCase):

    def test_no_data(self):
        from utils.insight_generator import InsightGenerator
        insights = InsightGenerator().generate(0, {})
        self.assertIn("Complete a test", insights.summary)
        self.assertEqual(len(insights.observations), 3)

    def test_bands_mention_completed_tests_only(self):
        from utils.insight_generator import InsightGenerator
        from utils.session_results import build_dot_grid_result, build_simple_result
        from utils.video_session_analyzer import TestType
        results = {
            TestType.SIMPLE: build_simple_result([250]),
            TestType.DOTGRID: build_dot_grid_result([400] * 8, misses=2, errors=1, rounds=10),
        }
        gen = InsightGenerator()
        high = gen.generate(85, results)
        self.assertIn("high cognitive alertness", high.summary)
        self.assertTrue(any("250ms" in o for o in high.observations))
        self.assertTrue(any("8/10" in o for o in high.observations))
        self.assertFalse(any("pupil" in o.lower() for o in high.observations))

        mid = gen.generate(60, results)
        self.assertIn("normal alertness", mid.summary)
        low = gen.generate(40, results)
        self.assertIn("cognitive fatigue", low.summary)
        self.assertTrue(any("2 missed targets" in o for o in low.observations))
        self.assertIn("break", low.to_dict()["suggestion"])


if __name__ == "__main__":
    unittest.main()
