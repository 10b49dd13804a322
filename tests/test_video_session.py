"""
Video session analyzer tests.

Covers the recording lifecycle, the insufficient-data path, movement
statistics, attention score, blink scenario, and micro-movement counting.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


class TestSessionLifecycle(unittest.TestCase):
    """Test start/on_frame/end state handling."""

    def test_states(self):
        from utils.video_session_analyzer import SessionState, TestType, VideoSessionAnalyzer
        from tests.fixtures.synthetic_frames import flat_sequence
        analyzer = VideoSessionAnalyzer(TestType.SIMPLE)
        self.assertEqual(analyzer.state, SessionState.IDLE)
        self.assertIsNone(analyzer.on_frame(flat_sequence(1)[0]))

        analyzer.start_session()
        self.assertEqual(analyzer.state, SessionState.RECORDING)
        frames = flat_sequence(12)
        self.assertIsNone(analyzer.on_frame(frames[0]))
        self.assertEqual(analyzer.on_frame(frames[1]), 0)
        for frame in frames[2:]:
            analyzer.on_frame(frame)

        result = analyzer.end_session()
        self.assertEqual(analyzer.state, SessionState.COMPLETED)
        self.assertEqual(result.total_frames, 12)
        self.assertIs(analyzer.end_session(), result)
        self.assertIsNone(analyzer.on_frame(frames[0]))

    def test_restart_clears_buffers(self):
        from utils.video_session_analyzer import VideoSessionAnalyzer
        from tests.fixtures.synthetic_frames import flat_sequence
        analyzer = VideoSessionAnalyzer("dotgrid")
        analyzer.start_session()
        for frame in flat_sequence(20):
            analyzer.on_frame(frame)
        analyzer.end_session()
        analyzer.start_session()
        self.assertEqual(analyzer.frame_count, 0)
        self.assertIsNone(analyzer.result)

    def test_end_releases_raw_frames(self):
        from utils.video_session_analyzer import VideoSessionAnalyzer
        from tests.fixtures.synthetic_frames import flat_sequence
        analyzer = VideoSessionAnalyzer("flash")
        analyzer.start_session()
        for frame in flat_sequence(12):
            analyzer.on_frame(frame)
        self.assertEqual(len(analyzer.sequence.window()), 12)

        result = analyzer.end_session(flash_onset_ms=500.0)
        self.assertEqual(analyzer.sequence.window(), [])
        self.assertIsNone(analyzer.sequence.last)
        self.assertEqual(analyzer._eye_samples, [])
        # Counts and the result survive
        self.assertEqual(analyzer.frame_count, 12)
        self.assertEqual(result.total_frames, 12)
        self.assertIs(analyzer.end_session(), result)

    def test_unknown_test_type(self):
        from utils.video_session_analyzer import VideoSessionAnalyzer
        with self.assertRaises(ValueError):
            VideoSessionAnalyzer("marathon")

    def test_cancel_finalizes_partial_series(self):
        from utils.video_session_analyzer import SessionState, VideoSessionAnalyzer
        from tests.fixtures.synthetic_frames import flat_sequence
        analyzer = VideoSessionAnalyzer("simple")
        analyzer.start_session()
        for frame in flat_sequence(3):
            analyzer.on_frame(frame)
        result = analyzer.cancel()
        self.assertEqual(analyzer.state, SessionState.COMPLETED)
        self.assertTrue(result.insufficient_data)


class TestSessionAnalysis(unittest.TestCase):
    """Test the consolidated VideoAnalysisResult."""

    def test_identical_frames(self):
        from utils.video_session_analyzer import analyze_frames
        from tests.fixtures.synthetic_frames import flat_sequence
        result = analyze_frames(flat_sequence(50), "simple")
        self.assertEqual(result.total_frames, 50)
        self.assertEqual(result.average_movement, 0)
        self.assertEqual(result.peak_movement, 0)
        self.assertEqual(result.movement_variability, 0)
        self.assertEqual(result.head_movement, 0)
        self.assertEqual(result.attention_score, 100)
        self.assertEqual(result.micro_expression_count, 0)
        self.assertFalse(result.insufficient_data)

    def test_too_few_frames_zeroed(self):
        from utils.video_session_analyzer import analyze_frames
        from tests.fixtures.synthetic_frames import face_sequence
        result = analyze_frames(face_sequence(5, shifts=[0, 10]), "simple")
        self.assertTrue(result.insufficient_data)
        self.assertEqual(result.total_frames, 5)
        self.assertEqual(result.attention_score, 0)
        self.assertEqual(result.average_movement, 0)
        self.assertEqual(result.blink_count, 0)
        self.assertFalse(result.face_detected)

    def test_flash_capture_single_blink(self):
        from utils.video_session_analyzer import TestType, analyze_frames
        from tests.fixtures.synthetic_frames import brightness_sequence, dip_sums
        result = analyze_frames(brightness_sequence(dip_sums(150, at=75)), TestType.FLASH)
        self.assertEqual(result.total_frames, 150)
        self.assertEqual(result.blink_count, 1)
        self.assertEqual(result.eye_closure_duration_ms, 200)
        self.assertEqual(len(result.pupil_dilation_series), 150)

    def test_head_movement_equals_variability(self):
        from utils.video_session_analyzer import analyze_frames
        from tests.fixtures.synthetic_frames import face_sequence
        result = analyze_frames(face_sequence(30, shifts=[0, 0, 6, 0, 12]), "simple")
        self.assertGreater(result.movement_variability, 0)
        self.assertEqual(result.head_movement, result.movement_variability)
        self.assertTrue(result.face_detected)
        self.assertLess(result.attention_score, 100)

    def test_to_dict_keys(self):
        from utils.video_session_analyzer import analyze_frames
        from tests.fixtures.synthetic_frames import flat_sequence
        out = analyze_frames(flat_sequence(12), "simple").to_dict()
        for key in ("totalFrames", "averageMovement", "peakMovement", "movementVariability",
                    "blinkCount", "eyeClosureDuration", "headMovement", "attentionScore",
                    "microExpressions"):
            self.assertIn(key, out)
        self.assertNotIn("pupilDilation", out)


class TestAttentionScore(unittest.TestCase):

    def test_monotonic_non_increasing(self):
        from utils.video_session_analyzer import attention_score
        values = [0, 5, 10, 25, 50, 100, 250]
        for v in values:
            scores_avg = [attention_score(a, v) for a in values]
            scores_var = [attention_score(v, s) for s in values]
            self.assertEqual(scores_avg, sorted(scores_avg, reverse=True))
            self.assertEqual(scores_var, sorted(scores_var, reverse=True))

    def test_bounds_and_flash_bonus(self):
        from utils.video_session_analyzer import attention_score
        self.assertEqual(attention_score(0, 0), 100)
        self.assertEqual(attention_score(0, 0, flash_constriction=True), 100)
        self.assertEqual(attention_score(20, 0), 90)
        self.assertEqual(attention_score(20, 0, flash_constriction=True), 100)
        self.assertEqual(attention_score(40, 0, flash_constriction=True), 90)
        self.assertEqual(attention_score(500, 500), 0)


class TestMicroExpressions(unittest.TestCase):

    def _analyzer(self, test_type="simple"):
        from utils.video_session_analyzer import VideoSessionAnalyzer
        analyzer = VideoSessionAnalyzer(test_type)
        analyzer.start_session(start_ms=0.0)
        return analyzer

    def test_flat_series_counts_nothing(self):
        analyzer = self._analyzer()
        self.assertEqual(analyzer.count_micro_expressions([0] * 30, [i * 100.0 for i in range(31)]), 0)

    def test_twitches_half_weighted(self):
        analyzer = self._analyzer()
        movement = [0, 0, 20, 0, 0, 0, 20, 0, 0]
        self.assertEqual(analyzer.count_micro_expressions(movement, [i * 100.0 for i in range(10)]), 1)

    def test_small_oscillation_in_still_window(self):
        analyzer = self._analyzer()
        movement = [5, 8, 5, 8, 5]
        self.assertEqual(analyzer.count_micro_expressions(movement, [i * 100.0 for i in range(6)]), 1)

    def test_eye_movement_patterns_grouped(self):
        analyzer = self._analyzer()
        self.assertEqual(analyzer._eye_movement_patterns([5, 8] * 10 + [5]), 3)
        # Amplitude above the eye-movement band is ignored
        self.assertEqual(analyzer._eye_movement_patterns([0, 40] * 10 + [0]), 0)

    def test_flash_adds_startle_pass(self):
        movement = [0, 5, 0, 5, 0, 5]
        timestamps = [i * 100.0 for i in range(7)]
        simple = self._analyzer("simple").count_micro_expressions(movement, timestamps)
        flash = self._analyzer("flash").count_micro_expressions(movement, timestamps)
        self.assertEqual(flash, simple + 3)


if __name__ == "__main__":
    unittest.main()
