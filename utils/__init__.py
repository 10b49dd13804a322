"""
Utilities package for the fatigue screening service.

This package contains the frame analysis pipeline (sampling, movement, face
presence, blink and pupil analysis, session orchestration), reaction-time
statistics, scoring, and result types.
"""

from .pixel_buffer import PixelBuffer, FrameSequence
from .frame_sampler import FrameSampler, VideoSourceType
from .motion_analyzer import MotionAnalyzer
from .face_presence import FacePresenceDetector, FacePresenceResult
from .blink_pupil_analyzer import BlinkAndPupilAnalyzer, BlinkPupilResult
from .video_session_analyzer import VideoSessionAnalyzer, VideoAnalysisResult, TestType, SessionState
from .reaction_statistics import FatigueMetrics, FatigueInterpretation
from .session_results import Session, NoFaceDetectedError

__all__ = [
    'PixelBuffer',
    'FrameSequence',
    'FrameSampler',
    'VideoSourceType',
    'MotionAnalyzer',
    'FacePresenceDetector',
    'FacePresenceResult',
    'BlinkAndPupilAnalyzer',
    'BlinkPupilResult',
    'VideoSessionAnalyzer',
    'VideoAnalysisResult',
    'TestType',
    'SessionState',
    'FatigueMetrics',
    'FatigueInterpretation',
    'Session',
    'NoFaceDetectedError',
]
