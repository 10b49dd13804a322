"""
Helper utility functions.

This module contains reusable utility functions used throughout the application.
"""

from typing import Dict, Any
import config
from utils.analysis_thresholds import thresholds_to_dict


def build_config_response() -> Dict[str, Any]:
    """
    Build a complete configuration response dictionary.

    This function aggregates all non-secret settings into a single
    dictionary for the /config/all endpoint.

    Returns:
        dict: Complete configuration dictionary
    """
    return {
        "visionModel": config.get_vision_model_config(),
        "sampling": {
            "intervalMs": config.FRAME_SAMPLE_INTERVAL_MS,
            "windowSize": config.FRAME_WINDOW_SIZE,
            "minFramesForAnalysis": config.MIN_FRAMES_FOR_ANALYSIS,
            "maxFrameWidth": config.FRAME_MAX_WIDTH,
        },
        "session": {
            "testTypes": list(config.VALID_TEST_TYPES),
            "requiredTests": list(config.REQUIRED_TESTS),
            "dotGridRounds": config.DOT_GRID_ROUNDS,
            "maxActiveRecordings": config.MAX_ACTIVE_RECORDINGS,
            "recordingIdleTimeoutMs": config.RECORDING_IDLE_TIMEOUT_MS,
            "completedRecordingTtlMs": config.COMPLETED_RECORDING_TTL_MS,
        },
        "analysisThresholds": {
            "url": config.ANALYSIS_THRESHOLDS_URL,
            "path": config.ANALYSIS_THRESHOLDS_PATH,
            "values": thresholds_to_dict(),
        },
    }
