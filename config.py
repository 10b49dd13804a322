"""
=============================================================================
CONFIGURATION FOR NEUROPULSE FATIGUE SCREENING (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds the configurable settings for the project in one place. Other
modules read from it. Nothing secret is stored in the code; values come from
the environment (e.g. your .env file or system variables).

MAIN GROUPS OF SETTINGS:
------------------------
  1. Vision model   — Optional OpenAI / Azure OpenAI model that re-analyzes
                      captured frames as a second opinion.
  2. Frame sampling — How often a still is captured and how many are kept.
  3. Thresholds     — Where to load tuned heuristic thresholds from.
  4. Session policy — Which tests are required for a combined NeuroScore.
  5. Server         — Host, port, and debug mode for the web server.

HOW VALUES ARE CHOSEN:
---------------------
  - Environment variables override everything.
  - If an env var is not set, a safe default is used.
  - API keys never have defaults in code.
=============================================================================
"""

import os
import sys
from typing import List, Optional


# ============================================================================
# VISION MODEL (optional second-opinion frame analysis)
# ============================================================================
# The browser can send a handful of JPEG frames to POST /api/analyze-video.
# We forward them to a vision-language model and return its JSON analysis.
# When AZURE_OPENAI_ENDPOINT is set the Azure client is used, otherwise the
# public OpenAI API.
# ----------------------------------------------------------------------------
def _strip_quotes(s: str) -> str:
    if not s:
        return s
    s = s.strip()
    if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
        return s[1:-1].strip()
    return s


OPENAI_API_KEY: str = _strip_quotes(os.getenv("OPENAI_API_KEY") or "")
AZURE_OPENAI_KEY: str = _strip_quotes(os.getenv("AZURE_OPENAI_KEY") or "")
AZURE_OPENAI_ENDPOINT: str = (os.getenv("AZURE_OPENAI_ENDPOINT") or "").strip().rstrip("/")
AZURE_OPENAI_API_VERSION: str = (os.getenv("AZURE_OPENAI_API_VERSION") or "2024-10-21").strip()
VISION_MODEL: str = (os.getenv("VISION_MODEL") or "gpt-4o").strip()
# Only the first N frames of a request are sent to the model.
VISION_MAX_IMAGES: int = max(1, int(os.getenv("VISION_MAX_IMAGES", "10")))
VISION_MAX_TOKENS: int = max(1, int(os.getenv("VISION_MAX_TOKENS", "1000")))
# JPEG quality used when encoding captured PixelBuffers for the model.
VISION_JPEG_QUALITY: int = max(10, min(100, int(os.getenv("VISION_JPEG_QUALITY", "80"))))

# ============================================================================
# FRAME SAMPLING (how stills are captured during a test)
# ============================================================================
# Sampling runs on a fixed wall-clock cadence independent of the camera's
# frame rate. A slow capture simply yields a sparser series.
# ----------------------------------------------------------------------------
FRAME_SAMPLE_INTERVAL_MS: int = max(10, int(os.getenv("FRAME_SAMPLE_INTERVAL_MS", "100")))
# Frames kept in memory for face-presence checks; older frames are released.
FRAME_WINDOW_SIZE: int = max(5, int(os.getenv("FRAME_WINDOW_SIZE", "50")))
# Below this many frames a recording is treated as insufficient data.
MIN_FRAMES_FOR_ANALYSIS: int = max(2, int(os.getenv("MIN_FRAMES_FOR_ANALYSIS", "10")))
# Resize captured frames wider than this to keep per-frame analysis cheap.
FRAME_MAX_WIDTH: int = max(64, int(os.getenv("FRAME_MAX_WIDTH", "640")))

# ============================================================================
# HEURISTIC THRESHOLDS (see utils/analysis_thresholds.py)
# ============================================================================
# Tuned values can be pulled from a URL or a local JSON file, e.g.
#   {"blink_drop_threshold": 25, "skin_min_percent": 10}
# Unknown keys are ignored when loading.
# ----------------------------------------------------------------------------
ANALYSIS_THRESHOLDS_URL: Optional[str] = os.getenv("ANALYSIS_THRESHOLDS_URL", None)
ANALYSIS_THRESHOLDS_PATH: str = os.getenv("ANALYSIS_THRESHOLDS_PATH", "thresholds/analysis_thresholds.json")

# ============================================================================
# SESSION POLICY
# ============================================================================
# Tests that must all be completed before a combined NeuroScore is reported.
# Anything less reports the sentinel 0. Default: all three.
# ----------------------------------------------------------------------------
VALID_TEST_TYPES = ("simple", "dotgrid", "flash")


def _parse_required_tests(raw: str) -> List[str]:
    names = [n.strip().lower() for n in (raw or "").split(",") if n.strip()]
    names = [n for n in names if n in VALID_TEST_TYPES]
    return names or list(VALID_TEST_TYPES)


REQUIRED_TESTS: List[str] = _parse_required_tests(os.getenv("REQUIRED_TESTS", "simple,dotgrid,flash"))
# Dot-grid rounds per test (accuracy = hits / rounds).
DOT_GRID_ROUNDS: int = max(1, int(os.getenv("DOT_GRID_ROUNDS", "10")))

# ============================================================================
# Application Configuration
# ============================================================================
FLASK_PORT: int = int(os.getenv("FLASK_PORT", "5000"))
FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "true").lower() == "true"
FLASK_HOST: str = os.getenv("FLASK_HOST", "0.0.0.0")
# Cap on concurrently open recordings held by the HTTP layer.
MAX_ACTIVE_RECORDINGS: int = max(1, int(os.getenv("MAX_ACTIVE_RECORDINGS", "8")))
# A recording that receives no frame for this long is abandoned (tab closed mid-test).
RECORDING_IDLE_TIMEOUT_MS: int = max(1000, int(os.getenv("RECORDING_IDLE_TIMEOUT_MS", "30000")))
# Finished recordings not claimed by a test result within this window are dropped.
COMPLETED_RECORDING_TTL_MS: int = max(1000, int(os.getenv("COMPLETED_RECORDING_TTL_MS", "300000")))

# ============================================================================
# Helper Functions
# ============================================================================

def warn_missing_config() -> None:
    """
    Print a warning when optional configuration is missing. Does not raise.
    """
    if not is_vision_model_enabled():
        print(
            "Config warning: OPENAI_API_KEY (or AZURE_OPENAI_KEY + AZURE_OPENAI_ENDPOINT) is not set. "
            "POST /api/analyze-video will be unavailable.",
            file=sys.stderr,
        )


def is_azure_openai_enabled() -> bool:
    """True when the Azure OpenAI key and endpoint are both configured."""
    return bool(AZURE_OPENAI_KEY and AZURE_OPENAI_ENDPOINT)


def is_vision_model_enabled() -> bool:
    """True when either the Azure or the public OpenAI client can be built."""
    return is_azure_openai_enabled() or bool(OPENAI_API_KEY)


def get_vision_model_config() -> dict:
    """
    Get non-secret vision model configuration.

    Returns:
        dict: provider, model, enabled flag and image cap
    """
    return {
        "enabled": is_vision_model_enabled(),
        "provider": "azure_openai" if is_azure_openai_enabled() else "openai",
        "model": VISION_MODEL,
        "endpoint": AZURE_OPENAI_ENDPOINT or None,
        "maxImages": VISION_MAX_IMAGES,
    }
