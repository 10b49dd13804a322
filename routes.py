"""
Flask routes for the fatigue screening service.

Handles config and analysis thresholds, recording sessions (start / frame /
end), reaction-time statistics, test result submission, the session results
readout, and the optional vision-model analysis.
"""

from flask import Blueprint, request, jsonify
from services.vision_analysis import encode_frames_jpeg, get_vision_service
from utils.helpers import build_config_response
from utils.frame_sampler import FrameSampler, VideoSourceType
from utils.insight_generator import InsightGenerator
from utils.pixel_buffer import PixelBuffer
from utils.session_results import (
    NoFaceDetectedError,
    Session,
    build_dot_grid_result,
    build_flash_result,
    build_simple_result,
)
from utils.video_session_analyzer import SessionState, TestType, VideoSessionAnalyzer, now_ms
from utils import analysis_thresholds, reaction_statistics
from typing import Dict, List, Optional
import logging
import threading
import uuid
import config

logger = logging.getLogger(__name__)

# Create a blueprint for better organization
api = Blueprint('api', __name__)

# Frames pushed by the client to /session/<id>/frame rather than sampled here
BROWSER_SOURCE = "browser"


class Recording:
    """
    One test's recording as held by the HTTP layer: the analyzer, an optional
    server-side sampler, and a lock serializing frames against end_session().
    """

    def __init__(self, test_type: TestType):
        self.id = uuid.uuid4().hex
        self.analyzer = VideoSessionAnalyzer(test_type)
        self.sampler: Optional[FrameSampler] = None
        self.lock = threading.Lock()
        self.started_ms = now_ms()
        self.last_activity_ms = self.started_ms
        self.finished_ms: Optional[float] = None
        self.flash_onset_ms: Optional[float] = None
        self.analyzer.start_session(start_ms=0.0)

    @property
    def state(self) -> SessionState:
        return self.analyzer.state

    def elapsed_ms(self) -> float:
        return now_ms() - self.started_ms

    def touch(self) -> None:
        self.last_activity_ms = now_ms()

    def is_stale(self, now: float) -> bool:
        """Abandoned mid-test, or finished and never claimed in time."""
        if self.state is SessionState.COMPLETED:
            return now - (self.finished_ms or self.last_activity_ms) > config.COMPLETED_RECORDING_TTL_MS
        if self.sampler is not None:
            # Server-side capture gets no client frames; bound it by total age
            return now - self.started_ms > config.COMPLETED_RECORDING_TTL_MS
        return now - self.last_activity_ms > config.RECORDING_IDLE_TIMEOUT_MS

    def feed(self, buffer: PixelBuffer) -> Optional[int]:
        with self.lock:
            return self.analyzer.on_frame(buffer)

    def finish(self, flash_onset_ms: Optional[float] = None, keep_window: bool = False):
        """
        End the recording. Returns (result, frames); frames is the final pixel
        window when keep_window is set, else empty. The analyzer itself keeps
        no pixels after this.
        """
        if self.sampler is not None:
            self.sampler.release()
        with self.lock:
            window = self.analyzer.sequence.window() if keep_window and self.state is SessionState.RECORDING else []
            if flash_onset_ms is not None:
                self.flash_onset_ms = flash_onset_ms
            result = self.analyzer.end_session(flash_onset_ms=self.flash_onset_ms)
        if self.finished_ms is None:
            self.finished_ms = now_ms()
        return result, window

    def release(self) -> None:
        if self.sampler is not None:
            self.sampler.release()


# Active and finished recordings keyed by id. Finished ones wait here until a
# test result claims their video analysis, or until they go stale.
_recordings: Dict[str, Recording] = {}
_recordings_lock = threading.Lock()


def _on_session_complete(record: dict) -> None:
    logger.info("Session %s complete (combined score %s)", record.get("id"), record.get("combinedScore"))


# Current screening session; completed records are handed to _on_session_complete
session = Session(on_complete=_on_session_complete)

# Lazy insight generator: created on first use
_insight_generator: Optional[InsightGenerator] = None


def _get_insight_generator() -> InsightGenerator:
    """Return the insight generator instance, creating it on first call (lazy init)."""
    global _insight_generator
    if _insight_generator is None:
        _insight_generator = InsightGenerator(dot_grid_rounds=config.DOT_GRID_ROUNDS)
    return _insight_generator


def _get_recording(recording_id: str) -> Optional[Recording]:
    with _recordings_lock:
        return _recordings.get(recording_id)


def _sweep_stale_recordings() -> List[Recording]:
    """Remove stale recordings from the registry. Caller holds _recordings_lock."""
    now = now_ms()
    stale = [rec for rec in _recordings.values() if rec.is_stale(now)]
    for rec in stale:
        del _recordings[rec.id]
    if stale:
        logger.info("Dropped %d stale recording(s)", len(stale))
    return stale


def _claim_video(recording_id: Optional[str]):
    """Pop a finished recording's analysis for a test result. Returns (video, flash_onset_ms)."""
    if not recording_id:
        return None, None
    with _recordings_lock:
        rec = _recordings.get(recording_id)
        if rec is None or rec.state is not SessionState.COMPLETED:
            return None, None
        del _recordings[recording_id]
    return rec.analyzer.result, rec.flash_onset_ms


def _number_list(value, name: str):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in value):
        raise ValueError(f"'{name}' must be a list of numbers")
    return [float(x) for x in value]


def _optional_number(value, name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{name}' must be a number")
    return float(value)


def reset_state() -> None:
    """Drop every recording and the current session (used by tests and /results/reset)."""
    with _recordings_lock:
        recordings = list(_recordings.values())
        _recordings.clear()
    for rec in recordings:
        rec.release()
    session.reset(forget_last=True)


# ============================================================================
# Configuration
# ============================================================================

@api.route("/config/all", methods=["GET"])
def get_all_config():
    """
    Get all non-secret configuration in one endpoint.

    Returns:
        JSON: vision model, sampling, session policy and threshold settings
    """
    return jsonify(build_config_response())


@api.route("/config/thresholds", methods=["GET", "PUT"])
def thresholds_route():
    """
    GET: Current analysis thresholds.
    PUT: Partial update, e.g. {"blink_drop_threshold": 40}. {"reset": true} restores defaults.
    """
    if request.method == "GET":
        return jsonify(analysis_thresholds.thresholds_to_dict())
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Body must be a JSON object"}), 400
    try:
        if data.pop("reset", False):
            analysis_thresholds.reset_thresholds()
        if data:
            analysis_thresholds.set_thresholds(**data)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(analysis_thresholds.thresholds_to_dict())


# ============================================================================
# Recording sessions
# ============================================================================

@api.route("/session/start", methods=["POST"])
def start_recording():
    """
    Start recording for one test.

    Request body:
        {"testType": "simple" | "dotgrid" | "flash",
         "sourceType": "browser" | "webcam" | "file",   (default "browser")
         "sourcePath": "video.mp4"}                    (file source only)

    With a browser source, frames are POSTed to /session/<id>/frame. With a
    webcam or file source the server samples frames itself.
    """
    data = request.get_json(silent=True) or {}
    try:
        test_type = TestType.parse(data.get("testType"))
        source_name = str(data.get("sourceType") or BROWSER_SOURCE).lower()
        source_type = None if source_name == BROWSER_SOURCE else VideoSourceType(source_name)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    with _recordings_lock:
        stale = _sweep_stale_recordings()
        active = sum(1 for r in _recordings.values() if r.state is SessionState.RECORDING)
        rec = None
        if active < config.MAX_ACTIVE_RECORDINGS:
            rec = Recording(test_type)
            _recordings[rec.id] = rec
    for old in stale:
        old.release()
    if rec is None:
        return jsonify({"error": "Too many active recordings"}), 429

    capturing = source_type is None
    if not capturing:
        sampler = FrameSampler()
        if sampler.initialize_source(source_type, data.get("sourcePath")):
            rec.sampler = sampler
            capturing = sampler.start(rec.feed)
        else:
            # Degrades to an insufficient-data result at end
            logger.warning("Recording %s started without a capture source", rec.id)

    return jsonify({
        "sessionId": rec.id,
        "testType": test_type.value,
        "sourceType": source_name,
        "capturing": capturing,
        "state": rec.state.value,
    })


@api.route("/session/<recording_id>/frame", methods=["POST"])
def recording_frame(recording_id):
    """
    Receive one sampled frame from the browser.
    Expects raw JPEG body or multipart/form-data with an image file.
    Optional query parameter timestampMs (ms since recording start).
    """
    rec = _get_recording(recording_id)
    if rec is None:
        return jsonify({"error": "Unknown session"}), 404
    if rec.state is not SessionState.RECORDING:
        return jsonify({"error": f"Session is {rec.state.value}"}), 409

    if request.files:
        f = request.files.get("frame") or request.files.get("image") or next(iter(request.files.values()))
        data = f.read()
    else:
        data = request.get_data()
    if not data:
        return jsonify({"error": "No image data"}), 400

    timestamp = request.args.get("timestampMs", type=float)
    if timestamp is None:
        timestamp = rec.elapsed_ms()
    buffer = PixelBuffer.from_jpeg(data, timestamp_ms=timestamp, max_width=config.FRAME_MAX_WIDTH)
    if buffer is None:
        return jsonify({"error": "Invalid or unsupported image"}), 400

    rec.touch()
    movement = rec.feed(buffer)
    return jsonify({"frames": rec.analyzer.frame_count, "movement": movement})


@api.route("/session/<recording_id>/end", methods=["POST"])
def end_recording(recording_id):
    """
    Stop recording and analyze.

    Request body (optional):
        {"flashOnsetMs": 7500,       flash onset, ms since recording start
         "visionAnalysis": true}     also send the final frame window to the vision model

    The vision model's answer (or its error) is added under "visionAnalysis"
    / "visionAnalysisError"; it never changes the heuristic result.
    """
    rec = _get_recording(recording_id)
    if rec is None:
        return jsonify({"error": "Unknown session"}), 404
    data = request.get_json(silent=True) or {}
    try:
        onset = _optional_number(data.get("flashOnsetMs"), "flashOnsetMs")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    want_vision = bool(data.get("visionAnalysis"))
    result, window = rec.finish(onset, keep_window=want_vision)
    out = result.to_dict()
    out["sessionId"] = rec.id
    out["testType"] = rec.analyzer.test_type.value
    if want_vision:
        out.update(_vision_for_window(window, rec.analyzer.test_type, rec.flash_onset_ms))
    return jsonify(out)


def _vision_for_window(window: List[PixelBuffer], test_type: TestType, flash_onset_ms: Optional[float]) -> dict:
    """Evenly spaced stills from the final window, sent to the vision model."""
    if not config.is_vision_model_enabled():
        return {"visionAnalysisError": "Vision model is not configured"}
    if not window:
        return {"visionAnalysisError": "No frames recorded"}
    step = max(1, -(-len(window) // config.VISION_MAX_IMAGES))
    try:
        analysis = get_vision_service().analyze_frames(
            encode_frames_jpeg(window[::step]),
            test_type=test_type.value,
            flash_timestamps=[flash_onset_ms] if flash_onset_ms is not None else None,
        )
    except Exception as e:
        logger.exception("Vision analysis of recording failed")
        return {"visionAnalysisError": str(e) or "Failed to analyze video"}
    return {"visionAnalysis": analysis}


# ============================================================================
# Reaction statistics and test results
# ============================================================================

@api.route("/reaction/stats", methods=["POST"])
def reaction_stats():
    """
    Summarize reaction times.

    Request body:
        {"samples": [312, 287, ...], "misses": 1, "totalAttempts": 10}
    """
    data = request.get_json(silent=True) or {}
    try:
        samples = _number_list(data.get("samples"), "samples")
        misses = int(data.get("misses") or 0)
        total = int(data.get("totalAttempts") or 0)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(reaction_statistics.compute(samples, misses=misses, total_attempts=total).to_dict())


def _attach(result):
    record = session.attach(result)
    return jsonify({
        "result": result.to_dict(),
        "combinedScore": record["combinedScore"] if record else session.combined_score(),
        "sessionComplete": record is not None,
    })


@api.route("/tests/simple", methods=["POST"])
def submit_simple_test():
    """
    Request body:
        {"reactionTimes": [312], "misses": 0, "sessionId": "<recording id>"}
    """
    data = request.get_json(silent=True) or {}
    try:
        times = _number_list(data.get("reactionTimes"), "reactionTimes")
        misses = int(data.get("misses") or 0)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    video, _ = _claim_video(data.get("sessionId"))
    return _attach(build_simple_result(times, misses=misses, video=video))


@api.route("/tests/dotgrid", methods=["POST"])
def submit_dot_grid_test():
    """
    Request body:
        {"reactionTimes": [...one per hit...], "misses": 2, "errors": 1,
         "rounds": 10, "sessionId": "<recording id>"}
    """
    data = request.get_json(silent=True) or {}
    try:
        times = _number_list(data.get("reactionTimes"), "reactionTimes")
        misses = int(data.get("misses") or 0)
        errors = int(data.get("errors") or 0)
        rounds = int(data.get("rounds") or config.DOT_GRID_ROUNDS)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    video, _ = _claim_video(data.get("sessionId"))
    return _attach(build_dot_grid_result(times, misses, errors, rounds=rounds, video=video))


@api.route("/tests/flash", methods=["POST"])
def submit_flash_test():
    """
    Request body:
        {"sessionId": "<recording id>", "reactionTimes": [...], "flashOnsetMs": 7500}

    Answers 422 when no face was confirmed; the user should retry the test.
    """
    data = request.get_json(silent=True) or {}
    try:
        times = _number_list(data.get("reactionTimes"), "reactionTimes")
        onset = _optional_number(data.get("flashOnsetMs"), "flashOnsetMs")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    video, recorded_onset = _claim_video(data.get("sessionId"))
    if video is None:
        return jsonify({"error": "Flash test requires a finished recording ('sessionId')"}), 400
    try:
        result = build_flash_result(video, times, onset if onset is not None else recorded_onset)
    except NoFaceDetectedError as e:
        logger.warning("Flash test rejected: %s", e)
        return jsonify({"error": str(e), "retry": True}), 422
    return _attach(result)


@api.route("/results", methods=["GET"])
def get_results():
    """
    Current session slots, combined score, alert level and insights. After a
    session completes (and resets), the last completed record is included.
    """
    generator = _get_insight_generator()
    results = session.results
    combined = session.combined_score()
    alert = session.alert_level()
    out = {
        "results": {t.value: r.to_dict() for t, r in results.items()},
        "combinedScore": combined,
        "complete": session.is_complete(),
        "alertLevel": alert.value if alert else None,
        "requiredTests": list(session.required),
        "insights": generator.generate(combined, results).to_dict(),
    }
    last_record, last_results = session.last_session()
    if last_record is not None:
        out["lastSession"] = last_record
        out["lastInsights"] = generator.generate(last_record["combinedScore"], last_results).to_dict()
    return jsonify(out)


@api.route("/results/reset", methods=["POST"])
def reset_results():
    reset_state()
    return jsonify({"reset": True})


# ============================================================================
# Vision model
# ============================================================================

@api.route("/api/analyze-video", methods=["POST"])
def analyze_video():
    """
    Analyze frames with the vision-language model.

    Request body:
        {"images": ["<base64 jpeg>", ...], "testType": "flash", "flashTimestamps": [7500]}

    Returns:
        JSON: {"success": true, "analysis": {...}}
    """
    data = request.get_json(silent=True) or {}
    images = data.get("images")
    if not images or not isinstance(images, list):
        return jsonify({"error": "No images provided"}), 400
    if not config.is_vision_model_enabled():
        return jsonify({"error": "Vision model is not configured"}), 503
    try:
        analysis = get_vision_service().analyze_frames(
            images,
            test_type=str(data.get("testType") or "simple"),
            flash_timestamps=data.get("flashTimestamps"),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Vision analysis failed")
        return jsonify({"error": str(e) or "Failed to analyze video"}), 500
    return jsonify({"success": True, "analysis": analysis})


def register_routes(app):
    """
    Register all routes with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(api)
