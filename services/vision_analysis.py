"""
Vision model analysis service.

Sends a batch of base64 JPEG frames to a vision-language model (OpenAI or
Azure OpenAI) and asks for a structured JSON reading of the recording: blink
count, attention score, fatigue indicators. This is an alternative signal
source next to the local analyzers, not part of their computation path.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import cv2
from openai import AzureOpenAI, OpenAI

import config
from utils.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)

FLASH_PROMPT = """You are analyzing a video of a person's eye during a flash test. The images show:
1. BEFORE FLASH: The first {before} images show the eye before the flash
2. AFTER FLASH: The last {after} images show the eye after the flash

Please analyze:
- Number of blinks (count each complete blink: eye closes and reopens)
- Pupil dilation response to the flash (compare before vs after)
- Eye movement and stability
- Any signs of fatigue (drooping eyelids, slow reactions, excessive blinking)
- Attention level (1-100 scale)

Provide your analysis in JSON format:
{{
  "blinkCount": number,
  "pupilDilationChange": "none|slight|moderate|significant",
  "eyeStability": "stable|slight_movement|unstable",
  "fatigueIndicators": ["indicator1", "indicator2"],
  "attentionScore": number (1-100),
  "analysis": "detailed text analysis"
}}"""

REGULAR_PROMPT = """You are analyzing a video of a person during a cognitive test. Please analyze:
- Number of blinks (count each complete blink: eye closes and reopens)
- Head movement (minimal|moderate|excessive)
- Facial micro-expressions (none|few|many)
- Attention and focus level (1-100 scale)
- Any signs of fatigue or distraction

Provide your analysis in JSON format:
{
  "blinkCount": number,
  "headMovement": "minimal|moderate|excessive",
  "microExpressions": number,
  "attentionScore": number (1-100),
  "averageMovement": number (0-100, where 0 is no movement),
  "fatigueIndicators": ["indicator1", "indicator2"],
  "analysis": "detailed text analysis"
}"""


def build_prompt(image_count: int, test_type: str, flash_timestamps: Optional[Sequence[float]] = None) -> str:
    """Flash prompt (before/after framing) when flash timestamps are known, else the general one."""
    if test_type == "flash" and flash_timestamps:
        side = min(3, int(image_count * 0.3))
        return FLASH_PROMPT.format(before=side, after=side)
    return REGULAR_PROMPT


def encode_frames_jpeg(buffers: Sequence[PixelBuffer], quality: Optional[int] = None) -> List[str]:
    """Base64 JPEG strings for a list of PixelBuffers; frames that fail to encode are skipped."""
    quality = int(quality or config.VISION_JPEG_QUALITY)
    encoded = []
    for buffer in buffers:
        ok, jpeg = cv2.imencode(".jpg", buffer.to_bgr(), [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            logger.warning("JPEG encode failed for frame at %.0f ms", buffer.timestamp_ms)
            continue
        encoded.append(base64.b64encode(jpeg.tobytes()).decode("ascii"))
    return encoded


class VisionAnalysisService:
    """
    Service class for frame analysis with a vision-language model.

    Uses AzureOpenAI when an Azure endpoint and key are configured, otherwise
    the public OpenAI client.
    """

    def __init__(self, client=None):
        if client is not None:
            self.client = client
        elif config.is_azure_openai_enabled():
            self.client = AzureOpenAI(
                azure_endpoint=config.AZURE_OPENAI_ENDPOINT,
                api_key=config.AZURE_OPENAI_KEY,
                api_version=config.AZURE_OPENAI_API_VERSION,
            )
        else:
            self.client = OpenAI(api_key=config.OPENAI_API_KEY)
        self.model = config.VISION_MODEL
        self.max_images = config.VISION_MAX_IMAGES
        self.max_tokens = config.VISION_MAX_TOKENS

    def analyze_frames(
        self,
        images: Sequence[str],
        test_type: str = "simple",
        flash_timestamps: Optional[Sequence[float]] = None,
    ) -> Dict[str, Any]:
        """
        Analyze base64 JPEG frames.

        Args:
            images: base64-encoded JPEG strings (no data: prefix)
            test_type: "simple", "dotgrid" or "flash"
            flash_timestamps: flash onset times; selects the before/after prompt

        Returns:
            dict: the model's JSON analysis

        Raises:
            ValueError: no images, or none of them usable
            Exception: if the API call fails
        """
        if not images:
            raise ValueError("No images provided")
        valid = [img for img in images if img]
        if not valid:
            raise ValueError("Failed to process frames")

        prompt = build_prompt(len(valid), test_type, flash_timestamps)
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for img in valid[: self.max_images]:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{img}"},
            })

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        raw = response.choices[0].message.content or "{}"
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Vision model returned non-JSON content (%d chars)", len(raw))
            return {"analysis": raw}


# Lazy singleton: the client is built on first use, not at import time
_vision_service: Optional[VisionAnalysisService] = None


def get_vision_service() -> VisionAnalysisService:
    """Return the vision analysis service, creating it on first call (lazy init)."""
    global _vision_service
    if _vision_service is None:
        _vision_service = VisionAnalysisService()
    return _vision_service
