from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from ..settings import settings
from .ai import openai_client

logger = logging.getLogger(__name__)

MAX_FEATURE_PHOTOS = 5
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
EXTERIOR_HINTS = ("exterior", "front", "yard", "facade", "aerial", "drone")
ROOM_HINTS = ("living_room", "bedroom", "kitchen", "dining_room", "bathroom", "office")
FEATURE_HINTS = {
    "kitchen": "updated kitchen",
    "pool": "pool",
    "deck": "deck",
    "porch": "porch",
    "hardwood": "hardwood floors",
    "fireplace": "fireplace",
    "marsh": "marsh views",
    "dock": "private dock",
}

STAGING_PROMPT = """Analyze this real estate photo and decide whether it is suitable for virtual staging.
Only empty or sparsely furnished interior rooms are suitable. Exteriors, furnished rooms and photos with people are not.
Respond in JSON: {"is_suitable": boolean, "room_type": "living_room"|"bedroom"|"kitchen"|"dining_room"|"bathroom"|"office"|"other"|null, "confidence": 0-100, "reason": "brief explanation"}"""

FEATURES_PROMPT = """Identify the key property features clearly visible in these real estate photos.
Be conservative: flooring, kitchen finishes, bathroom finishes, architectural details, light, storage, outdoor spaces.
Respond in JSON: {"features": ["feature", ...], "confidence": 0-100}"""


@dataclass
class RoomAnalysis:
    is_suitable: bool
    confidence: int
    room_type: str | None = None
    reason: str | None = None


def _extract_json(text: str) -> dict[str, Any] | None:
    match = JSON_OBJECT.search(text)
    if match is None:
        return None
    payload = json.loads(match.group(0))
    return payload if isinstance(payload, dict) else None


def _vision_chat(prompt: str, urls: list[str]) -> str:
    content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    content.extend({"type": "image_url", "image_url": {"url": url}} for url in urls)
    response = openai_client().chat.completions.create(
        model=settings.openai_vision_model,
        messages=[{"role": "user", "content": content}],
        temperature=0,
    )
    return response.choices[0].message.content or ""


def _mock_room_analysis(photo_url: str) -> RoomAnalysis:
    lowered = photo_url.lower()
    if any(hint in lowered for hint in EXTERIOR_HINTS):
        return RoomAnalysis(is_suitable=False, confidence=90, room_type=None, reason="Exterior photo")
    room_type = next((hint for hint in ROOM_HINTS if hint in lowered), "living_room")
    return RoomAnalysis(is_suitable=True, confidence=90, room_type=room_type, reason="Empty interior room")


def analyze_photo_for_staging(photo_url: str) -> RoomAnalysis:
    if settings.ai_mode != "live":
        return _mock_room_analysis(photo_url)
    try:
        payload = _extract_json(_vision_chat(STAGING_PROMPT, [photo_url]))
        if payload is None:
            return RoomAnalysis(is_suitable=False, confidence=0, reason="Unable to analyze photo")
        room_type = payload.get("room_type")
        reason = payload.get("reason")
        return RoomAnalysis(
            is_suitable=bool(payload.get("is_suitable")),
            confidence=int(payload.get("confidence") or 0),
            room_type=str(room_type) if room_type is not None else None,
            reason=str(reason) if reason is not None else None,
        )
    except Exception:
        logger.exception("vision analysis failed")
        return RoomAnalysis(is_suitable=False, confidence=0, reason="Error analyzing photo")


def extract_property_features(photo_urls: list[str]) -> tuple[list[str], int]:
    if not photo_urls:
        return [], 0
    urls = photo_urls[:MAX_FEATURE_PHOTOS]
    if settings.ai_mode != "live":
        lowered = " ".join(urls).lower()
        features = [label for hint, label in FEATURE_HINTS.items() if hint in lowered]
        return features, 80 if features else 50
    try:
        payload = _extract_json(_vision_chat(FEATURES_PROMPT, urls))
        if payload is None:
            return [], 50
        raw_features = payload.get("features") or []
        if not isinstance(raw_features, list):
            raw_features = [raw_features]
        return [str(item) for item in raw_features], int(payload.get("confidence") or 0)
    except Exception:
        logger.exception("feature extraction failed")
        return [], 0
