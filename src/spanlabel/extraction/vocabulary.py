"""Closed-vocabulary span extraction - zero oracle cost.

Each taxonomy role owns a list of known terms. Terms are compiled into one
case-insensitive alternation per role (longest terms first) and matched on
word boundaries. Matches carry full confidence because the vocabulary is
curated.
"""

from __future__ import annotations

import re
from typing import Iterator

from spanlabel.types import CandidateSpan

CLOSED_VOCAB_CONFIDENCE = 1.0

VOCABULARY: dict[str, list[str]] = {
    "shot.type": [
        "extreme close-up", "close-up", "closeup", "medium close-up", "medium shot",
        "wide shot", "extreme wide shot", "establishing shot", "full shot",
        "over-the-shoulder shot", "two-shot", "insert shot", "point-of-view shot",
        "POV shot", "aerial shot", "cowboy shot",
    ],
    "camera.movement": [
        "dolly in", "dolly out", "dolly zoom", "tracking shot", "crane shot",
        "handheld", "steadicam", "whip pan", "slow push-in", "push in", "pull back",
        "orbit", "arc shot", "pan", "tilt", "zoom", "crane", "drone",
    ],
    "camera.lens": [
        "anamorphic lens", "anamorphic", "wide-angle lens", "telephoto lens",
        "fisheye lens", "macro lens", "prime lens", "35mm lens", "50mm lens",
        "85mm lens", "24mm lens", "35mm", "50mm", "85mm", "24mm",
    ],
    "camera.angle": [
        "low angle", "low-angle", "high angle", "high-angle", "dutch angle",
        "bird's-eye view", "bird's eye view", "worm's-eye view", "eye level",
        "overhead", "top-down",
    ],
    "camera.focus": [
        "shallow depth of field", "deep focus", "rack focus", "soft focus",
        "bokeh", "tilt-shift", "f/1.4", "f/1.8", "f/2.8",
    ],
    "lighting.timeOfDay": [
        "golden hour", "blue hour", "magic hour", "dawn", "dusk", "sunset",
        "sunrise", "midday", "midnight", "twilight",
    ],
    "lighting.quality": [
        "soft light", "hard light", "diffused light", "high-key lighting",
        "low-key lighting", "chiaroscuro", "rim light", "backlit", "volumetric light",
        "dramatic shadows", "soft shadows",
    ],
    "lighting.source": [
        "neon light", "neon lights", "candlelight", "moonlight", "sunlight",
        "firelight", "streetlights", "practical lights", "fluorescent lights",
    ],
    "lighting.colorTemp": ["warm tones", "cool tones", "tungsten", "daylight-balanced"],
    "style.aesthetic": [
        "cinematic", "film noir", "noir", "cyberpunk", "documentary style",
        "vaporwave", "surreal", "photorealistic", "hyperrealistic", "anime style",
        "Wes Anderson style", "dreamlike",
    ],
    "style.filmStock": [
        "35mm film", "16mm film", "Super 8", "Kodak Portra", "Kodak Vision3",
        "Fuji Velvia", "film grain", "black and white film",
    ],
    "style.colorGrade": [
        "teal and orange", "desaturated", "high contrast", "bleach bypass",
        "muted palette", "pastel palette", "monochrome", "sepia",
    ],
    "technical.aspectRatio": ["16:9", "9:16", "4:3", "2.39:1", "2.35:1", "1.85:1", "21:9", "1:1"],
    "technical.frameRate": ["24fps", "24 fps", "30fps", "30 fps", "60fps", "60 fps", "120fps", "slow motion"],
    "technical.resolution": ["4K", "8K", "1080p", "720p", "HDR"],
    "technical.duration": ["5 seconds", "10 seconds", "15 seconds", "30 seconds"],
    "audio.score": ["orchestral score", "ambient score", "piano score", "synth score", "soundtrack"],
    "audio.soundEffect": ["footsteps", "thunder", "gunshot", "explosion", "door creak"],
    "audio.ambient": ["city ambience", "birdsong", "rain sounds", "ocean waves", "crowd murmur", "wind howling"],
    "environment.weather": ["rain", "raining", "snow", "snowing", "fog", "foggy", "mist", "storm", "overcast"],
}

# Camera terms that are ordinary words outside a filmmaking context.
AMBIGUOUS_CAMERA_TERMS = frozenset(("pan", "tilt", "zoom", "crane", "drone", "orbit"))
_CAMERA_CONTEXT = re.compile(
    r"camera|shot|lens|frame|cinematograph|cinematic|filming|video|footage", re.IGNORECASE
)
_COOKING_CONTEXT = re.compile(r"(frying|saut[eé]|sauce|iron|bread|dinner|hair)\s*$", re.IGNORECASE)
CONTEXT_RADIUS = 50


def _compile(terms: list[str]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
    return re.compile(rf"(?<![\w-])(?:{alternation})(?![\w-])", re.IGNORECASE)


PATTERNS: dict[str, re.Pattern[str]] = {role: _compile(terms) for role, terms in VOCABULARY.items()}


def has_camera_context(text: str, start: int, end: int) -> bool:
    before = text[max(0, start - 20):start]
    if _COOKING_CONTEXT.search(before):
        return False
    window = text[max(0, start - CONTEXT_RADIUS):min(len(text), end + CONTEXT_RADIUS)]
    return bool(_CAMERA_CONTEXT.search(window))


def extract_role(text: str, role: str) -> Iterator[CandidateSpan]:
    """Yield closed-vocabulary matches for a single role."""
    for match in PATTERNS[role].finditer(text):
        if role == "camera.movement" and match.group().lower() in AMBIGUOUS_CAMERA_TERMS:
            if not has_camera_context(text, match.start(), match.end()):
                continue
        yield CandidateSpan(
            text=match.group(),
            start=match.start(),
            end=match.end(),
            role=role,
            confidence=CLOSED_VOCAB_CONFIDENCE,
        )


def extract_closed_vocabulary(text: str) -> list[CandidateSpan]:
    """All closed-vocabulary matches across every role, in text order."""
    if not text:
        return []
    spans: list[CandidateSpan] = []
    for role in PATTERNS:
        spans.extend(extract_role(text, role))
    spans.sort(key=lambda s: (s["start"], -s["end"]))
    return spans
