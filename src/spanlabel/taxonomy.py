"""Role taxonomy for video-prompt span labeling.

Roles are either a top-level category (``"camera"``) or a dotted attribute
(``"camera.lens"``). Older role identifiers are still accepted and are
resolved through ``LEGACY_ROLE_MAP``.
"""

from __future__ import annotations

TAXONOMY_VERSION = "3.0.0"

CATEGORIES: dict[str, tuple[str, ...]] = {
    "shot": ("type",),
    "subject": ("identity", "appearance", "wardrobe", "emotion"),
    "action": ("movement", "state", "gesture"),
    "environment": ("location", "weather", "context"),
    "lighting": ("source", "quality", "timeOfDay", "colorTemp"),
    "camera": ("movement", "lens", "angle", "focus"),
    "style": ("aesthetic", "filmStock", "colorGrade"),
    "technical": ("aspectRatio", "frameRate", "resolution", "duration"),
    "audio": ("score", "soundEffect", "ambient"),
}

CATEGORY_GROUPS: dict[str, tuple[str, ...]] = {
    "entity": ("subject", "action"),
    "setting": ("environment", "lighting"),
    "technical": ("shot", "camera", "style", "technical", "audio"),
}

# Spans in these categories are exempt from the non-technical word limit.
TECHNICAL_CATEGORIES: frozenset[str] = frozenset(
    ("shot", "camera", "style", "technical", "audio")
)

# Categories whose presence marks a fast-path span as domain-salient.
HIGH_SIGNAL_CATEGORIES: frozenset[str] = frozenset(
    ("technical", "camera", "shot", "style", "audio", "lighting")
)

CORE_CATEGORIES: tuple[str, ...] = ("subject", "action", "environment")

VALID_ROLES: frozenset[str] = frozenset(
    [*CATEGORIES]
    + [f"{parent}.{attr}" for parent, attrs in CATEGORIES.items() for attr in attrs]
)

LEGACY_ROLE_MAP: dict[str, str] = {
    # subject / action
    "identity": "subject.identity",
    "appearance": "subject.appearance",
    "wardrobe": "subject.wardrobe",
    "emotion": "subject.emotion",
    "subject.action": "action.movement",
    # environment
    "location": "environment.location",
    "weather": "environment.weather",
    "context": "environment.context",
    # lighting
    "lighting_source": "lighting.source",
    "lightingSource": "lighting.source",
    "lighting_quality": "lighting.quality",
    "lightingQuality": "lighting.quality",
    "time_of_day": "lighting.timeOfDay",
    "timeofday": "lighting.timeOfDay",
    "color_temp": "lighting.colorTemp",
    "colorTemp": "lighting.colorTemp",
    # shot / camera
    "framing": "shot.type",
    "camera.framing": "shot.type",
    "camera_move": "camera.movement",
    "cameraMove": "camera.movement",
    "movement": "camera.movement",
    "lens": "camera.lens",
    "angle": "camera.angle",
    "focus": "camera.focus",
    "aperture": "camera.focus",
    "depth_of_field": "camera.focus",
    # style
    "aesthetic": "style.aesthetic",
    "film_stock": "style.filmStock",
    "filmStock": "style.filmStock",
    "color_grade": "style.colorGrade",
    "colorGrade": "style.colorGrade",
    # technical
    "aspect_ratio": "technical.aspectRatio",
    "aspectRatio": "technical.aspectRatio",
    "frame_rate": "technical.frameRate",
    "frameRate": "technical.frameRate",
    "fps": "technical.frameRate",
    "resolution": "technical.resolution",
    "specs": "technical.resolution",
    "duration": "technical.duration",
    # audio
    "score": "audio.score",
    "sound_effect": "audio.soundEffect",
    "soundEffect": "audio.soundEffect",
    "sfx": "audio.soundEffect",
    "ambient": "audio.ambient",
    "ambience": "audio.ambient",
}


def resolve_role(role: str) -> str:
    """Map a legacy role identifier onto its current taxonomy id."""
    return LEGACY_ROLE_MAP.get(role, role)


def is_valid_role(role: str) -> bool:
    return resolve_role(role) in VALID_ROLES


def parent_category(role: str) -> str:
    """Top-level category of a role: ``"camera.lens"`` -> ``"camera"``."""
    return resolve_role(role).split(".", 1)[0]


def is_attribute(role: str) -> bool:
    return "." in resolve_role(role)


def is_technical(role: str) -> bool:
    return parent_category(role) in TECHNICAL_CATEGORIES


def is_high_signal(role: str) -> bool:
    return parent_category(role).lower() in HIGH_SIGNAL_CATEGORIES


def describe() -> str:
    """Render the taxonomy as prompt text, one category per line."""
    lines = []
    for parent, attrs in CATEGORIES.items():
        attr_ids = ", ".join(f"{parent}.{a}" for a in attrs)
        lines.append(f"- {parent}: {attr_ids}")
    return "\n".join(lines)
