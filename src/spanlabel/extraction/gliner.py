"""GLiNER zero-shot open-vocabulary extraction.

Provides the open-vocabulary tier of the fast extractor:
- Lazy singleton model loading (not module-level, for testability)
- Dependency injection via optional model parameter
- Natural-language labels mapped onto taxonomy roles
- Truncation detection (fail loudly if GLiNER truncates input)

``gliner`` is an optional dependency (``pip install span-labeling[gliner]``).
When it is missing the tier reports itself as not ready instead of failing.
"""

from __future__ import annotations

import importlib.util
import logging
import threading
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING

from spanlabel.types import CandidateSpan

if TYPE_CHECKING:
    from gliner import GLiNER

logger = logging.getLogger(__name__)

# Natural-language label -> taxonomy role.
LABEL_TO_ROLE: dict[str, str] = {
    "person": "subject.identity",
    "character": "subject.identity",
    "animal": "subject.identity",
    "creature": "subject.identity",
    "object": "subject.identity",
    "vehicle": "subject.identity",
    "physical appearance": "subject.appearance",
    "body part": "subject.appearance",
    "clothing": "subject.wardrobe",
    "accessory": "subject.wardrobe",
    "emotion": "subject.emotion",
    "facial expression": "subject.emotion",
    "action": "action.movement",
    "movement": "action.movement",
    "gesture": "action.gesture",
    "pose": "action.state",
    "place": "environment.location",
    "location": "environment.location",
    "building": "environment.location",
    "room": "environment.location",
    "setting": "environment.context",
    "season": "environment.context",
    "weather": "environment.weather",
    "mood": "style.aesthetic",
    "shot type": "shot.type",
    "camera movement": "camera.movement",
    "camera angle": "camera.angle",
}

ENTITY_LABELS: list[str] = list(LABEL_TO_ROLE)

DEFAULT_THRESHOLD = 0.4

MODEL_NAME = "urchade/gliner_medium-v2.1"


class TruncationError(Exception):
    """Raised when GLiNER truncates input, meaning tokens were lost."""


@dataclass(frozen=True)
class ExtractedEntity:
    """A single entity extracted by GLiNER."""

    text: str
    label: str
    score: float
    start: int
    end: int

    def to_candidate(self) -> CandidateSpan:
        return CandidateSpan(
            text=self.text,
            start=self.start,
            end=self.end,
            role=LABEL_TO_ROLE.get(self.label.lower(), "subject.identity"),
            confidence=round(self.score, 4),
        )


# Lazy singleton; avoids loading torch + model at import time.
_model: GLiNER | None = None
_model_lock = threading.Lock()


def is_available() -> bool:
    """True when the gliner package is importable."""
    return importlib.util.find_spec("gliner") is not None


def get_model() -> GLiNER:
    """Get or create the singleton GLiNER model instance.

    Loads the model on first call. Subsequent calls return the cached
    instance.
    """
    global _model
    with _model_lock:
        if _model is None:
            from gliner import GLiNER

            logger.info("[GLiNER] loading %s", MODEL_NAME)
            _model = GLiNER.from_pretrained(MODEL_NAME)
    return _model


def reset_model() -> None:
    """Reset the singleton model (for testing)."""
    global _model
    _model = None


def extract_entities(
    text: str,
    labels: list[str] | None = None,
    threshold: float = DEFAULT_THRESHOLD,
    model: GLiNER | None = None,
) -> list[ExtractedEntity]:
    """Extract open-vocabulary entities from text using GLiNER zero-shot.

    Args:
        text: Input text. Must be short enough for GLiNER's token limit.
        labels: Natural-language labels. Defaults to ENTITY_LABELS.
        threshold: Minimum confidence score (0-1).
        model: Optional GLiNER model instance (for dependency injection).
               If None, uses the lazy singleton.

    Returns:
        Deduplicated list of ExtractedEntity, sorted by position.

    Raises:
        TruncationError: If GLiNER emits a truncation warning.
    """
    if not text or not text.strip():
        return []

    if labels is None:
        labels = ENTITY_LABELS

    if model is None:
        model = get_model()

    with warnings.catch_warnings(record=True) as caught_warnings:
        warnings.simplefilter("always")
        raw_entities = model.predict_entities(text, labels, threshold=threshold)

    for w in caught_warnings:
        msg = str(w.message).lower()
        if "truncat" in msg or "max_len" in msg:
            raise TruncationError(
                f"GLiNER truncated input ({len(text)} chars). "
                f"Warning: {w.message}"
            )

    entities: list[ExtractedEntity] = []
    seen: set[tuple[int, int]] = set()

    for ent in raw_entities:
        key = (ent["start"], ent["end"])
        if key in seen:
            continue
        seen.add(key)
        entities.append(
            ExtractedEntity(
                text=ent["text"],
                label=ent["label"],
                score=ent["score"],
                start=ent["start"],
                end=ent["end"],
            )
        )

    entities.sort(key=lambda e: (e.start, e.end))
    return entities
