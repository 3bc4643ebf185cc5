"""FastExtractor Protocol and the symbolic two-tier implementation.

Tier 1 is the closed vocabulary (regex lexicon, full precision). Tier 2 is the
optional GLiNER open-vocabulary model. Closed-vocabulary spans always win;
open-vocabulary spans are added only where they do not overlap.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from spanlabel.extraction import gliner
from spanlabel.extraction.vocabulary import extract_closed_vocabulary
from spanlabel.types import CandidateSpan

logger = logging.getLogger(__name__)


@runtime_checkable
class FastExtractor(Protocol):
    """Deterministic, network-free candidate span extractor."""

    def extract(self, text: str) -> list[CandidateSpan]:
        """Return candidate spans with offsets into ``text``."""
        ...

    def is_open_vocab_ready(self) -> bool:
        """True when the open-vocabulary tier can contribute spans."""
        ...


def _overlaps_any(span: CandidateSpan, occupied: list[tuple[int, int]]) -> bool:
    return any(span["start"] < end and start < span["end"] for start, end in occupied)


def select_non_overlapping(spans: list[CandidateSpan]) -> list[CandidateSpan]:
    """Keep the most confident, then longest, spans that do not overlap."""
    ranked = sorted(
        spans,
        key=lambda s: (-s["confidence"], -(s["end"] - s["start"]), s["start"]),
    )
    accepted: list[CandidateSpan] = []
    occupied: list[tuple[int, int]] = []
    for span in ranked:
        if _overlaps_any(span, occupied):
            continue
        accepted.append(span)
        occupied.append((span["start"], span["end"]))
    return sorted(accepted, key=lambda s: s["start"])


class SymbolicExtractor:
    """Closed vocabulary plus optional GLiNER open vocabulary.

    Args:
        use_open_vocab: Enable the GLiNER tier.
        model: Optional preloaded GLiNER model (dependency injection).
        threshold: GLiNER confidence threshold.
    """

    def __init__(
        self,
        use_open_vocab: bool = True,
        model: Any = None,
        threshold: float = gliner.DEFAULT_THRESHOLD,
    ) -> None:
        self.use_open_vocab = use_open_vocab
        self.model = model
        self.threshold = threshold

    def is_open_vocab_ready(self) -> bool:
        if not self.use_open_vocab:
            return False
        return self.model is not None or gliner.is_available()

    def _open_vocab(self, text: str) -> list[CandidateSpan]:
        try:
            entities = gliner.extract_entities(text, threshold=self.threshold, model=self.model)
        except gliner.TruncationError:
            logger.warning("[SymbolicExtractor] GLiNER truncated %d chars; skipping open vocabulary", len(text))
            return []
        return [e.to_candidate() for e in entities]

    def extract(self, text: str) -> list[CandidateSpan]:
        closed = select_non_overlapping(extract_closed_vocabulary(text))
        if not self.is_open_vocab_ready():
            return closed

        occupied = [(s["start"], s["end"]) for s in closed]
        merged = list(closed)
        for span in self._open_vocab(text):
            if _overlaps_any(span, occupied):
                continue
            merged.append(span)
            occupied.append((span["start"], span["end"]))

        logger.debug(
            "[SymbolicExtractor] %d closed + %d open spans",
            len(closed),
            len(merged) - len(closed),
        )
        return sorted(merged, key=lambda s: s["start"])
