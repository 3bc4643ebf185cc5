"""Relaxed span evaluation against gold annotations.

A predicted span matches a gold span when their character IoU exceeds the
threshold and (for F1) their roles are equal. Besides precision/recall/F1 the
evaluator reports taxonomy accuracy (role agreement among positional matches),
fragmentation (one gold span covered by several predictions of the same
category) and over-extraction (predictions matching no gold span).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from spanlabel import taxonomy
from spanlabel.types import Span

DEFAULT_IOU_THRESHOLD = 0.5
FRAGMENT_IOU_THRESHOLD = 0.1


def _bounds(span: Any) -> tuple[int, int] | None:
    if isinstance(span, Span):
        return span.start, span.end
    if isinstance(span, dict):
        start, end = span.get("start"), span.get("end")
        if isinstance(start, int) and isinstance(end, int):
            return start, end
    return None


def _role(span: Any) -> str | None:
    role = span.role if isinstance(span, Span) else span.get("role") if isinstance(span, dict) else None
    return role if isinstance(role, str) else None


def iou(predicted: Any, gold: Any) -> float:
    a, b = _bounds(predicted), _bounds(gold)
    if a is None or b is None:
        return 0.0
    intersection = max(0, min(a[1], b[1]) - max(a[0], b[0]))
    union = max(a[1], b[1]) - min(a[0], b[0])
    return intersection / union if union > 0 else 0.0


@dataclass
class SpanScores:
    precision: float
    recall: float
    f1: float
    true_positives: int
    false_positives: int
    false_negatives: int
    taxonomy_accuracy: float
    fragmentation_rate: float
    over_extraction_rate: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _greedy_matches(predicted: list[Any], gold: list[Any], threshold: float, same_role: bool) -> list[tuple[int, int]]:
    matched_gold: set[int] = set()
    pairs: list[tuple[int, int]] = []
    for i, pred in enumerate(predicted):
        for j, gt in enumerate(gold):
            if j in matched_gold:
                continue
            if iou(pred, gt) > threshold and (not same_role or _role(pred) == _role(gt)):
                matched_gold.add(j)
                pairs.append((i, j))
                break
    return pairs


def fragmentation_rate(predicted: list[Any], gold: list[Any], threshold: float = FRAGMENT_IOU_THRESHOLD) -> float:
    if not gold:
        return 0.0
    fragmented = 0
    for gt in gold:
        gt_role = _role(gt)
        parent = taxonomy.parent_category(gt_role) if gt_role else None
        pieces = [
            p for p in predicted
            if iou(p, gt) > threshold and _role(p) and taxonomy.parent_category(_role(p)) == parent
        ]
        if len(pieces) > 1:
            fragmented += 1
    return fragmented / len(gold)


def over_extraction_rate(predicted: list[Any], gold: list[Any], threshold: float = DEFAULT_IOU_THRESHOLD) -> float:
    if not predicted:
        return 0.0
    spurious = sum(1 for p in predicted if not any(iou(p, gt) > threshold for gt in gold))
    return spurious / len(predicted)


def evaluate_spans(
    predicted: list[Any],
    gold: list[Any],
    threshold: float = DEFAULT_IOU_THRESHOLD,
) -> SpanScores:
    tp = len(_greedy_matches(predicted, gold, threshold, same_role=True))
    precision = tp / len(predicted) if predicted else 0.0
    recall = tp / len(gold) if gold else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0

    positional = _greedy_matches(predicted, gold, threshold, same_role=False)
    correct_roles = sum(1 for i, j in positional if _role(predicted[i]) == _role(gold[j]))
    accuracy = correct_roles / len(positional) if positional else 0.0

    return SpanScores(
        precision=precision,
        recall=recall,
        f1=f1,
        true_positives=tp,
        false_positives=len(predicted) - tp,
        false_negatives=len(gold) - tp,
        taxonomy_accuracy=accuracy,
        fragmentation_rate=fragmentation_rate(predicted, gold),
        over_extraction_rate=over_extraction_rate(predicted, gold, threshold),
    )


def aggregate(scores: Iterable[SpanScores]) -> dict[str, float]:
    """Micro-averaged precision/recall/F1 over many documents."""
    tp = fp = fn = 0
    for s in scores:
        tp += s.true_positives
        fp += s.false_positives
        fn += s.false_negatives
    precision = tp / (tp + fp) if tp + fp else 0.0
    recall = tp / (tp + fn) if tp + fn else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0
    return {"precision": precision, "recall": recall, "f1": f1}
