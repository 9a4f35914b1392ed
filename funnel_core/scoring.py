"""Weighted-sum scoring for v1 question sets.

Pure functions of (answers, catalog, thresholds). Sums run in catalog question
order so the answer list order never changes the floating point result.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Tuple

from .types import Answer, CatalogV1, Confidence, ScoringResultV1, ThresholdsV1


def _picked_options(answers: Iterable[Answer], catalog: CatalogV1):
    chosen = {a.question_id: a.option_id for a in answers}
    for q in catalog.questions:
        oid = chosen.get(q.id)
        if oid is None:
            continue
        opt = q.option(oid)
        if opt is None:
            continue
        yield opt


def calculate_score_map(answers: Iterable[Answer], catalog: CatalogV1) -> Dict[str, float]:
    scores = {c: 0.0 for c in catalog.classes}
    for opt in _picked_options(answers, catalog):
        for c, w in (opt.score_weights or {}).items():
            if c in scores:
                scores[c] += float(w)
    return scores


def max_possible_scores(catalog: CatalogV1) -> Dict[str, float]:
    """Per class, the best weight each question can contribute, summed."""

    out = {c: 0.0 for c in catalog.classes}
    for q in catalog.questions:
        for c in catalog.classes:
            out[c] += max((float((o.score_weights or {}).get(c, 0.0)) for o in q.options), default=0.0)
    return out


def normalize_score_map(score_map: Dict[str, float], max_possible: Dict[str, float]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for c, s in score_map.items():
        den = max_possible.get(c, 0.0)
        out[c] = s / den if den > 0 else 0.0
    return out


def rank_classes(normalized: Dict[str, float], classes: Tuple[str, ...]) -> List[str]:
    """Highest first; equal scores keep catalog declaration order."""

    order = [c for c in classes if c in normalized]
    return sorted(order, key=lambda c: -normalized[c])


def confidence_label(gap: float, thresholds: ThresholdsV1) -> Confidence:
    if gap >= thresholds.high_confidence:
        return "high"
    if gap >= thresholds.medium_confidence:
        return "moderate"
    return "low"


def confidence_score(gap: float, thresholds: ThresholdsV1) -> float:
    """0..1 score: 1.0 above high, 0.5..1.0 between medium and high, 0..0.5 below."""

    high, medium = thresholds.high_confidence, thresholds.medium_confidence
    if gap >= high:
        return 1.0
    if gap >= medium:
        span = high - medium
        return 0.5 + ((gap - medium) / span) * 0.5 if span > 0 else 1.0
    if medium <= 0:
        return 0.0
    return max(0.0, gap / medium) * 0.5


def score_v1(answers: Iterable[Answer], catalog: CatalogV1, thresholds: ThresholdsV1) -> ScoringResultV1:
    answers = list(answers)
    raw = calculate_score_map(answers, catalog)
    normalized = normalize_score_map(raw, max_possible_scores(catalog))
    ranked = rank_classes(normalized, catalog.classes)
    primary = ranked[0]

    if len(ranked) < 2:
        return ScoringResultV1(
            score_map=raw,
            normalized_score_map=normalized,
            primary_class=primary,
            secondary_class=None,
            confidence="high",
            confidence_score=1.0,
            gap=normalized[primary],
        )

    second = ranked[1]
    gap = normalized[primary] - normalized[second]
    return ScoringResultV1(
        score_map=raw,
        normalized_score_map=normalized,
        primary_class=primary,
        secondary_class=second if gap <= thresholds.secondary_class_threshold else None,
        confidence=confidence_label(gap, thresholds),
        confidence_score=confidence_score(gap, thresholds),
        gap=gap,
    )
