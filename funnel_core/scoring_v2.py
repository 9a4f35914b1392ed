"""Axis scoring for v2 question sets.

Answers become 0..3 responses, responses become five axis averages, averages
become low/moderate/high bands, and a fixed-priority tree turns the bands into
a level. Confidence comes only from the two integration questions.
"""
from __future__ import annotations
import logging
from typing import Dict, Iterable, Optional

from .catalog import integration_question_ids
from .types import (
    AXES,
    INTEGRATION,
    Answer,
    Band,
    CatalogV2,
    Confidence,
    ScoringResultV2,
    ThresholdsV2,
)

log = logging.getLogger(__name__)

SECONDARY_WEIGHT: float = 0.5


def normalize(value: int, reverse: bool = False) -> int:
    return 3 - value if reverse else value


def _clamp03(v: int) -> int:
    return max(0, min(3, int(v)))


def responses_from_answers(answers: Iterable[Answer], catalog: CatalogV2) -> Dict[str, int]:
    """Raw 0..3 value per catalog question. Unanswered questions count as 0."""

    chosen = {a.question_id: a.option_id for a in answers}
    out: Dict[str, int] = {}
    for q in catalog.questions:
        oid = chosen.get(q.id)
        value = 0
        if oid is not None:
            for idx, opt in enumerate(q.options):
                if opt.id == oid:
                    value = opt.value if opt.value is not None else min(idx, 3)
                    break
        out[q.id] = _clamp03(value)
    return out


def compute_axis_averages(responses: Dict[str, int], catalog: CatalogV2) -> Dict[str, float]:
    totals = {a: 0.0 for a in AXES}
    counts = {a: 0.0 for a in AXES}
    for qid, mapping in catalog.axis_map.items():
        if mapping.primary == INTEGRATION:
            continue
        v = float(normalize(_clamp03(responses.get(qid, 0)), mapping.reverse))
        totals[mapping.primary] += v
        counts[mapping.primary] += 1.0
        if mapping.secondary:
            totals[mapping.secondary] += v * SECONDARY_WEIGHT
            counts[mapping.secondary] += SECONDARY_WEIGHT
    return {a: (totals[a] / counts[a] if counts[a] > 0 else 0.0) for a in AXES}


def band_axis(avg: float, thresholds: ThresholdsV2) -> Band:
    if avg >= thresholds.axis_band_high:
        return "high"
    if avg >= thresholds.axis_band_moderate:
        return "moderate"
    return "low"


def compute_axis_bands(averages: Dict[str, float], thresholds: ThresholdsV2) -> Dict[str, str]:
    return {a: band_axis(averages[a], thresholds) for a in AXES}


def determine_level(bands: Dict[str, str]) -> str:
    # Order matters: the first matching rule decides.
    capacity, buffer = bands["capacity"], bands["buffer"]
    responsiveness, recovery, protection = bands["responsiveness"], bands["recovery"], bands["protection"]

    if protection == "high" and (capacity == "low" or buffer == "low"):
        return "level4"
    if capacity == "low" and protection != "high" and (buffer == "low" or recovery == "low"):
        return "level3"
    if capacity == "moderate" and buffer == "low" and responsiveness == "high" and recovery != "low":
        return "level2"
    if capacity != "low" and buffer != "low" and recovery != "low" and protection != "high":
        return "level1"
    return "level3"


def determine_modifier(bands: Dict[str, str]) -> Optional[str]:
    if bands["responsiveness"] == "high":
        return "high_responsiveness"
    if bands["recovery"] == "low":
        return "poor_recovery"
    if bands["buffer"] == "low":
        return "narrow_buffer"
    return None


def calculate_confidence(responses: Dict[str, int], catalog: CatalogV2) -> Confidence:
    ids = integration_question_ids(catalog)
    if len(ids) < 2:
        log.warning("confidence needs two integration questions, found %d", len(ids))
        return "low"
    variance = abs(_clamp03(responses.get(ids[0], 0)) - _clamp03(responses.get(ids[1], 0)))
    if variance == 0:
        return "high"
    if variance == 1:
        return "moderate"
    return "low"


def score_v2(answers: Iterable[Answer], catalog: CatalogV2, thresholds: ThresholdsV2) -> ScoringResultV2:
    responses = responses_from_answers(answers, catalog)
    averages = compute_axis_averages(responses, catalog)
    bands = compute_axis_bands(averages, thresholds)
    return ScoringResultV2(
        primary_level=determine_level(bands),
        secondary_modifier=determine_modifier(bands),
        confidence=calculate_confidence(responses, catalog),
        axis_bands=bands,
        axis_averages=averages,
        responses=responses,
    )
