from __future__ import annotations

import pytest

from funnel_core.scoring import (
    calculate_score_map,
    confidence_score,
    max_possible_scores,
    score_v1,
)
from funnel_core.types import Answer, CatalogV1, Option, Question, ThresholdsV1
from tests.conftest import build_weighted_catalog


def _pick(*suffixes: str) -> list[Answer]:
    return [Answer(f"w{i}", f"w{i}-{s}") for i, s in enumerate(suffixes, start=1)]


def test_three_question_example(v1_thresholds):
    catalog = build_weighted_catalog()
    answers = _pick("a", "a", "b")

    assert calculate_score_map(answers, catalog) == {"A": 4.0, "B": 2.0}
    assert max_possible_scores(catalog) == {"A": 6.0, "B": 6.0}

    res = score_v1(answers, catalog, v1_thresholds)
    assert res.normalized_score_map["A"] == pytest.approx(0.667, abs=1e-3)
    assert res.normalized_score_map["B"] == pytest.approx(0.333, abs=1e-3)
    assert res.primary_class == "A"
    assert res.secondary_class is None
    assert res.gap == pytest.approx(1 / 3)
    assert res.confidence == "high"
    assert res.confidence_score == 1.0


def test_tie_goes_to_first_declared_class(v1_thresholds):
    answers = _pick("c", "c", "c")

    res = score_v1(answers, build_weighted_catalog(classes=("A", "B")), v1_thresholds)
    assert res.primary_class == "A"
    assert res.secondary_class == "B"

    flipped = build_weighted_catalog(classes=("B", "A"))
    res = score_v1(answers, flipped, v1_thresholds)
    assert res.primary_class == "B"
    assert res.secondary_class == "A"
    assert res.confidence == "low"
    assert res.confidence_score == 0.0


def test_secondary_class_and_moderate_confidence():
    catalog = CatalogV1(
        assessment_type="synthetic",
        classes=("A", "B"),
        questions=tuple(
            Question(
                id=f"w{i}",
                text="q",
                options=(
                    Option(id=f"w{i}-a", label="a", score_weights={"A": 2, "B": 0}),
                    Option(id=f"w{i}-b", label="b", score_weights={"A": 0, "B": 2}),
                    Option(id=f"w{i}-d", label="d", score_weights={"A": 2, "B": 1}),
                    Option(id=f"w{i}-c", label="c", score_weights={"A": 1, "B": 1}),
                ),
            )
            for i in (1, 2, 3)
        ),
    )
    answers = _pick("d", "c", "c")  # A=4/6, B=3/6
    th = ThresholdsV1(secondary_class_threshold=0.2, high_confidence=0.30, medium_confidence=0.15)

    res = score_v1(answers, catalog, th)
    assert res.primary_class == "A"
    assert res.secondary_class == "B"
    assert res.confidence == "moderate"
    assert res.confidence_score == pytest.approx(0.5 + (1 / 6 - 0.15) / 0.15 * 0.5)


def test_unknown_ids_are_ignored(v1_thresholds):
    catalog = build_weighted_catalog()
    answers = _pick("a", "a", "a") + [Answer("nope", "x"), Answer("w1", "w1-zz")]
    # the later unknown option for w1 replaces the valid pick in the lookup
    assert calculate_score_map(answers, catalog) == {"A": 4.0, "B": 0.0}


def test_zero_max_possible_normalizes_to_zero(v1_thresholds):
    catalog = build_weighted_catalog(classes=("A", "B", "C"))
    res = score_v1(_pick("a", "b", "a"), catalog, v1_thresholds)
    assert res.normalized_score_map["C"] == 0.0
    assert res.primary_class == "A"


def test_single_class_is_high_without_secondary(v1_thresholds):
    catalog = CatalogV1(
        assessment_type="synthetic",
        classes=("only",),
        questions=(Question(id="w1", text="q", options=(Option(id="w1-a", label="a", score_weights={"only": 1}),)),),
    )
    res = score_v1([Answer("w1", "w1-a")], catalog, v1_thresholds)
    assert res.primary_class == "only"
    assert res.secondary_class is None
    assert res.confidence == "high"


def test_scoring_is_deterministic_and_order_free(v1_thresholds):
    catalog = build_weighted_catalog()
    answers = _pick("c", "a", "b")
    first = score_v1(answers, catalog, v1_thresholds)
    assert score_v1(answers, catalog, v1_thresholds) == first
    assert score_v1(list(reversed(answers)), catalog, v1_thresholds) == first


def test_confidence_score_below_medium_scales_to_half(v1_thresholds):
    assert confidence_score(0.075, v1_thresholds) == pytest.approx(0.25)
    assert confidence_score(0.30, v1_thresholds) == 1.0
    assert confidence_score(0.15, v1_thresholds) == pytest.approx(0.5)
