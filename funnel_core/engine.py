# funnel_core/engine.py
from __future__ import annotations
import logging
from typing import Iterable, Optional

from .config import DEBUG_TRACE, default_thresholds
from .scoring import score_v1
from .scoring_v2 import score_v2
from .types import (
    Answer,
    Catalog,
    CatalogV1,
    CatalogV2,
    ScoringResult,
    ScoringResultV1,
    Thresholds,
    ThresholdsV1,
    ThresholdsV2,
)

log = logging.getLogger(__name__)


def _matching_thresholds(catalog: Catalog, thresholds: Optional[Thresholds], expected: type) -> Thresholds:
    if isinstance(thresholds, expected):
        return thresholds
    if thresholds is not None:
        log.warning("thresholds fallback to defaults for %s v%s: got %s, need %s",
                    catalog.assessment_type, catalog.assessment_version,
                    type(thresholds).__name__, expected.__name__)
    return default_thresholds(catalog)


def score_answers(
    answers: Iterable[Answer],
    catalog: Catalog,
    thresholds: Optional[Thresholds] = None,
) -> ScoringResult:
    """Score a complete answer set with the engine that matches the catalog variant.

    Thresholds of the wrong scheme (or none) are replaced by the catalog's
    built-in defaults.
    """

    answers = list(answers)
    if isinstance(catalog, CatalogV1):
        th = _matching_thresholds(catalog, thresholds, ThresholdsV1)
        result: ScoringResult = score_v1(answers, catalog, th)  # type: ignore[arg-type]
    elif isinstance(catalog, CatalogV2):
        th = _matching_thresholds(catalog, thresholds, ThresholdsV2)
        result = score_v2(answers, catalog, th)  # type: ignore[arg-type]
    else:
        raise TypeError(f"unsupported catalog type: {type(catalog).__name__}")

    if DEBUG_TRACE:
        log.info("trace scored %s v%s answers=%d primary=%s",
                 catalog.assessment_type, catalog.assessment_version, len(answers), primary_of(result))
    return result


def primary_of(result: ScoringResult) -> str:
    if isinstance(result, ScoringResultV1):
        return result.primary_class
    return result.primary_level
