from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Literal, Tuple, Union

Status = Literal["idle", "in_progress", "completed", "submitting"]
Confidence = Literal["high", "moderate", "low"]
Band = Literal["low", "moderate", "high"]
Axis = Literal["capacity", "buffer", "responsiveness", "recovery", "protection"]
AXES: Tuple[str, ...] = ("capacity", "buffer", "responsiveness", "recovery", "protection")
INTEGRATION = "integration"


@dataclass(frozen=True)
class Option:
    id: str; label: str
    score_weights: Optional[Dict[str, float]] = None
    value: Optional[int] = None


@dataclass(frozen=True)
class Question:
    id: str; text: str
    options: Tuple[Option, ...] = ()

    def option(self, option_id: str) -> Optional[Option]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None


@dataclass(frozen=True)
class Section:
    id: str; title: str
    question_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AxisMapping:
    primary: str
    secondary: Optional[str] = None
    reverse: bool = False


@dataclass(frozen=True)
class CatalogV1:
    """Weighted-sum question set: every option carries per-class weights."""
    assessment_type: str
    questions: Tuple[Question, ...]
    classes: Tuple[str, ...]
    assessment_version: int = 1


@dataclass(frozen=True)
class CatalogV2:
    """Axis question set: every option carries a 0..3 value."""
    assessment_type: str
    questions: Tuple[Question, ...]
    axis_map: Dict[str, AxisMapping]
    sections: Tuple[Section, ...] = ()
    levels: Tuple[str, ...] = ("level1", "level2", "level3", "level4")
    assessment_version: int = 2


Catalog = Union[CatalogV1, CatalogV2]


@dataclass(frozen=True)
class ThresholdsV1:
    secondary_class_threshold: float
    high_confidence: float
    medium_confidence: float


@dataclass(frozen=True)
class ThresholdsV2:
    axis_band_high: float
    axis_band_moderate: float


Thresholds = Union[ThresholdsV1, ThresholdsV2]


@dataclass(frozen=True)
class Answer:
    question_id: str; option_id: str


@dataclass
class AssessmentState:
    assessment_type: str
    assessment_version: int
    session_id: str
    current_question_index: int = 0
    answers: List[Answer] = field(default_factory=list)
    status: Status = "idle"


@dataclass(frozen=True)
class ScoringResultV1:
    score_map: Dict[str, float]
    normalized_score_map: Dict[str, float]
    primary_class: str
    secondary_class: Optional[str]
    confidence: Confidence
    confidence_score: float
    gap: float


@dataclass(frozen=True)
class ScoringResultV2:
    primary_level: str
    secondary_modifier: Optional[str]
    confidence: Confidence
    axis_bands: Dict[str, str]
    axis_averages: Dict[str, float]
    responses: Dict[str, int] = field(default_factory=dict)


ScoringResult = Union[ScoringResultV1, ScoringResultV2]
