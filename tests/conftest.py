from __future__ import annotations

from typing import Any, Dict, List

import pytest

from funnel_core.types import (
    AXES,
    INTEGRATION,
    Answer,
    AxisMapping,
    CatalogV1,
    CatalogV2,
    Option,
    Question,
    Section,
    ThresholdsV1,
    ThresholdsV2,
)


def build_weighted_catalog(classes: tuple[str, ...] = ("A", "B"), n_questions: int = 3) -> CatalogV1:
    """Every question offers a (2,0), a (0,2) and a (1,1) split between the first two classes."""

    first, second = classes[0], classes[1] if len(classes) > 1 else classes[0]
    questions = []
    for i in range(1, n_questions + 1):
        qid = f"w{i}"
        questions.append(
            Question(
                id=qid,
                text=f"Weighted question {i}",
                options=(
                    Option(id=f"{qid}-a", label="A-ish", score_weights={first: 2, second: 0}),
                    Option(id=f"{qid}-b", label="B-ish", score_weights={first: 0, second: 2}),
                    Option(id=f"{qid}-c", label="Both", score_weights={first: 1, second: 1}),
                ),
            )
        )
    return CatalogV1(assessment_type="synthetic", questions=tuple(questions), classes=tuple(classes))


def build_axis_catalog(per_axis: int = 2, integration: int = 2) -> CatalogV2:
    """``per_axis`` plain questions per axis (no reverse, no secondary) plus integration questions.

    Option ``{qid}-{v}`` carries value ``v``, so axis averages equal the mean of
    the picked values.
    """

    questions: List[Question] = []
    axis_map: Dict[str, AxisMapping] = {}
    sections: List[Section] = []

    def _q(qid: str) -> Question:
        return Question(
            id=qid,
            text=f"Axis question {qid}",
            options=tuple(Option(id=f"{qid}-{v}", label=str(v), value=v) for v in range(4)),
        )

    for axis in AXES:
        ids = [f"{axis}{i}" for i in range(1, per_axis + 1)]
        for qid in ids:
            questions.append(_q(qid))
            axis_map[qid] = AxisMapping(axis)
        sections.append(Section(id=axis, title=axis.title(), question_ids=tuple(ids)))
    ids = [f"int{i}" for i in range(1, integration + 1)]
    for qid in ids:
        questions.append(_q(qid))
        axis_map[qid] = AxisMapping(INTEGRATION)
    if ids:
        sections.append(Section(id=INTEGRATION, title="Integration", question_ids=tuple(ids)))

    return CatalogV2(
        assessment_type="synthetic",
        questions=tuple(questions),
        axis_map=axis_map,
        sections=tuple(sections),
    )


def axis_answers(values: Dict[str, List[int]], integration: tuple[int, int] = (2, 2)) -> List[Answer]:
    out: List[Answer] = []
    for axis, picks in values.items():
        for i, v in enumerate(picks, start=1):
            out.append(Answer(f"{axis}{i}", f"{axis}{i}-{v}"))
    for i, v in enumerate(integration, start=1):
        out.append(Answer(f"int{i}", f"int{i}-{v}"))
    return out


def weighted_doc(**overrides: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "scheme": "weighted",
        "version": "1",
        "assessmentType": "gut-check",
        "classes": ["calm", "busy"],
        "questions": [
            {
                "id": "x1",
                "text": "Override question",
                "options": [
                    {"id": "x1-a", "label": "a", "scoreWeights": {"calm": 1, "busy": 0}},
                    {"id": "x1-b", "label": "b", "scoreWeights": {"calm": 0, "busy": 1}},
                ],
            }
        ],
    }
    doc.update(overrides)
    return doc


def axis_doc(version: str = "2", **overrides: Any) -> Dict[str, Any]:
    """Smallest valid axis document: one capacity question in one section."""

    doc: Dict[str, Any] = {
        "scheme": "axis",
        "version": version,
        "assessmentType": "gut-check",
        "sections": [{"id": "capacity", "title": "Capacity", "questionIds": ["q1"]}],
        "questions": [
            {
                "id": "q1",
                "text": "t",
                "options": [{"id": f"o{v}", "label": str(v), "value": v} for v in range(4)],
            }
        ],
        "axisMap": {"q1": {"primary": "capacity"}},
    }
    doc.update(overrides)
    return doc


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.batches: List[List[Dict[str, Any]]] = []
        self.fail = fail

    def __call__(self, events):
        if self.fail:
            raise ConnectionError("sink down")
        self.batches.append(list(events))

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [e for b in self.batches for e in b]


@pytest.fixture
def v1_thresholds() -> ThresholdsV1:
    return ThresholdsV1(secondary_class_threshold=0.15, high_confidence=0.30, medium_confidence=0.15)


@pytest.fixture
def v2_thresholds() -> ThresholdsV2:
    return ThresholdsV2(axis_band_high=2.3, axis_band_moderate=1.3)


@pytest.fixture(autouse=True)
def _no_thresholds_file(monkeypatch, tmp_path):
    # scoring reads ASSESSMENT_CONFIG_PATH; point it at a path that does not exist
    monkeypatch.setenv("ASSESSMENT_CONFIG_PATH", str(tmp_path / "absent_config.json"))
