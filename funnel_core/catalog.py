"""Question sets: packaged defaults, an optional override directory, and the
version parsing used by the HTTP layer.

A question set document names its scoring scheme explicitly (``"scheme":
"weighted"`` or ``"scheme": "axis"``) and is parsed into the matching catalog
variant. Nothing downstream inspects option fields to guess the scheme.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from . import config
from .types import (
    AXES,
    INTEGRATION,
    AxisMapping,
    Catalog,
    CatalogV1,
    CatalogV2,
    Option,
    Question,
    Section,
)

log = logging.getLogger(__name__)

DATA_DIR = Path(__file__).with_name("data")
ASSESSMENT_TYPES: Tuple[str, ...] = ("gut-check",)

# Capacity, buffer and recovery questions are phrased so that a higher answer
# means a healthier baseline; they are reversed so every axis reads as strain.
AXIS_MAP_V2: Dict[str, AxisMapping] = {
    "q1": AxisMapping("capacity", secondary="buffer", reverse=True),
    "q2": AxisMapping("capacity", reverse=True),
    "q3": AxisMapping("capacity", reverse=True),
    "q4": AxisMapping("buffer", reverse=True),
    "q5": AxisMapping("buffer", reverse=True),
    "q6": AxisMapping("buffer", secondary="responsiveness"),
    "q7": AxisMapping("responsiveness"),
    "q8": AxisMapping("responsiveness", secondary="recovery"),
    "q9": AxisMapping("responsiveness"),
    "q10": AxisMapping("recovery", reverse=True),
    "q11": AxisMapping("recovery", reverse=True),
    "q12": AxisMapping("recovery", secondary="capacity", reverse=True),
    "q13": AxisMapping("protection"),
    "q14": AxisMapping("protection", secondary="responsiveness"),
    "q15": AxisMapping("protection"),
    "q16": AxisMapping(INTEGRATION),
    "q17": AxisMapping(INTEGRATION),
}


class CatalogError(ValueError):
    """A question set could not be found or failed validation."""


def parse_version(v: Union[str, int, List[str], None], default: Optional[int] = None) -> int:
    """Parse a version query value, restricted to 1..99."""

    fallback = config.DEFAULT_ASSESSMENT_VERSION if default is None else int(default)
    if v is None or v == "" or v == []:
        return fallback
    raw = v[0] if isinstance(v, list) else v
    try:
        n = int(str(raw).strip().lstrip("vV"))
    except ValueError:
        return fallback
    if n < config.VERSION_MIN or n > config.VERSION_MAX:
        return fallback
    return n


# ---- document schema ----
class _WeightedOptionDoc(BaseModel):
    id: str = Field(min_length=1)
    label: str
    scoreWeights: Dict[str, float]


class _AxisOptionDoc(BaseModel):
    id: str = Field(min_length=1)
    label: str
    value: int = Field(ge=0, le=3)


class _WeightedQuestionDoc(BaseModel):
    id: str = Field(min_length=1)
    text: str
    options: List[_WeightedOptionDoc] = Field(min_length=1)


class _AxisQuestionDoc(BaseModel):
    id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    options: List[_AxisOptionDoc] = Field(min_length=4, max_length=4)


class _SectionDoc(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    questionIds: List[str] = Field(min_length=1)


class _AxisMappingDoc(BaseModel):
    primary: str
    secondary: Optional[str] = None
    reverse: bool = False


class _WeightedSetDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scheme: Literal["weighted"]
    version: str
    assessmentType: str
    classes: List[str] = Field(min_length=1)
    questions: List[_WeightedQuestionDoc] = Field(min_length=1)


class _AxisSetDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scheme: Literal["axis"]
    version: str
    assessmentType: str
    sections: List[_SectionDoc] = Field(min_length=1)
    questions: List[_AxisQuestionDoc] = Field(min_length=1)
    axisMap: Optional[Dict[str, _AxisMappingDoc]] = None
    levels: Optional[List[str]] = None


_QUESTION_SET = TypeAdapter(
    Annotated[Union[_WeightedSetDoc, _AxisSetDoc], Field(discriminator="scheme")]
)


def _check_unique(questions) -> None:
    seen_q: set[str] = set()
    for q in questions:
        if q.id in seen_q:
            raise CatalogError(f"duplicate question id {q.id}")
        seen_q.add(q.id)
        seen_o: set[str] = set()
        for o in q.options:
            if o.id in seen_o:
                raise CatalogError(f"duplicate option id {o.id} in question {q.id}")
            seen_o.add(o.id)


def _check_axis_options(questions) -> None:
    # every axis question offers each value 0..3 exactly once
    expected = list(range(4))
    for q in questions:
        values = sorted(o.value for o in q.options)
        if values != expected:
            raise CatalogError(f"question {q.id} option values {values} must be exactly {expected}")


def _axis_map_from_doc(raw: Dict[str, _AxisMappingDoc]) -> Dict[str, AxisMapping]:
    out: Dict[str, AxisMapping] = {}
    for qid, m in raw.items():
        if m.primary != INTEGRATION and m.primary not in AXES:
            raise CatalogError(f"unknown axis {m.primary!r} for {qid}")
        if m.secondary is not None and m.secondary not in AXES:
            raise CatalogError(f"unknown secondary axis {m.secondary!r} for {qid}")
        out[qid] = AxisMapping(m.primary, secondary=m.secondary, reverse=m.reverse)
    return out


def catalog_from_dict(raw: object, version: Optional[int] = None) -> Catalog:
    """Validate a question set document and build the matching catalog variant."""

    try:
        doc = _QUESTION_SET.validate_python(raw)
    except ValidationError as e:
        raise CatalogError(f"invalid question set: {e}") from e

    doc_version = parse_version(doc.version, default=0)
    if doc_version == 0:
        raise CatalogError(f"invalid question set version {doc.version!r}")
    if version is not None and doc_version != int(version):
        raise CatalogError(f"version mismatch: expected {version}, got {doc.version}")
    _check_unique(doc.questions)

    if isinstance(doc, _WeightedSetDoc):
        classes = tuple(doc.classes)
        if len(set(classes)) != len(classes):
            raise CatalogError("duplicate class ids")
        questions = []
        for q in doc.questions:
            opts = []
            for o in q.options:
                unknown = set(o.scoreWeights) - set(classes)
                if unknown:
                    raise CatalogError(f"option {o.id} weights unknown classes {sorted(unknown)}")
                opts.append(Option(id=o.id, label=o.label, score_weights=dict(o.scoreWeights)))
            questions.append(Question(id=q.id, text=q.text, options=tuple(opts)))
        return CatalogV1(
            assessment_type=doc.assessmentType,
            questions=tuple(questions),
            classes=classes,
            assessment_version=doc_version,
        )

    _check_axis_options(doc.questions)
    questions = [
        Question(
            id=q.id,
            text=q.text,
            options=tuple(Option(id=o.id, label=o.label, value=o.value) for o in q.options),
        )
        for q in doc.questions
    ]
    known = {q.id for q in questions}
    sections = []
    section_ids = [s.id for s in doc.sections]
    if len(set(section_ids)) != len(section_ids):
        raise CatalogError("duplicate section ids")
    for s in doc.sections:
        missing = [qid for qid in s.questionIds if qid not in known]
        if missing:
            raise CatalogError(f"section {s.id} references unknown questions {missing}")
        sections.append(Section(id=s.id, title=s.title, question_ids=tuple(s.questionIds)))
    axis_map = _axis_map_from_doc(doc.axisMap) if doc.axisMap else dict(AXIS_MAP_V2)
    return CatalogV2(
        assessment_type=doc.assessmentType,
        questions=tuple(questions),
        axis_map=axis_map,
        sections=tuple(sections),
        levels=tuple(doc.levels) if doc.levels else ("level1", "level2", "level3", "level4"),
        assessment_version=doc_version,
    )


def _read_set(path: Path, assessment_type: str, version: int) -> Catalog:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise CatalogError(f"question set not found: {path}") from e
    except (OSError, ValueError) as e:
        raise CatalogError(f"question set unreadable: {path}: {e}") from e
    catalog = catalog_from_dict(raw, version=version)
    if catalog.assessment_type != assessment_type:
        raise CatalogError(
            f"assessment type mismatch: expected {assessment_type}, got {catalog.assessment_type}"
        )
    return catalog


def _set_filename(version: int) -> str:
    return f"questions_v{int(version)}.json"


_DEFAULT_CACHE: Dict[tuple[str, int], Catalog] = {}


def default_catalog(assessment_type: str, version: int) -> Catalog:
    """The packaged question set for (type, version)."""

    if assessment_type not in ASSESSMENT_TYPES:
        raise CatalogError(f"unknown assessment type: {assessment_type}")
    key = (assessment_type, int(version))
    if key not in _DEFAULT_CACHE:
        path = DATA_DIR / assessment_type / _set_filename(version)
        _DEFAULT_CACHE[key] = _read_set(path, assessment_type, int(version))
    return _DEFAULT_CACHE[key]


def load_catalog(assessment_type: str, version: int, directory: Optional[Path] = None) -> Catalog:
    """Read a question set from the override directory. Raises CatalogError."""

    root = directory
    if root is None:
        env_dir = os.getenv("QUESTION_SET_DIR") or config.QUESTION_SET_DIR
        if not env_dir:
            raise CatalogError("no question set directory configured")
        root = Path(env_dir)
    return _read_set(Path(root) / assessment_type / _set_filename(version), assessment_type, int(version))


def resolve_catalog(assessment_type: str, version: int, directory: Optional[Path] = None) -> Catalog:
    """Override directory first, packaged default second."""

    if directory is not None or os.getenv("QUESTION_SET_DIR") or config.QUESTION_SET_DIR:
        try:
            return load_catalog(assessment_type, version, directory)
        except CatalogError as e:
            log.warning("question set fallback to packaged default for %s v%s: %s",
                        assessment_type, version, e)
    return default_catalog(assessment_type, version)


def find_question(catalog: Catalog, question_id: str) -> Optional[Question]:
    for q in catalog.questions:
        if q.id == question_id:
            return q
    return None


def integration_question_ids(catalog: CatalogV2) -> List[str]:
    return [qid for qid, m in catalog.axis_map.items() if m.primary == INTEGRATION]


def question_set_hash(raw: object) -> str:
    """SHA-256 over a key-sorted JSON rendering; key order does not change the hash."""

    text = json.dumps(raw, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
