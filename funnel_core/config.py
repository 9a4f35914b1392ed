from __future__ import annotations
import os, json, logging, pathlib
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .types import Catalog, CatalogV1, CatalogV2, Thresholds, ThresholdsV1, ThresholdsV2

log = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# v1 weighted-sum cutoffs (normalized score gap between first and second class)
SECONDARY_CLASS_THRESHOLD: float = 0.15
HIGH_CONFIDENCE_THRESHOLD: float = 0.30
MEDIUM_CONFIDENCE_THRESHOLD: float = 0.15

# v2 axis bands on the 0..3 answer scale
AXIS_BAND_HIGH: float = 2.3
AXIS_BAND_MODERATE: float = 1.3

DEFAULT_ASSESSMENT_TYPE: str = "gut-check"
DEFAULT_ASSESSMENT_VERSION: int = 2
VERSION_MIN: int = 1
VERSION_MAX: int = 99

ANALYTICS_ENABLED: bool = True
ANALYTICS_BATCH_SIZE: int = 10
ANALYTICS_MAX_REQUEUE: int = 50

SUBMIT_URL: Optional[str] = None
SUBMIT_TIMEOUT_SEC: float = 2.5

ASSESSMENT_CONFIG_PATH: str = "assessment_config.json"
QUESTION_SET_DIR: Optional[str] = None

DEBUG_TRACE: bool = False

# in-memory flow registry of the HTTP service
MAX_FLOWS: int = 1000
FLOW_TTL_SEC: float = 1800.0
COMPLETED_FLOW_TTL_SEC: float = 300.0

# question set audit
AUDIT_MIN_OPTIONS: int = 2
AUDIT_EXPECT_SECTIONS: bool = True

# // env overrides for staging/ops; defaults stay identical to the shipped scoring.
SECONDARY_CLASS_THRESHOLD = _env_float("SECONDARY_CLASS_THRESHOLD", SECONDARY_CLASS_THRESHOLD)
HIGH_CONFIDENCE_THRESHOLD = _env_float("HIGH_CONFIDENCE_THRESHOLD", HIGH_CONFIDENCE_THRESHOLD)
MEDIUM_CONFIDENCE_THRESHOLD = _env_float("MEDIUM_CONFIDENCE_THRESHOLD", MEDIUM_CONFIDENCE_THRESHOLD)
AXIS_BAND_HIGH = _env_float("AXIS_BAND_HIGH", AXIS_BAND_HIGH)
AXIS_BAND_MODERATE = _env_float("AXIS_BAND_MODERATE", AXIS_BAND_MODERATE)
DEFAULT_ASSESSMENT_VERSION = _env_int("DEFAULT_ASSESSMENT_VERSION", DEFAULT_ASSESSMENT_VERSION)
ANALYTICS_ENABLED = _env_bool("ANALYTICS_ENABLED", ANALYTICS_ENABLED)
ANALYTICS_BATCH_SIZE = max(1, _env_int("ANALYTICS_BATCH_SIZE", ANALYTICS_BATCH_SIZE))
SUBMIT_URL = os.getenv("SUBMIT_URL") or None
SUBMIT_TIMEOUT_SEC = _env_float("SUBMIT_TIMEOUT_SEC", SUBMIT_TIMEOUT_SEC)
QUESTION_SET_DIR = os.getenv("QUESTION_SET_DIR") or None
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
MAX_FLOWS = max(1, _env_int("MAX_FLOWS", MAX_FLOWS))
FLOW_TTL_SEC = _env_float("FLOW_TTL_SEC", FLOW_TTL_SEC)
COMPLETED_FLOW_TTL_SEC = _env_float("COMPLETED_FLOW_TTL_SEC", COMPLETED_FLOW_TTL_SEC)
AUDIT_MIN_OPTIONS = _env_int("AUDIT_MIN_OPTIONS", AUDIT_MIN_OPTIONS)


class ConfigLoadError(RuntimeError):
    """The thresholds document is missing, unreadable or fails validation."""


class _ConfidenceDoc(BaseModel):
    high: float = Field(ge=0.0, le=1.0)
    medium: float = Field(ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _ordered(self) -> "_ConfidenceDoc":
        if self.medium > self.high:
            raise ValueError("confidence medium threshold exceeds high threshold")
        return self


class _ThresholdsDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    axisBandHigh: Optional[float] = Field(default=None, ge=0.0, le=3.0)
    axisBandModerate: Optional[float] = Field(default=None, ge=0.0, le=3.0)
    confidenceThresholds: Optional[_ConfidenceDoc] = None
    secondaryAvatarThreshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _bands_ordered(self) -> "_ThresholdsDoc":
        if (
            self.axisBandHigh is not None
            and self.axisBandModerate is not None
            and self.axisBandModerate > self.axisBandHigh
        ):
            raise ValueError("axisBandModerate exceeds axisBandHigh")
        return self


class _ScoringDoc(BaseModel):
    thresholds: _ThresholdsDoc


class AssessmentConfigDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scoring: _ScoringDoc


def config_key(assessment_type: str, version: int) -> str:
    return f"assessment-config:{assessment_type}:{int(version)}"


def default_thresholds(catalog: Catalog) -> Thresholds:
    """Built-in cutoffs for the catalog's scoring scheme. Pure."""

    if isinstance(catalog, CatalogV2):
        return ThresholdsV2(axis_band_high=AXIS_BAND_HIGH, axis_band_moderate=AXIS_BAND_MODERATE)
    if isinstance(catalog, CatalogV1):
        return ThresholdsV1(
            secondary_class_threshold=SECONDARY_CLASS_THRESHOLD,
            high_confidence=HIGH_CONFIDENCE_THRESHOLD,
            medium_confidence=MEDIUM_CONFIDENCE_THRESHOLD,
        )
    raise TypeError(f"unsupported catalog type: {type(catalog).__name__}")


def _config_path() -> pathlib.Path:
    return pathlib.Path(os.getenv("ASSESSMENT_CONFIG_PATH", ASSESSMENT_CONFIG_PATH))


def load_thresholds(catalog: Catalog, path: Optional[pathlib.Path] = None) -> Thresholds:
    """Read the version-specific thresholds document.

    Keys absent from the document keep their built-in default. Raises
    ConfigLoadError when the document or its entry cannot be used.
    """

    p = path or _config_path()
    if not p.exists():
        raise ConfigLoadError(f"config file not found: {p}")
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigLoadError(f"config file unreadable: {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigLoadError(f"config file must hold an object: {p}")

    key = config_key(catalog.assessment_type, catalog.assessment_version)
    entry = raw.get(key)
    if entry is None:
        raise ConfigLoadError(f"no entry for {key} in {p}")
    try:
        doc = AssessmentConfigDoc.model_validate(entry)
    except ValidationError as e:
        raise ConfigLoadError(f"invalid {key}: {e}") from e

    t = doc.scoring.thresholds
    base = default_thresholds(catalog)
    if isinstance(base, ThresholdsV2):
        high = t.axisBandHigh if t.axisBandHigh is not None else base.axis_band_high
        moderate = t.axisBandModerate if t.axisBandModerate is not None else base.axis_band_moderate
        if moderate > high:
            raise ConfigLoadError(f"invalid {key}: moderate band above high band after defaults")
        return ThresholdsV2(axis_band_high=high, axis_band_moderate=moderate)

    conf = t.confidenceThresholds
    return ThresholdsV1(
        secondary_class_threshold=(
            t.secondaryAvatarThreshold
            if t.secondaryAvatarThreshold is not None
            else base.secondary_class_threshold
        ),
        high_confidence=conf.high if conf else base.high_confidence,
        medium_confidence=conf.medium if conf else base.medium_confidence,
    )


def resolve_thresholds(catalog: Catalog, path: Optional[pathlib.Path] = None) -> Thresholds:
    """Configured thresholds when available, defaults otherwise. Never raises."""

    try:
        return load_thresholds(catalog, path)
    except ConfigLoadError as e:
        log.warning("thresholds fallback to defaults for %s v%s: %s",
                    catalog.assessment_type, catalog.assessment_version, e)
        return default_thresholds(catalog)
