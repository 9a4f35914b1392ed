from __future__ import annotations

import json
import logging

import pytest

from funnel_core import config
from funnel_core.catalog import default_catalog
from funnel_core.config import (
    ConfigLoadError,
    config_key,
    default_thresholds,
    load_thresholds,
    resolve_thresholds,
)
from funnel_core.types import ThresholdsV1, ThresholdsV2


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_follow_the_catalog_variant():
    assert default_thresholds(default_catalog("gut-check", 1)) == ThresholdsV1(
        secondary_class_threshold=config.SECONDARY_CLASS_THRESHOLD,
        high_confidence=config.HIGH_CONFIDENCE_THRESHOLD,
        medium_confidence=config.MEDIUM_CONFIDENCE_THRESHOLD,
    )
    assert default_thresholds(default_catalog("gut-check", 2)) == ThresholdsV2(2.3, 1.3)
    with pytest.raises(TypeError):
        default_thresholds(object())  # type: ignore[arg-type]


def test_missing_file_raises_and_resolve_falls_back(tmp_path, caplog):
    catalog = default_catalog("gut-check", 2)
    missing = tmp_path / "nope.json"
    with pytest.raises(ConfigLoadError):
        load_thresholds(catalog, missing)
    with caplog.at_level(logging.WARNING):
        assert resolve_thresholds(catalog, missing) == default_thresholds(catalog)
    assert "fallback" in caplog.text


def test_partial_axis_document_keeps_other_defaults(tmp_path):
    catalog = default_catalog("gut-check", 2)
    path = _write(tmp_path / "cfg.json", {
        config_key("gut-check", 2): {"scoring": {"thresholds": {"axisBandHigh": 2.5}}},
    })
    assert load_thresholds(catalog, path) == ThresholdsV2(axis_band_high=2.5, axis_band_moderate=1.3)


def test_weighted_document(tmp_path):
    catalog = default_catalog("gut-check", 1)
    path = _write(tmp_path / "cfg.json", {
        "assessment-config:gut-check:1": {
            "scoring": {
                "thresholds": {
                    "confidenceThresholds": {"high": 0.4, "medium": 0.2},
                    "secondaryAvatarThreshold": 0.1,
                }
            }
        },
    })
    assert load_thresholds(catalog, path) == ThresholdsV1(0.1, 0.4, 0.2)


@pytest.mark.parametrize(
    "thresholds",
    [
        {"axisBandHigh": 1.0, "axisBandModerate": 2.0},
        {"axisBandHigh": 4.0},
        {"axisBandModerate": 2.9},  # above the default high band
    ],
)
def test_invalid_axis_documents(tmp_path, thresholds):
    catalog = default_catalog("gut-check", 2)
    path = _write(tmp_path / "cfg.json", {config_key("gut-check", 2): {"scoring": {"thresholds": thresholds}}})
    with pytest.raises(ConfigLoadError):
        load_thresholds(catalog, path)
    assert resolve_thresholds(catalog, path) == default_thresholds(catalog)


def test_entry_for_other_version_is_not_used(tmp_path):
    catalog = default_catalog("gut-check", 2)
    path = _write(tmp_path / "cfg.json", {
        config_key("gut-check", 1): {"scoring": {"thresholds": {"axisBandHigh": 2.5}}},
    })
    with pytest.raises(ConfigLoadError, match="no entry"):
        load_thresholds(catalog, path)


def test_path_comes_from_environment(tmp_path, monkeypatch):
    catalog = default_catalog("gut-check", 2)
    path = _write(tmp_path / "env_cfg.json", {
        config_key("gut-check", 2): {"scoring": {"thresholds": {"axisBandModerate": 1.0}}},
    })
    monkeypatch.setenv("ASSESSMENT_CONFIG_PATH", str(path))
    assert resolve_thresholds(catalog).axis_band_moderate == 1.0
