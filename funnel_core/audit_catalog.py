from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from . import config
from .catalog import (
    ASSESSMENT_TYPES,
    DATA_DIR,
    default_catalog,
    integration_question_ids,
    question_set_hash,
)
from .types import AXES, INTEGRATION, Catalog, CatalogV1, CatalogV2

REQUIRED_INTEGRATION = 2
VALUE_RANGE: tuple[int, int] = (0, 3)


def packaged_catalogs(types: Iterable[str] = ASSESSMENT_TYPES) -> list[Catalog]:
    out: list[Catalog] = []
    for assessment_type in types:
        for path in sorted((DATA_DIR / assessment_type).glob("questions_v*.json")):
            version = int(path.stem.rsplit("_v", 1)[1])
            out.append(default_catalog(assessment_type, version))
    return out


def packaged_hashes(types: Iterable[str] = ASSESSMENT_TYPES) -> dict[str, str]:
    """Content hash per packaged file, keyed like the report labels."""

    out: dict[str, str] = {}
    for assessment_type in types:
        for path in sorted((DATA_DIR / assessment_type).glob("questions_v*.json")):
            version = int(path.stem.rsplit("_v", 1)[1])
            raw = json.loads(path.read_text(encoding="utf-8"))
            out[f"{assessment_type}:v{version}"] = question_set_hash(raw)
    return out


def _label(catalog: Catalog) -> str:
    return f"{catalog.assessment_type}:v{catalog.assessment_version}"


def _audit_common(catalog: Catalog, warnings: list[str]) -> int:
    label = _label(catalog)
    n_opts = 0
    for q in catalog.questions:
        n_opts += len(q.options)
        if len(q.options) < config.AUDIT_MIN_OPTIONS:
            warnings.append(f"{label} {q.id} has {len(q.options)} options (<{config.AUDIT_MIN_OPTIONS})")
    return n_opts


def _audit_v1(catalog: CatalogV1, warnings: list[str]) -> dict[str, object]:
    label = _label(catalog)
    coverage = {cls: 0 for cls in catalog.classes}
    for q in catalog.questions:
        for opt in q.options:
            for cls, w in (opt.score_weights or {}).items():
                if w > 0:
                    coverage[cls] = coverage.get(cls, 0) + 1
        if not any(opt.score_weights for opt in q.options):
            warnings.append(f"{label} {q.id} carries no class weights")
    for cls, n in coverage.items():
        if n == 0:
            warnings.append(f"{label} class {cls} can never score")
    return {"scheme": "weighted", "questions": len(catalog.questions), "class_coverage": coverage}


def _audit_v2(catalog: CatalogV2, warnings: list[str]) -> dict[str, object]:
    label = _label(catalog)
    coverage = {axis: 0 for axis in AXES}
    known = {q.id for q in catalog.questions}

    for q in catalog.questions:
        mapping = catalog.axis_map.get(q.id)
        if mapping is None:
            warnings.append(f"{label} {q.id} has no axis mapping")
        elif mapping.primary != INTEGRATION:
            coverage[mapping.primary] += 1
        values = [o.value for o in q.options if o.value is not None]
        if not values or min(values) > VALUE_RANGE[0] or max(values) < VALUE_RANGE[1]:
            warnings.append(f"{label} {q.id} option values do not span {VALUE_RANGE[0]}..{VALUE_RANGE[1]}")

    for qid in catalog.axis_map:
        if qid not in known:
            warnings.append(f"{label} axis map names unknown question {qid}")
    for axis, n in coverage.items():
        if n == 0:
            warnings.append(f"{label} axis {axis} has no questions")

    integration = [qid for qid in integration_question_ids(catalog) if qid in known]
    if len(integration) < REQUIRED_INTEGRATION:
        warnings.append(
            f"{label} has {len(integration)} integration questions (<{REQUIRED_INTEGRATION}); confidence falls back to low"
        )

    unsectioned: list[str] = []
    if catalog.sections or config.AUDIT_EXPECT_SECTIONS:
        placed = {qid for s in catalog.sections for qid in s.question_ids}
        unsectioned = [q.id for q in catalog.questions if q.id not in placed]
        if unsectioned:
            warnings.append(f"{label} has {len(unsectioned)} questions outside any section")

    return {
        "scheme": "axis",
        "questions": len(catalog.questions),
        "axis_coverage": coverage,
        "integration": integration,
        "unsectioned": unsectioned,
    }


def audit_catalogs(catalogs: Iterable[Catalog]) -> dict[str, object]:
    report: dict[str, dict[str, object]] = {}
    totals = {"catalogs": 0, "questions": 0, "options": 0}
    warnings: list[str] = []

    for catalog in catalogs:
        totals["catalogs"] += 1
        totals["questions"] += len(catalog.questions)
        totals["options"] += _audit_common(catalog, warnings)
        if isinstance(catalog, CatalogV1):
            report[_label(catalog)] = _audit_v1(catalog, warnings)
        else:
            report[_label(catalog)] = _audit_v2(catalog, warnings)

    return {"catalogs": report, "warnings": warnings, "totals": totals}


def print_report(summary: dict[str, object]) -> None:
    catalogs: dict[str, dict[str, object]] = summary["catalogs"]  # type: ignore[assignment]
    print("=== Question Set Coverage ===")
    for label in sorted(catalogs):
        data = catalogs[label]
        print(f"\n{label} ({data['scheme']}, {data['questions']} questions)")
        cov = data.get("class_coverage") or data.get("axis_coverage") or {}
        print("  " + "  ".join(f"{k}:{v:3d}" for k, v in cov.items()))  # type: ignore[union-attr]
        if data.get("integration") is not None:
            print(f"    integration: {', '.join(data['integration']) or '-'}")  # type: ignore[arg-type]

    warnings: list[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")

    print("\nTotals:", summary["totals"])


def write_summary(summary: dict[str, object], path: Path = Path("/tmp/question_set_audit.json")) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    print(text)
    return text


def main(_argv: list[str] | None = None) -> int:
    summary = audit_catalogs(packaged_catalogs())
    summary["hashes"] = packaged_hashes()
    print_report(summary)
    write_summary(summary)
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
