from __future__ import annotations
import argparse, json, logging
from typing import Any, Dict, Iterable, List, Optional

from funnel_core.catalog import CatalogError, resolve_catalog
from funnel_core.config import resolve_thresholds
from funnel_core.engine import primary_of, score_answers
from funnel_core.types import Answer

log = logging.getLogger(__name__)


def rescore(submissions: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Recompute stored submissions against the current question sets and thresholds."""

    rows: List[Dict[str, Any]] = []
    for sub in submissions:
        sid = sub.get("submissionId")
        try:
            catalog = resolve_catalog(sub["assessmentType"], int(sub["assessmentVersion"]))
        except (CatalogError, KeyError, ValueError) as e:
            rows.append({"submissionId": sid, "status": "skipped", "reason": str(e)})
            continue
        answers = [Answer(a["questionId"], a["optionId"]) for a in sub.get("answers", [])]
        res = score_answers(answers, catalog, resolve_thresholds(catalog))
        stored = (sub.get("primaryClass"), sub.get("confidence"))
        fresh = (primary_of(res), res.confidence)
        rows.append({
            "submissionId": sid,
            "status": "match" if stored == fresh else "mismatch",
            "stored": {"primaryClass": stored[0], "confidence": stored[1]},
            "rescored": {"primaryClass": fresh[0], "confidence": fresh[1]},
        })
    return rows


def _stored_submissions() -> List[Dict[str, Any]]:
    from api.storage import list_submissions, load_submission

    out: List[Dict[str, Any]] = []
    for sid in sorted(list_submissions()):
        sub = load_submission(sid)
        if sub:
            out.append(sub)
    return out


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--json", action="store_true", help="print rows as JSON")
    a = ap.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="[%(levelname)s] %(message)s")

    rows = rescore(_stored_submissions())
    if a.json:
        print(json.dumps(rows, indent=2, sort_keys=True))
    else:
        for r in rows:
            if r["status"] == "skipped":
                print(f"{r['submissionId']}: skipped ({r['reason']})")
            else:
                print(f"{r['submissionId']}: {r['status']}  stored={r['stored']} rescored={r['rescored']}")
    mismatches = sum(1 for r in rows if r["status"] == "mismatch")
    print(f"\n{len(rows)} submissions, {mismatches} mismatches")
    return 2 if mismatches else 0


if __name__ == "__main__":
    raise SystemExit(main())
