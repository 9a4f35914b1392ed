from __future__ import annotations
import argparse, asyncio, datetime, json, logging, os
from typing import Any, Dict, List, Optional

from funnel_core import config
from funnel_core.catalog import parse_version, resolve_catalog
from funnel_core.flow import AssessmentFlow
from funnel_core.transport import HttpSubmitTransport, local_transport
from funnel_core.types import Question, ScoringResultV1

log = logging.getLogger(__name__)

PROFILES = ("low", "mid", "high")


def _save_local(payload: Dict[str, Any], out_dir: str = "reports") -> bool:
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"submission_{payload['submissionId']}.json")
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, sort_keys=True)
    print(f"Submission saved to: {path}")
    return True


def _auto_index(q: Question, profile: str) -> int:
    n = len(q.options)
    if profile == "low":
        return 0
    if profile == "high":
        return n - 1
    return n // 2


def ask(q: Question, number: int, total: int) -> Optional[str]:
    """Prompt for one question; returns an option id, or None to go back."""

    print(f"\n({number}/{total}) {q.text}")
    for i, opt in enumerate(q.options):
        print(f"  [{i}] {opt.label}")
    while True:
        v = input("Your choice (index, b=back): ").strip().lower()
        if v == "b":
            return None
        if v.isdigit() and int(v) < len(q.options):
            return q.options[int(v)].id
        print("Enter a listed index.")


def _print_result(flow: AssessmentFlow) -> None:
    res = flow.result
    if res is None:
        return
    print("\n=== Result ===")
    if isinstance(res, ScoringResultV1):
        print(f"Primary class:   {res.primary_class}")
        print(f"Secondary class: {res.secondary_class or '-'}")
        print(f"Confidence:      {res.confidence} ({res.confidence_score:.2f})")
        for cls, score in res.normalized_score_map.items():
            print(f"  {cls:<12} {score:.2f}")
    else:
        print(f"Level:     {res.primary_level}")
        print(f"Modifier:  {res.secondary_modifier or '-'}")
        print(f"Confidence: {res.confidence}")
        for axis, band in res.axis_bands.items():
            print(f"  {axis:<15} {band:<9} {res.axis_averages[axis]:.2f}")


def run(assessment_type: str, version: int, submit_url: Optional[str], profile: Optional[str]) -> int:
    catalog = resolve_catalog(assessment_type, version)
    transport = HttpSubmitTransport(submit_url) if submit_url else local_transport(_save_local)
    flow = AssessmentFlow(catalog, transport=transport)
    flow.start()
    total = flow.total_questions
    print(f"{assessment_type} v{catalog.assessment_version} ({total} questions). Ctrl+C to exit.")

    try:
        while flow.status == "in_progress":
            q = flow.current_question
            number = flow.state.current_question_index + 1
            if profile:
                flow.select_option(q.options[_auto_index(q, profile)].id)
            else:
                choice = ask(q, number, total)
                if choice is None:
                    flow.retreat()
                    continue
                flow.select_option(choice)
            flow.advance()
    except (KeyboardInterrupt, EOFError):
        print("\nStopped by user.")
        flow.abandon()
        flow.analytics.flush()
        return 1

    _print_result(flow)
    meta = {"page": "cli", "device": "terminal", "startedAt": datetime.datetime.now().isoformat()}
    ok = asyncio.run(flow.submit(metadata=meta))
    flow.analytics.flush()
    print(f"Submitted: {'yes' if ok else 'no'} (id={flow.submission_id})")
    return 0 if ok else 2


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--type", default=config.DEFAULT_ASSESSMENT_TYPE)
    ap.add_argument("--version", default=None)
    ap.add_argument("--submit-url", default=config.SUBMIT_URL)
    ap.add_argument("--auto", choices=PROFILES, default=None, help="answer every question automatically")
    ap.add_argument("--verbose", action="store_true")
    a = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if a.verbose else logging.INFO, format="[%(levelname)s] %(message)s")
    return run(a.type, parse_version(a.version), a.submit_url, a.auto)


if __name__ == "__main__":
    raise SystemExit(main())
