"""JSON-file persistence for submissions, session progress and events.

Files live under ``DATA_DIR`` so the API keeps completed submissions across
restarts. Writes go through a temp file and an atomic replace; the module lock
serialises read-modify-write cycles within one process.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
SUBMISSIONS_DIR = DATA_ROOT / "submissions"
SUBMISSION_INDEX_PATH = DATA_ROOT / "submissions_index.json"
SESSIONS_PATH = DATA_ROOT / "sessions.json"
EVENTS_PATH = DATA_ROOT / "events.jsonl"

_LOCK = threading.Lock()


def _ensure_dirs() -> None:
    SUBMISSIONS_DIR.mkdir(parents=True, exist_ok=True)
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("unreadable %s: %s", path, e)
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def session_key(session_id: str, assessment_type: str, assessment_version: int) -> str:
    return f"{session_id}:{assessment_type}:{int(assessment_version)}"


# ---- submissions ----
def save_submission(submission_id: str, payload: Dict[str, Any], metadata: Dict[str, Any]) -> bool:
    """Store a submission once. Returns False when the id is already stored."""

    _ensure_dirs()
    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(SUBMISSION_INDEX_PATH, {})
        if submission_id in index:
            return False
        _write_json(SUBMISSIONS_DIR / f"{submission_id}.json", payload)
        index[submission_id] = metadata
        _write_json(SUBMISSION_INDEX_PATH, index)
    return True


def load_submission(submission_id: str) -> Optional[Dict[str, Any]]:
    return _read_json(SUBMISSIONS_DIR / f"{submission_id}.json", None)


def find_submissions_by_session(session_id: str) -> List[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(SUBMISSION_INDEX_PATH, {})
    out: List[Dict[str, Any]] = []
    for sid, meta in index.items():
        if meta.get("sessionId") == session_id:
            item = {"submissionId": sid}
            item.update({k: v for k, v in meta.items() if k != "submissionId"})
            out.append(item)
    out.sort(key=lambda r: r.get("createdAt", ""))
    return out


def list_submissions() -> Dict[str, Dict[str, Any]]:
    return _read_json(SUBMISSION_INDEX_PATH, {})


# ---- session progress ----
def upsert_session(
    session_id: str,
    assessment_type: str,
    assessment_version: int,
    updates: Dict[str, Any],
) -> Dict[str, Any]:
    """Create or update the progress record for (session, type, version)."""

    key = session_key(session_id, assessment_type, assessment_version)
    now = utcnow_iso()
    with _LOCK:
        sessions: Dict[str, Dict[str, Any]] = _read_json(SESSIONS_PATH, {})
        record = sessions.get(key) or {
            "sessionId": session_id,
            "assessmentType": assessment_type,
            "assessmentVersion": int(assessment_version),
            "startedAt": now,
        }
        record.update(updates)
        record["updatedAt"] = now
        sessions[key] = record
        _write_json(SESSIONS_PATH, sessions)
    return record


def load_session(session_id: str, assessment_type: str, assessment_version: int) -> Optional[Dict[str, Any]]:
    sessions: Dict[str, Dict[str, Any]] = _read_json(SESSIONS_PATH, {})
    return sessions.get(session_key(session_id, assessment_type, assessment_version))


# ---- analytics events ----
def append_events(events: Iterable[Dict[str, Any]]) -> int:
    rows = [json.dumps(evt, sort_keys=True) for evt in events]
    if not rows:
        return 0
    DATA_ROOT.mkdir(parents=True, exist_ok=True)
    with _LOCK:
        with EVENTS_PATH.open("a", encoding="utf-8") as fh:
            fh.write("\n".join(rows) + "\n")
    return len(rows)


def load_events() -> List[Dict[str, Any]]:
    if not EVENTS_PATH.exists():
        return []
    out: List[Dict[str, Any]] = []
    for line in EVENTS_PATH.read_text(encoding="utf-8").splitlines():
        if line.strip():
            out.append(json.loads(line))
    return out
