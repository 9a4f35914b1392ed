"""At-most-once submission of a finished flow.

The guard's flags are checked and set synchronously before the first await,
so on a single event loop a second caller scheduled during the transmission
always sees ``in_flight`` or ``has_attempted`` already set. There is no
automatic retry: a failed attempt still counts, and a new flow is required to
submit again.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .session import new_submission_id
from .types import AssessmentState, ScoringResult, ScoringResultV1

log = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], Awaitable[bool]]


def build_payload(
    state: AssessmentState,
    result: ScoringResult,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Submission body without its id; the guard stamps ``submissionId``."""

    payload: Dict[str, Any] = {
        "assessmentType": state.assessment_type,
        "assessmentVersion": state.assessment_version,
        "sessionId": state.session_id,
        "answers": [{"questionId": a.question_id, "optionId": a.option_id} for a in state.answers],
    }
    if isinstance(result, ScoringResultV1):
        payload.update({
            "scoreMap": dict(result.score_map),
            "normalizedScoreMap": dict(result.normalized_score_map),
            "primaryClass": result.primary_class,
            "secondaryClass": result.secondary_class,
            "confidenceScore": result.confidence_score,
            "confidence": result.confidence,
        })
    else:
        payload.update({
            "responses": dict(result.responses),
            "axisResult": {"bands": dict(result.axis_bands), "averages": dict(result.axis_averages)},
            "primaryClass": result.primary_level,
            "secondaryModifier": result.secondary_modifier,
            "confidence": result.confidence,
        })
    payload["metadata"] = dict(metadata or {})
    return payload


class SubmissionGuard:
    def __init__(self) -> None:
        self.has_attempted = False
        self.in_flight = False
        self._submission_id: Optional[str] = None

    @property
    def submission_id(self) -> Optional[str]:
        return self._submission_id

    def _ensure_id(self) -> str:
        if self._submission_id is None:
            self._submission_id = new_submission_id()
        return self._submission_id

    async def submit(
        self,
        state: AssessmentState,
        build: Callable[[], Optional[Dict[str, Any]]],
        transport: Transport,
    ) -> bool:
        # check-and-set block: no await until both flags are set
        if self.in_flight:
            log.debug("submission skipped: already in flight (session %s)", state.session_id)
            return False
        if self.has_attempted:
            log.debug("submission skipped: already attempted (session %s)", state.session_id)
            return False
        if state.status != "completed":
            log.debug("submission skipped: status is %s", state.status)
            return False
        payload = build()
        if payload is None:
            log.warning("submission skipped: payload not ready (session %s)", state.session_id)
            return False
        sid = self._ensure_id()
        self.has_attempted = True
        self.in_flight = True
        state.status = "submitting"

        try:
            ok = bool(await transport({**payload, "submissionId": sid}))
            if ok:
                log.info("submission %s stored", sid)
            else:
                log.warning("submission %s rejected by receiver", sid)
            return ok
        except Exception:
            log.exception("submission %s failed", sid)
            return False
        finally:
            self.in_flight = False
            state.status = "completed"
