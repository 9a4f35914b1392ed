"""Question-to-submission lifecycle for one assessment run.

``idle -> in_progress -> completed -> submitting -> completed``. Scoring runs
exactly once, when the last question is answered and advanced past. Every
``start()`` builds a fresh state, accumulator and submission guard; nothing
from an earlier run is merged in.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, Optional

from .accumulator import AnswerAccumulator
from .analytics import AnalyticsEmitter
from .config import resolve_thresholds
from .engine import primary_of, score_answers
from .session import new_session_id
from .submission import SubmissionGuard, Transport, build_payload
from .types import AssessmentState, Catalog, Question, ScoringResult, Thresholds

log = logging.getLogger(__name__)

ProgressHook = Callable[[Dict[str, Any]], None]


class AssessmentFlow:
    def __init__(
        self,
        catalog: Catalog,
        *,
        thresholds: Optional[Thresholds] = None,
        session_id: Optional[str] = None,
        analytics: Optional[AnalyticsEmitter] = None,
        transport: Optional[Transport] = None,
        on_progress: Optional[ProgressHook] = None,
    ):
        self.catalog = catalog
        self.analytics = analytics or AnalyticsEmitter()
        self.transport = transport
        self.on_progress = on_progress
        self._thresholds = thresholds
        self._pinned_session_id = session_id
        self._state = self._fresh_state("idle")
        self._accumulator = AnswerAccumulator(catalog)
        self._guard = SubmissionGuard()
        self._result: Optional[ScoringResult] = None
        self._abandon_sent = False
        self._lock = threading.RLock()

    def _fresh_state(self, status: str) -> AssessmentState:
        return AssessmentState(
            assessment_type=self.catalog.assessment_type,
            assessment_version=self.catalog.assessment_version,
            session_id=self._pinned_session_id or new_session_id(),
            status=status,  # type: ignore[arg-type]
        )

    # ---- read-only views ----
    @property
    def state(self) -> AssessmentState:
        return dataclasses.replace(self._state, answers=list(self._state.answers))

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def total_questions(self) -> int:
        return len(self.catalog.questions)

    @property
    def current_question(self) -> Optional[Question]:
        idx = self._state.current_question_index
        if 0 <= idx < len(self.catalog.questions):
            return self.catalog.questions[idx]
        return None

    @property
    def selected_option(self) -> Optional[str]:
        q = self.current_question
        return self._accumulator.option_for(q.id) if q else None

    @property
    def result(self) -> Optional[ScoringResult]:
        return self._result

    @property
    def submission_id(self) -> Optional[str]:
        return self._guard.submission_id

    # ---- transitions ----
    # each transition runs under the flow lock; at most one caller mutates the state
    def start(self) -> None:
        with self._lock:
            if self._state.status == "in_progress":
                log.info("restarting in-progress flow %s; previous answers discarded", self._state.session_id)
            self._state = self._fresh_state("in_progress")
            self._accumulator = AnswerAccumulator(self.catalog)
            self._guard = SubmissionGuard()
            self._result = None
            self._abandon_sent = False
            s = self._state
            log.info("flow started %s v%s session=%s", s.assessment_type, s.assessment_version, s.session_id)
            self.analytics.track_started(s.assessment_type, s.assessment_version, s.session_id)
            self._notify("started", 0)

    def select_option(self, option_id: str) -> bool:
        with self._lock:
            if self._state.status != "in_progress":
                log.warning("select ignored: flow is %s", self._state.status)
                return False
            q = self.current_question
            if q is None:
                log.warning("select ignored: no current question")
                return False
            if not self._accumulator.select(q.id, option_id):
                return False
            self._state.answers = self._accumulator.answers()
            return True

    def advance(self) -> bool:
        with self._lock:
            if self._state.status != "in_progress":
                return False
            q = self.current_question
            if q is None or not self._accumulator.has_answer(q.id):
                return False

            next_index = self._state.current_question_index + 1
            if next_index < len(self.catalog.questions):
                self._state.current_question_index = next_index
                self._notify("started", next_index)
                return True

            self._state.status = "completed"
            self._result = self._score()
            s = self._state
            primary = primary_of(self._result)
            log.info("flow completed session=%s primary=%s", s.session_id, primary)
            self.analytics.track_completed(s.assessment_type, s.assessment_version, s.session_id, primary)
            return True

    def retreat(self) -> bool:
        with self._lock:
            if self._state.status != "in_progress":
                return False
            idx = self._state.current_question_index
            self._state.current_question_index = max(0, idx - 1)
            return self._state.current_question_index != idx

    def abandon(self) -> None:
        with self._lock:
            if self._state.status != "in_progress" or self._abandon_sent:
                return
            self._abandon_sent = True
            s = self._state
            self.analytics.track_abandoned(
                s.assessment_type, s.assessment_version, s.session_id, s.current_question_index
            )
            self._notify("abandoned", s.current_question_index)

    # ---- scoring & submission ----
    def _score(self) -> ScoringResult:
        thresholds = self._thresholds or resolve_thresholds(self.catalog)
        return score_answers(self._accumulator.answers(), self.catalog, thresholds)

    def payload(self, metadata: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        if self._result is None:
            return None
        return build_payload(self._state, self._result, metadata)

    async def submit(
        self,
        metadata: Optional[Dict[str, Any]] = None,
        transport: Optional[Transport] = None,
    ) -> bool:
        send = transport or self.transport
        if send is None:
            raise RuntimeError("no submission transport configured")
        # bound to this run: a restart while in flight leaves the new run untouched
        with self._lock:
            state, guard, result = self._state, self._guard, self._result

        def _build() -> Optional[Dict[str, Any]]:
            return build_payload(state, result, metadata) if result is not None else None

        return await guard.submit(state, _build, send)

    def _notify(self, status: str, last_question_index: int) -> None:
        if self.on_progress is None:
            return
        s = self._state
        try:
            self.on_progress({
                "assessmentType": s.assessment_type,
                "assessmentVersion": s.assessment_version,
                "sessionId": s.session_id,
                "status": status,
                "lastQuestionIndex": int(last_question_index),
            })
        except Exception as e:
            log.warning("progress notice %s failed: %s", status, e)
