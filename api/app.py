from __future__ import annotations
from fastapi import FastAPI, HTTPException, Body, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import dataclasses, logging, os, time, uuid, typing as t

# ---- Engine imports ----
from funnel_core import config
from funnel_core.analytics import AnalyticsEmitter
from funnel_core.catalog import CatalogError, parse_version, resolve_catalog
from funnel_core.config import config_key, resolve_thresholds
from funnel_core.flow import AssessmentFlow
from funnel_core.session import is_uuid
from funnel_core.transport import local_transport
from funnel_core.types import CatalogV1, Question, ScoringResultV1
from .storage import (
    append_events,
    find_submissions_by_session,
    load_session,
    load_submission,
    save_submission,
    upsert_session,
    utcnow_iso,
)

log = logging.getLogger(__name__)

FLOWS: dict[str, AssessmentFlow] = {}
FLOW_INFO: dict[str, dict[str, t.Any]] = {}  # flow id -> request context captured at start
FLOW_TOUCHED: dict[str, float] = {}  # flow id -> monotonic time of last request
MAX_FLOWS = config.MAX_FLOWS

EVENTS = AnalyticsEmitter(sink=append_events)

app = FastAPI(title="Assessment Funnel API")


@app.get("/")
def root():
    return {"status": "ok", "service": "assessment-funnel-api"}


ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "invalid request", "detail": jsonable_encoder(exc.errors())},
    )


# ---- Schemas ----
class AnswerIn(BaseModel):
    questionId: str = Field(min_length=1)
    optionId: str = Field(min_length=1)


class SubmitReq(BaseModel):
    model_config = ConfigDict(extra="allow")

    submissionId: str
    assessmentType: str = Field(min_length=1)
    assessmentVersion: int = Field(ge=config.VERSION_MIN, le=config.VERSION_MAX)
    sessionId: str = Field(min_length=1)
    answers: list[AnswerIn] = Field(min_length=1)
    primaryClass: str = Field(min_length=1)
    confidence: str | None = None
    metadata: dict[str, t.Any] = Field(default_factory=dict)

    @field_validator("submissionId")
    @classmethod
    def _uuid(cls, v: str) -> str:
        if not is_uuid(v):
            raise ValueError("submissionId must be a UUID")
        return v


class SessionReq(BaseModel):
    sessionId: str = Field(min_length=1)
    assessmentType: str = Field(min_length=1)
    assessmentVersion: int = Field(ge=config.VERSION_MIN, le=config.VERSION_MAX)
    status: t.Literal["started", "abandoned", "completed"]
    lastQuestionIndex: int | None = Field(default=None, ge=0)


class EventIn(BaseModel):
    eventType: str = Field(min_length=1)
    assessmentType: str = Field(min_length=1)
    assessmentVersion: int
    sessionId: str = Field(min_length=1)
    primaryClass: str | None = None
    metadata: dict[str, t.Any] = Field(default_factory=dict)
    timestamp: int | None = None


class EventsReq(BaseModel):
    events: list[EventIn] = Field(max_length=100)


class StartReq(BaseModel):
    assessmentType: str = config.DEFAULT_ASSESSMENT_TYPE
    version: int | str | None = None
    sessionId: str | None = None
    page: str | None = None


class SelectReq(BaseModel):
    optionId: str


class FlowSubmitReq(BaseModel):
    page: str | None = None


# ---- Helpers ----
def _device(user_agent: str | None) -> str:
    ua = (user_agent or "").lower()
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    if "mobi" in ua or "android" in ua or "iphone" in ua:
        return "mobile"
    return "desktop"


def _store_submission(req: SubmitReq, device: str | None = None) -> bool:
    """Persist once per submission id and mark the session completed."""

    payload = req.model_dump()
    now = utcnow_iso()
    metadata = {
        "sessionId": req.sessionId,
        "assessmentType": req.assessmentType,
        "assessmentVersion": req.assessmentVersion,
        "primaryClass": req.primaryClass,
        "confidence": req.confidence,
        "device": device or req.metadata.get("device"),
        "createdAt": now,
    }
    created = save_submission(req.submissionId, payload, metadata)
    if not created:
        log.info("duplicate submission %s ignored", req.submissionId)
        return False
    upsert_session(
        req.sessionId,
        req.assessmentType,
        req.assessmentVersion,
        {"status": "completed", "completedAt": now, "lastQuestionIndex": len(req.answers) - 1},
    )
    return True


def _local_store(payload: dict[str, t.Any]) -> bool:
    try:
        req = SubmitReq.model_validate(payload)
    except ValidationError as e:
        log.warning("local submission rejected: %s", e)
        return False
    _store_submission(req)
    return True


def _record_progress(notice: dict[str, t.Any]) -> None:
    upsert_session(
        notice["sessionId"],
        notice["assessmentType"],
        notice["assessmentVersion"],
        {"status": notice["status"], "lastQuestionIndex": notice["lastQuestionIndex"]},
    )


def _serialize_question(q: Question | None) -> dict[str, t.Any] | None:
    if q is None:
        return None
    return {
        "id": q.id,
        "text": q.text,
        "options": [{"id": o.id, "label": o.label} for o in q.options],
    }


def _serialize_result(res: t.Any) -> dict[str, t.Any] | None:
    if res is None:
        return None
    out = dataclasses.asdict(res)
    out["scheme"] = "weighted" if isinstance(res, ScoringResultV1) else "axis"
    return out


def _flow_view(fid: str, flow: AssessmentFlow) -> dict[str, t.Any]:
    s = flow.state
    return {
        "flowId": fid,
        "sessionId": s.session_id,
        "assessmentType": s.assessment_type,
        "assessmentVersion": s.assessment_version,
        "status": s.status,
        "questionIndex": s.current_question_index,
        "totalQuestions": flow.total_questions,
        "question": _serialize_question(flow.current_question),
        "selectedOptionId": flow.selected_option,
        "answered": len(s.answers),
        "submissionId": flow.submission_id,
    }


def _catalog_or_404(assessment_type: str, version: t.Any):
    v = parse_version(version)
    try:
        return resolve_catalog(assessment_type, v)
    except CatalogError as e:
        raise HTTPException(404, str(e))


# ---- Health & config ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "analytics_enabled": EVENTS.enabled,
        "pending_events": EVENTS.pending,
        "active_flows": len(FLOWS),
        "submit_url_configured": bool(config.SUBMIT_URL),
    }


@app.get("/config/assessment")
def assessment_config(
    assessment_type: str = Query(config.DEFAULT_ASSESSMENT_TYPE, alias="type"),
    version: str | None = Query(None),
):
    catalog = _catalog_or_404(assessment_type, version)
    thresholds = resolve_thresholds(catalog)
    return {
        "key": config_key(catalog.assessment_type, catalog.assessment_version),
        "assessmentType": catalog.assessment_type,
        "assessmentVersion": catalog.assessment_version,
        "scheme": "weighted" if isinstance(catalog, CatalogV1) else "axis",
        "questionCount": len(catalog.questions),
        "thresholds": dataclasses.asdict(thresholds),
    }


# ---- Collaborator endpoints (submission, session progress, analytics) ----
@app.post("/api/assessments/submit")
def submit_assessment(request: Request, req: SubmitReq = Body(...)):
    created = _store_submission(req, device=_device(request.headers.get("user-agent")))
    return {"success": True, "submissionId": req.submissionId, "duplicate": not created}


@app.post("/api/assessments/session")
def record_session(req: SessionReq):
    updates: dict[str, t.Any] = {"status": req.status}
    if req.lastQuestionIndex is not None:
        updates["lastQuestionIndex"] = req.lastQuestionIndex
    if req.status == "completed":
        updates["completedAt"] = utcnow_iso()
    record = upsert_session(req.sessionId, req.assessmentType, req.assessmentVersion, updates)
    return {"success": True, "session": record}


@app.post("/api/assessments/events")
def record_events(req: EventsReq):
    n = append_events(e.model_dump() for e in req.events)
    return {"success": True, "inserted": n}


@app.get("/submissions/{submission_id}")
def get_submission(submission_id: str):
    sub = load_submission(submission_id)
    if not sub:
        raise HTTPException(404, "submission not found")
    return sub


@app.get("/sessions/{session_id}/submissions")
def list_session_submissions(session_id: str):
    return {"submissions": find_submissions_by_session(session_id)}


@app.get("/sessions/{session_id}")
def get_session(
    session_id: str,
    assessment_type: str = Query(config.DEFAULT_ASSESSMENT_TYPE, alias="type"),
    version: str | None = Query(None),
):
    record = load_session(session_id, assessment_type, parse_version(version))
    if not record:
        raise HTTPException(404, "session not found")
    return record


# ---- Flow endpoints ----
# Flow handlers are ``async def`` so every mutation of a flow runs on the one
# event loop; FastAPI would run plain ``def`` handlers in its threadpool.
def _touch(fid: str) -> None:
    FLOW_TOUCHED[fid] = time.monotonic()


def _drop_flow(fid: str) -> None:
    FLOWS.pop(fid, None)
    FLOW_INFO.pop(fid, None)
    FLOW_TOUCHED.pop(fid, None)


def _expired(fid: str, flow: AssessmentFlow, now: float) -> bool:
    ttl = config.COMPLETED_FLOW_TTL_SEC if flow.status == "completed" else config.FLOW_TTL_SEC
    return now - FLOW_TOUCHED.get(fid, now) > ttl


def _prune_flows() -> None:
    """Drop expired flows, then the least recently used ones above the cap."""

    now = time.monotonic()
    for fid in [f for f, flow in FLOWS.items() if _expired(f, flow, now)]:
        log.info("flow %s expired", fid)
        _drop_flow(fid)
    excess = len(FLOWS) - MAX_FLOWS + 1
    if excess > 0:
        for fid in sorted(FLOWS, key=lambda f: FLOW_TOUCHED.get(f, 0.0))[:excess]:
            log.info("flow %s evicted (registry full)", fid)
            _drop_flow(fid)


def _get_flow(fid: str) -> AssessmentFlow:
    flow = FLOWS.get(fid)
    if flow and _expired(fid, flow, time.monotonic()):
        _drop_flow(fid)
        flow = None
    if not flow:
        raise HTTPException(404, "flow not found")
    _touch(fid)
    return flow


@app.post("/flows/start")
async def start_flow(request: Request, req: StartReq | None = None):
    req = req or StartReq()
    catalog = _catalog_or_404(req.assessmentType, req.version)
    _prune_flows()
    fid = str(uuid.uuid4())
    flow = AssessmentFlow(
        catalog,
        session_id=req.sessionId,
        analytics=EVENTS,
        transport=local_transport(_local_store),
        on_progress=_record_progress,
    )
    FLOWS[fid] = flow
    FLOW_INFO[fid] = {
        "page": req.page or "/flows",
        "referrer": request.headers.get("referer"),
        "device": _device(request.headers.get("user-agent")),
    }
    _touch(fid)
    flow.start()
    return _flow_view(fid, flow)


@app.get("/flows/{fid}")
async def get_flow(fid: str):
    return _flow_view(fid, _get_flow(fid))


@app.post("/flows/{fid}/restart")
async def restart_flow(fid: str):
    flow = _get_flow(fid)
    flow.start()
    return _flow_view(fid, flow)


@app.post("/flows/{fid}/select")
async def select_option(fid: str, req: SelectReq):
    flow = _get_flow(fid)
    accepted = flow.select_option(req.optionId)
    return {"accepted": accepted, **_flow_view(fid, flow)}


@app.post("/flows/{fid}/advance")
async def advance(fid: str):
    flow = _get_flow(fid)
    moved = flow.advance()
    body = {"moved": moved, **_flow_view(fid, flow)}
    if flow.result is not None:
        body["result"] = _serialize_result(flow.result)
    return body


@app.post("/flows/{fid}/retreat")
async def retreat(fid: str):
    flow = _get_flow(fid)
    moved = flow.retreat()
    return {"moved": moved, **_flow_view(fid, flow)}


@app.post("/flows/{fid}/abandon")
async def abandon(fid: str):
    flow = _get_flow(fid)
    flow.abandon()
    EVENTS.flush()
    view = _flow_view(fid, flow)
    _drop_flow(fid)
    return view


@app.post("/flows/{fid}/submit")
async def submit_flow(fid: str, req: FlowSubmitReq | None = None):
    req = req or FlowSubmitReq()
    flow = _get_flow(fid)
    info = dict(FLOW_INFO.get(fid, {}))
    if req.page:
        info["page"] = req.page
    ok = await flow.submit(metadata=info)
    EVENTS.flush()
    if flow.submission_id is not None:
        # attempted once; a flow never submits again
        _drop_flow(fid)
    return {"success": ok, "submissionId": flow.submission_id, "status": flow.status}


@app.get("/flows/{fid}/result")
async def flow_result(fid: str):
    flow = _get_flow(fid)
    if flow.result is None:
        raise HTTPException(409, "flow not completed")
    return {"flowId": fid, "sessionId": flow.state.session_id, "result": _serialize_result(flow.result)}
