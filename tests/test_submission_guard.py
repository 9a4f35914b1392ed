from __future__ import annotations

import asyncio

import pytest

from funnel_core.analytics import AnalyticsEmitter
from funnel_core.flow import AssessmentFlow
from funnel_core.scoring import score_v1
from funnel_core.session import is_uuid
from funnel_core.submission import SubmissionGuard, build_payload
from funnel_core.types import AssessmentState
from tests.conftest import build_axis_catalog, build_weighted_catalog


class SlowTransport:
    def __init__(self, ok: bool = True, fail: bool = False):
        self.payloads: list[dict] = []
        self.ok = ok
        self.fail = fail
        self.release = asyncio.Event()
        self.release.set()

    async def __call__(self, payload):
        self.payloads.append(payload)
        await asyncio.sleep(0)
        await self.release.wait()
        if self.fail:
            raise ConnectionError("receiver unreachable")
        return self.ok


def _completed_flow(transport, catalog=None, suffix="a") -> AssessmentFlow:
    flow = AssessmentFlow(
        catalog or build_weighted_catalog(),
        analytics=AnalyticsEmitter(enabled=False),
        transport=transport,
    )
    flow.start()
    while flow.status == "in_progress":
        flow.select_option(f"{flow.current_question.id}-{suffix}")
        flow.advance()
    return flow


@pytest.mark.asyncio
async def test_rapid_submits_transmit_once():
    transport = SlowTransport()
    flow = _completed_flow(transport)

    results = await asyncio.gather(flow.submit(), flow.submit(), flow.submit())

    assert results == [True, False, False]
    assert len(transport.payloads) == 1
    assert flow.status == "completed"


@pytest.mark.asyncio
async def test_submit_while_in_flight_is_refused():
    transport = SlowTransport()
    transport.release.clear()
    flow = _completed_flow(transport)

    first = asyncio.ensure_future(flow.submit())
    await asyncio.sleep(0)
    assert flow.status == "submitting"
    assert await flow.submit() is False

    transport.release.set()
    assert await first is True
    assert flow.status == "completed"
    assert len(transport.payloads) == 1


@pytest.mark.asyncio
async def test_failed_transmission_is_not_retried():
    transport = SlowTransport(fail=True)
    flow = _completed_flow(transport)

    assert await flow.submit() is False
    assert flow.status == "completed"
    assert await flow.submit() is False
    assert len(transport.payloads) == 1


@pytest.mark.asyncio
async def test_rejected_transmission_counts_as_attempt():
    transport = SlowTransport(ok=False)
    flow = _completed_flow(transport)
    assert await flow.submit() is False
    assert await flow.submit() is False
    assert len(transport.payloads) == 1


@pytest.mark.asyncio
async def test_submission_id_is_stable_uuid():
    transport = SlowTransport()
    flow = _completed_flow(transport)
    assert flow.submission_id is None

    await flow.submit()
    sid = flow.submission_id
    assert is_uuid(sid)
    assert transport.payloads[0]["submissionId"] == sid
    await flow.submit()
    assert flow.submission_id == sid


@pytest.mark.asyncio
async def test_unfinished_flow_does_not_submit():
    transport = SlowTransport()
    flow = AssessmentFlow(build_weighted_catalog(), analytics=AnalyticsEmitter(enabled=False), transport=transport)
    flow.start()
    assert await flow.submit() is False
    assert transport.payloads == []
    assert flow.submission_id is None


@pytest.mark.asyncio
async def test_missing_payload_leaves_guard_unarmed():
    guard = SubmissionGuard()
    state = AssessmentState("synthetic", 1, "s-1", status="completed")
    transport = SlowTransport()

    assert await guard.submit(state, lambda: None, transport) is False
    assert guard.has_attempted is False
    assert guard.submission_id is None
    assert transport.payloads == []


@pytest.mark.asyncio
async def test_restart_during_flight_leaves_new_run_untouched():
    transport = SlowTransport()
    transport.release.clear()
    flow = _completed_flow(transport)

    pending = asyncio.ensure_future(flow.submit())
    await asyncio.sleep(0)
    old_id = flow.submission_id
    flow.start()

    transport.release.set()
    assert await pending is True
    assert flow.status == "in_progress"
    assert flow.submission_id is None
    assert transport.payloads[0]["submissionId"] == old_id


@pytest.mark.asyncio
async def test_flow_without_transport_raises():
    flow = AssessmentFlow(build_weighted_catalog(), analytics=AnalyticsEmitter(enabled=False))
    with pytest.raises(RuntimeError):
        await flow.submit()


@pytest.mark.asyncio
async def test_axis_payload_shape():
    transport = SlowTransport()
    flow = _completed_flow(transport, catalog=build_axis_catalog(), suffix="1")
    await flow.submit(metadata={"page": "/quiz", "device": "mobile"})

    body = transport.payloads[0]
    assert body["assessmentVersion"] == 2
    assert body["primaryClass"] == flow.result.primary_level
    assert set(body["axisResult"]) == {"bands", "averages"}
    assert body["responses"]["capacity1"] == 1
    assert body["metadata"] == {"page": "/quiz", "device": "mobile"}
    assert body["answers"][0] == {"questionId": "capacity1", "optionId": "capacity1-1"}


def test_weighted_payload_shape(v1_thresholds):
    catalog = build_weighted_catalog()
    flow = _completed_flow(None, catalog=catalog)
    payload = build_payload(flow.state, flow.result)
    assert "submissionId" not in payload
    assert payload["primaryClass"] == "A"
    assert payload["scoreMap"] == {"A": 6.0, "B": 0.0}
    assert payload["confidenceScore"] == 1.0
    assert payload["confidence"] == "high"
    assert payload["metadata"] == {}
    assert score_v1(flow.state.answers, catalog, v1_thresholds).primary_class == payload["primaryClass"]
