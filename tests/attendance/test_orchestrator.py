import asyncio
from datetime import timedelta

import pytest

from conftest import OFFICE_LAT, OFFICE_LNG, FakeCamera, FakePosition, FakeTransport, north_of_office
from src.attendance_verification.attendance_verification.attendance.orchestrator import FlowRegistry
from src.attendance_verification.attendance_verification.core.enums import (
    AttendanceStatus,
    FailureReason,
    FlowStep,
    FlowType,
    VerificationStatus,
)
from src.attendance_verification.attendance_verification.core.exceptions import FlowStateError
from src.attendance_verification.attendance_verification.verification.face_client import (
    FaceMatchClient,
    FaceServiceResponse,
)

MISMATCH = FaceServiceResponse(face_verified=False, message="Face does not match")


def test_happy_path_check_in(make_orchestrator, attendance_repo, camera, fixed_now):
    orch = make_orchestrator()

    async def run():
        await orch.start(FlowType.CHECK_IN)
        await orch.verify_face()
        await orch.verify_location()
        assert orch.state.step is FlowStep.CONFIRMATION
        return await orch.confirm()

    state = asyncio.run(run())

    assert state.step is FlowStep.DISCLAIMER
    rec = attendance_repo.get_for_user_and_date(7, fixed_now.date())
    assert rec.status is AttendanceStatus.PRESENT
    assert rec.check_in_lat == OFFICE_LAT
    assert rec.check_in_lng == OFFICE_LNG
    assert orch.today == rec
    assert camera.opened == camera.closed == 1
    assert not camera.is_open


def test_check_out_after_check_in(make_orchestrator, attendance_repo, clock, fixed_now):
    orch = make_orchestrator()

    async def flow(kind):
        await orch.start(kind)
        await orch.verify_face()
        await orch.verify_location()
        return await orch.confirm()

    asyncio.run(flow(FlowType.CHECK_IN))
    clock.advance(hours=8)
    asyncio.run(flow(FlowType.CHECK_OUT))

    rec = attendance_repo.get_for_user_and_date(7, fixed_now.date())
    assert rec.check_out_time == fixed_now + timedelta(hours=8)
    assert orch.session_elapsed() is None


def test_out_of_radius_never_writes(make_orchestrator, attendance_repo):
    orch = make_orchestrator(position_provider=FakePosition(lat=north_of_office(200), lng=OFFICE_LNG))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        await orch.verify_face()
        state = await orch.verify_location()
        with pytest.raises(FlowStateError):
            await orch.confirm()
        return state

    state = asyncio.run(run())

    assert state.step is FlowStep.LOCATION
    assert state.location.failure_reason is FailureReason.OUT_OF_RADIUS
    assert "200m away" in state.location.message
    assert attendance_repo.writes == 0


def test_three_mismatches_escalate(clock, make_orchestrator):
    transport = FakeTransport(MISMATCH)
    orch = make_orchestrator(face_client=FaceMatchClient(transport, max_retries=3, clock=clock))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        for _ in range(2):
            state = await orch.verify_face()
            assert state.face.failure_reason is FailureReason.FACE_MISMATCH
            orch.retry_face()
        return await orch.verify_face()

    state = asyncio.run(run())

    assert state.escalated
    assert state.face.message == "Maximum verification attempts reached. Please contact your administrator."
    assert len(transport.calls) == 3
    with pytest.raises(FlowStateError):
        orch.retry_face()


def test_camera_failure_is_reported_and_not_counted(make_orchestrator, transport):
    orch = make_orchestrator(camera=FakeCamera(open_error=FailureReason.CAMERA_UNAVAILABLE))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        return await orch.verify_face()

    state = asyncio.run(run())

    assert state.face.failure_reason is FailureReason.CAMERA_UNAVAILABLE
    assert state.face.attempt_count == 0
    assert transport.calls == []


def test_camera_released_when_service_fails(make_orchestrator, camera, clock):
    orch = make_orchestrator(face_client=FaceMatchClient(FakeTransport(RuntimeError("bug")), clock=clock))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        return await orch.verify_face()

    state = asyncio.run(run())

    assert state.face.failure_reason is FailureReason.SERVICE_UNAVAILABLE
    assert not camera.is_open


def test_missing_session_fails_face_step(make_orchestrator, transport):
    orch = make_orchestrator(session=None)

    async def run():
        await orch.start(FlowType.CHECK_IN)
        return await orch.verify_face()

    state = asyncio.run(run())

    assert state.face.failure_reason is FailureReason.SESSION_EXPIRED
    assert transport.calls == []


def test_cancel_drops_late_location_result(make_orchestrator, attendance_repo):
    orch = make_orchestrator(position_provider=FakePosition(delay_s=0.2))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        await orch.verify_face()
        pending = asyncio.ensure_future(orch.verify_location())
        await asyncio.sleep(0.05)
        assert orch.state.location.status is VerificationStatus.VERIFYING
        orch.cancel()
        return await pending

    state = asyncio.run(run())

    assert state.step is FlowStep.DISCLAIMER
    assert state.flow is None
    assert orch.state.step is FlowStep.DISCLAIMER
    assert attendance_repo.writes == 0


def test_concurrent_duplicate_check_in_reports_conflict(make_orchestrator, ledger, attendance_repo, fixed_now):
    orch = make_orchestrator()

    async def run():
        await orch.start(FlowType.CHECK_IN)
        await orch.verify_face()
        await orch.verify_location()
        # another device checks in first
        ledger.record_check_in(7, fixed_now, None)
        return await orch.confirm()

    state = asyncio.run(run())

    assert state.ledger_failure is FailureReason.DUPLICATE_CHECK_IN
    assert state.is_fatal
    assert attendance_repo.writes == 1
    assert orch.today is not None


def test_start_rejected_when_already_checked_in(make_orchestrator, ledger, fixed_now):
    ledger.record_check_in(7, fixed_now, None)
    orch = make_orchestrator()

    with pytest.raises(FlowStateError):
        asyncio.run(orch.start(FlowType.CHECK_IN))


def test_session_timer_ticks_for_open_record(make_orchestrator, ledger, clock, fixed_now):
    ledger.record_check_in(7, fixed_now, None)
    clock.advance(minutes=5)
    orch = make_orchestrator()
    ticks = []

    async def run():
        await orch.refresh()
        timer = orch.start_session_timer(ticks.append, interval=0.01)
        await asyncio.sleep(0.05)
        await orch.aclose()
        return timer

    timer = asyncio.run(run())

    assert ticks
    assert ticks[0].total_seconds == 300
    assert not timer.running


def test_on_change_sees_every_state(make_orchestrator):
    seen = []
    orch = make_orchestrator(on_change=seen.append)

    async def run():
        await orch.start(FlowType.CHECK_IN)
        await orch.verify_face()

    asyncio.run(run())

    assert [s.face.status for s in seen] == [
        VerificationStatus.PENDING,
        VerificationStatus.VERIFYING,
        VerificationStatus.SUCCESS,
    ]


def test_escalated_flow_does_not_touch_the_camera(make_orchestrator, camera, clock):
    orch = make_orchestrator(face_client=FaceMatchClient(FakeTransport(MISMATCH), max_retries=1, clock=clock))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        await orch.verify_face()
        with pytest.raises(FlowStateError):
            await orch.verify_face()

    asyncio.run(run())

    assert orch.state.escalated
    assert camera.opened == 1


def test_overlapping_face_submissions_share_one_budget(clock, make_orchestrator):
    transport = FakeTransport(MISMATCH, delay_s=0.05)
    seen = []
    orch = make_orchestrator(
        face_client=FaceMatchClient(transport, max_retries=3, clock=clock),
        on_change=seen.append,
    )

    async def run():
        await orch.start(FlowType.CHECK_IN)
        while not orch.state.escalated:
            results = await asyncio.gather(orch.verify_face(), orch.verify_face(), return_exceptions=True)
            assert sum(isinstance(r, FlowStateError) for r in results) == 1
            if not orch.state.escalated:
                orch.retry_face()
        results = await asyncio.gather(orch.verify_face(), orch.verify_face(), return_exceptions=True)
        assert all(isinstance(r, FlowStateError) for r in results)

    asyncio.run(run())

    assert len(transport.calls) == 3
    assert orch.state.face.attempt_count == 3
    assert FailureReason.SERVICE_UNAVAILABLE not in [s.face.failure_reason for s in seen]


def test_cancel_during_face_call_releases_camera(clock, make_orchestrator, camera, attendance_repo):
    transport = FakeTransport(delay_s=0.2)
    orch = make_orchestrator(face_client=FaceMatchClient(transport, clock=clock))

    async def run():
        await orch.start(FlowType.CHECK_IN)
        pending = asyncio.ensure_future(orch.verify_face())
        await asyncio.sleep(0.05)
        assert orch.state.face.status is VerificationStatus.VERIFYING
        assert camera.is_open
        orch.cancel()
        return await pending

    state = asyncio.run(run())

    assert state.step is FlowStep.DISCLAIMER
    assert state.flow is None
    assert orch.state.face.status is VerificationStatus.PENDING
    assert not camera.is_open
    assert camera.opened == camera.closed == 1
    assert attendance_repo.writes == 0


def test_check_out_conflict_stops_session_timer(make_orchestrator, ledger, clock, fixed_now):
    ledger.record_check_in(7, fixed_now, None)
    clock.advance(hours=8)
    orch = make_orchestrator()

    async def run():
        await orch.refresh()
        timer = orch.start_session_timer(lambda _: None, interval=0.01)
        assert timer.running
        await orch.start(FlowType.CHECK_OUT)
        await orch.verify_face()
        await orch.verify_location()
        # checked out from another device in the meantime
        ledger.record_check_out(7, clock())
        state = await orch.confirm()
        return state, timer

    state, timer = asyncio.run(run())

    assert state.ledger_failure is FailureReason.NO_OPEN_CHECK_IN
    assert not timer.running
    assert orch.session_elapsed() is None


def test_registry_discard_stops_session_timer(make_orchestrator, ledger, fixed_now):
    ledger.record_check_in(7, fixed_now, None)
    orch = make_orchestrator()
    registry = FlowRegistry(lambda user_id: orch)

    async def run():
        flow = registry.get(7)
        await flow.refresh()
        timer = flow.start_session_timer(lambda _: None, interval=0.01)
        assert timer.running
        registry.discard(7)
        return timer

    timer = asyncio.run(run())

    assert not timer.running
    assert len(registry) == 0


def test_registry_drops_idle_flows(make_orchestrator):
    now = [0.0]
    registry = FlowRegistry(lambda user_id: make_orchestrator(user_id=user_id), idle_ttl_s=60, clock=lambda: now[0])

    first = registry.get(1)
    asyncio.run(first.start(FlowType.CHECK_IN))
    now[0] = 30.0
    assert registry.get(1) is first

    now[0] = 95.0
    registry.get(2)

    assert len(registry) == 1
    assert first.state.step is FlowStep.DISCLAIMER
    assert registry.get(1) is not first


def test_registry_keeps_active_flows(make_orchestrator):
    now = [0.0]
    registry = FlowRegistry(lambda user_id: make_orchestrator(user_id=user_id), idle_ttl_s=60, clock=lambda: now[0])

    first = registry.get(1)
    for t in (50.0, 100.0, 150.0):
        now[0] = t
        assert registry.get(1) is first
        registry.get(2)

    assert len(registry) == 2
