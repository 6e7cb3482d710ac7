from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..common.datetime_utils import Elapsed, elapsed
from ..core.constants import DEFAULT_FLOW_IDLE_SECONDS, SESSION_TICK_SECONDS
from ..core.enums import FailureReason, FlowStep, FlowType, VerificationStatus
from ..core.exceptions import DeviceError, FlowStateError, LedgerConflict
from ..geofence.model import Coordinate
from ..verification.camera import CameraDevice, acquire_camera
from ..verification.face_client import FaceMatchClient
from ..verification.location_probe import LocationProbe, PositionProvider
from ..verification.model import AuthSession, LocationFailure, VerificationAttempt
from .flow import (
    CommitFailed,
    Committed,
    Committing,
    FaceResolved,
    FaceRetry,
    FaceVerifying,
    FlowEvent,
    FlowState,
    LocationResolved,
    LocationVerifying,
    Reset,
    Started,
    transition,
)
from .model import AttendanceRecord
from .service import AttendanceLedger
from .session_timer import SessionTimer

logger = logging.getLogger(__name__)

_STALE = object()


def _cancel_threadsafe(task: asyncio.Future) -> None:
    # Web requests each run on their own loop; cancel may come from another one.
    loop = task.get_loop()
    try:
        current = asyncio.get_running_loop()
    except RuntimeError:
        current = None
    if loop is current:
        task.cancel()
    elif not loop.is_closed():
        loop.call_soon_threadsafe(task.cancel)


class VerificationOrchestrator:
    """Sequences face -> location -> confirmation for one employee.

    Owns the transient flow state. Every async step is tagged with the flow
    epoch it started in; ``cancel`` bumps the epoch and cancels in-flight work
    so late results are ignored instead of mutating an abandoned flow.
    """

    def __init__(
        self,
        *,
        user_id: int,
        ledger: AttendanceLedger,
        face_client: FaceMatchClient,
        location_probe: LocationProbe,
        camera: Optional[CameraDevice] = None,
        position_provider: Optional[PositionProvider] = None,
        session: Optional[AuthSession] = None,
        on_change: Optional[Callable[[FlowState], None]] = None,
    ):
        self._user_id = int(user_id)
        self._ledger = ledger
        self._face = face_client
        self._probe = location_probe
        self._camera = camera
        self._provider = position_provider
        self._session = session
        self._on_change = on_change

        self._lock = threading.Lock()
        self._state = FlowState(max_retries=face_client.max_retries)
        self._epoch = 0
        self._inflight: Optional[asyncio.Future] = None
        self._today: Optional[AttendanceRecord] = None
        self._timer: Optional[SessionTimer] = None

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def today(self) -> Optional[AttendanceRecord]:
        return self._today

    def _apply(self, event: FlowEvent, *, epoch: Optional[int] = None) -> FlowState:
        with self._lock:
            if epoch is not None and epoch != self._epoch:
                logger.info("ignoring stale %s for user_id=%s", type(event).__name__, self._user_id)
                return self._state
            self._state = transition(self._state, event)
            state = self._state
        self._notify(state)
        return state

    def _notify(self, state: FlowState) -> None:
        if self._on_change is not None:
            self._on_change(state)

    async def _guard(self, work: Awaitable[Any], epoch: int) -> Any:
        task = asyncio.ensure_future(work)
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            if epoch != self._epoch:
                return _STALE
            raise
        finally:
            if self._inflight is task:
                self._inflight = None
        if epoch != self._epoch:
            return _STALE
        return result

    async def refresh(self) -> Optional[AttendanceRecord]:
        """Re-read today's authoritative record."""
        self._today = await asyncio.to_thread(self._ledger.get_today, self._user_id)
        return self._today

    async def start(self, flow: FlowType) -> FlowState:
        today = await self.refresh()
        state = self._apply(Started(flow=flow, today=today))
        logger.info("user_id=%s started %s flow", self._user_id, flow.value)
        return state

    def _claim_face(self, camera: Optional[CameraDevice]) -> Tuple[FlowState, Optional[VerificationAttempt], int]:
        # Checks and claim share one critical section; the second of two overlapping submissions is rejected.
        with self._lock:
            state = self._state
            if state.step is not FlowStep.FACE:
                raise FlowStateError("Face verification is only available in the face step")
            if state.face.status is VerificationStatus.VERIFYING:
                raise FlowStateError("Face verification already in progress")
            if state.escalated:
                raise FlowStateError(FailureReason.MAX_RETRIES_EXCEEDED.default_message)

            claimed = None
            if camera is None:
                event: FlowEvent = FaceResolved(state.face.failed(FailureReason.CAMERA_UNAVAILABLE))
            elif self._face.budget_exhausted(state.face):
                event = FaceResolved(state.face.failed(FailureReason.MAX_RETRIES_EXCEEDED))
            else:
                claimed = state.face.verifying(count=True)
                event = FaceVerifying(claimed)
            self._state = transition(state, event)
            return self._state, claimed, self._epoch

    async def verify_face(
        self,
        *,
        camera: Optional[CameraDevice] = None,
        session: Optional[AuthSession] = None,
    ) -> FlowState:
        camera = camera or self._camera
        session = session or self._session
        state, claimed, epoch = self._claim_face(camera)
        self._notify(state)
        if claimed is None:
            return state

        async def run() -> VerificationAttempt:
            async with acquire_camera(camera) as cam:
                image = await cam.capture()
                return await self._face.verify(image, claimed, session, claimed=True)

        try:
            result = await self._guard(run(), epoch)
        except DeviceError as exc:
            logger.info("camera failure for user_id=%s: %s", self._user_id, exc.reason.value)
            result = claimed.failed(exc.reason, str(exc), refund=True)
        except Exception:
            logger.exception("face step failed unexpectedly for user_id=%s", self._user_id)
            result = claimed.failed(FailureReason.SERVICE_UNAVAILABLE)

        if result is _STALE:
            return self._state
        return self._apply(FaceResolved(result), epoch=epoch)

    def retry_face(self) -> FlowState:
        return self._apply(FaceRetry())

    async def verify_location(self, *, provider: Optional[PositionProvider] = None) -> FlowState:
        epoch = self._epoch
        self._apply(LocationVerifying(), epoch=epoch)

        try:
            result = await self._guard(self._probe.probe(provider or self._provider), epoch)
        except Exception:
            logger.exception("location step failed unexpectedly for user_id=%s", self._user_id)
            reason = FailureReason.POSITION_UNAVAILABLE
            result = LocationFailure(reason=reason, message=reason.default_message)

        if result is _STALE:
            return self._state
        return self._apply(LocationResolved(result), epoch=epoch)

    async def confirm(self) -> FlowState:
        epoch = self._epoch
        state = self._apply(Committing(), epoch=epoch)
        at = self._ledger.clock()

        try:
            if state.flow is FlowType.CHECK_IN:
                where = Coordinate(lat=state.sample.lat, lng=state.sample.lng) if state.sample else None
                record = await asyncio.to_thread(self._ledger.record_check_in, self._user_id, at, where)
            else:
                record = await asyncio.to_thread(self._ledger.record_check_out, self._user_id, at)
        except LedgerConflict as exc:
            logger.warning("ledger rejected %s for user_id=%s: %s", state.flow.value, self._user_id, exc.reason.value)
            failed = self._apply(CommitFailed(reason=exc.reason, message=str(exc)), epoch=epoch)
            today = await self.refresh()
            if today is None or not today.is_open:
                self.stop_session_timer()
            return failed
        except Exception:
            self._apply(Reset(), epoch=epoch)
            raise

        self._today = record
        if state.flow is FlowType.CHECK_OUT:
            self.stop_session_timer()
        self._apply(Committed(), epoch=epoch)
        await self.refresh()
        return self._state

    def cancel(self) -> FlowState:
        """Abandon the current flow: release devices, drop in-flight results."""
        with self._lock:
            self._epoch += 1
            task, self._inflight = self._inflight, None
            self._state = transition(self._state, Reset())
            state = self._state
        if task is not None and not task.done():
            _cancel_threadsafe(task)
        self._notify(state)
        return state

    def session_elapsed(self) -> Optional[Elapsed]:
        record = self._today
        if record is None or not record.is_open:
            return None
        return elapsed(record.check_in_time, clock=self._ledger.clock)

    def start_session_timer(
        self,
        on_tick: Callable[[Elapsed], None],
        *,
        interval: float = SESSION_TICK_SECONDS,
    ) -> Optional[SessionTimer]:
        record = self._today
        if record is None or not record.is_open:
            return None
        self.stop_session_timer()
        self._timer = SessionTimer(on_tick, clock=self._ledger.clock, interval=interval)
        self._timer.start(record.check_in_time)
        return self._timer

    def stop_session_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.stop()

    async def aclose(self) -> None:
        self.cancel()
        timer, self._timer = self._timer, None
        if timer is not None:
            await timer.aclose()


class FlowRegistry:
    """One orchestrator per signed-in employee (web surface).

    Entries not touched for ``idle_ttl_s`` seconds are swept on the next
    lookup, so sessions that expire without a logout do not pin their flow.
    """

    def __init__(
        self,
        factory: Callable[[int], VerificationOrchestrator],
        *,
        idle_ttl_s: float = DEFAULT_FLOW_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._idle_ttl_s = float(idle_ttl_s)
        self._clock = clock
        self._items: Dict[int, VerificationOrchestrator] = {}
        self._last_seen: Dict[int, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, user_id: int) -> VerificationOrchestrator:
        now = self._clock()
        with self._lock:
            idle = self._sweep(now, keep=user_id)
            orchestrator = self._items.get(user_id)
            if orchestrator is None:
                orchestrator = self._factory(user_id)
                self._items[user_id] = orchestrator
            self._last_seen[user_id] = now
        for stale in idle:
            _shutdown(stale)
        return orchestrator

    def discard(self, user_id: int) -> None:
        with self._lock:
            orchestrator = self._items.pop(user_id, None)
            self._last_seen.pop(user_id, None)
        if orchestrator is not None:
            _shutdown(orchestrator)

    def _sweep(self, now: float, *, keep: int) -> List[VerificationOrchestrator]:
        expired = [
            uid for uid, seen in self._last_seen.items()
            if uid != keep and now - seen >= self._idle_ttl_s
        ]
        idle = []
        for uid in expired:
            del self._last_seen[uid]
            idle.append(self._items.pop(uid))
        if idle:
            logger.info("dropped %d idle verification flow(s)", len(idle))
        return idle


def _shutdown(orchestrator: VerificationOrchestrator) -> None:
    orchestrator.cancel()
    orchestrator.stop_session_timer()
