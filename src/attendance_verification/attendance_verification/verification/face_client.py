"""
Face verification client - bounded-retry calls to the external face service
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

import requests

from ..common.datetime_utils import Clock, now_local
from ..core.constants import DEFAULT_FACE_MAX_RETRIES, DEFAULT_FACE_TIMEOUT_SECONDS
from ..core.enums import Factor, FailureReason
from ..core.exceptions import SessionExpiredError, TransportError
from .model import AuthSession, VerificationAttempt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaceServiceResponse:
    face_verified: bool
    message: Optional[str] = None


class FaceVerificationTransport(Protocol):
    def compare(self, *, captured_image: str, timestamp_ms: int, bearer_token: str) -> FaceServiceResponse:
        """One call to the verification service.

        Raises:
            SessionExpiredError: credential rejected by the service
            TransportError: network failure, timeout or service error
        """
        raise NotImplementedError


class HttpFaceVerificationTransport(FaceVerificationTransport):
    """POSTs ``{capturedImage, timestamp}`` with a bearer credential."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_FACE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._session = session or requests.Session()

    def compare(self, *, captured_image: str, timestamp_ms: int, bearer_token: str) -> FaceServiceResponse:
        headers = {
            "Authorization": f"Bearer {bearer_token}",
            "Content-Type": "application/json",
        }
        payload = {"capturedImage": captured_image, "timestamp": timestamp_ms}

        try:
            resp = self._session.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        except requests.Timeout as exc:
            raise TransportError(f"face service timed out after {self._timeout}s") from exc
        except requests.RequestException as exc:
            raise TransportError(f"face service request failed: {exc}") from exc

        logger.info("face service responded status=%s", resp.status_code)

        if resp.status_code in (401, 403):
            raise SessionExpiredError("Face service rejected the session credential")

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code >= 500 or "faceVerified" not in body:
            raise TransportError(body.get("message") or f"face service returned HTTP {resp.status_code}")

        return FaceServiceResponse(
            face_verified=body.get("faceVerified") is True,
            message=body.get("message"),
        )


class FaceMatchClient:
    def __init__(
        self,
        transport: FaceVerificationTransport,
        *,
        max_retries: int = DEFAULT_FACE_MAX_RETRIES,
        count_transport_failures: bool = True,
        call_timeout: Optional[float] = None,
        clock: Clock = now_local,
    ):
        self._transport = transport
        self._max_retries = int(max_retries)
        self._call_timeout = call_timeout
        self._count_transport_failures = bool(count_transport_failures)
        self._clock = clock

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def budget_exhausted(self, attempt: VerificationAttempt) -> bool:
        return attempt.attempt_count >= self._max_retries

    async def verify(
        self,
        image: str,
        attempt: VerificationAttempt,
        session: Optional[AuthSession],
        *,
        on_verifying: Optional[Callable[[VerificationAttempt], None]] = None,
        claimed: bool = False,
    ) -> VerificationAttempt:
        """
        Run one face verification attempt

        Args:
            image: Captured frame as base64 data URL
            attempt: Current face attempt state (carries the retry counter)
            session: Bearer credential of the employee
            on_verifying: Called with the ``verifying`` state before the network call
            claimed: ``attempt`` is already ``verifying`` with its slot counted by the
                caller; skip the budget check and refund the slot if the session is unusable

        Returns:
            VerificationAttempt: ``success`` or ``failed`` with a reason; never raises
            for transport or credential problems
        """
        if attempt.factor is not Factor.FACE:
            raise ValueError("FaceMatchClient only handles the face factor")

        if not claimed and self.budget_exhausted(attempt):
            logger.info("face verification budget exhausted (%s attempts)", attempt.attempt_count)
            return attempt.failed(FailureReason.MAX_RETRIES_EXCEEDED)

        if session is None or session.is_expired(self._clock()):
            return attempt.failed(FailureReason.SESSION_EXPIRED, refund=claimed)

        if claimed:
            current = attempt
        else:
            current = attempt.verifying(count=True)
            if on_verifying is not None:
                on_verifying(current)

        timestamp_ms = int(time.time() * 1000)
        call = asyncio.to_thread(
            self._transport.compare,
            captured_image=image,
            timestamp_ms=timestamp_ms,
            bearer_token=session.token,
        )
        try:
            response = await asyncio.wait_for(call, timeout=self._call_timeout)
        except SessionExpiredError as exc:
            logger.info("face verification needs re-authentication: %s", exc)
            return current.failed(FailureReason.SESSION_EXPIRED, refund=True)
        except asyncio.TimeoutError:
            logger.warning("face verification timed out (attempt %d)", current.attempt_count)
            return current.failed(
                FailureReason.SERVICE_UNAVAILABLE,
                refund=not self._count_transport_failures,
            )
        except TransportError as exc:
            logger.warning("face verification transport failure (attempt %d): %s", current.attempt_count, exc)
            return current.failed(
                FailureReason.SERVICE_UNAVAILABLE,
                refund=not self._count_transport_failures,
            )

        if response.face_verified:
            logger.info("face verified on attempt %d", current.attempt_count)
            return current.succeeded(response.message or "Face Verified")

        logger.info("face mismatch on attempt %d/%d", current.attempt_count, self._max_retries)
        return current.failed(FailureReason.FACE_MISMATCH, response.message)


def session_from_bearer(header: Optional[str], *, expires_at: Optional[datetime] = None) -> Optional[AuthSession]:
    """Build an AuthSession from an ``Authorization: Bearer ...`` header value."""

    if not header or not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    if not token:
        return None
    return AuthSession(token=token, expires_at=expires_at)
