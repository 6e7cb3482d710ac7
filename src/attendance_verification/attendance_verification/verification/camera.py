from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

from ..core.enums import FailureReason
from ..core.exceptions import DeviceError

logger = logging.getLogger(__name__)


class CameraDevice(Protocol):
    """Exclusive camera handle.

    ``open`` raises DeviceError (CAMERA_UNAVAILABLE / PERMISSION_DENIED) when the
    device cannot be acquired. ``close`` must stop every track and be safe to
    call more than once.
    """

    async def open(self) -> None:
        raise NotImplementedError

    async def capture(self) -> str:
        """Return the captured frame as a base64 data URL."""
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


@asynccontextmanager
async def acquire_camera(device: CameraDevice) -> AsyncIterator[CameraDevice]:
    """Hold the camera for the body of the block; released on every exit path."""

    await device.open()
    try:
        yield device
    finally:
        await device.close()
        logger.debug("camera released")


class SubmittedCapture(CameraDevice):
    """Camera adapter for frames captured by the browser and posted to the API."""

    def __init__(self, image: Optional[str]):
        self._image = (image or "").strip()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        if not self._image:
            raise DeviceError(FailureReason.CAMERA_UNAVAILABLE, "No camera frame was captured.")
        self._open = True

    async def capture(self) -> str:
        if not self._open:
            raise DeviceError(FailureReason.CAMERA_UNAVAILABLE)
        return self._image

    async def close(self) -> None:
        self._open = False
