from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..common.datetime_utils import Clock, Elapsed, elapsed, now_local
from ..core.constants import SESSION_TICK_SECONDS

logger = logging.getLogger(__name__)


class SessionTimer:
    """Recomputes the open session's elapsed time once per tick.

    Purely a derived view: it never writes anything. ``start`` schedules a task
    on the running loop; ``stop``/``aclose`` cancel it. Used as an async context
    manager the task is cancelled on every exit path. A failing ``on_tick``
    stops the timer.
    """

    def __init__(
        self,
        on_tick: Callable[[Elapsed], None],
        *,
        clock: Clock = now_local,
        interval: float = SESSION_TICK_SECONDS,
    ):
        self._on_tick = on_tick
        self._clock = clock
        self._interval = float(interval)
        self._task: Optional[asyncio.Task] = None
        self._last: Optional[Elapsed] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last(self) -> Optional[Elapsed]:
        return self._last

    def start(self, check_in_at: datetime) -> None:
        if self.running:
            self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(check_in_at))

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def aclose(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "SessionTimer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _run(self, check_in_at: datetime) -> None:
        while True:
            try:
                self._last = elapsed(check_in_at, clock=self._clock)
                self._on_tick(self._last)
            except Exception:
                logger.exception("session timer tick failed; stopping")
                return
            await asyncio.sleep(self._interval)
