"""Alarm backend driven by the running asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from ..exceptions import BackendError
from .base import AlarmBackend

logger = logging.getLogger(__name__)


@dataclass
class _Timer:
    task: asyncio.Task
    at: datetime


class AsyncioAlarmBackend(AlarmBackend):
    """
    In-process alarm backend.

    Each armed schedule gets one sleeping task. Sleeps are capped at
    ``max_sleep`` seconds and the deadline is re-checked against the wall
    clock after every nap, so a suspended host or a clock step never makes
    an alarm fire early. Nothing survives the process; pair it with
    ``recover_on_restart`` after a restart.

    The token returned by :meth:`arm` is the schedule id itself.

    Examples:
        >>> backend = AsyncioAlarmBackend()
        >>> backend.bind(coordinator.fire)
        >>> token = await backend.arm("notification-1", at)
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        max_sleep: float = 60.0,
    ) -> None:
        super().__init__()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._max_sleep = max_sleep
        self._timers: dict[str, _Timer] = {}
        self._callbacks: set[asyncio.Task] = set()
        self._running = True

    def is_armed(self, schedule_id: str) -> bool:
        return schedule_id in self._timers

    def deadline(self, schedule_id: str) -> datetime | None:
        timer = self._timers.get(schedule_id)
        return timer.at if timer else None

    @property
    def pending(self) -> dict[str, datetime]:
        return {schedule_id: timer.at for schedule_id, timer in self._timers.items()}

    async def arm(self, schedule_id: str, at: datetime) -> str:
        if not self._running:
            raise BackendError("Alarm backend is shut down", schedule_id=schedule_id)
        if self._callback is None:
            raise BackendError("No alarm callback bound", schedule_id=schedule_id)
        try:
            asyncio.get_running_loop()
        except RuntimeError as r:
            msg = "AsyncioAlarmBackend must be armed inside a running event loop."
            raise BackendError(msg, schedule_id=schedule_id) from r

        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)

        await self.disarm(schedule_id)
        task = asyncio.create_task(
            self._wait_and_fire(schedule_id, at), name=f"alarm:{schedule_id}"
        )
        self._timers[schedule_id] = _Timer(task=task, at=at)
        logger.debug("Armed %s for %s", schedule_id, at.isoformat())
        return schedule_id

    async def disarm(self, token: str) -> None:
        timer = self._timers.pop(token, None)
        if timer is not None:
            timer.task.cancel()
            logger.debug("Disarmed %s", token)

    async def shutdown(self) -> None:
        """Cancel pending timers and wait for callbacks already running."""
        self._running = False
        for token in list(self._timers):
            await self.disarm(token)
        if self._callbacks:
            await asyncio.gather(*self._callbacks, return_exceptions=True)

    async def _wait_and_fire(self, schedule_id: str, at: datetime) -> None:
        while True:
            delay = (at - self._clock()).total_seconds()
            if delay <= 0:
                break
            await asyncio.sleep(min(delay, self._max_sleep))

        # Drop our own entry first so a re-arm from the callback starts fresh
        timer = self._timers.get(schedule_id)
        if timer is not None and timer.task is asyncio.current_task():
            del self._timers[schedule_id]

        task = asyncio.create_task(self._dispatch(schedule_id))
        self._callbacks.add(task)
        task.add_done_callback(self._callbacks.discard)

    async def _dispatch(self, schedule_id: str) -> None:
        try:
            await self._callback(schedule_id)
        except Exception:
            logger.exception(f"Alarm callback failed for {schedule_id}")
