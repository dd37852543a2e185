"""
Quiz countdown timer with expiry callback.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable, Optional

from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.store import QuizTakingStore, TimerStatus
from quiz_session.utils.exceptions import SessionClosedError
from quiz_session.utils.helpers import format_time

logger = setup_logger(__name__)

ExpireCallback = Callable[[], Any]
SleepFunc = Callable[[float], Awaitable[Any]]


class QuizTimer:
    """
    Drives the store's countdown once per tick while the timer is running.

    A single tick task exists at a time. It is started when the store
    enters ``running`` and cancelled when it leaves it, so pausing stops
    decrements until resume. ``on_expire`` runs once, on the loop turn
    after the tick that reached zero.
    """

    def __init__(
        self,
        store: QuizTakingStore,
        on_expire: Optional[ExpireCallback] = None,
        tick_seconds: Optional[float] = None,
        warning_seconds: Optional[int] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        Args:
            store: Store holding remaining time and timer status.
            on_expire: Plain callable or coroutine function run on expiry.
            tick_seconds: Tick interval (default from settings, 1 second).
            warning_seconds: Threshold below which ``is_warning`` is set.
            sleep: Coroutine used to wait between ticks.
        """
        self._store = store
        self.on_expire = on_expire
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.timer_tick_seconds
        self.warning_seconds = (
            warning_seconds if warning_seconds is not None else settings.timer_warning_seconds
        )
        self._sleep = sleep

        self._task: Optional[asyncio.Task] = None
        self._expire_task: Optional[asyncio.Future] = None
        self._previous_status = store.timer_status
        self._expire_scheduled = False
        self._closed = False
        self._unsubscribe = store.subscribe(self._on_store_change)

    # ------------------------------------------------------------------
    # Display values
    # ------------------------------------------------------------------
    @property
    def remaining_seconds(self) -> Optional[int]:
        return self._store.remaining_seconds

    @property
    def timer_status(self) -> TimerStatus:
        return self._store.timer_status

    @property
    def formatted_time(self) -> Optional[str]:
        """MM:SS, or None when the quiz has no time limit."""
        if self._store.remaining_seconds is None:
            return None
        return format_time(self._store.remaining_seconds)

    @property
    def is_warning(self) -> bool:
        remaining = self._store.remaining_seconds
        if remaining is None or self._store.timer_status is TimerStatus.IDLE:
            return False
        return remaining < self.warning_seconds

    @property
    def is_ticking(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the countdown; inert until the store has quiz and attempt ids."""
        if self._closed:
            raise SessionClosedError("Timer has been closed")
        if not self._store.is_active:
            logger.debug("Timer start ignored: no active attempt")
            return

        was_idle = self._store.timer_status is TimerStatus.IDLE
        self._store.start_timer()
        if was_idle and self._store.timer_status is TimerStatus.RUNNING:
            logger.info(
                f"⏱️  Timer started for attempt {self._store.attempt_id} "
                f"({self.formatted_time} remaining)"
            )
            self._ensure_ticking()

    def pause(self) -> None:
        self._store.pause()

    def resume(self) -> None:
        self._store.resume()

    def close(self) -> None:
        """Cancel the tick task; no tick happens afterwards."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._cancel_ticking()

    async def aclose(self) -> None:
        """Close, then wait for the tick task and a running expiry callback."""
        task = self._task
        self.close()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        expire_task = self._expire_task
        if (
            expire_task is not None
            and not expire_task.done()
            and expire_task is not asyncio.current_task()
        ):
            await asyncio.wait({expire_task})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_store_change(self, action: str) -> None:
        status = self._store.timer_status
        previous, self._previous_status = self._previous_status, status

        if previous is TimerStatus.RUNNING and status is TimerStatus.EXPIRED:
            self._schedule_expire()
        if status is not TimerStatus.EXPIRED:
            self._expire_scheduled = False

        if status is TimerStatus.RUNNING:
            self._ensure_ticking()
        else:
            self._cancel_ticking()

    def _ensure_ticking(self) -> None:
        if self._closed or self.is_ticking:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def _cancel_ticking(self) -> None:
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            while self._store.timer_status is TimerStatus.RUNNING:
                await self._sleep(self.tick_seconds)
                if self._closed:
                    return
                self._store.tick()
                logger.debug(f"Tick: {self.formatted_time} remaining")
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    def _schedule_expire(self) -> None:
        if self._expire_scheduled or self.on_expire is None:
            return
        self._expire_scheduled = True
        asyncio.get_running_loop().call_soon(self._fire_expire)

    def _fire_expire(self) -> None:
        if self._closed or self.on_expire is None:
            return
        try:
            result = self.on_expire()
        except Exception as e:
            logger.error(f"❌ on_expire callback failed: {e}", exc_info=True)
            return
        if inspect.isawaitable(result):
            self._expire_task = asyncio.ensure_future(result)
            self._expire_task.add_done_callback(self._log_expire_failure)

    def _log_expire_failure(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ on_expire callback failed: {error}", exc_info=error)
