"""
Debounced auto-save of draft answers with retry on failure.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.models import DraftAnswer
from quiz_session.store import QuizTakingStore
from quiz_session.utils.exceptions import SessionClosedError
from quiz_session.utils.helpers import ms_to_seconds, utc_now

logger = setup_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]

# Store actions that restart the debounce window
_ANSWER_ACTIONS = frozenset({"setAnswer", "clearAnswer"})


class DraftAnswerSink(Protocol):
    async def save_draft_answers(
        self,
        quiz_id: str,
        attempt_id: str,
        answers: List[DraftAnswer],
        *,
        focus_loss_count: int = 0,
    ) -> None: ...


class AutoSaver:
    """
    Turns bursts of answer edits into infrequent draft saves.

    Supports:
    - Debounce: edits within the window collapse into one save of the
      latest full answer set
    - Retry: a failed save keeps the store dirty and re-arms after the
      retry delay
    - Force save: immediate save for navigation or unload
    - One save in flight at a time; a timer firing during a save is
      deferred until it completes
    """

    def __init__(
        self,
        store: QuizTakingStore,
        persistence: DraftAnswerSink,
        enabled: bool = True,
        debounce_seconds: Optional[float] = None,
        retry_seconds: Optional[float] = None,
        sleep: SleepFunc = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._persistence = persistence
        self._enabled = enabled
        self.debounce_seconds = (
            debounce_seconds
            if debounce_seconds is not None
            else ms_to_seconds(settings.autosave_debounce_ms)
        )
        self.retry_seconds = (
            retry_seconds if retry_seconds is not None else ms_to_seconds(settings.autosave_retry_ms)
        )
        self._sleep = sleep
        self._now = now

        self.is_saving = False
        self.save_error: Optional[Exception] = None

        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._deferred = False
        self._started = False
        self._closed = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value
        if not value:
            self._cancel_pending()
        elif self._started and self._store.is_dirty:
            self._arm(self.debounce_seconds)

    @property
    def last_saved_at(self) -> Optional[datetime]:
        return self._store.last_saved_at

    @property
    def has_unsaved_changes(self) -> bool:
        """Whether leaving now would lose edits (the before-unload guard)."""
        return self._store.is_dirty and self._enabled

    @property
    def has_pending_save(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Begin observing the store; arms a save right away if already dirty."""
        if self._closed:
            raise SessionClosedError("Auto-saver has been closed")
        if self._started:
            return
        self._started = True
        self._unsubscribe = self._store.subscribe(self._on_store_change)
        if self._store.is_dirty:
            self._arm(self.debounce_seconds)

    def close(self) -> None:
        """Stop observing and cancel any pending debounce or retry."""
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._cancel_pending()

    async def aclose(self) -> None:
        """Close, then wait for a timer that already started saving to finish."""
        task = self._task
        self.close()
        for pending in (task, self._inflight):
            if pending is None or pending is asyncio.current_task():
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await pending

    async def force_save(self, raise_on_error: bool = False) -> bool:
        """
        Save the current answers now, skipping the debounce window.

        Waits for a save already in flight, then saves the latest
        snapshot. Without an attempt, or while disabled, nothing is sent.

        Args:
            raise_on_error: Re-raise the persistence error of this save
                instead of returning False. A retry is armed either way.

        Returns:
            True if the answers were saved
        """
        if self._closed or not self._store.attempt_id or not self._enabled:
            return False

        self._cancel_pending()
        logger.info(f"💾 Force saving attempt {self._store.attempt_id}")
        return await self._save(raise_on_error=raise_on_error)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_store_change(self, action: str) -> None:
        if action in _ANSWER_ACTIONS and self._store.is_dirty:
            self._arm(self.debounce_seconds)
        elif action in ("load", "reset"):
            self._cancel_pending()

    def _can_save(self) -> bool:
        return not self._closed and self._enabled and self._store.is_active

    def _arm(self, delay: float) -> None:
        if not self._can_save():
            return
        self._cancel_pending()
        self._task = asyncio.get_running_loop().create_task(self._wait_and_save(delay))

    def _cancel_pending(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _wait_and_save(self, delay: float) -> None:
        await self._sleep(delay)
        # Leave the slot so edits during the save can arm the next cycle
        if self._task is asyncio.current_task():
            self._task = None

        if not self._store.is_dirty:
            return
        if self._lock.locked():
            self._deferred = True
            return

        self._inflight = asyncio.current_task()
        try:
            await self._save()
        finally:
            self._inflight = None

    async def _save(self, raise_on_error: bool = False) -> bool:
        try:
            async with self._lock:
                saved = await self._save_snapshot(raise_on_error)
        finally:
            deferred, self._deferred = self._deferred, False

        if saved and deferred and self._store.is_dirty:
            self._arm(self.debounce_seconds)
        return saved

    async def _save_snapshot(self, raise_on_error: bool = False) -> bool:
        if not self._can_save():
            return False

        store = self._store
        quiz_id, attempt_id = store.quiz_id, store.attempt_id
        answers = store.get_all_answers()
        revision = store.revision

        self.is_saving = True
        try:
            await self._persistence.save_draft_answers(
                quiz_id,
                attempt_id,
                answers,
                focus_loss_count=store.focus_loss_count,
            )
        except Exception as e:
            self.save_error = e
            logger.warning(
                f"⚠️ Draft save failed for attempt {attempt_id}: {e} "
                f"(retrying in {self.retry_seconds:g}s)"
            )
            self._arm(self.retry_seconds)
            if raise_on_error:
                raise
            return False
        finally:
            self.is_saving = False

        if self._closed:
            return True

        store.mark_saved(self._now(), revision=revision)
        self.save_error = None
        logger.info(f"✅ Saved {len(answers)} draft answers for attempt {attempt_id}")
        return True
