"""
Quiz-taking session: store, countdown and auto-save bound to one attempt.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Protocol

from quiz_session.autosave import AutoSaver, DraftAnswerSink
from quiz_session.logger import setup_logger
from quiz_session.models import (
    DraftAnswer,
    QuizAttempt,
    QuizDetail,
    QuizResult,
    build_draft_answer,
)
from quiz_session.store import QuizTakingStore, TimerStatus
from quiz_session.timer import QuizTimer
from quiz_session.utils.exceptions import SessionClosedError, SubmissionError
from quiz_session.utils.helpers import utc_now

logger = setup_logger(__name__)


class QuizPersistence(DraftAnswerSink, Protocol):
    async def submit_attempt(self, quiz_id: str, attempt_id: str) -> QuizResult: ...


class QuizSession:
    """
    Owns everything needed while a student takes one quiz attempt.

    Use as an async context manager, or call ``start()`` and ``close()``
    explicitly. After close no tick or save runs and the answer API
    raises SessionClosedError.
    """

    def __init__(
        self,
        persistence: QuizPersistence,
        *,
        quiz_id: Optional[str],
        attempt_id: Optional[str],
        time_limit_seconds: Optional[int] = None,
        question_ids: Iterable[str] = (),
        answers: Iterable[Any] = (),
        autosave_enabled: bool = True,
        on_expire: Optional[Callable[[], Any]] = None,
        submit_on_expire: bool = False,
        store: Optional[QuizTakingStore] = None,
        debounce_seconds: Optional[float] = None,
        retry_seconds: Optional[float] = None,
        tick_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._persistence = persistence
        self.store = store or QuizTakingStore()
        self.store.load(
            quiz_id,
            attempt_id,
            time_limit_seconds=time_limit_seconds,
            question_ids=question_ids,
            answers=answers,
        )

        self.on_expire = on_expire
        self.submit_on_expire = submit_on_expire
        self.timer = QuizTimer(
            self.store, on_expire=self._handle_expire, tick_seconds=tick_seconds, sleep=sleep
        )
        self.autosaver = AutoSaver(
            self.store,
            persistence,
            enabled=autosave_enabled,
            debounce_seconds=debounce_seconds,
            retry_seconds=retry_seconds,
            sleep=sleep,
            now=now,
        )

        self.is_submitting = False
        self.submit_error: Optional[Exception] = None
        self.result: Optional[QuizResult] = None
        self._closed = False

    @classmethod
    def from_quiz(
        cls, persistence: QuizPersistence, quiz: QuizDetail, attempt: QuizAttempt, **kwargs: Any
    ) -> "QuizSession":
        """Open a session seeded from a quiz detail and a started attempt."""
        return cls(
            persistence,
            quiz_id=quiz.id,
            attempt_id=attempt.id,
            time_limit_seconds=quiz.time_limit_seconds,
            question_ids=quiz.question_ids,
            answers=attempt.answers,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def quiz_id(self) -> Optional[str]:
        return self.store.quiz_id

    @property
    def attempt_id(self) -> Optional[str]:
        return self.store.attempt_id

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._check_open()
        self.autosaver.start()
        self.timer.start()

    async def close(self) -> None:
        """Cancel the tick task and any pending save timers."""
        if self._closed:
            return
        self._closed = True
        await self.timer.aclose()
        await self.autosaver.aclose()
        logger.debug(f"Session for attempt {self.attempt_id} closed")

    async def __aenter__(self) -> "QuizSession":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"Session for attempt {self.attempt_id} is closed")

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def set_answer(self, question_id: str, answer: Any) -> None:
        self._check_open()
        self.store.set_answer(question_id, answer)

    def answer(self, question_id: str, answer_type: str, **data: Any) -> DraftAnswer:
        """Build a typed answer for ``answer_type`` and store it."""
        self._check_open()
        draft = build_draft_answer(question_id, answer_type, **data)
        self.store.set_answer(question_id, draft)
        return draft

    def clear_answer(self, question_id: str) -> None:
        self._check_open()
        self.store.clear_answer(question_id)

    def get_answer(self, question_id: str) -> Optional[DraftAnswer]:
        return self.store.get_answer(question_id)

    def has_answer(self, question_id: str) -> bool:
        return self.store.has_answer(question_id)

    def get_all_answers(self) -> List[DraftAnswer]:
        return self.store.get_all_answers()

    @property
    def answered_count(self) -> int:
        return self.store.get_answered_count()

    def unanswered_count(self, total_questions: Optional[int] = None) -> int:
        return self.store.get_unanswered_count(total_questions)

    def record_focus_loss(self) -> None:
        self._check_open()
        self.store.increment_focus_loss()

    def navigate_to_question(self, index: int) -> None:
        self._check_open()
        self.store.navigate_to_question(index)

    # ------------------------------------------------------------------
    # Saving and submission
    # ------------------------------------------------------------------
    async def force_save(self) -> bool:
        return await self.autosaver.force_save()

    async def submit(self) -> Optional[QuizResult]:
        """
        Save the latest answers and submit the attempt.

        On success the session is closed, the store reset and the graded
        result returned. On failure ``submit_error`` is set, the session
        stays usable and None is returned.
        """
        if self._closed or not self.attempt_id or self.is_submitting:
            return None

        quiz_id, attempt_id = self.quiz_id, self.attempt_id
        self.is_submitting = True
        self.submit_error = None
        logger.info(f"📤 Submitting attempt {attempt_id} of quiz {quiz_id}")

        try:
            try:
                await self.autosaver.force_save(raise_on_error=True)
            except Exception as e:
                raise SubmissionError(f"Could not save answers before submitting: {e}") from e

            result = await self._persistence.submit_attempt(quiz_id, attempt_id)
        except Exception as e:
            self.submit_error = e
            logger.error(f"❌ Submission failed for attempt {attempt_id}: {e}")
            return None
        finally:
            self.is_submitting = False

        await self.close()
        self.store.reset()
        self.result = result
        logger.info(f"🏁 Attempt {attempt_id} submitted")
        return result

    async def _handle_expire(self) -> None:
        logger.warning(f"⌛ Time is up for attempt {self.attempt_id}")
        if self.on_expire is not None:
            try:
                outcome = self.on_expire()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    f"❌ on_expire callback failed for attempt {self.attempt_id}: {e}",
                    exc_info=True,
                )
        if self.submit_on_expire:
            await self.submit()

    @property
    def timer_status(self) -> TimerStatus:
        return self.store.timer_status
