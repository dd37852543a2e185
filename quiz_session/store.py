"""
In-memory state of a quiz attempt being taken.

The store is the single source of truth for draft answers, timer state,
the dirty flag and focus-loss telemetry. Every mutation is synchronous;
observers (the timer and the auto-saver) are notified through
``subscribe`` with the name of the action that ran.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from quiz_session.logger import setup_logger
from quiz_session.models import (
    DraftAnswer,
    MultipleChoiceAnswer,
    empty_answer,
    has_content,
    parse_draft_answer,
)
from quiz_session.utils.exceptions import InvalidAnswerError
from quiz_session.utils.helpers import utc_now

logger = setup_logger(__name__)

Listener = Callable[[str], None]


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class QuizTakingStore:
    """
    State container for one quiz attempt.

    State:
    - quiz_id / attempt_id: the attempt being taken (None until loaded)
    - question_ids: ordered question ids, used for navigation bounds
    - current_question_index: question currently displayed
    - remaining_seconds: time left (None when the quiz has no time limit)
    - timer_status: idle | running | paused | expired
    - focus_loss_count: times the quiz lost foreground focus
    - is_dirty: answers changed since the last successful save
    - last_saved_at: when answers were last persisted
    - revision: bumped on every answer mutation
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._set_initial_state()

    def _set_initial_state(self) -> None:
        self.quiz_id: Optional[str] = None
        self.attempt_id: Optional[str] = None
        self.question_ids: List[str] = []
        self.current_question_index = 0
        self._answers: Dict[str, DraftAnswer] = {}
        self.remaining_seconds: Optional[int] = None
        self.timer_status = TimerStatus.IDLE
        self.focus_loss_count = 0
        self.is_dirty = False
        self.last_saved_at: Optional[datetime] = None
        self.revision = 0

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, action: str) -> None:
        for listener in list(self._listeners):
            listener(action)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_active(self) -> bool:
        """True once both quiz and attempt ids are present."""
        return bool(self.quiz_id and self.attempt_id)

    def load(
        self,
        quiz_id: Optional[str],
        attempt_id: Optional[str],
        time_limit_seconds: Optional[int] = None,
        question_ids: Iterable[str] = (),
        answers: Iterable[Any] = (),
    ) -> None:
        """
        Seed the store for a new attempt.

        Previously saved answers can be restored through ``answers``; they
        are taken as already persisted and do not make the store dirty.
        """
        if time_limit_seconds is not None and time_limit_seconds < 0:
            raise ValueError("time_limit_seconds must be non-negative")

        restored = [parse_draft_answer(a) for a in answers]

        self._set_initial_state()
        self.quiz_id = quiz_id
        self.attempt_id = attempt_id
        self.question_ids = list(question_ids)
        self.remaining_seconds = time_limit_seconds
        self._answers = {a.question_id: a for a in restored}

        logger.debug(
            f"Loaded attempt {attempt_id} of quiz {quiz_id} "
            f"({len(self._answers)} restored answers, limit={time_limit_seconds})"
        )
        self._emit("load")

    def reset(self) -> None:
        """Restore every field to its initial default."""
        self._set_initial_state()
        self._emit("reset")

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def set_answer(self, question_id: str, answer: Any) -> None:
        """
        Insert or replace the answer for ``question_id`` and mark dirty.

        ``answer`` may be a DraftAnswer or a mapping carrying a ``type``
        tag; unknown tags raise UnknownAnswerTypeError.
        """
        answer = parse_draft_answer(answer)
        if answer.question_id != question_id:
            raise InvalidAnswerError(
                f"Answer for question {answer.question_id!r} stored under {question_id!r}"
            )

        self._answers[question_id] = answer
        self.is_dirty = True
        self.revision += 1
        self._emit("setAnswer")

    def clear_answer(self, question_id: str) -> None:
        """Reset an answer to the empty state of its own question type."""
        current = self._answers.get(question_id)
        if current is None:
            cleared: DraftAnswer = MultipleChoiceAnswer(question_id=question_id)
        else:
            cleared = empty_answer(current)

        self._answers[question_id] = cleared
        self.is_dirty = True
        self.revision += 1
        self._emit("clearAnswer")

    def get_answer(self, question_id: str) -> Optional[DraftAnswer]:
        return self._answers.get(question_id)

    def has_answer(self, question_id: str) -> bool:
        return has_content(self._answers.get(question_id))

    def get_all_answers(self) -> List[DraftAnswer]:
        """Snapshot of every answer (unordered)."""
        return list(self._answers.values())

    def get_answered_count(self) -> int:
        return sum(1 for answer in self._answers.values() if has_content(answer))

    def get_unanswered_count(self, total_questions: Optional[int] = None) -> int:
        if total_questions is None:
            total_questions = len(self.question_ids)
        return max(0, total_questions - self.get_answered_count())

    @property
    def answers(self) -> Dict[str, DraftAnswer]:
        return dict(self._answers)

    # ------------------------------------------------------------------
    # Navigation and telemetry
    # ------------------------------------------------------------------
    def navigate_to_question(self, index: int) -> None:
        if index < 0 or (self.question_ids and index >= len(self.question_ids)):
            raise IndexError(f"Question index {index} out of range")
        self.current_question_index = index
        self._emit("navigateToQuestion")

    def increment_focus_loss(self) -> None:
        self.focus_loss_count += 1
        logger.info(f"👀 Focus lost on attempt {self.attempt_id} ({self.focus_loss_count} total)")
        self._emit("incrementFocusLoss")

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------
    def start_timer(self) -> None:
        """idle -> running, only when a positive time limit is set."""
        if self.timer_status is not TimerStatus.IDLE:
            return
        if not self.remaining_seconds:
            return
        self.timer_status = TimerStatus.RUNNING
        self._emit("startTimer")

    def tick(self) -> None:
        """Decrement remaining time by one second while running."""
        if self.timer_status is not TimerStatus.RUNNING or self.remaining_seconds is None:
            return
        if self.remaining_seconds <= 0:
            return

        self.remaining_seconds -= 1
        if self.remaining_seconds == 0:
            self.timer_status = TimerStatus.EXPIRED
            logger.info(f"⏰ Time expired for attempt {self.attempt_id}")
        self._emit("tick")

    def pause(self) -> None:
        if self.timer_status is TimerStatus.RUNNING:
            self.timer_status = TimerStatus.PAUSED
            self._emit("pauseTimer")

    def resume(self) -> None:
        if self.timer_status is TimerStatus.PAUSED:
            self.timer_status = TimerStatus.RUNNING
            self._emit("resumeTimer")

    # ------------------------------------------------------------------
    # Persistence bookkeeping
    # ------------------------------------------------------------------
    def mark_saved(
        self, timestamp: Optional[datetime] = None, revision: Optional[int] = None
    ) -> None:
        """
        Record a successful save.

        When ``revision`` is given and answers changed after it was taken,
        the store stays dirty so the newer edits are saved too.
        """
        self.last_saved_at = timestamp or utc_now()
        if revision is None or revision == self.revision:
            self.is_dirty = False
        self._emit("markSaved")
