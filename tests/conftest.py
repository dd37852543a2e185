import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from quiz_session.models import QuizResult
from quiz_session.store import QuizTakingStore


async def settle(rounds: int = 20) -> None:
    """Let ready tasks and call_soon callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Stand-in for asyncio.sleep whose time only moves on advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self._waiters = []
        self._seq = itertools.count()

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (self.now + delay, next(self._seq), future))
        await future

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await settle()
        while self._waiters and self._waiters[0][0] <= target:
            deadline, _, future = heapq.heappop(self._waiters)
            self.now = deadline
            if not future.done():
                future.set_result(None)
            await settle()
        self.now = target
        await settle()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, f in self._waiters if not f.done())


class SteppingNow:
    """Deterministic wall clock for last_saved_at stamps."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@dataclass
class SaveCall:
    quiz_id: str
    attempt_id: str
    answers: list
    focus_loss_count: int


@dataclass
class FakePersistence:
    saves: List[SaveCall] = field(default_factory=list)
    submits: List[tuple] = field(default_factory=list)
    failures: List[Exception] = field(default_factory=list)
    submit_error: Optional[Exception] = None
    gate: Optional[asyncio.Event] = None

    async def save_draft_answers(self, quiz_id, attempt_id, answers, *, focus_loss_count=0):
        self.saves.append(SaveCall(quiz_id, attempt_id, list(answers), focus_loss_count))
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)

    async def submit_attempt(self, quiz_id, attempt_id):
        self.submits.append((quiz_id, attempt_id))
        if self.submit_error is not None:
            raise self.submit_error
        return QuizResult(
            attempt_id=attempt_id,
            quiz_id=quiz_id,
            quiz_title="Cell Biology",
            score=8,
            max_score=10,
            percentage=80,
            passed=True,
        )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def now():
    return SteppingNow()


@pytest.fixture
def persistence():
    return FakePersistence()


@pytest.fixture
def store():
    return QuizTakingStore()


@pytest.fixture
def loaded_store():
    store = QuizTakingStore()
    store.load("quiz-1", "attempt-1", time_limit_seconds=5, question_ids=["q1", "q2", "q3"])
    return store
