import asyncio

import pytest

from quiz_session.models import (
    MultipleChoiceAnswer,
    QuizAttempt,
    QuizDetail,
    ShortAnswerAnswer,
    TrueFalseAnswer,
)
from quiz_session.session import QuizSession
from quiz_session.store import TimerStatus
from quiz_session.utils.exceptions import (
    SessionClosedError,
    SubmissionError,
    UnknownAnswerTypeError,
)


def make_session(clock, persistence, now, **kwargs):
    options = dict(
        quiz_id="quiz-1",
        attempt_id="attempt-1",
        time_limit_seconds=60,
        question_ids=["q1", "q2", "q3"],
        debounce_seconds=3.0,
        retry_seconds=5.0,
        tick_seconds=1.0,
        sleep=clock.sleep,
        now=now,
    )
    options.update(kwargs)
    return QuizSession(persistence, **options)


async def test_session_ticks_and_autosaves(clock, persistence, now):
    async with make_session(clock, persistence, now) as session:
        session.answer("q1", "multiple_choice", selected_option_id="b")
        session.answer("q2", "true_false", selected_answer=None)

        await clock.advance(3)

        assert session.store.remaining_seconds == 57
        assert session.timer.formatted_time == "00:57"
        assert len(persistence.saves) == 1
        assert session.answered_count == 1
        assert session.unanswered_count() == 2
        assert session.autosaver.last_saved_at is not None

    assert session.closed is True


async def test_answer_rejects_unknown_type(clock, persistence, now):
    async with make_session(clock, persistence, now) as session:
        with pytest.raises(UnknownAnswerTypeError):
            session.answer("q1", "essay", text="...")
        assert session.get_answer("q1") is None


async def test_clear_answer_and_focus_loss(clock, persistence, now):
    async with make_session(clock, persistence, now) as session:
        session.set_answer("q3", ShortAnswerAnswer(question_id="q3", text="draft"))
        session.clear_answer("q3")
        session.record_focus_loss()

        await clock.advance(3)

        assert session.get_answer("q3") == ShortAnswerAnswer(question_id="q3", text="")
        assert persistence.saves[-1].focus_loss_count == 1


async def test_close_stops_ticks_and_saves(clock, persistence, now):
    session = make_session(clock, persistence, now)
    session.start()
    session.set_answer("q1", MultipleChoiceAnswer(question_id="q1", selected_option_id="a"))
    await clock.advance(1)

    await session.close()
    await clock.advance(30)

    assert session.store.remaining_seconds == 59
    assert persistence.saves == []
    with pytest.raises(SessionClosedError):
        session.set_answer("q2", TrueFalseAnswer(question_id="q2", selected_answer=True))


async def test_submit_saves_then_submits_and_resets(clock, persistence, now):
    session = make_session(clock, persistence, now)
    session.start()
    session.answer("q1", "short_answer", text="chlorophyll")

    result = await session.submit()

    assert result is not None
    assert result.attempt_id == "attempt-1"
    assert persistence.saves[0].answers == [ShortAnswerAnswer(question_id="q1", text="chlorophyll")]
    assert persistence.submits == [("quiz-1", "attempt-1")]
    assert session.closed is True
    assert session.store.attempt_id is None
    assert session.store.get_all_answers() == []
    assert session.result is result


async def test_submit_failure_keeps_session_open(clock, persistence, now):
    persistence.submit_error = RuntimeError("grading service down")
    session = make_session(clock, persistence, now)
    session.start()
    session.answer("q1", "true_false", selected_answer=True)

    assert await session.submit() is None

    assert session.submit_error is persistence.submit_error
    assert session.is_submitting is False
    assert session.closed is False
    assert session.has_answer("q1") is True
    await session.close()


async def test_submit_aborts_when_final_save_fails(clock, persistence, now):
    persistence.failures.append(ConnectionError("offline"))
    session = make_session(clock, persistence, now)
    session.start()
    session.answer("q1", "true_false", selected_answer=False)

    assert await session.submit() is None

    assert isinstance(session.submit_error, SubmissionError)
    assert persistence.submits == []
    assert session.store.is_dirty is True
    await session.close()


async def test_submit_ignores_save_error_from_an_earlier_save(clock, persistence, now):
    session = make_session(clock, persistence, now, autosave_enabled=False)
    session.start()
    session.answer("q1", "true_false", selected_answer=True)
    session.autosaver.save_error = ConnectionError("offline an hour ago")

    result = await session.submit()

    assert result is not None
    assert session.submit_error is None
    assert persistence.saves == []
    assert persistence.submits == [("quiz-1", "attempt-1")]



async def test_submit_without_attempt_is_noop(clock, persistence, now):
    session = make_session(clock, persistence, now, attempt_id=None)
    session.start()

    assert await session.submit() is None
    assert persistence.saves == []
    assert persistence.submits == []
    await session.close()


async def test_expiry_submits_when_configured(clock, persistence, now):
    expired = []
    session = make_session(
        clock,
        persistence,
        now,
        time_limit_seconds=2,
        submit_on_expire=True,
        on_expire=lambda: expired.append(True),
    )
    session.start()
    session.answer("q1", "multiple_choice", selected_option_id="a")

    await clock.advance(2)

    assert expired == [True]
    assert persistence.submits == [("quiz-1", "attempt-1")]
    assert session.result is not None
    assert session.closed is True


async def test_expiry_submits_even_if_on_expire_raises(clock, persistence, now, caplog):
    def on_expire():
        raise RuntimeError("ui gone")

    session = make_session(
        clock,
        persistence,
        now,
        time_limit_seconds=2,
        submit_on_expire=True,
        on_expire=on_expire,
    )
    session.start()
    session.answer("q1", "multiple_choice", selected_option_id="a")

    await clock.advance(2)

    assert persistence.submits == [("quiz-1", "attempt-1")]
    assert session.closed is True
    assert any(
        r.levelname == "ERROR" and "ui gone" in r.getMessage() for r in caplog.records
    )
    assert [t for t in asyncio.all_tasks() if t is not asyncio.current_task()] == []



async def test_expiry_without_submit_leaves_session_expired(clock, persistence, now):
    session = make_session(clock, persistence, now, time_limit_seconds=2)
    session.start()

    await clock.advance(5)

    assert session.timer_status is TimerStatus.EXPIRED
    assert session.store.remaining_seconds == 0
    assert persistence.submits == []
    await session.close()


async def test_from_quiz_restores_saved_answers(clock, persistence, now):
    quiz = QuizDetail.model_validate(
        {
            "id": "quiz-9",
            "title": "Ecology",
            "timeLimitMinutes": 10,
            "questions": [{"id": "q1", "type": "short_answer", "order": 1}],
        }
    )
    attempt = QuizAttempt.model_validate(
        {
            "id": "attempt-9",
            "quizId": "quiz-9",
            "answers": [{"type": "short_answer", "questionId": "q1", "text": "biome"}],
        }
    )

    session = QuizSession.from_quiz(persistence, quiz, attempt, sleep=clock.sleep, now=now)

    assert session.quiz_id == "quiz-9"
    assert session.attempt_id == "attempt-9"
    assert session.store.remaining_seconds == 600
    assert session.get_answer("q1").text == "biome"
    assert session.store.is_dirty is False
    await session.close()
