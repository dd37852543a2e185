"""Client-side engine for taking a timed quiz attempt with auto-saved drafts."""

from quiz_session.autosave import AutoSaver
from quiz_session.models import (
    DraftAnswer,
    FillInBlankAnswer,
    MultipleChoiceAnswer,
    ShortAnswerAnswer,
    TrueFalseAnswer,
    build_draft_answer,
    parse_draft_answer,
)
from quiz_session.session import QuizSession
from quiz_session.store import QuizTakingStore, TimerStatus
from quiz_session.timer import QuizTimer

__all__ = [
    "AutoSaver",
    "DraftAnswer",
    "FillInBlankAnswer",
    "MultipleChoiceAnswer",
    "QuizSession",
    "QuizTakingStore",
    "QuizTimer",
    "ShortAnswerAnswer",
    "TimerStatus",
    "TrueFalseAnswer",
    "build_draft_answer",
    "parse_draft_answer",
]
