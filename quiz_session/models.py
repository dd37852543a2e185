from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from quiz_session.utils.exceptions import InvalidAnswerError, UnknownAnswerTypeError

QuestionType = Literal["multiple_choice", "true_false", "short_answer", "fill_in_the_blank"]
AttemptStatus = Literal["in_progress", "submitted", "graded"]


class WireModel(BaseModel):
    """Base for payloads exchanged with the quiz API (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ----------------------------------------------------------------------
# Draft answers
# ----------------------------------------------------------------------
class MultipleChoiceAnswer(WireModel):
    """Draft answer for a multiple choice question."""

    type: Literal["multiple_choice"] = "multiple_choice"
    question_id: str
    selected_option_id: Optional[str] = None


class TrueFalseAnswer(WireModel):
    """Draft answer for a true/false question."""

    type: Literal["true_false"] = "true_false"
    question_id: str
    selected_answer: Optional[bool] = None


class ShortAnswerAnswer(WireModel):
    """Draft answer for a short answer question."""

    type: Literal["short_answer"] = "short_answer"
    question_id: str
    text: str = ""


class FillInBlankAnswer(WireModel):
    """Draft answer for a fill-in-the-blank question, keyed by blank id."""

    type: Literal["fill_in_the_blank"] = "fill_in_the_blank"
    question_id: str
    filled_answers: Dict[str, str] = Field(default_factory=dict)


DraftAnswer = Annotated[
    Union[MultipleChoiceAnswer, TrueFalseAnswer, ShortAnswerAnswer, FillInBlankAnswer],
    Field(discriminator="type"),
]

ANSWER_VARIANTS: Dict[str, type] = {
    "multiple_choice": MultipleChoiceAnswer,
    "true_false": TrueFalseAnswer,
    "short_answer": ShortAnswerAnswer,
    "fill_in_the_blank": FillInBlankAnswer,
}
ANSWER_CLASSES = tuple(ANSWER_VARIANTS.values())

_draft_answer_adapter: TypeAdapter = TypeAdapter(DraftAnswer)


def parse_draft_answer(data: Any) -> DraftAnswer:
    """
    Validate a draft answer coming from outside the engine.

    Args:
        data: A DraftAnswer instance or a mapping with a ``type`` tag

    Returns:
        The typed answer

    Raises:
        UnknownAnswerTypeError: If the ``type`` tag is not a known question type
        InvalidAnswerError: If the payload does not fit its variant
    """
    if isinstance(data, ANSWER_CLASSES):
        return data
    if not isinstance(data, Mapping):
        raise InvalidAnswerError(f"Expected a draft answer, got {type(data).__name__}")

    answer_type = data.get("type")
    if answer_type not in ANSWER_VARIANTS:
        raise UnknownAnswerTypeError(answer_type)

    try:
        return _draft_answer_adapter.validate_python(dict(data))
    except ValidationError as e:
        raise InvalidAnswerError(f"Invalid {answer_type} answer: {e}") from e


def build_draft_answer(
    question_id: str,
    answer_type: str,
    data: Optional[Mapping[str, Any]] = None,
    **fields: Any,
) -> DraftAnswer:
    """
    Build a typed draft answer from a question type and its payload.

    Payload keys may use either attribute names (``selected_option_id``)
    or wire names (``selectedOptionId``).
    """
    model = ANSWER_VARIANTS.get(answer_type)
    if model is None:
        raise UnknownAnswerTypeError(answer_type)

    payload = {**(data or {}), **fields, "question_id": question_id}
    payload.pop("questionId", None)
    payload.pop("type", None)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidAnswerError(f"Invalid {answer_type} answer: {e}") from e


def has_content(answer: Optional[DraftAnswer]) -> bool:
    """
    Check if an answer has actual content.

    Choice answers count only once something is selected. Text answers
    always count, an empty string or mapping is a deliberate answer.
    """
    if answer is None:
        return False
    if isinstance(answer, MultipleChoiceAnswer):
        return answer.selected_option_id is not None
    if isinstance(answer, TrueFalseAnswer):
        return answer.selected_answer is not None
    if isinstance(answer, (ShortAnswerAnswer, FillInBlankAnswer)):
        return True
    raise UnknownAnswerTypeError(getattr(answer, "type", answer))


def empty_answer(answer: DraftAnswer) -> DraftAnswer:
    """Return the cleared state of the same variant as ``answer``."""
    if isinstance(answer, MultipleChoiceAnswer):
        return MultipleChoiceAnswer(question_id=answer.question_id)
    if isinstance(answer, TrueFalseAnswer):
        return TrueFalseAnswer(question_id=answer.question_id)
    if isinstance(answer, ShortAnswerAnswer):
        return ShortAnswerAnswer(question_id=answer.question_id, text="")
    if isinstance(answer, FillInBlankAnswer):
        return FillInBlankAnswer(question_id=answer.question_id, filled_answers={})
    raise UnknownAnswerTypeError(getattr(answer, "type", answer))


# ----------------------------------------------------------------------
# Read-side API payloads
# ----------------------------------------------------------------------
class QuizQuestion(WireModel):
    """Question as returned by the quiz detail endpoint."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow"
    )

    id: str
    type: QuestionType
    order: int = 0
    question_text: str = ""
    points: float = 1
    explanation: Optional[str] = None


class QuizDetail(WireModel):
    """Quiz configuration needed to open a taking session."""

    id: str
    title: str
    time_limit_minutes: Optional[int] = None
    passing_score: Optional[float] = None
    focus_loss_warning: bool = False
    questions: List[QuizQuestion] = Field(default_factory=list)

    @property
    def time_limit_seconds(self) -> Optional[int]:
        if self.time_limit_minutes is None:
            return None
        return self.time_limit_minutes * 60

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in sorted(self.questions, key=lambda q: q.order)]


class QuizAttempt(WireModel):
    """Student attempt as returned when an attempt is started."""

    id: str
    quiz_id: str
    user_id: Optional[str] = None
    status: AttemptStatus = "in_progress"
    answers: List[DraftAnswer] = Field(default_factory=list)
    started_at: Optional[str] = None
    submitted_at: Optional[str] = None
    score: Optional[float] = None
    passed: Optional[bool] = None


class QuestionResult(WireModel):
    """Per-question outcome in a graded attempt."""

    question_id: str
    question_text: str = ""
    type: QuestionType
    is_correct: Optional[bool] = None
    points: float = 0
    earned_points: float = 0
    student_answer: Optional[DraftAnswer] = None
    correct_answer: Any = None
    explanation: Optional[str] = None


class QuizResult(WireModel):
    """Graded attempt returned on submission."""

    attempt_id: str
    quiz_id: str
    quiz_title: str = ""
    score: float = 0
    max_score: float = 0
    percentage: float = 0
    passed: Optional[bool] = None
    time_taken: int = 0
    question_results: List[QuestionResult] = Field(default_factory=list)
