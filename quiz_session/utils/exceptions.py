"""Custom exceptions for the quiz session engine."""


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""

    pass


class UnknownAnswerTypeError(QuizSessionError, ValueError):
    """Answer type tag outside the supported question types."""

    def __init__(self, answer_type: object) -> None:
        self.answer_type = answer_type
        super().__init__(f"Unknown answer type: {answer_type!r}")


class InvalidAnswerError(QuizSessionError, ValueError):
    """Answer payload does not match its type or its question key."""

    pass


class PersistenceError(QuizSessionError):
    """Draft answers could not be saved."""

    pass


class SubmissionError(QuizSessionError):
    """Attempt submission errors."""

    pass


class SessionClosedError(QuizSessionError):
    """Operation on a session that has already been closed."""

    pass
