from quiz_session.api.client import QuizApiClient

__all__ = ["QuizApiClient"]
