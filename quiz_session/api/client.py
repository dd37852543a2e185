"""
Quiz API client: attempts, draft answers, submission and results.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.models import DraftAnswer, QuizAttempt, QuizDetail, QuizResult
from quiz_session.utils.exceptions import PersistenceError, QuizSessionError, SubmissionError

logger = setup_logger(__name__)

QUIZZES_PATH = "/api/v1/quiz/quizzes"


class QuizApiClient:
    """
    HTTP client for the learning platform's quiz endpoints.

    Writes (draft saves, submission) are attempted once; the auto-saver
    owns retry for drafts. Reads retry transient failures with
    exponential backoff.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: API root (default from settings)
            token: Bearer token sent with every request
            timeout: Request timeout in seconds
            max_retries: Attempts for read requests
            backoff_base: First backoff delay in seconds, doubled per retry
            transport: Optional httpx transport (used by tests)
        """
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.backoff_base = backoff_base

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "Quiz-Session/1.0",
        }
        token = token if token is not None else settings.api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.request_timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "QuizApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def fetch_quiz(self, quiz_id: str) -> QuizDetail:
        data = await self._get_with_retries(f"{QUIZZES_PATH}/{quiz_id}")
        return QuizDetail.model_validate(data)

    async def start_attempt(self, quiz_id: str) -> QuizAttempt:
        try:
            response = await self._client.post(f"{QUIZZES_PATH}/{quiz_id}/attempts")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise QuizSessionError(
                f"Failed to start quiz attempt: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise QuizSessionError(f"Failed to start quiz attempt: {e}") from e

        attempt = QuizAttempt.model_validate(response.json())
        logger.info(f"📝 Started attempt {attempt.id} for quiz {quiz_id}")
        return attempt

    async def save_draft_answers(
        self,
        quiz_id: str,
        attempt_id: str,
        answers: List[DraftAnswer],
        *,
        focus_loss_count: int = 0,
    ) -> None:
        """
        Save the full set of draft answers for an attempt.

        Raises:
            PersistenceError: If the request fails
        """
        payload = {
            "answers": [answer.to_wire() for answer in answers],
            "focusLossCount": focus_loss_count,
        }
        try:
            response = await self._client.put(
                f"{QUIZZES_PATH}/{quiz_id}/attempts/{attempt_id}", json=payload
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                f"Failed to save draft answers: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"Failed to save draft answers: {e}") from e

        logger.debug(f"Saved {len(answers)} answers for attempt {attempt_id}")

    async def submit_attempt(self, quiz_id: str, attempt_id: str) -> QuizResult:
        """
        Submit an attempt for grading.

        Raises:
            SubmissionError: If the request fails
        """
        try:
            response = await self._client.post(
                f"{QUIZZES_PATH}/{quiz_id}/attempts/{attempt_id}/submit"
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SubmissionError(
                f"Failed to submit quiz attempt: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SubmissionError(f"Failed to submit quiz attempt: {e}") from e

        result = QuizResult.model_validate(response.json())
        logger.info(f"🎯 Attempt {attempt_id} graded: {result.score}/{result.max_score}")
        return result

    async def fetch_result(self, quiz_id: str, attempt_id: str) -> QuizResult:
        data = await self._get_with_retries(
            f"{QUIZZES_PATH}/{quiz_id}/attempts/{attempt_id}/results"
        )
        return QuizResult.model_validate(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _get_with_retries(self, path: str) -> Dict[str, Any]:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.get(path)
                response.raise_for_status()
                return response.json()
            except Exception as e:
                last_error = e
                if not self._is_retriable_error(e) or attempt == self.max_retries:
                    break
                logger.warning(f"⚠️ GET {path} failed (attempt {attempt}/{self.max_retries}): {e}")
                await asyncio.sleep(self.backoff_base * 2 ** (attempt - 1))

        raise QuizSessionError(f"Request to {path} failed: {last_error}") from last_error

    def _is_retriable_error(self, e: Exception) -> bool:
        """
        Determine if an error is transient and worth retrying.

        HTTP 429/5xx and network/timeouts are retriable.
        """
        if isinstance(e, httpx.HTTPStatusError):
            status = e.response.status_code
            return status == 429 or 500 <= status < 600

        if isinstance(e, (httpx.TimeoutException, httpx.TransportError)):
            return True

        return False
