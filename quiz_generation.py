"""HTTP client for the quiz generation backend."""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import requests
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from schemas import Quiz, QuizGenerationRequest, QuizSession

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/quiz/generate"


class QuizGenerationError(Exception):
    """Quiz generation backend failed; the message is safe to show to the learner."""


def request_body(request: QuizGenerationRequest) -> dict:
    """Serialize ``request`` with the backend's camelCase keys, leaving unset fields out."""
    return {to_camel(key): value for key, value in request.model_dump(mode="json", exclude_none=True).items()}


class QuizGenerationClient:
    """Posts generation requests and unwraps the ``{success, data, error}`` envelope.

    Every failure surfaces as ``QuizGenerationError`` with a message suitable
    for the quiz state machine's ``error`` field.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, user_id: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_id = user_id

    def __call__(self, request: QuizGenerationRequest) -> Tuple[Quiz, QuizSession]:
        return self.generate(request)

    def generate(self, request: QuizGenerationRequest, user_id: Optional[str] = None) -> Tuple[Quiz, QuizSession]:
        user = user_id or self.user_id
        headers = {"x-user-id": user} if user else {}
        try:
            r = requests.post(
                f"{self.base_url}{GENERATE_PATH}",
                json=request_body(request),
                headers=headers,
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.HTTPError as e:
            detail = _error_detail(e.response)
            status = getattr(e.response, "status_code", "unknown")
            raise QuizGenerationError(f"Quiz generation failed ({status}): {detail}") from e
        except requests.RequestException as e:
            raise QuizGenerationError(f"Quiz generation service unavailable: {e}") from e

        try:
            payload = r.json()
        except ValueError as e:
            raise QuizGenerationError("Quiz generation returned an invalid response") from e

        return self._parse(payload, user)

    def _parse(self, payload: Any, user_id: Optional[str]) -> Tuple[Quiz, QuizSession]:
        if not isinstance(payload, dict):
            raise QuizGenerationError("Quiz generation returned an invalid response")
        if not payload.get("success"):
            raise QuizGenerationError(payload.get("error") or payload.get("message") or "Quiz generation failed")

        data = payload.get("data") or {}
        try:
            quiz = Quiz.model_validate(data["quiz"])
            raw_session = data.get("session")
            if raw_session:
                session = QuizSession.model_validate(raw_session)
            else:
                session = QuizSession(quiz_id=quiz.id, user_id=user_id or quiz.user_id or "anonymous")
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning("Malformed quiz generation payload: %s", e)
            raise QuizGenerationError("Quiz generation returned an incomplete quiz") from e

        logger.info("Generated quiz %s with %d questions", quiz.id, len(quiz.questions))
        return quiz, session


def _error_detail(response) -> str:
    if response is None:
        return "no response"
    try:
        body = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)[:300]
    return str(body)[:300]
