# app.py — quiz personalization service
# - Preferences, session history and analytics over SQLite
# - Personalized generation through the configured quiz backend

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

import db
from engines.personalization import QuizPersonalizationService
from engines.preferences import SQLitePreferenceStore
from engines.quiz_state import QuizStateMachine
from engines.session_tracking import abandon_session, build_result, complete_session, record_answer
from engines.statistics import compute_statistics
from env_validation import get_env_bool, get_env_int
from quiz_generation import QuizGenerationClient
from schemas import (
    PreferencesUpdate,
    Quiz,
    QuizAnswer,
    QuizFeedback,
    QuizGenerationRequest,
    QuizSession,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
        db.init()
        logger.info("Quiz database ready at %s", db.DB_PATH)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Quiz Personalization Service", version="1.0.0", lifespan=_lifespan)

PERSONALIZATION = QuizPersonalizationService(store=SQLitePreferenceStore(db))

_MAX_HISTORY_LIMIT = 100


class GenerateBody(BaseModel):
    request: QuizGenerationRequest = Field(default_factory=QuizGenerationRequest)


class FeedbackBody(BaseModel):
    feedback: Optional[QuizFeedback] = None


def _history(user_id: str) -> tuple[list[QuizSession], dict[str, Quiz]]:
    sessions = db.list_quiz_sessions(user_id)
    return sessions, db.get_quizzes(session.quiz_id for session in sessions)


def _require_session(session_id: str, user_id: Optional[str] = None) -> QuizSession:
    session = db.get_quiz_session(session_id, user_id=user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="quiz session not found")
    return session


def _generation_client(user_id: str) -> QuizGenerationClient:
    base_url = os.getenv("QUIZ_GENERATOR_URL")
    if not base_url:
        raise HTTPException(status_code=503, detail="quiz generation backend not configured")
    return QuizGenerationClient(base_url, timeout=get_env_int("QUIZ_GENERATOR_TIMEOUT", 30), user_id=user_id)


# ---------- Preferences ----------
@app.get("/quiz/preferences/{user_id}")
def get_preferences(user_id: str):
    return PERSONALIZATION.get_user_preferences(user_id)


@app.patch("/quiz/preferences/{user_id}")
def update_preferences(user_id: str, body: PreferencesUpdate):
    return PERSONALIZATION.update_user_preferences(user_id, body.as_updates())


@app.delete("/quiz/preferences/{user_id}")
def clear_preferences(user_id: str):
    PERSONALIZATION.clear_user_data(user_id)
    return {"user_id": user_id, "cleared": True}


# ---------- Sessions ----------
@app.post("/quiz/quizzes")
def store_quiz(quiz: Quiz):
    db.save_quiz(quiz)
    return quiz


@app.post("/quiz/sessions")
def store_session(session: QuizSession):
    db.save_quiz_session(session)
    return session


@app.get("/quiz/sessions/{user_id}")
def session_history(user_id: str, status: Optional[str] = None, limit: int = 10, page: int = 1):
    if not 1 <= limit <= _MAX_HISTORY_LIMIT:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {_MAX_HISTORY_LIMIT}")
    if page < 1:
        raise HTTPException(status_code=400, detail="page must be a positive integer")
    try:
        sessions = db.list_quiz_sessions(
            user_id, status=status, limit=limit, offset=(page - 1) * limit, newest_first=True
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "sessions": sessions,
        "page": page,
        "limit": limit,
        "total": db.count_quiz_sessions(user_id, status=status),
    }


@app.post("/quiz/sessions/{session_id}/answer")
def answer_question(session_id: str, answer: QuizAnswer):
    session = _require_session(session_id)
    try:
        record_answer(session, answer)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    db.save_quiz_session(session)
    return session


@app.post("/quiz/sessions/{session_id}/complete")
def finish_session(session_id: str):
    session = _require_session(session_id)
    try:
        complete_session(session)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    db.save_quiz_session(session)
    quiz = db.get_quiz(session.quiz_id)
    return {"session": session, "result": build_result(session, quiz) if quiz else None}


@app.post("/quiz/sessions/{session_id}/abandon")
def abandon(session_id: str):
    session = _require_session(session_id)
    try:
        abandon_session(session)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    db.save_quiz_session(session)
    return session


# ---------- Analytics ----------
@app.get("/quiz/performance/{user_id}")
def performance(user_id: str):
    sessions, quizzes = _history(user_id)
    return PERSONALIZATION.analyze_performance(user_id, sessions, quizzes)


@app.get("/quiz/recommendations/{user_id}")
def recommendations(user_id: str):
    sessions, quizzes = _history(user_id)
    return PERSONALIZATION.get_quiz_recommendations(user_id, sessions, quizzes)


@app.get("/quiz/statistics/{user_id}")
def statistics(user_id: str):
    sessions, quizzes = _history(user_id)
    return compute_statistics(user_id, sessions, quizzes)


# ---------- Personalization ----------
@app.post("/quiz/personalize/{user_id}")
def personalize(user_id: str, request: QuizGenerationRequest):
    sessions, quizzes = _history(user_id)
    return PERSONALIZATION.personalize_quiz_request(user_id, request, sessions, quizzes)


@app.post("/quiz/generate/{user_id}")
def generate(user_id: str, body: GenerateBody):
    client = _generation_client(user_id)
    sessions, quizzes = _history(user_id)
    request = PERSONALIZATION.personalize_quiz_request(user_id, body.request, sessions, quizzes)

    machine = QuizStateMachine(strict=get_env_bool("QUIZ_STRICT_TRANSITIONS"))
    state = machine.generate(client, request)
    if state.error is not None:
        raise HTTPException(status_code=502, detail=state.error)

    quiz = state.current_quiz
    if quiz.user_id is None:
        quiz = quiz.model_copy(update={"user_id": user_id})
    db.save_quiz(quiz)
    db.save_quiz_session(state.current_session)
    return {
        "mode": state.mode.value,
        "request": request,
        "quiz": quiz,
        "session": state.current_session,
    }


@app.post("/quiz/feedback/{user_id}/{session_id}")
def quiz_feedback(user_id: str, session_id: str, body: FeedbackBody):
    session = _require_session(session_id, user_id=user_id)
    updated = PERSONALIZATION.update_preferences_from_quiz_completion(user_id, session, body.feedback)
    return {
        "updated": updated is not None,
        "preferences": updated or PERSONALIZATION.get_user_preferences(user_id),
    }


# ---------- Privacy ----------
@app.get("/privacy/export")
def privacy_export(user_id: str):
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id required")
    return db.export_user_data(user_id)


@app.delete("/privacy/delete")
def privacy_delete(user_id: str):
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id required")

    deleted = db.delete_user_data(user_id)
    PERSONALIZATION.clear_user_data(user_id)
    return {"user_id": user_id, "deleted": deleted}
