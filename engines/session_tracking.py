"""Bookkeeping for a single quiz attempt: answers, scoring and completion."""

from __future__ import annotations

from schemas import Quiz, QuizAnswer, QuizResult, QuizSession, utcnow


def _require_in_progress(session: QuizSession, action: str) -> None:
    if session.status != "in_progress":
        raise ValueError(f"Cannot {action} a session that is {session.status}")


def record_answer(session: QuizSession, answer: QuizAnswer) -> QuizSession:
    _require_in_progress(session, "answer")
    session.answers.append(answer)
    session.current_question_index = max(session.current_question_index, len(session.answers))
    session.time_spent += answer.time_spent
    return session


def calculate_score(session: QuizSession) -> QuizSession:
    """Score is the number of correct answers; percentage is rounded to a whole number."""
    total = len(session.answers)
    if total == 0:
        session.score = 0
        session.percentage = 0
        return session
    correct = sum(1 for answer in session.answers if answer.is_correct)
    session.score = correct
    session.percentage = round(correct / total * 100)
    return session


def complete_session(session: QuizSession) -> QuizSession:
    _require_in_progress(session, "complete")
    session.status = "completed"
    session.completed_at = utcnow()
    return calculate_score(session)


def abandon_session(session: QuizSession) -> QuizSession:
    _require_in_progress(session, "abandon")
    session.status = "abandoned"
    session.completed_at = utcnow()
    return session


def build_result(session: QuizSession, quiz: Quiz) -> QuizResult:
    if session.status != "completed":
        raise ValueError("Results are only available for completed sessions")
    correct = sum(1 for answer in session.answers if answer.is_correct)
    percentage = session.percentage or 0
    return QuizResult(
        session_id=session.id,
        quiz_id=quiz.id,
        user_id=session.user_id,
        score=session.score or 0,
        total_questions=len(quiz.questions) or len(session.answers),
        correct_answers=correct,
        percentage=percentage,
        time_spent=session.time_spent,
        completed_at=session.completed_at or utcnow(),
        answers=list(session.answers),
        passed=percentage >= quiz.passing_score,
        difficulty=quiz.difficulty,
        category=quiz.category,
    )
