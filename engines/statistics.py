"""Aggregate quiz statistics for the analytics dashboard."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from statistics import mean
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from engines.performance import completed_sessions
from schemas import (
    ActivityDay,
    CategoryStat,
    DifficultyStat,
    Quiz,
    QuizSession,
    QuizStatistics,
    utcnow,
)

RECENT_ACTIVITY_DAYS = 30


def _finished_on(session: QuizSession) -> date:
    return (session.completed_at or session.started_at).date()


def _streaks(days: Iterable[date], today: date) -> tuple[int, int]:
    """Return (current, longest) runs of consecutive active days.

    The current streak stays alive until a full day without a quiz passes.
    """
    ordered = sorted(set(days))
    if not ordered:
        return 0, 0

    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    current_streak = 0
    if today - ordered[-1] <= timedelta(days=1):
        current_streak = 1
        for index in range(len(ordered) - 1, 0, -1):
            if ordered[index] - ordered[index - 1] != timedelta(days=1):
                break
            current_streak += 1
    return current_streak, longest


def compute_statistics(user_id: str,
                       sessions: Sequence[QuizSession],
                       quizzes: Optional[Mapping[str, Quiz]] = None,
                       *,
                       today: Optional[date] = None) -> QuizStatistics:
    completed = completed_sessions(sessions)
    if not completed:
        return QuizStatistics(user_id=user_id)

    quizzes = quizzes or {}
    today = today or utcnow().date()
    scores = [session.percentage or 0.0 for session in completed]
    total_questions = sum(len(session.answers) for session in completed)
    total_time = sum(session.time_spent for session in completed)
    current_streak, longest_streak = _streaks((_finished_on(s) for s in completed), today)

    by_category: Dict[str, List[QuizSession]] = defaultdict(list)
    by_difficulty: Dict[str, List[QuizSession]] = defaultdict(list)
    for session in completed:
        quiz = quizzes.get(session.quiz_id)
        by_category[quiz.category if quiz else "uncategorized"].append(session)
        by_difficulty[quiz.difficulty if quiz else "unknown"].append(session)

    category_stats = [
        CategoryStat(
            category=category,
            quizzes=len(group),
            average_score=mean(s.percentage or 0.0 for s in group),
            last_attempt=max((s.completed_at or s.started_at) for s in group),
        )
        for category, group in sorted(by_category.items())
    ]
    difficulty_stats = [
        DifficultyStat(
            difficulty=difficulty,
            quizzes=len(group),
            average_score=mean(s.percentage or 0.0 for s in group),
            average_time=mean(s.time_spent for s in group),
        )
        for difficulty, group in sorted(by_difficulty.items())
    ]

    return QuizStatistics(
        user_id=user_id,
        total_quizzes=len(completed),
        total_questions=total_questions,
        correct_answers=sum(1 for s in completed for a in s.answers if a.is_correct),
        average_score=mean(scores),
        average_time_per_question=total_time / total_questions if total_questions else 0.0,
        best_score=max(scores),
        worst_score=min(scores),
        streak_current=current_streak,
        streak_longest=longest_streak,
        category_stats=category_stats,
        difficulty_stats=difficulty_stats,
        recent_activity=recent_activity(completed, today),
    )


def recent_activity(completed: Sequence[QuizSession],
                    today: date,
                    days: int = RECENT_ACTIVITY_DAYS) -> List[ActivityDay]:
    cutoff = today - timedelta(days=days - 1)
    grouped: Dict[date, List[QuizSession]] = defaultdict(list)
    for session in completed:
        finished = _finished_on(session)
        if cutoff <= finished <= today:
            grouped[finished].append(session)
    return [
        ActivityDay(
            date=day.isoformat(),
            quizzes=len(group),
            score=mean(s.percentage or 0.0 for s in group),
            time_spent=sum(s.time_spent for s in group),
        )
        for day, group in sorted(grouped.items())
    ]
