"""Performance analysis over a learner's quiz session history."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from statistics import mean
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from schemas import PerformanceMetrics, Quiz, QuizSession


@dataclass
class TopicAccuracy:
    topic: str
    answered: int
    correct: int

    @property
    def accuracy(self) -> float:
        return self.correct / self.answered if self.answered else 0.0


def completed_sessions(sessions: Sequence[QuizSession]) -> List[QuizSession]:
    return [session for session in sessions if session.status == "completed"]


def difficulty_for_score(average_score: float) -> str:
    """Map an average percentage onto the easy/medium/hard tiers."""
    if average_score >= 85:
        return "hard"
    if average_score < 65:
        return "easy"
    return "medium"


class PerformanceAnalyzer:
    """Turns session history into ``PerformanceMetrics``.

    Results are written to ``store`` (when given) under the user id; the
    latest analysis always replaces the cached one.
    """

    def __init__(self,
                 store=None,
                 trend_window: int = 5,
                 trend_min_sessions: int = 6,
                 trend_threshold: float = 5.0,
                 strong_topic_accuracy: float = 0.8,
                 weak_topic_accuracy: float = 0.6,
                 min_topic_answers: int = 2):
        self.store = store
        self.trend_window = trend_window
        self.trend_min_sessions = trend_min_sessions
        self.trend_threshold = trend_threshold
        self.strong_topic_accuracy = strong_topic_accuracy
        self.weak_topic_accuracy = weak_topic_accuracy
        self.min_topic_answers = min_topic_answers

    def analyze_performance(self,
                            user_id: str,
                            sessions: Sequence[QuizSession],
                            quizzes: Optional[Mapping[str, Quiz]] = None) -> PerformanceMetrics:
        completed = completed_sessions(sessions)
        if not completed:
            metrics = PerformanceMetrics()
        else:
            average_score = mean(self._percentage(session) for session in completed)
            total_time = sum(session.time_spent for session in completed)
            total_questions = sum(len(session.answers) for session in completed)
            strong_topics, weak_topics = self.classify_topics(completed, quizzes)

            metrics = PerformanceMetrics(
                average_score=average_score,
                average_time_per_question=total_time / total_questions if total_questions > 0 else 0.0,
                strong_topics=strong_topics,
                weak_topics=weak_topics,
                preferred_difficulty=difficulty_for_score(average_score),
                recent_performance_trend=self.performance_trend(completed),
            )

        if self.store is not None:
            self.store.cache_performance(user_id, metrics)
        return metrics

    def performance_trend(self, completed: Sequence[QuizSession]) -> str:
        """Compare the last window of completed sessions with the one before it."""
        if len(completed) < self.trend_min_sessions:
            return "stable"

        window = self.trend_window
        recent = completed[-window:]
        previous = completed[-2 * window:-window]

        recent_avg = mean(self._percentage(session) for session in recent)
        previous_avg = mean(self._percentage(session) for session in previous)
        delta = recent_avg - previous_avg

        if delta > self.trend_threshold:
            return "improving"
        if delta < -self.trend_threshold:
            return "declining"
        return "stable"

    def topic_accuracy(self,
                       completed: Sequence[QuizSession],
                       quizzes: Mapping[str, Quiz]) -> Dict[str, TopicAccuracy]:
        """Attribute every answer to the tags of the question it answered."""
        answered: Dict[str, int] = defaultdict(int)
        correct: Dict[str, int] = defaultdict(int)
        for session in completed:
            quiz = quizzes.get(session.quiz_id)
            if quiz is None:
                continue
            for answer in session.answers:
                question = quiz.question_by_id(answer.question_id)
                if question is None:
                    continue
                for tag in dict.fromkeys(question.tags):
                    answered[tag] += 1
                    if answer.is_correct:
                        correct[tag] += 1
        return {
            topic: TopicAccuracy(topic=topic, answered=count, correct=correct[topic])
            for topic, count in answered.items()
        }

    def classify_topics(self,
                        completed: Sequence[QuizSession],
                        quizzes: Optional[Mapping[str, Quiz]]) -> Tuple[List[str], List[str]]:
        # Without per-question topic metadata there is nothing to classify.
        if not quizzes:
            return [], []

        strong: List[str] = []
        weak: List[str] = []
        stats = self.topic_accuracy(completed, quizzes)
        for topic in sorted(stats, key=lambda name: (-stats[name].answered, name)):
            entry = stats[topic]
            if entry.answered < self.min_topic_answers:
                continue
            if entry.accuracy >= self.strong_topic_accuracy:
                strong.append(topic)
            elif entry.accuracy < self.weak_topic_accuracy:
                weak.append(topic)
        return strong, weak

    @staticmethod
    def _percentage(session: QuizSession) -> float:
        return session.percentage or 0.0
