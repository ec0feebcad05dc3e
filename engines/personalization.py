"""Quiz personalization from stored preferences and recent performance."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from engines.performance import PerformanceAnalyzer
from engines.preferences import PreferenceStore
from schemas import (
    MAX_FOCUS_AREAS,
    Quiz,
    QuizFeedback,
    QuizGenerationRequest,
    QuizRecommendations,
    QuizSession,
    UserQuizPreferences,
)

logger = logging.getLogger(__name__)

DIFFICULTY_LADDER = ("easy", "medium", "hard")
MIN_TIME_LIMIT = 5
MAX_TIME_LIMIT = 60
TIME_LIMIT_STEP = 5


def _unique(items) -> List[str]:
    return list(dict.fromkeys(items))


class QuizPersonalizationService:
    def __init__(self,
                 store: Optional[PreferenceStore] = None,
                 analyzer: Optional[PerformanceAnalyzer] = None,
                 adaptive_min_sessions: int = 3):
        self.store = store if store is not None else PreferenceStore()
        self.analyzer = analyzer if analyzer is not None else PerformanceAnalyzer(store=self.store)
        if self.analyzer.store is None:
            self.analyzer.store = self.store
        self.adaptive_min_sessions = adaptive_min_sessions

    def get_user_preferences(self, user_id: str) -> UserQuizPreferences:
        return self.store.get_preferences(user_id)

    def update_user_preferences(self, user_id: str, updates: Mapping[str, Any]) -> UserQuizPreferences:
        return self.store.update_preferences(user_id, updates)

    def clear_user_data(self, user_id: str) -> None:
        self.store.clear_user_data(user_id)

    def get_cached_performance(self, user_id: str):
        return self.store.get_cached_performance(user_id)

    def analyze_performance(self, user_id: str, sessions: Sequence[QuizSession],
                            quizzes: Optional[Mapping[str, Quiz]] = None):
        return self.analyzer.analyze_performance(user_id, sessions, quizzes)

    def personalize_quiz_request(self,
                                 user_id: str,
                                 base_request: QuizGenerationRequest,
                                 sessions: Sequence[QuizSession] = (),
                                 quizzes: Optional[Mapping[str, Quiz]] = None) -> QuizGenerationRequest:
        """Return a personalized copy of ``base_request``; the original is left untouched."""
        preferences = self.store.get_preferences(user_id)
        performance = self.analyzer.analyze_performance(user_id, sessions, quizzes)

        request = base_request.model_copy(deep=True)

        # The adaptive check counts every session, not only completed ones.
        if preferences.adaptive_difficulty and len(sessions) >= self.adaptive_min_sessions:
            request.difficulty = performance.preferred_difficulty
        elif preferences.preferred_difficulty != "adaptive":
            request.difficulty = preferences.preferred_difficulty

        if not base_request.question_types:
            request.question_types = list(preferences.preferred_question_types)

        if base_request.question_count is None:
            request.question_count = preferences.preferred_question_count

        if base_request.time_limit is None and preferences.preferred_time_limit is not None:
            request.time_limit = preferences.preferred_time_limit

        combined = _unique([*(base_request.focus_topics or []), *preferences.focus_areas])
        if combined:
            request.focus_topics = combined

        if performance.weak_topics:
            request.focus_topics = [*(request.focus_topics or []), *performance.weak_topics]

        logger.debug(
            "Personalized quiz request for %s: difficulty=%s count=%s types=%s",
            user_id, request.difficulty, request.question_count, request.question_types,
        )
        return request

    def get_quiz_recommendations(self,
                                 user_id: str,
                                 sessions: Sequence[QuizSession],
                                 quizzes: Optional[Mapping[str, Quiz]] = None) -> QuizRecommendations:
        performance = self.analyzer.analyze_performance(user_id, sessions, quizzes)
        preferences = self.store.get_preferences(user_id)

        return QuizRecommendations(
            recommended_difficulty=performance.preferred_difficulty,
            recommended_topics=_unique([*performance.weak_topics, *preferences.focus_areas]),
            recommended_question_types=list(preferences.preferred_question_types),
            improvement_areas=list(performance.weak_topics),
            motivational_message=self._motivational_message(
                performance.recent_performance_trend, performance.average_score
            ),
        )

    def update_preferences_from_quiz_completion(self,
                                                user_id: str,
                                                session: QuizSession,
                                                feedback: Optional[QuizFeedback] = None) -> Optional[UserQuizPreferences]:
        """Fold post-quiz feedback into the stored preferences.

        Returns the updated preferences, or ``None`` when nothing changed.
        """
        if feedback is None:
            return None

        preferences = self.store.get_preferences(user_id)
        updates: Dict[str, Any] = {}

        new_difficulty = self._step_difficulty(preferences.preferred_difficulty, feedback.difficulty_rating)
        if new_difficulty is not None:
            updates["preferred_difficulty"] = new_difficulty

        current_limit = preferences.preferred_time_limit
        if current_limit:
            if feedback.time_rating == "too_fast":
                updates["preferred_time_limit"] = min(current_limit + TIME_LIMIT_STEP, MAX_TIME_LIMIT)
            elif feedback.time_rating == "too_slow":
                updates["preferred_time_limit"] = max(current_limit - TIME_LIMIT_STEP, MIN_TIME_LIMIT)

        if feedback.topic_interest:
            merged = _unique([*preferences.focus_areas, *feedback.topic_interest])
            updates["focus_areas"] = merged[-MAX_FOCUS_AREAS:]

        if not updates:
            return None

        logger.debug("Applying quiz feedback for %s (session %s): %s", user_id, session.id, updates)
        return self.store.update_preferences(user_id, updates)

    @staticmethod
    def _step_difficulty(current: str, rating: str) -> Optional[str]:
        # "adaptive" is not on the ladder; feedback leaves it alone.
        if current not in DIFFICULTY_LADDER:
            return None
        index = DIFFICULTY_LADDER.index(current)
        if rating == "too_easy" and index < len(DIFFICULTY_LADDER) - 1:
            return DIFFICULTY_LADDER[index + 1]
        if rating == "too_hard" and index > 0:
            return DIFFICULTY_LADDER[index - 1]
        return None

    @staticmethod
    def _motivational_message(trend: str, average_score: float) -> str:
        if trend == "improving":
            message = "Excellent progress! You're improving with each quiz. "
        elif trend == "declining":
            message = "Don't worry, everyone has ups and downs. Let's focus on improvement! "
        else:
            message = "Keep up the great work! "

        if average_score >= 90:
            message += "You're mastering the material!"
        elif average_score >= 75:
            message += "You're doing well, keep practicing!"
        else:
            message += "Practice makes perfect - you've got this!"
        return message
