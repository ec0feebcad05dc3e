"""Pydantic schemas for quizzes, sessions, preferences and analytics payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal
from uuid import uuid4

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "Difficulty",
    "PreferredDifficulty",
    "QuizDifficulty",
    "QuestionType",
    "SessionStatus",
    "Trend",
    "QuizQuestion",
    "Quiz",
    "QuizAnswer",
    "QuizSession",
    "QuizResult",
    "QuizGenerationRequest",
    "UserQuizPreferences",
    "PreferencesUpdate",
    "PerformanceMetrics",
    "QuizFeedback",
    "QuizRecommendations",
    "CategoryStat",
    "DifficultyStat",
    "ActivityDay",
    "QuizStatistics",
    "utcnow",
]

Difficulty = Literal["easy", "medium", "hard"]
PreferredDifficulty = Literal["easy", "medium", "hard", "adaptive"]
QuizDifficulty = Literal["easy", "medium", "hard", "mixed"]
QuestionType = Literal["multiple_choice", "true_false", "fill_in_blank"]
SessionStatus = Literal["in_progress", "completed", "abandoned"]
Trend = Literal["improving", "declining", "stable"]

MAX_FOCUS_AREAS = 10

# Wire models also accept the camelCase keys used by the quiz generation
# backend; output keeps the field names.
CAMEL_INPUT = ConfigDict(
    alias_generator=AliasGenerator(validation_alias=to_camel),
    populate_by_name=True,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class QuizQuestion(BaseModel):
    model_config = CAMEL_INPUT

    id: str = Field(default_factory=_new_id)
    type: QuestionType
    question: str
    options: list[str] | None = Field(
        default=None,
        description="Answer options for multiple choice questions.",
    )
    correct_answer: str | int = Field(
        description="Text answer, or the option index for multiple choice questions.",
    )
    explanation: str | None = None
    difficulty: Difficulty = "medium"
    source_file: str | None = None
    tags: list[str] = Field(
        default_factory=list,
        description="Topic tags; used to attribute answers to topics during analysis.",
    )
    points: int = Field(default=1, ge=0)


class Quiz(BaseModel):
    model_config = CAMEL_INPUT

    id: str = Field(default_factory=_new_id)
    title: str
    description: str | None = None
    questions: list[QuizQuestion] = Field(default_factory=list)
    difficulty: QuizDifficulty = "medium"
    category: str = "general"
    tags: list[str] = Field(default_factory=list)
    time_limit: int | None = Field(default=None, ge=1, description="Time limit in minutes.")
    passing_score: float = Field(default=70.0, ge=0.0, le=100.0, description="Pass mark as a percentage.")
    source_files: list[str] = Field(default_factory=list)
    user_id: str | None = None
    is_public: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    def question_by_id(self, question_id: str) -> QuizQuestion | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class QuizAnswer(BaseModel):
    model_config = CAMEL_INPUT

    question_id: str
    user_answer: str | int
    is_correct: bool
    time_spent: float = Field(default=0.0, ge=0.0, description="Seconds spent on the question.")
    answered_at: datetime = Field(default_factory=utcnow)


class QuizSession(BaseModel):
    model_config = CAMEL_INPUT

    id: str = Field(default_factory=_new_id)
    quiz_id: str
    user_id: str
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    current_question_index: int = Field(default=0, ge=0)
    answers: list[QuizAnswer] = Field(default_factory=list)
    score: float | None = None
    percentage: float | None = Field(
        default=None,
        description="Score as a percentage; only meaningful once the session is completed.",
    )
    time_spent: float = Field(default=0.0, ge=0.0, description="Total seconds spent in the session.")
    status: SessionStatus = "in_progress"


class QuizResult(BaseModel):
    session_id: str
    quiz_id: str
    user_id: str
    score: float
    total_questions: int
    correct_answers: int
    percentage: float
    time_spent: float
    completed_at: datetime
    answers: list[QuizAnswer] = Field(default_factory=list)
    passed: bool
    difficulty: str
    category: str


class QuizGenerationRequest(BaseModel):
    """Parameters sent to the quiz generation backend.

    The personalized fields (``difficulty``, ``question_types``,
    ``question_count``, ``time_limit`` and ``focus_topics``) use ``None`` to
    mean "not specified by the caller". Any other value, including ``0`` or an
    empty list, is an explicit request.
    """

    model_config = CAMEL_INPUT

    source_type: Literal["chromadb", "files", "content"] = "content"
    source_files: list[str] | None = None
    content: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    difficulty: QuizDifficulty | None = None
    question_types: list[QuestionType] | None = None
    question_count: int | None = Field(default=None, ge=0)
    time_limit: int | None = Field(default=None, ge=0, description="Time limit in minutes.")
    focus_topics: list[str] | None = None


class UserQuizPreferences(BaseModel):
    user_id: str
    preferred_difficulty: PreferredDifficulty = "medium"
    preferred_question_types: list[QuestionType] = Field(
        default_factory=lambda: ["multiple_choice", "true_false"],
    )
    preferred_question_count: int = Field(default=10, ge=1)
    preferred_time_limit: int | None = Field(default=15, ge=1, description="Preferred time limit in minutes.")
    focus_areas: list[str] = Field(default_factory=list)
    adaptive_difficulty: bool = Field(
        default=True,
        description="Recompute difficulty from recent performance instead of using preferred_difficulty.",
    )
    show_explanations: bool = True
    allow_review: bool = True
    last_updated: datetime = Field(default_factory=utcnow)


class PreferencesUpdate(BaseModel):
    """Partial update body; only fields that were sent are applied."""

    preferred_difficulty: PreferredDifficulty | None = None
    preferred_question_types: list[QuestionType] | None = None
    preferred_question_count: int | None = Field(default=None, ge=1)
    preferred_time_limit: int | None = Field(default=None, ge=1)
    focus_areas: list[str] | None = Field(default=None, max_length=MAX_FOCUS_AREAS)
    adaptive_difficulty: bool | None = None
    show_explanations: bool | None = None
    allow_review: bool | None = None

    def as_updates(self) -> Dict[str, Any]:
        # An explicit null only clears the time limit; other fields are not nullable.
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "preferred_time_limit"
        }


class PerformanceMetrics(BaseModel):
    average_score: float = 0.0
    average_time_per_question: float = 0.0
    strong_topics: list[str] = Field(default_factory=list)
    weak_topics: list[str] = Field(default_factory=list)
    preferred_difficulty: Difficulty = "medium"
    recent_performance_trend: Trend = "stable"


class QuizFeedback(BaseModel):
    difficulty_rating: Literal["too_easy", "just_right", "too_hard"] = "just_right"
    time_rating: Literal["too_fast", "just_right", "too_slow"] = "just_right"
    topic_interest: list[str] = Field(default_factory=list)


class QuizRecommendations(BaseModel):
    recommended_difficulty: Difficulty
    recommended_topics: list[str] = Field(default_factory=list)
    recommended_question_types: list[QuestionType] = Field(default_factory=list)
    improvement_areas: list[str] = Field(default_factory=list)
    motivational_message: str


class CategoryStat(BaseModel):
    category: str
    quizzes: int
    average_score: float
    last_attempt: datetime | None = None


class DifficultyStat(BaseModel):
    difficulty: str
    quizzes: int
    average_score: float
    average_time: float


class ActivityDay(BaseModel):
    date: str = Field(description="ISO calendar date (YYYY-MM-DD).")
    quizzes: int
    score: float
    time_spent: float


class QuizStatistics(BaseModel):
    user_id: str
    total_quizzes: int = 0
    total_questions: int = 0
    correct_answers: int = 0
    average_score: float = 0.0
    average_time_per_question: float = 0.0
    best_score: float = 0.0
    worst_score: float = 0.0
    streak_current: int = 0
    streak_longest: int = 0
    category_stats: List[CategoryStat] = Field(default_factory=list)
    difficulty_stats: List[DifficultyStat] = Field(default_factory=list)
    recent_activity: List[ActivityDay] = Field(default_factory=list)
