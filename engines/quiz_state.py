"""Quiz lifecycle state machine: chat -> generation -> quiz -> results -> review."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from quiz_generation import QuizGenerationError
from schemas import Quiz, QuizGenerationRequest, QuizResult, QuizSession

logger = logging.getLogger(__name__)


class QuizMode(str, Enum):
    CHAT = "chat"
    GENERATION = "generation"
    QUIZ = "quiz"
    RESULTS = "results"
    REVIEW = "review"


ALL_MODES: FrozenSet[QuizMode] = frozenset(QuizMode)

# Source modes each event is expected to fire from. Only enforced in strict mode.
EXPECTED_SOURCES: Dict[str, FrozenSet[QuizMode]] = {
    "set_mode": ALL_MODES,
    "start_generation": ALL_MODES,
    "generation_succeeded": frozenset({QuizMode.GENERATION}),
    "generation_failed": frozenset({QuizMode.GENERATION}),
    "start_quiz": ALL_MODES,
    "update_session": frozenset({QuizMode.QUIZ}),
    "complete_quiz": frozenset({QuizMode.QUIZ}),
    "start_review": frozenset({QuizMode.RESULTS}),
    "return_to_chat": ALL_MODES,
    "set_error": ALL_MODES,
    "clear_error": ALL_MODES,
    "set_history": ALL_MODES,
}


class InvalidTransitionError(Exception):
    """Raised when an event would leave the machine in an inconsistent mode.

    Strict machines also raise it for events fired from an unexpected mode.
    """

    def __init__(self, event: str, mode: QuizMode):
        super().__init__(f"Cannot {event.replace('_', ' ')} while in {mode.value} mode")
        self.event = event
        self.mode = mode


@dataclass(frozen=True)
class QuizState:
    mode: QuizMode = QuizMode.CHAT
    current_quiz: Optional[Quiz] = None
    current_session: Optional[QuizSession] = None
    current_result: Optional[QuizResult] = None
    is_generating: bool = False
    error: Optional[str] = None
    history: Tuple[QuizSession, ...] = field(default_factory=tuple)


class QuizStateMachine:
    """Holds the active quiz, session and result and moves between modes.

    Every event is accepted from any mode unless ``strict`` is set, in which
    case events fired from outside ``EXPECTED_SOURCES`` raise
    ``InvalidTransitionError`` and leave the state untouched.

    Two invariants hold in either setting: chat mode carries no quiz, session
    or result, and quiz mode always has both a quiz and a session.
    """

    def __init__(self, strict: bool = False, initial: Optional[QuizState] = None):
        self.strict = strict
        self._state = initial or QuizState()
        self._listeners: List[Callable[[QuizState, QuizState], None]] = []

    @property
    def state(self) -> QuizState:
        return self._state

    @property
    def mode(self) -> QuizMode:
        return self._state.mode

    @property
    def is_in_quiz_mode(self) -> bool:
        return self._state.mode in {QuizMode.QUIZ, QuizMode.GENERATION, QuizMode.RESULTS, QuizMode.REVIEW}

    @property
    def is_in_chat_mode(self) -> bool:
        return self._state.mode == QuizMode.CHAT

    @property
    def has_active_quiz(self) -> bool:
        return self._state.current_quiz is not None and self._state.current_session is not None

    @property
    def has_error(self) -> bool:
        return self._state.error is not None

    def subscribe(self, listener: Callable[[QuizState, QuizState], None]) -> None:
        """Register ``listener(previous, current)`` to run after every transition."""
        self._listeners.append(listener)

    # Events

    def set_mode(self, mode: QuizMode | str) -> QuizState:
        """Switch mode directly. Entering quiz mode needs an active quiz and session."""
        return self._apply("set_mode", mode=QuizMode(mode), error=None)

    def start_generation(self) -> QuizState:
        return self._apply(
            "start_generation",
            mode=QuizMode.GENERATION,
            is_generating=True,
            error=None,
            current_quiz=None,
            current_session=None,
            current_result=None,
        )

    def generation_succeeded(self, quiz: Quiz, session: QuizSession) -> QuizState:
        return self._apply(
            "generation_succeeded",
            mode=QuizMode.QUIZ,
            is_generating=False,
            current_quiz=quiz,
            current_session=session,
            error=None,
        )

    def generation_failed(self, error: str) -> QuizState:
        return self._apply(
            "generation_failed",
            mode=QuizMode.CHAT,
            is_generating=False,
            error=error,
            current_quiz=None,
            current_session=None,
            current_result=None,
        )

    def start_quiz(self, quiz: Quiz, session: QuizSession) -> QuizState:
        return self._apply(
            "start_quiz",
            mode=QuizMode.QUIZ,
            current_quiz=quiz,
            current_session=session,
            current_result=None,
            error=None,
        )

    def update_session(self, session: QuizSession) -> QuizState:
        return self._apply("update_session", current_session=session)

    def complete_quiz(self, result: QuizResult) -> QuizState:
        return self._apply("complete_quiz", mode=QuizMode.RESULTS, current_result=result, error=None)

    def start_review(self) -> QuizState:
        return self._apply("start_review", mode=QuizMode.REVIEW, error=None)

    def return_to_chat(self) -> QuizState:
        return self._apply(
            "return_to_chat",
            mode=QuizMode.CHAT,
            current_quiz=None,
            current_session=None,
            current_result=None,
            error=None,
        )

    def set_error(self, error: str) -> QuizState:
        return self._apply("set_error", error=error)

    def clear_error(self) -> QuizState:
        return self._apply("clear_error", error=None)

    def set_history(self, history) -> QuizState:
        return self._apply("set_history", history=tuple(history))

    def generate(self,
                 generator: Callable[[QuizGenerationRequest], Tuple[Quiz, QuizSession]],
                 request: QuizGenerationRequest) -> QuizState:
        """Run ``generator`` between the start and success/failure transitions.

        Only ``QuizGenerationError`` is turned into a failed generation; any
        other exception propagates after the machine has fallen back to chat.
        """
        self.start_generation()
        try:
            quiz, session = generator(request)
        except QuizGenerationError as exc:
            logger.warning("Quiz generation failed: %s", exc)
            return self.generation_failed(str(exc))
        except Exception:
            self.generation_failed("Quiz generation failed unexpectedly")
            raise
        return self.generation_succeeded(quiz, session)

    def _apply(self, event: str, **changes) -> QuizState:
        previous = self._state
        if previous.mode not in EXPECTED_SOURCES[event]:
            if self.strict:
                raise InvalidTransitionError(event, previous.mode)
            logger.debug("Accepting %s from unexpected mode %s", event, previous.mode.value)

        state = replace(previous, **changes)
        if state.mode == QuizMode.CHAT:
            state = replace(state, current_quiz=None, current_session=None, current_result=None)
        elif state.mode == QuizMode.QUIZ and (state.current_quiz is None or state.current_session is None):
            raise InvalidTransitionError(event, previous.mode)

        self._state = state
        for listener in self._listeners:
            listener(previous, self._state)
        return self._state
