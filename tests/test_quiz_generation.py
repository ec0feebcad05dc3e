import json
from unittest.mock import patch

import pytest
import requests

from engines.quiz_state import QuizMode, QuizStateMachine
from quiz_generation import QuizGenerationClient, QuizGenerationError, request_body
from schemas import QuizGenerationRequest


class _FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


class _BrokenJsonResponse(_FakeResponse):
    def __init__(self):
        super().__init__(200, None)
        self.text = "<html>oops</html>"

    def json(self):
        raise ValueError("not json")


def _quiz_payload(**extra):
    # Document shape returned by the generation backend
    quiz = {
        "_id": "quiz-42",
        "id": "quiz-42",
        "title": "Photosynthesis",
        "difficulty": "medium",
        "category": "biology",
        "tags": ["plants"],
        "timeLimit": 15,
        "passingScore": 80,
        "sourceFiles": ["notes/plants.md"],
        "isPublic": False,
        "createdAt": "2024-05-01T10:00:00.000Z",
        "questions": [
            {
                "id": "q1",
                "type": "true_false",
                "question": "Plants need light.",
                "correctAnswer": "true",
                "sourceFile": "notes/plants.md",
                "tags": ["photosynthesis"],
                "points": 2,
            }
        ],
        "questionCount": 1,
        "totalPoints": 2,
        "__v": 0,
    }
    quiz.update(extra)
    return quiz


def _session_payload(**extra):
    session = {
        "_id": "session-9",
        "id": "session-9",
        "quizId": "quiz-42",
        "userId": "alice",
        "startedAt": "2024-05-01T10:00:01.000Z",
        "currentQuestionIndex": 0,
        "answers": [],
        "timeSpent": 0,
        "status": "in_progress",
    }
    session.update(extra)
    return session


def test_request_body_uses_backend_field_names():
    request = QuizGenerationRequest(
        source_type="files",
        source_files=["a.md"],
        question_types=["true_false"],
        question_count=0,
        time_limit=20,
        focus_topics=["optics"],
    )

    assert request_body(request) == {
        "sourceType": "files",
        "sourceFiles": ["a.md"],
        "questionTypes": ["true_false"],
        "questionCount": 0,
        "timeLimit": 20,
        "focusTopics": ["optics"],
    }


def test_generate_posts_request_and_parses_envelope():
    response = _FakeResponse(201, {"success": True, "data": {"quiz": _quiz_payload(), "session": _session_payload()}})
    client = QuizGenerationClient("http://generator.local/", timeout=12, user_id="alice")

    with patch("quiz_generation.requests.post", return_value=response) as post:
        quiz, parsed_session = client.generate(QuizGenerationRequest(question_count=5, difficulty="hard"))

    args, kwargs = post.call_args
    assert args[0] == "http://generator.local/api/quiz/generate"
    assert kwargs["json"] == {"sourceType": "content", "difficulty": "hard", "questionCount": 5}
    assert kwargs["headers"] == {"x-user-id": "alice"}
    assert kwargs["timeout"] == 12
    assert quiz.id == "quiz-42"
    assert quiz.passing_score == 80
    assert quiz.time_limit == 15
    assert quiz.source_files == ["notes/plants.md"]
    assert quiz.questions[0].correct_answer == "true"
    assert quiz.questions[0].points == 2
    assert parsed_session.id == "session-9"
    assert parsed_session.quiz_id == "quiz-42"
    assert parsed_session.user_id == "alice"
    assert parsed_session.started_at.tzinfo is not None


def test_missing_session_is_created_for_user():
    response = _FakeResponse(200, {"success": True, "data": {"quiz": _quiz_payload()}})
    client = QuizGenerationClient("http://generator.local")

    with patch("quiz_generation.requests.post", return_value=response) as post:
        quiz, session = client.generate(QuizGenerationRequest(), user_id="bob")

    assert post.call_args.kwargs["headers"] == {"x-user-id": "bob"}
    assert session.quiz_id == quiz.id
    assert session.user_id == "bob"
    assert session.status == "in_progress"


def test_no_user_header_without_user():
    response = _FakeResponse(200, {"success": True, "data": {"quiz": _quiz_payload(userId="owner")}})
    client = QuizGenerationClient("http://generator.local")

    with patch("quiz_generation.requests.post", return_value=response) as post:
        _, session = client.generate(QuizGenerationRequest())

    assert post.call_args.kwargs["headers"] == {}
    assert session.user_id == "owner"


def test_unsuccessful_envelope_raises_with_backend_message():
    response = _FakeResponse(200, {"success": False, "error": "No content available"})

    with patch("quiz_generation.requests.post", return_value=response):
        with pytest.raises(QuizGenerationError, match="No content available"):
            QuizGenerationClient("http://generator.local").generate(QuizGenerationRequest())


def test_http_error_includes_status_and_detail():
    response = _FakeResponse(500, {"success": False, "error": "model overloaded"})

    with patch("quiz_generation.requests.post", return_value=response):
        with pytest.raises(QuizGenerationError) as excinfo:
            QuizGenerationClient("http://generator.local").generate(QuizGenerationRequest())

    assert str(excinfo.value) == "Quiz generation failed (500): model overloaded"


def test_connection_error_is_wrapped():
    with patch("quiz_generation.requests.post", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(QuizGenerationError, match="service unavailable"):
            QuizGenerationClient("http://generator.local").generate(QuizGenerationRequest())


def test_invalid_json_is_reported():
    with patch("quiz_generation.requests.post", return_value=_BrokenJsonResponse()):
        with pytest.raises(QuizGenerationError, match="invalid response"):
            QuizGenerationClient("http://generator.local").generate(QuizGenerationRequest())


def test_incomplete_quiz_is_reported():
    response = _FakeResponse(200, {"success": True, "data": {"quiz": {"questions": "nope"}}})

    with patch("quiz_generation.requests.post", return_value=response):
        with pytest.raises(QuizGenerationError, match="incomplete quiz"):
            QuizGenerationClient("http://generator.local").generate(QuizGenerationRequest())


def test_client_drives_state_machine_to_error_on_failure():
    machine = QuizStateMachine()
    client = QuizGenerationClient("http://generator.local", user_id="alice")

    with patch("quiz_generation.requests.post", side_effect=requests.Timeout("slow")):
        state = machine.generate(client, QuizGenerationRequest())

    assert state.mode == QuizMode.CHAT
    assert state.error.startswith("Quiz generation service unavailable")
