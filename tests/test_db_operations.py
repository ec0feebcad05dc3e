"""Test cases for db operations."""

from datetime import datetime, timedelta, timezone

import pytest

import db
from schemas import Quiz, QuizSession, UserQuizPreferences


def _session(index, *, user_id="alice", status="completed", quiz_id="quiz-1"):
    started = datetime(2024, 4, 1, tzinfo=timezone.utc) + timedelta(hours=index)
    return QuizSession(
        id=f"session-{index}",
        quiz_id=quiz_id,
        user_id=user_id,
        started_at=started,
        completed_at=started + timedelta(minutes=5) if status != "in_progress" else None,
        percentage=80 if status == "completed" else None,
        status=status,
    )


def test_preferences_round_trip(temp_db):
    assert db.get_quiz_preferences("alice") is None

    prefs = UserQuizPreferences(user_id="alice", preferred_difficulty="hard", focus_areas=["optics"])
    db.upsert_quiz_preferences(prefs)
    db.upsert_quiz_preferences(prefs.model_copy(update={"preferred_question_count": 4}))

    stored = db.get_quiz_preferences("alice")
    assert stored.preferred_difficulty == "hard"
    assert stored.preferred_question_count == 4
    assert stored.focus_areas == ["optics"]

    assert db.delete_quiz_preferences("alice") == 1
    assert db.get_quiz_preferences("alice") is None


def test_quizzes_are_stored_and_fetched_in_bulk(temp_db):
    db.save_quiz(Quiz(id="quiz-1", title="Cells", category="biology"))
    db.save_quiz(Quiz(id="quiz-2", title="Forces", category="physics"))

    assert db.get_quiz("quiz-1").category == "biology"
    assert db.get_quiz("missing") is None

    found = db.get_quizzes(["quiz-2", "quiz-1", "quiz-2", "missing"])
    assert set(found) == {"quiz-1", "quiz-2"}
    assert db.get_quizzes([]) == {}


def test_session_upsert_keeps_one_row(temp_db):
    session = _session(0, status="in_progress")
    db.save_quiz_session(session)

    session.status = "completed"
    session.percentage = 90
    db.save_quiz_session(session)

    assert db.count_quiz_sessions("alice") == 1
    stored = db.get_quiz_session("session-0")
    assert stored.status == "completed"
    assert stored.percentage == 90


def test_get_session_scoped_to_user(temp_db):
    db.save_quiz_session(_session(0))

    assert db.get_quiz_session("session-0", user_id="alice") is not None
    assert db.get_quiz_session("session-0", user_id="mallory") is None


def test_list_sessions_order_filter_and_paging(temp_db):
    for index, status in enumerate(["completed", "abandoned", "completed", "in_progress", "completed"]):
        db.save_quiz_session(_session(index, status=status))
    db.save_quiz_session(_session(9, user_id="bob"))

    oldest_first = db.list_quiz_sessions("alice")
    assert [s.id for s in oldest_first] == [f"session-{i}" for i in range(5)]

    completed = db.list_quiz_sessions("alice", status="completed", newest_first=True)
    assert [s.id for s in completed] == ["session-4", "session-2", "session-0"]

    page_two = db.list_quiz_sessions("alice", limit=2, offset=2, newest_first=True)
    assert [s.id for s in page_two] == ["session-2", "session-1"]

    assert db.count_quiz_sessions("alice") == 5
    assert db.count_quiz_sessions("alice", status="completed") == 3


def test_list_sessions_rejects_unknown_status(temp_db):
    with pytest.raises(ValueError):
        db.list_quiz_sessions("alice", status="paused")


def test_delete_user_data_reports_counts(temp_db):
    db.upsert_quiz_preferences(UserQuizPreferences(user_id="alice"))
    db.save_quiz(Quiz(id="quiz-1", title="Cells", user_id="alice"))
    db.save_quiz_session(_session(0))
    db.save_quiz_session(_session(1))
    db.save_quiz_session(_session(2, user_id="bob"))

    counts = db.delete_user_data("alice")

    assert counts == {"quiz_sessions": 2, "quizzes": 1, "quiz_preferences": 1}
    assert db.count_quiz_sessions("bob") == 1


def test_sessions_ordered_by_instant_across_offsets(temp_db):
    plus_five = timezone(timedelta(hours=5))
    starts = {
        # 05:00 UTC
        "session-east": datetime(2024, 4, 1, 10, 0, tzinfo=plus_five),
        "session-utc": datetime(2024, 4, 1, 6, 0, tzinfo=timezone.utc),
        # naive values are read as UTC: 04:30
        "session-naive": datetime(2024, 4, 1, 4, 30),
        "session-micro": datetime(2024, 4, 1, 6, 0, 0, 500, tzinfo=timezone.utc),
    }
    for session_id, started in starts.items():
        db.save_quiz_session(QuizSession(id=session_id, quiz_id="quiz-1", user_id="alice", started_at=started))

    ordered = [s.id for s in db.list_quiz_sessions("alice")]
    assert ordered == ["session-naive", "session-east", "session-utc", "session-micro"]

    newest = [s.id for s in db.list_quiz_sessions("alice", newest_first=True, limit=2)]
    assert newest == ["session-micro", "session-utc"]

    with db._conn() as con:
        stored = con.execute(
            "SELECT started_at FROM quiz_sessions WHERE session_id = ?", ("session-east",)
        ).fetchone()["started_at"]
    assert stored == "2024-04-01T05:00:00.000000+00:00"
