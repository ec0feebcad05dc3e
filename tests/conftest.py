import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Fresh pool per test so no connection points at a previous database
    previous_pool = db._pool
    db._pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    db.init()
    yield str(db_path)
    db._pool.close_all()
    db._pool = previous_pool


@pytest.fixture
def make_session():
    """Build completed sessions with deterministic start times."""
    from schemas import QuizAnswer, QuizSession

    base = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(percentage=None, *, status="completed", answers=1, time_spent=60.0,
              user_id="alice", quiz_id="quiz-1", correct=None, question_ids=None):
        index = counter["n"]
        counter["n"] += 1
        started = base + timedelta(hours=index)
        ids = question_ids or [f"q{i}" for i in range(answers)]
        flags = correct if correct is not None else [True] * len(ids)
        return QuizSession(
            id=f"session-{index}",
            quiz_id=quiz_id,
            user_id=user_id,
            started_at=started,
            completed_at=started + timedelta(minutes=10) if status != "in_progress" else None,
            answers=[
                QuizAnswer(question_id=qid, user_answer="a", is_correct=flag, time_spent=time_spent / len(ids))
                for qid, flag in zip(ids, flags)
            ],
            percentage=percentage,
            time_spent=time_spent,
            status=status,
        )

    return _make


@pytest.fixture
def personalization(monkeypatch):
    """Swap the app's module-level service for a fresh one backed by ``db``."""
    import app
    import db
    from engines.personalization import QuizPersonalizationService
    from engines.preferences import SQLitePreferenceStore

    service = QuizPersonalizationService(store=SQLitePreferenceStore(db))
    monkeypatch.setattr(app, "PERSONALIZATION", service)
    return service
