import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from db_pool import SQLiteConnectionPool
from schemas import Quiz, QuizSession, UserQuizPreferences

DB_PATH = os.getenv("DB_PATH", "quiz.db")

_SESSION_STATUSES = {"in_progress", "completed", "abandoned"}

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def _utc_iso(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC ISO text so stored timestamps sort chronologically; naive values count as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS quiz_preferences (
              user_id      TEXT PRIMARY KEY,
              prefs_json   TEXT NOT NULL,
              updated_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS quizzes (
              quiz_id      TEXT PRIMARY KEY,
              user_id      TEXT,
              category     TEXT,
              difficulty   TEXT,
              quiz_json    TEXT NOT NULL,
              created_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_quizzes_user ON quizzes(user_id);

            CREATE TABLE IF NOT EXISTS quiz_sessions (
              session_id   TEXT PRIMARY KEY,
              quiz_id      TEXT NOT NULL,
              user_id      TEXT NOT NULL,
              status       TEXT NOT NULL,
              started_at   TEXT NOT NULL,
              completed_at TEXT,
              session_json TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_quiz_sessions_user ON quiz_sessions(user_id, started_at);
            """
        )
        con.commit()


# -------------- preferences --------------
def get_quiz_preferences(user_id: str) -> Optional[UserQuizPreferences]:
    rows = _query("SELECT prefs_json FROM quiz_preferences WHERE user_id = ?", (user_id,))
    if not rows:
        return None
    return UserQuizPreferences.model_validate_json(rows[0]["prefs_json"])


def upsert_quiz_preferences(preferences: UserQuizPreferences) -> None:
    _exec(
        """
        INSERT INTO quiz_preferences(user_id, prefs_json, updated_at)
        VALUES (?,?,CURRENT_TIMESTAMP)
        ON CONFLICT(user_id) DO UPDATE SET
          prefs_json=excluded.prefs_json,
          updated_at=CURRENT_TIMESTAMP
        """,
        (preferences.user_id, preferences.model_dump_json()),
    )


def delete_quiz_preferences(user_id: str) -> int:
    cur = _exec("DELETE FROM quiz_preferences WHERE user_id = ?", (user_id,))
    return cur.rowcount if cur is not None else 0


# -------------- quizzes --------------
def save_quiz(quiz: Quiz) -> None:
    _exec(
        """
        INSERT INTO quizzes(quiz_id, user_id, category, difficulty, quiz_json)
        VALUES (?,?,?,?,?)
        ON CONFLICT(quiz_id) DO UPDATE SET
          user_id=excluded.user_id,
          category=excluded.category,
          difficulty=excluded.difficulty,
          quiz_json=excluded.quiz_json
        """,
        (quiz.id, quiz.user_id, quiz.category, quiz.difficulty, quiz.model_dump_json()),
    )


def get_quiz(quiz_id: str) -> Optional[Quiz]:
    rows = _query("SELECT quiz_json FROM quizzes WHERE quiz_id = ?", (quiz_id,))
    return Quiz.model_validate_json(rows[0]["quiz_json"]) if rows else None


def get_quizzes(quiz_ids: Iterable[str]) -> Dict[str, Quiz]:
    ids = sorted(set(quiz_ids))
    if not ids:
        return {}
    placeholders = ",".join("?" for _ in ids)
    rows = _query(f"SELECT quiz_json FROM quizzes WHERE quiz_id IN ({placeholders})", ids)
    quizzes = (Quiz.model_validate_json(row["quiz_json"]) for row in rows)
    return {quiz.id: quiz for quiz in quizzes}


# -------------- sessions --------------
def save_quiz_session(session: QuizSession) -> None:
    _exec(
        """
        INSERT INTO quiz_sessions(session_id, quiz_id, user_id, status, started_at, completed_at, session_json)
        VALUES (?,?,?,?,?,?,?)
        ON CONFLICT(session_id) DO UPDATE SET
          status=excluded.status,
          completed_at=excluded.completed_at,
          session_json=excluded.session_json
        """,
        (
            session.id,
            session.quiz_id,
            session.user_id,
            session.status,
            _utc_iso(session.started_at),
            _utc_iso(session.completed_at),
            session.model_dump_json(),
        ),
    )


def get_quiz_session(session_id: str, user_id: Optional[str] = None) -> Optional[QuizSession]:
    sql = "SELECT session_json FROM quiz_sessions WHERE session_id = ?"
    params: List[Any] = [session_id]
    if user_id is not None:
        sql += " AND user_id = ?"
        params.append(user_id)
    rows = _query(sql, params)
    return QuizSession.model_validate_json(rows[0]["session_json"]) if rows else None


def list_quiz_sessions(
    user_id: str,
    *,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    newest_first: bool = False,
) -> List[QuizSession]:
    """Return a user's sessions ordered by start time (oldest first by default)."""
    if status is not None and status not in _SESSION_STATUSES:
        raise ValueError(f"Unknown session status: {status}")
    sql = "SELECT session_json FROM quiz_sessions WHERE user_id = ?"
    params: List[Any] = [user_id]
    if status is not None:
        sql += " AND status = ?"
        params.append(status)
    sql += " ORDER BY started_at " + ("DESC" if newest_first else "ASC")
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params.extend([int(limit), int(offset)])
    return [QuizSession.model_validate_json(row["session_json"]) for row in _query(sql, params)]


def count_quiz_sessions(user_id: str, status: Optional[str] = None) -> int:
    sql = "SELECT COUNT(*) AS n FROM quiz_sessions WHERE user_id = ?"
    params: List[Any] = [user_id]
    if status is not None:
        sql += " AND status = ?"
        params.append(status)
    return int(_query(sql, params)[0]["n"])


# -------------- privacy --------------
def export_user_data(user_id: str) -> Dict[str, Any]:
    preferences = get_quiz_preferences(user_id)
    return {
        "user_id": user_id,
        "quiz_preferences": [preferences.model_dump(mode="json")] if preferences else [],
        "quiz_sessions": [s.model_dump(mode="json") for s in list_quiz_sessions(user_id)],
        "quizzes": [
            json.loads(row["quiz_json"])
            for row in _query("SELECT quiz_json FROM quizzes WHERE user_id = ?", (user_id,))
        ],
    }


def delete_user_data(user_id: str) -> Dict[str, int]:
    user_tables: Sequence[str] = ["quiz_sessions", "quizzes", "quiz_preferences"]
    counts: Dict[str, int] = {}
    with _conn() as con:
        for table in user_tables:
            cur = con.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
            counts[table] = cur.rowcount if cur is not None else 0
        con.commit()
    return counts

