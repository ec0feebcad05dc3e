"""Per-user quiz preference stores and the performance-metrics cache."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, Mapping, Optional

from schemas import PerformanceMetrics, UserQuizPreferences, utcnow

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Thread-safe in-memory store keyed by user id.

    Holds one ``UserQuizPreferences`` and at most one cached
    ``PerformanceMetrics`` per user. Values handed out are copies, so callers
    cannot change stored state without going through ``update_preferences``.
    """

    def __init__(self):
        self._preferences: Dict[str, UserQuizPreferences] = {}
        self._performance: Dict[str, PerformanceMetrics] = {}
        self._lock = Lock()

    def get_preferences(self, user_id: str) -> UserQuizPreferences:
        """Return stored preferences, creating and saving defaults on first access."""
        with self._lock:
            existing = self._load(user_id)
            if existing is None:
                existing = UserQuizPreferences(user_id=user_id)
                self._save(existing)
                logger.debug("Created default quiz preferences for %s", user_id)
            return existing.model_copy(deep=True)

    def update_preferences(self, user_id: str, updates: Mapping[str, Any]) -> UserQuizPreferences:
        """Merge ``updates`` over the current preferences and stamp ``last_updated``.

        Fields missing from ``updates`` are left unchanged. No range checks are
        applied here; callers own bounds such as the time-limit clamp.
        """
        changes = {key: value for key, value in updates.items() if key not in {"user_id", "last_updated"}}
        unknown = set(changes) - set(UserQuizPreferences.model_fields)
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
        with self._lock:
            current = self._load(user_id) or UserQuizPreferences(user_id=user_id)
            merged = current.model_copy(update={**changes, "last_updated": utcnow()}, deep=True)
            self._save(merged)
            return merged.model_copy(deep=True)

    def clear_user_data(self, user_id: str) -> None:
        with self._lock:
            self._delete(user_id)
            self._performance.pop(user_id, None)
        logger.info("Cleared quiz personalization data for %s", user_id)

    def cache_performance(self, user_id: str, metrics: PerformanceMetrics) -> None:
        with self._lock:
            self._performance[user_id] = metrics.model_copy(deep=True)

    def get_cached_performance(self, user_id: str) -> Optional[PerformanceMetrics]:
        with self._lock:
            cached = self._performance.get(user_id)
            return cached.model_copy(deep=True) if cached is not None else None

    # Storage hooks, called with the lock held.
    def _load(self, user_id: str) -> Optional[UserQuizPreferences]:
        return self._preferences.get(user_id)

    def _save(self, preferences: UserQuizPreferences) -> None:
        self._preferences[preferences.user_id] = preferences

    def _delete(self, user_id: str) -> None:
        self._preferences.pop(user_id, None)


class SQLitePreferenceStore(PreferenceStore):
    """Preference store persisting preferences through ``db``.

    Performance metrics stay in memory; they are recomputable from session
    history at any time.
    """

    def __init__(self, db_module=None):
        super().__init__()
        if db_module is None:
            import db as db_module
        self._db = db_module

    def _load(self, user_id: str) -> Optional[UserQuizPreferences]:
        return self._db.get_quiz_preferences(user_id)

    def _save(self, preferences: UserQuizPreferences) -> None:
        self._db.upsert_quiz_preferences(preferences)

    def _delete(self, user_id: str) -> None:
        self._db.delete_quiz_preferences(user_id)
