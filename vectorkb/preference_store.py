"""
Preference store façade.

Get/set per-user and global preference snapshots. Unseen users get the
cold-start default. Every save passes through the bias controls, so stored
snapshots are always within bounds, and is an upsert that stamps updated_at.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from .bias_control import BiasControls, apply_bias_controls
from .database import get_db_context
from .db_models import DBGlobalPreferences, DBUserPreferences, utcnow
from .models import PreferenceSnapshot
from .redis_client import GLOBAL_PREFERENCE_KEY, delete_cache, get_cache, set_cache, user_preference_key

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Persists PreferenceSnapshots in user_preferences / global_preferences."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        controls: Optional[BiasControls] = None,
        cache_enabled: bool = False,
        cache_ttl: int = 300
    ):
        self.session_factory = session_factory
        self.controls = controls or BiasControls()
        self.cache_enabled = cache_enabled
        self.cache_ttl = cache_ttl

    # =========================================================================
    # Defaults & (de)serialization
    # =========================================================================

    def default_snapshot(self) -> PreferenceSnapshot:
        return PreferenceSnapshot(
            quality_threshold=self.controls.quality_floor,
            diversity_weight=self.controls.diversity_minimum,
        )

    def _from_row(self, weights, updated_at: Optional[datetime]) -> PreferenceSnapshot:
        return PreferenceSnapshot.from_weights(
            weights,
            updated_at=updated_at,
            quality_floor=self.controls.quality_floor,
            diversity_minimum=self.controls.diversity_minimum,
        )

    def _cache_get(self, key: str) -> Optional[PreferenceSnapshot]:
        if not self.cache_enabled:
            return None
        cached = get_cache(key)
        if not cached:
            return None
        updated_at = datetime.fromisoformat(cached["updated_at"]) if cached.get("updated_at") else None
        return self._from_row(cached.get("weights"), updated_at)

    def _cache_put(self, key: str, snapshot: PreferenceSnapshot):
        if not self.cache_enabled:
            return
        set_cache(key, {
            "weights": snapshot.to_weights(),
            "updated_at": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
        }, ttl=self.cache_ttl)

    # =========================================================================
    # User Snapshots
    # =========================================================================

    def find_user(self, user_id: str) -> Optional[PreferenceSnapshot]:
        """Stored snapshot for `user_id`, or None if the user has never been saved."""
        key = user_preference_key(user_id)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        with get_db_context(self.session_factory) as db:
            row = db.get(DBUserPreferences, user_id)
            if row is None:
                return None
            snapshot = self._from_row(row.weights, row.updated_at)

        self._cache_put(key, snapshot)
        return snapshot

    def has_user_snapshot(self, user_id: str) -> bool:
        return self.find_user(user_id) is not None

    def get_user(self, user_id: str) -> PreferenceSnapshot:
        """Stored snapshot or the cold-start default; never raises for unknown users."""
        return self.find_user(user_id) or self.default_snapshot()

    def save_user(self, user_id: str, snapshot: PreferenceSnapshot) -> PreferenceSnapshot:
        controlled = apply_bias_controls(snapshot, self.controls)
        now = utcnow()
        with get_db_context(self.session_factory) as db:
            row = db.get(DBUserPreferences, user_id)
            if row is None:
                row = DBUserPreferences(user_id=user_id)
                db.add(row)
            row.weights = controlled.to_weights()
            row.updated_at = now

        controlled.updated_at = now
        if self.cache_enabled:
            delete_cache(user_preference_key(user_id))
        return controlled

    def list_user_ids(self) -> List[str]:
        with get_db_context(self.session_factory) as db:
            return [user_id for (user_id,) in db.query(DBUserPreferences.user_id).all()]

    def set_user_tag(self, user_id: str, tag: str, value: float) -> PreferenceSnapshot:
        """Directly override one tag weight, bypassing aggregation (admin/tests)."""
        snapshot = self.get_user(user_id)
        snapshot.tag_weights[tag] = value
        return self.save_user(user_id, snapshot)

    def get_user_tag(self, user_id: str, tag: str) -> float:
        return self.get_user(user_id).tag_weights.get(tag, 0.0)

    # =========================================================================
    # Global Snapshot
    # =========================================================================

    def find_global(self) -> Optional[PreferenceSnapshot]:
        cached = self._cache_get(GLOBAL_PREFERENCE_KEY)
        if cached is not None:
            return cached

        with get_db_context(self.session_factory) as db:
            row = db.get(DBGlobalPreferences, True)
            if row is None:
                return None
            snapshot = self._from_row(row.weights, row.updated_at)

        self._cache_put(GLOBAL_PREFERENCE_KEY, snapshot)
        return snapshot

    def get_global(self) -> PreferenceSnapshot:
        return self.find_global() or self.default_snapshot()

    def save_global(self, snapshot: PreferenceSnapshot) -> PreferenceSnapshot:
        controlled = apply_bias_controls(snapshot, self.controls)
        now = utcnow()
        with get_db_context(self.session_factory) as db:
            row = db.get(DBGlobalPreferences, True)
            if row is None:
                row = DBGlobalPreferences(id=True)
                db.add(row)
            row.weights = controlled.to_weights()
            row.updated_at = now

        controlled.updated_at = now
        if self.cache_enabled:
            delete_cache(GLOBAL_PREFERENCE_KEY)
        return controlled

    def get_global_tag(self, tag: str) -> float:
        return self.get_global().tag_weights.get(tag, 0.0)
