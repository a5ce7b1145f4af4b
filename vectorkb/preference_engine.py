"""
Preference Engine for the vectorkb knowledge base.

Turns feedback on generated SVGs into preference weights that bias future
retrieval:

    feedback -> signal weight -> ledger upsert
             -> per-user recompute (30-day window, >= 10 rows)
             -> aggregate -> bias controls -> EMA blend with stored snapshot -> save
             -> global refresh (7-day window) when the global snapshot is >= 24h old

One engine instance lives for the lifetime of the application and is handed
to callers explicitly (see dependencies.py). The engine is passive: decay,
global refresh and the maintenance sweeps run when a caller or scheduled
task invokes them.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .aggregator import PreferenceAggregator, window_start
from .bias_control import BiasControls, apply_bias_controls
from .config import Settings, settings as default_settings
from .constants import IMPLICIT_SIGNALS, MAX_NOTES_LENGTH, FeedbackSignal
from .db_models import utcnow
from .diagnostics import LearningDiagnostics
from .exceptions import FeedbackValidationError, GenerationEventNotFoundError
from .knowledge_base import KnowledgeBaseManager
from .ledger import FeedbackLedger
from .maintenance import LearningMaintenance
from .models import (
    BatchFeedbackResult,
    BatchItemError,
    BiasReport,
    CleanupResult,
    FeedbackInput,
    FeedbackRecord,
    FeedbackResult,
    GenerationEvent,
    LearningMetrics,
    PreferenceSnapshot,
    Recommendation,
)
from .preference_store import PreferenceStore
from .signals import SignalWeightTable, parse_signal
from .smoothing import blend_snapshots, decay_snapshot, freshness_score

logger = logging.getLogger(__name__)


def _average(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


class PreferenceEngine:
    """
    Learns per-user and global retrieval preferences from generation feedback.
    """

    def __init__(
        self,
        ledger: FeedbackLedger,
        store: PreferenceStore,
        knowledge_base: KnowledgeBaseManager,
        settings: Optional[Settings] = None,
        weight_table: Optional[SignalWeightTable] = None
    ):
        self.settings = settings or default_settings
        self.ledger = ledger
        self.store = store
        self.knowledge_base = knowledge_base
        self.controls = BiasControls.from_settings(self.settings)
        self.weight_table = weight_table or SignalWeightTable(
            self.settings.signal_weight_overrides,
            max_weight=self.settings.max_feedback_weight,
        )
        self.aggregator = PreferenceAggregator(
            quality_floor=self.settings.quality_floor,
            diversity_minimum=self.settings.diversity_minimum,
            min_feedback_count=self.settings.min_feedback_count,
        )
        self.diagnostics = LearningDiagnostics(ledger, store, knowledge_base, self.settings)
        self.maintenance = LearningMaintenance(ledger, knowledge_base, self.settings)

    # =========================================================================
    # Generation Event Logging
    # =========================================================================

    def log_generation_event(
        self,
        prompt: str,
        used_object_ids: List[str],
        user_id: Optional[str] = None,
        intent: Optional[Dict[str, Any]] = None,
        plan: Optional[Dict[str, Any]] = None,
        doc: Optional[Dict[str, Any]] = None,
        model_info: Optional[Dict[str, Any]] = None
    ) -> int:
        event = self.ledger.create_event(
            prompt=prompt,
            used_object_ids=used_object_ids,
            user_id=user_id,
            intent=intent,
            plan=plan,
            doc=doc,
            model_info=model_info,
        )
        logger.debug(f"Logged generation event {event.id} for user={user_id} ({len(used_object_ids)} objects)")
        return event.id

    def get_generation_event(self, event_id: int) -> Optional[GenerationEvent]:
        return self.ledger.get_event(event_id)

    # =========================================================================
    # Feedback Collection
    # =========================================================================

    @staticmethod
    def _validate_feedback(event_id: Optional[int], signal, notes: Optional[str]) -> FeedbackSignal:
        if event_id is None or signal is None or signal == "":
            raise FeedbackValidationError("Invalid feedback data: event_id and signal are required")
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise FeedbackValidationError(
                f"Invalid feedback data: notes exceed {MAX_NOTES_LENGTH} characters", field="notes"
            )
        return parse_signal(signal)

    async def _record_feedback(
        self,
        event_id: int,
        signal: Union[str, FeedbackSignal],
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
        weight: Optional[float] = None
    ) -> Tuple[FeedbackRecord, bool]:
        parsed = self._validate_feedback(event_id, signal, notes)
        applied = self.weight_table.resolve(parsed, weight)

        if self.ledger.get_event(event_id) is None:
            raise GenerationEventNotFoundError(event_id)

        record, created = self.ledger.upsert_feedback(
            event_id=event_id,
            signal=parsed,
            weight=applied,
            user_id=user_id,
            notes=notes,
        )

        logger.info(
            f"Recorded feedback: event={event_id}, user={user_id}, signal={parsed.value}, "
            f"weight={applied}, {'new' if created else 'resubmitted'}"
        )

        preferences_updated = False
        if user_id:
            preferences_updated = await self.update_user_preferences(user_id)

        await self.update_global_preferences_if_needed()

        return record, preferences_updated

    async def submit_feedback(
        self,
        event_id: int,
        signal: Union[str, FeedbackSignal],
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
        weight: Optional[float] = None
    ) -> FeedbackRecord:
        """
        Record feedback on a generation event.

        Raises:
            FeedbackValidationError: event_id or signal missing, or unknown signal
            GenerationEventNotFoundError: the event does not exist
        """
        record, _ = await self._record_feedback(event_id, signal, user_id=user_id, notes=notes, weight=weight)
        return record

    async def submit_implicit_feedback(
        self,
        event_id: int,
        signal: Union[str, FeedbackSignal],
        user_id: Optional[str] = None
    ) -> bool:
        """
        Best-effort submission for automatic signals (exported, regenerated).

        Never raises: failures are logged so the user-facing flow that
        triggered the signal is not interrupted.

        Returns:
            True if the feedback was recorded
        """
        signal_name = signal.value if isinstance(signal, FeedbackSignal) else signal
        try:
            if parse_signal(signal) not in IMPLICIT_SIGNALS:
                raise FeedbackValidationError(
                    f"Signal {signal_name!r} cannot be reported implicitly", field="signal"
                )
            await self.submit_feedback(event_id, signal, user_id=user_id, notes=f"Implicit {signal_name} signal")
            return True
        except Exception as e:
            logger.warning(f"Implicit feedback dropped: event={event_id}, signal={signal_name}, user={user_id}: {e}")
            return False

    async def process_feedback(self, feedback: Union[FeedbackInput, Dict[str, Any]]) -> FeedbackResult:
        """
        Record feedback and report what it touched.

        Tags and object ids not supplied by the caller are resolved from the
        knowledge objects the event used.
        """
        if isinstance(feedback, dict):
            feedback = FeedbackInput(**feedback)

        signal = self._validate_feedback(feedback.event_id, feedback.signal, feedback.notes)
        weight_applied = self.weight_table.resolve(signal, feedback.weight)

        event = self.ledger.get_event(feedback.event_id)
        if event is None:
            raise GenerationEventNotFoundError(feedback.event_id)

        tags_affected = list(feedback.tags or [])
        objects_affected = list(feedback.object_ids or [])
        if not tags_affected or not objects_affected:
            objects = self.ledger.get_objects_by_ids(event.used_object_ids)
            if not tags_affected:
                tags_affected = list(dict.fromkeys(tag for obj in objects for tag in obj.tags))
            if not objects_affected:
                objects_affected = [obj.id for obj in objects]

        _, preferences_updated = await self._record_feedback(
            feedback.event_id,
            signal,
            user_id=feedback.user_id,
            notes=feedback.notes or f"Processed feedback: {signal.value}",
            weight=weight_applied,
        )

        return FeedbackResult(
            preferences_updated=preferences_updated,
            tags_affected=tags_affected,
            objects_affected=objects_affected,
            weight_applied=weight_applied,
        )

    async def process_feedback_batch(
        self,
        feedbacks: Sequence[Union[FeedbackInput, Dict[str, Any]]]
    ) -> BatchFeedbackResult:
        """Process independent feedback items concurrently; one failure never aborts the rest."""
        outcomes = await asyncio.gather(
            *(self.process_feedback(item) for item in feedbacks),
            return_exceptions=True
        )

        results: List[Optional[FeedbackResult]] = []
        errors: List[BatchItemError] = []
        for index, (item, outcome) in enumerate(zip(feedbacks, outcomes)):
            if isinstance(outcome, BaseException):
                event_id = item.get("event_id") if isinstance(item, dict) else item.event_id
                logger.warning(f"Batch feedback item {index} (event={event_id}) failed: {outcome}")
                errors.append(BatchItemError(index=index, event_id=event_id, error=str(outcome)))
                results.append(None)
            else:
                results.append(outcome)

        return BatchFeedbackResult(
            processed=len(feedbacks) - len(errors),
            failed=len(errors),
            results=results,
            errors=errors,
        )

    # =========================================================================
    # Preference Learning
    # =========================================================================

    async def update_user_preferences(self, user_id: str) -> bool:
        """
        Recompute a user's snapshot from the trailing window.

        Returns:
            False when the window is too sparse and the stored snapshot was left unchanged
        """
        since = window_start(self.settings.user_feedback_window_days)
        recent = self.ledger.query_feedback(since, user_id=user_id)

        raw = self.aggregator.aggregate_user(recent)
        if raw is None:
            logger.info(
                f"Not enough feedback for user {user_id}: {len(recent)} rows "
                f"(need {self.settings.min_feedback_count})"
            )
            return False

        controlled = apply_bias_controls(raw, self.controls)
        current = self.store.get_user(user_id)
        updated = self.store.save_user(
            user_id,
            blend_snapshots(current, controlled, self.settings.ema_alpha)
        )

        logger.info(
            f"Updated preferences for user {user_id}: "
            f"tags={len(updated.tag_weights)}, "
            f"avg_tag_weight={_average(updated.tag_weights.values()):.3f}, "
            f"quality_threshold={updated.quality_threshold:.3f}"
        )
        return True

    async def update_global_preferences_if_needed(self) -> bool:
        """Refresh the global snapshot if it is missing or older than the refresh interval."""
        current = self.store.find_global()
        if current is not None and current.updated_at is not None:
            hours_since_update = (utcnow() - current.updated_at).total_seconds() / 3600
            if hours_since_update < self.settings.global_refresh_hours:
                return False

        return await self.update_global_preferences()

    async def update_global_preferences(self) -> bool:
        """
        Recompute the global snapshot from all users' feedback in the global window.

        Replaces the stored snapshot rather than blending with it, so repeated
        refreshes over the same data give the same result.
        """
        since = window_start(self.settings.global_feedback_window_days)
        pool = self.ledger.query_feedback(since)

        raw = self.aggregator.aggregate_global(pool)
        if raw is None:
            logger.debug("Global feedback pool is empty; global preferences unchanged")
            return False

        updated = self.store.save_global(apply_bias_controls(raw, self.controls))

        logger.info(
            f"Updated global preferences: tags={len(updated.tag_weights)}, "
            f"avg_tag_weight={_average(updated.tag_weights.values()):.3f}, "
            f"quality_threshold={updated.quality_threshold:.3f}, feedback_rows={len(pool)}"
        )
        return True

    # =========================================================================
    # Preference Access
    # =========================================================================

    def get_user_preferences(self, user_id: str) -> PreferenceSnapshot:
        return self.store.get_user(user_id)

    def get_global_preferences(self) -> PreferenceSnapshot:
        return self.store.get_global()

    def get_user_preference(self, user_id: str, tag: str) -> float:
        return self.store.get_user_tag(user_id, tag)

    def get_global_preference(self, tag: str) -> float:
        return self.store.get_global_tag(tag)

    def set_user_preference(self, user_id: str, tag: str, value: float) -> PreferenceSnapshot:
        return self.store.set_user_tag(user_id, tag, value)

    # =========================================================================
    # Decay & Freshness
    # =========================================================================

    def get_preference_age(self, user_id: str) -> Optional[float]:
        """Days since the user's snapshot was last saved; None if never saved."""
        snapshot = self.store.find_user(user_id)
        if snapshot is None or snapshot.updated_at is None:
            return None
        return (utcnow() - snapshot.updated_at).total_seconds() / 86400

    def calculate_freshness_score(self, age_days: float) -> float:
        return freshness_score(age_days, self.settings.freshness_half_life_days)

    async def apply_preference_decay(self, user_id: str) -> bool:
        """
        Cool off a user's tag weights if the snapshot has gone stale.

        Only snapshots strictly older than decay_min_age_days are decayed.

        Returns:
            True if the snapshot was decayed and saved
        """
        age = self.get_preference_age(user_id)
        if age is None or age <= self.settings.decay_min_age_days:
            return False

        snapshot = self.store.get_user(user_id)
        self.store.save_user(user_id, decay_snapshot(snapshot, self.settings.decay_factor))
        logger.info(f"Decayed preferences for user {user_id} (age {age:.1f} days, factor {self.settings.decay_factor})")
        return True

    async def decay_all_user_preferences(self) -> int:
        decayed = 0
        for user_id in self.store.list_user_ids():
            if await self.apply_preference_decay(user_id):
                decayed += 1
        logger.info(f"Preference decay run complete: {decayed} users decayed")
        return decayed

    # =========================================================================
    # Recommendations, Diagnostics & Maintenance
    # =========================================================================

    async def get_recommendations(
        self,
        user_id: str,
        prompt: str,
        ensure_diversity: bool = False
    ) -> List[Recommendation]:
        return await self.diagnostics.get_recommendations(user_id, prompt, ensure_diversity=ensure_diversity)

    async def analyze_bias(self, user_id: str) -> BiasReport:
        return await self.diagnostics.analyze_bias(user_id)

    def calculate_diversity_score(self, weights: Dict[str, float]) -> float:
        return self.diagnostics.calculate_diversity_score(weights)

    async def get_learning_metrics(self, user_id: Optional[str] = None) -> LearningMetrics:
        return await self.diagnostics.get_learning_metrics(user_id)

    async def deprecate_stale_objects(self) -> int:
        return await self.maintenance.deprecate_stale_objects()

    async def cleanup_old_data(self, retention_days: Optional[int] = None) -> CleanupResult:
        return await self.maintenance.cleanup_old_data(retention_days)
