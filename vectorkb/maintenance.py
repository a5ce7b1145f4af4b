"""
Maintenance sweeps for the learning loop.

Both sweeps are triggered externally (admin endpoints or Celery beat):
- deprecate_stale_objects: retire knowledge objects with sustained negative feedback
- cleanup_old_data: purge events and feedback past the retention horizon
"""

import logging
from datetime import timedelta
from typing import Optional

from .aggregator import window_start
from .config import Settings, settings as default_settings
from .constants import SYSTEM_USER_ID, KnowledgeObjectStatus
from .db_models import DBGenerationEvent, DBGenerationFeedback, utcnow
from .knowledge_base import KnowledgeBaseManager
from .ledger import FeedbackLedger
from .models import CleanupResult

logger = logging.getLogger(__name__)


class LearningMaintenance:
    def __init__(
        self,
        ledger: FeedbackLedger,
        knowledge_base: KnowledgeBaseManager,
        settings: Optional[Settings] = None
    ):
        self.ledger = ledger
        self.knowledge_base = knowledge_base
        self.settings = settings or default_settings

    async def deprecate_stale_objects(self) -> int:
        """
        Deprecate objects whose recent average feedback weight is below the
        threshold with enough contributing rows. Objects that are already
        deprecated are skipped.

        A failure on one object is logged and the sweep moves on.

        Returns:
            Number of objects deprecated
        """
        since = window_start(self.settings.deprecation_window_days)
        candidates = [
            stat for stat in self.ledger.object_feedback_stats(since)
            if stat.feedback_count >= self.settings.deprecation_min_feedback
            and stat.average_weight < self.settings.deprecation_weight_threshold
        ]
        already_deprecated = {
            obj.id for obj in self.ledger.get_objects_by_ids([stat.object_id for stat in candidates])
            if obj.status == KnowledgeObjectStatus.DEPRECATED
        }
        candidates = [stat for stat in candidates if stat.object_id not in already_deprecated]

        deprecated = 0
        for stat in candidates:
            try:
                self.knowledge_base.deprecate_object(
                    stat.object_id,
                    user_id=SYSTEM_USER_ID,
                    reason=(
                        "Automatically deprecated due to negative feedback "
                        f"(avg: {stat.average_weight:.2f})"
                    ),
                )
                deprecated += 1
            except Exception as e:
                logger.error(f"Failed to deprecate object {stat.object_id}: {e}", exc_info=True)

        logger.info(f"Deprecation sweep complete: {deprecated}/{len(candidates)} candidates deprecated")
        return deprecated

    async def cleanup_old_data(self, retention_days: Optional[int] = None) -> CleanupResult:
        """Delete events and feedback older than the retention horizon."""
        days = retention_days if retention_days is not None else self.settings.retention_days
        cutoff = utcnow() - timedelta(days=days)

        feedback = self.ledger.delete_older_than(DBGenerationFeedback, cutoff)
        events = self.ledger.delete_older_than(DBGenerationEvent, cutoff)

        logger.info(f"Cleanup complete: {events} events and {feedback} feedback rows older than {days} days removed")
        return CleanupResult(events=events, feedback=feedback)
