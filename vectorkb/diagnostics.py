"""
Recommendation and learning-health diagnostics.

Read-only over the preference store and the ledger: ranked tag
recommendations with a diversity guarantee, bias analysis, and the metrics
exposed for monitoring the learning loop.
"""

import logging
import math
from typing import Dict, List, Optional

from .aggregator import window_start
from .config import Settings, settings as default_settings
from .constants import RECOMMENDATION_SOURCE_GLOBAL, RECOMMENDATION_SOURCE_USER
from .db_models import utcnow
from .knowledge_base import KnowledgeBaseManager
from .ledger import FeedbackLedger
from .models import BiasReport, LearningMetrics, PreferenceSnapshot, Recommendation
from .preference_store import PreferenceStore

logger = logging.getLogger(__name__)

DIVERSIFY_ACTION = "diversify"


def _top_tags(tag_weights: Dict[str, float], limit: int) -> List[str]:
    ranked = sorted(tag_weights.items(), key=lambda item: (-item[1], item[0]))
    return [tag for tag, _ in ranked[:limit]]


def _population_stddev(values: List[float]) -> float:
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


class LearningDiagnostics:
    """Recommendation surface and health metrics for the preference engine."""

    def __init__(
        self,
        ledger: FeedbackLedger,
        store: PreferenceStore,
        knowledge_base: KnowledgeBaseManager,
        settings: Optional[Settings] = None
    ):
        self.ledger = ledger
        self.store = store
        self.knowledge_base = knowledge_base
        self.settings = settings or default_settings

    # =========================================================================
    # Recommendations
    # =========================================================================

    def _global_recommendation(self) -> Recommendation:
        snapshot = self.store.get_global()
        tags = _top_tags(snapshot.tag_weights, self.settings.global_recommendation_count)
        if tags:
            weight = sum(snapshot.tag_weights[t] for t in tags) / len(tags)
            return Recommendation(tags=tags, source=RECOMMENDATION_SOURCE_GLOBAL, weight=weight)

        # No global signal yet: fall back to the most common tags in the knowledge base
        return Recommendation(
            tags=self.knowledge_base.top_tags(self.settings.global_recommendation_count),
            source=RECOMMENDATION_SOURCE_GLOBAL,
            weight=0.0,
        )

    async def get_recommendations(
        self,
        user_id: str,
        prompt: str,
        ensure_diversity: bool = False
    ) -> List[Recommendation]:
        """
        Ranked tag recommendations for a user.

        The user's top tags come first. Global tags are appended when
        diversity is requested or when the user has no learned tags yet, so
        the result is never empty.
        """
        user_snapshot = self.store.find_user(user_id)
        recommendations: List[Recommendation] = []

        if user_snapshot is not None and user_snapshot.tag_weights:
            tags = _top_tags(user_snapshot.tag_weights, self.settings.user_recommendation_count)
            weight = sum(user_snapshot.tag_weights[t] for t in tags) / len(tags)
            recommendations.append(Recommendation(tags=tags, source=RECOMMENDATION_SOURCE_USER, weight=weight))

        if ensure_diversity or not recommendations:
            recommendations.append(self._global_recommendation())

        logger.debug(
            f"Recommendations for user={user_id} prompt={prompt[:50]!r}: "
            f"{[(r.source, r.tags) for r in recommendations]}"
        )
        return recommendations

    # =========================================================================
    # Bias & Diversity
    # =========================================================================

    async def analyze_bias(self, user_id: str) -> BiasReport:
        snapshot = self.store.get_user(user_id)
        threshold = self.settings.bias_threshold
        biased_tags = sorted(tag for tag, weight in snapshot.tag_weights.items() if abs(weight) > threshold)

        if biased_tags:
            logger.info(f"Extreme bias detected for user {user_id}: {biased_tags}")

        return BiasReport(
            has_extreme_bias=bool(biased_tags),
            biased_tags=biased_tags,
            recommended_actions=[DIVERSIFY_ACTION] if biased_tags else [],
        )

    @staticmethod
    def calculate_diversity_score(weights: Dict[str, float]) -> float:
        """max(0, 1 - stddev) over the weight values; 1.0 for an empty mapping."""
        values = list(weights.values())
        if not values:
            return 1.0
        return max(0.0, 1.0 - _population_stddev(values))

    @staticmethod
    def calculate_bias_score(snapshot: PreferenceSnapshot) -> float:
        """Coefficient of variation of the tag weights, capped at 1.0 (0 when the mean is not positive)."""
        values = list(snapshot.tag_weights.values())
        if not values:
            return 0.0
        mean = sum(values) / len(values)
        if mean <= 0:
            return 0.0
        return min(1.0, _population_stddev(values) / mean)

    def calculate_preference_stability(self, user_id: Optional[str] = None) -> float:
        """Grows with days since the last update, reaching 1.0 at 30 days. Global is always 1.0."""
        if not user_id:
            return 1.0

        snapshot = self.store.find_user(user_id)
        if snapshot is None or snapshot.updated_at is None:
            return 0.0

        days_since_update = (utcnow() - snapshot.updated_at).total_seconds() / 86400
        return min(1.0, max(0.0, days_since_update / 30))

    def calculate_retrieval_coverage(self, user_id: Optional[str] = None) -> float:
        """
        Distinct objects used in recent events relative to 10% of active objects.

        Returns:
            Coverage in [0, 1]; 1.0 when there are no recent events
        """
        since = window_start(self.settings.metrics_window_days)
        event_count, used_ids = self.ledger.used_object_ids(since, user_id=user_id)
        if event_count == 0:
            return 1.0

        active = self.ledger.count_active_objects()
        return min(1.0, len(used_ids) / max(1.0, active * 0.1))

    # =========================================================================
    # Learning Metrics
    # =========================================================================

    async def get_learning_metrics(self, user_id: Optional[str] = None) -> LearningMetrics:
        """Health metrics for one user, or for the global pool when user_id is None."""
        total_events = self.ledger.count_events(user_id=user_id)
        total_feedback = self.ledger.count_feedback(user_id=user_id)
        average_quality = self.ledger.average_object_quality(
            window_start(self.settings.metrics_window_days), user_id=user_id
        )

        snapshot = self.store.get_user(user_id) if user_id else self.store.get_global()

        return LearningMetrics(
            total_events=total_events,
            feedback_rate=total_feedback / total_events if total_events > 0 else 0.0,
            average_quality=average_quality,
            diversity_score=self.calculate_diversity_score(snapshot.tag_weights),
            bias_score=self.calculate_bias_score(snapshot),
            preference_stability=self.calculate_preference_stability(user_id),
            retrieval_coverage=self.calculate_retrieval_coverage(user_id),
        )
