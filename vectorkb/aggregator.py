"""
Preference aggregation.

Folds a window of enriched feedback rows into a raw PreferenceSnapshot:

    for each feedback row (weight w):
        total += |w|
        for each object the event used:
            tag_sums[tag] += w        for every tag on the object
            kind_sums[kind] += w
            if quality > 0: quality_num += quality * |w|; quality_den += |w|

Tag and kind sums are normalised by the total absolute weight. The quality
threshold is the |w|-weighted mean object quality, never below the floor.
The result is raw: bias controls and smoothing are applied afterwards.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Sequence

from .constants import KnowledgeObjectKind
from .db_models import utcnow
from .models import EnrichedFeedback, PreferenceSnapshot

logger = logging.getLogger(__name__)


def window_start(days: int, now: Optional[datetime] = None) -> datetime:
    """Start of a trailing window of `days` ending at `now`."""
    return (now or utcnow()) - timedelta(days=days)


class PreferenceAggregator:
    """Computes raw per-user and global preference snapshots from feedback windows."""

    def __init__(self, quality_floor: float = 0.3, diversity_minimum: float = 0.3, min_feedback_count: int = 10):
        self.quality_floor = quality_floor
        self.diversity_minimum = diversity_minimum
        self.min_feedback_count = min_feedback_count

    def aggregate(self, feedback: Sequence[EnrichedFeedback]) -> PreferenceSnapshot:
        tag_weights: Dict[str, float] = {}
        kind_weights: Dict[KnowledgeObjectKind, float] = {kind: 0.0 for kind in KnowledgeObjectKind}

        total_weight = 0.0
        quality_sum = 0.0
        quality_weight = 0.0

        for fb in feedback:
            weight = fb.weight
            total_weight += abs(weight)

            for obj in fb.objects:
                for tag in obj.tags:
                    tag_weights[tag] = tag_weights.get(tag, 0.0) + weight

                kind_weights[obj.kind] += weight

                if obj.quality_score > 0:
                    quality_sum += obj.quality_score * abs(weight)
                    quality_weight += abs(weight)

        if total_weight > 0:
            tag_weights = {tag: value / total_weight for tag, value in tag_weights.items()}
            kind_weights = {kind: value / total_weight for kind, value in kind_weights.items()}

        quality_threshold = quality_sum / quality_weight if quality_weight > 0 else self.quality_floor

        return PreferenceSnapshot(
            tag_weights=tag_weights,
            kind_weights=kind_weights,
            quality_threshold=max(quality_threshold, self.quality_floor),
            diversity_weight=self.diversity_minimum,
        )

    def aggregate_user(self, feedback: Sequence[EnrichedFeedback]) -> Optional[PreferenceSnapshot]:
        """Aggregate one user's window, or None when it is too sparse to be stable."""
        if len(feedback) < self.min_feedback_count:
            logger.debug(
                f"Skipping user aggregation: {len(feedback)} feedback rows "
                f"(minimum {self.min_feedback_count})"
            )
            return None
        return self.aggregate(feedback)

    def aggregate_global(self, feedback: Sequence[EnrichedFeedback]) -> Optional[PreferenceSnapshot]:
        """Aggregate the global pool; None for an empty pool."""
        if not feedback:
            return None
        return self.aggregate(feedback)
