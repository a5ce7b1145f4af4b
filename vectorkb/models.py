"""Data models and schemas for the vectorkb preference-learning engine."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_KIND_WEIGHTS, FeedbackSignal, KnowledgeObjectKind, KnowledgeObjectStatus


# =============================================================================
# Knowledge Base & Ledger Records
# =============================================================================

class KnowledgeObject(BaseModel):
    """Read-only view of a knowledge-base grounding object."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: KnowledgeObjectKind
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    status: KnowledgeObjectStatus = KnowledgeObjectStatus.ACTIVE
    quality_score: float = 0.0
    updated_at: Optional[datetime] = None


class GenerationEvent(BaseModel):
    """One generation attempt recorded by the generation pipeline."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    prompt: str
    used_object_ids: List[str] = Field(default_factory=list)
    intent: Optional[Dict[str, Any]] = None
    plan: Optional[Dict[str, Any]] = None
    doc: Optional[Dict[str, Any]] = None
    model_info: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class FeedbackRecord(BaseModel):
    """Stored feedback on a generation event."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    user_id: Optional[str] = None
    signal: FeedbackSignal
    weight: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class EnrichedFeedback(FeedbackRecord):
    """Feedback joined with its generation event and the objects that event used."""
    event: GenerationEvent
    objects: List[KnowledgeObject] = Field(default_factory=list)


# =============================================================================
# Preference Snapshots
# =============================================================================

def default_kind_weights() -> Dict[KnowledgeObjectKind, float]:
    return dict(DEFAULT_KIND_WEIGHTS)


class PreferenceSnapshot(BaseModel):
    """Learned weights for one user or for the global pool."""

    tag_weights: Dict[str, float] = Field(default_factory=dict)
    kind_weights: Dict[KnowledgeObjectKind, float] = Field(default_factory=default_kind_weights)
    quality_threshold: float = 0.3
    diversity_weight: float = 0.3
    updated_at: Optional[datetime] = None

    def to_weights(self) -> Dict[str, Any]:
        """Serialize for the JSON `weights` column."""
        return {
            "tag_weights": dict(self.tag_weights),
            "kind_weights": {kind.value: weight for kind, weight in self.kind_weights.items()},
            "quality_threshold": self.quality_threshold,
            "diversity_weight": self.diversity_weight,
        }

    @classmethod
    def from_weights(
        cls,
        weights: Optional[Dict[str, Any]],
        updated_at: Optional[datetime] = None,
        quality_floor: float = 0.3,
        diversity_minimum: float = 0.3
    ) -> "PreferenceSnapshot":
        """Rebuild from a stored `weights` column, filling gaps with defaults."""
        weights = weights or {}
        kind_weights = weights.get("kind_weights") or {k.value: v for k, v in DEFAULT_KIND_WEIGHTS.items()}
        return cls(
            tag_weights=weights.get("tag_weights") or {},
            kind_weights={KnowledgeObjectKind(k): v for k, v in kind_weights.items()},
            quality_threshold=weights.get("quality_threshold") or quality_floor,
            diversity_weight=weights.get("diversity_weight") or diversity_minimum,
            updated_at=updated_at,
        )


# =============================================================================
# Feedback Processing
# =============================================================================

class FeedbackInput(BaseModel):
    """
    Caller-supplied feedback for process_feedback.

    Fields are optional here so that missing values surface as
    FeedbackValidationError from the engine rather than pydantic errors.
    """
    event_id: Optional[int] = None
    signal: Optional[str] = None
    user_id: Optional[str] = None
    notes: Optional[str] = None
    weight: Optional[float] = None
    tags: Optional[List[str]] = None
    object_ids: Optional[List[str]] = None


class FeedbackResult(BaseModel):
    """Outcome of process_feedback."""
    preferences_updated: bool
    tags_affected: List[str]
    objects_affected: List[str]
    weight_applied: float


class BatchItemError(BaseModel):
    index: int
    event_id: Optional[int] = None
    error: str


class BatchFeedbackResult(BaseModel):
    """Outcome of process_feedback_batch; results[i] is None when item i failed."""
    processed: int
    failed: int
    results: List[Optional[FeedbackResult]]
    errors: List[BatchItemError] = Field(default_factory=list)


# =============================================================================
# Recommendations & Diagnostics
# =============================================================================

class Recommendation(BaseModel):
    tags: List[str]
    source: str  # "user" or "global"
    weight: float = 0.0


class BiasReport(BaseModel):
    has_extreme_bias: bool
    biased_tags: List[str]
    recommended_actions: List[str]


class LearningMetrics(BaseModel):
    """Health metrics for the learning loop."""
    total_events: int
    feedback_rate: float
    average_quality: float
    diversity_score: float
    bias_score: float
    preference_stability: float
    retrieval_coverage: float


class CleanupResult(BaseModel):
    events: int
    feedback: int
