"""Exponential smoothing, decay and freshness over preference snapshots."""

from typing import Dict, TypeVar

from .models import PreferenceSnapshot

K = TypeVar("K")


def ema(old: float, new: float, alpha: float) -> float:
    return (1 - alpha) * old + alpha * new


def _blend_mapping(old: Dict[K, float], new: Dict[K, float], alpha: float) -> Dict[K, float]:
    keys = list(old) + [key for key in new if key not in old]
    return {key: ema(old.get(key, 0.0), new.get(key, 0.0), alpha) for key in keys}


def blend_snapshots(old: PreferenceSnapshot, new: PreferenceSnapshot, alpha: float = 0.1) -> PreferenceSnapshot:
    """
    Blend a stored snapshot with a freshly computed one.

    Every tag and kind present on either side is blended, a missing side
    counting as zero. For alpha in (0, 1) each blended value lies between
    the old and new values.
    """
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")

    return PreferenceSnapshot(
        tag_weights=_blend_mapping(old.tag_weights, new.tag_weights, alpha),
        kind_weights=_blend_mapping(old.kind_weights, new.kind_weights, alpha),
        quality_threshold=ema(old.quality_threshold, new.quality_threshold, alpha),
        diversity_weight=ema(old.diversity_weight, new.diversity_weight, alpha),
    )


def decay_snapshot(snapshot: PreferenceSnapshot, factor: float = 0.95) -> PreferenceSnapshot:
    """Scale every tag weight by `factor`; kinds and scalars are untouched."""
    return PreferenceSnapshot(
        tag_weights={tag: weight * factor for tag, weight in snapshot.tag_weights.items()},
        kind_weights=dict(snapshot.kind_weights),
        quality_threshold=snapshot.quality_threshold,
        diversity_weight=snapshot.diversity_weight,
        updated_at=snapshot.updated_at,
    )


def freshness_score(age_days: float, half_life_days: float = 30.0) -> float:
    """1.0 for brand-new preferences, halving every `half_life_days`."""
    return 0.5 ** (max(age_days, 0.0) / half_life_days)
