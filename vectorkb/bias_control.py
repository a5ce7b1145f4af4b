"""
Bias controls applied to every snapshot before it is persisted.

Tag and kind weights get a ceiling only; negative weights pass through.
Diversity weight and quality threshold get a floor only.
"""

from dataclasses import dataclass

from .config import Settings
from .models import PreferenceSnapshot


@dataclass(frozen=True)
class BiasControls:
    max_preference_boost: float = 1.5
    diversity_minimum: float = 0.3
    quality_floor: float = 0.3

    @classmethod
    def from_settings(cls, settings: Settings) -> "BiasControls":
        return cls(
            max_preference_boost=settings.max_preference_boost,
            diversity_minimum=settings.diversity_minimum,
            quality_floor=settings.quality_floor,
        )


def apply_bias_controls(snapshot: PreferenceSnapshot, controls: BiasControls) -> PreferenceSnapshot:
    """Return a copy of `snapshot` within bounds. Idempotent."""
    cap = controls.max_preference_boost
    return PreferenceSnapshot(
        tag_weights={tag: min(weight, cap) for tag, weight in snapshot.tag_weights.items()},
        kind_weights={kind: min(weight, cap) for kind, weight in snapshot.kind_weights.items()},
        quality_threshold=max(snapshot.quality_threshold, controls.quality_floor),
        diversity_weight=max(snapshot.diversity_weight, controls.diversity_minimum),
        updated_at=snapshot.updated_at,
    )


def within_bounds(snapshot: PreferenceSnapshot, controls: BiasControls) -> bool:
    cap = controls.max_preference_boost
    return (
        all(weight <= cap for weight in snapshot.tag_weights.values())
        and all(weight <= cap for weight in snapshot.kind_weights.values())
        and snapshot.quality_threshold >= controls.quality_floor
        and snapshot.diversity_weight >= controls.diversity_minimum
    )
