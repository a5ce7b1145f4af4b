"""
Signal weighting table.

Maps each feedback signal to the signed weight used as the unit of
preference adjustment. Defaults come from constants.DEFAULT_SIGNAL_WEIGHTS;
deployment-wide overrides come from settings, and callers may still pass an
explicit per-submission weight.
"""

import logging
import math
from typing import Dict, Optional, Union

from .constants import DEFAULT_SIGNAL_WEIGHTS, MAX_FEEDBACK_WEIGHT, FeedbackSignal
from .exceptions import FeedbackValidationError, UnknownSignalError

logger = logging.getLogger(__name__)


def parse_signal(value: Union[str, FeedbackSignal, None]) -> FeedbackSignal:
    """Coerce a raw value into a FeedbackSignal, rejecting anything outside the closed set."""
    if value is None or value == "":
        raise FeedbackValidationError("Invalid feedback data: signal is required", field="signal")
    if isinstance(value, FeedbackSignal):
        return value
    try:
        return FeedbackSignal(value)
    except ValueError:
        raise UnknownSignalError(value, allowed=[s.value for s in FeedbackSignal]) from None


def validate_weight(weight, max_weight: float = MAX_FEEDBACK_WEIGHT) -> float:
    """Return weight as a float, rejecting NaN, infinities and magnitudes above max_weight."""
    try:
        value = float(weight)
    except (TypeError, ValueError):
        raise FeedbackValidationError(f"Invalid feedback weight: {weight!r}", field="weight") from None
    if not math.isfinite(value) or abs(value) > max_weight:
        raise FeedbackValidationError(
            f"Invalid feedback weight: {weight!r} (must be finite and within ±{max_weight})",
            field="weight",
        )
    return value


class SignalWeightTable:
    """Resolves feedback signals to numeric weights."""

    def __init__(self, overrides: Optional[Dict[str, float]] = None, max_weight: float = MAX_FEEDBACK_WEIGHT):
        self.max_weight = max_weight
        self._weights: Dict[FeedbackSignal, float] = dict(DEFAULT_SIGNAL_WEIGHTS)
        for raw_signal, weight in (overrides or {}).items():
            signal = parse_signal(raw_signal)
            self._weights[signal] = validate_weight(weight, max_weight)
            logger.info(f"Signal weight override: {signal.value}={weight}")

    def weight_for(self, signal: Union[str, FeedbackSignal]) -> float:
        return self._weights[parse_signal(signal)]

    def resolve(self, signal: Union[str, FeedbackSignal], override: Optional[float] = None) -> float:
        """
        Return the weight to apply for a submission.

        An explicit override wins; otherwise the table value is used. The
        signal is validated either way, and an override must be finite and
        no larger in magnitude than max_weight.
        """
        table_weight = self.weight_for(signal)
        if override is not None:
            return validate_weight(override, self.max_weight)
        return table_weight

    def as_dict(self) -> Dict[str, float]:
        return {signal.value: weight for signal, weight in self._weights.items()}
