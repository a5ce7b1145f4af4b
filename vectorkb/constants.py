"""
Application Constants for the vectorkb preference-learning engine.

Closed sets (feedback signals, knowledge-object kinds and statuses) and the
default tables keyed by them. Tunable values live in config.py.
"""

from enum import Enum
from typing import Dict


# =============================================================================
# Closed Sets
# =============================================================================

class FeedbackSignal(str, Enum):
    """User action reported against a generation event."""
    KEPT = "kept"
    EDITED = "edited"
    REGENERATED = "regenerated"
    EXPORTED = "exported"
    FAVORITED = "favorited"
    REPORTED = "reported"


class KnowledgeObjectKind(str, Enum):
    """Kinds of knowledge-base grounding objects."""
    STYLE_PACK = "style_pack"
    MOTIF = "motif"
    GLOSSARY = "glossary"
    RULE = "rule"
    FEWSHOT = "fewshot"


class KnowledgeObjectStatus(str, Enum):
    """Lifecycle status of a knowledge-base object."""
    ACTIVE = "active"
    DEPRECATED = "deprecated"
    EXPERIMENTAL = "experimental"


# Signals that the client reports automatically rather than by explicit user choice
IMPLICIT_SIGNALS = frozenset({FeedbackSignal.EXPORTED, FeedbackSignal.REGENERATED})

# =============================================================================
# Default Tables
# =============================================================================

DEFAULT_SIGNAL_WEIGHTS: Dict[FeedbackSignal, float] = {
    FeedbackSignal.EXPORTED: 2.0,
    FeedbackSignal.FAVORITED: 1.5,
    FeedbackSignal.KEPT: 1.0,
    FeedbackSignal.EDITED: 0.5,
    FeedbackSignal.REGENERATED: -0.5,
    FeedbackSignal.REPORTED: -3.0,
}

# Kind profile handed to users with no stored snapshot
DEFAULT_KIND_WEIGHTS: Dict[KnowledgeObjectKind, float] = {
    KnowledgeObjectKind.STYLE_PACK: 1.0,
    KnowledgeObjectKind.MOTIF: 1.0,
    KnowledgeObjectKind.GLOSSARY: 0.8,
    KnowledgeObjectKind.RULE: 0.6,
    KnowledgeObjectKind.FEWSHOT: 0.9,
}

# =============================================================================
# Persistence Keys & Sources
# =============================================================================

SYSTEM_USER_ID = "system"
RECOMMENDATION_SOURCE_USER = "user"
RECOMMENDATION_SOURCE_GLOBAL = "global"
MAX_NOTES_LENGTH = 500
MAX_FEEDBACK_WEIGHT = 10.0
