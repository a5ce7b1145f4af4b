"""
Shared Dependencies for the vectorkb preference engine.

Provides:
- Application-lifetime service instances (ledger, knowledge base, store, engine)
- FastAPI dependency getters for those instances
"""

import logging

from .bias_control import BiasControls
from .config import settings
from .knowledge_base import KnowledgeBaseManager
from .ledger import FeedbackLedger
from .preference_engine import PreferenceEngine
from .preference_store import PreferenceStore

# Logger
logger = logging.getLogger(__name__)

# =============================================================================
# Service Instances
# =============================================================================

feedback_ledger = FeedbackLedger()
knowledge_base = KnowledgeBaseManager()

preference_store = PreferenceStore(
    controls=BiasControls.from_settings(settings),
    cache_enabled=settings.enable_preference_caching and not settings.is_testing,
    cache_ttl=settings.preference_cache_ttl_seconds,
)

preference_engine = PreferenceEngine(
    ledger=feedback_ledger,
    store=preference_store,
    knowledge_base=knowledge_base,
    settings=settings,
)

logger.debug(
    f"Preference engine initialized (caching={'on' if preference_store.cache_enabled else 'off'}, "
    f"min_feedback={settings.min_feedback_count}, ema_alpha={settings.ema_alpha})"
)


# =============================================================================
# Dependency Getters
# =============================================================================

def get_preference_engine() -> PreferenceEngine:
    """Get the application-wide preference engine."""
    return preference_engine
