"""
Shared test fixtures for all test modules.

Provides:
- Test environment setup (TESTING=true, in-memory SQLite, no Redis caching)
- session_factory: fresh in-memory database per test
- ledger / knowledge_base / store / engine wired to that database
- Seed helpers for knowledge objects and generation events
"""

import os
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# =============================================================================
# Test Environment Configuration
# =============================================================================

os.environ['TESTING'] = 'true'
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['ENABLE_PREFERENCE_CACHING'] = 'false'

from vectorkb.bias_control import BiasControls  # noqa: E402
from vectorkb.config import Settings  # noqa: E402
from vectorkb.constants import KnowledgeObjectKind  # noqa: E402
from vectorkb.db_models import Base, DBGlobalPreferences, DBUserPreferences, utcnow  # noqa: E402
from vectorkb.knowledge_base import KnowledgeBaseManager  # noqa: E402
from vectorkb.ledger import FeedbackLedger  # noqa: E402
from vectorkb.preference_engine import PreferenceEngine  # noqa: E402
from vectorkb.preference_store import PreferenceStore  # noqa: E402


# =============================================================================
# Database Fixtures
# =============================================================================

def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def session_factory():
    """
    Session factory bound to a fresh in-memory SQLite database.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)

    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)

    engine.dispose()


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def test_settings():
    return Settings()


@pytest.fixture
def ledger(session_factory):
    return FeedbackLedger(session_factory)


@pytest.fixture
def knowledge_base(session_factory):
    return KnowledgeBaseManager(session_factory)


@pytest.fixture
def store(session_factory, test_settings):
    return PreferenceStore(session_factory, controls=BiasControls.from_settings(test_settings))


@pytest.fixture
def engine(ledger, store, knowledge_base, test_settings):
    return PreferenceEngine(ledger, store, knowledge_base, settings=test_settings)


# =============================================================================
# Seed Data
# =============================================================================

@pytest.fixture
def seeded_objects(knowledge_base):
    """A small knowledge base: one motif, one style pack, one rule."""
    return {
        "blue_circle": knowledge_base.create_object(
            "motif-blue-circle", KnowledgeObjectKind.MOTIF, "Blue circle",
            tags=["blue", "circle"], quality_score=0.8,
        ),
        "flat_style": knowledge_base.create_object(
            "style-flat", KnowledgeObjectKind.STYLE_PACK, "Flat minimal",
            tags=["flat", "minimal"], quality_score=0.9,
        ),
        "stroke_rule": knowledge_base.create_object(
            "rule-stroke", KnowledgeObjectKind.RULE, "Consistent stroke",
            tags=["stroke"], quality_score=0.6,
        ),
    }


@pytest.fixture
def make_event(ledger):
    """Factory for generation events: make_event(["motif-blue-circle"], user_id="alice")."""
    def _make(object_ids, user_id=None, prompt="blue circle on white", days_ago=0):
        return ledger.create_event(
            prompt=prompt,
            used_object_ids=object_ids,
            user_id=user_id,
            created_at=utcnow() - timedelta(days=days_ago),
        )
    return _make


@pytest.fixture
def backdate_preferences(session_factory):
    """Move a stored snapshot's updated_at into the past (user snapshot, or global when user_id is None)."""
    def _backdate(user_id=None, days=0.0, hours=0.0):
        db = session_factory()
        try:
            if user_id is None:
                row = db.get(DBGlobalPreferences, True)
            else:
                row = db.get(DBUserPreferences, user_id)
            row.updated_at = utcnow() - timedelta(days=days, hours=hours)
            db.commit()
        finally:
            db.close()
    return _backdate
