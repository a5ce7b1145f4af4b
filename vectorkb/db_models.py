"""
SQLAlchemy database models.

Maps the knowledge base, generation ledger and learned preferences to tables.
Separate from Pydantic models (models.py) which carry data between services.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

from .constants import FeedbackSignal

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how every DateTime column is stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Knowledge Base (owned by the knowledge-base manager, read by the engine)
# =============================================================================

class DBKnowledgeObject(Base):
    """
    Unified knowledge-base object: style pack, motif, glossary entry, rule or few-shot example.

    Referenced by generation events through their used_object_ids list.
    """
    __tablename__ = "kb_objects"

    id = Column(String(128), primary_key=True)
    kind = Column(String(20), nullable=False, index=True)  # style_pack, motif, glossary, rule, fewshot
    title = Column(String(255), nullable=False)
    body = Column(JSON, nullable=False, default=dict)
    tags = Column(JSON, nullable=False, default=list)
    version = Column(String(32), nullable=False, default="1.0.0")  # semver
    status = Column(String(20), nullable=False, default="active", index=True)  # active, deprecated, experimental
    quality_score = Column(Float, nullable=False, default=0.0)
    parent_id = Column(String(128), ForeignKey("kb_objects.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_kb_objects_kind_status', 'kind', 'status'),
    )

    def __repr__(self):
        return f"<DBKnowledgeObject(id='{self.id}', kind='{self.kind}', status='{self.status}')>"


class DBKnowledgeAudit(Base):
    """Audit trail for knowledge-base status changes."""
    __tablename__ = "kb_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    object_id = Column(String(128), nullable=False, index=True)
    action = Column(String(50), nullable=False)  # create, update
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    user_id = Column(String(128), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<DBKnowledgeAudit(object='{self.object_id}', action='{self.action}')>"


# =============================================================================
# Generation Ledger
# =============================================================================

class DBGenerationEvent(Base):
    """
    One row per artifact generation attempt.

    Immutable once written. used_object_ids records which knowledge-base
    objects grounded the generation, so feedback can be traced back to tags
    and kinds.
    """
    __tablename__ = "gen_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=True)  # Anonymous generations allowed
    prompt = Column(Text, nullable=False)
    intent = Column(JSON, nullable=True)
    plan = Column(JSON, nullable=True)
    doc = Column(JSON, nullable=True)
    used_object_ids = Column(JSON, nullable=False, default=list)
    model_info = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    feedback = relationship("DBGenerationFeedback", back_populates="event", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_gen_events_user_time', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<DBGenerationEvent(id={self.id}, user='{self.user_id}')>"


class DBGenerationFeedback(Base):
    """
    User feedback on a generation event.

    At most one row per (event_id, user_id) pair, anonymous included;
    resubmission overwrites signal, weight, notes and created_at.
    """
    __tablename__ = "gen_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("gen_events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), nullable=True, index=True)
    signal = Column(String(20), nullable=False)  # kept, edited, regenerated, exported, favorited, reported
    weight = Column(Float, nullable=False, default=1.0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    event = relationship("DBGenerationEvent", back_populates="feedback")

    __table_args__ = (
        Index('idx_gen_feedback_signal', 'signal', 'created_at'),
        Index('idx_gen_feedback_event_user', 'event_id', 'user_id'),
        CheckConstraint(
            "signal IN (" + ", ".join(f"'{s.value}'" for s in FeedbackSignal) + ")",
            name="signal_check",
        ),
    )

    def __repr__(self):
        return f"<DBGenerationFeedback(event={self.event_id}, user='{self.user_id}', signal='{self.signal}')>"


# =============================================================================
# Learned Preferences (owned exclusively by the preference engine)
# =============================================================================

class DBUserPreferences(Base):
    """Per-user preference snapshot."""
    __tablename__ = "user_preferences"

    user_id = Column(String(128), primary_key=True)
    weights = Column(JSON, nullable=False)  # tag_weights, kind_weights, quality_threshold, diversity_weight
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<DBUserPreferences(user='{self.user_id}', updated_at={self.updated_at})>"


class DBGlobalPreferences(Base):
    """Singleton global preference snapshot (id is always True)."""
    __tablename__ = "global_preferences"

    id = Column(Boolean, primary_key=True, default=True)
    weights = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<DBGlobalPreferences(updated_at={self.updated_at})>"
