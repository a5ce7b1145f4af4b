"""
Feedback ledger access.

Data-access contract for generation events, feedback rows and the
knowledge-base objects they reference. No business logic: weights arrive
already resolved and windows arrive as cutoff timestamps. Every method opens
its own session; results are returned as detached pydantic records.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from .constants import FeedbackSignal, KnowledgeObjectStatus
from .database import get_db_context
from .db_models import DBGenerationEvent, DBGenerationFeedback, DBKnowledgeObject, utcnow
from .exceptions import GenerationEventNotFoundError
from .models import EnrichedFeedback, FeedbackRecord, GenerationEvent, KnowledgeObject

logger = logging.getLogger(__name__)


@dataclass
class ObjectFeedbackStat:
    """Feedback aggregated per knowledge object over a window."""
    object_id: str
    average_weight: float
    feedback_count: int


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class FeedbackLedger:
    """Reads and writes gen_events / gen_feedback and reads kb_objects."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def _session(self):
        return get_db_context(self.session_factory)

    # =========================================================================
    # Generation Events
    # =========================================================================

    def create_event(
        self,
        prompt: str,
        used_object_ids: List[str],
        user_id: Optional[str] = None,
        intent: Optional[Dict[str, Any]] = None,
        plan: Optional[Dict[str, Any]] = None,
        doc: Optional[Dict[str, Any]] = None,
        model_info: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None
    ) -> GenerationEvent:
        with self._session() as db:
            event = DBGenerationEvent(
                user_id=user_id,
                prompt=prompt,
                intent=intent,
                plan=plan,
                doc=doc,
                used_object_ids=list(used_object_ids),
                model_info=model_info,
                created_at=created_at or utcnow(),
            )
            db.add(event)
            db.flush()
            return GenerationEvent.model_validate(event)

    def get_event(self, event_id: int) -> Optional[GenerationEvent]:
        with self._session() as db:
            event = db.get(DBGenerationEvent, event_id)
            return GenerationEvent.model_validate(event) if event else None

    def count_events(self, user_id: Optional[str] = None, since: Optional[datetime] = None) -> int:
        with self._session() as db:
            query = db.query(func.count(DBGenerationEvent.id))
            if user_id:
                query = query.filter(DBGenerationEvent.user_id == user_id)
            if since:
                query = query.filter(DBGenerationEvent.created_at >= since)
            return query.scalar() or 0

    # =========================================================================
    # Feedback
    # =========================================================================

    @staticmethod
    def _feedback_filter(query, event_id: int, user_id: Optional[str]):
        query = query.filter(DBGenerationFeedback.event_id == event_id)
        if user_id is None:
            return query.filter(DBGenerationFeedback.user_id.is_(None))
        return query.filter(DBGenerationFeedback.user_id == user_id)

    def get_feedback(self, event_id: int, user_id: Optional[str] = None) -> Optional[FeedbackRecord]:
        with self._session() as db:
            row = self._feedback_filter(db.query(DBGenerationFeedback), event_id, user_id).first()
            return FeedbackRecord.model_validate(row) if row else None

    def upsert_feedback(
        self,
        event_id: int,
        signal: FeedbackSignal,
        weight: float,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Tuple[FeedbackRecord, bool]:
        """
        Insert or overwrite the feedback row for (event_id, user_id).

        Returns:
            (record, created) where created is False when an existing row was overwritten
        """
        with self._session() as db:
            if db.get(DBGenerationEvent, event_id) is None:
                raise GenerationEventNotFoundError(event_id)

            row = self._feedback_filter(db.query(DBGenerationFeedback), event_id, user_id).first()
            created = row is None
            if created:
                row = DBGenerationFeedback(event_id=event_id, user_id=user_id)
                db.add(row)

            row.signal = signal.value
            row.weight = weight
            row.notes = notes
            row.created_at = created_at or utcnow()
            db.flush()

            logger.debug(
                f"{'Created' if created else 'Updated'} feedback: event={event_id}, "
                f"user={user_id}, signal={signal.value}, weight={weight}"
            )
            return FeedbackRecord.model_validate(row), created

    def count_feedback(self, user_id: Optional[str] = None, since: Optional[datetime] = None) -> int:
        with self._session() as db:
            query = db.query(func.count(DBGenerationFeedback.id))
            if user_id:
                query = query.filter(DBGenerationFeedback.user_id == user_id)
            if since:
                query = query.filter(DBGenerationFeedback.created_at >= since)
            return query.scalar() or 0

    def query_feedback(self, since: datetime, user_id: Optional[str] = None) -> List[EnrichedFeedback]:
        """
        Feedback created at or after `since`, newest first, each joined with its
        event and the knowledge objects the event used.

        Args:
            since: Window start
            user_id: Restrict to one user; None means the global pool
        """
        with self._session() as db:
            query = (
                db.query(DBGenerationFeedback, DBGenerationEvent)
                .join(DBGenerationEvent, DBGenerationFeedback.event_id == DBGenerationEvent.id)
                .filter(DBGenerationFeedback.created_at >= since)
            )
            if user_id is not None:
                query = query.filter(DBGenerationFeedback.user_id == user_id)
            rows = query.order_by(DBGenerationFeedback.created_at.desc(), DBGenerationFeedback.id.desc()).all()

            object_ids = _unique(oid for _, event in rows for oid in (event.used_object_ids or []))
            objects = self._load_objects(db, object_ids)

            enriched = []
            for fb, event in rows:
                record = FeedbackRecord.model_validate(fb)
                enriched.append(EnrichedFeedback(
                    **record.model_dump(),
                    event=GenerationEvent.model_validate(event),
                    objects=[objects[oid] for oid in _unique(event.used_object_ids or []) if oid in objects],
                ))
            return enriched

    # =========================================================================
    # Knowledge Objects (read-only)
    # =========================================================================

    @staticmethod
    def _load_objects(db, object_ids: List[str]) -> Dict[str, KnowledgeObject]:
        if not object_ids:
            return {}
        rows = db.query(DBKnowledgeObject).filter(DBKnowledgeObject.id.in_(object_ids)).all()
        return {row.id: KnowledgeObject.model_validate(row) for row in rows}

    def get_objects_by_ids(self, object_ids: List[str]) -> List[KnowledgeObject]:
        """Objects in the order requested; unknown ids are skipped."""
        ids = _unique(object_ids)
        with self._session() as db:
            objects = self._load_objects(db, ids)
        return [objects[oid] for oid in ids if oid in objects]

    def count_active_objects(self) -> int:
        with self._session() as db:
            return db.query(func.count(DBKnowledgeObject.id)).filter(
                DBKnowledgeObject.status == KnowledgeObjectStatus.ACTIVE.value
            ).scalar() or 0

    def used_object_ids(self, since: datetime, user_id: Optional[str] = None) -> Tuple[int, Set[str]]:
        """Number of events in the window and the distinct object ids they used."""
        with self._session() as db:
            query = db.query(DBGenerationEvent.used_object_ids).filter(DBGenerationEvent.created_at >= since)
            if user_id:
                query = query.filter(DBGenerationEvent.user_id == user_id)
            rows = query.all()
        used: Set[str] = set()
        for (ids,) in rows:
            used.update(ids or [])
        return len(rows), used

    def average_object_quality(self, since: datetime, user_id: Optional[str] = None) -> float:
        """Mean quality over every (event, object) pair used in the window; 0 if none."""
        with self._session() as db:
            query = db.query(DBGenerationEvent.used_object_ids).filter(DBGenerationEvent.created_at >= since)
            if user_id:
                query = query.filter(DBGenerationEvent.user_id == user_id)
            usages = [ids or [] for (ids,) in query.all()]
            objects = self._load_objects(db, _unique(oid for ids in usages for oid in ids))

        scores = [objects[oid].quality_score for ids in usages for oid in ids if oid in objects]
        return sum(scores) / len(scores) if scores else 0.0

    def object_feedback_stats(self, since: datetime) -> List[ObjectFeedbackStat]:
        """Average feedback weight and feedback count per referenced object over the window."""
        with self._session() as db:
            rows = (
                db.query(DBGenerationFeedback.weight, DBGenerationEvent.used_object_ids)
                .join(DBGenerationEvent, DBGenerationFeedback.event_id == DBGenerationEvent.id)
                .filter(DBGenerationFeedback.created_at >= since)
                .all()
            )

        totals: Dict[str, List[float]] = {}
        for weight, object_ids in rows:
            for oid in _unique(object_ids or []):
                totals.setdefault(oid, []).append(weight)

        return [
            ObjectFeedbackStat(object_id=oid, average_weight=sum(weights) / len(weights), feedback_count=len(weights))
            for oid, weights in totals.items()
        ]

    # =========================================================================
    # Retention
    # =========================================================================

    def delete_older_than(self, model, cutoff: datetime) -> int:
        """Delete rows of `model` (DBGenerationEvent or DBGenerationFeedback) created before `cutoff`."""
        with self._session() as db:
            deleted = db.query(model).filter(model.created_at < cutoff).delete(synchronize_session=False)
            logger.info(f"Deleted {deleted} rows from {model.__tablename__} older than {cutoff.isoformat()}")
            return deleted
