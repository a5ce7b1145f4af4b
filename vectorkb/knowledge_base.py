"""
Knowledge-base manager.

Narrow slice of the knowledge-base collaborator used by the preference
engine: object creation (seeding and tests), status changes with an audit
trail, and tag popularity for cold-start recommendations.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from .constants import KnowledgeObjectKind, KnowledgeObjectStatus
from .database import get_db_context
from .db_models import DBKnowledgeAudit, DBKnowledgeObject, utcnow
from .exceptions import KnowledgeObjectNotFoundError
from .models import KnowledgeObject

logger = logging.getLogger(__name__)


def _state(obj: DBKnowledgeObject) -> Dict[str, Any]:
    return {
        "kind": obj.kind,
        "title": obj.title,
        "tags": list(obj.tags or []),
        "version": obj.version,
        "status": obj.status,
        "quality_score": obj.quality_score,
    }


class KnowledgeBaseManager:
    """Reads and updates kb_objects, recording every change in kb_audit."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def create_object(
        self,
        object_id: str,
        kind: KnowledgeObjectKind,
        title: str,
        tags: Optional[List[str]] = None,
        quality_score: float = 0.0,
        body: Optional[Dict[str, Any]] = None,
        status: KnowledgeObjectStatus = KnowledgeObjectStatus.ACTIVE,
        version: str = "1.0.0",
        user_id: Optional[str] = None
    ) -> KnowledgeObject:
        with get_db_context(self.session_factory) as db:
            obj = DBKnowledgeObject(
                id=object_id,
                kind=KnowledgeObjectKind(kind).value,
                title=title,
                body=body or {},
                tags=list(tags or []),
                version=version,
                status=KnowledgeObjectStatus(status).value,
                quality_score=quality_score,
            )
            db.add(obj)
            db.add(DBKnowledgeAudit(
                object_id=object_id,
                action="create",
                after_state=_state(obj),
                user_id=user_id,
            ))
            db.flush()
            return KnowledgeObject.model_validate(obj)

    def get_object(self, object_id: str) -> Optional[KnowledgeObject]:
        with get_db_context(self.session_factory) as db:
            obj = db.get(DBKnowledgeObject, object_id)
            return KnowledgeObject.model_validate(obj) if obj else None

    def update_status(
        self,
        object_id: str,
        status: KnowledgeObjectStatus,
        user_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> KnowledgeObject:
        with get_db_context(self.session_factory) as db:
            obj = db.get(DBKnowledgeObject, object_id)
            if obj is None:
                raise KnowledgeObjectNotFoundError(object_id)

            before = _state(obj)
            obj.status = KnowledgeObjectStatus(status).value
            obj.updated_at = utcnow()
            db.add(DBKnowledgeAudit(
                object_id=object_id,
                action="update",
                before_state=before,
                after_state=_state(obj),
                user_id=user_id,
                reason=reason,
            ))
            db.flush()

            logger.info(f"Knowledge object {object_id} status {before['status']} -> {obj.status} ({reason})")
            return KnowledgeObject.model_validate(obj)

    def deprecate_object(
        self,
        object_id: str,
        user_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> KnowledgeObject:
        return self.update_status(
            object_id,
            KnowledgeObjectStatus.DEPRECATED,
            user_id=user_id,
            reason=reason or "Object deprecated",
        )

    def top_tags(self, limit: int = 2) -> List[str]:
        """Most common tags across active objects, ties broken alphabetically."""
        with get_db_context(self.session_factory) as db:
            rows = db.query(DBKnowledgeObject.tags).filter(
                DBKnowledgeObject.status == KnowledgeObjectStatus.ACTIVE.value
            ).all()

        counts = Counter(tag for (tags,) in rows for tag in (tags or []))
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [tag for tag, _ in ranked[:limit]]
