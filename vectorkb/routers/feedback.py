"""
Feedback Router for the preference-learning engine.

Endpoints:
- POST /feedback - Submit explicit feedback on a generation event
- POST /feedback/implicit - Best-effort implicit signal (never fails the caller)
- POST /feedback/process - Submit feedback and report affected tags/objects
- POST /feedback/process/batch - Process many feedback items, tolerating failures
- GET /feedback/preferences - Get user (or global) preference snapshot
- PUT /feedback/preferences - Override a single tag weight for a user
- POST /feedback/preferences/recompute - Recompute a user's preferences from recent feedback
- GET /feedback/recommendations - Ranked tag recommendations
- GET /feedback/bias - Bias analysis for a user
- GET /feedback/metrics - Learning-health metrics
- GET /feedback/events/{event_id} - Generation event details

Admin:
- POST /feedback/admin/update-global-preferences
- POST /feedback/admin/decay
- POST /feedback/admin/deprecate-stale
- POST /feedback/admin/cleanup
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..dependencies import get_preference_engine
from ..exceptions import FeedbackValidationError, NotFoundError
from ..models import FeedbackInput
from ..preference_engine import PreferenceEngine

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=not settings.is_testing)

router = APIRouter(
    prefix="/feedback",
    tags=["feedback"],
    responses={400: {"description": "Invalid feedback"}, 404: {"description": "Not found"}},
)


# =============================================================================
# Request Models
# =============================================================================

class SubmitFeedbackRequest(BaseModel):
    """Explicit feedback on a generation event."""
    event_id: int
    signal: str
    user_id: Optional[str] = None
    notes: Optional[str] = None
    weight: Optional[float] = None


class ImplicitFeedbackRequest(BaseModel):
    """Automatic signal reported by the client (e.g. export)."""
    event_id: int
    signal: str
    user_id: Optional[str] = None


class SetPreferenceRequest(BaseModel):
    """Direct override of a single tag weight."""
    user_id: str
    tag: str = Field(..., min_length=1)
    value: float


class CleanupRequest(BaseModel):
    retention_days: Optional[int] = Field(None, ge=1, description="Override the configured retention horizon")


def _raise_http(e: Exception):
    if isinstance(e, FeedbackValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    raise e


# =============================================================================
# Feedback Recording Endpoints
# =============================================================================

@router.post("")
async def submit_feedback(
    request: SubmitFeedbackRequest,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """
    Record feedback on a generation event.

    Resubmitting for the same (event, user) overwrites the previous feedback.

    Returns:
        The stored feedback record
    """
    try:
        record = await engine.submit_feedback(
            event_id=request.event_id,
            signal=request.signal,
            user_id=request.user_id,
            notes=request.notes,
            weight=request.weight,
        )
    except (FeedbackValidationError, NotFoundError) as e:
        _raise_http(e)

    return {
        "feedback": record.model_dump(mode="json"),
        "message": "Feedback recorded.",
    }


@router.post("/implicit")
async def submit_implicit_feedback(
    request: ImplicitFeedbackRequest,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Record an implicit signal. Always succeeds; `recorded` reports whether it was stored."""
    recorded = await engine.submit_implicit_feedback(
        event_id=request.event_id,
        signal=request.signal,
        user_id=request.user_id,
    )
    return {"recorded": recorded}


@router.post("/process")
async def process_feedback(
    request: FeedbackInput,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Record feedback and report the tags and objects it affected."""
    try:
        result = await engine.process_feedback(request)
    except (FeedbackValidationError, NotFoundError) as e:
        _raise_http(e)
    return result


@router.post("/process/batch")
async def process_feedback_batch(
    requests: List[FeedbackInput],
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Process many feedback items; failed items are reported, not raised."""
    result = await engine.process_feedback_batch(requests)
    logger.info(f"Batch feedback: {result.processed} processed, {result.failed} failed")
    return result


# =============================================================================
# Preference Endpoints
# =============================================================================

@router.get("/preferences")
async def get_preferences(
    user_id: Optional[str] = None,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Get a user's preference snapshot, or the global one when user_id is omitted."""
    if user_id:
        snapshot = engine.get_user_preferences(user_id)
    else:
        snapshot = engine.get_global_preferences()
    return {
        "user_id": user_id,
        "scope": "user" if user_id else "global",
        "preferences": snapshot.model_dump(mode="json"),
    }


@router.put("/preferences")
async def set_preference(
    request: SetPreferenceRequest,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """
    Override one tag weight for a user.

    The stored value is clamped to the bias bounds.
    """
    snapshot = engine.set_user_preference(request.user_id, request.tag, request.value)
    logger.info(f"Preference override: user={request.user_id}, tag={request.tag}, value={request.value}")
    return {
        "user_id": request.user_id,
        "tag": request.tag,
        "value": snapshot.tag_weights.get(request.tag, 0.0),
    }


@router.post("/preferences/recompute")
async def recompute_preferences(
    user_id: str,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Recompute a user's snapshot from recent feedback without submitting new feedback."""
    updated = await engine.update_user_preferences(user_id)
    return {"user_id": user_id, "updated": updated}


@router.get("/recommendations")
async def get_recommendations(
    user_id: str,
    prompt: str = "",
    ensure_diversity: bool = False,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Ranked tag recommendations; global entries are included for diversity and cold start."""
    recommendations = await engine.get_recommendations(user_id, prompt, ensure_diversity=ensure_diversity)
    return {
        "user_id": user_id,
        "recommendations": [r.model_dump() for r in recommendations],
        "count": len(recommendations),
    }


@router.get("/bias")
async def analyze_bias(
    user_id: str,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    report = await engine.analyze_bias(user_id)
    return report


@router.get("/metrics")
async def get_learning_metrics(
    user_id: Optional[str] = None,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    """Learning-health metrics for a user, or for the whole system when user_id is omitted."""
    metrics = await engine.get_learning_metrics(user_id)
    return metrics


@router.get("/events/{event_id}")
async def get_generation_event(
    event_id: int,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    event = engine.get_generation_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Generation event not found: {event_id}")

    return {
        "id": event.id,
        "user_id": event.user_id,
        "prompt": event.prompt,
        "used_object_ids": event.used_object_ids,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


# =============================================================================
# Admin Endpoints
# =============================================================================

@router.post("/admin/update-global-preferences")
@limiter.limit("5/minute")
async def update_global_preferences(
    request: Request,
    force: bool = Query(False, description="Refresh even if the global snapshot is recent"),
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    if force:
        updated = await engine.update_global_preferences()
    else:
        updated = await engine.update_global_preferences_if_needed()
    return {"updated": updated}


@router.post("/admin/decay")
@limiter.limit("5/minute")
async def decay_preferences(
    request: Request,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    decayed = await engine.decay_all_user_preferences()
    return {"users_decayed": decayed}


@router.post("/admin/deprecate-stale")
@limiter.limit("5/minute")
async def deprecate_stale_objects(
    request: Request,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    deprecated = await engine.deprecate_stale_objects()
    return {"deprecated": deprecated}


@router.post("/admin/cleanup")
@limiter.limit("2/minute")
async def cleanup_old_data(
    request: Request,
    body: Optional[CleanupRequest] = None,
    engine: PreferenceEngine = Depends(get_preference_engine)
):
    retention_days = body.retention_days if body else None
    result = await engine.cleanup_old_data(retention_days)
    return {
        "deleted_events": result.events,
        "deleted_feedback": result.feedback,
    }
