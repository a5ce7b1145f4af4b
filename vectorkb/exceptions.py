"""
Custom Exceptions for the vectorkb preference-learning engine.

Database driver errors (sqlalchemy.exc.SQLAlchemyError) are not wrapped;
they propagate to the caller unchanged.
"""


class VectorKBError(Exception):
    """Base exception for all vectorkb errors."""
    pass


# =============================================================================
# Feedback Exceptions
# =============================================================================

class FeedbackValidationError(VectorKBError):
    """Raised when feedback is missing required fields or names an unknown signal."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class UnknownSignalError(FeedbackValidationError):
    """Raised when a feedback signal is not part of the closed signal set."""

    def __init__(self, signal, allowed: list = None):
        self.signal = signal
        self.allowed = allowed or []
        msg = f"Invalid feedback signal: {signal!r}"
        if allowed:
            msg += f". Allowed signals: {', '.join(allowed)}"
        super().__init__(msg, field="signal")


# =============================================================================
# Lookup Exceptions
# =============================================================================

class NotFoundError(VectorKBError):
    """Base class for missing-entity errors."""
    pass


class GenerationEventNotFoundError(NotFoundError):
    """Raised when feedback references a generation event that does not exist."""

    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Generation event not found: {event_id}")


class KnowledgeObjectNotFoundError(NotFoundError):
    """Raised when a knowledge-base object does not exist."""

    def __init__(self, object_id: str):
        self.object_id = object_id
        super().__init__(f"Knowledge object not found: {object_id}")
