"""
Domain Exceptions for the Priority System

Every exception derives from BasePriorityException and carries a
machine-readable `details` dict for the API layer.

Author: Daily Priorities Core Team
Date: 2026-09-02
"""


class BasePriorityException(Exception):
    """Base exception for all priority business-logic errors"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialize for API response"""
        return {
            "error": {
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details
            }
        }


# =============================================================================
# Lifecycle
# =============================================================================

class PriorityNotFound(BasePriorityException):
    """Unknown id, or the id belongs to another owner"""

    def __init__(self, priority_id: str):
        super().__init__(
            message="Priority not found or access denied",
            details={"priority_id": priority_id}
        )


class NotRestorable(PriorityNotFound):
    """Restore of a record that no longer exists (purged)"""

    def __init__(self, priority_id: str):
        super().__init__(priority_id)
        self.message = "Priority not found or already purged"
        self.args = (self.message,)


class InvalidPriorityState(BasePriorityException):
    """Requested transition is not allowed from the current state"""

    def __init__(self, priority_id: str, current_state: str, requested: str):
        super().__init__(
            message=f"Cannot {requested} a priority in state '{current_state}'",
            details={
                "priority_id": priority_id,
                "current_state": current_state,
                "requested": requested
            }
        )


# =============================================================================
# Source adapters
# =============================================================================

class ValidationFailed(BasePriorityException):
    """A single completion candidate was rejected"""

    def __init__(self, index: int, errors: list):
        super().__init__(
            message="Candidate rejected",
            details={"index": index, "errors": errors}
        )


class UpstreamUnavailable(BasePriorityException):
    """Completion service timed out, failed, or replied with garbage"""

    def __init__(self, reason: str, previous_batch: str = "untouched"):
        super().__init__(
            message=f"Completion service unavailable: {reason}",
            details={"reason": reason, "previous_batch": previous_batch}
        )


class SyncRateLimited(BasePriorityException):
    """Fires sync called again inside the per-owner cooldown"""

    def __init__(self, owner_id: str, retry_after_ms: int):
        super().__init__(
            message="Sync rate limited, please wait before syncing again",
            details={"owner_id": owner_id, "retry_after_ms": retry_after_ms}
        )


# =============================================================================
# Storage
# =============================================================================

class StorageUnavailable(BasePriorityException):
    """Persistence layer failure. No retry here - retries belong to the caller."""

    def __init__(self, reason: str, **details):
        super().__init__(
            message=f"Priority store unavailable: {reason}",
            details={"reason": reason, **details}
        )


# =============================================================================
# HTTP Status Mapping
# =============================================================================

EXCEPTION_TO_STATUS = {
    PriorityNotFound: 404,
    NotRestorable: 404,
    InvalidPriorityState: 409,
    ValidationFailed: 422,
    UpstreamUnavailable: 502,
    StorageUnavailable: 503,
    SyncRateLimited: 429,
}


def status_for(exc: BasePriorityException) -> int:
    """HTTP status for a domain exception (walks the MRO for subclasses)"""
    for klass in type(exc).__mro__:
        if klass in EXCEPTION_TO_STATUS:
            return EXCEPTION_TO_STATUS[klass]
    return 500
