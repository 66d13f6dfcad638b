from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, Index, Uuid
from sqlalchemy.ext.hybrid import hybrid_property
from datetime import datetime, timezone
import uuid
import enum
from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# PRIORITY LIFECYCLE
# =============================================================================

class PriorityState(str, enum.Enum):
    """
    Lifecycle state of a priority

    active: visible in the daily list (initial)
    soft_deleted: hidden, restorable for PURGE_GRACE_HOURS
    purged: terminal, the row no longer exists
    """
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"
    PURGED = "purged"


class PrioritySource(str, enum.Enum):
    """Producer that created a priority. Immutable once written."""
    MANUAL = "manual"
    AI_RECOMMENDED = "ai_recommended"
    FIRES_AUTO = "fires_auto"


class OriginType(str, enum.Enum):
    """Kind of entity `origin_ref` points at (weak reference)"""
    MANUAL = "manual"
    PROJECT = "project"
    TASK = "task"
    GOAL = "goal"


class Priority(Base):
    __tablename__ = "priorities"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Every query is scoped by owner
    owner_id = Column(String, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    source = Column(String, nullable=False)

    # Weak back-reference to a goal/task/project; may dangle
    origin_type = Column(String, nullable=True)
    origin_ref = Column(String, nullable=True)

    score = Column(Integer, nullable=False, default=0)
    manual_order = Column(Integer, nullable=True)

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    _state = Column('state', String, nullable=False, default=PriorityState.ACTIVE.value)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_priorities_owner_source_state", "owner_id", "source", "state"),
        Index("ix_priorities_state_deleted_at", "state", "deleted_at"),
    )

    # 🔒 PROTECTION: Direct state assignment is FORBIDDEN
    # Use PriorityLifecycleService instead
    @hybrid_property
    def state(self):
        """Read-only state - use the lifecycle service to change it"""
        return self._state

    @state.setter
    def state(self, value):
        raise RuntimeError(
            f"DIRECT STATE ASSIGNMENT BLOCKED: priority.state = '{value}'. "
            f"Use PriorityLifecycleService (priority_lifecycle_service.py)"
        )

    def __repr__(self) -> str:
        return f"<Priority {self.id} {self.source}/{self._state} score={self.score}>"
