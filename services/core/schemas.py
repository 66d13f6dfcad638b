import math

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator
from typing import Literal, Optional, List, Dict, Any, Union
from datetime import datetime
from uuid import UUID

# =============================================================================
# Priority read model
# =============================================================================

class PriorityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: str
    title: str
    description: Optional[str] = None
    source: str
    origin_type: Optional[str] = None
    origin_ref: Optional[str] = None
    score: int
    manual_order: Optional[int] = None
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    state: str
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PriorityListResponse(BaseModel):
    priorities: List[PriorityOut]


# =============================================================================
# Manual adapter
# =============================================================================

class PriorityCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    # Out-of-range values are clamped; NaN and infinities are rejected
    score: float = Field(default=0, allow_inf_nan=False)
    manual_order: Optional[int] = None
    origin_type: Optional[Literal["manual", "project", "task", "goal"]] = None
    origin_ref: Optional[str] = None


class PriorityUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    score: Optional[float] = Field(default=None, allow_inf_nan=False)
    manual_order: Optional[int] = None
    is_completed: Optional[bool] = None


# =============================================================================
# AI recommender
# =============================================================================

class CompletionCandidate(BaseModel):
    """
    One candidate from the completion service, mapped to a closed variant.
    Anything outside source_type {manual, project, task} is rejected.
    """
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    priority_score: Union[StrictInt, StrictFloat]
    source_type: Literal["manual", "project", "task"] = "manual"
    source_id: Optional[str] = None
    goal_id: Optional[str] = None

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("priority_score")
    @classmethod
    def _finite_score(cls, value):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("priority_score must be a finite number")
        return value

    @field_validator("source_id", "goal_id", mode="before")
    @classmethod
    def _stringify_ref(cls, value):
        if value in (None, ""):
            return None
        return str(value)


class RejectedCandidate(BaseModel):
    index: int
    errors: List[str]


class ReplaceBatchResult(BaseModel):
    owner_id: str
    removed: int
    priorities: List[PriorityOut]
    rejected: List[RejectedCandidate] = []


class RecommendationContext(BaseModel):
    """Snapshot of the user's dashboard the recommender is prompted with"""
    goals: List[Dict[str, Any]] = []
    projects: List[Dict[str, Any]] = []
    tasks: List[Dict[str, Any]] = []
    habits: List[Dict[str, Any]] = []
    completed_projects: List[Dict[str, Any]] = []
    completed_tasks: List[Dict[str, Any]] = []
    existing_priorities: List[Dict[str, Any]] = []
    today: Optional[datetime] = None


class ConversationalContext(RecommendationContext):
    """Dashboard snapshot plus what the user says they want from today"""
    daily_intention: str = Field(min_length=1, max_length=500)
    energy_level: Optional[Literal["high", "medium", "low"]] = None
    time_available: Optional[Literal["full_day", "half_day", "few_hours"]] = None
    focus_area: Optional[str] = None

    @field_validator("daily_intention")
    @classmethod
    def _intention_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class ReplaceBatchRequest(BaseModel):
    candidates: List[Dict[str, Any]]


# =============================================================================
# Fires sync
# =============================================================================

class FiresEntity(BaseModel):
    """A goal or task from the goal/task store, as seen by the fires sync"""
    kind: Literal["goal", "task"]
    id: str
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: str
    status: Optional[str] = None
    current_points: float = 0
    target_points: float = 0

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)


class FiresSyncRequest(BaseModel):
    entities: List[FiresEntity]


class FiresSyncResult(BaseModel):
    owner_id: str
    created: int
    updated: int
    skipped: int
    goals: int
    tasks: int
    priorities: List[PriorityOut]


# =============================================================================
# Maintenance
# =============================================================================

class SweepReport(BaseModel):
    purged: int
    cutoff: datetime
    owner_id: Optional[str] = None


class DuplicateRemovalReport(BaseModel):
    owner_id: str
    removed: int
    duplicates: List[PriorityOut]
