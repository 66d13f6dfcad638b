"""
Priorities API Endpoints Module
Thin controllers over the lifecycle, ranking, sweeper and source adapters
"""
import uuid

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_ai_adapter,
    get_fires_adapter,
    get_lifecycle_service,
    get_manual_adapter,
    get_owner_id,
    get_ranking_service,
    get_sweeper,
)
from schemas import (
    ConversationalContext,
    DuplicateRemovalReport,
    FiresSyncRequest,
    FiresSyncResult,
    PriorityCreate,
    PriorityListResponse,
    PriorityOut,
    PriorityUpdate,
    RecommendationContext,
    ReplaceBatchRequest,
    ReplaceBatchResult,
    SweepReport,
)

router = APIRouter(prefix="/priorities", tags=["priorities"])


@router.get("", response_model=PriorityListResponse)
async def list_active(owner_id: str = Depends(get_owner_id), ranking=Depends(get_ranking_service)):
    """Ranked active priorities (manual + fires + AI)"""
    priorities = await ranking.list_active(owner_id)
    return PriorityListResponse(priorities=[PriorityOut.model_validate(p) for p in priorities])


@router.post("", response_model=PriorityOut, status_code=201)
async def create_priority(
    payload: PriorityCreate,
    owner_id: str = Depends(get_owner_id),
    manual=Depends(get_manual_adapter),
):
    priority = await manual.create(owner_id, payload)
    return PriorityOut.model_validate(priority)


@router.get("/deleted", response_model=PriorityListResponse)
async def list_deleted(owner_id: str = Depends(get_owner_id), ranking=Depends(get_ranking_service)):
    """Trash: soft-deleted priorities still inside the grace window"""
    priorities = await ranking.list_deleted(owner_id)
    return PriorityListResponse(priorities=[PriorityOut.model_validate(p) for p in priorities])


@router.post("/cleanup", response_model=SweepReport)
async def cleanup(owner_id: str = Depends(get_owner_id), sweeper=Depends(get_sweeper)):
    """On-demand purge of this owner's expired soft deletes"""
    return await sweeper.sweep(owner_id=owner_id)


@router.post("/remove-duplicates", response_model=DuplicateRemovalReport)
async def remove_duplicates(owner_id: str = Depends(get_owner_id), lifecycle=Depends(get_lifecycle_service)):
    removed = await lifecycle.remove_duplicates(owner_id, actor="user")
    return DuplicateRemovalReport(
        owner_id=owner_id,
        removed=len(removed),
        duplicates=[PriorityOut.model_validate(p) for p in removed],
    )


@router.post("/smart-deduplicate", response_model=DuplicateRemovalReport)
async def smart_deduplicate(owner_id: str = Depends(get_owner_id), lifecycle=Depends(get_lifecycle_service)):
    """Soft-delete priorities whose titles are near-identical, keeping completed then oldest"""
    removed = await lifecycle.smart_deduplicate(owner_id, actor="user")
    return DuplicateRemovalReport(
        owner_id=owner_id,
        removed=len(removed),
        duplicates=[PriorityOut.model_validate(p) for p in removed],
    )


@router.post("/sync-fires", response_model=FiresSyncResult)
async def sync_fires(
    payload: FiresSyncRequest,
    owner_id: str = Depends(get_owner_id),
    fires=Depends(get_fires_adapter),
):
    return await fires.sync_fires(owner_id, payload.entities)


@router.post("/ai/replace", response_model=ReplaceBatchResult)
async def replace_ai_batch(
    payload: ReplaceBatchRequest,
    owner_id: str = Depends(get_owner_id),
    ai=Depends(get_ai_adapter),
):
    return await ai.replace_ai_batch(owner_id, payload.candidates)


@router.post("/ai/recommend", response_model=ReplaceBatchResult)
async def recommend(
    context: RecommendationContext,
    owner_id: str = Depends(get_owner_id),
    ai=Depends(get_ai_adapter),
):
    """Regenerate AI priorities from the completion service"""
    return await ai.regenerate(owner_id, context)


@router.post("/ai/recommend-conversational", response_model=ReplaceBatchResult)
async def recommend_conversational(
    context: ConversationalContext,
    owner_id: str = Depends(get_owner_id),
    ai=Depends(get_ai_adapter),
):
    """Regenerate AI priorities steered by the user's intention for today"""
    return await ai.regenerate(owner_id, context)


@router.patch("/{priority_id}", response_model=PriorityOut)
async def update_priority(
    priority_id: uuid.UUID,
    payload: PriorityUpdate,
    owner_id: str = Depends(get_owner_id),
    manual=Depends(get_manual_adapter),
):
    priority = await manual.update(owner_id, priority_id, payload)
    return PriorityOut.model_validate(priority)


@router.delete("/{priority_id}", response_model=PriorityOut)
async def soft_delete(
    priority_id: uuid.UUID,
    owner_id: str = Depends(get_owner_id),
    lifecycle=Depends(get_lifecycle_service),
):
    """Move to trash (restorable for 24h)"""
    priority = await lifecycle.soft_delete(priority_id, owner_id)
    return PriorityOut.model_validate(priority)


@router.post("/{priority_id}/restore", response_model=PriorityOut)
async def restore(
    priority_id: uuid.UUID,
    owner_id: str = Depends(get_owner_id),
    lifecycle=Depends(get_lifecycle_service),
):
    priority = await lifecycle.restore(priority_id, owner_id)
    return PriorityOut.model_validate(priority)


@router.delete("/{priority_id}/permanent")
async def permanent_delete(
    priority_id: uuid.UUID,
    owner_id: str = Depends(get_owner_id),
    lifecycle=Depends(get_lifecycle_service),
):
    event = await lifecycle.permanent_delete(priority_id, owner_id)
    return {
        "status": "ok",
        "priority_id": event.priority_id,
        "from_state": event.from_state,
        "to_state": event.to_state,
        "timestamp": event.timestamp,
    }
