"""
FastAPI dependencies for the priorities API
"""
from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException

from completion_client import CompletionClient
from infrastructure.uow import create_uow_provider
from priority_config import REDIS_URL
from priority_lifecycle_service import PriorityLifecycleService
from priority_ranking import PriorityRankingService
from purge_sweeper import PurgeSweeper
from sources import AIRecommendationAdapter, FiresSyncAdapter, ManualPriorityAdapter, SyncCooldown

_uow_provider = None
_redis = None


def get_uow_factory():
    """UoW provider bound to the application session factory"""
    global _uow_provider
    if _uow_provider is None:
        _uow_provider = create_uow_provider()
    return _uow_provider


def get_redis():
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(REDIS_URL, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_owner_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Owner id is resolved by the auth layer in front of this service"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def get_completion_client() -> CompletionClient:
    return CompletionClient()


def get_sync_cooldown(redis=Depends(get_redis)) -> Optional[SyncCooldown]:
    return SyncCooldown(redis)


def get_ranking_service(uow_factory=Depends(get_uow_factory)) -> PriorityRankingService:
    return PriorityRankingService(uow_factory)


def get_lifecycle_service(uow_factory=Depends(get_uow_factory)) -> PriorityLifecycleService:
    return PriorityLifecycleService(uow_factory)


def get_sweeper(uow_factory=Depends(get_uow_factory)) -> PurgeSweeper:
    return PurgeSweeper(uow_factory)


def get_manual_adapter(uow_factory=Depends(get_uow_factory)) -> ManualPriorityAdapter:
    return ManualPriorityAdapter(uow_factory)


def get_fires_adapter(
    uow_factory=Depends(get_uow_factory),
    cooldown=Depends(get_sync_cooldown),
) -> FiresSyncAdapter:
    return FiresSyncAdapter(uow_factory, cooldown=cooldown)


def get_ai_adapter(
    uow_factory=Depends(get_uow_factory),
    client=Depends(get_completion_client),
) -> AIRecommendationAdapter:
    return AIRecommendationAdapter(uow_factory, client=client)
