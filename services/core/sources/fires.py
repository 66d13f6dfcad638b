"""
Fires source adapter - auto-sync of the "fires" category into priorities
=======================================================================

Upsert by origin_ref, never delete:
- no fires row for the entity  -> create
- an active fires row          -> refresh title/description/score/completion
- only a soft-deleted fires row -> leave it alone (the user removed it)

Fires entries mirror live goal/task state, so the sync is additive and
idempotent rather than replace-based.

Author: Daily Priorities Core Team
Date: 2026-09-21
"""
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from domain.priority_domain_service import clamp_score
from exceptions import StorageUnavailable, SyncRateLimited
from infrastructure.uow import PriorityRepository
from logging_config import get_logger
from models import OriginType, Priority, PrioritySource, PriorityState
from priority_config import (
    FIRES_CATEGORY,
    FIRES_SCORES,
    FIRES_SYNC_COOLDOWN_KEY,
    FIRES_SYNC_COOLDOWN_MS,
    FIRES_TITLE_PREFIX,
)
from schemas import FiresEntity, FiresSyncResult, PriorityOut

logger = get_logger(__name__)


class SyncCooldown:
    """Per-owner rate limit between fires syncs, stored in Redis"""

    def __init__(self, redis, cooldown_ms: int = FIRES_SYNC_COOLDOWN_MS):
        self._redis = redis
        self._cooldown_ms = cooldown_ms

    async def acquire(self, owner_id: str) -> None:
        """
        Raises:
            SyncRateLimited: a sync for this owner started less than cooldown_ms ago
        """
        key = FIRES_SYNC_COOLDOWN_KEY.format(owner_id=owner_id)
        now_ms = int(time.time() * 1000)

        acquired = await self._redis.set(key, str(now_ms), px=self._cooldown_ms, nx=True)
        if acquired:
            return

        last = await self._redis.get(key)
        elapsed = now_ms - int(last) if last else 0
        retry_after = max(0, self._cooldown_ms - elapsed)
        logger.info("fires_sync_rate_limited", owner_id=owner_id, retry_after_ms=retry_after)
        raise SyncRateLimited(owner_id, retry_after)

    async def release(self, owner_id: str) -> None:
        """Drop the cooldown so a failed sync can be retried at once"""
        await self._redis.delete(FIRES_SYNC_COOLDOWN_KEY.format(owner_id=owner_id))


def qualifies(entity: FiresEntity) -> bool:
    """Fires goals always; fires tasks only while pending"""
    if entity.category != FIRES_CATEGORY:
        return False
    return entity.kind == "goal" or entity.status == "pending"


def render(entity: FiresEntity) -> dict:
    """Priority content for one fires entity"""
    if entity.kind == "goal":
        progress = 0
        if entity.target_points > 0:
            progress = round(entity.current_points / entity.target_points * 100)
        fallback = "Complete this urgent goal"
        return {
            "title": f"{FIRES_TITLE_PREFIX}{entity.title}",
            "description": f"Fire Goal: {entity.description or fallback} ({progress}% complete)",
            "score": clamp_score(FIRES_SCORES["goal"]),
            "is_completed": progress >= 100,
            "origin_type": OriginType.GOAL.value,
        }

    fallback = "Complete this urgent task"
    return {
        "title": f"{FIRES_TITLE_PREFIX}{entity.title}",
        "description": f"Fire Task: {entity.description or fallback}",
        "score": clamp_score(FIRES_SCORES["task"]),
        "is_completed": False,
        "origin_type": OriginType.TASK.value,
    }


class FiresSyncAdapter:

    def __init__(
        self,
        uow_factory,
        cooldown: Optional[SyncCooldown] = None,
        repository: Optional[PriorityRepository] = None,
    ):
        self._uow_factory = uow_factory
        self._repository = repository or PriorityRepository()
        self._cooldown = cooldown

    async def sync_fires(self, owner_id: str, entities: Iterable[FiresEntity]) -> FiresSyncResult:
        """
        Idempotent upsert of the owner's fires goals/tasks.

        Raises:
            SyncRateLimited: called again inside the cooldown
            StorageUnavailable: store failure (nothing from this sync is kept,
                and the cooldown is released)
        """
        if self._cooldown is not None:
            await self._cooldown.acquire(owner_id)

        try:
            return await self._upsert(owner_id, entities)
        except StorageUnavailable as e:
            logger.error("fires_sync_failed", owner_id=owner_id, error=e.message)
            if self._cooldown is not None:
                await self._cooldown.release(owner_id)
            raise

    async def _upsert(self, owner_id: str, entities: Iterable[FiresEntity]) -> FiresSyncResult:
        entities = [e for e in entities if qualifies(e)]
        created = updated = skipped = 0
        touched = []
        now = datetime.now(timezone.utc)

        async with self._uow_factory() as uow:
            for entity in entities:
                content = render(entity)
                existing = await self._repository.find_by_origin(
                    uow.session, owner_id, PrioritySource.FIRES_AUTO.value, entity.id
                )
                active = [p for p in existing if p.state == PriorityState.ACTIVE.value]

                if active:
                    priority = active[0]
                    was_completed = priority.is_completed
                    priority.title = content["title"]
                    priority.description = content["description"]
                    priority.score = content["score"]
                    priority.is_completed = content["is_completed"]
                    if priority.is_completed and not was_completed:
                        priority.completed_at = now
                    elif not priority.is_completed:
                        priority.completed_at = None
                    updated += 1
                elif existing:
                    # Soft-deleted by the user; do not resurrect
                    skipped += 1
                    continue
                else:
                    priority = Priority(
                        owner_id=owner_id,
                        source=PrioritySource.FIRES_AUTO.value,
                        origin_ref=entity.id,
                        completed_at=now if content["is_completed"] else None,
                        _state=PriorityState.ACTIVE.value,
                        **content,
                    )
                    await self._repository.add(uow.session, priority)
                    created += 1

                touched.append(priority)

            await self._repository.update(uow.session)

        logger.info(
            "fires_sync_completed",
            owner_id=owner_id,
            created=created,
            updated=updated,
            skipped=skipped,
        )
        return FiresSyncResult(
            owner_id=owner_id,
            created=created,
            updated=updated,
            skipped=skipped,
            goals=sum(1 for e in entities if e.kind == "goal"),
            tasks=sum(1 for e in entities if e.kind == "task"),
            priorities=[PriorityOut.model_validate(p) for p in touched],
        )
