"""
PRIORITY RANKING - merge & rank engine
======================================

Combines manual, fires and AI priorities of one owner into a single
ordered list. Read-only.

Order:
1. score DESC (clamped to [0, 100] at read time)
2. rows with manual_order first, manual_order ASC
3. created_at ASC
4. id (total order)
"""
from typing import Iterable, List

from domain.priority_domain_service import clamp_score
from infrastructure.uow import PriorityRepository, UnitOfWork
from logging_config import get_logger
from models import Priority, PriorityState

logger = get_logger(__name__)


def rank_key(priority: Priority) -> tuple:
    has_order = priority.manual_order is not None
    return (
        -clamp_score(priority.score),
        not has_order,
        priority.manual_order if has_order else 0,
        priority.created_at,
        str(priority.id),
    )


def rank_priorities(priorities: Iterable[Priority]) -> List[Priority]:
    """Stable, deterministic ordering; never mutates the records"""
    return sorted(priorities, key=rank_key)


class PriorityRankingService:

    def __init__(self, uow_factory):
        self._uow_factory = uow_factory
        self._repository = PriorityRepository()

    async def list_active(self, owner_id: str) -> List[Priority]:
        """
        Ordered active priorities of one owner, all sources merged.

        Raises:
            StorageUnavailable: store read failed
        """
        async with self._uow_factory() as uow:
            rows = await self._repository.list_for_owner(
                uow.session, owner_id, state=PriorityState.ACTIVE
            )

        ranked = rank_priorities(rows)
        logger.debug("priorities_ranked", owner_id=owner_id, count=len(ranked))
        return ranked

    async def list_deleted(self, owner_id: str) -> List[Priority]:
        """Trash view: soft-deleted priorities, most recently deleted first"""
        async with self._uow_factory() as uow:
            rows = await self._repository.list_for_owner(
                uow.session, owner_id, state=PriorityState.SOFT_DELETED
            )
        return sorted(rows, key=lambda p: (p.deleted_at, str(p.id)), reverse=True)
