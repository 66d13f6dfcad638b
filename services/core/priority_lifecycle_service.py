"""
PRIORITY LIFECYCLE SERVICE - application layer
==============================================

ARCHITECTURE:
- Domain Layer: domain/priority_domain_service.py - pure rules
- Application Layer: this file - orchestration
- Infrastructure: infrastructure/uow.py - transactions + conditional writes

State machine:
    active --delete--> soft_deleted --restore--> active
    soft_deleted --permanent delete / sweeper--> purged (row removed)
    active --> purged is forbidden

Duplicate clean-up (exact title+source, or near-identical titles across
sources) soft-deletes through the same guarded transition.

Every transition is one conditional UPDATE/DELETE guarded by the expected
state, so a concurrent restore and purge cannot both win.

Author: Daily Priorities Core Team
Date: 2026-09-02
"""
from collections import defaultdict
from typing import List, Optional

from domain.priority_domain_service import (
    PriorityTransitioned,
    TransitionReason,
    parse_priority_id,
    priority_domain_service,
    title_similarity,
)
from exceptions import InvalidPriorityState, NotRestorable, PriorityNotFound
from infrastructure.uow import AuditLogger, PriorityRepository
from logging_config import get_logger
from models import Priority, PriorityState
from priority_config import SIMILAR_TITLE_THRESHOLD

logger = get_logger(__name__)


class PriorityLifecycleService:
    """
    Owns soft delete / restore / permanent delete.

    Transactions come from the injected UoW factory; this service only
    coordinates the domain layer and the repository.
    """

    def __init__(self, uow_factory):
        self._uow_factory = uow_factory
        self._domain = priority_domain_service
        self._repository = PriorityRepository()
        self._audit = AuditLogger()

    async def soft_delete(self, priority_id, owner_id: str, actor: str = "user") -> Priority:
        """
        active -> soft_deleted. Idempotent: an already soft-deleted record is
        returned unchanged, deleted_at is not reset.

        Raises:
            PriorityNotFound: unknown id or another owner's id
        """
        pid = parse_priority_id(priority_id)

        async with self._uow_factory() as uow:
            priority = await self._repository.get_for_update(uow.session, pid, owner_id)
            if priority is None:
                raise PriorityNotFound(str(pid))

            if priority.state == PriorityState.SOFT_DELETED.value:
                logger.info("priority_soft_delete_noop", priority_id=str(pid), owner_id=owner_id)
                return priority

            self._domain.validate_transition(pid, priority.state, PriorityState.SOFT_DELETED)
            values = self._domain.transition_values(PriorityState.SOFT_DELETED)

            updated = await self._repository.compare_and_set_state(
                uow.session, pid, owner_id, PriorityState.ACTIVE, values
            )
            priority = await self._repository.get(uow.session, pid, owner_id)

            if not updated:
                # Lost a race; whoever won decides the outcome
                if priority is None:
                    raise PriorityNotFound(str(pid))
                if priority.state == PriorityState.SOFT_DELETED.value:
                    return priority
                raise InvalidPriorityState(str(pid), priority.state, "delete")

        await self._audit.log_transition(
            priority_id=str(pid),
            owner_id=owner_id,
            from_state=PriorityState.ACTIVE.value,
            to_state=PriorityState.SOFT_DELETED.value,
            reason=TransitionReason.USER_DELETE.value,
            actor=actor,
        )
        return priority

    async def restore(self, priority_id, owner_id: str, actor: str = "user") -> Priority:
        """
        soft_deleted -> active, clears deleted_at.

        Raises:
            NotRestorable: record is gone (purged) or never existed for this owner
            InvalidPriorityState: record is active
        """
        pid = parse_priority_id(priority_id)

        async with self._uow_factory() as uow:
            priority = await self._repository.get_for_update(uow.session, pid, owner_id)
            if priority is None:
                raise NotRestorable(str(pid))

            self._domain.validate_transition(pid, priority.state, PriorityState.ACTIVE)
            values = self._domain.transition_values(PriorityState.ACTIVE)

            updated = await self._repository.compare_and_set_state(
                uow.session, pid, owner_id, PriorityState.SOFT_DELETED, values
            )
            priority = await self._repository.get(uow.session, pid, owner_id)

            if not updated:
                if priority is None:
                    raise NotRestorable(str(pid))
                raise InvalidPriorityState(str(pid), priority.state, "restore")

        await self._audit.log_transition(
            priority_id=str(pid),
            owner_id=owner_id,
            from_state=PriorityState.SOFT_DELETED.value,
            to_state=PriorityState.ACTIVE.value,
            reason=TransitionReason.USER_RESTORE.value,
            actor=actor,
        )
        return priority

    async def permanent_delete(self, priority_id, owner_id: str, actor: str = "user") -> PriorityTransitioned:
        """
        soft_deleted -> purged, immediately.

        Raises:
            PriorityNotFound: unknown id, other owner, or already purged
            InvalidPriorityState: record is still active
        """
        pid = parse_priority_id(priority_id)

        async with self._uow_factory() as uow:
            priority = await self._repository.get_for_update(uow.session, pid, owner_id)
            if priority is None:
                raise PriorityNotFound(str(pid))

            try:
                self._domain.validate_transition(pid, priority.state, PriorityState.PURGED)
            except InvalidPriorityState as e:
                await self._audit.log_violation(str(pid), owner_id, e.message)
                raise

            deleted = await self._repository.delete_if_state(
                uow.session, pid, owner_id, PriorityState.SOFT_DELETED
            )
            if not deleted:
                current = await self._repository.get(uow.session, pid, owner_id)
                if current is None:
                    raise PriorityNotFound(str(pid))
                raise InvalidPriorityState(str(pid), current.state, "permanently delete")

        event = self._domain.event(
            pid, PriorityState.SOFT_DELETED, PriorityState.PURGED,
            TransitionReason.USER_PERMANENT_DELETE,
        )
        await self._audit.log_transition(
            priority_id=event.priority_id,
            owner_id=owner_id,
            from_state=event.from_state,
            to_state=event.to_state,
            reason=event.reason,
            actor=actor,
        )
        return event

    async def remove_duplicates(self, owner_id: str, actor: str = "system") -> List[Priority]:
        """
        Soft-delete active duplicates sharing (title, source); the oldest
        row of each group is kept. Returns the rows that were removed.
        """
        removed: List[Priority] = []

        async with self._uow_factory() as uow:
            rows = await self._repository.list_for_owner(
                uow.session, owner_id, state=PriorityState.ACTIVE
            )

            groups = defaultdict(list)
            for row in sorted(rows, key=lambda p: (p.created_at, str(p.id))):
                groups[(row.title.strip().lower(), row.source)].append(row)

            values = self._domain.transition_values(PriorityState.SOFT_DELETED)
            for group in groups.values():
                for duplicate in group[1:]:
                    updated = await self._repository.compare_and_set_state(
                        uow.session, duplicate.id, owner_id, PriorityState.ACTIVE, values
                    )
                    if updated:
                        removed.append(await self._repository.get(uow.session, duplicate.id, owner_id))

        for priority in removed:
            await self._audit.log_transition(
                priority_id=str(priority.id),
                owner_id=owner_id,
                from_state=PriorityState.ACTIVE.value,
                to_state=PriorityState.SOFT_DELETED.value,
                reason=TransitionReason.DUPLICATE_REMOVED.value,
                actor=actor,
            )

        logger.info("priority_duplicates_removed", owner_id=owner_id, removed=len(removed))
        return removed

    async def smart_deduplicate(
        self,
        owner_id: str,
        threshold: Optional[float] = None,
        actor: str = "system",
    ) -> List[Priority]:
        """
        Soft-delete active priorities whose normalised titles are more than
        `threshold` similar (Levenshtein ratio), across all sources.

        Rows are clustered oldest first: each unclaimed row pulls in every
        later unclaimed row similar to it. Inside a cluster a completed row
        is kept before an open one, then the oldest. Returns the removed rows.
        """
        threshold = SIMILAR_TITLE_THRESHOLD if threshold is None else threshold
        removed: List[Priority] = []

        async with self._uow_factory() as uow:
            rows = await self._repository.list_for_owner(
                uow.session, owner_id, state=PriorityState.ACTIVE
            )
            rows.sort(key=lambda p: (p.created_at, str(p.id)))

            claimed = set()
            duplicates: List[Priority] = []
            for index, row in enumerate(rows):
                if row.id in claimed:
                    continue
                cluster = [row]
                for other in rows[index + 1:]:
                    if other.id not in claimed and title_similarity(row.title, other.title) > threshold:
                        cluster.append(other)
                        claimed.add(other.id)
                claimed.add(row.id)

                if len(cluster) > 1:
                    cluster.sort(key=lambda p: (not p.is_completed, p.created_at, str(p.id)))
                    logger.info(
                        "priority_similar_cluster",
                        owner_id=owner_id,
                        kept=str(cluster[0].id),
                        titles=[p.title for p in cluster],
                    )
                    duplicates.extend(cluster[1:])

            values = self._domain.transition_values(PriorityState.SOFT_DELETED)
            for duplicate in duplicates:
                updated = await self._repository.compare_and_set_state(
                    uow.session, duplicate.id, owner_id, PriorityState.ACTIVE, values
                )
                if updated:
                    removed.append(await self._repository.get(uow.session, duplicate.id, owner_id))

        for priority in removed:
            await self._audit.log_transition(
                priority_id=str(priority.id),
                owner_id=owner_id,
                from_state=PriorityState.ACTIVE.value,
                to_state=PriorityState.SOFT_DELETED.value,
                reason=TransitionReason.SIMILAR_DUPLICATE_REMOVED.value,
                actor=actor,
            )

        logger.info("priority_similar_duplicates_removed", owner_id=owner_id, removed=len(removed))
        return removed
