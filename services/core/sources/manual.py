"""
Manual source adapter - priorities typed in by the user
"""
from datetime import datetime, timezone

from domain.priority_domain_service import clamp_score, parse_priority_id
from exceptions import InvalidPriorityState, PriorityNotFound
from infrastructure.uow import PriorityRepository
from logging_config import get_logger
from models import Priority, PrioritySource, PriorityState
from schemas import PriorityCreate, PriorityUpdate

logger = get_logger(__name__)

# Only the owning adapter may rewrite content of machine-produced rows
CONTENT_FIELDS = {"title", "description", "score"}


class ManualPriorityAdapter:

    def __init__(self, uow_factory):
        self._uow_factory = uow_factory
        self._repository = PriorityRepository()

    async def create(self, owner_id: str, data: PriorityCreate) -> Priority:
        """Always writes source=manual; score is clamped"""
        priority = Priority(
            owner_id=owner_id,
            title=data.title.strip(),
            description=data.description,
            source=PrioritySource.MANUAL.value,
            origin_type=data.origin_type,
            origin_ref=data.origin_ref,
            score=clamp_score(data.score),
            manual_order=data.manual_order,
            _state=PriorityState.ACTIVE.value,
        )

        async with self._uow_factory() as uow:
            await self._repository.add(uow.session, priority)

        logger.info(
            "priority_created",
            priority_id=str(priority.id),
            owner_id=owner_id,
            source=priority.source,
            score=priority.score,
        )
        return priority

    async def update(self, owner_id: str, priority_id, data: PriorityUpdate) -> Priority:
        """
        Edit an active priority.

        title/description/score: manual rows only.
        manual_order/is_completed: any source.

        Raises:
            PriorityNotFound: unknown, other owner, or not active
            InvalidPriorityState: content edit of a non-manual row
        """
        pid = parse_priority_id(priority_id)
        changes = data.model_dump(exclude_unset=True)

        async with self._uow_factory() as uow:
            priority = await self._repository.get_for_update(uow.session, pid, owner_id)
            if priority is None or priority.state != PriorityState.ACTIVE.value:
                raise PriorityNotFound(str(pid))

            if CONTENT_FIELDS & changes.keys() and priority.source != PrioritySource.MANUAL.value:
                raise InvalidPriorityState(str(pid), priority.source, "edit")

            if "title" in changes and changes["title"] is not None:
                priority.title = changes["title"].strip()
            if "description" in changes:
                priority.description = changes["description"]
            if "score" in changes and changes["score"] is not None:
                priority.score = clamp_score(changes["score"])
            if "manual_order" in changes:
                priority.manual_order = changes["manual_order"]
            if changes.get("is_completed") is not None:
                priority.is_completed = changes["is_completed"]
                priority.completed_at = datetime.now(timezone.utc) if priority.is_completed else None

            await self._repository.update(uow.session)

        logger.info("priority_updated", priority_id=str(pid), owner_id=owner_id, fields=sorted(changes))
        return priority
