"""
AI recommender source adapter - replace-batch of machine-generated priorities
============================================================================

replace_ai_batch(owner_id, candidates):
    1. validate candidates one by one (rejects are reported, not fatal)
    2. one transaction: hard-delete all ai_recommended rows of the owner,
       insert the accepted candidates
    3. if that transaction fails, clear the owner's AI rows in a second
       transaction and raise - the user ends with zero AI priorities,
       never with a stale batch

manual and fires_auto rows are never touched.

Author: Daily Priorities Core Team
Date: 2026-09-21
"""
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from completion_client import CompletionClient
from domain.priority_domain_service import clamp_score
from exceptions import StorageUnavailable, ValidationFailed
from infrastructure.uow import PriorityRepository
from logging_config import get_logger
from models import Priority, PrioritySource, PriorityState
from priority_config import MAX_AI_CANDIDATES
from schemas import (
    CompletionCandidate,
    PriorityOut,
    RecommendationContext,
    RejectedCandidate,
    ReplaceBatchResult,
)

logger = get_logger(__name__)

AI_SOURCE = PrioritySource.AI_RECOMMENDED.value


def _origin(candidate: CompletionCandidate) -> Tuple[str, Optional[str]]:
    """(origin_type, origin_ref). Only project/task candidates carry a reference."""
    if candidate.source_type in ("project", "task") and candidate.source_id:
        return candidate.source_type, candidate.source_id
    return candidate.source_type, None


def validate_candidates(raw: List[Any]) -> Tuple[List[CompletionCandidate], List[ValidationFailed]]:
    """
    Map loosely-typed candidates onto CompletionCandidate.

    A candidate is dropped when it lacks title/description/numeric score,
    has a source_type outside {manual, project, task}, or repeats an
    origin_ref already accepted in this batch.
    """
    accepted: List[CompletionCandidate] = []
    rejected: List[ValidationFailed] = []
    seen_refs = set()

    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            rejected.append(ValidationFailed(index, ["candidate is not an object"]))
            continue

        try:
            candidate = CompletionCandidate.model_validate(item)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'candidate'}: {err['msg']}"
                for err in e.errors()
            ]
            rejected.append(ValidationFailed(index, errors))
            continue

        _, origin_ref = _origin(candidate)
        if origin_ref is not None:
            if origin_ref in seen_refs:
                rejected.append(ValidationFailed(index, [f"duplicate origin_ref {origin_ref}"]))
                continue
            seen_refs.add(origin_ref)

        accepted.append(candidate)

    return accepted, rejected


class AIRecommendationAdapter:

    def __init__(
        self,
        uow_factory,
        client: Optional[CompletionClient] = None,
        repository: Optional[PriorityRepository] = None,
    ):
        self._uow_factory = uow_factory
        self._repository = repository or PriorityRepository()
        self._client = client or CompletionClient()

    def _build_rows(self, owner_id: str, accepted: List[CompletionCandidate]) -> List[Priority]:
        rows = []
        for rank, candidate in enumerate(accepted, start=1):
            origin_type, origin_ref = _origin(candidate)
            rows.append(Priority(
                owner_id=owner_id,
                title=candidate.title[:255],
                description=candidate.description,
                source=AI_SOURCE,
                origin_type=origin_type,
                origin_ref=origin_ref,
                score=clamp_score(candidate.priority_score),
                manual_order=rank,
                _state=PriorityState.ACTIVE.value,
            ))
        return rows

    async def _clear_after_failure(self, owner_id: str) -> bool:
        try:
            async with self._uow_factory() as uow:
                removed = await self._repository.delete_by_source(uow.session, owner_id, AI_SOURCE)
        except StorageUnavailable as e:
            logger.error("ai_batch_clear_failed", owner_id=owner_id, error=e.message)
            return False

        logger.warning("ai_batch_cleared_after_failure", owner_id=owner_id, removed=removed)
        return True

    async def replace_ai_batch(
        self,
        owner_id: str,
        candidates: List[Any],
        limit: Optional[int] = None,
    ) -> ReplaceBatchResult:
        """
        Replace the owner's AI priorities with the validated candidates.

        `limit` keeps the first accepted candidates; it is applied after
        validation, not to the raw reply.

        Raises:
            StorageUnavailable: the replace failed; details["previous_batch"]
                is "removed" (zero AI rows left) or "unknown" (cleanup failed too)
        """
        accepted, rejected = validate_candidates(candidates)
        if limit is not None:
            accepted = accepted[:limit]
        rows = self._build_rows(owner_id, accepted)

        for failure in rejected:
            logger.info("ai_candidate_rejected", owner_id=owner_id, **failure.details)

        try:
            async with self._uow_factory() as uow:
                removed = await self._repository.delete_by_source(uow.session, owner_id, AI_SOURCE)
                await self._repository.add_many(uow.session, rows)
        except StorageUnavailable as e:
            logger.error("ai_batch_replace_failed", owner_id=owner_id, error=e.message)
            cleared = await self._clear_after_failure(owner_id)
            raise StorageUnavailable(
                "AI batch replace failed",
                previous_batch="removed" if cleared else "unknown",
            ) from e

        logger.info(
            "ai_batch_replaced",
            owner_id=owner_id,
            removed=removed,
            inserted=len(rows),
            rejected=len(rejected),
        )
        return ReplaceBatchResult(
            owner_id=owner_id,
            removed=removed,
            priorities=[PriorityOut.model_validate(row) for row in rows],
            rejected=[RejectedCandidate(**failure.details) for failure in rejected],
        )

    async def regenerate(self, owner_id: str, context: RecommendationContext) -> ReplaceBatchResult:
        """
        Fetch fresh candidates and replace the AI batch.

        Raises:
            UpstreamUnavailable: completion failed; the previous batch is untouched
            StorageUnavailable: see replace_ai_batch
        """
        logger.info("ai_regeneration_started", owner_id=owner_id)
        raw = await self._client.recommend(context)
        return await self.replace_ai_batch(owner_id, raw, limit=MAX_AI_CANDIDATES)
