"""
Unit of Work Pattern + Audit Logger - Infrastructure Layer
=========================================================
"""
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exceptions import StorageUnavailable
from logging_config import get_logger, log_priority_transition
from models import Priority, PriorityState

logger = get_logger(__name__)


class UnitOfWork:
    """
    Thin Unit of Work: one session, one transaction.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            priority = await repository.get(uow.session, priority_id, owner_id)

    Any SQLAlchemyError escaping the block is rolled back and re-raised
    as StorageUnavailable.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> "UnitOfWork":
        """Open a session; the transaction begins on first statement"""
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit or rollback + close the session"""
        try:
            if exc_type is None:
                try:
                    await self._session.commit()
                except SQLAlchemyError as e:
                    await self._session.rollback()
                    raise StorageUnavailable(f"commit failed: {e.__class__.__name__}") from e
            else:
                await self._session.rollback()
                if isinstance(exc_val, SQLAlchemyError):
                    raise StorageUnavailable(exc_val.__class__.__name__) from exc_val
        finally:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> AsyncSession:
        """Current session"""
        if self._session is None:
            raise RuntimeError(
                "Session not available. Use 'async with UnitOfWork() as uow:' pattern."
            )
        return self._session


# Logical column name -> mapped attribute (state is stored behind `_state`)
_COLUMNS = {
    "state": Priority._state,
    "deleted_at": Priority.deleted_at,
    "updated_at": Priority.updated_at,
}


class PriorityRepository:
    """Priority repository - CRUD and conditional writes only"""

    async def get(self, session, priority_id: UUID, owner_id: str) -> Optional[Priority]:
        """Owner-scoped lookup; another owner's id reads as missing"""
        stmt = (
            select(Priority)
            .where(Priority.id == priority_id, Priority.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, session, priority_id: UUID, owner_id: str) -> Optional[Priority]:
        """
        Owner-scoped lookup with pessimistic lock (SELECT ... FOR UPDATE).
        """
        stmt = (
            select(Priority)
            .where(Priority.id == priority_id, Priority.owner_id == owner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_owner(
        self,
        session,
        owner_id: str,
        state: Optional[PriorityState] = None,
        source: Optional[str] = None,
    ) -> list[Priority]:
        stmt = select(Priority).where(Priority.owner_id == owner_id)
        if state is not None:
            stmt = stmt.where(Priority.state == PriorityState(state).value)
        if source is not None:
            stmt = stmt.where(Priority.source == source)
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def find_by_origin(self, session, owner_id: str, source: str, origin_ref: str) -> list[Priority]:
        """All rows (any state) of one source pointing at origin_ref, oldest first"""
        stmt = (
            select(Priority)
            .where(
                Priority.owner_id == owner_id,
                Priority.source == source,
                Priority.origin_ref == origin_ref,
            )
            .order_by(Priority.created_at.asc())
            .with_for_update()
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, session, priority: Priority) -> None:
        """Add + flush to get defaults populated"""
        session.add(priority)
        await session.flush()

    async def add_many(self, session, priorities: Iterable[Priority]) -> None:
        session.add_all(list(priorities))
        await session.flush()

    async def update(self, session) -> None:
        """Flush pending attribute changes"""
        await session.flush()

    async def compare_and_set_state(
        self,
        session,
        priority_id: UUID,
        owner_id: str,
        expected_state: PriorityState,
        values: dict,
    ) -> int:
        """
        UPDATE ... WHERE state = expected_state. Returns affected rows (0 or 1).
        """
        stmt = (
            update(Priority)
            .where(
                Priority.id == priority_id,
                Priority.owner_id == owner_id,
                Priority.state == PriorityState(expected_state).value,
            )
            .values({_COLUMNS[key]: value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def delete_if_state(
        self,
        session,
        priority_id: UUID,
        owner_id: str,
        expected_state: PriorityState,
    ) -> int:
        """Physical DELETE guarded by the current state"""
        stmt = (
            delete(Priority)
            .where(
                Priority.id == priority_id,
                Priority.owner_id == owner_id,
                Priority.state == PriorityState(expected_state).value,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def delete_by_source(self, session, owner_id: str, source: str) -> int:
        """Hard delete of every row of one source for one owner, any state"""
        stmt = (
            delete(Priority)
            .where(Priority.owner_id == owner_id, Priority.source == source)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def purge_expired(self, session, cutoff: datetime, owner_id: Optional[str] = None) -> int:
        """
        DELETE soft-deleted rows with deleted_at <= cutoff.

        Eligibility is re-checked by the DELETE itself, so a row restored
        in the meantime is never removed.
        """
        stmt = delete(Priority).where(
            Priority.state == PriorityState.SOFT_DELETED.value,
            Priority.deleted_at.is_not(None),
            Priority.deleted_at <= cutoff,
        )
        if owner_id is not None:
            stmt = stmt.where(Priority.owner_id == owner_id)
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount


class AuditLogger:
    """Audit logging helper"""

    async def log_transition(
        self,
        priority_id: str,
        owner_id: str,
        from_state: str,
        to_state: str,
        reason: str,
        actor: str
    ) -> None:
        log_priority_transition(
            priority_id=priority_id,
            owner_id=owner_id,
            from_state=from_state,
            to_state=to_state,
            actor=actor,
            reason=reason,
        )

    async def log_violation(
        self,
        priority_id: str,
        owner_id: str,
        reason: str
    ) -> None:
        logger.warning(
            "priority_transition_blocked",
            priority_id=priority_id,
            owner_id=owner_id,
            reason=reason,
        )

    async def log_failure(
        self,
        priority_id: str,
        owner_id: str,
        operation: str,
        error: str
    ) -> None:
        logger.error(
            "priority_operation_failed",
            priority_id=priority_id,
            owner_id=owner_id,
            operation=operation,
            error=error,
        )


def create_uow_provider(session_factory=None) -> "UoWProvider":
    """
    Factory for a UoW provider.

    Usage in FastAPI:
        get_uow = create_uow_provider()

        async with get_uow() as uow:
            ...
    """
    if session_factory is None:
        from database import AsyncSessionLocal
        session_factory = AsyncSessionLocal

    class UoWProvider:
        def __init__(self, factory):
            self._factory = factory

        def __call__(self) -> UnitOfWork:
            return UnitOfWork(self._factory)

    return UoWProvider(session_factory)
