"""
MANUAL ADAPTER TESTS
"""
import uuid

import pytest
from pydantic import ValidationError

from exceptions import InvalidPriorityState, PriorityNotFound
from schemas import PriorityCreate, PriorityUpdate
from sources.manual import ManualPriorityAdapter

OWNER = "user-1"

pytestmark = pytest.mark.asyncio(loop_scope="function")


@pytest.fixture
def adapter(uow_factory):
    return ManualPriorityAdapter(uow_factory)


class TestCreate:

    async def test_create_writes_manual_source(self, adapter, fetch_rows):
        priority = await adapter.create(OWNER, PriorityCreate(title="  Pay rent ", score=60))

        assert priority.source == "manual"
        assert priority.title == "Pay rent"
        assert priority.state == "active"
        assert [row.id for row in await fetch_rows(OWNER)] == [priority.id]

    @pytest.mark.parametrize("raw,stored", [(-5, 0), (140, 100), (42.4, 42)])
    async def test_score_is_clamped(self, adapter, raw, stored):
        priority = await adapter.create(OWNER, PriorityCreate(title="x", score=raw))
        assert priority.score == stored

    @pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan"), 1e400])
    def test_non_finite_score_is_rejected_by_the_schema(self, raw):
        with pytest.raises(ValidationError):
            PriorityCreate(title="x", score=raw)
        with pytest.raises(ValidationError):
            PriorityUpdate(score=raw)

    async def test_unvalidated_infinite_score_is_clamped_on_write(self, adapter, fetch_rows):
        data = PriorityCreate.model_construct(
            title="x", description=None, score=float("inf"),
            manual_order=None, origin_type=None, origin_ref=None,
        )

        priority = await adapter.create(OWNER, data)

        assert priority.score == 100
        assert [row.score for row in await fetch_rows(OWNER)] == [100]


class TestUpdate:

    async def test_edit_manual_content(self, adapter):
        priority = await adapter.create(OWNER, PriorityCreate(title="Draft", score=10))

        updated = await adapter.update(
            OWNER, priority.id, PriorityUpdate(title="Final", score=120, manual_order=3)
        )

        assert (updated.title, updated.score, updated.manual_order) == ("Final", 100, 3)

    async def test_completion_toggle(self, adapter):
        priority = await adapter.create(OWNER, PriorityCreate(title="Gym"))

        done = await adapter.update(OWNER, priority.id, PriorityUpdate(is_completed=True))
        assert done.is_completed is True
        assert done.completed_at is not None

        undone = await adapter.update(OWNER, priority.id, PriorityUpdate(is_completed=False))
        assert undone.is_completed is False
        assert undone.completed_at is None

    async def test_content_of_machine_rows_is_read_only(self, adapter, make_priority):
        priority = await make_priority(title="🔥 Outage", source="fires_auto", origin_ref="g-1")

        with pytest.raises(InvalidPriorityState):
            await adapter.update(OWNER, priority.id, PriorityUpdate(title="renamed"))

    async def test_machine_rows_can_be_reordered_and_completed(self, adapter, make_priority):
        priority = await make_priority(title="AI pick", source="ai_recommended")

        updated = await adapter.update(
            OWNER, priority.id, PriorityUpdate(manual_order=1, is_completed=True)
        )

        assert updated.manual_order == 1
        assert updated.is_completed is True

    async def test_soft_deleted_rows_cannot_be_edited(self, adapter, make_priority):
        priority = await make_priority(state="soft_deleted")

        with pytest.raises(PriorityNotFound):
            await adapter.update(OWNER, priority.id, PriorityUpdate(title="new"))

    async def test_unknown_id(self, adapter):
        with pytest.raises(PriorityNotFound):
            await adapter.update(OWNER, uuid.uuid4(), PriorityUpdate(title="new"))

    async def test_other_owner(self, adapter):
        priority = await adapter.create(OWNER, PriorityCreate(title="mine"))

        with pytest.raises(PriorityNotFound):
            await adapter.update("user-2", priority.id, PriorityUpdate(title="stolen"))
