"""
AI BATCH REPLACE TESTS
======================

After replace_ai_batch the owner holds exactly the new batch, or (on
failure) no AI rows at all. manual/fires rows are never touched.
"""
import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from exceptions import StorageUnavailable, UpstreamUnavailable
from infrastructure.uow import PriorityRepository
from schemas import ConversationalContext, RecommendationContext
from sources.ai_recommender import AIRecommendationAdapter

OWNER = "user-1"
OTHER_OWNER = "user-2"

pytestmark = pytest.mark.asyncio(loop_scope="function")


def _candidate(title, score=70, source_type="manual", source_id=None):
    return {
        "title": title,
        "description": f"{title} today",
        "priority_score": score,
        "source_type": source_type,
        "source_id": source_id,
    }


class FailingInsertRepository(PriorityRepository):
    async def add_many(self, session, priorities):
        raise OperationalError("INSERT INTO priorities", {}, Exception("disk I/O error"))


class FailingStoreRepository(FailingInsertRepository):
    async def delete_by_source(self, session, owner_id, source):
        raise OperationalError("DELETE FROM priorities", {}, Exception("database is locked"))


class BlockingInsertRepository(PriorityRepository):
    """Stalls inside the replace transaction after the delete ran"""

    def __init__(self):
        self.deleted = asyncio.Event()

    async def delete_by_source(self, session, owner_id, source):
        removed = await super().delete_by_source(session, owner_id, source)
        self.deleted.set()
        return removed

    async def add_many(self, session, priorities):
        await asyncio.Event().wait()


class StaticRecommender:
    def __init__(self, candidates=None, error=None):
        self._candidates = candidates or []
        self._error = error
        self.contexts = []

    async def recommend(self, context):
        self.contexts.append(context)
        if self._error is not None:
            raise self._error
        return list(self._candidates)


@pytest.fixture
def adapter(uow_factory):
    return AIRecommendationAdapter(uow_factory, client=StaticRecommender())


async def _seed_batch(adapter, titles):
    await adapter.replace_ai_batch(OWNER, [_candidate(t) for t in titles])


class TestReplaceBatch:

    async def test_replaces_previous_batch(self, adapter, fetch_rows):
        await _seed_batch(adapter, ["old-1", "old-2", "old-3"])

        result = await adapter.replace_ai_batch(OWNER, [_candidate("new-1"), _candidate("new-2")])

        rows = await fetch_rows(OWNER, source="ai_recommended")
        assert sorted(row.title for row in rows) == ["new-1", "new-2"]
        assert result.removed == 3
        assert len(result.priorities) == 2

    async def test_other_sources_untouched(self, adapter, make_priority, fetch_rows):
        manual = await make_priority(title="manual")
        fire = await make_priority(title="🔥 fire", source="fires_auto", origin_ref="g-1")
        await _seed_batch(adapter, ["old"])

        await adapter.replace_ai_batch(OWNER, [_candidate("new")])

        by_source = {row.source: row for row in await fetch_rows(OWNER)}
        assert by_source["manual"].id == manual.id
        assert by_source["fires_auto"].id == fire.id
        assert by_source["ai_recommended"].title == "new"

    async def test_soft_deleted_ai_rows_are_replaced_too(self, adapter, make_priority, fetch_rows):
        await make_priority(title="trashed", source="ai_recommended", state="soft_deleted")

        await adapter.replace_ai_batch(OWNER, [_candidate("fresh")])

        rows = await fetch_rows(OWNER, source="ai_recommended")
        assert [row.title for row in rows] == ["fresh"]

    async def test_other_owner_untouched(self, adapter, make_priority, fetch_rows):
        await make_priority(owner_id=OTHER_OWNER, title="theirs", source="ai_recommended")

        await adapter.replace_ai_batch(OWNER, [_candidate("mine")])

        assert [row.title for row in await fetch_rows(OTHER_OWNER)] == ["theirs"]

    async def test_rows_are_ranked_and_clamped(self, adapter):
        result = await adapter.replace_ai_batch(
            OWNER, [_candidate("first", score=140), _candidate("second", score=-3)]
        )

        assert [(p.title, p.score, p.manual_order) for p in result.priorities] == [
            ("first", 100, 1),
            ("second", 0, 2),
        ]
        assert all(p.source == "ai_recommended" for p in result.priorities)

    async def test_rejected_candidates_are_reported(self, adapter, fetch_rows):
        result = await adapter.replace_ai_batch(
            OWNER, [_candidate("ok"), {"title": "no score", "description": "x"}]
        )

        assert [p.title for p in result.priorities] == ["ok"]
        assert [r.index for r in result.rejected] == [1]
        assert len(await fetch_rows(OWNER, source="ai_recommended")) == 1

    async def test_origin_is_recorded(self, adapter):
        result = await adapter.replace_ai_batch(
            OWNER, [_candidate("project work", source_type="project", source_id="p-9")]
        )

        priority = result.priorities[0]
        assert priority.origin_type == "project"
        assert priority.origin_ref == "p-9"

    async def test_non_finite_score_drops_only_that_candidate(self, adapter, fetch_rows):
        """
        SCENARIO: one candidate carries an infinite score, another NaN
        EXPECTED: both are reported as rejects, the finite one is stored
        """
        result = await adapter.replace_ai_batch(OWNER, [
            _candidate("finite", score=70),
            _candidate("infinite", score=float("inf")),
            _candidate("nan", score=float("nan")),
        ])

        assert [p.title for p in result.priorities] == ["finite"]
        assert [r.index for r in result.rejected] == [1, 2]
        assert [row.title for row in await fetch_rows(OWNER, source="ai_recommended")] == ["finite"]

    async def test_empty_batch_clears_ai_rows(self, adapter, fetch_rows):
        await _seed_batch(adapter, ["old"])

        result = await adapter.replace_ai_batch(OWNER, [])

        assert result.removed == 1
        assert await fetch_rows(OWNER, source="ai_recommended") == []


class TestReplaceBatchFailure:

    async def test_insert_failure_leaves_zero_ai_rows(self, uow_factory, adapter, make_priority, fetch_rows):
        """
        SCENARIO: the store fails while inserting the new batch
        EXPECTED: StorageUnavailable, no AI rows (neither old nor new), manual intact
        """
        await _seed_batch(adapter, ["old-1", "old-2"])
        await make_priority(title="manual")
        failing = AIRecommendationAdapter(
            uow_factory, client=StaticRecommender(), repository=FailingInsertRepository()
        )

        with pytest.raises(StorageUnavailable) as exc_info:
            await failing.replace_ai_batch(OWNER, [_candidate("new")])

        assert exc_info.value.details["previous_batch"] == "removed"
        assert await fetch_rows(OWNER, source="ai_recommended") == []
        assert [row.title for row in await fetch_rows(OWNER)] == ["manual"]

    async def test_cleanup_failure_reports_unknown(self, uow_factory, adapter, fetch_rows):
        await _seed_batch(adapter, ["old"])
        failing = AIRecommendationAdapter(
            uow_factory, client=StaticRecommender(), repository=FailingStoreRepository()
        )

        with pytest.raises(StorageUnavailable) as exc_info:
            await failing.replace_ai_batch(OWNER, [_candidate("new")])

        assert exc_info.value.details["previous_batch"] == "unknown"

    async def test_cancelled_replace_keeps_previous_batch(self, uow_factory, adapter, fetch_rows):
        """
        SCENARIO: the caller goes away mid-transaction
        EXPECTED: the delete is rolled back, the old batch is still there
        """
        await _seed_batch(adapter, ["old-1", "old-2"])
        repository = BlockingInsertRepository()
        blocking = AIRecommendationAdapter(uow_factory, client=StaticRecommender(), repository=repository)

        task = asyncio.create_task(blocking.replace_ai_batch(OWNER, [_candidate("new")]))
        await asyncio.wait_for(repository.deleted.wait(), timeout=1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        rows = await fetch_rows(OWNER, source="ai_recommended")
        assert sorted(row.title for row in rows) == ["old-1", "old-2"]


class TestRegenerate:

    async def test_regenerate_replaces_batch(self, uow_factory, fetch_rows):
        client = StaticRecommender([_candidate(f"c-{i}") for i in range(7)])
        adapter = AIRecommendationAdapter(uow_factory, client=client)

        result = await adapter.regenerate(OWNER, RecommendationContext())

        assert len(result.priorities) == 5
        assert len(await fetch_rows(OWNER, source="ai_recommended")) == 5

    async def test_upstream_failure_keeps_previous_batch(self, uow_factory, adapter, fetch_rows):
        await _seed_batch(adapter, ["old-1", "old-2"])
        broken = AIRecommendationAdapter(
            uow_factory, client=StaticRecommender(error=UpstreamUnavailable("timed out after 45s"))
        )

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await broken.regenerate(OWNER, RecommendationContext())

        assert exc_info.value.details["previous_batch"] == "untouched"
        rows = await fetch_rows(OWNER, source="ai_recommended")
        assert sorted(row.title for row in rows) == ["old-1", "old-2"]

    async def test_cap_applies_after_validation(self, uow_factory, fetch_rows):
        """
        SCENARIO: the first two of seven candidates are invalid
        EXPECTED: the five valid ones after them make up the batch
        """
        invalid = [{"title": "no score", "description": "x"}, _candidate("", score=50)]
        client = StaticRecommender(invalid + [_candidate(f"c-{i}") for i in range(5)])
        adapter = AIRecommendationAdapter(uow_factory, client=client)

        result = await adapter.regenerate(OWNER, RecommendationContext())

        assert [p.title for p in result.priorities] == [f"c-{i}" for i in range(5)]
        assert [r.index for r in result.rejected] == [0, 1]
        assert len(await fetch_rows(OWNER, source="ai_recommended")) == 5

    async def test_conversational_context_takes_the_same_path(
        self, uow_factory, adapter, make_priority, fetch_rows
    ):
        """
        SCENARIO: regenerate steered by a stated intention
        EXPECTED: the intention reaches the recommender; AI rows are replaced, manual kept
        """
        await _seed_batch(adapter, ["old"])
        await make_priority(title="manual")
        client = StaticRecommender([_candidate("Answer tickets"), _candidate("Triage queue")])
        conversational = AIRecommendationAdapter(uow_factory, client=client)
        context = ConversationalContext(daily_intention="Clear the support backlog", energy_level="high")

        result = await conversational.regenerate(OWNER, context)

        assert client.contexts[0].daily_intention == "Clear the support backlog"
        assert result.removed == 1
        assert sorted(row.title for row in await fetch_rows(OWNER, source="ai_recommended")) == [
            "Answer tickets", "Triage queue",
        ]
        assert [row.title for row in await fetch_rows(OWNER, source="manual")] == ["manual"]
