"""
Unit tests for the interaction ledger.

Tests focus on:
- audit stream vs. per-key state writes
- the 2 hour freshness window and its boundary
- failed records surfacing as InteractionCheckError
- audit write failures being reported, not raised
"""
import logging
from datetime import timedelta

import pytest

from airdrop_backend.db.schemas import ACTION_AUDIT, USER_ACTION_RECORD
from airdrop_backend.models.interaction import ActionType
from airdrop_backend.shared.errors import InteractionCheckError, StorageUnavailable

from .conftest import ACTOR_ID

LIKE_URL = f"https://api.twitter.com/2/users/{ACTOR_ID}/likes"


async def _record_like(ledger, target_id="555", **kwargs):
    kwargs.setdefault("response", {"data": {"liked": True}})
    await ledger.record(
        ACTOR_ID,
        ActionType.LIKE,
        LIKE_URL,
        request_body={"tweet_id": target_id},
        target_id=target_id,
        **kwargs,
    )


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_with_target_writes_audit_and_state(self, ledger, store):
        """Should append one audit entry and upsert one state record"""
        await _record_like(ledger)

        audit = store.docs(ACTION_AUDIT)
        state = store.docs(USER_ACTION_RECORD)
        assert len(audit) == 1
        assert len(state) == 1
        assert state[0]["userId"] == ACTOR_ID
        assert state[0]["targetId"] == "555"
        assert state[0]["type"] == "like"
        assert state[0]["response"] == {"data": {"liked": True}}
        assert state[0]["error"] is None

    @pytest.mark.asyncio
    async def test_repeated_records_keep_one_state_row(self, ledger, store, clock):
        """Audit grows per attempt while the state stays one row per key"""
        await _record_like(ledger)
        clock.advance(minutes=5)
        await _record_like(ledger, response=None, error="rate limited")

        assert len(store.docs(ACTION_AUDIT)) == 2
        state = store.docs(USER_ACTION_RECORD)
        assert len(state) == 1
        assert state[0]["error"] == "rate limited"
        assert state[0]["response"] is None
        assert state[0]["createdAt"] == clock.now

    @pytest.mark.asyncio
    async def test_record_without_target_is_audit_only(self, ledger, store):
        await ledger.record(ACTOR_ID, ActionType.RETWEET, "https://x/check", response={"verified": False})

        assert len(store.docs(ACTION_AUDIT)) == 1
        assert store.docs(USER_ACTION_RECORD) == []

    @pytest.mark.asyncio
    async def test_audit_failure_is_logged_not_raised(self, ledger, store, caplog):
        """A failed audit append must not fail the caller's flow"""
        store.fail("insert", ACTION_AUDIT)

        with caplog.at_level(logging.WARNING):
            await _record_like(ledger)

        assert ledger.audit_failures == 1
        assert "AUDIT_WRITE_FAILED" in caplog.text
        # State still written
        assert len(store.docs(USER_ACTION_RECORD)) == 1

    @pytest.mark.asyncio
    async def test_state_write_failure_propagates(self, ledger, store):
        store.fail("upsert", USER_ACTION_RECORD)

        with pytest.raises(StorageUnavailable):
            await _record_like(ledger)

    @pytest.mark.asyncio
    async def test_audit_on_failure_reraises_original_error(self, ledger, store):
        store.fail("insert", ACTION_AUDIT)

        with pytest.raises(InteractionCheckError):
            async with ledger.audit_on_failure(ACTOR_ID, "like", LIKE_URL):
                raise InteractionCheckError()

        assert ledger.audit_failures == 1


class TestCheckInteraction:
    @pytest.mark.asyncio
    async def test_no_record(self, ledger):
        status = await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")

        assert status.status is False
        assert status.related_target_id is None

    @pytest.mark.asyncio
    async def test_fresh_record_is_verified(self, ledger, clock):
        await _record_like(ledger)
        clock.advance(hours=1, minutes=59, seconds=59)

        status = await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")

        assert status.status is True
        assert status.related_target_id == "555"

    @pytest.mark.asyncio
    async def test_exactly_two_hours_is_stale(self, ledger, clock):
        """The window is exclusive: a record exactly 2h old needs a re-check"""
        await _record_like(ledger)
        clock.advance(hours=2)

        status = await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")

        assert status.status is False
        assert status.related_target_id == "555"

    @pytest.mark.asyncio
    async def test_record_older_than_two_hours_is_stale(self, ledger, clock):
        await _record_like(ledger)
        clock.advance(hours=2, seconds=1)

        status = await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")

        assert status.status is False
        assert status.related_target_id == "555"

    @pytest.mark.asyncio
    async def test_custom_ttl(self, store, clock):
        from airdrop_backend.features.ledger import InteractionLedger

        short = InteractionLedger(store, ttl=timedelta(minutes=10), clock=clock)
        await _record_like(short)
        clock.advance(minutes=11)

        assert (await short.check_interaction(ACTOR_ID, ActionType.LIKE, "555")).status is False

    @pytest.mark.asyncio
    async def test_failed_record_raises(self, ledger):
        """A failed attempt held as current state is an error, not 'not done'"""
        await _record_like(ledger, response=None, error="403 Forbidden")

        with pytest.raises(InteractionCheckError) as exc_info:
            await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")

        assert exc_info.value.code == 10028
        assert exc_info.value.details["targetId"] == "555"

    @pytest.mark.asyncio
    async def test_incomplete_record_reads_as_not_found(self, ledger, store):
        store.seed(USER_ACTION_RECORD, {"userId": ACTOR_ID, "targetId": "555", "type": "like"})

        status = await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")

        assert status.status is False
        assert status.related_target_id is None

    @pytest.mark.asyncio
    async def test_per_type_lookup_uses_latest_record(self, ledger, clock):
        """Without a target the newest record of that type decides"""
        await ledger.record(ACTOR_ID, ActionType.TWEET, "u", response={"data": {"id": "1"}}, target_id="1")
        clock.advance(hours=3)
        await ledger.record(ACTOR_ID, ActionType.TWEET, "u", response={"data": {"id": "2"}}, target_id="2")

        status = await ledger.check_interaction(ACTOR_ID, ActionType.TWEET)

        assert status.status is True
        assert status.related_target_id == "2"

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates(self, ledger, store):
        store.fail("find_one", USER_ACTION_RECORD)

        with pytest.raises(StorageUnavailable):
            await ledger.check_interaction(ACTOR_ID, ActionType.LIKE, "555")


class TestCompletedActionTypes:
    @pytest.mark.asyncio
    async def test_only_successful_types_count(self, ledger, clock):
        await _record_like(ledger)
        await ledger.record(ACTOR_ID, ActionType.RETWEET, "u", error="boom", target_id="777")
        clock.advance(days=30)

        done = await ledger.completed_action_types(ACTOR_ID)

        assert done == ["like"]
