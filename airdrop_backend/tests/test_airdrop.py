"""
Unit tests for the purchase eligibility cache, the reward distributor and
the airdrop claim log.
"""
import asyncio
import json

import httpx
import pytest

from airdrop_backend.db.schemas import ACTION_AUDIT, AIRDROP_CLAIM, PROMOTION_CODE, USER_ACCOUNT
from airdrop_backend.features.airdrop.claims import AirdropClaims
from airdrop_backend.features.airdrop.distribution import RewardDistributor
from airdrop_backend.features.airdrop.eligibility import PurchaseEligibility
from airdrop_backend.features.referral.service import ReferralService
from airdrop_backend.models.referral import RewardCaps
from airdrop_backend.shared import errors
from airdrop_backend.shared.errors import InvalidInput, StateConflict, StorageUnavailable, UpstreamError
from airdrop_backend.shared.result import Found, NotFound

from .conftest import ACTOR_ID, CHILD, PARENT, FakeService

CAPS = RewardCaps(cap_for_buyer=5_000_000, cap_for_non_buyer=2_000_000)


def _eligibility_reply(purchase):
    return FakeService(lambda request: httpx.Response(200, json={"code": 0, "data": purchase}))


class TestPurchaseEligibility:
    @pytest.mark.asyncio
    async def test_first_query_calls_service_and_persists(self, store, settings, clock):
        service = _eligibility_reply(True)
        eligibility = PurchaseEligibility(store, settings, service.client_factory, clock=clock)

        assert await eligibility.check_purchase(PARENT) is True

        assert len(service.calls) == 1
        assert str(service.calls[0].url) == f"http://eligibility.test/v1/buyer/{PARENT}"
        account = store.docs(USER_ACCOUNT)[0]
        assert account["purchase"] is True
        assert account["createdAt"] == clock.now

    @pytest.mark.asyncio
    async def test_later_queries_use_stored_value(self, store, settings):
        service = _eligibility_reply(False)
        eligibility = PurchaseEligibility(store, settings, service.client_factory)

        results = [await eligibility.check_purchase(PARENT) for _ in range(3)]

        assert results == [False, False, False]
        assert len(service.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_queries_call_once(self, store, settings):
        service = _eligibility_reply(True)
        eligibility = PurchaseEligibility(store, settings, service.client_factory)

        await asyncio.gather(*(eligibility.check_purchase(PARENT) for _ in range(5)))

        assert len(service.calls) == 1

    @pytest.mark.asyncio
    async def test_existing_account_keeps_parent(self, store, settings):
        store.seed(USER_ACCOUNT, {"userAddress": CHILD, "parentAddress": PARENT})
        eligibility = PurchaseEligibility(store, settings, _eligibility_reply(True).client_factory)

        await eligibility.check_purchase(CHILD)

        account = store.docs(USER_ACCOUNT)[0]
        assert account["purchase"] is True
        assert account["parentAddress"] == PARENT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            {"code": 1, "error": "unknown address"},
            {"code": 0},
            {"code": 0, "data": "maybe"},
        ],
    )
    async def test_failed_reply(self, store, settings, reply):
        service = FakeService(lambda request: httpx.Response(200, json=reply))
        eligibility = PurchaseEligibility(store, settings, service.client_factory)

        with pytest.raises(UpstreamError) as exc_info:
            await eligibility.check_purchase(PARENT)

        assert exc_info.value.code == errors.BUYER_CHECK_FAILED
        assert store.docs(USER_ACCOUNT) == []

    @pytest.mark.asyncio
    async def test_unreachable_service(self, store, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        eligibility = PurchaseEligibility(store, settings, FakeService(handler).client_factory)

        with pytest.raises(UpstreamError) as exc_info:
            await eligibility.check_purchase(PARENT)

        assert exc_info.value.code == errors.BUYER_CHECK_FAILED

    @pytest.mark.asyncio
    async def test_invalid_address(self, store, settings):
        eligibility = PurchaseEligibility(store, settings, _eligibility_reply(True).client_factory)

        with pytest.raises(InvalidInput):
            await eligibility.check_purchase("not-an-address")

    @pytest.mark.asyncio
    async def test_failed_reply_is_audited(self, store, settings, ledger):
        service = FakeService(lambda request: httpx.Response(200, json={"code": 1}))
        eligibility = PurchaseEligibility(store, settings, service.client_factory, ledger=ledger)

        with pytest.raises(UpstreamError):
            await eligibility.check_purchase(PARENT)

        entry = store.docs(ACTION_AUDIT)[-1]
        assert (entry["userId"], entry["type"]) == (PARENT, "check_purchase")
        assert entry["url"] == f"http://eligibility.test/v1/buyer/{PARENT}"
        assert entry["error"].startswith(f"{errors.BUYER_CHECK_FAILED}:")

    @pytest.mark.asyncio
    async def test_successful_lookup_writes_no_audit(self, store, settings, ledger):
        eligibility = PurchaseEligibility(store, settings, _eligibility_reply(True).client_factory, ledger=ledger)

        await eligibility.check_purchase(PARENT)

        assert store.docs(ACTION_AUDIT) == []


class AirdropServer:
    """Fake airdrop server keeping its own running count per address."""

    def __init__(self, overshoot: int = 0, recipient_code: int = 0):
        self.counts = {}
        self.overshoot = overshoot
        self.recipient_code = recipient_code
        self.service = FakeService(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/info/recipient_info":
            return httpx.Response(200, json={"code": self.recipient_code, "data": {"recipients": 3}, "error": "down"})
        body = json.loads(request.content)
        self.counts[body["address"]] = self.counts.get(body["address"], 0) + body["amount"] + self.overshoot
        return httpx.Response(200, json={"code": 0, "data": {"airdrop_count": self.counts[body["address"]]}})


def _distributor(settings, store, ledger, server, clock):
    referral = ReferralService(store, clock=clock)
    return RewardDistributor(settings, referral, ledger, server.service.client_factory)


def _link_child(store, total=0, purchase=False):
    store.seed(PROMOTION_CODE, {"userAddress": PARENT, "promotionCode": "P", "totalRewardAmount": total})
    store.seed(USER_ACCOUNT, {"userAddress": PARENT, "purchase": purchase})
    store.seed(USER_ACCOUNT, {"userAddress": CHILD, "parentAddress": PARENT})


class TestRewardDistributor:
    @pytest.mark.asyncio
    async def test_no_parent_is_a_variant(self, settings, store, ledger, clock):
        server = AirdropServer()
        distributor = _distributor(settings, store, ledger, server, clock)

        outcome = await distributor.reward_parent(CHILD, 100, CAPS)

        assert isinstance(outcome, NotFound)
        assert server.service.calls == []

    @pytest.mark.asyncio
    async def test_reward_persists_server_count(self, settings, store, ledger, clock):
        server = AirdropServer()
        server.counts[PARENT] = 1_950_000
        _link_child(store, total=1_950_000)
        distributor = _distributor(settings, store, ledger, server, clock)

        outcome = await distributor.reward_parent(CHILD, 80_000, CAPS)

        assert isinstance(outcome, Found)
        assert outcome.value.append_amount == 50_000
        assert outcome.value.total_reward_amount == 2_000_000
        assert json.loads(server.service.calls[0].content) == {"address": PARENT, "amount": 50_000}
        assert store.docs(PROMOTION_CODE)[0]["totalRewardAmount"] == 2_000_000

    @pytest.mark.asyncio
    async def test_capped_parent_skips_server(self, settings, store, ledger, clock):
        server = AirdropServer()
        _link_child(store, total=2_000_000)
        distributor = _distributor(settings, store, ledger, server, clock)

        outcome = await distributor.reward_parent(CHILD, 10, CAPS)

        assert outcome.value.reward is False
        assert outcome.value.append_amount == 0
        assert server.service.calls == []

    @pytest.mark.asyncio
    async def test_server_count_above_cap_is_not_persisted(self, settings, store, ledger, clock):
        """The server's count is reported, not stored, when it passes the cap"""
        server = AirdropServer(overshoot=1)
        _link_child(store, total=1_999_000)
        server.counts[PARENT] = 1_999_000
        distributor = _distributor(settings, store, ledger, server, clock)

        with pytest.raises(StateConflict) as exc_info:
            await distributor.reward_parent(CHILD, 1_000, CAPS)

        assert exc_info.value.code == errors.REWARD_CAP_EXCEEDED
        assert exc_info.value.details["airdropCount"] == 2_000_001
        assert store.docs(PROMOTION_CODE)[0]["totalRewardAmount"] == 1_999_000
        assert store.docs(ACTION_AUDIT)[-1]["type"] == "reward_parent"

    @pytest.mark.asyncio
    async def test_concurrent_rewards_stay_under_cap(self, settings, store, ledger, clock):
        server = AirdropServer()
        _link_child(store, total=0)
        distributor = _distributor(settings, store, ledger, server, clock)

        await asyncio.gather(*(distributor.reward_parent(CHILD, 300_000, CAPS) for _ in range(10)))

        assert store.docs(PROMOTION_CODE)[0]["totalRewardAmount"] == 2_000_000
        assert server.counts[PARENT] == 2_000_000

    @pytest.mark.asyncio
    async def test_recipient_info(self, settings, store, ledger, clock):
        distributor = _distributor(settings, store, ledger, AirdropServer(), clock)

        assert await distributor.recipient_info() == {"recipients": 3}

    @pytest.mark.asyncio
    async def test_recipient_info_failure(self, settings, store, ledger, clock):
        distributor = _distributor(settings, store, ledger, AirdropServer(recipient_code=7), clock)

        with pytest.raises(UpstreamError) as exc_info:
            await distributor.recipient_info()

        assert exc_info.value.code == errors.RECIPIENT_COUNT_FAILED
        assert exc_info.value.message == "down"


class TestAirdropClaims:
    @pytest.mark.asyncio
    async def test_claim_then_status(self, store, clock):
        claims = AirdropClaims(store, clock=clock)

        assert await claims.has_claimed(ACTOR_ID, PARENT) is False
        await claims.log_claim(ACTOR_ID, PARENT)
        assert await claims.has_claimed(ACTOR_ID, PARENT) is True

    @pytest.mark.asyncio
    async def test_repeat_claim_refreshes_timestamp(self, store, clock):
        claims = AirdropClaims(store, clock=clock)
        await claims.log_claim(ACTOR_ID, PARENT)
        clock.advance(days=1)

        await claims.log_claim(ACTOR_ID, PARENT)

        rows = store.docs(AIRDROP_CLAIM)
        assert len(rows) == 1
        assert rows[0]["createdAt"] == clock.now

    @pytest.mark.asyncio
    async def test_invalid_address(self, store):
        with pytest.raises(InvalidInput) as exc_info:
            await AirdropClaims(store).has_claimed(ACTOR_ID, "0xnope")

        assert exc_info.value.code == errors.INVALID_ADDRESS

    @pytest.mark.asyncio
    async def test_storage_failure_carries_operation_code(self, store):
        store.fail("find_one", AIRDROP_CLAIM)

        with pytest.raises(StorageUnavailable) as exc_info:
            await AirdropClaims(store).has_claimed(ACTOR_ID, PARENT)

        assert exc_info.value.code == errors.AIRDROP_STATUS_FAILED
        assert exc_info.value.http_status == 503

    @pytest.mark.asyncio
    async def test_storage_failures_are_audited(self, store, ledger):
        claims = AirdropClaims(store, ledger=ledger)
        store.fail("upsert", AIRDROP_CLAIM)
        store.fail("find_one", AIRDROP_CLAIM)

        with pytest.raises(StorageUnavailable):
            await claims.log_claim(ACTOR_ID, PARENT)
        with pytest.raises(StorageUnavailable):
            await claims.has_claimed(ACTOR_ID, PARENT)

        audit = store.docs(ACTION_AUDIT)
        assert [(entry["userId"], entry["type"]) for entry in audit] == [(ACTOR_ID, "log_claim"), (ACTOR_ID, "check_claim")]
        assert audit[0]["requestBody"] == {"userId": ACTOR_ID, "userAddress": PARENT}
        assert audit[0]["error"].startswith(f"{errors.AIRDROP_CLAIM_LOG_FAILED}:")
        assert audit[1]["error"].startswith(f"{errors.AIRDROP_STATUS_FAILED}:")
