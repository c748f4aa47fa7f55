# airdrop_backend/features/airdrop/distribution.py

# Client for the airdrop (reward distribution) server and the referral
# reward flow built on it. The airdrop server's running count is the
# authoritative total: it is persisted as-is when within the cap, and
# reported without persisting when it is not.

import logging
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from ...config.settings import Settings
from ...models.airdrop import AppendRewardReply, RecipientInfoReply, ServiceReply
from ...models.referral import RewardCaps, RewardOutcome
from ...shared import errors
from ...shared.errors import AirdropError, StateConflict, UpstreamError
from ...shared.result import Found, Lookup, NotFound
from ..ledger.service import InteractionLedger
from ..referral.service import ReferralService, require_address

logger = logging.getLogger(__name__)

HttpClientFactory = Callable[[], httpx.AsyncClient]


class RewardDistributor:
    def __init__(
        self,
        settings: Settings,
        referral: ReferralService,
        ledger: Optional[InteractionLedger] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
    ):
        self.referral = referral
        self.ledger = ledger
        self.reward_url = settings.airdrop_server_base + settings.AIRDROP_REWARD_PATH
        self.recipient_info_url = settings.airdrop_server_base + settings.AIRDROP_RECIPIENT_INFO_PATH
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        self._http_client_factory = http_client_factory or self._default_client

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout)

    async def _request(self, method: str, url: str, reply_model, error_code: int, body: Optional[Dict[str, Any]] = None):
        details: Dict[str, Any] = {"url": url}
        if body is not None:
            details["requestBody"] = body
        try:
            async with self._http_client_factory() as client:
                response = await client.request(method, url, json=body)
            reply: ServiceReply = reply_model.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.error("Airdrop server request failed: %s %s: %s", method, url, e)
            raise UpstreamError(error_code, f"Airdrop server unreachable: {e}", details, cause=e) from e
        except (ValueError, ValidationError) as e:
            raise UpstreamError(error_code, "Airdrop server returned an invalid body", details, cause=e) from e

        if reply.code != 0:
            raise UpstreamError(error_code, reply.failure_text, details)
        return reply

    # --- Airdrop server calls ---
    async def append_reward(self, user_address: str, amount: int) -> int:
        """Adds `amount` for `user_address`; returns the server's new cumulative airdrop count."""
        body = {"address": user_address, "amount": amount}
        reply = await self._request("POST", self.reward_url, AppendRewardReply, errors.PARENT_REWARD_FAILED, body)
        if reply.data is None:
            raise UpstreamError(errors.PARENT_REWARD_FAILED, "Airdrop server reply has no airdrop_count", {"url": self.reward_url})
        return reply.data.airdrop_count

    async def recipient_info(self) -> Dict[str, Any]:
        """Readiness probe used at startup."""
        reply = await self._request("GET", self.recipient_info_url, RecipientInfoReply, errors.RECIPIENT_COUNT_FAILED)
        return reply.data or {}

    # --- Referral reward flow ---
    async def reward_parent(self, child_address: str, proposed_amount: int, caps: RewardCaps) -> Lookup[RewardOutcome]:
        """
        Routes a referral reward for `child_address` to its parent.
        Returns NotFound when the child has no parent.
        """
        require_address(child_address)
        parent = await self.referral.find_parent(child_address)
        if isinstance(parent, NotFound):
            return NotFound(parent.reason)

        try:
            return Found(await self._reward(parent.value, proposed_amount, caps))
        except AirdropError as e:
            if self.ledger is not None:
                await self.ledger.audit_failure(
                    child_address,
                    "reward_parent",
                    self.reward_url,
                    str(e),
                    {"parentAddress": parent.value, "amount": proposed_amount},
                )
            raise

    async def _reward(self, parent_address: str, proposed_amount: int, caps: RewardCaps) -> RewardOutcome:
        async with self.referral.reward_lock(parent_address):
            increment = await self.referral.compute_reward_increment(parent_address, proposed_amount, caps)
            if not increment.reward:
                logger.info("Parent %s is at its reward cap (%d)", parent_address, increment.max_reward)
                return RewardOutcome(
                    parent_address=parent_address,
                    append_amount=0,
                    reward=False,
                    max_reward=increment.max_reward,
                    total_reward_amount=increment.current_total,
                )

            airdrop_count = await self.append_reward(parent_address, increment.append_amount)
            if airdrop_count > increment.max_reward:
                raise StateConflict(
                    errors.REWARD_CAP_EXCEEDED,
                    details={"parentAddress": parent_address, "airdropCount": airdrop_count, "maxReward": increment.max_reward},
                )

            stored = await self.referral.apply_reward_increment(
                parent_address, airdrop_count, expected_total=increment.current_total
            )
            if not stored:
                logger.error("Reward total for %s changed while appending, count %d not stored", parent_address, airdrop_count)
                raise AirdropError(errors.PARENT_REWARD_APPEND_FAILED, http_status=500)

            logger.info("Rewarded %s with %d (total %d)", parent_address, increment.append_amount, airdrop_count)
            return RewardOutcome(
                parent_address=parent_address,
                append_amount=increment.append_amount,
                reward=True,
                max_reward=increment.max_reward,
                total_reward_amount=airdrop_count,
            )
