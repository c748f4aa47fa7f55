# airdrop_backend/features/referral/service.py

# Referral & reward engine.
# Per address the promotion code row moves through:
#   no code -> code issued (total absent/0) -> accruing (0 < total < cap) -> capped
# The running total is only ever written through a compare-and-swap on the
# previously read value, under a per-parent lock, so concurrent referral events
# for one parent can never push it past the cap or lose an increment.

import logging
from typing import Any, Callable, Dict, Optional

from ...db.mongo_client import MongoStore
from ...db.schemas import PROMOTION_CODE, USER_ACCOUNT
from ...models.referral import PromotionCode, RedeemResult, RewardCaps, RewardIncrement, UserAccount
from ...shared import errors
from ...shared.errors import AirdropError, InvalidInput, NotFoundOrIneligible, StateConflict
from ...shared.result import Found, Lookup, NotFound
from ...shared.utils import KeyedLock, generate_promotion_code, is_valid_address, utcnow
from ..ledger.service import InteractionLedger, audit_scope

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5
MAX_CAS_ATTEMPTS = 10


def require_address(address: Optional[str]) -> str:
    if not is_valid_address(address):
        raise InvalidInput(errors.INVALID_ADDRESS)
    return address


def capped_increment(current: int, proposed: int, cap: int) -> int:
    """min(cap - current, proposed) while below the cap, otherwise 0. Never negative."""
    if current >= cap:
        return 0
    return max(0, min(cap - current, proposed))


class ReferralService:
    def __init__(
        self,
        store: MongoStore,
        code_length: int = 16,
        clock: Callable = utcnow,
        eligibility=None,
        ledger: Optional[InteractionLedger] = None,
    ):
        self.store = store
        self.code_length = code_length
        self._clock = clock
        self.eligibility = eligibility  # PurchaseEligibility; None reads the stored flag only
        self.ledger = ledger
        self._account_locks = KeyedLock()
        self._reward_locks = KeyedLock()

    # --- Promotion codes ---
    async def get_code(self, user_address: str) -> Lookup[PromotionCode]:
        document = await self.store.find_one(PROMOTION_CODE, {"userAddress": user_address})
        if document is None:
            return NotFound("no_promotion_code")
        return Found(PromotionCode.model_validate(document))

    async def find_code_owner(self, promotion_code: str) -> Lookup[str]:
        document = await self.store.find_one(PROMOTION_CODE, {"promotionCode": promotion_code})
        if document is None:
            return NotFound("unknown_promotion_code")
        return Found(document["userAddress"])

    async def issue_code(self, user_address: str) -> str:
        """
        Returns the address's promotion code, generating and storing one on first
        call. Completion of the required steps is checked by the caller.
        """
        async with audit_scope(self.ledger, user_address, "issue_code", PROMOTION_CODE):
            return await self._issue_code(user_address)

    async def _issue_code(self, user_address: str) -> str:
        require_address(user_address)

        existing = await self.get_code(user_address)
        if isinstance(existing, Found):
            return existing.value.promotion_code

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = generate_promotion_code(self.code_length)
            document = PromotionCode(
                user_address=user_address,
                promotion_code=code,
                created_at=self._clock(),
            ).to_document()
            if await self.store.insert_if_absent(PROMOTION_CODE, {"userAddress": user_address}, document):
                logger.info("Issued promotion code for %s", user_address)
                return code

            # Either a concurrent issue for the same address won, or the code collided
            existing = await self.get_code(user_address)
            if isinstance(existing, Found):
                return existing.value.promotion_code
            logger.warning("Promotion code collision for %s (attempt %d)", user_address, attempt)

        raise AirdropError(errors.PROMOTION_CODE_GENERATION_FAILED, http_status=500)

    # --- Referral graph ---
    async def redeem_code(self, child_address: str, promotion_code: Optional[str]) -> RedeemResult:
        """
        Links `child_address` to the owner of `promotion_code`.

        The first successful redemption wins: an address that already has a
        parent keeps it and gets valid=True, already_referred=True. Unknown
        codes, self-referral and a child referring its own parent return
        valid=False without touching the account, as does a malformed child
        address.
        """
        request_body = {"promotionCode": promotion_code}
        async with audit_scope(self.ledger, child_address, "redeem_code", USER_ACCOUNT, request_body):
            return await self._redeem_code(child_address, promotion_code)

    async def _redeem_code(self, child_address: str, promotion_code: Optional[str]) -> RedeemResult:
        if not is_valid_address(child_address):
            logger.info("Rejected redemption for malformed address %r", child_address)
            return RedeemResult(valid=False)
        if not promotion_code:
            return RedeemResult(valid=False)

        async with self._account_locks.hold(child_address):
            owner = await self.find_code_owner(promotion_code)
            if isinstance(owner, NotFound):
                return RedeemResult(valid=False)
            parent_address = owner.value

            if parent_address.lower() == child_address.lower():
                logger.info("Rejected self-referral for %s", child_address)
                return RedeemResult(valid=False)

            grandparent = await self.find_parent(parent_address)
            if isinstance(grandparent, Found) and grandparent.value.lower() == child_address.lower():
                logger.info("Rejected referral cycle %s <-> %s", child_address, parent_address)
                return RedeemResult(valid=False)

            account = await self.store.find_one(USER_ACCOUNT, {"userAddress": child_address})
            if account is None:
                document = UserAccount(
                    user_address=child_address,
                    parent_address=parent_address,
                    created_at=self._clock(),
                ).to_document()
                if await self.store.insert_if_absent(USER_ACCOUNT, {"userAddress": child_address}, document):
                    return RedeemResult(valid=True, parent_address=parent_address)
                account = await self.store.find_one(USER_ACCOUNT, {"userAddress": child_address}) or {}

            if account.get("parentAddress"):
                return RedeemResult(valid=True, parent_address=account["parentAddress"], already_referred=True)

            linked = await self.store.update_if(
                USER_ACCOUNT,
                {"userAddress": child_address, "parentAddress": None},
                {"parentAddress": parent_address},
            )
            if not linked:
                current = await self.find_parent(child_address)
                if isinstance(current, Found):
                    return RedeemResult(valid=True, parent_address=current.value, already_referred=True)
                raise AirdropError(errors.PROMOTION_CODE_PROCESSING_FAILED, http_status=500)
            return RedeemResult(valid=True, parent_address=parent_address)

    async def find_parent(self, child_address: str) -> Lookup[str]:
        document = await self.store.find_one(USER_ACCOUNT, {"userAddress": child_address})
        if document is None:
            return NotFound("no_account")
        parent = document.get("parentAddress")
        if not parent:
            return NotFound("no_parent")
        return Found(parent)

    # --- Rewards ---
    async def purchase_status(self, user_address: str) -> Optional[bool]:
        if self.eligibility is not None:
            return await self.eligibility.check_purchase(user_address)
        document = await self.store.find_one(USER_ACCOUNT, {"userAddress": user_address})
        return document.get("purchase") if document else None

    async def current_total(self, user_address: str) -> int:
        document = await self.store.find_one(PROMOTION_CODE, {"userAddress": user_address})
        if document is None:
            return 0
        return document.get("totalRewardAmount") or 0

    async def compute_reward_increment(
        self,
        parent_address: str,
        proposed_amount: int,
        caps: RewardCaps,
    ) -> RewardIncrement:
        if isinstance(proposed_amount, bool) or not isinstance(proposed_amount, int) or proposed_amount < 0:
            raise InvalidInput(errors.WRONG_PARAMS, "Reward amount must be a non-negative integer")

        purchase = await self.purchase_status(parent_address)
        cap = caps.for_purchase(purchase)
        current = await self.current_total(parent_address)
        append_amount = capped_increment(current, proposed_amount, cap)
        return RewardIncrement(
            append_amount=append_amount,
            reward=append_amount > 0,
            max_reward=cap,
            current_total=current,
        )

    async def apply_reward_increment(
        self,
        parent_address: str,
        new_total: int,
        expected_total: Optional[int] = None,
    ) -> bool:
        """
        Sets totalRewardAmount to `new_total`. With `expected_total` the write
        only lands if the stored total still equals it (an absent total counts
        as 0). Returns whether a document was written.
        """
        if new_total < 0:
            raise InvalidInput(errors.WRONG_PARAMS, "Reward total cannot be negative")

        query: Dict[str, Any] = {"userAddress": parent_address}
        if expected_total is not None:
            query["totalRewardAmount"] = expected_total if expected_total else {"$in": [None, 0]}
        return await self.store.update_if(PROMOTION_CODE, query, {"totalRewardAmount": new_total})

    def reward_lock(self, parent_address: str):
        """Serializes compute/apply for one parent within this process."""
        return self._reward_locks.hold(parent_address)

    async def accrue_reward(self, parent_address: str, proposed_amount: int, caps: RewardCaps) -> RewardIncrement:
        """Atomically adds the capped increment to the parent's running total."""
        async with self.reward_lock(parent_address):
            if isinstance(await self.get_code(parent_address), NotFound):
                raise NotFoundOrIneligible(errors.PARENT_REWARD_CHECK_FAILED, f"No promotion code for {parent_address}")
            for _ in range(MAX_CAS_ATTEMPTS):
                increment = await self.compute_reward_increment(parent_address, proposed_amount, caps)
                if not increment.reward:
                    return increment
                new_total = increment.current_total + increment.append_amount
                if await self.apply_reward_increment(parent_address, new_total, increment.current_total):
                    return increment
                logger.info("Reward total for %s changed concurrently, retrying", parent_address)
        raise StateConflict(errors.PARENT_REWARD_APPEND_FAILED)

    async def get_reward_amount(self, user_address: str) -> int:
        require_address(user_address)
        return await self.current_total(user_address)
