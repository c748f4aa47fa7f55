# airdrop_backend/models/referral.py

# Models for the referral graph and reward accrual:
# 'promotionCode' (one per referring address, carries the running reward total)
# and 'userAccount' (purchase flag and the referring parent address).

from typing import Optional

from pydantic import BaseModel, Field

from .common import DocumentModel


class PromotionCode(DocumentModel):
    user_address: str = Field(alias="userAddress")
    promotion_code: str = Field(alias="promotionCode")
    total_reward_amount: Optional[int] = Field(alias="totalRewardAmount", default=None, ge=0)


class UserAccount(DocumentModel):
    user_address: str = Field(alias="userAddress")
    purchase: Optional[bool] = None  # None until the eligibility service has answered
    parent_address: Optional[str] = Field(alias="parentAddress", default=None)


class RewardCaps(BaseModel):
    cap_for_buyer: int = Field(ge=0)
    cap_for_non_buyer: int = Field(ge=0)

    def for_purchase(self, purchase: Optional[bool]) -> int:
        return self.cap_for_buyer if purchase else self.cap_for_non_buyer


class RewardIncrement(BaseModel):
    """Outcome of computing a capped increment for a referring address."""

    append_amount: int = Field(ge=0)
    reward: bool
    max_reward: int = Field(ge=0)
    current_total: int = Field(default=0, ge=0)


class RedeemResult(BaseModel):
    valid: bool
    parent_address: Optional[str] = None
    already_referred: bool = False


class RewardOutcome(BaseModel):
    """Result of routing a referral reward to the child's parent."""

    parent_address: str
    append_amount: int
    reward: bool
    max_reward: int
    total_reward_amount: int
