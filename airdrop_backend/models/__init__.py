# airdrop_backend/models/__init__.py

# This file makes the 'models' directory a Python package
# and re-exports the models other packages use most.

from .airdrop import AirdropClaim, SubscriptionInfo
from .interaction import ActionLogEntry, ActionType, InteractionStatus, UserActionRecord
from .referral import (
    PromotionCode,
    RedeemResult,
    RewardCaps,
    RewardIncrement,
    RewardOutcome,
    UserAccount,
)
from .twitter import Credentials

__all__ = [
    "ActionLogEntry",
    "ActionType",
    "AirdropClaim",
    "Credentials",
    "InteractionStatus",
    "PromotionCode",
    "RedeemResult",
    "RewardCaps",
    "RewardIncrement",
    "RewardOutcome",
    "SubscriptionInfo",
    "UserAccount",
    "UserActionRecord",
]
