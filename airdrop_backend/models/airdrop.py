# airdrop_backend/models/airdrop.py

# Models for airdrop claims ('airdropClaim') and newsletter subscription
# info ('subscriptionInfo'), plus the replies of the eligibility and
# airdrop servers.

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import DocumentModel


class AirdropClaim(DocumentModel):
    actor_id: str = Field(alias="userId")
    user_address: str = Field(alias="userAddress")


class SubscriptionInfo(DocumentModel):
    user_email: str = Field(alias="userEmail")
    user_name: Optional[str] = Field(alias="userName", default=None)
    subscription_info: Optional[str] = Field(alias="subscriptionInfo", default=None)


# --- External service replies ---
class ServiceReply(BaseModel):
    """Envelope used by the eligibility and airdrop servers: code 0 means success."""

    model_config = ConfigDict(extra="allow")

    code: int = 0
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def failure_text(self) -> str:
        return self.error or self.message or f"code {self.code}"


class EligibilityReply(ServiceReply):
    data: Optional[bool] = None


class AirdropCount(BaseModel):
    model_config = ConfigDict(extra="allow")

    airdrop_count: int = Field(ge=0)


class AppendRewardReply(ServiceReply):
    data: Optional[AirdropCount] = None


class RecipientInfoReply(ServiceReply):
    data: Optional[Dict[str, Any]] = None
