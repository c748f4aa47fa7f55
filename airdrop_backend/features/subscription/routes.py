# airdrop_backend/features/subscription/routes.py

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...api.dependencies import Services, get_services
from ...shared import errors
from ...shared.errors import create_response

router = APIRouter(prefix="/v1/subscription", tags=["subscription"])


class SubscriptionBody(BaseModel):
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    subscription_info: Optional[str] = None


@router.post("")
async def log_subscription(payload: SubscriptionBody, services: Services = Depends(get_services)):
    await services.subscriptions.log_subscription(payload.user_email, payload.user_name, payload.subscription_info)
    return create_response(errors.SUCCESS, "Subscription logged")
