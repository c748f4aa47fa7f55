# airdrop_backend/features/referral/routes.py

# HTTP endpoints for promotion codes, referral redemption and rewards.

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...api.dependencies import Services, get_credentials, get_services
from ...models.twitter import Credentials
from ...shared import errors
from ...shared.errors import NotFoundOrIneligible, StateConflict, create_response, storage_failure_code
from ...shared.result import NotFound
from .service import require_address

router = APIRouter(prefix="/v1/referral", tags=["referral"])


class AddressBody(BaseModel):
    user_address: str


class RedeemBody(BaseModel):
    user_address: str
    promotion_code: str


class RewardBody(BaseModel):
    user_address: str  # the child whose parent gets rewarded
    amount: int = Field(ge=0)


@router.post("/promotion-code")
async def issue_promotion_code(
    payload: AddressBody,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    """Issues (or returns) the caller's promotion code once the required actions are done."""
    require_address(payload.user_address)
    actor_id = await services.actions.resolve_actor(credentials)
    with storage_failure_code(errors.INTERACTION_CHECK_FAILED):
        missing = await services.completion.missing_actions(actor_id, services.settings.required_action_types)
    if missing:
        raise StateConflict(errors.REQUIRED_STEPS_INCOMPLETE, details={"missing": [m.value for m in missing]})

    with storage_failure_code(errors.PROMOTION_CODE_STORE_FAILED):
        code = await services.referral.issue_code(payload.user_address)
    return create_response(errors.SUCCESS, "Promotion code issued", {"promotionCode": code})


@router.get("/promotion-code")
async def get_promotion_code(user_address: str, services: Services = Depends(get_services)):
    require_address(user_address)
    promotion = await services.referral.get_code(user_address)
    if isinstance(promotion, NotFound):
        raise NotFoundOrIneligible(errors.PROMOTION_CODE_NOT_FOUND)
    return create_response(errors.SUCCESS, "Promotion code found", {"promotionCode": promotion.value.promotion_code})


@router.post("/redeem")
async def redeem_promotion_code(payload: RedeemBody, services: Services = Depends(get_services)):
    with storage_failure_code(errors.PROMOTION_CODE_PROCESSING_FAILED):
        result = await services.referral.redeem_code(payload.user_address, payload.promotion_code)
    if not result.valid:
        return create_response(errors.INVALID_PROMOTION_CODE, "Invalid promotion code", {"valid": False})
    return create_response(errors.SUCCESS, "Promotion code redeemed", result.model_dump())


@router.post("/reward")
async def reward_parent(payload: RewardBody, services: Services = Depends(get_services)):
    outcome = await services.distributor.reward_parent(payload.user_address, payload.amount, services.reward_caps)
    if isinstance(outcome, NotFound):
        return create_response(errors.PROMOTION_CODE_NOT_FOUND, "No referring parent", {"reward": False})
    return create_response(errors.SUCCESS, "Parent reward processed", outcome.value.model_dump())


@router.get("/reward-amount")
async def get_reward_amount(user_address: str, services: Services = Depends(get_services)):
    with storage_failure_code(errors.REWARD_AMOUNT_CHECK_FAILED):
        amount = await services.referral.get_reward_amount(user_address)
    return create_response(errors.SUCCESS, "Reward amount", {"totalRewardAmount": amount})


@router.get("/purchase")
async def get_purchase_status(user_address: str, services: Services = Depends(get_services)):
    with storage_failure_code(errors.BUYER_CHECK_FAILED):
        purchase = await services.eligibility.check_purchase(user_address)
    return create_response(errors.SUCCESS, "Purchase status", {"purchase": purchase})
