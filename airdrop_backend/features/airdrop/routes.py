# airdrop_backend/features/airdrop/routes.py

# HTTP endpoints for airdrop progress and claims.

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...api.dependencies import Services, get_credentials, get_services
from ...models.twitter import Credentials
from ...shared import errors
from ...shared.errors import StateConflict, create_response, storage_failure_code

router = APIRouter(prefix="/v1/airdrop", tags=["airdrop"])


class ClaimBody(BaseModel):
    user_address: str


@router.get("/progress")
async def get_progress(
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    """Which of the required actions the signed-in user still has to do."""
    actor_id = await services.actions.resolve_actor(credentials)
    required = services.settings.required_action_types
    with storage_failure_code(errors.INTERACTION_CHECK_FAILED):
        missing = await services.completion.missing_actions(actor_id, required)
    return create_response(
        errors.SUCCESS,
        "Progress",
        {"required": required, "missing": [m.value for m in missing], "complete": not missing},
    )


@router.get("/claim")
async def get_claim_status(
    user_address: str,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    actor_id = await services.actions.resolve_actor(credentials)
    claimed = await services.claims.has_claimed(actor_id, user_address)
    return create_response(errors.SUCCESS, "Airdrop status", {"claimed": claimed})


@router.post("/claim")
async def claim_airdrop(
    payload: ClaimBody,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    actor_id = await services.actions.resolve_actor(credentials)
    with storage_failure_code(errors.INTERACTION_CHECK_FAILED):
        missing = await services.completion.missing_actions(actor_id, services.settings.required_action_types)
    if missing:
        raise StateConflict(errors.REQUIRED_STEPS_INCOMPLETE, details={"missing": [m.value for m in missing]})

    await services.claims.log_claim(actor_id, payload.user_address)
    return create_response(errors.SUCCESS, "Airdrop claim logged", {"claimed": True})
