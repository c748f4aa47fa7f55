# airdrop_backend/features/twitter/routes.py

# HTTP endpoints for the social actions and their check variants.
# Provider credentials come from the X-Access-Token / X-Access-Token-Secret
# headers; every response uses the standard envelope.

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...api.dependencies import Services, get_credentials, get_services
from ...models.twitter import Credentials
from ...shared.errors import create_response
from .actions import ActionOutcome

router = APIRouter(prefix="/v1/twitter", tags=["twitter"])


class TweetTarget(BaseModel):
    tweet_id: str


class FollowTarget(BaseModel):
    username: str


class TweetText(BaseModel):
    text: str


def _envelope(outcome: ActionOutcome) -> Dict[str, Any]:
    return create_response(outcome.code, outcome.message, outcome.to_data())


# --- Write actions ---
@router.post("/retweet")
async def retweet(
    payload: TweetTarget,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.retweet(credentials, payload.tweet_id))


@router.post("/like")
async def like(
    payload: TweetTarget,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.like(credentials, payload.tweet_id))


@router.post("/bookmark")
async def bookmark(
    payload: TweetTarget,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.bookmark(credentials, payload.tweet_id))


@router.post("/follow")
async def follow(
    payload: FollowTarget,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.follow_by_username(credentials, payload.username))


@router.post("/tweet")
async def tweet(
    payload: TweetText,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.tweet(credentials, payload.text))


# --- Checks ---
@router.get("/check/retweet")
async def check_retweet(
    tweet_id: str,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.check_retweeted(credentials, tweet_id))


@router.get("/check/like")
async def check_like(
    tweet_id: str,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.check_liked(credentials, tweet_id))


@router.get("/check/bookmark")
async def check_bookmark(
    tweet_id: str,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.check_bookmarked(credentials, tweet_id))


@router.get("/check/follow")
async def check_follow(
    username: str,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.check_followed(credentials, username))


@router.get("/check/tweet")
async def check_tweet(
    keyword: str,
    credentials: Credentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    return _envelope(await services.actions.check_tweeted(credentials, keyword))
