# airdrop_backend/features/twitter/client.py

# Action client for the Twitter API.
# One signed HTTP call per method, no retries: the provider's write limits are
# tight (about 5 requests / 15 minutes per user for retweet, like, follow and
# bookmark), so retry policy belongs to the caller.
# Every payload is validated into a schema from models/twitter.py here, and a
# non-empty `errors` list is a failure whatever the HTTP status says.

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar

import httpx
from authlib.integrations.httpx_client import AsyncOAuth1Client
from pydantic import BaseModel, ValidationError

from ...config.settings import Settings
from ...models.twitter import (
    ActionResponse,
    Credentials,
    ProviderEnvelope,
    TweetCreateResponse,
    TweetListResponse,
    UserListResponse,
    UserLookupResponse,
    VerifyCredentialsResponse,
)
from ...shared import errors
from ...shared.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Builds the HTTP client used for one call; tests swap in an httpx.MockTransport client
SessionFactory = Callable[[Credentials], httpx.AsyncClient]


@dataclass
class ProviderResult(Generic[T]):
    """A successful provider call: what was sent, and the validated reply."""

    method: str
    url: str
    body: Optional[Dict[str, Any]]
    data: T
    raw: Dict[str, Any]


class TwitterClient:
    def __init__(self, settings: Settings, session_factory: Optional[SessionFactory] = None):
        self.settings = settings
        self.api_base = settings.TWITTER_API_BASE.rstrip("/")
        self._session_factory = session_factory or self._oauth_session

    def _oauth_session(self, credentials: Credentials) -> httpx.AsyncClient:
        return AsyncOAuth1Client(
            client_id=self.settings.TWITTER_CONSUMER_KEY,
            client_secret=self.settings.TWITTER_CONSUMER_SECRET,
            token=credentials.access_token,
            token_secret=credentials.access_token_secret,
            timeout=self.settings.UPSTREAM_TIMEOUT_SECONDS,
        )

    # --- Generic signed call ---
    async def perform_action(
        self,
        credentials: Credentials,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        error_code: int = errors.UNKNOWN_ERROR,
    ) -> Dict[str, Any]:
        """
        Issues one signed request and returns the parsed JSON object.
        Transport failures, timeouts, unparseable bodies and provider error
        lists all raise UpstreamError(error_code) with the url in details.
        """
        details: Dict[str, Any] = {"url": url, "method": method}
        if body is not None:
            details["requestBody"] = body

        try:
            async with self._session_factory(credentials) as session:
                response = await session.request(method, url, json=body)
        except httpx.TimeoutException as e:
            logger.error("Twitter request timed out: %s %s", method, url)
            raise UpstreamError(error_code, f"Request to provider timed out: {url}", details, cause=e) from e
        except httpx.HTTPError as e:
            logger.error("Twitter request failed: %s %s: %s", method, url, e)
            raise UpstreamError(error_code, f"Request to provider failed: {e}", details, cause=e) from e

        details["status"] = response.status_code
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(error_code, "Provider returned a non-JSON body", details, cause=e) from e
        if not isinstance(payload, dict):
            raise UpstreamError(error_code, "Provider returned an unexpected JSON shape", details)

        try:
            envelope = ProviderEnvelope.model_validate(payload)
        except ValidationError as e:
            details["schema"] = ProviderEnvelope.__name__
            raise UpstreamError(error_code, "Provider returned a malformed error list", details, cause=e) from e
        if envelope.errors:
            first = envelope.errors[0].describe()
            details["errors"] = [error.model_dump(exclude_none=True) for error in envelope.errors]
            logger.warning("Twitter returned errors for %s %s: %s", method, url, first)
            raise UpstreamError(error_code, first, details)

        if response.status_code >= 400:
            message = payload.get("detail") or payload.get("title") or f"HTTP {response.status_code}"
            raise UpstreamError(error_code, str(message), details)

        return payload

    async def _call(
        self,
        credentials: Credentials,
        method: str,
        url: str,
        schema: Type[T],
        error_code: int,
        body: Optional[Dict[str, Any]] = None,
    ) -> ProviderResult[T]:
        payload = await self.perform_action(credentials, method, url, body, error_code)
        try:
            data = schema.model_validate(payload)
        except ValidationError as e:
            details = {"url": url, "method": method, "schema": schema.__name__}
            raise UpstreamError(error_code, f"Unexpected provider response for {schema.__name__}", details, cause=e) from e
        return ProviderResult(method=method, url=url, body=body, data=data, raw=payload)

    # --- Identity / lookup ---
    async def verify_identity(self, credentials: Credentials) -> str:
        """Returns the signed-in user's id (string form)."""
        url = f"{self.api_base}/1.1/account/verify_credentials.json"
        result = await self._call(credentials, "GET", url, VerifyCredentialsResponse, errors.CURRENT_USER_ID_FAILED)
        return result.data.id_str

    async def lookup_user(self, credentials: Credentials, username: str) -> ProviderResult[UserLookupResponse]:
        # Limit: 100 requests / 24 hours per user
        url = f"{self.api_base}/2/users/by/username/{username}"
        return await self._call(credentials, "GET", url, UserLookupResponse, errors.TARGET_USER_ID_FAILED)

    # --- Write actions ---
    async def post_tweet(self, credentials: Credentials, text: str) -> ProviderResult[TweetCreateResponse]:
        url = f"{self.api_base}/2/tweets"
        return await self._call(credentials, "POST", url, TweetCreateResponse, errors.TWEET_FAILED, {"text": text})

    async def retweet(self, credentials: Credentials, user_id: str, tweet_id: str) -> ProviderResult[ActionResponse]:
        url = f"{self.api_base}/2/users/{user_id}/retweets"
        return await self._call(credentials, "POST", url, ActionResponse, errors.RETWEET_FAILED, {"tweet_id": tweet_id})

    async def like(self, credentials: Credentials, user_id: str, tweet_id: str) -> ProviderResult[ActionResponse]:
        url = f"{self.api_base}/2/users/{user_id}/likes"
        return await self._call(credentials, "POST", url, ActionResponse, errors.LIKE_FAILED, {"tweet_id": tweet_id})

    async def bookmark(self, credentials: Credentials, user_id: str, tweet_id: str) -> ProviderResult[ActionResponse]:
        url = f"{self.api_base}/2/users/{user_id}/bookmarks"
        return await self._call(credentials, "POST", url, ActionResponse, errors.BOOKMARK_FAILED, {"tweet_id": tweet_id})

    async def follow(self, credentials: Credentials, user_id: str, target_user_id: str) -> ProviderResult[ActionResponse]:
        url = f"{self.api_base}/2/users/{user_id}/following"
        body = {"target_user_id": target_user_id}
        return await self._call(credentials, "POST", url, ActionResponse, errors.FOLLOW_FAILED, body)

    # --- Read-only lists used by the check variants ---
    async def list_retweeters(self, credentials: Credentials, tweet_id: str) -> ProviderResult[UserListResponse]:
        url = f"{self.api_base}/2/tweets/{tweet_id}/retweeted_by?max_results=100"
        return await self._call(credentials, "GET", url, UserListResponse, errors.RETWEET_STATUS_FAILED)

    async def list_following(self, credentials: Credentials, user_id: str) -> ProviderResult[UserListResponse]:
        url = f"{self.api_base}/2/users/{user_id}/following?max_results=1000"
        return await self._call(credentials, "GET", url, UserListResponse, errors.FOLLOW_STATUS_FAILED)

    async def list_liked(self, credentials: Credentials, user_id: str) -> ProviderResult[TweetListResponse]:
        url = f"{self.api_base}/2/users/{user_id}/liked_tweets?max_results=100"
        return await self._call(credentials, "GET", url, TweetListResponse, errors.LIKE_STATUS_FAILED)

    async def list_bookmarks(self, credentials: Credentials, user_id: str) -> ProviderResult[TweetListResponse]:
        # Limit: 10 requests / 15 mins per user
        url = f"{self.api_base}/2/users/{user_id}/bookmarks?max_results=100"
        return await self._call(credentials, "GET", url, TweetListResponse, errors.BOOKMARK_STATUS_FAILED)

    async def list_own_tweets(
        self,
        credentials: Credentials,
        user_id: str,
        max_results: int = 10,
    ) -> ProviderResult[TweetListResponse]:
        url = f"{self.api_base}/2/users/{user_id}/tweets?max_results={max_results}"
        return await self._call(credentials, "GET", url, TweetListResponse, errors.INTERACTION_CHECK_FAILED)
