# airdrop_backend/features/twitter/actions.py

# Social actions: the write actions (retweet, like, bookmark, follow, tweet)
# and their read-only check variants. Every call goes
#   validate -> resolve actor -> per-key lock -> ledger check -> provider -> record
# so a fresh successful record short-circuits the provider entirely.

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from ...models.interaction import ActionType, InteractionStatus
from ...models.twitter import Credentials
from ...shared import errors
from ...shared.errors import InteractionCheckError, InvalidInput, StorageUnavailable, UpstreamError
from ...shared.utils import is_valid_tweet_id, is_valid_user_name
from ..ledger.service import InteractionLedger
from .client import ProviderResult, TwitterClient

logger = logging.getLogger(__name__)

MAX_TWEET_LENGTH = 280

ALREADY_DONE_CODES = {
    ActionType.RETWEET: errors.ALREADY_RETWEETED,
    ActionType.LIKE: errors.ALREADY_LIKED,
    ActionType.FOLLOW: errors.ALREADY_FOLLOWED,
    ActionType.BOOKMARK: errors.ALREADY_BOOKMARKED,
}


@dataclass
class ActionOutcome:
    """What an action or check call reports back to the HTTP layer."""

    action_type: ActionType
    actor_id: str
    target_id: Optional[str] = None
    code: int = errors.SUCCESS
    message: str = ""
    cached: bool = False  # answered from the ledger, provider not called
    verified: bool = True
    data: Dict[str, Any] = field(default_factory=dict)

    def to_data(self) -> Dict[str, Any]:
        return {
            "type": self.action_type.value,
            "userId": self.actor_id,
            "targetId": self.target_id,
            "cached": self.cached,
            "verified": self.verified,
            "result": self.data,
        }


class SocialActions:
    def __init__(self, client: TwitterClient, ledger: InteractionLedger):
        self.client = client
        self.ledger = ledger

    # --- Input validation ---
    @staticmethod
    def _require_tweet_id(tweet_id: Optional[str]) -> str:
        if not tweet_id or not is_valid_tweet_id(tweet_id):
            raise InvalidInput(errors.INVALID_TWEET_ID)
        return tweet_id

    @staticmethod
    def _require_user_name(username: Optional[str]) -> str:
        if not username or not is_valid_user_name(username):
            raise InvalidInput(errors.INVALID_USER_NAME)
        return username

    # --- Shared steps ---
    async def resolve_actor(self, credentials: Credentials) -> str:
        try:
            return await self.client.verify_identity(credentials)
        except UpstreamError as e:
            await self.ledger.audit_failure("unknown", "verify_identity", e.details.get("url", ""), str(e))
            raise

    async def _resolve_target_user(self, credentials: Credentials, actor_id: str, username: str) -> str:
        try:
            result = await self.client.lookup_user(credentials, username)
        except UpstreamError as e:
            await self.ledger.audit_failure(actor_id, "lookup_user", e.details.get("url", ""), str(e))
            raise
        return result.data.data.id

    async def _current_status(
        self,
        actor_id: str,
        action_type: ActionType,
        target_id: Optional[str] = None,
    ) -> InteractionStatus:
        try:
            return await self.ledger.check_interaction(actor_id, action_type, target_id)
        except InteractionCheckError as e:
            # Last attempt failed upstream; treat as not done and re-check
            logger.warning("Re-checking %s for %s/%s after failed attempt: %s", action_type.value, actor_id, target_id, e)
            return InteractionStatus(status=False, related_target_id=target_id, message=e.message)

    async def _record_success(
        self,
        actor_id: str,
        action_type: ActionType,
        result: ProviderResult,
        target_id: Optional[str],
        response: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self.ledger.record(
                actor_id,
                action_type,
                result.url,
                request_body=result.body,
                response=response if response is not None else result.raw,
                target_id=target_id,
            )
        except StorageUnavailable as e:
            # The provider call went through; the action still counts as done
            logger.error("Failed to persist %s state for %s/%s: %s", action_type.value, actor_id, target_id, e)

    async def _record_failure(
        self,
        actor_id: str,
        action_type: ActionType,
        error: UpstreamError,
        target_id: Optional[str],
    ) -> None:
        try:
            await self.ledger.record(
                actor_id,
                action_type,
                error.details.get("url", ""),
                request_body=error.details.get("requestBody"),
                error=error.message,
                target_id=target_id,
            )
        except StorageUnavailable as e:
            logger.error("Failed to persist %s failure for %s/%s: %s", action_type.value, actor_id, target_id, e)

    async def _write_action(
        self,
        credentials: Credentials,
        actor_id: str,
        action_type: ActionType,
        target_id: str,
        call: Callable[[Credentials, str, str], Awaitable[ProviderResult]],
        message: str,
    ) -> ActionOutcome:
        async with self.ledger.lock(actor_id, action_type, target_id):
            status = await self._current_status(actor_id, action_type, target_id)
            if status.status:
                cached = status.record.response_payload if status.record else None
                return ActionOutcome(
                    action_type=action_type,
                    actor_id=actor_id,
                    target_id=target_id,
                    code=ALREADY_DONE_CODES[action_type],
                    message=errors.CODE_TO_ERROR[ALREADY_DONE_CODES[action_type]],
                    cached=True,
                    data=cached or {},
                )

            try:
                result = await call(credentials, actor_id, target_id)
            except UpstreamError as e:
                await self._record_failure(actor_id, action_type, e, target_id)
                raise

            await self._record_success(actor_id, action_type, result, target_id)
            logger.info("%s succeeded for %s on %s", action_type.value, actor_id, target_id)
            return ActionOutcome(
                action_type=action_type,
                actor_id=actor_id,
                target_id=target_id,
                message=message,
                data=result.data.data.model_dump(exclude_none=True),
            )

    async def _check(
        self,
        actor_id: str,
        action_type: ActionType,
        target_id: str,
        fetch: Callable[[], Awaitable[ProviderResult]],
        matches: Callable[[ProviderResult], Optional[str]],
    ) -> ActionOutcome:
        """
        Runs a read-only verification keyed on `target_id`. `matches` returns the
        confirmed id (or None); when it differs from the key it is kept in the
        response as matchedId. Only a confirmed interaction is written to the
        per-user state; a negative observation goes to the audit stream alone.
        """
        async with self.ledger.lock(actor_id, action_type, target_id):
            status = await self._current_status(actor_id, action_type, target_id)
            if status.status:
                cached = status.record.response_payload if status.record else None
                return ActionOutcome(
                    action_type=action_type,
                    actor_id=actor_id,
                    target_id=(cached or {}).get("matchedId", status.related_target_id),
                    message=status.message,
                    cached=True,
                )

            try:
                result = await fetch()
            except UpstreamError as e:
                await self.ledger.audit_failure(actor_id, action_type.value, e.details.get("url", ""), e.message, target_id=target_id)
                raise

            confirmed = matches(result)
            if confirmed is None:
                await self.ledger.record(actor_id, action_type, result.url, response={"verified": False})
                return ActionOutcome(
                    action_type=action_type,
                    actor_id=actor_id,
                    target_id=target_id,
                    message=f"{action_type.value} not found",
                    verified=False,
                )

            response: Dict[str, Any] = {"verified": True}
            if confirmed != target_id:
                response["matchedId"] = confirmed
            await self._record_success(actor_id, action_type, result, target_id, response=response)
            return ActionOutcome(
                action_type=action_type,
                actor_id=actor_id,
                target_id=confirmed,
                message=f"{action_type.value} verified",
            )

    # --- Write actions ---
    async def retweet(self, credentials: Credentials, tweet_id: str) -> ActionOutcome:
        tweet_id = self._require_tweet_id(tweet_id)
        actor_id = await self.resolve_actor(credentials)
        return await self._write_action(
            credentials, actor_id, ActionType.RETWEET, tweet_id, self.client.retweet, "Tweet retweeted successfully"
        )

    async def like(self, credentials: Credentials, tweet_id: str) -> ActionOutcome:
        tweet_id = self._require_tweet_id(tweet_id)
        actor_id = await self.resolve_actor(credentials)
        return await self._write_action(
            credentials, actor_id, ActionType.LIKE, tweet_id, self.client.like, "Tweet liked successfully"
        )

    async def bookmark(self, credentials: Credentials, tweet_id: str) -> ActionOutcome:
        tweet_id = self._require_tweet_id(tweet_id)
        actor_id = await self.resolve_actor(credentials)
        return await self._write_action(
            credentials, actor_id, ActionType.BOOKMARK, tweet_id, self.client.bookmark, "Tweet bookmarked successfully"
        )

    async def follow(self, credentials: Credentials, target_user_id: str) -> ActionOutcome:
        if not target_user_id or not target_user_id.isdigit():
            raise InvalidInput(errors.WRONG_PARAMS, "Target user id must be numeric")
        actor_id = await self.resolve_actor(credentials)
        return await self._write_action(
            credentials, actor_id, ActionType.FOLLOW, target_user_id, self.client.follow, "User followed successfully"
        )

    async def follow_by_username(self, credentials: Credentials, username: str) -> ActionOutcome:
        username = self._require_user_name(username)
        actor_id = await self.resolve_actor(credentials)
        target_user_id = await self._resolve_target_user(credentials, actor_id, username)
        return await self._write_action(
            credentials, actor_id, ActionType.FOLLOW, target_user_id, self.client.follow, "User followed successfully"
        )

    async def tweet(self, credentials: Credentials, text: str) -> ActionOutcome:
        """
        Posts a tweet. A successful post within the TTL window is reported as
        cached instead of posting again; the tweet id becomes the record's target.
        """
        if not text or not text.strip():
            raise InvalidInput(errors.WRONG_PARAMS, "Tweet text is required")
        if len(text) > MAX_TWEET_LENGTH:
            raise InvalidInput(errors.WRONG_PARAMS, f"Tweet text exceeds {MAX_TWEET_LENGTH} characters")

        actor_id = await self.resolve_actor(credentials)
        async with self.ledger.lock(actor_id, ActionType.TWEET):
            status = await self._current_status(actor_id, ActionType.TWEET)
            if status.status:
                cached = status.record.response_payload if status.record else None
                return ActionOutcome(
                    action_type=ActionType.TWEET,
                    actor_id=actor_id,
                    target_id=(cached or {}).get("matchedId", status.related_target_id),
                    message="Tweet already posted recently",
                    cached=True,
                )

            try:
                result = await self.client.post_tweet(credentials, text)
            except UpstreamError as e:
                await self.ledger.audit_failure(
                    actor_id, ActionType.TWEET.value, e.details.get("url", ""), e.message, e.details.get("requestBody")
                )
                raise

            tweet_id = result.data.data.id
            await self._record_success(actor_id, ActionType.TWEET, result, tweet_id)
            return ActionOutcome(
                action_type=ActionType.TWEET,
                actor_id=actor_id,
                target_id=tweet_id,
                message="Tweet posted successfully",
                data=result.data.data.model_dump(),
            )

    # --- Check variants ---
    async def check_retweeted(self, credentials: Credentials, tweet_id: str) -> ActionOutcome:
        tweet_id = self._require_tweet_id(tweet_id)
        actor_id = await self.resolve_actor(credentials)
        return await self._check(
            actor_id,
            ActionType.RETWEET,
            tweet_id,
            lambda: self.client.list_retweeters(credentials, tweet_id),
            lambda result: tweet_id if result.data.contains(actor_id) else None,
        )

    async def check_liked(self, credentials: Credentials, tweet_id: str) -> ActionOutcome:
        tweet_id = self._require_tweet_id(tweet_id)
        actor_id = await self.resolve_actor(credentials)
        return await self._check(
            actor_id,
            ActionType.LIKE,
            tweet_id,
            lambda: self.client.list_liked(credentials, actor_id),
            lambda result: tweet_id if result.data.contains(tweet_id) else None,
        )

    async def check_bookmarked(self, credentials: Credentials, tweet_id: str) -> ActionOutcome:
        tweet_id = self._require_tweet_id(tweet_id)
        actor_id = await self.resolve_actor(credentials)
        return await self._check(
            actor_id,
            ActionType.BOOKMARK,
            tweet_id,
            lambda: self.client.list_bookmarks(credentials, actor_id),
            lambda result: tweet_id if result.data.contains(tweet_id) else None,
        )

    async def check_followed(self, credentials: Credentials, username: str) -> ActionOutcome:
        username = self._require_user_name(username)
        actor_id = await self.resolve_actor(credentials)
        target_user_id = await self._resolve_target_user(credentials, actor_id, username)
        return await self._check(
            actor_id,
            ActionType.FOLLOW,
            target_user_id,
            lambda: self.client.list_following(credentials, actor_id),
            lambda result: target_user_id if result.data.contains(target_user_id) else None,
        )

    async def check_tweeted(self, credentials: Credentials, keyword: str) -> ActionOutcome:
        """
        Looks for `keyword` among the actor's most recent tweets. Each keyword is
        its own ledger key, so a match for one keyword never answers another.
        """
        if not keyword or not keyword.strip():
            raise InvalidInput(errors.WRONG_PARAMS, "Keyword is required")
        actor_id = await self.resolve_actor(credentials)
        keyword_key = f"keyword:{keyword.strip().lower()}"

        def _find(result: ProviderResult) -> Optional[str]:
            tweet = result.data.find_text(keyword)
            return tweet.id if tweet else None

        return await self._check(
            actor_id,
            ActionType.TWEET,
            keyword_key,
            lambda: self.client.list_own_tweets(credentials, actor_id),
            _find,
        )
