# airdrop_backend/models/twitter.py

# Typed schemas for every Twitter endpoint the action client calls.
# Provider payloads are validated once, at the client boundary; the rest of
# the code only sees these models, never raw JSON.

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    """Signed-in user's OAuth 1.0a token pair, supplied by the session layer."""

    access_token: str = Field(min_length=1)
    access_token_secret: str = Field(min_length=1)

    def __repr__(self) -> str:  # keep secrets out of logs and tracebacks
        return "Credentials(access_token='***', access_token_secret='***')"

    __str__ = __repr__


class ProviderError(BaseModel):
    """One entry of the provider's `errors` list (v2 and v1.1 shapes)."""

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    detail: Optional[str] = None
    message: Optional[str] = None
    code: Optional[int] = None
    type: Optional[str] = None

    def describe(self) -> str:
        return self.detail or self.message or self.title or "unknown provider error"


class ProviderEnvelope(BaseModel):
    """Fields shared by every response; a non-empty `errors` list means failure."""

    model_config = ConfigDict(extra="allow")

    errors: List[ProviderError] = Field(default_factory=list)


# --- Account / users ---
class VerifyCredentialsResponse(ProviderEnvelope):
    id_str: str
    screen_name: Optional[str] = None


class TwitterUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    username: Optional[str] = None


class UserLookupResponse(ProviderEnvelope):
    data: TwitterUser


class UserListResponse(ProviderEnvelope):
    data: List[TwitterUser] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    def contains(self, user_id: str) -> bool:
        return any(user.id == user_id for user in self.data)


# --- Tweets ---
class Tweet(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    text: str = ""


class TweetCreateResponse(ProviderEnvelope):
    data: Tweet


class TweetListResponse(ProviderEnvelope):
    data: List[Tweet] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    def contains(self, tweet_id: str) -> bool:
        return any(tweet.id == tweet_id for tweet in self.data)

    def find_text(self, keyword: str) -> Optional[Tweet]:
        lowered = keyword.lower()
        return next((tweet for tweet in self.data if lowered in tweet.text.lower()), None)


# --- Write actions ---
class ActionData(BaseModel):
    model_config = ConfigDict(extra="allow")

    retweeted: Optional[bool] = None
    liked: Optional[bool] = None
    bookmarked: Optional[bool] = None
    following: Optional[bool] = None
    pending_follow: Optional[bool] = None


class ActionResponse(ProviderEnvelope):
    data: ActionData
