# airdrop_backend/shared/errors.py

# Error taxonomy and the response envelope.
# The numeric codes are a persisted contract: clients map them to display
# text, so existing numbers must never be renumbered or reused.

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional


# --- Stable error codes ---
SUCCESS = 0
UNKNOWN_ERROR = 10000
WRONG_PARAMS = 10001
AUTHENTICATION_FAILED = 10002
NO_SESSION_FOUND = 10003
INVALID_ADDRESS = 10004
INVALID_TWEET_ID = 10005
INVALID_USER_NAME = 10006
CURRENT_USER_ID_FAILED = 10007
RETWEET_STATUS_FAILED = 10008
TARGET_USER_ID_FAILED = 10009
FOLLOW_STATUS_FAILED = 10010
LIKE_STATUS_FAILED = 10011
BOOKMARK_STATUS_FAILED = 10012
RETWEET_FAILED = 10013
LIKE_FAILED = 10014
FOLLOW_FAILED = 10015
BOOKMARK_FAILED = 10016
ALREADY_RETWEETED = 10017
ALREADY_LIKED = 10018
ALREADY_FOLLOWED = 10019
ALREADY_BOOKMARKED = 10020
AIRDROP_STATUS_FAILED = 10021
AIRDROP_CLAIM_LOG_FAILED = 10022
INVALID_STEP_NUMBER = 10023
PROMOTION_CODE_NOT_FOUND = 10024
INVALID_PROMOTION_CODE = 10025
PROMOTION_CODE_PROCESSING_FAILED = 10026
BUYER_CHECK_FAILED = 10027
INTERACTION_CHECK_FAILED = 10028
PROMOTION_CODE_STORE_FAILED = 10029
PROMOTION_CODE_GENERATION_FAILED = 10030
REQUIRED_STEPS_INCOMPLETE = 10031
REWARD_CAP_EXCEEDED = 10032
PARENT_REWARD_FAILED = 10033
PARENT_REWARD_CHECK_FAILED = 10034
PARENT_REWARD_APPEND_FAILED = 10035
RECIPIENT_COUNT_FAILED = 10036
REWARD_AMOUNT_CHECK_FAILED = 10037
STORAGE_UNAVAILABLE = 10038
TWEET_FAILED = 10039
USER_EMAIL_FAILED = 10040
SUBSCRIPTION_LOG_FAILED = 10041
OAUTH_REQUEST_TOKEN_FAILED = 10050


CODE_TO_ERROR: Dict[int, str] = {
    UNKNOWN_ERROR: "Unknown error",
    WRONG_PARAMS: "Wrong params",
    AUTHENTICATION_FAILED: "Authentication failed",
    NO_SESSION_FOUND: "No session found",
    INVALID_ADDRESS: "Address not found in request param or invalid address",
    INVALID_TWEET_ID: "Tweet id not found in request param or invalid tweet id",
    INVALID_USER_NAME: "User name not found in request param or invalid user name",
    CURRENT_USER_ID_FAILED: "Failed to get current user id",
    RETWEET_STATUS_FAILED: "Failed to get user retweet status",
    TARGET_USER_ID_FAILED: "Failed to get target user id",
    FOLLOW_STATUS_FAILED: "Failed to get user follow status",
    LIKE_STATUS_FAILED: "Failed to get user like status",
    BOOKMARK_STATUS_FAILED: "Failed to get user bookmark status",
    RETWEET_FAILED: "Failed to retweet the tweet",
    LIKE_FAILED: "Failed to like the tweet",
    FOLLOW_FAILED: "Failed to follow the user",
    BOOKMARK_FAILED: "Failed to bookmark the tweet",
    ALREADY_RETWEETED: "Tweet has been retweeted before",
    ALREADY_LIKED: "Tweet has been liked before",
    ALREADY_FOLLOWED: "User has been followed before",
    ALREADY_BOOKMARKED: "Tweet has been bookmarked before",
    AIRDROP_STATUS_FAILED: "Failed to check airdrop status",
    AIRDROP_CLAIM_LOG_FAILED: "Failed to log airdrop claim",
    INVALID_STEP_NUMBER: "Invalid step number",
    PROMOTION_CODE_NOT_FOUND: "Promotion code not found",
    INVALID_PROMOTION_CODE: "Invalid promotion code",
    PROMOTION_CODE_PROCESSING_FAILED: "Error while processing promotion code",
    BUYER_CHECK_FAILED: "Error checking buyer",
    INTERACTION_CHECK_FAILED: "Failed to check user interactions",
    PROMOTION_CODE_STORE_FAILED: "Failed to generate and store promotion code",
    PROMOTION_CODE_GENERATION_FAILED: "Failed to generate promotion code",
    REQUIRED_STEPS_INCOMPLETE: "User has not completed the required steps",
    REWARD_CAP_EXCEEDED: "The total airdrop amount is exceeded the limitation",
    PARENT_REWARD_FAILED: "Error in rewarding parent user",
    PARENT_REWARD_CHECK_FAILED: "Failed to check reward for parent user",
    PARENT_REWARD_APPEND_FAILED: "Error appending reward for parent user",
    RECIPIENT_COUNT_FAILED: "Error checking recipient count",
    REWARD_AMOUNT_CHECK_FAILED: "Error checking user reward amount",
    STORAGE_UNAVAILABLE: "Storage unavailable",
    TWEET_FAILED: "Failed to post the tweet",
    USER_EMAIL_FAILED: "Failed to get user email",
    SUBSCRIPTION_LOG_FAILED: "Error logging subscription info",
    OAUTH_REQUEST_TOKEN_FAILED: "Failed to get OAuth request token",
}


# --- Exception hierarchy ---
@dataclass(eq=False)
class AirdropError(Exception):
    """
    Base domain error. Carries a stable numeric code from CODE_TO_ERROR,
    a human-readable message and optional safe details (never credentials).
    """

    code: int = UNKNOWN_ERROR
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    http_status: int = 400

    def __post_init__(self) -> None:
        if not self.message:
            self.message = CODE_TO_ERROR.get(self.code, CODE_TO_ERROR[UNKNOWN_ERROR])
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_response(self) -> Dict[str, Any]:
        return create_response(self.code, self.message, self.details)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(eq=False)
class StorageUnavailable(AirdropError):
    """Store not connected or unreachable. Fatal to the calling operation."""

    code: int = STORAGE_UNAVAILABLE
    http_status: int = 503


@dataclass(eq=False)
class UpstreamError(AirdropError):
    """Provider / eligibility / distribution call failed or returned an error list."""

    http_status: int = 502
    cause: Optional[BaseException] = None


@dataclass(eq=False)
class InvalidInput(AirdropError):
    """Missing or malformed required field, rejected before any I/O."""

    code: int = WRONG_PARAMS
    http_status: int = 422


@dataclass(eq=False)
class NotFoundOrIneligible(AirdropError):
    http_status: int = 404


@dataclass(eq=False)
class StateConflict(AirdropError):
    """Cap already reached, duplicate claim, incomplete steps."""

    http_status: int = 409


@dataclass(eq=False)
class InteractionCheckError(AirdropError):
    """The ledger's current record for a key is a failed attempt."""

    code: int = INTERACTION_CHECK_FAILED
    http_status: int = 500


# --- Response envelope ---
def create_response(code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Builds the {code, status, message, error, data} envelope every endpoint returns.
    `error` is the table text for non-zero codes and None on success.
    """
    return {
        "code": code,
        "status": "success" if code == SUCCESS else "error",
        "message": message,
        "error": CODE_TO_ERROR.get(code, CODE_TO_ERROR[UNKNOWN_ERROR]) if code != SUCCESS else None,
        "data": data if data is not None else {},
    }


@contextmanager
def storage_failure_code(code: int) -> Iterator[None]:
    """Re-labels StorageUnavailable raised in the block with an operation-specific code."""
    try:
        yield
    except StorageUnavailable as e:
        raise StorageUnavailable(code, e.message, e.details) from e
