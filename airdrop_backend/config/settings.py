# airdrop_backend/config/settings.py

# Centralized application settings management using Pydantic Settings.
# Every component receives the Settings object explicitly; nothing in the
# core reads os.environ on its own.

from functools import lru_cache
from typing import List, Optional
import re

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Leading integer of a string, parseInt-style ("2000000.9" -> 2000000, "12abc" -> 12)
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int_prefix(value) -> int:
    """Truncates an env-provided amount to its leading integer, like JavaScript's parseInt."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid amount")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT.match(str(value))
    if match is None:
        raise ValueError(f"'{value}' does not start with an integer")
    return int(match.group(1))


class Settings(BaseSettings):
    # --- MongoDB ---
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB: str = "airdrop_log"  # Audit stream database
    MONGODB_USERDB: Optional[str] = None  # State database, falls back to MONGODB_DB
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # --- Twitter (OAuth 1.0a consumer) ---
    TWITTER_CONSUMER_KEY: str = ""
    TWITTER_CONSUMER_SECRET: str = ""
    TWITTER_API_BASE: str = "https://api.twitter.com"

    # --- Airdrop server (reward distribution) ---
    AIRDROP_SERVER_HOST: str = "localhost"
    AIRDROP_SERVER_PORT: int = 8080
    AIRDROP_REWARD_PATH: str = "/v1/airdrop/append_reward"
    AIRDROP_RECIPIENT_INFO_PATH: str = "/v1/info/recipient_info"
    CHECK_AIRDROP_SERVER_ON_STARTUP: bool = True

    # --- Purchase eligibility service ---
    ELIGIBILITY_URL: str = "http://localhost:8081/v1/buyer"

    # --- Referral reward caps (string-encoded in the environment) ---
    MAX_REWARD_FOR_BUYER: int = 5000000
    MAX_REWARD_FOR_NON_BUYER: int = 2000000

    # --- Interaction ledger / upstream calls ---
    INTERACTION_TTL_SECONDS: int = 2 * 60 * 60
    UPSTREAM_TIMEOUT_SECONDS: float = 15.0
    REQUIRED_ACTION_TYPES: str = "retweet,like,follow"
    PROMOTION_CODE_LENGTH: int = 16

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("MAX_REWARD_FOR_BUYER", "MAX_REWARD_FOR_NON_BUYER", mode="before")
    @classmethod
    def truncate_reward_cap(cls, value):
        amount = parse_int_prefix(value)
        if amount < 0:
            raise ValueError("reward cap must be non-negative")
        return amount

    @property
    def user_db_name(self) -> str:
        return self.MONGODB_USERDB or self.MONGODB_DB

    @property
    def airdrop_server_base(self) -> str:
        return f"http://{self.AIRDROP_SERVER_HOST}:{self.AIRDROP_SERVER_PORT}"

    @property
    def required_action_types(self) -> List[str]:
        return [item.strip() for item in self.REQUIRED_ACTION_TYPES.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Loads settings once per process."""
    return Settings()
