# airdrop_backend/shared/utils.py

# This file contains common utility functions used across the backend:
# clock helpers, input validation, code generation and the in-process
# keyed mutex that serializes work on a single ledger key or address.

import asyncio
import re
import secrets
import string
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Hashable


# --- Clock ---
def utcnow() -> datetime:
    """Timezone-aware current UTC time (the store is opened with tz_aware=True)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treats naive datetimes coming back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- Input validation ---
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
TWEET_ID_PATTERN = re.compile(r"^\d{1,20}$")
USER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,15}$")


def is_valid_address(address) -> bool:
    return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address))


def is_valid_tweet_id(tweet_id) -> bool:
    return isinstance(tweet_id, str) and bool(TWEET_ID_PATTERN.match(tweet_id))


def is_valid_user_name(user_name) -> bool:
    return isinstance(user_name, str) and bool(USER_NAME_PATTERN.match(user_name))


# --- Promotion codes ---
PROMOTION_CODE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


def generate_promotion_code(length: int = 16) -> str:
    """Random alphanumeric code from the OS CSPRNG (62**16 possible codes at the default length)."""
    return "".join(secrets.choice(PROMOTION_CODE_ALPHABET) for _ in range(length))


# --- Keyed mutex ---
class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped once no task holds
    or waits for it. Work for distinct keys never blocks each other.

    Usage:
        locks = KeyedLock()
        async with locks.hold(("user", "tweet", "like")):
            ...
    """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
