# airdrop_backend/features/airdrop/claims.py

# Airdrop claim log: one 'airdropClaim' row per (userId, userAddress).

import logging
from typing import Callable, Optional

from ...db.mongo_client import MongoStore
from ...db.schemas import AIRDROP_CLAIM
from ...shared import errors
from ...shared.errors import InvalidInput, storage_failure_code
from ...shared.utils import is_valid_address, utcnow
from ..ledger.service import InteractionLedger, audit_scope

logger = logging.getLogger(__name__)


class AirdropClaims:
    def __init__(self, store: MongoStore, clock: Callable = utcnow, ledger: Optional[InteractionLedger] = None):
        self.store = store
        self._clock = clock
        self.ledger = ledger

    @staticmethod
    def _key(actor_id: str, user_address: str) -> dict:
        if not actor_id:
            raise InvalidInput(errors.WRONG_PARAMS, "User id is required")
        if not is_valid_address(user_address):
            raise InvalidInput(errors.INVALID_ADDRESS)
        return {"userId": actor_id, "userAddress": user_address}

    async def has_claimed(self, actor_id: str, user_address: str) -> bool:
        query = self._key(actor_id, user_address)
        async with audit_scope(self.ledger, actor_id, "check_claim", AIRDROP_CLAIM, query):
            with storage_failure_code(errors.AIRDROP_STATUS_FAILED):
                return await self.store.find_one(AIRDROP_CLAIM, query) is not None

    async def log_claim(self, actor_id: str, user_address: str) -> None:
        """Records the claim; a repeat claim refreshes createdAt instead of adding a row."""
        query = self._key(actor_id, user_address)
        async with audit_scope(self.ledger, actor_id, "log_claim", AIRDROP_CLAIM, query):
            with storage_failure_code(errors.AIRDROP_CLAIM_LOG_FAILED):
                await self.store.upsert(AIRDROP_CLAIM, query, {"createdAt": self._clock()})
        logger.info("Logged airdrop claim for %s / %s", actor_id, user_address)
