# airdrop_backend/features/airdrop/eligibility.py

# Purchase eligibility cache.
# The eligibility service is asked once per address; the answer is stored on
# the 'userAccount' row and served from there forever after.

import logging
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from ...config.settings import Settings
from ...db.mongo_client import MongoStore
from ...db.schemas import USER_ACCOUNT
from ...models.airdrop import EligibilityReply
from ...shared import errors
from ...shared.errors import InvalidInput, UpstreamError
from ...shared.utils import KeyedLock, is_valid_address, utcnow
from ..ledger.service import InteractionLedger, audit_scope

logger = logging.getLogger(__name__)

HttpClientFactory = Callable[[], httpx.AsyncClient]


class PurchaseEligibility:
    def __init__(
        self,
        store: MongoStore,
        settings: Settings,
        http_client_factory: Optional[HttpClientFactory] = None,
        clock: Callable = utcnow,
        ledger: Optional[InteractionLedger] = None,
    ):
        self.store = store
        self.base_url = settings.ELIGIBILITY_URL.rstrip("/")
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        self._http_client_factory = http_client_factory or self._default_client
        self._clock = clock
        self.ledger = ledger
        self._locks = KeyedLock()

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout)

    async def check_purchase(self, user_address: str) -> bool:
        if not is_valid_address(user_address):
            raise InvalidInput(errors.INVALID_ADDRESS)

        # One outstanding lookup per address
        async with self._locks.hold(user_address):
            async with audit_scope(self.ledger, user_address, "check_purchase", self._url(user_address)):
                document = await self.store.find_one(USER_ACCOUNT, {"userAddress": user_address})
                if document is not None and document.get("purchase") is not None:
                    return bool(document["purchase"])

                purchase = await self._query(user_address)
                await self.store.upsert(
                    USER_ACCOUNT,
                    {"userAddress": user_address},
                    {"purchase": purchase},
                    set_on_insert={"createdAt": self._clock()},
                )
            logger.info("Cached purchase status for %s: %s", user_address, purchase)
            return purchase

    def _url(self, user_address: str) -> str:
        return f"{self.base_url}/{user_address}"

    async def _query(self, user_address: str) -> bool:
        url = self._url(user_address)
        details = {"url": url}
        try:
            async with self._http_client_factory() as client:
                response = await client.get(url)
            reply = EligibilityReply.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.error("Eligibility request failed for %s: %s", user_address, e)
            raise UpstreamError(errors.BUYER_CHECK_FAILED, f"Eligibility service unreachable: {e}", details, cause=e) from e
        except (ValueError, ValidationError) as e:
            raise UpstreamError(errors.BUYER_CHECK_FAILED, "Eligibility service returned an invalid body", details, cause=e) from e

        if reply.code != 0 or reply.data is None:
            raise UpstreamError(errors.BUYER_CHECK_FAILED, reply.failure_text, details)
        return reply.data
