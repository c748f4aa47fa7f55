# airdrop_backend/features/subscription/service.py

# Newsletter / campaign subscription log ('subscriptionInfo').

import logging
from typing import Callable, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError

from ...db.mongo_client import MongoStore
from ...db.schemas import SUBSCRIPTION_INFO
from ...shared import errors
from ...shared.errors import InvalidInput, storage_failure_code
from ...shared.utils import utcnow
from ..ledger.service import InteractionLedger, audit_scope

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


class SubscriptionService:
    def __init__(self, store: MongoStore, clock: Callable = utcnow, ledger: Optional[InteractionLedger] = None):
        self.store = store
        self._clock = clock
        self.ledger = ledger

    async def log_subscription(
        self,
        user_email: Optional[str],
        user_name: Optional[str] = None,
        subscription_info: Optional[str] = None,
    ) -> None:
        """Upserts on (email, name, info); a repeat submission only refreshes createdAt."""
        request_body = {"userEmail": user_email, "userName": user_name, "subscriptionInfo": subscription_info}
        async with audit_scope(self.ledger, user_email or "", "log_subscription", SUBSCRIPTION_INFO, request_body):
            if not user_email:
                raise InvalidInput(errors.USER_EMAIL_FAILED)
            try:
                user_email = _email_adapter.validate_python(user_email)
            except ValidationError as e:
                raise InvalidInput(errors.USER_EMAIL_FAILED, f"Invalid email address: {user_email}") from e

            query = {"userEmail": user_email, "userName": user_name, "subscriptionInfo": subscription_info}
            with storage_failure_code(errors.SUBSCRIPTION_LOG_FAILED):
                await self.store.upsert(SUBSCRIPTION_INFO, query, {"createdAt": self._clock()})
        logger.info("Logged subscription for %s", user_email)
