# airdrop_backend/features/ledger/service.py

# The interaction ledger.
# Every action attempt is appended to the audit stream ('actionAudit'), and
# attempts aimed at a concrete target also upsert the single current-state
# record for (userId, targetId, type) in 'userActionRecord'. Callers consult
# check_interaction() before going upstream: a successful record younger than
# the TTL means the provider is not called again.

import logging
from contextlib import asynccontextmanager, nullcontext
from datetime import timedelta
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from ...db.mongo_client import MongoStore
from ...db.schemas import ACTION_AUDIT, USER_ACTION_RECORD
from ...models.interaction import ActionLogEntry, InteractionStatus, UserActionRecord
from ...shared.errors import AirdropError, InteractionCheckError
from ...shared.utils import KeyedLock, as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERACTION_TTL = timedelta(hours=2)


class InteractionLedger:
    def __init__(
        self,
        store: MongoStore,
        ttl: timedelta = DEFAULT_INTERACTION_TTL,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.ttl = ttl
        self._clock = clock
        self._locks = KeyedLock()
        self.audit_failures = 0  # Count of audit writes that failed since startup

    # --- Per-key serialization ---
    def lock(self, actor_id: str, action_type: str, target_id: Optional[str] = None):
        """Context manager holding the in-process mutex for one ledger key."""
        action_type = str(getattr(action_type, "value", action_type))
        return self._locks.hold((actor_id, target_id, action_type))

    # --- Write path ---
    async def record(
        self,
        actor_id: str,
        action_type: str,
        url: str,
        request_body: Optional[Dict[str, Any]] = None,
        response: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> None:
        """
        Records one attempt. The audit append never fails the caller (a failed
        append is logged as AUDIT_WRITE_FAILED); the state upsert, done only when
        target_id is given, propagates StorageUnavailable.
        """
        action_type = str(getattr(action_type, "value", action_type))
        now = self._clock()
        entry = ActionLogEntry(
            actor_id=actor_id,
            target_id=target_id,
            action_type=action_type,
            endpoint_url=url,
            request_payload=request_body,
            response_payload=response,
            error_text=error,
            created_at=now,
        )
        await self._append_audit(entry)

        if target_id is None:
            return

        fields: Dict[str, Any] = {
            "url": url,
            "requestBody": request_body,
            "response": response,
            "error": error,
            "createdAt": now,
        }
        # Failures leave succeededAt alone
        if response is not None and error is None:
            fields["succeededAt"] = now
        await self.store.upsert(
            USER_ACTION_RECORD,
            {"userId": actor_id, "targetId": target_id, "type": action_type},
            fields,
        )

    async def audit_failure(
        self,
        actor_id: str,
        operation: str,
        url: str,
        error: str,
        request_body: Optional[Dict[str, Any]] = None,
        target_id: Optional[str] = None,
    ) -> None:
        """Best-effort audit entry describing a failed operation. Never raises."""
        entry = ActionLogEntry(
            actor_id=actor_id or "unknown",
            target_id=target_id,
            action_type=operation,
            endpoint_url=url,
            request_payload=request_body,
            error_text=error,
            created_at=self._clock(),
        )
        await self._append_audit(entry)

    @asynccontextmanager
    async def audit_on_failure(
        self,
        actor_id: str,
        operation: str,
        url: str,
        request_body: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[None]:
        """Audits any AirdropError raised in the block, then re-raises it unchanged."""
        try:
            yield
        except AirdropError as e:
            await self.audit_failure(actor_id, operation, url, str(e), request_body)
            raise

    async def _append_audit(self, entry: ActionLogEntry) -> None:
        try:
            await self.store.insert(ACTION_AUDIT, entry.to_document())
        except (AirdropError, PyMongoError) as e:
            self.audit_failures += 1
            logger.warning(
                "AUDIT_WRITE_FAILED [user=%s, type=%s, url=%s]: %s",
                entry.actor_id,
                entry.action_type,
                entry.endpoint_url,
                e,
            )

    # --- Read path ---
    async def check_interaction(
        self,
        actor_id: str,
        action_type: str,
        target_id: Optional[str] = None,
    ) -> InteractionStatus:
        """
        Decides whether the latest record for the key still counts.

        - no record, or a record missing required fields -> status False, no target
        - successful record younger than the TTL          -> status True
        - successful record at or beyond the TTL          -> status False (stale)
        - failed record (error set, no response)          -> InteractionCheckError
        """
        action_type = str(getattr(action_type, "value", action_type))
        query: Dict[str, Any] = {"userId": actor_id, "type": action_type}
        if target_id is not None:
            query["targetId"] = target_id

        document = await self.store.find_one(USER_ACTION_RECORD, query, sort=[("createdAt", -1)])
        if document is None:
            return InteractionStatus(status=False, message="No interaction found")

        try:
            record = UserActionRecord.model_validate(document)
        except ValidationError:
            logger.warning("Incomplete interaction record for %s/%s/%s", actor_id, action_type, target_id)
            return InteractionStatus(status=False, message="No interaction found")

        if record.succeeded:
            elapsed = self._clock() - as_utc(record.created_at)
            if elapsed < self.ttl:
                return InteractionStatus(
                    status=True,
                    related_target_id=record.target_id,
                    message="Interaction verified recently",
                    record=record,
                )
            return InteractionStatus(
                status=False,
                related_target_id=record.target_id,
                message="Interaction verification expired, re-check required",
                record=record,
            )

        if record.error_text is not None:
            raise InteractionCheckError(
                message=f"Last {action_type} attempt failed: {record.error_text}",
                details={"targetId": record.target_id, "type": action_type},
            )

        return InteractionStatus(status=False, message="No interaction found")

    async def completed_action_types(self, actor_id: str) -> List[str]:
        """
        Distinct action types that ever succeeded for the user, regardless of age
        or of a later failed attempt on the same key. Records written before
        succeededAt existed count when their latest outcome is a success.
        """
        done = await self.store.distinct(USER_ACTION_RECORD, "type", {"userId": actor_id, "succeededAt": {"$ne": None}})
        legacy = await self.store.distinct(
            USER_ACTION_RECORD,
            "type",
            {"userId": actor_id, "response": {"$ne": None}, "error": None},
        )
        return done + [action_type for action_type in legacy if action_type not in done]


def audit_scope(
    ledger: Optional[InteractionLedger],
    actor_id: str,
    operation: str,
    url: str,
    request_body: Optional[Dict[str, Any]] = None,
) -> AsyncContextManager[None]:
    """`ledger.audit_on_failure(...)`, or a no-op block for services built without a ledger."""
    if ledger is None:
        return nullcontext()
    return ledger.audit_on_failure(actor_id, operation, url, request_body)
