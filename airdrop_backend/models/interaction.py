# airdrop_backend/models/interaction.py

# Models for the interaction ledger: the append-only audit entries
# ('actionAudit'), the one-per-key current-state records ('userActionRecord')
# and the status object returned by a ledger check.

import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .common import DocumentModel


class ActionType(str, Enum):
    """Closed set of social interaction kinds."""

    RETWEET = "retweet"
    LIKE = "like"
    FOLLOW = "follow"
    BOOKMARK = "bookmark"
    TWEET = "tweet"


# --- ActionLogEntry: one per attempt, never updated ---
class ActionLogEntry(DocumentModel):
    actor_id: str = Field(alias="userId")
    target_id: Optional[str] = Field(alias="targetId", default=None)
    action_type: str = Field(alias="type")
    endpoint_url: str = Field(alias="url")
    request_payload: Optional[Dict[str, Any]] = Field(alias="requestBody", default=None)
    response_payload: Optional[Dict[str, Any]] = Field(alias="response", default=None)
    error_text: Optional[str] = Field(alias="error", default=None)


# --- UserActionRecord: latest outcome per (userId, targetId, type) ---
class UserActionRecord(DocumentModel):
    actor_id: str = Field(alias="userId")
    target_id: str = Field(alias="targetId")
    action_type: str = Field(alias="type")
    endpoint_url: str = Field(alias="url")
    request_payload: Optional[Dict[str, Any]] = Field(alias="requestBody", default=None)
    created_at: datetime.datetime = Field(alias="createdAt")
    response_payload: Optional[Dict[str, Any]] = Field(alias="response", default=None)
    error_text: Optional[str] = Field(alias="error", default=None)
    succeeded_at: Optional[datetime.datetime] = Field(alias="succeededAt", default=None)  # Last success, kept across failures

    @property
    def succeeded(self) -> bool:
        return self.response_payload is not None and self.error_text is None


class InteractionStatus(BaseModel):
    """Result of a ledger check. status=True means a fresh successful record exists."""

    status: bool
    related_target_id: Optional[str] = None
    message: str = ""
    record: Optional[UserActionRecord] = None
