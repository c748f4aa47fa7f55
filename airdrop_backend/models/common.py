# airdrop_backend/models/common.py

# Shared pieces for the document models: the ObjectId type and the base
# model that maps snake_case attributes onto the camelCase field names the
# documents are stored under.

import datetime
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from ..shared.utils import utcnow


# --- Custom Type for handling MongoDB ObjectId ---
# Accepts an ObjectId (or anything str() can render) and keeps it as a string.
PyObjectId = Annotated[str, BeforeValidator(str)]


class DocumentModel(BaseModel):
    """Base for everything persisted in the store."""

    id: Optional[PyObjectId] = Field(alias="_id", default=None)
    created_at: datetime.datetime = Field(alias="createdAt", default_factory=utcnow)

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        """Document as stored: camelCase keys, no _id (the store assigns it)."""
        return self.model_dump(by_alias=True, exclude={"id"})
