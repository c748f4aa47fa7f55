# airdrop_backend/db/schemas.py

# Collection definitions: name, which database it lives in, its $jsonSchema
# validator and its index. Unique indexes are the store-level enforcement of
# the one-document-per-key rules.

from dataclasses import dataclass
from typing import Any, Dict, Tuple


# --- Collection names ---
ACTION_AUDIT = "actionAudit"
USER_ACTION_RECORD = "userActionRecord"
AIRDROP_CLAIM = "airdropClaim"
PROMOTION_CODE = "promotionCode"
USER_ACCOUNT = "userAccount"
SUBSCRIPTION_INFO = "subscriptionInfo"

# Which database a collection belongs to
AUDIT_DB = "audit"
USER_DB = "user"


def _string(description: str = "must be a string") -> Dict[str, Any]:
    return {"bsonType": "string", "description": description}


def _optional_object() -> Dict[str, Any]:
    return {"bsonType": ["object", "null"], "description": "must be an object or null"}


def _optional_string() -> Dict[str, Any]:
    return {"bsonType": ["string", "null"], "description": "must be a string or null"}


def _date() -> Dict[str, Any]:
    return {"bsonType": "date", "description": "must be a date and is required"}


def _optional_date() -> Dict[str, Any]:
    return {"bsonType": ["date", "null"], "description": "must be a date or null"}


ACTION_AUDIT_SCHEMA = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["userId", "type", "url", "createdAt"],
        "properties": {
            "userId": _string(),
            "targetId": _optional_string(),
            "type": _string(),
            "url": _string(),
            "requestBody": _optional_object(),
            "createdAt": _date(),
            "response": _optional_object(),
            "error": _optional_string(),
        },
    },
}

USER_ACTION_RECORD_SCHEMA = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["userId", "targetId", "type", "url", "createdAt"],
        "properties": {
            "userId": _string(),
            "targetId": _string(),
            "type": _string(),
            "url": _string(),
            "requestBody": _optional_object(),
            "createdAt": _date(),
            "response": _optional_object(),
            "error": _optional_string(),
            "succeededAt": _optional_date(),
        },
    },
}

AIRDROP_CLAIM_SCHEMA = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["userId", "userAddress", "createdAt"],
        "properties": {
            "userId": _string(),
            "userAddress": _string(),
            "createdAt": _date(),
        },
    },
}

PROMOTION_CODE_SCHEMA = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["userAddress", "promotionCode", "createdAt"],
        "properties": {
            "userAddress": _string(),
            "promotionCode": _string(),
            "totalRewardAmount": {
                "bsonType": ["int", "long", "null"],
                "minimum": 0,
                "description": "must be a non-negative integer",
            },
            "createdAt": _date(),
        },
    },
}

USER_ACCOUNT_SCHEMA = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["userAddress", "createdAt"],
        "properties": {
            "userAddress": _string(),
            "parentAddress": _optional_string(),
            "purchase": {"bsonType": ["bool", "null"], "description": "must be a boolean or null"},
            "createdAt": _date(),
        },
    },
}

SUBSCRIPTION_INFO_SCHEMA = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["userEmail", "createdAt"],
        "properties": {
            "userEmail": _string(),
            "userName": _optional_string(),
            "subscriptionInfo": _optional_string(),
            "createdAt": _date(),
        },
    },
}


@dataclass(frozen=True)
class IndexSpec:
    fields: Tuple[str, ...]
    unique: bool = False

    @property
    def name(self) -> str:
        return "_".join(self.fields)

    @property
    def keys(self) -> Dict[str, int]:
        return {field: 1 for field in self.fields}


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    database: str
    schema: Dict[str, Any]
    indexes: Tuple[IndexSpec, ...]


COLLECTIONS: Tuple[CollectionSpec, ...] = (
    CollectionSpec(ACTION_AUDIT, AUDIT_DB, ACTION_AUDIT_SCHEMA, (IndexSpec(("userId", "targetId", "type")),)),
    CollectionSpec(
        USER_ACTION_RECORD,
        USER_DB,
        USER_ACTION_RECORD_SCHEMA,
        (IndexSpec(("userId", "targetId", "type"), unique=True),),
    ),
    CollectionSpec(AIRDROP_CLAIM, USER_DB, AIRDROP_CLAIM_SCHEMA, (IndexSpec(("userId", "userAddress"), unique=True),)),
    CollectionSpec(
        PROMOTION_CODE,
        USER_DB,
        PROMOTION_CODE_SCHEMA,
        (IndexSpec(("userAddress",), unique=True), IndexSpec(("promotionCode",), unique=True)),
    ),
    CollectionSpec(USER_ACCOUNT, USER_DB, USER_ACCOUNT_SCHEMA, (IndexSpec(("userAddress",), unique=True),)),
    CollectionSpec(
        SUBSCRIPTION_INFO,
        USER_DB,
        SUBSCRIPTION_INFO_SCHEMA,
        (IndexSpec(("userEmail", "userName", "subscriptionInfo"), unique=True),),
    ),
)

COLLECTIONS_BY_NAME: Dict[str, CollectionSpec] = {spec.name: spec for spec in COLLECTIONS}
