"""
Pytest configuration and shared fixtures.

The store double implements the MongoStore interface in memory with the
same unique indexes, and yields to the event loop around every operation so
concurrent tasks interleave the way they do against a real server.
"""
import asyncio
import copy
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from airdrop_backend.config.settings import Settings
from airdrop_backend.db.schemas import COLLECTIONS_BY_NAME
from airdrop_backend.features.ledger import CompletionEvaluator, InteractionLedger
from airdrop_backend.features.referral.service import ReferralService
from airdrop_backend.features.twitter.actions import SocialActions
from airdrop_backend.features.twitter.client import TwitterClient
from airdrop_backend.models.twitter import Credentials
from airdrop_backend.shared.errors import StorageUnavailable

ACTOR_ID = "1001"
PARENT = "0x" + "a" * 40
CHILD = "0x" + "b" * 40
OTHER = "0x" + "c" * 40


# --- Clock ---
class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# --- In-memory store ---
_MISSING = object()


def _matches_value(actual: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(key.startswith("$") for key in condition):
        for operator, operand in condition.items():
            if operator == "$ne":
                if operand is None:
                    if actual is _MISSING or actual is None:
                        return False
                elif actual is not _MISSING and actual == operand:
                    return False
            elif operator == "$in":
                value = None if actual is _MISSING else actual
                if value not in operand:
                    return False
            elif operator == "$exists":
                if (actual is not _MISSING) != bool(operand):
                    return False
            else:
                raise NotImplementedError(operator)
        return True
    if condition is None:
        return actual is _MISSING or actual is None
    return actual is not _MISSING and actual == condition


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    return all(_matches_value(document.get(field, _MISSING), condition) for field, condition in query.items())


class InMemoryStore:
    def __init__(self):
        self.collections: Dict[str, List[Dict[str, Any]]] = {name: [] for name in COLLECTIONS_BY_NAME}
        self.failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self.connected = False
        self.ensured = False

    # --- Lifecycle ---
    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def ensure_collections(self, specs=None) -> None:
        self.ensured = True

    # --- Test helpers ---
    def fail(self, operation: str, collection: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.failures[(operation, collection)] = error or StorageUnavailable(message=f"{operation} failed")

    def docs(self, collection: str) -> List[Dict[str, Any]]:
        return self.collections[collection]

    def seed(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(document)
        document.setdefault("_id", ObjectId())
        self.collections[collection].append(document)
        return document

    async def _enter(self, operation: str, collection: str) -> None:
        await asyncio.sleep(0)
        for key in ((operation, collection), (operation, None)):
            if key in self.failures:
                raise self.failures[key]

    def _check_unique(self, collection: str, candidate: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        for index in COLLECTIONS_BY_NAME[collection].indexes:
            if not index.unique:
                continue
            key = tuple(candidate.get(field) for field in index.fields)
            for existing in self.collections[collection]:
                if existing is ignore:
                    continue
                if tuple(existing.get(field) for field in index.fields) == key:
                    raise DuplicateKeyError(f"E11000 duplicate key on {collection}.{index.name}")

    def _sorted(self, documents: List[Dict[str, Any]], sort) -> List[Dict[str, Any]]:
        for field, direction in reversed(sort or []):
            documents = sorted(
                documents,
                key=lambda d: (d.get(field) is not None, d.get(field)),
                reverse=direction < 0,
            )
        return documents

    # --- Store interface ---
    async def find_one(self, collection: str, query: Dict[str, Any], sort=None) -> Optional[Dict[str, Any]]:
        await self._enter("find_one", collection)
        found = self._sorted([d for d in self.collections[collection] if matches(d, query)], sort)
        result = copy.deepcopy(found[0]) if found else None
        await asyncio.sleep(0)
        return result

    async def find_many(self, collection: str, query: Dict[str, Any], sort=None, limit: int = 0):
        await self._enter("find_many", collection)
        found = self._sorted([d for d in self.collections[collection] if matches(d, query)], sort)
        if limit > 0:
            found = found[:limit]
        return copy.deepcopy(found)

    async def insert(self, collection: str, document: Dict[str, Any]) -> ObjectId:
        await self._enter("insert", collection)
        document = copy.deepcopy(document)
        document.setdefault("_id", ObjectId())
        self._check_unique(collection, document)
        self.collections[collection].append(document)
        return document["_id"]

    def _insert_from_query(self, collection: str, query: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
        document = {
            field: value
            for field, value in query.items()
            if not (isinstance(value, dict) and any(key.startswith("$") for key in value))
        }
        document.update(copy.deepcopy(fields))
        document["_id"] = ObjectId()
        self._check_unique(collection, document)
        self.collections[collection].append(document)
        return document

    async def upsert(self, collection, query, set_fields, set_on_insert=None) -> None:
        await self._enter("upsert", collection)
        for document in self.collections[collection]:
            if matches(document, query):
                updated = {**document, **copy.deepcopy(set_fields)}
                self._check_unique(collection, updated, ignore=document)
                document.update(copy.deepcopy(set_fields))
                return
        self._insert_from_query(collection, query, {**(set_on_insert or {}), **set_fields})

    async def update_if(self, collection, query, set_fields) -> bool:
        await self._enter("update_if", collection)
        for document in self.collections[collection]:
            if matches(document, query):
                document.update(copy.deepcopy(set_fields))
                return True
        return False

    async def insert_if_absent(self, collection, query, document) -> bool:
        await self._enter("insert_if_absent", collection)
        if any(matches(existing, query) for existing in self.collections[collection]):
            return False
        try:
            self._insert_from_query(collection, query, document)
        except DuplicateKeyError:
            return False
        return True

    async def distinct(self, collection, field, query) -> List[Any]:
        await self._enter("distinct", collection)
        values: List[Any] = []
        for document in self.collections[collection]:
            if matches(document, query) and field in document and document[field] not in values:
                values.append(document[field])
        return values


# --- Fake provider ---
class FakeTwitterApi:
    """
    httpx.MockTransport handler standing in for the Twitter API.
    `responses` maps (method, path) to (status, json body); `calls` records
    every request as (method, path, parsed body).
    """

    def __init__(self, actor_id: str = ACTOR_ID):
        self.actor_id = actor_id
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self.responses: Dict[Tuple[str, str], Tuple[int, Any]] = {
            ("GET", "/1.1/account/verify_credentials.json"): (200, {"id_str": actor_id, "screen_name": "tester"}),
            ("GET", "/2/users/by/username/target_user"): (200, {"data": {"id": "2002", "username": "target_user"}}),
            ("POST", "/2/tweets"): (201, {"data": {"id": "9001", "text": "hello"}}),
            ("POST", f"/2/users/{actor_id}/retweets"): (200, {"data": {"retweeted": True}}),
            ("POST", f"/2/users/{actor_id}/likes"): (200, {"data": {"liked": True}}),
            ("POST", f"/2/users/{actor_id}/bookmarks"): (200, {"data": {"bookmarked": True}}),
            ("POST", f"/2/users/{actor_id}/following"): (200, {"data": {"following": True, "pending_follow": False}}),
            ("GET", f"/2/users/{actor_id}/liked_tweets"): (200, {"data": [], "meta": {"result_count": 0}}),
            ("GET", f"/2/users/{actor_id}/bookmarks"): (200, {"data": []}),
            ("GET", f"/2/users/{actor_id}/following"): (200, {"data": []}),
            ("GET", f"/2/users/{actor_id}/tweets"): (200, {"data": []}),
        }

    def respond(self, method: str, path: str, status: int, body: Any) -> None:
        self.responses[(method, path)] = (status, body)

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.calls if m == method and p == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        status, payload = self.responses.get(
            (request.method, request.url.path),
            (404, {"title": "Not Found Error", "detail": f"No route for {request.url.path}"}),
        )
        if isinstance(payload, Exception):
            raise payload
        return httpx.Response(status, json=payload)

    def session_factory(self, credentials: Credentials) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeService:
    """MockTransport handler for the eligibility and airdrop servers."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self._handler = handler
        self.calls: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self._handler(request)

    def client_factory(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# --- Fixtures ---
@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        MONGODB_URI="mongodb://localhost:27017",
        TWITTER_CONSUMER_KEY="consumer-key",
        TWITTER_CONSUMER_SECRET="consumer-secret",
        AIRDROP_SERVER_HOST="airdrop.test",
        AIRDROP_SERVER_PORT=8080,
        ELIGIBILITY_URL="http://eligibility.test/v1/buyer",
        CHECK_AIRDROP_SERVER_ON_STARTUP=False,
        MAX_REWARD_FOR_BUYER=5000000,
        MAX_REWARD_FOR_NON_BUYER=2000000,
    )


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def ledger(store, clock):
    return InteractionLedger(store, clock=clock)


@pytest.fixture
def completion(ledger):
    return CompletionEvaluator(ledger)


@pytest.fixture
def twitter_api():
    return FakeTwitterApi()


@pytest.fixture
def credentials():
    return Credentials(access_token="user-token", access_token_secret="user-secret")


@pytest.fixture
def twitter_client(settings, twitter_api):
    return TwitterClient(settings, session_factory=twitter_api.session_factory)


@pytest.fixture
def actions(twitter_client, ledger):
    return SocialActions(twitter_client, ledger)


@pytest.fixture
def referral(store, clock):
    return ReferralService(store, clock=clock)
