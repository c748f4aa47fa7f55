# airdrop_backend/db/mongo_client.py

# This file handles the MongoDB connection and provides the data access
# operations the rest of the backend uses (the Store interface).
# pymongo is synchronous, so every call is pushed to a worker thread with
# asyncio.to_thread and awaited; nothing else runs on the event loop while a
# store call is outstanding for the calling request.

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from ..config.settings import Settings
from ..shared.errors import StorageUnavailable
from .schemas import AUDIT_DB, COLLECTIONS, COLLECTIONS_BY_NAME, CollectionSpec, IndexSpec

logger = logging.getLogger(__name__)

SortSpec = Optional[List[Tuple[str, int]]]


class MongoStore:
    """
    Explicit store handle. Build it once at startup, `await connect()`, and
    pass it into every component's constructor. Any operation invoked before
    connect() succeeded (or after close()) raises StorageUnavailable.
    """

    def __init__(self, settings: Settings, client_factory: Callable[..., MongoClient] = MongoClient):
        self.settings = settings
        self._client_factory = client_factory
        self._client: Optional[MongoClient] = None
        self._audit_db: Optional[Database] = None
        self._user_db: Optional[Database] = None

    # --- Connection lifecycle ---
    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Connects and pings the server. Raises StorageUnavailable on failure."""
        if self._client is not None:
            logger.info("MongoDB client already connected.")
            return

        if not self.settings.MONGODB_URI:
            raise StorageUnavailable(message="MONGODB_URI is not configured.")

        logger.info("Attempting to connect to MongoDB...")
        client = self._client_factory(
            self.settings.MONGODB_URI,
            serverSelectionTimeoutMS=self.settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
            tz_aware=True,
        )
        try:
            await asyncio.to_thread(client.admin.command, "ping")
        except PyMongoError as e:
            await asyncio.to_thread(client.close)
            raise StorageUnavailable(message=f"MongoDB connection failed: {e}") from e

        self._client = client
        self._audit_db = client.get_database(self.settings.MONGODB_DB)
        self._user_db = client.get_database(self.settings.user_db_name)
        logger.info(
            "MongoDB connection successful (audit db '%s', user db '%s').",
            self.settings.MONGODB_DB,
            self.settings.user_db_name,
        )

    async def close(self) -> None:
        if self._client is None:
            logger.info("No active MongoDB client to close.")
            return
        client, self._client = self._client, None
        self._audit_db = self._user_db = None
        await asyncio.to_thread(client.close)
        logger.info("MongoDB connection closed.")

    # --- Collection access ---
    def _database_for(self, spec: CollectionSpec) -> Database:
        database = self._audit_db if spec.database == AUDIT_DB else self._user_db
        if database is None:
            raise StorageUnavailable(message="Store used before the MongoDB connection was established.")
        return database

    def collection(self, name: str) -> Collection:
        spec = COLLECTIONS_BY_NAME.get(name)
        if spec is None:
            raise KeyError(f"Unknown collection '{name}'")
        return self._database_for(spec).get_collection(name)

    async def _run(self, operation: str, func: Callable, *args, **kwargs):
        """Runs a blocking pymongo call in a thread, mapping driver failures to StorageUnavailable."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except DuplicateKeyError:
            raise
        except ConnectionFailure as e:
            logger.error("MongoDB unreachable during %s: %s", operation, e)
            raise StorageUnavailable(message=f"MongoDB unreachable during {operation}.") from e
        except PyMongoError as e:
            logger.error("MongoDB error during %s: %s", operation, e)
            raise StorageUnavailable(message=f"MongoDB error during {operation}.") from e

    # --- Data Access Functions ---
    async def find_one(self, collection: str, query: Dict[str, Any], sort: SortSpec = None) -> Optional[Dict[str, Any]]:
        """Finds a single document; with `sort`, the first one in that order."""
        coll = self.collection(collection)
        return await self._run("find_one", coll.find_one, query, sort=sort)

    async def find_many(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: SortSpec = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        coll = self.collection(collection)

        def _fetch() -> List[Dict[str, Any]]:
            cursor = coll.find(query)
            if sort:
                cursor = cursor.sort(sort)
            if limit > 0:
                cursor = cursor.limit(limit)
            return list(cursor)

        return await self._run("find_many", _fetch)

    async def insert(self, collection: str, document: Dict[str, Any]) -> ObjectId:
        coll = self.collection(collection)
        result = await self._run("insert", coll.insert_one, document)
        return result.inserted_id

    async def upsert(
        self,
        collection: str,
        query: Dict[str, Any],
        set_fields: Dict[str, Any],
        set_on_insert: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Updates the single document matching `query`, creating it when absent.
        Two concurrent upserts of a new key can race on the unique index; the
        loser retries once as a plain update.
        """
        coll = self.collection(collection)
        update: Dict[str, Any] = {"$set": set_fields}
        if set_on_insert:
            update["$setOnInsert"] = set_on_insert
        try:
            await self._run("upsert", coll.update_one, query, update, upsert=True)
        except DuplicateKeyError:
            logger.debug("Upsert race on %s %s, retrying once.", collection, query)
            await self._run("upsert", coll.update_one, query, update, upsert=True)

    async def update_if(self, collection: str, query: Dict[str, Any], set_fields: Dict[str, Any]) -> bool:
        """
        Conditional single-document update, the store's compare-and-swap:
        returns True only if a document still matched `query` when written.
        """
        coll = self.collection(collection)
        result = await self._run("update_if", coll.update_one, query, {"$set": set_fields})
        return result.matched_count == 1

    async def insert_if_absent(self, collection: str, query: Dict[str, Any], document: Dict[str, Any]) -> bool:
        """Inserts `document` unless one matching `query` exists. Returns True if inserted."""
        coll = self.collection(collection)
        try:
            result = await self._run(
                "insert_if_absent", coll.update_one, query, {"$setOnInsert": document}, upsert=True
            )
        except DuplicateKeyError:
            return False
        return result.upserted_id is not None

    async def distinct(self, collection: str, field: str, query: Dict[str, Any]) -> List[Any]:
        coll = self.collection(collection)
        return await self._run("distinct", coll.distinct, field, query)

    # --- Collections and indexes ---
    async def ensure_collections(self, specs: Iterable[CollectionSpec] = COLLECTIONS) -> None:
        """Creates missing collections with their validators and installs their indexes."""
        for spec in specs:
            database = self._database_for(spec)
            await self._run("ensure_collection", ensure_collection, database, spec)
        logger.info("Successfully created collections and indexes in MongoDB.")


# --- Synchronous helpers (run inside worker threads) ---
def ensure_collection(database: Database, spec: CollectionSpec) -> None:
    if not database.list_collection_names(filter={"name": spec.name}):
        database.create_collection(spec.name, validator=spec.schema)
        logger.info("Created collection '%s'.", spec.name)
    collection = database.get_collection(spec.name)
    for index in spec.indexes:
        ensure_index(collection, index)


def ensure_index(collection: Collection, index: IndexSpec) -> Optional[str]:
    """
    Installs `index`. An index over the same keys under another name is
    dropped first; for unique indexes existing duplicates are collapsed
    before the constraint goes in. Returns the created index name, or None
    when it already existed.
    """
    wanted_keys = list(index.keys.items())
    for existing in collection.list_indexes():
        if list(existing["key"].items()) != wanted_keys:
            continue
        if existing["name"] == index.name:
            return None
        logger.info("Dropping index '%s' on '%s' (renamed to '%s').", existing["name"], collection.name, index.name)
        collection.drop_index(existing["name"])
        break

    if index.unique:
        removed = remove_duplicates(collection, index.fields)
        if removed:
            logger.warning("Removed %d duplicate documents from '%s' before unique index.", removed, collection.name)

    return collection.create_index(
        [(field, ASCENDING) for field in index.fields],
        unique=index.unique,
        name=index.name,
    )


def remove_duplicates(collection: Collection, fields: Tuple[str, ...]) -> int:
    """Keeps the first document (lowest _id, i.e. oldest) of every duplicate group, deletes the rest."""
    group_key = {field: f"${field}" for field in fields}
    duplicates = collection.aggregate(
        [
            {"$sort": {"_id": ASCENDING}},
            {"$group": {"_id": group_key, "count": {"$sum": 1}, "dups": {"$push": "$_id"}}},
            {"$match": {"count": {"$gt": 1}}},
        ],
        allowDiskUse=True,
    )
    removed = 0
    for duplicate in duplicates:
        extra_ids = duplicate["dups"][1:]
        if extra_ids:
            result = collection.delete_many({"_id": {"$in": extra_ids}})
            removed += result.deleted_count
    return removed
