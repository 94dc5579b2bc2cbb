# ==============================================
# MongoDriver
# ==============================================
#
# PURPOSE:
#   Storage driver over MongoDB. One client connection serves
#   every logical database; database and collection are chosen
#   per call.
#
# CLASS: MongoDriver
# ------------------
#   Stateful, holds the pymongo client.
#
#   Constructor:
#   ------------
#   - __init__(host, port, user=None, password=None, uri=None,
#              server_selection_timeout_ms=5000)
#       Store connection params. Don't connect yet.
#
#   Methods:
#   --------
#   - connect() / close() / ping()
#   - create_database / list_databases / list_collections
#   - sample(strategy = natural | recent | random)
#   - find / insert / get / update / delete
#   - set_default / unset_field   (bulk, dot-notation paths)
#
#   Deadlines:
#   ----------
#   Each call runs inside ``pymongo.timeout(remaining)`` so the
#   caller's deadline bounds server selection and the operation.
#   pymongo exceptions are raised as-is.
#
# ==============================================

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import pymongo
from bson import ObjectId
from pymongo import MongoClient as PyMongoClient
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, OperationFailure

from .base import NATIVE_ID_FIELD, Deadline, Document, StorageDriver

logger = logging.getLogger(__name__)

# Databases MongoDB keeps for itself
SYSTEM_DATABASES = {"admin", "local", "config"}


class MongoDriver(StorageDriver):
    name = "mongo"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 27017,
        user: Optional[str] = None,
        password: Optional[str] = None,
        uri: Optional[str] = None,
        server_selection_timeout_ms: int = 5000,
    ):
        # Store connection params. Don't connect yet.
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.uri = uri
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.client: Optional[PyMongoClient] = None

    def _build_uri(self) -> str:
        if self.uri:
            return self.uri
        if self.user and self.password:
            return f"mongodb://{self.user}:{self.password}@{self.host}:{self.port}/"
        return f"mongodb://{self.host}:{self.port}/"

    def connect(self) -> None:
        try:
            self.client = PyMongoClient(
                self._build_uri(),
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
            # Test connection
            self.client.admin.command("ping")
            logger.info("Connected to MongoDB at %s:%s", self.host, self.port)
        except ConnectionFailure as e:
            logger.error("Could not connect to MongoDB: %s", e)
            raise
        except OperationFailure as e:
            logger.error("MongoDB authentication failed: %s", e)
            raise

    def close(self) -> None:
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB.")
            self.client = None

    def _require_client(self) -> PyMongoClient:
        if not self.client:
            raise ConnectionFailure("Not connected to MongoDB.")
        return self.client

    def _collection(self, database: str, collection: str):
        return self._require_client()[database][collection]

    @contextmanager
    def _bounded(self, deadline: Deadline, operation: str) -> Iterator[None]:
        deadline.check(operation)
        remaining = deadline.remaining()
        if remaining is None:
            yield
            return
        with pymongo.timeout(remaining):
            yield

    @staticmethod
    def _native_id(doc_id: Any) -> Any:
        """Ids travel as strings; ObjectId-shaped ones are converted back."""
        if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
            return ObjectId(doc_id)
        return doc_id

    def _native_query(self, query: Dict[str, Any]) -> Dict[str, Any]:
        if NATIVE_ID_FIELD not in query:
            return dict(query)
        native = dict(query)
        native[NATIVE_ID_FIELD] = self._native_id(native[NATIVE_ID_FIELD])
        return native

    def ping(self, deadline: Deadline) -> bool:
        with self._bounded(deadline, "ping"):
            self._require_client().admin.command("ping")
        return True

    def create_database(self, database: str, deadline: Deadline) -> None:
        # MongoDB materializes a database on first write; selecting it
        # validates the name and listing its collections proves the
        # server is reachable.
        with self._bounded(deadline, "create_database"):
            self._require_client()[database].list_collection_names()

    def list_databases(self, deadline: Deadline) -> List[str]:
        with self._bounded(deadline, "list_databases"):
            names = self._require_client().list_database_names()
        return [name for name in names if name not in SYSTEM_DATABASES]

    def list_collections(self, database: str, deadline: Deadline) -> List[str]:
        with self._bounded(deadline, "list_collections"):
            names = self._require_client()[database].list_collection_names()
        return sorted(name for name in names if not name.startswith("system."))

    def sample(
        self, database: str, collection: str, size: int, strategy: str, deadline: Deadline
    ) -> List[Document]:
        coll = self._collection(database, collection)
        with self._bounded(deadline, "sample"):
            if strategy == "random":
                return list(coll.aggregate([{"$sample": {"size": size}}]))
            if strategy == "recent":
                return list(coll.find({}).sort(NATIVE_ID_FIELD, pymongo.DESCENDING).limit(size))
            return list(coll.find({}).limit(size))

    def find(
        self,
        database: str,
        collection: str,
        query: Dict[str, Any],
        skip: int,
        limit: int,
        deadline: Deadline,
    ) -> List[Document]:
        coll = self._collection(database, collection)
        with self._bounded(deadline, "find"):
            cursor = (
                coll.find(self._native_query(query))
                .sort(NATIVE_ID_FIELD, pymongo.ASCENDING)
                .skip(skip)
                .limit(limit)
            )
            return list(cursor)

    def insert(self, database: str, collection: str, document: Document, deadline: Deadline) -> Document:
        coll = self._collection(database, collection)
        # insert_one adds _id to the dict it is given
        stored = dict(document)
        with self._bounded(deadline, "insert"):
            result = coll.insert_one(stored)
        stored[NATIVE_ID_FIELD] = result.inserted_id
        logger.debug("Inserted document %s into %s.%s", result.inserted_id, database, collection)
        return stored

    def get(self, database: str, collection: str, doc_id: str, deadline: Deadline) -> Optional[Document]:
        coll = self._collection(database, collection)
        with self._bounded(deadline, "get"):
            return coll.find_one({NATIVE_ID_FIELD: self._native_id(doc_id)})

    def update(
        self, database: str, collection: str, doc_id: str, fields: Document, deadline: Deadline
    ) -> Optional[Document]:
        coll = self._collection(database, collection)
        selector = {NATIVE_ID_FIELD: self._native_id(doc_id)}
        with self._bounded(deadline, "update"):
            if not fields:
                return coll.find_one(selector)
            return coll.find_one_and_update(
                selector,
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )

    def delete(self, database: str, collection: str, doc_id: str, deadline: Deadline) -> bool:
        coll = self._collection(database, collection)
        with self._bounded(deadline, "delete"):
            result = coll.delete_one({NATIVE_ID_FIELD: self._native_id(doc_id)})
        return result.deleted_count == 1

    def set_default(
        self, database: str, collection: str, field_path: str, value: Any, deadline: Deadline
    ) -> int:
        coll = self._collection(database, collection)
        # Documents where an ancestor holds a non-object value are left alone
        conditions: List[Dict[str, Any]] = [{field_path: {"$exists": False}}]
        parts = field_path.split(".")
        for end in range(1, len(parts)):
            ancestor = ".".join(parts[:end])
            conditions.append(
                {"$or": [{ancestor: {"$exists": False}}, {ancestor: {"$type": "object"}}]}
            )
        selector = conditions[0] if len(conditions) == 1 else {"$and": conditions}
        with self._bounded(deadline, "set_default"):
            result = coll.update_many(
                selector,
                {"$set": {field_path: value}},
            )
        return result.modified_count

    def unset_field(self, database: str, collection: str, field_path: str, deadline: Deadline) -> int:
        coll = self._collection(database, collection)
        with self._bounded(deadline, "unset_field"):
            result = coll.update_many(
                {field_path: {"$exists": True}},
                {"$unset": {field_path: ""}},
            )
        return result.modified_count
