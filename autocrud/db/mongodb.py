"""MongoDB resource accessor built on Motor."""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Type

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pydantic import BaseModel
from pymongo import ReturnDocument

from autocrud.query import SortSpec, parse_sort

from .resource import BaseResource, Document

logger = logging.getLogger(__name__)

DEFAULT_URI = "mongodb://localhost:27017"
DEFAULT_DB_NAME = "autocrud"


def to_object_id(value: Any) -> Any:
    """Convert a 24-character hex string into an ObjectId.

    Other values are returned unchanged so collections keyed by strings or
    integers keep working.
    """
    if isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


class MotorQuery:
    """Deferred query against a Motor collection."""

    def __init__(
        self,
        resource: "MotorResource",
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        single: bool = False,
    ) -> None:
        self._resource = resource
        self._filter = dict(filter or {})
        self._projection = dict(projection) if projection else None
        self._single = single
        self._sort: SortSpec = None
        self._populate: List[str] = []
        self._skip: Optional[int] = None
        self._limit: Optional[int] = None

    def sort(self, spec: SortSpec) -> "MotorQuery":
        self._sort = spec
        return self

    def populate(self, field: str) -> "MotorQuery":
        self._populate.append(field)
        return self

    def skip(self, count: int) -> "MotorQuery":
        self._skip = count
        return self

    def limit(self, count: int) -> "MotorQuery":
        self._limit = count
        return self

    async def exec(self) -> Any:
        """Run the query.

        Returns:
            List of documents, or a single document/None for id lookups
        """
        collection = self._resource.collection
        if self._single:
            document = await collection.find_one(self._filter, self._projection)
            if document is None:
                return None
            documents = [document]
        else:
            cursor = collection.find(self._filter, self._projection)
            pairs = parse_sort(self._sort)
            if pairs:
                cursor = cursor.sort(pairs)
            if self._skip is not None:
                cursor = cursor.skip(self._skip)
            if self._limit is not None:
                cursor = cursor.limit(self._limit)
            documents = await cursor.to_list(length=None)

        for field in self._populate:
            await self._resource._populate_field(documents, field)
        return documents[0] if self._single else documents


class MotorResource(BaseResource):
    """Resource accessor over a MongoDB collection.

    Args:
        collection: Motor collection holding the documents
        schema: Optional pydantic model documents must satisfy
        refs: Field name to collection name mapping used by ``populate``;
            referenced collections are looked up in the same database
        timestamps: Maintain ``createdAt``/``updatedAt`` fields
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        schema: Optional[Type[BaseModel]] = None,
        refs: Optional[Mapping[str, str]] = None,
        timestamps: bool = True,
    ) -> None:
        super().__init__(schema=schema, refs=refs, timestamps=timestamps)
        self.collection = collection

    @classmethod
    def from_env(
        cls,
        collection_name: str,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        **kwargs: Any,
    ) -> "MotorResource":
        """Create a resource using connection settings from the environment.

        Args:
            collection_name: Collection holding the documents
            uri: Connection URI, defaults to ``AUTOCRUD_MONGODB_URI``
            db_name: Database name, defaults to ``AUTOCRUD_MONGODB_DB_NAME``
            **kwargs: Passed to the MotorResource constructor

        Returns:
            MotorResource bound to the collection
        """
        uri = uri or os.getenv("AUTOCRUD_MONGODB_URI", DEFAULT_URI)
        db_name = db_name or os.getenv("AUTOCRUD_MONGODB_DB_NAME", DEFAULT_DB_NAME)
        client: AsyncIOMotorClient = AsyncIOMotorClient(uri)
        logger.debug(f"Using MongoDB collection {db_name}.{collection_name}")
        return cls(client[db_name][collection_name], **kwargs)

    async def _populate_field(self, documents: List[Document], field: str) -> None:
        target_name = self.refs.get(field)
        if target_name is None:
            return
        ids = []
        for document in documents:
            value = document.get(field)
            ids.extend(value if isinstance(value, list) else [value])
        ids = [value for value in ids if value is not None]
        if not ids:
            return
        target = self.collection.database[target_name]
        found = {
            doc["_id"]: doc
            async for doc in target.find({"_id": {"$in": [to_object_id(v) for v in ids]}})
        }

        def resolve(value: Any) -> Optional[Document]:
            return found.get(to_object_id(value))

        for document in documents:
            if field not in document:
                continue
            value = document[field]
            if isinstance(value, list):
                document[field] = [resolve(v) for v in value if resolve(v) is not None]
            elif value is not None:
                document[field] = resolve(value)

    def find(
        self, filter: Mapping[str, Any], projection: Optional[Mapping[str, Any]] = None
    ) -> MotorQuery:
        return MotorQuery(self, self.cast_filter(filter), projection)

    def find_by_id(
        self, id: Any, projection: Optional[Mapping[str, Any]] = None
    ) -> MotorQuery:
        return MotorQuery(self, {"_id": to_object_id(id)}, projection, single=True)

    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        return int(await self.collection.count_documents(self.cast_filter(filter)))

    async def create(self, data: Dict[str, Any]) -> Document:
        document = self._prepare_create(data)
        result = await self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    async def find_by_id_and_update(
        self,
        id: Any,
        data: Dict[str, Any],
        new: bool = True,
        run_validators: bool = True,
    ) -> Optional[Document]:
        query = {"_id": to_object_id(id)}
        update = self._prepare_update(data)
        if run_validators and self.schema is not None:
            existing = await self.collection.find_one(query)
            if existing is None:
                return None
            update = self._validate_update(existing, update)
        if not update:
            return await self.collection.find_one(query)
        return await self.collection.find_one_and_update(
            query,
            update,
            return_document=ReturnDocument.AFTER if new else ReturnDocument.BEFORE,
        )

    async def find_by_id_and_delete(self, id: Any) -> Optional[Document]:
        return await self.collection.find_one_and_delete({"_id": to_object_id(id)})
