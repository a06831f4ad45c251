"""In-memory resource accessor.

Keeps documents in a dictionary keyed by ``_id`` and evaluates filters,
sorts and projections with ``QueryEngine``. Useful for tests, prototypes
and small fixed datasets.
"""

import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type

from bson import ObjectId
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError

from autocrud.query import QueryEngine, SortSpec

from .resource import BaseResource, Document


class MemoryQuery:
    """Deferred query over a MemoryResource."""

    def __init__(
        self,
        resource: "MemoryResource",
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        single: bool = False,
    ) -> None:
        self._resource = resource
        self._filter = dict(filter or {})
        self._projection = dict(projection or {})
        self._single = single
        self._sort: SortSpec = None
        self._populate: List[str] = []
        self._skip = 0
        self._limit = 0

    def sort(self, spec: SortSpec) -> "MemoryQuery":
        self._sort = spec
        return self

    def populate(self, field: str) -> "MemoryQuery":
        self._populate.append(field)
        return self

    def skip(self, count: int) -> "MemoryQuery":
        if count < 0:
            raise ValueError("skip must be >= 0")
        self._skip = count
        return self

    def limit(self, count: int) -> "MemoryQuery":
        # A negative limit behaves like its absolute value, as in MongoDB.
        self._limit = abs(count)
        return self

    async def exec(self) -> Any:
        """Run the query.

        Returns:
            List of documents, or a single document/None for id lookups
        """
        documents = QueryEngine.sort(self._resource._matching(self._filter), self._sort)
        documents = documents[self._skip :]
        if self._limit:
            documents = documents[: self._limit]
        results = [self._shape(document) for document in documents]
        if self._single:
            return results[0] if results else None
        return results

    def _shape(self, document: Document) -> Document:
        shaped = QueryEngine.project(copy.deepcopy(document), self._projection)
        for field in self._populate:
            self._resource._populate_field(shaped, field)
        return shaped


class MemoryResource(BaseResource):
    """Resource accessor backed by a Python dictionary.

    Args:
        documents: Initial documents; each gets an ``_id`` if it has none
        schema: Optional pydantic model documents must satisfy
        refs: Field name to MemoryResource mapping used by ``populate``
        timestamps: Maintain ``createdAt``/``updatedAt`` fields

    Example:
        >>> users = MemoryResource([{"name": "Ada"}])
        >>> posts = MemoryResource(refs={"author": users})
    """

    def __init__(
        self,
        documents: Optional[Iterable[Dict[str, Any]]] = None,
        schema: Optional[Type[BaseModel]] = None,
        refs: Optional[Mapping[str, "MemoryResource"]] = None,
        timestamps: bool = True,
    ) -> None:
        super().__init__(schema=schema, refs=refs, timestamps=timestamps)
        self._documents: Dict[str, Document] = {}
        for document in documents or []:
            stored = dict(document)
            stored["_id"] = str(stored.get("_id") or ObjectId())
            self._documents[stored["_id"]] = stored

    def __len__(self) -> int:
        return len(self._documents)

    def _matching(self, filter: Mapping[str, Any]) -> List[Document]:
        query = self.cast_filter(filter)
        return [doc for doc in self._documents.values() if QueryEngine.match(doc, query)]

    def _populate_field(self, document: Document, field: str) -> None:
        target = self.refs.get(field)
        if target is None or field not in document:
            return
        value = document[field]
        if isinstance(value, list):
            document[field] = [
                copy.deepcopy(target._documents[str(ref)])
                for ref in value
                if str(ref) in target._documents
            ]
        elif value is not None:
            found = target._documents.get(str(value))
            document[field] = copy.deepcopy(found) if found is not None else None

    def find(
        self, filter: Mapping[str, Any], projection: Optional[Mapping[str, Any]] = None
    ) -> MemoryQuery:
        return MemoryQuery(self, filter, projection)

    def find_by_id(
        self, id: Any, projection: Optional[Mapping[str, Any]] = None
    ) -> MemoryQuery:
        return MemoryQuery(self, {"_id": str(id)}, projection, single=True)

    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        return len(self._matching(filter))

    async def create(self, data: Dict[str, Any]) -> Document:
        document = self._prepare_create(data)
        document["_id"] = str(document.get("_id") or ObjectId())
        if document["_id"] in self._documents:
            raise DuplicateKeyError(
                f"E11000 duplicate key error dup key: {{ _id: {document['_id']!r} }}",
                11000,
            )
        self._documents[document["_id"]] = document
        return copy.deepcopy(document)

    async def find_by_id_and_update(
        self,
        id: Any,
        data: Dict[str, Any],
        new: bool = True,
        run_validators: bool = True,
    ) -> Optional[Document]:
        existing = self._documents.get(str(id))
        if existing is None:
            return None
        update = self._prepare_update(data)
        if run_validators:
            update = self._validate_update(existing, update)
        original = copy.deepcopy(existing)
        QueryEngine.apply_update(existing, update)
        return copy.deepcopy(existing) if new else original

    async def find_by_id_and_delete(self, id: Any) -> Optional[Document]:
        return self._documents.pop(str(id), None)
