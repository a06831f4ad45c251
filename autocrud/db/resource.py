"""Resource accessor contract and shared accessor behaviour.

Generated routes talk to storage only through the ``ResourceAccessor`` and
``Query`` protocols below. Any object with these methods can be used;
``BaseResource`` holds what the bundled accessors have in common: schema
validation, timestamping and query-string value casting.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import (
    Any,
    Dict,
    Mapping,
    Optional,
    Protocol,
    Type,
    runtime_checkable,
)

from pydantic import BaseModel, TypeAdapter, ValidationError

from autocrud.query import QueryEngine, SortSpec, to_update_document

Document = Dict[str, Any]

ACCESSOR_METHODS = (
    "find",
    "find_by_id",
    "count_documents",
    "create",
    "find_by_id_and_update",
    "find_by_id_and_delete",
)


@runtime_checkable
class Query(Protocol):
    """Chainable read query; nothing runs until ``exec`` is awaited."""

    def sort(self, spec: SortSpec) -> "Query": ...

    def populate(self, field: str) -> "Query": ...

    def skip(self, count: int) -> "Query": ...

    def limit(self, count: int) -> "Query": ...

    async def exec(self) -> Any: ...


@runtime_checkable
class ResourceAccessor(Protocol):
    """Operations generated routes perform against a resource."""

    def find(
        self, filter: Mapping[str, Any], projection: Optional[Mapping[str, Any]] = None
    ) -> Query: ...

    def find_by_id(
        self, id: Any, projection: Optional[Mapping[str, Any]] = None
    ) -> Query: ...

    async def count_documents(self, filter: Mapping[str, Any]) -> int: ...

    async def create(self, data: Dict[str, Any]) -> Any: ...

    async def find_by_id_and_update(
        self,
        id: Any,
        data: Dict[str, Any],
        new: bool = True,
        run_validators: bool = True,
    ) -> Optional[Any]: ...

    async def find_by_id_and_delete(self, id: Any) -> Optional[Any]: ...


class BaseResource(ABC):
    """Base class for the bundled resource accessors.

    Attributes:
        schema: Optional pydantic model documents must satisfy
        refs: Reference targets used by ``populate``, keyed by field name
        timestamps: Maintain ``createdAt``/``updatedAt`` fields
    """

    created_field = "createdAt"
    updated_field = "updatedAt"

    def __init__(
        self,
        schema: Optional[Type[BaseModel]] = None,
        refs: Optional[Mapping[str, Any]] = None,
        timestamps: bool = True,
    ) -> None:
        self.schema = schema
        self.refs = dict(refs or {})
        self.timestamps = timestamps
        self._adapters: Dict[str, TypeAdapter] = {}

    @abstractmethod
    def find(
        self, filter: Mapping[str, Any], projection: Optional[Mapping[str, Any]] = None
    ) -> Query:
        """Build a query over documents matching ``filter``."""

    @abstractmethod
    def find_by_id(
        self, id: Any, projection: Optional[Mapping[str, Any]] = None
    ) -> Query:
        """Build a query resolving to a single document or None."""

    @abstractmethod
    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        """Count documents matching ``filter``."""

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Document:
        """Insert a document.

        Raises:
            pydantic.ValidationError: If a schema is set and rejects the data
        """

    @abstractmethod
    async def find_by_id_and_update(
        self,
        id: Any,
        data: Dict[str, Any],
        new: bool = True,
        run_validators: bool = True,
    ) -> Optional[Document]:
        """Update a document by id.

        Args:
            id: Document id
            data: Field assignments and/or update operators
            new: Return the updated document rather than the original
            run_validators: Validate the result against the schema first

        Returns:
            The document, or None if no document has this id
        """

    @abstractmethod
    async def find_by_id_and_delete(self, id: Any) -> Optional[Document]:
        """Delete a document by id, returning it or None if absent."""

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _prepare_create(self, data: Mapping[str, Any]) -> Document:
        document = dict(data)
        if self.schema is not None:
            validated = self.schema.model_validate(document).model_dump()
            if "_id" in document:
                validated["_id"] = document["_id"]
            document = validated
        if self.timestamps:
            now = self._now()
            document.setdefault(self.created_field, now)
            document.setdefault(self.updated_field, now)
        return document

    def _prepare_update(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        update = to_update_document(dict(data))
        update.get("$set", {}).pop("_id", None)
        if self.timestamps and update:
            update.setdefault("$set", {})[self.updated_field] = self._now()
        return update

    def _validate_update(
        self, existing: Document, update: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Validate the post-update document and cast the assigned values.

        Raises:
            pydantic.ValidationError: If the updated document is invalid
        """
        if self.schema is None:
            return update
        merged = QueryEngine.apply_update(copy.deepcopy(existing), update)
        dumped = self.schema.model_validate(merged).model_dump()
        assignments = update.get("$set", {})
        for name in assignments:
            if name in dumped:
                assignments[name] = dumped[name]
        return update

    def _cast_value(self, name: str, value: Any) -> Any:
        fields = self.schema.model_fields if self.schema is not None else {}
        if name not in fields:
            return value
        if name not in self._adapters:
            self._adapters[name] = TypeAdapter(fields[name].annotation)
        adapter = self._adapters[name]
        try:
            if isinstance(value, list):
                return [adapter.validate_python(item) for item in value]
            return adapter.validate_python(value)
        except ValidationError:
            return value

    def cast_filter(self, filter: Mapping[str, Any]) -> Dict[str, Any]:
        """Cast raw query-string values to the schema's field types.

        ``{"age": "30"}`` becomes ``{"age": 30}`` when the schema declares
        ``age: int``. Values that do not cast, and fields the schema does not
        declare, are left as given. A list of values (a repeated query-string
        key) becomes an ``$in`` condition.
        """
        result: Dict[str, Any] = {}
        for name, value in (filter or {}).items():
            if isinstance(value, list):
                result[name] = {"$in": self._cast_value(name, value)}
            elif isinstance(value, str):
                result[name] = self._cast_value(name, value)
            else:
                result[name] = value
        return result
