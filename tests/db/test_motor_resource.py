"""Test suite for the MongoDB resource accessor.

The Motor collection is mocked; these tests check the calls the accessor
makes rather than MongoDB itself.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId
from pydantic import BaseModel, ValidationError
from pymongo import ReturnDocument

from autocrud.db.mongodb import MotorResource, to_object_id


class Book(BaseModel):
    title: str
    pages: int = 0
    author: Optional[str] = None


def mock_collection(documents=None):
    """Build a mock Motor collection whose cursors yield ``documents``."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(documents or []))

    collection = MagicMock()
    collection.find.return_value = cursor
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.find_one_and_delete = AsyncMock(return_value=None)
    return collection, cursor


class TestObjectIds:
    """Test id conversion."""

    def test_hex_string_converted(self):
        oid = ObjectId()
        assert to_object_id(str(oid)) == oid

    @pytest.mark.parametrize("value", ["abc", "z" * 24, 42, None])
    def test_other_values_unchanged(self, value):
        assert to_object_id(value) == value


class TestMotorReads:
    """Test query construction."""

    @pytest.mark.asyncio
    async def test_find_window(self):
        collection, cursor = mock_collection([{"_id": 1}])
        resource = MotorResource(collection, schema=Book)

        docs = await (
            resource.find({"pages": "100"}, {"title": 1})
            .sort("-createdAt")
            .skip(20)
            .limit(10)
            .exec()
        )

        assert docs == [{"_id": 1}]
        collection.find.assert_called_once_with({"pages": 100}, {"title": 1})
        cursor.sort.assert_called_once_with([("createdAt", -1)])
        cursor.skip.assert_called_once_with(20)
        cursor.limit.assert_called_once_with(10)
        cursor.to_list.assert_awaited_once_with(length=None)

    @pytest.mark.asyncio
    async def test_find_without_window(self):
        collection, cursor = mock_collection()
        resource = MotorResource(collection)

        await resource.find({}).exec()

        collection.find.assert_called_once_with({}, None)
        cursor.sort.assert_not_called()
        cursor.skip.assert_not_called()
        cursor.limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_repeated_values_become_in(self):
        collection, _ = mock_collection()
        resource = MotorResource(collection, schema=Book)

        await resource.count_documents({"pages": ["1", "2"], "title": "Dune"})

        collection.count_documents.assert_awaited_once_with(
            {"pages": {"$in": [1, 2]}, "title": "Dune"}
        )

    @pytest.mark.asyncio
    async def test_find_by_id(self):
        oid = ObjectId()
        collection, _ = mock_collection()
        collection.find_one.return_value = {"_id": oid, "title": "Dune"}
        resource = MotorResource(collection)

        doc = await resource.find_by_id(str(oid), {"secret": 0}).exec()

        assert doc == {"_id": oid, "title": "Dune"}
        collection.find_one.assert_awaited_once_with({"_id": oid}, {"secret": 0})

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self):
        collection, _ = mock_collection()
        resource = MotorResource(collection)

        assert await resource.find_by_id("not-an-object-id").exec() is None
        collection.find_one.assert_awaited_once_with({"_id": "not-an-object-id"}, None)

    @pytest.mark.asyncio
    async def test_populate(self):
        author_id = ObjectId()
        author = {"_id": author_id, "name": "Herbert"}
        collection, _ = mock_collection(
            [{"_id": 1, "author": str(author_id)}, {"_id": 2, "author": None}]
        )
        users = MagicMock()
        users.find.return_value.__aiter__.return_value = [author]
        collection.database.__getitem__.return_value = users
        resource = MotorResource(collection, refs={"author": "users"})

        docs = await resource.find({}).populate("author").exec()

        collection.database.__getitem__.assert_called_with("users")
        users.find.assert_called_once_with({"_id": {"$in": [author_id]}})
        assert docs[0]["author"] == author
        assert docs[1]["author"] is None


class TestMotorWrites:
    """Test write operations."""

    @pytest.mark.asyncio
    async def test_create(self):
        oid = ObjectId()
        collection, _ = mock_collection()
        collection.insert_one.return_value = MagicMock(inserted_id=oid)
        resource = MotorResource(collection, schema=Book)

        doc = await resource.create({"title": "Dune", "pages": "412"})

        inserted = collection.insert_one.await_args.args[0]
        assert inserted["pages"] == 412
        assert "createdAt" in inserted and "updatedAt" in inserted
        assert doc["_id"] == oid

    @pytest.mark.asyncio
    async def test_create_invalid(self):
        collection, _ = mock_collection()
        resource = MotorResource(collection, schema=Book)

        with pytest.raises(ValidationError):
            await resource.create({"pages": 1})
        collection.insert_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_update(self):
        oid = ObjectId()
        collection, _ = mock_collection()
        collection.find_one.return_value = {"_id": oid, "title": "Dune", "pages": 1}
        collection.find_one_and_update.return_value = {"_id": oid, "pages": 2}
        resource = MotorResource(collection, schema=Book)

        doc = await resource.find_by_id_and_update(str(oid), {"pages": "2", "_id": "x"})

        assert doc == {"_id": oid, "pages": 2}
        query, update = collection.find_one_and_update.await_args.args
        assert query == {"_id": oid}
        assert update["$set"]["pages"] == 2
        assert "_id" not in update["$set"]
        assert "updatedAt" in update["$set"]
        assert (
            collection.find_one_and_update.await_args.kwargs["return_document"]
            == ReturnDocument.AFTER
        )

    @pytest.mark.asyncio
    async def test_update_returns_original(self):
        collection, _ = mock_collection()
        resource = MotorResource(collection, timestamps=False)

        await resource.find_by_id_and_update("k", {"pages": 2}, new=False)

        collection.find_one.assert_not_called()
        assert (
            collection.find_one_and_update.await_args.kwargs["return_document"]
            == ReturnDocument.BEFORE
        )

    @pytest.mark.asyncio
    async def test_update_missing(self):
        collection, _ = mock_collection()
        resource = MotorResource(collection, schema=Book)

        assert await resource.find_by_id_and_update("k", {"pages": 2}) is None
        collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_invalid(self):
        collection, _ = mock_collection()
        collection.find_one.return_value = {"_id": "k", "title": "Dune"}
        resource = MotorResource(collection, schema=Book)

        with pytest.raises(ValidationError):
            await resource.find_by_id_and_update("k", {"pages": "many"})
        collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_update_reads(self):
        collection, _ = mock_collection()
        collection.find_one.return_value = {"_id": "k"}
        resource = MotorResource(collection, timestamps=False)

        assert await resource.find_by_id_and_update("k", {}) == {"_id": "k"}
        collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete(self):
        oid = ObjectId()
        collection, _ = mock_collection()
        collection.find_one_and_delete.return_value = {"_id": oid}
        resource = MotorResource(collection)

        assert await resource.find_by_id_and_delete(str(oid)) == {"_id": oid}
        collection.find_one_and_delete.assert_awaited_once_with({"_id": oid})


class TestMotorConfiguration:
    """Test environment-based construction."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AUTOCRUD_MONGODB_URI", "mongodb://db:27017")
        monkeypatch.setenv("AUTOCRUD_MONGODB_DB_NAME", "shop")

        with patch("autocrud.db.mongodb.AsyncIOMotorClient") as client_class:
            resource = MotorResource.from_env("orders", schema=Book)

        client_class.assert_called_once_with("mongodb://db:27017")
        client_class.return_value.__getitem__.assert_called_once_with("shop")
        assert resource.schema is Book

    def test_from_env_defaults(self, monkeypatch):
        monkeypatch.delenv("AUTOCRUD_MONGODB_URI", raising=False)
        monkeypatch.delenv("AUTOCRUD_MONGODB_DB_NAME", raising=False)

        with patch("autocrud.db.mongodb.AsyncIOMotorClient") as client_class:
            MotorResource.from_env("orders")

        client_class.assert_called_once_with("mongodb://localhost:27017")
        client_class.return_value.__getitem__.assert_called_once_with("autocrud")
