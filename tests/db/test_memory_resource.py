"""Test suite for the in-memory resource accessor."""

from typing import Optional

import pytest
from pydantic import BaseModel, ValidationError
from pymongo.errors import DuplicateKeyError

from autocrud.db import MemoryResource, ResourceAccessor


class Book(BaseModel):
    title: str
    pages: int = 0
    author: Optional[str] = None


@pytest.fixture
def authors():
    return MemoryResource(
        [{"_id": "u1", "name": "Le Guin"}, {"_id": "u2", "name": "Herbert"}]
    )


@pytest.fixture
def books(authors):
    return MemoryResource(
        [
            {"_id": "b1", "title": "Dune", "pages": 412, "author": "u2"},
            {"_id": "b2", "title": "Earthsea", "pages": 183, "author": "u1"},
            {"_id": "b3", "title": "Lathe", "pages": 184, "author": "u1"},
        ],
        schema=Book,
        refs={"author": authors},
    )


class TestMemoryQueries:
    """Test reads."""

    def test_satisfies_accessor_protocol(self, books):
        assert isinstance(books, ResourceAccessor)

    def test_initial_documents_get_ids(self):
        resource = MemoryResource([{"name": "a"}, {"name": "b"}])

        assert len(resource) == 2
        assert all(isinstance(doc_id, str) for doc_id in resource._documents)

    @pytest.mark.asyncio
    async def test_filter_sort_window(self, books):
        docs = await books.find({"author": "u1"}).sort("-pages").exec()
        assert [doc["_id"] for doc in docs] == ["b3", "b2"]

        window = await books.find({}).sort("pages").skip(1).limit(1).exec()
        assert [doc["_id"] for doc in window] == ["b3"]

    @pytest.mark.asyncio
    async def test_query_string_values_cast(self, books):
        """Test that string filter values are cast to schema types."""
        docs = await books.find({"pages": "412"}).exec()
        assert [doc["_id"] for doc in docs] == ["b1"]

        assert await books.count_documents({"pages": ["183", "184"]}) == 2

    @pytest.mark.asyncio
    async def test_skip_past_end(self, books):
        assert await books.find({}).skip(10).limit(5).exec() == []

    def test_negative_skip_rejected(self, books):
        with pytest.raises(ValueError):
            books.find({}).skip(-1)

    @pytest.mark.asyncio
    async def test_projection(self, books):
        doc = await books.find_by_id("b1", {"title": 1}).exec()
        assert doc == {"_id": "b1", "title": "Dune"}

        doc = await books.find_by_id("b1", {"pages": 0, "author": 0}).exec()
        assert doc == {"_id": "b1", "title": "Dune"}

    @pytest.mark.asyncio
    async def test_populate(self, books):
        doc = await books.find_by_id("b2").populate("author").exec()
        assert doc["author"] == {"_id": "u1", "name": "Le Guin"}

        docs = await books.find({}).sort("title").populate("author").exec()
        assert [d["author"]["name"] for d in docs] == ["Herbert", "Le Guin", "Le Guin"]

    @pytest.mark.asyncio
    async def test_populate_missing_reference(self, authors):
        posts = MemoryResource([{"_id": "p1", "author": "nobody"}], refs={"author": authors})

        doc = await posts.find_by_id("p1").populate("author").exec()

        assert doc["author"] is None

    @pytest.mark.asyncio
    async def test_results_are_copies(self, books):
        doc = await books.find_by_id("b1").exec()
        doc["title"] = "changed"

        assert books._documents["b1"]["title"] == "Dune"

    @pytest.mark.asyncio
    async def test_missing_id(self, books):
        assert await books.find_by_id("nope").exec() is None


class TestMemoryWrites:
    """Test create, update and delete."""

    @pytest.mark.asyncio
    async def test_create(self, books):
        doc = await books.create({"title": "Kindred", "pages": "287"})

        assert doc["pages"] == 287
        assert doc["createdAt"] == doc["updatedAt"]
        assert doc["_id"] in books._documents
        assert len(books) == 4

    @pytest.mark.asyncio
    async def test_create_without_timestamps(self):
        resource = MemoryResource(timestamps=False)

        doc = await resource.create({"name": "x"})

        assert set(doc) == {"_id", "name"}

    @pytest.mark.asyncio
    async def test_create_invalid(self, books):
        with pytest.raises(ValidationError):
            await books.create({"pages": 10})
        assert len(books) == 3

    @pytest.mark.asyncio
    async def test_duplicate_id(self, books):
        with pytest.raises(DuplicateKeyError):
            await books.create({"_id": "b1", "title": "Again"})

    @pytest.mark.asyncio
    async def test_update(self, books):
        doc = await books.find_by_id_and_update("b2", {"pages": "190", "_id": "zz"})

        assert doc["_id"] == "b2"
        assert doc["pages"] == 190
        assert "updatedAt" in doc
        assert books._documents["b2"]["pages"] == 190

    @pytest.mark.asyncio
    async def test_update_returns_original(self, books):
        doc = await books.find_by_id_and_update("b2", {"pages": 200}, new=False)

        assert doc["pages"] == 183
        assert books._documents["b2"]["pages"] == 200

    @pytest.mark.asyncio
    async def test_update_operators(self, books):
        doc = await books.find_by_id_and_update("b1", {"$inc": {"pages": 8}})

        assert doc["pages"] == 420

    @pytest.mark.asyncio
    async def test_update_invalid(self, books):
        with pytest.raises(ValidationError):
            await books.find_by_id_and_update("b1", {"pages": "many"})
        assert books._documents["b1"]["pages"] == 412

    @pytest.mark.asyncio
    async def test_update_skips_validation(self, books):
        doc = await books.find_by_id_and_update(
            "b1", {"pages": "many"}, run_validators=False
        )

        assert doc["pages"] == "many"

    @pytest.mark.asyncio
    async def test_update_missing(self, books):
        assert await books.find_by_id_and_update("nope", {"pages": 1}) is None

    @pytest.mark.asyncio
    async def test_delete(self, books):
        doc = await books.find_by_id_and_delete("b3")

        assert doc["title"] == "Lathe"
        assert len(books) == 2
        assert await books.find_by_id_and_delete("b3") is None
