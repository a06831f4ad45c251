"""
In-memory API Example using autocrud

Serves a small product catalogue from memory, no database required.

Run with: uvicorn memory_server:app --reload
Try: http://localhost:8000/products?category=books&sort=-price&limit=2
"""

from fastapi import FastAPI

from autocrud import MemoryResource, autocrud

catalogue = MemoryResource(
    [
        {"name": "Dune", "category": "books", "price": 12},
        {"name": "Neuromancer", "category": "books", "price": 9},
        {"name": "Kettle", "category": "kitchen", "price": 30},
        {"name": "Foundation", "category": "books", "price": 11},
    ]
)

app = FastAPI(title="Catalogue")
autocrud(
    app,
    catalogue,
    "/products",
    sort={"default": "name", "allowed": ["name", "price"]},
    filter={"allowed": ["category"]},
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("memory_server:app", host="0.0.0.0", port=8000, log_level="info")
