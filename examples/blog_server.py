"""
Blog API Example using autocrud

This example serves users and posts from MongoDB with:
- Paginated, sortable, filterable listings
- Author population on posts
- Password hiding through projection
- Auth middleware on write routes
- Lifecycle hooks, including a soft delete that aborts the real deletion

Run with: uvicorn blog_server:app --reload
Access docs at: http://localhost:8000/docs
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from autocrud import MotorResource, autocrud
from autocrud.exceptions import AutoCrudAPIException

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class User(BaseModel):
    """User document schema."""

    name: str = Field(min_length=1)
    email: str
    password: str
    role: str = "member"
    age: Optional[int] = Field(default=None, ge=0)


class Post(BaseModel):
    """Post document schema."""

    title: str = Field(min_length=1)
    body: str = ""
    author: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    deleted: bool = False


def require_api_key(request: Request) -> None:
    """Reject requests without an API key."""
    if not request.headers.get("x-api-key"):
        raise HTTPException(status_code=401, detail="Missing API key")


def has_email(body: dict) -> bool:
    return isinstance(body, dict) and "@" in str(body.get("email", ""))


async def stamp_author(request: Request, data: dict) -> None:
    data.setdefault("author", request.headers.get("x-user-id"))


async def log_created(request: Request, doc: dict) -> None:
    logger.info(f"Created post {doc['_id']}")


users = MotorResource.from_env("users", schema=User)
posts = MotorResource.from_env("posts", schema=Post, refs={"author": "users"})


async def soft_delete(request: Request, id: str) -> None:
    """Flag the post as deleted, then abort the hard delete."""
    await posts.find_by_id_and_update(id, {"deleted": True})
    raise AutoCrudAPIException("Post archived instead of deleted", status_code=409)


app = FastAPI(title="Blog API")

autocrud(
    app,
    users,
    "/api/users",
    {
        "pagination": {"default_limit": 10, "max_limit": 50},
        "sort": {"allowed": ["name", "age", "createdAt"]},
        "filter": {"allowed": ["role", "age"]},
        "projection": {"password": 0},
        "validate_body": has_email,
        "middleware": {"create": [require_api_key], "delete": [require_api_key]},
    },
)

autocrud(
    app,
    posts,
    "/api/posts",
    {
        "populate": ["author"],
        "filter": {"allowed": ["author", "tags", "deleted"]},
        "middleware": {"all": [require_api_key]},
        "hooks": {
            "before_create": stamp_author,
            "after_create": log_created,
            "before_delete": soft_delete,
        },
    },
)


@app.get("/health")
async def health():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("blog_server:app", host="0.0.0.0", port=8000, reload=False, log_level="info")
