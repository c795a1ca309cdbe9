"""
Auto-CRUD example for openroute.

Generates Create, Read, Update, Delete and List endpoints for a ``users``
table and a nested ``posts`` collection, stored in an in-memory SQLite
database. Endpoint activity is logged through the standard logging module.
"""

import logging
from typing import Optional

import anyio
from pydantic import BaseModel, Field

from openroute import Application, Request, Router, StdlibLogger, ValidationError
from openroute.crud import (
    EndpointMeta,
    ModelDescription,
    SQLiteStorage,
    create_endpoint,
    delete_endpoint,
    list_endpoint,
    read_endpoint,
    update_endpoint,
)

logging.basicConfig(level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users (id),
    title TEXT NOT NULL
);
"""


class User(BaseModel):
    id: Optional[int] = None
    username: str = Field(..., min_length=2, description="Public handle")
    email: str = Field(..., description="Contact address")


class Post(BaseModel):
    id: Optional[int] = None
    user_id: int
    title: str


def build_app(storage: SQLiteStorage) -> Application:
    endpoint_logger = StdlibLogger()
    users = EndpointMeta(
        model=ModelDescription(User, table_name="users"),
        filter_fields=("email",),
        search_fields=("username",),
        order_by_fields=("username",),
        default_order_by="id",
        constraint_messages={
            "users.email": ValidationError("Email already registered", path=["body", "email"]),
        },
    )
    posts = EndpointMeta(model=ModelDescription(Post, table_name="posts"), default_order_by="id")
    scoped_posts = EndpointMeta(
        model=ModelDescription(Post, table_name="posts"),
        path_parameters=("user_id", "id"),
    )

    app = Application(title="Blog API", version="1.0.0")
    app.add_endpoint("/users", create_endpoint(users, storage, logger=endpoint_logger, tags=["users"]))
    app.add_endpoint("/users", list_endpoint(users, storage, logger=endpoint_logger, tags=["users"]))
    app.add_endpoint("/users/{id}", read_endpoint(users, storage, logger=endpoint_logger, tags=["users"]))
    app.add_endpoint("/users/{id}", update_endpoint(users, storage, logger=endpoint_logger, tags=["users"]))
    app.add_endpoint("/users/{id}", delete_endpoint(users, storage, logger=endpoint_logger, tags=["users"]))

    router = Router()
    router.add_endpoint("/posts", create_endpoint(posts, storage, tags=["posts"]))
    router.add_endpoint("/posts", list_endpoint(posts, storage, tags=["posts"]))
    router.add_endpoint("/posts/{id}", read_endpoint(scoped_posts, storage, tags=["posts"]))
    app.mount("/users/{user_id}", router)
    return app


async def main():
    """Run example requests."""
    storage = SQLiteStorage()
    await storage.executescript(SCHEMA)
    app = build_app(storage)

    requests = [
        Request.from_url("POST", "/users", body='{"username": "alice", "email": "alice@example.com"}'),
        Request.from_url("POST", "/users", body='{"username": "bob", "email": "alice@example.com"}'),
        Request.from_url("POST", "/users", body='{"username": "bob", "email": "bob@example.com"}'),
        Request.from_url("PUT", "/users/2", body='{"username": "robert"}'),
        Request.from_url("GET", "/users?search=ali&per_page=10"),
        Request.from_url("POST", "/users/1/posts", body='{"title": "Hello"}'),
        Request.from_url("GET", "/users/1/posts"),
        Request.from_url("GET", "/users/2/posts/1"),
        Request.from_url("DELETE", "/users/2"),
        Request.from_url("GET", "/users/2"),
    ]
    for request in requests:
        response = await app.handle(request)
        print(f"{request.method.value} {request.path}: {response.status_code}")
        print(f"Response: {response.body}")
        print()

    app.save_openapi_json("openapi.json", docs_dir="docs")
    storage.close()


if __name__ == "__main__":
    anyio.run(main)
