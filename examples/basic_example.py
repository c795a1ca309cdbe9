"""
Basic usage example for openroute.

This example demonstrates:
- Route registration with typed path and query parameters
- Request body validation with pydantic models
- Error responses for invalid input
- The generated OpenAPI document
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from openroute import Application, NotFound, Request, ResponseSpec, path_param, query_param

app = Application(title="Users API", version="1.0.0")


class User(BaseModel):
    id: int
    name: str
    email: str


class CreateUser(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    age: Optional[int] = Field(None, ge=0)


# In-memory data store for this example
users_db = {
    1: {"id": 1, "name": "Alice", "email": "alice@example.com"},
    2: {"id": 2, "name": "Bob", "email": "bob@example.com"},
}


@app.get(
    "/users",
    parameters=[query_param("limit", int, default=10)],
    responses={200: ResponseSpec("Users", List[User])},
)
def list_users(data):
    """List users, up to ``limit``."""
    return list(users_db.values())[: data.query["limit"]]


@app.get(
    "/users/:user_id",
    parameters=[path_param("user_id", int)],
    responses={200: ResponseSpec("The user", User)},
)
def get_user(data):
    """Get a single user."""
    user = users_db.get(data.params["user_id"])
    if user is None:
        raise NotFound()
    return User(**user)


@app.post("/users", body=CreateUser, responses={200: ResponseSpec("The created user", User)})
def create_user(data):
    """Create a user."""
    user_id = max(users_db) + 1
    users_db[user_id] = {"id": user_id, "name": data.body.name, "email": data.body.email}
    return users_db[user_id]


def main():
    """Run example requests."""
    print("Basic openroute example")
    print("=" * 40)

    requests = [
        Request.from_url("GET", "/users?limit=1"),
        Request.from_url("GET", "/users/2"),
        Request.from_url("GET", "/users/99"),
        Request.from_url("POST", "/users", body='{"name": "Carol", "email": "carol@example.com"}'),
        Request.from_url("POST", "/users", body='{"name": "", "age": -1}'),
        Request.from_url("DELETE", "/users/1"),
    ]
    for request in requests:
        response = app.execute(request)
        print(f"{request.method.value} {request.path}: {response.status_code}")
        print(f"Response: {response.body}")
        print()

    print("Documented paths:", ", ".join(app.openapi()["paths"]))


if __name__ == "__main__":
    main()
