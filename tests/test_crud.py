"""Tests for the auto-generated CRUD endpoints against SQLite."""

import json
import logging
from typing import Dict, List, Optional

import pytest
from openapi_spec_validator import validate
from pydantic import BaseModel, Field

from openroute import Application, HTTPMethod, Request, Router, StdlibLogger, ValidationError
from openroute.crud import (
    EndpointHooks,
    EndpointMeta,
    ModelDescription,
    SQLiteStorage,
    create_endpoint,
    delete_endpoint,
    list_endpoint,
    read_endpoint,
    update_endpoint,
)
from openroute.exceptions import ConfigurationError, SchemaMismatchError
from openroute.loggers import TRACE


class User(BaseModel):
    id: Optional[int] = None
    username: str = Field(..., min_length=2, description="Public handle")
    email: str
    age: Optional[int] = Field(None, ge=0)


class Post(BaseModel):
    id: Optional[int] = None
    user_id: int
    title: str


class Account(BaseModel):
    """Looser than the users table: email may be null here."""

    id: Optional[int] = None
    username: str
    email: Optional[str] = None


class Doc(BaseModel):
    id: Optional[int] = None
    tags: List[str]
    extra: Optional[Dict[str, int]] = None


USERS = ModelDescription(User, primary_keys=("id",), table_name="users")
POSTS = ModelDescription(Post, primary_keys=("id",), table_name="posts")

SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    age INTEGER
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    title TEXT NOT NULL
);
CREATE TABLE docs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tags TEXT NOT NULL,
    extra TEXT
);
"""

EMAIL_TAKEN = ValidationError("Email already registered", path=["body", "email"])


class RecordingStorage:
    """Wraps a storage and remembers every statement it ran."""

    def __init__(self, inner):
        self.inner = inner
        self.statements = []

    async def execute(self, query):
        self.statements.append(query.text)
        return await self.inner.execute(query)


class RecordingLogger:
    def __init__(self):
        self.records = []

    def log(self, message, context=None):
        self.records.append(("log", message, context))

    def info(self, message, context=None):
        self.records.append(("info", message, context))

    def warn(self, message, context=None):
        self.records.append(("warn", message, context))

    def error(self, message, context=None):
        self.records.append(("error", message, context))

    def debug(self, message, context=None):
        self.records.append(("debug", message, context))

    def trace(self, message, context=None):
        self.records.append(("trace", message, context))

    def messages(self):
        return [message for _, message, _ in self.records]


def user_meta(**kwargs):
    kwargs.setdefault("filter_fields", ("email",))
    kwargs.setdefault("search_fields", ("username",))
    kwargs.setdefault("order_by_fields", ("username",))
    kwargs.setdefault("default_order_by", "id")
    return EndpointMeta(model=USERS, **kwargs)


def build_app(storage, meta=None, logger=None):
    meta = meta or user_meta()
    app = Application(title="Users API")
    app.add_endpoint("/users", create_endpoint(meta, storage, logger=logger))
    app.add_endpoint("/users", list_endpoint(meta, storage, logger=logger))
    app.add_endpoint("/users/{id}", read_endpoint(meta, storage, logger=logger))
    app.add_endpoint("/users/{id}", update_endpoint(meta, storage, logger=logger))
    app.add_endpoint("/users/{id}", delete_endpoint(meta, storage, logger=logger))
    return app


async def call(app, method, url, body=None):
    headers = {"Content-Type": "application/json"}
    payload = json.dumps(body) if body is not None else None
    return await app.handle(Request.from_url(method, url, headers=headers, body=payload))


@pytest.fixture
async def sqlite():
    storage = SQLiteStorage()
    await storage.executescript(SCHEMA)
    yield storage
    storage.close()


@pytest.fixture
def storage(sqlite):
    return RecordingStorage(sqlite)


async def seed(app, *users):
    for username, email in users:
        response = await call(app, "POST", "/users", {"username": username, "email": email})
        assert response.status_code == 200


class TestRegistration:
    """Configuration defects fail when routes are registered."""

    def test_read_route_without_key_parameter(self):
        """A Read route without the primary key placeholder fails to register."""
        app = Application()
        with pytest.raises(SchemaMismatchError) as exc_info:
            app.add_endpoint("/users", read_endpoint(user_meta(), SQLiteStorage()))
        assert "Primary keys differ from URL parameters" in str(exc_info.value)
        assert exc_info.value.field == "id"
        assert len(app.registry) == 0

    def test_read_route_with_unmatched_parent_parameter(self):
        """A parent placeholder that is not a key fails when mounted."""
        router = Router()
        router.add_endpoint("/posts/{id}", read_endpoint(EndpointMeta(model=POSTS), SQLiteStorage()))
        with pytest.raises(SchemaMismatchError) as exc_info:
            Application().mount("/users/{user_id}", router)
        assert exc_info.value.field == "user_id"

    def test_explicit_path_parameters_resolve_nesting(self):
        """Declared path_parameters let nested keyed routes register."""
        router = Router()
        meta = EndpointMeta(model=POSTS, path_parameters=("user_id", "id"))
        router.add_endpoint("/posts/{id}", read_endpoint(meta, SQLiteStorage()))
        app = Application()
        app.mount("/users/{user_id}", router)
        assert len(app.registry) == 1

    def test_colon_path_syntax(self):
        """Colon placeholders are accepted for CRUD routes."""
        app = Application()
        app.add_endpoint("/users/:id", read_endpoint(user_meta(), SQLiteStorage()))
        assert [route.path for route in app.registry] == ["/users/{id}"]

    def test_unknown_meta_field(self):
        """Metadata naming an unknown field is rejected."""
        with pytest.raises(SchemaMismatchError):
            EndpointMeta(model=USERS, filter_fields=("nickname",))

    def test_unknown_primary_key(self):
        """Primary keys must be model fields."""
        with pytest.raises(SchemaMismatchError):
            ModelDescription(User, primary_keys=("uuid",), table_name="users")

    def test_invalid_table_name(self):
        """Table names must be plain identifiers."""
        with pytest.raises(SchemaMismatchError):
            ModelDescription(User, table_name="users; DROP TABLE users")

    def test_per_page_bounds(self):
        """The default page size cannot exceed the maximum."""
        with pytest.raises(ConfigurationError):
            EndpointMeta(model=USERS, per_page_default=200, per_page_max=100)

    def test_constraint_messages_must_be_validation_errors(self):
        """Constraint messages must map to ValidationError instances."""
        with pytest.raises(ConfigurationError):
            EndpointMeta(model=USERS, constraint_messages={"users.email": "taken"})

    def test_missing_table_requires_hooks(self):
        """Without a table the storage hooks must be replaced."""
        model = ModelDescription(User)
        with pytest.raises(ConfigurationError):
            read_endpoint(EndpointMeta(model=model), SQLiteStorage())

        endpoint = read_endpoint(
            EndpointMeta(model=model),
            SQLiteStorage(),
            hooks=EndpointHooks(fetch_one=lambda ctx, keys: None),
        )
        assert endpoint.builder is None

    def test_metadata_is_immutable(self):
        """Metadata cannot be changed after construction."""
        meta = user_meta(constraint_messages={"users.email": EMAIL_TAKEN})
        with pytest.raises(AttributeError):
            meta.filter_fields = ("username",)
        with pytest.raises(TypeError):
            meta.constraint_messages["users.username"] = EMAIL_TAKEN


@pytest.mark.anyio
class TestCreate:
    async def test_create_returns_row(self, storage):
        """Create returns the stored row in the envelope."""
        app = build_app(storage)
        response = await call(app, "POST", "/users", {"username": "ann", "email": "ann@example.com", "age": 30})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "result": {"id": 1, "username": "ann", "email": "ann@example.com", "age": 30},
        }
        assert storage.statements[-1].startswith('INSERT INTO "users"')

    async def test_primary_key_not_accepted_from_body(self, storage):
        """Primary keys in the body are ignored."""
        app = build_app(storage)
        response = await call(app, "POST", "/users", {"id": 50, "username": "ann", "email": "ann@example.com"})
        assert response.json()["result"]["id"] == 1

    async def test_validation_errors(self, storage):
        """Invalid bodies never reach storage."""
        app = build_app(storage)
        response = await call(app, "POST", "/users", {"username": "a"})

        assert response.status_code == 400
        paths = sorted(error["path"] for error in response.json()["errors"])
        assert paths == [["body", "email"], ["body", "username"]]
        assert storage.statements == []

    async def test_mapped_constraint(self, storage):
        """A mapped constraint returns its ValidationError."""
        app = build_app(storage, user_meta(constraint_messages={"users.email": EMAIL_TAKEN}))
        await seed(app, ("ann", "ann@example.com"))

        response = await call(app, "POST", "/users", {"username": "bob", "email": "ann@example.com"})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "errors": [{"code": 7001, "message": "Email already registered", "path": ["body", "email"]}],
        }

    async def test_unmapped_constraint(self, storage):
        """An unmapped constraint returns 409 without the identifier."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))

        response = await call(app, "POST", "/users", {"username": "bob", "email": "ann@example.com"})

        assert response.status_code == 409
        assert response.json()["errors"] == [{"code": 7003, "message": "Constraint violation"}]
        assert "users.email" not in response.body

    async def test_fields_restrict_body(self, storage):
        """Only the configured fields are accepted."""
        app = build_app(storage, user_meta(fields=("username", "email")))
        response = await call(app, "POST", "/users", {"username": "ann", "email": "a@x", "age": 99})
        assert response.json()["result"]["age"] is None


@pytest.mark.anyio
class TestRead:
    async def test_read_existing(self, storage):
        """Read returns the row."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))

        response = await call(app, "GET", "/users/1")

        assert response.status_code == 200
        assert response.json()["result"]["username"] == "ann"

    async def test_read_missing(self, storage):
        """Read of a missing key is 404."""
        app = build_app(storage)
        response = await call(app, "GET", "/users/99")
        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == 7002

    async def test_key_is_typed_from_model(self, storage):
        """The key parameter takes the model field type."""
        app = build_app(storage)
        response = await call(app, "GET", "/users/abc")
        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == ["path", "id"]


@pytest.mark.anyio
class TestUpdate:
    async def test_partial_update(self, storage):
        """Update changes only the supplied fields."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))

        response = await call(app, "PUT", "/users/1", {"age": 31})

        assert response.status_code == 200
        assert response.json()["result"] == {"id": 1, "username": "ann", "email": "ann@example.com", "age": 31}

    async def test_empty_update_returns_existing_row(self, storage):
        """An empty update returns the row without writing."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))
        storage.statements.clear()

        response = await call(app, "PUT", "/users/1", {})

        assert response.json()["result"]["username"] == "ann"
        assert not any(statement.startswith("UPDATE") for statement in storage.statements)

    async def test_missing_row_is_not_mutated(self, storage):
        """Update of a missing key is 404 and issues no write."""
        app = build_app(storage)

        response = await call(app, "PUT", "/users/5", {"age": 3})

        assert response.status_code == 404
        assert storage.statements == ['SELECT * FROM "users" WHERE "id" = ? LIMIT 1']

    async def test_update_constraint_mapping(self, storage):
        """Update consults the constraint messages."""
        app = build_app(storage, user_meta(constraint_messages={"users.email": EMAIL_TAKEN}))
        await seed(app, ("ann", "ann@example.com"), ("bob", "bob@example.com"))

        response = await call(app, "PUT", "/users/2", {"email": "ann@example.com"})

        assert response.status_code == 400
        assert response.json()["errors"][0]["message"] == "Email already registered"

    async def test_update_validates_fields(self, storage):
        """Field constraints still apply to optional update fields."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))
        response = await call(app, "PUT", "/users/1", {"age": -1})
        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == ["body", "age"]

    async def test_null_for_required_field_rejected(self, storage):
        """An explicit null is checked against the field type."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))
        storage.statements.clear()

        response = await call(app, "PUT", "/users/1", {"username": None})

        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == ["body", "username"]
        assert storage.statements == []
        assert (await call(app, "GET", "/users/1")).json()["result"]["username"] == "ann"

    async def test_null_for_nullable_field_clears_it(self, storage):
        """Fields the model declares optional can be set to null."""
        app = build_app(storage)
        await call(app, "POST", "/users", {"username": "ann", "email": "ann@example.com", "age": 30})

        response = await call(app, "PUT", "/users/1", {"age": None})

        assert response.status_code == 200
        assert response.json()["result"]["age"] is None

    async def test_not_null_violation_is_not_mapped(self, storage):
        """Messages mapped for a column answer uniqueness failures only."""
        app = build_app(storage)
        meta = EndpointMeta(
            model=ModelDescription(Account, table_name="users"),
            constraint_messages={"users.email": EMAIL_TAKEN},
        )
        app.add_endpoint("/accounts/{id}", update_endpoint(meta, storage))
        await seed(app, ("ann", "ann@example.com"))

        response = await call(app, "PUT", "/accounts/1", {"email": None})

        assert response.status_code == 409
        assert response.json()["errors"] == [{"code": 7003, "message": "Constraint violation"}]


@pytest.mark.anyio
class TestDelete:
    async def test_delete_returns_row(self, storage):
        """Delete returns the removed row."""
        app = build_app(storage)
        await seed(app, ("ann", "ann@example.com"))

        response = await call(app, "DELETE", "/users/1")

        assert response.status_code == 200
        assert response.json()["result"]["email"] == "ann@example.com"
        assert (await call(app, "GET", "/users/1")).status_code == 404

    async def test_missing_row_is_not_deleted(self, storage):
        """Delete of a missing key is 404 and issues no write."""
        app = build_app(storage)

        response = await call(app, "DELETE", "/users/5")

        assert response.status_code == 404
        assert not any(statement.startswith("DELETE") for statement in storage.statements)


@pytest.mark.anyio
class TestList:
    async def seeded(self, storage):
        app = build_app(storage, user_meta(per_page_default=2))
        await seed(
            app,
            ("john", "john@example.com"),
            ("joanna", "jo@example.com"),
            ("mary", "mary@example.com"),
        )
        return app

    async def test_pagination(self, storage):
        """Pages are sliced and described in result_info."""
        app = await self.seeded(storage)

        first = (await call(app, "GET", "/users")).json()
        second = (await call(app, "GET", "/users?page=2")).json()

        assert first["success"] is True
        assert [user["id"] for user in first["result"]] == [1, 2]
        assert first["result_info"] == {"page": 1, "per_page": 2, "count": 2, "total_count": 3}
        assert [user["id"] for user in second["result"]] == [3]
        assert second["result_info"] == {"page": 2, "per_page": 2, "count": 1, "total_count": 3}

    async def test_filter_and_search(self, storage):
        """Filters and search narrow the rows and the total."""
        app = await self.seeded(storage)

        body = (await call(app, "GET", "/users?email=jo@example.com&search=jo")).json()

        assert [user["username"] for user in body["result"]] == ["joanna"]
        assert body["result_info"]["total_count"] == 1

    async def test_search_is_literal(self, storage):
        """Wildcards in the search term match literally."""
        app = await self.seeded(storage)
        body = (await call(app, "GET", "/users?search=%25")).json()
        assert body["result"] == []

    async def test_order_by(self, storage):
        """order_by and order_by_direction control ordering."""
        app = await self.seeded(storage)
        body = (await call(app, "GET", "/users?order_by=username&order_by_direction=desc&per_page=3")).json()
        assert [user["username"] for user in body["result"]] == ["mary", "john", "joanna"]

    async def test_unknown_query_parameter(self, storage):
        """Undeclared query keys are rejected."""
        app = await self.seeded(storage)
        response = await call(app, "GET", "/users?nickname=jo")
        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == ["query", "nickname"]

    async def test_unknown_order_field(self, storage):
        """order_by accepts only declared fields."""
        app = await self.seeded(storage)
        response = await call(app, "GET", "/users?order_by=email")
        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == ["query", "order_by"]

    async def test_per_page_above_maximum(self, storage):
        """per_page above the maximum is rejected."""
        app = await self.seeded(storage)
        response = await call(app, "GET", "/users?per_page=500")
        assert response.status_code == 400

    async def test_page_and_count_share_predicate(self, storage):
        """The count query uses the page query predicate."""
        app = await self.seeded(storage)
        storage.statements.clear()

        await call(app, "GET", "/users?search=jo")

        rows, count = storage.statements
        predicate = rows.split(" WHERE ")[1].split(" ORDER BY ")[0]
        assert count.endswith(" WHERE " + predicate)


@pytest.mark.anyio
class TestNestedEndpoints:
    """Path parameters naming model fields scope nested endpoints."""

    def build(self, storage):
        posts = Router()
        posts.add_endpoint("/posts", create_endpoint(EndpointMeta(model=POSTS), storage))
        posts.add_endpoint("/posts", list_endpoint(EndpointMeta(model=POSTS, default_order_by="id"), storage))
        scoped = EndpointMeta(model=POSTS, path_parameters=("user_id", "id"))
        posts.add_endpoint("/posts/{id}", read_endpoint(scoped, storage))

        app = build_app(storage)
        app.mount("/users/{user_id}", posts)
        return app

    async def test_path_parameter_injected_on_create(self, storage):
        """Path values naming fields are stored on create."""
        app = self.build(storage)

        response = await call(app, "POST", "/users/7/posts", {"title": "Hello"})

        assert response.json()["result"] == {"id": 1, "user_id": 7, "title": "Hello"}

    async def test_path_parameter_filters_list(self, storage):
        """Path values naming fields filter the list."""
        app = self.build(storage)
        await call(app, "POST", "/users/1/posts", {"title": "First"})
        await call(app, "POST", "/users/2/posts", {"title": "Second"})

        body = (await call(app, "GET", "/users/1/posts")).json()

        assert [post["title"] for post in body["result"]] == ["First"]
        assert body["result_info"]["total_count"] == 1

    async def test_read_scoped_by_parent(self, storage):
        """Nested reads match on every path key."""
        app = self.build(storage)
        await call(app, "POST", "/users/1/posts", {"title": "First"})

        assert (await call(app, "GET", "/users/1/posts/1")).status_code == 200
        assert (await call(app, "GET", "/users/2/posts/1")).status_code == 404

    async def test_parent_parameter_typed_from_model(self, storage):
        """Parent placeholders take the model field type."""
        app = self.build(storage)
        route = app.registry.get(HTTPMethod.GET, "/users/{user_id}/posts")
        assert [(p.name, p.annotation) for p in route.contract.path_parameters] == [("user_id", int)]


@pytest.mark.anyio
class TestHooks:
    """Hooks replace default behaviour without subclassing."""

    async def test_before_and_after(self, storage):
        """before sees the values to insert and after the stored row."""
        def lowercase_email(values):
            return {**values, "email": values["email"].lower()}

        async def mark_row(row):
            return {**row, "username": row["username"].upper()}

        app = Application()
        app.add_endpoint(
            "/users",
            create_endpoint(user_meta(), storage, hooks=EndpointHooks(before=lowercase_email, after=mark_row)),
        )

        response = await call(app, "POST", "/users", {"username": "ann", "email": "ANN@Example.com"})

        assert response.json()["result"]["email"] == "ann@example.com"
        assert response.json()["result"]["username"] == "ANN"

    async def test_custom_fetch_one(self, storage):
        """A custom fetch_one replaces the storage lookup."""
        async def fetch_one(ctx, keys):
            return {"id": keys["id"], "username": "ghost", "email": "ghost@example.com", "age": None}

        app = Application()
        app.add_endpoint("/users/{id}", read_endpoint(user_meta(), storage, hooks=EndpointHooks(fetch_one=fetch_one)))

        response = await call(app, "GET", "/users/12")

        assert response.json()["result"]["username"] == "ghost"
        assert storage.statements == []

    async def test_before_validate(self, storage):
        """before_validate may rewrite the raw request."""
        def default_body(request):
            request.body = request.body or json.dumps({"username": "anon", "email": "anon@example.com"})
            return request

        app = Application()
        app.add_endpoint(
            "/users",
            create_endpoint(user_meta(), storage, hooks=EndpointHooks(before_validate=default_body)),
        )

        response = await call(app, "POST", "/users")

        assert response.json()["result"]["username"] == "anon"

    async def test_serializer(self, storage):
        """A serializer shapes the result and its documented schema."""
        class PublicUser(BaseModel):
            id: int
            name: str

        model = ModelDescription(
            User,
            table_name="users",
            serializer=lambda row: {"id": row["id"], "name": row["username"]},
            serializer_schema=PublicUser,
        )
        app = Application()
        app.add_endpoint("/users", create_endpoint(EndpointMeta(model=model), storage))

        response = await call(app, "POST", "/users", {"username": "ann", "email": "ann@example.com"})

        assert response.json()["result"] == {"id": 1, "name": "ann"}
        schemas = app.openapi()["components"]["schemas"]
        assert schemas["UserResult"]["properties"]["result"] == {"$ref": "#/components/schemas/PublicUser"}


@pytest.mark.anyio
class TestLogging:
    async def test_logger_capability_called(self, storage):
        """The endpoint logger records each request and constraint violation."""
        logger = RecordingLogger()
        app = build_app(storage, user_meta(), logger=logger)
        await seed(app, ("ann", "ann@example.com"))
        await call(app, "POST", "/users", {"username": "bob", "email": "ann@example.com"})

        messages = logger.messages()
        assert "Request received" in messages
        assert "Query executed" in messages
        assert ("warn", "Constraint violation", {"operation": "create", "constraint": "users.email"}) in logger.records

    async def test_stdlib_logger_trace_level(self, storage, caplog):
        """StdlibLogger emits query traces at the TRACE level."""
        target = logging.getLogger("tests.crud")
        caplog.set_level(TRACE, logger="tests.crud")
        app = build_app(storage, user_meta(), logger=StdlibLogger(target))

        await seed(app, ("ann", "ann@example.com"))

        traces = [record for record in caplog.records if record.levelname == "TRACE"]
        assert traces
        assert traces[0].getMessage() == "Query executed"
        assert traces[0].context["operation"] == "create"


@pytest.mark.anyio
class TestStructuredFields:
    """List and mapping fields survive storage as JSON text."""

    def build(self, storage):
        meta = EndpointMeta(model=ModelDescription(Doc, table_name="docs"), default_order_by="id")
        app = Application()
        app.add_endpoint("/docs", create_endpoint(meta, storage))
        app.add_endpoint("/docs", list_endpoint(meta, storage))
        app.add_endpoint("/docs/{id}", read_endpoint(meta, storage))
        app.add_endpoint("/docs/{id}", update_endpoint(meta, storage))
        app.add_endpoint("/docs/{id}", delete_endpoint(meta, storage))
        return app

    async def test_create_and_read(self, storage):
        """Created values come back decoded."""
        app = self.build(storage)

        created = await call(app, "POST", "/docs", {"tags": ["a", "b"], "extra": {"k": 1}})
        read = await call(app, "GET", "/docs/1")

        expected = {"id": 1, "tags": ["a", "b"], "extra": {"k": 1}}
        assert created.status_code == 200
        assert created.json()["result"] == expected
        assert read.json()["result"] == expected

    async def test_update_list_and_delete(self, storage):
        """Every operation decodes the stored JSON."""
        app = self.build(storage)
        await call(app, "POST", "/docs", {"tags": ["a"]})

        updated = await call(app, "PUT", "/docs/1", {"tags": ["b"], "extra": {"n": 2}})
        listed = await call(app, "GET", "/docs")
        deleted = await call(app, "DELETE", "/docs/1")

        assert updated.json()["result"] == {"id": 1, "tags": ["b"], "extra": {"n": 2}}
        assert listed.json()["result"] == [{"id": 1, "tags": ["b"], "extra": {"n": 2}}]
        assert deleted.json()["result"]["tags"] == ["b"]

    async def test_corrupt_json_is_a_storage_error(self, sqlite):
        """Unparseable stored JSON is reported as a storage failure."""
        await sqlite.executescript("INSERT INTO docs (tags) VALUES ('not json');")
        app = self.build(sqlite)

        response = await call(app, "GET", "/docs/1")

        assert response.status_code == 500
        assert response.json()["errors"][0]["code"] == 7004


class TestCrudDocument:
    def test_document_is_valid(self):
        """The CRUD document passes the validator."""
        app = build_app(SQLiteStorage())
        validate(app.openapi())

    def test_document_is_valid_openapi_30(self):
        """The CRUD document passes the 3.0 validator."""
        app = Application(openapi_version="3.0.3")
        meta = user_meta()
        app.add_endpoint("/users", create_endpoint(meta, SQLiteStorage()))
        app.add_endpoint("/users", list_endpoint(meta, SQLiteStorage()))
        app.add_endpoint("/users/{id}", update_endpoint(meta, SQLiteStorage()))
        validate(app.openapi())

    def test_list_parameters(self):
        """List documents its query parameters in a fixed order."""
        document = build_app(SQLiteStorage()).openapi()
        parameters = document["paths"]["/users"]["get"]["parameters"]
        assert [p["name"] for p in parameters] == [
            "page",
            "per_page",
            "email",
            "search",
            "order_by",
            "order_by_direction",
        ]
        order_by = parameters[4]["schema"]
        assert order_by["enum"] == ["username", "id"]

    def test_create_body_excludes_primary_key(self):
        """The create body omits the primary key; update fields are omittable but typed."""
        schemas = build_app(SQLiteStorage()).openapi()["components"]["schemas"]
        assert set(schemas["UserCreate"]["properties"]) == {"username", "email", "age"}
        assert schemas["UserCreate"]["required"] == ["username", "email"]
        assert "required" not in schemas["UserUpdate"]
        username = schemas["UserUpdate"]["properties"]["username"]
        assert username["type"] == "string"
        assert "default" not in username
        assert "anyOf" not in username

    def test_keyed_operations_document_not_found(self):
        """Keyed operations document 404 and the typed key."""
        document = build_app(SQLiteStorage()).openapi()
        operation = document["paths"]["/users/{id}"]["put"]
        assert {"200", "400", "404", "409"} == set(operation["responses"])
        assert operation["parameters"][0]["schema"] == {"type": "integer"}
