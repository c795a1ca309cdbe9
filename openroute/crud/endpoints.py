"""
Auto-generated CRUD endpoints.

Each factory returns an immutable ``Endpoint`` wired with default hooks.
Behaviour is customized by passing an ``EndpointHooks`` whose non-None
entries replace the defaults. Hooks may be plain functions or coroutines.

Hook signatures:
    before_validate(request) -> request
    before(data) -> data
    fetch_one(ctx, keys) -> row or None
    mutate(ctx, keys, data) -> row or None
    list(ctx, spec) -> (rows, total)
    after(row) -> row

``before`` receives the row to insert (Create), the changed fields
(Update), the key values (Read, Delete) or the QuerySpec (List). ``after``
receives the stored row, or the list of rows for List.
"""

import inspect
import logging
from dataclasses import dataclass, fields, replace
from functools import partial
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import Field
from pydantic_core import to_jsonable_python

from ..contract import ResponseSpec, RouteContract, ValidatedRequest, error_response, merge_parameters
from ..exceptions import ConfigurationError, ConflictError, NotFound, StorageError
from ..loggers import EndpointLogger
from ..merge import key_names, match_path_keys, resolve_path_parameters
from ..models import HTTPMethod, Request
from ..parameters import Parameter, path_param, query_param
from ..router import BoundRoute, RoutePath
from .constraints import ConstraintMapper
from .meta import EndpointMeta
from .query import Query, QueryBuilder, QuerySpec
from .schemas import create_body, field_annotation, list_envelope, result_envelope, update_body
from .storage import ConstraintViolation, Storage, StorageBackendError

logger = logging.getLogger(__name__)

CREATE = "create"
READ = "read"
UPDATE = "update"
DELETE = "delete"
LIST = "list"

KEYED_OPERATIONS = (READ, UPDATE, DELETE)


async def _call(hook: Callable, *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class EndpointHooks:
    """Named operation hooks of a CRUD endpoint; None means "use the default"."""

    before_validate: Optional[Callable[[Request], Any]] = None
    before: Optional[Callable[[Any], Any]] = None
    fetch_one: Optional[Callable[..., Any]] = None
    mutate: Optional[Callable[..., Any]] = None
    list: Optional[Callable[..., Any]] = None
    after: Optional[Callable[[Any], Any]] = None

    def override(self, replacements: Optional["EndpointHooks"]) -> "EndpointHooks":
        if replacements is None:
            return self
        changes = {
            hook.name: getattr(replacements, hook.name)
            for hook in fields(replacements)
            if getattr(replacements, hook.name) is not None
        }
        return replace(self, **changes)


@dataclass(frozen=True)
class OperationContext:
    """Per-request state handed to storage hooks."""

    meta: EndpointMeta
    storage: Storage
    builder: Optional[QueryBuilder]
    data: ValidatedRequest
    operation: str
    logger: Optional[EndpointLogger] = None
    constraints: Optional[ConstraintMapper] = None

    async def execute(self, query: Query) -> List[Dict[str, Any]]:
        """Run a query, translating storage failures into API errors.

        Constraint violations go through the constraint mapper when this
        operation has one, and become a ConflictError otherwise.
        """
        try:
            rows = await self.storage.execute(query)
        except ConstraintViolation as e:
            if self.logger is not None:
                self.logger.warn(
                    "Constraint violation",
                    {"operation": self.operation, "constraint": e.identifier},
                )
            if self.constraints is not None:
                raise self.constraints.resolve(e) from e
            raise ConflictError(e.identifier) from e
        except StorageBackendError as e:
            logger.error(f"Storage failure during {self.operation} on {self.meta.model.name}: {e}")
            raise StorageError() from e
        if self.logger is not None:
            self.logger.trace("Query executed", {"operation": self.operation, "query": query.text, "rows": len(rows)})
        return rows


def _passthrough(value: Any) -> Any:
    return value


async def fetch_row(ctx: OperationContext, keys: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    rows = await ctx.execute(ctx.builder.build_select_one(keys))
    return rows[0] if rows else None


async def insert_row(ctx: OperationContext, keys: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
    rows = await ctx.execute(ctx.builder.build_insert(data))
    if not rows:
        raise StorageError()
    return rows[0]


async def update_row(ctx: OperationContext, keys: Dict[str, Any], data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    rows = await ctx.execute(ctx.builder.build_update(keys, data))
    return rows[0] if rows else None


async def delete_row(ctx: OperationContext, keys: Dict[str, Any], data: Any) -> Optional[Dict[str, Any]]:
    rows = await ctx.execute(ctx.builder.build_delete(keys))
    return rows[0] if rows else None


async def list_rows(ctx: OperationContext, spec: QuerySpec) -> Tuple[List[Dict[str, Any]], int]:
    queries = ctx.builder.build_select(spec)
    rows = await ctx.execute(queries.rows)
    counted = await ctx.execute(queries.count)
    total = int(counted[0]["total"]) if counted else 0
    return rows, total


DEFAULT_MUTATIONS = {CREATE: insert_row, UPDATE: update_row, DELETE: delete_row}


@dataclass(frozen=True)
class Endpoint:
    """A CRUD operation over one model, ready to be registered on a route."""

    operation: str
    method: HTTPMethod
    meta: EndpointMeta
    storage: Storage
    hooks: EndpointHooks
    logger: Optional[EndpointLogger] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    operation_id: Optional[str] = None
    constraints: Optional[ConstraintMapper] = None

    @property
    def keys(self) -> Tuple[str, ...]:
        """Field names that identify one row in the URL."""
        return key_names(self.meta.model.primary_keys, self.meta.path_parameters)

    @property
    def builder(self) -> Optional[QueryBuilder]:
        model = self.meta.model
        if model.table_name is None:
            return None
        return QueryBuilder(model.table_name, model.field_names)

    def _bound_fields(self, route_path: RoutePath) -> Tuple[str, ...]:
        """Path parameters of the route that name model fields.

        Raises:
            SchemaMismatchError: if the keys and the URL parameters differ
        """
        names = route_path.parameter_names
        explicit = self.meta.path_parameters is not None
        if self.operation in KEYED_OPERATIONS:
            match_path_keys(self.keys, names, route_path.full, explicit=explicit)
        elif explicit:
            match_path_keys(self.meta.path_parameters, names, route_path.full, explicit=True)
        known = set(self.meta.model.field_names)
        return tuple(name for name in names if name in known)

    def _path_declarations(self, bound: Sequence[str]) -> List[Parameter]:
        model = self.meta.model
        return [
            path_param(name, field_annotation(model, name), model.schema.model_fields[name].description)
            for name in bound
        ]

    def _query_parameters(self, bound: Sequence[str]) -> List[Parameter]:
        if self.operation != LIST:
            return []
        meta = self.meta
        model = meta.model
        parameters = [
            query_param("page", Annotated[int, Field(ge=1)], default=1, description="Page number"),
            query_param(
                "per_page",
                Annotated[int, Field(ge=1, le=meta.per_page_max)],
                default=meta.per_page_default,
                description="Number of results per page",
            ),
        ]
        for name in meta.filter_fields:
            if name not in bound:
                parameters.append(
                    query_param(name, field_annotation(model, name), description=model.schema.model_fields[name].description)
                )
        if meta.search_fields:
            parameters.append(
                query_param("search", str, description=f"Search in {', '.join(meta.search_fields)}")
            )
        if meta.orderable_fields:
            parameters.append(
                query_param(
                    "order_by",
                    Literal[meta.orderable_fields],  # type: ignore[valid-type]
                    default=meta.default_order_by,
                    description="Field to order results by",
                )
            )
            parameters.append(
                query_param(
                    "order_by_direction",
                    Literal["asc", "desc"],
                    default="asc",
                    description="Order direction",
                )
            )
        return parameters

    def _body(self, bound: Sequence[str]) -> Any:
        meta = self.meta
        if self.operation == CREATE:
            excluded = set(bound)
            if not meta.include_primary_keys_in_create:
                excluded.update(meta.model.primary_keys)
            return create_body(meta.model, meta.body_fields(excluded))
        if self.operation == UPDATE:
            excluded = set(bound) | set(self.keys) | set(meta.model.primary_keys)
            return update_body(meta.model, meta.body_fields(excluded))
        return None

    def _responses(self) -> Dict[int, ResponseSpec]:
        model = self.meta.model
        if self.operation == LIST:
            return {200: ResponseSpec(f"List of {model.name} objects", list_envelope(model))}
        success = {
            CREATE: f"Returns the created {model.name}",
            READ: f"Returns a single {model.name}",
            UPDATE: f"Returns the updated {model.name}",
            DELETE: f"Returns the deleted {model.name}",
        }[self.operation]
        responses = {200: ResponseSpec(success, result_envelope(model))}
        if self.operation in KEYED_OPERATIONS:
            responses[404] = error_response("Not Found")
        if self.operation in (CREATE, UPDATE):
            responses[409] = error_response("Constraint violation")
        return responses

    def bind(self, route_path: RoutePath) -> BoundRoute:
        """Build the route contract and handler for ``route_path``.

        Raises:
            SchemaMismatchError: if the keys and the URL parameters differ
        """
        bound = self._bound_fields(route_path)
        resolved = resolve_path_parameters(route_path.levels(self._path_declarations(bound)))
        contract = RouteContract.build(
            merge_parameters(resolved, self._query_parameters(bound)),
            body=self._body(bound),
            responses=self._responses(),
            summary=self.summary or _default_summary(self.operation, self.meta.model.name),
            description=self.description,
            tags=self.tags,
            operation_id=self.operation_id,
            allow_extra_query=self.operation != LIST,
        )
        prepare = None
        if self.hooks.before_validate is not None:
            prepare = partial(_call, self.hooks.before_validate)
        logger.debug(f"Bound {self.operation} endpoint for {self.meta.model.name} at {route_path.full}")
        return BoundRoute(contract, partial(self._run, bound, self.builder), prepare)

    async def _run(self, bound: Tuple[str, ...], builder: Optional[QueryBuilder], data: ValidatedRequest) -> Any:
        if self.logger is not None:
            self.logger.info(
                "Request received",
                {"operation": self.operation, "model": self.meta.model.name, "params": dict(data.params)},
            )
        ctx = OperationContext(self.meta, self.storage, builder, data, self.operation, self.logger, self.constraints)
        runner = _RUNNERS[self.operation]
        return await runner(self, ctx, bound)

    def _envelope(self, row: Any) -> Dict[str, Any]:
        return {"success": True, "result": self.meta.model.serialize(row)}

    def _key_values(self, data: ValidatedRequest) -> Dict[str, Any]:
        return {name: to_jsonable_python(data.params[name]) for name in self.keys}


def _default_summary(operation: str, name: str) -> str:
    return {
        CREATE: f"Create {name}",
        READ: f"Get {name}",
        UPDATE: f"Update {name}",
        DELETE: f"Delete {name}",
        LIST: f"List {name} objects",
    }[operation]


async def _run_create(endpoint: Endpoint, ctx: OperationContext, bound: Tuple[str, ...]) -> Any:
    hooks = endpoint.hooks
    values = ctx.data.body.model_dump(mode="json")
    for name in bound:
        values[name] = to_jsonable_python(ctx.data.params[name])
    values = await _call(hooks.before, values)
    row = await _call(hooks.mutate, ctx, {}, values)
    row = await _call(hooks.after, row)
    return endpoint._envelope(row)


async def _run_read(endpoint: Endpoint, ctx: OperationContext, bound: Tuple[str, ...]) -> Any:
    hooks = endpoint.hooks
    keys = await _call(hooks.before, endpoint._key_values(ctx.data))
    row = await _call(hooks.fetch_one, ctx, keys)
    if row is None:
        raise NotFound()
    row = await _call(hooks.after, row)
    return endpoint._envelope(row)


async def _run_update(endpoint: Endpoint, ctx: OperationContext, bound: Tuple[str, ...]) -> Any:
    hooks = endpoint.hooks
    keys = endpoint._key_values(ctx.data)
    existing = await _call(hooks.fetch_one, ctx, keys)
    if existing is None:
        raise NotFound()

    changes = await _call(hooks.before, ctx.data.body.model_dump(mode="json", exclude_unset=True))
    if changes:
        row = await _call(hooks.mutate, ctx, keys, changes)
        if row is None:
            raise NotFound()
    else:
        row = existing
    row = await _call(hooks.after, row)
    return endpoint._envelope(row)


async def _run_delete(endpoint: Endpoint, ctx: OperationContext, bound: Tuple[str, ...]) -> Any:
    hooks = endpoint.hooks
    keys = await _call(hooks.before, endpoint._key_values(ctx.data))
    existing = await _call(hooks.fetch_one, ctx, keys)
    if existing is None:
        raise NotFound()
    row = await _call(hooks.mutate, ctx, keys, existing)
    if row is None:
        raise NotFound()
    row = await _call(hooks.after, row)
    return endpoint._envelope(row)


async def _run_list(endpoint: Endpoint, ctx: OperationContext, bound: Tuple[str, ...]) -> Any:
    hooks = endpoint.hooks
    meta = endpoint.meta
    query = ctx.data.query
    filters = {
        name: to_jsonable_python(query[name])
        for name in meta.filter_fields
        if name not in bound and query.get(name) is not None
    }
    spec = QuerySpec.build(
        meta,
        filters=filters,
        bound={name: to_jsonable_python(ctx.data.params[name]) for name in bound},
        search=query.get("search"),
        order_by=query.get("order_by"),
        order_by_direction=query.get("order_by_direction") or "asc",
        page=query.get("page") or 1,
        per_page=query.get("per_page"),
    )
    spec = await _call(hooks.before, spec)
    rows, total = await _call(hooks.list, ctx, spec)
    rows = await _call(hooks.after, rows)
    result = [meta.model.serialize(row) for row in rows]
    return {
        "success": True,
        "result": result,
        "result_info": {
            "page": spec.page,
            "per_page": spec.per_page,
            "count": len(result),
            "total_count": total,
        },
    }


_RUNNERS = {
    CREATE: _run_create,
    READ: _run_read,
    UPDATE: _run_update,
    DELETE: _run_delete,
    LIST: _run_list,
}


def _endpoint(
    operation: str,
    method: HTTPMethod,
    meta: EndpointMeta,
    storage: Storage,
    hooks: Optional[EndpointHooks],
    logger: Optional[EndpointLogger],
    summary: Optional[str],
    description: Optional[str],
    tags: Optional[Sequence[str]],
    operation_id: Optional[str],
) -> Endpoint:
    defaults = EndpointHooks(
        before=_passthrough,
        fetch_one=fetch_row,
        mutate=DEFAULT_MUTATIONS.get(operation),
        list=list_rows,
        after=_passthrough,
    )
    effective = defaults.override(hooks)
    if meta.model.table_name is None:
        uses_storage_defaults = (
            (operation != CREATE and operation != LIST and effective.fetch_one is fetch_row)
            or (operation in DEFAULT_MUTATIONS and effective.mutate is DEFAULT_MUTATIONS[operation])
            or (operation == LIST and effective.list is list_rows)
        )
        if uses_storage_defaults:
            raise ConfigurationError(
                f"Model {meta.model.name} has no table_name; supply one or override the storage hooks"
            )
    return Endpoint(
        operation=operation,
        method=method,
        meta=meta,
        storage=storage,
        hooks=effective,
        logger=logger,
        summary=summary,
        description=description,
        tags=tuple(tags or ()),
        operation_id=operation_id,
        constraints=ConstraintMapper(meta.constraint_messages) if operation in (CREATE, UPDATE) else None,
    )


def create_endpoint(
    meta: EndpointMeta,
    storage: Storage,
    *,
    hooks: Optional[EndpointHooks] = None,
    logger: Optional[EndpointLogger] = None,
    summary: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    operation_id: Optional[str] = None,
) -> Endpoint:
    """POST endpoint inserting one row and returning it."""
    return _endpoint(CREATE, HTTPMethod.POST, meta, storage, hooks, logger, summary, description, tags, operation_id)


def read_endpoint(
    meta: EndpointMeta,
    storage: Storage,
    *,
    hooks: Optional[EndpointHooks] = None,
    logger: Optional[EndpointLogger] = None,
    summary: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    operation_id: Optional[str] = None,
) -> Endpoint:
    """GET endpoint returning the row identified by the path parameters."""
    return _endpoint(READ, HTTPMethod.GET, meta, storage, hooks, logger, summary, description, tags, operation_id)


def update_endpoint(
    meta: EndpointMeta,
    storage: Storage,
    *,
    hooks: Optional[EndpointHooks] = None,
    logger: Optional[EndpointLogger] = None,
    summary: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    operation_id: Optional[str] = None,
) -> Endpoint:
    """PUT endpoint applying a partial update to an existing row."""
    return _endpoint(UPDATE, HTTPMethod.PUT, meta, storage, hooks, logger, summary, description, tags, operation_id)


def delete_endpoint(
    meta: EndpointMeta,
    storage: Storage,
    *,
    hooks: Optional[EndpointHooks] = None,
    logger: Optional[EndpointLogger] = None,
    summary: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    operation_id: Optional[str] = None,
) -> Endpoint:
    """DELETE endpoint removing an existing row and returning it."""
    return _endpoint(DELETE, HTTPMethod.DELETE, meta, storage, hooks, logger, summary, description, tags, operation_id)


def list_endpoint(
    meta: EndpointMeta,
    storage: Storage,
    *,
    hooks: Optional[EndpointHooks] = None,
    logger: Optional[EndpointLogger] = None,
    summary: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    operation_id: Optional[str] = None,
) -> Endpoint:
    """GET endpoint with filtering, search, ordering and pagination."""
    return _endpoint(LIST, HTTPMethod.GET, meta, storage, hooks, logger, summary, description, tags, operation_id)
