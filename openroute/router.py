"""Routers, the route trie and the route registry."""

import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import unquote

from .contract import ResponseSpec, RouteContract, ValidatedRequest, merge_parameters
from .exceptions import ConfigurationError
from .merge import Level, path_parameter_names, resolve_path_parameters
from .models import HTTPMethod, Request
from .parameters import Parameter, ParameterLocation

logger = logging.getLogger(__name__)

Handler = Callable[[ValidatedRequest], Awaitable[Any]]
Prepare = Callable[[Request], Awaitable[Request]]

_COLON_PARAM = re.compile(r"(^|/):(\w+)")


class RouteNode:
    """A node in the route trie structure.

    Each node represents a path segment and can have:
    - static_children: Dict mapping exact segment strings to child nodes
    - param_children: Dict mapping parameter names to child nodes ({id})
    - handlers: Dict mapping HTTP methods to routes at this path
    """

    def __init__(self):
        self.static_children: Dict[str, "RouteNode"] = {}
        self.param_children: Dict[str, "RouteNode"] = {}
        self.handlers: Dict[HTTPMethod, "RegisteredRoute"] = {}

    def add_route(self, segments: List[str], method: HTTPMethod, route: "RegisteredRoute") -> None:
        if not segments:
            self.handlers[method] = route
            return

        segment = segments[0]
        remaining = segments[1:]

        if segment.startswith("{") and segment.endswith("}"):
            child = self.param_children.setdefault(segment[1:-1], RouteNode())
        else:
            child = self.static_children.setdefault(segment, RouteNode())
        child.add_route(remaining, method, route)

    def match(self, segments: List[str], method: HTTPMethod) -> Optional[Tuple["RegisteredRoute", Dict[str, str]]]:
        if not segments:
            route = self.handlers.get(method)
            return (route, {}) if route else None

        segment = segments[0]
        remaining = segments[1:]

        # Static segments are more specific than parameters
        if segment in self.static_children:
            result = self.static_children[segment].match(remaining, method)
            if result:
                return result

        for param_name in sorted(self.param_children):
            result = self.param_children[param_name].match(remaining, method)
            if result:
                route, params = result
                params[param_name] = unquote(segment)
                return route, params

        return None

    def has_path(self, segments: List[str]) -> bool:
        if not segments:
            return bool(self.handlers)
        segment = segments[0]
        remaining = segments[1:]
        if segment in self.static_children and self.static_children[segment].has_path(remaining):
            return True
        return any(child.has_path(remaining) for child in self.param_children.values())


def normalize_path(prefix: str, path: str) -> str:
    """Normalize a path by combining prefix and path, handling double slashes.

    ``:name`` segments are rewritten to ``{name}``.

    Examples:
        normalize_path("/", "/users") -> "/users"
        normalize_path("/api", "users") -> "/api/users"
        normalize_path("/api/", "/users") -> "/api/users"
        normalize_path("/users", "/:id") -> "/users/{id}"
    """
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if prefix != "/" and prefix.endswith("/"):
        prefix = prefix.rstrip("/")
    if not path.startswith("/"):
        path = "/" + path

    combined = path if prefix == "/" else prefix + path
    if len(combined) > 1 and combined.endswith("/"):
        combined = combined.rstrip("/") or "/"
    return _COLON_PARAM.sub(r"\1{\2}", combined)


def path_segment(path: str) -> str:
    """Normalized path as a level segment: the root contributes nothing."""
    normalized = normalize_path("/", path)
    return "" if normalized == "/" else normalized


@dataclass(frozen=True)
class RoutePath:
    """Where a route lives: its full path and the mount levels above it."""

    full: str
    segment: str
    mounts: Tuple[Level, ...] = ()

    def levels(self, own: Sequence[Parameter]) -> List[Level]:
        return [*self.mounts, (self.segment, tuple(own))]

    @property
    def parameter_names(self) -> List[str]:
        return path_parameter_names(self.full)


@dataclass(frozen=True)
class BoundRoute:
    contract: RouteContract
    handler: Handler
    prepare: Optional[Prepare] = None


@dataclass(frozen=True)
class RegisteredRoute:
    """A route in the registry; immutable once registered."""

    method: HTTPMethod
    path: str
    contract: RouteContract
    handler: Handler
    prepare: Optional[Prepare] = None


class HandlerRoute:
    """A hand-written handler plus the inputs and outputs it declares."""

    def __init__(
        self,
        func: Callable,
        parameters: Sequence[Parameter] = (),
        body: Any = None,
        responses: Optional[Mapping[int, ResponseSpec]] = None,
        **info: Any,
    ):
        self.func = func
        self.parameters = tuple(parameters)
        self.body = body
        self.responses = dict(responses or {})
        self.info = info
        if "summary" not in info:
            self.info["summary"] = func.__name__.replace("_", " ").title()
        if "description" not in info and func.__doc__:
            self.info["description"] = inspect.cleandoc(func.__doc__)

    def bind(self, route_path: RoutePath) -> BoundRoute:
        own = [p for p in self.parameters if p.location is ParameterLocation.PATH]
        resolved = resolve_path_parameters(route_path.levels(own))
        contract = RouteContract.build(
            merge_parameters(resolved, self.parameters),
            body=self.body,
            responses=self.responses,
            **self.info,
        )
        return BoundRoute(contract, self._invoke)

    async def _invoke(self, data: ValidatedRequest) -> Any:
        result = self.func(data)
        if inspect.isawaitable(result):
            result = await result
        return result


class RouteRegistry:
    """The set of routes an application serves.

    An explicit value rather than ambient state, so several independent
    registries can live in one process.
    """

    def __init__(self):
        self._routes: Dict[Tuple[str, HTTPMethod], RegisteredRoute] = {}
        self._tree = RouteNode()
        self.version = 0

    def register(self, method: HTTPMethod, route_path: RoutePath, target: Any) -> RegisteredRoute:
        """Bind a route target and add it to the registry.

        Raises:
            ConfigurationError: if the method and path are already registered
            SchemaMismatchError: if the target's schemas do not fit the path
        """
        key = (route_path.full, method)
        if key in self._routes:
            raise ConfigurationError(f"Route {method.value} {route_path.full} is already registered")

        bound = target.bind(route_path)
        route = RegisteredRoute(method, route_path.full, bound.contract, bound.handler, bound.prepare)
        self._routes[key] = route
        self._tree.add_route(_split(route_path.full), method, route)
        self.version += 1
        logger.debug("Registered %s %s", method.value, route_path.full)
        return route

    def match(self, method: HTTPMethod, path: str) -> Optional[Tuple[RegisteredRoute, Dict[str, str]]]:
        return self._tree.match(_split(path), method)

    def has_path(self, path: str) -> bool:
        return self._tree.has_path(_split(path))

    def get(self, method: HTTPMethod, path: str) -> Optional[RegisteredRoute]:
        return self._routes.get((normalize_path("/", path), method))

    def __iter__(self) -> Iterator[RegisteredRoute]:
        return iter(list(self._routes.values()))

    def __len__(self) -> int:
        return len(self._routes)


def _split(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


class RouteDecorators:
    """Route decorators shared by Router and Application."""

    def add_route(self, method: Union[HTTPMethod, str], path: str, target: Any) -> Any:
        raise NotImplementedError

    def route(
        self,
        method: Union[HTTPMethod, str],
        path: str,
        *,
        parameters: Sequence[Parameter] = (),
        body: Any = None,
        responses: Optional[Mapping[int, ResponseSpec]] = None,
        **info: Any,
    ):
        """Decorator registering a hand-written handler.

        The handler receives a single ValidatedRequest.
        """
        def decorator(func: Callable):
            self.add_route(method, path, HandlerRoute(func, parameters, body, responses, **info))
            return func

        return decorator

    def get(self, path: str, **kwargs: Any):
        return self.route(HTTPMethod.GET, path, **kwargs)

    def post(self, path: str, **kwargs: Any):
        return self.route(HTTPMethod.POST, path, **kwargs)

    def put(self, path: str, **kwargs: Any):
        return self.route(HTTPMethod.PUT, path, **kwargs)

    def patch(self, path: str, **kwargs: Any):
        return self.route(HTTPMethod.PATCH, path, **kwargs)

    def delete(self, path: str, **kwargs: Any):
        return self.route(HTTPMethod.DELETE, path, **kwargs)

    def add_endpoint(self, path: str, endpoint: Any, method: Optional[Union[HTTPMethod, str]] = None) -> Any:
        """Register an auto-generated CRUD endpoint under its default method."""
        return self.add_route(method or endpoint.method, path, endpoint)


def coerce_method(method: Union[HTTPMethod, str]) -> HTTPMethod:
    return method if isinstance(method, HTTPMethod) else HTTPMethod(method.upper())


class Router(RouteDecorators):
    """Groups routes so they can be mounted, possibly nested, under prefixes.

    Routes are bound when the router reaches an application through
    ``Application.mount``; routes added to a router after that are not seen.
    """

    def __init__(self):
        self._routes: List[Tuple[HTTPMethod, str, Any]] = []
        self._mounted_routers: List[Tuple[str, "Router", Tuple[Parameter, ...]]] = []

    def add_route(self, method: Union[HTTPMethod, str], path: str, target: Any) -> None:
        self._routes.append((coerce_method(method), normalize_path("/", path), target))

    def mount(self, prefix: str, router: "Router", path_parameters: Sequence[Parameter] = ()) -> None:
        """Mount another router under ``prefix``.

        Args:
            prefix: Path prefix, may contain parameters such as ``/users/{user_id}``
            router: The router to mount
            path_parameters: Declarations for the parameters in ``prefix``
        """
        self._mounted_routers.append((normalize_path("/", prefix), router, tuple(path_parameters)))

    def iter_routes(self, mounts: Tuple[Level, ...] = ()) -> Iterator[Tuple[HTTPMethod, RoutePath, Any]]:
        """Yield every route of this router and its mounted routers."""
        base = "".join(segment for segment, _ in mounts)
        for method, path, target in self._routes:
            full = normalize_path(base or "/", path)
            yield method, RoutePath(full, path_segment(path), mounts), target

        for prefix, router, declarations in self._mounted_routers:
            yield from router.iter_routes((*mounts, (path_segment(prefix), declarations)))
