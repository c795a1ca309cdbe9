"""
Main application class.

An Application owns one RouteRegistry, dispatches requests to validated
handlers and serves the OpenAPI document generated from its routes.
"""

import json
import logging
import os
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import anyio
from pydantic_core import to_jsonable_python

from .exceptions import ApiError, MethodNotAllowed, NotFound
from .loggers import EndpointLogger
from .models import HTTPMethod, Request, Response
from .openapi import SUPPORTED_VERSIONS, assemble, to_json
from .parameters import Parameter
from .router import (
    RegisteredRoute,
    RouteDecorators,
    RoutePath,
    Router,
    RouteRegistry,
    coerce_method,
    normalize_path,
    path_segment,
)

# Set up logger for this module
logger = logging.getLogger(__name__)


class Application(RouteDecorators):
    """Validated routing plus OpenAPI generation.

    Example:
        app = Application(title="Users API")

        @app.get("/users/{id}", parameters=[path_param("id", int)])
        def get_user(data):
            return {"id": data.params["id"]}
    """

    def __init__(
        self,
        title: str = "API",
        version: str = "1.0.0",
        description: Optional[str] = None,
        openapi_version: str = "3.1.0",
        openapi_url: Optional[str] = "/openapi.json",
        servers: Optional[List[str]] = None,
        logger: Optional[EndpointLogger] = None,
    ):
        if openapi_version not in SUPPORTED_VERSIONS:
            raise ValueError(f"Unsupported OpenAPI version {openapi_version!r}; expected one of {SUPPORTED_VERSIONS}")
        self.title = title
        self.version = version
        self.description = description
        self.openapi_version = openapi_version
        self.openapi_url = normalize_path("/", openapi_url) if openapi_url else None
        self.servers = list(servers or [])
        self.logger = logger
        self.registry = RouteRegistry()
        self._document_cache: Optional[Tuple[int, Dict[str, Any]]] = None

    def add_route(self, method: Union[HTTPMethod, str], path: str, target: Any) -> RegisteredRoute:
        """Register a route target under ``path``.

        Raises:
            ConfigurationError: if the route is already registered
            SchemaMismatchError: if the target's schemas do not fit the path
        """
        full = normalize_path("/", path)
        return self.registry.register(coerce_method(method), RoutePath(full, path_segment(full)), target)

    def mount(self, prefix: str, router: Router, path_parameters: Sequence[Parameter] = ()) -> None:
        """Register every route of ``router`` (and its nested routers) under ``prefix``.

        Path parameters are resolved across the whole mount chain; declarations
        closer to the route override those at the prefix.
        """
        mounts = ((path_segment(prefix), tuple(path_parameters)),)
        for method, route_path, target in router.iter_routes(mounts):
            self.registry.register(method, route_path, target)

    async def handle(self, request: Request) -> Response:
        """Dispatch one request and always return a response."""
        path = normalize_path("/", request.path)
        logger.debug(f"{request.method.value} {path}")
        if self.logger is not None:
            self.logger.debug("Request received", {"method": request.method.value, "path": path})

        try:
            if self.openapi_url and path == self.openapi_url and request.method is HTTPMethod.GET:
                return Response(200, self.openapi_json())

            matched = self.registry.match(request.method, path)
            if matched is None:
                if self.registry.has_path(path):
                    raise MethodNotAllowed()
                raise NotFound()
            route, path_params = matched

            request = replace(request, path_params=path_params)
            if route.prepare is not None:
                request = await route.prepare(request)
            data = route.contract.validate(request)
            result = await route.handler(data)
            return self._render(result)
        except ApiError as e:
            return self._error_response(request, e)
        except Exception as e:
            logger.exception(f"Unhandled exception processing {request.method.value} {path}: {e}")
            if self.logger is not None:
                self.logger.error("Unhandled exception", {"method": request.method.value, "path": path})
            return self._error_response(request, ApiError())

    def execute(self, request: Request) -> Response:
        """Synchronous wrapper around ``handle`` using ``anyio.run``."""
        return anyio.run(self.handle, request)

    def _render(self, result: Any) -> Response:
        if isinstance(result, Response):
            return result
        if result is None:
            return Response(204, None, content_type=None)
        return Response(200, json.dumps(to_jsonable_python(result)))

    def _error_response(self, request: Request, error: ApiError) -> Response:
        if error.status >= 500:
            logger.error(f"{request.method.value} {request.path} failed with {error.code}: {error.message}")
        else:
            logger.warning(f"{request.method.value} {request.path} returned {error.status}: {error.message}")
        return Response(error.status, error.to_response().model_dump_json())

    def openapi(self) -> Dict[str, Any]:
        """Return the OpenAPI document, rebuilt only when routes change."""
        cached = self._document_cache
        if cached is None or cached[0] != self.registry.version:
            document = assemble(
                self.registry,
                title=self.title,
                version=self.version,
                description=self.description,
                openapi_version=self.openapi_version,
                servers=self.servers,
            )
            cached = (self.registry.version, document)
            self._document_cache = cached
        return cached[1]

    def openapi_json(self) -> str:
        return to_json(self.openapi())

    def save_openapi_json(self, filename: str = "openapi.json", docs_dir: str = "docs") -> str:
        """Generate and save the OpenAPI document to a file in the docs directory."""
        if not os.path.exists(docs_dir):
            os.makedirs(docs_dir)

        file_path = os.path.join(docs_dir, filename)
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(self.openapi_json())

        return file_path
