"""
Request validation and OpenAPI generation for HTTP route handlers.

Routes declare their parameters, body and responses; requests are validated
against those declarations before a handler runs, and the same declarations
produce the application's OpenAPI document. The ``openroute.crud`` package
derives complete Create/Read/Update/Delete/List endpoints from a pydantic
model.
"""

from .application import Application
from .contract import ResponseSpec, RouteContract, ValidatedRequest, error_response
from .error_models import ErrorDetail, ErrorResponse
from .exceptions import (
    ApiError,
    ConfigurationError,
    ConflictError,
    FieldIssue,
    MethodNotAllowed,
    NotFound,
    SchemaMismatchError,
    StorageError,
    ValidationError,
)
from .loggers import EndpointLogger, StdlibLogger
from .models import HTTPMethod, Request, Response
from .parameters import Parameter, ParameterLocation, cookie_param, header_param, path_param, query_param
from .router import RouteRegistry, Router

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "ApiError",
    "Application",
    "ConfigurationError",
    "ConflictError",
    "EndpointLogger",
    "ErrorDetail",
    "ErrorResponse",
    "FieldIssue",
    "HTTPMethod",
    "MethodNotAllowed",
    "NotFound",
    "Parameter",
    "ParameterLocation",
    "Request",
    "Response",
    "ResponseSpec",
    "RouteContract",
    "RouteRegistry",
    "Router",
    "SchemaMismatchError",
    "StdlibLogger",
    "StorageError",
    "ValidatedRequest",
    "ValidationError",
    "cookie_param",
    "error_response",
    "header_param",
    "path_param",
    "query_param",
]
