"""
Auto-generated CRUD endpoints over a SQL row store.
"""

from .constraints import ConstraintMapper
from .endpoints import (
    Endpoint,
    EndpointHooks,
    OperationContext,
    create_endpoint,
    delete_endpoint,
    list_endpoint,
    read_endpoint,
    update_endpoint,
)
from .meta import EndpointMeta, ModelDescription
from .query import Query, QueryBuilder, QuerySpec, SelectQueries
from .schemas import ResultInfo
from .storage import ConstraintViolation, SQLiteStorage, Storage, StorageBackendError

__all__ = [
    "ConstraintMapper",
    "ConstraintViolation",
    "Endpoint",
    "EndpointHooks",
    "EndpointMeta",
    "ModelDescription",
    "OperationContext",
    "Query",
    "QueryBuilder",
    "QuerySpec",
    "ResultInfo",
    "SQLiteStorage",
    "SelectQueries",
    "Storage",
    "StorageBackendError",
    "create_endpoint",
    "delete_endpoint",
    "list_endpoint",
    "read_endpoint",
    "update_endpoint",
]
