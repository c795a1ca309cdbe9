"""
Model descriptions and per-endpoint metadata for auto-generated CRUD routes.
"""

import json
import re
import types
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Annotated, Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError, SchemaMismatchError, StorageError, ValidationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

UNION_ORIGINS = (Union, getattr(types, "UnionType", Union))

_CONTAINERS = (list, dict, tuple, set, frozenset)


def _as_tuple(value: Optional[Sequence[str]]) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _is_structured(annotation: Any) -> bool:
    """Whether values of this type are stored as JSON text."""
    origin = get_origin(annotation)
    if origin is Annotated:
        return _is_structured(get_args(annotation)[0])
    if origin in UNION_ORIGINS:
        return all(_is_structured(arg) for arg in get_args(annotation) if arg is not type(None))
    if origin in _CONTAINERS or annotation in _CONTAINERS:
        return True
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


@lru_cache(maxsize=None)
def structured_fields(schema: Type[BaseModel]) -> Tuple[str, ...]:
    """Fields holding lists, mappings or nested models."""
    return tuple(name for name, info in schema.model_fields.items() if _is_structured(info.annotation))


@dataclass(frozen=True)
class ModelDescription:
    """A pydantic schema plus its primary key and storage table.

    Args:
        schema: The model's typed fields
        primary_keys: Ordered key field names
        table_name: Table the rows live in
        serializer: Maps a stored row to the value returned to clients
        serializer_schema: Model describing the serializer's output
    """

    schema: Type[BaseModel]
    primary_keys: Tuple[str, ...] = ("id",)
    table_name: Optional[str] = None
    serializer: Optional[Callable[[Dict[str, Any]], Any]] = None
    serializer_schema: Optional[Type[BaseModel]] = None

    def __post_init__(self):
        object.__setattr__(self, "primary_keys", _as_tuple(self.primary_keys))
        if not (isinstance(self.schema, type) and issubclass(self.schema, BaseModel)):
            raise ConfigurationError(f"Model schema must be a pydantic BaseModel subclass, got {self.schema!r}")
        if not self.primary_keys:
            raise SchemaMismatchError(f"Model {self.name} declares no primary keys")
        for key in self.primary_keys:
            if key not in self.schema.model_fields:
                raise SchemaMismatchError(f"Primary key '{key}' is not a field of {self.name}", field=key)
        if self.table_name is not None and not IDENTIFIER_PATTERN.match(self.table_name):
            raise SchemaMismatchError(f"Table name {self.table_name!r} is not a valid identifier")

    @property
    def name(self) -> str:
        return self.schema.__name__

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(self.schema.model_fields)

    @property
    def output_schema(self) -> Type[BaseModel]:
        return self.serializer_schema or self.schema

    def decode(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Parse the JSON text stored for structured fields."""
        decoded = dict(row)
        for name in structured_fields(self.schema):
            value = decoded.get(name)
            if isinstance(value, (str, bytes)):
                try:
                    decoded[name] = json.loads(value)
                except ValueError as e:
                    raise StorageError(f"Stored {self.name}.{name} is not valid JSON") from e
        return decoded

    def serialize(self, row: Mapping[str, Any]) -> Any:
        """Turn a stored row into the value placed in ``result``."""
        row = self.decode(row)
        if self.serializer is not None:
            return self.serializer(row)
        try:
            return self.schema.model_validate(row).model_dump(mode="json")
        except PydanticValidationError as e:
            raise StorageError(f"Stored {self.name} row does not match its model") from e


@dataclass(frozen=True)
class EndpointMeta:
    """Declarative configuration of one CRUD endpoint.

    Every field name is checked against the model when the metadata is
    built, so a typo fails at import time rather than on a request.
    """

    model: ModelDescription
    fields: Optional[Tuple[str, ...]] = None
    filter_fields: Tuple[str, ...] = ()
    search_fields: Tuple[str, ...] = ()
    order_by_fields: Tuple[str, ...] = ()
    default_order_by: Optional[str] = None
    path_parameters: Optional[Tuple[str, ...]] = None
    constraint_messages: Mapping[str, ValidationError] = field(default_factory=dict)
    per_page_default: int = 20
    per_page_max: int = 100
    include_primary_keys_in_create: bool = False

    def __post_init__(self):
        for name in ("filter_fields", "search_fields", "order_by_fields"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)) or ())
        for name in ("fields", "path_parameters"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))
        object.__setattr__(self, "constraint_messages", MappingProxyType(dict(self.constraint_messages)))

        known = set(self.model.field_names)
        for name in ("fields", "filter_fields", "search_fields", "order_by_fields", "path_parameters"):
            for field_name in getattr(self, name) or ():
                if field_name not in known:
                    raise SchemaMismatchError(
                        f"{name} references '{field_name}', which is not a field of {self.model.name}",
                        field=field_name,
                    )
        if self.default_order_by is not None and self.default_order_by not in known:
            raise SchemaMismatchError(
                f"default_order_by '{self.default_order_by}' is not a field of {self.model.name}",
                field=self.default_order_by,
            )
        if self.path_parameters is not None and not self.path_parameters:
            raise SchemaMismatchError("path_parameters must name at least one field when given")

        for identifier, error in self.constraint_messages.items():
            if not isinstance(error, ValidationError):
                raise ConfigurationError(f"Constraint '{identifier}' must map to a ValidationError, got {error!r}")

        if self.per_page_default < 1 or self.per_page_max < 1:
            raise ConfigurationError("per_page_default and per_page_max must be positive")
        if self.per_page_default > self.per_page_max:
            raise ConfigurationError(
                f"per_page_default ({self.per_page_default}) exceeds per_page_max ({self.per_page_max})"
            )

    @property
    def orderable_fields(self) -> Tuple[str, ...]:
        """Fields accepted by ``order_by``; the default is always accepted."""
        if self.default_order_by and self.default_order_by not in self.order_by_fields:
            return (*self.order_by_fields, self.default_order_by)
        return self.order_by_fields

    def body_fields(self, exclude: Sequence[str] = ()) -> Tuple[str, ...]:
        """Fields exposed in create/update bodies, in model order."""
        selected = self.fields if self.fields is not None else self.model.field_names
        skipped = set(exclude)
        return tuple(name for name in self.model.field_names if name in selected and name not in skipped)
