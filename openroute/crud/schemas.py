"""
Models derived from a ModelDescription: request bodies and response envelopes.
"""

import copy
from functools import lru_cache
from typing import Annotated, Any, Dict, List, Tuple, Type, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field, create_model
from pydantic.fields import FieldInfo

from .meta import UNION_ORIGINS, ModelDescription


class ResultInfo(BaseModel):
    """Pagination details of a list response."""

    page: int = Field(..., description="Requested page, starting at 1")
    per_page: int = Field(..., description="Requested page size")
    count: int = Field(..., description="Number of rows in this page")
    total_count: int = Field(..., description="Number of rows matching the filters")


def field_annotation(model: ModelDescription, name: str) -> Any:
    """Annotation of a model field without Optional, keeping its constraints."""
    info = model.schema.model_fields[name]
    annotation = info.annotation
    if get_origin(annotation) in UNION_ORIGINS:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            annotation = args[0]
    if info.metadata:
        annotation = Annotated[(annotation, *info.metadata)]
    return annotation


def _config_of(schema: Type[BaseModel]) -> ConfigDict:
    config = dict(schema.model_config)
    config.pop("title", None)
    return ConfigDict(**config)


def _drop_default(schema: Dict[str, Any]) -> None:
    schema.pop("default", None)


def _omittable(info: FieldInfo) -> Tuple[Any, FieldInfo]:
    """The field with its own type, but allowed to be left out.

    The None default is never validated; unset fields are dropped with
    ``exclude_unset`` and an explicit null is checked against the type.
    """
    annotation = info.annotation
    if info.metadata:
        annotation = Annotated[(annotation, *info.metadata)]
    return annotation, Field(
        None,
        validate_default=False,
        json_schema_extra=_drop_default,
        alias=info.alias,
        title=info.title,
        description=info.description,
        examples=info.examples,
    )


@lru_cache(maxsize=None)
def create_body(model: ModelDescription, fields: Tuple[str, ...]) -> Type[BaseModel]:
    """Body accepted by Create: the listed fields with their original requirements."""
    definitions: Dict[str, Any] = {}
    for name in fields:
        info = model.schema.model_fields[name]
        definitions[name] = (info.annotation, copy.copy(info))
    return create_model(f"{model.name}Create", __config__=_config_of(model.schema), **definitions)


@lru_cache(maxsize=None)
def update_body(model: ModelDescription, fields: Tuple[str, ...]) -> Type[BaseModel]:
    """Body accepted by Update: the listed fields, each one omittable."""
    definitions = {name: _omittable(model.schema.model_fields[name]) for name in fields}
    return create_model(f"{model.name}Update", __config__=_config_of(model.schema), **definitions)


@lru_cache(maxsize=None)
def result_envelope(model: ModelDescription) -> Type[BaseModel]:
    return create_model(
        f"{model.name}Result",
        success=(bool, Field(True, description="Always true for successful responses")),
        result=(model.output_schema, ...),
    )


@lru_cache(maxsize=None)
def list_envelope(model: ModelDescription) -> Type[BaseModel]:
    return create_model(
        f"{model.name}List",
        success=(bool, Field(True, description="Always true for successful responses")),
        result=(List[model.output_schema], ...),  # type: ignore[name-defined]
        result_info=(ResultInfo, ...),
    )
