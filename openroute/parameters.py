"""
Parameter definitions for route contracts.

A parameter is a name, a location and a type annotation that pydantic can
validate. Constraints ride along on the annotation, e.g.
``Annotated[int, Field(ge=1)]``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union, get_args, get_origin

from pydantic import TypeAdapter

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset)


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


def _strip_annotation(annotation: Any) -> Any:
    """Peel Annotated and Optional wrappers off an annotation."""
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
        elif origin is Union:
            args = [arg for arg in get_args(annotation) if arg is not type(None)]
            if len(args) != 1:
                return annotation
            annotation = args[0]
        else:
            return annotation


def is_sequence_annotation(annotation: Any) -> bool:
    stripped = _strip_annotation(annotation)
    return stripped in _SEQUENCE_ORIGINS or get_origin(stripped) in _SEQUENCE_ORIGINS


@dataclass(frozen=True)
class Parameter:
    """A single non-body input of a route."""

    name: str
    location: ParameterLocation
    annotation: Any = str
    required: bool = True
    default: Any = None
    description: Optional[str] = None
    _adapter: TypeAdapter = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.location, ParameterLocation):
            object.__setattr__(self, "location", ParameterLocation(self.location))
        if self.location is ParameterLocation.PATH and not self.required:
            raise ValueError(f"Path parameter '{self.name}' must be required")
        object.__setattr__(self, "_adapter", TypeAdapter(self.annotation))

    @property
    def is_sequence(self) -> bool:
        return is_sequence_annotation(self.annotation)

    def validate(self, raw: Any) -> Any:
        """Coerce a raw string (or list of strings) into the declared type.

        Raises:
            pydantic.ValidationError: if the value does not satisfy the annotation
        """
        if self.is_sequence:
            if not isinstance(raw, (list, tuple)):
                raw = [raw]
        elif isinstance(raw, (list, tuple)):
            # Last value wins for scalar parameters repeated in the query string
            raw = raw[-1]
        return self._adapter.validate_python(raw)

    def json_schema(self) -> Dict[str, Any]:
        return self._adapter.json_schema()

    def compatible_with(self, other: "Parameter") -> bool:
        return self.json_schema() == other.json_schema()

    def describe(self, components: Any) -> Dict[str, Any]:
        """OpenAPI parameter object."""
        param: Dict[str, Any] = {
            "name": self.name,
            "in": self.location.value,
            "required": self.required,
            "schema": components.schema_for(self.annotation),
        }
        if self.description:
            param["description"] = self.description
        if not self.required and self.default is not None:
            param["schema"] = {**param["schema"], "default": self.default}
        return param


def path_param(name: str, annotation: Any = str, description: Optional[str] = None) -> Parameter:
    return Parameter(name, ParameterLocation.PATH, annotation, True, None, description)


def query_param(
    name: str,
    annotation: Any = str,
    required: bool = False,
    default: Any = None,
    description: Optional[str] = None,
) -> Parameter:
    return Parameter(name, ParameterLocation.QUERY, annotation, required, default, description)


def header_param(
    name: str,
    annotation: Any = str,
    required: bool = False,
    default: Any = None,
    description: Optional[str] = None,
) -> Parameter:
    return Parameter(name, ParameterLocation.HEADER, annotation, required, default, description)


def cookie_param(
    name: str,
    annotation: Any = str,
    required: bool = False,
    default: Any = None,
    description: Optional[str] = None,
) -> Parameter:
    return Parameter(name, ParameterLocation.COOKIE, annotation, required, default, description)


def split_by_location(parameters: List[Parameter]) -> Dict[ParameterLocation, List[Parameter]]:
    grouped: Dict[ParameterLocation, List[Parameter]] = {location: [] for location in ParameterLocation}
    for parameter in parameters:
        grouped[parameter.location].append(parameter)
    return grouped
