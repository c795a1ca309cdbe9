"""
Route contracts: the validated-input and response description of one route.
"""

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .error_models import ErrorResponse
from .exceptions import FieldIssue, SchemaMismatchError, ValidationError, issues_from_pydantic
from .models import Request
from .parameters import Parameter, ParameterLocation


@dataclass(frozen=True)
class ResponseSpec:
    """One documented response of a route."""

    description: str
    model: Any = None
    content_type: str = "application/json"


def error_response(description: str) -> ResponseSpec:
    return ResponseSpec(description, ErrorResponse)


@dataclass(frozen=True)
class ValidatedRequest:
    """Decoded, type-checked request data handed to a handler."""

    SECTIONS: ClassVar[Tuple[str, ...]] = ("params", "query", "headers", "cookies", "body")

    params: Mapping[str, Any]
    query: Mapping[str, Any]
    headers: Mapping[str, Any]
    cookies: Mapping[str, Any]
    body: Any = None
    request: Optional[Request] = field(default=None, compare=False, repr=False)

    def __getitem__(self, key: str) -> Any:
        if key not in self.SECTIONS:
            raise KeyError(key)
        return getattr(self, key)


def _parameter_key(parameter: Parameter) -> Tuple[str, ParameterLocation]:
    name = parameter.name.lower() if parameter.location is ParameterLocation.HEADER else parameter.name
    return name, parameter.location


@dataclass(frozen=True)
class RouteContract:
    """Immutable description of a route's inputs and outputs."""

    parameters: Tuple[Parameter, ...] = ()
    body: Any = None
    body_required: bool = True
    body_content_type: str = "application/json"
    responses: Mapping[int, ResponseSpec] = field(default_factory=lambda: MappingProxyType({}))
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    operation_id: Optional[str] = None
    deprecated: bool = False
    allow_extra_query: bool = True
    _body_adapter: Optional[TypeAdapter] = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self):
        if self.body is not None:
            object.__setattr__(self, "_body_adapter", TypeAdapter(self.body))

    @classmethod
    def build(
        cls,
        parameters: Iterable[Parameter] = (),
        body: Any = None,
        responses: Optional[Mapping[int, ResponseSpec]] = None,
        **info: Any,
    ) -> "RouteContract":
        """Build a contract, collapsing identical duplicate parameters.

        Raises:
            SchemaMismatchError: if two parameters share a name and location
                but disagree on their schema
        """
        seen: Dict[Tuple[str, ParameterLocation], Parameter] = {}
        ordered: List[Parameter] = []
        for parameter in parameters:
            key = _parameter_key(parameter)
            existing = seen.get(key)
            if existing is None:
                seen[key] = parameter
                ordered.append(parameter)
            elif not existing.compatible_with(parameter):
                raise SchemaMismatchError(
                    f"Parameter '{parameter.name}' in {parameter.location.value} is declared "
                    f"with incompatible types",
                    field=parameter.name,
                )
        if "tags" in info and info["tags"] is not None:
            info["tags"] = tuple(info["tags"])
        elif "tags" in info:
            del info["tags"]
        return cls(
            parameters=tuple(ordered),
            body=body,
            responses=MappingProxyType(dict(responses or {})),
            **info,
        )

    @property
    def path_parameters(self) -> List[Parameter]:
        return [p for p in self.parameters if p.location is ParameterLocation.PATH]

    def validate(self, request: Request) -> ValidatedRequest:
        """Validate a raw request.

        Every field is checked independently; all failures are reported
        together.

        Raises:
            ValidationError: listing each failing field with its location-qualified path
        """
        issues: List[FieldIssue] = []
        sources: Dict[ParameterLocation, Mapping[str, Any]] = {
            ParameterLocation.PATH: request.path_params or {},
            ParameterLocation.QUERY: request.query_params or {},
            ParameterLocation.HEADER: {k.lower(): v for k, v in (request.headers or {}).items()},
            ParameterLocation.COOKIE: request.get_cookies(),
        }
        values: Dict[ParameterLocation, Dict[str, Any]] = {location: {} for location in ParameterLocation}

        for parameter in self.parameters:
            lookup = parameter.name.lower() if parameter.location is ParameterLocation.HEADER else parameter.name
            source = sources[parameter.location]
            qualified = [parameter.location.value, parameter.name]
            if lookup not in source:
                if parameter.required:
                    issues.append(FieldIssue(qualified, "Field required", "missing"))
                else:
                    values[parameter.location][parameter.name] = parameter.default
                continue
            try:
                values[parameter.location][parameter.name] = parameter.validate(source[lookup])
            except PydanticValidationError as e:
                issues.extend(issues_from_pydantic(e, qualified))

        if not self.allow_extra_query:
            declared = {p.name for p in self.parameters if p.location is ParameterLocation.QUERY}
            for key in sources[ParameterLocation.QUERY]:
                if key not in declared:
                    issues.append(FieldIssue(["query", key], "Unknown query parameter", "extra_forbidden"))

        body = None
        if self._body_adapter is not None:
            body, body_issues = self._validate_body(self._body_adapter, request)
            issues.extend(body_issues)

        if issues:
            raise ValidationError(issues=issues)

        return ValidatedRequest(
            params=MappingProxyType(values[ParameterLocation.PATH]),
            query=MappingProxyType(values[ParameterLocation.QUERY]),
            headers=MappingProxyType(values[ParameterLocation.HEADER]),
            cookies=MappingProxyType(values[ParameterLocation.COOKIE]),
            body=body,
            request=request,
        )

    def _validate_body(self, adapter: TypeAdapter, request: Request) -> Tuple[Any, List[FieldIssue]]:
        try:
            text = request.body_text()
        except UnicodeDecodeError:
            return None, [FieldIssue(["body"], "Body is not valid UTF-8", "unicode_decode")]
        if text is None or not text.strip():
            if self.body_required:
                return None, [FieldIssue(["body"], "Field required", "missing")]
            return None, []
        try:
            data = json.loads(text)
        except ValueError:
            return None, [FieldIssue(["body"], "Invalid JSON", "json_invalid")]
        try:
            return adapter.validate_python(data), []
        except PydanticValidationError as e:
            return None, issues_from_pydantic(e, ["body"])

    def describe(self, components: Any) -> Dict[str, Any]:
        """Return the OpenAPI operation object for this contract."""
        operation: Dict[str, Any] = {}
        if self.summary:
            operation["summary"] = self.summary
        if self.description:
            operation["description"] = self.description
        if self.operation_id:
            operation["operationId"] = self.operation_id
        if self.tags:
            operation["tags"] = list(self.tags)
        if self.deprecated:
            operation["deprecated"] = True

        parameters = [parameter.describe(components) for parameter in self.parameters]
        if parameters:
            operation["parameters"] = parameters

        if self.body is not None:
            operation["requestBody"] = {
                "required": self.body_required,
                "content": {self.body_content_type: {"schema": components.schema_for(self.body)}},
            }

        responses: Dict[str, Any] = {}
        for status in sorted(self.responses):
            responses[str(status)] = _describe_response(self.responses[status], components)
        if (parameters or self.body is not None) and "400" not in responses:
            responses["400"] = _describe_response(error_response("Input Validation Error"), components)
        if not responses:
            responses["200"] = {"description": "Successful response"}
        operation["responses"] = responses
        return operation


def _describe_response(spec: ResponseSpec, components: Any) -> Dict[str, Any]:
    described: Dict[str, Any] = {"description": spec.description}
    if spec.model is not None:
        described["content"] = {spec.content_type: {"schema": components.schema_for(spec.model)}}
    return described


def merge_parameters(path_parameters: Sequence[Parameter], others: Sequence[Parameter]) -> List[Parameter]:
    """Resolved path parameters first, then the route's non-path parameters."""
    return [*path_parameters, *(p for p in others if p.location is not ParameterLocation.PATH)]
