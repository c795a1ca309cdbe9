"""
OpenAPI document assembly.

Walks a route registry and emits one OpenAPI document. Pydantic models are
hoisted into ``components.schemas`` and referenced by ``$ref`` so the
document stays bounded as the number of routes grows.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, TypeAdapter

from .models import HTTPMethod

if TYPE_CHECKING:
    from .router import RegisteredRoute

logger = logging.getLogger(__name__)

REF_PREFIX = "#/components/schemas/"
REF_TEMPLATE = REF_PREFIX + "{model}"

METHOD_ORDER = [
    HTTPMethod.GET,
    HTTPMethod.PUT,
    HTTPMethod.POST,
    HTTPMethod.DELETE,
    HTTPMethod.OPTIONS,
    HTTPMethod.HEAD,
    HTTPMethod.PATCH,
]

SUPPORTED_VERSIONS = ("3.0.3", "3.1.0")


def is_pydantic_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _convert_schema_to_openapi30(schema: Any) -> Any:
    """Convert a JSON Schema (pydantic output) to OpenAPI 3.0 dialect."""
    if isinstance(schema, list):
        return [_convert_schema_to_openapi30(item) for item in schema]
    if not isinstance(schema, dict):
        return schema
    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "anyOf" and isinstance(value, list):
            converted.update(_convert_anyof_to_nullable(value))
        elif key == "exclusiveMinimum" and isinstance(value, (int, float)) and not isinstance(value, bool):
            converted["minimum"] = value
            converted["exclusiveMinimum"] = True
        elif key == "exclusiveMaximum" and isinstance(value, (int, float)) and not isinstance(value, bool):
            converted["maximum"] = value
            converted["exclusiveMaximum"] = True
        elif key == "const":
            converted["enum"] = [value]
        elif key == "examples" and isinstance(value, list):
            if value:
                converted["example"] = value[0]
        elif key in ("properties", "$defs"):
            converted[key] = {name: _convert_schema_to_openapi30(sub) for name, sub in value.items()}
        else:
            converted[key] = _convert_schema_to_openapi30(value)
    return converted


def _convert_anyof_to_nullable(anyof_list: List[Any]) -> Dict[str, Any]:
    """Convert anyOf with null to a nullable field for OpenAPI 3.0."""
    others = [item for item in anyof_list if not (isinstance(item, dict) and item.get("type") == "null")]
    if len(others) != len(anyof_list):
        if len(others) == 1 and "$ref" in others[0]:
            # 3.0 ignores siblings of $ref
            return {"allOf": [others[0]], "nullable": True}
        if len(others) == 1:
            result = dict(_convert_schema_to_openapi30(others[0]))
            result["nullable"] = True
            return result
        return {"anyOf": _convert_schema_to_openapi30(others), "nullable": True}
    return {"anyOf": _convert_schema_to_openapi30(anyof_list)}


def _rewrite_refs(schema: Any, renames: Dict[str, str]) -> Any:
    if not renames:
        return schema
    if isinstance(schema, list):
        return [_rewrite_refs(item, renames) for item in schema]
    if not isinstance(schema, dict):
        return schema
    rewritten = {}
    for key, value in schema.items():
        if key == "$ref" and isinstance(value, str) and value.startswith(REF_PREFIX):
            name = value[len(REF_PREFIX):]
            rewritten[key] = REF_PREFIX + renames.get(name, name)
        else:
            rewritten[key] = _rewrite_refs(value, renames)
    return rewritten


class SchemaComponents:
    """Collects component schemas while operations are being described.

    Identical schemas registered under the same name are stored once; a
    different schema under an existing name gets a numbered suffix.
    """

    def __init__(self, openapi_version: str = "3.1.0"):
        self.openapi_version = openapi_version
        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._names: Dict[type, str] = {}

    @property
    def legacy(self) -> bool:
        return self.openapi_version.startswith("3.0")

    def _convert(self, schema: Dict[str, Any]) -> Dict[str, Any]:
        return _convert_schema_to_openapi30(schema) if self.legacy else schema

    def _store(self, name: str, schema: Dict[str, Any]) -> str:
        candidate = name
        suffix = 2
        while candidate in self._schemas:
            if self._schemas[candidate] == schema:
                return candidate
            candidate = f"{name}{suffix}"
            suffix += 1
        self._schemas[candidate] = schema
        return candidate

    def _absorb(self, schema: Dict[str, Any]) -> Dict[str, Any]:
        """Hoist ``$defs`` into components, returning the schema without them."""
        schema = dict(schema)
        definitions = schema.pop("$defs", {})
        renames: Dict[str, str] = {}
        stored: List[str] = []
        for name in sorted(definitions):
            stored_name = self._store(name, self._convert(definitions[name]))
            stored.append(stored_name)
            if stored_name != name:
                renames[name] = stored_name
        if renames:
            for stored_name in stored:
                self._schemas[stored_name] = _rewrite_refs(self._schemas[stored_name], renames)
        return _rewrite_refs(self._convert(schema), renames)

    def ref(self, model: type) -> Dict[str, str]:
        """Register a pydantic model and return a ``$ref`` to it."""
        name = self._names.get(model)
        if name is None:
            schema = self._absorb(model.model_json_schema(ref_template=REF_TEMPLATE))
            name = self._store(model.__name__, schema)
            self._names[model] = name
        return {"$ref": REF_TEMPLATE.format(model=name)}

    def schema_for(self, annotation: Any) -> Dict[str, Any]:
        """Schema for any annotation; models become references."""
        if is_pydantic_model(annotation):
            return self.ref(annotation)
        return self._absorb(TypeAdapter(annotation).json_schema(ref_template=REF_TEMPLATE))

    def schemas(self) -> Dict[str, Dict[str, Any]]:
        return {name: self._schemas[name] for name in sorted(self._schemas)}


def assemble(
    routes: Iterable["RegisteredRoute"],
    title: str = "API",
    version: str = "1.0.0",
    description: Optional[str] = None,
    openapi_version: str = "3.1.0",
    servers: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Build the OpenAPI document for a set of registered routes.

    Routes are visited in (path, method) order, so the output does not
    depend on registration order and repeated calls are identical.
    """
    if openapi_version not in SUPPORTED_VERSIONS:
        raise ValueError(f"Unsupported OpenAPI version {openapi_version!r}; expected one of {SUPPORTED_VERSIONS}")

    components = SchemaComponents(openapi_version)
    paths: Dict[str, Dict[str, Any]] = {}
    ordered = sorted(routes, key=lambda route: (route.path, METHOD_ORDER.index(route.method)))
    for route in ordered:
        operations = paths.setdefault(route.path, {})
        operations[route.method.value.lower()] = route.contract.describe(components)

    info: Dict[str, Any] = {"title": title, "version": version}
    if description:
        info["description"] = description

    document: Dict[str, Any] = {"openapi": openapi_version, "info": info}
    if servers:
        document["servers"] = [{"url": url} for url in servers]
    document["paths"] = paths

    schemas = components.schemas()
    if schemas:
        document["components"] = {"schemas": schemas}
    logger.debug("Assembled OpenAPI %s document with %d paths", openapi_version, len(paths))
    return document


def to_json(document: Dict[str, Any]) -> str:
    return json.dumps(document, indent=2)
