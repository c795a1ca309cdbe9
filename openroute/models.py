"""
Core request/response models.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from http.cookies import SimpleCookie
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qs, urlsplit

QueryValue = Union[str, List[str]]


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"


@dataclass
class Request:
    """Represents an HTTP request.

    ``path_params`` is filled in by the application once the route is matched.
    """

    method: HTTPMethod
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[str, bytes]] = None
    query_params: Dict[str, QueryValue] = field(default_factory=dict)
    path_params: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_url(
        cls,
        method: Union[HTTPMethod, str],
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
    ) -> "Request":
        """Build a request from a raw URL, splitting the query string."""
        if isinstance(method, str):
            method = HTTPMethod(method.upper())
        parts = urlsplit(url)
        query: Dict[str, QueryValue] = {}
        for key, values in parse_qs(parts.query, keep_blank_values=True).items():
            query[key] = values[0] if len(values) == 1 else values
        return cls(method=method, path=parts.path or "/", headers=dict(headers or {}), body=body, query_params=query)

    def get_header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def get_content_type(self) -> Optional[str]:
        return self.get_header("Content-Type")

    def get_cookies(self) -> Dict[str, str]:
        raw = self.get_header("Cookie")
        if not raw:
            return {}
        jar: SimpleCookie = SimpleCookie()
        jar.load(raw)
        return {name: morsel.value for name, morsel in jar.items()}

    def body_text(self) -> Optional[str]:
        if self.body is None:
            return None
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body


@dataclass
class Response:
    """Represents an HTTP response."""

    status_code: int
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    content_type: Optional[str] = "application/json"

    def __post_init__(self):
        if self.content_type and "Content-Type" not in self.headers:
            self.headers["Content-Type"] = self.content_type

    def json(self) -> Any:
        """Decode the body as JSON."""
        if self.body is None:
            return None
        return json.loads(self.body)
