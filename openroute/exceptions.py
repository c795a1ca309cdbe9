"""
Exceptions for openroute.

Two families live here. ``ApiError`` subclasses are raised while a request is
being handled and are converted into the fixed error response shape.
``ConfigurationError`` subclasses are raised while routes are being
registered and are never converted into responses.
"""

from typing import Any, Dict, List, Optional, Sequence

from .error_models import ErrorDetail, ErrorResponse


class ApiError(Exception):
    """Base exception for errors that become HTTP error responses."""

    status: int = 500
    code: int = 7000
    default_message: str = "Internal Error"

    def __init__(self, message: Optional[str] = None, path: Optional[Sequence[str]] = None):
        self.message = message or self.default_message
        self.path = list(path) if path is not None else None
        super().__init__(self.message)

    def errors(self) -> List[ErrorDetail]:
        """Return the error entries rendered in the response body."""
        return [ErrorDetail(code=self.code, message=self.message, path=self.path)]

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(errors=self.errors())


class FieldIssue:
    """A single failing field inside a ValidationError."""

    __slots__ = ("path", "message", "constraint")

    def __init__(self, path: Sequence[str], message: str, constraint: Optional[str] = None):
        self.path = [str(part) for part in path]
        self.message = message
        self.constraint = constraint

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)

    def __repr__(self) -> str:
        return f"FieldIssue({self.dotted_path!r}, {self.message!r}, constraint={self.constraint!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldIssue):
            return NotImplemented
        return (self.path, self.message, self.constraint) == (other.path, other.message, other.constraint)


class ValidationError(ApiError):
    """Input failed schema or constraint validation.

    Carries every failing field rather than only the first, each with a
    location-qualified path such as ``["body", "email"]``.
    """

    status = 400
    code = 7001
    default_message = "Input Validation Error"

    def __init__(
        self,
        message: Optional[str] = None,
        path: Optional[Sequence[str]] = None,
        issues: Optional[Sequence[FieldIssue]] = None,
    ):
        super().__init__(message, path)
        if issues:
            self.issues = list(issues)
        else:
            self.issues = [FieldIssue(self.path or [], self.message)]

    @classmethod
    def from_pydantic(cls, error: Any, prefix: Sequence[str]) -> "ValidationError":
        """Build from a pydantic ValidationError, qualifying each loc with ``prefix``."""
        return cls(issues=issues_from_pydantic(error, prefix))

    def errors(self) -> List[ErrorDetail]:
        return [
            ErrorDetail(code=self.code, message=issue.message, path=issue.path or None)
            for issue in self.issues
        ]


class NotFound(ApiError):
    """A primary-key lookup matched no row, or no route matched the path."""

    status = 404
    code = 7002
    default_message = "Not Found"


class ConflictError(ApiError):
    """A storage constraint was violated and no message is mapped for it."""

    status = 409
    code = 7003
    default_message = "Constraint violation"

    def __init__(self, identifier: str, message: Optional[str] = None):
        self.identifier = identifier
        super().__init__(message)


class StorageError(ApiError):
    """The storage collaborator failed for a reason other than a constraint."""

    status = 500
    code = 7004
    default_message = "Internal Error"


class MethodNotAllowed(ApiError):
    status = 405
    code = 7005
    default_message = "Method Not Allowed"


class ConfigurationError(Exception):
    """Raised at registration time for defective route or model configuration."""

    pass


class SchemaMismatchError(ConfigurationError):
    """Declared schemas do not line up, e.g. primary keys differ from URL parameters."""

    def __init__(self, message: str, field: Optional[str] = None, path: Optional[str] = None):
        self.field = field
        self.path = path
        super().__init__(message)


def issues_from_pydantic(error: Any, prefix: Sequence[str]) -> List[FieldIssue]:
    """Convert pydantic error entries into FieldIssues under ``prefix``."""
    issues = []
    details: List[Dict[str, Any]] = error.errors(include_url=False)
    for detail in details:
        loc = [str(part) for part in detail.get("loc", ())]
        issues.append(FieldIssue([*prefix, *loc], detail.get("msg", "Invalid value"), detail.get("type")))
    return issues
