"""
Error response models.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """One entry of the ``errors`` array."""

    code: int = Field(..., description="Stable numeric error code")
    message: str = Field(..., description="Human-readable description of the failure")
    path: Optional[List[str]] = Field(
        None,
        description="Location-qualified path of the failing field, e.g. ['body', 'email']",
    )


class ErrorResponse(BaseModel):
    """Standard error response model.

    Every error path returns this shape. Internal state such as stack traces
    or query text is never part of it.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "errors": [
                    {"code": 7001, "message": "Field required", "path": ["body", "email"]}
                ],
            }
        }
    )

    success: Literal[False] = False
    errors: List[ErrorDetail]

    def model_dump_json(self, **kwargs):
        """Override to drop empty ``path`` entries by default."""
        kwargs.setdefault("exclude_none", True)
        return super().model_dump_json(**kwargs)
