"""
Mapping of storage constraint violations to client-facing errors.
"""

import copy
import logging
from types import MappingProxyType
from typing import Mapping

from ..exceptions import ApiError, ConflictError, ValidationError
from .storage import UNIQUE, ConstraintViolation

logger = logging.getLogger(__name__)


class ConstraintMapper:
    """Looks constraint identifiers up in a fixed message map.

    Only uniqueness violations, or violations whose kind the engine did not
    report, consult the map. Other kinds such as NOT NULL always become a
    ConflictError.

    Example:
        ConstraintMapper({
            "users.email": ValidationError("Email already registered", path=["body", "email"]),
        })
    """

    def __init__(self, messages: Mapping[str, ValidationError]):
        self._messages = MappingProxyType(dict(messages))

    @property
    def messages(self) -> Mapping[str, ValidationError]:
        return self._messages

    def resolve(self, violation: ConstraintViolation) -> ApiError:
        """Return the mapped ValidationError, or a ConflictError carrying the raw identifier."""
        mapped = None
        if violation.kind in (None, UNIQUE):
            mapped = self._messages.get(violation.identifier)
        if mapped is None:
            logger.debug(f"No message mapped for constraint {violation.identifier!r}")
            return ConflictError(violation.identifier)
        # Each raise gets its own instance; the mapped one is shared
        return copy.copy(mapped)
