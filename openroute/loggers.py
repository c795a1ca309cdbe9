"""
Logger capability handed to endpoints.

Endpoints never look a logger up themselves; they receive an optional
``EndpointLogger`` and call nothing when it is absent.
"""

import logging
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


@runtime_checkable
class EndpointLogger(Protocol):
    def log(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None: ...

    def info(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None: ...

    def warn(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None: ...

    def error(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None: ...

    def debug(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None: ...

    def trace(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None: ...


class StdlibLogger:
    """Adapts a ``logging.Logger`` to the EndpointLogger capability.

    ``log`` writes at INFO; ``trace`` writes at the custom TRACE level (5).
    The context mapping travels in ``extra`` under the ``context`` key.
    """

    def __init__(self, target: Optional[logging.Logger] = None):
        self.target = target or logging.getLogger("openroute.endpoints")

    def _emit(self, level: int, message: str, context: Optional[Mapping[str, Any]]) -> None:
        if self.target.isEnabledFor(level):
            self.target.log(level, message, extra={"context": dict(context or {})})

    def log(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.INFO, message, context)

    def info(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.INFO, message, context)

    def warn(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.WARNING, message, context)

    def error(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.ERROR, message, context)

    def debug(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.DEBUG, message, context)

    def trace(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(TRACE, message, context)
