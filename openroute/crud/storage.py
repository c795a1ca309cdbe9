"""
Storage collaborator interface and its SQLite implementation.
"""

import json
import logging
import re
import sqlite3
from typing import Any, Dict, List, Optional, Protocol

import anyio
import anyio.to_thread

from .query import Query

logger = logging.getLogger(__name__)

_CONSTRAINT_MESSAGE = re.compile(r"(?P<kind>[A-Z][A-Z ]*?) constraint failed(?:: (?P<identifier>.+))?$")

UNIQUE = "UNIQUE"


class StorageBackendError(Exception):
    """The storage engine failed for a reason other than a constraint."""

    pass


class ConstraintViolation(Exception):
    """The storage engine rejected a write because of a constraint.

    ``identifier`` names the constraint, e.g. ``users.email``. ``kind`` is the
    constraint type reported by the engine (``UNIQUE``, ``NOT NULL``, ...), or
    None when the engine does not say.
    """

    def __init__(self, identifier: str, message: Optional[str] = None, kind: Optional[str] = None):
        self.identifier = identifier
        self.kind = kind
        self.message = message or identifier
        super().__init__(self.message)


class Storage(Protocol):
    async def execute(self, query: Query) -> List[Dict[str, Any]]:
        """Run one parameterized statement and return its rows.

        Raises:
            ConstraintViolation: if a constraint rejected the statement
            StorageBackendError: for any other failure
        """
        ...


def constraint_identifier(message: str) -> str:
    """Extract the constraint identifier from an SQLite integrity error message.

    "UNIQUE constraint failed: users.email" -> "users.email"
    """
    match = _CONSTRAINT_MESSAGE.search(message)
    if match is None or match.group("identifier") is None:
        return message
    return match.group("identifier").strip()


def constraint_kind(message: str) -> Optional[str]:
    """Extract the constraint type from an SQLite integrity error message.

    "NOT NULL constraint failed: users.email" -> "NOT NULL"
    """
    match = _CONSTRAINT_MESSAGE.search(message)
    return match.group("kind") if match else None


def _adapt(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


class SQLiteStorage:
    """Storage backed by the standard library's sqlite3 module.

    The single connection is used from worker threads, one statement at a
    time, guarded by an anyio lock.
    """

    def __init__(self, database: str = ":memory:"):
        self.database = database
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = anyio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = sqlite3.connect(self.database, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def _execute(self, query: Query) -> List[Dict[str, Any]]:
        connection = self._connect()
        try:
            cursor = connection.execute(query.text, [_adapt(value) for value in query.params])
            rows = [dict(row) for row in cursor.fetchall()]
            connection.commit()
            return rows
        except sqlite3.IntegrityError as e:
            connection.rollback()
            raise ConstraintViolation(constraint_identifier(str(e)), str(e), constraint_kind(str(e))) from e
        except sqlite3.Error as e:
            connection.rollback()
            raise StorageBackendError(str(e)) from e

    async def execute(self, query: Query) -> List[Dict[str, Any]]:
        async with self._lock:
            return await anyio.to_thread.run_sync(self._execute, query)

    def _executescript(self, script: str) -> None:
        try:
            self._connect().executescript(script)
        except sqlite3.Error as e:
            raise StorageBackendError(str(e)) from e

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script, e.g. to create tables."""
        async with self._lock:
            await anyio.to_thread.run_sync(self._executescript, script)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.debug(f"Closed SQLite database {self.database}")
