"""Exception types and the driver-error to HTTP taxonomy.

The taxonomy is a single lookup table keyed by symbolic driver codes. The UI
branches on the ``error`` category strings, so they must stay stable.
"""
from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from mysql.connector import errorcode
from sqlalchemy import exc as sa_exc


class TunnelError(Exception):
    """Base class for tunnel service failures."""


class ConfigError(TunnelError):
    def __init__(self, message: Optional[str] = None, missing: Optional[Iterable[str]] = None):
        self.missing = list(missing or [])
        if message is None:
            message = f"Missing required environment variables: {', '.join(self.missing)}"
        super().__init__(message)


class BootstrapError(TunnelError):
    """Raised when the database or the connection pool cannot be set up."""


class PoolNotInitialized(TunnelError):
    def __init__(self, message: str = "Database connection pool not initialized"):
        super().__init__(message)


@dataclass(frozen=True)
class ErrorMapping:
    status: int
    category: str
    message: str
    include_details: bool = False


POOL_NOT_INITIALIZED = "POOL_NOT_INITIALIZED"
CONNECTION_REFUSED = "CR_CONN_HOST_ERROR"
UNKNOWN_HOST = "CR_UNKNOWN_HOST"
CONNECTION_LOST = "CR_SERVER_LOST"
FATAL_ERROR = "FATAL_ERROR"
QUERY_TIMEOUT = "ER_QUERY_TIMEOUT"
UNKNOWN_ERROR = "UNKNOWN_ERROR"

_SYNTAX = ErrorMapping(400, "SQL Syntax Error", "The SQL query contains syntax errors", include_details=True)
_LOST = ErrorMapping(503, "Connection Lost", "Database connection was lost during query execution")

ERROR_TAXONOMY: Dict[str, ErrorMapping] = {
    POOL_NOT_INITIALIZED: ErrorMapping(503, "Service Unavailable", "Database connection pool not initialized"),
    "ER_ACCESS_DENIED_ERROR": ErrorMapping(
        401,
        "Authentication Failed",
        "Database authentication failed. Check DB_USER and DB_PASSWORD in .env",
    ),
    "ER_BAD_DB_ERROR": ErrorMapping(404, "Database Not Found", "Database '{database}' does not exist"),
    "ER_PARSE_ERROR": _SYNTAX,
    "ER_SYNTAX_ERROR": _SYNTAX,
    "ER_NO_SUCH_TABLE": ErrorMapping(
        404,
        "Table Not Found",
        "One or more tables referenced in the query do not exist",
        include_details=True,
    ),
    "ER_BAD_FIELD_ERROR": ErrorMapping(
        400,
        "Invalid Column",
        "One or more columns referenced in the query do not exist",
        include_details=True,
    ),
    CONNECTION_REFUSED: ErrorMapping(
        503,
        "Database Connection Failed",
        "Cannot connect to database server at {host}:{port}. Ensure the database server is running.",
    ),
    UNKNOWN_HOST: ErrorMapping(503, "Database Host Not Found", "Cannot resolve database host: {host}"),
    CONNECTION_LOST: _LOST,
    "CR_SERVER_GONE_ERROR": _LOST,
    FATAL_ERROR: ErrorMapping(503, "Fatal Database Error", "A fatal database error occurred. Please try again."),
    QUERY_TIMEOUT: ErrorMapping(504, "Query Timeout", "Query execution took too long and was terminated"),
    "ER_TOO_BIG_SELECT": ErrorMapping(
        413,
        "Result Set Too Large",
        "The query result set is too large. Consider adding LIMIT clause.",
    ),
}

DEFAULT_MAPPING = ErrorMapping(500, "Database Error", "An unexpected database error occurred")

# errno -> symbolic code, for the names this installed driver knows about.
_CODE_BY_ERRNO: Dict[int, str] = {
    getattr(errorcode, name): name for name in ERROR_TAXONOMY if isinstance(getattr(errorcode, name, None), int)
}
# max_execution_time exceeded; older connector releases do not name it.
_CODE_BY_ERRNO.setdefault(3024, QUERY_TIMEOUT)


def _errno_names() -> Dict[int, str]:
    # First definition wins where the driver aliases an errno.
    names: Dict[int, str] = {}
    for name, value in vars(errorcode).items():
        if name.isupper() and isinstance(value, int):
            names.setdefault(value, name)
    return names


_ERRNO_NAMES = _errno_names()


@dataclass(frozen=True)
class ClassifiedError:
    code: str
    mapping: ErrorMapping
    driver_message: str

    @property
    def status(self) -> int:
        return self.mapping.status

    @property
    def category(self) -> str:
        return self.mapping.category


def _driver_error(error: BaseException) -> BaseException:
    if isinstance(error, sa_exc.DBAPIError) and error.orig is not None:
        return error.orig
    return error


def driver_message(error: BaseException) -> str:
    orig = _driver_error(error)
    msg = getattr(orig, "msg", None)
    if msg:
        return str(msg)
    return str(orig) or orig.__class__.__name__


def error_code(error: BaseException) -> str:
    """Return the symbolic code used to look up ``error`` in the taxonomy."""

    if isinstance(error, PoolNotInitialized):
        return POOL_NOT_INITIALIZED

    orig = _driver_error(error)
    errno = getattr(orig, "errno", None)
    if isinstance(errno, int) and errno in _CODE_BY_ERRNO:
        return _CODE_BY_ERRNO[errno]

    if isinstance(orig, socket.gaierror):
        return UNKNOWN_HOST
    if isinstance(orig, ConnectionRefusedError):
        return CONNECTION_REFUSED
    if isinstance(orig, (TimeoutError, socket.timeout)):
        return QUERY_TIMEOUT
    if isinstance(orig, (ConnectionResetError, BrokenPipeError)):
        return CONNECTION_LOST

    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return FATAL_ERROR

    if isinstance(errno, int) and errno > 0:
        return _ERRNO_NAMES.get(errno, str(errno))
    return UNKNOWN_ERROR


def classify_error(error: BaseException) -> ClassifiedError:
    code = error_code(error)
    return ClassifiedError(
        code=code,
        mapping=ERROR_TAXONOMY.get(code, DEFAULT_MAPPING),
        driver_message=driver_message(error),
    )


def error_payload(
    classified: ClassifiedError,
    *,
    request_id: Optional[int] = None,
    host: str = "",
    port: Any = "",
    database: str = "",
    expose_errors: bool = True,
) -> Dict[str, Any]:
    """Build the JSON body for a classified error (without the timestamp)."""

    mapping = classified.mapping
    payload: Dict[str, Any] = {"success": False, "error": mapping.category}

    if mapping is DEFAULT_MAPPING:
        payload["message"] = classified.driver_message if expose_errors else mapping.message
        payload["code"] = classified.code
    else:
        payload["message"] = mapping.message.format(host=host, port=port, database=database)
        if mapping.include_details:
            payload["details"] = classified.driver_message

    if request_id is not None:
        payload["requestId"] = request_id
    return payload
