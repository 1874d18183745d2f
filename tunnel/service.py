"""The tunnel service object: owns the pool and runs statements on leases."""
from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Sequence, Tuple, Union

from sqlalchemy.engine import Connection, Engine

from tunnel.errors import PoolNotInitialized
from tunnel.placeholders import bind_params, to_paramstyle
from tunnel.results import QueryResult

if TYPE_CHECKING:  # pragma: no cover
    from config import TunnelConfig

logger = logging.getLogger(__name__)


class PlaceholderMismatch(ValueError):
    def __init__(self, expected: int, supplied: int):
        self.expected = expected
        self.supplied = supplied
        super().__init__(
            f"Parameter count mismatch: query has {expected} placeholder(s) "
            f"but {supplied} parameter(s) were supplied"
        )


def _ping(conn: Connection) -> None:
    dbapi_conn = conn.connection.dbapi_connection
    ping = getattr(dbapi_conn, "ping", None)
    if callable(ping):
        ping(reconnect=False)
    else:
        conn.exec_driver_sql("SELECT 1").close()


def _execute(
    conn: Connection,
    statement: str,
    params: Optional[Union[Tuple[Any, ...], Dict[str, Any]]] = None,
) -> QueryResult:
    if params:
        result = conn.exec_driver_sql(statement, params)
    else:
        # Handed to cursor.execute() untouched, so a literal % survives.
        result = conn.execution_options(no_parameters=True).exec_driver_sql(statement)
    try:
        return QueryResult.from_cursor(result)
    finally:
        result.close()


class TunnelService:
    """Holds the connection pool and hands out one lease per request.

    ``engine`` is ``None`` until bootstrap succeeds; every operation then
    raises :class:`PoolNotInitialized` so routes can answer 503.
    """

    def __init__(self, engine: Optional[Engine] = None, config: Optional["TunnelConfig"] = None):
        self.engine = engine
        self.config = config
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self.engine is not None

    def next_request_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def connections_in_use(self) -> int:
        if self.engine is None:
            return 0
        checkedout = getattr(self.engine.pool, "checkedout", None)
        return checkedout() if callable(checkedout) else 0

    @contextmanager
    def lease(self, request_id: Optional[int] = None) -> Iterator[Connection]:
        """Lease a pooled connection; it goes back to the pool on every exit path."""

        if self.engine is None:
            raise PoolNotInitialized()

        conn = self.engine.connect()
        logger.debug("[%s] Database connection established", request_id)
        try:
            yield conn
        finally:
            conn.close()
            logger.debug("[%s] Database connection released", request_id)

    def ping(self) -> None:
        with self.lease() as conn:
            _ping(conn)

    def run_query(self, query: str, request_id: Optional[int] = None) -> QueryResult:
        """Execute ``query`` verbatim, without parameter binding."""

        with self.lease(request_id) as conn:
            logger.info("[%s] Executing query...", request_id)
            return _execute(conn, query)

    def run_parameterized(
        self,
        query: str,
        params: Sequence[Any],
        request_id: Optional[int] = None,
    ) -> QueryResult:
        """Execute ``query`` with positional ``?`` placeholders bound to ``params``."""

        if self.engine is None:
            raise PoolNotInitialized()

        dialect = self.engine.dialect
        statement, expected = to_paramstyle(query, dialect.paramstyle, dialect.driver)
        if expected != len(params):
            raise PlaceholderMismatch(expected, len(params))
        if not params:
            statement = query

        with self.lease(request_id) as conn:
            logger.info("[%s] Executing parameterized query...", request_id)
            return _execute(conn, statement, bind_params(params, dialect.paramstyle))

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database pool closed")
