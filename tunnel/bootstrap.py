"""Startup: create the database, build the pool, run the smoke test."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    TIMESTAMP,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
)
from sqlalchemy.engine import URL, Engine
from sqlalchemy.pool import NullPool

from config import TunnelConfig
from tunnel.errors import BootstrapError
from tunnel.results import normalize_row
from tunnel.service import TunnelService

logger = logging.getLogger(__name__)

DRIVERNAME = "mysql+mysqlconnector"

# Diagnostic table only; no domain data lives here.
metadata = MetaData()
sample_test = Table(
    "sample_test",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("test_name", String(100)),
    Column("created_at", TIMESTAMP, server_default=func.current_timestamp()),
)

SEED_ROWS = [
    {"test_name": "Database Connection Test"},
    {"test_name": "AirportSys Database"},
    {"test_name": "MariaDB Server Active"},
]


def database_url(config: TunnelConfig, *, with_database: bool = True) -> URL:
    return URL.create(
        DRIVERNAME,
        username=config.db_user,
        password=config.db_password,
        host=config.db_host,
        port=config.db_port,
        database=config.db_name if with_database else None,
    )


def ensure_database(config: TunnelConfig) -> None:
    """Create the configured database over a one-off, unpooled connection."""

    engine = create_engine(
        database_url(config, with_database=False),
        poolclass=NullPool,
        isolation_level="AUTOCOMMIT",
    )
    name = config.db_name.replace("`", "``")
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql(f"CREATE DATABASE IF NOT EXISTS `{name}`")
    finally:
        engine.dispose()
    logger.info("Database '%s' is ready", config.db_name)


def pool_options(config: TunnelConfig) -> Dict[str, Any]:
    """Engine keyword arguments for the bounded lease pool.

    ``pool_timeout=None`` makes callers queue for a lease instead of failing
    when every connection is checked out.
    """

    return {
        "pool_size": config.connection_limit,
        "max_overflow": 0,
        "pool_timeout": None,
        "pool_pre_ping": True,
        "isolation_level": "AUTOCOMMIT",
    }


def build_engine(config: TunnelConfig) -> Engine:
    """Pool bound to the configured database."""

    return create_engine(database_url(config), **pool_options(config))


def run_smoke_test(service: TunnelService, limit: int = 5) -> Optional[List[Dict[str, Any]]]:
    """Ensure ``sample_test`` exists and is seeded, then read it back.

    Failures are logged and reported as ``None``; /health stays the real
    liveness signal.
    """

    try:
        with service.lease() as conn:
            metadata.create_all(conn, tables=[sample_test])
            count = conn.execute(select(func.count()).select_from(sample_test)).scalar_one()
            if count == 0:
                conn.execute(insert(sample_test), SEED_ROWS)

            query = select(sample_test).order_by(sample_test.c.created_at.desc(), sample_test.c.id.desc()).limit(limit)
            rows = [normalize_row(row._mapping) for row in conn.execute(query)]
    except Exception as exc:  # noqa: BLE001
        logger.error("Smoke test query failed: %s", exc)
        return None

    logger.info("Smoke test returned %s row(s)", len(rows))
    for row in rows:
        logger.info("  %s", row)
    return rows


def start_service(config: TunnelConfig) -> TunnelService:
    """Bootstrap the database and pool; raise :class:`BootstrapError` on failure."""

    try:
        ensure_database(config)
        engine = build_engine(config)
    except Exception as exc:  # noqa: BLE001
        raise BootstrapError(f"Failed to initialize database connection pool: {exc}") from exc

    logger.info("Database connection pool initialized (limit=%s)", config.connection_limit)
    service = TunnelService(engine, config)
    run_smoke_test(service)
    return service
