import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine

# Ensure project root (where app.py lives) is on sys.path for test imports
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app  # noqa: E402
from config import TunnelConfig  # noqa: E402
from tunnel.service import TunnelService  # noqa: E402


@pytest.fixture
def tunnel_config():
    return TunnelConfig(
        db_host="db.local",
        db_user="root",
        db_password="secret",
        db_name="airport_db",
        server_port=8888,
    )


@pytest.fixture
def engine(tmp_path):
    # File-backed SQLite gets a QueuePool, so checked-out leases are countable.
    eng = create_engine(f"sqlite:///{tmp_path / 'tunnel.db'}", isolation_level="AUTOCOMMIT")
    yield eng
    eng.dispose()


@pytest.fixture
def service(engine, tunnel_config):
    return TunnelService(engine, tunnel_config)


@pytest.fixture
def client(service):
    app = create_app(service)
    app.config["TESTING"] = True
    return app.test_client()
