import dataclasses
import threading
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine, text

from app import create_app
from tunnel import bootstrap
from tunnel.errors import BootstrapError
from tunnel.service import TunnelService


def test_smoke_test_creates_and_seeds_sample_table(service, engine):
    rows = bootstrap.run_smoke_test(service)

    assert rows is not None
    assert sorted(row["test_name"] for row in rows) == sorted(r["test_name"] for r in bootstrap.SEED_ROWS)
    assert all(row["created_at"] for row in rows)
    assert service.connections_in_use() == 0


def test_smoke_test_seeds_only_once(service, engine):
    bootstrap.run_smoke_test(service)
    bootstrap.run_smoke_test(service)

    with engine.connect() as conn:
        count = conn.execute(text("SELECT COUNT(*) FROM sample_test")).scalar_one()
    assert count == len(bootstrap.SEED_ROWS)


def test_smoke_test_failure_is_logged_not_raised(caplog):
    broken_engine = MagicMock()
    broken_engine.connect.side_effect = RuntimeError("server gone")
    service = TunnelService(broken_engine)

    assert bootstrap.run_smoke_test(service) is None
    assert "server gone" in caplog.text


def test_database_url_uses_mysql_connector(tunnel_config):
    url = bootstrap.database_url(tunnel_config)
    bare = bootstrap.database_url(tunnel_config, with_database=False)

    assert url.drivername == "mysql+mysqlconnector"
    assert url.host == "db.local"
    assert url.port == 3306
    assert url.database == "airport_db"
    assert bare.database is None


def test_ensure_database_issues_create_statement(tunnel_config):
    fake_engine = MagicMock()
    conn = fake_engine.connect.return_value.__enter__.return_value

    with patch.object(bootstrap, "create_engine", return_value=fake_engine) as create:
        bootstrap.ensure_database(tunnel_config)

    assert create.call_args.args[0].database is None
    conn.exec_driver_sql.assert_called_once_with("CREATE DATABASE IF NOT EXISTS `airport_db`")
    fake_engine.dispose.assert_called_once()


def test_build_engine_bounds_pool(tunnel_config):
    with patch.object(bootstrap, "create_engine") as create:
        bootstrap.build_engine(tunnel_config)

    kwargs = create.call_args.kwargs
    assert kwargs["pool_size"] == tunnel_config.connection_limit
    assert kwargs["max_overflow"] == 0
    assert kwargs["pool_timeout"] is None


def test_requests_queue_for_a_lease_when_pool_is_exhausted(tmp_path, tunnel_config):
    config = dataclasses.replace(tunnel_config, connection_limit=1)
    engine = create_engine(
        f"sqlite:///{tmp_path / 'queued.db'}",
        connect_args={"check_same_thread": False},
        **bootstrap.pool_options(config),
    )
    service = TunnelService(engine, config)
    client = create_app(service).test_client()
    responses = []

    def post_query():
        responses.append(client.post("/api/query", json={"query": "SELECT 1 AS one"}))

    try:
        with service.lease():
            worker = threading.Thread(target=post_query)
            worker.start()
            worker.join(timeout=0.5)

            assert worker.is_alive()
            assert responses == []

        worker.join(timeout=10)
        assert not worker.is_alive()
        assert responses[0].status_code == 200
        assert responses[0].get_json()["data"] == [{"one": 1}]
        assert service.connections_in_use() == 0
    finally:
        engine.dispose()


def test_start_service_wraps_pool_failures(tunnel_config):
    with patch.object(bootstrap, "ensure_database", side_effect=RuntimeError("access denied")):
        with pytest.raises(BootstrapError, match="access denied"):
            bootstrap.start_service(tunnel_config)


def test_start_service_survives_smoke_test_failure(tunnel_config):
    with patch.object(bootstrap, "ensure_database"), patch.object(
        bootstrap, "build_engine", return_value=MagicMock()
    ), patch.object(bootstrap, "run_smoke_test", return_value=None) as smoke:
        service = bootstrap.start_service(tunnel_config)

    assert service.ready
    assert service.config is tunnel_config
    smoke.assert_called_once_with(service)
