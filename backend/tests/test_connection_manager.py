"""Tests for connecting to project databases."""

from __future__ import annotations

import pymysql
import pytest
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError

from app.core.exceptions import ConnectionFailure
from app.system import connection_manager as cm
from app.system.connection_manager import (
    ConnectionHandle,
    ConnectionManager,
    ConnectionRegistry,
    build_engine,
    sanitize_error,
)
from app.system.db_types import TargetDescriptor


class _BrokenEngine:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.disposed = False

    def connect(self):
        raise self.exc

    def dispose(self) -> None:
        self.disposed = True


def _driver_error(code: int, message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, pymysql.err.OperationalError(code, message))


def test_connect_returns_none_without_host_or_database(manager) -> None:
    assert manager.connect(TargetDescriptor(host=None, database="shop")) is None
    assert manager.connect(TargetDescriptor(host="db.local", database="")) is None


def test_test_connection_reports_missing_configuration(manager) -> None:
    result = manager.test_connection(TargetDescriptor())

    assert result.to_dict() == {"connected": False, "error": cm.NOT_CONFIGURED}


def test_test_connection_succeeds_against_live_target(manager, shop_target) -> None:
    assert manager.test_connection(shop_target).to_dict() == {"connected": True, "error": None}


@pytest.mark.parametrize(
    ("error", "category"),
    [
        (_driver_error(2003, "Can't connect to MySQL server on 'db.internal' ([Errno 111] Connection refused)"),
         cm.CONNECTION_REFUSED),
        (_driver_error(1045, "Access denied for user 'app'@'10.0.0.4' (using password: YES)"), cm.ACCESS_DENIED),
        (_driver_error(1049, "Unknown database 'shopp'"), cm.UNKNOWN_DATABASE),
        (_driver_error(2003, "Can't connect to MySQL server on 'nope.invalid' ([Errno -2] Name or service not known)"),
         cm.UNKNOWN_HOST),
        (_driver_error(2013, "Lost connection to MySQL server during query"), cm.CONNECTION_FAILED),
        (Exception("SQLSTATE[HY000] [2002] Connection refused"), cm.CONNECTION_REFUSED),
        (Exception("SQLSTATE[HY000] [2005] Unknown MySQL server host 'x'"), cm.UNKNOWN_HOST),
        (Exception("SQLSTATE[08006] could not connect"), cm.CONNECTION_FAILED),
        (TimeoutError("timed out"), cm.CONNECTION_REFUSED),
        (RuntimeError("something odd at 10.1.2.3"), cm.GENERIC_FAILURE),
    ],
)
def test_driver_errors_map_to_fixed_categories(error: Exception, category: str) -> None:
    assert sanitize_error(error) == category


def test_test_connection_never_leaks_driver_text() -> None:
    error = _driver_error(1045, "SQLSTATE[HY000] Access denied for user 'root'@'secret-host.internal'")
    engine = _BrokenEngine(error)
    manager = ConnectionManager(engine_factory=lambda target, pooled=False: engine)

    result = manager.test_connection(TargetDescriptor(host="secret-host.internal", database="shop"))

    assert result.connected is False
    assert result.error == cm.ACCESS_DENIED
    assert "SQLSTATE" not in result.error
    assert "secret-host" not in result.error
    assert engine.disposed is True


def test_unreachable_mysql_host_returns_category() -> None:
    manager = ConnectionManager(connect_timeout=2)
    target = TargetDescriptor(host="127.0.0.1", port=1, database="shop", username="app", secret="pw")

    result = manager.test_connection(target)

    assert result.connected is False
    assert result.error in cm.ERROR_CATEGORIES
    assert "SQLSTATE" not in result.error
    assert "127.0.0.1" not in result.error


def test_build_engine_targets_pymysql_without_exposing_secret() -> None:
    target = TargetDescriptor(driver="mariadb", host="db.local", port=3307, database="shop",
                              username="app", secret="hunter2")

    engine = build_engine(target)
    try:
        assert engine.url.drivername == "mysql+pymysql"
        assert engine.url.port == 3307
        assert engine.url.query["charset"] == "utf8mb4"
        assert "hunter2" not in repr(engine.url)
    finally:
        engine.dispose()

    assert "hunter2" not in repr(target)


def test_build_engine_counts_changed_rows_not_matched_rows() -> None:
    engine = build_engine(TargetDescriptor(host="db.local", database="shop", username="app", secret="x"))
    params = {}

    @event.listens_for(engine, "do_connect")
    def _capture(dialect, conn_rec, cargs, cparams):
        params.update(cparams)
        raise RuntimeError("stop before network")

    try:
        with pytest.raises(Exception):
            engine.connect()
    finally:
        engine.dispose()

    assert params["client_flag"] == 0
    assert params["connect_timeout"] == cm.DB_CONNECT_TIMEOUT


def test_connection_name_is_stable_and_ignores_secret() -> None:
    first = TargetDescriptor(host="db.local", database="shop", username="app", secret="a")
    second = TargetDescriptor(host="db.local", database="shop", username="app", secret="b")
    other = TargetDescriptor(host="db.local", database="crm", username="app", secret="a")

    assert first.connection_name == second.connection_name
    assert first.connection_name != other.connection_name
    assert first.connection_name.startswith("project_")


def test_unsupported_driver_is_rejected() -> None:
    with pytest.raises(ValueError):
        TargetDescriptor(driver="postgres", host="db.local", database="shop")


def test_session_closes_handle_on_error(manager, shop_target) -> None:
    captured: list[ConnectionHandle] = []

    with pytest.raises(KeyError):
        with manager.session(shop_target) as handle:
            captured.append(handle)
            raise KeyError("boom")

    assert captured[0].closed is True


def test_session_raises_sanitized_failure() -> None:
    engine = _BrokenEngine(_driver_error(1049, "Unknown database 'shopp'"))
    manager = ConnectionManager(engine_factory=lambda target, pooled=False: engine)

    with pytest.raises(ConnectionFailure) as info:
        with manager.session(TargetDescriptor(host="db.local", database="shopp")):
            pass

    assert info.value.category == cm.UNKNOWN_DATABASE
    assert info.value.__cause__ is None
    assert engine.disposed is True


def test_session_yields_none_for_unconfigured_target(manager) -> None:
    with manager.session(TargetDescriptor()) as handle:
        assert handle is None


def test_handles_for_different_targets_are_isolated(manager, shop_target, crm_target) -> None:
    shop = manager.connect(shop_target)
    crm = manager.connect(crm_target)
    assert shop.name != crm.name

    try:
        shop.open()
        crm.open()
        shop.close()

        assert crm.connection.execute(text("SELECT full_name FROM contacts")).scalar() == "Grace Hopper"
        with pytest.raises(RuntimeError):
            shop.connection
    finally:
        crm.close()

    # close() boleh dipanggil berulang
    crm.close()


def test_registry_purge_leaves_other_targets_usable(engine_factory, shop_target, crm_target) -> None:
    registry = ConnectionRegistry(engine_factory=engine_factory)
    manager = ConnectionManager(registry=registry)

    with manager.session(shop_target):
        pass
    with manager.session(crm_target):
        pass
    assert len(registry) == 2

    assert manager.disconnect(shop_target) is True
    assert manager.disconnect(shop_target) is False
    assert shop_target.connection_name not in registry

    with manager.session(crm_target) as handle:
        assert handle.connection.execute(text("SELECT COUNT(*) FROM contacts")).scalar() == 1
    assert registry.names() == [crm_target.connection_name]

    registry.dispose_all()


def test_registry_reuses_engine_and_evicts_idle(engine_factory, shop_target, crm_target) -> None:
    now = [1000.0]
    registry = ConnectionRegistry(engine_factory=engine_factory, max_idle_seconds=60, clock=lambda: now[0])

    first = registry.acquire(shop_target)
    assert registry.acquire(shop_target) is first

    now[0] += 30
    registry.acquire(crm_target)
    now[0] += 45

    assert registry.evict_idle() == 1
    assert registry.names() == [crm_target.connection_name]
    registry.dispose_all()
    assert len(registry) == 0


def test_disconnect_without_registry_is_noop(manager, shop_target) -> None:
    assert manager.disconnect(shop_target) is False
    assert manager.disconnect(TargetDescriptor()) is False
