"""
Koneksi ad-hoc ke database project (MySQL / MariaDB milik user).

Tidak ada registry global: ConnectionManager dibuat per request lewat
dependency FastAPI. Kalau pooling diaktifkan, ConnectionRegistry di-inject
dari luar dan dibagi antar request.
"""

import logging
import re
import threading
import time
from contextlib import contextmanager
from functools import partial
from typing import Callable, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.pool import NullPool

from app.core.config import DB_CONNECT_TIMEOUT, DB_POOL_IDLE_SECONDS
from app.core.exceptions import ConnectionFailure
from app.system.db_types import ConnectionStatus, TargetDescriptor

logger = logging.getLogger(__name__)

# --- Kategori error yang boleh dilihat user ---
CONNECTION_REFUSED = "Connection refused - check host and port"
ACCESS_DENIED = "Access denied - check username and password"
UNKNOWN_DATABASE = "Unknown database - check database name"
UNKNOWN_HOST = "Unknown host - check hostname"
CONNECTION_FAILED = "Connection failed - check connection settings"
GENERIC_FAILURE = "Database connection failed"
NOT_CONFIGURED = "No database configuration provided"

ERROR_CATEGORIES = (
    CONNECTION_REFUSED,
    ACCESS_DENIED,
    UNKNOWN_DATABASE,
    UNKNOWN_HOST,
    CONNECTION_FAILED,
    GENERIC_FAILURE,
)

# Urutan penting: DNS error di pymysql juga pakai kode 2003
_ERROR_PATTERNS = (
    (re.compile(
        r"\[2005\]|\(2005,|unknown mysql server host|name or service not known|"
        r"nodename nor servname|getaddrinfo failed|temporary failure in name resolution",
        re.IGNORECASE,
    ), UNKNOWN_HOST),
    (re.compile(r"\[1045\]|\(1045,|\[1044\]|\(1044,|access denied", re.IGNORECASE), ACCESS_DENIED),
    (re.compile(r"\[1049\]|\(1049,|unknown database", re.IGNORECASE), UNKNOWN_DATABASE),
    (re.compile(
        r"\[2002\]|\(2002,|\[2003\]|\(2003,|connection refused|timed out|timeout",
        re.IGNORECASE,
    ), CONNECTION_REFUSED),
    (re.compile(
        r"\[08006\]|\[2006\]|\(2006,|\[2013\]|\(2013,|lost connection|server has gone away|connection failed",
        re.IGNORECASE,
    ), CONNECTION_FAILED),
)

_ERROR_CODES = {
    1044: ACCESS_DENIED,
    1045: ACCESS_DENIED,
    1049: UNKNOWN_DATABASE,
    2002: CONNECTION_REFUSED,
    2003: CONNECTION_REFUSED,
    2005: UNKNOWN_HOST,
    2006: CONNECTION_FAILED,
    2013: CONNECTION_FAILED,
}


def sanitize_error(exc: BaseException) -> str:
    """
    Ubah exception driver jadi salah satu kategori tetap.
    Pesan asli (bisa berisi host / user) tidak pernah dikembalikan.
    """
    if isinstance(exc, (TimeoutError, ConnectionRefusedError)):
        return CONNECTION_REFUSED

    original = getattr(exc, "orig", None) or exc
    text = f"{exc} {original}"

    for pattern, category in _ERROR_PATTERNS:
        if pattern.search(text):
            return category

    args = getattr(original, "args", ())
    if args and isinstance(args[0], int) and args[0] in _ERROR_CODES:
        return _ERROR_CODES[args[0]]

    return GENERIC_FAILURE


def build_engine(target: TargetDescriptor, pooled: bool = False, connect_timeout: int = DB_CONNECT_TIMEOUT) -> Engine:
    # MySQL & MariaDB sama-sama lewat PyMySQL
    url = URL.create(
        drivername="mysql+pymysql",
        username=target.username,
        password=target.secret.get_secret_value() or None,
        host=target.host,
        port=target.port,
        database=target.database,
        query={"charset": "utf8mb4"},
    )
    # client_flag=0: matikan FOUND_ROWS bawaan dialect, rowcount UPDATE = baris yang benar-benar berubah
    connect_args = {"connect_timeout": connect_timeout, "client_flag": 0}

    if pooled:
        return create_engine(
            url,
            connect_args=connect_args,
            pool_size=2,
            max_overflow=3,
            pool_pre_ping=True,
            pool_recycle=DB_POOL_IDLE_SECONDS,
        )
    return create_engine(url, connect_args=connect_args, poolclass=NullPool)


EngineFactory = Callable[..., Engine]


class _RegistryEntry:
    __slots__ = ("engine", "last_used")

    def __init__(self, engine, last_used):
        self.engine = engine
        self.last_used = last_used


class ConnectionRegistry:
    """
    Map engine per target, key = hash stabil dari identitas target.

    Dipakai hanya kalau DB_POOL_ENABLED. Purge satu target tidak
    menyentuh target lain.
    """

    def __init__(self, engine_factory: EngineFactory = None, max_idle_seconds: int = DB_POOL_IDLE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self._engine_factory = engine_factory or build_engine
        self._max_idle = max_idle_seconds
        self._clock = clock
        self._entries: Dict[str, _RegistryEntry] = {}
        self._lock = threading.Lock()

    def __contains__(self, name) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def names(self):
        with self._lock:
            return sorted(self._entries)

    def acquire(self, target: TargetDescriptor) -> Engine:
        self.evict_idle()
        name = target.connection_name
        now = self._clock()

        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                entry = _RegistryEntry(self._engine_factory(target, pooled=True), now)
                self._entries[name] = entry
                logger.info("[DB] Registered pooled connection %s", name)
            entry.last_used = now
            return entry.engine

    def purge(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.pop(name, None)
        if entry is None:
            return False
        entry.engine.dispose()
        logger.info("[DB] Purged connection %s", name)
        return True

    def evict_idle(self) -> int:
        cutoff = self._clock() - self._max_idle
        with self._lock:
            stale = [name for name, entry in self._entries.items() if entry.last_used < cutoff]
            evicted = [self._entries.pop(name) for name in stale]
        for entry in evicted:
            entry.engine.dispose()
        if stale:
            logger.info("[DB] Evicted %d idle connection(s)", len(stale))
        return len(stale)

    def dispose_all(self):
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.engine.dispose()


class ConnectionHandle:
    """Satu sesi ke satu target. Dibuka lazy, wajib ditutup."""

    def __init__(self, name: str, engine: Engine, owns_engine: bool = True):
        self.name = name
        self._engine = engine
        self._owns_engine = owns_engine
        self._connection = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connection(self):
        if self._closed:
            raise RuntimeError(f"Connection {self.name} already closed")
        if self._connection is None:
            self._connection = self._engine.connect()
        return self._connection

    def open(self):
        """Paksa buka sesi sekarang (bukan cuma konfigurasi)."""
        return self.connection

    def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            if self._connection is not None:
                self._connection.close()
        finally:
            self._connection = None
            if self._owns_engine:
                self._engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        state = "closed" if self._closed else "open"
        return f"<ConnectionHandle {self.name} ({state})>"


class ConnectionManager:
    def __init__(self, registry: ConnectionRegistry = None, engine_factory: EngineFactory = None,
                 connect_timeout: int = DB_CONNECT_TIMEOUT):
        self.registry = registry
        self._engine_factory = engine_factory or partial(build_engine, connect_timeout=connect_timeout)

    def connect(self, target: TargetDescriptor) -> Optional[ConnectionHandle]:
        # Belum ada host / nama database -> bukan error, cuma belum dikonfigurasi
        if not target.has_database():
            return None

        name = target.connection_name
        if self.registry is not None:
            return ConnectionHandle(name, self.registry.acquire(target), owns_engine=False)
        return ConnectionHandle(name, self._engine_factory(target, pooled=False), owns_engine=True)

    def test_connection(self, target: TargetDescriptor) -> ConnectionStatus:
        try:
            handle = self.connect(target)
        except Exception as e:
            logger.warning("[DB] Invalid connection settings for %s: %s", target.connection_name, type(e).__name__)
            return ConnectionStatus(False, sanitize_error(e))

        if handle is None:
            return ConnectionStatus(False, NOT_CONFIGURED)

        try:
            handle.open()
            return ConnectionStatus(True, None)
        except Exception as e:
            category = sanitize_error(e)
            logger.warning("[DB] Connection test failed for %s (%s): %s", handle.name, target.host, category)
            return ConnectionStatus(False, category)
        finally:
            handle.close()

    @contextmanager
    def session(self, target: TargetDescriptor):
        """
        connect -> yield handle -> close, di semua jalur keluar.

        Yield None kalau target belum dikonfigurasi. Gagal connect jadi
        ConnectionFailure dengan kategori yang sudah disanitasi.
        """
        try:
            handle = self.connect(target)
        except Exception as e:
            raise ConnectionFailure(sanitize_error(e)) from None

        if handle is None:
            yield None
            return

        try:
            try:
                handle.open()
            except Exception as e:
                category = sanitize_error(e)
                logger.warning("[DB] Cannot open %s (%s): %s", handle.name, target.host, category)
                raise ConnectionFailure(category) from None
            yield handle
        finally:
            handle.close()

    def disconnect(self, target: TargetDescriptor) -> bool:
        """Hapus registrasi target. Aman dipanggil berkali-kali."""
        if self.registry is None:
            return False
        return self.registry.purge(target.connection_name)
