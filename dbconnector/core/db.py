"""
Database service: owns the pooled engine and the registered models.

Opens a SQLAlchemy engine from a connection descriptor, applies the pool
limits, checks the connection with a round trip and auto-migrates the
registered models. The engine is swapped in only when all of that succeeds,
so a failed (re)initialization leaves the previous engine in place.
"""

import logging
import os
import threading
from collections.abc import Generator
from contextlib import contextmanager
from datetime import timedelta
from enum import Enum
from typing import Any, NoReturn

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import URL
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlmodel import Session

from . import config as config_module
from .config import MySQLConfig, Settings
from .dsn import build_dsn, build_dsn_from_store, to_sqlalchemy_url
from .errors import (
    ConnectionOpenError,
    DatabaseUnavailableError,
    InvalidConfigError,
    PoolConfigError,
)
from .health import ping
from .migrate import ModelRegistry, auto_migrate

logger = logging.getLogger(__name__)

MAX_IDLE_CONNS = 10
MAX_OPEN_CONNS = 100
CONN_MAX_LIFETIME = timedelta(hours=1)


class DatabaseState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class DatabaseService:
    """
    Single owner of the application's engine.

    Build one at startup (or use ``get_database()``) and hand it to the code
    that needs a connection. ``get_engine()`` raises
    ``DatabaseUnavailableError`` when there is no live engine; pass
    ``fatal=True`` (or construct with ``fatal_on_unavailable=True``) to exit
    the process instead.
    """

    def __init__(
        self,
        *,
        registry: ModelRegistry | None = None,
        store: Settings | None = None,
        fatal_on_unavailable: bool = False,
    ) -> None:
        self._registry = registry if registry is not None else ModelRegistry()
        self._store = store
        self._fatal_on_unavailable = fatal_on_unavailable
        self._engine: Engine | None = None
        self._lock = threading.Lock()
        self._init_lock = threading.Lock()

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def state(self) -> DatabaseState:
        with self._lock:
            ready = self._engine is not None
        return DatabaseState.READY if ready else DatabaseState.UNINITIALIZED

    @property
    def is_ready(self) -> bool:
        return self.state is DatabaseState.READY

    def _settings(self) -> Settings:
        return self._store if self._store is not None else config_module.get_settings()

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self, dsn: str) -> None:
        """Open the pooled engine for *dsn*, migrate models, then publish it."""
        if not dsn or not dsn.strip():
            raise InvalidConfigError("DSN is empty")
        url = to_sqlalchemy_url(dsn)

        with self._init_lock:
            engine = self._open_engine(url)
            try:
                self._check_connection(engine, url)
                auto_migrate(engine, self._registry.tables())
            except Exception:
                engine.dispose()
                raise
            with self._lock:
                previous, self._engine = self._engine, engine

        if previous is not None:
            previous.dispose()
        logger.info("Connected to database %s", url.render_as_string(hide_password=True))

    def initialize_with_dsn(self, dsn: str) -> None:
        self.initialize(dsn)

    def initialize_from_config(self, config: MySQLConfig | None) -> None:
        """Initialize from a MySQLConfig (full descriptor or discrete fields)."""
        if config is None:
            raise InvalidConfigError("MySQLConfig is None")
        self.initialize(build_dsn(config))

    def initialize_from_store(self, store: Settings | None = None) -> None:
        """Initialize from the ``database.*`` keys of the settings store."""
        self.initialize(build_dsn_from_store(store if store is not None else self._settings()))

    def _open_engine(self, url: URL) -> Engine:
        db_settings = self._settings().database
        kwargs: dict[str, Any] = {
            "pool_size": MAX_IDLE_CONNS,
            "max_overflow": MAX_OPEN_CONNS - MAX_IDLE_CONNS,
            "pool_recycle": int(CONN_MAX_LIFETIME.total_seconds()),
            "pool_pre_ping": True,
            "echo": db_settings.echo,
        }
        if url.get_backend_name() == "mysql" and "connect_timeout" not in url.query:
            kwargs["connect_args"] = {"connect_timeout": db_settings.connect_timeout}

        try:
            return create_engine(url, **kwargs)
        except NoSuchModuleError as e:
            raise ConnectionOpenError(f"Unsupported database driver '{url.drivername}'") from e
        except ImportError as e:
            raise ConnectionOpenError(f"Database driver for '{url.drivername}' is not installed: {e}") from e
        except ValueError as e:
            raise ConnectionOpenError(f"Invalid connection arguments: {e}") from e
        except (TypeError, ArgumentError) as e:
            raise PoolConfigError(f"Cannot apply pool limits: {e}") from e

    @staticmethod
    def _check_connection(engine: Engine, url: URL) -> None:
        try:
            ping(engine)
        except SQLAlchemyError as e:
            raise ConnectionOpenError(
                f"Failed to connect to {url.render_as_string(hide_password=True)}: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get_engine(self, *, fatal: bool | None = None) -> Engine:
        """Return the live engine after a ping round trip."""
        if fatal is None:
            fatal = self._fatal_on_unavailable
        with self._lock:
            engine = self._engine
        if engine is None:
            self._unavailable(
                "Database is not initialized, call initialize() first", None, fatal
            )
        try:
            ping(engine)
        except SQLAlchemyError as e:
            self._unavailable(f"Database connection lost: {e}", e, fatal)
        return engine

    @staticmethod
    def _unavailable(message: str, cause: Exception | None, fatal: bool) -> NoReturn:
        if fatal:
            logger.critical(message)
            _flush_logs()
            # os._exit ends the whole process even when called from a worker thread
            os._exit(1)
        raise DatabaseUnavailableError(message) from cause

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        with Session(self.get_engine()) as session:
            yield session

    def dispose(self) -> None:
        """Close pooled connections and return to the uninitialized state."""
        with self._lock:
            engine, self._engine = self._engine, None
        if engine is not None:
            engine.dispose()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def register_models(self, *models: Any) -> None:
        """
        Register table models for auto-migration on the next initialize.

        Models registered after initialization are kept but not migrated
        until ``auto_migrate()`` or the next ``initialize*`` call.
        """
        added = self._registry.register(*models)
        if added and self.is_ready:
            logger.warning(
                "%d model(s) registered after initialization; call auto_migrate() to apply",
                added,
            )

    def auto_migrate(self) -> int:
        """Migrate every registered model against the live engine."""
        return auto_migrate(self.get_engine(fatal=False), self._registry.tables())


def _flush_logs() -> None:
    for handler in logging.getLogger().handlers + logger.handlers:
        handler.flush()


_database: DatabaseService | None = None
_database_lock = threading.Lock()


def get_database() -> DatabaseService:
    """Return the process-wide DatabaseService (thread-safe double-checked locking)."""
    global _database
    if _database is None:
        with _database_lock:
            if _database is None:
                _database = DatabaseService()
    return _database


def register_models(*models: Any) -> None:
    """Register models on the process-wide service."""
    get_database().register_models(*models)
