"""
Connection bootstrap: configuration, DSN building, pooled engine, auto-migration.
"""

from .config import MySQLConfig, Settings, get_settings, load_config
from .db import (
    CONN_MAX_LIFETIME,
    MAX_IDLE_CONNS,
    MAX_OPEN_CONNS,
    DatabaseService,
    DatabaseState,
    get_database,
    register_models,
)
from .dsn import build_dsn, build_dsn_from_store, to_sqlalchemy_url
from .errors import (
    ConnectionOpenError,
    DatabaseUnavailableError,
    DBConnectorError,
    InvalidConfigError,
    InvalidModelError,
    MigrationError,
    MissingRequiredFieldError,
    PoolConfigError,
)
from .health import check_database, ping
from .migrate import ModelRegistry, auto_migrate

__all__ = [
    "MySQLConfig",
    "Settings",
    "load_config",
    "get_settings",
    "CONN_MAX_LIFETIME",
    "MAX_IDLE_CONNS",
    "MAX_OPEN_CONNS",
    "DatabaseService",
    "DatabaseState",
    "get_database",
    "register_models",
    "build_dsn",
    "build_dsn_from_store",
    "to_sqlalchemy_url",
    "DBConnectorError",
    "InvalidConfigError",
    "MissingRequiredFieldError",
    "ConnectionOpenError",
    "PoolConfigError",
    "MigrationError",
    "DatabaseUnavailableError",
    "InvalidModelError",
    "check_database",
    "ping",
    "ModelRegistry",
    "auto_migrate",
]
