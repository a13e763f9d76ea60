"""
Connection descriptor (DSN) helpers.

Descriptors use the go-sql-driver/mysql syntax so existing deployment
configs keep working:

    user[:password]@tcp(host:port)/dbname?charset=utf8mb4&parseTime=true&loc=Local

``to_sqlalchemy_url`` converts that syntax into a ``mysql+pymysql`` URL.
"""

import logging
import math
import re
from urllib.parse import parse_qsl

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from . import config as config_module
from .config import MySQLConfig, Settings
from .errors import ConnectionOpenError

logger = logging.getLogger(__name__)

MYSQL_DRIVER = "mysql+pymysql"

# attribute on MySQLConfig -> key reported when the store lacks it
STORE_KEYS = {
    "host": "database.host",
    "user": "database.user",
    "db_name": "database.dbname",
}

_DEFAULT_ADDR = "127.0.0.1:3306"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _format_dsn(config: MySQLConfig) -> str:
    credentials = f"{config.user}:{config.password}" if config.password else config.user
    parse_time = "true" if config.parse_time else "false"
    return (
        f"{credentials}@tcp({config.host}:{config.port})/{config.db_name}"
        f"?charset={config.charset}&parseTime={parse_time}&loc={config.loc}"
    )


def build_dsn(config: MySQLConfig) -> str:
    """
    Return the connection descriptor for *config*.

    A non-empty ``data_source`` wins and is returned verbatim; otherwise
    host/user/db_name are required and port/charset/loc get defaults.
    """
    if config.has_data_source:
        return config.data_source
    config.check_required()
    return _format_dsn(config.with_defaults())


def build_dsn_from_store(store: Settings | None = None) -> str:
    """Build the descriptor from the ``database.*`` keys of the settings store."""
    store = store if store is not None else config_module.get_settings()
    config = store.database.to_config()
    config.check_required(STORE_KEYS)
    return _format_dsn(config.with_defaults())


# ---------------------------------------------------------------------------
# Descriptor -> SQLAlchemy URL
# ---------------------------------------------------------------------------


def _split_addr(addr: str) -> tuple[str, int | None]:
    host, sep, port = addr.rpartition(":")
    if not sep or "]" in port:
        return addr.strip("[]"), None
    if not port:
        return host.strip("[]"), None
    try:
        return host.strip("[]"), int(port)
    except ValueError as e:
        raise ConnectionOpenError(f"Invalid port in address '{addr}'") from e


def _duration_seconds(value: str) -> int:
    """Convert a Go duration (``30s``, ``1m30s``, ``500ms``) to whole seconds, at least 1."""
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if not value or pos != len(value):
        raise ConnectionOpenError(f"Invalid DSN: cannot parse timeout duration '{value}'")
    return max(1, math.ceil(total))


def _parse_go_dsn(dsn: str) -> URL:
    base, _, raw_query = dsn.partition("?")
    head, slash, database = base.rpartition("/")
    if not slash:
        raise ConnectionOpenError("Invalid DSN: missing the slash separating the database name")

    credentials, at, net_addr = head.rpartition("@")
    if not at:
        credentials, net_addr = "", head
    user, _, password = credentials.partition(":")

    net, paren, addr = net_addr.partition("(")
    if paren:
        if not addr.endswith(")"):
            raise ConnectionOpenError("Invalid DSN: network address not terminated (missing closing brace)")
        addr = addr[:-1]
    net = net or "tcp"

    query: dict[str, str] = {}
    host: str | None = None
    port: int | None = None
    if net == "unix":
        query["unix_socket"] = addr
    elif net == "tcp":
        host, port = _split_addr(addr or _DEFAULT_ADDR)
    else:
        raise ConnectionOpenError(f"Invalid DSN: unsupported network '{net}'")

    for key, value in parse_qsl(raw_query, keep_blank_values=True):
        if key == "charset":
            query["charset"] = value
        elif key == "time_zone":
            query["init_command"] = f"SET time_zone = {value}"
        elif key == "timeout":
            query["connect_timeout"] = str(_duration_seconds(value))
        else:
            # parseTime and loc only steer go-sql-driver's client-side time parsing
            logger.debug("Ignoring DSN parameter %s", key)

    return URL.create(
        MYSQL_DRIVER,
        username=user or None,
        password=password or None,
        host=host,
        port=port,
        database=database or None,
        query=query,
    )


def to_sqlalchemy_url(descriptor: str) -> URL:
    """
    Translate a connection descriptor into a SQLAlchemy URL.

    Descriptors already in URL form (``dialect+driver://...``) pass through.
    """
    if "://" in descriptor:
        try:
            return make_url(descriptor)
        except (ArgumentError, ValueError) as e:
            raise ConnectionOpenError(f"Invalid database URL: {e}") from e
    return _parse_go_dsn(descriptor)
