"""
Exceptions raised while configuring, opening and migrating the database.

Every error keeps the underlying driver/ORM exception as ``__cause__``
(raise ... from exc) so callers can inspect it.
"""


class DBConnectorError(Exception):
    """Base error for connection bootstrap failures."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class InvalidConfigError(DBConnectorError):
    """Configuration is missing or cannot produce a connection descriptor."""


class MissingRequiredFieldError(InvalidConfigError):
    """A required discrete field (host, user, database name) is empty."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field} is empty")


class ConnectionOpenError(DBConnectorError):
    """The engine could not be created or the first round trip failed."""


class PoolConfigError(DBConnectorError):
    """Pool limits were rejected by the engine's pool class."""


class MigrationError(DBConnectorError):
    """Auto-migration of the registered models failed."""


class DatabaseUnavailableError(DBConnectorError):
    """No live engine: not initialized yet, disposed, or the ping failed."""


class InvalidModelError(DBConnectorError, TypeError):
    """Object registered for migration is not a table descriptor."""
