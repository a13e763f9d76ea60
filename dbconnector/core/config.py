"""
Connection configuration.

Two ways to describe a database:

* ``MySQLConfig`` - a value built by the caller (code, JSON or YAML file),
  holding either a full ``data_source`` descriptor or discrete fields.
* ``get_settings()`` - the process-wide key-value store (pydantic-settings),
  loaded on first use and read by the store-based path. Its ``database``
  section carries the ``database.host`` ... ``database.loc`` keys.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .errors import InvalidConfigError, MissingRequiredFieldError

DEFAULT_PORT = 3306
DEFAULT_CHARSET = "utf8mb4"
DEFAULT_LOC = "Local"

CONFIG_FILE_ENV = "DBCONNECTOR_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.yaml"


def _empty_if_none(value: Any) -> Any:
    # YAML "password:" with no value loads as None
    return "" if value is None else value


class MySQLConfig(BaseModel):
    """Connection parameters: a full descriptor or discrete fields."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    data_source: str = Field(
        default="", validation_alias=AliasChoices("dataSource", "DataSource", "data_source")
    )
    host: str = Field(default="", validation_alias=AliasChoices("host", "Host"))
    port: int = Field(default=0, validation_alias=AliasChoices("port", "Port"))
    user: str = Field(default="", validation_alias=AliasChoices("user", "User"))
    password: str = Field(default="", validation_alias=AliasChoices("password", "Password"))
    db_name: str = Field(
        default="", validation_alias=AliasChoices("dbName", "DBName", "db_name", "dbname")
    )
    charset: str = Field(default="", validation_alias=AliasChoices("charset", "Charset"))
    parse_time: bool = Field(
        default=False, validation_alias=AliasChoices("parseTime", "ParseTime", "parse_time")
    )
    loc: str = Field(default="", validation_alias=AliasChoices("loc", "Loc"))

    @field_validator("data_source", "host", "user", "password", "db_name", "charset", "loc", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return _empty_if_none(value)

    @field_validator("port", mode="before")
    @classmethod
    def _none_to_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def has_data_source(self) -> bool:
        return bool(self.data_source.strip())

    def check_required(self, names: dict[str, str] | None = None) -> None:
        """
        Raise MissingRequiredFieldError for the first empty required field.

        ``names`` maps attribute -> reported key, so the store path can report
        ``database.dbname`` instead of ``db_name``.
        """
        names = names or {"host": "host", "user": "user", "db_name": "dbName"}
        for attr in ("host", "user", "db_name"):
            if not getattr(self, attr):
                raise MissingRequiredFieldError(names[attr])

    def with_defaults(self) -> "MySQLConfig":
        """Return a copy with zero-valued port/charset/loc replaced by defaults."""
        return self.model_copy(
            update={
                "port": self.port or DEFAULT_PORT,
                "charset": self.charset or DEFAULT_CHARSET,
                "loc": self.loc or DEFAULT_LOC,
            }
        )


def load_config(path: str | Path) -> MySQLConfig:
    """
    Load a MySQLConfig from a YAML (.yaml/.yml) or JSON file.

    A top-level ``database`` or ``mysql`` section is unwrapped when present.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise InvalidConfigError(f"Cannot read config file {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise InvalidConfigError(f"Config file {path} must contain a mapping")
    for section in ("database", "mysql"):
        if isinstance(raw.get(section), dict):
            raw = raw[section]
            break

    try:
        return MySQLConfig.model_validate(raw)
    except ValidationError as e:
        raise InvalidConfigError(f"Invalid config in {path}: {e}") from e


# ---------------------------------------------------------------------------
# Key-value store (database.* keys)
# ---------------------------------------------------------------------------


class DatabaseSection(BaseModel):
    """The ``database.*`` keys of the store; missing keys read as zero values."""

    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    dbname: str = Field(default="", validation_alias=AliasChoices("dbname", "dbName", "db_name"))
    charset: str = ""
    parse_time: bool = Field(
        default=False, validation_alias=AliasChoices("parseTime", "parsetime", "parse_time")
    )
    loc: str = ""
    echo: bool = False
    connect_timeout: int = 10

    @field_validator("host", "user", "password", "dbname", "charset", "loc", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return _empty_if_none(value)

    def to_config(self) -> MySQLConfig:
        return MySQLConfig(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            db_name=self.dbname,
            charset=self.charset,
            parse_time=self.parse_time,
            loc=self.loc,
        )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSection = Field(default_factory=DatabaseSection)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_file = os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
            file_secret_settings,
        )


_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Return the process-wide settings store, loaded on first use."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                try:
                    _settings = Settings()
                except ValidationError as e:
                    raise InvalidConfigError(f"Invalid database settings: {e}") from e
    return _settings
