from collections.abc import Generator
from pathlib import Path

import pytest

from dbconnector.core.config import DatabaseSection, Settings
from dbconnector.core.db import DatabaseService


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'app.db'}"


@pytest.fixture
def store() -> Settings:
    return Settings(database=DatabaseSection())


@pytest.fixture
def service(store: Settings) -> Generator[DatabaseService, None, None]:
    svc = DatabaseService(store=store)
    yield svc
    svc.dispose()
