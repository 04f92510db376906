"""Shared test fixtures."""

from pathlib import Path

import pytest

from gofinances.database.repository import Repository

# Test fixture config directory with synthetic settings
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

MIGRATIONS_DIR = Path(__file__).parent.parent / "gofinances" / "database" / "migrations"

CSV_HEADER = "title,type,value,category\n"


@pytest.fixture
def fixture_config_dir() -> Path:
    return FIXTURE_CONFIG_DIR


@pytest.fixture
def migrations_dir() -> Path:
    return MIGRATIONS_DIR


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    yield r
    r.close()


@pytest.fixture
def write_csv(tmp_path):
    """Write a transaction CSV with the standard header and given rows."""

    def _write(rows: str = "", filename: str = "transactions.csv", header: str = CSV_HEADER) -> Path:
        f = tmp_path / filename
        f.write_text(header + rows)
        return f

    return _write
