"""Shared test fixtures for package_registry."""

from pathlib import Path
from typing import Any

import pytest

from package_registry.ingestion import TopicIngestor, VersionIngestor
from package_registry.models import PackageVersion
from package_registry.store import RegistryStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the directory holding sample DESCRIPTION and Rd files."""
    return FIXTURES_DIR


@pytest.fixture
def description_path() -> Path:
    return FIXTURES_DIR / "DESCRIPTION"


@pytest.fixture
def rd_path() -> Path:
    return FIXTURES_DIR / "geom_point.Rd"


@pytest.fixture
def description_text(description_path: Path) -> str:
    """Sample DESCRIPTION manifest for ggplot2 3.4.2."""
    return description_path.read_text(encoding="utf-8")


@pytest.fixture
def rd_text(rd_path: Path) -> str:
    """Sample Rd file documenting geom_point."""
    return rd_path.read_text(encoding="utf-8")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "registry.db"


@pytest.fixture
def store(db_path: Path) -> RegistryStore:
    """Create a RegistryStore backed by a temporary database."""
    return RegistryStore(db_path=db_path)


@pytest.fixture
def version_ingestor(store: RegistryStore) -> VersionIngestor:
    return VersionIngestor(store)


@pytest.fixture
def topic_ingestor(store: RegistryStore) -> TopicIngestor:
    return TopicIngestor(store)


@pytest.fixture
def manifest() -> dict[str, Any]:
    """Minimal valid manifest as a parsed field mapping."""
    return {
        "PackageName": "tibble",
        "Version": "3.2.1",
        "Title": "Simple Data Frames",
        "Description": "Provides a 'tbl_df' class.",
        "License": "MIT + file LICENSE",
        "Maintainer": "Kirill Muller <kirill@example.com>",
        "Date": "2023-03-20",
    }


@pytest.fixture
def ingested_version(version_ingestor: VersionIngestor, description_text: str) -> PackageVersion:
    """Ingest the sample DESCRIPTION and return the stored version."""
    return version_ingestor.create(description_text)
