"""
Shared test fixtures and helpers for the Corvid test suite.
"""

import pytest

from corvid.config import ODMConfig, configure, reset_settings
from corvid.db.engine import DocumentDatabase, reset_database, set_database
from corvid.models.registry import ModelRegistry


@pytest.fixture(autouse=True)
def reset_registry():
    """Reset ModelRegistry between tests to avoid cross-contamination."""
    old_models = ModelRegistry._models.copy()
    old_db = ModelRegistry._db
    yield
    ModelRegistry._models.clear()
    ModelRegistry._models.update(old_models)
    ModelRegistry._db = old_db


@pytest.fixture(autouse=True)
def default_settings():
    """Pin settings so CORVID_* variables in the environment don't leak in."""
    configure(ODMConfig())
    yield
    reset_settings()


@pytest.fixture
def memory_db():
    """A fresh in-memory database installed as the process default."""
    db = DocumentDatabase("memory://")
    set_database(db)
    yield db
    reset_database()

