"""Pytest fixtures shared across the test suite."""

import os
import tempfile

# catalog_service.app builds its engine at import time
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.mkdtemp(), "catalog-test.db"),
)
os.environ.setdefault("SERVICE_API_KEY", "test-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from catalog_service.models import Base


@pytest.fixture
def session_factory(tmp_path):
    """A fresh SQLite catalog per test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'catalog.db'}", future=True)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    from catalog_service.pipeline import wait_for_contributions

    wait_for_contributions(timeout=5)
    engine.dispose()


@pytest.fixture
def catalog_app():
    from catalog_service import app as app_module

    Base.metadata.drop_all(app_module.engine)
    Base.metadata.create_all(app_module.engine)
    app_module.app.config["TESTING"] = True
    yield app_module


@pytest.fixture
def catalog_client(catalog_app):
    return catalog_app.app.test_client()


@pytest.fixture
def lookup_app():
    from lookup_service import app as app_module

    app_module.app.config["TESTING"] = True
    return app_module


@pytest.fixture
def lookup_client(lookup_app):
    return lookup_app.app.test_client()


@pytest.fixture
def api_headers():
    return {"X-API-Key": os.environ["SERVICE_API_KEY"]}


@pytest.fixture(autouse=True)
def settle_contributions():
    """Mapping submissions run on a background pool; let them land."""
    from catalog_service.pipeline import wait_for_contributions

    yield
    wait_for_contributions(timeout=5)
