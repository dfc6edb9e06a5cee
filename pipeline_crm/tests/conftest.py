"""Fixtures partagées: base MongoDB en mémoire par test."""

import pytest
from mongomock_motor import AsyncMongoMockClient

from pipeline_crm import config


@pytest.fixture(autouse=True)
def mock_db():
    """Chaque test part d'une base vide."""
    database = AsyncMongoMockClient()["test_pipeline"]
    config.set_db(database)
    yield database
    config.set_db(None)


@pytest.fixture
def api_client(mock_db):
    from fastapi.testclient import TestClient
    from pipeline_crm.server import app

    return TestClient(app)
