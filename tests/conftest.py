"""
Pytest configuration and fixtures for the wine catalog tests.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import get_db, ensure_indexes
from main import app


@pytest.fixture(scope="function")
def test_db():
    """In-memory MongoDB database with the production indexes."""
    database = mongomock.MongoClient()["test-project-wine"]
    ensure_indexes(database)
    return database


@pytest.fixture(scope="function")
def client(test_db) -> TestClient:
    """Create a test client bound to the in-memory database."""
    app.dependency_overrides[get_db] = lambda: test_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def wine_payload() -> dict:
    return {
        "name": "Cloudy Bay",
        "description": "Zesty and tropical.",
        "price": 32,
        "variety": "Sauvignon Blanc",
        "country": "New Zealand",
    }


@pytest.fixture
def registered_user(client: TestClient) -> dict:
    """Register a user and return the registration response."""
    response = client.post("/register", json={"username": "testuser", "password": "secret123"})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def auth_headers(registered_user: dict) -> dict:
    return {"Authorization": registered_user["accessToken"]}
