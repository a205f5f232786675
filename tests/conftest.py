from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from factories import TEST_SECRET
from memory import InMemoryMediaStore, InMemoryRecipeStorage, InMemoryUserStorage
from recipeverse import create_app
from recipeverse.auth import IdentityVerifier
from recipeverse.settings import Settings


@pytest.fixture
def stores():
    return SimpleNamespace(
        recipes=InMemoryRecipeStorage(),
        users=InMemoryUserStorage(),
        media=InMemoryMediaStore(),
    )


@pytest.fixture
def identity():
    # Minimum bcrypt cost keeps the suite fast.
    return IdentityVerifier(TEST_SECRET, rounds=4)


@pytest.fixture
def settings():
    return Settings(jwt_secret=TEST_SECRET, log_level="WARNING")


@pytest.fixture
def app(stores, identity, settings):
    app = create_app(
        stores.recipes,
        stores.users,
        stores.media,
        settings=settings,
        identity=identity,
    )
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(client):
    """Register an account through the API and return its id and auth headers."""

    def _make_user(username: str, password: str = "secret123"):
        response = client.post(
            "/api/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": password},
        )
        assert response.status_code == 201, response.get_json()
        body = response.get_json()
        return SimpleNamespace(
            id=body["user"]["id"],
            token=body["token"],
            headers={"Authorization": f"Bearer {body['token']}"},
        )

    return _make_user
