from __future__ import annotations

from datetime import timedelta

from factories import TEST_SECRET
from memory import InMemoryMediaStore, InMemoryRecipeStorage, InMemoryUserStorage
from recipeverse import create_app
from recipeverse.auth import IdentityVerifier
from recipeverse.settings import Settings


def test_index_reports_status(client):
    response = client.get("/")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "online"
    assert body["environment"] == "development"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nowhere")

    assert response.status_code == 404
    assert response.get_json() == {
        "success": False,
        "message": "Route not found",
        "path": "/api/nowhere",
    }


def test_request_id_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "abc-123"})

    assert response.headers["X-Request-ID"] == "abc-123"
    assert client.get("/").headers["X-Request-ID"]


def test_invalid_and_expired_tokens_are_rejected(client, make_user):
    alice = make_user("alice")
    expired = IdentityVerifier(TEST_SECRET, expires=timedelta(seconds=-10)).sign(alice.id)
    forged = IdentityVerifier("another-secret").sign(alice.id)

    expired_response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    forged_response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})

    assert expired_response.status_code == 401
    assert expired_response.get_json()["message"] == "Token expired - please login again"
    assert forged_response.status_code == 401
    assert forged_response.get_json()["message"] == "Invalid token"


def test_token_for_deleted_user_is_rejected(client):
    token = IdentityVerifier(TEST_SECRET).sign("ghost")

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.get_json()["message"] == "User not found - token invalid"


def _app_with_failing_route(environment: str):
    app = create_app(
        InMemoryRecipeStorage(),
        InMemoryUserStorage(),
        InMemoryMediaStore(),
        settings=Settings(jwt_secret=TEST_SECRET, environment=environment, log_level="CRITICAL"),
    )
    app.config.update(TESTING=True)

    @app.get("/boom")
    def boom():
        raise RuntimeError("database exploded")

    return app.test_client()


def test_unexpected_errors_include_stack_only_outside_production():
    dev = _app_with_failing_route("development").get("/boom")
    prod = _app_with_failing_route("production").get("/boom")

    assert dev.status_code == prod.status_code == 500
    assert dev.get_json()["message"] == "Internal server error"
    assert "database exploded" in "".join(dev.get_json()["stack"])
    assert prod.get_json() == {"success": False, "message": "Internal server error"}


def test_cors_allows_local_frontend(client):
    response = client.get("/", headers={"Origin": "http://localhost:5173"})

    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
