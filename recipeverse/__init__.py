import atexit
import traceback
from datetime import datetime, timezone
from typing import Optional

import structlog
from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .api import BLUEPRINTS, limiter
from .auth import IdentityVerifier
from .context import EXTENSION_KEY, AppContext
from .errors import RecipeVerseError
from .logging import configure_logging, install_request_logging
from .media import MAX_IMAGE_BYTES
from .models import Recipe
from .service import RecipeService
from .settings import Settings
from .storage import MediaStore, RecipeRepository, UserRepository
from .users import UserService

try:
    from google.cloud import firestore

    from .gcp_storage import FirestoreRecipeStorage, FirestoreUserStorage, GcsMediaStore
except ImportError:  # pragma: no cover - allows running tests without optional deps
    firestore = None  # type: ignore[assignment]

logger = structlog.get_logger(__name__)


def create_app(
    recipes: Optional[RecipeRepository] = None,
    users: Optional[UserRepository] = None,
    media: Optional[MediaStore] = None,
    *,
    settings: Optional[Settings] = None,
    identity: Optional[IdentityVerifier] = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    recipes, users, media:
        Optional storage backends. Any that is ``None`` is built from
        Firestore / Cloud Storage configured through environment variables.
    settings:
        Runtime configuration; defaults to :meth:`Settings.from_env`.
    identity:
        Token and password helper; defaults to one built from ``settings``.
    """

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    # Slightly above the image cap so oversized images reach the validator.
    app.config["MAX_CONTENT_LENGTH"] = MAX_IMAGE_BYTES + 1024 * 1024
    app.config["RATELIMIT_STORAGE_URI"] = settings.rate_limit_storage_uri

    if recipes is None or users is None or media is None:
        if firestore is None:
            raise RuntimeError(
                "google-cloud-firestore is not installed. Install the Google Cloud "
                "dependencies or pass explicit storage backends to create_app."
            )
        if recipes is None or users is None:
            client = firestore.Client(project=settings.gcp_project)
            atexit.register(client.close)
            if recipes is None:
                recipes = FirestoreRecipeStorage.from_settings(client, settings)
            if users is None:
                users = FirestoreUserStorage.from_settings(client, settings)
        if media is None:
            media = GcsMediaStore.from_settings(settings)

    identity = identity or IdentityVerifier.from_settings(settings)
    app.extensions[EXTENSION_KEY] = AppContext(
        settings=settings,
        recipes=recipes,
        users=users,
        media=media,
        identity=identity,
        recipe_service=RecipeService(recipes, users, media),
        user_service=UserService(users, recipes, identity),
    )

    CORS(app, origins=[settings.cors_origin], supports_credentials=True)
    install_request_logging(app)
    limiter.init_app(app)
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
    _register_error_handlers(app, settings)

    @app.get("/")
    def index():
        return jsonify(
            message="RecipeVerse Backend is running!",
            status="online",
            environment=settings.environment,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    logger.info("app_started", environment=settings.environment)
    return app


def _register_error_handlers(app: Flask, settings: Settings) -> None:
    @app.errorhandler(RecipeVerseError)
    def _domain_error(exc: RecipeVerseError):
        return jsonify(success=False, message=exc.message), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        if exc.code == 404:
            return jsonify(success=False, message="Route not found", path=request.path), 404
        if exc.code == 413:
            return jsonify(success=False, message="File size too large. Maximum 5MB allowed."), 400
        if exc.code == 429:
            logger.warning("rate_limited", path=request.path, client=request.remote_addr)
        return jsonify(success=False, message=exc.description), exc.code

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        logger.error("unhandled_error", exc_info=exc, method=request.method, path=request.path)
        body = {"success": False, "message": "Internal server error"}
        if not settings.is_production:
            body["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return jsonify(body), 500


__all__ = ["create_app", "Recipe"]
