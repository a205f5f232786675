"""The collaborators built at startup and shared by every request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flask import current_app

if TYPE_CHECKING:  # pragma: no cover
    from .auth import IdentityVerifier
    from .service import RecipeService
    from .settings import Settings
    from .storage import MediaStore, RecipeRepository, UserRepository
    from .users import UserService

EXTENSION_KEY = "recipeverse"


@dataclass
class AppContext:
    settings: "Settings"
    recipes: "RecipeRepository"
    users: "UserRepository"
    media: "MediaStore"
    identity: "IdentityVerifier"
    recipe_service: "RecipeService"
    user_service: "UserService"


def get_context() -> AppContext:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["AppContext", "EXTENSION_KEY", "get_context"]
