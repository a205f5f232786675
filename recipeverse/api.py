"""JSON endpoints for auth, recipes and users."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, g, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .auth import login_required
from .context import get_context
from .listing import ListingQuery

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
recipes_bp = Blueprint("recipes", __name__, url_prefix="/api/recipes")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")

# Storage and enablement come from app config in create_app.
limiter = Limiter(get_remote_address)


def _payload() -> Dict[str, Any]:
    """Request body as a plain dict, from JSON or (multipart) form fields."""
    if request.is_json:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}
    return request.form.to_dict()


# -- auth ---------------------------------------------------------------------


@auth_bp.post("/register")
def register():
    body = _payload()
    result = get_context().user_service.register(
        body.get("username"), body.get("email"), body.get("password")
    )
    return (
        jsonify(success=True, message="Account created successfully", **result),
        201,
    )


@auth_bp.post("/login")
def login():
    body = _payload()
    result = get_context().user_service.login(body.get("email"), body.get("password"))
    return jsonify(success=True, **result)


@auth_bp.get("/me")
@login_required
def auth_me():
    return jsonify(success=True, user=g.user.to_public())


@auth_bp.post("/logout")
def logout():
    # Tokens are stateless; the client simply discards its copy.
    return jsonify(success=True, message="Logged out")


# -- recipes ------------------------------------------------------------------


@recipes_bp.get("")
def list_recipes():
    page = get_context().recipe_service.list_recipes(ListingQuery.from_args(request.args))
    return jsonify(page.to_dict())


@recipes_bp.get("/<recipe_id>")
def get_recipe(recipe_id: str):
    return jsonify(get_context().recipe_service.get_recipe(recipe_id))


@recipes_bp.post("")
@limiter.limit(
    lambda: get_context().settings.recipe_create_limit,
    error_message="Too many recipe creation attempts, please try again later.",
)
@login_required
def create_recipe():
    recipe = get_context().recipe_service.create_recipe(
        _payload(), g.user.id, request.files.get("image")
    )
    return (
        jsonify(success=True, recipe=recipe, message="Recipe created successfully!"),
        201,
    )


@recipes_bp.put("/<recipe_id>")
@login_required
def update_recipe(recipe_id: str):
    recipe = get_context().recipe_service.update_recipe(
        recipe_id, _payload(), g.user.id, request.files.get("image")
    )
    return jsonify(success=True, recipe=recipe, message="Recipe updated successfully!")


@recipes_bp.delete("/<recipe_id>")
@login_required
def delete_recipe(recipe_id: str):
    get_context().recipe_service.delete_recipe(recipe_id, g.user.id)
    return jsonify(success=True, message="Recipe deleted successfully!")


@recipes_bp.post("/<recipe_id>/like")
@login_required
def like_recipe(recipe_id: str):
    liked, count = get_context().recipe_service.toggle_like(recipe_id, g.user.id)
    return jsonify(success=True, liked=liked, likesCount=count)


@recipes_bp.post("/<recipe_id>/rate")
@login_required
def rate_recipe(recipe_id: str):
    recipe = get_context().recipe_service.rate_recipe(
        recipe_id, g.user.id, _payload().get("value")
    )
    return jsonify(
        success=True,
        avgRating=round(recipe.average_rating(), 1),
        ratingsCount=recipe.ratings_count,
        userRated=True,
    )


@recipes_bp.post("/<recipe_id>/comment")
@login_required
def comment_recipe(recipe_id: str):
    result = get_context().recipe_service.add_comment(
        recipe_id, g.user.id, _payload().get("text")
    )
    return jsonify(success=True, **result)


@recipes_bp.delete("/<recipe_id>/comment/<comment_id>")
@login_required
def delete_comment(recipe_id: str, comment_id: str):
    get_context().recipe_service.delete_comment(recipe_id, comment_id, g.user.id)
    return jsonify(success=True, message="Comment deleted")


# -- users --------------------------------------------------------------------


@users_bp.get("/me")
@login_required
def users_me():
    return jsonify(g.user.to_public())


@users_bp.patch("/me")
@login_required
def update_me():
    user = get_context().user_service.update_profile(g.user, _payload())
    return jsonify(message="Profile updated successfully", user=user.to_public())


@users_bp.get("/search")
def search_users():
    users = get_context().user_service.search(request.args.get("q"), request.args.get("limit"))
    return jsonify(users)


@users_bp.get("/<user_id>")
def user_profile(user_id: str):
    return jsonify(get_context().user_service.profile(user_id))


@users_bp.post("/<user_id>/follow")
@login_required
def follow_user(user_id: str):
    return jsonify(get_context().user_service.toggle_follow(g.user.id, user_id))


BLUEPRINTS = (auth_bp, recipes_bp, users_bp)

__all__ = ["BLUEPRINTS", "limiter"]
