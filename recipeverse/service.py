"""Recipe use cases: validation, persistence and media association.

Media Store failures never undo a successful Data Store write. Uploads are
committed before the record that references them, and stale assets are only
released once the record no longer points at them.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import structlog
from werkzeug.datastructures import FileStorage

from .errors import Forbidden, Internal, NotFound, RecipeVerseError
from .listing import ListingQuery, build_page
from .media import check_image, has_upload
from .models import AuthorSummary, Comment, Recipe, RecipePage
from .storage import MediaStore, RecipeRepository, UserRepository
from .validation import check_id, validate_comment, validate_rating, validate_recipe

logger = structlog.get_logger(__name__)


def can_modify(owner_id: Optional[str], actor_id: Optional[str]) -> bool:
    """Only the owner of a resource may change or remove it."""
    return bool(owner_id) and owner_id == actor_id


class RecipeService:
    def __init__(self, recipes: RecipeRepository, users: UserRepository, media: MediaStore) -> None:
        self._recipes = recipes
        self._users = users
        self._media = media

    def list_recipes(self, query: ListingQuery) -> RecipePage:
        candidates = self._recipes.query_recipes(tag=query.tag)
        return build_page(candidates, query, self._authors)

    def get_recipe(self, recipe_id: str) -> Dict[str, Any]:
        recipe = self._recipes.get_recipe(check_id(recipe_id))
        return self._detail(recipe)

    def create_recipe(
        self,
        payload: Mapping[str, Any],
        author_id: str,
        image: FileStorage | None = None,
    ) -> Dict[str, Any]:
        draft = validate_recipe(payload).unwrap()
        if has_upload(image):
            check_image(image)

        image_url = self._media.upload(image) if has_upload(image) else None
        try:
            recipe = self._recipes.add_recipe(draft, author_id=author_id, image_url=image_url)
        except Exception as exc:
            logger.exception("recipe_create_failed", author_id=author_id)
            if image_url:
                self._release(image_url, reason="create_failed")
            if isinstance(exc, RecipeVerseError):
                raise
            raise Internal("Failed to create recipe") from exc

        logger.info("recipe_created", recipe_id=recipe.id, author_id=author_id)
        return self._detail(recipe)

    def update_recipe(
        self,
        recipe_id: str,
        payload: Mapping[str, Any],
        actor_id: str,
        image: FileStorage | None = None,
    ) -> Dict[str, Any]:
        check_id(recipe_id)
        draft = validate_recipe(payload).unwrap()
        if has_upload(image):
            check_image(image)

        current = self._recipes.get_recipe(recipe_id)
        if not can_modify(current.author_id, actor_id):
            raise Forbidden("Not authorized to edit this recipe")

        new_url = self._media.upload(image) if has_upload(image) else None
        try:
            recipe = self._recipes.update_recipe(
                recipe_id, draft, image_url=new_url or current.image_url
            )
        except Exception as exc:
            logger.exception("recipe_update_failed", recipe_id=recipe_id)
            if new_url:
                self._release(new_url, reason="update_failed")
            if isinstance(exc, RecipeVerseError):
                raise
            raise Internal("Failed to update recipe") from exc

        if new_url and current.image_url:
            self._release(current.image_url, reason="image_replaced")

        logger.info("recipe_updated", recipe_id=recipe_id)
        return self._detail(recipe)

    def delete_recipe(self, recipe_id: str, actor_id: str) -> None:
        recipe = self._recipes.get_recipe(check_id(recipe_id))
        if not can_modify(recipe.author_id, actor_id):
            raise Forbidden("Not authorized to delete this recipe")

        self._recipes.delete_recipe(recipe_id)
        if recipe.image_url:
            self._release(recipe.image_url, reason="recipe_deleted")
        logger.info("recipe_deleted", recipe_id=recipe_id)

    def toggle_like(self, recipe_id: str, user_id: str) -> Tuple[bool, int]:
        return self._recipes.toggle_like(check_id(recipe_id), user_id)

    def rate_recipe(self, recipe_id: str, user_id: str, value: Any) -> Recipe:
        rating = validate_rating(value)
        return self._recipes.set_rating(check_id(recipe_id), user_id, rating)

    def add_comment(self, recipe_id: str, user_id: str, text: Any) -> Dict[str, Any]:
        comment = Comment(
            id=uuid.uuid4().hex,
            author_id=user_id,
            text=validate_comment(text),
            created_at=datetime.now(timezone.utc),
        )
        recipe = self._recipes.add_comment(check_id(recipe_id), comment)
        authors = self._authors(c.author_id for c in recipe.comments)
        return {
            "comments": [
                c.to_dict(authors.get(c.author_id)) for c in recipe.comments_newest_first()
            ],
            "commentsCount": recipe.comments_count,
        }

    def delete_comment(self, recipe_id: str, comment_id: str, actor_id: str) -> None:
        recipe = self._recipes.get_recipe(check_id(recipe_id))
        comment = recipe.find_comment(check_id(comment_id, "comment"))
        if comment is None:
            raise NotFound("Comment not found")

        if not (can_modify(comment.author_id, actor_id) or can_modify(recipe.author_id, actor_id)):
            raise Forbidden("Not authorized")
        self._recipes.delete_comment(recipe_id, comment_id)

    def _authors(self, user_ids: Iterable[str]) -> Dict[str, AuthorSummary]:
        return {uid: user.summary() for uid, user in self._users.get_users(user_ids).items()}

    def _detail(self, recipe: Recipe) -> Dict[str, Any]:
        authors = self._authors({recipe.author_id, *(c.author_id for c in recipe.comments)})
        return recipe.to_dict(author=authors.get(recipe.author_id), comment_authors=authors)

    def _release(self, url: str, *, reason: str) -> None:
        try:
            self._media.delete(url)
        except Exception:
            logger.warning("media_release_failed", url=url, reason=reason, exc_info=True)


__all__ = ["RecipeService", "can_modify"]
