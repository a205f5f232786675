from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Protocol, Tuple

from werkzeug.datastructures import FileStorage

from .models import Comment, Recipe, RecipeDraft, User


class RecipeRepository(Protocol):
    """Protocol describing the recipe persistence required by the services.

    Every mutating method is a single atomic operation on the underlying store.
    Missing recipes raise :class:`recipeverse.errors.NotFound`.
    """

    def add_recipe(self, draft: RecipeDraft, *, author_id: str, image_url: Optional[str]) -> Recipe:
        """Persist a new recipe with empty likes, ratings and comments."""

    def get_recipe(self, recipe_id: str) -> Recipe:
        """Return a single recipe."""

    def update_recipe(self, recipe_id: str, draft: RecipeDraft, *, image_url: Optional[str]) -> Recipe:
        """Replace the editable fields of a recipe; the author never changes."""

    def delete_recipe(self, recipe_id: str) -> None:
        """Remove the recipe record."""

    def query_recipes(self, *, tag: Optional[str] = None) -> Iterable[Recipe]:
        """Return candidate recipes, optionally restricted to one tag."""

    def recipes_by_author(self, author_id: str, *, limit: int) -> List[Recipe]:
        """Return an author's newest recipes."""

    def count_by_author(self, author_id: str) -> Tuple[int, int]:
        """Return ``(recipes, likes received)`` for an author."""

    def toggle_like(self, recipe_id: str, user_id: str) -> Tuple[bool, int]:
        """Flip the like of ``user_id`` and return ``(liked, likes count)``."""

    def set_rating(self, recipe_id: str, user_id: str, value: int) -> Recipe:
        """Insert or overwrite the rating of ``user_id``."""

    def add_comment(self, recipe_id: str, comment: Comment) -> Recipe:
        """Append a comment."""

    def delete_comment(self, recipe_id: str, comment_id: str) -> None:
        """Remove a comment by id."""


class UserRepository(Protocol):
    """Protocol describing user persistence. Missing users raise ``NotFound``."""

    def add_user(self, *, username: str, email: str, password_hash: str) -> User:
        """Persist a new account."""

    def get_user(self, user_id: str) -> User:
        """Return a single user."""

    def get_users(self, user_ids: Iterable[str]) -> Mapping[str, User]:
        """Return the users that exist among ``user_ids`` keyed by id."""

    def find_by_email(self, email: str) -> Optional[User]:
        """Return the user registered with ``email`` if any."""

    def find_by_username(self, username: str) -> Optional[User]:
        """Return the user called ``username`` if any."""

    def update_user(self, user_id: str, fields: Mapping[str, str]) -> User:
        """Update profile fields and return the new representation."""

    def search_users(self, text: str, *, limit: int) -> List[User]:
        """Case-insensitive match on username or email."""

    def toggle_follow(self, follower_id: str, followee_id: str) -> Tuple[bool, int]:
        """Flip the follow edge and return ``(following, followee followers count)``."""


class MediaStore(Protocol):
    """Object storage holding recipe images."""

    def upload(self, image: FileStorage) -> str:
        """Store the image and return its durable URL."""

    def delete(self, url: str) -> None:
        """Release the asset behind ``url``."""


__all__ = ["RecipeRepository", "UserRepository", "MediaStore"]
