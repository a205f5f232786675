"""Accounts, profiles and the follow graph."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

import structlog

from .auth import IdentityVerifier
from .errors import Conflict, InvalidInput, Unauthorized
from .listing import summarize
from .models import User
from .storage import RecipeRepository, UserRepository
from .validation import check_id

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 6
BIO_MAX_LENGTH = 500
PROFILE_RECIPES = 12
SEARCH_DEFAULT_LIMIT = 10
SEARCH_MAX_LIMIT = 50
PROFILE_FIELDS = ("username", "email", "bio", "avatar")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")

logger = structlog.get_logger(__name__)


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _check_username(username: str) -> None:
    if len(username) < USERNAME_MIN_LENGTH:
        raise InvalidInput(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
    if len(username) > USERNAME_MAX_LENGTH:
        raise InvalidInput(f"Username cannot exceed {USERNAME_MAX_LENGTH} characters")


def _check_email(email: str) -> None:
    if not EMAIL_PATTERN.match(email):
        raise InvalidInput("Please enter a valid email")


class UserService:
    def __init__(self, users: UserRepository, recipes: RecipeRepository, identity: IdentityVerifier) -> None:
        self._users = users
        self._recipes = recipes
        self._identity = identity

    def register(self, username: Any, email: Any, password: Any) -> Dict[str, Any]:
        username = _clean(username)
        email = _clean(email).lower()
        if not username or not email or not isinstance(password, str) or not password:
            raise InvalidInput("Username, email, and password required")
        if len(password) < PASSWORD_MIN_LENGTH:
            raise InvalidInput(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        _check_username(username)
        _check_email(email)

        if self._users.find_by_email(email):
            raise Conflict("Email already registered")
        if self._users.find_by_username(username):
            raise Conflict("Username already taken")

        user = self._users.add_user(
            username=username,
            email=email,
            password_hash=self._identity.hash_password(password),
        )
        logger.info("user_registered", user_id=user.id)
        return {
            "token": self._identity.sign(user.id, user.username),
            "user": {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "createdAt": user.to_public()["createdAt"],
            },
        }

    def login(self, email: Any, password: Any) -> Dict[str, Any]:
        email = _clean(email).lower()
        if not email or not isinstance(password, str) or not password:
            raise InvalidInput("Email and password required")

        user = self._users.find_by_email(email)
        if user is None or not self._identity.check_password(password, user.password_hash):
            logger.info("login_rejected")
            raise Unauthorized("Invalid credentials")

        logger.info("user_logged_in", user_id=user.id)
        return {
            "token": self._identity.sign(user.id, user.username),
            "user": {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "avatar": user.avatar,
            },
        }

    def profile(self, user_id: str) -> Dict[str, Any]:
        user = self._users.get_user(check_id(user_id, "user"))
        recipes = self._recipes.recipes_by_author(user.id, limit=PROFILE_RECIPES)
        recipes_count, total_likes = self._recipes.count_by_author(user.id)

        author = user.summary()
        return {
            "user": {
                **user.to_public(),
                "recipesCount": recipes_count,
                "totalLikes": total_likes,
            },
            "recipes": [summarize(r, author).to_dict() for r in recipes],
        }

    def toggle_follow(self, actor_id: str, target_id: str) -> Dict[str, Any]:
        check_id(target_id, "user")
        if target_id == actor_id:
            raise InvalidInput("Can't follow yourself")

        following, followers_count = self._users.toggle_follow(actor_id, target_id)
        logger.info("follow_toggled", target_id=target_id, following=following)
        return {"following": following, "followersCount": followers_count}

    def search(self, text: Any, limit: Any = None) -> List[Dict[str, Any]]:
        text = _clean(text)
        if len(text) < 2:
            return []
        try:
            limit = int(limit) if limit is not None else SEARCH_DEFAULT_LIMIT
        except (TypeError, ValueError):
            limit = SEARCH_DEFAULT_LIMIT
        limit = min(SEARCH_MAX_LIMIT, max(1, limit))

        return [
            {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "avatar": user.avatar,
                "bio": user.bio,
                "followers": len(user.followers),
            }
            for user in self._users.search_users(text, limit=limit)
        ]

    def update_profile(self, user: User, updates: Mapping[str, Any]) -> User:
        """Apply the whitelisted profile fields; anything else is ignored."""

        fields: Dict[str, str] = {}
        for key in PROFILE_FIELDS:
            if key in updates and updates[key] is not None:
                if not isinstance(updates[key], str):
                    raise InvalidInput(f"{key.capitalize()} must be text")
                fields[key] = updates[key].strip()

        if "username" in fields and fields["username"] != user.username:
            _check_username(fields["username"])
            if self._users.find_by_username(fields["username"]):
                raise Conflict("Username already taken")
        if "email" in fields:
            fields["email"] = fields["email"].lower()
            if fields["email"] != user.email:
                _check_email(fields["email"])
                if self._users.find_by_email(fields["email"]):
                    raise Conflict("Email already registered")
        if len(fields.get("bio", "")) > BIO_MAX_LENGTH:
            raise InvalidInput(f"Bio cannot exceed {BIO_MAX_LENGTH} characters")

        if not fields:
            return user
        return self._users.update_user(user.id, fields)


__all__ = ["UserService"]
