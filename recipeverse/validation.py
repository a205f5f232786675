"""Pure validation of recipe, comment and rating payloads.

Nothing here touches storage or media: callers validate first and only then
start side effects.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from .errors import InvalidInput
from .models import RecipeDraft

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
MAX_INGREDIENTS = 20
MAX_INGREDIENT_LENGTH = 150
MAX_INSTRUCTIONS = 15
MAX_INSTRUCTION_LENGTH = 300
MAX_TAGS = 10
MAX_COMMENT_LENGTH = 500
MIN_RATING = 1
MAX_RATING = 5

DOCUMENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass
class RecipeValidation:
    """Tagged outcome of :func:`validate_recipe`: either a draft or an error."""

    draft: Optional[RecipeDraft] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> RecipeDraft:
        if self.draft is None:
            raise InvalidInput(self.error or "Invalid recipe data format")
        return self.draft


def validate_recipe(payload: Mapping[str, Any]) -> RecipeValidation:
    """Normalize a raw create/update payload into a :class:`RecipeDraft`."""

    try:
        draft = RecipeDraft(
            title=_clean_title(payload.get("title")),
            description=_clean_text(payload.get("description")),
            ingredients=_clean_steps(
                payload.get("ingredients"),
                label="ingredient",
                max_items=MAX_INGREDIENTS,
                max_length=MAX_INGREDIENT_LENGTH,
                not_a_list_message="Ingredients must be an array",
                empty_message="At least one ingredient is required",
                too_many_message=f"Maximum {MAX_INGREDIENTS} ingredients allowed",
            ),
            instructions=_clean_steps(
                payload.get("instructions"),
                label="instruction step",
                max_items=MAX_INSTRUCTIONS,
                max_length=MAX_INSTRUCTION_LENGTH,
                not_a_list_message="Instructions must be an array",
                empty_message="At least one instruction step is required",
                too_many_message=f"Maximum {MAX_INSTRUCTIONS} instruction steps allowed",
            ),
            tags=_clean_tags(payload.get("tags")),
        )
    except InvalidInput as exc:
        return RecipeValidation(error=exc.message)
    return RecipeValidation(draft=draft)


def validate_comment(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput(f"Comment must be 1-{MAX_COMMENT_LENGTH} characters")
    text = text.strip()
    if len(text) > MAX_COMMENT_LENGTH:
        raise InvalidInput(f"Comment must be 1-{MAX_COMMENT_LENGTH} characters")
    return text


def validate_rating(value: Any) -> int:
    message = f"Rating must be a number between {MIN_RATING} and {MAX_RATING}"

    if isinstance(value, bool):
        raise InvalidInput(message)
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidInput(message)
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InvalidInput(message) from None
    elif not isinstance(value, int):
        raise InvalidInput(message)

    if value < MIN_RATING or value > MAX_RATING:
        raise InvalidInput(message)
    return value


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and bool(DOCUMENT_ID_PATTERN.match(value))


def check_id(value: Any, label: str = "recipe") -> str:
    if not is_valid_id(value):
        raise InvalidInput(f"Invalid {label} ID")
    return value


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _clean_title(value: Any) -> str:
    title = _clean_text(value)
    if not title:
        raise InvalidInput("Title is required")
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise InvalidInput(
            f"Title must be {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters"
        )
    return title


def _parse_list(value: Any, *, not_a_list_message: str) -> List[Any]:
    # Multipart forms carry lists as JSON strings.
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise InvalidInput("Invalid recipe data format") from None
    if not isinstance(value, (list, tuple)):
        raise InvalidInput(not_a_list_message)
    return list(value)


def _clean_steps(
    value: Any,
    *,
    label: str,
    max_items: int,
    max_length: int,
    not_a_list_message: str,
    empty_message: str,
    too_many_message: str,
) -> List[str]:
    items = _parse_list(value, not_a_list_message=not_a_list_message)
    if not items:
        raise InvalidInput(empty_message)
    if len(items) > max_items:
        raise InvalidInput(too_many_message)

    cleaned = []
    for index, item in enumerate(items, start=1):
        text = item.strip() if isinstance(item, str) else ""
        if not text or len(text) > max_length:
            raise InvalidInput(f"{label.capitalize()} {index} invalid")
        cleaned.append(text)
    return cleaned


def _clean_tags(value: Any) -> List[str]:
    items = _parse_list(value, not_a_list_message="Tags must be an array")

    tags: List[str] = []
    for item in items:
        if not isinstance(item, str):
            raise InvalidInput("Tags must be strings")
        tag = item.strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


__all__ = [
    "RecipeValidation",
    "validate_recipe",
    "validate_comment",
    "validate_rating",
    "is_valid_id",
    "check_id",
]
