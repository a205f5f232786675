"""Paginated, filterable recipe listing.

The Data Store only narrows candidates (by tag); search matching, the
average-rating computation, sorting and pagination happen here so every
backend returns the same pages.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .models import (
    UNKNOWN_AUTHOR,
    AuthorSummary,
    Pagination,
    Recipe,
    RecipePage,
    RecipeSummary,
)

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 50
DEFAULT_SORT = "createdAt"
SORT_KEYS = ("createdAt", "rating", "title")

AuthorLookup = Callable[[Iterable[str]], Mapping[str, AuthorSummary]]


@dataclass
class ListingQuery:
    search: Optional[str] = None
    tag: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort: str = DEFAULT_SORT
    order: str = "desc"

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> "ListingQuery":
        """Coerce raw query-string values, falling back to defaults."""

        search = (args.get("search") or "").strip() or None
        tag = (args.get("tag") or "").strip().lower() or None

        page = max(1, _to_int(args.get("page"), 1))
        limit = min(MAX_PAGE_SIZE, max(1, _to_int(args.get("limit"), DEFAULT_PAGE_SIZE)))

        sort = args.get("sort") or DEFAULT_SORT
        if sort not in SORT_KEYS:
            sort = DEFAULT_SORT
        order = "asc" if (args.get("order") or "").lower() == "asc" else "desc"

        return cls(search=search, tag=tag, page=page, limit=limit, sort=sort, order=order)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value else float("-inf")


def matches(recipe: Recipe, search: Optional[str] = None, tag: Optional[str] = None) -> bool:
    """Search text is OR-ed across title, description and tags; tag is AND-ed."""

    if tag and tag.lower() not in recipe.tags:
        return False
    if not search:
        return True

    needle = search.casefold()
    return (
        needle in recipe.title.casefold()
        or needle in (recipe.description or "").casefold()
        or any(needle in t.casefold() for t in recipe.tags)
    )


def sort_recipes(recipes: Iterable[Recipe], sort: str = DEFAULT_SORT, order: str = "desc") -> List[Recipe]:
    descending = order != "asc"

    # Newest first for ties on the requested key.
    ordered = sorted(recipes, key=lambda r: _timestamp(r.created_at), reverse=True)
    if sort == "rating":
        ordered.sort(key=lambda r: r.average_rating(), reverse=descending)
    elif sort == "title":
        ordered.sort(key=lambda r: r.title.casefold(), reverse=descending)
    elif not descending:
        ordered.sort(key=lambda r: _timestamp(r.created_at))
    return ordered


def summarize(recipe: Recipe, author: Optional[AuthorSummary] = None) -> RecipeSummary:
    return RecipeSummary(
        id=recipe.id,
        author=author or UNKNOWN_AUTHOR,
        title=recipe.title,
        description=recipe.description,
        image_url=recipe.image_url,
        tags=list(recipe.tags),
        avg_rating=round(recipe.average_rating(), 1),
        ratings_count=recipe.ratings_count,
        likes_count=recipe.likes_count,
        comments_count=recipe.comments_count,
        created_at=recipe.created_at,
        updated_at=recipe.updated_at,
    )


def paginate(total: int, page: int, limit: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if limit else 0,
        has_next=page * limit < total,
        has_prev=page > 1,
    )


def build_page(candidates: Iterable[Recipe], query: ListingQuery, authors: AuthorLookup) -> RecipePage:
    """Filter, sort and slice ``candidates`` and project them to summaries."""

    matching = [r for r in candidates if matches(r, query.search, query.tag)]
    ordered = sort_recipes(matching, query.sort, query.order)
    window = ordered[query.skip : query.skip + query.limit]

    found: Dict[str, AuthorSummary] = dict(authors({r.author_id for r in window}))
    return RecipePage(
        recipes=[summarize(r, found.get(r.author_id)) for r in window],
        pagination=paginate(len(matching), query.page, query.limit),
    )


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "ListingQuery",
    "matches",
    "sort_recipes",
    "summarize",
    "paginate",
    "build_page",
]
