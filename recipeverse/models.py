from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class AuthorSummary:
    """Display-safe projection of a user: never carries credentials."""

    id: Optional[str]
    username: str
    avatar: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username, "avatar": self.avatar}


UNKNOWN_AUTHOR = AuthorSummary(id=None, username="Unknown")


@dataclass
class Comment:
    id: str
    author_id: str
    text: str
    created_at: Optional[datetime] = None

    def to_dict(self, author: Optional[AuthorSummary] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": (author or UNKNOWN_AUTHOR).to_dict(),
            "text": self.text,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class RecipeDraft:
    """Normalized, validated recipe fields ready to be persisted."""

    title: str
    description: str
    ingredients: List[str]
    instructions: List[str]
    tags: List[str] = field(default_factory=list)


@dataclass
class Recipe:
    """Domain object representing a stored recipe."""

    id: str
    title: str
    author_id: str
    description: str = ""
    ingredients: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    likes: List[str] = field(default_factory=list)
    ratings: Dict[str, int] = field(default_factory=dict)
    comments: List[Comment] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def ratings_count(self) -> int:
        return len(self.ratings)

    @property
    def likes_count(self) -> int:
        return len(self.likes)

    @property
    def comments_count(self) -> int:
        return len(self.comments)

    def average_rating(self) -> float:
        """Mean of all ratings, 0.0 when the recipe has not been rated."""
        if not self.ratings:
            return 0.0
        return sum(self.ratings.values()) / len(self.ratings)

    def find_comment(self, comment_id: str) -> Optional[Comment]:
        return next((c for c in self.comments if c.id == comment_id), None)

    def comments_newest_first(self) -> List[Comment]:
        # Insertion order breaks ties between equal timestamps.
        ordered = sorted(
            enumerate(self.comments),
            key=lambda pair: (
                pair[1].created_at.timestamp() if pair[1].created_at else float("-inf"),
                pair[0],
            ),
            reverse=True,
        )
        return [comment for _, comment in ordered]

    def to_dict(
        self,
        author: Optional[AuthorSummary] = None,
        comment_authors: Optional[Dict[str, AuthorSummary]] = None,
    ) -> Dict[str, Any]:
        comment_authors = comment_authors or {}
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "ingredients": list(self.ingredients),
            "instructions": list(self.instructions),
            "tags": list(self.tags),
            "image": self.image_url,
            "author": (author or UNKNOWN_AUTHOR).to_dict(),
            "likes": list(self.likes),
            "ratings": [
                {"user": user_id, "value": value} for user_id, value in self.ratings.items()
            ],
            "comments": [
                c.to_dict(comment_authors.get(c.author_id)) for c in self.comments_newest_first()
            ],
            "avgRating": round(self.average_rating(), 1),
            "ratingsCount": self.ratings_count,
            "likesCount": self.likes_count,
            "commentsCount": self.comments_count,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class RecipeSummary:
    """Listing projection: no ingredient, instruction or comment bodies."""

    id: str
    author: AuthorSummary
    title: str
    description: str
    image_url: Optional[str]
    tags: List[str]
    avg_rating: float
    ratings_count: int
    likes_count: int
    comments_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author.to_dict(),
            "title": self.title,
            "description": self.description,
            "image": self.image_url,
            "tags": list(self.tags),
            "avgRating": self.avg_rating,
            "ratingsCount": self.ratings_count,
            "likesCount": self.likes_count,
            "commentsCount": self.comments_count,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class Pagination:
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


@dataclass
class RecipePage:
    recipes: List[RecipeSummary]
    pagination: Pagination

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipes": [r.to_dict() for r in self.recipes],
            "pagination": self.pagination.to_dict(),
        }


@dataclass
class User:
    """A registered account. ``password_hash`` never leaves the service layer."""

    id: str
    username: str
    email: str
    password_hash: str = field(repr=False, default="")
    avatar: str = ""
    bio: str = ""
    followers: List[str] = field(default_factory=list)
    following: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def summary(self) -> AuthorSummary:
        return AuthorSummary(id=self.id, username=self.username, avatar=self.avatar)

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "avatar": self.avatar,
            "bio": self.bio,
            "followers": len(self.followers),
            "following": len(self.following),
            "createdAt": _iso(self.created_at),
        }


__all__ = [
    "AuthorSummary",
    "UNKNOWN_AUTHOR",
    "Comment",
    "RecipeDraft",
    "Recipe",
    "RecipeSummary",
    "Pagination",
    "RecipePage",
    "User",
]
