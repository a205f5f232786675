from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore, storage
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import Internal, InvalidInput, NotFound
from .models import Comment, Recipe, RecipeDraft, User
from .settings import Settings
from .storage import MediaStore, RecipeRepository, UserRepository


def _as_datetime(value) -> Optional[datetime]:
    return value if isinstance(value, datetime) else None


class FirestoreRecipeStorage(RecipeRepository):
    """Recipes stored as Firestore documents with embedded social metadata.

    ``ratings`` is a map keyed by user id so an upsert is a single field write;
    likes and comment removal run inside a transaction.
    """

    def __init__(self, client: firestore.Client, *, collection_name: str = "recipes") -> None:
        self._client = client
        self._collection = client.collection(collection_name)

    @classmethod
    def from_settings(cls, client: firestore.Client, settings: Settings) -> "FirestoreRecipeStorage":
        return cls(client, collection_name=settings.recipes_collection)

    def add_recipe(self, draft: RecipeDraft, *, author_id: str, image_url: Optional[str]) -> Recipe:
        doc = {
            "title": draft.title,
            "description": draft.description,
            "ingredients": draft.ingredients,
            "instructions": draft.instructions,
            "tags": draft.tags,
            "image_url": image_url,
            "author": author_id,
            "likes": [],
            "ratings": {},
            "comments": [],
            "created_at": firestore.SERVER_TIMESTAMP,
            "updated_at": firestore.SERVER_TIMESTAMP,
        }

        doc_ref = self._collection.document()
        doc_ref.set(doc)
        return self._read(doc_ref)

    def get_recipe(self, recipe_id: str) -> Recipe:
        return self._read(self._collection.document(recipe_id))

    def update_recipe(self, recipe_id: str, draft: RecipeDraft, *, image_url: Optional[str]) -> Recipe:
        doc_ref = self._collection.document(recipe_id)
        self._update(
            doc_ref,
            {
                "title": draft.title,
                "description": draft.description,
                "ingredients": draft.ingredients,
                "instructions": draft.instructions,
                "tags": draft.tags,
                "image_url": image_url,
                "updated_at": firestore.SERVER_TIMESTAMP,
            },
        )
        return self._read(doc_ref)

    def delete_recipe(self, recipe_id: str) -> None:
        self._collection.document(recipe_id).delete()

    def query_recipes(self, *, tag: Optional[str] = None) -> Iterable[Recipe]:
        # Search runs in process: each listing streams the whole collection or tag slice.
        query = self._collection
        if tag:
            query = query.where(filter=FieldFilter("tags", "array_contains", tag))
        for doc in query.stream():
            yield self._doc_to_recipe(doc.id, doc.to_dict() or {})

    def recipes_by_author(self, author_id: str, *, limit: int) -> List[Recipe]:
        query = (
            self._collection.where(filter=FieldFilter("author", "==", author_id))
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return [self._doc_to_recipe(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def count_by_author(self, author_id: str) -> Tuple[int, int]:
        query = self._collection.where(filter=FieldFilter("author", "==", author_id))
        recipes = 0
        likes = 0
        for doc in query.stream():
            recipes += 1
            likes += len((doc.to_dict() or {}).get("likes") or [])
        return recipes, likes

    def toggle_like(self, recipe_id: str, user_id: str) -> Tuple[bool, int]:
        doc_ref = self._collection.document(recipe_id)

        @firestore.transactional
        def _toggle(transaction: firestore.Transaction) -> Tuple[bool, int]:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFound("Recipe not found")
            likes = list((snapshot.to_dict() or {}).get("likes") or [])
            if user_id in likes:
                transaction.update(doc_ref, {"likes": firestore.ArrayRemove([user_id])})
                return False, len(likes) - 1
            transaction.update(doc_ref, {"likes": firestore.ArrayUnion([user_id])})
            return True, len(likes) + 1

        return _toggle(self._client.transaction())

    def set_rating(self, recipe_id: str, user_id: str, value: int) -> Recipe:
        doc_ref = self._collection.document(recipe_id)
        self._update(doc_ref, {FieldPath("ratings", user_id).to_api_repr(): value})
        return self._read(doc_ref)

    def add_comment(self, recipe_id: str, comment: Comment) -> Recipe:
        doc_ref = self._collection.document(recipe_id)
        entry = {
            "id": comment.id,
            "user": comment.author_id,
            "text": comment.text,
            "created_at": comment.created_at or datetime.now(timezone.utc),
        }
        self._update(doc_ref, {"comments": firestore.ArrayUnion([entry])})
        return self._read(doc_ref)

    def delete_comment(self, recipe_id: str, comment_id: str) -> None:
        doc_ref = self._collection.document(recipe_id)

        @firestore.transactional
        def _delete(transaction: firestore.Transaction) -> None:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFound("Recipe not found")
            comments = (snapshot.to_dict() or {}).get("comments") or []
            remaining = [c for c in comments if c.get("id") != comment_id]
            if len(remaining) == len(comments):
                raise NotFound("Comment not found")
            transaction.update(doc_ref, {"comments": remaining})

        _delete(self._client.transaction())

    def _read(self, doc_ref) -> Recipe:
        snapshot = doc_ref.get()
        if not snapshot.exists:
            raise NotFound("Recipe not found")
        return self._doc_to_recipe(snapshot.id, snapshot.to_dict() or {})

    def _update(self, doc_ref, fields: dict) -> None:
        try:
            doc_ref.update(fields)
        except gcloud_exceptions.NotFound:
            raise NotFound("Recipe not found") from None

    def _doc_to_recipe(self, doc_id: str, data: dict) -> Recipe:
        comments = [
            Comment(
                id=c.get("id", ""),
                author_id=c.get("user", ""),
                text=c.get("text", ""),
                created_at=_as_datetime(c.get("created_at")),
            )
            for c in data.get("comments") or []
        ]

        return Recipe(
            id=doc_id,
            title=data.get("title", ""),
            author_id=data.get("author", ""),
            description=data.get("description", ""),
            ingredients=list(data.get("ingredients") or []),
            instructions=list(data.get("instructions") or []),
            tags=list(data.get("tags") or []),
            image_url=data.get("image_url"),
            likes=list(data.get("likes") or []),
            ratings={k: int(v) for k, v in (data.get("ratings") or {}).items()},
            comments=comments,
            created_at=_as_datetime(data.get("created_at")),
            updated_at=_as_datetime(data.get("updated_at")),
        )


class FirestoreUserStorage(UserRepository):
    """User accounts; follow edges are kept symmetric within one transaction."""

    def __init__(self, client: firestore.Client, *, collection_name: str = "users") -> None:
        self._client = client
        self._collection = client.collection(collection_name)

    @classmethod
    def from_settings(cls, client: firestore.Client, settings: Settings) -> "FirestoreUserStorage":
        return cls(client, collection_name=settings.users_collection)

    def add_user(self, *, username: str, email: str, password_hash: str) -> User:
        doc_ref = self._collection.document()
        doc_ref.set(
            {
                "username": username,
                "email": email,
                "password": password_hash,
                "avatar": "",
                "bio": "",
                "followers": [],
                "following": [],
                "created_at": firestore.SERVER_TIMESTAMP,
                "updated_at": firestore.SERVER_TIMESTAMP,
            }
        )
        return self.get_user(doc_ref.id)

    def get_user(self, user_id: str) -> User:
        snapshot = self._collection.document(user_id).get()
        if not snapshot.exists:
            raise NotFound("User not found")
        return self._doc_to_user(snapshot.id, snapshot.to_dict() or {})

    def get_users(self, user_ids: Iterable[str]) -> Mapping[str, User]:
        refs = [self._collection.document(uid) for uid in set(user_ids) if uid]
        if not refs:
            return {}
        return {
            snap.id: self._doc_to_user(snap.id, snap.to_dict() or {})
            for snap in self._client.get_all(refs)
            if snap.exists
        }

    def find_by_email(self, email: str) -> Optional[User]:
        return self._find_one("email", email)

    def find_by_username(self, username: str) -> Optional[User]:
        return self._find_one("username", username)

    def update_user(self, user_id: str, fields: Mapping[str, str]) -> User:
        doc_ref = self._collection.document(user_id)
        try:
            doc_ref.update({**fields, "updated_at": firestore.SERVER_TIMESTAMP})
        except gcloud_exceptions.NotFound:
            raise NotFound("User not found") from None
        return self.get_user(user_id)

    def search_users(self, text: str, *, limit: int) -> List[User]:
        # Firestore has no substring match; usernames and emails are scanned.
        needle = text.casefold()
        found: List[User] = []
        for doc in self._collection.stream():
            data = doc.to_dict() or {}
            if needle in data.get("username", "").casefold() or needle in data.get("email", "").casefold():
                found.append(self._doc_to_user(doc.id, data))
                if len(found) >= limit:
                    break
        return found

    def toggle_follow(self, follower_id: str, followee_id: str) -> Tuple[bool, int]:
        follower_ref = self._collection.document(follower_id)
        followee_ref = self._collection.document(followee_id)

        @firestore.transactional
        def _toggle(transaction: firestore.Transaction) -> Tuple[bool, int]:
            follower = follower_ref.get(transaction=transaction)
            followee = followee_ref.get(transaction=transaction)
            if not follower.exists or not followee.exists:
                raise NotFound("User not found")

            following = (follower.to_dict() or {}).get("following") or []
            followers = (followee.to_dict() or {}).get("followers") or []

            if followee_id in following:
                transaction.update(follower_ref, {"following": firestore.ArrayRemove([followee_id])})
                transaction.update(followee_ref, {"followers": firestore.ArrayRemove([follower_id])})
                return False, len([f for f in followers if f != follower_id])

            transaction.update(follower_ref, {"following": firestore.ArrayUnion([followee_id])})
            transaction.update(followee_ref, {"followers": firestore.ArrayUnion([follower_id])})
            return True, len(set(followers) | {follower_id})

        return _toggle(self._client.transaction())

    def _find_one(self, field: str, value: str) -> Optional[User]:
        query = self._collection.where(filter=FieldFilter(field, "==", value)).limit(1)
        for doc in query.stream():
            return self._doc_to_user(doc.id, doc.to_dict() or {})
        return None

    def _doc_to_user(self, doc_id: str, data: dict) -> User:
        return User(
            id=doc_id,
            username=data.get("username", ""),
            email=data.get("email", ""),
            password_hash=data.get("password", ""),
            avatar=data.get("avatar", ""),
            bio=data.get("bio", ""),
            followers=list(data.get("followers") or []),
            following=list(data.get("following") or []),
            created_at=_as_datetime(data.get("created_at")),
            updated_at=_as_datetime(data.get("updated_at")),
        )


class GcsMediaStore(MediaStore):
    """Recipe images kept in a Cloud Storage bucket and served by public URL."""

    def __init__(self, bucket_name: Optional[str], *, project: Optional[str] = None) -> None:
        self._bucket_name = bucket_name
        if bucket_name:
            self._storage_client = storage.Client(project=project)
            self._bucket = self._storage_client.bucket(bucket_name)
        else:
            self._storage_client = None
            self._bucket = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GcsMediaStore":
        return cls(settings.gcs_bucket, project=settings.gcp_project)

    def upload(self, image: FileStorage) -> str:
        if not self._bucket:
            raise Internal("A Cloud Storage bucket must be configured to upload images.")

        blob = self._bucket.blob(self._build_blob_name(image.filename or "image"))
        image.stream.seek(0)
        try:
            blob.upload_from_file(image.stream, content_type=image.mimetype)
        except gcloud_exceptions.ClientError as exc:
            raise InvalidInput(f"Image upload rejected: {exc.message}") from exc
        return blob.public_url

    def delete(self, url: str) -> None:
        blob_name = self._blob_name_from_url(url)
        if not blob_name or not self._bucket:
            return

        try:
            self._bucket.blob(blob_name).delete()
        except gcloud_exceptions.NotFound:
            # Already gone; nothing to release.
            pass

    def _build_blob_name(self, filename: str) -> str:
        safe = secure_filename(filename)
        unique = uuid.uuid4().hex
        return f"recipes/{unique}_{safe}"

    def _blob_name_from_url(self, url: str) -> Optional[str]:
        prefix = f"https://storage.googleapis.com/{quote(self._bucket_name or '')}/"
        if not self._bucket_name or not url.startswith(prefix):
            return None
        return unquote(url[len(prefix):])


__all__ = ["FirestoreRecipeStorage", "FirestoreUserStorage", "GcsMediaStore"]
