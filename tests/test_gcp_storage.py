from __future__ import annotations

import io
from unittest import mock

import pytest
from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore
from werkzeug.datastructures import FileStorage

from recipeverse import gcp_storage
from recipeverse.errors import Internal, NotFound
from recipeverse.gcp_storage import FirestoreRecipeStorage, FirestoreUserStorage, GcsMediaStore
from recipeverse.models import Comment


@pytest.fixture
def bucket(monkeypatch):
    client = mock.MagicMock()
    monkeypatch.setattr(gcp_storage.storage, "Client", mock.MagicMock(return_value=client))
    return client.bucket.return_value


def test_upload_without_bucket_is_refused():
    store = GcsMediaStore(None)
    image = FileStorage(stream=io.BytesIO(b"x"), filename="cake.png", content_type="image/png")

    with pytest.raises(Internal):
        store.upload(image)
    store.delete("https://storage.googleapis.com/any/recipes/x.png")


def test_upload_returns_public_url_under_recipes_prefix(bucket):
    blob = bucket.blob.return_value
    blob.public_url = "https://storage.googleapis.com/my-bucket/recipes/abc_cake.png"
    image = FileStorage(stream=io.BytesIO(b"x"), filename="my cake.png", content_type="image/png")

    url = GcsMediaStore("my-bucket").upload(image)

    assert url == blob.public_url
    blob_name = bucket.blob.call_args.args[0]
    assert blob_name.startswith("recipes/")
    assert blob_name.endswith("_my_cake.png")
    blob.upload_from_file.assert_called_once()


def test_delete_maps_url_back_to_blob(bucket):
    store = GcsMediaStore("my-bucket")

    store.delete("https://storage.googleapis.com/my-bucket/recipes/abc_my%20cake.png")

    bucket.blob.assert_called_once_with("recipes/abc_my cake.png")
    bucket.blob.return_value.delete.assert_called_once()


def test_delete_ignores_foreign_urls_and_missing_blobs(bucket):
    store = GcsMediaStore("my-bucket")
    store.delete("https://elsewhere.test/recipes/abc.png")
    bucket.blob.assert_not_called()

    bucket.blob.return_value.delete.side_effect = gcloud_exceptions.NotFound("gone")
    store.delete("https://storage.googleapis.com/my-bucket/recipes/abc.png")


@pytest.fixture
def firestore_client(monkeypatch):
    # Run transactional bodies directly against the mocked transaction.
    monkeypatch.setattr(gcp_storage.firestore, "transactional", lambda fn: fn)

    client = mock.MagicMock()
    documents = {}
    client.collection.return_value.document.side_effect = (
        lambda doc_id=None: documents.setdefault(doc_id, mock.MagicMock(name=f"doc:{doc_id}"))
    )
    return client


def _snapshot(doc_id, data=None):
    snapshot = mock.MagicMock()
    snapshot.id = doc_id
    snapshot.exists = data is not None
    snapshot.to_dict.return_value = data
    return snapshot


def _document(client, doc_id, data=None):
    doc = client.collection.return_value.document(doc_id)
    doc.get.return_value = _snapshot(doc_id, data)
    return doc


def test_like_is_one_transactional_array_union(firestore_client):
    doc = _document(firestore_client, "r1", {"title": "Cake", "likes": ["bob"]})
    transaction = firestore_client.transaction.return_value

    liked, count = FirestoreRecipeStorage(firestore_client).toggle_like("r1", "alice")

    assert (liked, count) == (True, 2)
    doc.get.assert_called_once_with(transaction=transaction)
    transaction.update.assert_called_once()
    ref, fields = transaction.update.call_args.args
    assert ref is doc
    assert isinstance(fields["likes"], firestore.ArrayUnion)
    assert list(fields["likes"].values) == ["alice"]
    doc.update.assert_not_called()


def test_second_like_is_one_transactional_array_remove(firestore_client):
    _document(firestore_client, "r1", {"title": "Cake", "likes": ["alice"]})
    transaction = firestore_client.transaction.return_value

    liked, count = FirestoreRecipeStorage(firestore_client).toggle_like("r1", "alice")

    assert (liked, count) == (False, 0)
    transaction.update.assert_called_once()
    fields = transaction.update.call_args.args[1]
    assert isinstance(fields["likes"], firestore.ArrayRemove)
    assert list(fields["likes"].values) == ["alice"]


def test_like_on_missing_recipe_is_not_found(firestore_client):
    _document(firestore_client, "r1")

    with pytest.raises(NotFound):
        FirestoreRecipeStorage(firestore_client).toggle_like("r1", "alice")
    firestore_client.transaction.return_value.update.assert_not_called()


def test_rating_writes_a_single_field_path(firestore_client):
    doc = _document(firestore_client, "r1", {"title": "Cake", "ratings": {"alice": 4, "bob": 2}})

    recipe = FirestoreRecipeStorage(firestore_client).set_rating("r1", "alice", 4)

    doc.update.assert_called_once_with({"ratings.alice": 4})
    assert recipe.ratings == {"alice": 4, "bob": 2}
    assert recipe.average_rating() == 3.0


def test_rating_missing_recipe_maps_to_not_found(firestore_client):
    doc = _document(firestore_client, "r1")
    doc.update.side_effect = gcloud_exceptions.NotFound("gone")

    with pytest.raises(NotFound):
        FirestoreRecipeStorage(firestore_client).set_rating("r1", "alice", 5)


def test_get_missing_recipe_is_not_found(firestore_client):
    _document(firestore_client, "r1")

    with pytest.raises(NotFound, match="Recipe not found"):
        FirestoreRecipeStorage(firestore_client).get_recipe("r1")


def test_comment_is_appended_with_one_array_union(firestore_client):
    doc = _document(firestore_client, "r1", {"title": "Cake", "comments": []})

    FirestoreRecipeStorage(firestore_client).add_comment(
        "r1", Comment(id="c1", author_id="bob", text="Yum")
    )

    doc.update.assert_called_once()
    fields = doc.update.call_args.args[0]
    assert isinstance(fields["comments"], firestore.ArrayUnion)
    (entry,) = fields["comments"].values
    assert (entry["id"], entry["user"], entry["text"]) == ("c1", "bob", "Yum")


def test_comment_delete_rewrites_list_inside_transaction(firestore_client):
    comments = [{"id": "c1", "user": "bob", "text": "a"}, {"id": "c2", "user": "carol", "text": "b"}]
    doc = _document(firestore_client, "r1", {"title": "Cake", "comments": comments})
    transaction = firestore_client.transaction.return_value
    storage = FirestoreRecipeStorage(firestore_client)

    storage.delete_comment("r1", "c1")

    transaction.update.assert_called_once_with(doc, {"comments": [comments[1]]})
    with pytest.raises(NotFound, match="Comment not found"):
        storage.delete_comment("r1", "missing")


def test_follow_updates_both_users_in_one_transaction(firestore_client):
    alice = _document(firestore_client, "alice", {"username": "alice", "following": []})
    bob = _document(firestore_client, "bob", {"username": "bob", "followers": ["carol"]})
    transaction = firestore_client.transaction.return_value

    following, followers = FirestoreUserStorage(firestore_client).toggle_follow("alice", "bob")

    assert (following, followers) == (True, 2)
    firestore_client.transaction.assert_called_once()
    updates = [c.args for c in transaction.update.call_args_list]
    assert [ref for ref, _ in updates] == [alice, bob]
    assert isinstance(updates[0][1]["following"], firestore.ArrayUnion)
    assert list(updates[0][1]["following"].values) == ["bob"]
    assert list(updates[1][1]["followers"].values) == ["alice"]
    alice.update.assert_not_called()
    bob.update.assert_not_called()


def test_unfollow_removes_both_edges(firestore_client):
    _document(firestore_client, "alice", {"username": "alice", "following": ["bob"]})
    _document(firestore_client, "bob", {"username": "bob", "followers": ["alice"]})
    transaction = firestore_client.transaction.return_value

    following, followers = FirestoreUserStorage(firestore_client).toggle_follow("alice", "bob")

    assert (following, followers) == (False, 0)
    assert transaction.update.call_count == 2
    for _, fields in (c.args for c in transaction.update.call_args_list):
        (value,) = fields.values()
        assert isinstance(value, firestore.ArrayRemove)


def test_follow_missing_user_is_not_found(firestore_client):
    _document(firestore_client, "alice", {"username": "alice"})
    _document(firestore_client, "ghost")

    with pytest.raises(NotFound, match="User not found"):
        FirestoreUserStorage(firestore_client).toggle_follow("alice", "ghost")
    firestore_client.transaction.return_value.update.assert_not_called()
