from __future__ import annotations

import io

import pytest
from werkzeug.datastructures import FileStorage

from factories import recipe_form
from memory import InMemoryMediaStore, InMemoryRecipeStorage, InMemoryUserStorage
from recipeverse.errors import Forbidden, Internal, InvalidInput, NotFound
from recipeverse.service import RecipeService, can_modify


def image(name="dish.jpg", mimetype="image/jpeg", content=b"jpeg-bytes"):
    return FileStorage(stream=io.BytesIO(content), filename=name, content_type=mimetype)


@pytest.fixture
def recipes():
    return InMemoryRecipeStorage()


@pytest.fixture
def media():
    return InMemoryMediaStore()


@pytest.fixture
def author():
    return "author1"


@pytest.fixture
def service(recipes, media):
    return RecipeService(recipes, InMemoryUserStorage(), media)


def test_can_modify_only_for_owner():
    assert can_modify("u1", "u1")
    assert not can_modify("u1", "u2")
    assert not can_modify(None, None)
    assert not can_modify("", "")


def test_failed_create_releases_uploaded_image(service, recipes, media, author):
    recipes.fail_writes = True

    with pytest.raises(Internal, match="Failed to create recipe"):
        service.create_recipe(recipe_form(), author, image())

    assert media.assets == {}
    assert len(media.deleted) == 1


def test_failed_create_cleanup_error_is_not_surfaced(service, recipes, media, author):
    recipes.fail_writes = True
    media.fail_deletes = True

    with pytest.raises(Internal):
        service.create_recipe(recipe_form(), author, image())


def test_invalid_payload_never_reaches_media_store(service, media, author):
    with pytest.raises(InvalidInput):
        service.create_recipe(recipe_form(title="no"), author, image())

    assert media.assets == {}


def test_update_releases_old_image_only_after_commit(service, media, author):
    created = service.create_recipe(recipe_form(), author, image("old.jpg"))
    old_url = created["image"]

    updated = service.update_recipe(created["id"], recipe_form(), author, image("new.png", "image/png"))

    assert updated["image"] != old_url
    assert updated["image"] in media.assets
    assert media.deleted == [old_url]


def test_failed_update_keeps_old_image_and_drops_new_upload(service, recipes, media, author):
    created = service.create_recipe(recipe_form(), author, image("old.jpg"))
    recipes.fail_writes = True

    with pytest.raises(Internal, match="Failed to update recipe"):
        service.update_recipe(created["id"], recipe_form(), author, image("new.jpg"))

    assert list(media.assets) == [created["image"]]
    assert recipes.get_recipe(created["id"]).image_url == created["image"]


def test_update_without_image_keeps_existing_one(service, media, author):
    created = service.create_recipe(recipe_form(), author, image())

    updated = service.update_recipe(created["id"], recipe_form(title="Renamed"), author)

    assert updated["image"] == created["image"]
    assert media.deleted == []


def test_update_never_reassigns_author(service, author):
    created = service.create_recipe(recipe_form(), author)

    with pytest.raises(Forbidden):
        service.update_recipe(created["id"], recipe_form(), "someone-else")


def test_delete_releases_image_and_tolerates_media_failure(service, recipes, media, author):
    created = service.create_recipe(recipe_form(), author, image())
    media.fail_deletes = True

    service.delete_recipe(created["id"], author)

    with pytest.raises(NotFound):
        recipes.get_recipe(created["id"])


def test_delete_missing_recipe(service, author):
    with pytest.raises(NotFound):
        service.delete_recipe("missing", author)
