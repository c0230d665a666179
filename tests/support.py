from __future__ import annotations

import copy
import io
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recipeshare import create_app
from recipeshare.assets import DEFAULT_MAX_UPLOAD_BYTES, ensure_within_limit
from recipeshare.config import Settings
from recipeshare.errors import ConcurrentModification, NotFound, UploadFailed
from recipeshare.models import AssetHandle

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class InMemoryRecipeStorage:
    """Recipe and user repository used for tests.

    Records are deep-copied on the way in and out so callers only see
    changes they save.
    """

    def __init__(self) -> None:
        self.recipes = {}
        self.users = {}

    def create(self, recipe):
        self.recipes[recipe.id] = copy.deepcopy(recipe)
        return recipe

    def get(self, recipe_id):
        recipe = self.recipes.get(recipe_id)
        return copy.deepcopy(recipe) if recipe else None

    def find(self, *, category=None, owner_id=None):
        found = [
            copy.deepcopy(recipe)
            for recipe in self.recipes.values()
            if (category is None or recipe.category == category)
            and (owner_id is None or recipe.created_by == owner_id)
        ]
        return sorted(
            found,
            key=lambda recipe: recipe.created_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )

    def save(self, recipe):
        stored = self.recipes.get(recipe.id)
        if stored is None:
            raise NotFound("Recipe not found")
        if stored.version != recipe.version:
            raise ConcurrentModification()
        recipe.version += 1
        self.recipes[recipe.id] = copy.deepcopy(recipe)
        return recipe

    def delete(self, recipe_id):
        self.recipes.pop(recipe_id, None)

    def create_user(self, user):
        self.users[user.id] = copy.deepcopy(user)
        return user

    def get_user(self, user_id):
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    def get_user_by_email(self, email):
        for user in self.users.values():
            if user.email == email:
                return copy.deepcopy(user)
        return None

    def get_users(self, user_ids):
        return [copy.deepcopy(self.users[user_id]) for user_id in user_ids if user_id in self.users]

    def save_user(self, user):
        self.users[user.id] = copy.deepcopy(user)
        return user


class InMemoryAssetStore:
    """Asset store that keeps uploads in a dict and records releases."""

    def __init__(self, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
        self.max_upload_bytes = max_upload_bytes
        self.objects = {}
        self.released = []
        self.fail_uploads = False
        self.fail_releases = False

    def upload(self, data, folder, *, filename=None, content_type=None):
        ensure_within_limit(data, self.max_upload_bytes)
        if self.fail_uploads:
            raise UploadFailed()
        asset_id = f"{folder}/{uuid.uuid4().hex}"
        self.objects[asset_id] = data
        return AssetHandle(asset_id=asset_id, url=f"https://assets.test/{asset_id}")

    def release(self, asset_id):
        self.released.append(asset_id)
        if self.fail_releases:
            # Mirrors the real store: failures are logged, not raised.
            return
        self.objects.pop(asset_id, None)


def make_settings(**overrides) -> Settings:
    values = {"jwt_secret": "test-secret", "log_level": "WARNING"}
    values.update(overrides)
    return Settings(**values)


def create_test_client(**settings_overrides):
    settings = make_settings(**settings_overrides)
    storage = InMemoryRecipeStorage()
    assets = InMemoryAssetStore(max_upload_bytes=settings.max_upload_bytes)
    app = create_app(settings=settings, storage=storage, assets=assets)
    app.config.update(TESTING=True)
    return app.test_client(), storage, assets


def register(client, username="alice", email=None, password="secret123"):
    response = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
        },
    )
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def auth_header(session) -> dict:
    return {"Authorization": f"Bearer {session['token']}"}


def recipe_form(**overrides) -> dict:
    form = {
        "title": "Soup",
        "ingredients": '["salt", "water"]',
        "instructions": "boil",
        "category": "dinner",
        "cookingTime": "20",
        "photo": (io.BytesIO(PNG_BYTES), "soup.png", "image/png"),
    }
    form.update(overrides)
    return {key: value for key, value in form.items() if value is not None}


def create_recipe(client, session, **overrides) -> dict:
    response = client.post(
        "/api/recipes",
        data=recipe_form(**overrides),
        headers=auth_header(session),
        content_type="multipart/form-data",
    )
    assert response.status_code == 201, response.get_json()
    return response.get_json()
