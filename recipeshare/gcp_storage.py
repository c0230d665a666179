from __future__ import annotations

from datetime import timedelta
from typing import Callable, Iterable, List, Optional

import structlog
from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore, storage
from google.cloud.firestore_v1.base_query import FieldFilter

from .assets import build_asset_name, ensure_within_limit
from .config import Settings
from .errors import ConcurrentModification, NotFound, UploadFailed
from .models import AssetHandle, Recipe, User

logger = structlog.get_logger()

SIGNED_URL_EXPIRATION = timedelta(days=7)

# requests' transport errors derive from OSError.
_TRANSPORT_ERRORS = (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError)


class FirestoreRecipeStorage:
    """Recipe aggregates and user records kept in Firestore.

    Each recipe is a single document; reviews and replies are stored as
    nested arrays so the aggregate is read and written as one unit.
    """

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        recipes_collection: str = "recipes",
        users_collection: str = "users",
        url_resolver: Optional[Callable[[str], str]] = None,
        client: Optional[firestore.Client] = None,
    ) -> None:
        self._client = client or firestore.Client(project=project)
        self._recipes = self._client.collection(recipes_collection)
        self._users = self._client.collection(users_collection)
        self._url_resolver = url_resolver

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        url_resolver: Optional[Callable[[str], str]] = None,
    ) -> "FirestoreRecipeStorage":
        return cls(
            project=settings.gcp_project,
            recipes_collection=settings.recipes_collection,
            users_collection=settings.users_collection,
            url_resolver=url_resolver,
        )

    # Recipes

    def create(self, recipe: Recipe) -> Recipe:
        self._recipes.document(recipe.id).set(recipe.to_document())
        return recipe

    def get(self, recipe_id: str) -> Optional[Recipe]:
        snapshot = self._recipes.document(recipe_id).get()
        if not snapshot.exists:
            return None
        return self._doc_to_recipe(snapshot.id, snapshot.to_dict() or {})

    def find(
        self,
        *,
        category: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Iterable[Recipe]:
        query = self._recipes
        if category:
            query = query.where(filter=FieldFilter("category", "==", category))
        if owner_id:
            query = query.where(filter=FieldFilter("created_by", "==", owner_id))

        # Sorted here rather than with order_by so filtered queries do not
        # need a composite index.
        recipes = [self._doc_to_recipe(doc.id, doc.to_dict() or {}) for doc in query.stream()]
        recipes.sort(key=lambda recipe: recipe.created_at.timestamp() if recipe.created_at else 0, reverse=True)
        return recipes

    def save(self, recipe: Recipe) -> Recipe:
        doc_ref = self._recipes.document(recipe.id)
        transaction = self._client.transaction()

        @firestore.transactional
        def write(transaction) -> None:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFound("Recipe not found")
            stored_version = int((snapshot.to_dict() or {}).get("version", 0))
            if stored_version != recipe.version:
                raise ConcurrentModification()
            data = recipe.to_document()
            data["version"] = recipe.version + 1
            transaction.set(doc_ref, data)

        write(transaction)
        recipe.version += 1
        return recipe

    def delete(self, recipe_id: str) -> None:
        self._recipes.document(recipe_id).delete()

    # Users

    def create_user(self, user: User) -> User:
        self._users.document(user.id).set(user.to_document())
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        snapshot = self._users.document(user_id).get()
        if not snapshot.exists:
            return None
        return User.from_document(snapshot.id, snapshot.to_dict() or {})

    def get_user_by_email(self, email: str) -> Optional[User]:
        query = self._users.where(filter=FieldFilter("email", "==", email)).limit(1)
        for doc in query.stream():
            return User.from_document(doc.id, doc.to_dict() or {})
        return None

    def get_users(self, user_ids: Iterable[str]) -> List[User]:
        refs = [self._users.document(user_id) for user_id in user_ids]
        if not refs:
            return []
        return [
            User.from_document(snapshot.id, snapshot.to_dict() or {})
            for snapshot in self._client.get_all(refs)
            if snapshot.exists
        ]

    def save_user(self, user: User) -> User:
        self._users.document(user.id).set(user.to_document())
        return user

    def _doc_to_recipe(self, doc_id: str, data: dict) -> Recipe:
        recipe = Recipe.from_document(doc_id, data)
        if recipe.photo is not None and self._url_resolver is not None:
            recipe.photo = AssetHandle(
                asset_id=recipe.photo.asset_id,
                url=self._url_resolver(recipe.photo.asset_id),
            )
        return recipe


class CloudStorageAssetStore:
    """Photo assets kept as objects in a Cloud Storage bucket.

    The object name is the asset id.
    """

    def __init__(
        self,
        *,
        bucket_name: Optional[str] = None,
        project: Optional[str] = None,
        max_upload_bytes: int,
        timeout: float,
        bucket: Optional[storage.Bucket] = None,
    ) -> None:
        if bucket is None:
            if not bucket_name:
                raise RuntimeError("A Cloud Storage bucket must be configured to upload images.")
            bucket = storage.Client(project=project).bucket(bucket_name)
        self._bucket = bucket
        self._max_upload_bytes = max_upload_bytes
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "CloudStorageAssetStore":
        return cls(
            bucket_name=settings.bucket_name,
            project=settings.gcp_project,
            max_upload_bytes=settings.max_upload_bytes,
            timeout=settings.upload_timeout,
        )

    def upload(
        self,
        data: bytes,
        folder: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> AssetHandle:
        ensure_within_limit(data, self._max_upload_bytes)

        blob_name = build_asset_name(folder, filename)
        blob = self._bucket.blob(blob_name)
        try:
            blob.upload_from_string(
                data,
                content_type=content_type or "application/octet-stream",
                timeout=self._timeout,
            )
        except _TRANSPORT_ERRORS as exc:
            logger.error("Photo upload failed", asset_id=blob_name, error=str(exc))
            raise UploadFailed("Failed to upload photo") from exc

        logger.info("Photo uploaded", asset_id=blob_name, size=len(data))
        return AssetHandle(asset_id=blob_name, url=self._get_image_url(blob))

    def release(self, asset_id: str) -> None:
        if not asset_id:
            return

        blob = self._bucket.blob(asset_id)
        try:
            blob.delete(timeout=self._timeout)
        except gcloud_exceptions.NotFound:
            # The blob may already have been removed manually; ignore.
            pass
        except _TRANSPORT_ERRORS as exc:
            logger.warning("Photo release failed", asset_id=asset_id, error=str(exc))
        else:
            logger.info("Photo released", asset_id=asset_id)

    def url_for(self, asset_id: str) -> str:
        return self._get_image_url(self._bucket.blob(asset_id))

    def _get_image_url(self, blob: storage.Blob) -> str:
        try:
            return blob.generate_signed_url(
                version="v4", method="GET", expiration=SIGNED_URL_EXPIRATION
            )
        except (ValueError, TypeError, AttributeError, auth_exceptions.GoogleAuthError):
            # Signing needs credentials with a private key. Without them fall
            # back to the public URL; uniform bucket-level access rules out
            # make_public, so permissions are left untouched.
            return blob.public_url


__all__ = ["CloudStorageAssetStore", "FirestoreRecipeStorage"]
