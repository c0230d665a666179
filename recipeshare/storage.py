from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

from .models import AssetHandle, Recipe, User


class RecipeRepository(Protocol):
    """Protocol describing how recipe aggregates are persisted.

    Reviews and replies live inside the recipe document; they are only ever
    written through :meth:`save`.
    """

    def create(self, recipe: Recipe) -> Recipe:
        """Persist a new aggregate and return the stored instance."""

    def get(self, recipe_id: str) -> Optional[Recipe]:
        """Return a single recipe or ``None`` if it does not exist."""

    def find(
        self,
        *,
        category: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Iterable[Recipe]:
        """Return matching recipes ordered newest first."""

    def save(self, recipe: Recipe) -> Recipe:
        """Overwrite the whole aggregate.

        Raises :class:`~recipeshare.errors.ConcurrentModification` when the
        stored version no longer matches ``recipe.version``. The returned
        instance carries the incremented version.
        """

    def delete(self, recipe_id: str) -> None:
        """Remove the recipe document."""


class UserRepository(Protocol):
    """Protocol for stored user records."""

    def create_user(self, user: User) -> User:
        """Persist a new user."""

    def get_user(self, user_id: str) -> Optional[User]:
        """Return a user or ``None``."""

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Return the user registered with ``email`` or ``None``."""

    def get_users(self, user_ids: Iterable[str]) -> List[User]:
        """Return every existing user among ``user_ids``."""

    def save_user(self, user: User) -> User:
        """Overwrite a user record."""


class AssetStore(Protocol):
    """Protocol for the external photo store."""

    def upload(
        self,
        data: bytes,
        folder: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> AssetHandle:
        """Store ``data`` and return its handle.

        Raises :class:`~recipeshare.errors.PayloadTooLarge` or
        :class:`~recipeshare.errors.UploadFailed`.
        """

    def release(self, asset_id: str) -> None:
        """Delete an asset. Failures are logged, never raised."""


__all__ = ["AssetStore", "RecipeRepository", "UserRepository"]
