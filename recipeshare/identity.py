from __future__ import annotations

from typing import Dict, Iterable, Optional

import bcrypt
import structlog

from .errors import (
    AlreadyFavorited,
    Conflict,
    InvalidCredentials,
    NotFavorited,
    NotFound,
    ValidationError,
)
from .models import AssetHandle, User, new_id, utcnow
from .storage import UserRepository

logger = structlog.get_logger()


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityDirectory:
    """User records, credential checks and the favorites set."""

    def __init__(self, users: UserRepository) -> None:
        self._users = users

    def register(self, username: str, email: str, password: str) -> User:
        if not all(isinstance(value, str) for value in (username, email, password)):
            raise ValidationError("Please fill all fields")
        username = username.strip()
        email = _normalize_email(email)
        if not username or not email or not password:
            raise ValidationError("Please fill all fields")

        if self._users.get_user_by_email(email) is not None:
            raise Conflict("User already exists")

        user = User(
            id=new_id(),
            username=username,
            email=email,
            password_hash=hash_password(password),
            created_at=utcnow(),
        )
        user = self._users.create_user(user)
        logger.info("User registered", user_id=user.id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        if not isinstance(email, str) or not isinstance(password, str):
            raise InvalidCredentials()
        user = self._users.get_user_by_email(_normalize_email(email))
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentials()
        logger.info("User logged in", user_id=user.id)
        return user

    def get_user(self, user_id: str) -> User:
        user = self._users.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def toggle_favorite(self, user_id: str, recipe_id: str, add: bool) -> bool:
        user = self.get_user(user_id)

        if add:
            if user.has_favorite(recipe_id):
                raise AlreadyFavorited()
            user.favorites.append(recipe_id)
        else:
            if not user.has_favorite(recipe_id):
                raise NotFavorited()
            user.favorites = [fav for fav in user.favorites if fav != recipe_id]

        self._users.save_user(user)
        return add

    def update_profile_photo(self, user_id: str, handle: AssetHandle) -> Optional[AssetHandle]:
        """Point the user at ``handle`` and return the handle it replaced."""

        user = self.get_user(user_id)
        previous = user.profile_photo
        user.profile_photo = handle
        self._users.save_user(user)
        return previous

    def display_names(self, user_ids: Iterable[str]) -> Dict[str, dict]:
        ids = {user_id for user_id in user_ids if user_id}
        if not ids:
            return {}
        return {
            user.id: {"id": user.id, "username": user.username}
            for user in self._users.get_users(ids)
        }


__all__ = ["IdentityDirectory", "hash_password", "verify_password"]
