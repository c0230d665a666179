from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

_IDENTIFIER_RE = re.compile(r"^[0-9a-f]{32}$")


def new_id() -> str:
    return uuid.uuid4().hex


def is_valid_id(value: object) -> bool:
    return isinstance(value, str) and bool(_IDENTIFIER_RE.match(value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AssetHandle:
    """Location of a binary asset in the external content store."""

    asset_id: str
    url: str

    def to_dict(self) -> dict:
        return {"public_id": self.asset_id, "url": self.url}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["AssetHandle"]:
        if not data or not data.get("public_id"):
            return None
        return cls(asset_id=data["public_id"], url=data.get("url", ""))


@dataclass
class User:
    id: str
    username: str
    email: str
    password_hash: str
    profile_photo: Optional[AssetHandle] = None
    favorites: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def has_favorite(self, recipe_id: str) -> bool:
        return recipe_id in self.favorites

    def to_public_dict(self) -> dict:
        """Serialize without the credential hash."""

        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "profilePhoto": self.profile_photo.to_dict() if self.profile_photo else None,
            "favorites": list(self.favorites),
            "createdAt": isoformat(self.created_at),
        }

    def to_document(self) -> dict:
        return {
            "username": self.username,
            "email": self.email,
            "password_hash": self.password_hash,
            "profile_photo": self.profile_photo.to_dict() if self.profile_photo else None,
            "favorites": list(self.favorites),
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "User":
        return cls(
            id=doc_id,
            username=data.get("username", ""),
            email=data.get("email", ""),
            password_hash=data.get("password_hash", ""),
            profile_photo=AssetHandle.from_dict(data.get("profile_photo")),
            favorites=list(data.get("favorites") or []),
            created_at=_as_datetime(data.get("created_at")),
        )


@dataclass
class Reply:
    id: str
    description: str
    user_id: str
    created_at: Optional[datetime] = None

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "user": self.user_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, data: dict) -> "Reply":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            user_id=data.get("user", ""),
            created_at=_as_datetime(data.get("created_at")),
        )


@dataclass
class Review:
    id: str
    rating: int
    description: str
    user_id: str
    replies: List[Reply] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "rating": self.rating,
            "description": self.description,
            "user": self.user_id,
            "replies": [reply.to_document() for reply in self.replies],
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, data: dict) -> "Review":
        return cls(
            id=data["id"],
            rating=int(data.get("rating", 0)),
            description=data.get("description", ""),
            user_id=data.get("user", ""),
            replies=[Reply.from_document(item) for item in data.get("replies") or []],
            created_at=_as_datetime(data.get("created_at")),
        )


@dataclass
class Recipe:
    """A recipe aggregate together with its embedded reviews and replies."""

    id: str
    title: str
    ingredients: List[str]
    instructions: str
    category: str
    cooking_time: str
    photo: Optional[AssetHandle]
    created_by: str
    reviews: List[Review] = field(default_factory=list)
    created_at: Optional[datetime] = None
    version: int = 0

    def find_review(self, review_id: str) -> Optional[Review]:
        return next((review for review in self.reviews if review.id == review_id), None)

    def has_review_by(self, user_id: str) -> bool:
        return any(review.user_id == user_id for review in self.reviews)

    def author_ids(self) -> set:
        ids = {self.created_by}
        for review in self.reviews:
            ids.add(review.user_id)
            ids.update(reply.user_id for reply in review.replies)
        return ids

    def to_document(self) -> dict:
        return {
            "title": self.title,
            "ingredients": list(self.ingredients),
            "instructions": self.instructions,
            "category": self.category,
            "cooking_time": self.cooking_time,
            "photo": self.photo.to_dict() if self.photo else None,
            "created_by": self.created_by,
            "reviews": [review.to_document() for review in self.reviews],
            "created_at": self.created_at,
            "version": self.version,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Recipe":
        ingredients = data.get("ingredients")
        return cls(
            id=doc_id,
            title=data.get("title", ""),
            ingredients=list(ingredients) if isinstance(ingredients, list) else [],
            instructions=data.get("instructions", ""),
            category=data.get("category", ""),
            cooking_time=data.get("cooking_time", ""),
            photo=AssetHandle.from_dict(data.get("photo")),
            created_by=data.get("created_by", ""),
            reviews=[Review.from_document(item) for item in data.get("reviews") or []],
            created_at=_as_datetime(data.get("created_at")),
            version=int(data.get("version", 0)),
        )


def _as_datetime(value: Any) -> Optional[datetime]:
    return value if isinstance(value, datetime) else None


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


__all__ = [
    "AssetHandle",
    "Recipe",
    "Reply",
    "Review",
    "User",
    "is_valid_id",
    "isoformat",
    "new_id",
    "utcnow",
]
