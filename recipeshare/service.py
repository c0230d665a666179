"""Recipe aggregate operations.

:class:`RecipeService` holds no state of its own. Every call loads the
aggregate it needs from the repository, checks ownership and input, talks to
the asset store for photo changes and writes the whole aggregate back.
Responses are plain dictionaries with authors resolved to ``{id, username}``.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from .assets import RECIPE_PHOTO_FOLDER, PROFILE_PHOTO_FOLDER, PhotoUpload
from .errors import (
    ConcurrentModification,
    DuplicateReview,
    Forbidden,
    InvalidIdentifier,
    NotFound,
    ValidationError,
)
from .identity import IdentityDirectory
from .models import (
    AssetHandle,
    Recipe,
    Reply,
    Review,
    User,
    is_valid_id,
    isoformat,
    new_id,
    utcnow,
)
from .storage import AssetStore, RecipeRepository

logger = structlog.get_logger()

MIN_RATING = 1
MAX_RATING = 10

# Request field name -> Recipe attribute.
EDITABLE_FIELDS = {
    "title": "title",
    "ingredients": "ingredients",
    "instructions": "instructions",
    "category": "category",
    "cookingTime": "cooking_time",
}


def parse_ingredients(value: Any) -> List[str]:
    """Accept a list of strings or its JSON encoding, as sent in multipart forms."""

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationError("Ingredients must be a JSON array of strings")
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError("Ingredients must be a JSON array of strings")
    return [item.strip() for item in value if item.strip()]


def parse_rating(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("Rating must be between 1 and 10")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError("Rating must be between 1 and 10")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError("Rating must be between 1 and 10")
    return value


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _require_id(value: str, what: str = "recipe") -> None:
    if not is_valid_id(value):
        raise InvalidIdentifier(f"Invalid {what} ID")


class RecipeService:
    def __init__(
        self,
        recipes: RecipeRepository,
        identity: IdentityDirectory,
        assets: AssetStore,
    ) -> None:
        self._recipes = recipes
        self._identity = identity
        self._assets = assets

    # -- reads ---------------------------------------------------------

    def list_recipes(self, viewer: Optional[User], category: Optional[str] = None) -> List[dict]:
        category = _clean_text(category) or None
        return self._present_many(self._recipes.find(category=category), viewer)

    def get_recipe(self, viewer: Optional[User], recipe_id: str) -> dict:
        recipe = self._load(recipe_id)
        return self._present_many([recipe], viewer)[0]

    def list_owned(self, actor: User) -> List[dict]:
        return self._present_many(self._recipes.find(owner_id=actor.id), None)

    def list_favorites(self, actor: User) -> List[dict]:
        recipes = []
        for recipe_id in actor.favorites:
            recipe = self._recipes.get(recipe_id) if is_valid_id(recipe_id) else None
            if recipe is not None:
                recipes.append(recipe)
        return self._present_many(recipes, None)

    def list_user_recipes(self, actor: User, user_id: str) -> List[dict]:
        _require_id(user_id, "user")
        if user_id != actor.id:
            raise Forbidden("Not authorized to view this user's recipes", status_code=403)

        names = self._identity.display_names([user_id])
        return [
            {
                "id": recipe.id,
                "title": recipe.title,
                "category": recipe.category,
                "photo": recipe.photo.to_dict() if recipe.photo else None,
                "createdBy": names.get(recipe.created_by),
            }
            for recipe in self._recipes.find(owner_id=user_id)
        ]

    # -- recipe lifecycle ----------------------------------------------

    def create_recipe(
        self,
        owner: User,
        fields: Mapping[str, Any],
        photo: Optional[PhotoUpload],
    ) -> dict:
        values = {name: fields.get(name) for name in EDITABLE_FIELDS}
        missing = [name for name, value in values.items() if not _present(value)]
        if missing or photo is None:
            raise ValidationError("Please fill all fields and upload a photo")

        ingredients = parse_ingredients(values["ingredients"])
        if not ingredients:
            raise ValidationError("Please fill all fields and upload a photo")
        photo.validate()

        handle = self._assets.upload(
            photo.data,
            RECIPE_PHOTO_FOLDER,
            filename=photo.filename,
            content_type=photo.content_type,
        )

        recipe = Recipe(
            id=new_id(),
            title=_clean_text(values["title"]),
            ingredients=ingredients,
            instructions=_clean_text(values["instructions"]),
            category=_clean_text(values["category"]),
            cooking_time=_clean_text(values["cookingTime"]),
            photo=handle,
            created_by=owner.id,
            created_at=utcnow(),
        )
        try:
            recipe = self._recipes.create(recipe)
        except Exception:
            self._assets.release(handle.asset_id)
            raise

        logger.info("Recipe created", recipe_id=recipe.id, owner_id=owner.id)
        return self._present_many([recipe], None)[0]

    def update_recipe(
        self,
        actor: User,
        recipe_id: str,
        fields: Mapping[str, Any],
        photo: Optional[PhotoUpload] = None,
    ) -> dict:
        recipe = self._load(recipe_id)
        self._ensure_owner(recipe, actor)
        if photo is not None:
            photo.validate()

        changes: Dict[str, Any] = {}
        for name, attribute in EDITABLE_FIELDS.items():
            value = fields.get(name)
            if not _present(value):
                continue
            if name == "ingredients":
                parsed = parse_ingredients(value)
                if parsed:
                    changes[attribute] = parsed
            else:
                changes[attribute] = _clean_text(value)

        new_handle: Optional[AssetHandle] = None
        if photo is not None:
            if recipe.photo is not None:
                self._assets.release(recipe.photo.asset_id)
            new_handle = self._assets.upload(
                photo.data,
                RECIPE_PHOTO_FOLDER,
                filename=photo.filename,
                content_type=photo.content_type,
            )
            changes["photo"] = new_handle

        for attribute, value in changes.items():
            setattr(recipe, attribute, value)

        try:
            recipe = self._recipes.save(recipe)
        except Exception:
            if new_handle is not None:
                self._assets.release(new_handle.asset_id)
            raise

        logger.info("Recipe updated", recipe_id=recipe.id, fields=sorted(changes))
        return self._present_many([recipe], None)[0]

    def delete_recipe(self, actor: User, recipe_id: str) -> None:
        recipe = self._load(recipe_id)
        self._ensure_owner(recipe, actor)

        if recipe.photo is not None:
            self._assets.release(recipe.photo.asset_id)
        self._recipes.delete(recipe.id)
        logger.info("Recipe deleted", recipe_id=recipe.id)

    # -- reviews and replies -------------------------------------------

    def add_review(self, actor: User, recipe_id: str, rating: Any, description: Any) -> dict:
        recipe = self._load(recipe_id)

        rating = parse_rating(rating)
        description = _clean_text(description)
        if not description:
            raise ValidationError("Description is required")

        if recipe.has_review_by(actor.id):
            raise DuplicateReview()

        recipe.reviews.append(
            Review(
                id=new_id(),
                rating=rating,
                description=description,
                user_id=actor.id,
                created_at=utcnow(),
            )
        )
        recipe = self._save_appended(recipe)
        logger.info("Review added", recipe_id=recipe.id)
        return self._present_many([recipe], None)[0]

    def add_reply(self, actor: User, recipe_id: str, review_id: str, description: Any) -> dict:
        _require_id(recipe_id)
        _require_id(review_id, "review")
        recipe = self._load(recipe_id)

        review = recipe.find_review(review_id)
        if review is None:
            raise NotFound("Review not found")

        description = _clean_text(description)
        if not description:
            raise ValidationError("Reply description is required")

        review.replies.append(
            Reply(id=new_id(), description=description, user_id=actor.id, created_at=utcnow())
        )
        recipe = self._save_appended(recipe)
        logger.info("Reply added", recipe_id=recipe.id, review_id=review_id)
        return self._present_many([recipe], None)[0]

    # -- favorites and profile -----------------------------------------

    def toggle_favorite(self, actor: User, recipe_id: str, add: bool) -> bool:
        recipe = self._load(recipe_id)
        state = self._identity.toggle_favorite(actor.id, recipe.id, add)
        if add:
            actor.favorites.append(recipe.id)
        else:
            actor.favorites = [fav for fav in actor.favorites if fav != recipe.id]
        return state

    def update_profile_photo(self, actor: User, photo: Optional[PhotoUpload]) -> AssetHandle:
        if photo is None:
            raise ValidationError("No file uploaded")
        photo.validate()

        handle = self._assets.upload(
            photo.data,
            PROFILE_PHOTO_FOLDER,
            filename=photo.filename,
            content_type=photo.content_type,
        )
        previous = self._identity.update_profile_photo(actor.id, handle)
        actor.profile_photo = handle
        if previous is not None and previous.asset_id != handle.asset_id:
            self._assets.release(previous.asset_id)
        logger.info("Profile photo updated", user_id=actor.id)
        return handle

    # -- helpers -------------------------------------------------------

    def _load(self, recipe_id: str) -> Recipe:
        _require_id(recipe_id)
        recipe = self._recipes.get(recipe_id)
        if recipe is None:
            raise NotFound("Recipe not found")
        return recipe

    @staticmethod
    def _ensure_owner(recipe: Recipe, actor: User) -> None:
        if recipe.created_by != actor.id:
            logger.warning("Ownership check failed", recipe_id=recipe.id, actor_id=actor.id)
            raise Forbidden("Not authorized")

    def _save_appended(self, recipe: Recipe) -> Recipe:
        try:
            return self._recipes.save(recipe)
        except ConcurrentModification:
            logger.info("Concurrent recipe update rejected", recipe_id=recipe.id)
            raise

    def _present_many(self, recipes: Iterable[Recipe], viewer: Optional[User]) -> List[dict]:
        recipes = list(recipes)
        author_ids = set()
        for recipe in recipes:
            author_ids.update(recipe.author_ids())
        names = self._identity.display_names(author_ids)
        favorites = set(viewer.favorites) if viewer is not None else None
        return [present_recipe(recipe, names, favorites) for recipe in recipes]


def present_recipe(
    recipe: Recipe,
    names: Mapping[str, dict],
    favorites: Optional[set] = None,
) -> dict:
    """Render an aggregate for clients.

    ``isFavorited`` is only included when ``favorites`` is given, i.e. when a
    viewer is known.
    """

    data = {
        "id": recipe.id,
        "title": recipe.title,
        "ingredients": list(recipe.ingredients),
        "instructions": recipe.instructions,
        "category": recipe.category,
        "cookingTime": recipe.cooking_time,
        "photo": recipe.photo.to_dict() if recipe.photo else None,
        "createdBy": names.get(recipe.created_by),
        "reviews": [
            {
                "id": review.id,
                "rating": review.rating,
                "description": review.description,
                "user": names.get(review.user_id),
                "replies": [
                    {
                        "id": reply.id,
                        "description": reply.description,
                        "user": names.get(reply.user_id),
                        "createdAt": isoformat(reply.created_at),
                    }
                    for reply in review.replies
                ],
                "createdAt": isoformat(review.created_at),
            }
            for review in recipe.reviews
        ],
        "createdAt": isoformat(recipe.created_at),
    }
    if favorites is not None:
        data["isFavorited"] = recipe.id in favorites
    return data


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return bool(value)
    return True


__all__ = ["RecipeService", "parse_ingredients", "parse_rating", "present_recipe"]
