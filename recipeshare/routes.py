from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Blueprint, current_app, jsonify, request

from .assets import PhotoUpload
from .auth import AuthGate, current_user, login_required, optional_login
from .identity import IdentityDirectory
from .service import RecipeService

PHOTO_FIELD = "photo"

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
recipes_bp = Blueprint("recipes", __name__, url_prefix="/api/recipes")


def _service() -> RecipeService:
    return current_app.config["RECIPE_SERVICE"]


def _identity() -> IdentityDirectory:
    return current_app.config["IDENTITY"]


def _gate() -> AuthGate:
    return current_app.config["AUTH_GATE"]


def _payload() -> Mapping[str, Any]:
    """Return the JSON body, or the form fields for multipart requests."""

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form


def _photo() -> Optional[PhotoUpload]:
    return PhotoUpload.from_file_storage(request.files.get(PHOTO_FIELD))


def _session_body(user) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "token": _gate().issue_token(user.id),
    }


# Auth


@auth_bp.post("/register")
def register():
    body = _payload()
    user = _identity().register(body.get("username"), body.get("email"), body.get("password"))
    return jsonify(_session_body(user)), 201


@auth_bp.post("/login")
def login():
    body = _payload()
    user = _identity().authenticate(body.get("email"), body.get("password"))
    return jsonify(_session_body(user))


@auth_bp.post("/logout")
@login_required
def logout():
    # Tokens are stateless; the client discards its copy.
    return jsonify({"message": "Logged out successfully"})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(current_user().to_public_dict())


# Recipes


@recipes_bp.get("")
@optional_login
def list_recipes():
    return jsonify(_service().list_recipes(current_user(), request.args.get("category")))


@recipes_bp.get("/favorites")
@login_required
def list_favorites():
    return jsonify(_service().list_favorites(current_user()))


@recipes_bp.get("/my-recipes")
@login_required
def list_my_recipes():
    return jsonify(_service().list_owned(current_user()))


@recipes_bp.get("/users/<user_id>/recipes")
@login_required
def list_user_recipes(user_id: str):
    return jsonify(_service().list_user_recipes(current_user(), user_id))


@recipes_bp.put("/users/profile/photo")
@login_required
def update_profile_photo():
    handle = _service().update_profile_photo(current_user(), _photo())
    return jsonify({"profilePhoto": handle.to_dict(), "message": "Profile photo updated successfully"})


@recipes_bp.get("/<recipe_id>")
@optional_login
def get_recipe(recipe_id: str):
    return jsonify(_service().get_recipe(current_user(), recipe_id))


@recipes_bp.post("")
@login_required
def create_recipe():
    recipe = _service().create_recipe(current_user(), _payload(), _photo())
    return jsonify(recipe), 201


@recipes_bp.put("/<recipe_id>")
@login_required
def update_recipe(recipe_id: str):
    recipe = _service().update_recipe(current_user(), recipe_id, _payload(), _photo())
    return jsonify(recipe)


@recipes_bp.delete("/<recipe_id>")
@login_required
def delete_recipe(recipe_id: str):
    _service().delete_recipe(current_user(), recipe_id)
    return jsonify({"message": "Recipe deleted"})


@recipes_bp.post("/<recipe_id>/reviews")
@login_required
def add_review(recipe_id: str):
    body = _payload()
    recipe = _service().add_review(current_user(), recipe_id, body.get("rating"), body.get("description"))
    return jsonify(recipe), 201


@recipes_bp.post("/<recipe_id>/reviews/<review_id>/replies")
@login_required
def add_reply(recipe_id: str, review_id: str):
    body = _payload()
    recipe = _service().add_reply(current_user(), recipe_id, review_id, body.get("description"))
    return jsonify(recipe), 201


@recipes_bp.post("/<recipe_id>/favorite")
@login_required
def add_favorite(recipe_id: str):
    state = _service().toggle_favorite(current_user(), recipe_id, add=True)
    return jsonify({"message": "Recipe added to favorites", "isFavorited": state})


@recipes_bp.delete("/<recipe_id>/favorite")
@login_required
def remove_favorite(recipe_id: str):
    state = _service().toggle_favorite(current_user(), recipe_id, add=False)
    return jsonify({"message": "Recipe removed from favorites", "isFavorited": state})


__all__ = ["auth_bp", "recipes_bp"]
