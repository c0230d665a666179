from __future__ import annotations


class RecipeShareError(Exception):
    """Base class for failures that map onto an HTTP response."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(RecipeShareError):
    status_code = 400
    default_message = "Invalid request"


class InvalidIdentifier(RecipeShareError):
    status_code = 400
    default_message = "Invalid ID"


class Unauthenticated(RecipeShareError):
    status_code = 401
    default_message = "Not authorized"


class InvalidCredentials(RecipeShareError):
    status_code = 401
    default_message = "Invalid credentials"


class Forbidden(RecipeShareError):
    # Recipe ownership failures answer 401; callers pass 403 where needed.
    status_code = 401
    default_message = "Not authorized"


class NotFound(RecipeShareError):
    status_code = 404
    default_message = "Not found"


class Conflict(RecipeShareError):
    status_code = 400
    default_message = "Request conflicts with the current state"


class DuplicateReview(Conflict):
    default_message = "You have already reviewed this recipe"


class AlreadyFavorited(Conflict):
    default_message = "Recipe already in favorites"


class NotFavorited(Conflict):
    default_message = "Recipe not in favorites"


class ConcurrentModification(RecipeShareError):
    status_code = 409
    default_message = "Recipe was modified by another request, please retry"


class PayloadTooLarge(RecipeShareError):
    status_code = 400
    default_message = "File too large"


class UploadFailed(RecipeShareError):
    status_code = 500
    default_message = "Failed to upload photo"


__all__ = [
    "AlreadyFavorited",
    "ConcurrentModification",
    "Conflict",
    "DuplicateReview",
    "Forbidden",
    "InvalidCredentials",
    "InvalidIdentifier",
    "NotFavorited",
    "NotFound",
    "PayloadTooLarge",
    "RecipeShareError",
    "Unauthenticated",
    "UploadFailed",
    "ValidationError",
]
