import uuid
from typing import Optional

import structlog
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .auth import AuthGate
from .config import Settings
from .errors import PayloadTooLarge, RecipeShareError
from .identity import IdentityDirectory
from .logging_config import configure_logging
from .models import Recipe
from .routes import auth_bp, recipes_bp
from .service import RecipeService
from .storage import AssetStore

try:
    from .gcp_storage import CloudStorageAssetStore, FirestoreRecipeStorage
except ImportError:  # pragma: no cover - allows running tests without optional deps
    CloudStorageAssetStore = None  # type: ignore[assignment]
    FirestoreRecipeStorage = None  # type: ignore[assignment]

logger = structlog.get_logger()

# Room for the text fields that travel with a photo in a multipart body.
FORM_OVERHEAD_BYTES = 1024 * 1024


def create_app(
    settings: Optional[Settings] = None,
    storage=None,
    assets: Optional[AssetStore] = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    settings:
        Runtime configuration. Read from the environment when ``None``.
    storage:
        Object implementing both :class:`~recipeshare.storage.RecipeRepository`
        and :class:`~recipeshare.storage.UserRepository`. When ``None`` a
        :class:`FirestoreRecipeStorage` is built from ``settings``.
    assets:
        Photo store. When ``None`` a :class:`CloudStorageAssetStore` is built
        from ``settings``.
    """

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_format)

    if storage is None or assets is None:
        if FirestoreRecipeStorage is None:
            raise RuntimeError(
                "google-cloud-firestore and google-cloud-storage are not installed. Install them "
                "or pass explicit storage and asset backends to create_app."
            )
        if assets is None:
            assets = CloudStorageAssetStore.from_settings(settings)
        if storage is None:
            url_resolver = getattr(assets, "url_for", None)
            storage = FirestoreRecipeStorage.from_settings(settings, url_resolver=url_resolver)

    identity = IdentityDirectory(storage)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes + FORM_OVERHEAD_BYTES
    app.config["SETTINGS"] = settings
    app.config["IDENTITY"] = identity
    app.config["AUTH_GATE"] = AuthGate(identity, secret=settings.jwt_secret, ttl_days=settings.token_ttl_days)
    app.config["RECIPE_SERVICE"] = RecipeService(storage, identity, assets)
    CORS(app, resources={r"/api/*": {"origins": list(settings.cors_origins)}})

    app.register_blueprint(auth_bp)
    app.register_blueprint(recipes_bp)

    @app.before_request
    def bind_request_context() -> None:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=uuid.uuid4().hex)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.errorhandler(RecipeShareError)
    def handle_domain_error(exc: RecipeShareError):
        return jsonify({"message": exc.message}), exc.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc: RequestEntityTooLarge):
        return handle_domain_error(PayloadTooLarge())

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception("Unhandled server error")
        return jsonify({"message": "Server error"}), 500

    return app


__all__ = ["Recipe", "Settings", "create_app"]
