from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from .assets import DEFAULT_MAX_UPLOAD_BYTES, DEFAULT_UPLOAD_TIMEOUT

DEFAULT_JWT_SECRET = "development-secret-change-me"
DEFAULT_CORS_ORIGIN = "http://localhost:3000"


def _split_origins(value: str) -> Tuple[str, ...]:
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration passed explicitly to the collaborators that need it."""

    jwt_secret: str = DEFAULT_JWT_SECRET
    token_ttl_days: int = 30
    gcp_project: Optional[str] = None
    recipes_collection: str = "recipes"
    users_collection: str = "users"
    bucket_name: Optional[str] = None
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT
    log_level: str = "INFO"
    log_format: str = "console"
    cors_origins: Tuple[str, ...] = (DEFAULT_CORS_ORIGIN,)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""

        return cls(
            jwt_secret=os.environ.get("JWT_SECRET", DEFAULT_JWT_SECRET),
            token_ttl_days=int(os.environ.get("TOKEN_TTL_DAYS", "30")),
            gcp_project=os.environ.get("GCP_PROJECT"),
            recipes_collection=os.environ.get("RECIPES_COLLECTION", "recipes"),
            users_collection=os.environ.get("USERS_COLLECTION", "users"),
            bucket_name=os.environ.get("GCS_BUCKET"),
            max_upload_bytes=int(os.environ.get("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
            upload_timeout=float(os.environ.get("UPLOAD_TIMEOUT_SECONDS", str(DEFAULT_UPLOAD_TIMEOUT))),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "console"),
            cors_origins=_split_origins(os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGIN)),
        )


__all__ = ["Settings"]
