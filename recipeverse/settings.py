from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Settings:
    """Runtime configuration, read once at startup."""

    jwt_secret: str = "development-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    gcp_project: Optional[str] = None
    recipes_collection: str = "recipes"
    users_collection: str = "users"
    gcs_bucket: Optional[str] = None
    frontend_url: Optional[str] = None
    environment: str = "development"
    log_level: str = "INFO"
    recipe_create_limit: str = "5 per 15 minutes"
    rate_limit_storage_uri: str = "memory://"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origin(self) -> str:
        if self.is_production:
            return self.frontend_url or "https://your-deployed-frontend.com"
        return "http://localhost:5173"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and a local ``.env``)."""

        load_dotenv()
        return cls(
            jwt_secret=os.environ.get("JWT_SECRET", cls.jwt_secret),
            jwt_algorithm=os.environ.get("JWT_ALGORITHM", cls.jwt_algorithm),
            jwt_expires_days=int(os.environ.get("JWT_EXPIRES_DAYS", cls.jwt_expires_days)),
            gcp_project=os.environ.get("GCP_PROJECT"),
            recipes_collection=os.environ.get("RECIPES_COLLECTION", cls.recipes_collection),
            users_collection=os.environ.get("USERS_COLLECTION", cls.users_collection),
            gcs_bucket=os.environ.get("GCS_BUCKET"),
            frontend_url=os.environ.get("FRONTEND_URL"),
            environment=os.environ.get("APP_ENV", cls.environment),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level),
            recipe_create_limit=os.environ.get("RECIPE_CREATE_LIMIT", cls.recipe_create_limit),
            rate_limit_storage_uri=os.environ.get(
                "RATELIMIT_STORAGE_URI", cls.rate_limit_storage_uri
            ),
        )


__all__ = ["Settings"]
