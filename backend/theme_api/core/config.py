from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger("theme_api.core.config")

# Load .env.local / .env explicitly so values are in os.environ before Settings
# is instantiated. Existing environment variables win (useful for CI/CD).
try:
    from dotenv import load_dotenv

    _PROJECT_ROOT = Path(__file__).parent.parent.parent
    _ENV_LOCAL = _PROJECT_ROOT / ".env.local"
    _ENV_FILE = _PROJECT_ROOT / ".env"

    if _ENV_LOCAL.exists():
        load_dotenv(_ENV_LOCAL, override=False)
        log.info("[config] Loaded .env.local from %s", _ENV_LOCAL)
    if _ENV_FILE.exists():
        load_dotenv(_ENV_FILE, override=False)
        log.info("[config] Loaded .env from %s", _ENV_FILE)
except Exception as e:  # pragma: no cover
    log.warning("[config] Failed to load .env files explicitly: %s", e)

_PROD_ENVS = {"prod", "production", "stage", "staging"}
_DEV_ENVS = {"dev", "development", "local", "test", "testing"}

_PLACEHOLDER_JWT_SECRET = "dev-jwt-secret-change-me"


class Settings(BaseSettings):
    # --- Core Infrastructure ---
    APP_ENV: str = Field(
        default="dev",
        validation_alias=AliasChoices("APP_ENV", "ENV", "PYTHON_ENV"),
    )
    DATABASE_URL: Optional[str] = None

    # --- Hosted backend (auth + edge functions) ---
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    SUPABASE_JWT_SECRET: str = _PLACEHOLDER_JWT_SECRET
    EDGE_FUNCTION_TIMEOUT_SECONDS: float = 30.0

    # --- JWT Settings ---
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = "authenticated"

    # --- Stripe Billing ---
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_BASIC_PRICE_ID: str = ""
    STRIPE_PRO_PRICE_ID: str = ""

    # --- Application Behavior ---
    APP_BASE_URL: str = "http://localhost:3000"
    CORS_ALLOWED_ORIGINS: str = "http://127.0.0.1:3000,http://localhost:3000"

    # --- Scheduled processing ---
    SCHEDULER_ENABLED: bool = False
    BATCH_INTERVAL_MINUTES: float = 30
    REALTIME_SYNC_INTERVAL_MINUTES: float = 5
    SCHEDULED_BATCH_SIZE: int = 50

    # --- Score history ---
    SCORE_HISTORY_RETENTION_DAYS: int = 365

    model_config = SettingsConfigDict(
        env_file=(
            str(Path(__file__).parent.parent.parent / ".env.local"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ),
        extra="ignore",
    )

    @property
    def is_dev_mode(self) -> bool:
        """Check if running in development mode"""
        env = (self.APP_ENV or "dev").strip().lower()
        return env in _DEV_ENVS

    @property
    def cors_allowed_origin_list(self) -> list[str]:
        raw = (self.CORS_ALLOWED_ORIGINS or "").replace(";", ",")
        seen: set[str] = set()
        merged: list[str] = []
        for origin in raw.split(","):
            cleaned = origin.strip().rstrip("/")
            if cleaned and cleaned not in seen:
                seen.add(cleaned)
                merged.append(cleaned)
        return merged

    @model_validator(mode="after")
    def _validate_and_warn(self):
        env = (self.APP_ENV or "dev").strip().lower()

        optional_keys = [
            "SUPABASE_URL",
            "SUPABASE_SERVICE_ROLE_KEY",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "STRIPE_BASIC_PRICE_ID",
            "STRIPE_PRO_PRICE_ID",
        ]
        missing_optional = [key for key in optional_keys if not getattr(self, key, "").strip()]
        if missing_optional:
            log.warning(
                "Missing/placeholder secrets%s: %s",
                " (dev allowed)" if env in _DEV_ENVS else "",
                ", ".join(sorted(missing_optional)),
            )

        # Never run production with placeholder secrets.
        if env in _PROD_ENVS:
            if not self.SUPABASE_JWT_SECRET or self.SUPABASE_JWT_SECRET == _PLACEHOLDER_JWT_SECRET:
                raise ValueError("SUPABASE_JWT_SECRET must be configured for production deployments")
            if not self.STRIPE_WEBHOOK_SECRET:
                raise ValueError("STRIPE_WEBHOOK_SECRET must be configured for production deployments")
            if not (self.DATABASE_URL or "").strip():
                raise ValueError("DATABASE_URL must be configured for production deployments")

        return self


settings = Settings()
