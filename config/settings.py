"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "Accurate Astro API"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str  # session cookie signing

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    WORKERS: int = 2

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_TIMEOUT: int = 30

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7

    # ── Razorpay ─────────────────────────────────────────────
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    PAYMENT_CURRENCY: str = "INR"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 15.0

    # ── Frontend / CORS ──────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:5173"
    ALLOWED_ORIGINS: str = "http://localhost:5173,https://accurateastro.in,https://www.accurateastro.in"
    ALLOWED_ORIGIN_REGEX: Optional[str] = r"https://.*\.vercel\.app"

    # ── Object Storage (S3 / R2 / Supabase S3 endpoint) ──────
    S3_ACCESS_KEY_ID: str = ""
    S3_SECRET_ACCESS_KEY: str = ""
    S3_ENDPOINT_URL: str = ""
    S3_REGION: str = "auto"
    STORAGE_BUCKET: str = "accurateastro"
    STORAGE_PUBLIC_BASE_URL: str = ""
    STORAGE_TIMEOUT_SECONDS: int = 20
    UPLOAD_MAX_BYTES: int = 2 * 1024 * 1024

    # ── Business Config ──────────────────────────────────────
    CONSULTATION_AMOUNT: int = 600
    KUNDLI_AMOUNT: int = 300
    # Oldest accepted kundli birth date, in years. None keeps it unbounded.
    KUNDLI_MAX_AGE_YEARS: Optional[int] = None
    # "permissive": any valid status; "strict": forward edges + cancel only
    STATUS_TRANSITION_MODE: str = "permissive"

    # ── Admin bootstrap (first run only) ─────────────────────
    ADMIN_BOOTSTRAP_USERNAME: Optional[str] = None
    ADMIN_BOOTSTRAP_PASSWORD: Optional[str] = None
    ADMIN_BOOTSTRAP_EMAIL: str = "admin@accurateastro.in"

    @field_validator("STATUS_TRANSITION_MODE")
    @classmethod
    def validate_transition_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in ("permissive", "strict"):
            raise ValueError("STATUS_TRANSITION_MODE must be 'permissive' or 'strict'")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance; call this everywhere."""
    return Settings()


settings = get_settings()
