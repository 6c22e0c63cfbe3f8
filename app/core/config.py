"""
Runtime settings for the visit analytics service, read from the environment
(and a local .env file when present).
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── API ────────────────────────────────────────────────────────────────────
    API_VERSION: str = "1.0.0"
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # ── Storage ────────────────────────────────────────────────────────────────
    # sqlite+aiosqlite for local runs; postgresql+asyncpg when several workers
    # write the same aggregates (row locks are only honoured there)
    DATABASE_URL: str = "sqlite+aiosqlite:///./visit_analytics.db"
    DB_POOL_SIZE: int = Field(default=10, ge=1)
    DB_MAX_OVERFLOW: int = Field(default=20, ge=0)

    # ── Rate limiting (per client address) ─────────────────────────────────────
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_INGEST: str = "600/minute"   # tracker beacons
    RATE_LIMIT_QUERY: str = "120/minute"    # dashboard reads
    RATE_LIMIT_DEFAULT: str = "60/minute"
    # Forwarded-address headers are only read when the socket peer is a listed proxy
    TRUST_PROXY_HEADERS: bool = False
    TRUSTED_PROXY_IPS: list[str] = []
    TRUSTED_IP_HEADERS: list[str] = ["x-forwarded-for", "x-real-ip"]

    # ── Reporting ──────────────────────────────────────────────────────────────
    SUMMARY_TOP_N: int = Field(default=10, ge=1, le=100)

    # ── CORS (tracker snippet + dashboard origins) ─────────────────────────────
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:8080"]

    # ── Logging ────────────────────────────────────────────────────────────────
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
