"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helpers for accessing cached settings and for
configuring logging once at startup.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        MONGO_URL: MongoDB connection string.
        DB_NAME: Name of the database holding all collections.
        SECRET_KEY: Key used to verify identity tokens.
        ALGORITHM: Algorithm identity tokens are signed with.
        TOKEN_AUDIENCE: Expected ``aud`` claim, checked only when set.
        TOKEN_ISSUER: Expected ``iss`` claim, checked only when set.
        ACCESS_TOKEN_EXPIRE_MINUTES: Lifetime of locally issued tokens.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting.
        RATE_LIMIT_TIMES: Requests allowed per window on limited routes.
        RATE_LIMIT_SECONDS: Length of the rate limit window.
        STRIPE_SECRET_KEY: Stripe API key for payment intents.
        PAYMENT_CURRENCY: Currency payment intents are created in.
        OFFER_UPDATE_RETRIES: Attempts at flipping a paid offer to bought.
        LOG_LEVEL: Root logging level.
    """

    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "realStateDB"
    SECRET_KEY: str = "dev-secret"
    ALGORITHM: str = "HS256"
    TOKEN_AUDIENCE: str | None = None
    TOKEN_ISSUER: str | None = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    ALLOWED_ORIGINS: List[str] = ["*"]
    REDIS_URL: str = "redis://localhost:6379"
    RATE_LIMIT_TIMES: int = 20
    RATE_LIMIT_SECONDS: int = 60
    STRIPE_SECRET_KEY: str | None = None
    PAYMENT_CURRENCY: str = "usd"
    OFFER_UPDATE_RETRIES: int = 3
    LOG_LEVEL: str = "INFO"

    class Config:
        """Pydantic configuration for loading environment variables."""

        env_file = ".env"
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger with the application format."""

    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
