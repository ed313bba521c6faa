from __future__ import annotations
import os
from decimal import Decimal
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "fitstake-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Fitstake")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/fitstake_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Single-currency ledger
    currency: str = os.getenv("CURRENCY", "inr")

    # Identity collaborator (bearer JWT, sub = account id)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))

    # Payment collaborator (Stripe Checkout top-ups)
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    max_deposit_per_day: Decimal = Decimal(os.getenv("MAX_DEPOSIT_PER_DAY", "100000"))

    # Post-settlement payout worker
    payout_queue_enabled: bool = os.getenv("PAYOUT_QUEUE_ENABLED", "1") == "1"
    payout_job_timeout: int = int(os.getenv("PAYOUT_JOB_TIMEOUT", "120"))

settings = Settings()
