"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()

DEFAULT_DATABASE_URL = "postgresql+psycopg2://localhost:5432/gst_billing"


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "GST Billing Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_JSON: bool = os.getenv("LOG_JSON", "true").lower() == "true"

    # Billing rules
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    DEFAULT_GST_RATE: Decimal = Decimal(os.getenv("DEFAULT_GST_RATE", "18"))
    # Section 269ST: cash receipts above this amount are prohibited
    CASH_RECEIPT_LIMIT: Decimal = Decimal(
        os.getenv("CASH_RECEIPT_LIMIT", "200000")
    )
    NUMBERING_MAX_RETRIES: int = int(os.getenv("NUMBERING_MAX_RETRIES", "5"))


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
