"""
Configuration management for the order confirmation service.

Loads environment variables from .env file and provides typed access to configuration.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)

logger = logging.getLogger(__name__)


class Config:
    """Configuration class for the order confirmation service."""

    # Service
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # WhatsApp Cloud API (or Kapso proxy with the same endpoint shape)
    WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_API_BASE_URL = os.getenv("WHATSAPP_API_BASE_URL", "https://graph.facebook.com")
    WHATSAPP_API_VERSION = os.getenv("WHATSAPP_API_VERSION", "v18.0")

    # Webhook security
    WHATSAPP_APP_SECRET = os.getenv("WHATSAPP_APP_SECRET", "")
    WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "")

    # Order notification template
    ORDER_TEMPLATE_NAME = os.getenv("ORDER_TEMPLATE_NAME", "evio_orden")
    ORDER_TEMPLATE_LANGUAGE = os.getenv("ORDER_TEMPLATE_LANGUAGE", "es_AR")

    # Phone normalization
    DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "54")

    REQUIRED = (
        "WHATSAPP_ACCESS_TOKEN",
        "WHATSAPP_PHONE_NUMBER_ID",
        "WHATSAPP_APP_SECRET",
        "WHATSAPP_VERIFY_TOKEN",
    )

    @classmethod
    def missing(cls) -> list[str]:
        """Names of required settings that are not set."""
        return [key for key in cls.REQUIRED if not getattr(cls, key)]

    @classmethod
    def validate(cls) -> bool:
        """Validate that required configuration is set."""
        missing = cls.missing()
        if missing:
            logger.warning(f"Missing required environment variables: {', '.join(missing)}")
            return False

        return True


if __name__ == "__main__":
    # Test configuration loading
    print("Configuration loaded:")
    print(f"  WhatsApp Access Token: {'✓ Set' if Config.WHATSAPP_ACCESS_TOKEN else '✗ Missing'}")
    print(f"  Phone Number ID: {Config.WHATSAPP_PHONE_NUMBER_ID or '✗ Missing'}")
    print(f"  API: {Config.WHATSAPP_API_BASE_URL}/{Config.WHATSAPP_API_VERSION}")
    print(f"  Template: {Config.ORDER_TEMPLATE_NAME} ({Config.ORDER_TEMPLATE_LANGUAGE})")
    print(f"  Environment: {Config.ENVIRONMENT}")
    print(f"\n  Validation: {'✓ PASSED' if Config.validate() else '✗ FAILED'}")
