"""
Configuration management for the memorial storefront.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from typing import Optional

logger = logging.getLogger(__name__)


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "memorial-store")
    REGION: str = os.getenv("REGION", "us-east-1")
    SITE_URL: str = os.getenv("SITE_URL", "http://localhost:3000")
    CHECKOUT_SUCCESS_PATH: str = os.getenv("CHECKOUT_SUCCESS_PATH", "/checkout/success")
    CHECKOUT_CANCEL_PATH: str = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout/cancel")

    # Hosted database (PostgREST API)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "http://localhost:54321")
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    PERSISTENCE_TIMEOUT_SECONDS: float = float(os.getenv("PERSISTENCE_TIMEOUT_SECONDS", "30"))

    # Object storage for memorial photos (S3 compatible)
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "photos")
    STORAGE_ENDPOINT_URL: Optional[str] = os.getenv("STORAGE_ENDPOINT_URL")
    STORAGE_ACCESS_KEY_ID: Optional[str] = os.getenv("STORAGE_ACCESS_KEY_ID")
    STORAGE_SECRET_ACCESS_KEY: Optional[str] = os.getenv("STORAGE_SECRET_ACCESS_KEY")
    STORAGE_PUBLIC_URL: str = os.getenv(
        "STORAGE_PUBLIC_URL",
        f"{SUPABASE_URL}/storage/v1/object/public"
    )
    PHOTO_FOLDER: str = os.getenv("PHOTO_FOLDER", "order")
    MAX_PHOTO_BYTES: int = int(os.getenv("MAX_PHOTO_BYTES", str(10 * 1024 * 1024)))  # 10 MB

    # Payment provider
    PAYMENT_GATEWAY: str = os.getenv("PAYMENT_GATEWAY", "stripe").lower()  # "stripe" or "fake"
    STRIPE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_API_VERSION: str = os.getenv("STRIPE_API_VERSION", "2025-06-30.basil")
    CHECKOUT_CURRENCY: str = os.getenv("CHECKOUT_CURRENCY", "usd")
    CHECKOUT_PRODUCT_NAME: str = os.getenv("CHECKOUT_PRODUCT_NAME", "Memorial Order")

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    # Wizard session settings
    WIZARD_SESSION_TTL_SECONDS: int = int(os.getenv("WIZARD_SESSION_TTL_SECONDS", str(1 * 24 * 60 * 60)))  # 1 day
    SUBMISSION_LOCK_TTL_SECONDS: int = int(os.getenv("SUBMISSION_LOCK_TTL_SECONDS", "120"))

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_MAX_RETRIES: int = int(os.getenv("REDIS_MAX_RETRIES", "3"))
    REDIS_INITIAL_BACKOFF_SECONDS: float = 0.1
    REDIS_MAX_BACKOFF_SECONDS: float = 2.0

    @classmethod
    def checkout_success_url(cls) -> str:
        return f"{cls.SITE_URL.rstrip('/')}{cls.CHECKOUT_SUCCESS_PATH}"

    @classmethod
    def checkout_cancel_url(cls) -> str:
        return f"{cls.SITE_URL.rstrip('/')}{cls.CHECKOUT_CANCEL_PATH}"

    @classmethod
    def load_secrets(cls) -> None:
        """Load payment and database secrets from AWS Secrets Manager"""
        if cls.STRIPE_SECRET_KEY and cls.SUPABASE_SERVICE_ROLE_KEY:
            return  # Already loaded from environment

        secret_name = os.getenv("APP_SECRET_NAME")
        if not secret_name:
            return  # No secret name provided, rely on environment

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.STRIPE_SECRET_KEY = cls.STRIPE_SECRET_KEY or secret_data.get("stripe_secret_key")
            cls.STRIPE_WEBHOOK_SECRET = cls.STRIPE_WEBHOOK_SECRET or secret_data.get("stripe_webhook_secret")
            cls.SUPABASE_SERVICE_ROLE_KEY = (
                cls.SUPABASE_SERVICE_ROLE_KEY or secret_data.get("supabase_service_role_key")
            )
            if "redis_auth_token" in secret_data and not cls.REDIS_AUTH_TOKEN:
                cls.REDIS_AUTH_TOKEN = secret_data["redis_auth_token"]
        except Exception as e:
            logger.warning(f"Could not load secrets from Secrets Manager: {e}")
            # Continue with whatever the environment provides


# Load secrets at module import
Config.load_secrets()
