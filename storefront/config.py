import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


def _int(name, default):
    value = os.getenv(name)
    return int(value) if value else default


class Settings:
    """Runtime configuration read from the environment."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL") or "sqlite:///./storefront.db"

        self.jwt_secret = os.getenv("JWT_SECRET") or "dev-secret-change-me"
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.jwt_expiration_minutes = _int("JWT_EXPIRATION_MINUTES", 60 * 24)
        self.bcrypt_rounds = _int("BCRYPT_ROUNDS", 12)

        self.payment_currency = os.getenv("PAYMENT_CURRENCY", "inr").lower()

        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY", "")
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET", "")

        self.paypal_client_id = os.getenv("PAYPAL_CLIENT_ID", "")
        self.paypal_client_secret = os.getenv("PAYPAL_CLIENT_SECRET", "")
        self.paypal_environment = os.getenv("PAYPAL_ENVIRONMENT", "sandbox").lower()
        self.paypal_return_url = os.getenv(
            "PAYPAL_RETURN_URL", "http://localhost:3000/payment/success"
        )
        self.paypal_cancel_url = os.getenv(
            "PAYPAL_CANCEL_URL", "http://localhost:3000/payment/cancel"
        )
        self.paypal_brand_name = os.getenv("PAYPAL_BRAND_NAME", "Storefront")
        self.paypal_timeout = _int("PAYPAL_TIMEOUT", 30)

        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        self.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
