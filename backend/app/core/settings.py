import os
from decimal import Decimal


class Settings:
    def __init__(self):
        self.app_name = "Tutoring Billing"
        self.api_version = "1.0.0"
        self.environment = os.getenv("APP_ENV", "development")
        self.secret_key = os.getenv("SECRET_KEY", "CHANGE_ME")
        self.access_token_expire_minutes = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./tutoring_billing.db")

        # Payments
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY")
        self.billing_currency = os.getenv("BILLING_CURRENCY", "eur")
        self.payment_timeout_seconds = int(os.getenv("PAYMENT_TIMEOUT_SECONDS", "30"))
        self.default_commission_rate = Decimal(os.getenv("DEFAULT_COMMISSION_RATE", "0"))

        # Local development admin
        self.dev_admin_email = os.getenv("DEV_ADMIN_EMAIL", "admin@test.com")
        self.dev_admin_password = os.getenv("DEV_ADMIN_PASSWORD", "Secret123!")


_settings_instance = None


def get_settings():
    """Return a singleton Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
