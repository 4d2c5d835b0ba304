"""
Configuration settings for the application
"""
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default tier labels written by checkout and admin grants
DEFAULT_SUBSCRIPTION_TIERS = ["free", "trial", "paid-monthly", "paid-yearly", "enterprise"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    admin_grant_token: Optional[str] = Field(default=None, alias="ADMIN_GRANT_TOKEN")
    cron_secret: Optional[str] = Field(default=None, alias="CRON_SECRET")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_price_id: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ID")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # Entitlement configuration
    trial_window_days: int = Field(default=7, alias="TRIAL_WINDOW_DAYS")
    trial_reminder_days: int = Field(default=3, alias="TRIAL_REMINDER_DAYS")
    payment_lookup_limit: int = Field(default=5, alias="PAYMENT_LOOKUP_LIMIT")
    subscription_tiers_setting: str = Field(default=",".join(DEFAULT_SUBSCRIPTION_TIERS), alias="SUBSCRIPTION_TIERS")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    env: Optional[str] = Field(default=None, alias="ENV")

    @property
    def subscription_tiers(self) -> List[str]:
        """Tier labels parsed from the comma-separated SUBSCRIPTION_TIERS value"""
        return [tier.strip().lower() for tier in self.subscription_tiers_setting.split(",") if tier.strip()]


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
