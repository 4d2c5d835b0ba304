"""
Entitlement domain types: normalized payment records, profiles and access decisions
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAID = "paid"
    PREMIUM = "premium"
    TRIALING = "trialing"
    INACTIVE = "inactive"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw) -> Optional["PaymentStatus"]:
        """
        Normalize a free-text status string.

        Missing or blank values return None; unrecognized text maps to UNKNOWN.
        """
        if raw is None:
            return None
        if isinstance(raw, PaymentStatus):
            return raw
        normalized = str(raw).strip().lower()
        if not normalized:
            return None
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


ACTIVE_PAYMENT_STATUSES = frozenset({
    PaymentStatus.ACTIVE,
    PaymentStatus.COMPLETED,
    PaymentStatus.PAID,
    PaymentStatus.PREMIUM,
    PaymentStatus.TRIALING,
})


class SubscriptionTier(str, Enum):
    FREE = "free"
    TRIAL = "trial"
    PAID_MONTHLY = "paid-monthly"
    PAID_YEARLY = "paid-yearly"
    ENTERPRISE = "enterprise"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PaymentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    organization: Optional[str] = None
    tier: Optional[str] = None
    plan_type: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    access_granted: Optional[bool] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("payment_status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return PaymentStatus.parse(value)

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def normalize_timestamps(cls, value):
        return as_utc(value)


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: Optional[str] = None
    institution_name: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_tier: Optional[str] = None
    trial_ends_at: Optional[datetime] = None

    @field_validator("trial_ends_at", mode="after")
    @classmethod
    def normalize_trial_end(cls, value):
        return as_utc(value)


class EntitlementDecision(BaseModel):
    """Derived access decision; recomputed on every check and never stored."""
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(default=False, alias="isActive")
    tier: Optional[str] = None
    days_left_in_trial: int = Field(default=0, ge=0, alias="daysLeftInTrial")
    can_access_premium_features: bool = Field(default=False, alias="canAccessPremiumFeatures")


class PaymentStatusResponse(BaseModel):
    """Payload of GET /api/payments/status. Field aliases are the wire names."""
    model_config = ConfigDict(populate_by_name=True)

    is_verified: bool = Field(default=False, alias="isVerified")
    has_active_subscription: bool = Field(default=False, alias="hasActiveSubscription")
    tier: str = SubscriptionTier.FREE.value
    subscription_status: str = Field(default="inactive", alias="subscriptionStatus")
    subscription_tier: Optional[str] = Field(default=None, alias="subscriptionTier")
    trial_ends_at: Optional[str] = Field(default=None, alias="trialEndsAt")
    organization: Optional[str] = None
    claimed: bool = False

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
