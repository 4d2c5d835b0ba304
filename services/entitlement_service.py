"""
Entitlement Service - resolves payment records and profile metadata into one access decision
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.settings import settings
from models.entitlement import (
    ACTIVE_PAYMENT_STATUSES,
    EntitlementDecision,
    PaymentRecord,
    PaymentStatusResponse,
    SubscriptionTier,
    UserProfile,
    as_utc,
)
from services.trial_service import TRIAL_STATUS, days_left_in_trial

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Profile statuses that keep premium features unlocked without a payment
PREMIUM_PROFILE_STATUSES = frozenset({
    "active",
    "trial",
    "trialing",
    "premium_trial",
    "grace_period",
    "onboarding",
    "active_trial",
    "active-trial",
    "trial_active",
    "trial-user",
    "trial_user",
    "trialing_active",
    "trialing-active",
    "subscribed",
})

# Exceptions that mean the store could not be reached or queried
STORAGE_ERRORS = (SQLAlchemyError, OSError)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def select_relevant_payment(records: Iterable[PaymentRecord]) -> Optional[PaymentRecord]:
    """
    Pick the record that determines current access.

    Records must already be ordered newest first. An explicit grant wins,
    then the newest record with an active status, then the newest record.
    """
    records = list(records)
    if not records:
        return None

    for record in records:
        if record.access_granted is True:
            return record

    for record in records:
        if record.payment_status in ACTIVE_PAYMENT_STATUSES:
            return record

    return records[0]


def resolve_payment_tier(payment: Optional[PaymentRecord]) -> Optional[str]:
    """plan_type takes priority over the generic tier column."""
    if payment is None:
        return None
    return payment.plan_type or payment.tier or None


def has_active_payment(payment: Optional[PaymentRecord]) -> bool:
    """
    Whether a payment record grants access.

    A missing status is trusted only when access_granted is True. A present
    status must be in the active set regardless of access_granted, so a grant
    paired with e.g. "failed" does not give access.
    """
    if payment is None:
        return False

    status = payment.payment_status
    if payment.access_granted is True:
        return status in ACTIVE_PAYMENT_STATUSES if status else True

    return status in ACTIVE_PAYMENT_STATUSES if status else False


def resolve_organization(payment: Optional[PaymentRecord], profile: Optional[UserProfile]) -> Optional[str]:
    if payment is not None and payment.organization:
        return payment.organization
    if profile is not None and profile.institution_name:
        return profile.institution_name
    return None


def has_premium_access(
    payment: Optional[PaymentRecord],
    profile: Optional[UserProfile],
    now: datetime,
    user_created_at: Optional[datetime] = None,
    trial_window_days: int = 7,
) -> bool:
    """
    Broad premium check used by server-side route guards.

    Any of: an active payment, a premium profile status, a tier label naming
    premium or trial, an unexpired trial_ends_at, or an account younger than
    the trial window.
    """
    if has_active_payment(payment):
        return True

    if profile is not None:
        status = (profile.subscription_status or "").lower()
        if status and status in PREMIUM_PROFILE_STATUSES:
            return True

        tier = (profile.subscription_tier or "").lower()
        if tier and ("premium" in tier or "trial" in tier):
            return True

        if profile.trial_ends_at is not None and profile.trial_ends_at > now:
            return True

    created_at = as_utc(user_created_at)
    if created_at is not None:
        if created_at + timedelta(days=trial_window_days) > now:
            return True

    return False


class EntitlementService:
    """
    Read-only resolver over the payment and profile stores.

    Storage failures never propagate: they are logged and treated as
    "nothing found", so callers see a free-tier answer instead of an error.
    """

    def __init__(
        self,
        payments,
        profiles,
        clock: Clock = utcnow,
        lookup_limit: Optional[int] = None,
        trial_window_days: Optional[int] = None,
    ):
        """
        Args:
            payments: PaymentRepository (or any object with list_recent_for_user)
            profiles: ProfileRepository (or any object with get_by_user_id)
            clock: Callable returning the current UTC time
            lookup_limit: How many recent payment records to consider
            trial_window_days: Fallback trial length measured from account creation
        """
        self.payments = payments
        self.profiles = profiles
        self.clock = clock
        self.lookup_limit = lookup_limit or settings.payment_lookup_limit
        self.trial_window_days = trial_window_days or settings.trial_window_days

    async def resolve_latest_granted_payment(self, user_id: str) -> Optional[PaymentRecord]:
        try:
            rows = await self.payments.list_recent_for_user(user_id, limit=self.lookup_limit)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to load latest payment for user {user_id}: {e}")
            return None

        return select_relevant_payment(PaymentRecord.model_validate(row) for row in rows)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            row = await self.profiles.get_by_user_id(user_id)
        except STORAGE_ERRORS as e:
            logger.warning(f"Failed to load profile for user {user_id}: {e}")
            return None

        if row is None:
            return None
        return UserProfile.model_validate(row)

    def resolve_payment_tier(self, payment: Optional[PaymentRecord]) -> Optional[str]:
        return resolve_payment_tier(payment)

    def has_active_payment(self, payment: Optional[PaymentRecord]) -> bool:
        return has_active_payment(payment)

    def _decision(self, payment: Optional[PaymentRecord], profile: Optional[UserProfile]) -> EntitlementDecision:
        is_active = has_active_payment(payment)

        is_trial_user = profile is not None and profile.subscription_status == TRIAL_STATUS
        days_left = 0
        if is_trial_user:
            days_left = days_left_in_trial(profile.trial_ends_at, self.clock())

        tier = resolve_payment_tier(payment)
        if tier is None and profile is not None:
            tier = profile.subscription_tier

        return EntitlementDecision(
            is_active=is_active,
            tier=tier or SubscriptionTier.FREE.value,
            days_left_in_trial=days_left,
            can_access_premium_features=is_active or (is_trial_user and days_left > 0),
        )

    async def decide(self, user_id: str) -> EntitlementDecision:
        payment = await self.resolve_latest_granted_payment(user_id)
        profile = await self.get_profile(user_id)
        return self._decision(payment, profile)

    async def claim_payment_by_email(self, user_id: str, email: str) -> Optional[PaymentRecord]:
        """
        Attach a granted payment that was recorded against this email before
        the account existed (Stripe checkout without user metadata, manual grant).
        Storage errors are logged and resolve to None.
        """
        try:
            row = await self.payments.find_unclaimed_by_email(email)
            if row is None:
                return None
            await self.payments.claim(row, user_id)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to claim payment by email for user {user_id}: {e}")
            return None

        logger.info(f"Claimed payment {row.id} for user {user_id}")
        return PaymentRecord.model_validate(row)

    async def get_status(self, user_id: str, email: Optional[str] = None) -> PaymentStatusResponse:
        """
        Build the payload served by GET /api/payments/status.

        When no granted record belongs to the user, an unclaimed granted
        record paid for by `email` is claimed and reported with claimed=True.
        """
        payment = await self.resolve_latest_granted_payment(user_id)
        claimed = False
        if email and (payment is None or payment.access_granted is not True):
            claimed_payment = await self.claim_payment_by_email(user_id, email)
            if claimed_payment is not None:
                payment, claimed = claimed_payment, True

        profile = await self.get_profile(user_id)

        is_active = has_active_payment(payment)
        tier = resolve_payment_tier(payment)

        subscription_status = None
        subscription_tier = None
        trial_ends_at = None
        if profile is not None:
            subscription_status = profile.subscription_status
            subscription_tier = profile.subscription_tier
            if profile.trial_ends_at is not None:
                trial_ends_at = profile.trial_ends_at.isoformat()

        return PaymentStatusResponse(
            is_verified=is_active,
            has_active_subscription=is_active,
            tier=tier or subscription_tier or SubscriptionTier.FREE.value,
            subscription_status=subscription_status or ("active" if is_active else "inactive"),
            subscription_tier=subscription_tier,
            trial_ends_at=trial_ends_at,
            organization=resolve_organization(payment, profile),
            claimed=claimed,
        )

    async def check_premium_access(self, user_id: str, user_created_at: Optional[datetime] = None) -> bool:
        payment = await self.resolve_latest_granted_payment(user_id)
        profile = await self.get_profile(user_id)
        return has_premium_access(
            payment,
            profile,
            now=self.clock(),
            user_created_at=user_created_at,
            trial_window_days=self.trial_window_days,
        )
