"""
Access Gate - turns a payment status payload into a show/hide decision for premium features
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import TypeAdapter

from services.trial_service import TRIAL_STATUS, days_left_in_trial

logger = logging.getLogger(__name__)

_timestamp_adapter = TypeAdapter(datetime)


class GateState(str, Enum):
    LOADING = "loading"
    RESOLVED_ACTIVE = "active"
    RESOLVED_TRIAL = "trial"
    RESOLVED_FREE = "free"


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    parsed = _timestamp_adapter.validate_python(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AccessGate:
    """
    Per-session capability check.

    Starts in LOADING with premium access denied. Every check re-enters
    LOADING; the gate only opens once a payload has been applied.
    """

    def __init__(self):
        self.state = GateState.LOADING
        self.has_active_subscription = False
        self.is_trial_user = False
        self.trial_ends_at: Optional[datetime] = None
        self.days_left_in_trial = 0
        self.subscription_tier: Optional[str] = None
        self.can_access_premium_features = False
        self.has_premium_access = False

    @property
    def is_loading(self) -> bool:
        return self.state is GateState.LOADING

    def begin_check(self) -> None:
        self.state = GateState.LOADING
        self.can_access_premium_features = False
        self.has_premium_access = False

    def apply(self, payload: Dict[str, Any], now: Optional[datetime] = None) -> "AccessGate":
        """
        Resolve the gate from a /api/payments/status payload.

        Args:
            payload: Wire-format dict (camelCase keys)
            now: Evaluation time, defaults to the current UTC time

        Returns:
            self, for chaining
        """
        now = now or datetime.now(timezone.utc)

        self.has_active_subscription = bool(payload.get("hasActiveSubscription"))
        self.is_trial_user = payload.get("subscriptionStatus") == TRIAL_STATUS
        self.trial_ends_at = _parse_timestamp(payload.get("trialEndsAt"))
        self.subscription_tier = payload.get("subscriptionTier")

        self.days_left_in_trial = 0
        if self.is_trial_user and self.trial_ends_at is not None:
            self.days_left_in_trial = days_left_in_trial(self.trial_ends_at, now)

        in_trial = self.is_trial_user and self.days_left_in_trial > 0
        self.can_access_premium_features = self.has_active_subscription or in_trial
        # Server-side guard verdict when the payload carries one
        server_verdict = payload.get("hasPremiumAccess")
        if server_verdict is None:
            self.has_premium_access = self.can_access_premium_features
        else:
            self.has_premium_access = bool(server_verdict)

        if self.has_active_subscription:
            self.state = GateState.RESOLVED_ACTIVE
        elif in_trial:
            self.state = GateState.RESOLVED_TRIAL
        else:
            self.state = GateState.RESOLVED_FREE
        return self

    def fail(self, error: Exception) -> "AccessGate":
        """Resolve closed after a fetch or parse error."""
        logger.error(f"Failed to check subscription status: {error}")
        self.has_active_subscription = False
        self.is_trial_user = False
        self.days_left_in_trial = 0
        self.can_access_premium_features = False
        self.has_premium_access = False
        self.state = GateState.RESOLVED_FREE
        return self

    async def refresh(
        self,
        fetch_status: Callable[[], Awaitable[Dict[str, Any]]],
        now: Optional[datetime] = None,
    ) -> "AccessGate":
        """
        Run one check: enter LOADING, fetch the status payload, resolve.
        Errors from the fetcher or from parsing leave the gate closed.
        """
        self.begin_check()
        try:
            payload = await fetch_status()
            return self.apply(payload, now=now)
        except Exception as e:
            return self.fail(e)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "isLoading": self.is_loading,
            "hasActiveSubscription": self.has_active_subscription,
            "isTrialUser": self.is_trial_user,
            "trialEndsAt": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "daysLeftInTrial": self.days_left_in_trial,
            "subscriptionTier": self.subscription_tier,
            "canAccessPremiumFeatures": self.can_access_premium_features,
            "hasPremiumAccess": self.has_premium_access,
        }
