"""
Trial Service for managing the post-signup trial window
"""
import math
from datetime import datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from config.settings import settings
from crud.profile import ProfileRepository
from database_models import UserProfile
from models.entitlement import SubscriptionTier, as_utc

TRIAL_STATUS = "trial"
SECONDS_PER_DAY = 86400


def days_left_in_trial(trial_ends_at: Optional[datetime], now: datetime) -> int:
    """
    Whole days remaining until trial_ends_at, rounded up.

    Returns 0 when there is no end date or the trial has already ended.
    """
    trial_end = as_utc(trial_ends_at)
    if trial_end is None:
        return 0
    remaining = (trial_end - as_utc(now)).total_seconds() / SECONDS_PER_DAY
    return max(0, math.ceil(remaining))


class TrialService:
    """
    Service for managing user trial periods.
    Handles trial start and expiring-trial lookups.
    """

    def __init__(
        self,
        profile_repo: ProfileRepository,
        clock: Optional[Callable[[], datetime]] = None,
        trial_window_days: Optional[int] = None,
    ):
        """
        Initialize the trial service.

        Args:
            profile_repo: ProfileRepository instance for profile operations
            clock: Callable returning the current UTC time
            trial_window_days: Trial length in days (defaults to TRIAL_WINDOW_DAYS)
        """
        self.profile_repo = profile_repo
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.trial_window_days = trial_window_days or settings.trial_window_days

    async def start_trial(self, user_id: str, email: Optional[str] = None) -> UserProfile:
        """
        Start a trial for a user by creating their profile with trial_ends_at.
        An existing profile is returned untouched so a trial is never restarted.

        Args:
            user_id: Owner of the profile
            email: Stored on the new profile

        Returns:
            The user's profile
        """
        existing = await self.profile_repo.get_by_user_id(user_id)
        if existing is not None:
            return existing

        trial_ends_at = self.clock() + timedelta(days=self.trial_window_days)
        return await self.profile_repo.create({
            "user_id": user_id,
            "email": email,
            "subscription_status": TRIAL_STATUS,
            "subscription_tier": SubscriptionTier.TRIAL.value,
            "trial_ends_at": trial_ends_at,
        })

    async def trials_ending_soon(self, days: Optional[int] = None) -> List[UserProfile]:
        """
        Profiles on trial whose window closes between the start of today and
        the end of the day `days` from now (UTC).
        """
        if days is None:
            days = settings.trial_reminder_days
        now = self.clock()
        start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
        end = datetime.combine((now + timedelta(days=days)).date(), time.max, tzinfo=timezone.utc)
        return await self.profile_repo.list_trials_ending_between(start, end)
