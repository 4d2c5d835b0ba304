"""
Cron Router - scheduled jobs triggered over HTTP
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from dependencies import get_trial_service, require_cron_secret
from models.entitlement import as_utc
from services.trial_service import TrialService, days_left_in_trial

logger = logging.getLogger(__name__)

cron_router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@cron_router.get("/trial-reminders")
async def trial_reminders(trials: TrialService = Depends(get_trial_service)):
    """
    List users whose trial ends within TRIAL_REMINDER_DAYS.
    Returns the recipients only; the reminder email is sent elsewhere.
    """
    profiles = await trials.trials_ending_soon()
    now = datetime.now(timezone.utc)
    logger.info(f"Found {len(profiles)} user(s) with trials ending soon")

    return {
        "count": len(profiles),
        "users": [
            {
                "user_id": profile.user_id,
                "email": profile.email,
                "institution_name": profile.institution_name,
                "trial_ends_at": as_utc(profile.trial_ends_at).isoformat() if profile.trial_ends_at else None,
                "days_left": days_left_in_trial(profile.trial_ends_at, now),
            }
            for profile in profiles
        ],
        "timestamp": now.isoformat(),
    }
