"""
ProfileRepository for database operations on the user_profiles table
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import UserProfile


class ProfileRepository:
    """Repository class for UserProfile database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_user_id(self, user_id: str) -> Optional[UserProfile]:
        result = await self.db.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(self, profile_data: dict) -> UserProfile:
        profile = UserProfile(**profile_data)
        self.db.add(profile)
        await self.db.flush()
        await self.db.refresh(profile)
        return profile

    async def update_subscription(
        self,
        user_id: str,
        subscription_status: str,
        subscription_tier: Optional[str],
        email: Optional[str] = None,
    ) -> UserProfile:
        """
        Write subscription status and tier, creating the profile if it is missing.

        Args:
            user_id: Profile owner
            subscription_status: Display status (e.g. "active", "expired")
            subscription_tier: Display tier label or None
            email: Stored only when a new profile is created

        Returns:
            The updated or created UserProfile
        """
        profile = await self.get_by_user_id(user_id)
        if profile is None:
            return await self.create({
                "user_id": user_id,
                "email": email,
                "subscription_status": subscription_status,
                "subscription_tier": subscription_tier,
            })

        profile.subscription_status = subscription_status
        profile.subscription_tier = subscription_tier
        await self.db.flush()
        await self.db.refresh(profile)
        return profile

    async def list_trials_ending_between(self, start: datetime, end: datetime) -> List[UserProfile]:
        """Profiles still on trial whose trial_ends_at falls inside [start, end]."""
        result = await self.db.execute(
            select(UserProfile)
            .where(
                UserProfile.subscription_status == "trial",
                UserProfile.trial_ends_at >= start,
                UserProfile.trial_ends_at <= end,
            )
            .order_by(UserProfile.trial_ends_at.asc())
        )
        return list(result.scalars().all())
