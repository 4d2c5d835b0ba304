"""
PaymentRepository for database operations on the user_payments table
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from database_models import UserPayment


class PaymentRepository:
    """
    Repository class for payment record operations.
    Encapsulates all database logic for the UserPayment model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def list_recent_for_user(self, user_id: str, limit: int = 5) -> List[UserPayment]:
        """
        Fetch the most recent payment records for a user.

        Ordered by updated_at descending then created_at descending, NULLs last
        in both keys.

        Args:
            user_id: Owner of the records
            limit: Maximum number of rows to return

        Returns:
            List of UserPayment rows (possibly empty)
        """
        result = await self.db.execute(
            select(UserPayment)
            .where(UserPayment.user_id == user_id)
            .order_by(
                UserPayment.updated_at.desc().nulls_last(),
                UserPayment.created_at.desc().nulls_last(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_granted(self, user_id: str, tier: str) -> Optional[UserPayment]:
        """Return an existing access-granted record for (user, tier), if any."""
        result = await self.db.execute(
            select(UserPayment)
            .where(
                UserPayment.user_id == user_id,
                UserPayment.tier == tier,
                UserPayment.access_granted.is_(True),
            )
            .limit(1)
        )
        return result.scalars().first()

    async def find_granted_for_email(self, email: str, tier: str) -> Optional[UserPayment]:
        """Return an unclaimed access-granted record for (email, tier), if any."""
        result = await self.db.execute(
            select(UserPayment)
            .where(
                UserPayment.email == email.lower(),
                UserPayment.user_id.is_(None),
                UserPayment.tier == tier,
                UserPayment.access_granted.is_(True),
            )
            .limit(1)
        )
        return result.scalars().first()

    async def find_unclaimed_by_email(self, email: str) -> Optional[UserPayment]:
        """
        Find the newest granted, non-test record paid for by this email that
        has not been attached to a user yet.
        """
        result = await self.db.execute(
            select(UserPayment)
            .where(
                UserPayment.email == email.lower(),
                UserPayment.user_id.is_(None),
                UserPayment.access_granted.is_(True),
                UserPayment.is_test.is_(False),
            )
            .order_by(UserPayment.created_at.desc().nulls_last())
            .limit(1)
        )
        return result.scalars().first()

    async def claim(self, payment: UserPayment, user_id: str) -> UserPayment:
        """Attach an unclaimed record to a user."""
        payment.user_id = user_id
        await self.db.flush()
        await self.db.refresh(payment)
        return payment

    async def create(self, payment_data: dict) -> UserPayment:
        """
        Insert a payment record.

        Args:
            payment_data: Column values; email is lower-cased when present.
                created_at/updated_at fall back to the column default (now)
                when missing or None, so NULL timestamps need an explicit UPDATE.

        Returns:
            Created UserPayment row
        """
        if payment_data.get("email"):
            payment_data = {**payment_data, "email": payment_data["email"].lower()}
        payment = UserPayment(**payment_data)
        self.db.add(payment)
        await self.db.flush()
        await self.db.refresh(payment)
        return payment

    async def revoke_subscription(self, stripe_subscription_id: str) -> int:
        """
        Mark every record of a cancelled Stripe subscription inactive.

        Returns:
            Number of rows updated
        """
        result = await self.db.execute(
            update(UserPayment)
            .where(UserPayment.stripe_subscription_id == stripe_subscription_id)
            .values(payment_status="inactive", access_granted=False)
        )
        await self.db.flush()
        return result.rowcount or 0
