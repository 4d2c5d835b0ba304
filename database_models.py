import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Account created at signup; the id is the owner key for payments and profiles."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class UserPayment(Base):
    """
    Raw payment/subscription record.
    Written by the Stripe webhook or by an administrative grant; a user may own many.
    user_id stays NULL until the row is claimed by email.
    """
    __tablename__ = "user_payments"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, nullable=True, index=True)
    email = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    organization = Column(String, nullable=True)
    tier = Column(String, nullable=True)
    plan_type = Column(String, nullable=True)
    payment_status = Column(String, nullable=True)
    access_granted = Column(Boolean, nullable=True)
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_session_id = Column(String, nullable=True)
    payment_amount = Column(Integer, nullable=True)
    is_test = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=True)


class UserProfile(Base):
    """Per-user subscription metadata shown in the UI."""
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, nullable=True)
    institution_name = Column(String, nullable=True)
    subscription_status = Column(String, nullable=True)
    subscription_tier = Column(String, nullable=True)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=True)
