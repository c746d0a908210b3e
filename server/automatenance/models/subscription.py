"""Subscription model."""

from automatenance.models.base import Base, TimestampMixin, new_id
from sqlalchemy import Boolean, Column, DateTime, String


class Subscription(Base, TimestampMixin):
    """Billing subscription state mirrored from the payment provider.

    Written by the billing integration; read here to decide plan and
    whether AI predictions are included.
    """

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)

    plan = Column(String(20), nullable=False, default="free")  # free, pro, premium
    status = Column(String(20), nullable=False, default="inactive")  # active, canceled, past_due
    ai_predictions = Column(Boolean, nullable=False, default=False)
    current_period_end = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<Subscription(user_id={self.user_id}, plan='{self.plan}', status='{self.status}')>"
